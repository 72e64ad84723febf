# app/models/promo.py

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric
from app.utils.database import Base, utcnow

class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)   # всегда в верхнем регистре
    description = Column(String, nullable=True)

    discount_percent = Column(Integer, nullable=True)                 # 0..100
    discount_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True)   # фиксированная, в евро
    min_purchase = Column(Numeric(10, 2, asdecimal=False), nullable=True)

    max_uses = Column(Integer, nullable=True)                         # None = без лимита
    used_count = Column(Integer, nullable=False, default=0)

    valid_from = Column(DateTime, nullable=False, default=utcnow)
    valid_until = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
