# app/models/referral.py

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.utils.database import Base, utcnow

class Referral(Base):
    """
    Одна строка на реферальный код. referee_id пуст, пока новый клиент
    не применит код; после его первой оплаты статус COMPLETED.
    """
    __tablename__ = "referrals"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    referrer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    referee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String, nullable=False, default="PENDING")    # PENDING | COMPLETED
    reward = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=10)
    created_at = Column(DateTime, default=utcnow)
    completed_at = Column(DateTime, nullable=True)

    referee = relationship("User", foreign_keys=[referee_id], lazy="selectin")
