# app/models/loyalty.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.utils.database import Base, utcnow

class LoyaltyAccount(Base):
    __tablename__ = "loyalty_accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    points = Column(Integer, nullable=False, default=0)
    tier = Column(String, nullable=False, default="BRONZE")
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class LoyaltyTransaction(Base):
    __tablename__ = "loyalty_transactions"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(Integer, ForeignKey("loyalty_accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)        # со знаком
    reason = Column(String, nullable=False)         # PURCHASE, REVIEW, REFERRAL, REDEEM, BONUS
    order_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
