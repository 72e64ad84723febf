# app/models/stock.py

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.utils.database import Base, utcnow

MOVEMENT_TYPES = ("SALE", "RETURN", "RESTOCK", "ADJUSTMENT", "DAMAGE", "TRANSFER")

class StockMovement(Base):
    __tablename__ = "stock_history"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)          # изменение со знаком
    type = Column(String, nullable=False)
    reason = Column(String, nullable=True)
    stock_before = Column(Integer, nullable=False)
    stock_after = Column(Integer, nullable=False)
    order_id = Column(Integer, nullable=True)
    user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)
