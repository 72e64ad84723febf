# app/models/order.py

from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from app.utils.database import Base, utcnow

ORDER_STATUSES = ("PENDING", "PAID", "SHIPPED", "DELIVERED", "CANCELLED", "FAILED", "REFUNDED")
# статусы, при которых деньги получены
COMPLETED_STATUSES = ("PAID", "SHIPPED", "DELIVERED")


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    stripe_session_id = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)

    status = Column(String, nullable=False, default="PENDING", index=True)
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    promo_code = Column(String, nullable=True)
    discount_amount = Column(Numeric(10, 2, asdecimal=False), nullable=True)

    tracking_number = Column(String, nullable=True)
    carrier = Column(String, nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    paid_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    items = relationship("OrderItem", back_populates="order", lazy="selectin", cascade="all, delete-orphan")
    customer = relationship("Customer", lazy="selectin")
    user = relationship("User", lazy="selectin")

    @property
    def email(self) -> str | None:
        if self.customer is not None:
            return self.customer.email
        return self.user.email if self.user is not None else None

    @property
    def customer_name(self) -> str | None:
        if self.customer is not None and self.customer.name:
            return self.customer.name
        return self.user.name if self.user is not None else None


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    name = Column(String, nullable=False)                  # название на момент покупки
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    quantity = Column(Integer, nullable=False)

    order = relationship("Order", back_populates="items")
