# app/schemas/order.py

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    name: str
    price: float
    quantity: int

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    stripe_session_id: str
    status: str
    total_amount: float
    promo_code: Optional[str] = None
    discount_amount: Optional[float] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    email: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: datetime
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: list[OrderItemResponse] = []

    model_config = {"from_attributes": True}


class ShipRequest(BaseModel):
    tracking_number: str = Field(min_length=5, max_length=50)
    carrier: str = Field(min_length=2, max_length=50)


class BulkOrderAction(BaseModel):
    action: Literal["mark_as_shipped", "mark_as_delivered", "cancel"]
    order_ids: list[int] = Field(min_length=1)
    tracking_number: Optional[str] = Field(default=None, max_length=50)
    carrier: Optional[str] = Field(default=None, max_length=50)
