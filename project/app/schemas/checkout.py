# app/schemas/checkout.py

from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CheckoutItem(BaseModel):
    id: int = Field(gt=0)
    name: str = Field(min_length=1, max_length=200)
    price: float = Field(ge=0.01, le=100000)
    quantity: int = Field(ge=1, le=100)
    description: Optional[str] = Field(default=None, max_length=5000)
    image: Optional[str] = Field(default=None, max_length=500)
    category: str = Field(min_length=1)
    stock: int = Field(default=0, ge=0)
    notes: Optional[dict] = None
    badges: Optional[list[str]] = None


class CheckoutRequest(BaseModel):
    cart_items: list[CheckoutItem] = Field(min_length=1, max_length=50)
    promo_code: Optional[str] = Field(default=None, max_length=50)
    # оценка на клиенте, скидку сервер считает заново
    discount_amount: Optional[float] = Field(default=None, ge=0)

    @field_validator("cart_items")
    @classmethod
    def unique_products(cls, items: list[CheckoutItem]) -> list[CheckoutItem]:
        ids = [item.id for item in items]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate products in cart")
        return items

    @field_validator("promo_code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().upper()
        return v or None


class CheckoutResponse(BaseModel):
    url: str
    order_id: int
