# app/schemas/promo.py

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


def _upper(v: Optional[str]) -> Optional[str]:
    return v.strip().upper() if v is not None else None


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    """Даты хранятся как naive UTC."""
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


class PromoValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    cart_total: float = Field(gt=0)

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return _upper(v)


class PromoCreate(BaseModel):
    code: str = Field(min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    discount_percent: Optional[int] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[float] = Field(default=None, ge=0)
    min_purchase: Optional[float] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: str) -> str:
        return _upper(v)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def naive_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)

    @model_validator(mode="after")
    def one_discount(self):
        if not self.discount_percent and not self.discount_amount:
            raise ValueError("Either discount_percent or discount_amount is required")
        return self


class PromoUpdate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=3, max_length=50)
    description: Optional[str] = Field(default=None, max_length=200)
    discount_percent: Optional[int] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[float] = Field(default=None, ge=0)
    min_purchase: Optional[float] = Field(default=None, ge=0)
    max_uses: Optional[int] = Field(default=None, ge=1)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None

    @field_validator("code")
    @classmethod
    def upper_code(cls, v: Optional[str]) -> Optional[str]:
        return _upper(v)

    @field_validator("valid_from", "valid_until")
    @classmethod
    def naive_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class PromoResponse(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_percent: Optional[int] = None
    discount_amount: Optional[float] = None
    min_purchase: Optional[float] = None
    max_uses: Optional[int] = None
    used_count: int
    valid_from: datetime
    valid_until: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
