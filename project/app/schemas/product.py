# app/schemas/product.py

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, HttpUrl, field_validator

from app.utils.text import sanitize_string

Category = Literal["Signature", "Niche", "Femme", "Homme", "Coffret"]


class ProductBase(BaseModel):
    name: str = Field(min_length=2, max_length=200)
    brand: Optional[str] = Field(default=None, max_length=100)
    description: str = Field(min_length=10, max_length=5000)
    price: float = Field(gt=0, le=99999.99)
    volume: Optional[str] = Field(default=None, max_length=50)
    image: HttpUrl
    category: Category
    subcategory: Optional[str] = Field(default=None, max_length=100)
    stock: int = Field(default=0, ge=0)
    notes_top: Optional[str] = Field(default=None, max_length=500)
    notes_heart: Optional[str] = Field(default=None, max_length=500)
    notes_base: Optional[str] = Field(default=None, max_length=500)
    is_featured: bool = False
    is_new: bool = False
    is_best_seller: bool = False

    @field_validator("name", "description")
    @classmethod
    def clean_text(cls, v: str) -> str:
        return sanitize_string(v)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    """Частичное обновление: применяются только переданные поля."""
    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    brand: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=5000)
    price: Optional[float] = Field(default=None, gt=0, le=99999.99)
    volume: Optional[str] = Field(default=None, max_length=50)
    image: Optional[HttpUrl] = None
    category: Optional[Category] = None
    subcategory: Optional[str] = Field(default=None, max_length=100)
    stock: Optional[int] = Field(default=None, ge=0)
    notes_top: Optional[str] = Field(default=None, max_length=500)
    notes_heart: Optional[str] = Field(default=None, max_length=500)
    notes_base: Optional[str] = Field(default=None, max_length=500)
    is_featured: Optional[bool] = None
    is_new: Optional[bool] = None
    is_best_seller: Optional[bool] = None


class ProductResponse(BaseModel):
    id: int
    name: str
    brand: Optional[str] = None
    description: str
    price: float
    volume: Optional[str] = None
    image: Optional[str] = None
    category: str
    subcategory: Optional[str] = None
    stock: int
    notes_top: Optional[str] = None
    notes_heart: Optional[str] = None
    notes_base: Optional[str] = None
    is_featured: bool
    is_new: bool
    is_best_seller: bool
    created_at: Optional[datetime] = None

    model_config = {
        "from_attributes": True
    }


class BulkProductAction(BaseModel):
    action: Literal[
        "delete",
        "set_featured", "unset_featured",
        "set_new", "unset_new",
        "set_best_seller", "unset_best_seller",
        "adjust_stock", "set_category", "adjust_price",
    ]
    product_ids: list[int] = Field(min_length=1)
    data: dict = Field(default_factory=dict)


def _oui(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() == "oui"


class ProductImportRow(BaseModel):
    """Строка CSV товаров. Пустые необязательные ячейки становятся None."""
    name: str = Field(min_length=1)
    brand: Optional[str] = None
    description: str = Field(min_length=1)
    price: float = Field(gt=0)
    volume: Optional[str] = None
    category: Category
    subcategory: Optional[str] = None
    stock: int = Field(ge=0)
    notes_top: Optional[str] = None
    notes_heart: Optional[str] = None
    notes_base: Optional[str] = None
    is_featured: bool = False
    is_new: bool = False
    is_best_seller: bool = False
    image: HttpUrl

    @field_validator("brand", "volume", "subcategory", "notes_top", "notes_heart", "notes_base", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("price", mode="before")
    @classmethod
    def decimal_comma(cls, v):
        if isinstance(v, str):
            return v.strip().replace(",", ".")
        return v

    @field_validator("is_featured", "is_new", "is_best_seller", mode="before")
    @classmethod
    def parse_badge(cls, v) -> bool:
        return _oui(v)
