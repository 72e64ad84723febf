# app/schemas/review.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.text import sanitize_string


class ReviewCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    title: Optional[str] = Field(default=None, max_length=100)
    comment: str = Field(min_length=10, max_length=1000)

    @field_validator("title", "comment")
    @classmethod
    def clean(cls, v: Optional[str]) -> Optional[str]:
        return sanitize_string(v) if v is not None else None


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    title: Optional[str] = Field(default=None, max_length=100)
    comment: Optional[str] = Field(default=None, min_length=10, max_length=1000)

    @field_validator("title", "comment")
    @classmethod
    def clean(cls, v: Optional[str]) -> Optional[str]:
        return sanitize_string(v) if v is not None else None


class ReviewResponse(BaseModel):
    id: int
    product_id: int
    user_id: int
    user_name: Optional[str] = None
    rating: int
    title: Optional[str] = None
    comment: str
    verified: bool
    created_at: datetime

    model_config = {"from_attributes": True}
