# app/schemas/wishlist.py

from typing import Literal

from pydantic import BaseModel


class WishlistAdd(BaseModel):
    product_id: int


class ShareAction(BaseModel):
    action: Literal["generate", "toggle"]
