# app/schemas/loyalty.py

from pydantic import BaseModel, Field


class RedeemRequest(BaseModel):
    points: int = Field(ge=1000)


class ReferralApplyRequest(BaseModel):
    code: str = Field(min_length=6, max_length=10)
