# app/schemas/stock.py

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class StockUpdate(BaseModel):
    """
    Изменение остатка из админки.
    action=set    - quantity становится новым остатком
    action=add    - quantity (> 0) прибавляется
    action=adjust - quantity это изменение со знаком
    Старый формат {"product_id", "adjustment"} читается как action=set.
    """
    product_id: int
    action: Optional[Literal["set", "add", "adjust"]] = None
    quantity: Optional[int] = None
    adjustment: Optional[int] = None
    reason: Optional[str] = Field(default=None, max_length=200)

    @model_validator(mode="after")
    def legacy_format(self):
        if self.action is None:
            if self.adjustment is None:
                raise ValueError("action and quantity are required")
            self.action = "set"
            self.quantity = self.adjustment
        elif self.quantity is None:
            raise ValueError("quantity is required")
        return self
