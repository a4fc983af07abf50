from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class OrderCreateIn(BaseModel):
    customer_name: str = Field(..., min_length=1, max_length=100)
    product: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)

    model_config = {"extra": "forbid"}


class OrderOut(BaseModel):
    id: int
    customer_name: str
    product: str
    amount: Decimal
    status: str
    transaction_id: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
