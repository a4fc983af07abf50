from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from orderpay.schema.full_schema import PaymentStatus


class PaymentCreateIn(BaseModel):
    # presence checked in the route so a missing field is a 400 , not a 422
    order_id: Optional[int] = None
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    method: Optional[str] = Field(None, max_length=50)


class StkPushIn(BaseModel):
    amount: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    order_id: Optional[int] = Field(None, alias="orderId")
    account_reference: Optional[str] = Field(None, alias="accountReference", max_length=12)
    user_id: Optional[int] = Field(None, alias="userId")

    model_config = ConfigDict(populate_by_name=True)


class PaymentStatusIn(BaseModel):
    status: PaymentStatus


class PaymentUpdate(BaseModel):
    """Partial update of a payment row. Only fields explicitly set are written."""
    status: Optional[PaymentStatus] = None
    mpesa_receipt_number: Optional[str] = None
    amount_paid: Optional[Decimal] = None
    transaction_date: Optional[str] = None
    phone_number: Optional[str] = None
    error_description: Optional[str] = None
    result_code: Optional[int] = None
    transaction_id: Optional[str] = None

    model_config = {"extra": "forbid"}

    def changes(self) -> dict:
        values = self.model_dump(exclude_unset=True)
        if isinstance(values.get("status"), PaymentStatus):
            values["status"] = values["status"].value
        return values


class PaymentOut(BaseModel):
    id: int
    order_id: int
    user_id: Optional[int] = None
    amount: Decimal
    amount_paid: Optional[Decimal] = None
    method: str
    status: str
    checkout_request_id: Optional[str] = None
    merchant_request_id: Optional[str] = None
    mpesa_receipt_number: Optional[str] = None
    transaction_date: Optional[str] = None
    phone_number: Optional[str] = None
    error_description: Optional[str] = None
    result_code: Optional[int] = None
    transaction_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CallbackEventOut(BaseModel):
    id: int
    checkout_request_id: Optional[str] = None
    result_code: Optional[int] = None
    status: str
    last_error: Optional[str] = None
    attempts: int
    processed_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

# ---------------------------------------------------------------------------------------------
# stk callback as posted by the gateway: {"Body": {"stkCallback": {...}}}

class MetadataItem(BaseModel):
    Name: str
    Value: Optional[Any] = None


class CallbackMetadataIn(BaseModel):
    Item: List[MetadataItem] = []


class StkCallbackIn(BaseModel):
    MerchantRequestID: Optional[str] = None
    CheckoutRequestID: str
    ResultCode: int
    ResultDesc: str = ""
    CallbackMetadata: Optional[CallbackMetadataIn] = None

    model_config = ConfigDict(extra="ignore")

    def metadata_value(self, name: str) -> Optional[Any]:
        """Value of the first metadata item with this name , None when missing."""
        if self.CallbackMetadata is None:
            return None
        for item in self.CallbackMetadata.Item:
            if item.Name == name:
                return item.Value
        return None


class StkCallbackBodyIn(BaseModel):
    stkCallback: StkCallbackIn


class StkCallbackEnvelope(BaseModel):
    Body: StkCallbackBodyIn
