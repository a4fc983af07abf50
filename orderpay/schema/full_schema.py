import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import JSON, DateTime, ForeignKey, Integer, Numeric, Text
from sqlmodel import Column, SQLModel, Field, String
from orderpay.common.utils import now


# --------------------------------------------------------------------------------------------
class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"


# amount is fixed at creation , status / receipt refs only move through the update calls in orders.repository
class Orders(SQLModel, table=True):
    __tablename__ = "orders"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_name: str = Field(sa_column=Column(String(100), nullable=False))
    product: str = Field(sa_column=Column(String(100), nullable=False))
    amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(20), nullable=False, index=True, default=OrderStatus.PENDING.value))
    transaction_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    mpesa_receipt_number: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# --------------------------------------------------------------------------------------------------------------------------------

class PaymentStatus(str, enum.Enum):
    INITIATED = "initiated"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


# Orders --> Payment (1:many) , one row per STK push attempt
class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    user_id: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    amount_paid: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(10, 2), nullable=True))
    method: str = Field(sa_column=Column(String(50), nullable=False))
    status: str = Field(default=PaymentStatus.INITIATED.value, sa_column=Column(String(20), nullable=False, index=True, default=PaymentStatus.INITIATED.value))
    # gateway correlation id , links the stk push to its async callback
    checkout_request_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True, unique=True))
    merchant_request_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    mpesa_receipt_number: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    transaction_date: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    phone_number: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    error_description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    result_code: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    transaction_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# --------------------------------------------------------------------------------------------------------------------------------

class CallbackEventStatus(str, enum.Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    UNMATCHED = "unmatched"
    ERRORED = "errored"
    INVALID = "invalid"


class MpesaCallbackEvent(SQLModel, table=True):
    """Raw stk callback as delivered , kept so failed or unmatched callbacks can be replayed."""
    __tablename__ = "mpesa_callback_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    checkout_request_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True, index=True))
    result_code: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    status: str = Field(default=CallbackEventStatus.RECEIVED.value, sa_column=Column(String(20), nullable=False, index=True))
    last_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    attempts: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    processed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
