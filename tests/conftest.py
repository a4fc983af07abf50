import os
import tempfile

_TEST_DB_DIR = tempfile.mkdtemp(prefix="orderpay-tests-")

# settings are read at import time , so the env has to be in place before orderpay is imported
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/orderpay_test.db"
os.environ.setdefault("MPESA_ENV", "sandbox")
os.environ.setdefault("MPESA_CONSUMER_KEY", "test-consumer-key")
os.environ.setdefault("MPESA_CONSUMER_SECRET", "test-consumer-secret")
os.environ.setdefault("MPESA_SHORTCODE", "174379")
os.environ.setdefault("MPESA_PASSKEY", "test-passkey")
os.environ.setdefault("MPESA_CALLBACK_URL", "https://example.test/api/v1/payments/callback")
os.environ["ENV"] = "dev"
os.environ["ENABLE_ADMIN"] = "true"
os.environ["ADMIN_SECRET"] = "test-admin-secret"

from decimal import Decimal
from typing import Optional

import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from orderpay.db.connection import async_engine, async_session
from orderpay.db.utils import create_all_tables, drop_all_tables
from orderpay.main import app
from orderpay.payments.dependencies import get_gateway_client
from orderpay.payments.gateway import StkPushResult

url_prefix = "/api/v1"
ADMIN_HEADERS = {"X-Admin-Secret": "test-admin-secret"}


@pytest.fixture
async def setup_db():
    await create_all_tables(async_engine)
    yield
    await drop_all_tables(async_engine)
    await async_engine.dispose()


@pytest.fixture
async def db_session(setup_db):
    async with async_session() as session:
        yield session


class FakeMpesaClient:
    """Stands in for MpesaClient , returns a canned stk push response."""

    def __init__(self, response_code: str = "0", checkout_request_id: str = "ws_CO_TEST_1",
                 merchant_request_id: str = "29115-34620561-1", error: Optional[Exception] = None):
        self.response_code = response_code
        self.checkout_request_id = checkout_request_id
        self.merchant_request_id = merchant_request_id
        self.error = error
        self.calls = []

    async def initiate(self, amount, phone_number, account_reference="ORDER"):
        self.calls.append({"amount": amount, "phone_number": phone_number, "account_reference": account_reference})
        if self.error is not None:
            raise self.error
        return StkPushResult.from_response({
            "MerchantRequestID": self.merchant_request_id,
            "CheckoutRequestID": self.checkout_request_id,
            "ResponseCode": self.response_code,
            "ResponseDescription": "Success. Request accepted for processing" if self.response_code == "0" else "Rejected",
            "CustomerMessage": "Success. Request accepted for processing",
        })

    async def aclose(self):
        pass


@pytest.fixture
def fake_gateway():
    gateway = FakeMpesaClient()
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_gateway_client, None)


@pytest.fixture
async def ac_client(setup_db):
    async with LifespanManager(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac


@pytest.fixture
def stk_callback():
    """Factory for the {"Body": {"stkCallback": ...}} payload the gateway posts."""

    def build(checkout_request_id: str, result_code: int = 0, result_desc: Optional[str] = None,
              amount=500, receipt: Optional[str] = "R1", transaction_date=20240101120000,
              phone_number=254700000000, merchant_request_id: str = "29115-34620561-1"):
        callback = {
            "MerchantRequestID": merchant_request_id,
            "CheckoutRequestID": checkout_request_id,
            "ResultCode": result_code,
            "ResultDesc": result_desc or ("The service request is processed successfully." if result_code == 0 else "Request cancelled by user"),
        }
        if result_code == 0:
            items = []
            if amount is not None:
                items.append({"Name": "Amount", "Value": amount})
            if receipt is not None:
                items.append({"Name": "MpesaReceiptNumber", "Value": receipt})
            items.append({"Name": "Balance"})
            if transaction_date is not None:
                items.append({"Name": "TransactionDate", "Value": transaction_date})
            if phone_number is not None:
                items.append({"Name": "PhoneNumber", "Value": phone_number})
            callback["CallbackMetadata"] = {"Item": items}
        return {"Body": {"stkCallback": callback}}

    return build


async def seed_order(session, amount=Decimal("500.00"), customer_name="Wanjiru", product="Textbook"):
    from orderpay.orders.models import OrderCreateIn
    from orderpay.orders.repository import create_order

    order = await create_order(session, OrderCreateIn(customer_name=customer_name, product=product, amount=amount))
    await session.commit()
    return order


async def seed_pending_payment(session, order_id: int, checkout_request_id: str = "abc123",
                               amount=Decimal("500.00"), merchant_request_id: str = "29115-34620561-1"):
    from orderpay.payments.repository import create_pending_payment

    payment = await create_pending_payment(
        session, order_id=order_id, user_id=None, amount=amount, method="mpesa_stk",
        checkout_request_id=checkout_request_id, merchant_request_id=merchant_request_id,
    )
    await session.commit()
    return payment
