from decimal import Decimal
import pytest
from tests.conftest import url_prefix

ORDERS_URL = f"{url_prefix}/orders/"


@pytest.mark.asyncio
async def test_place_order(ac_client):
    r = await ac_client.post(ORDERS_URL, json={"customer_name": "Wanjiru", "product": "Textbook", "amount": "1500.00"})

    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "ok"
    data = body["data"]
    assert data["status"] == "pending"
    assert Decimal(data["amount"]) == Decimal("1500.00")
    assert data["transaction_id"] is None
    assert data["mpesa_receipt_number"] is None


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"customer_name": "Wanjiru", "product": "Textbook"},
    {"customer_name": "Wanjiru", "product": "Textbook", "amount": "0"},
    {"customer_name": "", "product": "Textbook", "amount": "10"},
    {"customer_name": "Wanjiru", "product": "Textbook", "amount": "10", "status": "paid"},
])
async def test_place_order_rejects_bad_input(ac_client, body):
    r = await ac_client.post(ORDERS_URL, json=body)

    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNPROCESSABLE_ENTITY"


@pytest.mark.asyncio
async def test_list_and_get_orders(ac_client):
    first = (await ac_client.post(ORDERS_URL, json={"customer_name": "A", "product": "P1", "amount": "10"})).json()["data"]
    second = (await ac_client.post(ORDERS_URL, json={"customer_name": "B", "product": "P2", "amount": "20"})).json()["data"]

    r = await ac_client.get(ORDERS_URL)
    assert r.status_code == 200
    assert {o["id"] for o in r.json()["data"]} == {first["id"], second["id"]}

    r = await ac_client.get(f"{ORDERS_URL}{second['id']}")
    assert r.status_code == 200
    assert r.json()["data"]["customer_name"] == "B"


@pytest.mark.asyncio
async def test_get_unknown_order(ac_client):
    r = await ac_client.get(f"{ORDERS_URL}12345")

    assert r.status_code == 404
    assert r.json()["error"]["details"] == {"message": "Order not found"}


@pytest.mark.asyncio
async def test_request_id_echoed(ac_client):
    r = await ac_client.get(ORDERS_URL, headers={"X-Request-ID": "req-123"})

    assert r.headers["X-Request-ID"] == "req-123"
    assert r.json()["request_id"] == "req-123"


@pytest.mark.asyncio
async def test_health(ac_client):
    r = await ac_client.get(f"{url_prefix}/health")
    assert r.status_code == 200
