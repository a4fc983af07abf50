from decimal import Decimal
import pytest
from sqlalchemy import select
from orderpay.config.settings import config_settings
from orderpay.orders.repository import find_order_by_id
from orderpay.payments.repository import find_payment_by_checkout_id
from orderpay.schema.full_schema import CallbackEventStatus, MpesaCallbackEvent, OrderStatus, PaymentStatus
from tests.conftest import ADMIN_HEADERS, seed_order, seed_pending_payment, url_prefix

CALLBACK_PATH = config_settings.MPESA_CALLBACK_PATH
SERVICES_MODULE = "orderpay.payments.services"


async def callback_events(session):
    session.expire_all()
    res = await session.execute(select(MpesaCallbackEvent).order_by(MpesaCallbackEvent.id))
    return list(res.scalars().all())


@pytest.mark.asyncio
async def test_callback_success_acknowledged_and_reconciled(ac_client, db_session, stk_callback):
    order = await seed_order(db_session)
    await seed_pending_payment(db_session, order.id, "abc123")

    r = await ac_client.post(CALLBACK_PATH, json=stk_callback("abc123"))

    assert r.status_code == 200
    assert r.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    db_session.expire_all()
    payment = await find_payment_by_checkout_id(db_session, "abc123")
    assert payment.status == PaymentStatus.COMPLETED.value
    assert payment.amount_paid == Decimal("500")
    order = await find_order_by_id(db_session, order.id)
    assert order.status == OrderStatus.PAID.value
    assert order.transaction_id == "R1-20240101120000"

    events = await callback_events(db_session)
    assert len(events) == 1
    assert events[0].status == CallbackEventStatus.PROCESSED.value
    assert events[0].checkout_request_id == "abc123"
    assert events[0].processed_at is not None


@pytest.mark.asyncio
async def test_callback_failure_result_acknowledged(ac_client, db_session, stk_callback):
    order = await seed_order(db_session)
    await seed_pending_payment(db_session, order.id, "abc123")

    r = await ac_client.post(CALLBACK_PATH, json=stk_callback("abc123", result_code=1032, result_desc="Request cancelled by user"))

    assert r.status_code == 200
    assert r.json()["ResultCode"] == 0

    db_session.expire_all()
    payment = await find_payment_by_checkout_id(db_session, "abc123")
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.result_code == 1032
    order = await find_order_by_id(db_session, order.id)
    assert order.status == OrderStatus.PAYMENT_FAILED.value


@pytest.mark.asyncio
async def test_unmatched_callback_still_accepted(ac_client, db_session, stk_callback):
    r = await ac_client.post(CALLBACK_PATH, json=stk_callback("unknown-id"))

    assert r.status_code == 200
    assert r.json() == {"ResultCode": 0, "ResultDesc": "Accepted"}

    events = await callback_events(db_session)
    assert [ev.status for ev in events] == [CallbackEventStatus.UNMATCHED.value]


@pytest.mark.asyncio
async def test_malformed_callback_gets_error_ack_with_200(ac_client, db_session):
    r = await ac_client.post(CALLBACK_PATH, json={"Body": {"unexpected": True}})

    assert r.status_code == 200
    assert r.json() == {"ResultCode": 1, "ResultDesc": "Internal Server Error"}

    events = await callback_events(db_session)
    assert len(events) == 1
    assert events[0].status == CallbackEventStatus.INVALID.value


@pytest.mark.asyncio
async def test_internal_error_is_swallowed_and_recorded(monkeypatch, ac_client, db_session, stk_callback):
    order = await seed_order(db_session)
    await seed_pending_payment(db_session, order.id, "abc123")

    async def exploding_reconcile(session, callback):
        raise RuntimeError("reconciliation blew up")

    monkeypatch.setattr(f"{SERVICES_MODULE}.reconcile", exploding_reconcile)

    r = await ac_client.post(CALLBACK_PATH, json=stk_callback("abc123"))

    assert r.status_code == 200
    assert r.json() == {"ResultCode": 1, "ResultDesc": "Internal Server Error"}

    db_session.expire_all()
    payment = await find_payment_by_checkout_id(db_session, "abc123")
    assert payment.status == PaymentStatus.PENDING.value

    events = await callback_events(db_session)
    assert events[0].status == CallbackEventStatus.ERRORED.value
    assert "reconciliation blew up" in events[0].last_error


@pytest.mark.asyncio
async def test_replay_reconciles_stored_callback(monkeypatch, ac_client, db_session, stk_callback):
    order = await seed_order(db_session)
    await seed_pending_payment(db_session, order.id, "abc123")

    async def exploding_reconcile(session, callback):
        raise RuntimeError("transient failure")

    with monkeypatch.context() as m:
        m.setattr(f"{SERVICES_MODULE}.reconcile", exploding_reconcile)
        await ac_client.post(CALLBACK_PATH, json=stk_callback("abc123"))

    events = await callback_events(db_session)
    ev_id = events[0].id

    r = await ac_client.get(f"{url_prefix}/admin/callbacks/", params={"status": "errored"}, headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert [ev["id"] for ev in r.json()["data"]] == [ev_id]

    r = await ac_client.post(f"{url_prefix}/admin/callbacks/{ev_id}/replay", headers=ADMIN_HEADERS)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["outcome"] == "completed"
    assert data["order_updated"] is True
    assert data["payment"]["status"] == PaymentStatus.COMPLETED.value
    assert data["payment"]["transaction_id"] == "R1-20240101120000"

    events = await callback_events(db_session)
    assert events[0].status == CallbackEventStatus.PROCESSED.value
    assert events[0].attempts == 2

    order = await find_order_by_id(db_session, order.id)
    assert order.status == OrderStatus.PAID.value


@pytest.mark.asyncio
async def test_replay_unknown_event_404(ac_client):
    r = await ac_client.post(f"{url_prefix}/admin/callbacks/4242/replay", headers=ADMIN_HEADERS)
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "HTTP_404"


@pytest.mark.asyncio
async def test_replay_invalid_payload_422(ac_client, db_session):
    await ac_client.post(CALLBACK_PATH, content=b"not json", headers={"Content-Type": "application/json"})
    events = await callback_events(db_session)

    r = await ac_client.post(f"{url_prefix}/admin/callbacks/{events[0].id}/replay", headers=ADMIN_HEADERS)
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_failed_replay_still_counts_attempt(monkeypatch, ac_client, db_session, stk_callback):
    order = await seed_order(db_session)
    await seed_pending_payment(db_session, order.id, "abc123")

    async def exploding_reconcile(session, callback):
        raise RuntimeError("still broken")

    with monkeypatch.context() as m:
        m.setattr(f"{SERVICES_MODULE}.reconcile", exploding_reconcile)
        await ac_client.post(CALLBACK_PATH, json=stk_callback("abc123"))
        ev_id = (await callback_events(db_session))[0].id

        r = await ac_client.post(f"{url_prefix}/admin/callbacks/{ev_id}/replay", headers=ADMIN_HEADERS)
        assert r.status_code == 500
        assert r.json()["error"]["details"]["message"] == "Callback replay failed"

    events = await callback_events(db_session)
    assert events[0].attempts == 2
    assert events[0].status == CallbackEventStatus.ERRORED.value
    assert "still broken" in events[0].last_error

    r = await ac_client.post(f"{url_prefix}/admin/callbacks/{ev_id}/replay", headers=ADMIN_HEADERS)
    assert r.status_code == 200

    events = await callback_events(db_session)
    assert events[0].attempts == 3
    assert events[0].status == CallbackEventStatus.PROCESSED.value
