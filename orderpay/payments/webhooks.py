import json
from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from orderpay.db.dependencies import get_session
from orderpay.payments.constants import CALLBACK_ACK_ACCEPTED, CALLBACK_ACK_ERROR, logger
from orderpay.payments.models import StkCallbackEnvelope
from orderpay.payments.repository import record_callback_received
from orderpay.payments.services import process_callback_event
from orderpay.schema.full_schema import CallbackEventStatus


# the gateway redelivers on anything but a 200 , so every path here answers 200
async def mpesa_callback(request: Request, session: AsyncSession = Depends(get_session)):
    body = await request.body()

    try:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None

        try:
            envelope = StkCallbackEnvelope.model_validate(payload)
        except ValidationError as e:
            logger.error("mpesa.callback.invalid_payload", extra={"errors": e.errors(include_url=False)})
            await record_callback_received(
                session,
                payload if isinstance(payload, dict) else {"raw": body.decode(errors="replace")},
                status=CallbackEventStatus.INVALID.value,
                last_error="invalid stk callback payload",
            )
            await session.commit()
            return JSONResponse(CALLBACK_ACK_ERROR, status_code=200)

        callback = envelope.Body.stkCallback
        logger.info(
            "mpesa.callback.received",
            extra={"checkout_request_id": callback.CheckoutRequestID, "result_code": callback.ResultCode},
        )

        # keep the raw callback even if reconciliation below fails
        ev = await record_callback_received(session, payload, callback.CheckoutRequestID, callback.ResultCode)
        ev_id = ev.id
        await session.commit()

        await process_callback_event(session, ev_id, callback)

    except Exception:
        logger.exception("mpesa.callback.processing_error")
        return JSONResponse(CALLBACK_ACK_ERROR, status_code=200)

    return JSONResponse(CALLBACK_ACK_ACCEPTED, status_code=200)
