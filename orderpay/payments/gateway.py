import base64
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo
import httpx
from orderpay.common.custom_exceptions import GatewayError
from orderpay.config.settings import config_settings
from orderpay.payments.constants import (MPESA_PRODUCTION_BASE_URL, MPESA_SANDBOX_BASE_URL, MPESA_TIMEZONE,
                                         STK_ACCEPTED_CODE, logger)

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError, httpx.NetworkError)


@dataclass
class StkPushResult:
    checkout_request_id: Optional[str]
    merchant_request_id: Optional[str]
    response_code: Optional[str]
    response_description: Optional[str]
    customer_message: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def accepted(self) -> bool:
        return self.response_code == STK_ACCEPTED_CODE

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "StkPushResult":
        code = data.get("ResponseCode")
        return cls(
            checkout_request_id=data.get("CheckoutRequestID"),
            merchant_request_id=data.get("MerchantRequestID"),
            response_code=str(code) if code is not None else None,
            response_description=data.get("ResponseDescription") or data.get("errorMessage"),
            customer_message=data.get("CustomerMessage"),
            raw=data,
        )


def whole_shillings(amount: Any) -> int:
    """Daraja only takes whole shillings , a fractional amount is refused rather than rounded."""
    value = Decimal(str(amount))
    if value != value.to_integral_value():
        raise ValueError(f"amount {value} is not a whole number of shillings")
    return int(value)


def base_url_for(env: str) -> str:
    return MPESA_SANDBOX_BASE_URL if env == "sandbox" else MPESA_PRODUCTION_BASE_URL


def stk_timestamp(at: Optional[datetime] = None) -> str:
    # daraja expects YYYYMMDDhhmmss in kenyan local time
    at = at or datetime.now(ZoneInfo(MPESA_TIMEZONE))
    return at.strftime("%Y%m%d%H%M%S")


class MpesaClient:
    """Daraja STK push client: OAuth token then a CustomerPayBillOnline request."""

    def __init__(self, consumer_key: str, consumer_secret: str, shortcode: str, passkey: str,
                 callback_url: str, env: str = "sandbox", timeout: float = 10.0,
                 transaction_desc: str = "Order Payment", transport: Optional[httpx.AsyncBaseTransport] = None):
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = shortcode
        self.passkey = passkey
        self.callback_url = callback_url
        self.base_url = base_url_for(env)
        self.transaction_desc = transaction_desc
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings=config_settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "MpesaClient":
        return cls(
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            shortcode=settings.MPESA_SHORTCODE,
            passkey=settings.MPESA_PASSKEY,
            callback_url=settings.MPESA_CALLBACK_URL,
            env=settings.MPESA_ENV,
            timeout=settings.MPESA_TIMEOUT_SECONDS,
            transaction_desc=settings.MPESA_TRANSACTION_DESC,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    def build_password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    async def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        try:
            resp = await self._client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except TRANSIENT_EXCEPTIONS as ex:
            logger.warning("mpesa.gateway.unreachable", extra={"url": url, "error": str(ex)})
            raise GatewayError(f"gateway unreachable: {ex}") from ex
        except httpx.HTTPStatusError as ex:
            try:
                details = ex.response.json()
            except ValueError:
                details = ex.response.text
            logger.warning("mpesa.gateway.http_error", extra={"url": url, "http_status": ex.response.status_code})
            raise GatewayError("gateway returned an error", status_code=ex.response.status_code, details=details) from ex
        except httpx.HTTPError as ex:
            raise GatewayError(f"gateway request failed: {ex}") from ex

    async def get_token(self) -> str:
        data = await self._send(
            "GET",
            "/oauth/v1/generate",
            params={"grant_type": "client_credentials"},
            auth=(self.consumer_key, self.consumer_secret),
        )
        token = data.get("access_token")
        if not token:
            raise GatewayError("gateway returned no access token", details=data)
        return token

    async def initiate(self, amount: Decimal, phone_number: str, account_reference: str = "ORDER") -> StkPushResult:
        token = await self.get_token()
        timestamp = stk_timestamp()

        body = {
            "BusinessShortCode": self.shortcode,
            "Password": self.build_password(timestamp),
            "Timestamp": timestamp,
            "TransactionType": "CustomerPayBillOnline",
            "Amount": whole_shillings(amount),
            "PartyA": phone_number,
            "PartyB": self.shortcode,
            "PhoneNumber": phone_number,
            "CallBackURL": self.callback_url,
            "AccountReference": account_reference,
            "TransactionDesc": self.transaction_desc,
        }

        data = await self._send(
            "POST",
            "/mpesa/stkpush/v1/processrequest",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        )
        result = StkPushResult.from_response(data)
        logger.info(
            "mpesa.stk_push.response",
            extra={"checkout_request_id": result.checkout_request_id, "response_code": result.response_code},
        )
        return result
