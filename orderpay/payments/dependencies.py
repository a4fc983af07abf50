from typing import Optional
from fastapi import Header, HTTPException, Request, status
from orderpay.config.admin_config import admin_config
from orderpay.payments.gateway import MpesaClient


def get_gateway_client(request: Request) -> MpesaClient:
    client = getattr(request.app.state, "mpesa_client", None)
    if client is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="payment gateway not configured")
    return client


async def require_admin_secret(x_admin_secret: Optional[str] = Header(default=None)):
    if admin_config.ADMIN_SECRET and x_admin_secret != admin_config.ADMIN_SECRET:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="admin secret required")
