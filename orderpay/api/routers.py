from fastapi import APIRouter, Depends
from orderpay.api import version_prefix
from orderpay.orders.routes import orders_router
from orderpay.payments.dependencies import require_admin_secret
from orderpay.payments.routes import payments_router, payments_admin_router, callbacks_admin_router
from orderpay.common.routes import home_router


public_routers = APIRouter(prefix=version_prefix)

public_routers.include_router(orders_router, prefix="/orders",tags=["orders"])
public_routers.include_router(payments_router, prefix="/payments",tags=["payments"])
public_routers.include_router(home_router,tags=["home"])

#--------------------------------------------------------------------------------------------------------

admin_routers = APIRouter(prefix=f"{version_prefix}/admin", dependencies=[Depends(require_admin_secret)])

admin_routers.include_router(payments_admin_router, prefix="/payments",tags=["payments-admin"])
admin_routers.include_router(callbacks_admin_router, prefix="/callbacks",tags=["callbacks-admin"])
