from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from orderpay.common.utils import success_response
from orderpay.db.dependencies import get_session
from orderpay.orders.constants import logger
from orderpay.orders.models import OrderCreateIn, OrderOut
from orderpay.orders.repository import create_order, find_all_orders, find_order_by_id


orders_router=APIRouter()


@orders_router.post("/")
async def place_order(payload: OrderCreateIn, session: AsyncSession = Depends(get_session)):

    order = await create_order(session, payload)
    await session.commit()

    logger.info("order.create.success", extra={"order_id": order.id})

    data = OrderOut.model_validate(order).model_dump(mode="json")
    return success_response(data, status_code=status.HTTP_201_CREATED)


@orders_router.get("/")
async def list_orders(session: AsyncSession = Depends(get_session)):
    orders = await find_all_orders(session)
    data = [OrderOut.model_validate(o).model_dump(mode="json") for o in orders]
    return success_response(data)


@orders_router.get("/{order_id}")
async def get_order(order_id: int, session: AsyncSession = Depends(get_session)):
    order = await find_order_by_id(session, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return success_response(OrderOut.model_validate(order).model_dump(mode="json"))
