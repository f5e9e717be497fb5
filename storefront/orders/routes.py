from typing import Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import current_user_id, is_admin, require_admin
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.orders.models import OrderCreateIn, StatusUpdateIn
from storefront.orders.repository import list_orders, list_user_orders
from storefront.orders.services import (cancel_order, dashboard_stats, ensure_order_access, get_order_or_404,
                                        order_view, order_views, place_order, update_order_status)
from storefront.schema.full_schema import OrderStatus

orders_router = APIRouter()
orders_admin_router = APIRouter(dependencies=[Depends(require_admin)])
stats_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@orders_router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreateIn, user_id: int = Depends(current_user_id),
                       session: AsyncSession = Depends(get_session)):
    order = await place_order(session, user_id, payload)
    return success_response({"order": await order_view(session, order)}, status_code=status.HTTP_201_CREATED)


@orders_router.get("/mine")
async def my_orders(limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                    offset: int = Query(default=0, ge=0),
                    user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    orders = await list_user_orders(session, user_id, limit, offset)
    return success_response({"orders": await order_views(session, orders)})


@orders_router.get("/{order_id}")
async def get_order(order_id: str, request: Request, user_id: int = Depends(current_user_id),
                    session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    ensure_order_access(order, user_id, is_admin(request))
    return success_response({"order": await order_view(session, order)})


@orders_router.post("/{order_id}/cancel")
async def cancel(order_id: str, request: Request, user_id: int = Depends(current_user_id),
                 session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    ensure_order_access(order, user_id, is_admin(request))
    order = await cancel_order(session, order, actor_id=user_id)
    return success_response({"order": await order_view(session, order)})

# ---------------------------------------------------------------------------------------------------------

@orders_admin_router.get("")
async def admin_list_orders(status_filter: Optional[OrderStatus] = Query(default=None, alias="status"),
                            limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                            offset: int = Query(default=0, ge=0),
                            session: AsyncSession = Depends(get_session)):
    orders = await list_orders(session, status_filter.value if status_filter else None, limit, offset)
    return success_response({"orders": await order_views(session, orders)})


@orders_admin_router.patch("/{order_id}/status")
async def admin_update_status(order_id: str, payload: StatusUpdateIn, admin_id: int = Depends(require_admin),
                              session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    order = await update_order_status(session, order, payload.status, actor_id=admin_id)
    return success_response({"order": await order_view(session, order)})


@stats_admin_router.get("")
async def admin_stats(session: AsyncSession = Depends(get_session)):
    return success_response(await dashboard_stats(session))
