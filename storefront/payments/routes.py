from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import current_user_id, is_admin, require_admin
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.orders.services import ensure_order_access, get_order_or_404, serialize_payment
from storefront.payments.gateway import RazorpayGateway, get_payment_gateway
from storefront.payments.models import PaymentCreateIn, PaymentVerifyIn
from storefront.payments.repository import list_payments, payments_of_order
from storefront.payments.services import create_payment_intent, process_webhook, verify_payment
from storefront.schema.full_schema import PaymentStatus

payments_router = APIRouter()
payments_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@payments_router.post("/create")
async def create_payment(payload: PaymentCreateIn, request: Request, user_id: int = Depends(current_user_id),
                         gateway: RazorpayGateway = Depends(get_payment_gateway),
                         session: AsyncSession = Depends(get_session)):
    data = await create_payment_intent(session, gateway, payload.order_id, user_id, is_admin(request))
    return success_response(data)


@payments_router.post("/verify")
async def verify(payload: PaymentVerifyIn, request: Request, user_id: int = Depends(current_user_id),
                 gateway: RazorpayGateway = Depends(get_payment_gateway),
                 session: AsyncSession = Depends(get_session)):
    data = await verify_payment(session, gateway, payload, user_id, is_admin(request))
    return success_response(data)


@payments_router.post("/webhook")
async def razorpay_webhook(request: Request, gateway: RazorpayGateway = Depends(get_payment_gateway),
                           session: AsyncSession = Depends(get_session)):
    body = await request.body()
    result = await process_webhook(session, gateway, body,
                                   signature=request.headers.get("X-Razorpay-Signature"),
                                   event_id=request.headers.get("X-Razorpay-Event-Id"))
    return success_response(result)


@payments_router.get("/order/{order_id}")
async def order_payments(order_id: str, request: Request, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    order = await get_order_or_404(session, order_id)
    ensure_order_access(order, user_id, is_admin(request))
    payments = await payments_of_order(session, order.id)
    return success_response({"order_id": str(order.public_id), "payments": [serialize_payment(p) for p in payments]})

# ---------------------------------------------------------------------------------------------------------

@payments_admin_router.get("")
async def admin_list_payments(status_filter: Optional[PaymentStatus] = Query(default=None, alias="status"),
                              limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                              offset: int = Query(default=0, ge=0),
                              session: AsyncSession = Depends(get_session)):
    payments = await list_payments(session, status_filter.value if status_filter else None, limit, offset)
    return success_response({"payments": [serialize_payment(p) for p in payments]})
