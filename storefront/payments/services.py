import hashlib
import json
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from storefront.cart.repository import clear_user_cart
from storefront.common.utils import now
from storefront.coupons.services import record_usage
from storefront.orders.repository import get_order_by_id, transition_order
from storefront.orders.services import ensure_order_access, get_order_or_404
from storefront.payments.constants import (AUTHORIZED_EVENT, CONFIRM_APPLIED, CONFIRM_DUPLICATE, CONFIRM_ORDER_CANCELLED,
                                           CONFIRMING_EVENTS, FAILED_EVENT, PROVIDER)
from storefront.payments.gateway import GatewayError, RazorpayGateway
from storefront.payments.models import PaymentVerifyIn
from storefront.payments.repository import (get_payment_by_gateway_order_id, get_payment_for_order,
                                            insert_webhook_event, mark_payment_success, record_late_capture,
                                            set_status_unless_final,
                                            webhook_event_exists)
from storefront.schema.full_schema import OrderStatus, Payment, PaymentMode, PaymentStatus
from storefront.payments.constants import logger


async def create_payment_intent(session, gateway: RazorpayGateway, order_pid: str, user_id: int, admin: bool) -> dict:
    order = await get_order_or_404(session, order_pid)
    ensure_order_access(order, user_id, admin)

    if order.payment_mode != PaymentMode.ONLINE.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is not payable online")
    if order.status == OrderStatus.CANCELLED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is cancelled")

    payment = await get_payment_for_order(session, order.id, PaymentMode.ONLINE.value)
    if payment is not None and payment.status == PaymentStatus.SUCCESS.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is already paid")

    amount_paise = order.total * 100
    receipt = f"order_{order.public_id}"
    try:
        resp = await gateway.create_order(amount_paise=amount_paise, currency=order.currency, receipt=receipt,
                                          notes={"order_public_id": str(order.public_id)})
    except GatewayError as e:
        logger.error("payment.create.gateway_failed", extra={"order_id": order.id, "error": str(e)})
        code = status.HTTP_502_BAD_GATEWAY if e.retryable else status.HTTP_400_BAD_REQUEST
        raise HTTPException(status_code=code, detail=str(e))

    gateway_order_id = resp.get("id")
    if not gateway_order_id:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment provider returned no order id")

    if payment is None:
        payment = Payment(order_id=order.id, mode=PaymentMode.ONLINE.value, amount=order.total, currency=order.currency)
        session.add(payment)
    payment.provider = PROVIDER
    payment.amount = order.total
    payment.status = PaymentStatus.PENDING.value
    payment.gateway_order_id = gateway_order_id
    payment.pay_metadata = {"receipt": receipt, "gateway_status": resp.get("status")}
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.warning("payment.create.conflict", extra={"order_id": order.id})
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Payment is being created for this order")
    await session.refresh(payment)

    logger.info("payment.create.success", extra={"order_id": order.id, "gateway_order_id": gateway_order_id})
    return {
        "order_id": str(order.public_id),
        "payment_id": str(payment.public_id),
        "gateway_order_id": gateway_order_id,
        "amount": amount_paise,
        "currency": order.currency,
        "key_id": gateway.key_id,
        "receipt": receipt,
    }


async def confirm_payment_success(session, payment: Payment, gateway_payment_id: Optional[str],
                                  gateway_signature: Optional[str] = None, source: str = "verify") -> str:
    """
    Terminal effects of a captured payment, shared by verify and webhook. Runs inside the
    caller's transaction and returns one of the CONFIRM_* outcomes. A capture for a cancelled
    order leaves the order, stock and cart untouched and keeps the refunded payment refunded.
    """
    order = await get_order_by_id(session, payment.order_id)
    if order.status == OrderStatus.CANCELLED.value:
        await record_late_capture(session, payment.id, gateway_payment_id, source)
        logger.warning("payment.confirm.order_cancelled", extra={"payment_id": payment.id, "order_id": order.id,
                                                                 "gateway_payment_id": gateway_payment_id,
                                                                 "source": source})
        return CONFIRM_ORDER_CANCELLED

    applied = await mark_payment_success(session, payment.id, gateway_payment_id, gateway_signature,
                                         metadata={**(payment.pay_metadata or {}), "confirmed_by": source})
    if not applied:
        logger.info("payment.confirm.already_applied", extra={"payment_id": payment.id, "source": source})
        return CONFIRM_DUPLICATE

    await transition_order(session, order.id, [OrderStatus.PENDING.value], OrderStatus.PROCESSING.value)
    if order.coupon_id is not None:
        await record_usage(session, order.coupon_id, order.user_id, order.id)
    cleared = await clear_user_cart(session, order.user_id)

    logger.info("payment.confirm.applied", extra={"payment_id": payment.id, "order_id": order.id,
                                                  "source": source, "cart_lines_cleared": cleared})
    return CONFIRM_APPLIED


async def verify_payment(session, gateway: RazorpayGateway, payload: PaymentVerifyIn, user_id: int, admin: bool) -> dict:
    order = await get_order_or_404(session, payload.order_id)
    ensure_order_access(order, user_id, admin)

    payment = await get_payment_for_order(session, order.id, PaymentMode.ONLINE.value)
    if payment is None or not payment.gateway_order_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    signature_ok = (
        payment.gateway_order_id == payload.gateway_order_id
        and gateway.verify_payment_signature(payload.gateway_order_id, payload.gateway_payment_id,
                                             payload.gateway_signature)
    )
    if not signature_ok:
        await set_status_unless_final(session, payment.id, PaymentStatus.FAILED.value, payload.gateway_payment_id)
        await session.commit()
        logger.warning("payment.verify.failed", extra={"order_id": order.id, "payment_id": payment.id})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Payment verification failed")

    outcome = await confirm_payment_success(session, payment, payload.gateway_payment_id,
                                            payload.gateway_signature, source="verify")
    await session.commit()
    if outcome == CONFIRM_ORDER_CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is cancelled")
    await session.refresh(order)
    return {"verified": True, "already_confirmed": outcome == CONFIRM_DUPLICATE, "order_status": order.status}


def _webhook_identity(payload: dict) -> tuple[Optional[str], Optional[str]]:
    body = payload.get("payload") or {}
    entity = (body.get("payment") or {}).get("entity") or {}
    gateway_payment_id = entity.get("id")
    gateway_order_id = entity.get("order_id") or ((body.get("order") or {}).get("entity") or {}).get("id")
    return gateway_payment_id, gateway_order_id


def _fallback_event_id(event: Optional[str], ident: Optional[str], body: bytes) -> str:
    if ident:
        return f"{event}:{ident}"
    return f"{event}:sha256:{hashlib.sha256(body).hexdigest()}"


async def process_webhook(session, gateway: RazorpayGateway, body: bytes, signature: Optional[str],
                          event_id: Optional[str]) -> dict:
    if not gateway.verify_webhook_signature(body, signature):
        logger.warning("payment.webhook.invalid_signature", extra={"has_signature": bool(signature)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook signature")

    try:
        payload = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed webhook payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed webhook payload")

    event = payload.get("event")
    gateway_payment_id, gateway_order_id = _webhook_identity(payload)
    provider_event_id = event_id or _fallback_event_id(event, gateway_payment_id or gateway_order_id, body)

    if await webhook_event_exists(session, provider_event_id):
        logger.info("payment.webhook.duplicate", extra={"provider_event_id": provider_event_id})
        return {"status": "ok", "note": "already processed"}

    payment = await get_payment_by_gateway_order_id(session, gateway_order_id) if gateway_order_id else None
    try:
        ev = await insert_webhook_event(session, PROVIDER, provider_event_id, event, payload,
                                        payment.id if payment else None)
    except IntegrityError:
        await session.rollback()
        logger.info("payment.webhook.duplicate", extra={"provider_event_id": provider_event_id})
        return {"status": "ok", "note": "already processed"}

    if payment is None:
        note = "payment not found"
    elif event in CONFIRMING_EVENTS:
        outcome = await confirm_payment_success(session, payment, gateway_payment_id, source="webhook")
        note = {CONFIRM_APPLIED: "payment captured", CONFIRM_DUPLICATE: "payment already confirmed",
                CONFIRM_ORDER_CANCELLED: "order cancelled"}[outcome]
    elif event == AUTHORIZED_EVENT:
        await set_status_unless_final(session, payment.id, PaymentStatus.AUTHORIZED.value, gateway_payment_id)
        note = "payment authorized"
    elif event == FAILED_EVENT:
        await set_status_unless_final(session, payment.id, PaymentStatus.FAILED.value, gateway_payment_id)
        note = "payment failed"
    else:
        note = "event ignored"

    ev.note = note
    ev.processed_at = now()
    await session.commit()

    logger.info("payment.webhook.processed", extra={"provider_event_id": provider_event_id, "event": event,
                                                    "note": note})
    return {"status": "ok", "note": note}
