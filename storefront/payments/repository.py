from typing import Optional
from sqlalchemy import select, update
from storefront.common.utils import now
from storefront.schema.full_schema import Payment, PaymentStatus, PaymentWebhookEvent

FINAL_STATUSES = (PaymentStatus.SUCCESS.value, PaymentStatus.REFUNDED.value)


async def get_payment_for_order(session, order_id: int, mode: str) -> Optional[Payment]:
    res = await session.execute(select(Payment).where(Payment.order_id == order_id, Payment.mode == mode))
    return res.scalar_one_or_none()


async def payments_of_order(session, order_id: int) -> list[Payment]:
    res = await session.execute(select(Payment).where(Payment.order_id == order_id).order_by(Payment.id))
    return list(res.scalars().all())


async def get_payment_by_gateway_order_id(session, gateway_order_id: str) -> Optional[Payment]:
    res = await session.execute(select(Payment).where(Payment.gateway_order_id == gateway_order_id))
    return res.scalar_one_or_none()


async def mark_payment_success(session, payment_id: int, gateway_payment_id: Optional[str],
                               gateway_signature: Optional[str] = None, metadata: Optional[dict] = None) -> bool:
    """Guarded on the current status: verify and webhook apply success once, a refunded payment stays refunded."""
    values = {"status": PaymentStatus.SUCCESS.value, "paid_at": now(), "updated_at": now()}
    if gateway_payment_id:
        values["gateway_payment_id"] = gateway_payment_id
    if gateway_signature:
        values["gateway_signature"] = gateway_signature
    if metadata is not None:
        values["pay_metadata"] = metadata
    stmt = (
        update(Payment)
        .where(Payment.id == payment_id, Payment.status.not_in(FINAL_STATUSES))
        .values(**values)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def set_status_unless_final(session, payment_id: int, status: str, gateway_payment_id: Optional[str] = None) -> bool:
    values = {"status": status, "updated_at": now()}
    if gateway_payment_id:
        values["gateway_payment_id"] = gateway_payment_id
    stmt = (
        update(Payment)
        .where(Payment.id == payment_id, Payment.status.not_in(FINAL_STATUSES))
        .values(**values)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def list_payments(session, status: Optional[str], limit: int, offset: int) -> list[Payment]:
    stmt = select(Payment)
    if status:
        stmt = stmt.where(Payment.status == status)
    res = await session.execute(stmt.order_by(Payment.id.desc()).limit(limit).offset(offset))
    return list(res.scalars().all())

# ---------------------------------------------------------------------------------------------------------

async def webhook_event_exists(session, provider_event_id: str) -> bool:
    stmt = select(PaymentWebhookEvent.id).where(PaymentWebhookEvent.provider_event_id == provider_event_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def insert_webhook_event(session, provider: str, provider_event_id: str, event: Optional[str],
                               payload: dict, payment_id: Optional[int]) -> PaymentWebhookEvent:
    ev = PaymentWebhookEvent(provider=provider, provider_event_id=provider_event_id, event=event,
                             payload=payload, payment_id=payment_id)
    session.add(ev)
    await session.flush()
    return ev


async def record_late_capture(session, payment_id: int, gateway_payment_id: Optional[str], source: str):
    """Keeps the provider payment id of a capture that arrived after cancellation, for manual refund."""
    payment = await session.get(Payment, payment_id)
    payment.pay_metadata = {**(payment.pay_metadata or {}), "late_capture": {"gateway_payment_id": gateway_payment_id,
                                                                             "source": source,
                                                                             "at": now().isoformat()}}
    await session.flush()
