import uuid
from datetime import datetime
from typing import Iterable, Optional
from sqlalchemy import func, select, update
from storefront.common.utils import now
from storefront.schema.full_schema import OrderItem, Orders, Payment, Product


async def get_order_by_pid(session, order_pid: uuid.UUID) -> Optional[Orders]:
    res = await session.execute(select(Orders).where(Orders.public_id == order_pid))
    return res.scalar_one_or_none()


async def get_order_by_id(session, order_id: int) -> Optional[Orders]:
    res = await session.execute(select(Orders).where(Orders.id == order_id))
    return res.scalar_one_or_none()


async def count_user_orders(session, user_id: int) -> int:
    res = await session.execute(select(func.count(Orders.id)).where(Orders.user_id == user_id))
    return int(res.scalar_one())


async def order_items(session, order_ids: Iterable[int]) -> dict[int, list[OrderItem]]:
    ids = list(set(order_ids))
    if not ids:
        return {}
    res = await session.execute(select(OrderItem).where(OrderItem.order_id.in_(ids)).order_by(OrderItem.id))
    grouped: dict[int, list[OrderItem]] = {}
    for item in res.scalars().all():
        grouped.setdefault(item.order_id, []).append(item)
    return grouped


async def payments_for_orders(session, order_ids: Iterable[int]) -> dict[int, Payment]:
    ids = list(set(order_ids))
    if not ids:
        return {}
    res = await session.execute(select(Payment).where(Payment.order_id.in_(ids)).order_by(Payment.id))
    return {p.order_id: p for p in res.scalars().all()}


async def list_user_orders(session, user_id: int, limit: int, offset: int) -> list[Orders]:
    stmt = (
        select(Orders).where(Orders.user_id == user_id)
        .order_by(Orders.id.desc()).limit(limit).offset(offset)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_orders(session, status: Optional[str], limit: int, offset: int) -> list[Orders]:
    stmt = select(Orders)
    if status:
        stmt = stmt.where(Orders.status == status)
    res = await session.execute(stmt.order_by(Orders.id.desc()).limit(limit).offset(offset))
    return list(res.scalars().all())


async def transition_order(session, order_id: int, from_statuses: Iterable[str], to_status: str, **values) -> bool:
    """Moves the order only while it is still in one of the expected states."""
    stmt = (
        update(Orders)
        .where(Orders.id == order_id, Orders.status.in_(list(from_statuses)))
        .values(status=to_status, updated_at=now(), **values)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def set_order_payments_status(session, order_id: int, status: str):
    stmt = update(Payment).where(Payment.order_id == order_id).values(status=status, updated_at=now())
    await session.execute(stmt)

# ---------------------------------------------------------------------------------------------------------

async def revenue_summary(session, statuses: Iterable[str]) -> tuple[int, int]:
    stmt = select(func.coalesce(func.sum(Orders.total), 0), func.count(Orders.id)).where(Orders.status.in_(list(statuses)))
    res = await session.execute(stmt)
    revenue, count = res.one()
    return int(revenue), int(count)


async def revenue_rows_since(session, statuses: Iterable[str], since: datetime):
    stmt = select(Orders.created_at, Orders.total).where(Orders.status.in_(list(statuses)), Orders.created_at >= since)
    res = await session.execute(stmt)
    return res.all()


async def status_distribution(session) -> dict[str, int]:
    res = await session.execute(select(Orders.status, func.count(Orders.id)).group_by(Orders.status))
    return {status: int(count) for status, count in res.all()}


async def top_products(session, statuses: Iterable[str], limit: int):
    total_sold = func.sum(OrderItem.quantity).label("total_sold")
    stmt = (
        select(Product.public_id, Product.title, total_sold)
        .select_from(OrderItem)
        .join(Orders, Orders.id == OrderItem.order_id)
        .join(Product, Product.id == OrderItem.product_id)
        .where(Orders.status.in_(list(statuses)))
        .group_by(Product.id, Product.public_id, Product.title)
        .order_by(total_sold.desc())
        .limit(limit)
    )
    res = await session.execute(stmt)
    return res.all()


async def count_active_products(session) -> int:
    res = await session.execute(select(func.count(Product.id)).where(Product.active == True))  # noqa: E712
    return int(res.scalar_one())
