import uuid
from typing import Optional
from sqlalchemy import delete, func, or_, select, update
from storefront.common.utils import now
from storefront.schema.full_schema import Coupon, CouponStatus, CouponUsage, Orders


async def get_coupon_by_code(session, code: str) -> Optional[Coupon]:
    res = await session.execute(select(Coupon).where(Coupon.code == code))
    return res.scalar_one_or_none()


async def get_coupon_by_pid(session, coupon_pid: uuid.UUID) -> Optional[Coupon]:
    res = await session.execute(select(Coupon).where(Coupon.public_id == coupon_pid))
    return res.scalar_one_or_none()


async def code_exists(session, code: str) -> bool:
    res = await session.execute(select(Coupon.id).where(Coupon.code == code))
    return res.scalar_one_or_none() is not None


async def user_usage_count(session, coupon_id: int, user_id: int) -> int:
    stmt = select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
    res = await session.execute(stmt)
    return int(res.scalar_one())


async def usage_exists(session, coupon_id: int, order_id: int) -> bool:
    stmt = select(CouponUsage.id).where(CouponUsage.coupon_id == coupon_id, CouponUsage.order_id == order_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def count_usages(session, coupon_id: int) -> int:
    res = await session.execute(select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id))
    return int(res.scalar_one())


async def claim_use(session, coupon_id: int) -> bool:
    """Bump the usage counter only while the global cap still has room."""
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon_id, or_(Coupon.max_uses == 0, Coupon.uses < Coupon.max_uses))
        .values(uses=Coupon.uses + 1, updated_at=now())
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def insert_usage(session, coupon_id: int, user_id: int, order_id: int) -> CouponUsage:
    usage = CouponUsage(coupon_id=coupon_id, user_id=user_id, order_id=order_id)
    session.add(usage)
    await session.flush()
    return usage


async def expire_if_past(session, coupon_id: int):
    # datetime predicate evaluated in SQL only, sqlite loads naive datetimes
    stmt = (
        update(Coupon)
        .where(Coupon.id == coupon_id, Coupon.status == CouponStatus.ACTIVE.value, Coupon.expiry_date < now())
        .values(status=CouponStatus.INACTIVE.value, updated_at=now())
        .execution_options(synchronize_session=False)
    )
    await session.execute(stmt)


async def list_coupons(session, limit: int, offset: int) -> list[Coupon]:
    stmt = select(Coupon).order_by(Coupon.id.desc()).limit(limit).offset(offset)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_public_active(session) -> list[Coupon]:
    ts = now()
    stmt = (
        select(Coupon)
        .where(
            Coupon.status == CouponStatus.ACTIVE.value,
            Coupon.owner_user_id.is_(None),
            Coupon.start_date <= ts,
            Coupon.expiry_date >= ts,
            or_(Coupon.max_uses == 0, Coupon.uses < Coupon.max_uses),
        )
        .order_by(Coupon.expiry_date)
    )
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def list_owned(session, user_id: int) -> list[Coupon]:
    stmt = select(Coupon).where(Coupon.owner_user_id == user_id).order_by(Coupon.id.desc())
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def usages_for_user(session, user_id: int):
    stmt = (
        select(Coupon.code, Orders.public_id, CouponUsage.used_at)
        .select_from(CouponUsage)
        .join(Coupon, Coupon.id == CouponUsage.coupon_id)
        .join(Orders, Orders.id == CouponUsage.order_id)
        .where(CouponUsage.user_id == user_id)
        .order_by(CouponUsage.id.desc())
    )
    res = await session.execute(stmt)
    return res.all()


async def delete_coupon_row(session, coupon_id: int):
    await session.execute(delete(Coupon).where(Coupon.id == coupon_id))
