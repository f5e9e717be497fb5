import uuid
from typing import Optional
from sqlalchemy import func, or_, select, update
from storefront.schema.full_schema import Address, Favorite, Product, Users


async def identify_user_by_pid(session, user_pid) -> Optional[dict]:
    try:
        pid = uuid.UUID(str(user_pid))
    except (ValueError, TypeError):
        return None
    stmt = select(Users.id, Users.role).where(Users.public_id == pid)
    res = await session.execute(stmt)
    row = res.one_or_none()
    if not row:
        return None
    return {"id": row[0], "role": row[1]}


async def get_user_by_id(session, user_id: int) -> Optional[Users]:
    return await session.get(Users, user_id)


async def get_user_by_email(session, email: str) -> Optional[Users]:
    res = await session.execute(select(Users).where(Users.email == email))
    return res.scalar_one_or_none()


async def get_user_by_public_id(session, user_pid: uuid.UUID) -> Optional[Users]:
    res = await session.execute(select(Users).where(Users.public_id == user_pid))
    return res.scalar_one_or_none()


async def email_or_phone_taken(session, email: str, phone: Optional[str], exclude_user_id: Optional[int] = None) -> bool:
    conds = [Users.email == email]
    if phone:
        conds.append(Users.phone == phone)
    stmt = select(Users.id).where(or_(*conds))
    if exclude_user_id is not None:
        stmt = stmt.where(Users.id != exclude_user_id)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none() is not None


async def phone_taken(session, phone: str, exclude_user_id: int) -> bool:
    stmt = select(Users.id).where(Users.phone == phone, Users.id != exclude_user_id).limit(1)
    res = await session.execute(stmt)
    return res.scalar_one_or_none() is not None


async def user_id_by_referral_code(session, code: str) -> Optional[int]:
    res = await session.execute(select(Users.id).where(Users.referral_code == code))
    return res.scalar_one_or_none()


async def count_referrals(session, code: str) -> int:
    res = await session.execute(select(func.count(Users.id)).where(Users.referred_by == code))
    return int(res.scalar_one())


async def list_users(session, limit: int, offset: int):
    stmt = select(Users).order_by(Users.id.desc()).limit(limit).offset(offset)
    res = await session.execute(stmt)
    return res.scalars().all()


async def credit_wallet(session, user_id: int, amount: int) -> bool:
    stmt = update(Users).where(Users.id == user_id).values(wallet=Users.wallet + amount)
    res = await session.execute(stmt)
    return res.rowcount == 1


async def debit_wallet(session, user_id: int, amount: int) -> bool:
    # conditional so two concurrent conversions cannot overdraw
    stmt = (
        update(Users)
        .where(Users.id == user_id, Users.wallet >= amount)
        .values(wallet=Users.wallet - amount)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1

# ---------------------------------------------------------------------------------------------------------

async def list_addresses(session, user_id: int):
    stmt = select(Address).where(Address.user_id == user_id).order_by(Address.is_default.desc(), Address.id)
    res = await session.execute(stmt)
    return res.scalars().all()


async def get_user_address(session, user_id: int, address_id: int) -> Optional[Address]:
    stmt = select(Address).where(Address.id == address_id, Address.user_id == user_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def get_default_address(session, user_id: int) -> Optional[Address]:
    stmt = select(Address).where(Address.user_id == user_id, Address.is_default == True)  # noqa: E712
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def count_addresses(session, user_id: int) -> int:
    res = await session.execute(select(func.count(Address.id)).where(Address.user_id == user_id))
    return int(res.scalar_one())


async def unset_default_addresses(session, user_id: int, keep_id: Optional[int] = None):
    stmt = update(Address).where(Address.user_id == user_id, Address.is_default == True)  # noqa: E712
    if keep_id is not None:
        stmt = stmt.where(Address.id != keep_id)
    await session.execute(stmt.values(is_default=False))


async def mark_default_address(session, address_id: int):
    await session.execute(update(Address).where(Address.id == address_id).values(is_default=True))


async def first_address_id(session, user_id: int) -> Optional[int]:
    stmt = select(Address.id).where(Address.user_id == user_id).order_by(Address.id).limit(1)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()

# ---------------------------------------------------------------------------------------------------------

async def favorite_product_rows(session, user_id: int):
    stmt = (
        select(Product)
        .join(Favorite, Favorite.product_id == Product.id)
        .where(Favorite.user_id == user_id)
        .order_by(Favorite.id)
    )
    res = await session.execute(stmt)
    return res.scalars().all()


async def favorite_product_pids(session, user_id: int) -> list[str]:
    stmt = (
        select(Product.public_id)
        .join(Favorite, Favorite.product_id == Product.id)
        .where(Favorite.user_id == user_id)
        .order_by(Favorite.id)
    )
    res = await session.execute(stmt)
    return [str(pid) for pid in res.scalars().all()]


async def get_favorite(session, user_id: int, product_id: int) -> Optional[Favorite]:
    stmt = select(Favorite).where(Favorite.user_id == user_id, Favorite.product_id == product_id)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()
