from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from storefront.schema.full_schema import Users
from storefront.auth.utils import generate_referral_code


async def referral_code_exists(session, code: str) -> bool:
    res = await session.execute(select(Users.id).where(Users.referral_code == code))
    return res.scalar_one_or_none() is not None


async def unique_referral_code(session, attempts: int = 5) -> str:
    for _ in range(attempts):
        code = generate_referral_code()
        if not await referral_code_exists(session, code):
            return code
    raise RuntimeError("could not allocate a unique referral code")


async def insert_user(session, *, name, email, phone, password_hash, referral_code, referred_by) -> Users:
    user = Users(
        name=name,
        email=email,
        phone=phone,
        password_hash=password_hash,
        referral_code=referral_code,
        referred_by=referred_by,
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        await session.rollback()
        raise
    return user
