from datetime import timedelta
from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from storefront.auth.utils import random_code
from storefront.common.utils import as_utc, now, parse_public_id
from storefront.config.settings import config_settings
from storefront.coupons.constants import COUPON_CODE_LENGTH, WALLET_COUPON_PREFIX, logger
from storefront.coupons.models import CouponCreateIn
from storefront.coupons.repository import (claim_use, code_exists, count_usages, delete_coupon_row, expire_if_past,
                                           get_coupon_by_code, get_coupon_by_pid, insert_usage, usage_exists,
                                           user_usage_count)
from storefront.schema.full_schema import Coupon, CouponStatus, CouponType
from storefront.user.repository import debit_wallet


def normalize_code(code: str) -> str:
    return code.strip().upper()


def compute_discount(coupon_type: str, value: int, cart_total: int) -> int:
    """
    Merchandise discount for a cart total, never more than the total.
    Percent rounds up with a floor of 1, free shipping discounts nothing here.
    """
    if cart_total <= 0:
        return 0
    if coupon_type == CouponType.PERCENT.value:
        discount = max(1, -(-cart_total * value // 100))
    elif coupon_type == CouponType.FLAT.value:
        discount = value
    else:
        discount = 0
    return min(discount, cart_total)


def serialize_coupon(c: Coupon) -> dict:
    return {
        "id": str(c.public_id),
        "code": c.code,
        "type": c.type,
        "value": c.value,
        "min_cart_value": c.min_cart_value,
        "start_date": c.start_date,
        "expiry_date": c.expiry_date,
        "max_uses": c.max_uses,
        "max_uses_per_user": c.max_uses_per_user,
        "uses": c.uses,
        "status": c.status,
        "personal": c.owner_user_id is not None,
    }


def _reject(reason: str, code: str):
    logger.info("coupon.validate.rejected", extra={"coupon_code": code, "reason": reason})
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=reason)


async def evaluate_coupon(session, coupon: Coupon, user_id: int, cart_total: int) -> dict:
    """Checks every eligibility rule in order and prices the discount. Reads only."""
    ts = now()
    if coupon.status != CouponStatus.ACTIVE.value:
        _reject("Coupon is inactive", coupon.code)
    if as_utc(coupon.start_date) > ts:
        _reject("Coupon is not active yet", coupon.code)
    if as_utc(coupon.expiry_date) < ts:
        _reject("Coupon has expired", coupon.code)
    if cart_total < coupon.min_cart_value:
        _reject(f"Minimum cart value required is ₹{coupon.min_cart_value}", coupon.code)
    if coupon.max_uses_per_user > 0 and await user_usage_count(session, coupon.id, user_id) >= coupon.max_uses_per_user:
        _reject("You have already used this coupon", coupon.code)
    if coupon.max_uses > 0 and coupon.uses >= coupon.max_uses:
        _reject("Coupon usage limit reached.", coupon.code)
    if coupon.owner_user_id is not None and coupon.owner_user_id != user_id:
        _reject("This coupon belongs to another account", coupon.code)

    discount = compute_discount(coupon.type, coupon.value, cart_total)
    return {
        "code": coupon.code,
        "type": coupon.type,
        "discount": discount,
        "payable_amount": cart_total - discount,
        "free_shipping": coupon.type == CouponType.FREE_SHIPPING.value,
    }


async def find_coupon_or_404(session, code: str) -> Coupon:
    coupon = await get_coupon_by_code(session, normalize_code(code))
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid coupon code")
    return coupon


async def validate_coupon(session, code: str, user_id: int, cart_total: int) -> tuple[Coupon, dict]:
    coupon = await find_coupon_or_404(session, code)
    return coupon, await evaluate_coupon(session, coupon, user_id, cart_total)


async def record_usage(session, coupon_id: int, user_id: int, order_id: int) -> bool:
    """
    Appends the ledger entry for an order once. Returns False when the entry already exists,
    so payment confirmations replayed by webhook and verify stay no-ops.
    Caller commits.
    """
    if await usage_exists(session, coupon_id, order_id):
        return False
    if not await claim_use(session, coupon_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon usage limit reached.")
    await insert_usage(session, coupon_id, user_id, order_id)
    await expire_if_past(session, coupon_id)
    logger.info("coupon.usage.recorded", extra={"coupon_id": coupon_id, "user_id": user_id, "order_id": order_id})
    return True

# ---------------------------------------------------------------------------------------------------------

async def create_coupon(session, payload: CouponCreateIn, created_by: Optional[int]) -> Coupon:
    code = normalize_code(payload.code)
    if await code_exists(session, code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon code already exists.")

    coupon = Coupon(
        code=code,
        type=payload.type.value,
        value=0 if payload.type == CouponType.FREE_SHIPPING else payload.value,
        min_cart_value=payload.min_cart_value,
        start_date=payload.start_date or now(),
        expiry_date=payload.expiry_date,
        max_uses=payload.max_uses,
        max_uses_per_user=payload.max_uses_per_user,
        status=payload.status.value,
        created_by=created_by,
    )
    if as_utc(coupon.expiry_date) < now():
        coupon.status = CouponStatus.INACTIVE.value

    session.add(coupon)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon code already exists.")
    await session.refresh(coupon)
    return coupon


async def get_coupon_or_404(session, coupon_pid: str) -> Coupon:
    coupon = await get_coupon_by_pid(session, parse_public_id(coupon_pid, "Coupon"))
    if not coupon:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Coupon not found")
    return coupon


async def toggle_coupon(session, coupon: Coupon) -> Coupon:
    expired = as_utc(coupon.expiry_date) < now()
    if coupon.status == CouponStatus.ACTIVE.value:
        coupon.status = CouponStatus.INACTIVE.value
    elif expired:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot activate an expired coupon")
    else:
        coupon.status = CouponStatus.ACTIVE.value
    await session.commit()
    await session.refresh(coupon)
    return coupon


async def delete_coupon(session, coupon: Coupon):
    if coupon.uses > 0 or await count_usages(session, coupon.id) > 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Coupon has been used and cannot be deleted")
    await delete_coupon_row(session, coupon.id)
    await session.commit()


async def unique_coupon_code(session, prefix: str, length: int = COUPON_CODE_LENGTH, attempts: int = 10) -> str:
    for _ in range(attempts):
        code = generate_code(prefix, length)
        if not await code_exists(session, code):
            return code
    raise RuntimeError("could not allocate a unique coupon code")


def generate_code(prefix: Optional[str] = None, length: int = COUPON_CODE_LENGTH) -> str:
    body = random_code(length)
    return f"{prefix.upper()}-{body}" if prefix else body


async def convert_wallet_to_coupon(session, user_id: int, amount: int) -> Coupon:
    if not await debit_wallet(session, user_id, amount):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Insufficient wallet balance")

    start = now()
    coupon = Coupon(
        code=await unique_coupon_code(session, WALLET_COUPON_PREFIX),
        type=CouponType.FLAT.value,
        value=amount,
        min_cart_value=0,
        start_date=start,
        expiry_date=start + timedelta(days=config_settings.WALLET_COUPON_VALID_DAYS),
        max_uses=1,
        max_uses_per_user=1,
        owner_user_id=user_id,
        created_by=user_id,
    )
    session.add(coupon)
    await session.commit()
    await session.refresh(coupon)

    logger.info("coupon.wallet.converted", extra={"user_id": user_id, "amount": amount, "coupon_code": coupon.code})
    return coupon
