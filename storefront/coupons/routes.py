from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import current_user_id, require_admin
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.coupons.models import CouponCreateIn, CouponValidateIn, GenerateCodesIn, MarkUsedIn, WalletConvertIn
from storefront.coupons.repository import list_coupons, list_owned, list_public_active, usages_for_user
from storefront.coupons.services import (convert_wallet_to_coupon, create_coupon, delete_coupon, find_coupon_or_404,
                                         generate_code, get_coupon_or_404, record_usage, serialize_coupon,
                                         toggle_coupon, validate_coupon)
from storefront.db.dependencies import get_session
from storefront.orders.services import get_order_or_404
from storefront.coupons.constants import logger

coupons_router = APIRouter()
coupons_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@coupons_router.post("/validate")
async def validate(payload: CouponValidateIn, user_id: int = Depends(current_user_id),
                   session: AsyncSession = Depends(get_session)):
    _, quote = await validate_coupon(session, payload.code, user_id, payload.cart_total)
    return success_response(quote)


@coupons_router.get("/active")
async def active_coupons(session: AsyncSession = Depends(get_session)):
    coupons = await list_public_active(session)
    return success_response({"coupons": [serialize_coupon(c) for c in coupons]})


@coupons_router.get("/mine")
async def my_coupons(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    coupons = await list_owned(session, user_id)
    usages = await usages_for_user(session, user_id)
    return success_response({
        "coupons": [serialize_coupon(c) for c in coupons],
        "usages": [{"code": code, "order_id": str(order_pid), "used_at": used_at} for code, order_pid, used_at in usages],
    })


@coupons_router.post("/convert-wallet", status_code=status.HTTP_201_CREATED)
async def convert_wallet(payload: WalletConvertIn, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    coupon = await convert_wallet_to_coupon(session, user_id, payload.amount)
    return success_response({"coupon": serialize_coupon(coupon)}, status_code=status.HTTP_201_CREATED)

# ---------------------------------------------------------------------------------------------------------

@coupons_admin_router.post("", status_code=status.HTTP_201_CREATED)
async def admin_create_coupon(payload: CouponCreateIn, admin_id: int = Depends(require_admin),
                              session: AsyncSession = Depends(get_session)):
    coupon = await create_coupon(session, payload, created_by=admin_id)
    logger.info("coupon.created", extra={"coupon_code": coupon.code, "admin_id": admin_id})
    return success_response({"coupon": serialize_coupon(coupon)}, status_code=status.HTTP_201_CREATED)


@coupons_admin_router.get("")
async def admin_list_coupons(limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                             offset: int = Query(default=0, ge=0),
                             session: AsyncSession = Depends(get_session)):
    coupons = await list_coupons(session, limit, offset)
    return success_response({"coupons": [serialize_coupon(c) for c in coupons]})


@coupons_admin_router.post("/generate-codes")
async def admin_generate_codes(payload: GenerateCodesIn):
    codes = {generate_code(payload.prefix, payload.length) for _ in range(payload.count)}
    while len(codes) < payload.count:
        codes.add(generate_code(payload.prefix, payload.length))
    return success_response({"codes": sorted(codes)})


@coupons_admin_router.patch("/{coupon_id}/toggle")
async def admin_toggle_coupon(coupon_id: str, session: AsyncSession = Depends(get_session)):
    coupon = await toggle_coupon(session, await get_coupon_or_404(session, coupon_id))
    return success_response({"coupon": serialize_coupon(coupon)})


@coupons_admin_router.delete("/{coupon_id}")
async def admin_delete_coupon(coupon_id: str, session: AsyncSession = Depends(get_session)):
    await delete_coupon(session, await get_coupon_or_404(session, coupon_id))
    return success_response({"deleted": True})


@coupons_admin_router.post("/{code}/mark-used")
async def admin_mark_used(code: str, payload: MarkUsedIn, session: AsyncSession = Depends(get_session)):
    coupon = await find_coupon_or_404(session, code)
    order = await get_order_or_404(session, payload.order_id)
    recorded = await record_usage(session, coupon.id, order.user_id, order.id)
    await session.commit()
    await session.refresh(coupon)
    return success_response({"recorded": recorded, "coupon": serialize_coupon(coupon)})
