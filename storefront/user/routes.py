from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import current_user_id, require_admin
from storefront.common.utils import parse_public_id, success_response
from storefront.db.dependencies import get_session
from storefront.products.repository import images_for_products
from storefront.products.services import get_product_or_404, product_summary
from storefront.user.models import AddressIn, AddressPatchIn, ProfilePatchIn, WalletCreditIn
from storefront.user.repository import (count_referrals, credit_wallet,
                                        favorite_product_rows, get_user_by_public_id, list_addresses, list_users)
from storefront.user.services import (add_address, load_user_or_404, make_default_address, patch_address,
                                      remove_address, serialize_address, serialize_user, toggle_favorite,
                                      update_profile)
from storefront.user.constants import logger

user_router = APIRouter()
user_admin_router = APIRouter(dependencies=[Depends(require_admin)])


@user_router.get("/me")
async def get_me(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    user = await load_user_or_404(session, user_id)
    referrals = await count_referrals(session, user.referral_code)
    return success_response({"user": serialize_user(user, referrals=referrals)})


@user_router.patch("/me")
async def patch_me(payload: ProfilePatchIn, user_id: int = Depends(current_user_id),
                   session: AsyncSession = Depends(get_session)):
    user = await update_profile(session, user_id, payload)
    return success_response({"user": serialize_user(user)})


@user_router.get("/me/addresses")
async def get_addresses(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    addresses = await list_addresses(session, user_id)
    return success_response({"addresses": [serialize_address(a) for a in addresses]})


@user_router.post("/me/addresses", status_code=status.HTTP_201_CREATED)
async def create_address(payload: AddressIn, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    address = await add_address(session, user_id, payload)
    return success_response({"address": serialize_address(address)}, 201)


@user_router.patch("/me/addresses/{address_id}")
async def update_address(address_id: int, payload: AddressPatchIn, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    address = await patch_address(session, user_id, address_id, payload)
    return success_response({"address": serialize_address(address)})


@user_router.post("/me/addresses/{address_id}/default")
async def set_default_address(address_id: int, user_id: int = Depends(current_user_id),
                              session: AsyncSession = Depends(get_session)):
    address = await make_default_address(session, user_id, address_id)
    return success_response({"address": serialize_address(address)})


@user_router.delete("/me/addresses/{address_id}")
async def delete_address(address_id: int, user_id: int = Depends(current_user_id),
                         session: AsyncSession = Depends(get_session)):
    addresses = await remove_address(session, user_id, address_id)
    return success_response({"addresses": [serialize_address(a) for a in addresses]})


@user_router.get("/me/favorites")
async def get_favorites(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    products = await favorite_product_rows(session, user_id)
    images = await images_for_products(session, [p.id for p in products])
    return success_response({
        "ids": [str(p.public_id) for p in products],
        "products": [product_summary(p, images.get(p.id, [])) for p in products],
    })


@user_router.post("/me/favorites/{product_id}")
async def toggle_favorite_product(product_id: str, user_id: int = Depends(current_user_id),
                                  session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id, active_only=True)
    ids = await toggle_favorite(session, user_id, product.id)
    return success_response({"ids": ids})

# ---------------------------------------------------------------------------------------------------------

@user_admin_router.get("")
async def admin_list_users(limit: int = Query(default=50, ge=1, le=200), offset: int = Query(default=0, ge=0),
                           session: AsyncSession = Depends(get_session)):
    users = await list_users(session, limit, offset)
    return success_response({"users": [serialize_user(u) for u in users]})


@user_admin_router.post("/{user_id}/wallet")
async def admin_credit_wallet(user_id: str, payload: WalletCreditIn, session: AsyncSession = Depends(get_session)):
    user = await get_user_by_public_id(session, parse_public_id(user_id, "User"))
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    await credit_wallet(session, user.id, payload.amount)
    await session.commit()
    await session.refresh(user)

    logger.info("wallet.credit.success", extra={"user_public_id": user_id, "amount": payload.amount})
    return success_response({"user": serialize_user(user)})
