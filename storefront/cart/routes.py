from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import current_user_id
from storefront.cart.models import CartAddIn, CartQtyIn
from storefront.cart.repository import get_or_create_cart
from storefront.cart.services import add_to_cart, build_cart_view, clear_cart, remove_line, update_line_quantity
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session

carts_router=APIRouter()


@carts_router.get("")
async def get_cart(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    cart_id = await get_or_create_cart(session, user_id)
    return success_response({"cart": await build_cart_view(session, cart_id)})


@carts_router.post("/add")
async def add_item(payload: CartAddIn, user_id: int = Depends(current_user_id),
                   session: AsyncSession = Depends(get_session)):
    cart_id = await add_to_cart(session, user_id, payload.product_id, payload.variant_id, payload.quantity)
    return success_response({"cart": await build_cart_view(session, cart_id)})


@carts_router.put("/{product_id}")
@carts_router.put("/{product_id}/{variant_id}")
async def update_item(product_id: str, payload: CartQtyIn, variant_id: str | None = None,
                      user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    cart_id = await update_line_quantity(session, user_id, product_id, variant_id, payload.quantity)
    return success_response({"cart": await build_cart_view(session, cart_id)})


@carts_router.delete("")
async def clear_items(user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    cart_id = await clear_cart(session, user_id)
    return success_response({"cart": await build_cart_view(session, cart_id)})


@carts_router.delete("/{product_id}")
@carts_router.delete("/{product_id}/{variant_id}")
async def remove_item(product_id: str, variant_id: str | None = None,
                      user_id: int = Depends(current_user_id), session: AsyncSession = Depends(get_session)):
    cart_id = await remove_line(session, user_id, product_id, variant_id)
    return success_response({"cart": await build_cart_view(session, cart_id)})
