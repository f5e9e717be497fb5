from typing import Iterable, Optional
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from storefront.schema.full_schema import Cart, CartItem


async def get_cart_id(session, user_id: int) -> Optional[int]:
    res = await session.execute(select(Cart.id).where(Cart.user_id == user_id))
    return res.scalar_one_or_none()


async def get_or_create_cart(session, user_id: int) -> int:
    cart_id = await get_cart_id(session, user_id)
    if cart_id:
        return cart_id

    cart = Cart(user_id=user_id)
    session.add(cart)
    try:
        await session.commit()
        await session.refresh(cart)
        return cart.id
    except IntegrityError:
        # a concurrent request created it first
        await session.rollback()
        return await get_cart_id(session, user_id)


async def cart_lines(session, cart_id: int) -> list[CartItem]:
    stmt = select(CartItem).where(CartItem.cart_id == cart_id).order_by(CartItem.id)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def find_line(session, cart_id: int, product_id: int, variant_id: Optional[int]) -> Optional[CartItem]:
    stmt = select(CartItem).where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
    if variant_id is None:
        stmt = stmt.where(CartItem.variant_id.is_(None))
    else:
        stmt = stmt.where(CartItem.variant_id == variant_id)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none()


async def clear_cart_items(session, cart_id: int) -> int:
    res = await session.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    return res.rowcount


async def clear_user_cart(session, user_id: int) -> int:
    cart_id = await get_cart_id(session, user_id)
    if cart_id is None:
        return 0
    return await clear_cart_items(session, cart_id)


async def remove_ordered_lines(session, user_id: int, lines: Iterable[tuple[int, Optional[int]]]) -> int:
    """Drop the cart lines matching (product_id, variant_id) pairs that were just ordered."""
    cart_id = await get_cart_id(session, user_id)
    if cart_id is None:
        return 0
    removed = 0
    for product_id, variant_id in set(lines):
        stmt = delete(CartItem).where(CartItem.cart_id == cart_id, CartItem.product_id == product_id)
        if variant_id is None:
            stmt = stmt.where(CartItem.variant_id.is_(None))
        else:
            stmt = stmt.where(CartItem.variant_id == variant_id)
        res = await session.execute(stmt)
        removed += res.rowcount
    return removed
