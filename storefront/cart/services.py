from typing import Optional
from fastapi import HTTPException, status
from storefront.cart.constants import MAX_LINE_QTY
from storefront.cart.repository import cart_lines, clear_cart_items, find_line, get_or_create_cart
from storefront.products.repository import count_variants, images_for_products, products_by_ids, variants_by_ids
from storefront.products.services import get_product_or_404, get_variant_or_404, product_summary, variant_snapshot
from storefront.schema.full_schema import CartItem, Product, ProductVariant
from storefront.cart.constants import logger


def _check_quantity(quantity: int):
    if quantity < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be at least 1")
    if quantity > MAX_LINE_QTY:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Quantity cannot exceed {MAX_LINE_QTY}")


def _available(product: Product, variant: Optional[ProductVariant]) -> int:
    return variant.stock if variant is not None else product.stock


async def build_cart_view(session, cart_id: int) -> dict:
    """Re-reads the catalog so prices and stock reflect current state, nothing is locked until checkout."""
    lines = await cart_lines(session, cart_id)
    products = await products_by_ids(session, [ln.product_id for ln in lines])
    variants = await variants_by_ids(session, [ln.variant_id for ln in lines])
    images = await images_for_products(session, products.keys())

    items = []
    subtotal = 0
    for ln in lines:
        product = products.get(ln.product_id)
        if product is None:
            continue
        variant = variants.get(ln.variant_id) if ln.variant_id else None
        unit_price = variant.price if variant is not None else product.price
        line_total = (unit_price or 0) * ln.quantity
        subtotal += line_total
        items.append({
            "product_id": str(product.public_id),
            "variant_id": str(variant.public_id) if variant is not None else None,
            "variant": variant_snapshot(variant) if variant is not None else ln.variant_snapshot,
            "quantity": ln.quantity,
            "unit_price": unit_price,
            "line_total": line_total,
            "in_stock": product.active and _available(product, variant) >= ln.quantity,
            "product": product_summary(product, images.get(product.id, [])),
        })

    return {"items": items, "item_count": sum(i["quantity"] for i in items), "subtotal": subtotal}


async def _resolve_line_target(session, product_pid: str, variant_pid: Optional[str], active_only: bool):
    product = await get_product_or_404(session, product_pid, active_only=active_only)
    variant = None
    if variant_pid:
        variant = await get_variant_or_404(session, product, variant_pid)
    elif active_only and await count_variants(session, product.id) > 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Variant is required for this product")
    return product, variant


async def add_to_cart(session, user_id: int, product_pid: str, variant_pid: Optional[str], quantity: int) -> int:
    _check_quantity(quantity)
    product, variant = await _resolve_line_target(session, product_pid, variant_pid, active_only=True)
    cart_id = await get_or_create_cart(session, user_id)

    line = await find_line(session, cart_id, product.id, variant.id if variant else None)
    new_qty = (line.quantity if line else 0) + quantity
    _check_quantity(new_qty)
    if new_qty > _available(product, variant):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Insufficient stock")

    if line:
        line.quantity = new_qty
        line.variant_snapshot = variant_snapshot(variant)
    else:
        session.add(CartItem(cart_id=cart_id, product_id=product.id, variant_id=variant.id if variant else None,
                             variant_snapshot=variant_snapshot(variant), quantity=quantity))
    await session.commit()

    logger.info("cart.add.success", extra={"user_id": user_id, "product_public_id": product_pid,
                                           "quantity": new_qty, "merged": line is not None})
    return cart_id


async def update_line_quantity(session, user_id: int, product_pid: str, variant_pid: Optional[str], quantity: int) -> int:
    _check_quantity(quantity)
    product, variant = await _resolve_line_target(session, product_pid, variant_pid, active_only=False)
    cart_id = await get_or_create_cart(session, user_id)

    line = await find_line(session, cart_id, product.id, variant.id if variant else None)
    if not line:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found in cart")
    if quantity > _available(product, variant):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Insufficient stock")

    line.quantity = quantity
    await session.commit()
    return cart_id


async def remove_line(session, user_id: int, product_pid: str, variant_pid: Optional[str]) -> int:
    product, variant = await _resolve_line_target(session, product_pid, variant_pid, active_only=False)
    cart_id = await get_or_create_cart(session, user_id)

    # no variant id means the base product line
    line = await find_line(session, cart_id, product.id, variant.id if variant else None)
    if not line:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Item not found in cart")

    await session.delete(line)
    await session.commit()
    return cart_id


async def clear_cart(session, user_id: int) -> int:
    cart_id = await get_or_create_cart(session, user_id)
    removed = await clear_cart_items(session, cart_id)
    await session.commit()
    logger.info("cart.clear.success", extra={"user_id": user_id, "removed": removed})
    return cart_id
