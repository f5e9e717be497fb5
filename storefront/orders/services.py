from typing import Optional
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from storefront.cart.repository import cart_lines, get_cart_id, remove_ordered_lines
from storefront.common.utils import as_utc, now, parse_public_id
from storefront.config.settings import config_settings
from storefront.coupons.services import evaluate_coupon, normalize_code, record_usage
from storefront.coupons.repository import get_coupon_by_code
from storefront.orders.constants import (CANCELLABLE_STATUSES, REVENUE_STATUSES, STATS_MONTHS, STATUS_RANK,
                                         TOP_PRODUCTS_LIMIT)
from storefront.orders.models import OrderCreateIn, OrderItemIn
from storefront.orders.repository import (count_active_products, count_user_orders, get_order_by_pid, order_items,
                                          payments_for_orders, revenue_rows_since, revenue_summary,
                                          set_order_payments_status, status_distribution, top_products,
                                          transition_order)
from storefront.products.repository import (decrement_product_stock, decrement_variant_stock,
                                            products_by_ids, restore_product_stock, restore_variant_stock,
                                            variants_by_ids, variants_for_products)
from storefront.products.services import get_product_or_404, get_variant_or_404, variant_snapshot
from storefront.schema.full_schema import (Coupon, OrderItem, Orders, OrderStatus, Payment, PaymentMode,
                                           PaymentStatus, Product, ProductVariant)
from storefront.user.repository import get_default_address
from storefront.user.services import address_snapshot, get_address_or_404, load_user_or_404
from storefront.orders.constants import logger


def serialize_order_item(item: OrderItem) -> dict:
    return {
        "product_id": item.product_public_id,
        "title": item.title,
        "variant": item.variant_snapshot,
        "price": item.price,
        "quantity": item.quantity,
        "subtotal": item.subtotal,
    }


def serialize_payment(p: Optional[Payment]) -> Optional[dict]:
    if p is None:
        return None
    return {
        "id": str(p.public_id),
        "mode": p.mode,
        "provider": p.provider,
        "status": p.status,
        "amount": p.amount,
        "currency": p.currency,
        "gateway_order_id": p.gateway_order_id,
        "gateway_payment_id": p.gateway_payment_id,
        "paid_at": p.paid_at,
    }


def serialize_order(order: Orders, items: list[OrderItem], payment: Optional[Payment] = None) -> dict:
    return {
        "id": str(order.public_id),
        "status": order.status,
        "payment_mode": order.payment_mode,
        "currency": order.currency,
        "items": [serialize_order_item(i) for i in items],
        "subtotal": order.subtotal,
        "shipping": order.shipping,
        "discount": order.discount,
        "total": order.total,
        "coupon_code": order.coupon_code,
        "customer": order.customer_json,
        "shipping_address": order.shipping_address_json,
        "payment": serialize_payment(payment),
        "created_at": order.created_at,
        "cancelled_at": order.cancelled_at,
        "delivered_at": order.delivered_at,
    }


async def order_views(session, orders: list[Orders]) -> list[dict]:
    ids = [o.id for o in orders]
    items = await order_items(session, ids)
    payments = await payments_for_orders(session, ids)
    return [serialize_order(o, items.get(o.id, []), payments.get(o.id)) for o in orders]


async def order_view(session, order: Orders) -> dict:
    return (await order_views(session, [order]))[0]


async def get_order_or_404(session, order_pid: str) -> Orders:
    order = await get_order_by_pid(session, parse_public_id(order_pid, "Order"))
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def ensure_order_access(order: Orders, user_id: int, admin: bool):
    if order.user_id != user_id and not admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

# ---------------------------------------------------------------------------------------------------------

async def _lines_from_request(session, items: list[OrderItemIn]) -> list[tuple[Product, Optional[ProductVariant], int]]:
    lines = []
    for it in items:
        product = await get_product_or_404(session, it.product_id, active_only=True)
        variant = await get_variant_or_404(session, product, it.variant_id) if it.variant_id else None
        lines.append((product, variant, it.quantity))
    return lines


async def _lines_from_cart(session, user_id: int) -> list[tuple[Product, Optional[ProductVariant], int]]:
    cart_id = await get_cart_id(session, user_id)
    rows = await cart_lines(session, cart_id) if cart_id else []
    products = await products_by_ids(session, [r.product_id for r in rows])
    variants = await variants_by_ids(session, [r.variant_id for r in rows])

    lines = []
    for r in rows:
        product = products.get(r.product_id)
        if product is None or not product.active:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A product in your cart is no longer available")
        variant = variants.get(r.variant_id) if r.variant_id else None
        lines.append((product, variant, r.quantity))
    return lines


def _merge_lines(lines):
    merged: dict[tuple[int, Optional[int]], list] = {}
    for product, variant, qty in lines:
        key = (product.id, variant.id if variant else None)
        if key in merged:
            merged[key][2] += qty
        else:
            merged[key] = [product, variant, qty]
    return [tuple(v) for v in merged.values()]


async def _shipping_address(session, user_id: int, payload: OrderCreateIn) -> dict:
    if payload.address is not None:
        return payload.address.model_dump()
    if payload.address_id is not None:
        return address_snapshot(await get_address_or_404(session, user_id, payload.address_id))
    default = await get_default_address(session, user_id)
    if default is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Shipping address is required")
    return address_snapshot(default)


async def _select_coupon(session, user_id: int, code: Optional[str], subtotal: int) -> tuple[Optional[Coupon], int, bool]:
    """
    An explicit code wins and must be valid, otherwise a first order gets the welcome coupon
    when it is currently eligible. Returns (coupon, discount, free_shipping).
    """
    if code:
        coupon = await get_coupon_by_code(session, normalize_code(code))
        if coupon is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid coupon code")
        quote = await evaluate_coupon(session, coupon, user_id, subtotal)
        return coupon, quote["discount"], quote["free_shipping"]

    welcome_code = config_settings.WELCOME_COUPON_CODE
    if not welcome_code or await count_user_orders(session, user_id) > 0:
        return None, 0, False
    coupon = await get_coupon_by_code(session, normalize_code(welcome_code))
    if coupon is None:
        return None, 0, False
    try:
        quote = await evaluate_coupon(session, coupon, user_id, subtotal)
    except HTTPException as e:
        logger.info("order.welcome_coupon.skipped", extra={"user_id": user_id, "reason": e.detail})
        return None, 0, False
    return coupon, quote["discount"], quote["free_shipping"]


async def place_order(session, user_id: int, payload: OrderCreateIn) -> Orders:
    """
    Checkout in a single transaction: conditional stock decrements, order and payment rows,
    cart line removal and the coupon ledger entry either all commit or none do.
    """
    logger.info("order.place.attempt", extra={"user_id": user_id, "payment_mode": payload.payment_mode.value})

    user = await load_user_or_404(session, user_id)
    customer = payload.customer.model_dump() if payload.customer else {"name": user.name, "email": user.email,
                                                                       "phone": user.phone}
    shipping_address = await _shipping_address(session, user_id, payload)

    if payload.items:
        lines = await _lines_from_request(session, payload.items)
    else:
        lines = await _lines_from_cart(session, user_id)
    lines = _merge_lines(lines)
    if not lines:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No items to order")

    variant_counts = {pid: len(vs) for pid, vs in (await variants_for_products(session, [p.id for p, _, _ in lines])).items()}
    priced = []
    subtotal = 0
    for product, variant, qty in lines:
        if variant is None and variant_counts.get(product.id, 0) > 0:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                detail=f"Variant is required for {product.title}")
        price = variant.price if variant is not None else product.price
        if price is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{product.title} has no price set")
        priced.append((product, variant, qty, price))
        subtotal += price * qty

    coupon, discount, free_shipping = await _select_coupon(session, user_id, payload.coupon_code, subtotal)
    shipping = 0 if free_shipping else payload.shipping
    total = max(subtotal + shipping - discount, 0)

    online = payload.payment_mode == PaymentMode.ONLINE
    try:
        for product, variant, qty, _ in priced:
            if variant is not None:
                ok = await decrement_variant_stock(session, variant.id, qty)
                if ok:
                    ok = await decrement_product_stock(session, product.id, qty)
            else:
                ok = await decrement_product_stock(session, product.id, qty)
            if not ok:
                logger.info("order.place.insufficient_stock", extra={"user_id": user_id, "product_id": product.id,
                                                                     "requested": qty})
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                                    detail=f"Insufficient stock for {product.title}")

        order = Orders(
            user_id=user_id,
            status=OrderStatus.PENDING.value if online else OrderStatus.PROCESSING.value,
            payment_mode=payload.payment_mode.value,
            currency=config_settings.CURRENCY,
            subtotal=subtotal,
            shipping=shipping,
            discount=discount,
            total=total,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            customer_json=customer,
            shipping_address_json=shipping_address,
        )
        session.add(order)
        await session.flush()

        session.add_all([
            OrderItem(
                order_id=order.id,
                product_id=product.id,
                variant_id=variant.id if variant else None,
                product_public_id=str(product.public_id),
                title=product.title,
                variant_snapshot=variant_snapshot(variant),
                price=price,
                quantity=qty,
                subtotal=price * qty,
            )
            for product, variant, qty, price in priced
        ])
        session.add(Payment(
            order_id=order.id,
            mode=payload.payment_mode.value,
            provider="razorpay" if online else None,
            status=PaymentStatus.PENDING.value if online else PaymentStatus.UNPAID.value,
            amount=total,
            currency=config_settings.CURRENCY,
        ))

        await remove_ordered_lines(session, user_id, [(p.id, v.id if v else None) for p, v, _, _ in priced])
        if coupon is not None:
            await record_usage(session, coupon.id, user_id, order.id)

        await session.commit()
    except HTTPException:
        await session.rollback()
        raise
    except SQLAlchemyError:
        await session.rollback()
        logger.exception("order.place.db_error", extra={"user_id": user_id})
        raise

    await session.refresh(order)
    logger.info("order.place.success", extra={"order_id": order.id, "user_id": user_id, "total": total,
                                              "coupon_code": order.coupon_code})
    return order


async def cancel_order(session, order: Orders, actor_id: int) -> Orders:
    if order.status not in CANCELLABLE_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Order cannot be cancelled once {order.status}")

    try:
        if not await transition_order(session, order.id, CANCELLABLE_STATUSES, OrderStatus.CANCELLED.value,
                                      cancelled_at=now()):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order cannot be cancelled")

        items = (await order_items(session, [order.id])).get(order.id, [])
        for item in items:
            if item.variant_id is not None:
                await restore_variant_stock(session, item.variant_id, item.quantity)
            await restore_product_stock(session, item.product_id, item.quantity)
        await set_order_payments_status(session, order.id, PaymentStatus.REFUNDED.value)
        await session.commit()
    except HTTPException:
        await session.rollback()
        raise

    await session.refresh(order)
    logger.info("order.cancelled", extra={"order_id": order.id, "actor_id": actor_id})
    return order


async def update_order_status(session, order: Orders, target: OrderStatus, actor_id: int) -> Orders:
    if target == OrderStatus.CANCELLED:
        return await cancel_order(session, order, actor_id)

    current = order.status
    if current == OrderStatus.CANCELLED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is cancelled")
    if STATUS_RANK[target.value] <= STATUS_RANK[current]:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail=f"Cannot move order from {current} to {target.value}")

    extra_values = {"delivered_at": now()} if target == OrderStatus.DELIVERED else {}
    if not await transition_order(session, order.id, [current], target.value, **extra_values):
        await session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Order was updated concurrently")
    await session.commit()
    await session.refresh(order)

    logger.info("order.status.updated", extra={"order_id": order.id, "from_status": current,
                                               "to_status": target.value, "actor_id": actor_id})
    return order

# ---------------------------------------------------------------------------------------------------------

def _month_starts(ref, count: int) -> list[tuple[int, int]]:
    months = []
    year, month = ref.year, ref.month
    for _ in range(count):
        months.append((year, month))
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(months))


async def dashboard_stats(session) -> dict:
    revenue, orders_count = await revenue_summary(session, REVENUE_STATUSES)

    months = _month_starts(now(), STATS_MONTHS)
    since = now().replace(year=months[0][0], month=months[0][1], day=1, hour=0, minute=0, second=0, microsecond=0)
    buckets = {m: 0 for m in months}
    for created_at, total in await revenue_rows_since(session, REVENUE_STATUSES, since):
        key = (as_utc(created_at).year, as_utc(created_at).month)
        if key in buckets:
            buckets[key] += total

    top = await top_products(session, REVENUE_STATUSES, TOP_PRODUCTS_LIMIT)
    return {
        "revenue": revenue,
        "orders": orders_count,
        "products": await count_active_products(session),
        "monthly_revenue": [{"month": f"{y:04d}-{m:02d}", "revenue": buckets[(y, m)]} for y, m in months],
        "orders_status": await status_distribution(session),
        "top_products": [{"id": str(pid), "title": title, "total_sold": int(sold)} for pid, title, sold in top],
    }
