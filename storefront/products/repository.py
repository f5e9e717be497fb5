import uuid
from collections import defaultdict
from typing import Iterable, Optional
from sqlalchemy import and_, case, delete, distinct, func, or_, select, update
from storefront.schema.full_schema import CartItem, Favorite, OrderItem, Product, ProductImage, ProductVariant


async def find_product_by_pid(session, product_pid: uuid.UUID, active_only: bool = False) -> Optional[Product]:
    stmt = select(Product).where(Product.public_id == product_pid)
    if active_only:
        stmt = stmt.where(Product.active == True)  # noqa: E712
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_product_by_slug(session, slug: str, active_only: bool = False) -> Optional[Product]:
    stmt = select(Product).where(Product.slug == slug)
    if active_only:
        stmt = stmt.where(Product.active == True)  # noqa: E712
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_variant_by_pid(session, product_id: int, variant_pid: uuid.UUID) -> Optional[ProductVariant]:
    stmt = select(ProductVariant).where(ProductVariant.product_id == product_id,
                                        ProductVariant.public_id == variant_pid)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def products_by_ids(session, product_ids: Iterable[int]) -> dict[int, Product]:
    ids = list(set(product_ids))
    if not ids:
        return {}
    res = await session.execute(select(Product).where(Product.id.in_(ids)))
    return {p.id: p for p in res.scalars().all()}


async def variants_by_ids(session, variant_ids: Iterable[int]) -> dict[int, ProductVariant]:
    ids = [v for v in set(variant_ids) if v is not None]
    if not ids:
        return {}
    res = await session.execute(select(ProductVariant).where(ProductVariant.id.in_(ids)))
    return {v.id: v for v in res.scalars().all()}


async def variants_for_products(session, product_ids: Iterable[int]) -> dict[int, list[ProductVariant]]:
    ids = list(set(product_ids))
    out: dict[int, list[ProductVariant]] = defaultdict(list)
    if not ids:
        return out
    stmt = (
        select(ProductVariant)
        .where(ProductVariant.product_id.in_(ids))
        .order_by(ProductVariant.product_id, ProductVariant.sort_order, ProductVariant.id)
    )
    res = await session.execute(stmt)
    for v in res.scalars().all():
        out[v.product_id].append(v)
    return out


async def images_for_products(session, product_ids: Iterable[int]) -> dict[int, list[ProductImage]]:
    ids = list(set(product_ids))
    out: dict[int, list[ProductImage]] = defaultdict(list)
    if not ids:
        return out
    stmt = (
        select(ProductImage)
        .where(ProductImage.product_id.in_(ids))
        .order_by(ProductImage.product_id, ProductImage.sort_order, ProductImage.id)
    )
    res = await session.execute(stmt)
    for img in res.scalars().all():
        out[img.product_id].append(img)
    return out


async def fetch_products(session, *, limit: int, after_id: Optional[int] = None, q: Optional[str] = None,
                         category: Optional[str] = None, brand: Optional[str] = None,
                         min_price: Optional[int] = None, max_price: Optional[int] = None,
                         low_stock: bool = False, include_inactive: bool = False) -> list[Product]:
    stmt = select(Product)
    if not include_inactive:
        stmt = stmt.where(Product.active == True)  # noqa: E712
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(Product.title.ilike(like), Product.description.ilike(like), Product.brand.ilike(like)))
    if category:
        stmt = stmt.where(Product.category == category)
    if brand:
        stmt = stmt.where(Product.brand == brand)

    # a product matches a price bound through its own price or any of its variant prices
    if min_price is not None or max_price is not None:
        variant_match = select(ProductVariant.id).where(ProductVariant.product_id == Product.id)
        own_match = Product.price.is_not(None)
        if min_price is not None:
            variant_match = variant_match.where(ProductVariant.price >= min_price)
            own_match = and_(own_match, Product.price >= min_price)
        if max_price is not None:
            variant_match = variant_match.where(ProductVariant.price <= max_price)
            own_match = and_(own_match, Product.price <= max_price)
        stmt = stmt.where(or_(own_match, variant_match.exists()))

    if low_stock:
        stmt = stmt.where(Product.stock <= Product.low_stock_threshold)
    if after_id is not None:
        stmt = stmt.where(Product.id < after_id)

    stmt = stmt.order_by(Product.id.desc()).limit(limit)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def distinct_product_values(session, column) -> list[str]:
    stmt = (
        select(distinct(column))
        .where(Product.active == True, column.is_not(None))  # noqa: E712
        .order_by(column)
    )
    res = await session.execute(stmt)
    return [v for v in res.scalars().all() if v]


async def slug_taken(session, slug: str, exclude_product_id: Optional[int] = None) -> bool:
    stmt = select(Product.id).where(Product.slug == slug)
    if exclude_product_id is not None:
        stmt = stmt.where(Product.id != exclude_product_id)
    res = await session.execute(stmt.limit(1))
    return res.scalar_one_or_none() is not None


async def sync_aggregate_stock(session, product_id: int):
    """Product stock mirrors the sum of its variant stocks when it has variants."""
    total = (
        select(func.coalesce(func.sum(ProductVariant.stock), 0))
        .where(ProductVariant.product_id == product_id)
        .scalar_subquery()
    )
    await session.execute(update(Product).where(Product.id == product_id).values(stock=total))


async def count_variants(session, product_id: int) -> int:
    res = await session.execute(select(func.count(ProductVariant.id)).where(ProductVariant.product_id == product_id))
    return int(res.scalar_one())


async def delete_variants(session, variant_ids: list[int]):
    if not variant_ids:
        return
    await session.execute(delete(CartItem).where(CartItem.variant_id.in_(variant_ids)))
    await session.execute(update(OrderItem).where(OrderItem.variant_id.in_(variant_ids)).values(variant_id=None))
    await session.execute(delete(ProductVariant).where(ProductVariant.id.in_(variant_ids)))


async def product_has_orders(session, product_id: int) -> bool:
    res = await session.execute(select(OrderItem.id).where(OrderItem.product_id == product_id).limit(1))
    return res.scalar_one_or_none() is not None


async def delete_product_rows(session, product_id: int) -> list[str]:
    """Hard delete a product and its dependents, returns the storage keys of its images."""
    res = await session.execute(select(ProductImage.storage_key).where(ProductImage.product_id == product_id))
    storage_keys = list(res.scalars().all())
    await session.execute(delete(CartItem).where(CartItem.product_id == product_id))
    await session.execute(delete(Favorite).where(Favorite.product_id == product_id))
    await session.execute(delete(ProductImage).where(ProductImage.product_id == product_id))
    await session.execute(delete(ProductVariant).where(ProductVariant.product_id == product_id))
    await session.execute(delete(Product).where(Product.id == product_id))
    return storage_keys


async def find_image_by_pid(session, product_id: int, image_pid: uuid.UUID) -> Optional[ProductImage]:
    stmt = select(ProductImage).where(ProductImage.product_id == product_id, ProductImage.public_id == image_pid)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()

# ---------------------------------------------------------------------------------------------------------
# stock bookkeeping used by checkout and cancellation, all conditional updates

async def decrement_variant_stock(session, variant_id: int, qty: int) -> bool:
    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id, ProductVariant.stock >= qty)
        .values(stock=ProductVariant.stock - qty)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def decrement_product_stock(session, product_id: int, qty: int) -> bool:
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.active == True, Product.stock >= qty)  # noqa: E712
        .values(stock=Product.stock - qty, sold=Product.sold + qty)
    )
    res = await session.execute(stmt)
    return res.rowcount == 1


async def restore_variant_stock(session, variant_id: int, qty: int):
    stmt = update(ProductVariant).where(ProductVariant.id == variant_id).values(stock=ProductVariant.stock + qty)
    await session.execute(stmt)


async def restore_product_stock(session, product_id: int, qty: int):
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + qty, sold=case((Product.sold >= qty, Product.sold - qty), else_=0))
    )
    await session.execute(stmt)
