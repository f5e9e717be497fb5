import uuid
from typing import Optional
from fastapi import HTTPException, status
from storefront.common.utils import parse_public_id
from storefront.config.settings import config_settings
from storefront.products.models import ImageAttachIn, ProductCreateIn, ProductPatchIn, StockUpdateIn, VariantIn
from storefront.products.repository import (count_variants, delete_product_rows, delete_variants, find_image_by_pid,
                                            find_product_by_pid, find_product_by_slug, find_variant_by_pid,
                                            images_for_products, product_has_orders, slug_taken,
                                            sync_aggregate_stock, variants_for_products)
from storefront.products.utils import slugify
from storefront.schema.full_schema import Product, ProductImage, ProductVariant
from storefront.products.constants import logger


def serialize_variant(v: ProductVariant) -> dict:
    return {"id": str(v.public_id), "size": v.size, "sku": v.sku, "price": v.price, "stock": v.stock}


def variant_snapshot(v: Optional[ProductVariant]) -> Optional[dict]:
    if v is None:
        return None
    return {"variant_id": str(v.public_id), "size": v.size, "price": v.price, "sku": v.sku}


def serialize_image(img: ProductImage) -> dict:
    return {"id": str(img.public_id), "url": img.url, "storage_key": img.storage_key, "sort_order": img.sort_order}


def serialize_product(p: Product, variants: list[ProductVariant], images: list[ProductImage]) -> dict:
    return {
        "id": str(p.public_id),
        "title": p.title,
        "slug": p.slug,
        "description": p.description,
        "price": p.price,
        "category": p.category,
        "brand": p.brand,
        "stock": p.stock,
        "sold": p.sold,
        "low_stock_threshold": p.low_stock_threshold,
        "low_stock": p.stock <= p.low_stock_threshold,
        "active": p.active,
        "variants": [serialize_variant(v) for v in variants],
        "images": [serialize_image(i) for i in images],
        "created_at": p.created_at,
        "updated_at": p.updated_at,
    }


def product_summary(p: Product, images: list[ProductImage]) -> dict:
    """Compact product view used inside cart lines and favorites."""
    return {
        "id": str(p.public_id),
        "title": p.title,
        "slug": p.slug,
        "price": p.price,
        "stock": p.stock,
        "brand": p.brand,
        "image": images[0].url if images else None,
        "active": p.active,
    }


async def product_details(session, products: list[Product]) -> list[dict]:
    ids = [p.id for p in products]
    variants = await variants_for_products(session, ids)
    images = await images_for_products(session, ids)
    return [serialize_product(p, variants.get(p.id, []), images.get(p.id, [])) for p in products]


async def product_detail(session, product: Product) -> dict:
    return (await product_details(session, [product]))[0]


async def get_product_or_404(session, product_pid: str, active_only: bool = False) -> Product:
    pid = parse_public_id(product_pid, "Product")
    product = await find_product_by_pid(session, pid, active_only=active_only)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def get_public_product(session, id_or_slug: str) -> Product:
    try:
        pid = uuid.UUID(id_or_slug)
    except ValueError:
        product = await find_product_by_slug(session, id_or_slug, active_only=True)
    else:
        product = await find_product_by_pid(session, pid, active_only=True)
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return product


async def get_variant_or_404(session, product: Product, variant_pid: str) -> ProductVariant:
    pid = parse_public_id(variant_pid, "Variant")
    variant = await find_variant_by_pid(session, product.id, pid)
    if not variant:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found")
    return variant


async def unique_slug(session, title: str, exclude_product_id: Optional[int] = None) -> str:
    base = slugify(title)
    slug, n = base, 2
    while await slug_taken(session, slug, exclude_product_id):
        slug = f"{base}-{n}"
        n += 1
    return slug

# ---------------------------------------------------------------------------------------------------------

async def create_product(session, payload: ProductCreateIn) -> Product:
    if not payload.variants and payload.price is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Price is required for products without variants")

    product = Product(
        title=payload.title.strip(),
        slug=await unique_slug(session, payload.title),
        description=payload.description,
        price=payload.price,
        category=payload.category,
        brand=payload.brand,
        stock=0 if payload.variants else payload.stock,
        low_stock_threshold=(payload.low_stock_threshold if payload.low_stock_threshold is not None
                             else config_settings.DEFAULT_LOW_STOCK_THRESHOLD),
        active=payload.active,
    )
    session.add(product)
    await session.flush()

    for idx, v in enumerate(payload.variants):
        session.add(ProductVariant(product_id=product.id, size=v.size, sku=v.sku, price=v.price,
                                   stock=v.stock, sort_order=idx))
    await session.flush()

    if payload.variants:
        await sync_aggregate_stock(session, product.id)

    await session.commit()
    await session.refresh(product)
    return product


async def replace_variants(session, product: Product, variants_in: list[VariantIn]):
    existing = (await variants_for_products(session, [product.id])).get(product.id, [])
    by_pid = {str(v.public_id): v for v in existing}
    kept: set[int] = set()

    for idx, v in enumerate(variants_in):
        if v.variant_id:
            current = by_pid.get(v.variant_id)
            if current is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found")
            current.size, current.sku, current.price, current.stock, current.sort_order = v.size, v.sku, v.price, v.stock, idx
            kept.add(current.id)
        else:
            session.add(ProductVariant(product_id=product.id, size=v.size, sku=v.sku, price=v.price,
                                       stock=v.stock, sort_order=idx))

    await delete_variants(session, [v.id for v in existing if v.id not in kept])
    await session.flush()


async def patch_product(session, product: Product, payload: ProductPatchIn) -> Product:
    data = payload.model_dump(exclude_unset=True)
    variants_in = data.pop("variants", None)

    has_variants = await count_variants(session, product.id) > 0
    if variants_in is not None:
        has_variants = bool(payload.variants)
    if "stock" in data and has_variants:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Stock is derived from variants for this product")

    final_price = data.get("price", product.price)
    if not has_variants and final_price is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Price is required for products without variants")

    if "title" in data and data["title"] and data["title"].strip() != product.title:
        product.slug = await unique_slug(session, data["title"], exclude_product_id=product.id)

    for field, value in data.items():
        if field == "title" and value:
            value = value.strip()
        setattr(product, field, value)

    if variants_in is not None:
        await replace_variants(session, product, payload.variants)
    await session.flush()

    if has_variants:
        await sync_aggregate_stock(session, product.id)

    await session.commit()
    await session.refresh(product)
    return product


async def soft_delete_product(session, product: Product) -> Product:
    product.active = False
    await session.commit()
    await session.refresh(product)
    return product


async def destroy_product(session, product: Product, image_store):
    if await product_has_orders(session, product.id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="Product is linked to orders; deactivate it instead")
    storage_keys = await delete_product_rows(session, product.id)
    await session.commit()

    for key in storage_keys:
        await image_store.destroy(key)
    logger.info("product.destroy.success", extra={"product_public_id": str(product.public_id),
                                                  "images_removed": len(storage_keys)})


async def update_stock(session, product: Product, payload: StockUpdateIn) -> Product:
    has_variants = await count_variants(session, product.id) > 0
    if payload.variant_id:
        variant = await get_variant_or_404(session, product, payload.variant_id)
        variant.stock = payload.stock
        await session.flush()
        await sync_aggregate_stock(session, product.id)
    elif has_variants:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST,
                            detail="variant_id is required for products with variants")
    else:
        product.stock = payload.stock

    await session.commit()
    await session.refresh(product)
    return product


async def attach_image(session, product: Product, payload: ImageAttachIn) -> ProductImage:
    image = ProductImage(product_id=product.id, url=payload.url, storage_key=payload.storage_key,
                         sort_order=payload.sort_order)
    session.add(image)
    await session.commit()
    await session.refresh(image)
    return image


async def remove_image(session, product: Product, image_pid: str, image_store):
    pid = parse_public_id(image_pid, "Image")
    image = await find_image_by_pid(session, product.id, pid)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    storage_key = image.storage_key
    await session.delete(image)
    await session.commit()
    await image_store.destroy(storage_key)
