from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from storefront.auth.dependencies import require_admin
from storefront.common.utils import success_response
from storefront.config.settings import config_settings
from storefront.db.dependencies import get_session
from storefront.image_uploads.dependency import get_image_store
from storefront.products.models import ImageAttachIn, ProductCreateIn, ProductPatchIn, StockUpdateIn, UploadSignIn
from storefront.products.repository import distinct_product_values, fetch_products
from storefront.products.services import (attach_image, create_product, destroy_product, get_product_or_404,
                                          get_public_product, patch_product, product_detail, product_details,
                                          remove_image, serialize_image, soft_delete_product, update_stock)
from storefront.products.utils import decode_cursor, encode_cursor
from storefront.schema.full_schema import Product
from storefront.products.constants import logger

prods_public_router = APIRouter()
prods_admin_router = APIRouter(dependencies=[Depends(require_admin)])
uploads_router = APIRouter(dependencies=[Depends(require_admin)])


async def _list_products(session, *, limit, cursor, include_inactive, **filters):
    after_id = None
    if cursor:
        try:
            after_id = decode_cursor(cursor)
        except (ValueError, KeyError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor")

    rows = await fetch_products(session, limit=limit + 1, after_id=after_id,
                                include_inactive=include_inactive, **filters)
    has_more = len(rows) > limit
    rows = rows[:limit]
    next_cursor = encode_cursor(rows[-1].id) if has_more and rows else None
    return {"items": await product_details(session, rows), "next_cursor": next_cursor}


@prods_public_router.get("")
async def list_products(q: Optional[str] = None, category: Optional[str] = None, brand: Optional[str] = None,
                        min_price: Optional[int] = Query(default=None, ge=0),
                        max_price: Optional[int] = Query(default=None, ge=0),
                        low_stock: bool = False,
                        limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                        cursor: Optional[str] = None,
                        session: AsyncSession = Depends(get_session)):

    data = await _list_products(session, limit=limit, cursor=cursor, include_inactive=False, q=q,
                                category=category, brand=brand, min_price=min_price, max_price=max_price,
                                low_stock=low_stock)
    return success_response(data)


@prods_public_router.get("/categories")
async def list_categories(session: AsyncSession = Depends(get_session)):
    return success_response({"categories": await distinct_product_values(session, Product.category)})


@prods_public_router.get("/brands")
async def list_brands(session: AsyncSession = Depends(get_session)):
    return success_response({"brands": await distinct_product_values(session, Product.brand)})


@prods_public_router.get("/{id_or_slug}")
async def get_product(id_or_slug: str, session: AsyncSession = Depends(get_session)):
    product = await get_public_product(session, id_or_slug)
    return success_response({"product": await product_detail(session, product)})

# ---------------------------------------------------------------------------------------------------------

@prods_admin_router.get("")
async def admin_list_products(q: Optional[str] = None, category: Optional[str] = None, brand: Optional[str] = None,
                              low_stock: bool = False,
                              limit: int = Query(default=config_settings.PAGE_SIZE_DEFAULT, ge=1, le=config_settings.PAGE_SIZE_MAX),
                              cursor: Optional[str] = None,
                              session: AsyncSession = Depends(get_session)):
    data = await _list_products(session, limit=limit, cursor=cursor, include_inactive=True, q=q,
                                category=category, brand=brand, low_stock=low_stock)
    return success_response(data)


@prods_admin_router.post("", status_code=status.HTTP_201_CREATED)
async def admin_create_product(payload: ProductCreateIn, session: AsyncSession = Depends(get_session)):
    logger.info("product.create.attempt", extra={"title": payload.title})

    product = await create_product(session, payload)

    logger.info("product.create.success", extra={"product_public_id": str(product.public_id)})
    return success_response({"product": await product_detail(session, product)}, 201)


@prods_admin_router.patch("/{product_id}")
async def admin_patch_product(product_id: str, payload: ProductPatchIn, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    product = await patch_product(session, product, payload)

    logger.info("product.update.success", extra={"product_public_id": product_id})
    return success_response({"product": await product_detail(session, product)})


@prods_admin_router.delete("/{product_id}")
async def admin_deactivate_product(product_id: str, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    await soft_delete_product(session, product)

    logger.info("product.deactivate.success", extra={"product_public_id": product_id})
    return success_response({"message": "Product deactivated"})


@prods_admin_router.delete("/{product_id}/destroy")
async def admin_destroy_product(product_id: str, session: AsyncSession = Depends(get_session),
                                image_store=Depends(get_image_store)):
    product = await get_product_or_404(session, product_id)
    await destroy_product(session, product, image_store)
    return success_response({"message": "Product deleted permanently"})


@prods_admin_router.patch("/{product_id}/stock")
async def admin_update_stock(product_id: str, payload: StockUpdateIn, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    product = await update_stock(session, product, payload)

    logger.info("product.stock.updated", extra={"product_public_id": product_id, "stock": product.stock})
    return success_response({"product": await product_detail(session, product)})


@prods_admin_router.post("/{product_id}/images", status_code=status.HTTP_201_CREATED)
async def admin_attach_image(product_id: str, payload: ImageAttachIn, session: AsyncSession = Depends(get_session)):
    product = await get_product_or_404(session, product_id)
    image = await attach_image(session, product, payload)
    return success_response({"image": serialize_image(image)}, 201)


@prods_admin_router.delete("/{product_id}/images/{image_id}")
async def admin_remove_image(product_id: str, image_id: str, session: AsyncSession = Depends(get_session),
                             image_store=Depends(get_image_store)):
    product = await get_product_or_404(session, product_id)
    await remove_image(session, product, image_id, image_store)
    return success_response({"message": "Image removed"})


@uploads_router.post("/sign")
async def sign_image_upload(payload: UploadSignIn, session: AsyncSession = Depends(get_session),
                            image_store=Depends(get_image_store)):
    product = await get_product_or_404(session, payload.product_id)
    return success_response({"upload": image_store.build_upload_params(product.public_id)})
