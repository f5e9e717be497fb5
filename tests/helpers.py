import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional
from sqlalchemy import func, select, update
from storefront.config.settings import config_settings
from storefront.db.connection import async_session
from storefront.payments.gateway import hmac_sha256_hex
from storefront.schema.full_schema import CouponUsage, Product, ProductVariant, Users, UserRole

url_prefix = "/api/v1"
strong_pass = "Sup3rSecret!"


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def days_from_now(days: int) -> str:
    return iso(datetime.now(timezone.utc) + timedelta(days=days))


async def register_user(ac, email: str, name: str = "Test Shopper", password: str = strong_pass,
                        phone: Optional[str] = None, referral_code: Optional[str] = None) -> dict:
    payload = {"email": email, "password": password, "name": name}
    if phone:
        payload["phone"] = phone
    if referral_code:
        payload["referral_code"] = referral_code
    resp = await ac.post(f"{url_prefix}/auth/register", json=payload)
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    return {"user": data["user"], "headers": auth_headers(data["access_token"])}


async def make_admin(email: str):
    async with async_session() as session:
        await session.execute(update(Users).where(Users.email == email).values(role=UserRole.ADMIN.value))
        await session.commit()


async def register_admin(ac, email: str = "admin@storefront.io") -> dict:
    admin = await register_user(ac, email, name="Store Admin")
    await make_admin(email)
    return admin


async def create_product(ac, admin_headers: dict, title: str, price: Optional[int] = None, stock: int = 0,
                         variants: Optional[list] = None, **fields) -> dict:
    payload = {"title": title, "price": price, "stock": stock, "variants": variants or [], **fields}
    resp = await ac.post(f"{url_prefix}/admin/products", json=payload, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["product"]


async def create_coupon(ac, admin_headers: dict, code: str, type_: str = "flat", value: int = 50, **fields) -> dict:
    payload = {"code": code, "type": type_, "value": value, "expiry_date": days_from_now(30), **fields}
    resp = await ac.post(f"{url_prefix}/admin/coupons", json=payload, headers=admin_headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["coupon"]


SHIPPING_ADDRESS = {
    "recipient_name": "Asha Rao",
    "recipient_phone": "9876543210",
    "line1": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "postal_code": "560001",
    "country": "IN",
}


async def place_order(ac, headers: dict, items: Optional[list] = None, payment_mode: str = "cod", **fields):
    payload = {"payment_mode": payment_mode, "address": SHIPPING_ADDRESS, **fields}
    if items is not None:
        payload["items"] = items
    return await ac.post(f"{url_prefix}/orders", json=payload, headers=headers)


async def product_stock(product_public_id: str) -> tuple[int, int]:
    async with async_session() as session:
        res = await session.execute(select(Product.stock, Product.sold).where(Product.public_id == uuid.UUID(product_public_id)))
        stock, sold = res.one()
    return stock, sold


async def variant_stock(variant_public_id: str) -> int:
    async with async_session() as session:
        res = await session.execute(select(ProductVariant.stock).where(ProductVariant.public_id == uuid.UUID(variant_public_id)))
        return res.scalar_one()


async def coupon_usage_count() -> int:
    async with async_session() as session:
        res = await session.execute(select(func.count(CouponUsage.id)))
        return res.scalar_one()

def sign_payment(gateway_order_id: str, gateway_payment_id: str) -> str:
    return hmac_sha256_hex(config_settings.RZPAY_SECRET, f"{gateway_order_id}|{gateway_payment_id}".encode())


def sign_webhook(body: bytes) -> str:
    return hmac_sha256_hex(config_settings.RAZORPAY_WEBHOOK_SECRET, body)
