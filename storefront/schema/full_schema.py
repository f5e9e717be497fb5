import enum
import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Text, UniqueConstraint, BigInteger, Uuid
from uuid6 import uuid7
from sqlmodel import Column, SQLModel, Field, String
from storefront.common.utils import now


class UserRole(str, enum.Enum):
    BUYER = "buyer"
    ADMIN = "admin"


class Users(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)
    )
    email: str = Field(sa_column=Column(String(320), nullable=False, unique=True))
    phone: Optional[str] = Field(default=None, sa_column=Column(String(20), nullable=True, unique=True))
    name: str = Field(sa_column=Column(String(128), nullable=False))
    password_hash: str = Field(sa_column=Column(Text(), nullable=False))
    role: str = Field(default=UserRole.BUYER.value, sa_column=Column(String(16), nullable=False, default=UserRole.BUYER.value))
    wallet: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))  # rupees
    referral_code: str = Field(sa_column=Column(String(32), nullable=False, unique=True, index=True))
    referred_by: Optional[str] = Field(default=None, sa_column=Column(String(32), nullable=True, index=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class Address(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False))
    recipient_name: str = Field(sa_column=Column(String(128), nullable=False))
    recipient_phone: str = Field(sa_column=Column(String(20), nullable=False))
    line1: str
    line2: Optional[str] = None
    city: str
    state: Optional[str] = None
    postal_code: str
    country: str = Field(default="IN",nullable=False)
    is_default: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class Favorite(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False))
    product_id: int = Field(sa_column=Column(ForeignKey("product.id", ondelete="CASCADE"), nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("user_id", "product_id", name="uq_favorite_user_product"),
    )

# ---------------------------------------------------------------------------------------------------------

class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)
    )
    title: str = Field(sa_column=Column(String(255), nullable=False))
    slug: str = Field(sa_column=Column(String(300), nullable=False, unique=True, index=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    price: Optional[int] = Field(default=None, sa_column=Column(BigInteger, nullable=True))  # rupees, optional when variants exist
    category: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, index=True))
    brand: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, index=True))
    # sum of variant stocks when variants exist
    stock: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    sold: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    low_stock_threshold: int = Field(default=10, sa_column=Column(Integer, nullable=False, default=10))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, index=True))
    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class ProductVariant(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(
        default_factory=uuid7,
        sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False)
    )
    product_id: int = Field(sa_column=Column(ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    size: str = Field(sa_column=Column(String(64), nullable=False))
    sku: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    price: int = Field(sa_column=Column(BigInteger, nullable=False))
    stock: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    sort_order: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))


class ProductImage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    product_id: int = Field(sa_column=Column(ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    url: str = Field(sa_column=Column(String(2048), nullable=False))
    storage_key: str = Field(sa_column=Column(String(1024), nullable=False), description="provider public id (not the url)")
    storage_provider: str = Field(default="cloudinary", sa_column=Column(String(64), nullable=False, default="cloudinary"))
    sort_order: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# -----------------------------------------------------------------------------------------------------------

# user -> cart (1:1)
class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, unique=True),
    )
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class CartItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(sa_column=Column(ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: int = Field(sa_column=Column(ForeignKey("product.id", ondelete="CASCADE"), nullable=False))
    variant_id: Optional[int] = Field(default=None, sa_column=Column(ForeignKey("productvariant.id", ondelete="CASCADE"), nullable=True))
    variant_snapshot: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    quantity: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

# --------------------------------------------------------------------------------------------

class CouponType(str, enum.Enum):
    PERCENT = "percent"
    FLAT = "flat"
    FREE_SHIPPING = "free_shipping"


class CouponStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Coupon(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    code: str = Field(sa_column=Column(String(64), nullable=False, unique=True, index=True))
    type: str = Field(sa_column=Column(String(32), nullable=False))
    value: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))  # percent points or rupees
    min_cart_value: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    start_date: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    expiry_date: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    max_uses: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))  # 0 = unlimited
    max_uses_per_user: int = Field(default=1, sa_column=Column(Integer, nullable=False, default=1))
    uses: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    status: str = Field(default=CouponStatus.ACTIVE.value, sa_column=Column(String(16), nullable=False, default=CouponStatus.ACTIVE.value, index=True))
    # wallet coupons can only be redeemed by their owner
    owner_user_id: Optional[int] = Field(default=None, sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True))
    created_by: Optional[int] = Field(default=None, sa_column=Column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class CouponUsage(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    coupon_id: int = Field(sa_column=Column(ForeignKey("coupon.id", ondelete="CASCADE"), nullable=False, index=True))
    user_id: int = Field(sa_column=Column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True))
    order_id: int = Field(sa_column=Column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False))
    used_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("coupon_id", "order_id", name="uq_coupon_usage_order"),
    )

# --------------------------------------------------------------------------------------------

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMode(str, enum.Enum):
    COD = "cod"
    ONLINE = "online"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    REFUNDED = "refunded"
    AUTHORIZED = "authorized"
    UNPAID = "unpaid"


# User --> Orders (1:many)
class Orders(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    user_id: int = Field(sa_column=Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(16), nullable=False, index=True))
    payment_mode: str = Field(sa_column=Column(String(16), nullable=False))
    currency: str = Field(default="INR", sa_column=Column(String(8), nullable=False))
    subtotal: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))  # rupees
    shipping: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    discount: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    total: int = Field(default=0, sa_column=Column(BigInteger, nullable=False))
    coupon_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("coupon.id", ondelete="SET NULL"), nullable=True))
    coupon_code: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    customer_json: dict = Field(sa_column=Column(JSON, nullable=False))
    shipping_address_json: dict = Field(sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
    cancelled_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    delivered_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


# Order --> OrderItems (1:many), prices and variant details frozen at purchase time
class OrderItem(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="RESTRICT"), nullable=False, index=True))
    variant_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("productvariant.id", ondelete="SET NULL"), nullable=True))
    product_public_id: str = Field(sa_column=Column(String(64), nullable=False))
    title: str = Field(sa_column=Column(String(255), nullable=False))
    variant_snapshot: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    price: int = Field(sa_column=Column(BigInteger, nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    subtotal: int = Field(sa_column=Column(BigInteger, nullable=False))

# --------------------------------------------------------------------------------------------------------------------------------

class Payment(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: uuid.UUID = Field(default_factory=uuid7, sa_column=Column(Uuid(as_uuid=True), unique=True, index=True, nullable=False))
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    mode: str = Field(sa_column=Column(String(16), nullable=False))
    provider: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    status: str = Field(default=PaymentStatus.PENDING.value, sa_column=Column(String(16), nullable=False, index=True))
    amount: int = Field(sa_column=Column(BigInteger, nullable=False))  # rupees
    currency: str = Field(default="INR", sa_column=Column(String(8), nullable=False))
    gateway_order_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, unique=True))
    gateway_payment_id: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True))
    gateway_signature: Optional[str] = Field(default=None, sa_column=Column(String(256), nullable=True))
    pay_metadata: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
    paid_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    __table_args__ = (
        UniqueConstraint("order_id", "mode", name="uq_payment_order_mode"),
    )


class PaymentWebhookEvent(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    provider_event_id: str = Field(sa_column=Column(String(256), nullable=False, unique=True))
    event: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    payment_id: Optional[int] = Field(default=None, sa_column=Column(Integer, ForeignKey("payment.id", ondelete="SET NULL"), nullable=True))
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    note: Optional[str] = Field(default=None, sa_column=Column(String(256), nullable=True))
    processed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
