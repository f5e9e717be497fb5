from typing import Optional
from pydantic import BaseModel, EmailStr, Field
from storefront.schema.full_schema import OrderStatus, PaymentMode


class CustomerIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)


class ShippingAddressIn(BaseModel):
    recipient_name: str = Field(min_length=1, max_length=128)
    recipient_phone: str = Field(min_length=5, max_length=20)
    line1: str = Field(min_length=1, max_length=256)
    line2: Optional[str] = Field(default=None, max_length=256)
    city: str = Field(min_length=1, max_length=128)
    state: Optional[str] = Field(default=None, max_length=128)
    postal_code: str = Field(min_length=3, max_length=16)
    country: str = Field(default="IN", max_length=64)


class OrderItemIn(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class OrderCreateIn(BaseModel):
    customer: Optional[CustomerIn] = None
    address: Optional[ShippingAddressIn] = None
    address_id: Optional[int] = None
    items: Optional[list[OrderItemIn]] = None
    payment_mode: PaymentMode
    shipping: int = Field(default=0, ge=0)
    coupon_code: Optional[str] = Field(default=None, max_length=64)


class StatusUpdateIn(BaseModel):
    status: OrderStatus
