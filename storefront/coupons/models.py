from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from storefront.common.utils import as_utc
from storefront.schema.full_schema import CouponStatus, CouponType


class CouponValidateIn(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    cart_total: int = Field(ge=0)


class CouponCreateIn(BaseModel):
    code: str = Field(min_length=3, max_length=64)
    type: CouponType
    value: int = Field(default=0, ge=0)
    min_cart_value: int = Field(default=0, ge=0)
    start_date: Optional[datetime] = None
    expiry_date: datetime
    max_uses: int = Field(default=0, ge=0)
    max_uses_per_user: int = Field(default=1, ge=1)
    status: CouponStatus = CouponStatus.ACTIVE

    @field_validator("start_date", "expiry_date")
    @classmethod
    def _to_utc(cls, v):
        return as_utc(v)

    @model_validator(mode="after")
    def _check_value(self):
        if self.type != CouponType.FREE_SHIPPING and self.value <= 0:
            raise ValueError("value is required for percent and flat coupons")
        if self.type == CouponType.PERCENT and self.value > 100:
            raise ValueError("percent value cannot exceed 100")
        if self.start_date and self.start_date >= self.expiry_date:
            raise ValueError("start_date must be before expiry_date")
        return self


class WalletConvertIn(BaseModel):
    amount: int = Field(gt=0)


class MarkUsedIn(BaseModel):
    order_id: str


class GenerateCodesIn(BaseModel):
    prefix: Optional[str] = Field(default=None, max_length=16, pattern=r"^[A-Za-z0-9]*$")
    count: int = Field(default=10, ge=1, le=100)
    length: int = Field(default=8, ge=4, le=32)
