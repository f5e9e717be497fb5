from typing import Optional
from pydantic import BaseModel, Field


class ProfilePatchIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    phone: Optional[str] = Field(default=None, max_length=20)


class AddressIn(BaseModel):
    recipient_name: str = Field(min_length=1, max_length=128)
    recipient_phone: str = Field(min_length=5, max_length=20)
    line1: str = Field(min_length=1, max_length=255)
    line2: Optional[str] = Field(default=None, max_length=255)
    city: str = Field(min_length=1, max_length=128)
    state: Optional[str] = Field(default=None, max_length=128)
    postal_code: str = Field(min_length=3, max_length=16)
    country: str = Field(default="IN", max_length=64)
    is_default: bool = False


class AddressPatchIn(BaseModel):
    recipient_name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    recipient_phone: Optional[str] = Field(default=None, min_length=5, max_length=20)
    line1: Optional[str] = Field(default=None, min_length=1, max_length=255)
    line2: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, min_length=1, max_length=128)
    state: Optional[str] = Field(default=None, max_length=128)
    postal_code: Optional[str] = Field(default=None, min_length=3, max_length=16)
    country: Optional[str] = Field(default=None, max_length=64)
    is_default: Optional[bool] = None


class WalletCreditIn(BaseModel):
    amount: int = Field(gt=0)
