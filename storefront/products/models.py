from typing import List, Optional
from pydantic import BaseModel, Field


class VariantIn(BaseModel):
    variant_id: Optional[str] = None   # present when editing an existing variant
    size: str = Field(min_length=1, max_length=64)
    price: int = Field(ge=0)
    stock: int = Field(default=0, ge=0)
    sku: Optional[str] = Field(default=None, max_length=128)


class ProductCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=128)
    brand: Optional[str] = Field(default=None, max_length=128)
    stock: int = Field(default=0, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    active: bool = True
    variants: List[VariantIn] = Field(default_factory=list)


class ProductPatchIn(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[int] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, max_length=128)
    brand: Optional[str] = Field(default=None, max_length=128)
    stock: Optional[int] = Field(default=None, ge=0)
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None
    variants: Optional[List[VariantIn]] = None


class StockUpdateIn(BaseModel):
    variant_id: Optional[str] = None
    stock: int = Field(ge=0)


class ImageAttachIn(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    storage_key: str = Field(min_length=1, max_length=1024)
    sort_order: int = Field(default=0, ge=0)


class UploadSignIn(BaseModel):
    product_id: str
