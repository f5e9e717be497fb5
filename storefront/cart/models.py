from typing import Optional
from pydantic import BaseModel


class CartAddIn(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = 1


class CartQtyIn(BaseModel):
    quantity: int
