from pydantic import BaseModel, Field


class PaymentCreateIn(BaseModel):
    order_id: str


class PaymentVerifyIn(BaseModel):
    order_id: str
    gateway_order_id: str = Field(min_length=1, max_length=128)
    gateway_payment_id: str = Field(min_length=1, max_length=128)
    gateway_signature: str = Field(min_length=1, max_length=256)
