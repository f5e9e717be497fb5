from typing import Optional
from pydantic import BaseModel, Field


class SignupIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    email: str = Field(max_length=320)
    phone: Optional[str] = Field(default=None, max_length=20)
    password: str = Field(min_length=1, max_length=128)
    referral_code: Optional[str] = Field(default=None, max_length=32)


class SignIn(BaseModel):
    email: str
    password: str
