from pydantic import EmailStr, Field, field_validator
from typing import Optional

from .common import CamelModel


class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    company_name: str = Field(..., min_length=1, max_length=200)
    website: Optional[str] = Field(None, max_length=255)

    @field_validator('company_name')
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Company name is required")
        return v


class UserResponse(CamelModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str
