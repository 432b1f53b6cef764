"""
Authentication-related Pydantic schemas.
"""
import re
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field, field_validator

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class SignupRequest(BaseModel):
    """Signup request schema."""
    username: str = Field(..., min_length=3, max_length=50, description="Unique username")
    email: Optional[str] = Field(None, description="Optional email address")
    password: str = Field(..., min_length=6, description="Password (min 6 characters)")
    promo_code: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("promoCode", "code", "promo_code"),
        description="Optional promo code redeemed at signup",
    )

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 3:
            raise ValueError("Username must be at least 3 characters")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not EMAIL_REGEX.match(value):
            raise ValueError("Invalid email format")
        return value

    @field_validator("promo_code")
    @classmethod
    def normalize_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip().upper()


class LoginRequest(BaseModel):
    """Login request schema."""
    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")
