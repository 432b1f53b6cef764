"""
User-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, field_serializer
from pydantic.alias_generators import to_camel
from models.models import SubscriptionLevelEnum, UserRoleEnum, as_utc


class UserPublic(BaseModel):
    """User payload returned to clients; never carries the password hash."""
    id: int
    username: str
    email: Optional[str] = None
    role: UserRoleEnum
    subscription_level: SubscriptionLevelEnum
    subscription_start: Optional[datetime] = None
    subscription_end: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    preferences: Optional[Dict[str, Any]] = None

    @field_serializer("subscription_start", "subscription_end", "last_login_at")
    def _utc(self, value: Optional[datetime]) -> Optional[str]:
        return as_utc(value).isoformat() if value else None

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class AdminUserRead(UserPublic):
    """User row as listed on the admin screens."""
    is_active: bool
    billing_period: Optional[str] = None
    payment_status: Optional[str] = None
    promo_code_used: Optional[str] = None
    created_at: Optional[datetime] = None

    @field_serializer("created_at")
    def _created_utc(self, value: Optional[datetime]) -> Optional[str]:
        return as_utc(value).isoformat() if value else None


def public_user(user) -> Dict[str, Any]:
    return UserPublic.model_validate(user).model_dump(by_alias=True, mode="json")

