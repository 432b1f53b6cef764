"""
Admin user-management schemas.
"""
from datetime import datetime
from typing import Optional
from pydantic import AliasChoices, BaseModel, Field


class AdminUserUpdate(BaseModel):
    """Partial subscription update; only fields present in the body are applied."""
    user_id: int = Field(..., validation_alias=AliasChoices("userId", "user_id"))
    subscription_level: Optional[str] = Field(
        None, validation_alias=AliasChoices("subscriptionLevel", "subscription_level")
    )
    subscription_start: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("subscriptionStart", "subscription_start")
    )
    subscription_end: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("subscriptionEnd", "subscription_end")
    )


class AdminApplyPromoCode(BaseModel):
    user_id: int = Field(..., validation_alias=AliasChoices("userId", "user_id"))
    promo_code: str = Field("", validation_alias=AliasChoices("promoCode", "code", "promo_code"))


class AdminUserDelete(BaseModel):
    user_id: int = Field(..., validation_alias=AliasChoices("userId", "user_id"))


class SubscriptionUpdate(BaseModel):
    """Self-service level change."""
    subscription_level: str = Field(..., validation_alias=AliasChoices("subscriptionLevel", "subscription_level"))


class FeedbackCreate(BaseModel):
    message: str = ""
    page: Optional[str] = None


class FeedbackUpdate(BaseModel):
    id: int
    done: bool = False


class FeedbackDelete(BaseModel):
    id: int
