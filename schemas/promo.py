"""
Promo code schemas.

Numeric fields arrive from admin forms as numbers, numeric strings or "";
they are normalised by the promo code service, not here.
"""
from typing import Any, Optional, Union
from pydantic import AliasChoices, BaseModel, Field


class PromoCodeCreate(BaseModel):
    """Create a code; authorised by the shared admin secret."""
    admin_secret: str = Field("", validation_alias=AliasChoices("adminSecret", "admin_secret"))
    code: str = ""
    description: Optional[str] = None
    subscription_level: str = Field(
        "Tester", validation_alias=AliasChoices("subscriptionLevel", "subscription_level")
    )
    expires_at: Optional[Any] = Field(None, validation_alias=AliasChoices("expiresAt", "expires_at"))
    validity_days: Optional[Union[int, str]] = Field(
        None, validation_alias=AliasChoices("validityDays", "validity_days")
    )
    max_uses: Optional[Union[int, str]] = Field(None, validation_alias=AliasChoices("maxUses", "max_uses"))


class PromoCodeUpdate(BaseModel):
    """Partial update; only fields present in the body are applied."""
    id: int
    code: Optional[str] = None
    description: Optional[str] = None
    subscription_level: Optional[str] = Field(
        None, validation_alias=AliasChoices("subscriptionLevel", "subscription_level")
    )
    expires_at: Optional[Any] = Field(None, validation_alias=AliasChoices("expiresAt", "expires_at"))
    validity_days: Optional[Union[int, str]] = Field(
        None, validation_alias=AliasChoices("validityDays", "validity_days")
    )
    max_uses: Optional[Union[int, str]] = Field(None, validation_alias=AliasChoices("maxUses", "max_uses"))


class PromoCodeRedeem(BaseModel):
    code: str = ""
