"""Pydantic schemas for API keys, validation results and limit updates."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from awards_api.models.api_key import Tier


class ApiKeyValidation(BaseModel):
    """Result of looking up a presented key without consuming quota."""

    valid: bool
    allowed_domains: list[str] = Field(default_factory=list)
    tier: Optional[str] = None
    error: Optional[str] = Field(default=None, description="Error code when the key is not valid")


class AuthorizationResult(BaseModel):
    """Decision returned by the validator for one request."""

    allowed: bool
    reason: Optional[str] = Field(default=None, description="Error code when the request is rejected")
    allowed_domains: list[str] = Field(default_factory=list)
    tier: Optional[str] = None
    api_key_id: Optional[UUID] = None
    key_prefix: Optional[str] = None
    daily_remaining: Optional[int] = None
    monthly_remaining: Optional[int] = None
    metered: bool = Field(default=False, description="True when the call must be written to the usage log")


class ApiKeyLimitsUpdate(BaseModel):
    """Partial entitlement update applied to one key or to every key of a customer."""

    tier: Optional[Tier] = None
    allowed_domains: Optional[list[str]] = None
    daily_limit: Optional[int] = Field(default=None, ge=0)
    monthly_limit: Optional[int] = Field(default=None, ge=0)
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    def column_values(self) -> dict[str, Any]:
        """Only the fields that were explicitly set, including explicit None."""
        return self.model_dump(exclude_unset=True)


class QuotaCounters(BaseModel):
    """Counters returned by an atomic quota increment."""

    daily_used: int
    daily_limit: int
    monthly_used: int
    monthly_limit: int

    @property
    def daily_remaining(self) -> int:
        return max(self.daily_limit - self.daily_used, 0)

    @property
    def monthly_remaining(self) -> int:
        return max(self.monthly_limit - self.monthly_used, 0)


class ApiKeyInfo(BaseModel):
    """Public view of a key; never includes the secret."""

    key_prefix: str
    email: str
    tier: Tier
    allowed_domains: list[str]
    daily_limit: int
    monthly_limit: int
    daily_used: int
    monthly_used: int
    suspended: bool
    created_at: datetime
    last_used_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
