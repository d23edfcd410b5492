"""Pydantic schemas for subscription provisioning."""
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator


class SubscriptionCreate(BaseModel):
    """Signup request; priceId takes precedence over plan."""

    email: EmailStr = Field(..., description="Customer email")
    name: str = Field(..., min_length=1, max_length=255, description="Customer name")
    plan: Optional[str] = Field(default=None, description="Plan key, e.g. film_starter_monthly")
    price_id: Optional[str] = Field(default=None, alias="priceId", description="Stripe price id")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _plan_or_price(self) -> "SubscriptionCreate":
        if not self.plan and not self.price_id:
            raise ValueError("Either plan or priceId is required")
        return self


class SubscriptionProvisioned(BaseModel):
    """Provisioning result. api_key is shown here once and cannot be retrieved again."""

    success: bool = True
    subscription_id: str
    customer_id: str
    client_secret: Optional[str] = None
    api_key: str
    plan: str = Field(..., description="Tier granted by the plan")
    plan_key: str
    domains: list[str]
    daily_limit: int
    monthly_limit: int
    price_id: str


class PlanInfo(BaseModel):
    """Public catalogue entry."""

    plan_key: str
    tier: str
    domains: list[str]
    daily_limit: int
    monthly_limit: int
    interval: Optional[str] = None
    price_id: Optional[str] = None


class PlanList(BaseModel):
    """Catalogue of plans available for signup."""

    items: list[PlanInfo]
    free: PlanInfo
