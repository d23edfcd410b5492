"""Subscription signup endpoint."""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.api.deps import get_db, get_stripe_adapter
from awards_api.plans import PlanRegistry, get_plan_registry
from awards_api.schemas.subscription import SubscriptionCreate, SubscriptionProvisioned
from awards_api.services.provisioning_service import ProvisioningService

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post("", response_model=SubscriptionProvisioned, status_code=status.HTTP_201_CREATED)
async def create_subscription(
    subscription_data: SubscriptionCreate,
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
    registry: PlanRegistry = Depends(get_plan_registry),
) -> SubscriptionProvisioned:
    """
    Subscribe to a paid plan and receive an API key.

    - **email**: Customer email (required)
    - **name**: Customer name (required)
    - **plan**: Plan key, e.g. film_starter_monthly
    - **priceId**: Stripe price id (takes precedence over plan)

    The response carries the API key exactly once, together with the
    `client_secret` used to confirm the first payment client-side.
    """
    service = ProvisioningService(db, stripe_adapter, registry)
    return await service.provision(
        email=subscription_data.email,
        name=subscription_data.name,
        plan=subscription_data.plan,
        price_id=subscription_data.price_id,
    )
