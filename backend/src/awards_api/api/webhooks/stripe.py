"""Stripe webhook receiver for subscription and invoice events."""
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.api.deps import get_db, get_stripe_adapter
from awards_api.plans import PlanRegistry, get_plan_registry
from awards_api.services.billing_event_service import BillingEventService

router = APIRouter(prefix="/webhooks/stripe", tags=["Webhooks"])


@router.post("")
async def handle_stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    stripe_adapter: StripeAdapter = Depends(get_stripe_adapter),
    registry: PlanRegistry = Depends(get_plan_registry),
) -> dict[str, Any]:
    """
    Handle incoming Stripe webhook events.

    Verifies the signature against the raw body before anything is parsed,
    then applies the event to every API key of the customer:
    - customer.subscription.deleted: downgrade to free
    - customer.subscription.updated: apply the new plan
    - invoice.payment_failed: suspend
    - invoice.payment_succeeded: restore and reset usage

    Other event types are acknowledged and ignored.
    """
    body = await request.body()
    signature = request.headers.get("stripe-signature")

    service = BillingEventService(db, registry, stripe_adapter)
    return await service.handle_webhook(body, signature)
