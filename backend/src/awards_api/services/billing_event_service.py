"""Applies Stripe billing lifecycle events to API key entitlements."""
import enum
from typing import Any, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.errors import SignatureVerificationFailed
from awards_api.metrics import billing_event_keys_updated_total, billing_events_total
from awards_api.models.billing_event import BillingEvent
from awards_api.plans import PlanRegistry
from awards_api.schemas.api_key import ApiKeyLimitsUpdate
from awards_api.services.api_key_service import ApiKeyService

logger = structlog.get_logger(__name__)


class BillingEventKind(str, enum.Enum):
    """Normalized billing lifecycle transitions."""

    SUBSCRIPTION_CANCELLED = "subscription.cancelled"
    SUBSCRIPTION_UPDATED = "subscription.updated"
    PAYMENT_FAILED = "payment.failed"
    PAYMENT_SUCCEEDED = "payment.succeeded"


STRIPE_EVENT_KINDS = {
    "customer.subscription.deleted": BillingEventKind.SUBSCRIPTION_CANCELLED,
    "customer.subscription.updated": BillingEventKind.SUBSCRIPTION_UPDATED,
    "invoice.payment_failed": BillingEventKind.PAYMENT_FAILED,
    "invoice.payment_succeeded": BillingEventKind.PAYMENT_SUCCEEDED,
}


def subscription_price_id(subscription: dict[str, Any]) -> Optional[str]:
    """Price of the first subscription item, if any."""
    items = (subscription.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id") if isinstance(price, dict) else price


class BillingEventService:
    """
    State machine driven by Stripe events, applied per customer.

    Every transition writes absolute values (tier, limits, suspended flag,
    zeroed counters), so applying the same event twice has no further effect.
    """

    def __init__(self, db: AsyncSession, registry: PlanRegistry, stripe_adapter: StripeAdapter | None = None):
        """Initialize billing event service with database session and plan registry."""
        self.db = db
        self.registry = registry
        self.stripe = stripe_adapter
        self.keys = ApiKeyService(db)

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """
        Verify a signed webhook delivery and apply it.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            Acknowledgement body

        Raises:
            SignatureVerificationFailed: Before any state is touched
        """
        if not signature:
            logger.error("stripe_webhook_missing_signature")
            raise SignatureVerificationFailed("Missing Stripe signature")

        if self.stripe is None:
            raise RuntimeError("BillingEventService needs a Stripe adapter to verify webhooks")

        try:
            event = await self.stripe.construct_webhook_event(payload, signature)
        except ValueError as e:
            logger.error("stripe_webhook_verification_failed", error=str(e))
            raise SignatureVerificationFailed("Webhook signature verification failed") from e

        return await self.handle_event(event)

    async def handle_event(self, event: dict[str, Any]) -> dict[str, Any]:
        """
        Apply one verified Stripe event to every key of its customer.

        Args:
            event: Parsed Stripe event

        Returns:
            Acknowledgement with the normalized kind and number of keys updated
        """
        event_id = event.get("id")
        event_type = event.get("type", "")
        data = (event.get("data") or {}).get("object") or {}
        customer_id = data.get("customer")
        kind = STRIPE_EVENT_KINDS.get(event_type)

        logger.info(
            "stripe_webhook_received",
            event_id=event_id,
            event_type=event_type,
            customer_id=customer_id,
        )

        if kind is None:
            logger.info("stripe_webhook_unhandled_event", event_type=event_type)
            billing_events_total.labels(event_type=event_type, result="ignored").inc()
            return {"received": True, "handled": False, "event_type": event_type}

        if event_id and await self._already_processed(event_id):
            logger.info("stripe_webhook_duplicate_event", event_id=event_id, event_type=event_type)
            billing_events_total.labels(event_type=event_type, result="duplicate").inc()
            return {"received": True, "handled": False, "duplicate": True, "event_type": event_type}

        if not customer_id:
            logger.warning("stripe_webhook_missing_customer", event_id=event_id, event_type=event_type)
            billing_events_total.labels(event_type=event_type, result="ignored").inc()
            return {"received": True, "handled": False, "event_type": event_type}

        updated = await self.apply(kind, customer_id, data)

        if event_id:
            self.db.add(
                BillingEvent(
                    stripe_event_id=event_id,
                    event_type=event_type,
                    kind=kind.value,
                    stripe_customer_id=customer_id,
                    keys_affected=updated,
                )
            )
        await self.db.commit()

        billing_events_total.labels(event_type=event_type, result="applied").inc()
        billing_event_keys_updated_total.labels(kind=kind.value).inc(updated)
        logger.info(
            "stripe_webhook_applied",
            event_id=event_id,
            kind=kind.value,
            customer_id=customer_id,
            keys_updated=updated,
        )

        return {"received": True, "handled": True, "kind": kind.value, "keys_updated": updated}

    async def apply(self, kind: BillingEventKind, customer_id: str, data: dict[str, Any]) -> int:
        """
        Run one transition for every key owned by ``customer_id``.

        Returns:
            Number of keys updated
        """
        if kind == BillingEventKind.SUBSCRIPTION_CANCELLED:
            return await self.subscription_cancelled(customer_id)
        if kind == BillingEventKind.SUBSCRIPTION_UPDATED:
            return await self.subscription_updated(customer_id, data)
        if kind == BillingEventKind.PAYMENT_FAILED:
            return await self.payment_failed(customer_id)
        return await self.payment_succeeded(customer_id)

    async def subscription_cancelled(self, customer_id: str) -> int:
        """Downgrade to the free tier and drop the subscription link."""
        free = self.registry.free_plan
        return await self.keys.update_api_keys_by_stripe_customer(
            customer_id,
            ApiKeyLimitsUpdate(**free.as_limits(), stripe_subscription_id=None),
        )

    async def subscription_updated(self, customer_id: str, subscription: dict[str, Any]) -> int:
        """Apply the entitlements of the subscription's current price (free if unknown)."""
        price_id = subscription_price_id(subscription)
        plan = self.registry.lookup(price_id)

        if plan is self.registry.free_plan:
            logger.warning("stripe_webhook_unknown_price", customer_id=customer_id, price_id=price_id)

        values = ApiKeyLimitsUpdate(**plan.as_limits())
        if subscription.get("id"):
            values.stripe_subscription_id = subscription["id"]

        return await self.keys.update_api_keys_by_stripe_customer(customer_id, values)

    async def payment_failed(self, customer_id: str) -> int:
        """Suspend access; suspension outranks any remaining quota."""
        return await self.keys.suspend_api_keys_by_stripe_customer(customer_id)

    async def payment_succeeded(self, customer_id: str) -> int:
        """Restore access and start a new usage cycle."""
        return await self.keys.restore_api_keys_by_stripe_customer(customer_id)

    async def _already_processed(self, event_id: str) -> bool:
        result = await self.db.execute(select(BillingEvent.id).where(BillingEvent.stripe_event_id == event_id))
        return result.scalar_one_or_none() is not None
