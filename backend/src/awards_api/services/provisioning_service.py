"""Subscription provisioning: Stripe customer + subscription + API key."""
from typing import Optional

import stripe
import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.errors import BillingProviderError, InvalidPlan, PersistenceError
from awards_api.metrics import api_keys_provisioned_total, provisioning_reconciliation_required_total
from awards_api.plans import PlanDefinition, PlanRegistry
from awards_api.schemas.api_key import ApiKeyLimitsUpdate
from awards_api.schemas.subscription import SubscriptionProvisioned
from awards_api.services.api_key_service import ApiKeyService

logger = structlog.get_logger(__name__)

CUSTOMER_SOURCE = "awards_api"
KEY_SOURCE = "Stripe subscription"


class ProvisioningService:
    """Signs up a paying customer and issues their API key."""

    def __init__(self, db: AsyncSession, stripe_adapter: StripeAdapter, registry: PlanRegistry):
        """Initialize provisioning service with database session, Stripe adapter and plan registry."""
        self.db = db
        self.stripe = stripe_adapter
        self.registry = registry
        self.keys = ApiKeyService(db)

    def resolve_plan(self, plan: Optional[str], price_id: Optional[str]) -> PlanDefinition:
        """
        Resolve the requested plan; ``price_id`` takes precedence over ``plan``.

        Raises:
            InvalidPlan: Unknown, legacy, or unpriced plan
        """
        definition = self.registry.get(price_id) if price_id else self.registry.get(plan)

        if definition is None or definition.legacy or not definition.price_id:
            raise InvalidPlan(
                "Invalid plan or price ID",
                available_plans=self.registry.plan_keys(),
            )

        return definition

    async def provision(
        self,
        email: str,
        name: str,
        plan: Optional[str] = None,
        price_id: Optional[str] = None,
    ) -> SubscriptionProvisioned:
        """
        Create or reuse the Stripe customer, subscribe them, and mint a key.

        The key is issued before payment completes; the billing webhook
        suspends it later if the first invoice is never paid.

        Args:
            email: Customer email
            name: Customer name
            plan: Plan key
            price_id: Stripe price ID

        Returns:
            Provisioning result containing the raw API key

        Raises:
            InvalidPlan: Plan cannot be resolved (no side effects)
            BillingProviderError: Stripe customer or subscription creation failed
            PersistenceError: Stripe subscription exists but the key could not be stored
        """
        definition = self.resolve_plan(plan, price_id)
        domains_csv = ",".join(definition.domains)

        logger.info("provisioning_started", plan_key=definition.plan_key, tier=definition.tier.value)

        try:
            customer_id = await self.stripe.find_customer_by_email(email)
            if customer_id:
                logger.info("stripe_customer_reused", customer_id=customer_id)
            else:
                customer_id = await self.stripe.create_customer(
                    email=email,
                    name=name,
                    metadata={
                        "source": CUSTOMER_SOURCE,
                        "tier": definition.tier.value,
                        "domains": domains_csv,
                    },
                )
                logger.info("stripe_customer_created", customer_id=customer_id)

            subscription = await self.stripe.create_subscription(
                customer_id=customer_id,
                price_id=definition.price_id,
                metadata={
                    "tier": definition.tier.value,
                    "domains": domains_csv,
                    "daily_limit": str(definition.daily_limit),
                    "monthly_limit": str(definition.monthly_limit),
                },
            )
        except stripe.StripeError as e:
            logger.error(
                "stripe_provisioning_failed",
                plan_key=definition.plan_key,
                stripe_code=getattr(e, "code", None),
                error=str(e),
            )
            raise BillingProviderError(f"Failed to create subscription: {e.user_message or e}") from e

        subscription_id = subscription["id"]

        try:
            generated = await self.keys.generate_api_key(
                email,
                name=name,
                source=KEY_SOURCE,
                notes=f"Tier: {definition.tier.value}",
                plan=definition,
            )
            if not generated.success:
                raise PersistenceError(generated.error or "Failed to generate API key")

            await self.keys.update_api_key_limits(
                generated.api_key,
                ApiKeyLimitsUpdate(
                    tier=definition.tier,
                    allowed_domains=list(definition.domains),
                    daily_limit=definition.daily_limit,
                    monthly_limit=definition.monthly_limit,
                    stripe_customer_id=customer_id,
                    stripe_subscription_id=subscription_id,
                ),
            )
            await self.db.commit()
        except (SQLAlchemyError, PersistenceError) as e:
            await self.db.rollback()
            provisioning_reconciliation_required_total.inc()
            logger.error(
                "provisioning_reconciliation_required",
                customer_id=customer_id,
                subscription_id=subscription_id,
                plan_key=definition.plan_key,
                error=str(e),
            )
            raise PersistenceError(
                "Subscription was created but the API key could not be stored",
                customer_id=customer_id,
                subscription_id=subscription_id,
            ) from e

        api_keys_provisioned_total.labels(tier=definition.tier.value).inc()
        logger.info(
            "provisioning_completed",
            customer_id=customer_id,
            subscription_id=subscription_id,
            key_prefix=generated.record.key_prefix,
            tier=definition.tier.value,
        )

        return SubscriptionProvisioned(
            subscription_id=subscription_id,
            customer_id=customer_id,
            client_secret=subscription.get("client_secret"),
            api_key=generated.api_key,
            plan=definition.tier.value,
            plan_key=definition.plan_key,
            domains=list(definition.domains),
            daily_limit=definition.daily_limit,
            monthly_limit=definition.monthly_limit,
            price_id=definition.price_id,
        )
