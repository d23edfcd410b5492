"""Stripe billing provider adapter."""
from typing import Any

import stripe

from awards_api.config import settings


class StripeAdapter:
    """Adapter for Stripe customer, subscription and webhook operations."""

    def __init__(self):
        """Initialize Stripe adapter with API key."""
        stripe.api_key = settings.stripe_secret_key

    async def find_customer_by_email(self, email: str) -> str | None:
        """
        Look up an existing Stripe customer.

        Args:
            email: Customer email

        Returns:
            Stripe customer ID, or None if no customer uses this email
        """
        customers = stripe.Customer.list(email=email, limit=1)
        if customers.data:
            return customers.data[0].id
        return None

    async def create_customer(self, email: str, name: str, metadata: dict[str, Any] | None = None) -> str:
        """
        Create a Stripe customer.

        Args:
            email: Customer email
            name: Customer name
            metadata: Additional metadata

        Returns:
            Stripe customer ID
        """
        customer = stripe.Customer.create(
            email=email,
            name=name,
            metadata=metadata or {},
        )
        return customer.id

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Create a subscription whose first payment is confirmed client-side.

        Args:
            customer_id: Stripe customer ID
            price_id: Stripe price ID
            metadata: Additional metadata

        Returns:
            Subscription details with the payment intent client secret
        """
        subscription = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            payment_settings={"save_default_payment_method": "on_subscription"},
            expand=["latest_invoice.payment_intent"],
            metadata=metadata or {},
        )

        latest_invoice = getattr(subscription, "latest_invoice", None)
        payment_intent = getattr(latest_invoice, "payment_intent", None) if latest_invoice else None
        client_secret = getattr(payment_intent, "client_secret", None) if payment_intent else None

        return {
            "id": subscription.id,
            "status": subscription.status,
            "client_secret": client_secret,
        }

    async def construct_webhook_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify the webhook signature and parse the event.

        Args:
            payload: Raw request body, exactly as received
            signature: Stripe-Signature header

        Returns:
            Event as a plain dict

        Raises:
            ValueError: If the payload is malformed or the signature does not verify
        """
        try:
            event = stripe.Webhook.construct_event(
                payload,
                signature,
                settings.stripe_webhook_secret,
                tolerance=settings.stripe_webhook_tolerance,
            )
        except ValueError as e:
            raise ValueError(f"Invalid payload: {e}") from e
        except stripe.SignatureVerificationError as e:
            raise ValueError(f"Invalid signature: {e}") from e

        return event.to_dict()
