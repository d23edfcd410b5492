"""Test data factories using Faker for generating realistic test data."""
import json
import secrets
import time
import hashlib
import hmac
from typing import Any

from faker import Faker

from awards_api.config import settings
from awards_api.models.api_key import ApiKey, Tier
from awards_api.services.api_key_service import KEY_PREFIX, display_prefix, hash_api_key

fake = Faker()


class ApiKeyFactory:
    """Factory for creating API key rows together with their raw secret."""

    @staticmethod
    def build(overrides: dict[str, Any] | None = None) -> tuple[str, ApiKey]:
        """
        Build an unsaved API key.

        Args:
            overrides: Optional column overrides

        Returns:
            tuple: (raw key, ApiKey instance)
        """
        raw_key = KEY_PREFIX + secrets.token_urlsafe(24)
        data = {
            "key_hash": hash_api_key(raw_key),
            "key_prefix": display_prefix(raw_key),
            "email": fake.email(),
            "name": fake.name(),
            "tier": Tier.FREE,
            "allowed_domains": ["games"],
            "daily_limit": 1000,
            "monthly_limit": 1000,
            "daily_used": 0,
            "monthly_used": 0,
            "suspended": False,
            "source": "test",
        }
        if overrides:
            data.update(overrides)
        return raw_key, ApiKey(**data)


class StripeEventFactory:
    """Factory for Stripe webhook event payloads."""

    @staticmethod
    def create(
        event_type: str,
        customer_id: str | None,
        data: dict[str, Any] | None = None,
        event_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a Stripe event dict.

        Args:
            event_type: Stripe event type, e.g. invoice.payment_failed
            customer_id: Customer the object belongs to (None to omit)
            data: Extra fields merged into data.object
            event_id: Event id (random by default)

        Returns:
            dict: Event payload
        """
        obj: dict[str, Any] = {"id": f"obj_{fake.uuid4()[:12]}", "object": event_type.split(".")[0]}
        if customer_id is not None:
            obj["customer"] = customer_id
        if data:
            obj.update(data)
        return {
            "id": event_id or f"evt_{fake.uuid4().replace('-', '')[:24]}",
            "object": "event",
            "type": event_type,
            "created": int(time.time()),
            "data": {"object": obj},
        }

    @staticmethod
    def subscription(subscription_id: str, price_id: str) -> dict[str, Any]:
        """data.object fields of a subscription on one price."""
        return {
            "id": subscription_id,
            "object": "subscription",
            "status": "active",
            "items": {"data": [{"id": f"si_{fake.uuid4()[:8]}", "price": {"id": price_id}}]},
        }


def sign_payload(payload: str, secret: str | None = None, timestamp: int | None = None) -> str:
    """
    Build a Stripe-Signature header for a payload.

    Args:
        payload: Raw JSON body exactly as sent
        secret: Webhook secret (default: configured secret)
        timestamp: Signature timestamp (default: now)

    Returns:
        str: Header value "t=...,v1=..."
    """
    timestamp = timestamp if timestamp is not None else int(time.time())
    secret = secret if secret is not None else settings.stripe_webhook_secret
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_event(event: dict[str, Any], **kwargs: Any) -> tuple[str, str]:
    """Serialize an event and sign it; returns (payload, signature header)."""
    payload = json.dumps(event)
    return payload, sign_payload(payload, **kwargs)
