"""Tests for Stripe billing webhooks and their effect on API keys."""
import json

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.errors import SignatureVerificationFailed
from awards_api.models.api_key import Tier
from awards_api.models.billing_event import BillingEvent
from awards_api.plans import PlanRegistry
from awards_api.services.billing_event_service import BillingEventService
from awards_api.services.provisioning_service import ProvisioningService

from tests.utils.factories import StripeEventFactory, sign_payload, signed_event


async def _post_event(async_client: AsyncClient, event: dict, **sign_kwargs):
    payload, signature = signed_event(event, **sign_kwargs)
    return await async_client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


@pytest.mark.asyncio
async def test_payment_failed_suspends_every_customer_key(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key
) -> None:
    _, first = await make_api_key(stripe_customer_id="cus_multi", tier=Tier.GAMES_PRO, allowed_domains=["games"])
    _, second = await make_api_key(stripe_customer_id="cus_multi", tier=Tier.GAMES_PRO, allowed_domains=["games"])
    _, other = await make_api_key(stripe_customer_id="cus_other")

    response = await _post_event(async_client, StripeEventFactory.create("invoice.payment_failed", "cus_multi"))

    assert response.status_code == 200
    assert response.json() == {"received": True, "handled": True, "kind": "payment.failed", "keys_updated": 2}

    for key in (first, second, other):
        await db_session.refresh(key)
    assert first.suspended is True
    assert second.suspended is True
    assert other.suspended is False


@pytest.mark.asyncio
async def test_suspended_key_is_rejected_after_payment_failure(
    async_client: AsyncClient, make_api_key
) -> None:
    raw_key, _ = await make_api_key(stripe_customer_id="cus_late")

    await _post_event(async_client, StripeEventFactory.create("invoice.payment_failed", "cus_late"))
    response = await async_client.get("/v1/games/awards", headers={"X-API-Key": raw_key})

    assert response.status_code == 403
    assert response.json()["error"] == "Suspended"


@pytest.mark.asyncio
async def test_payment_succeeded_restores_and_resets_usage_idempotently(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key
) -> None:
    _, api_key = await make_api_key(
        stripe_customer_id="cus_paid",
        tier=Tier.FILM_PRO,
        allowed_domains=["film"],
        daily_limit=50000,
        monthly_limit=500000,
        daily_used=120,
        monthly_used=4000,
        suspended=True,
    )

    for _ in range(2):
        response = await _post_event(async_client, StripeEventFactory.create("invoice.payment_succeeded", "cus_paid"))
        assert response.status_code == 200

        await db_session.refresh(api_key)
        assert api_key.suspended is False
        assert api_key.daily_used == 0
        assert api_key.monthly_used == 0
        assert api_key.tier == Tier.FILM_PRO
        assert api_key.daily_limit == 50000
        assert api_key.monthly_limit == 500000


@pytest.mark.asyncio
async def test_subscription_deleted_downgrades_to_free(
    async_client: AsyncClient, db_session: AsyncSession, film_key
) -> None:
    _, api_key = film_key

    response = await _post_event(async_client, StripeEventFactory.create("customer.subscription.deleted", "cus_film"))

    assert response.json()["kind"] == "subscription.cancelled"
    await db_session.refresh(api_key)
    assert api_key.tier == Tier.FREE
    assert api_key.daily_limit == 1000
    assert api_key.monthly_limit == 1000
    assert api_key.allowed_domains == ["games"]
    assert api_key.stripe_subscription_id is None
    assert api_key.stripe_customer_id == "cus_film"


@pytest.mark.asyncio
async def test_subscription_updated_applies_new_plan(
    async_client: AsyncClient, db_session: AsyncSession, film_key
) -> None:
    _, api_key = film_key
    event = StripeEventFactory.create(
        "customer.subscription.updated",
        "cus_film",
        StripeEventFactory.subscription("sub_upgraded", "price_bundle_pro_monthly"),
    )

    response = await _post_event(async_client, event)

    assert response.status_code == 200
    await db_session.refresh(api_key)
    assert api_key.tier == Tier.BUNDLE_PRO
    assert api_key.allowed_domains == ["games", "film"]
    assert api_key.daily_limit == 70000
    assert api_key.monthly_limit == 700000
    assert api_key.stripe_subscription_id == "sub_upgraded"


@pytest.mark.asyncio
async def test_subscription_updated_to_legacy_price(
    async_client: AsyncClient, db_session: AsyncSession, film_key
) -> None:
    _, api_key = film_key
    event = StripeEventFactory.create(
        "customer.subscription.updated",
        "cus_film",
        StripeEventFactory.subscription("sub_film", "price_enterprise_annual"),
    )

    await _post_event(async_client, event)

    await db_session.refresh(api_key)
    assert api_key.tier == Tier.ENTERPRISE
    assert api_key.daily_limit == 33333


@pytest.mark.asyncio
async def test_subscription_updated_unknown_price_fails_safe_to_free(
    async_client: AsyncClient, db_session: AsyncSession, film_key
) -> None:
    _, api_key = film_key
    event = StripeEventFactory.create(
        "customer.subscription.updated",
        "cus_film",
        StripeEventFactory.subscription("sub_film", "price_from_another_product"),
    )

    await _post_event(async_client, event)

    await db_session.refresh(api_key)
    assert api_key.tier == Tier.FREE
    assert api_key.daily_limit == 1000


@pytest.mark.asyncio
async def test_provision_then_cancel(
    async_client: AsyncClient, db_session: AsyncSession, fake_stripe, registry: PlanRegistry
) -> None:
    """A provisioned film_starter key drops to free when the subscription is deleted."""
    provisioned = await ProvisioningService(db_session, fake_stripe, registry).provision(
        "cycle@example.com", "Cycle", plan="film_starter_monthly"
    )
    assert provisioned.plan == "film_starter"
    assert provisioned.domains == ["film"]
    assert (provisioned.daily_limit, provisioned.monthly_limit) == (5000, 50000)

    await _post_event(
        async_client,
        StripeEventFactory.create("customer.subscription.deleted", provisioned.customer_id),
    )

    me = await async_client.get("/v1/keys/me", headers={"X-API-Key": provisioned.api_key})
    key = me.json()["key"]
    assert key["tier"] == "free"
    assert key["daily_limit"] == 1000
    assert key["monthly_limit"] == 1000


@pytest.mark.asyncio
async def test_duplicate_event_is_not_reapplied(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key
) -> None:
    _, api_key = await make_api_key(stripe_customer_id="cus_dup")
    event = StripeEventFactory.create("invoice.payment_succeeded", "cus_dup", event_id="evt_once")

    first = await _post_event(async_client, event)
    assert first.json()["handled"] is True

    # Usage accumulates after the renewal; a redelivery must not reset it again
    api_key.daily_used = 5
    await db_session.commit()

    second = await _post_event(async_client, event)
    assert second.status_code == 200
    assert second.json()["duplicate"] is True

    await db_session.refresh(api_key)
    assert api_key.daily_used == 5

    ledger = (await db_session.execute(select(BillingEvent))).scalars().all()
    assert [(e.stripe_event_id, e.kind, e.keys_affected) for e in ledger] == [("evt_once", "payment.succeeded", 1)]


@pytest.mark.asyncio
async def test_unknown_event_type_acknowledged(async_client: AsyncClient, db_session: AsyncSession) -> None:
    response = await _post_event(async_client, StripeEventFactory.create("charge.refunded", "cus_x"))

    assert response.status_code == 200
    assert response.json()["handled"] is False
    assert (await db_session.execute(select(BillingEvent))).scalars().all() == []


@pytest.mark.asyncio
async def test_event_without_customer_is_ignored(async_client: AsyncClient) -> None:
    response = await _post_event(async_client, StripeEventFactory.create("invoice.payment_failed", None))

    assert response.status_code == 200
    assert response.json()["handled"] is False


@pytest.mark.asyncio
async def test_bad_signature_rejected_without_changes(
    async_client: AsyncClient, db_session: AsyncSession, make_api_key
) -> None:
    _, api_key = await make_api_key(stripe_customer_id="cus_forged")

    response = await _post_event(
        async_client,
        StripeEventFactory.create("invoice.payment_failed", "cus_forged"),
        secret="whsec_wrong",
    )

    assert response.status_code == 400
    assert response.json()["error"] == "SignatureVerificationFailed"
    await db_session.refresh(api_key)
    assert api_key.suspended is False


@pytest.mark.asyncio
async def test_stale_signature_rejected(async_client: AsyncClient) -> None:
    response = await _post_event(
        async_client,
        StripeEventFactory.create("invoice.payment_failed", "cus_x"),
        timestamp=1_000_000,
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_missing_signature_rejected(async_client: AsyncClient) -> None:
    response = await async_client.post("/webhooks/stripe", content=json.dumps({"type": "invoice.payment_failed"}))

    assert response.status_code == 400
    assert response.json()["error"] == "SignatureVerificationFailed"


@pytest.mark.asyncio
async def test_tampered_payload_rejected(db_session: AsyncSession, fake_stripe, registry: PlanRegistry) -> None:
    """The signature covers the exact bytes received."""
    event = StripeEventFactory.create("invoice.payment_failed", "cus_x")
    payload = json.dumps(event)
    signature = sign_payload(payload)
    tampered = payload.replace("cus_x", "cus_y")

    service = BillingEventService(db_session, registry, fake_stripe)
    with pytest.raises(SignatureVerificationFailed):
        await service.handle_webhook(tampered.encode("utf-8"), signature)


@pytest.mark.asyncio
async def test_verified_event_is_a_plain_dict(fake_stripe) -> None:
    event = StripeEventFactory.create(
        "customer.subscription.updated",
        "cus_plain",
        data=StripeEventFactory.subscription("sub_plain", "price_film_pro_monthly"),
    )
    payload, signature = signed_event(event)

    parsed = await fake_stripe.construct_webhook_event(payload.encode("utf-8"), signature)

    assert type(parsed) is dict
    assert parsed["id"] == event["id"]
    assert parsed["data"]["object"]["customer"] == "cus_plain"
    assert parsed["data"]["object"]["items"]["data"][0]["price"]["id"] == "price_film_pro_monthly"


@pytest.mark.asyncio
async def test_signed_malformed_payload_rejected(fake_stripe) -> None:
    payload = "{not json"

    with pytest.raises(ValueError, match="Invalid payload"):
        await fake_stripe.construct_webhook_event(payload.encode("utf-8"), sign_payload(payload))
