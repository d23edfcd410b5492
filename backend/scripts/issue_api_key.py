#!/usr/bin/env python3
"""
API key administration script.

Mints keys outside the Stripe signup flow (partners, free accounts, support
replacements) and inspects or changes existing keys by customer.

Usage:
    # Issue a free-tier key
    python issue_api_key.py issue --email dev@example.com --name "Dev"

    # Issue a key with the entitlements of a plan (no Stripe subscription)
    python issue_api_key.py issue --email partner@example.com --plan bundle_pro_monthly

    # Show a key (tier, domains, usage)
    python issue_api_key.py show --key aw_...

    # Suspend or restore every key of a Stripe customer
    python issue_api_key.py suspend --customer cus_123
    python issue_api_key.py restore --customer cus_123
"""

import argparse
import asyncio
import sys

import structlog

from awards_api.database import AsyncSessionLocal
from awards_api.middleware.logging import setup_logging
from awards_api.plans import plan_registry
from awards_api.schemas.api_key import ApiKeyInfo
from awards_api.services.api_key_service import ApiKeyService

logger = structlog.get_logger("issue_api_key")


async def issue(email: str, name: str | None, plan_key: str | None, notes: str | None) -> int:
    """Mint a key and print the secret once."""
    plan = None
    if plan_key:
        plan = plan_registry.get(plan_key)
        if plan is None:
            print(f"Unknown plan {plan_key}. Available: {', '.join(plan_registry.plan_keys(include_legacy=True))}")
            return 1

    async with AsyncSessionLocal() as session:
        generated = await ApiKeyService(session).generate_api_key(
            email,
            name=name,
            source="admin",
            notes=notes,
            plan=plan,
        )
        if not generated.success:
            logger.error("api_key_issue_failed", email=email, error=generated.error)
            return 1
        await session.commit()

    record = generated.record
    print(f"API key: {generated.api_key}")
    print(f"Tier: {record.tier.value}  Domains: {', '.join(record.allowed_domains)}")
    print(f"Limits: {record.daily_limit}/day, {record.monthly_limit}/month")
    print("Store the key now; it cannot be shown again.")
    return 0


async def show(raw_key: str) -> int:
    """Print a key's entitlements and usage counters."""
    async with AsyncSessionLocal() as session:
        api_key = await ApiKeyService(session).get_by_key(raw_key)

    if api_key is None:
        print("No such API key")
        return 1

    print(ApiKeyInfo.model_validate(api_key).model_dump_json(indent=2))
    return 0


async def set_suspended(customer_id: str, suspended: bool) -> int:
    """Suspend or restore every key of a Stripe customer."""
    async with AsyncSessionLocal() as session:
        service = ApiKeyService(session)
        if suspended:
            updated = await service.suspend_api_keys_by_stripe_customer(customer_id)
        else:
            updated = await service.restore_api_keys_by_stripe_customer(customer_id)
        await session.commit()

    logger.info(
        "api_keys_suspended" if suspended else "api_keys_restored",
        customer_id=customer_id,
        keys_updated=updated,
    )
    print(f"{updated} key(s) updated")
    return 0 if updated else 1


def main():
    """Main entry point for the API key administration script."""
    parser = argparse.ArgumentParser(
        description="Issue and manage API keys",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    issue_parser = subparsers.add_parser("issue", help="Mint a new API key")
    issue_parser.add_argument("--email", required=True, help="Owner email")
    issue_parser.add_argument("--name", help="Owner name")
    issue_parser.add_argument("--plan", help="Plan key whose entitlements the key gets (default: free)")
    issue_parser.add_argument("--notes", help="Note stored with the key")

    show_parser = subparsers.add_parser("show", help="Show a key's tier and usage")
    show_parser.add_argument("--key", required=True, help="Raw API key")

    for action in ("suspend", "restore"):
        sub = subparsers.add_parser(action, help=f"{action.capitalize()} every key of a Stripe customer")
        sub.add_argument("--customer", required=True, help="Stripe customer id")

    args = parser.parse_args()
    setup_logging()

    if args.action == "issue":
        return asyncio.run(issue(args.email, args.name, args.plan, args.notes))
    if args.action == "show":
        return asyncio.run(show(args.key))
    return asyncio.run(set_suspended(args.customer, args.action == "suspend"))


if __name__ == "__main__":
    sys.exit(main())
