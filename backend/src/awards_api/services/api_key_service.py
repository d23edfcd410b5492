"""Key store: minting, lookup and bulk entitlement updates for API keys."""
import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.config import settings
from awards_api.models.api_key import ApiKey
from awards_api.plans import PlanDefinition, plan_registry
from awards_api.schemas.api_key import ApiKeyLimitsUpdate, ApiKeyValidation, QuotaCounters
from awards_api.schemas.error import ErrorCode

logger = structlog.get_logger(__name__)

KEY_PREFIX = "aw_"


def hash_api_key(raw_key: str) -> str:
    """HMAC-SHA256 digest of a raw key; the only form ever persisted."""
    return hmac.new(settings.api_key_pepper.encode(), raw_key.encode(), hashlib.sha256).hexdigest()


def display_prefix(raw_key: str) -> str:
    """Short, non-secret prefix used in logs and dashboards."""
    return raw_key[:10]


@dataclass
class GeneratedApiKey:
    """Outcome of minting a key. ``api_key`` is the only copy of the secret."""

    success: bool
    api_key: Optional[str] = None
    record: Optional[ApiKey] = None
    error: Optional[str] = None


class ApiKeyService:
    """Service layer for API key persistence."""

    def __init__(self, db: AsyncSession):
        """Initialize API key service with database session."""
        self.db = db

    async def get_by_key(self, raw_key: str) -> ApiKey | None:
        """
        Load the key row matching a presented secret.

        Args:
            raw_key: Key as sent by the caller

        Returns:
            ApiKey or None if not found
        """
        result = await self.db.execute(
            select(ApiKey)
            .where(ApiKey.key_hash == hash_api_key(raw_key))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_stripe_customer(self, customer_id: str) -> list[ApiKey]:
        """All keys owned by one Stripe customer."""
        result = await self.db.execute(
            select(ApiKey)
            .where(ApiKey.stripe_customer_id == customer_id)
            .order_by(ApiKey.created_at)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def validate_api_key(self, raw_key: str) -> ApiKeyValidation:
        """
        Check a key without consuming quota.

        Args:
            raw_key: Key as sent by the caller

        Returns:
            Validation result with tier and allowed domains
        """
        return self.describe(await self.get_by_key(raw_key))

    @staticmethod
    def describe(api_key: ApiKey | None) -> ApiKeyValidation:
        """Validation result for an already loaded key row."""
        if not api_key:
            return ApiKeyValidation(valid=False, error=ErrorCode.INVALID_API_KEY)

        allowed_domains = list(api_key.allowed_domains or [])
        if api_key.is_suspended:
            return ApiKeyValidation(
                valid=False,
                allowed_domains=allowed_domains,
                tier=api_key.tier.value,
                error=ErrorCode.API_KEY_SUSPENDED,
            )

        return ApiKeyValidation(valid=True, allowed_domains=allowed_domains, tier=api_key.tier.value)

    async def generate_api_key(
        self,
        email: str,
        name: Optional[str] = None,
        source: Optional[str] = None,
        notes: Optional[str] = None,
        plan: Optional[PlanDefinition] = None,
    ) -> GeneratedApiKey:
        """
        Mint a new key with the entitlements of ``plan`` (free tier by default).

        Args:
            email: Owner email
            name: Owner name
            source: Provenance, e.g. "Stripe subscription" or "admin"
            notes: Free-form note stored with the key
            plan: Plan whose limits the key starts with

        Returns:
            GeneratedApiKey holding the raw secret and the persisted row
        """
        plan = plan or plan_registry.free_plan

        # Collisions are practically impossible; retry rather than fail on one
        for _ in range(3):
            raw_key = KEY_PREFIX + secrets.token_urlsafe(32)
            key_hash = hash_api_key(raw_key)
            existing = await self.db.execute(select(ApiKey.id).where(ApiKey.key_hash == key_hash))
            if existing.scalar_one_or_none() is None:
                break
        else:
            return GeneratedApiKey(success=False, error="Could not generate a unique API key")

        api_key = ApiKey(
            key_hash=key_hash,
            key_prefix=display_prefix(raw_key),
            email=email,
            name=name,
            source=source,
            notes=notes,
            daily_used=0,
            monthly_used=0,
            suspended=False,
            **plan.as_limits(),
        )

        self.db.add(api_key)
        await self.db.flush()
        await self.db.refresh(api_key)

        logger.info(
            "api_key_generated",
            api_key_id=str(api_key.id),
            key_prefix=api_key.key_prefix,
            tier=api_key.tier.value,
            source=source,
        )

        return GeneratedApiKey(success=True, api_key=raw_key, record=api_key)

    async def update_api_key_limits(self, raw_key: str, limits: ApiKeyLimitsUpdate) -> ApiKey | None:
        """
        Apply tier, limits and billing linkage to one key.

        Args:
            raw_key: Key to update
            limits: Fields to set

        Returns:
            Updated key, or None if the key does not exist
        """
        values = limits.column_values()
        if not values:
            return await self.get_by_key(raw_key)

        result = await self.db.execute(
            update(ApiKey)
            .where(ApiKey.key_hash == hash_api_key(raw_key))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None

        return await self.get_by_key(raw_key)

    async def update_api_keys_by_stripe_customer(self, customer_id: str, limits: ApiKeyLimitsUpdate | dict[str, Any]) -> int:
        """
        Apply a partial update to every key of a Stripe customer in one statement.

        Args:
            customer_id: Stripe customer id
            limits: Fields to set

        Returns:
            Number of keys updated
        """
        values = limits.column_values() if isinstance(limits, ApiKeyLimitsUpdate) else dict(limits)
        if not values:
            return 0

        return await self._update_customer_keys(customer_id, **values)

    async def suspend_api_keys_by_stripe_customer(self, customer_id: str) -> int:
        """Block every key of a customer regardless of remaining quota."""
        return await self._update_customer_keys(customer_id, suspended=True)

    async def restore_api_keys_by_stripe_customer(self, customer_id: str) -> int:
        """Lift suspension and start a new usage cycle for every key of a customer."""
        return await self._update_customer_keys(customer_id, suspended=False, daily_used=0, monthly_used=0)

    async def _update_customer_keys(self, customer_id: str, **values: Any) -> int:
        result = await self.db.execute(
            update(ApiKey)
            .where(ApiKey.stripe_customer_id == customer_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def consume_quota(self, api_key: ApiKey) -> QuotaCounters | None:
        """
        Atomically count one call against both quotas.

        The increment only happens while both counters are below their limits
        and the key is not suspended, so concurrent callers can never push a
        counter past its limit.

        Args:
            api_key: Key row previously loaded for this request

        Returns:
            Post-increment counters, or None if the call is not allowed
        """
        result = await self.db.execute(
            update(ApiKey)
            .where(
                ApiKey.id == api_key.id,
                ApiKey.suspended.is_(False),
                ApiKey.daily_used < ApiKey.daily_limit,
                ApiKey.monthly_used < ApiKey.monthly_limit,
            )
            .values(
                daily_used=ApiKey.daily_used + 1,
                monthly_used=ApiKey.monthly_used + 1,
                last_used_at=datetime.utcnow(),
            )
            .returning(ApiKey.daily_used, ApiKey.daily_limit, ApiKey.monthly_used, ApiKey.monthly_limit)
            .execution_options(synchronize_session=False)
        )
        row = result.first()
        if row is None:
            return None

        return QuotaCounters(
            daily_used=row.daily_used,
            daily_limit=row.daily_limit,
            monthly_used=row.monthly_used,
            monthly_limit=row.monthly_limit,
        )
