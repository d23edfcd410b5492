"""Request authorization against API key entitlements."""
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.config import Settings, settings
from awards_api.metrics import api_key_authorizations_total
from awards_api.schemas.api_key import AuthorizationResult
from awards_api.schemas.error import ErrorCode
from awards_api.services.api_key_service import ApiKeyService, display_prefix

logger = structlog.get_logger(__name__)


class AuthorizationService:
    """
    Decides whether a presented key may query a dataset domain.

    Checks run in a fixed order: demo sentinel, missing key, unknown key,
    suspension, domain, quota. Suspension is checked before the domain so a
    billing problem is always reported as such.
    """

    def __init__(self, db: AsyncSession, config: Settings = settings):
        """Initialize authorization service with database session."""
        self.db = db
        self.config = config
        self.keys = ApiKeyService(db)

    async def authorize(self, presented_key: Optional[str], requested_domain: str) -> AuthorizationResult:
        """
        Authorize one request and, if allowed, count it against the key's quota.

        Args:
            presented_key: Key from header or query string, None if absent
            requested_domain: Dataset domain the endpoint serves

        Returns:
            AuthorizationResult; rejections carry an error code in ``reason``
        """
        # Unauthenticated sampling backdoor: never persisted, never metered
        if presented_key == self.config.demo_api_key:
            return self._record(requested_domain, AuthorizationResult(allowed=True, tier="demo"), "demo")

        if not presented_key:
            if self.config.allow_anonymous_access:
                return self._record(requested_domain, AuthorizationResult(allowed=True, tier="anonymous"), "anonymous")
            return self._reject(requested_domain, ErrorCode.MISSING_API_KEY)

        api_key = await self.keys.get_by_key(presented_key)
        if not api_key:
            return self._reject(requested_domain, ErrorCode.INVALID_API_KEY, key_prefix=display_prefix(presented_key))

        allowed_domains = list(api_key.allowed_domains or [])
        context = {
            "allowed_domains": allowed_domains,
            "tier": api_key.tier.value,
            "api_key_id": api_key.id,
            "key_prefix": api_key.key_prefix,
        }

        if api_key.is_suspended:
            return self._reject(requested_domain, ErrorCode.API_KEY_SUSPENDED, **context)

        if requested_domain not in allowed_domains:
            return self._reject(requested_domain, ErrorCode.DOMAIN_NOT_AUTHORIZED, **context)

        counters = await self.keys.consume_quota(api_key)
        if counters is None:
            # A billing event may have suspended the key since it was loaded
            await self.db.refresh(api_key)
            reason = ErrorCode.API_KEY_SUSPENDED if api_key.is_suspended else ErrorCode.QUOTA_EXCEEDED
            return self._reject(
                requested_domain,
                reason,
                daily_remaining=max(api_key.daily_limit - api_key.daily_used, 0),
                monthly_remaining=max(api_key.monthly_limit - api_key.monthly_used, 0),
                **context,
            )

        result = AuthorizationResult(
            allowed=True,
            daily_remaining=counters.daily_remaining,
            monthly_remaining=counters.monthly_remaining,
            metered=True,
            **context,
        )
        return self._record(requested_domain, result, "allowed")

    def _reject(self, requested_domain: str, reason: str, **fields) -> AuthorizationResult:
        result = AuthorizationResult(allowed=False, reason=reason, **fields)
        logger.info(
            "api_key_rejected",
            domain=requested_domain,
            reason=reason,
            key_prefix=result.key_prefix,
            tier=result.tier,
        )
        api_key_authorizations_total.labels(domain=requested_domain, outcome=reason).inc()
        return result

    def _record(self, requested_domain: str, result: AuthorizationResult, outcome: str) -> AuthorizationResult:
        logger.debug(
            "api_key_authorized",
            domain=requested_domain,
            outcome=outcome,
            key_prefix=result.key_prefix,
            tier=result.tier,
        )
        api_key_authorizations_total.labels(domain=requested_domain, outcome=outcome).inc()
        return result
