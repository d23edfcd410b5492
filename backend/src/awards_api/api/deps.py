"""FastAPI dependencies for database sessions, API key access and adapters."""
import time
from typing import Any, Callable, Optional

import structlog
from fastapi import Depends, Request, Response
from fastapi.security import APIKeyHeader, APIKeyQuery
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.database import get_db, get_session_factory
from awards_api.errors import REJECTIONS
from awards_api.schemas.api_key import AuthorizationResult
from awards_api.schemas.error import ErrorCode
from awards_api.services.authorization_service import AuthorizationService
from awards_api.services.usage_service import UsageService

__all__ = [
    "ApiAccess",
    "get_db",
    "get_presented_key",
    "get_stripe_adapter",
    "get_usage_service",
    "require_domain",
]

logger = structlog.get_logger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
apikey_query = APIKeyQuery(name="apikey", auto_error=False)
api_key_query = APIKeyQuery(name="api_key", auto_error=False)

REJECTION_MESSAGES = {
    ErrorCode.MISSING_API_KEY: "API key required",
    ErrorCode.INVALID_API_KEY: "Invalid API key",
    ErrorCode.API_KEY_SUSPENDED: "API key suspended",
    ErrorCode.DOMAIN_NOT_AUTHORIZED: "API key not authorized for {domain} domain",
    ErrorCode.QUOTA_EXCEEDED: "API quota exceeded",
}


async def get_stripe_adapter() -> StripeAdapter:
    """Get Stripe adapter instance."""
    return StripeAdapter()


def get_usage_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> UsageService:
    """Usage logger bound to its own sessions."""
    return UsageService(session_factory)


async def get_presented_key(
    header_key: Optional[str] = Depends(api_key_header),
    apikey: Optional[str] = Depends(apikey_query),
    api_key: Optional[str] = Depends(api_key_query),
) -> Optional[str]:
    """API key from the X-API-Key header, else the apikey or api_key query parameter."""
    return header_key or apikey or api_key or None


def client_ip(request: Request) -> Optional[str]:
    """Caller address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class ApiAccess:
    """
    An authorized request to a dataset endpoint.

    Attaches itself to the request state; ``MeteredRoute`` writes the usage
    record from it once the final status code is known.
    """

    def __init__(
        self,
        request: Request,
        authorization: AuthorizationResult,
        usage: UsageService,
        params: Any = None,
    ):
        self.request = request
        self.authorization = authorization
        self.usage = usage
        self.params = params
        self.started = time.perf_counter()
        request.state.api_access = self

    @staticmethod
    def current(request: Request) -> Optional["ApiAccess"]:
        """Access attached to this request, None if authorization never accepted it."""
        return getattr(request.state, "api_access", None)

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)

    async def record(self, status_code: int, latency_ms: Optional[int]) -> None:
        """Write the usage record for metered keys; demo and anonymous calls are not logged."""
        if not self.authorization.metered:
            return

        await self.usage.log_api_usage(
            api_key_id=self.authorization.api_key_id,
            key_prefix=self.authorization.key_prefix,
            path=self.request.url.path,
            params=dict(self.request.query_params),
            latency_ms=latency_ms,
            status_code=status_code,
            client_ip=client_ip(self.request),
            client_class=self.request.headers.get("user-agent"),
        )


def require_domain(domain: str, params: Callable[..., Any]) -> Callable:
    """
    Build a dependency that authorizes the caller for one dataset domain.

    ``params`` is the endpoint's query parameter dependency. It is resolved
    first, so a request with invalid parameters is rejected with 422 before
    any quota is consumed. The quota increment is committed immediately so
    an accepted call is counted even if the handler later fails.

    Args:
        domain: Dataset domain served by the endpoint (games, film)
        params: Dependency parsing the endpoint's query parameters

    Returns:
        Dependency resolving to ApiAccess, with the parsed parameters in ``params``

    Raises:
        AwardsAPIError: The rejection matching the validator's reason
    """

    async def dependency(
        request: Request,
        response: Response,
        parsed: Any = Depends(params),
        presented_key: Optional[str] = Depends(get_presented_key),
        db: AsyncSession = Depends(get_db),
        usage: UsageService = Depends(get_usage_service),
    ) -> ApiAccess:
        result = await AuthorizationService(db).authorize(presented_key, domain)

        if not result.allowed:
            error_cls = REJECTIONS[result.reason]
            extra = {}
            if result.reason == ErrorCode.DOMAIN_NOT_AUTHORIZED:
                extra["allowed_domains"] = result.allowed_domains
            elif result.reason == ErrorCode.QUOTA_EXCEEDED:
                extra["daily_remaining"] = result.daily_remaining
                extra["monthly_remaining"] = result.monthly_remaining
            raise error_cls(REJECTION_MESSAGES[result.reason].format(domain=domain), **extra)

        if result.metered:
            await db.commit()
            response.headers["X-Quota-Daily-Remaining"] = str(result.daily_remaining)
            response.headers["X-Quota-Monthly-Remaining"] = str(result.monthly_remaining)

        return ApiAccess(request, result, usage, params=parsed)

    return dependency
