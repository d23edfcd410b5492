"""Best-effort API usage logging and usage analytics."""
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from awards_api.metrics import usage_log_failures_total, usage_logged_total
from awards_api.models.usage_log import ApiUsageLog

logger = structlog.get_logger(__name__)

# Query parameters that may carry the secret and must never be logged
SECRET_PARAMS = frozenset({"apikey", "api_key", "key"})


def scrub_params(params: dict[str, Any] | None) -> dict[str, Any]:
    """Drop key-carrying parameters from a query dict before persisting it."""
    return {k: v for k, v in (params or {}).items() if k.lower() not in SECRET_PARAMS}


class UsageService:
    """
    Writes one usage record per metered request.

    Uses its own session so the record is committed independently of the
    request transaction.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        """Initialize usage service with a session factory."""
        self.session_factory = session_factory

    async def log_api_usage(
        self,
        api_key_id: Optional[UUID],
        key_prefix: Optional[str],
        path: str,
        params: dict[str, Any] | None,
        latency_ms: Optional[int],
        status_code: int,
        client_ip: Optional[str] = None,
        client_class: Optional[str] = None,
    ) -> bool:
        """
        Record one API call. Never raises.

        Args:
            api_key_id: Key row id
            key_prefix: Display prefix of the key
            path: Endpoint path
            params: Request parameters (secrets are stripped)
            latency_ms: Handler latency, None if the handler failed before timing
            status_code: Final HTTP status
            client_ip: Caller address
            client_class: Caller user agent

        Returns:
            True if the record was written, False otherwise
        """
        try:
            async with self.session_factory() as session:
                session.add(
                    ApiUsageLog(
                        api_key_id=api_key_id,
                        key_prefix=key_prefix,
                        path=path,
                        params=scrub_params(params),
                        latency_ms=latency_ms,
                        status_code=status_code,
                        client_ip=client_ip,
                        client_class=(client_class or "unknown")[:255],
                        timestamp=datetime.utcnow(),
                    )
                )
                await session.commit()
        except Exception as e:
            usage_log_failures_total.inc()
            logger.warning(
                "usage_log_failed",
                key_prefix=key_prefix,
                path=path,
                status_code=status_code,
                error=str(e),
            )
            return False

        usage_logged_total.labels(status_code=str(status_code)).inc()
        return True

    async def usage_summary(self, api_key_id: UUID, since: Optional[datetime] = None) -> list[dict[str, Any]]:
        """
        Aggregate logged calls per path for one key.

        Args:
            api_key_id: Key row id
            since: Only count calls at or after this time

        Returns:
            List of {path, requests, errors, avg_latency_ms}
        """
        errors = func.sum(case((ApiUsageLog.status_code >= 400, 1), else_=0))
        query = (
            select(
                ApiUsageLog.path,
                func.count(ApiUsageLog.id).label("requests"),
                errors.label("errors"),
                func.avg(ApiUsageLog.latency_ms).label("avg_latency_ms"),
            )
            .where(ApiUsageLog.api_key_id == api_key_id)
            .group_by(ApiUsageLog.path)
            .order_by(ApiUsageLog.path)
        )
        if since is not None:
            query = query.where(ApiUsageLog.timestamp >= since)

        async with self.session_factory() as session:
            result = await session.execute(query)
            rows = result.all()

        return [
            {
                "path": row.path,
                "requests": row.requests,
                "errors": int(row.errors or 0),
                "avg_latency_ms": round(float(row.avg_latency_ms), 2) if row.avg_latency_ms is not None else None,
            }
            for row in rows
        ]
