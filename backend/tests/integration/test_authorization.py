"""Tests for API key authorization, quota consumption and suspension."""
import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from awards_api.config import Settings
from awards_api.database import Base
from awards_api.models.api_key import ApiKey, Tier
from awards_api.models.usage_log import ApiUsageLog
from awards_api.schemas.api_key import AuthorizationResult
from awards_api.schemas.error import ErrorCode
from awards_api.services.authorization_service import AuthorizationService
from tests.utils.factories import ApiKeyFactory


async def _usage_count(db_session: AsyncSession) -> int:
    return (await db_session.execute(select(func.count(ApiUsageLog.id)))).scalar()


@pytest.mark.asyncio
@pytest.mark.parametrize("domain", ["games", "film"])
async def test_demo_key_always_authorizes(db_session: AsyncSession, domain: str) -> None:
    """The demo sentinel is allowed for any domain and never metered."""
    result = await AuthorizationService(db_session).authorize("demo", domain)

    assert result.allowed is True
    assert result.metered is False
    assert result.api_key_id is None
    assert await _usage_count(db_session) == 0


@pytest.mark.asyncio
async def test_missing_key_rejected(db_session: AsyncSession) -> None:
    result = await AuthorizationService(db_session).authorize(None, "games")

    assert result.allowed is False
    assert result.reason == ErrorCode.MISSING_API_KEY


@pytest.mark.asyncio
async def test_missing_key_allowed_with_anonymous_access(db_session: AsyncSession) -> None:
    service = AuthorizationService(db_session, config=Settings(allow_anonymous_access=True))

    result = await service.authorize(None, "film")

    assert result.allowed is True
    assert result.metered is False


@pytest.mark.asyncio
async def test_unknown_key_rejected(db_session: AsyncSession) -> None:
    result = await AuthorizationService(db_session).authorize("aw_not_a_real_key", "games")

    assert result.allowed is False
    assert result.reason == ErrorCode.INVALID_API_KEY


@pytest.mark.asyncio
async def test_valid_key_consumes_quota(db_session: AsyncSession, make_api_key) -> None:
    raw_key, api_key = await make_api_key(daily_used=10, monthly_used=100)

    result = await AuthorizationService(db_session).authorize(raw_key, "games")

    assert result.allowed is True
    assert result.metered is True
    assert result.api_key_id == api_key.id
    assert result.key_prefix == api_key.key_prefix
    assert result.daily_remaining == 1000 - 11
    assert result.monthly_remaining == 1000 - 101

    await db_session.refresh(api_key)
    assert api_key.daily_used == 11
    assert api_key.monthly_used == 101
    assert api_key.last_used_at is not None


@pytest.mark.asyncio
async def test_domain_not_authorized_reports_allowed_domains(db_session: AsyncSession, make_api_key) -> None:
    raw_key, api_key = await make_api_key(allowed_domains=["games"])

    result = await AuthorizationService(db_session).authorize(raw_key, "film")

    assert result.allowed is False
    assert result.reason == ErrorCode.DOMAIN_NOT_AUTHORIZED
    assert result.allowed_domains == ["games"]

    await db_session.refresh(api_key)
    assert api_key.daily_used == 0


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"suspended": True},
        {"suspended": True, "daily_used": 1000},
        {"suspended": True, "allowed_domains": ["film"]},
        {"tier": Tier.SUSPENDED},
    ],
)
async def test_suspended_key_rejected_regardless_of_quota_or_domain(
    db_session: AsyncSession, make_api_key, overrides: dict
) -> None:
    """Suspension is reported ahead of domain and quota problems."""
    raw_key, api_key = await make_api_key(**overrides)

    result = await AuthorizationService(db_session).authorize(raw_key, "games")

    assert result.allowed is False
    assert result.reason == ErrorCode.API_KEY_SUSPENDED


@pytest.mark.asyncio
async def test_quota_is_never_exceeded(db_session: AsyncSession, make_api_key) -> None:
    """At 999/1000 one call is allowed, the next is rejected and the counter stays at the limit."""
    raw_key, api_key = await make_api_key(daily_used=999, daily_limit=1000, monthly_limit=100000)
    service = AuthorizationService(db_session)

    first = await service.authorize(raw_key, "games")
    assert first.allowed is True
    assert first.daily_remaining == 0

    await db_session.refresh(api_key)
    assert api_key.daily_used == 1000

    second = await service.authorize(raw_key, "games")
    assert second.allowed is False
    assert second.reason == ErrorCode.QUOTA_EXCEEDED
    assert second.daily_remaining == 0

    await db_session.refresh(api_key)
    assert api_key.daily_used == 1000


@pytest.mark.asyncio
async def test_monthly_quota_enforced(db_session: AsyncSession, make_api_key) -> None:
    raw_key, api_key = await make_api_key(daily_used=0, monthly_used=1000, monthly_limit=1000)

    result = await AuthorizationService(db_session).authorize(raw_key, "games")

    assert result.allowed is False
    assert result.reason == ErrorCode.QUOTA_EXCEEDED

    await db_session.refresh(api_key)
    assert api_key.monthly_used == 1000


@pytest.mark.asyncio
async def test_concurrent_callers_never_exceed_quota(tmp_path) -> None:
    """Parallel requests on separate connections at 990/1000: exactly ten are let through."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'quota.db'}",
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    raw_key, api_key = ApiKeyFactory.build({"daily_used": 990, "daily_limit": 1000, "monthly_limit": 100000})
    async with sessions() as session:
        session.add(api_key)
        await session.commit()

    async def call() -> AuthorizationResult:
        async with sessions() as session:
            result = await AuthorizationService(session).authorize(raw_key, "games")
            await session.commit()
            return result

    try:
        results = await asyncio.gather(*(call() for _ in range(25)))

        async with sessions() as session:
            stored = (await session.execute(select(ApiKey).where(ApiKey.id == api_key.id))).scalar_one()
    finally:
        await engine.dispose()

    assert sum(result.allowed for result in results) == 10
    assert {result.reason for result in results if not result.allowed} == {ErrorCode.QUOTA_EXCEEDED}
    assert sorted(result.daily_remaining for result in results if result.allowed) == list(range(10))
    assert stored.daily_used == 1000
    assert stored.monthly_used == 10
