"""Academy Awards statistics endpoint."""
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import ApiAccess, get_db, require_domain
from awards_api.api.routing import MeteredRoute
from awards_api.cache import RedisCache, cache_key, get_cache
from awards_api.models.api_key import Domain
from awards_api.schemas.awards import OscarStatsQuery
from awards_api.services.awards_service import AwardsService

router = APIRouter(prefix="/oscar-stats", tags=["Film"], route_class=MeteredRoute)


def stats_query(
    type: Optional[str] = Query(default=None, description="overview, categories, years, top_films, top_people"),
    year: Optional[int] = Query(default=None, ge=1900, le=2100),
    category: Optional[str] = Query(default=None, max_length=255),
    role: Optional[str] = Query(default=None, max_length=100, description="Role filter for top_people"),
    limit: Optional[int] = Query(default=None, ge=1),
) -> OscarStatsQuery:
    return OscarStatsQuery(stats_type=type, year=year, category=category, role=role, limit=limit)


@router.get("")
async def get_oscar_stats(
    access: ApiAccess = Depends(require_domain(Domain.FILM.value, stats_query)),
    db: AsyncSession = Depends(get_db),
    cache: RedisCache = Depends(get_cache),
) -> dict[str, Any]:
    """
    Aggregate Academy Awards statistics.

    Without parameters returns the overview. `year` or `category` alone
    return a summary for that ceremony year or category.
    """
    query: OscarStatsQuery = access.params
    key = cache_key("oscar_stats", "overview")

    if query.is_overview:
        cached = await cache.get(key)
        if cached:
            return cached

    try:
        stats = await AwardsService(db).oscar_stats(
            stats_type=query.stats_type,
            year=query.year,
            category=query.category,
            role=query.role,
            limit=query.limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if "error" in stats:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=stats["error"])

    if query.is_overview:
        await cache.set(key, stats)

    return stats
