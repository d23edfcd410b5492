"""Board game awards browse endpoint."""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import ApiAccess, get_db, require_domain
from awards_api.api.routing import MeteredRoute
from awards_api.models.api_key import Domain
from awards_api.schemas.awards import NominationPage, SortOrder
from awards_api.services.awards_service import DEFAULT_LIMIT, AwardsService, NominationQuery

router = APIRouter(prefix="/games", tags=["Games"], route_class=MeteredRoute)


def games_query(
    year: Optional[int] = Query(default=None, ge=1900, le=2100),
    category: Optional[str] = Query(default=None, max_length=255),
    winner: bool = Query(default=False),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1),
    offset: int = Query(default=0, ge=0),
    sort: SortOrder = Query(default="year_desc"),
) -> NominationQuery:
    return NominationQuery(
        domain=Domain.GAMES.value,
        year=year,
        category=category,
        winner_only=winner,
        sort=sort,
        limit=limit,
        offset=offset,
    )


@router.get("/awards", response_model=NominationPage)
async def list_game_awards(
    access: ApiAccess = Depends(require_domain(Domain.GAMES.value, games_query)),
    db: AsyncSession = Depends(get_db),
) -> NominationPage:
    """Browse board game award nominations across all ceremonies."""
    return await AwardsService(db).search_nominations(access.params)
