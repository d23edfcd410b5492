"""Academy Awards browse endpoint."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import ApiAccess, get_db, require_domain
from awards_api.api.routing import MeteredRoute
from awards_api.models.api_key import Domain
from awards_api.schemas.awards import NominationPage, SortOrder
from awards_api.services.awards_service import ACADEMY, DEFAULT_LIMIT, IMDB_ID_PATTERN, AwardsService, NominationQuery

router = APIRouter(prefix="/oscars", tags=["Film"], route_class=MeteredRoute)


def oscars_query(
    year: Optional[int] = Query(default=None, ge=1900, le=2100, description="Ceremony year"),
    category: Optional[str] = Query(default=None, max_length=255, description="Category substring"),
    winner: bool = Query(default=False, description="Only return winners"),
    imdb_id: Optional[str] = Query(default=None, description="One film"),
    limit: int = Query(default=DEFAULT_LIMIT, ge=1, description="Page size (capped at 500)"),
    offset: int = Query(default=0, ge=0),
    sort: SortOrder = Query(default="year_desc", description="year_desc, year_asc, category, film"),
) -> NominationQuery:
    return NominationQuery(
        domain=Domain.FILM.value,
        organization=ACADEMY,
        year=year,
        category=category,
        winner_only=winner,
        imdb_id=imdb_id,
        sort=sort,
        limit=limit,
        offset=offset,
    )


@router.get("", response_model=NominationPage)
async def list_oscar_nominations(
    access: ApiAccess = Depends(require_domain(Domain.FILM.value, oscars_query)),
    db: AsyncSession = Depends(get_db),
) -> NominationPage:
    """
    Browse Academy Awards nominations.

    - **year**: Ceremony year
    - **category**: Case-insensitive category substring
    - **winner**: Only winners
    - **imdb_id**: One film
    - **sort**: year_desc (default), year_asc, category, film
    """
    query: NominationQuery = access.params
    if query.imdb_id and not IMDB_ID_PATTERN.match(query.imdb_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid IMDb ID format. Expected format: tt1234567",
        )

    return await AwardsService(db).search_nominations(query)
