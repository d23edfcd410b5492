"""Per-film awards endpoint."""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.api.deps import ApiAccess, get_db, require_domain
from awards_api.api.routing import MeteredRoute
from awards_api.models.api_key import Domain
from awards_api.schemas.awards import FilmAwards
from awards_api.services.awards_service import IMDB_ID_PATTERN, AwardsService

router = APIRouter(prefix="/film-awards", tags=["Film"], route_class=MeteredRoute)


def film_query(imdb_id: str = Query(..., description="IMDb title id, e.g. tt0111161")) -> str:
    return imdb_id


@router.get("", response_model=FilmAwards)
async def get_film_awards(
    access: ApiAccess = Depends(require_domain(Domain.FILM.value, film_query)),
    db: AsyncSession = Depends(get_db),
) -> FilmAwards:
    """
    All award nominations and wins for one film.

    Returns nominations with credited people, display badges, and totals.
    """
    imdb_id: str = access.params
    if not IMDB_ID_PATTERN.match(imdb_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid IMDb ID format. Expected format: tt1234567",
        )

    awards = await AwardsService(db).film_awards(imdb_id)
    if awards is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No awards found for {imdb_id}",
        )

    return awards
