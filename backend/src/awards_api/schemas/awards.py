"""Pydantic schemas for the awards query endpoints."""
from typing import Literal, Optional

from pydantic import BaseModel, Field

SortOrder = Literal["year_desc", "year_asc", "category", "film"]


class NominationFilters(BaseModel):
    """Filters accepted by the browse endpoints. Unset filters are omitted."""

    year: Optional[int] = None
    category: Optional[str] = None
    winner_only: Optional[bool] = None
    imdb_id: Optional[str] = None


class Credit(BaseModel):
    name: str
    role: Optional[str] = None


class NominationResult(BaseModel):
    """One nomination row in browse results."""

    ceremony_year: int
    ceremony_name: str
    category_name: str
    imdb_id: Optional[str] = None
    film_title: str
    is_win: bool
    people: list[Credit] = Field(default_factory=list)


class NominationPage(BaseModel):
    """Paginated browse response."""

    total: int
    limit: int
    offset: int
    count: int
    results: list[NominationResult]
    filters: NominationFilters


class FilmAwardStats(BaseModel):
    nominations: int
    wins: int


class FilmAwards(BaseModel):
    """All award nominations for one film."""

    imdb_id: str
    nominations: list[NominationResult]
    badges: list[str]
    stats: FilmAwardStats


class OscarStatsQuery(BaseModel):
    """Parameters of the statistics endpoint."""

    stats_type: Optional[str] = None
    year: Optional[int] = None
    category: Optional[str] = None
    role: Optional[str] = None
    limit: Optional[int] = None

    @property
    def is_overview(self) -> bool:
        return self.stats_type == "overview" or not (self.stats_type or self.year or self.category)
