"""Read-only queries over the awards dataset."""
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import Select, case, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from awards_api.models.awards import AwardCategory, Ceremony, Nomination, NominationPerson, Person
from awards_api.schemas.awards import (
    FilmAwards,
    FilmAwardStats,
    NominationFilters,
    NominationPage,
    NominationResult,
)

ACADEMY = "%Academy%"
IMDB_ID_PATTERN = re.compile(r"^tt\d{7,}$")

DEFAULT_LIMIT = 50
MAX_LIMIT = 500
DEFAULT_STATS_LIMIT = 25
MAX_STATS_LIMIT = 100

STATS_TYPES = ("overview", "categories", "years", "top_films", "top_people")

wins = func.sum(case((Nomination.is_win.is_(True), 1), else_=0))


def clamp_limit(value: Optional[int], default: int, maximum: int) -> int:
    """Positive page size capped at ``maximum``."""
    if not value or value < 1:
        return default
    return min(value, maximum)


def ilike_pattern(text: str) -> str:
    """Substring pattern for case-insensitive matching."""
    return f"%{text}%"


@dataclass
class NominationQuery:
    """
    Composable nomination search.

    Each filter contributes one independent predicate, so any combination of
    filters produces one query without enumerating the combinations.
    """

    domain: str
    organization: Optional[str] = None
    year: Optional[int] = None
    category: Optional[str] = None
    winner_only: bool = False
    imdb_id: Optional[str] = None
    sort: str = "year_desc"
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    predicates: list = field(default_factory=list, init=False)

    def __post_init__(self) -> None:
        self.limit = clamp_limit(self.limit, DEFAULT_LIMIT, MAX_LIMIT)
        self.offset = max(self.offset or 0, 0)

        self.predicates.append(Ceremony.domain == self.domain)
        if self.organization:
            self.predicates.append(Ceremony.organization.like(self.organization))
        if self.year:
            self.predicates.append(Ceremony.year == self.year)
        if self.category:
            self.predicates.append(AwardCategory.name.ilike(ilike_pattern(self.category)))
        if self.winner_only:
            self.predicates.append(Nomination.is_win.is_(True))
        if self.imdb_id:
            self.predicates.append(Nomination.imdb_id == self.imdb_id)

    def _joined(self, statement: Select) -> Select:
        return (
            statement.select_from(Ceremony)
            .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
            .join(Nomination, Nomination.category_id == AwardCategory.id)
            .where(*self.predicates)
        )

    def order_by(self) -> list:
        if self.sort == "year_asc":
            return [Ceremony.year.asc(), AwardCategory.name, Nomination.is_win.desc()]
        if self.sort == "category":
            return [AwardCategory.name, Ceremony.year.desc(), Nomination.is_win.desc()]
        if self.sort == "film":
            return [Nomination.title, Ceremony.year.desc()]
        return [Ceremony.year.desc(), AwardCategory.name, Nomination.is_win.desc()]

    def rows(self) -> Select:
        """Page of matching nominations."""
        return (
            self._joined(
                select(
                    Nomination.id.label("nomination_id"),
                    Ceremony.year.label("ceremony_year"),
                    Ceremony.name.label("ceremony_name"),
                    AwardCategory.name.label("category_name"),
                    Nomination.imdb_id,
                    Nomination.title.label("film_title"),
                    Nomination.is_win,
                )
            )
            .order_by(*self.order_by())
            .limit(self.limit)
            .offset(self.offset)
        )

    def count(self) -> Select:
        """Total number of matching nominations."""
        return self._joined(select(func.count(Nomination.id)))

    def filters(self) -> NominationFilters:
        return NominationFilters(
            year=self.year or None,
            category=self.category or None,
            winner_only=self.winner_only or None,
            imdb_id=self.imdb_id or None,
        )


class AwardsService:
    """Service layer for awards dataset queries."""

    def __init__(self, db: AsyncSession):
        """Initialize awards service with database session."""
        self.db = db

    async def search_nominations(self, query: NominationQuery) -> NominationPage:
        """
        Run a nomination search.

        Args:
            query: Composed search

        Returns:
            Page of results with total count and echoed filters
        """
        total = (await self.db.execute(query.count())).scalar() or 0
        rows = (await self.db.execute(query.rows())).all()
        credits = await self._credits([row.nomination_id for row in rows])

        results = [
            NominationResult(
                ceremony_year=row.ceremony_year,
                ceremony_name=row.ceremony_name,
                category_name=row.category_name,
                imdb_id=row.imdb_id,
                film_title=row.film_title,
                is_win=row.is_win,
                people=credits.get(row.nomination_id, []),
            )
            for row in rows
        ]

        return NominationPage(
            total=total,
            limit=query.limit,
            offset=query.offset,
            count=len(results),
            results=results,
            filters=query.filters(),
        )

    async def film_awards(self, imdb_id: str) -> FilmAwards | None:
        """
        Every award nomination of one film.

        Args:
            imdb_id: IMDb title id (tt1234567)

        Returns:
            Nominations, badges and stats, or None if the film has no nominations
        """
        query = NominationQuery(domain="film", imdb_id=imdb_id, sort="year_asc", limit=MAX_LIMIT)
        page = await self.search_nominations(query)
        if not page.results:
            return None

        win_count = sum(1 for result in page.results if result.is_win)
        badges = [
            f"{result.ceremony_name} Winner - {result.category_name}"
            for result in page.results
            if result.is_win
        ]
        if page.total > win_count:
            badges.append(f"{page.total}x Nominee")

        return FilmAwards(
            imdb_id=imdb_id,
            nominations=page.results,
            badges=badges,
            stats=FilmAwardStats(nominations=page.total, wins=win_count),
        )

    async def oscar_stats(
        self,
        stats_type: Optional[str] = None,
        year: Optional[int] = None,
        category: Optional[str] = None,
        role: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> dict[str, Any]:
        """
        Academy Awards statistics.

        Args:
            stats_type: overview, categories, years, top_films, top_people
            year: Summary for one ceremony year
            category: Summary for one category (substring match)
            role: Role filter for top_people
            limit: Result size for top_* types

        Returns:
            Statistics payload

        Raises:
            ValueError: Unknown stats type
        """
        if stats_type == "overview" or (not stats_type and not year and not category):
            return await self._overview()
        if stats_type == "categories":
            return {"categories": await self._categories()}
        if stats_type == "years":
            return {"years": await self._years()}
        if stats_type == "top_films":
            size = clamp_limit(limit, DEFAULT_STATS_LIMIT, MAX_STATS_LIMIT)
            return {"films": await self._top_films(size), "limit": size}
        if stats_type == "top_people":
            size = clamp_limit(limit, DEFAULT_STATS_LIMIT, MAX_STATS_LIMIT)
            return {"people": await self._top_people(size, role), "limit": size, "role": role or "all"}
        if stats_type:
            raise ValueError(f"Invalid type parameter. Use one of: {', '.join(STATS_TYPES)}")
        if year:
            return await self._year_summary(year) or {"error": "Year not found"}
        return await self._category_summary(category) or {"error": "Category not found"}

    def _academy(self) -> list:
        return [Ceremony.domain == "film", Ceremony.organization.like(ACADEMY)]

    async def _overview(self) -> dict[str, Any]:
        row = (
            await self.db.execute(
                select(
                    func.count(distinct(Ceremony.id)).label("total_ceremonies"),
                    func.min(Ceremony.year).label("first_year"),
                    func.max(Ceremony.year).label("latest_year"),
                    func.count(distinct(AwardCategory.name)).label("total_categories"),
                    func.count(distinct(Nomination.imdb_id)).label("total_films"),
                    func.count(Nomination.id).label("total_nominations"),
                    wins.label("total_wins"),
                )
                .select_from(Ceremony)
                .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
                .join(Nomination, Nomination.category_id == AwardCategory.id)
                .where(*self._academy())
            )
        ).one()

        people = (
            await self.db.execute(
                select(func.count(distinct(NominationPerson.person_id)))
                .select_from(Ceremony)
                .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
                .join(Nomination, Nomination.category_id == AwardCategory.id)
                .join(NominationPerson, NominationPerson.nomination_id == Nomination.id)
                .where(*self._academy())
            )
        ).scalar() or 0

        overview = dict(row._mapping)
        overview["total_wins"] = int(overview["total_wins"] or 0)
        overview["total_people"] = people

        return {
            "overview": overview,
            "data_quality": {"note": "Includes all nominees, not just winners"},
        }

    async def _categories(self) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(
                AwardCategory.name.label("category_name"),
                func.count(Nomination.id).label("total_nominations"),
                wins.label("total_wins"),
                func.min(Ceremony.year).label("first_year"),
                func.max(Ceremony.year).label("latest_year"),
                func.count(distinct(Ceremony.id)).label("ceremonies_count"),
            )
            .select_from(AwardCategory)
            .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
            .join(Nomination, Nomination.category_id == AwardCategory.id)
            .where(*self._academy())
            .group_by(AwardCategory.name)
            .order_by(func.count(Nomination.id).desc(), AwardCategory.name)
        )
        return [_with_int_wins(row._mapping) for row in result.all()]

    async def _years(self) -> list[dict[str, Any]]:
        result = await self.db.execute(
            select(
                Ceremony.year,
                Ceremony.name.label("ceremony_name"),
                func.count(distinct(AwardCategory.id)).label("categories_count"),
                func.count(Nomination.id).label("nominations_count"),
                wins.label("wins_count"),
                func.count(distinct(Nomination.imdb_id)).label("films_count"),
            )
            .select_from(Ceremony)
            .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
            .join(Nomination, Nomination.category_id == AwardCategory.id)
            .where(*self._academy())
            .group_by(Ceremony.id, Ceremony.year, Ceremony.name)
            .order_by(Ceremony.year.desc())
        )
        return [_with_int_wins(row._mapping) for row in result.all()]

    async def _top_films(self, limit: int) -> list[dict[str, Any]]:
        nominations = func.count(Nomination.id)
        result = await self.db.execute(
            select(
                Nomination.imdb_id,
                Nomination.title.label("film_title"),
                nominations.label("total_nominations"),
                wins.label("total_wins"),
            )
            .select_from(Nomination)
            .join(AwardCategory, AwardCategory.id == Nomination.category_id)
            .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
            .where(*self._academy(), Nomination.imdb_id.not_like("honorary-%"))
            .group_by(Nomination.imdb_id, Nomination.title)
            .having(nominations >= 3)
            .order_by(nominations.desc(), wins.desc())
            .limit(limit)
        )
        films = [_with_int_wins(row._mapping) for row in result.all()]

        # Years and categories per film, gathered in one extra query
        details = await self.db.execute(
            select(Nomination.imdb_id, Ceremony.year, AwardCategory.name)
            .select_from(Nomination)
            .join(AwardCategory, AwardCategory.id == Nomination.category_id)
            .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
            .where(*self._academy(), Nomination.imdb_id.in_([film["imdb_id"] for film in films]))
        )
        years: dict[str, set] = defaultdict(set)
        categories: dict[str, set] = defaultdict(set)
        for imdb_id, year, category_name in details.all():
            years[imdb_id].add(year)
            categories[imdb_id].add(category_name)

        for film in films:
            film["years"] = sorted(years[film["imdb_id"]])
            film["categories"] = sorted(categories[film["imdb_id"]])
        return films

    async def _top_people(self, limit: int, role: Optional[str]) -> list[dict[str, Any]]:
        nominations = func.count(Nomination.id)
        query = (
            select(
                Person.id.label("person_id"),
                Person.name,
                NominationPerson.role,
                nominations.label("total_nominations"),
                wins.label("total_wins"),
            )
            .select_from(Person)
            .join(NominationPerson, NominationPerson.person_id == Person.id)
            .join(Nomination, Nomination.id == NominationPerson.nomination_id)
            .join(AwardCategory, AwardCategory.id == Nomination.category_id)
            .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
            .where(*self._academy())
            .group_by(Person.id, Person.name, NominationPerson.role)
            .order_by(nominations.desc(), wins.desc())
            .limit(limit)
        )
        if role:
            query = query.where(NominationPerson.role.ilike(ilike_pattern(role)))

        people = [_with_int_wins(row._mapping) for row in (await self.db.execute(query)).all()]

        years_result = await self.db.execute(
            select(NominationPerson.person_id, Ceremony.year)
            .select_from(NominationPerson)
            .join(Nomination, Nomination.id == NominationPerson.nomination_id)
            .join(AwardCategory, AwardCategory.id == Nomination.category_id)
            .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
            .where(*self._academy(), NominationPerson.person_id.in_([p["person_id"] for p in people]))
        )
        years: dict[UUID, set] = defaultdict(set)
        for person_id, year in years_result.all():
            years[person_id].add(year)

        for person in people:
            person["years"] = sorted(years[person.pop("person_id")])
        return people

    async def _year_summary(self, year: int) -> dict[str, Any] | None:
        summary = (
            await self.db.execute(
                select(
                    Ceremony.year,
                    Ceremony.name.label("ceremony_name"),
                    func.count(distinct(AwardCategory.id)).label("categories_count"),
                    func.count(Nomination.id).label("nominations_count"),
                    wins.label("wins_count"),
                    func.count(distinct(Nomination.imdb_id)).label("films_count"),
                )
                .select_from(Ceremony)
                .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
                .join(Nomination, Nomination.category_id == AwardCategory.id)
                .where(*self._academy(), Ceremony.year == year)
                .group_by(Ceremony.id, Ceremony.year, Ceremony.name)
            )
        ).first()
        if summary is None:
            return None

        names = await self.db.execute(
            select(distinct(AwardCategory.name))
            .select_from(Ceremony)
            .join(AwardCategory, AwardCategory.ceremony_id == Ceremony.id)
            .where(*self._academy(), Ceremony.year == year)
            .order_by(AwardCategory.name)
        )
        payload = _with_int_wins(summary._mapping)
        payload["categories"] = list(names.scalars().all())
        return payload

    async def _category_summary(self, category: str) -> dict[str, Any] | None:
        row = (
            await self.db.execute(
                select(
                    func.min(AwardCategory.name).label("category_name"),
                    func.count(Nomination.id).label("total_nominations"),
                    wins.label("total_wins"),
                    func.min(Ceremony.year).label("first_year"),
                    func.max(Ceremony.year).label("latest_year"),
                    func.count(distinct(Ceremony.id)).label("total_ceremonies"),
                )
                .select_from(AwardCategory)
                .join(Ceremony, Ceremony.id == AwardCategory.ceremony_id)
                .join(Nomination, Nomination.category_id == AwardCategory.id)
                .where(*self._academy(), AwardCategory.name.ilike(ilike_pattern(category)))
            )
        ).one()
        if not row.total_nominations:
            return None

        payload = _with_int_wins(row._mapping)
        payload["avg_nominees_per_year"] = round(row.total_nominations / row.total_ceremonies, 2)
        return payload

    async def _credits(self, nomination_ids: list[UUID]) -> dict[UUID, list[dict[str, Any]]]:
        if not nomination_ids:
            return {}

        result = await self.db.execute(
            select(NominationPerson.nomination_id, Person.name, NominationPerson.role)
            .join(Person, Person.id == NominationPerson.person_id)
            .where(NominationPerson.nomination_id.in_(nomination_ids))
            .order_by(Person.name)
        )
        credits: dict[UUID, list[dict[str, Any]]] = defaultdict(list)
        for nomination_id, name, role in result.all():
            credits[nomination_id].append({"name": name, "role": role})
        return credits


def _with_int_wins(mapping: Any) -> dict[str, Any]:
    row = dict(mapping)
    for key in ("total_wins", "wins_count"):
        if key in row:
            row[key] = int(row[key] or 0)
    return row
