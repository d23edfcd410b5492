"""Pytest configuration and fixtures for async testing."""
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
import stripe
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import awards_api.models  # noqa: F401  registers all tables
from awards_api.adapters.stripe_adapter import StripeAdapter
from awards_api.api.deps import get_stripe_adapter
from awards_api.cache import RedisCache, get_cache
from awards_api.database import Base, get_db, get_session_factory
from awards_api.main import app
from awards_api.models.api_key import ApiKey, Tier
from awards_api.models.awards import AwardCategory, Ceremony, Nomination, NominationPerson, Person
from awards_api.plans import PlanRegistry, plan_registry

from tests.utils.factories import ApiKeyFactory

# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"


class FakeStripeAdapter(StripeAdapter):
    """
    Stripe adapter that records calls instead of reaching Stripe.

    Webhook signature verification is inherited unchanged.
    """

    def __init__(self):
        self.customers: dict[str, str] = {}
        self.created_customers: list[dict[str, Any]] = []
        self.subscriptions: list[dict[str, Any]] = []
        self.fail_with: stripe.StripeError | None = None

    async def find_customer_by_email(self, email: str) -> str | None:
        if self.fail_with:
            raise self.fail_with
        return self.customers.get(email)

    async def create_customer(self, email: str, name: str, metadata: dict[str, Any] | None = None) -> str:
        if self.fail_with:
            raise self.fail_with
        customer_id = f"cus_test{len(self.customers) + 1}"
        self.customers[email] = customer_id
        self.created_customers.append({"id": customer_id, "email": email, "name": name, "metadata": metadata})
        return customer_id

    async def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        metadata: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if self.fail_with:
            raise self.fail_with
        subscription = {
            "id": f"sub_test{len(self.subscriptions) + 1}",
            "customer": customer_id,
            "price_id": price_id,
            "metadata": metadata,
            "status": "incomplete",
            "client_secret": f"pi_test{len(self.subscriptions) + 1}_secret",
        }
        self.subscriptions.append(subscription)
        return {"id": subscription["id"], "status": "incomplete", "client_secret": subscription["client_secret"]}


@pytest_asyncio.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a fresh in-memory database with all tables for each test.

    Yields:
        AsyncEngine: Engine bound to a single shared connection
    """
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def fake_stripe() -> FakeStripeAdapter:
    """Stripe adapter double shared between a test and the app."""
    return FakeStripeAdapter()


@pytest.fixture(scope="function")
def registry() -> PlanRegistry:
    """Plan registry built from the default settings."""
    return plan_registry


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    fake_stripe: FakeStripeAdapter,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client with database, Stripe and cache overrides.

    Args:
        db_session: Test database session fixture
        session_factory: Factory used for usage logging
        fake_stripe: Stripe adapter double

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    # Unreachable Redis: every lookup is a miss
    offline_cache = RedisCache("redis://127.0.0.1:1/0")

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_stripe_adapter] = lambda: fake_stripe
    app.dependency_overrides[get_cache] = lambda: offline_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


async def _save_key(db_session: AsyncSession, overrides: dict[str, Any] | None = None) -> tuple[str, ApiKey]:
    raw_key, api_key = ApiKeyFactory.build(overrides)
    db_session.add(api_key)
    await db_session.commit()
    await db_session.refresh(api_key)
    return raw_key, api_key


@pytest.fixture(scope="function")
def make_api_key(db_session: AsyncSession):
    """
    Factory fixture persisting API keys.

    Returns:
        Callable: ``await make_api_key(**overrides)`` -> (raw key, ApiKey)
    """

    async def _make(**overrides: Any) -> tuple[str, ApiKey]:
        return await _save_key(db_session, overrides)

    return _make


@pytest_asyncio.fixture(scope="function")
async def film_key(make_api_key) -> tuple[str, ApiKey]:
    """Active film_starter key with plenty of quota."""
    return await make_api_key(
        tier=Tier.FILM_STARTER,
        allowed_domains=["film"],
        daily_limit=5000,
        monthly_limit=50000,
        stripe_customer_id="cus_film",
        stripe_subscription_id="sub_film",
    )


@pytest_asyncio.fixture(scope="function")
async def awards_data(db_session: AsyncSession) -> dict[str, Any]:
    """
    Seed a small awards dataset.

    Academy Awards 1995 and 2020, one non-Academy film ceremony, and one
    board game ceremony. The Shawshank Redemption has three 1995 Academy
    nominations and no wins; Parasite wins two of three in 2020.
    """
    oscars_1995 = Ceremony(domain="film", organization="Academy of Motion Picture Arts and Sciences", name="67th Academy Awards", year=1995)
    oscars_2020 = Ceremony(domain="film", organization="Academy of Motion Picture Arts and Sciences", name="92nd Academy Awards", year=2020)
    globes_2020 = Ceremony(domain="film", organization="Hollywood Foreign Press Association", name="77th Golden Globe Awards", year=2020)
    sdj_2023 = Ceremony(domain="games", organization="Spiel des Jahres", name="Spiel des Jahres 2023", year=2023)
    db_session.add_all([oscars_1995, oscars_2020, globes_2020, sdj_2023])
    await db_session.flush()

    def category(ceremony: Ceremony, name: str) -> AwardCategory:
        cat = AwardCategory(ceremony_id=ceremony.id, name=name)
        db_session.add(cat)
        return cat

    best_picture_1995 = category(oscars_1995, "Best Picture")
    best_actor_1995 = category(oscars_1995, "Best Actor")
    adapted_1995 = category(oscars_1995, "Best Adapted Screenplay")
    best_picture_2020 = category(oscars_2020, "Best Picture")
    best_director_2020 = category(oscars_2020, "Best Director")
    international_2020 = category(oscars_2020, "Best International Feature Film")
    honorary_2020 = category(oscars_2020, "Honorary Award")
    globes_foreign = category(globes_2020, "Best Foreign Language Film")
    goty = category(sdj_2023, "Spiel des Jahres")
    await db_session.flush()

    def nominate(cat: AwardCategory, imdb_id: str | None, title: str, is_win: bool = False) -> Nomination:
        nomination = Nomination(category_id=cat.id, imdb_id=imdb_id, title=title, is_win=is_win)
        db_session.add(nomination)
        return nomination

    shawshank = "tt0111161"
    parasite = "tt6751668"
    forrest = "tt0109830"

    nominate(best_picture_1995, shawshank, "The Shawshank Redemption")
    shawshank_actor = nominate(best_actor_1995, shawshank, "The Shawshank Redemption")
    nominate(adapted_1995, shawshank, "The Shawshank Redemption")
    nominate(best_picture_1995, forrest, "Forrest Gump", is_win=True)
    forrest_actor = nominate(best_actor_1995, forrest, "Forrest Gump", is_win=True)
    nominate(best_picture_2020, parasite, "Parasite", is_win=True)
    parasite_director = nominate(best_director_2020, parasite, "Parasite", is_win=True)
    nominate(international_2020, parasite, "Parasite")
    nominate(honorary_2020, "honorary-2020-1", "Lifetime Achievement")
    nominate(honorary_2020, "honorary-2020-1", "Lifetime Achievement")
    nominate(honorary_2020, "honorary-2020-1", "Lifetime Achievement", is_win=True)
    nominate(globes_foreign, parasite, "Parasite", is_win=True)
    nominate(goty, None, "Dorfromantik: The Board Game", is_win=True)
    nominate(goty, None, "Challengers!")
    await db_session.flush()

    freeman = Person(name="Morgan Freeman")
    hanks = Person(name="Tom Hanks")
    bong = Person(name="Bong Joon Ho")
    db_session.add_all([freeman, hanks, bong])
    await db_session.flush()

    db_session.add_all(
        [
            NominationPerson(nomination_id=shawshank_actor.id, person_id=freeman.id, role="actor"),
            NominationPerson(nomination_id=forrest_actor.id, person_id=hanks.id, role="actor"),
            NominationPerson(nomination_id=parasite_director.id, person_id=bong.id, role="director"),
        ]
    )
    await db_session.commit()

    return {"shawshank": shawshank, "parasite": parasite, "forrest": forrest}
