import os

# Must be set before the application modules create their engine.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import datetime, timezone  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from bikeshare_refresh.core.db import get_db  # noqa: E402
from bikeshare_refresh.main import app  # noqa: E402
from bikeshare_refresh.models import Base, Network, Station  # noqa: E402
from bikeshare_refresh.utils.identifiers import derive_station_id  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """
    Fresh in-memory SQLite engine with all tables created.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(TEST_DB_URL, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """
    Provide an AsyncSession bound to the test engine.
    """
    TestingSessionLocal = sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def test_app(db_session):
    """
    Return the FastAPI app with get_db overridden to use the test session.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def add_network(db_session):
    """
    Factory inserting a refreshable network (unless told otherwise).
    """
    async def _add(
        network_id: str,
        citybikes_id: str | None = None,
        name: str | None = None,
        station_status_url: str | None = "https://example.test/gbfs/station_status.json",
    ) -> Network:
        network = Network(
            id=network_id,
            name=name or network_id,
            station_status_url=station_status_url,
            station_information_url=None,
            raw_data={"id": citybikes_id} if citybikes_id else {"name": network_id},
        )
        db_session.add(network)
        await db_session.commit()
        return network

    return _add


@pytest.fixture
def add_station(db_session):
    """
    Factory inserting one stored station fetched at `fetched_at`.
    """
    async def _add(network_id: str, upstream_id: str, fetched_at: datetime) -> Station:
        station = Station(
            id=derive_station_id(upstream_id),
            network_id=network_id,
            name=upstream_id,
            location="POINT(0.0 0.0)",
            capacity=10,
            num_regular_bikes_available=5,
            num_ebikes_available=0,
            num_docks_available=5,
            is_operational=True,
            is_renting=True,
            is_returning=True,
            is_virtual=False,
            last_reported=fetched_at,
            fetched_at=fetched_at,
            raw_data={"id": upstream_id},
        )
        db_session.add(station)
        await db_session.commit()
        return station

    return _add

