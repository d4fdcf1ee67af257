"""Pytest fixtures for test suite."""

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import patch, AsyncMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

# Add backend to path for imports
backend_path = Path(__file__).parent.parent
sys.path.insert(0, str(backend_path))

from database import Base, import_models

# Use SQLite for tests with StaticPool to share connection across async operations.
# StaticPool ensures the same connection is reused, so tables created in create_all()
# are visible to all sessions. Without this, each connection gets its own empty DB.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

GAMMA_URL = "https://gamma.test"
CLOB_URL = "https://clob.test"
CRON_SECRET = "test-cron-secret"


@pytest.fixture
async def test_engine():
    """Create a test database engine with in-memory SQLite.

    Uses StaticPool to ensure single connection is reused across all operations,
    which is required for in-memory SQLite to share tables between create_all()
    and subsequent session operations.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Import models to register with Base.metadata
    import_models()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_engine):
    """Session factory bound to the test engine, as injected into services."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_session(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


class FakeUpstream:
    """Canned Gamma/CLOB replies for httpx.MockTransport.

    routes maps a request path to either a JSON payload, an httpx.Response,
    an exception instance to raise, or a callable taking the request and
    returning one of those. Every request is recorded.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.routes.get(request.url.path)
        if callable(reply) and not isinstance(reply, httpx.Response):
            reply = reply(request)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        if reply is None:
            return httpx.Response(404, json={"error": "not found"})
        return httpx.Response(200, json=reply)

    def requests_to(self, path: str):
        return [r for r in self.requests if r.url.path == path]

    @staticmethod
    def json_body(request: httpx.Request):
        return json.loads(request.content)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
async def polymarket_client(upstream):
    """PolymarketClient whose HTTP traffic is answered by `upstream`."""
    from services.polymarket_client import PolymarketClient

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    client = PolymarketClient(gamma_url=GAMMA_URL, clob_url=CLOB_URL, http_client=http_client)
    yield client
    await client.close()


@pytest.fixture
async def test_client(test_session_factory, polymarket_client):
    """Create a test HTTP client for API testing.

    Mocks init_db and close_db to prevent the app from trying to connect
    to the real PostgreSQL database during tests, and points the database,
    Polymarket client and cron secret dependencies at test doubles.
    """
    with patch("main.init_db", new_callable=AsyncMock) as mock_init, \
         patch("main.close_db", new_callable=AsyncMock) as mock_close:

        from main import app
        from api.dependencies import get_cron_secret, get_polymarket_client
        from database import get_db, get_session_factory

        async def override_get_db():
            async with test_session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_session_factory] = lambda: test_session_factory
        app.dependency_overrides[get_polymarket_client] = lambda: polymarket_client
        app.dependency_overrides[get_cron_secret] = lambda: CRON_SECRET

        transport = ASGITransport(app=app)
        try:
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()


def build_gamma_market(market_id, **overrides):
    """One market as embedded in a Gamma /events reply."""
    market = {
        "id": str(market_id),
        "question": f"Will market {market_id} resolve YES?",
        "conditionId": f"0xcondition{market_id}",
        "slug": f"market-{market_id}",
        "groupItemTitle": f"Option {market_id}",
        "description": "Resolves YES if it happens.",
        "resolutionSource": "https://example.com",
        "icon": f"https://img.test/m{market_id}.png",
        "negRisk": False,
        "active": True,
        "closed": False,
        "volume": "1500.25",
        "volume24hr": 120.5,
        "startDate": "2025-01-01T00:00:00Z",
        "endDate": "2025-12-31T00:00:00Z",
        "createdAt": "2025-01-01T00:00:00Z",
        "updatedAt": "2025-01-02T00:00:00Z",
        "outcomes": '["Yes", "No"]',
        "clobTokenIds": json.dumps([f"tok-{market_id}-yes", f"tok-{market_id}-no"]),
    }
    market.update(overrides)
    return market


def build_gamma_event(event_id, markets=None, tags=None, **overrides):
    """One event as returned by the Gamma /events endpoint."""
    event = {
        "id": str(event_id),
        "slug": f"event-{event_id}",
        "title": f"Event number {event_id}",
        "description": "Event rules.",
        "icon": f"https://img.test/e{event_id}.png",
        "active": True,
        "closed": False,
        "archived": False,
        "showMarketImages": True,
        "enableNegRisk": False,
        "negRiskAugmented": False,
        "endDate": "2025-12-31T00:00:00Z",
        "createdAt": "2025-01-01T00:00:00Z",
        "updatedAt": "2025-01-02T00:00:00Z",
        "markets": markets if markets is not None else [build_gamma_market(event_id * 10)],
        "tags": tags if tags is not None else [{"id": "2", "label": "Politics", "slug": "politics"}],
    }
    event.update(overrides)
    return event


@pytest.fixture
def gamma_market():
    return build_gamma_market


@pytest.fixture
def gamma_event():
    return build_gamma_event


@pytest.fixture
async def seeded_catalog(test_session):
    """Three active events, one resolved event and one event without markets.

    Event 1 is tagged politics, event 2 crypto. Event 3 has a market but no
    condition id, so it cannot be priced.
    """
    from models.event import PolymarketEvent
    from models.event_tag import PolymarketEventTag
    from models.market import PolymarketMarket
    from models.outcome import PolymarketOutcome
    from models.tag import Tag

    now = datetime.utcnow()

    test_session.add_all([
        Tag(id=2, name="Politics", slug="politics"),
        Tag(id=21, name="Crypto", slug="crypto"),
    ])

    specs = [
        (1, "Presidential Election Winner 2028", "active", now - timedelta(days=3), "0xc1"),
        (2, "Bitcoin above 100k by June", "active", now - timedelta(days=2), "0xc2"),
        (3, "Election without condition", "active", now - timedelta(days=1), None),
        (4, "Resolved election market", "resolved", now - timedelta(days=5), "0xc4"),
        (5, "Orphan event", "active", now, None),
    ]

    for event_id, title, status, created_at, condition_id in specs:
        test_session.add(PolymarketEvent(
            id=event_id,
            slug=f"event-{event_id}",
            title=title,
            status=status,
            active_markets_count=1,
            total_markets_count=1,
            created_at=created_at,
            updated_at=created_at,
        ))

    await test_session.flush()

    for event_id, _title, _status, created_at, condition_id in specs:
        if event_id == 5:
            continue
        test_session.add(PolymarketMarket(
            id=event_id * 10,
            event_id=event_id,
            condition_id=condition_id,
            slug=f"market-{event_id * 10}",
            title=f"Market {event_id * 10}",
            question=f"Question {event_id * 10}?",
            is_active=True,
            is_closed=False,
            volume=100.0,
            volume_24h=0.0,
            created_at=created_at,
            updated_at=created_at,
        ))
        if condition_id:
            test_session.add_all([
                PolymarketOutcome(
                    token_id=f"tok-{event_id}-yes",
                    condition_id=condition_id,
                    outcome_text="Yes",
                    outcome_index=0,
                    created_at=created_at,
                    updated_at=created_at,
                ),
                PolymarketOutcome(
                    token_id=f"tok-{event_id}-no",
                    condition_id=condition_id,
                    outcome_text="No",
                    outcome_index=1,
                    created_at=created_at,
                    updated_at=created_at,
                ),
            ])

    test_session.add_all([
        PolymarketEventTag(event_id=1, tag_id=2),
        PolymarketEventTag(event_id=2, tag_id=21),
        PolymarketEventTag(event_id=4, tag_id=2),
    ])

    await test_session.commit()


@pytest.fixture
async def seeded_job_runs(test_session):
    """Seed job runs for system status testing."""
    from models.job_run import JobRun

    now = datetime.utcnow()

    jobs = [
        JobRun(
            job_id="sync_polymarket_events",
            run_id="run-sync-001",
            trigger="scheduler",
            started_at=now - timedelta(minutes=30),
            completed_at=now - timedelta(minutes=29),
            status="success",
            records_processed=120,
        ),
        JobRun(
            job_id="sync_polymarket_events",
            run_id="run-sync-002",
            trigger="cron",
            started_at=now - timedelta(minutes=10),
            completed_at=now - timedelta(minutes=9),
            status="success",
            records_processed=125,
        ),
    ]

    for job in jobs:
        test_session.add(job)
    await test_session.commit()

    return jobs
