"""
Shared test fixtures — async DB, fake search host, FastAPI test client.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from search_janitor.database import Base, get_db
from search_janitor.dependencies import get_cleanup_job, get_metrics_plugin, get_search_host
from search_janitor.main import app
from search_janitor.schemas import IndexableCollection, IndexVersion
from search_janitor.services.metrics import MetricsPlugin
from search_janitor.services.retention import RetentionPolicy
from search_janitor.services.search_host import DeletionError, SearchHostError
from search_janitor.services.versioning_cleanup import VersioningCleanupJob

DAY = 24 * 60 * 60
NOW = 100 * DAY
WEEK = 7 * DAY
TWO_WEEKS = 14 * DAY


# ── Test Database (SQLite in-memory) ────────────────────

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture()
async def db_engine():
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(db_engine):
    return async_sessionmaker(db_engine, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ── Fake search host ────────────────────────────────────

class FakeSearchHost:
    """In-memory stand-in for ``SearchHostClient``."""

    def __init__(self, indexables=None, versions=None, active=None, fail_deletes=(), counts=None):
        self.indexables = indexables or []
        self.versions = versions or {}
        self.active = active or {}
        self.fail_deletes = set(fail_deletes)
        self.counts = counts or {}
        self.deleted: list[tuple[str, int]] = []
        self.broken: set[str] = set()

    @staticmethod
    def _slug(indexable):
        return indexable if isinstance(indexable, str) else indexable.slug

    async def get_all(self):
        return list(self.indexables)

    async def get(self, slug):
        return next((i for i in self.indexables if i.slug == slug), None)

    async def list_versions(self, indexable):
        slug = self._slug(indexable)
        if slug in self.broken:
            raise SearchHostError("connection refused")
        return list(self.versions.get(slug, []))

    async def get_active_version(self, indexable):
        return self.active.get(self._slug(indexable))

    async def delete_version(self, indexable, number):
        slug = self._slug(indexable)
        if (slug, number) in self.fail_deletes:
            raise DeletionError(slug, number, "index_not_found_exception")
        self.deleted.append((slug, number))

    def _count(self, indexable, source, query_args):
        key = (self._slug(indexable), source, query_args.get("post_type", "N/A"))
        value = self.counts.get(key, 0)
        if isinstance(value, Exception):
            raise value
        return value

    async def count_db(self, indexable, query_args):
        return self._count(indexable, "db", query_args)

    async def count_es(self, indexable, query_args):
        assert query_args.get("track_total_hits") is True
        return self._count(indexable, "es", query_args)


def version(number, active=False, created=None, activated=None):
    return IndexVersion(number=number, active=active, created_time=created, activated_time=activated)


@pytest.fixture
def make_version():
    """Build an ``IndexVersion`` from day-offset style keyword args."""
    return version


@pytest.fixture
def fake_search_host():
    """Factory for empty or partially seeded ``FakeSearchHost`` instances."""
    return FakeSearchHost


@pytest.fixture
def policy():
    return RetentionPolicy(TWO_WEEKS, clock=lambda: NOW)


@pytest.fixture
def search_host():
    """Post indexable with an old active version and two stale predecessors."""
    active = version(5, active=True, created=45 * DAY, activated=50 * DAY)
    return FakeSearchHost(
        indexables=[
            IndexableCollection(slug="post", post_types=["post", "page"], post_statuses=["publish"]),
            IndexableCollection(slug="user"),
        ],
        versions={
            "post": [version(3, created=10 * DAY), version(4, created=40 * DAY), active],
            "user": [version(1), version(2, active=True, created=95 * DAY, activated=96 * DAY)],
        },
        active={
            "post": active,
            "user": version(2, active=True, created=95 * DAY, activated=96 * DAY),
        },
    )


@pytest.fixture
def alert():
    return AsyncMock(return_value=True)


@pytest.fixture
def cleanup_job(search_host, policy, alert, session_factory):
    return VersioningCleanupJob(
        indexables=search_host,
        versioning=search_host,
        policy=policy,
        alert=alert,
        session_factory=session_factory,
    )


@pytest.fixture(autouse=True)
def _fresh_metrics_plugin():
    MetricsPlugin.reset_instance()
    yield
    MetricsPlugin.reset_instance()


@pytest_asyncio.fixture()
async def client(session_factory, cleanup_job, search_host):
    """FastAPI test client with test DB, fake search host and job injected."""

    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_search_host] = lambda: search_host
    app.dependency_overrides[get_cleanup_job] = lambda: cleanup_job
    app.dependency_overrides[get_metrics_plugin] = MetricsPlugin.get_instance

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Stub HTTP for SearchHostClient ──────────────────────

class StubResponse:
    """Just enough of ``aiohttp.ClientResponse``; str bodies are raw JSON text."""

    def __init__(self, status, body=None):
        self.status = status
        self._body = body
        self.content_type = "text/plain" if body is None else "application/json"

    async def json(self):
        if isinstance(self._body, str):
            return json.loads(self._body)
        return self._body

    async def text(self):
        return "" if self._body is None else str(self._body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class StubHttpSession:
    """Routes ``(method, url)`` to canned ``(status, body)`` pairs; anything else is a 404."""

    def __init__(self):
        self.routes = {}
        self.calls: list[tuple[str, str]] = []

    def request(self, method, url, params=None):
        self.calls.append((method, url))
        status, body = self.routes.get((method, url), (404, {"message": "not found"}))
        return StubResponse(status, body)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


@pytest.fixture
def search_http():
    """Serve ``SearchHostClient`` requests from a ``StubHttpSession``."""
    session = StubHttpSession()
    with patch("search_janitor.services.search_host.aiohttp.ClientSession", return_value=session):
        yield session
