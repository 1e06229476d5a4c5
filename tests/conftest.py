"""
Pytest fixtures and configuration for the autovagas test suite.
"""

import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from autovagas.adapters.infojobs import InfoJobsAdapter
from autovagas.adapters.linkedin import LinkedInAdapter
from autovagas.auto_apply.capabilities import (
    SqliteDocumentProvider,
    SqliteJobBoard,
    SqliteUserDirectory,
)
from autovagas.auto_apply.repository import AutoApplyRepository
from autovagas.core.config import AppConfig
from autovagas.core.database import init_database
from autovagas.core.models import (
    ApplyResult,
    NormalizedListing,
    Platform,
    ScraperSession,
    SessionCredentials,
    SessionStatus,
)
from autovagas.scrapers.job_queue import JobQueue
from autovagas.scrapers.job_runner import ScraperService
from autovagas.scrapers.session_store import SessionStore


def pytest_configure(config):
    config.addinivalue_line("markers", "storage: tests backed by a real SQLite file")
    config.addinivalue_line("markers", "adapters: platform adapter parsing and HTTP handling")
    config.addinivalue_line("markers", "auto_apply: scoring, repository and orchestrator")
    config.addinivalue_line("markers", "workers: background loop tests")


# === Time ===

class FixedClock:
    """Deterministic clock for stores that take a `clock` callable."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 10, 12, 0, 0))


# === Configuration and storage ===

@pytest.fixture
def db_path(tmp_path):
    """Fresh schema in a temporary SQLite file."""
    path = tmp_path / "autovagas-test.db"
    asyncio.run(init_database(path))
    return path


@pytest.fixture
def app_config(db_path, tmp_path):
    return AppConfig(
        DATABASE_PATH=str(db_path),
        LOG_DIR=str(tmp_path / "logs"),
        PROXY_API_URL=None,
        PROXY_API_KEY=None,
        PROXY_STATIC_LIST=[],
        SCRAPER_MAX_RETRIES=3,
        SCRAPER_RETRY_DELAY_SECONDS=300,
    )


@pytest.fixture
def users(db_path):
    return SqliteUserDirectory(db_path)


@pytest.fixture
def session_store(db_path, users, app_config, clock):
    return SessionStore(db_path, users=users, app_config=app_config, clock=clock)


@pytest.fixture
def job_queue(db_path, app_config, clock):
    return JobQueue(db_path, app_config=app_config, clock=clock)


@pytest.fixture
def repository(db_path, users, app_config, clock):
    return AutoApplyRepository(db_path, users=users, app_config=app_config, clock=clock)


@pytest.fixture
def documents(db_path):
    return SqliteDocumentProvider(db_path)


@pytest.fixture
def job_board(db_path):
    return SqliteJobBoard(db_path)


# === Sessions ===

@pytest.fixture
def linkedin_cookies():
    return [
        {"name": "li_at", "value": "AQEDAR-test"},
        {"name": "JSESSIONID", "value": '"ajax:1234567890"'},
    ]


@pytest.fixture
def make_session(linkedin_cookies):
    """Build an in-memory session without touching the database."""

    def _make(platform=Platform.LINKEDIN, **overrides):
        values = dict(
            id="sess-1",
            user_id="user-1",
            platform=platform,
            status=SessionStatus.ACTIVE,
            cookies=linkedin_cookies,
            user_agent="Mozilla/5.0 (X11; Linux x86_64) Test",
            version=2,
        )
        values.update(overrides)
        return ScraperSession(**values)

    return _make


@pytest.fixture
def mock_session_store():
    """Session store double for adapter tests."""
    store = MagicMock()
    store.invalidate = AsyncMock(return_value=True)
    store.mark_rate_limited = AsyncMock(return_value=True)
    store.record_request = AsyncMock()
    return store


@pytest.fixture
def login_session(session_store):
    """Store an ACTIVE session for a user and platform."""

    async def _login(user_id, platform=Platform.LINKEDIN, cookies=None):
        credentials = SessionCredentials(cookies=cookies or [{"name": "li_at", "value": "token"}])
        return await session_store.create_or_refresh(user_id, platform, credentials)

    return _login


# === Fake platforms ===

class FakePlatformMixin:
    """
    Replaces the network half of a real adapter with an in-memory board.

    Vocabulary mapping, search action building and the apply flow of the
    real adapter class stay in place.
    """

    def load(self, listings):
        self.listings = {listing.id: listing for listing in listings}
        self.search_calls = 0
        self.applied = []
        self.apply_errors = {}
        self.search_error = None
        self.on_apply = None
        return self

    async def search(self, session, action):
        self.search_calls += 1
        if self.search_error is not None:
            raise self.search_error
        return list(self.listings.values())

    async def get_details(self, session, listing_id):
        return self.listings[listing_id]

    async def _submit_application(self, session, listing, action):
        if listing.id in self.apply_errors:
            raise self.apply_errors[listing.id]
        self.applied.append(action)
        if self.on_apply is not None:
            await self.on_apply(listing)
        return ApplyResult(
            success=True,
            listing_id=listing.id,
            message="ok",
            external_application_id=f"ext-{listing.id}",
        )


class FakeLinkedIn(FakePlatformMixin, LinkedInAdapter):
    pass


class FakeInfoJobs(FakePlatformMixin, InfoJobsAdapter):
    pass


@pytest.fixture
def make_listing():
    def _make(listing_id, platform=Platform.LINKEDIN, **overrides):
        values = dict(
            id=str(listing_id),
            platform=platform,
            title="Python Developer",
            company_name="Acme Tecnologia",
            location="São Paulo, SP",
            description="Backend com python e django",
            can_apply_directly=True,
        )
        values.update(overrides)
        return NormalizedListing(**values)

    return _make


@pytest.fixture
def fake_linkedin(session_store, app_config):
    return FakeLinkedIn(session_store, login_driver=AsyncMock(), app_config=app_config).load([])


@pytest.fixture
def fake_infojobs(session_store, app_config):
    return FakeInfoJobs(session_store, login_driver=AsyncMock(), app_config=app_config).load([])


@pytest.fixture
def scraper(job_queue, session_store, fake_linkedin, fake_infojobs, job_board):
    adapters = {
        Platform.LINKEDIN: fake_linkedin,
        Platform.INFOJOBS: fake_infojobs,
    }
    return ScraperService(job_queue, session_store, adapters, job_board=job_board)
