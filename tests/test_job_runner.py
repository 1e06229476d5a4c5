"""
ScraperService: login, session import and job execution with error
classification into the queue's retry bookkeeping.
"""

from unittest.mock import AsyncMock

import pytest

from autovagas.core.database import get_db
from autovagas.core.errors import LoginFailed, PlatformError, SessionInvalid, SessionRateLimited
from autovagas.core.models import (
    ApplyAction,
    DetailAction,
    JobStatus,
    Platform,
    SearchAction,
    SessionCredentials,
    SessionStatus,
)

USER = "user-1"


async def session_rows(db_path):
    async with get_db(db_path) as db:
        cursor = await db.execute("SELECT COUNT(*) FROM scraper_sessions")
        return (await cursor.fetchone())[0]


@pytest.mark.asyncio
class TestLogin:
    async def test_wrong_credentials_leave_no_session(self, scraper, fake_linkedin, db_path):
        fake_linkedin.login_driver.login.side_effect = LoginFailed("Invalid credentials")

        with pytest.raises(LoginFailed):
            await scraper.login(USER, Platform.LINKEDIN, "ana@example.com", "wrong")

        assert await session_rows(db_path) == 0

    async def test_successful_login_stores_session(self, scraper, fake_linkedin, session_store):
        fake_linkedin.login_driver.login.return_value = SessionCredentials(
            cookies=[{"name": "li_at", "value": "fresh"}], user_agent="UA/2.0"
        )

        session = await scraper.login(USER, Platform.LINKEDIN, "ana@example.com", "s3cret")

        assert session.status == SessionStatus.ACTIVE
        assert session.user_agent == "UA/2.0"
        assert (await session_store.get_active(USER, Platform.LINKEDIN)).id == session.id

    async def test_imported_browser_session_is_client_side(self, scraper):
        session = await scraper.import_session(USER, Platform.INFOJOBS, {"JSESSIONID": "abc"},
                                               user_agent="Browser/1.0")

        assert session.is_client_side is True
        assert session.proxy_url is None
        assert session.cookies == {"JSESSIONID": "abc"}

    async def test_unregistered_platform(self, scraper):
        with pytest.raises(ValueError):
            await scraper.submit(USER, Platform.CATHO, SearchAction(keywords="python"))


@pytest.mark.asyncio
class TestProcess:
    async def test_search_completes_and_counts_request(self, scraper, login_session, fake_linkedin,
                                                       make_listing, session_store):
        session = await login_session(USER)
        fake_linkedin.load([make_listing(1), make_listing(2)])

        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))

        assert job.status == JobStatus.COMPLETED
        assert job.result["count"] == 2
        assert [item["id"] for item in job.result["jobs"]] == ["1", "2"]
        assert (await session_store.get(session.id)).request_count == 1

    async def test_details(self, scraper, login_session, fake_linkedin, make_listing):
        await login_session(USER)
        fake_linkedin.load([make_listing(5, title="Engenheiro de Dados")])

        job = await scraper.run(USER, Platform.LINKEDIN, DetailAction("5"))

        assert job.result["job_details"]["title"] == "Engenheiro de Dados"

    async def test_missing_session_fails_permanently(self, scraper):
        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))

        assert job.status == JobStatus.FAILED
        assert job.error_message == "No active LinkedIn session found. Please login first."
        assert job.error_type == "NoActiveSession"
        assert job.is_terminal

    async def test_transient_error_schedules_retry(self, scraper, login_session, fake_linkedin):
        await login_session(USER)
        fake_linkedin.search_error = PlatformError("LinkedIn request failed with HTTP 502", 502)

        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))

        assert job.status == JobStatus.FAILED
        assert job.retry_count == 1
        assert job.next_retry_at is not None
        assert not job.is_terminal

    async def test_invalid_session_is_permanent(self, scraper, login_session, fake_linkedin):
        await login_session(USER)
        fake_linkedin.search_error = SessionInvalid("LinkedIn rejected the session (HTTP 401)", 401)

        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))

        assert job.error_type == "SessionInvalid"
        assert job.is_terminal

    async def test_rate_limited_retry_keeps_the_rate_limit_cause(self, scraper, login_session, fake_linkedin,
                                                                 session_store, job_queue, clock):
        session = await login_session(USER)
        fake_linkedin.search_error = SessionRateLimited("LinkedIn rate limited the session (HTTP 429)", 429)
        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))
        assert job.error_type == "SessionRateLimited"
        assert not job.is_terminal
        await session_store.mark_rate_limited(session.id)

        clock.advance(seconds=301)
        [claimed] = await job_queue.claim_next()
        retried = await scraper.process(claimed)

        assert retried.status == JobStatus.FAILED
        assert retried.error_type == "SessionRateLimited"
        assert "HTTP 429" in retried.error_message
        assert "login again" in retried.error_message
        assert retried.is_terminal

    async def test_auto_apply_jobs_are_never_retried(self, scraper, login_session, fake_linkedin):
        await login_session(USER)
        fake_linkedin.search_error = PlatformError("HTTP 500", 500)

        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"), is_auto_apply=True)

        assert job.is_terminal

    async def test_corrupt_parameters(self, scraper, job_queue, db_path):
        job = await scraper.submit(USER, Platform.LINKEDIN, SearchAction(keywords="python"))
        async with get_db(db_path) as db:
            await db.execute("UPDATE scraper_jobs SET parameters_json = ? WHERE id = ?",
                             ('{"action": "teleport"}', job.id))
            await db.commit()

        processed = await scraper.process(job.id)

        assert processed.status == JobStatus.FAILED
        assert processed.error_type == "InvalidAction"
        assert processed.is_terminal

    async def test_apply_is_mirrored_to_job_board(self, scraper, login_session, fake_linkedin,
                                                  make_listing, db_path):
        await login_session(USER)
        fake_linkedin.load([make_listing(9)])

        job = await scraper.run(USER, Platform.LINKEDIN, ApplyAction(listing_id="9", cover_letter="Olá"))

        assert job.status == JobStatus.COMPLETED
        assert job.result["success"] is True
        assert job.result["external_application_id"] == "ext-9"
        async with get_db(db_path) as db:
            cursor = await db.execute("SELECT id, external_id FROM jobs")
            jobs = [tuple(r) for r in await cursor.fetchall()]
            cursor = await db.execute("SELECT id, cover_letter FROM applications")
            applications = [tuple(r) for r in await cursor.fetchall()]
        assert jobs == [(job.result["job_id"], "9")]
        assert applications == [(job.result["application_id"], "Olá")]

    async def test_mirror_failure_keeps_job_completed(self, scraper, login_session, fake_linkedin,
                                                      make_listing):
        await login_session(USER)
        fake_linkedin.load([make_listing(9)])
        scraper.job_board = AsyncMock()
        scraper.job_board.create_job.side_effect = RuntimeError("jobs table locked")

        job = await scraper.run(USER, Platform.LINKEDIN, ApplyAction(listing_id="9"))

        assert job.status == JobStatus.COMPLETED
        assert job.result["mirror_error"] == "jobs table locked"

    async def test_background_worker_claimed_job(self, scraper, login_session, fake_linkedin,
                                                 make_listing, job_queue):
        await login_session(USER)
        fake_linkedin.load([make_listing(1)])
        submitted = await scraper.submit(USER, Platform.LINKEDIN, SearchAction(keywords="python"))
        [claimed] = await job_queue.claim_next()

        job = await scraper.process(claimed)

        assert job.id == submitted.id
        assert job.status == JobStatus.COMPLETED

    async def test_operator_retry(self, scraper):
        job = await scraper.run(USER, Platform.LINKEDIN, SearchAction(keywords="python"))

        retried = await scraper.retry(job.id)

        assert retried.status == JobStatus.PENDING
        assert retried.retry_count == 0
