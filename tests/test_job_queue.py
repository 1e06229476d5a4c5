"""
Scraper job queue: claiming, retry bookkeeping, backoff and retention.
"""

from datetime import datetime

import pytest

from autovagas.core.config import AppConfig
from autovagas.core.database import get_db
from autovagas.core.errors import JobNotFound
from autovagas.core.models import DetailAction, JobStatus, Platform, SearchAction
from autovagas.scrapers.job_queue import JobQueue, compute_backoff_seconds


def search(keywords="python"):
    return SearchAction(keywords=keywords, location="São Paulo", filters={"date_posted": "1"})


class TestBackoffFormula:
    def test_doubles_per_attempt(self):
        assert compute_backoff_seconds(300, 1) == 300
        assert compute_backoff_seconds(300, 2) == 600
        assert compute_backoff_seconds(300, 3) == 1200

    def test_zero_attempts_uses_base(self):
        assert compute_backoff_seconds(10, 0) == 10


@pytest.mark.storage
@pytest.mark.asyncio
class TestEnqueueAndClaim:
    async def test_enqueue_starts_pending(self, job_queue):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())

        assert job.status == JobStatus.PENDING
        assert job.retry_count == 0
        assert job.max_retries == 3
        assert job.action == search()

    async def test_claim_oldest_first_and_only_once(self, job_queue, clock):
        first = await job_queue.enqueue("user-1", Platform.LINKEDIN, search("a"))
        clock.advance(seconds=1)
        second = await job_queue.enqueue("user-1", Platform.CATHO, search("b"))

        claimed = await job_queue.claim_next(limit=1)
        assert [j.id for j in claimed] == [first.id]
        assert claimed[0].status == JobStatus.PROCESSING

        claimed = await job_queue.claim_next(limit=10)
        assert [j.id for j in claimed] == [second.id]
        assert await job_queue.claim_next() == []

    async def test_background_claim_skips_auto_apply_jobs(self, job_queue):
        await job_queue.enqueue("user-1", Platform.LINKEDIN, search(), is_auto_apply=True)
        background = await job_queue.enqueue("user-1", Platform.LINKEDIN, DetailAction("42"))

        claimed = await job_queue.claim_next(include_auto_apply=False)

        assert [j.id for j in claimed] == [background.id]

    async def test_get_unknown_job(self, job_queue):
        with pytest.raises(JobNotFound):
            await job_queue.get("missing")


@pytest.mark.storage
@pytest.mark.asyncio
class TestRetries:
    """FAILED jobs come back after backoff until the ceiling is reached."""

    async def test_failed_job_waits_for_backoff(self, job_queue, clock):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()

        failed = await job_queue.mark_failed(job.id, "HTTP 500", error_type="PlatformError")

        assert failed.status == JobStatus.FAILED
        assert failed.retry_count == 1
        assert failed.error_type == "PlatformError"
        assert (datetime.fromisoformat(failed.next_retry_at) - clock.now).total_seconds() == 300
        assert await job_queue.claim_next() == []

        clock.advance(seconds=301)
        assert [j.id for j in await job_queue.claim_next()] == [job.id]

    async def test_ceiling_makes_job_terminal(self, job_queue, clock):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())

        for _ in range(3):
            claimed = await job_queue.claim_next()
            assert [j.id for j in claimed] == [job.id]
            job = await job_queue.mark_failed(job.id, "HTTP 500")
            clock.advance(hours=2)

        assert job.status == JobStatus.FAILED
        assert job.retry_count == 3
        assert job.next_retry_at is None
        assert job.is_terminal
        clock.advance(days=1)
        assert await job_queue.claim_next() == []
        assert await job_queue.find_pending() == []

    async def test_backoff_is_strictly_increasing(self, db_path, clock):
        queue = JobQueue(db_path, app_config=AppConfig(SCRAPER_MAX_RETRIES=5,
                                                       SCRAPER_RETRY_DELAY_SECONDS=300), clock=clock)
        job = await queue.enqueue("user-1", Platform.INDEED, search())

        delays = []
        for _ in range(4):
            await queue.claim_next()
            job = await queue.mark_failed(job.id, "timeout")
            delays.append((datetime.fromisoformat(job.next_retry_at) - clock.now).total_seconds())
            clock.advance(days=1)

        assert delays == [300, 600, 1200, 2400]
        assert all(a < b for a, b in zip(delays, delays[1:]))

    async def test_permanent_failure_skips_retries(self, job_queue):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()

        failed = await job_queue.mark_failed(job.id, "No active LinkedIn session found. Please login first.",
                                             error_type="NoActiveSession", permanent=True)

        assert failed.retry_count == failed.max_retries
        assert failed.next_retry_at is None
        assert failed.is_terminal

    async def test_operator_retry_resets_budget(self, job_queue):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()
        await job_queue.mark_failed(job.id, "bad", permanent=True)

        reset = await job_queue.reset_for_retry(job.id)

        assert reset.status == JobStatus.PENDING
        assert reset.retry_count == 0
        assert reset.error_message is None
        assert [j.id for j in await job_queue.claim_next()] == [job.id]

    async def test_completed_job_is_terminal(self, job_queue):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()

        await job_queue.mark_completed(job.id, {"jobs": [], "count": 0})

        stored = await job_queue.get(job.id)
        assert stored.status == JobStatus.COMPLETED
        assert stored.result == {"jobs": [], "count": 0}
        assert stored.is_terminal
        assert await job_queue.claim_next() == []


@pytest.mark.storage
@pytest.mark.asyncio
class TestStaleRecovery:
    async def test_stale_background_job_is_requeued(self, job_queue, clock):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()
        clock.advance(minutes=31)

        assert await job_queue.requeue_stale() == 1

        assert (await job_queue.get(job.id)).status == JobStatus.PENDING

    async def test_stale_auto_apply_job_is_closed(self, job_queue, clock):
        job = await job_queue.enqueue("user-1", Platform.LINKEDIN, search(), is_auto_apply=True)
        await job_queue.claim_next()
        clock.advance(minutes=31)

        assert await job_queue.requeue_stale() == 1

        stored = await job_queue.get(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.error_type == "StaleJob"
        assert stored.is_terminal

    async def test_recent_processing_job_untouched(self, job_queue, clock):
        await job_queue.enqueue("user-1", Platform.LINKEDIN, search())
        await job_queue.claim_next()
        clock.advance(minutes=5)

        assert await job_queue.requeue_stale() == 0


@pytest.mark.storage
@pytest.mark.asyncio
class TestRetention:
    async def test_cleanup_deletes_only_old_completed(self, job_queue, db_path, clock):
        done = await job_queue.enqueue("user-1", Platform.LINKEDIN, search("done"))
        failed = await job_queue.enqueue("user-1", Platform.LINKEDIN, search("failed"))
        pending = await job_queue.enqueue("user-1", Platform.LINKEDIN, search("pending"))
        await job_queue.mark_processing(done.id)
        await job_queue.mark_completed(done.id, {"count": 0})
        await job_queue.mark_processing(failed.id)
        await job_queue.mark_failed(failed.id, "bad", permanent=True)

        clock.advance(days=8)
        recent = await job_queue.enqueue("user-1", Platform.LINKEDIN, search("recent"))
        await job_queue.mark_processing(recent.id)
        await job_queue.mark_completed(recent.id, {"count": 0})

        assert await job_queue.cleanup(retention_days=7) == 1
        assert await job_queue.cleanup(retention_days=7) == 0

        async with get_db(db_path) as db:
            cursor = await db.execute("SELECT id FROM scraper_jobs")
            remaining = {row["id"] for row in await cursor.fetchall()}
        assert remaining == {failed.id, pending.id, recent.id}
