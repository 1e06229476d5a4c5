"""
Scraper job queue.

Pure state transitions for ScraperJob rows:

    PENDING -> PROCESSING -> COMPLETED | FAILED
    FAILED -> (re-selectable) while retry_count < max_retries and next_retry_at has passed

Retry bookkeeping lives on the row, so a crashed worker loses nothing.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from autovagas.core.config import AppConfig, get_config
from autovagas.core.database import get_db
from autovagas.core.errors import JobNotFound
from autovagas.core.logging_config import log_job_transition
from autovagas.core.models import Action, JobStatus, Platform, ScraperJob

logger = logging.getLogger(__name__)


def compute_backoff_seconds(base_delay_seconds: float, retry_count: int) -> float:
    """Exponential backoff: base * 2^(retry_count - 1)."""
    return float(base_delay_seconds * (2 ** max(0, retry_count - 1)))


class JobQueue:
    def __init__(
        self,
        db_path,
        app_config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.config = app_config or get_config()
        self._now = clock

    @property
    def max_retries(self) -> int:
        return self.config.SCRAPER_MAX_RETRIES

    @property
    def retry_delay_seconds(self) -> float:
        return self.config.SCRAPER_RETRY_DELAY_SECONDS

    async def get(self, job_id: str) -> ScraperJob:
        async with get_db(self.db_path) as db:
            cursor = await db.execute("SELECT * FROM scraper_jobs WHERE id = ?", (job_id,))
            row = await cursor.fetchone()
        if not row:
            raise JobNotFound(f"Scraper job {job_id} not found")
        return ScraperJob.from_row(row)

    async def enqueue(self, user_id: str, platform: Platform, action: Action,
                      is_auto_apply: bool = False) -> ScraperJob:
        job_id = str(uuid.uuid4())
        now_iso = self._now().isoformat()
        async with get_db(self.db_path) as db:
            await db.execute(
                """INSERT INTO scraper_jobs
                   (id, user_id, platform, status, parameters_json, is_auto_apply,
                    retry_count, max_retries, created_at)
                   VALUES (?, ?, ?, 'PENDING', ?, ?, 0, ?, ?)""",
                (job_id, user_id, platform.value, json.dumps(action.to_dict()),
                 int(is_auto_apply), self.max_retries, now_iso),
            )
            await db.commit()
        log_job_transition(job_id, "PENDING", f"{platform.value} {action.kind}")
        return await self.get(job_id)

    async def find_pending(self, limit: int = 10) -> List[ScraperJob]:
        """Runnable jobs, oldest first, without claiming them."""
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """SELECT * FROM scraper_jobs
                   WHERE status = 'PENDING'
                      OR (status = 'FAILED' AND retry_count < max_retries
                          AND next_retry_at IS NOT NULL AND next_retry_at <= ?)
                   ORDER BY created_at ASC
                   LIMIT ?""",
                (self._now().isoformat(), limit),
            )
            rows = await cursor.fetchall()
            return [ScraperJob.from_row(r) for r in rows]

    async def claim_next(self, limit: int = 10, include_auto_apply: bool = True) -> List[ScraperJob]:
        """
        Atomically claim up to `limit` runnable jobs.

        Selects PENDING jobs plus FAILED jobs under the retry ceiling whose
        next_retry_at has elapsed, oldest first, and moves them to PROCESSING.
        Auto-apply jobs are driven inline by the orchestrator, so background
        workers pass include_auto_apply=False.
        """
        now_iso = self._now().isoformat()
        auto_apply_clause = "" if include_auto_apply else "AND is_auto_apply = 0"
        async with get_db(self.db_path) as db:
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute(
                f"""SELECT * FROM scraper_jobs
                    WHERE (status = 'PENDING'
                           OR (status = 'FAILED' AND retry_count < max_retries
                               AND next_retry_at IS NOT NULL AND next_retry_at <= ?))
                      {auto_apply_clause}
                    ORDER BY created_at ASC
                    LIMIT ?""",
                (now_iso, limit),
            )
            rows = await cursor.fetchall()
            if not rows:
                await db.execute("COMMIT")
                return []

            ids = [row["id"] for row in rows]
            await db.executemany(
                """UPDATE scraper_jobs
                   SET status = 'PROCESSING', started_at = ?
                   WHERE id = ?""",
                [(now_iso, job_id) for job_id in ids],
            )
            await db.commit()

        claimed = []
        for row in rows:
            job = ScraperJob.from_row(row)
            job.status = JobStatus.PROCESSING
            job.started_at = now_iso
            claimed.append(job)
            log_job_transition(job.id, "PROCESSING", "claimed")
        return claimed

    async def mark_processing(self, job_id: str):
        now_iso = self._now().isoformat()
        async with get_db(self.db_path) as db:
            await db.execute(
                "UPDATE scraper_jobs SET status = 'PROCESSING', started_at = ? WHERE id = ?",
                (now_iso, job_id),
            )
            await db.commit()
        log_job_transition(job_id, "PROCESSING")

    async def mark_completed(self, job_id: str, result: Dict[str, Any]):
        now_iso = self._now().isoformat()
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE scraper_jobs
                   SET status = 'COMPLETED', result_json = ?, error_message = NULL,
                       error_type = NULL, next_retry_at = NULL, completed_at = ?
                   WHERE id = ?""",
                (json.dumps(result), now_iso, job_id),
            )
            await db.commit()
        log_job_transition(job_id, "COMPLETED")

    async def mark_failed(self, job_id: str, message: str, *,
                          error_type: Optional[str] = None,
                          permanent: bool = False) -> ScraperJob:
        """
        Record a failure and schedule the next attempt.

        retry_count goes up by one (or straight to the ceiling for permanent
        errors). While it stays under max_retries, next_retry_at is set to
        now + base_delay * 2^(retry_count - 1); at the ceiling the job is
        terminal and next_retry_at is cleared.
        """
        job = await self.get(job_id)
        now = self._now()

        if permanent:
            retry_count = job.max_retries
        else:
            retry_count = min(job.retry_count + 1, job.max_retries)

        next_retry_at = None
        if retry_count < job.max_retries:
            backoff = compute_backoff_seconds(self.retry_delay_seconds, retry_count)
            next_retry_at = (now + timedelta(seconds=backoff)).isoformat()

        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE scraper_jobs
                   SET status = 'FAILED', error_message = ?, error_type = ?,
                       retry_count = ?, next_retry_at = ?, result_json = NULL, completed_at = ?
                   WHERE id = ?""",
                (message, error_type, retry_count, next_retry_at, now.isoformat(), job_id),
            )
            await db.commit()

        if next_retry_at:
            log_job_transition(job_id, "FAILED", f"{message} (retry {retry_count}/{job.max_retries} at {next_retry_at})")
        else:
            log_job_transition(job_id, "FAILED", f"{message} (terminal after {retry_count} attempts)")
        return await self.get(job_id)

    async def reset_for_retry(self, job_id: str) -> ScraperJob:
        """Operator retry: back to PENDING with a fresh retry budget."""
        job = await self.get(job_id)
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE scraper_jobs
                   SET status = 'PENDING', retry_count = 0, next_retry_at = NULL,
                       error_message = NULL, error_type = NULL, result_json = NULL,
                       started_at = NULL, completed_at = NULL
                   WHERE id = ?""",
                (job.id,),
            )
            await db.commit()
        log_job_transition(job_id, "PENDING", "manual retry")
        return await self.get(job_id)

    async def requeue_stale(self, older_than_minutes: Optional[int] = None) -> int:
        """
        Recover PROCESSING jobs abandoned by a crashed process.

        Background jobs go back to PENDING. Auto-apply jobs belong to a run
        that no longer exists, so they are closed as terminal failures.
        """
        now = self._now()
        minutes = older_than_minutes or self.config.SCRAPER_STALE_PROCESSING_MINUTES
        cutoff = (now - timedelta(minutes=minutes)).isoformat()
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """UPDATE scraper_jobs SET status = 'PENDING', started_at = NULL
                   WHERE status = 'PROCESSING' AND started_at < ? AND is_auto_apply = 0""",
                (cutoff,),
            )
            requeued = cursor.rowcount
            cursor = await db.execute(
                """UPDATE scraper_jobs
                   SET status = 'FAILED', error_message = 'Abandoned while processing',
                       error_type = 'StaleJob', retry_count = max_retries,
                       next_retry_at = NULL, completed_at = ?
                   WHERE status = 'PROCESSING' AND started_at < ? AND is_auto_apply = 1""",
                (now.isoformat(), cutoff),
            )
            closed = cursor.rowcount
            await db.commit()
        if requeued or closed:
            logger.warning(f"Recovered stale jobs: {requeued} requeued, {closed} closed")
        return requeued + closed

    async def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete COMPLETED jobs created before the retention horizon."""
        days = self.config.SCRAPER_JOB_RETENTION_DAYS if retention_days is None else retention_days
        cutoff = (self._now() - timedelta(days=days)).isoformat()
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM scraper_jobs WHERE status = 'COMPLETED' AND created_at < ?",
                (cutoff,),
            )
            await db.commit()
            return cursor.rowcount

    async def list_for_user(self, user_id: str, limit: int = 50) -> List[ScraperJob]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                "SELECT * FROM scraper_jobs WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
                (user_id, limit),
            )
            rows = await cursor.fetchall()
            return [ScraperJob.from_row(r) for r in rows]
