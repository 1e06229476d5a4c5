"""
Scraper job execution.

ScraperService is the entry point for interactive scraper work: logging in,
importing browser sessions, submitting jobs and running them through the
matching platform adapter. Every adapter error is funneled into the job
queue's failure bookkeeping.
"""

import logging
from typing import Any, Dict, Optional, Union

from autovagas.adapters.base import PlatformAdapter
from autovagas.core.errors import (
    NoActiveSession,
    PERMANENT_ERRORS,
    PlatformError,
    SessionRateLimited,
)
from autovagas.core.models import (
    Action,
    ApplyAction,
    DetailAction,
    JobStatus,
    Platform,
    ScraperJob,
    ScraperSession,
    SearchAction,
    SessionCredentials,
)

logger = logging.getLogger(__name__)


class ScraperService:
    def __init__(self, job_queue, session_store, adapters: Dict[Platform, PlatformAdapter], job_board=None):
        self.job_queue = job_queue
        self.session_store = session_store
        self.adapters = adapters
        self.job_board = job_board

    def adapter_for(self, platform: Platform) -> PlatformAdapter:
        adapter = self.adapters.get(Platform(platform))
        if adapter is None:
            raise ValueError(f"No adapter registered for {platform}")
        return adapter

    # ============== Sessions ==============

    async def login(self, user_id: str, platform: Platform, email: str, password: str,
                    is_client_side: bool = False) -> ScraperSession:
        """Interactive login. LoginFailed propagates and leaves no session behind."""
        adapter = self.adapter_for(platform)
        credentials = await adapter.login(email, password, user_id)
        session = await self.session_store.create_or_refresh(user_id, Platform(platform), credentials,
                                                             is_client_side=is_client_side)
        logger.info(f"{adapter.name} login succeeded for user {user_id}")
        return session

    async def import_session(self, user_id: str, platform: Platform, cookies: Any,
                             headers: Optional[Dict[str, str]] = None,
                             user_agent: Optional[str] = None) -> ScraperSession:
        """Store a credential bundle captured in the user's own browser."""
        credentials = SessionCredentials(cookies=cookies, headers=headers or {}, user_agent=user_agent)
        return await self.session_store.create_or_refresh(user_id, Platform(platform), credentials,
                                                          is_client_side=True)

    # ============== Jobs ==============

    async def submit(self, user_id: str, platform: Platform, action: Action,
                     is_auto_apply: bool = False) -> ScraperJob:
        self.adapter_for(platform)
        return await self.job_queue.enqueue(user_id, Platform(platform), action, is_auto_apply)

    async def run(self, user_id: str, platform: Platform, action: Action,
                  is_auto_apply: bool = False) -> ScraperJob:
        """Submit a job and process it immediately."""
        job = await self.submit(user_id, platform, action, is_auto_apply)
        return await self.process(job)

    async def retry(self, job_id: str) -> ScraperJob:
        """Operator retry: ignore the backoff timer and start with a fresh budget."""
        return await self.job_queue.reset_for_retry(job_id)

    async def process(self, job: Union[ScraperJob, str]) -> ScraperJob:
        """
        Run one job to COMPLETED or FAILED and return its stored state.

        Permanent errors exhaust the retry budget immediately. Auto-apply jobs
        are never retried in the background: the orchestrator records their
        outcome and the next scheduled run searches again. A job retried after
        a 429 fails for good, keeping its rate-limit error, while the session
        is still RATE_LIMITED: nothing reactivates it short of a new login.
        """
        if isinstance(job, str):
            job = await self.job_queue.get(job)
        if job.status != JobStatus.PROCESSING:
            await self.job_queue.mark_processing(job.id)

        try:
            action = job.action
        except (KeyError, ValueError) as e:
            await self.job_queue.mark_failed(job.id, f"Invalid job parameters: {e}",
                                             error_type="InvalidAction", permanent=True)
            return await self.job_queue.get(job.id)

        try:
            adapter = self.adapter_for(job.platform)
            session = await self.session_store.get_active(job.user_id, job.platform)
            if session is None and job.error_type == SessionRateLimited.__name__:
                # The 429 left the session RATE_LIMITED; only a new login reactivates it.
                await self.job_queue.mark_failed(
                    job.id, f"{job.error_message} (session still rate limited, login again)",
                    error_type=job.error_type, permanent=True,
                )
                return await self.job_queue.get(job.id)
            if session is None:
                raise NoActiveSession(job.platform.display_name)

            result = await self._dispatch(adapter, session, job, action)
            await self.session_store.record_request(session.id)
            await self.job_queue.mark_completed(job.id, result)
        except Exception as e:
            permanent = isinstance(e, PERMANENT_ERRORS) or job.is_auto_apply
            logger.warning(f"Job {job.id} ({job.platform.value} {action.kind}) failed: {type(e).__name__}: {e}")
            await self.job_queue.mark_failed(job.id, str(e) or type(e).__name__,
                                             error_type=type(e).__name__, permanent=permanent)

        return await self.job_queue.get(job.id)

    async def _dispatch(self, adapter: PlatformAdapter, session: ScraperSession,
                        job: ScraperJob, action: Action) -> Dict[str, Any]:
        if isinstance(action, SearchAction):
            listings = await adapter.search(session, action)
            logger.info(f"{adapter.name} search '{action.keywords}' returned {len(listings)} listings")
            return {"jobs": [listing.to_dict() for listing in listings], "count": len(listings)}

        if isinstance(action, DetailAction):
            listing = await adapter.get_details(session, action.listing_id)
            return {"job_details": listing.to_dict()}

        if isinstance(action, ApplyAction):
            outcome = await adapter.apply(session, action)
            if not outcome.success:
                raise PlatformError(outcome.message or f"{adapter.name} rejected the application")
            result = outcome.to_dict()
            result.update(await self._mirror_application(job, action, outcome.listing))
            return result

        raise ValueError(f"Unsupported action: {action.kind}")

    async def _mirror_application(self, job: ScraperJob, action: ApplyAction, listing) -> Dict[str, Any]:
        """Record a submitted external application in the product's own job board."""
        if self.job_board is None or listing is None:
            return {}
        try:
            job_id = await self.job_board.create_job(listing)
            application_id = await self.job_board.apply(job.user_id, job_id, action.cover_letter,
                                                        action.resume_url)
        except Exception as e:
            # The platform already accepted the application; retrying would apply twice.
            logger.error(f"Could not mirror application for job {job.id}: {e}")
            return {"mirror_error": str(e)}
        return {"job_id": job_id, "application_id": application_id}
