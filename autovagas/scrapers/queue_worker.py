#!/usr/bin/env python3
"""
Background Workers

- QueueWorker: claims runnable scraper jobs and runs them through ScraperService
- MaintenanceWorker: session expiry sweep, retention cleanup, stale job recovery, proxy refresh
- AutoApplyScheduler: periodic auto-apply run for every enabled user

Each worker is a dataclass with start()/stop() around an asyncio task and an
asyncio.Event stop flag, so they can share one event loop.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from autovagas.core.config import get_config

logger = logging.getLogger(__name__)


@dataclass
class _LoopWorker:
    interval_seconds: float = 60.0
    worker_id: str = field(default_factory=lambda: f"worker_{uuid.uuid4().hex[:10]}")
    _task: Optional[asyncio.Task] = None
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event)

    def start(self):
        if self._task and not self._task.done():
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run_loop(), name=f"{type(self).__name__}:{self.worker_id}")
        logger.info(f"{type(self).__name__} started: {self.worker_id}")

    async def stop(self):
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info(f"{type(self).__name__} stopped: {self.worker_id}")

    async def _sleep(self, seconds: float):
        """Sleep that wakes up early when stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_once(self) -> Any:
        raise NotImplementedError

    async def run_loop(self):
        while not self._stop_event.is_set():
            try:
                busy = await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"{type(self).__name__} loop error: {e}")
                busy = False
            if not busy:
                await self._sleep(self.interval_seconds)


@dataclass
class QueueWorker(_LoopWorker):
    scraper: Any = None
    job_queue: Any = None
    batch_size: int = field(default_factory=lambda: get_config().QUEUE_BATCH_SIZE)
    interval_seconds: float = field(default_factory=lambda: get_config().QUEUE_POLL_INTERVAL_SECONDS)

    async def run_once(self) -> bool:
        """Process one claimed batch. Returns True when work was found."""
        jobs = await self.job_queue.claim_next(self.batch_size, include_auto_apply=False)
        if not jobs:
            return False
        for job in jobs:
            if self._stop_event.is_set():
                break
            await self.scraper.process(job)
        return True


@dataclass
class MaintenanceWorker(_LoopWorker):
    session_store: Any = None
    job_queue: Any = None
    proxy_pool: Any = None
    interval_seconds: float = field(default_factory=lambda: get_config().MAINTENANCE_INTERVAL_SECONDS)

    async def run_once(self) -> bool:
        stats: Dict[str, int] = {
            "sessions_expired": await self.session_store.sweep_expired(),
            "jobs_requeued": await self.job_queue.requeue_stale(),
            "jobs_deleted": await self.job_queue.cleanup(),
            "sessions_deleted": await self.session_store.cleanup(),
        }
        if self.proxy_pool is not None:
            stats["proxies"] = await self.proxy_pool.refresh()
        logger.info(f"Maintenance pass: {stats}")
        return False


@dataclass
class AutoApplyScheduler(_LoopWorker):
    orchestrator: Any = None
    interval_seconds: float = field(default_factory=lambda: get_config().AUTO_APPLY_INTERVAL_SECONDS)

    async def run_once(self) -> bool:
        reports = await self.orchestrator.run_for_all_enabled_users()
        applied = sum(r.applied for r in reports)
        logger.info(f"Auto-apply cycle finished: {len(reports)} users, {applied} applications")
        return False
