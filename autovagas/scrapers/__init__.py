"""
Scraper infrastructure: egress proxies, platform sessions, the scraper job
queue, job execution and the background workers that drive them.
"""

from .job_queue import JobQueue, compute_backoff_seconds
from .job_runner import ScraperService
from .proxy_pool import Proxy, ProxyPool
from .queue_worker import AutoApplyScheduler, MaintenanceWorker, QueueWorker
from .session_store import SessionStore

__all__ = [
    "AutoApplyScheduler",
    "JobQueue",
    "MaintenanceWorker",
    "Proxy",
    "ProxyPool",
    "QueueWorker",
    "ScraperService",
    "SessionStore",
    "compute_backoff_seconds",
]
