#!/usr/bin/env python3
"""
Autovagas - Main Entry Point

Usage:
    # Create or migrate the database
    autovagas init-db

    # Run queue, maintenance and auto-apply loops
    autovagas worker

    # One auto-apply run for a user
    autovagas run-auto-apply --user USER_ID

    # Operator retry of a failed scraper job
    autovagas retry-job --job JOB_ID

    # Expire sessions / delete old jobs and sessions
    autovagas sweep
    autovagas cleanup
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Optional

from autovagas.adapters import build_adapters
from autovagas.auto_apply.capabilities import (
    SqliteDocumentProvider,
    SqliteJobBoard,
    SqliteUserDirectory,
)
from autovagas.auto_apply.orchestrator import AutoApplyOrchestrator
from autovagas.auto_apply.repository import AutoApplyRepository
from autovagas.core.config import AppConfig, get_config
from autovagas.core.database import init_database
from autovagas.core.errors import AutovagasError
from autovagas.core.logging_config import setup_logging
from autovagas.scrapers.job_queue import JobQueue
from autovagas.scrapers.job_runner import ScraperService
from autovagas.scrapers.proxy_pool import ProxyPool
from autovagas.scrapers.queue_worker import AutoApplyScheduler, MaintenanceWorker, QueueWorker
from autovagas.scrapers.session_store import SessionStore

logger = logging.getLogger("autovagas.main")


@dataclass
class Services:
    config: AppConfig
    proxy_pool: ProxyPool
    users: SqliteUserDirectory
    session_store: SessionStore
    job_queue: JobQueue
    scraper: ScraperService
    repository: AutoApplyRepository
    orchestrator: AutoApplyOrchestrator


def build_services(app_config: Optional[AppConfig] = None) -> Services:
    """Wire the engine against the configured SQLite database."""
    cfg = app_config or get_config()
    db_path = cfg.DATABASE_PATH

    proxy_pool = ProxyPool(cfg)
    users = SqliteUserDirectory(db_path)
    session_store = SessionStore(db_path, proxy_pool=proxy_pool, users=users, app_config=cfg)
    job_queue = JobQueue(db_path, app_config=cfg)
    adapters = build_adapters(session_store, proxy_pool=proxy_pool, app_config=cfg)
    scraper = ScraperService(job_queue, session_store, adapters, job_board=SqliteJobBoard(db_path))
    repository = AutoApplyRepository(db_path, users=users, app_config=cfg)
    orchestrator = AutoApplyOrchestrator(
        repository, session_store, scraper,
        documents=SqliteDocumentProvider(db_path), app_config=cfg,
    )
    return Services(cfg, proxy_pool, users, session_store, job_queue, scraper, repository, orchestrator)


async def run_workers(services: Services):
    """Run all background loops until interrupted."""
    workers = [
        QueueWorker(scraper=services.scraper, job_queue=services.job_queue),
        MaintenanceWorker(session_store=services.session_store, job_queue=services.job_queue,
                          proxy_pool=services.proxy_pool),
        AutoApplyScheduler(orchestrator=services.orchestrator),
    ]
    for worker in workers:
        worker.start()
    try:
        await asyncio.Event().wait()
    finally:
        for worker in workers:
            await worker.stop()


async def run_auto_apply(services: Services, user_id: str):
    report = await services.orchestrator.run_for_user(user_id)
    logger.info(
        f"Run for {user_id}: {report.outcome} "
        f"(applied={report.applied}, skipped={report.skipped}, failed={report.failed})"
    )


async def retry_job(services: Services, job_id: str):
    job = await services.scraper.retry(job_id)
    logger.info(f"Job {job.id} reset to {job.status.value}")


async def sweep(services: Services):
    count = await services.session_store.sweep_expired()
    logger.info(f"Expired {count} sessions")


async def cleanup(services: Services, retention_days: Optional[int]):
    jobs = await services.job_queue.cleanup(retention_days)
    sessions = await services.session_store.cleanup()
    logger.info(f"Deleted {jobs} completed jobs and {sessions} sessions")


def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Autovagas - scraper sessions and auto-apply engine"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create or migrate the database")
    subparsers.add_parser("worker", help="Run queue, maintenance and auto-apply loops")

    run_parser = subparsers.add_parser("run-auto-apply", help="Run auto-apply once for a user")
    run_parser.add_argument("--user", required=True, help="User id")

    retry_parser = subparsers.add_parser("retry-job", help="Reset a failed scraper job to PENDING")
    retry_parser.add_argument("--job", required=True, help="Scraper job id")

    subparsers.add_parser("sweep", help="Expire sessions past their expiry")

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old completed jobs and dead sessions")
    cleanup_parser.add_argument("--retention-days", type=int, default=None,
                                help="Override SCRAPER_JOB_RETENTION_DAYS")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    cfg = get_config()
    setup_logging(log_dir=cfg.LOG_DIR, level=cfg.LOG_LEVEL)
    problems = cfg.validate()
    if problems:
        for problem in problems:
            logger.error(f"Configuration problem: {problem}")
        sys.exit(1)

    services = build_services(cfg)

    async def _run():
        await init_database(cfg.DATABASE_PATH)
        if args.command == "init-db":
            logger.info(f"Database ready at {cfg.DATABASE_PATH}")
        elif args.command == "worker":
            await run_workers(services)
        elif args.command == "run-auto-apply":
            await run_auto_apply(services, args.user)
        elif args.command == "retry-job":
            await retry_job(services, args.job)
        elif args.command == "sweep":
            await sweep(services)
        elif args.command == "cleanup":
            await cleanup(services, args.retention_days)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except AutovagasError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
