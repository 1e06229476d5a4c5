"""
Database module for Autovagas.
Implements SQLite persistence with async support.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from autovagas.core.config import config

PathLike = Union[str, Path]


def _resolve(db_path: Optional[PathLike]) -> Path:
    path = Path(db_path or config.DATABASE_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


async def init_database(db_path: Optional[PathLike] = None):
    """Initialize the database schema."""
    async with aiosqlite.connect(_resolve(db_path)) as db:
        await db.execute("PRAGMA journal_mode=WAL")

        # Users table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id TEXT PRIMARY KEY,
                email TEXT UNIQUE NOT NULL,
                subscription_tier TEXT NOT NULL DEFAULT 'BASIC',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Documents table (resumes and cover letters)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                type TEXT NOT NULL,
                title TEXT,
                content TEXT,
                url TEXT,
                is_default BOOLEAN DEFAULT 0,
                usage_count INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        # System-of-record jobs mirrored from scraped platforms
        await db.execute("""
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                platform TEXT NOT NULL,
                external_id TEXT NOT NULL,
                title TEXT,
                company TEXT,
                location TEXT,
                description TEXT,
                url TEXT,
                data_json TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (platform, external_id)
            )
        """)

        # Applications table
        await db.execute("""
            CREATE TABLE IF NOT EXISTS applications (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                job_id TEXT NOT NULL,
                cover_letter TEXT,
                resume_url TEXT,
                status TEXT NOT NULL DEFAULT 'APPLIED',
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id),
                FOREIGN KEY (job_id) REFERENCES jobs(id)
            )
        """)

        # Authenticated platform sessions
        await db.execute("""
            CREATE TABLE IF NOT EXISTS scraper_sessions (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                status TEXT NOT NULL,
                cookies_json TEXT,
                headers_json TEXT,
                user_agent TEXT,
                proxy_url TEXT,
                request_count INTEGER NOT NULL DEFAULT 0,
                last_request_at TIMESTAMP,
                expires_at TIMESTAMP,
                error_message TEXT,
                is_client_side BOOLEAN DEFAULT 0,
                version INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP,
                updated_at TIMESTAMP
            )
        """)
        await db.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS idx_scraper_sessions_one_active
            ON scraper_sessions(user_id, platform) WHERE status = 'ACTIVE'
        """)

        # Scraper jobs (retry state lives on the row)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS scraper_jobs (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                platform TEXT NOT NULL,
                status TEXT NOT NULL,
                parameters_json TEXT NOT NULL,
                is_auto_apply BOOLEAN DEFAULT 0,
                result_json TEXT,
                error_message TEXT,
                retry_count INTEGER NOT NULL DEFAULT 0,
                max_retries INTEGER NOT NULL DEFAULT 3,
                next_retry_at TIMESTAMP,
                created_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP
            )
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_scraper_jobs_status_created
            ON scraper_jobs(status, created_at)
        """)

        # Auto-apply configuration and counters
        await db.execute("""
            CREATE TABLE IF NOT EXISTS auto_apply_configs (
                user_id TEXT PRIMARY KEY,
                is_enabled BOOLEAN NOT NULL DEFAULT 0,
                keywords TEXT,
                excluded_keywords TEXT,
                locations TEXT,
                industries TEXT,
                excluded_companies TEXT,
                job_types TEXT,
                work_models TEXT,
                salary_min INTEGER,
                experience_max INTEGER,
                match_threshold INTEGER NOT NULL DEFAULT 5,
                max_applications_per_day INTEGER NOT NULL DEFAULT 5,
                max_applications_per_month INTEGER NOT NULL DEFAULT 20,
                applications_today INTEGER NOT NULL DEFAULT 0,
                applications_this_month INTEGER NOT NULL DEFAULT 0,
                last_reset_day TEXT,
                last_reset_month TEXT,
                default_cover_letter TEXT,
                default_resume_url TEXT,
                updated_at TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        # Auto-apply audit trail (insert only)
        await db.execute("""
            CREATE TABLE IF NOT EXISTS auto_apply_history (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                job_id TEXT,
                status TEXT NOT NULL,
                reason TEXT NOT NULL,
                message TEXT,
                match_score INTEGER,
                application_id TEXT,
                created_at TIMESTAMP NOT NULL
            )
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_auto_apply_history_user
            ON auto_apply_history(user_id, created_at)
        """)

        await _migrate_scraper_jobs(db)
        await db.commit()


async def _migrate_scraper_jobs(db: aiosqlite.Connection):
    """Add new optional columns to scraper_jobs if missing."""
    cursor = await db.execute("PRAGMA table_info(scraper_jobs)")
    rows = await cursor.fetchall()
    existing = {row[1] for row in rows}  # (cid, name, type, notnull, dflt, pk)

    migrations = [
        ("error_type", "TEXT"),
    ]

    for col, col_type in migrations:
        if col in existing:
            continue
        await db.execute(f"ALTER TABLE scraper_jobs ADD COLUMN {col} {col_type}")


@asynccontextmanager
async def get_db(db_path: Optional[PathLike] = None):
    """Get a database connection."""
    db = await aiosqlite.connect(_resolve(db_path), timeout=30)
    db.row_factory = aiosqlite.Row
    try:
        yield db
    finally:
        await db.close()
