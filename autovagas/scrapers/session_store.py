"""
Scraper session store.

Owns the lifecycle of per-user, per-platform authenticated sessions. There is
at most one ACTIVE row per (user_id, platform); a new login for the same pair
refreshes that row in place.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from autovagas.core.config import AppConfig, get_config, random_user_agent
from autovagas.core.database import get_db
from autovagas.core.logging_config import log_session_event
from autovagas.core.models import (
    Platform,
    ScraperSession,
    SessionCredentials,
    SessionStatus,
    SubscriptionTier,
)

logger = logging.getLogger(__name__)


class SessionStore:
    def __init__(
        self,
        db_path,
        proxy_pool=None,
        users=None,
        app_config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.proxy_pool = proxy_pool
        self.users = users
        self.config = app_config or get_config()
        self._now = clock

    def _expires_at(self, platform: Platform, now: datetime) -> str:
        return (now + timedelta(hours=self.config.session_ttl_hours(platform.value))).isoformat()

    async def _proxy_for(self, user_id: str, is_client_side: bool) -> Optional[str]:
        # Client-side sessions egress from the user's own browser.
        if is_client_side or self.proxy_pool is None:
            return None
        tier = SubscriptionTier.BASIC
        if self.users is not None:
            user = await self.users.get_by_id(user_id)
            if user is not None:
                tier = user.subscription_tier
        if tier == SubscriptionTier.BASIC:
            return None
        proxy = await self.proxy_pool.acquire()
        return proxy.to_url() if proxy else None

    async def get(self, session_id: str) -> Optional[ScraperSession]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute("SELECT * FROM scraper_sessions WHERE id = ?", (session_id,))
            row = await cursor.fetchone()
            return ScraperSession.from_row(row) if row else None

    async def create_or_refresh(
        self,
        user_id: str,
        platform: Platform,
        credentials: SessionCredentials,
        is_client_side: bool = False,
    ) -> ScraperSession:
        """
        Store a freshly obtained credential bundle.

        If the pair already has an ACTIVE session its cookies, headers and
        expiry are overwritten in place. Otherwise a new session is created
        with a random user agent (unless the login supplied one) and, for
        server-side sessions of paying users, a proxy.
        """
        existing = await self.get_active(user_id, platform, include_expired=True)
        proxy_url = None
        if existing is None:
            proxy_url = await self._proxy_for(user_id, is_client_side)

        now = self._now()
        now_iso = now.isoformat()
        expires_at = self._expires_at(platform, now)
        cookies_json = json.dumps(credentials.cookies) if credentials.cookies is not None else None
        headers_json = json.dumps(credentials.headers or {})

        async with get_db(self.db_path) as db:
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute(
                "SELECT * FROM scraper_sessions WHERE user_id = ? AND platform = ? AND status = 'ACTIVE'",
                (user_id, platform.value),
            )
            row = await cursor.fetchone()

            if row:
                session_id = row["id"]
                await db.execute(
                    """UPDATE scraper_sessions
                       SET cookies_json = ?, headers_json = ?,
                           user_agent = COALESCE(?, user_agent),
                           status = 'ACTIVE', error_message = NULL,
                           last_request_at = ?, expires_at = ?, is_client_side = ?,
                           version = version + 1, updated_at = ?
                       WHERE id = ?""",
                    (cookies_json, headers_json, credentials.user_agent, now_iso,
                     expires_at, int(is_client_side), now_iso, session_id),
                )
                event = "refreshed"
            else:
                session_id = str(uuid.uuid4())
                await db.execute(
                    """INSERT INTO scraper_sessions
                       (id, user_id, platform, status, cookies_json, headers_json, user_agent,
                        proxy_url, request_count, last_request_at, expires_at, is_client_side,
                        version, created_at, updated_at)
                       VALUES (?, ?, ?, 'ACTIVE', ?, ?, ?, ?, 0, ?, ?, ?, 0, ?, ?)""",
                    (session_id, user_id, platform.value, cookies_json, headers_json,
                     credentials.user_agent or random_user_agent(), proxy_url, now_iso,
                     expires_at, int(is_client_side), now_iso, now_iso),
                )
                event = "created"
            await db.commit()

        log_session_event(session_id, event, f"{platform.value} user={user_id} expires={expires_at}")
        return await self.get(session_id)

    async def get_active(self, user_id: str, platform: Platform,
                         include_expired: bool = False) -> Optional[ScraperSession]:
        """Return the pair's ACTIVE session, skipping ones already past expiry."""
        query = "SELECT * FROM scraper_sessions WHERE user_id = ? AND platform = ? AND status = 'ACTIVE'"
        params = [user_id, platform.value]
        if not include_expired:
            query += " AND (expires_at IS NULL OR expires_at > ?)"
            params.append(self._now().isoformat())
        async with get_db(self.db_path) as db:
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
            return ScraperSession.from_row(row) if row else None

    async def list_active(self, user_id: str) -> List[ScraperSession]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """SELECT * FROM scraper_sessions
                   WHERE user_id = ? AND status = 'ACTIVE'
                     AND (expires_at IS NULL OR expires_at > ?)
                   ORDER BY platform""",
                (user_id, self._now().isoformat()),
            )
            rows = await cursor.fetchall()
            return [ScraperSession.from_row(r) for r in rows]

    async def _transition(self, session_id: str, status: SessionStatus, message: Optional[str],
                          expected_version: Optional[int]) -> bool:
        """
        Move a session to a new status.

        When expected_version is given the update only applies if nobody has
        refreshed the session since the caller read it.
        """
        now_iso = self._now().isoformat()
        query = """UPDATE scraper_sessions
                   SET status = ?, error_message = ?, version = version + 1, updated_at = ?
                   WHERE id = ?"""
        params = [status.value, message, now_iso, session_id]
        if expected_version is not None:
            query += " AND version = ?"
            params.append(expected_version)
        async with get_db(self.db_path) as db:
            cursor = await db.execute(query, params)
            await db.commit()
            changed = cursor.rowcount > 0
        if changed:
            log_session_event(session_id, status.value.lower(), message)
        else:
            logger.info(f"Session {session_id} changed concurrently, {status.value} not applied")
        return changed

    async def invalidate(self, session_id: str, reason: str,
                         expected_version: Optional[int] = None) -> bool:
        return await self._transition(session_id, SessionStatus.INVALID, reason, expected_version)

    async def mark_rate_limited(self, session_id: str,
                                expected_version: Optional[int] = None) -> bool:
        return await self._transition(
            session_id, SessionStatus.RATE_LIMITED, "Rate limited by platform", expected_version
        )

    async def record_request(self, session_id: str):
        """Count one successful adapter call against the session."""
        now_iso = self._now().isoformat()
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE scraper_sessions
                   SET request_count = request_count + 1, last_request_at = ?, updated_at = ?
                   WHERE id = ?""",
                (now_iso, now_iso, session_id),
            )
            await db.commit()

    async def sweep_expired(self) -> int:
        """Mark every ACTIVE session past its expiry as EXPIRED."""
        now_iso = self._now().isoformat()
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """UPDATE scraper_sessions
                   SET status = 'EXPIRED', version = version + 1, updated_at = ?
                   WHERE status = 'ACTIVE' AND expires_at < ?""",
                (now_iso, now_iso),
            )
            await db.commit()
            count = cursor.rowcount
        if count:
            logger.info(f"Expired {count} scraper sessions")
        return count

    async def cleanup(self, retention_days: Optional[int] = None) -> int:
        """Delete non-ACTIVE sessions untouched for longer than the retention window."""
        days = self.config.SESSION_RETENTION_DAYS if retention_days is None else retention_days
        cutoff = (self._now() - timedelta(days=days)).isoformat()
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM scraper_sessions WHERE status != 'ACTIVE' AND updated_at < ?",
                (cutoff,),
            )
            await db.commit()
            count = cursor.rowcount
        if count:
            logger.info(f"Deleted {count} scraper sessions older than {days} days")
        return count
