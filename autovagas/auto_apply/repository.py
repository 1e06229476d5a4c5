"""
Auto-apply configuration and history persistence.

Counters are reset lazily when the calendar day or month changes, and are
always incremented in place at the storage layer. History rows are insert-only.
"""

import dataclasses
import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autovagas.core.config import AppConfig, get_config
from autovagas.core.database import get_db
from autovagas.core.errors import ConfigValidationError
from autovagas.core.models import (
    AutoApplyConfig,
    HistoryEntry,
    HistoryReason,
    HistoryStatus,
    JobType,
    SubscriptionTier,
    WorkModel,
)

logger = logging.getLogger(__name__)

UPDATABLE_COLUMNS = (
    "is_enabled", "keywords", "excluded_keywords", "locations", "industries",
    "excluded_companies", "job_types", "work_models", "salary_min", "experience_max",
    "match_threshold", "max_applications_per_day", "max_applications_per_month",
    "default_cover_letter", "default_resume_url",
)


class AutoApplyConfigUpdate(BaseModel):
    """Partial update of a user's auto-apply settings."""
    model_config = ConfigDict(extra="forbid")

    is_enabled: Optional[bool] = None
    keywords: Optional[str] = None
    excluded_keywords: Optional[str] = None
    locations: Optional[str] = None
    industries: Optional[str] = None
    excluded_companies: Optional[str] = None
    job_types: Optional[List[JobType]] = None
    work_models: Optional[List[WorkModel]] = None
    salary_min: Optional[int] = Field(default=None, ge=0)
    experience_max: Optional[int] = Field(default=None, ge=0)
    match_threshold: Optional[int] = Field(default=None, ge=0, le=10)
    max_applications_per_day: Optional[int] = Field(default=None, ge=0)
    max_applications_per_month: Optional[int] = Field(default=None, ge=0)
    default_cover_letter: Optional[str] = None
    default_resume_url: Optional[str] = Field(default=None, pattern=r"^https?://")

    @field_validator("is_enabled", "match_threshold", "max_applications_per_day",
                     "max_applications_per_month", mode="before")
    @classmethod
    def _not_null(cls, value):
        # Stored in NOT NULL columns; omit the field to leave it unchanged.
        if value is None:
            raise ValueError("may be omitted but not null")
        return value

    def to_columns(self) -> Dict[str, Any]:
        values = self.model_dump(exclude_unset=True)
        if values.get("job_types") is not None:
            values["job_types"] = ",".join(t.value for t in values["job_types"])
        if values.get("work_models") is not None:
            values["work_models"] = ",".join(m.value for m in values["work_models"])
        if "is_enabled" in values:
            values["is_enabled"] = int(values["is_enabled"])
        return values


def is_quota_reached(cfg: AutoApplyConfig) -> bool:
    return (cfg.applications_today >= cfg.max_applications_per_day
            or cfg.applications_this_month >= cfg.max_applications_per_month)


def quota_message(cfg: AutoApplyConfig) -> str:
    if cfg.applications_today >= cfg.max_applications_per_day:
        return f"Daily application limit reached ({cfg.max_applications_per_day})"
    return f"Monthly application limit reached ({cfg.max_applications_per_month})"


class AutoApplyRepository:
    def __init__(
        self,
        db_path,
        users=None,
        app_config: Optional[AppConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.users = users
        self.config = app_config or get_config()
        self._now = clock

    async def _tier(self, user_id: str) -> SubscriptionTier:
        if self.users is None:
            return SubscriptionTier.BASIC
        user = await self.users.get_by_id(user_id)
        return user.subscription_tier if user else SubscriptionTier.BASIC

    # ============== Config ==============

    async def get_config(self, user_id: str) -> Optional[AutoApplyConfig]:
        """Load a user's config, resetting counters first if a new day or month began."""
        now = self._now()
        today = now.date().isoformat()
        month = now.strftime("%Y-%m")
        now_iso = now.isoformat()

        async with get_db(self.db_path) as db:
            # Conditional on the stored marker, so concurrent readers reset once.
            await db.execute(
                """UPDATE auto_apply_configs
                   SET applications_today = 0, last_reset_day = ?, updated_at = ?
                   WHERE user_id = ? AND (last_reset_day IS NULL OR last_reset_day != ?)""",
                (today, now_iso, user_id, today),
            )
            await db.execute(
                """UPDATE auto_apply_configs
                   SET applications_this_month = 0, last_reset_month = ?, updated_at = ?
                   WHERE user_id = ? AND (last_reset_month IS NULL OR last_reset_month != ?)""",
                (month, now_iso, user_id, month),
            )
            await db.commit()

            cursor = await db.execute("SELECT * FROM auto_apply_configs WHERE user_id = ?", (user_id,))
            row = await cursor.fetchone()
        return AutoApplyConfig.from_row(row) if row else None

    async def get_or_create_config(self, user_id: str) -> AutoApplyConfig:
        """Return the user's config, creating a disabled one sized to their plan."""
        existing = await self.get_config(user_id)
        if existing is not None:
            return existing

        tier = await self._tier(user_id)
        limits = self.config.plan_limits(tier.value)
        now = self._now()
        async with get_db(self.db_path) as db:
            await db.execute(
                """INSERT OR IGNORE INTO auto_apply_configs
                   (user_id, is_enabled, match_threshold, max_applications_per_day,
                    max_applications_per_month, applications_today, applications_this_month,
                    last_reset_day, last_reset_month, updated_at)
                   VALUES (?, 0, ?, ?, ?, 0, 0, ?, ?, ?)""",
                (user_id, self.config.DEFAULT_MATCH_THRESHOLD, limits["daily"], limits["monthly"],
                 now.date().isoformat(), now.strftime("%Y-%m"), now.isoformat()),
            )
            await db.commit()
        logger.info(f"Created auto-apply config for user {user_id} ({tier.value} plan)")
        return await self.get_config(user_id)

    async def update_config(self, user_id: str, payload: Dict[str, Any]) -> AutoApplyConfig:
        """
        Validate and apply a partial config update.

        Raises ConfigValidationError when the payload is malformed, when a
        limit exceeds the user's plan, or when enabling without keywords.
        """
        try:
            update = AutoApplyConfigUpdate.model_validate(payload)
        except ValidationError as e:
            raise ConfigValidationError(str(e)) from e

        current = await self.get_or_create_config(user_id)
        tier = await self._tier(user_id)
        limits = self.config.plan_limits(tier.value)

        if update.max_applications_per_day is not None and update.max_applications_per_day > limits["daily"]:
            raise ConfigValidationError(
                f"Daily limit for the {tier.value} plan is {limits['daily']}"
            )
        if update.max_applications_per_month is not None and update.max_applications_per_month > limits["monthly"]:
            raise ConfigValidationError(
                f"Monthly limit for the {tier.value} plan is {limits['monthly']}"
            )

        columns = update.to_columns()
        enabled = columns.get("is_enabled", current.is_enabled)
        keywords = columns["keywords"] if "keywords" in columns else current.keywords
        if enabled and not (keywords or "").strip():
            raise ConfigValidationError("Keywords are required to enable auto-apply")

        if columns:
            assignments = ", ".join(f"{name} = ?" for name in columns)
            params = list(columns.values()) + [self._now().isoformat(), user_id]
            async with get_db(self.db_path) as db:
                await db.execute(
                    f"UPDATE auto_apply_configs SET {assignments}, updated_at = ? WHERE user_id = ?",
                    params,
                )
                await db.commit()
        return await self.get_config(user_id)

    async def sync_plan_limits(self, user_id: str) -> Optional[AutoApplyConfig]:
        """Lower stored limits that exceed the user's current plan (after a downgrade)."""
        tier = await self._tier(user_id)
        limits = self.config.plan_limits(tier.value)
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE auto_apply_configs
                   SET max_applications_per_day = MIN(max_applications_per_day, ?),
                       max_applications_per_month = MIN(max_applications_per_month, ?),
                       updated_at = ?
                   WHERE user_id = ?""",
                (limits["daily"], limits["monthly"], self._now().isoformat(), user_id),
            )
            await db.commit()
        return await self.get_config(user_id)

    async def increment_counters(self, user_id: str):
        """Count one application against both the daily and monthly quota."""
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE auto_apply_configs
                   SET applications_today = applications_today + 1,
                       applications_this_month = applications_this_month + 1,
                       updated_at = ?
                   WHERE user_id = ?""",
                (self._now().isoformat(), user_id),
            )
            await db.commit()

    async def reserve_application(self, user_id: str) -> bool:
        """
        Take one slot of the daily and monthly quota before applying.

        The limit check and the increment are one conditional UPDATE, so
        concurrent platform loops of the same run can never take more slots
        than the plan allows. Returns False when no slot is left.
        """
        await self.get_config(user_id)
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                """UPDATE auto_apply_configs
                   SET applications_today = applications_today + 1,
                       applications_this_month = applications_this_month + 1,
                       updated_at = ?
                   WHERE user_id = ?
                     AND applications_today < max_applications_per_day
                     AND applications_this_month < max_applications_per_month""",
                (self._now().isoformat(), user_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def release_application(self, user_id: str):
        """Give back a slot taken by reserve_application when the apply did not go through."""
        async with get_db(self.db_path) as db:
            await db.execute(
                """UPDATE auto_apply_configs
                   SET applications_today = MAX(applications_today - 1, 0),
                       applications_this_month = MAX(applications_this_month - 1, 0),
                       updated_at = ?
                   WHERE user_id = ?""",
                (self._now().isoformat(), user_id),
            )
            await db.commit()

    async def list_enabled_user_ids(self) -> List[str]:
        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                "SELECT user_id FROM auto_apply_configs WHERE is_enabled = 1 ORDER BY user_id"
            )
            rows = await cursor.fetchall()
        return [row["user_id"] for row in rows]

    # ============== History ==============

    async def record_history(self, entry: HistoryEntry) -> HistoryEntry:
        stored = dataclasses.replace(
            entry,
            id=entry.id or str(uuid.uuid4()),
            created_at=entry.created_at or self._now().isoformat(),
        )
        async with get_db(self.db_path) as db:
            await db.execute(
                """INSERT INTO auto_apply_history
                   (id, user_id, job_id, status, reason, message, match_score, application_id, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (stored.id, stored.user_id, stored.job_id, stored.status.value, stored.reason.value,
                 stored.message, stored.match_score, stored.application_id, stored.created_at),
            )
            await db.commit()
        logger.info(f"[{stored.user_id}] {stored.status.value}/{stored.reason.value}: {stored.message}")
        return stored

    async def get_history(
        self,
        user_id: str,
        status: Optional[HistoryStatus] = None,
        reason: Optional[HistoryReason] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Dict[str, Any]:
        """Newest-first history page with the total row count for the filters."""
        where = ["user_id = ?"]
        params: List[Any] = [user_id]
        if status:
            where.append("status = ?")
            params.append(HistoryStatus(status).value)
        if reason:
            where.append("reason = ?")
            params.append(HistoryReason(reason).value)
        if start_date:
            where.append("created_at >= ?")
            params.append(start_date)
        if end_date:
            where.append("created_at <= ?")
            params.append(end_date)
        clause = " AND ".join(where)

        async with get_db(self.db_path) as db:
            cursor = await db.execute(f"SELECT COUNT(*) FROM auto_apply_history WHERE {clause}", params)
            total = (await cursor.fetchone())[0]
            cursor = await db.execute(
                f"""SELECT * FROM auto_apply_history WHERE {clause}
                    ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?""",
                params + [limit, offset],
            )
            rows = await cursor.fetchall()

        return {
            "data": [HistoryEntry.from_row(r) for r in rows],
            "meta": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "has_next": offset + len(rows) < total,
                "has_previous": offset > 0,
            },
        }

    async def get_statistics(self, user_id: str) -> Dict[str, Any]:
        cfg = await self.get_or_create_config(user_id)
        tier = await self._tier(user_id)
        limits = self.config.plan_limits(tier.value)
        now = self._now()
        day_start = now.replace(hour=0, minute=0, second=0, microsecond=0).isoformat()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0).isoformat()

        async with get_db(self.db_path) as db:
            cursor = await db.execute(
                "SELECT status, COUNT(*) FROM auto_apply_history WHERE user_id = ? GROUP BY status",
                (user_id,),
            )
            by_status = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await db.execute(
                "SELECT reason, COUNT(*) FROM auto_apply_history WHERE user_id = ? GROUP BY reason",
                (user_id,),
            )
            by_reason_rows = {row[0]: row[1] for row in await cursor.fetchall()}
            cursor = await db.execute(
                """SELECT AVG(match_score) FROM auto_apply_history
                   WHERE user_id = ? AND match_score IS NOT NULL""",
                (user_id,),
            )
            average = (await cursor.fetchone())[0]
            cursor = await db.execute(
                "SELECT COUNT(*) FROM auto_apply_history WHERE user_id = ? AND created_at >= ?",
                (user_id, day_start),
            )
            today_count = (await cursor.fetchone())[0]
            cursor = await db.execute(
                "SELECT COUNT(*) FROM auto_apply_history WHERE user_id = ? AND created_at >= ?",
                (user_id, month_start),
            )
            month_count = (await cursor.fetchone())[0]

        total = sum(by_status.values())
        success = by_status.get(HistoryStatus.SUCCESS.value, 0)
        return {
            "total": total,
            "success": success,
            "failed": by_status.get(HistoryStatus.FAILED.value, 0),
            "skipped": by_status.get(HistoryStatus.SKIPPED.value, 0),
            "success_rate": (success / total) * 100 if total else 0.0,
            "average_match_score": round(average, 2) if average is not None else None,
            "by_reason": {reason.value: by_reason_rows.get(reason.value, 0) for reason in HistoryReason},
            "today": {
                "count": today_count,
                "limit": cfg.max_applications_per_day,
                "remaining": max(0, cfg.max_applications_per_day - cfg.applications_today),
                "plan_limit": limits["daily"],
            },
            "this_month": {
                "count": month_count,
                "limit": cfg.max_applications_per_month,
                "remaining": max(0, cfg.max_applications_per_month - cfg.applications_this_month),
                "plan_limit": limits["monthly"],
            },
        }
