"""
Auto-apply orchestration.

One run per user:

    load config -> disabled | quota reached | no sessions | per-platform loop

Platforms run concurrently; listings within a platform run one at a time
(search -> details -> score -> filter -> apply), re-checking the live quota
before each listing and reserving a quota slot atomically before each apply.
Every decision lands in the append-only history.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from autovagas.auto_apply.repository import is_quota_reached, quota_message
from autovagas.auto_apply.scoring import (
    calculate_match_score,
    contains_excluded_keyword,
    is_excluded_company,
)
from autovagas.core.config import AppConfig, get_config
from autovagas.core.errors import ApplyNotSupported
from autovagas.core.models import (
    ApplyAction,
    AutoApplyConfig,
    DetailAction,
    Document,
    DocumentType,
    HistoryEntry,
    HistoryReason,
    HistoryStatus,
    JobStatus,
    NormalizedListing,
    ScraperSession,
)

logger = logging.getLogger(__name__)

NO_SESSIONS_MESSAGE = "Nenhuma sessão ativa encontrada. Faça login em pelo menos uma plataforma."


@dataclass
class RunReport:
    """Outcome of one user run."""
    user_id: str
    outcome: str = "PENDING"
    applied: int = 0
    skipped: int = 0
    failed: int = 0
    platforms: List[str] = field(default_factory=list)


@dataclass
class _RunState:
    report: RunReport
    cancelled: asyncio.Event
    resume: Optional[Document] = None
    cover_letter: Optional[Document] = None
    limit_recorded: bool = False


class AutoApplyOrchestrator:
    def __init__(self, repository, session_store, scraper, documents=None,
                 app_config: Optional[AppConfig] = None):
        self.repository = repository
        self.session_store = session_store
        self.scraper = scraper
        self.documents = documents
        self.config = app_config or get_config()
        self._runs: Dict[str, asyncio.Event] = {}

    def cancel(self, user_id: str) -> bool:
        """Ask a running user run to stop before its next listing."""
        event = self._runs.get(user_id)
        if event is None:
            return False
        event.set()
        logger.info(f"Cancellation requested for auto-apply run of user {user_id}")
        return True

    def is_running(self, user_id: str) -> bool:
        return user_id in self._runs

    async def run_for_all_enabled_users(self) -> List[RunReport]:
        user_ids = await self.repository.list_enabled_user_ids()
        logger.info(f"Auto-apply cycle for {len(user_ids)} users")
        reports = []
        for user_id in user_ids:
            reports.append(await self.run_for_user(user_id))
        return reports

    async def run_for_user(self, user_id: str) -> RunReport:
        report = RunReport(user_id=user_id)
        if user_id in self._runs:
            logger.warning(f"Auto-apply already running for user {user_id}")
            report.outcome = "ALREADY_RUNNING"
            return report

        state = _RunState(report=report, cancelled=asyncio.Event())
        self._runs[user_id] = state.cancelled
        logger.info(f"Starting auto-apply process for user {user_id}")
        try:
            cfg = await self.repository.get_config(user_id)
            if cfg is None or not cfg.is_enabled:
                logger.info(f"Auto-apply is disabled for user {user_id}")
                report.outcome = "DISABLED"
                return report

            if is_quota_reached(cfg):
                await self._record_limit(state, quota_message(cfg))
                report.outcome = "QUOTA_EXCEEDED"
                return report

            sessions = [s for s in await self.session_store.list_active(user_id)
                        if s.platform in self.scraper.adapters]
            if not sessions:
                await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR, NO_SESSIONS_MESSAGE)
                report.outcome = "NO_ACTIVE_SESSIONS"
                return report

            if self.documents is not None:
                state.resume = await self.documents.get_default_document(user_id, DocumentType.RESUME)
                state.cover_letter = await self.documents.get_default_document(user_id, DocumentType.COVER_LETTER)

            report.platforms = [s.platform.value for s in sessions]
            await asyncio.gather(*(self._process_platform(state, cfg, session) for session in sessions))
            report.outcome = "CANCELLED" if state.cancelled.is_set() else "COMPLETED"
            logger.info(
                f"Completed auto-apply process for user {user_id}: "
                f"{report.applied} applied, {report.skipped} skipped, {report.failed} failed"
            )
        except Exception as e:
            logger.exception(f"Error in auto-apply process for user {user_id}")
            await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR,
                               f"Auto-apply process error: {e}")
            report.outcome = "ERROR"
        finally:
            self._runs.pop(user_id, None)
        return report

    # ============== Platform loop ==============

    async def _process_platform(self, state: _RunState, cfg: AutoApplyConfig, session: ScraperSession):
        adapter = self.scraper.adapter_for(session.platform)
        name = adapter.name
        user_id = cfg.user_id
        try:
            search = adapter.build_search_action(cfg)
            job = await self.scraper.run(user_id, session.platform, search, is_auto_apply=True)
            if job.status != JobStatus.COMPLETED or not job.result or "jobs" not in job.result:
                logger.error(f"{name} search job failed for user {user_id}: {job.error_message}")
                await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR,
                                   f"{name}: Falha ao buscar vagas ({job.error_message or 'sem resultado'})")
                return

            listings = [NormalizedListing.from_dict(item) for item in job.result["jobs"]]
            logger.info(f"Found {len(listings)} {name} jobs for user {user_id}")

            for listing in listings:
                if not await self._should_continue(state, user_id, name):
                    break
                if not await self._process_listing(state, adapter, cfg, listing):
                    break
        except Exception as e:
            logger.exception(f"Error in {name} auto-apply process for user {user_id}")
            await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR,
                               f"{name}: Erro no processo de auto-apply: {e}")

    async def _should_continue(self, state: _RunState, user_id: str, name: str) -> bool:
        if state.cancelled.is_set():
            return False
        live = await self.repository.get_config(user_id)
        if live is None or not live.is_enabled:
            logger.info(f"Auto-apply disabled mid-run for user {user_id}")
            state.cancelled.set()
            return False
        if is_quota_reached(live):
            logger.info(f"Limit reached during {name} processing for user {user_id}")
            await self._record_limit(state, quota_message(live))
            return False
        return True

    async def _process_listing(self, state: _RunState, adapter, cfg: AutoApplyConfig,
                               listing: NormalizedListing) -> bool:
        name = adapter.name
        user_id = cfg.user_id
        platform = adapter.platform

        details_job = await self.scraper.run(user_id, platform, DetailAction(listing.id), is_auto_apply=True)
        if details_job.status != JobStatus.COMPLETED or not (details_job.result or {}).get("job_details"):
            logger.warning(f"Failed to get details for {name} job {listing.id}: {details_job.error_message}")
            return True
        details = NormalizedListing.from_dict(details_job.result["job_details"])

        score = calculate_match_score(details, cfg, self.config)
        if score < cfg.match_threshold:
            await self._record(state, HistoryStatus.SKIPPED, HistoryReason.LOW_MATCH,
                               f"{name}: Pontuação de correspondência ({score}) abaixo do limiar ({cfg.match_threshold})",
                               match_score=score)
            return True
        if contains_excluded_keyword(details, cfg.excluded_keywords):
            await self._record(state, HistoryStatus.SKIPPED, HistoryReason.EXCLUDED_KEYWORD,
                               f"{name}: Vaga contém palavras-chave excluídas", match_score=score)
            return True
        if is_excluded_company(details, cfg.excluded_companies):
            await self._record(state, HistoryStatus.SKIPPED, HistoryReason.EXCLUDED_COMPANY,
                               f"{name}: Vaga é de empresa excluída", match_score=score)
            return True
        if adapter.requires_direct_apply and not details.can_apply_directly:
            await self._record(state, HistoryStatus.SKIPPED, HistoryReason.ERROR,
                               f"{name}: Vaga não suporta candidatura direta", match_score=score)
            return True

        cover_letter = state.cover_letter.content if state.cover_letter else cfg.default_cover_letter
        resume_url = state.resume.url if state.resume else cfg.default_resume_url

        if not await self.repository.reserve_application(user_id):
            logger.info(f"Limit reached before applying to {name} job {listing.id} for user {user_id}")
            live = await self.repository.get_config(user_id)
            await self._record_limit(state, quota_message(live) if live else "Application limit reached")
            return False

        try:
            apply_job = await self.scraper.run(
                user_id, platform,
                ApplyAction(listing_id=listing.id, cover_letter=cover_letter, resume_url=resume_url),
                is_auto_apply=True,
            )
        except Exception as e:
            logger.exception(f"Error applying to {name} job {listing.id}")
            await self.repository.release_application(user_id)
            await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR,
                               f"{name}: Erro ao se candidatar: {e}", match_score=score)
            return True

        if apply_job.status == JobStatus.COMPLETED:
            result = apply_job.result or {}
            await self._record(
                state, HistoryStatus.SUCCESS, HistoryReason.APPLIED,
                f"{name}: Candidatura realizada com sucesso para {details.title} na {details.company_name}",
                match_score=score,
                job_id=result.get("job_id"),
                application_id=result.get("application_id") or result.get("external_application_id"),
            )
            await self._count_document_usage(state)
            return True

        await self.repository.release_application(user_id)
        if apply_job.error_type == ApplyNotSupported.__name__:
            await self._record(state, HistoryStatus.SKIPPED, HistoryReason.ERROR,
                               f"{name}: {apply_job.error_message}", match_score=score)
        else:
            await self._record(state, HistoryStatus.FAILED, HistoryReason.ERROR,
                               f"{name}: Falha ao se candidatar: {apply_job.error_message or 'Erro desconhecido'}",
                               match_score=score)
        return True

    async def _count_document_usage(self, state: _RunState):
        if self.documents is None:
            return
        for document in (state.resume, state.cover_letter):
            if document is not None:
                await self.documents.increment_usage_count(document.id)

    # ============== History ==============

    async def _record_limit(self, state: _RunState, message: str):
        """One LIMIT_REACHED entry per run, however many platforms hit the limit."""
        if state.limit_recorded:
            return
        state.limit_recorded = True
        await self._record(state, HistoryStatus.SKIPPED, HistoryReason.LIMIT_REACHED, message)

    async def _record(self, state: _RunState, status: HistoryStatus, reason: HistoryReason, message: str,
                      match_score: Optional[int] = None, job_id: Optional[str] = None,
                      application_id: Optional[str] = None):
        entry = HistoryEntry(
            user_id=state.report.user_id,
            status=status,
            reason=reason,
            message=message,
            job_id=job_id,
            match_score=match_score,
            application_id=application_id,
        )
        await self.repository.record_history(entry)
        if status == HistoryStatus.SUCCESS:
            state.report.applied += 1
        elif status == HistoryStatus.SKIPPED:
            state.report.skipped += 1
        else:
            state.report.failed += 1
