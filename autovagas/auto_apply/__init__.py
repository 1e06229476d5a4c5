"""
Auto-apply: match scoring, config/history persistence and the per-user
orchestration loop.
"""

from .capabilities import (
    DocumentProvider,
    JobBoard,
    SqliteDocumentProvider,
    SqliteJobBoard,
    SqliteUserDirectory,
    UserDirectory,
)
from .orchestrator import AutoApplyOrchestrator, RunReport
from .repository import AutoApplyConfigUpdate, AutoApplyRepository, is_quota_reached
from .scoring import calculate_match_score, contains_excluded_keyword, is_excluded_company

__all__ = [
    "AutoApplyConfigUpdate",
    "AutoApplyOrchestrator",
    "AutoApplyRepository",
    "DocumentProvider",
    "JobBoard",
    "RunReport",
    "SqliteDocumentProvider",
    "SqliteJobBoard",
    "SqliteUserDirectory",
    "UserDirectory",
    "calculate_match_score",
    "contains_excluded_keyword",
    "is_excluded_company",
    "is_quota_reached",
]
