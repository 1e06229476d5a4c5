#!/usr/bin/env python3
"""
Shared Data Models for Autovagas

Sessions, jobs, actions, listings and auto-apply records are all defined here
so that the stores, adapters and orchestrator agree on one shape.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


# ============== Enums ==============

class Platform(str, Enum):
    """Supported job platforms."""
    LINKEDIN = "LINKEDIN"
    INFOJOBS = "INFOJOBS"
    CATHO = "CATHO"
    INDEED = "INDEED"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Platform.LINKEDIN: "LinkedIn",
    Platform.INFOJOBS: "InfoJobs",
    Platform.CATHO: "Catho",
    Platform.INDEED: "Indeed",
}


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    INVALID = "INVALID"
    RATE_LIMITED = "RATE_LIMITED"


class JobStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class HistoryStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


class HistoryReason(str, Enum):
    APPLIED = "APPLIED"
    LOW_MATCH = "LOW_MATCH"
    EXCLUDED_KEYWORD = "EXCLUDED_KEYWORD"
    EXCLUDED_COMPANY = "EXCLUDED_COMPANY"
    LIMIT_REACHED = "LIMIT_REACHED"
    ERROR = "ERROR"


class SubscriptionTier(str, Enum):
    BASIC = "BASIC"
    PLUS = "PLUS"
    PREMIUM = "PREMIUM"


class DocumentType(str, Enum):
    RESUME = "RESUME"
    COVER_LETTER = "COVER_LETTER"


class JobType(str, Enum):
    """Canonical employment types. Adapters translate to and from these."""
    CLT = "CLT"
    PJ = "PJ"
    FREELANCER = "FREELANCER"
    INTERNSHIP = "INTERNSHIP"
    TEMPORARY = "TEMPORARY"


class WorkModel(str, Enum):
    ONSITE = "ONSITE"
    REMOTE = "REMOTE"
    HYBRID = "HYBRID"


# ============== Sessions ==============

@dataclass
class SessionCredentials:
    """Reusable credential bundle returned by a login flow."""
    cookies: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None


@dataclass
class ScraperSession:
    id: str
    user_id: str
    platform: Platform
    status: SessionStatus
    cookies: Any = None
    headers: Dict[str, str] = field(default_factory=dict)
    user_agent: str = ""
    proxy_url: Optional[str] = None
    request_count: int = 0
    last_request_at: Optional[str] = None
    expires_at: Optional[str] = None
    error_message: Optional[str] = None
    is_client_side: bool = False
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "ScraperSession":
        data = dict(row)
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            platform=Platform(data["platform"]),
            status=SessionStatus(data["status"]),
            cookies=json.loads(data["cookies_json"]) if data.get("cookies_json") else None,
            headers=json.loads(data.get("headers_json") or "{}"),
            user_agent=data.get("user_agent") or "",
            proxy_url=data.get("proxy_url"),
            request_count=int(data.get("request_count") or 0),
            last_request_at=data.get("last_request_at"),
            expires_at=data.get("expires_at"),
            error_message=data.get("error_message"),
            is_client_side=bool(data.get("is_client_side")),
            version=int(data.get("version") or 0),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


# ============== Actions ==============

@dataclass
class SearchAction:
    keywords: str
    location: str = ""
    filters: Dict[str, str] = field(default_factory=dict)
    kind: str = field(default="search", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.kind, "keywords": self.keywords,
                "location": self.location, "filters": dict(self.filters)}


@dataclass
class DetailAction:
    listing_id: str
    kind: str = field(default="details", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.kind, "listing_id": self.listing_id}


@dataclass
class ApplyAction:
    listing_id: str
    cover_letter: Optional[str] = None
    resume_url: Optional[str] = None
    kind: str = field(default="apply", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.kind, "listing_id": self.listing_id,
                "cover_letter": self.cover_letter, "resume_url": self.resume_url}


Action = Union[SearchAction, DetailAction, ApplyAction]


def action_from_dict(data: Dict[str, Any]) -> Action:
    """Rebuild an action from its persisted form."""
    kind = data.get("action")
    if kind == "search":
        return SearchAction(
            keywords=data.get("keywords") or "",
            location=data.get("location") or "",
            filters=dict(data.get("filters") or {}),
        )
    if kind == "details":
        return DetailAction(listing_id=str(data["listing_id"]))
    if kind == "apply":
        return ApplyAction(
            listing_id=str(data["listing_id"]),
            cover_letter=data.get("cover_letter"),
            resume_url=data.get("resume_url"),
        )
    raise ValueError(f"Unknown action: {kind!r}")


# ============== Jobs ==============

@dataclass
class ScraperJob:
    id: str
    user_id: str
    platform: Platform
    status: JobStatus
    parameters: Dict[str, Any]
    is_auto_apply: bool = False
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    error_type: Optional[str] = None
    retry_count: int = 0
    max_retries: int = 3
    next_retry_at: Optional[str] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def action(self) -> Action:
        return action_from_dict(self.parameters)

    @property
    def is_terminal(self) -> bool:
        if self.status == JobStatus.COMPLETED:
            return True
        return self.status == JobStatus.FAILED and self.retry_count >= self.max_retries

    @classmethod
    def from_row(cls, row) -> "ScraperJob":
        data = dict(row)
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            platform=Platform(data["platform"]),
            status=JobStatus(data["status"]),
            parameters=json.loads(data.get("parameters_json") or "{}"),
            is_auto_apply=bool(data.get("is_auto_apply")),
            result=json.loads(data["result_json"]) if data.get("result_json") else None,
            error_message=data.get("error_message"),
            error_type=data.get("error_type"),
            retry_count=int(data.get("retry_count") or 0),
            max_retries=int(data.get("max_retries") or 0),
            next_retry_at=data.get("next_retry_at"),
            created_at=data.get("created_at"),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
        )


# ============== Listings ==============

UNKNOWN = "Unknown"


@dataclass
class NormalizedListing:
    """A job posting as returned by any adapter."""
    id: str
    platform: Platform
    title: str = UNKNOWN
    company_name: str = UNKNOWN
    location: str = UNKNOWN
    description: str = ""
    url: Optional[str] = None
    skills: List[str] = field(default_factory=list)
    salary_min: Optional[float] = None
    salary_max: Optional[float] = None
    salary_text: Optional[str] = None
    employment_type: Optional[JobType] = None
    work_model: Optional[WorkModel] = None
    experience_years: Optional[int] = None
    industry: Optional[str] = None
    requirements: Optional[str] = None
    benefits: Optional[str] = None
    posted_at: Optional[str] = None
    can_apply_directly: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "platform": self.platform.value,
            "title": self.title,
            "company_name": self.company_name,
            "location": self.location,
            "description": self.description,
            "url": self.url,
            "skills": list(self.skills),
            "salary_min": self.salary_min,
            "salary_max": self.salary_max,
            "salary_text": self.salary_text,
            "employment_type": self.employment_type.value if self.employment_type else None,
            "work_model": self.work_model.value if self.work_model else None,
            "experience_years": self.experience_years,
            "industry": self.industry,
            "requirements": self.requirements,
            "benefits": self.benefits,
            "posted_at": self.posted_at,
            "can_apply_directly": self.can_apply_directly,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedListing":
        employment_type = data.get("employment_type")
        work_model = data.get("work_model")
        return cls(
            id=str(data["id"]),
            platform=Platform(data["platform"]),
            title=data.get("title") or UNKNOWN,
            company_name=data.get("company_name") or UNKNOWN,
            location=data.get("location") or UNKNOWN,
            description=data.get("description") or "",
            url=data.get("url"),
            skills=list(data.get("skills") or []),
            salary_min=data.get("salary_min"),
            salary_max=data.get("salary_max"),
            salary_text=data.get("salary_text"),
            employment_type=JobType(employment_type) if employment_type else None,
            work_model=WorkModel(work_model) if work_model else None,
            experience_years=data.get("experience_years"),
            industry=data.get("industry"),
            requirements=data.get("requirements"),
            benefits=data.get("benefits"),
            posted_at=data.get("posted_at"),
            can_apply_directly=bool(data.get("can_apply_directly")),
        )


@dataclass
class ApplyResult:
    success: bool
    listing_id: str
    message: str = ""
    external_application_id: Optional[str] = None
    listing: Optional[NormalizedListing] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "listing_id": self.listing_id,
            "message": self.message,
            "external_application_id": self.external_application_id,
            "listing": self.listing.to_dict() if self.listing else None,
        }


# ============== Auto-apply ==============

def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma separated config field into lowercased, trimmed terms."""
    if not value:
        return []
    return [part.strip().lower() for part in value.split(",") if part.strip()]


@dataclass
class AutoApplyConfig:
    user_id: str
    is_enabled: bool = False
    keywords: Optional[str] = None
    excluded_keywords: Optional[str] = None
    locations: Optional[str] = None
    industries: Optional[str] = None
    excluded_companies: Optional[str] = None
    job_types: Optional[str] = None
    work_models: Optional[str] = None
    salary_min: Optional[int] = None
    experience_max: Optional[int] = None
    match_threshold: int = 5
    max_applications_per_day: int = 5
    max_applications_per_month: int = 20
    applications_today: int = 0
    applications_this_month: int = 0
    last_reset_day: Optional[str] = None
    last_reset_month: Optional[str] = None
    default_cover_letter: Optional[str] = None
    default_resume_url: Optional[str] = None

    @property
    def job_type_list(self) -> List[JobType]:
        types = []
        for term in split_csv(self.job_types):
            try:
                types.append(JobType(term.upper()))
            except ValueError:
                continue
        return types

    @classmethod
    def from_row(cls, row) -> "AutoApplyConfig":
        data = dict(row)
        data["is_enabled"] = bool(data.get("is_enabled"))
        known = set(cls.__dataclass_fields__)
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable audit record of one scoring/apply decision."""
    user_id: str
    status: HistoryStatus
    reason: HistoryReason
    message: str
    job_id: Optional[str] = None
    match_score: Optional[int] = None
    application_id: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "HistoryEntry":
        data = dict(row)
        return cls(
            id=data["id"],
            user_id=data["user_id"],
            status=HistoryStatus(data["status"]),
            reason=HistoryReason(data["reason"]),
            message=data.get("message") or "",
            job_id=data.get("job_id"),
            match_score=data.get("match_score"),
            application_id=data.get("application_id"),
            created_at=data.get("created_at"),
        )


@dataclass
class User:
    id: str
    email: str
    subscription_tier: SubscriptionTier = SubscriptionTier.BASIC


@dataclass
class Document:
    id: str
    user_id: str
    type: DocumentType
    title: str = ""
    content: Optional[str] = None
    url: Optional[str] = None
    is_default: bool = False
    usage_count: int = 0
