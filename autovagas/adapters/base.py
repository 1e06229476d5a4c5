"""
Base adapter interface for job platforms.
All platform-specific adapters inherit from this.

An adapter is stateless apart from its collaborators: given a session and an
action it performs the platform request and returns normalized data. Session
health signals (401/403, 429) are reported to the SessionStore before the
error is raised to the caller.
"""

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp

from autovagas.adapters.browser_login import LoginForm, PlaywrightLoginDriver
from autovagas.core.config import AppConfig, get_config
from autovagas.core.errors import (
    AdapterParseError,
    ApplyNotSupported,
    PlatformError,
    SessionInvalid,
    SessionRateLimited,
)
from autovagas.core.models import (
    ApplyAction,
    ApplyResult,
    AutoApplyConfig,
    JobType,
    NormalizedListing,
    Platform,
    ScraperSession,
    SearchAction,
    SessionCredentials,
    WorkModel,
    split_csv,
)

logger = logging.getLogger(__name__)

SALARY_RANGE_RE = re.compile(r"R\$\s*([\d.,]+)\s*a\s*R\$\s*([\d.,]+)")
SALARY_SINGLE_RE = re.compile(r"R\$\s*([\d.,]+)")
EXPERIENCE_RES = (
    re.compile(r"(\d+)[\s-]*years? of experience", re.IGNORECASE),
    re.compile(r"(\d+)\s*anos?\s*de\s*experi[êe]ncia", re.IGNORECASE),
)


@dataclass
class HttpResponse:
    status: int
    text: str
    url: str = ""

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as e:
            raise AdapterParseError(f"Expected JSON from {self.url or 'platform'}: {e}") from e

    def json_or_none(self) -> Any:
        """Parsed body, or None when the platform answered with an empty or non-JSON body."""
        if not self.text or not self.text.lstrip().startswith(("{", "[")):
            return None
        return self.json()


# ============== Parsing helpers ==============

def parse_brl(value: str) -> Optional[float]:
    """'5.000,50' -> 5000.5"""
    cleaned = value.strip().replace(".", "").replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_salary_range(text: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    if not text:
        return None, None
    match = SALARY_RANGE_RE.search(text)
    if match:
        return parse_brl(match.group(1)), parse_brl(match.group(2))
    match = SALARY_SINGLE_RE.search(text)
    if match:
        amount = parse_brl(match.group(1))
        return amount, amount
    return None, None


def extract_experience_years(*texts: Optional[str]) -> Optional[int]:
    for text in texts:
        if not text:
            continue
        for pattern in EXPERIENCE_RES:
            match = pattern.search(text)
            if match:
                return int(match.group(1))
    return None


def clean_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def select_text(node, selector: str) -> str:
    """Whitespace-normalized text of the first match, or an empty string."""
    found = node.select_one(selector)
    return clean_text(found.get_text(" ")) if found else ""


def format_cookies(cookies: Any) -> str:
    """Render a stored cookie bundle as a Cookie header value."""
    if isinstance(cookies, list):
        return "; ".join(f"{c['name']}={c['value']}" for c in cookies if "name" in c)
    if isinstance(cookies, dict):
        return "; ".join(f"{name}={value}" for name, value in cookies.items())
    if isinstance(cookies, str):
        return cookies
    return ""


def find_cookie(cookies: Any, name: str) -> Optional[str]:
    if isinstance(cookies, list):
        for cookie in cookies:
            if cookie.get("name") == name:
                return cookie.get("value")
    elif isinstance(cookies, dict):
        return cookies.get(name)
    return None


# Portuguese labels used by the Brazilian job boards.
PT_BR_EMPLOYMENT_TYPES = {
    "clt": JobType.CLT,
    "efetivo": JobType.CLT,
    "pj": JobType.PJ,
    "temporário": JobType.TEMPORARY,
    "temporario": JobType.TEMPORARY,
    "estágio": JobType.INTERNSHIP,
    "estagio": JobType.INTERNSHIP,
    "freelancer": JobType.FREELANCER,
    "autônomo": JobType.FREELANCER,
}
PT_BR_WORK_MODELS = {
    "presencial": WorkModel.ONSITE,
    "remoto": WorkModel.REMOTE,
    "home office": WorkModel.REMOTE,
    "híbrido": WorkModel.HYBRID,
    "hibrido": WorkModel.HYBRID,
}


# ============== Adapter contract ==============

class PlatformAdapter(ABC):
    """
    Abstract base class for job platform adapters.
    Each platform (LinkedIn, InfoJobs, Catho, Indeed) implements this interface.
    """

    platform: Platform
    base_url: str
    login_form: LoginForm

    # Orchestrator skips listings without a direct-apply flag on these platforms.
    requires_direct_apply: bool = False

    # Canonical job type -> platform search code. Must cover every JobType.
    JOB_TYPE_CODES: Dict[JobType, str] = {}
    # Upper bound (inclusive) -> code, ascending; EXPERIENCE_ABOVE beyond the last bound.
    EXPERIENCE_BUCKETS: Sequence[Tuple[int, str]] = ()
    EXPERIENCE_ABOVE: str = ""
    SALARY_BUCKETS: Sequence[Tuple[int, str]] = ()
    SALARY_ABOVE: str = ""
    # Platform employment/workplace labels (lowercase) -> canonical values.
    EMPLOYMENT_TYPES: Dict[str, JobType] = {}
    WORK_MODELS: Dict[str, WorkModel] = {}

    DATE_WINDOW: str = "1"
    EXTRA_SEARCH_FILTERS: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        if getattr(cls, "platform", None) is None:
            return
        missing = [t.value for t in JobType if t not in cls.JOB_TYPE_CODES]
        if missing:
            raise TypeError(f"{cls.__name__}.JOB_TYPE_CODES is missing {missing}")

    def __init__(self, session_store, proxy_pool=None, login_driver=None,
                 app_config: Optional[AppConfig] = None):
        self.session_store = session_store
        self.proxy_pool = proxy_pool
        self.login_driver = login_driver or PlaywrightLoginDriver(app_config)
        self.config = app_config or get_config()

    @property
    def name(self) -> str:
        return self.platform.display_name

    # ---------- Vocabulary mapping ----------

    def job_type_code(self, job_type: JobType) -> str:
        return self.JOB_TYPE_CODES[job_type]

    def experience_code(self, years: Optional[int]) -> str:
        if years is None:
            return ""
        for bound, code in self.EXPERIENCE_BUCKETS:
            if years <= bound:
                return code
        return self.EXPERIENCE_ABOVE

    def salary_code(self, amount: Optional[float]) -> str:
        if not amount or not self.SALARY_BUCKETS:
            return ""
        for bound, code in self.SALARY_BUCKETS:
            if amount <= bound:
                return code
        return self.SALARY_ABOVE

    def canonical_job_type(self, raw: Optional[str]) -> Optional[JobType]:
        if not raw:
            return None
        return self.EMPLOYMENT_TYPES.get(raw.strip().lower())

    def canonical_work_model(self, raw: Optional[str]) -> Optional[WorkModel]:
        if not raw:
            return None
        return self.WORK_MODELS.get(raw.strip().lower())

    def build_search_action(self, cfg: AutoApplyConfig) -> SearchAction:
        """Translate the generic auto-apply criteria into this platform's search."""
        filters = {"date_posted": self.DATE_WINDOW}

        codes = [self.job_type_code(t) for t in cfg.job_type_list]
        codes = [c for c in dict.fromkeys(codes) if c]
        if codes:
            filters["job_type"] = ",".join(codes)

        experience = self.experience_code(cfg.experience_max)
        if experience:
            filters["experience"] = experience

        salary = self.salary_code(cfg.salary_min)
        if salary:
            filters["salary"] = salary

        filters.update(self.EXTRA_SEARCH_FILTERS)

        locations = [loc.strip() for loc in (cfg.locations or "").split(",") if loc.strip()]
        return SearchAction(
            keywords=" ".join(split_csv(cfg.keywords)),
            location=locations[0] if locations else "",
            filters=filters,
        )

    # ---------- HTTP ----------

    def build_headers(self, session: ScraperSession) -> Dict[str, str]:
        headers = {
            "User-Agent": session.user_agent,
            "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
            "Referer": self.base_url + "/",
        }
        cookie_header = format_cookies(session.cookies)
        if cookie_header:
            headers["Cookie"] = cookie_header
        headers.update(session.headers or {})
        return headers

    async def _send(self, method: str, url: str, *, headers: Dict[str, str],
                    proxy: Optional[str] = None, params: Optional[Dict[str, str]] = None,
                    json_body: Optional[Dict[str, Any]] = None) -> HttpResponse:
        timeout = aiohttp.ClientTimeout(total=self.config.REQUEST_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as client:
            async with client.request(method, url, headers=headers, proxy=proxy,
                                      params=params, json=json_body) as resp:
                text = await resp.text()
                return HttpResponse(status=resp.status, text=text, url=str(resp.url))

    async def _request(self, session: ScraperSession, method: str, url: str, *,
                       params: Optional[Dict[str, str]] = None,
                       json_body: Optional[Dict[str, Any]] = None,
                       extra_headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        """
        Perform one platform request with the session's credentials and proxy.

        401/403 invalidate the session, 429 marks it rate limited; both are
        raised afterwards. Network errors and timeouts propagate unchanged.
        """
        headers = self.build_headers(session)
        if extra_headers:
            headers.update(extra_headers)
        if params:
            params = {k: v for k, v in params.items() if v not in (None, "")}

        try:
            response = await self._send(method, url, headers=headers, proxy=session.proxy_url,
                                        params=params, json_body=json_body)
        except (aiohttp.ClientError, asyncio.TimeoutError):
            self._report_proxy(session, ok=False)
            raise

        if response.status in (401, 403):
            await self.session_store.invalidate(
                session.id, "Session expired or invalid", expected_version=session.version
            )
            raise SessionInvalid(f"{self.name} rejected the session (HTTP {response.status})",
                                 response.status)
        if response.status == 429:
            self._report_proxy(session, ok=False)
            await self.session_store.mark_rate_limited(session.id, expected_version=session.version)
            raise SessionRateLimited(f"{self.name} rate limited the session (HTTP 429)", 429)
        if response.status >= 400:
            self._report_proxy(session, ok=False)
            raise PlatformError(f"{self.name} request failed with HTTP {response.status}",
                                response.status)

        self._report_proxy(session, ok=True)
        return response

    def _report_proxy(self, session: ScraperSession, ok: bool):
        if not session.proxy_url or self.proxy_pool is None:
            return
        if ok:
            self.proxy_pool.report_success(session.proxy_url)
        else:
            self.proxy_pool.report_failure(session.proxy_url)

    # ---------- Contract ----------

    async def login(self, email: str, password: str, user_id: str) -> SessionCredentials:
        """Run the interactive login flow. Raises LoginFailed on rejection."""
        logger.info(f"{self.name} login started for user {user_id}")
        return await self.login_driver.login(self.login_form, email, password)

    @abstractmethod
    async def search(self, session: ScraperSession, action: SearchAction) -> List[NormalizedListing]:
        """Search listings. Unparseable entries come back degraded, not raised."""

    @abstractmethod
    async def get_details(self, session: ScraperSession, listing_id: str) -> NormalizedListing:
        """Full detail for one listing."""

    async def apply(self, session: ScraperSession, action: ApplyAction) -> ApplyResult:
        """
        Submit an application for a listing.

        The listing is re-fetched first; platforms that need a direct-apply
        mechanism raise ApplyNotSupported when the listing lacks one.
        """
        listing = await self.get_details(session, action.listing_id)
        if self.requires_direct_apply and not listing.can_apply_directly:
            raise ApplyNotSupported(
                f"{self.name} listing {action.listing_id} does not support direct apply. "
                "Please apply on the company website."
            )
        result = await self._submit_application(session, listing, action)
        result.listing = listing
        logger.info(f"{self.name} application submitted for listing {listing.id}")
        return result

    @abstractmethod
    async def _submit_application(self, session: ScraperSession, listing: NormalizedListing,
                                  action: ApplyAction) -> ApplyResult:
        """Platform specific application request."""

    def degraded_listing(self, listing_id: str, reason: str) -> NormalizedListing:
        logger.warning(f"{self.name} listing {listing_id} could not be parsed: {reason}")
        return NormalizedListing(
            id=str(listing_id),
            platform=self.platform,
            description=f"Failed to parse job details: {reason}",
        )
