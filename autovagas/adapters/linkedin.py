"""
LinkedIn Job Platform Adapter
Talks to the voyager JSON API with the session's cookies.

Easy Apply is LinkedIn's direct-apply mechanism; listings without it are not
applied to.
"""

import logging
from typing import Any, Dict, List

from autovagas.adapters.base import (
    PlatformAdapter,
    clean_text,
    extract_experience_years,
    find_cookie,
)
from autovagas.adapters.browser_login import LoginForm
from autovagas.core.errors import AdapterParseError
from autovagas.core.models import (
    ApplyAction,
    ApplyResult,
    JobType,
    NormalizedListing,
    Platform,
    ScraperSession,
    SearchAction,
    WorkModel,
)

logger = logging.getLogger(__name__)

# Generic filter key -> LinkedIn search parameter
SEARCH_PARAMS = {
    "date_posted": "f_TPR",
    "job_type": "f_JT",
    "experience": "f_E",
    "distance": "distance",
}

PAGE_SIZE = 25


class LinkedInAdapter(PlatformAdapter):
    """LinkedIn adapter backed by the voyager API."""

    platform = Platform.LINKEDIN
    base_url = "https://www.linkedin.com"
    api_url = "https://www.linkedin.com/voyager/api"
    requires_direct_apply = True

    login_form = LoginForm(
        url="https://www.linkedin.com/login",
        email_selector="#username",
        password_selector="#password",
        submit_selector=".login__form_action_container button",
        failure_url_markers=("checkpoint", "login"),
        locale="en-US",
        extra_headers={
            "Accept-Language": "en-US,en;q=0.9",
            "X-Li-Lang": "en_US",
            "X-RestLi-Protocol-Version": "2.0.0",
        },
    )

    JOB_TYPE_CODES = {
        JobType.CLT: "F",
        JobType.PJ: "C",
        JobType.FREELANCER: "C",
        JobType.INTERNSHIP: "I",
        JobType.TEMPORARY: "T",
    }
    EXPERIENCE_BUCKETS = ((1, "1"), (3, "2"), (5, "3"), (10, "4"))
    EXPERIENCE_ABOVE = "5"
    EMPLOYMENT_TYPES = {
        "full_time": JobType.CLT,
        "part_time": JobType.CLT,
        "contract": JobType.PJ,
        "temporary": JobType.TEMPORARY,
        "internship": JobType.INTERNSHIP,
        "volunteer": JobType.FREELANCER,
        "other": JobType.CLT,
    }
    WORK_MODELS = {
        "onsite": WorkModel.ONSITE,
        "remote": WorkModel.REMOTE,
        "hybrid": WorkModel.HYBRID,
    }
    DATE_WINDOW = "r86400"
    EXTRA_SEARCH_FILTERS = {"distance": "25"}

    def build_headers(self, session: ScraperSession) -> Dict[str, str]:
        headers = super().build_headers(session)
        headers["Accept"] = "application/json, text/plain, */*"
        headers.setdefault("X-Li-Lang", "en_US")
        headers.setdefault("X-RestLi-Protocol-Version", "2.0.0")
        csrf = find_cookie(session.cookies, "JSESSIONID")
        if csrf:
            headers["csrf-token"] = csrf.replace('"', "")
        return headers

    def listing_url(self, listing_id: str) -> str:
        return f"{self.base_url}/jobs/view/{listing_id}"

    async def search(self, session: ScraperSession, action: SearchAction) -> List[NormalizedListing]:
        params = {
            "keywords": action.keywords,
            "location": action.location,
            "start": "0",
            "count": str(PAGE_SIZE),
        }
        for key, value in action.filters.items():
            if key in SEARCH_PARAMS:
                params[SEARCH_PARAMS[key]] = value

        response = await self._request(session, "GET", f"{self.api_url}/search/jobs", params=params)
        try:
            data = response.json()
        except AdapterParseError as e:
            logger.error(f"LinkedIn search returned unreadable payload: {e}")
            return []
        return self.parse_search_results(data)

    def parse_search_results(self, data: Any) -> List[NormalizedListing]:
        listings = []
        elements = data.get("elements", []) if isinstance(data, dict) else []
        for element in elements:
            job = element.get("jobView") if isinstance(element, dict) else None
            if not isinstance(job, dict) or not job.get("jobId"):
                continue
            job_id = str(job["jobId"])
            try:
                listings.append(NormalizedListing(
                    id=job_id,
                    platform=self.platform,
                    title=job.get("title") or "Unknown",
                    company_name=job.get("companyName") or "Unknown",
                    location=job.get("location") or "Unknown",
                    description=clean_text(job.get("description")),
                    url=self.listing_url(job_id),
                    posted_at=str(job["listedAt"]) if job.get("listedAt") else None,
                    can_apply_directly=bool((job.get("applyMethod") or {}).get("easyApplyEnabled")),
                ))
            except (TypeError, AttributeError) as e:
                listings.append(self.degraded_listing(job_id, str(e)))
        return listings

    async def get_details(self, session: ScraperSession, listing_id: str) -> NormalizedListing:
        response = await self._request(
            session, "GET", f"{self.api_url}/jobs/jobView", params={"jobId": listing_id}
        )
        try:
            return self.parse_job_details(response.json(), listing_id)
        except (AdapterParseError, TypeError, AttributeError, ValueError) as e:
            return self.degraded_listing(listing_id, str(e))

    def parse_job_details(self, data: Any, listing_id: str) -> NormalizedListing:
        if not isinstance(data, dict):
            raise AdapterParseError("job view is not an object")
        job = data.get("data") or {}
        description = clean_text((job.get("description") or {}).get("text"))
        salary = job.get("salary") or {}
        industries = job.get("companyIndustries") or []
        apply_method = job.get("applyMethod") or {}
        return NormalizedListing(
            id=str(listing_id),
            platform=self.platform,
            title=job.get("title") or "Unknown",
            company_name=job.get("companyName") or "Unknown",
            location=job.get("formattedLocation") or "Unknown",
            description=description,
            url=self.listing_url(listing_id),
            skills=[str(s) for s in job.get("requiredSkills") or []],
            salary_min=salary.get("min"),
            salary_max=salary.get("max"),
            employment_type=self.canonical_job_type(job.get("employmentType")),
            work_model=self.canonical_work_model(job.get("workplaceType")),
            experience_years=extract_experience_years(description),
            industry=industries[0] if industries else None,
            requirements=description or None,
            benefits=clean_text((job.get("benefits") or {}).get("text")) or None,
            posted_at=str(job["listedAt"]) if job.get("listedAt") else None,
            can_apply_directly=bool(apply_method.get("easyApplyEnabled")),
        )

    async def _submit_application(self, session: ScraperSession, listing: NormalizedListing,
                                  action: ApplyAction) -> ApplyResult:
        body = {
            "jobId": listing.id,
            "coverLetter": action.cover_letter or "",
            "resumeId": "custom" if action.resume_url else "default",
            "resumeUrl": action.resume_url or "",
        }
        response = await self._request(session, "POST", f"{self.api_url}/jobs/applyJob", json_body=body)
        payload = response.json_or_none()
        application_id = payload.get("applicationId") if isinstance(payload, dict) else None
        return ApplyResult(
            success=True,
            listing_id=listing.id,
            message="Successfully applied to job",
            external_application_id=str(application_id) if application_id else None,
        )
