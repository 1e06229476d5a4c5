"""
Indeed Job Platform Adapter
Scrapes indeed.com.br result cards and job pages. Only listings that show the
Indeed Apply button can be applied to from here.
"""

from typing import List, Optional

from bs4 import BeautifulSoup

from autovagas.adapters.base import (
    PT_BR_EMPLOYMENT_TYPES,
    PT_BR_WORK_MODELS,
    PlatformAdapter,
    clean_text,
    extract_experience_years,
    parse_salary_range,
    select_text,
)
from autovagas.adapters.browser_login import LoginForm
from autovagas.core.models import (
    ApplyAction,
    ApplyResult,
    JobType,
    NormalizedListing,
    Platform,
    ScraperSession,
    SearchAction,
)

SEARCH_PARAMS = {
    "date_posted": "fromage",
    "job_type": "jt",
    "radius": "radius",
    "salary": "salary",
    "experience": "explvl",
}

# Indeed salary filter works on annual pay in thousands.
ANNUAL_SALARY_BUCKETS = ((30, "30"), (50, "50"), (70, "70"), (90, "90"), (110, "110"), (130, "130"))


class IndeedAdapter(PlatformAdapter):
    platform = Platform.INDEED
    base_url = "https://www.indeed.com.br"
    api_url = "https://www.indeed.com.br/api"
    requires_direct_apply = True

    login_form = LoginForm(
        url="https://www.indeed.com.br/account/login",
        email_selector="#ifl-InputFormField-3",
        reveal_password_selector="#auth-page-google-password-fallback",
        password_selector="#ifl-InputFormField-7",
        submit_selector='button[type="submit"]',
        failure_text_markers=("Senha incorreta",),
    )

    JOB_TYPE_CODES = {
        JobType.CLT: "fulltime",
        JobType.PJ: "contract",
        JobType.FREELANCER: "contract",
        JobType.INTERNSHIP: "internship",
        JobType.TEMPORARY: "temporary",
    }
    EXPERIENCE_BUCKETS = (
        (1, "entry_level"),
        (3, "mid_level"),
        (5, "mid_level"),
        (10, "senior_level"),
    )
    EXPERIENCE_ABOVE = "executive_level"
    EMPLOYMENT_TYPES = {
        **PT_BR_EMPLOYMENT_TYPES,
        "tempo integral": JobType.CLT,
        "meio período": JobType.CLT,
        "contrato": JobType.PJ,
        "estágio/trainee": JobType.INTERNSHIP,
    }
    WORK_MODELS = PT_BR_WORK_MODELS
    EXTRA_SEARCH_FILTERS = {"radius": "25"}

    def salary_code(self, amount: Optional[float]) -> str:
        if not amount:
            return ""
        annual = amount * 12 / 1000
        for bound, code in ANNUAL_SALARY_BUCKETS:
            if annual <= bound:
                return code
        return "150"

    def listing_url(self, listing_id: str) -> str:
        return f"{self.base_url}/viewjob?jk={listing_id}"

    async def search(self, session: ScraperSession, action: SearchAction) -> List[NormalizedListing]:
        params = {"q": action.keywords, "l": action.location}
        for key, value in action.filters.items():
            if key in SEARCH_PARAMS:
                params[SEARCH_PARAMS[key]] = value
        response = await self._request(session, "GET", f"{self.base_url}/jobs", params=params)
        return self.parse_search_results(response.text)

    def parse_search_results(self, html: str) -> List[NormalizedListing]:
        soup = BeautifulSoup(html, "html.parser")
        listings = []
        for card in soup.select(".jobsearch-ResultsList > div.cardOutline"):
            # Ads and separators share the container; real cards have a title.
            if not card.select_one(".jobTitle"):
                continue
            job_id = card.get("data-jk")
            if not job_id:
                continue
            salary_text = (select_text(card, ".salary-snippet")
                           or select_text(card, ".estimated-salary") or None)
            salary_min, salary_max = parse_salary_range(salary_text)
            listings.append(NormalizedListing(
                id=str(job_id),
                platform=self.platform,
                title=select_text(card, ".jobTitle span") or "Unknown",
                company_name=select_text(card, ".companyName") or "Unknown",
                location=select_text(card, ".companyLocation") or "Unknown",
                url=self.listing_url(job_id),
                salary_text=salary_text,
                salary_min=salary_min,
                salary_max=salary_max,
                posted_at=select_text(card, ".date") or None,
                can_apply_directly=card.select_one(".iaLabel, .indeedApply") is not None,
            ))
        return listings

    async def get_details(self, session: ScraperSession, listing_id: str) -> NormalizedListing:
        response = await self._request(session, "GET", self.listing_url(listing_id))
        try:
            return self.parse_job_details(response.text, listing_id)
        except (AttributeError, TypeError, ValueError) as e:
            return self.degraded_listing(listing_id, str(e))

    def parse_job_details(self, html: str, listing_id: str) -> NormalizedListing:
        soup = BeautifulSoup(html, "html.parser")

        salary_text = None
        employment_raw = None
        work_model_raw = None
        for item in soup.select(".jobsearch-JobMetadataHeader-item"):
            text = clean_text(item.get_text(" "))
            if "Salário" in text:
                salary_text = text
            elif text.startswith("Tipo de contratação:"):
                employment_raw = text.replace("Tipo de contratação:", "", 1).strip()
            elif text.startswith("Tipo de trabalho:"):
                work_model_raw = text.replace("Tipo de trabalho:", "", 1).strip()

        industry = None
        for item in soup.select(".jobsearch-CompanyInfoContainer li"):
            text = clean_text(item.get_text(" "))
            if text.startswith("Setor:"):
                industry = text.replace("Setor:", "", 1).strip()

        qualifications = [clean_text(n.get_text(" ")) for n in soup.select(".jobsearch-ReqAndQualSection-item")]
        qualifications = [q for q in qualifications if q]
        description = select_text(soup, ".jobsearch-jobDescriptionText")
        salary_min, salary_max = parse_salary_range(salary_text)

        return NormalizedListing(
            id=str(listing_id),
            platform=self.platform,
            title=select_text(soup, ".jobsearch-JobInfoHeader-title") or "Unknown",
            company_name=select_text(soup, ".jobsearch-InlineCompanyRating-companyHeader") or "Unknown",
            location=select_text(soup, ".jobsearch-JobInfoHeader-locationName") or "Unknown",
            description=description,
            url=self.listing_url(listing_id),
            skills=qualifications,
            salary_min=salary_min,
            salary_max=salary_max,
            salary_text=salary_text,
            employment_type=self.canonical_job_type(employment_raw),
            work_model=self.canonical_work_model(work_model_raw),
            experience_years=extract_experience_years(*qualifications, description),
            industry=industry,
            requirements=select_text(soup, ".jobsearch-ReqAndQualSection-item-list") or None,
            can_apply_directly=soup.select_one(".jobsearch-IndeedApplyButton-buttonWrapper") is not None,
        )

    async def _submit_application(self, session: ScraperSession, listing: NormalizedListing,
                                  action: ApplyAction) -> ApplyResult:
        body = {
            "jobKey": listing.id,
            "coverLetter": action.cover_letter or "",
            "resumeUrl": action.resume_url or "",
        }
        response = await self._request(session, "POST", f"{self.api_url}/apply/{listing.id}",
                                        json_body=body)
        payload = response.json_or_none()
        application_id = payload.get("applicationId") if isinstance(payload, dict) else None
        return ApplyResult(
            success=True,
            listing_id=listing.id,
            message="Candidatura enviada",
            external_application_id=str(application_id) if application_id else None,
        )
