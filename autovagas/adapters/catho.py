"""
Catho Job Platform Adapter
Search URLs are path based (/vagas/<keywords>/em-<location>/); details are
scraped from the vacancy page and applications go through Catho's JSON API.
"""

from typing import List, Optional
from urllib.parse import quote

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
    "date_posted": "publicacao",
    "job_type": "regime",
    "experience": "experiencia",
    "salary": "salario",
    "education": "escolaridade",
}


class CathoAdapter(PlatformAdapter):
    platform = Platform.CATHO
    base_url = "https://www.catho.com.br"
    api_url = "https://www.catho.com.br/api"

    login_form = LoginForm(
        url="https://www.catho.com.br/login/",
        email_selector='input[name="email"]',
        password_selector='input[name="password"]',
        submit_selector='button[type="submit"]',
        failure_text_markers=("Usuário ou senha incorretos",),
    )

    JOB_TYPE_CODES = {
        JobType.CLT: "clt",
        JobType.PJ: "pj",
        JobType.FREELANCER: "freelancer",
        JobType.INTERNSHIP: "estagio",
        JobType.TEMPORARY: "temporario",
    }
    EXPERIENCE_BUCKETS = (
        (1, "sem-experiencia"),
        (3, "ate-3-anos"),
        (5, "ate-5-anos"),
        (10, "ate-10-anos"),
    )
    EXPERIENCE_ABOVE = "mais-de-10-anos"
    SALARY_BUCKETS = (
        (1000, "ate-1000"),
        (2000, "de-1000-a-2000"),
        (3000, "de-2000-a-3000"),
        (5000, "de-3000-a-5000"),
        (10000, "de-5000-a-10000"),
    )
    SALARY_ABOVE = "acima-de-10000"
    EMPLOYMENT_TYPES = PT_BR_EMPLOYMENT_TYPES
    WORK_MODELS = PT_BR_WORK_MODELS
    EXTRA_SEARCH_FILTERS = {"education": "any"}

    def listing_url(self, listing_id: str) -> str:
        return f"{self.base_url}/vagas/vaga-{listing_id}"

    def search_url(self, action: SearchAction) -> str:
        url = f"{self.base_url}/vagas/"
        if action.keywords:
            url += f"{quote(action.keywords)}/"
        if action.location:
            url += f"em-{quote(action.location)}/"
        return url

    async def search(self, session: ScraperSession, action: SearchAction) -> List[NormalizedListing]:
        params = {SEARCH_PARAMS[k]: v for k, v in action.filters.items() if k in SEARCH_PARAMS}
        response = await self._request(session, "GET", self.search_url(action), params=params)
        return self.parse_search_results(response.text)

    def parse_search_results(self, html: str) -> List[NormalizedListing]:
        soup = BeautifulSoup(html, "html.parser")
        listings = []
        for card in soup.select(".job-vacancy"):
            job_id = card.get("data-job-id")
            if not job_id:
                continue
            link = card.select_one("a.job-vacancy__link")
            href = link.get("href") if link else None
            salary_text = select_text(card, ".job-vacancy__salary") or None
            salary_min, salary_max = parse_salary_range(salary_text)
            listings.append(NormalizedListing(
                id=str(job_id),
                platform=self.platform,
                title=select_text(card, ".job-vacancy__title") or "Unknown",
                company_name=select_text(card, ".job-vacancy__company-name") or "Unknown",
                location=select_text(card, ".job-vacancy__location") or "Unknown",
                url=(self.base_url + href) if href and href.startswith("/") else (href or self.listing_url(job_id)),
                salary_text=salary_text,
                salary_min=salary_min,
                salary_max=salary_max,
                posted_at=select_text(card, ".job-vacancy__date") or None,
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

        info = {}
        for item in soup.select(".job-details__info-item"):
            label = select_text(item, ".job-details__info-label")
            if label:
                info[label.rstrip(":")] = select_text(item, ".job-details__info-value")

        def info_value(prefix: str) -> Optional[str]:
            for label, value in info.items():
                if label.startswith(prefix):
                    return value
            return None

        description = select_text(soup, ".job-details__description")
        requirements = select_text(soup, ".job-details__requirements")
        salary_text = select_text(soup, ".job-details__salary") or None
        salary_min, salary_max = parse_salary_range(salary_text)
        skills = [clean_text(node.get_text(" ")) for node in soup.select(".job-details__skills-item")]

        return NormalizedListing(
            id=str(listing_id),
            platform=self.platform,
            title=select_text(soup, ".job-details__title") or "Unknown",
            company_name=select_text(soup, ".job-details__company-name") or "Unknown",
            location=select_text(soup, ".job-details__location") or "Unknown",
            description=description,
            url=self.listing_url(listing_id),
            skills=[s for s in skills if s],
            salary_min=salary_min,
            salary_max=salary_max,
            salary_text=salary_text,
            employment_type=self.canonical_job_type(info_value("Regime de contratação")),
            work_model=self.canonical_work_model(info_value("Modelo de trabalho")),
            experience_years=extract_experience_years(requirements, description),
            industry=info_value("Área"),
            requirements=requirements or None,
            benefits=select_text(soup, ".job-details__benefits") or None,
            can_apply_directly=True,
        )

    async def _submit_application(self, session: ScraperSession, listing: NormalizedListing,
                                  action: ApplyAction) -> ApplyResult:
        body = {
            "coverLetter": action.cover_letter or "",
            "resumeId": "custom" if action.resume_url else "default",
            "resumeUrl": action.resume_url or "",
        }
        response = await self._request(session, "POST", f"{self.api_url}/jobs/{listing.id}/apply",
                                        json_body=body)
        payload = response.json_or_none()
        application_id = payload.get("applicationId") if isinstance(payload, dict) else None
        return ApplyResult(
            success=True,
            listing_id=listing.id,
            message="Candidatura realizada com sucesso",
            external_application_id=str(application_id) if application_id else None,
        )
