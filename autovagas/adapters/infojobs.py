"""
InfoJobs Job Platform Adapter
Scrapes the server-rendered search and job pages with BeautifulSoup.
"""

import logging
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

logger = logging.getLogger(__name__)

SEARCH_PARAMS = {
    "date_posted": "publicado",
    "job_type": "contrato",
    "experience": "experiencia",
    "salary": "salario",
}


class InfoJobsAdapter(PlatformAdapter):
    platform = Platform.INFOJOBS
    base_url = "https://www.infojobs.com.br"

    login_form = LoginForm(
        url="https://www.infojobs.com.br/account/login.aspx",
        email_selector="#Email",
        password_selector="#Password",
        submit_selector="#loginButton",
        failure_text_markers=("Usuário ou senha incorretos",),
    )

    JOB_TYPE_CODES = {
        JobType.CLT: "clt",
        JobType.PJ: "pj",
        JobType.FREELANCER: "autonomo",
        JobType.INTERNSHIP: "estagio",
        JobType.TEMPORARY: "temporario",
    }
    EXPERIENCE_BUCKETS = ((1, "1"), (3, "2"), (5, "3"), (10, "4"))
    EXPERIENCE_ABOVE = "5"
    SALARY_BUCKETS = (
        (1000, "1"), (2000, "2"), (3000, "3"), (4000, "4"),
        (5000, "5"), (7000, "6"), (10000, "7"),
    )
    SALARY_ABOVE = "8"
    EMPLOYMENT_TYPES = PT_BR_EMPLOYMENT_TYPES
    WORK_MODELS = PT_BR_WORK_MODELS

    def listing_url(self, listing_id: str) -> str:
        return f"{self.base_url}/vaga-de-emprego/{listing_id}.aspx"

    async def search(self, session: ScraperSession, action: SearchAction) -> List[NormalizedListing]:
        params = {"palabra": action.keywords, "provincia": action.location}
        for key, value in action.filters.items():
            if key in SEARCH_PARAMS:
                params[SEARCH_PARAMS[key]] = value
        response = await self._request(session, "GET", f"{self.base_url}/empregos.aspx", params=params)
        return self.parse_search_results(response.text)

    def parse_search_results(self, html: str) -> List[NormalizedListing]:
        soup = BeautifulSoup(html, "html.parser")
        listings = []
        for card in soup.select(".vagaCard[data-job-id]"):
            job_id = card.get("data-job-id")
            if not job_id:
                continue
            link = card.select_one("a.vagaLink")
            href = link.get("href") if link else None
            salary_text = select_text(card, ".vagaSalary") or None
            salary_min, salary_max = parse_salary_range(salary_text)
            listings.append(NormalizedListing(
                id=str(job_id),
                platform=self.platform,
                title=select_text(card, ".vagaTitle") or "Unknown",
                company_name=select_text(card, ".vagaInfoCompany") or "Unknown",
                location=select_text(card, ".vagaInfoLocation") or "Unknown",
                url=(self.base_url + href) if href and href.startswith("/") else (href or self.listing_url(job_id)),
                salary_text=salary_text,
                salary_min=salary_min,
                salary_max=salary_max,
                posted_at=select_text(card, ".vagaDate") or None,
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

        employment_raw: Optional[str] = None
        work_model_raw: Optional[str] = None
        for item in soup.select(".jobDetails li"):
            text = clean_text(item.get_text(" "))
            if text.startswith("Contrato:"):
                employment_raw = text.replace("Contrato:", "", 1).strip()
            elif text.startswith("Modelo de trabalho:"):
                work_model_raw = text.replace("Modelo de trabalho:", "", 1).strip()

        industry = None
        for item in soup.select(".jobCompanyInfo li"):
            text = clean_text(item.get_text(" "))
            if text.startswith("Setor:"):
                industry = text.replace("Setor:", "", 1).strip()

        skills = [clean_text(li.get_text(" ")) for li in soup.select(".jobSkills li")]
        description = select_text(soup, ".jobDescription")
        requirements = select_text(soup, ".jobRequirements")
        salary_text = select_text(soup, ".jobViewSalary") or None
        salary_min, salary_max = parse_salary_range(salary_text)

        return NormalizedListing(
            id=str(listing_id),
            platform=self.platform,
            title=select_text(soup, ".jobViewTitle") or "Unknown",
            company_name=select_text(soup, ".jobViewCompany") or "Unknown",
            location=select_text(soup, ".jobViewLocation") or "Unknown",
            description=description,
            url=self.listing_url(listing_id),
            skills=[s for s in skills if s],
            salary_min=salary_min,
            salary_max=salary_max,
            salary_text=salary_text,
            employment_type=self.canonical_job_type(employment_raw),
            work_model=self.canonical_work_model(work_model_raw),
            experience_years=extract_experience_years(requirements, description),
            industry=industry,
            requirements=requirements or None,
            benefits=select_text(soup, ".jobBenefits") or None,
            can_apply_directly=True,
        )

    async def _submit_application(self, session: ScraperSession, listing: NormalizedListing,
                                  action: ApplyAction) -> ApplyResult:
        body = {
            "jobId": listing.id,
            "coverLetter": action.cover_letter or "",
            "resumeId": "custom" if action.resume_url else "default",
            "resumeUrl": action.resume_url or "",
        }
        await self._request(session, "POST", f"{self.base_url}/candidate/application/add", json_body=body)
        return ApplyResult(
            success=True,
            listing_id=listing.id,
            message="Candidatura realizada com sucesso",
        )
