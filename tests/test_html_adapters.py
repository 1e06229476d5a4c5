"""
HTML adapters (InfoJobs, Catho, Indeed): result cards, job pages and the
shared salary and experience helpers.
"""

from unittest.mock import AsyncMock

import pytest

from autovagas.adapters.base import (
    HttpResponse,
    extract_experience_years,
    format_cookies,
    parse_brl,
    parse_salary_range,
)
from autovagas.adapters.catho import CathoAdapter
from autovagas.adapters.indeed import IndeedAdapter
from autovagas.adapters.infojobs import InfoJobsAdapter
from autovagas.core.errors import ApplyNotSupported
from autovagas.core.models import ApplyAction, JobType, Platform, SearchAction, WorkModel


class TestHelpers:
    def test_parse_brl(self):
        assert parse_brl("5.000,50") == 5000.5
        assert parse_brl("abc") is None

    def test_salary_range(self):
        assert parse_salary_range("R$ 5.000,00 a R$ 7.000,00") == (5000.0, 7000.0)
        assert parse_salary_range("Salário: R$ 3.500") == (3500.0, 3500.0)
        assert parse_salary_range("A combinar") == (None, None)
        assert parse_salary_range(None) == (None, None)

    def test_experience_years(self):
        assert extract_experience_years(None, "Mínimo de 3 anos de experiência") == 3
        assert extract_experience_years("2+ years of experience") is None
        assert extract_experience_years("2 years of experience") == 2
        assert extract_experience_years("sem requisitos") is None

    def test_cookie_header_formats(self):
        assert format_cookies([{"name": "a", "value": "1"}, {"name": "b", "value": "2"}]) == "a=1; b=2"
        assert format_cookies({"a": "1"}) == "a=1"
        assert format_cookies("raw=1") == "raw=1"
        assert format_cookies(None) == ""


INFOJOBS_SEARCH = """
<html><body>
  <div class="vagaCard" data-job-id="9001">
    <a class="vagaLink" href="/vaga-de-emprego/9001.aspx">
      <h2 class="vagaTitle">Analista de Dados</h2>
    </a>
    <div class="vagaInfoCompany">Banco Azul</div>
    <div class="vagaInfoLocation">Curitiba - PR</div>
    <div class="vagaSalary">R$ 5.000,00 a R$ 7.000,00</div>
    <span class="vagaDate">Hoje</span>
  </div>
  <div class="vagaCard" data-job-id="">
    <h2 class="vagaTitle">Sem id</h2>
  </div>
  <div class="vagaCard" data-job-id="9002">
    <h2 class="vagaTitle">Desenvolvedor Java</h2>
  </div>
</body></html>
"""

INFOJOBS_DETAIL = """
<html><body>
  <h1 class="jobViewTitle">Analista de Dados</h1>
  <div class="jobViewCompany">Banco Azul</div>
  <div class="jobViewLocation">Curitiba - PR</div>
  <div class="jobViewSalary">R$ 5.000,00 a R$ 7.000,00</div>
  <ul class="jobDetails">
    <li><strong>Contrato:</strong> CLT</li>
    <li><strong>Modelo de trabalho:</strong> Remoto</li>
  </ul>
  <ul class="jobCompanyInfo"><li>Setor: Financeiro</li></ul>
  <div class="jobDescription">Análise de dados com SQL e Python.</div>
  <div class="jobRequirements">Pelo menos 3 anos de experiência com BI.</div>
  <ul class="jobSkills"><li>SQL</li><li>Power BI</li><li> </li></ul>
  <div class="jobBenefits">Vale refeição</div>
</body></html>
"""


@pytest.mark.adapters
class TestInfoJobsParsing:
    @pytest.fixture
    def adapter(self, mock_session_store):
        return InfoJobsAdapter(mock_session_store, login_driver=AsyncMock())

    def test_search_cards(self, adapter):
        listings = adapter.parse_search_results(INFOJOBS_SEARCH)

        assert [l.id for l in listings] == ["9001", "9002"]
        card = listings[0]
        assert card.title == "Analista de Dados"
        assert card.company_name == "Banco Azul"
        assert card.url == "https://www.infojobs.com.br/vaga-de-emprego/9001.aspx"
        assert (card.salary_min, card.salary_max) == (5000.0, 7000.0)
        assert listings[1].url == "https://www.infojobs.com.br/vaga-de-emprego/9002.aspx"
        assert listings[1].company_name == "Unknown"

    def test_job_page(self, adapter):
        listing = adapter.parse_job_details(INFOJOBS_DETAIL, "9001")

        assert listing.platform == Platform.INFOJOBS
        assert listing.employment_type == JobType.CLT
        assert listing.work_model == WorkModel.REMOTE
        assert listing.industry == "Financeiro"
        assert listing.skills == ["SQL", "Power BI"]
        assert listing.experience_years == 3
        assert listing.benefits == "Vale refeição"
        assert listing.can_apply_directly is True

    @pytest.mark.asyncio
    async def test_search_request_params(self, adapter, make_session):
        adapter._send = AsyncMock(return_value=HttpResponse(status=200, text=INFOJOBS_SEARCH))
        action = SearchAction(keywords="dados", location="Curitiba",
                              filters={"date_posted": "1", "salary": "5"})

        await adapter.search(make_session(Platform.INFOJOBS), action)

        params = adapter._send.await_args.kwargs["params"]
        assert params == {"palabra": "dados", "provincia": "Curitiba", "publicado": "1", "salario": "5"}

    @pytest.mark.asyncio
    async def test_apply_posts_application(self, adapter, make_session):
        adapter._send = AsyncMock(side_effect=[
            HttpResponse(status=200, text=INFOJOBS_DETAIL),
            HttpResponse(status=200, text=""),
        ])

        result = await adapter.apply(make_session(Platform.INFOJOBS),
                                     ApplyAction(listing_id="9001", resume_url="https://cdn.example/cv.pdf"))

        assert result.success is True
        assert result.listing.title == "Analista de Dados"
        method, url = adapter._send.await_args.args
        assert (method, url) == ("POST", "https://www.infojobs.com.br/candidate/application/add")
        assert adapter._send.await_args.kwargs["json_body"]["resumeId"] == "custom"


CATHO_SEARCH = """
<section>
  <article class="job-vacancy" data-job-id="555">
    <a class="job-vacancy__link" href="https://www.catho.com.br/vagas/vaga-555">
      <h2 class="job-vacancy__title">Engenheiro de Software</h2>
    </a>
    <p class="job-vacancy__company-name">Loja Verde</p>
    <p class="job-vacancy__location">Belo Horizonte - MG</p>
    <p class="job-vacancy__salary">R$ 9.000,00</p>
  </article>
  <article class="job-vacancy">
    <h2 class="job-vacancy__title">Anúncio</h2>
  </article>
</section>
"""

CATHO_DETAIL = """
<main>
  <h1 class="job-details__title">Engenheiro de Software</h1>
  <div class="job-details__company-name">Loja Verde</div>
  <div class="job-details__location">Belo Horizonte - MG</div>
  <div class="job-details__salary">R$ 8.000,00 a R$ 10.000,00</div>
  <ul>
    <li class="job-details__info-item">
      <span class="job-details__info-label">Regime de contratação:</span>
      <span class="job-details__info-value">PJ</span>
    </li>
    <li class="job-details__info-item">
      <span class="job-details__info-label">Modelo de trabalho:</span>
      <span class="job-details__info-value">Híbrido</span>
    </li>
    <li class="job-details__info-item">
      <span class="job-details__info-label">Área:</span>
      <span class="job-details__info-value">Varejo</span>
    </li>
  </ul>
  <div class="job-details__description">Plataforma de e-commerce em Python.</div>
  <div class="job-details__requirements">5 anos de experiência</div>
  <span class="job-details__skills-item">Python</span>
  <span class="job-details__skills-item">Kafka</span>
</main>
"""


@pytest.mark.adapters
class TestCathoParsing:
    @pytest.fixture
    def adapter(self, mock_session_store):
        return CathoAdapter(mock_session_store, login_driver=AsyncMock())

    def test_search_cards(self, adapter):
        listings = adapter.parse_search_results(CATHO_SEARCH)

        assert len(listings) == 1
        assert listings[0].id == "555"
        assert listings[0].url == "https://www.catho.com.br/vagas/vaga-555"
        assert listings[0].salary_min == 9000.0

    def test_job_page(self, adapter):
        listing = adapter.parse_job_details(CATHO_DETAIL, "555")

        assert listing.employment_type == JobType.PJ
        assert listing.work_model == WorkModel.HYBRID
        assert listing.industry == "Varejo"
        assert listing.experience_years == 5
        assert listing.skills == ["Python", "Kafka"]
        assert (listing.salary_min, listing.salary_max) == (8000.0, 10000.0)

    @pytest.mark.asyncio
    async def test_apply_uses_api(self, adapter, make_session):
        adapter._send = AsyncMock(side_effect=[
            HttpResponse(status=200, text=CATHO_DETAIL),
            HttpResponse(status=200, text='{"applicationId": "c-1"}'),
        ])

        result = await adapter.apply(make_session(Platform.CATHO), ApplyAction(listing_id="555"))

        assert result.external_application_id == "c-1"
        method, url = adapter._send.await_args.args
        assert url == "https://www.catho.com.br/api/jobs/555/apply"


INDEED_SEARCH = """
<div class="jobsearch-ResultsList">
  <div class="cardOutline" data-jk="a1b2c3">
    <h2 class="jobTitle"><span>Desenvolvedor Backend</span></h2>
    <span class="companyName">Startup Roxa</span>
    <div class="companyLocation">Remoto</div>
    <div class="salary-snippet">R$ 6.000 a R$ 8.000 por mês</div>
    <span class="date">Publicada há 2 dias</span>
    <span class="iaLabel">Candidatura simplificada</span>
  </div>
  <div class="cardOutline" data-jk="d4e5f6">
    <h2 class="jobTitle"><span>Analista de Suporte</span></h2>
    <span class="companyName">Grande Empresa</span>
  </div>
  <div class="cardOutline mosaic-afterFifthJob"></div>
</div>
"""

INDEED_DETAIL = """
<div>
  <h1 class="jobsearch-JobInfoHeader-title">Desenvolvedor Backend</h1>
  <div class="jobsearch-InlineCompanyRating-companyHeader">Startup Roxa</div>
  <div class="jobsearch-JobInfoHeader-locationName">Remoto</div>
  <div class="jobsearch-JobMetadataHeader-item">Salário: R$ 6.000 a R$ 8.000 por mês</div>
  <div class="jobsearch-JobMetadataHeader-item">Tipo de contratação: Tempo integral</div>
  <div class="jobsearch-JobMetadataHeader-item">Tipo de trabalho: Remoto</div>
  <ul class="jobsearch-CompanyInfoContainer"><li>Setor: Tecnologia</li></ul>
  <ul class="jobsearch-ReqAndQualSection-item-list">
    <li class="jobsearch-ReqAndQualSection-item">Go</li>
    <li class="jobsearch-ReqAndQualSection-item">4 anos de experiência com APIs</li>
  </ul>
  <div class="jobsearch-jobDescriptionText">Construir APIs em Go e Python.</div>
  <div class="jobsearch-IndeedApplyButton-buttonWrapper"><button>Candidatar-se</button></div>
</div>
"""


@pytest.mark.adapters
class TestIndeedParsing:
    @pytest.fixture
    def adapter(self, mock_session_store):
        return IndeedAdapter(mock_session_store, login_driver=AsyncMock())

    def test_search_cards(self, adapter):
        listings = adapter.parse_search_results(INDEED_SEARCH)

        assert [l.id for l in listings] == ["a1b2c3", "d4e5f6"]
        assert listings[0].title == "Desenvolvedor Backend"
        assert listings[0].url == "https://www.indeed.com.br/viewjob?jk=a1b2c3"
        assert listings[0].can_apply_directly is True
        assert (listings[0].salary_min, listings[0].salary_max) == (6000.0, 8000.0)
        assert listings[1].can_apply_directly is False

    def test_job_page(self, adapter):
        listing = adapter.parse_job_details(INDEED_DETAIL, "a1b2c3")

        assert listing.employment_type == JobType.CLT
        assert listing.work_model == WorkModel.REMOTE
        assert listing.industry == "Tecnologia"
        assert listing.experience_years == 4
        assert listing.salary_min == 6000.0
        assert listing.can_apply_directly is True

    @pytest.mark.asyncio
    async def test_apply_requires_indeed_apply(self, adapter, make_session):
        page = INDEED_DETAIL.replace("jobsearch-IndeedApplyButton-buttonWrapper", "external-apply")
        adapter._send = AsyncMock(return_value=HttpResponse(status=200, text=page))

        with pytest.raises(ApplyNotSupported):
            await adapter.apply(make_session(Platform.INDEED), ApplyAction(listing_id="a1b2c3"))

        assert adapter._send.await_count == 1
