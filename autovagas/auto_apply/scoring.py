"""
Listing match scoring and exclusion filters.

The score is a tunable heuristic on a 0-10 scale:

    keywords found in title+description   up to MATCH_WEIGHT_KEYWORDS (5)
    location substring match              MATCH_WEIGHT_LOCATION (2)
    industry substring match              MATCH_WEIGHT_INDUSTRY (1.5)
    canonical job type match              MATCH_WEIGHT_JOB_TYPE (1.5)

A criterion the user left empty contributes half its weight.
"""

import math
from typing import Optional

from autovagas.core.config import AppConfig, get_config
from autovagas.core.models import AutoApplyConfig, NormalizedListing, split_csv

MAX_SCORE = 10


def _listing_text(listing: NormalizedListing) -> str:
    return f"{listing.title} {listing.description}".lower()


def round_score(raw: float) -> int:
    """Half-up rounding, then clamp to [0, MAX_SCORE]."""
    return max(0, min(int(math.floor(raw + 0.5)), MAX_SCORE))


def calculate_match_score(listing: NormalizedListing, cfg: AutoApplyConfig,
                          app_config: Optional[AppConfig] = None) -> int:
    weights = app_config or get_config()
    score = 0.0

    keywords = split_csv(cfg.keywords)
    if keywords:
        text = _listing_text(listing)
        matched = sum(1 for keyword in keywords if keyword in text)
        score += (matched / len(keywords)) * weights.MATCH_WEIGHT_KEYWORDS
    else:
        score += weights.MATCH_WEIGHT_KEYWORDS / 2

    locations = split_csv(cfg.locations)
    if locations:
        job_location = (listing.location or "").lower()
        if any(location in job_location for location in locations):
            score += weights.MATCH_WEIGHT_LOCATION
    else:
        score += weights.MATCH_WEIGHT_LOCATION / 2

    industries = split_csv(cfg.industries)
    if industries and listing.industry:
        job_industry = listing.industry.lower()
        if any(industry in job_industry for industry in industries):
            score += weights.MATCH_WEIGHT_INDUSTRY
    else:
        score += weights.MATCH_WEIGHT_INDUSTRY / 2

    job_types = cfg.job_type_list
    if job_types and listing.employment_type:
        if listing.employment_type in job_types:
            score += weights.MATCH_WEIGHT_JOB_TYPE
    else:
        score += weights.MATCH_WEIGHT_JOB_TYPE / 2

    return round_score(score)


def contains_excluded_keyword(listing: NormalizedListing, excluded_keywords: Optional[str]) -> bool:
    terms = split_csv(excluded_keywords)
    if not terms:
        return False
    text = _listing_text(listing)
    return any(term in text for term in terms)


def is_excluded_company(listing: NormalizedListing, excluded_companies: Optional[str]) -> bool:
    companies = split_csv(excluded_companies)
    if not companies:
        return False
    company_name = (listing.company_name or "").lower()
    return any(company in company_name for company in companies)
