from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup

from ..models import ScrapedRecord
from ..utils import truncate
from .base import apply_rules, missing

if TYPE_CHECKING:
    from ..sources.base import SourceProfile

log = logging.getLogger(__name__)


def detail_id_from_url(url: str) -> str | None:
    """Trailing path segment of `url`, tolerating a trailing slash."""
    segments = [s for s in urlsplit(url).path.split("/") if s]
    return segments[-1] if segments else None


def extract_detail_page(
    html: str,
    url: str,
    profile: SourceProfile,
    date_posted: str | None = None,
) -> ScrapedRecord | None:
    """
    Parse one job-detail page into a ScrapedRecord.

    Returns None (and logs) when any mandatory field is missing. Modality and
    salary are listing-only on most boards and are not looked for here.
    """
    soup = BeautifulSoup(html, "html.parser")
    values = apply_rules(soup, profile.detail_rules)
    values["url"] = url

    potential_id = detail_id_from_url(url)
    absent = missing(values, profile.required_fields)
    if absent or not potential_id:
        log.warning("Could not parse details for job detail page: %s (missing=%s)", url, absent or ["id"])
        return None

    company_href = values.get("company_url")
    description = truncate(values.get("description") or "", profile.detail_description_limit)

    return ScrapedRecord(
        external_id=f"{profile.detail_id_prefix}{potential_id}",
        url=url,
        title=values["title"] or "",
        company=values["company"] or "",
        location=values["location"] or "",
        source=profile.name,
        company_url=urljoin(profile.base_url, company_href) if company_href else None,
        company_logo_url=values.get("company_logo_url"),
        raw_location_html=values.get("raw_location_html"),
        date_posted=date_posted,
        description=description,
        skills=[],
    )
