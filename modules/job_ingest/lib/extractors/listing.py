from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from ..models import ScrapedRecord
from ..utils import truncate
from .base import apply_rules, first_matching, missing

if TYPE_CHECKING:
    from ..sources.base import SourceProfile

log = logging.getLogger(__name__)


def _expanded_region(soup: BeautifulSoup, card: Tag, profile: SourceProfile) -> Tag | None:
    """Follow the card's reference (e.g. data-bs-target="#job-123") to its expanded block."""
    if not profile.expanded_ref_attr:
        return None
    ref_el = card.select_one(f"[{profile.expanded_ref_attr}]")
    if ref_el is None:
        return None
    ref = str(ref_el.get(profile.expanded_ref_attr) or "").strip()
    target_id = ref[1:] if ref.startswith("#") else ref
    if not target_id:
        return None
    return soup.find(id=target_id)


def _parse_card(soup: BeautifulSoup, card: Tag, profile: SourceProfile) -> ScrapedRecord | None:
    values = apply_rules(card, profile.card_rules)
    card_id = str(card.get(profile.card_id_attr) or "").strip()

    absent = missing(values, profile.required_fields)
    if absent or not card_id:
        log.warning("Missing attributes for job card %r: %s", card_id or None, absent or ["id"])
        return None

    modality = first_matching(card, profile.modality_markers)
    salary = profile.salary_marker.read(card) if profile.salary_marker else None

    description = ""
    skills: list[str] = []
    region = _expanded_region(soup, card, profile)
    if region is not None:
        if profile.expanded_description_css:
            desc_el = region.select_one(profile.expanded_description_css)
            description = desc_el.get_text(" ", strip=True) if desc_el else ""
        if profile.expanded_skills_css:
            skills = [s.get_text(" ", strip=True) for s in region.select(profile.expanded_skills_css)]
            skills = [s for s in skills if s]

    company_href = values.get("company_url")
    return ScrapedRecord(
        external_id=card_id,
        url=urljoin(profile.base_url, values["url"] or ""),
        title=values["title"] or "",
        company=values["company"] or "",
        location=values["location"] or "",
        source=profile.name,
        company_url=urljoin(profile.base_url, company_href) if company_href else None,
        company_logo_url=values.get("company_logo_url"),
        raw_location_html=values.get("raw_location_html"),
        modality=modality or None,
        salary=salary or None,
        date_posted=values.get("date_posted"),
        description=truncate(description, profile.card_description_limit),
        skills=skills or None,
    )


def extract_listing_page(html: str, profile: SourceProfile) -> list[ScrapedRecord]:
    """
    Parse every job card on one listing page.

    A card missing a mandatory field is skipped with a warning; a card that blows
    up the parser is logged and skipped. Neither affects the rest of the page.
    """
    soup = BeautifulSoup(html, "html.parser")
    records: list[ScrapedRecord] = []

    for card in soup.select(profile.card_query()):
        try:
            rec = _parse_card(soup, card, profile)
        except Exception:
            log.exception("Error parsing job card: %s", str(card)[:300])
            continue
        if rec is not None:
            records.append(rec)

    log.info("Parsed %d jobs from page HTML.", len(records))
    return records
