# modules/job_ingest/lib/sources/builtin.py
"""
Built In (builtin.com) dev-engineering board.

Discovery:
  - sitemap: https://builtin.com/job-board-sitemap.xml, detail URLs contain "/job/"
  - listing: https://www.builtin.com/jobs/dev-engineering?page=N

Detail ids are "builtin-job-<last path segment>"; listing ids are the card's DOM id.
"""

from __future__ import annotations

from ..extractors.base import FieldRule, Locator
from .base import SourceProfile
from .registry import register

_GRAY_SPAN = "span.font-barlow.text-gray-04"

BUILTIN = register(
    SourceProfile(
        name="builtin.com",
        base_url="https://builtin.com",
        sitemap_url="https://builtin.com/job-board-sitemap.xml",
        listing_url="https://www.builtin.com/jobs/dev-engineering",
        detail_path_marker="/job/",
        detail_id_prefix="builtin-job-",
        detail_rules=(
            FieldRule("title", Locator('h1[data-id="job-title"]'), Locator(".job-title")),
            FieldRule("company", Locator('a[data-id="company-title"]'), Locator(".company-name")),
            FieldRule("location", Locator('span[data-id="job-location"]'), Locator(".job-location")),
            FieldRule("raw_location_html", Locator('span[data-id="job-location"]', mode="parent_html")),
            FieldRule(
                "description",
                Locator(".job-description-container"),
                Locator('div[data-id="job-description"]'),
            ),
            FieldRule("company_url", Locator('a[data-id="company-title"]', attr="href", mode="attr")),
            FieldRule("company_logo_url", Locator('img[data-id="company-img"]', attr="src", mode="attr")),
        ),
        card_containers=("#search-results-top", "#search-results-bottom"),
        card_selector='div[data-id="job-card"]',
        card_id_attr="id",
        card_rules=(
            FieldRule("title", Locator('a[data-id="job-card-title"]')),
            FieldRule("url", Locator('a[data-id="job-card-title"]', attr="href", mode="attr")),
            FieldRule("company", Locator('a[data-id="company-title"] span'), Locator('a[data-id="company-title"]')),
            FieldRule("company_url", Locator('a[data-id="company-title"]', attr="href", mode="attr")),
            FieldRule("company_logo_url", Locator('img[data-id="company-img"]', attr="src", mode="attr")),
            FieldRule(
                "location",
                Locator(_GRAY_SPAN, icon="i.fa-location-dot", sibling="div"),
                Locator(None, icon="i.fa-location-dot", sibling="div"),
            ),
            FieldRule(
                "raw_location_html",
                Locator(f'{_GRAY_SPAN}[data-bs-toggle="tooltip"]', mode="outer_html", icon="i.fa-location-dot", sibling="div"),
            ),
            FieldRule(
                "date_posted",
                Locator("span.fs-xs.fw-bold.bg-gray-01.font-Montserrat", mode="own_text"),
                Locator("span.fs-xs.fw-bold.bg-gray-01.font-Montserrat"),
            ),
        ),
        modality_markers=(
            Locator(icon="i.fa-house-building", sibling=_GRAY_SPAN),
            Locator(icon="i.fa-signal-stream", sibling=_GRAY_SPAN),
            Locator(icon="i.fa-building", sibling=_GRAY_SPAN),
        ),
        salary_marker=Locator(icon="i.fa-sack-dollar", sibling=_GRAY_SPAN),
        expanded_ref_attr="data-bs-target",
        expanded_description_css=".fs-sm.fw-regular.mb-md.text-gray-04",
        expanded_skills_css=".d-md-inline.ps-md-sm span.fs-xs.text-gray-04.mx-sm",
        card_description_limit=250,
    )
)
