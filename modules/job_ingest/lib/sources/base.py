from __future__ import annotations

from dataclasses import dataclass, field

from ..extractors.base import FieldRule, Locator


@dataclass(frozen=True)
class SourceProfile:
    """
    Everything site-specific about one upstream job board.

    Endpoints, identifier derivation and markup matchers are plain data so a new
    source (or a markup change on an existing one) needs no new extraction code.
    """

    # Stable tag stored on every row; refreshes are scoped by it.
    name: str
    base_url: str
    sitemap_url: str
    listing_url: str

    # Sitemap entries whose <loc> contains this marker are job-detail pages.
    detail_path_marker: str = "/job/"
    detail_id_prefix: str = ""
    detail_rules: tuple[FieldRule, ...] = ()
    detail_description_limit: int = 1000

    card_containers: tuple[str, ...] = ()
    card_selector: str = ""
    card_id_attr: str = "id"
    card_rules: tuple[FieldRule, ...] = ()
    # Priority order: first marker that yields text wins.
    modality_markers: tuple[Locator, ...] = ()
    salary_marker: Locator | None = None
    # Cards point at an expanded-content region elsewhere in the page.
    expanded_ref_attr: str | None = None
    expanded_description_css: str | None = None
    expanded_skills_css: str | None = None
    card_description_limit: int = 250

    # Fields that must be non-empty for a record to be kept.
    required_fields: tuple[str, ...] = field(default=("title", "company", "location", "url"))

    def card_query(self) -> str:
        if not self.card_containers:
            return self.card_selector
        return ", ".join(f"{c} {self.card_selector}" for c in self.card_containers)
