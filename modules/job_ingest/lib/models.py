from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from .utils import to_iso


@dataclass(frozen=True)
class ScrapedRecord:
    """
    A single job posting as extracted from one document (pre-dedupe).
    Dedupe is performed in-process on `external_id`; the store enforces (source, external_id).
    """

    external_id: str
    url: str
    title: str
    company: str
    location: str
    source: str
    company_url: str | None = None
    company_logo_url: str | None = None
    raw_location_html: str | None = None
    modality: str | None = None  # e.g. "Remote", "Hybrid", "In-Office"
    salary: str | None = None  # e.g. "87K-123K Annually"
    date_posted: str | None = None  # raw phrase, e.g. "Reposted 2 hours ago"
    description: str | None = None
    skills: list[str] | None = None


@dataclass
class PersistedJob:
    """
    A row owned by the JobStore. Created only by a refresh cycle, never updated in place.
    `id` is the store's row id and is None until the row has been written.
    """

    external_id: str
    url: str
    title: str
    company: str
    location: str
    source: str
    company_url: str | None = None
    company_logo_url: str | None = None
    raw_location_html: str | None = None
    modality: str | None = None
    salary: str | None = None
    date_posted_raw: str | None = None
    parsed_date_posted: datetime | None = None
    description: str | None = None
    skills: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_scraped(cls, record: ScrapedRecord, parsed_date_posted: datetime | None) -> PersistedJob:
        return cls(
            external_id=record.external_id,
            url=record.url,
            title=record.title,
            company=record.company,
            location=record.location,
            source=record.source,
            company_url=record.company_url,
            company_logo_url=record.company_logo_url,
            raw_location_html=record.raw_location_html,
            modality=record.modality,
            salary=record.salary,
            date_posted_raw=record.date_posted,
            parsed_date_posted=parsed_date_posted,
            description=record.description,
            skills=list(record.skills or []),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe shape served to readers; `id` carries the external identifier."""
        return {
            "id": self.external_id,
            "url": self.url,
            "title": self.title,
            "company": self.company,
            "companyUrl": self.company_url,
            "companyLogoUrl": self.company_logo_url,
            "location": self.location,
            "rawLocationHtml": self.raw_location_html,
            "modality": self.modality,
            "salary": self.salary,
            "datePosted": self.date_posted_raw or "",
            "parsedDatePosted": to_iso(self.parsed_date_posted),
            "description": self.description,
            "skills": list(self.skills) if self.skills else None,
            "source": self.source,
        }


@dataclass(frozen=True)
class SitemapEntry:
    url: str
    lastmod: datetime | None = None
    lastmod_raw: str | None = None


@dataclass
class ScrapeResult:
    """
    Result bundle produced by a single discovery strategy.
    - items: all records found (NOT deduplicated).
    - errors: non-fatal per-item issues, one entry per failed page/URL.
    """

    source: str
    items: list[ScrapedRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class RunResult:
    """
    Outcome of one refresh invocation (scheduled, startup, ad-hoc or bootstrap).

    `errors` counts store-level insert failures only, so created + errors <= processed.
    Discovery failures are tallied separately in `scrape_errors`.
    """

    created: int = 0
    errors: int = 0
    processed: int = 0
    deleted: int = 0
    scrape_errors: int = 0
    delete_failed: bool = False

    @property
    def total_errors(self) -> int:
        return self.errors + self.scrape_errors + (1 if self.delete_failed else 0)

    def as_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["total_errors"] = self.total_errors
        return out
