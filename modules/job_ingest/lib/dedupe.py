from __future__ import annotations

from collections.abc import Iterable

from .models import ScrapedRecord


def dedupe(records: Iterable[ScrapedRecord]) -> list[ScrapedRecord]:
    """
    Collapse records to one per external_id, keeping the LAST occurrence.

    Listing pages are scraped after sitemap detail pages, so their data overrides.
    Output order follows the first appearance of each identifier.
    """
    by_id: dict[str, ScrapedRecord] = {}
    for rec in records:
        by_id[rec.external_id] = rec
    return list(by_id.values())
