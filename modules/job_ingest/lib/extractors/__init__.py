# modules/job_ingest/lib/extractors/__init__.py
from __future__ import annotations

from .base import FieldRule, Locator, apply_rules
from .detail import detail_id_from_url, extract_detail_page
from .listing import extract_listing_page

__all__ = [
    "FieldRule",
    "Locator",
    "apply_rules",
    "detail_id_from_url",
    "extract_detail_page",
    "extract_listing_page",
]
