"""
Engine for one ingestion cycle: discover, extract, dedupe, refresh.

Flow:
  - Sitemap: recent job-detail URLs, each fetched and extracted (capped by page limit)
  - Listing pages: only when the sitemap fell short of the desired count
  - Dedupe on external_id (last occurrence wins)
  - Refresh the store for the source (full replace, or mark-and-sweep)

Discovery failures are counted, never fatal. Dependency injection (`store`,
`client`, `profile`) keeps the whole cycle testable without a network.
"""

from __future__ import annotations

import time

from . import logging_bridge
from .config import ConfigError, Settings
from .db import SqliteJobStore
from .dedupe import dedupe
from .discovery import discover_from_listing_pages, discover_from_sitemap, scrape_detail_pages
from .http_client import HttpClient, IngestError
from .models import RunResult, ScrapedRecord
from .refresh import refresh, sweep_refresh
from .sources import SourceProfile
from .sources import get as get_source
from .store import JobStore, SweepCapable


# =============================================================================
# MAIN ORCHESTRATOR
# =============================================================================
def run_once(
    settings: Settings,
    *,
    page_limit: int | None = None,
    store: JobStore | None = None,
    client: HttpClient | None = None,
    profile: SourceProfile | None = None,
) -> RunResult:
    """
    Run one complete refresh cycle for `settings.source`.

    Args:
        settings: validated module settings.
        page_limit: discovery depth; defaults to settings.scheduled_page_limit.
        store/client/profile: overrides (tests); built from settings otherwise.
    """
    start_ns = time.perf_counter_ns()
    page_limit = page_limit or settings.scheduled_page_limit
    profile = profile or get_source(settings.source)
    store = store or SqliteJobStore(settings.sqlite_path)

    if settings.refresh_strategy == "mark_and_sweep" and not isinstance(store, SweepCapable):
        raise ConfigError(f"refresh_strategy 'mark_and_sweep' needs a SweepCapable store, got {type(store).__name__}")

    own_client = client is None
    client = client or HttpClient(timeout=settings.timeout_sec, user_agent=settings.user_agent)

    logging_bridge.activity({
        "component": "job_ingest.engine",
        "op": "start",
        "source": profile.name,
        "page_limit": page_limit,
        "refresh_strategy": settings.refresh_strategy,
    })

    try:
        scraped, scrape_errors, durations_us = _discover(settings, client, profile, page_limit)
    finally:
        if own_client:
            client.close()

    # -------------------------------------------------------------------------
    # DEDUPE + REFRESH
    # -------------------------------------------------------------------------
    unique = dedupe(scraped)
    logging_bridge.activity({
        "component": "job_ingest.engine",
        "op": "deduped",
        "source": profile.name,
        "scraped": len(scraped),
        "unique": len(unique),
    })
    if not unique:
        logging_bridge.error({
            "component": "job_ingest.engine",
            "op": "empty_scrape",
            "source": profile.name,
            "scrape_errors": scrape_errors,
        })

    t0 = time.perf_counter_ns()
    if settings.refresh_strategy == "mark_and_sweep":
        result = sweep_refresh(store, profile.name, unique)
    else:
        result = refresh(store, profile.name, unique)
    durations_us["refresh"] = int((time.perf_counter_ns() - t0) // 1000)
    result.scrape_errors = scrape_errors

    # -------------------------------------------------------------------------
    # SUMMARY LOG (always emitted)
    # -------------------------------------------------------------------------
    logging_bridge.activity({
        "component": "job_ingest.engine",
        "op": "summary",
        "source": profile.name,
        "page_limit": page_limit,
        **result.as_dict(),
        "durations_us": durations_us,
        "total_us": int((time.perf_counter_ns() - start_ns) // 1000),
    })
    return result


# =============================================================================
# DISCOVERY (sitemap first, listing pages as supplement)
# =============================================================================
def _discover(
    settings: Settings,
    client: HttpClient,
    profile: SourceProfile,
    page_limit: int,
) -> tuple[list[ScrapedRecord], int, dict[str, int]]:
    records: list[ScrapedRecord] = []
    errors = 0
    durations_us: dict[str, int] = {}

    # ---- sitemap ----
    t0 = time.perf_counter_ns()
    try:
        entries = discover_from_sitemap(
            client,
            profile.sitemap_url,
            settings.max_age_days,
            settings.sitemap_cap(page_limit),
            path_marker=profile.detail_path_marker,
        )
    except IngestError as e:
        errors += 1
        entries = []
        logging_bridge.error({
            "component": "job_ingest.engine",
            "op": "sitemap",
            "source": profile.name,
            "url": profile.sitemap_url,
            "error": repr(e),
        })

    detail = scrape_detail_pages(client, entries, profile, delay_sec=settings.detail_delay_sec)
    records.extend(detail.items)
    errors += len(detail.errors)
    durations_us["sitemap"] = int((time.perf_counter_ns() - t0) // 1000)

    # ---- listing pages ----
    desired = settings.desired_count(page_limit)
    if len(records) < desired:
        logging_bridge.activity({
            "component": "job_ingest.engine",
            "op": "listing_supplement",
            "source": profile.name,
            "sitemap_records": len(records),
            "desired": desired,
        })
        t0 = time.perf_counter_ns()
        listing = discover_from_listing_pages(
            client,
            profile.listing_url,
            page_limit,
            desired - len(records),
            profile,
            delay_sec=settings.page_delay_sec,
        )
        records.extend(listing.items)
        errors += len(listing.errors)
        durations_us["listing"] = int((time.perf_counter_ns() - t0) // 1000)

    return records, errors, durations_us
