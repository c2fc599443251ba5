from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .models import PersistedJob
from .store import JobFilter, JobStore

log = logging.getLogger(__name__)


def get_listings(
    store: JobStore,
    job_filter: JobFilter,
    *,
    bootstrap: Callable[[], Any] | None = None,
    limit: int = 50,
) -> list[PersistedJob]:
    """
    Read the newest jobs for a filter, populating the store on a cold cache.

    The bootstrap runs only when the query came back empty and the filter is
    not narrowed beyond the source (an empty narrowed result is a real answer).
    Store read errors propagate; bootstrap errors are logged and the empty
    re-query result is returned.
    """
    jobs = store.find_many(job_filter, limit=limit)
    if jobs or bootstrap is None or job_filter.is_narrowed():
        return jobs

    log.info("No jobs in DB for %s, attempting initial scrape for bootstrap...", job_filter.source)
    try:
        bootstrap()
    except Exception:
        log.exception("Bootstrap scrape for %s failed", job_filter.source)
    return store.find_many(job_filter, limit=limit)
