from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from .lib.config import Settings
from .lib.db import SqliteJobStore, SqliteLeaseLock
from .lib.engine import run_once as _run_engine
from .lib.listings import get_listings
from .lib.locks import InMemoryLock, RunLock, held
from .lib.logging_bridge import activity as log_activity
from .lib.store import JobFilter, JobStore


# One in-memory run lock per source, shared by every caller in this process
_MEMORY_LOCKS: dict[str, InMemoryLock] = {}
_MEMORY_LOCKS_GUARD = threading.Lock()


def make_lock(settings: Settings) -> RunLock:
    """
    The run lock selected by settings.lock_backend.

    "memory" returns the process-wide lock for the source, so the scheduler,
    ad-hoc runs and bootstraps all contend on the same object. "sqlite" returns
    a lease handle; exclusion lives in the database row.
    """
    if settings.lock_backend == "sqlite":
        return SqliteLeaseLock(settings.sqlite_path, name=f"job_ingest:{settings.source}", ttl_sec=settings.lock_ttl_sec)
    key = settings.source.strip().lower()
    with _MEMORY_LOCKS_GUARD:
        lock = _MEMORY_LOCKS.get(key)
        if lock is None:
            lock = _MEMORY_LOCKS[key] = InMemoryLock()
    return lock


def make_pipeline(settings: Settings, *, store: JobStore | None = None) -> Callable[[str], dict[str, Any]]:
    """
    Unguarded pipeline body for the scheduler (which owns the lock).
    Scheduled and startup runs use the scheduled page limit.
    """

    def _pipeline(trigger_type: str) -> dict[str, Any]:
        result = _run_engine(settings, page_limit=settings.scheduled_page_limit, store=store)
        return {"trigger_type": trigger_type, **result.as_dict()}

    return _pipeline


def run(**kwargs: Any) -> dict[str, Any] | None:
    """
    Entry point for the 'job_ingest' module: one guarded, ad-hoc refresh.

    Accepts Settings kwargs (see Settings.from_env_and_kwargs) plus:
      page_limit: int          # defaults to on_demand_page_limit
      lock: RunLock            # share a lock with a running scheduler

    Returns the RunResult as a dict, or None when another run holds the lock.
    """
    page_limit = kwargs.pop("page_limit", None)
    lock = kwargs.pop("lock", None)
    settings = Settings.from_env_and_kwargs(kwargs)
    lock = lock or make_lock(settings)
    page_limit = int(page_limit) if page_limit else settings.on_demand_page_limit

    log_activity({
        "component": "job_ingest.main",
        "op": "start",
        "source": settings.source,
        "page_limit": page_limit,
        "sqlite_path": settings.sqlite_path,
    })

    with held(lock) as acquired:
        if not acquired:
            log_activity({
                "component": "job_ingest.main",
                "op": "skipped",
                "source": settings.source,
                "reason": "run_in_progress",
            })
            return None
        return _run_engine(settings, page_limit=page_limit).as_dict()


def list_jobs(
    *,
    source: str | None = None,
    title: str | None = None,
    company: str | None = None,
    location: str | None = None,
    modality: str | None = None,
    bootstrap: bool = True,
    settings: Settings | None = None,
    store: JobStore | None = None,
    lock: RunLock | None = None,
) -> list[dict[str, Any]]:
    """
    Read path: newest jobs for the source as JSON-safe dicts.

    On a cold cache (no rows, no narrowing filters) a small on-demand scrape
    populates the store first; it goes through the run lock and is skipped
    if a run is already in flight.
    """
    settings = settings or Settings.from_env_and_kwargs({})
    if source and source != settings.source:
        settings = replace(settings, source=source)
    store = store or SqliteJobStore(settings.sqlite_path)
    job_filter = JobFilter(
        source=settings.source,
        title=title,
        company=company,
        location=location,
        modality=modality,
    )

    bootstrap_fn = None
    if bootstrap:
        bootstrap_fn = _guarded_bootstrap(settings, store, lock or make_lock(settings))

    jobs = get_listings(store, job_filter, bootstrap=bootstrap_fn, limit=settings.query_limit)
    return [j.to_dict() for j in jobs]


def _guarded_bootstrap(settings: Settings, store: JobStore, lock: RunLock) -> Callable[[], Any]:
    def _bootstrap() -> dict[str, Any] | None:
        with held(lock) as acquired:
            if not acquired:
                log_activity({
                    "component": "job_ingest.main",
                    "op": "bootstrap_skipped",
                    "source": settings.source,
                    "reason": "run_in_progress",
                })
                return None
            result = _run_engine(settings, page_limit=settings.on_demand_page_limit, store=store)
            log_activity({
                "component": "job_ingest.main",
                "op": "bootstrap",
                "source": settings.source,
                **result.as_dict(),
            })
            return result.as_dict()

    return _bootstrap
