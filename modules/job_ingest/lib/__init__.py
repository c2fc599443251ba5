# modules/job_ingest/lib/__init__.py
from __future__ import annotations

# Re-export commonly-used types for convenience.
# Importing .sources registers the built-in source profiles.
from .config import ConfigError, Settings
from .engine import run_once
from .models import PersistedJob, RunResult, ScrapedRecord, ScrapeResult
from .sources import SourceProfile
from .store import JobFilter, JobStore, StoreConflict, StoreError

__all__ = [
    "ConfigError",
    "JobFilter",
    "JobStore",
    "PersistedJob",
    "RunResult",
    "ScrapeResult",
    "ScrapedRecord",
    "Settings",
    "SourceProfile",
    "StoreConflict",
    "StoreError",
    "run_once",
]
