from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any

from .http_client import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from .sources import all_sources

ENV_PREFIX = "JOB_INGEST_"
REFRESH_STRATEGIES = ("full_replace", "mark_and_sweep")
LOCK_BACKENDS = ("memory", "sqlite")


# -----------------------------
# Exceptions
# -----------------------------
class ConfigError(ValueError):
    """Raised when provided kwargs/env cannot form a valid Settings."""


# -----------------------------
# Models
# -----------------------------
@dataclass
class Settings:
    """
    Canonical configuration for a 'job_ingest' run.

    Page limits drive everything else: a run with page limit P looks at up to
    sitemap_per_page * P sitemap entries and aims for listing_per_page * P records.
    """

    source: str = "builtin.com"
    sqlite_path: str = "/app/local/state/jobs.db"

    # Discovery sizing
    scheduled_page_limit: int = 3
    on_demand_page_limit: int = 1
    max_age_days: int = 7
    sitemap_per_page: int = 25
    listing_per_page: int = 15

    # HTTP
    timeout_sec: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    page_delay_sec: float = 0.5
    detail_delay_sec: float = 0.2

    # Read path + refresh
    query_limit: int = 50
    refresh_strategy: str = "full_replace"

    # "memory": per-process lock; "sqlite": lease row in sqlite_path, shared by
    # every process pointed at the same file (serve + ad-hoc CLI runs).
    lock_backend: str = "memory"
    lock_ttl_sec: float = 3600.0

    # ------------- convenience -------------
    def sitemap_cap(self, page_limit: int) -> int:
        return self.sitemap_per_page * page_limit

    def desired_count(self, page_limit: int) -> int:
        return self.listing_per_page * page_limit

    # ------------- constructors -------------
    @classmethod
    def from_env_and_kwargs(cls, kwargs: Mapping[str, Any] | None = None) -> Settings:
        """
        Build Settings with validation. For each field: kwargs first, then
        JOB_INGEST_<FIELD> from the environment, then the dataclass default.

            source: str = "builtin.com"
            sqlite_path: str = "/app/local/state/jobs.db"
            scheduled_page_limit: int = 3
            on_demand_page_limit: int = 1
            max_age_days: int = 7
            sitemap_per_page: int = 25
            listing_per_page: int = 15
            timeout_sec: float = 15
            user_agent: str
            page_delay_sec: float = 0.5
            detail_delay_sec: float = 0.2
            query_limit: int = 50
            refresh_strategy: "full_replace" | "mark_and_sweep"
            lock_backend: "memory" | "sqlite"
            lock_ttl_sec: float = 3600

        Unknown kwargs are rejected.
        """
        kw = dict(kwargs or {})
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(kw) - set(known))
        if unknown:
            raise ConfigError(f"Unknown job_ingest settings: {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for name, f in known.items():
            raw = kw.get(name)
            if raw is None:
                raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is None or (isinstance(raw, str) and not raw.strip()):
                continue
            values[name] = _coerce(name, raw, f.default)

        settings = cls(**values)
        _validate_settings(settings)
        return settings


# -----------------------------
# Helpers
# -----------------------------
def _coerce(name: str, raw: Any, default: Any) -> Any:
    try:
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{name}' must be a number, got {raw!r}") from e
    return str(raw).strip()


def _validate_settings(s: Settings) -> None:
    if not s.source.strip():
        raise ConfigError("'source' cannot be empty.")
    if s.source.strip().lower() not in all_sources():
        raise ConfigError(f"Unknown source {s.source!r}; registered: {', '.join(sorted(all_sources()))}")
    if not s.sqlite_path.strip():
        raise ConfigError("'sqlite_path' cannot be empty.")

    for name in ("scheduled_page_limit", "on_demand_page_limit", "query_limit"):
        if getattr(s, name) < 1:
            raise ConfigError(f"'{name}' must be >= 1.")
    for name in ("max_age_days", "sitemap_per_page", "listing_per_page"):
        if getattr(s, name) < 0:
            raise ConfigError(f"'{name}' must be >= 0.")
    if s.timeout_sec <= 0:
        raise ConfigError("'timeout_sec' must be > 0.")
    if s.page_delay_sec < 0 or s.detail_delay_sec < 0:
        raise ConfigError("Delays cannot be negative.")
    if s.refresh_strategy not in REFRESH_STRATEGIES:
        raise ConfigError(f"'refresh_strategy' must be one of {', '.join(REFRESH_STRATEGIES)}.")
    if s.lock_backend not in LOCK_BACKENDS:
        raise ConfigError(f"'lock_backend' must be one of {', '.join(LOCK_BACKENDS)}.")
    if s.lock_ttl_sec <= 0:
        raise ConfigError("'lock_ttl_sec' must be > 0.")
