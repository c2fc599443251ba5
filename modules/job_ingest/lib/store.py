from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from .models import PersistedJob


class StoreError(Exception):
    """Any persistence failure other than a unique-key conflict."""


class StoreConflict(StoreError):
    """Insert collided with an existing (source, external_id) row."""


@dataclass(frozen=True)
class JobFilter:
    """
    Read filter. `source` is always applied; the remaining fields narrow the
    result with case-insensitive substring matching.
    """

    source: str
    title: str | None = None
    company: str | None = None
    location: str | None = None
    modality: str | None = None

    def is_narrowed(self) -> bool:
        return any((self.title, self.company, self.location, self.modality))


class JobStore(ABC):
    """
    Persistence seam for PersistedJob rows.

    Reads are ordered by parsed_date_posted DESC (unknown dates last), then created_at DESC.
    """

    @abstractmethod
    def find_many(self, job_filter: JobFilter, limit: int = 50) -> list[PersistedJob]:
        raise NotImplementedError

    @abstractmethod
    def delete_many(self, source: str) -> int:
        """Delete every row for `source`; return how many went."""
        raise NotImplementedError

    @abstractmethod
    def create(self, job: PersistedJob) -> PersistedJob:
        """Insert one row. Raises StoreConflict on a duplicate key, StoreError otherwise."""
        raise NotImplementedError


class SweepCapable(ABC):
    """
    Two-phase refresh: upsert every current record tagged with a run token, then
    delete the source's rows that were not touched by that token. Both phases run
    in one transaction, so readers never see a half-refreshed source.
    """

    @abstractmethod
    def replace_source(self, source: str, jobs: list[PersistedJob], run_token: str) -> tuple[int, int]:
        """Return (upserted, swept)."""
        raise NotImplementedError
