from __future__ import annotations

import contextlib
import json
import os
import sqlite3
import time
import uuid
from datetime import datetime

from .locks import RunLock
from .logging_bridge import error as log_error
from .models import PersistedJob
from .store import JobFilter, JobStore, StoreConflict, StoreError, SweepCapable
from .utils import from_iso, utc_now

_COLUMNS = (
    "external_id",
    "source",
    "url",
    "title",
    "company",
    "company_url",
    "company_logo_url",
    "location",
    "raw_location_html",
    "modality",
    "salary",
    "date_posted_raw",
    "parsed_date_posted",
    "description",
    "skills",
)


# ---- Public API -------------------------------------------------------------


def init_db(sqlite_path: str) -> None:
    """
    Ensure the SQLite database and schema exist.
    Safe to call multiple times.
    """
    _ensure_dir(sqlite_path)
    with contextlib.closing(_connect(sqlite_path)) as conn:
        _apply_pragmas(conn)
        _ensure_schema(conn)


class SqliteJobStore(JobStore, SweepCapable):
    """
    JobStore over a single SQLite file.

    One connection per operation (autocommit); unique index on (source, external_id).
    Timestamps are stored as fixed-width ISO-8601 UTC strings so they sort as text.
    """

    def __init__(self, sqlite_path: str) -> None:
        self.sqlite_path = sqlite_path
        init_db(sqlite_path)

    # ---- reads ----
    def find_many(self, job_filter: JobFilter, limit: int = 50) -> list[PersistedJob]:
        where = ["source = ?"]
        args: list[object] = [job_filter.source]
        for col in ("title", "company", "location", "modality"):
            term = getattr(job_filter, col)
            if term:
                where.append(f"lower({col}) LIKE ? ESCAPE '\\'")
                args.append(f"%{_like_escape(term.lower())}%")
        args.append(int(limit))

        sql = f"""
            SELECT id, {", ".join(_COLUMNS)}, created_at, updated_at
            FROM jobs
            WHERE {" AND ".join(where)}
            ORDER BY parsed_date_posted IS NULL, parsed_date_posted DESC, created_at DESC, id DESC
            LIMIT ?
        """
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                rows = conn.execute(sql, args).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"find_many failed: {e}") from e
        return [_row_to_job(r) for r in rows]

    def count(self, source: str | None = None) -> int:
        """Rows for `source` (or all rows); 0 if the table is empty."""
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            _apply_pragmas(conn)
            if source is None:
                (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
            else:
                (n,) = conn.execute("SELECT COUNT(*) FROM jobs WHERE source = ?", (source,)).fetchone()
        return int(n or 0)

    # ---- writes ----
    def delete_many(self, source: str) -> int:
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.execute("DELETE FROM jobs WHERE source = ?", (source,))
                return int(cur.rowcount or 0)
        except sqlite3.Error as e:
            log_error({
                "component": "job_ingest.db",
                "op": "delete_many",
                "sqlite_path": self.sqlite_path,
                "source": source,
                "error": repr(e),
            })
            raise StoreError(f"delete_many({source!r}) failed: {e}") from e

    def create(self, job: PersistedJob) -> PersistedJob:
        ts = utc_now()
        values = _job_values(job)
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 2))
        sql = f"INSERT INTO jobs ({', '.join(_COLUMNS)}, created_at, updated_at) VALUES ({placeholders})"
        try:
            with contextlib.closing(_connect(self.sqlite_path)) as conn:
                _apply_pragmas(conn)
                cur = conn.execute(sql, (*values, _ts(ts), _ts(ts)))
                row_id = cur.lastrowid
        except sqlite3.IntegrityError as e:
            raise StoreConflict(f"job ({job.source}, {job.external_id}) already exists") from e
        except sqlite3.Error as e:
            raise StoreError(f"insert of {job.external_id!r} failed: {e}") from e

        job.id = row_id
        job.created_at = ts
        job.updated_at = ts
        return job

    def replace_source(self, source: str, jobs: list[PersistedJob], run_token: str) -> tuple[int, int]:
        ts = _ts(utc_now())
        assignments = ", ".join(f"{c} = excluded.{c}" for c in _COLUMNS if c not in ("source", "external_id"))
        placeholders = ", ".join("?" for _ in range(len(_COLUMNS) + 3))
        sql = f"""
            INSERT INTO jobs ({", ".join(_COLUMNS)}, run_token, created_at, updated_at)
            VALUES ({placeholders})
            ON CONFLICT(source, external_id) DO UPDATE SET
              {assignments}, run_token = excluded.run_token, updated_at = excluded.updated_at
        """
        conn = _connect(self.sqlite_path)
        try:
            _apply_pragmas(conn)
            conn.execute("BEGIN IMMEDIATE")
            upserted = 0
            for job in jobs:
                if job.source != source:
                    raise StoreError(f"job {job.external_id!r} belongs to {job.source!r}, not {source!r}")
                conn.execute(sql, (*_job_values(job), run_token, ts, ts))
                upserted += 1
            cur = conn.execute(
                "DELETE FROM jobs WHERE source = ? AND (run_token IS NULL OR run_token != ?)",
                (source, run_token),
            )
            swept = int(cur.rowcount or 0)
            conn.execute("COMMIT")
            return upserted, swept
        except Exception as e:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
            log_error({
                "component": "job_ingest.db",
                "op": "replace_source",
                "sqlite_path": self.sqlite_path,
                "source": source,
                "error": repr(e),
            })
            if isinstance(e, StoreError):
                raise
            raise StoreError(f"replace_source({source!r}) failed: {e}") from e
        finally:
            conn.close()


class SqliteLeaseLock(RunLock):
    """
    Lease held in a shared SQLite file: one row per lock name with a holder token
    and an expiry. An expired lease may be taken over, so a crashed holder cannot
    wedge the pipeline forever.
    """

    def __init__(self, sqlite_path: str, name: str = "job_ingest", ttl_sec: float = 3600.0) -> None:
        self.sqlite_path = sqlite_path
        self.name = name
        self.ttl_sec = float(ttl_sec)
        self.holder = uuid.uuid4().hex
        init_db(sqlite_path)

    def try_acquire(self) -> bool:
        now = time.time()
        conn = _connect(self.sqlite_path)
        try:
            _apply_pragmas(conn)
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute("SELECT holder, expires_at FROM run_locks WHERE name = ?", (self.name,)).fetchone()
            if row is not None and row[1] > now:
                conn.execute("ROLLBACK")
                return False
            conn.execute(
                "INSERT OR REPLACE INTO run_locks (name, holder, expires_at) VALUES (?, ?, ?)",
                (self.name, self.holder, now + self.ttl_sec),
            )
            conn.execute("COMMIT")
            return True
        except sqlite3.Error:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    def release(self) -> None:
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            _apply_pragmas(conn)
            conn.execute("DELETE FROM run_locks WHERE name = ? AND holder = ?", (self.name, self.holder))

    @property
    def locked(self) -> bool:
        with contextlib.closing(_connect(self.sqlite_path)) as conn:
            row = conn.execute("SELECT expires_at FROM run_locks WHERE name = ?", (self.name,)).fetchone()
        return row is not None and row[0] > time.time()


# ---- Nice-to-have helpers for tests & diagnostics --------------------------


def reset_db(sqlite_path: str) -> None:
    """
    Remove the DB file entirely (for pytest fixtures).
    Safe if it doesn't exist.
    """
    for suffix in ("", "-wal", "-shm"):
        with contextlib.suppress(FileNotFoundError):
            os.remove(sqlite_path + suffix)


# ---- Internal utilities -----------------------------------------------------


def _ts(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _like_escape(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _job_values(job: PersistedJob) -> tuple[object, ...]:
    parsed = job.parsed_date_posted
    return (
        job.external_id,
        job.source,
        job.url,
        job.title,
        job.company,
        job.company_url,
        job.company_logo_url,
        job.location,
        job.raw_location_html,
        job.modality,
        job.salary,
        job.date_posted_raw,
        _ts(parsed.astimezone(utc_now().tzinfo)) if parsed else None,
        job.description,
        json.dumps(list(job.skills or []), ensure_ascii=False),
    )


def _row_to_job(row: sqlite3.Row | tuple) -> PersistedJob:
    (
        row_id,
        external_id,
        source,
        url,
        title,
        company,
        company_url,
        company_logo_url,
        location,
        raw_location_html,
        modality,
        salary,
        date_posted_raw,
        parsed_date_posted,
        description,
        skills,
        created_at,
        updated_at,
    ) = row
    return PersistedJob(
        id=row_id,
        external_id=external_id,
        source=source,
        url=url,
        title=title,
        company=company,
        company_url=company_url,
        company_logo_url=company_logo_url,
        location=location,
        raw_location_html=raw_location_html,
        modality=modality,
        salary=salary,
        date_posted_raw=date_posted_raw,
        parsed_date_posted=from_iso(parsed_date_posted),
        description=description,
        skills=json.loads(skills) if skills else [],
        created_at=from_iso(created_at),
        updated_at=from_iso(updated_at),
    )


def _ensure_dir(sqlite_path: str) -> None:
    d = os.path.dirname(os.path.abspath(sqlite_path)) or "."
    os.makedirs(d, exist_ok=True)


def _connect(sqlite_path: str) -> sqlite3.Connection:
    # isolation_level=None gives autocommit mode; we'll manage transactions explicitly.
    return sqlite3.connect(sqlite_path, timeout=30.0, isolation_level=None)


def _apply_pragmas(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA temp_store=MEMORY;")
    conn.execute("PRAGMA cache_size=-8000;")  # approx 8MB cache


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS jobs (
          id INTEGER PRIMARY KEY,
          external_id TEXT NOT NULL,
          source TEXT NOT NULL,
          url TEXT NOT NULL,
          title TEXT NOT NULL,
          company TEXT NOT NULL,
          company_url TEXT,
          company_logo_url TEXT,
          location TEXT NOT NULL,
          raw_location_html TEXT,
          modality TEXT,
          salary TEXT,
          date_posted_raw TEXT,
          parsed_date_posted TEXT,
          description TEXT,
          skills TEXT NOT NULL DEFAULT '[]',
          run_token TEXT,
          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );
        """
    )
    conn.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS ux_jobs_source_external_id
          ON jobs (source, external_id);
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS ix_jobs_source_posted
          ON jobs (source, parsed_date_posted DESC, created_at DESC);
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS run_locks (
          name TEXT PRIMARY KEY,
          holder TEXT NOT NULL,
          expires_at REAL NOT NULL
        );
        """
    )
