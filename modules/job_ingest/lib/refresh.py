from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime

from . import logging_bridge
from .dates import parse_relative_date
from .models import PersistedJob, RunResult, ScrapedRecord
from .store import JobStore, StoreConflict, SweepCapable
from .utils import utc_now

log = logging.getLogger(__name__)


def _to_job(record: ScrapedRecord, now: datetime) -> PersistedJob:
    return PersistedJob.from_scraped(record, parse_relative_date(record.date_posted, now=now))


def refresh(
    store: JobStore,
    source: str,
    records: Sequence[ScrapedRecord],
    *,
    now: datetime | None = None,
) -> RunResult:
    """
    Full replace: delete every row for `source`, then insert `records` one by one.

    Nothing here aborts the batch. A failed delete is logged and flagged, and the
    inserts still go ahead (they may then conflict). A failed insert counts one
    error and processing moves on to the next record.
    """
    now = now or utc_now()
    result = RunResult(processed=len(records))

    try:
        result.deleted = store.delete_many(source)
        log.info("Deleted %d existing %s jobs from DB.", result.deleted, source)
    except Exception as e:
        log.error("Error deleting existing %s jobs from DB: %s", source, e)
        logging_bridge.error({
            "component": "job_ingest.refresh",
            "op": "delete_many",
            "source": source,
            "error": repr(e),
        })
        result.delete_failed = True

    for record in records:
        try:
            store.create(_to_job(record, now))
            result.created += 1
        except StoreConflict:
            log.warning(
                "Job with externalId %s already exists, likely due to delete failure or race condition. Skipping.",
                record.external_id,
            )
            result.errors += 1
        except Exception as e:
            log.error("DB error creating job externalId %s: %s", record.external_id, e)
            result.errors += 1

    log.info("DB Create phase complete. Created jobs: %d.", result.created)
    return result


def sweep_refresh(
    store: SweepCapable,
    source: str,
    records: Sequence[ScrapedRecord],
    *,
    now: datetime | None = None,
    run_token: str | None = None,
) -> RunResult:
    """
    Mark-and-sweep replace: upsert every record under a fresh run token, then drop
    the source's rows that token did not touch, all in one store transaction.

    All-or-nothing: on failure the previous rows stay and every record counts as an error.
    """
    now = now or utc_now()
    token = run_token or uuid.uuid4().hex
    result = RunResult(processed=len(records))
    jobs = [_to_job(r, now) for r in records]

    try:
        upserted, swept = store.replace_source(source, jobs, token)
    except Exception as e:
        log.error("Mark-and-sweep refresh of %s failed: %s", source, e)
        logging_bridge.error({
            "component": "job_ingest.refresh",
            "op": "replace_source",
            "source": source,
            "error": repr(e),
        })
        result.errors = len(jobs)
        return result

    result.created = upserted
    result.deleted = swept
    log.info("Mark-and-sweep complete for %s: upserted=%d swept=%d.", source, upserted, swept)
    return result
