# service/scheduler.py
from __future__ import annotations

import logging
import os
import threading
import time as _time
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from modules.job_ingest.lib.locks import InMemoryLock, RunLock, held

from .config_schema import DEFAULT_STARTUP_DELAY_SEC, DEFAULT_TRIGGER
from .logging_utils import write_activity_log

LOG = logging.getLogger(__name__)

RECURRING_JOB_ID = "job_ingest"
STARTUP_JOB_ID = "job_ingest_startup"


# ---- Public controller ------------------------------------------------------


class IngestScheduler:
    """
    Owns one APScheduler instance driving the ingestion pipeline:

      - a recurring trigger (default: every 15 minutes)
      - a one-shot startup run `startup_delay_sec` after start()

    Every firing goes through fire(), which takes the run lock without blocking;
    a firing that finds a run in flight is dropped, never queued.

    `pipeline` is called as pipeline(trigger_type) and its return value is
    logged and handed back by fire().
    """

    def __init__(
        self,
        pipeline: Callable[[str], Any],
        *,
        trigger: dict[str, Any] | Any | None = None,
        startup_delay_sec: float | None = DEFAULT_STARTUP_DELAY_SEC,
        lock: RunLock | None = None,
        tz: str | None = None,
    ) -> None:
        self._pipeline = pipeline
        self._lock = lock or InMemoryLock()
        self._tz = _resolve_timezone(tz)
        self._trigger = _build_trigger(trigger, self._tz) if isinstance(trigger, dict) or trigger is None else trigger
        self._startup_delay_sec = startup_delay_sec
        self._scheduler: BackgroundScheduler | None = None
        self._stopped_evt = threading.Event()

    # ---- lifecycle ----
    def start(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            return

        # Single worker per job; overlap between the recurring and startup jobs
        # is handled by the run lock, not by APScheduler.
        self._scheduler = BackgroundScheduler(
            timezone=self._tz,
            job_defaults={"coalesce": True, "max_instances": 1},
            executors={"default": ThreadPoolExecutor(2)},
            jobstores={"default": MemoryJobStore()},
        )
        self._scheduler.add_job(
            func=self.fire,
            trigger=self._trigger,
            args=["scheduled"],
            id=RECURRING_JOB_ID,
            replace_existing=True,
        )
        if self._startup_delay_sec is not None:
            run_at = datetime.now(tz=self._tz) + timedelta(seconds=float(self._startup_delay_sec))
            self._scheduler.add_job(
                func=self.fire,
                trigger=DateTrigger(run_date=run_at, timezone=self._tz),
                args=["startup"],
                id=STARTUP_JOB_ID,
                replace_existing=True,
            )

        self._stopped_evt.clear()
        self._scheduler.start()
        LOG.info("Initializing job scheduler with trigger: %s", self._trigger)
        for job_id in self.get_job_ids():
            job = self._scheduler.get_job(job_id)
            nrt = getattr(job, "next_run_time", None) if job else None
            LOG.info("Registered job[%s] next_run_time=%s", job_id, nrt.isoformat() if nrt else None)
        if LOG.isEnabledFor(logging.DEBUG):
            preview = _preview_trigger(self._trigger, self._tz, count=3)
            LOG.debug("Upcoming runs: %s", ", ".join(t.isoformat() for t in preview) or "(none)")

    def stop(self) -> None:
        """
        Promptly shut down APScheduler; an in-flight run is allowed to finish.
        """
        if self._scheduler is not None and self._scheduler.running:
            LOG.info("Shutting down scheduler...")
            self._scheduler.shutdown(wait=False)
        self._stopped_evt.set()
        LOG.info("Scheduler shut down complete.")

    def join(self, timeout: float | None = None) -> bool:
        """
        Block until stop() has been called (or timeout).
        Returns True if stopped before timeout, else False.
        """
        return self._stopped_evt.wait(timeout=timeout)

    # ---- guarded run ----
    def fire(self, trigger_type: str = "scheduled") -> Any:
        """
        Run the pipeline once if no other run holds the lock.

        Returns the pipeline result, or None if the run was skipped or raised.
        Pipeline exceptions are logged, never propagated to APScheduler.
        """
        with held(self._lock) as acquired:
            if not acquired:
                LOG.warning("Scrape job is already in progress. Skipping this %s run.", trigger_type)
                _write_activity(trigger_type, status="skipped", duration_s=0.0)
                return None

            started = _time.monotonic()
            LOG.info("Starting %s job scrape...", trigger_type)
            try:
                result = self._pipeline(trigger_type)
            except Exception:
                LOG.exception("Error during %s job scrape execution.", trigger_type)
                _write_activity(trigger_type, status="error", duration_s=_time.monotonic() - started)
                return None

            duration = _time.monotonic() - started
            LOG.info("%s scrape finished in %.3fs: %s", trigger_type.capitalize(), duration, result)
            _write_activity(trigger_type, status="ok", duration_s=duration, result=result)
            return result

    @property
    def is_running(self) -> bool:
        """True while a pipeline run holds the lock."""
        return self._lock.locked

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def get_job_ids(self) -> Iterable[str]:
        if not self._scheduler:
            return []
        return [job.id for job in self._scheduler.get_jobs()]


# ---- Helpers ----------------------------------------------------------------


def _preview_trigger(trigger, tz, count: int = 6, start=None):
    """
    Return next `count` fire times for visibility in logs/prints.
    Seeds previous_fire_time = now = `start` (or "now" in tz), then advances
    `now` by 1µs after each hit so the next lookup moves forward.
    """
    now = start or datetime.now(tz=tz)
    prev = now
    times = []
    for _ in range(count):
        nxt = trigger.get_next_fire_time(prev, now)
        if nxt is None:
            break
        times.append(nxt)
        prev = nxt
        now = nxt + timedelta(microseconds=1)
    return times


def _resolve_timezone(tz_name: str | None):
    """
    APScheduler 3.x expects a pytz timezone. Accepts an explicit name, else env
    TZ, else UTC. Unknown names fall back to UTC with a warning.
    """
    import pytz

    name = tz_name or os.getenv("TZ") or "UTC"
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        LOG.warning("Falling back to UTC timezone (invalid or missing tz '%s')", name)
        return pytz.UTC


def _build_trigger(trig_def: dict[str, Any] | None, tz: Any) -> Any:
    """
    Build an APScheduler trigger from a dict.

    Supported shapes:
      {"interval": {weeks|days|hours|minutes|seconds, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     {second?, minute?, hour?, day?, day_of_week?, month?, jitter?, start_date?, end_date?, timezone?}}
      {"cron":     "*/15 * * * *"}  # crontab, scheduler tz used by default
      {"date":     {"run_at": ISO|epoch|datetime, timezone?}}
      {"date":     ISO|epoch|datetime}

    A trigger block's own 'timezone' wins over the scheduler tz (`tz`).
    None means the default 15-minute interval.
    """
    from datetime import tzinfo as _dt_tzinfo
    from zoneinfo import ZoneInfo

    if trig_def is None:
        trig_def = DEFAULT_TRIGGER
    if not isinstance(trig_def, dict):
        raise ValueError("trigger spec must be a dict")

    def _tz(z):
        if not z:
            return None
        if isinstance(z, _dt_tzinfo):
            return z
        return ZoneInfo(str(z))

    default_tz = _tz(tz)

    present = [k for k in ("interval", "cron", "date") if trig_def.get(k) is not None]
    if len(present) != 1:
        raise ValueError("exactly one of {'interval','cron','date'} must be provided")
    kind = present[0]

    # ---------- INTERVAL ----------
    if kind == "interval":
        spec = trig_def["interval"]
        if not isinstance(spec, dict):
            raise ValueError("interval must be an object with time fields")

        allowed = {"weeks", "days", "hours", "minutes", "seconds", "jitter", "timezone", "start_date", "end_date"}
        unknown = set(spec.keys()) - allowed
        if unknown:
            raise ValueError(f"interval has unknown field(s): {sorted(unknown)}")

        def _as_int_ge0(name: str) -> int:
            if name not in spec:
                return 0
            try:
                v = int(spec[name])
            except (TypeError, ValueError) as err:
                raise ValueError(f"interval.{name} must be an integer") from err
            if v < 0:
                raise ValueError(f"interval.{name} must be >= 0")
            return v

        iv = {u: _as_int_ge0(u) for u in ("weeks", "days", "hours", "minutes", "seconds")}
        if sum(iv.values()) == 0:
            raise ValueError("interval must be greater than 0 (provide at least one nonzero time field)")

        kwargs: dict[str, Any] = {k: v for k, v in iv.items() if v}
        jitter = _as_int_ge0("jitter")
        if jitter:
            kwargs["jitter"] = jitter
        for k in ("start_date", "end_date"):
            if k in spec:
                kwargs[k] = spec[k]

        return IntervalTrigger(timezone=_tz(spec.get("timezone")) or default_tz, **kwargs)

    # ---------- CRON ----------
    if kind == "cron":
        cron_spec = trig_def["cron"]
        if isinstance(cron_spec, str):
            fields = cron_spec.strip().split()
            if len(fields) != 5:
                raise ValueError(f"cron string must have 5 fields (got {len(fields)}): {cron_spec!r}")
            return CronTrigger.from_crontab(cron_spec, timezone=default_tz)
        if isinstance(cron_spec, dict):
            allowed = {
                "second",
                "minute",
                "hour",
                "day",
                "day_of_week",
                "month",
                "timezone",
                "start_date",
                "end_date",
                "jitter",
            }
            unknown = set(cron_spec.keys()) - allowed
            if unknown:
                raise ValueError(f"cron has unknown field(s): {sorted(unknown)}")

            return CronTrigger(
                second=cron_spec.get("second", 0),
                minute=cron_spec.get("minute", 0),
                hour=cron_spec.get("hour", 0),
                day=cron_spec.get("day"),
                day_of_week=cron_spec.get("day_of_week"),
                month=cron_spec.get("month"),
                start_date=cron_spec.get("start_date"),
                end_date=cron_spec.get("end_date"),
                jitter=cron_spec.get("jitter"),
                timezone=_tz(cron_spec.get("timezone")) or default_tz,
            )
        raise ValueError("cron must be a crontab string or an object")

    # ---------- DATE ----------
    dspec = trig_def["date"]
    if isinstance(dspec, dict):
        run_at = dspec.get("run_at")
        tzinfo = _tz(dspec.get("timezone")) or default_tz
    else:
        run_at = dspec
        tzinfo = default_tz

    if run_at is None:
        raise ValueError("date trigger requires 'run_at' (or non-empty scalar value)")

    if isinstance(run_at, (int, float)):
        dt = datetime.fromtimestamp(run_at, tz=tzinfo)
    elif isinstance(run_at, datetime):
        dt = run_at if run_at.tzinfo else run_at.replace(tzinfo=tzinfo)
    else:
        try:
            dt = datetime.fromisoformat(str(run_at).replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(f"Invalid date.run_at: {run_at!r}") from e
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=tzinfo)

    return DateTrigger(run_date=dt, timezone=dt.tzinfo or tzinfo)


def _write_activity(trigger_type: str, status: str, duration_s: float, result: Any = None) -> None:
    """Best-effort JSONL activity logging; non-fatal on errors."""
    try:
        write_activity_log({
            "ts": datetime.now().isoformat(),
            "source": "scheduler",
            "event": "job_run",
            "fields": {
                "job_id": RECURRING_JOB_ID,
                "trigger_type": trigger_type,
                "status": status,
                "duration_ms": int(duration_s * 1000),
                "result": result if isinstance(result, dict) else None,
            },
        })
    except Exception:
        LOG.debug("write_activity_log failed for %s run", trigger_type, exc_info=True)
