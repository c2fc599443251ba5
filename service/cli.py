# service/cli.py
"""
User-facing command-line entrypoints for the container.

Subcommands
-----------
serve
    - Starts the IngestScheduler (recurring trigger + one-shot startup run)
    - Registers signal handlers for graceful shutdown

run [--page-limit N] [--kwargs k=v ...]
    - One guarded ad-hoc refresh via modules.job_ingest.main.run(...)
    - Prints the RunResult as JSON (exit 3 if another run holds the lock)

listings [--source S] [--title T] ... [--no-bootstrap]
    - Read path: newest jobs as a JSON array, bootstrapping an empty store

validate-config
    - Loads/validates config (including the ingest settings) and returns nonzero on error
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
import time
import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from modules.job_ingest import main as _job_ingest
from modules.job_ingest.lib.config import Settings
from service import config_schema as _config_schema
from service import logging_utils as L
from service.scheduler import IngestScheduler

LOG = logging.getLogger("service.cli")

EXIT_SKIPPED = 3


# ----------------------------- Logging setup ---------------------------------
def _ensure_logging() -> None:
    """Initialize a reasonable logging setup if none exists yet."""
    root = logging.getLogger()
    if not root.handlers:
        level = os.getenv("LOG_LEVEL", "INFO").upper()
        logging.basicConfig(
            level=getattr(logging, level, logging.INFO),
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )


# -------------------------- Utility / glue code ------------------------------
def _parse_kv_pairs(pairs: Iterable[str]) -> dict[str, Any]:
    """
    Parse key=value strings into a dict.
    - Values that look like JSON (true/false/null/number/object/array) are parsed.
    - Otherwise keep as raw strings.
    """
    out: dict[str, Any] = {}
    for raw in pairs:
        if "=" not in raw:
            raise argparse.ArgumentTypeError(f"--kwargs item must be key=value (got {raw!r})")
        k, v = raw.split("=", 1)
        k = k.strip()
        v = v.strip()
        if not k:
            raise argparse.ArgumentTypeError(f"Invalid key in --kwargs item {raw!r}")
        try:
            out[k] = json.loads(v)
        except json.JSONDecodeError:
            out[k] = v
    return out


def _now_iso():
    return datetime.now().astimezone().isoformat()


def _load_config(path: str | None) -> dict[str, Any]:
    cfg = _config_schema.load_config(path)
    _config_schema.validate(cfg)
    return cfg


def _ingest_kwargs(cfg: dict[str, Any], extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """Config 'ingest' section, overridden by command-line kwargs."""
    return {**dict(cfg.get("ingest") or {}), **dict(extra or {})}


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


# ------------------------------ Subcommands ----------------------------------
def cmd_validate_config(args: argparse.Namespace) -> int:
    try:
        cfg = _load_config(args.config)
        Settings.from_env_and_kwargs(_ingest_kwargs(cfg))
        print("OK: configuration is valid.")
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Configuration validation failed: %s", e)
        print(f"ERROR: configuration invalid: {e}", file=sys.stderr)
        return 1


def cmd_run(args: argparse.Namespace) -> int:
    run_id = uuid.uuid4().hex
    start_time = time.monotonic()
    kwargs: dict[str, Any] = {}

    try:
        kwargs = _ingest_kwargs(_load_config(args.config), _parse_kv_pairs(args.kwargs or []))
        LOG.debug("Run job_ingest with kwargs=%s", kwargs)
        if args.page_limit:
            kwargs["page_limit"] = args.page_limit

        result = _job_ingest.run(**kwargs)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        L.write_activity_log({
            "ts": _now_iso(),
            "event": "cli_run",
            "run_id": run_id,
            "trigger_type": "adhoc",
            "kwargs": kwargs,
            "skipped": result is None,
            "result": result,
            "duration_ms": duration_ms,
        })

        if result is None:
            print("SKIPPED: a run is already in progress.", file=sys.stderr)
            return EXIT_SKIPPED
        _print_json(result)
        return 0

    except KeyboardInterrupt:
        return 130
    except Exception as e:
        duration_s = time.monotonic() - start_time
        print(f"FAILURE: {e}", file=sys.stderr)
        L.write_error_log({
            "ts": _now_iso(),
            "where": "cli.run",
            "run_id": run_id,
            "kwargs": kwargs,
            "error": repr(e),
            "duration_ms": int(duration_s * 1000),
        })
        return 1


def cmd_listings(args: argparse.Namespace) -> int:
    try:
        cfg = _load_config(args.config)
        settings = Settings.from_env_and_kwargs(_ingest_kwargs(cfg))
        jobs = _job_ingest.list_jobs(
            source=args.source,
            title=args.title,
            company=args.company,
            location=args.location,
            modality=args.modality,
            bootstrap=not args.no_bootstrap,
            settings=settings,
        )
        _print_json(jobs)
        return 0
    except KeyboardInterrupt:
        return 130
    except Exception as e:
        LOG.exception("Error fetching jobs: %s", e)
        print(f"ERROR: failed to fetch job listings: {e}", file=sys.stderr)
        L.write_error_log({"ts": _now_iso(), "where": "cli.listings", "error": repr(e)})
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """
    Run the scheduler until a termination signal is received, then stop it cleanly.
    """
    stop_event = threading.Event()
    sched: IngestScheduler | None = None

    def _graceful_shutdown(signum=None, frame=None):
        LOG.info("Signal %s received; initiating shutdown...", signum)
        stop_event.set()

    # Register signals early
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _graceful_shutdown)

    try:
        cfg = _load_config(args.config)
        settings = Settings.from_env_and_kwargs(_ingest_kwargs(cfg))
        schedule = cfg["schedule"]

        sched = IngestScheduler(
            _job_ingest.make_pipeline(settings),
            trigger=schedule.get("trigger"),
            startup_delay_sec=schedule.get("startup_delay_sec"),
            lock=_job_ingest.make_lock(settings),
            tz=cfg.get("timezone"),
        )
        sched.start()
        L.write_activity_log({"ts": _now_iso(), "event": "serve_start", "source": settings.source})

        # Main wait loop (respond quickly to signals)
        while not stop_event.is_set():
            time.sleep(0.3)

        sched.stop()
        L.write_activity_log({"ts": _now_iso(), "event": "serve_stop"})
        return 0

    except KeyboardInterrupt:
        if sched is not None:
            sched.stop()
        return 130
    except Exception as e:
        LOG.exception("Fatal error in serve: %s", e)
        if sched is not None:
            sched.stop()
        return 1


# ------------------------------- Argparse ------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="job-ingest",
        description="Job listing ingestion service",
    )
    p.add_argument(
        "--config",
        help="Path to config file (fallbacks to CONFIG_PATH env or built-in defaults).",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    # serve
    sp = sub.add_parser("serve", help="Run the scheduler loop (recurring + startup refresh).")
    sp.set_defaults(func=cmd_serve)

    # run
    sp = sub.add_parser("run", help="Execute one guarded refresh now.")
    sp.add_argument("--page-limit", type=int, help="Discovery depth (defaults to the on-demand limit).")
    sp.add_argument(
        "--kwargs",
        metavar="k=v",
        nargs="*",
        help="Settings overrides (JSON values supported), e.g. sqlite_path=/tmp/jobs.db.",
    )
    sp.set_defaults(func=cmd_run)

    # listings
    sp = sub.add_parser("listings", help="Print the newest stored jobs as JSON.")
    sp.add_argument("--source", help="Source tag (defaults to the configured source).")
    sp.add_argument("--title", help="Case-insensitive title substring.")
    sp.add_argument("--company", help="Case-insensitive company substring.")
    sp.add_argument("--location", help="Case-insensitive location substring.")
    sp.add_argument("--modality", help="Case-insensitive modality substring.")
    sp.add_argument(
        "--no-bootstrap",
        action="store_true",
        help="Never scrape on an empty store; just print what is there.",
    )
    sp.set_defaults(func=cmd_listings)

    # validate-config
    sp = sub.add_parser("validate-config", help="Verify configuration correctness.")
    sp.set_defaults(func=cmd_validate_config)

    return p


# --------------------------------- Main --------------------------------------
def main(argv: Iterable[str] | None = None) -> int:
    _ensure_logging()
    parser = _build_parser()
    args = parser.parse_args(args=list(argv) if argv is not None else None)
    # Attach top-level args (like --config) to subcommand handlers
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
