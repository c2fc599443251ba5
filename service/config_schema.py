# service/config_schema.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when the config is invalid."""


@dataclass
class _LoadResult:
    """Internal convenience container (not required by callers)."""

    cfg: dict[str, Any]
    source: str


_TRIGGER_FIELDS = ("cron", "interval", "date")

DEFAULT_TRIGGER: dict[str, Any] = {"interval": {"minutes": 15}}
DEFAULT_STARTUP_DELAY_SEC = 10


def load_config(path: str | None = None) -> dict[str, Any]:
    """
    Load the service configuration.

    Resolution order:
      1) Explicit `path` argument (if provided)
      2) os.environ['CONFIG_PATH'] (if set)
      3) Internal default (every section empty, defaults applied)

    Returns:
        dict with "timezone", "schedule" {"trigger", "startup_delay_sec"} and
        "ingest" (kwargs for the job_ingest Settings).
    """
    resolved_path = path or os.environ.get("CONFIG_PATH")
    if not resolved_path:
        logger.info("CONFIG_PATH not provided; using default config.")
        cfg: dict[str, Any] = {}
    else:
        cfg = _read_any(resolved_path).cfg

    _apply_top_level_defaults(cfg)
    return cfg


def validate(cfg: dict[str, Any]) -> None:
    """
    Validate the configuration. Raise ConfigError on any problem.
    No prints, no sys.exit().
    """
    if not isinstance(cfg, dict):
        raise ConfigError("Config must be a dict.")

    tz = cfg.get("timezone")
    if tz is not None and not isinstance(tz, str):
        raise ConfigError("'timezone' must be a string if provided.")

    schedule = cfg.get("schedule")
    if not isinstance(schedule, dict):
        raise ConfigError("'schedule' must be an object.")

    trigger = schedule.get("trigger")
    if not isinstance(trigger, dict):
        raise ConfigError("'schedule.trigger' must be an object.")
    present = [k for k in _TRIGGER_FIELDS if k in trigger]
    if len(present) != 1:
        raise ConfigError(f"'schedule.trigger': exactly one trigger required among {', '.join(_TRIGGER_FIELDS)}.")

    # Light type checks for common mistakes; the scheduler does the full parse.
    kind = present[0]
    value = trigger[kind]
    if kind == "interval":
        if not isinstance(value, dict):
            raise ConfigError("'schedule.trigger.interval' must be an object of time kwargs.")
        for k, v in value.items():
            if k in ("timezone", "start_date", "end_date"):
                continue
            _to_int(v, field=f"interval.{k}", allow_zero=True)
    if kind == "cron" and not isinstance(value, (str, dict)):
        raise ConfigError("'schedule.trigger.cron' must be a crontab string or an object.")
    if kind == "date":
        run_at = value.get("run_at") if isinstance(value, dict) else value
        if isinstance(run_at, bool) or not (isinstance(run_at, (int, float)) or (isinstance(run_at, str) and run_at.strip())):
            raise ConfigError("'schedule.trigger.date' needs an ISO-8601 string or epoch seconds (or {'run_at': ...}).")

    delay = schedule.get("startup_delay_sec")
    if delay is not None:
        _to_int(delay, field="schedule.startup_delay_sec", allow_zero=True)

    ingest = cfg.get("ingest")
    if not isinstance(ingest, dict):
        raise ConfigError("'ingest' must be an object.")


def _apply_top_level_defaults(cfg: dict[str, Any]) -> None:
    tz = cfg.get("timezone")
    if not isinstance(tz, str) or not tz.strip():
        cfg["timezone"] = os.environ.get("TZ", "UTC")

    schedule = cfg.get("schedule")
    if schedule is None:
        schedule = {}
    if isinstance(schedule, dict):
        schedule = dict(schedule)
        schedule.setdefault("trigger", dict(DEFAULT_TRIGGER))
        # An explicit null disables the startup run; only a missing key gets the default.
        schedule.setdefault("startup_delay_sec", DEFAULT_STARTUP_DELAY_SEC)
        cfg["schedule"] = schedule

    if cfg.get("ingest") is None:
        cfg["ingest"] = {}


def _to_int(value: Any, *, field: str, allow_zero: bool) -> int:
    try:
        iv = int(value)
    except (TypeError, ValueError) as err:
        raise ConfigError(f"'{field}' must be an integer.") from err
    if iv < 0 or (iv == 0 and not allow_zero):
        raise ConfigError(f"'{field}' must be >= {'0' if allow_zero else '1'} (got {iv}).")
    return iv


def _read_any(path: str) -> _LoadResult:
    lower = path.lower()
    try:
        with open(path, encoding="utf-8") as f:
            text = f.read()
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {path}: {e}") from e

    if lower.endswith(".json"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Top-level JSON must be an object.")
        return _LoadResult(cfg=data, source=path)

    if lower.endswith(".yml") or lower.endswith(".yaml"):
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("Top-level YAML must be a mapping/object.")
        return _LoadResult(cfg=data, source=path)

    # Try JSON as a fallback if extension is unknown
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict):
        return _LoadResult(cfg=data, source=path)

    raise ConfigError(f"Unsupported config format for {path}. Use .json or .yml/.yaml.")
