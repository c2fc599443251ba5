# service/logging_utils.py
from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
from collections.abc import Iterable
from typing import Any

# ---- Configuration (env-driven, read per write so tests can redirect) -------
#
#   LOG_DIR                 base directory for JSONL logs (default /app/local/logs)
#   ACTIVITY_LOG_PREFIX     activity file prefix (default "activity")
#   ERROR_LOG_PREFIX        error file prefix (default "error")
#   ACTIVITY_LOG_MAX_BYTES  size-based rotation threshold; <=0 disables it
#
# Date-based rotation is always on via YYYY-MM-DD filenames.

_DEFAULT_LOG_DIR = "/app/local/logs"

# Case-insensitive substrings; any key containing one is redacted.
_DEFAULT_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
    "set-cookie",
}

# Host + process metadata (fixed per-process)
_HOSTNAME = socket.gethostname()
_PID = os.getpid()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Persist a single structured activity record (JSON-safe).

    May raise on unrecoverable I/O/serialization errors.
    Never mutates the passed-in dict.
    """
    _write_jsonl(_log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Persist a single structured error record (JSON-safe), parallel to activity log."""
    _write_jsonl(_log_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    """Return the current day's activity log path (<prefix>-YYYY-MM-DD.jsonl)."""
    return _log_path_for_today(os.getenv("ACTIVITY_LOG_PREFIX", "activity"))


def get_error_log_path() -> str:
    return _log_path_for_today(os.getenv("ERROR_LOG_PREFIX", "error"))


def read_records(path: str) -> list[dict[str, Any]]:
    """All records of one JSONL file; [] if it doesn't exist yet."""
    try:
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
    except FileNotFoundError:
        return []


def redact(record: dict[str, Any], keys: set[str] | None = None) -> dict[str, Any]:
    """
    Produce a redacted deep copy of `record` by scrubbing values whose KEYS
    contain any of the substrings in `keys` (case-insensitive). Does not mutate input.
    """
    return _redact_deep(record, keys or _DEFAULT_REDACT_KEYS)


# ---- Internal helpers --------------------------------------------------------


def _log_path_for_today(prefix: str) -> str:
    today = _dt.date.today().isoformat()  # YYYY-MM-DD
    log_dir = os.getenv("LOG_DIR") or _DEFAULT_LOG_DIR
    return os.path.join(log_dir, f"{prefix}-{today}.jsonl")


def _ensure_dir(path: str) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)


def _max_bytes() -> int:
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _rotate_file_if_needed(path: str) -> None:
    """
    Rotate current file if size exceeds ACTIVITY_LOG_MAX_BYTES. Date rotation is
    inherent via filename per day; this only handles size-based rotation.
    """
    limit = _max_bytes()
    if limit <= 0:
        return
    try:
        if os.path.getsize(path) < limit:
            return
    except FileNotFoundError:
        return
    # Suffix with timestamp to avoid collisions.
    ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S")
    with contextlib.suppress(FileNotFoundError):
        # Atomic rename on POSIX
        os.replace(path, f"{path}.{ts}")


def _json_dumps(obj: Any) -> str:
    # Compact, UTF-8; non-JSON values (datetimes) fall back to str()
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def _safe_bearer_scrub(value: str) -> str:
    """
    If a string looks like an Authorization header ("Bearer <token>"),
    scrub the token part. Keeps the scheme for usefulness.
    """
    if "bearer " in value.lower():
        try:
            scheme, _ = value.split(" ", 1)
        except ValueError:
            return "***REDACTED***"
        return f"{scheme} ***REDACTED***"
    return value


def _key_matches(name: str, patterns: Iterable[str]) -> bool:
    n = name.lower()
    return any(pat in n for pat in patterns)


def _redact_deep(value: Any, patterns: Iterable[str]) -> Any:
    """
    Deep-copy and redact dict/list structures. Keys that match patterns have their
    values replaced with "***REDACTED***". Strings that look like bearer tokens are scrubbed.
    """
    if isinstance(value, dict):
        out: dict[str, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and _key_matches(k, patterns):
                out[k] = "***REDACTED***"
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str):
        return _safe_bearer_scrub(value)
    return value


def _with_metadata(record: dict[str, Any]) -> dict[str, Any]:
    out = dict(record)
    meta = out.get("_meta")
    out["_meta"] = {
        **(meta if isinstance(meta, dict) else {}),
        "ts": _dt.datetime.now(_dt.timezone.utc).isoformat(),
        "host": _HOSTNAME,
        "pid": _PID,
    }
    return out


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Core writer:
      - makes a deep redacted copy, enriched with ts/host/pid
      - rotates by size (optional)
      - appends a single line atomically (POSIX O_APPEND)
      - retries once on transient OSError
    """
    _ensure_dir(path)
    _rotate_file_if_needed(path)

    # Serialize first so any serialization errors happen before file ops.
    data = (_json_dumps(_with_metadata(_redact_deep(record, _DEFAULT_REDACT_KEYS))) + "\n").encode("utf-8")

    flags = os.O_CREAT | os.O_APPEND | os.O_WRONLY

    def _append_once() -> None:
        fd = os.open(path, flags, 0o644)
        try:
            os.write(fd, data)  # Single write; O_APPEND ensures atomicity on POSIX.
        finally:
            os.close(fd)

    try:
        _append_once()
    except OSError:
        # Retry once (transient issues): re-check dir and try again.
        _ensure_dir(path)
        _append_once()
