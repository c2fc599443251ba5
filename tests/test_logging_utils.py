# tests/test_logging_utils.py
import logging

from modules.job_ingest.lib import logging_bridge
from service import logging_utils


def test_activity_record_gets_metadata_and_redaction():
    logging_utils.write_activity_log({
        "event": "heartbeat",
        "headers": {"Authorization": "Bearer abc123", "Accept": "text/html"},
        "api_key": "xyz",
    })

    (rec,) = logging_utils.read_records(logging_utils.get_activity_log_path())
    assert rec["event"] == "heartbeat"
    assert rec["headers"]["Authorization"] == "***REDACTED***"
    assert rec["headers"]["Accept"] == "text/html"
    assert rec["api_key"] == "***REDACTED***"
    assert {"ts", "host", "pid"} <= set(rec["_meta"])


def test_error_log_is_separate_file():
    logging_utils.write_error_log({"where": "heartbeat"})
    assert logging_utils.get_error_log_path() != logging_utils.get_activity_log_path()
    assert logging_utils.read_records(logging_utils.get_activity_log_path()) == []
    assert [r["where"] for r in logging_utils.read_records(logging_utils.get_error_log_path())] == ["heartbeat"]


def test_size_rotation(monkeypatch):
    monkeypatch.setenv("ACTIVITY_LOG_MAX_BYTES", "1")
    logging_utils.write_activity_log({"n": 1})
    logging_utils.write_activity_log({"n": 2})
    # The first file was rotated aside before the second write
    assert [r["n"] for r in logging_utils.read_records(logging_utils.get_activity_log_path())] == [2]


def test_bridge_writes_jsonl_and_redacts_tokens():
    logging_bridge.activity({"component": "test", "op": "x", "run_token": "secret-ish"})
    (rec,) = logging_utils.read_records(logging_utils.get_activity_log_path())
    assert rec["component"] == "test"
    assert rec["run_token"] == "***REDACTED***"


def test_bridge_falls_back_to_stdlib_logging(monkeypatch, tmp_path, caplog):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setenv("LOG_DIR", str(blocker))

    with caplog.at_level(logging.INFO, logger="job_ingest"):
        logging_bridge.error({"component": "test", "op": "fallback"})

    assert any(r.name == "job_ingest.error" and "fallback" in r.getMessage() for r in caplog.records)
