# tests/test_config.py
import pytest

from modules.job_ingest.lib.config import ConfigError, Settings


def test_defaults_match_documented_sizing():
    s = Settings.from_env_and_kwargs({})
    assert s.source == "builtin.com"
    assert (s.scheduled_page_limit, s.on_demand_page_limit) == (3, 1)
    assert s.sitemap_cap(3) == 75
    assert s.desired_count(3) == 45
    assert s.refresh_strategy == "full_replace"
    assert s.lock_backend == "memory"


def test_kwargs_beat_env_which_beats_defaults(monkeypatch):
    monkeypatch.setenv("JOB_INGEST_MAX_AGE_DAYS", "3")
    monkeypatch.setenv("JOB_INGEST_QUERY_LIMIT", "20")

    s = Settings.from_env_and_kwargs({"query_limit": "10"})

    assert s.max_age_days == 3
    assert s.query_limit == 10
    assert s.listing_per_page == 15


def test_blank_values_fall_through_to_defaults(monkeypatch):
    monkeypatch.setenv("JOB_INGEST_SQLITE_PATH", "   ")
    s = Settings.from_env_and_kwargs({"user_agent": ""})
    assert s.sqlite_path == "/app/local/state/jobs.db"
    assert s.user_agent


def test_numeric_coercion():
    s = Settings.from_env_and_kwargs({"timeout_sec": "2.5", "page_delay_sec": 0, "scheduled_page_limit": "4"})
    assert s.timeout_sec == 2.5
    assert s.page_delay_sec == 0.0
    assert s.scheduled_page_limit == 4


@pytest.mark.parametrize(
    "kwargs",
    [
        {"page_limt": 3},
        {"scheduled_page_limit": "three"},
        {"scheduled_page_limit": 0},
        {"query_limit": -1},
        {"max_age_days": -1},
        {"timeout_sec": 0},
        {"page_delay_sec": -0.5},
        {"refresh_strategy": "append"},
        {"lock_backend": "redis"},
        {"lock_ttl_sec": 0},
        {"source": "monster.com"},
    ],
)
def test_invalid_settings_raise(kwargs):
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs(kwargs)


def test_invalid_env_value_raises(monkeypatch):
    monkeypatch.setenv("JOB_INGEST_ON_DEMAND_PAGE_LIMIT", "lots")
    with pytest.raises(ConfigError):
        Settings.from_env_and_kwargs({})
