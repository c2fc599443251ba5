# tests/test_config_schema.py
import json

import pytest

from service import config_schema
from service.config_schema import ConfigError


def test_defaults_without_any_config():
    cfg = config_schema.load_config()
    assert cfg["timezone"] == "UTC"
    assert cfg["schedule"] == {"trigger": {"interval": {"minutes": 15}}, "startup_delay_sec": 10}
    assert cfg["ingest"] == {}
    config_schema.validate(cfg)


def test_timezone_falls_back_to_tz_env(monkeypatch):
    monkeypatch.setenv("TZ", "America/Chicago")
    assert config_schema.load_config()["timezone"] == "America/Chicago"


def test_yaml_config_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "config.yml"
    path.write_text(
        "timezone: America/Indiana/Indianapolis\n"
        "schedule:\n"
        "  trigger:\n"
        "    cron: '0 * * * *'\n"
        "  startup_delay_sec: null\n"
        "ingest:\n"
        "  scheduled_page_limit: 5\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CONFIG_PATH", str(path))

    cfg = config_schema.load_config()
    config_schema.validate(cfg)

    assert cfg["timezone"] == "America/Indiana/Indianapolis"
    assert cfg["schedule"]["trigger"] == {"cron": "0 * * * *"}
    # An explicit null keeps the startup run disabled
    assert cfg["schedule"]["startup_delay_sec"] is None
    assert cfg["ingest"] == {"scheduled_page_limit": 5}


def test_json_config_explicit_path_wins(tmp_path, monkeypatch):
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "missing.json"))
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"schedule": {"trigger": {"interval": {"hours": 1}}}}), encoding="utf-8")

    cfg = config_schema.load_config(str(path))

    assert cfg["schedule"]["trigger"] == {"interval": {"hours": 1}}
    assert cfg["schedule"]["startup_delay_sec"] == 10


@pytest.mark.parametrize(
    "name, body",
    [
        ("missing.yml", None),
        ("bad.json", "{not json"),
        ("bad.yaml", "a: [1, 2"),
        ("list.yaml", "- 1\n- 2\n"),
        ("config.toml", "x = 1"),
    ],
)
def test_unreadable_configs_raise(tmp_path, name, body):
    path = tmp_path / name
    if body is not None:
        path.write_text(body, encoding="utf-8")
    with pytest.raises(ConfigError):
        config_schema.load_config(str(path))


def _cfg(**overrides):
    cfg = {
        "timezone": "UTC",
        "schedule": {"trigger": {"interval": {"minutes": 15}}, "startup_delay_sec": 10},
        "ingest": {},
    }
    cfg.update(overrides)
    return cfg


@pytest.mark.parametrize(
    "cfg",
    [
        _cfg(timezone=5),
        _cfg(schedule="every minute"),
        _cfg(schedule={"trigger": {}}),
        _cfg(schedule={"trigger": {"interval": {"minutes": 5}, "cron": "* * * * *"}}),
        _cfg(schedule={"trigger": {"interval": {"minutes": -1}}}),
        _cfg(schedule={"trigger": {"interval": 15}}),
        _cfg(schedule={"trigger": {"cron": 15}}),
        _cfg(schedule={"trigger": {"date": ""}}),
        _cfg(schedule={"trigger": {"date": {}}}),
        _cfg(schedule={"trigger": {"interval": {"minutes": 5}}, "startup_delay_sec": -3}),
        _cfg(ingest=["source=builtin.com"]),
    ],
)
def test_validate_rejects_bad_shapes(cfg):
    with pytest.raises(ConfigError):
        config_schema.validate(cfg)


@pytest.mark.parametrize(
    "trigger",
    [
        {"interval": {"minutes": 15}},
        {"cron": "*/15 * * * *"},
        {"cron": {"minute": "*/15"}},
        {"date": "2099-01-01T00:00:00Z"},
        {"date": {"run_at": 4070908800}},
    ],
)
def test_validate_accepts_each_trigger_kind(trigger):
    config_schema.validate(_cfg(schedule={"trigger": trigger}))
