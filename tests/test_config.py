from __future__ import annotations

import pytest
from pydantic import ValidationError

from dashboard.config import Settings, load_settings


def test_defaults_without_file(tmp_path):
    settings = load_settings(str(tmp_path / "missing.yaml"))
    assert settings.backend.base_url == "http://localhost:8000"
    assert settings.poll.interval_s == 10.0
    assert settings.storage.sqlite_path == "./db/client.db"


def test_yaml_merged_with_env(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "backend:\n  base_url: http://trading:8000\n  timeout: 5\npoll:\n  interval_s: 30\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("POLL__LOG_LIMIT", "20")
    monkeypatch.setenv("BACKEND__TIMEOUT", "2.5")
    settings = load_settings(str(path))
    assert settings.backend.base_url == "http://trading:8000"
    assert settings.backend.timeout == 2.5
    assert settings.poll.interval_s == 30
    assert settings.poll.log_limit == 20


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "alt.yaml"
    path.write_text("api:\n  port: 4100\n", encoding="utf-8")
    monkeypatch.setenv("DASHBOARD_CONFIG", str(path))
    assert load_settings().api.port == 4100


def test_validation():
    with pytest.raises(ValidationError):
        Settings(poll={"interval_s": 0})
    with pytest.raises(ValidationError):
        Settings(backend={"base_url": ""})
