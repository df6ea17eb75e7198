from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseModel):
    env: str = "dev"
    timezone: str = "Asia/Seoul"
    log_level: str = "INFO"


class BackendConfig(BaseModel):
    base_url: str = "http://localhost:8000"
    timeout: float = 10.0
    log_stream_path: str = "/api/trading/logs"
    log_stream_retry_ms: int = 3000


class PollConfig(BaseModel):
    interval_s: float = 10.0
    log_limit: int = 50
    period_days: int = 1
    history_page_size: int = 50


class ChartConfig(BaseModel):
    width_px: int = 900
    main_height_px: int = 350
    rsi_height_px: int = 100
    dpi: int = 100


class StorageConfig(BaseModel):
    sqlite_path: str = "./db/client.db"


class ApiConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    cors_allow_origins: List[str] = Field(default_factory=lambda: ["*"])
    ws_push_interval: float = 2.0
    base_path: str = ""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        extra="ignore",
    )

    app: AppConfig = Field(default_factory=AppConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    poll: PollConfig = Field(default_factory=PollConfig)
    chart: ChartConfig = Field(default_factory=ChartConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    @field_validator("backend")
    @classmethod
    def _validate_backend(cls, v: BackendConfig) -> BackendConfig:
        if not v.base_url:
            raise ValueError("backend.base_url must not be empty")
        if v.timeout <= 0:
            raise ValueError("backend.timeout must be > 0")
        return v

    @field_validator("poll")
    @classmethod
    def _validate_poll(cls, v: PollConfig) -> PollConfig:
        if v.interval_s <= 0:
            raise ValueError("poll.interval_s must be > 0")
        if v.log_limit <= 0:
            raise ValueError("poll.log_limit must be > 0")
        if v.period_days <= 0:
            raise ValueError("poll.period_days must be > 0")
        return v


CONFIG_ENV = "DASHBOARD_CONFIG"
DEFAULT_CONFIG_PATH = "./configs/config.yaml"


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    return loaded if isinstance(loaded, dict) else {}


def _merged(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for key, value in overrides.items():
        current = out.get(key)
        out[key] = _merged(current, value) if isinstance(value, dict) and isinstance(current, dict) else value
    return out


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """``BACKEND__BASE_URL=...`` -> ``{"backend": {"base_url": ...}}`` for known sections."""
    sections = set(Settings.model_fields)
    out: Dict[str, Any] = {}
    for name, value in environ.items():
        path = [p.lower() for p in name.split("__") if p]
        if len(path) < 2 or path[0] not in sections:
            continue
        node = out
        for part in path[:-1]:
            node = node.setdefault(part, {})
            if not isinstance(node, dict):
                break
        else:
            node[path[-1]] = value
    return out


def load_settings(config_path: Optional[str] = None) -> Settings:
    path = Path(config_path or os.environ.get(CONFIG_ENV, DEFAULT_CONFIG_PATH))
    return Settings(**_merged(_read_yaml(path), _env_overrides(os.environ)))
