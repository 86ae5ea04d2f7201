"""Application configuration loaded from config.yaml + environment variables."""

from __future__ import annotations

import yaml
from pathlib import Path
from pydantic import Field
from pydantic_settings import BaseSettings

_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml()


class CompletionConfig(BaseSettings):
    # Empty list accepts any http(s) host
    signature_allowed_hosts: list[str] = Field(default_factory=list)
    completion_note: str = "Job completed with client signature"
    history_limit: int = 10


class SessionConfig(BaseSettings):
    cookie_name: str = "session_token"
    max_age_days: int = 7


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///data/fieldops.db"
    log_level: str = "INFO"
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


def get_settings() -> Settings:
    """Build Settings by merging YAML defaults with env overrides."""
    y = _yaml
    completion = CompletionConfig(**y.get("completion", {}))
    session = SessionConfig(**y.get("session", {}))
    overrides = {}
    db_url = y.get("database", {}).get("url")
    if db_url:
        overrides["database_url"] = db_url
    if y.get("log_level"):
        overrides["log_level"] = y["log_level"]
    return Settings(completion=completion, session=session, **overrides)
