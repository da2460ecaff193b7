from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TelegramConfig(BaseModel):
    bot_token: str = ""
    webhook_path: str = "/telegram/webhook"
    webhook_secret: str | None = None
    """Expected ``X-Telegram-Bot-Api-Secret-Token`` header, if set on setWebhook."""
    api_base: str = "https://api.telegram.org"
    timeout_s: float = Field(default=15.0, gt=0)

    @field_validator("webhook_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        return value if value.startswith("/") else f"/{value}"


class ModelsConfig(BaseModel):
    classifier: str = "openai:gpt-4o-mini"
    api_key: str | None = None
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    max_tokens: int = Field(default=250, ge=16)
    timeout_s: float = Field(default=20.0, gt=0)

    def inject_api_key_env(self) -> None:
        """Push api_key into the process environment for pydantic-ai.

        Explicit env vars win over the config value.
        """
        if not self.api_key or ":" not in self.classifier:
            return
        env_map = {
            "openai": "OPENAI_API_KEY",
            "openrouter": "OPENROUTER_API_KEY",
            "anthropic": "ANTHROPIC_API_KEY",
            "google-gla": "GOOGLE_API_KEY",
            "groq": "GROQ_API_KEY",
        }
        env_var = env_map.get(self.classifier.split(":", 1)[0])
        if env_var and not os.environ.get(env_var):
            os.environ[env_var] = self.api_key


class BackendConfig(BaseModel):
    base_url: str = "http://localhost:5678"
    namespace: str = "webhook/api/v1"
    timeout_s: float = Field(default=120.0, gt=0)
    token_ttl_s: int = Field(default=600, gt=0)
    issuer: str = "clixen-ai"
    audience: str = "n8n-workflows"
    key_owner: str = "dispatch"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("namespace")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip("/")


class DirectoryConfig(BaseModel):
    kind: Literal["sqlite", "postgrest"] = "sqlite"
    db_path: Path = Path("./data/clixen.db")
    url: str | None = None
    api_key: str | None = None
    timeout_s: float = Field(default=10.0, gt=0)

    @model_validator(mode="after")
    def _postgrest_requires_url(self) -> DirectoryConfig:
        if self.kind == "postgrest" and not self.url:
            raise ValueError("directory.url is required when directory.kind is 'postgrest'")
        return self


class GatewayConfig(BaseModel):
    app_url: str = "https://clixen.app"
    dedupe_updates: bool = True
    dedupe_window: int = Field(default=2048, ge=1)

    @field_validator("app_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = Field(default=8430, ge=1, le=65535)


class ObservabilityConfig(BaseModel):
    metrics_enabled: bool = True
    tracing_endpoint: str | None = None
    env: str = "dev"
    json_logs: bool = False
    log_level: str = "INFO"


class ClixenSettings(BaseSettings):
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    models: ModelsConfig = Field(default_factory=ModelsConfig)
    backend: BackendConfig = Field(default_factory=BackendConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = SettingsConfigDict(
        env_prefix="CLIXEN_",
        env_nested_delimiter="__",
        extra="ignore",
    )


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "CLIXEN_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/clixen.yaml") -> ClixenSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ValueError("config file must contain a top-level mapping")

    raw = loaded.get("clixen", loaded)
    if not isinstance(raw, dict):
        raise ValueError("clixen config section must be a mapping")

    merged = _apply_env_overrides(raw)
    settings = ClixenSettings.model_validate(merged)
    settings.models.inject_api_key_env()
    return settings


__all__ = [
    "BackendConfig",
    "ClixenSettings",
    "DirectoryConfig",
    "GatewayConfig",
    "ModelsConfig",
    "ObservabilityConfig",
    "ServerConfig",
    "TelegramConfig",
    "load_config",
]
