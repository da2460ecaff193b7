"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from clixen.config import (
    BackendConfig,
    DirectoryConfig,
    GatewayConfig,
    ModelsConfig,
    TelegramConfig,
    load_config,
)


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "clixen.yaml"
    path.write_text(body, encoding="utf-8")
    return path


class TestLoadConfig:
    def test_shipped_config_loads(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CLIXEN_TELEGRAM__BOT_TOKEN", raising=False)
        settings = load_config(Path(__file__).resolve().parents[1] / "config" / "clixen.yaml")

        assert settings.directory.kind == "sqlite"
        assert settings.backend.namespace == "webhook/api/v1"
        assert settings.gateway.dedupe_updates is True

    def test_section_is_optional(self, tmp_path: Path) -> None:
        settings = load_config(_write(tmp_path, "server:\n  port: 9000\n"))
        assert settings.server.port == 9000

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CLIXEN_TELEGRAM__BOT_TOKEN", "123:ENV")
        monkeypatch.setenv("CLIXEN_SERVER__PORT", "9100")
        monkeypatch.setenv("CLIXEN_GATEWAY__DEDUPE_UPDATES", "false")

        settings = load_config(_write(tmp_path, "clixen:\n  telegram:\n    bot_token: from-yaml\n"))

        assert settings.telegram.bot_token == "123:ENV"
        assert settings.server.port == 9100
        assert settings.gateway.dedupe_updates is False

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="top-level mapping"):
            load_config(_write(tmp_path, "- a\n- b\n"))


class TestSectionValidation:
    def test_postgrest_requires_url(self) -> None:
        with pytest.raises(ValidationError, match="directory.url is required"):
            DirectoryConfig(kind="postgrest")

    def test_postgrest_with_url(self) -> None:
        cfg = DirectoryConfig(kind="postgrest", url="https://db.test", api_key="k")
        assert cfg.url == "https://db.test"

    def test_backend_urls_are_normalized(self) -> None:
        cfg = BackendConfig(base_url="http://n8n.test/", namespace="/webhook/api/v1/")
        assert cfg.base_url == "http://n8n.test"
        assert cfg.namespace == "webhook/api/v1"

    def test_webhook_path_gets_leading_slash(self) -> None:
        assert TelegramConfig(webhook_path="hook").webhook_path == "/hook"

    def test_app_url_trailing_slash_stripped(self) -> None:
        assert GatewayConfig(app_url="https://clixen.test/").app_url == "https://clixen.test"

    def test_temperature_bounds(self) -> None:
        with pytest.raises(ValidationError):
            ModelsConfig(temperature=1.5)


class TestApiKeyInjection:
    def test_api_key_fills_provider_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        ModelsConfig(classifier="openai:gpt-4o-mini", api_key="sk-config").inject_api_key_env()
        assert os.environ["OPENAI_API_KEY"] == "sk-config"

    def test_existing_env_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        ModelsConfig(classifier="openai:gpt-4o-mini", api_key="sk-config").inject_api_key_env()
        assert os.environ["OPENAI_API_KEY"] == "sk-env"
