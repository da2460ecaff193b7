"""Tests for runtime wiring and the CLI."""

from __future__ import annotations

import json
import re
from pathlib import Path

import httpx
import pytest
from click.testing import CliRunner

from clixen.config import BackendConfig, ClixenSettings, DirectoryConfig, TelegramConfig
from clixen.directory.postgrest import PostgrestDirectory
from clixen.directory.sqlite_directory import SQLiteDirectory
from clixen.dispatch.signer import verify_dispatch_token
from clixen.main import build_directory, build_gateway, cli
from clixen.models.account import Tier
from clixen.models.intent import FALLBACK_MESSAGE

from tests.fakes import FakeClassifierAgent, InMemoryDirectory, InMemoryKeyring, StaticKeyManager
from tests.helpers import make_message

CHAT = 31337


@pytest.fixture(autouse=True)
def _quiet_cli_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    # The CLI group reconfigures root logging against the runner's stdout.
    monkeypatch.setattr("clixen.main.setup_logging", lambda *args, **kwargs: None)


def _config(tmp_path: Path, *, kind: str = "sqlite") -> str:
    directory = f"    kind: {kind}\n"
    if kind == "sqlite":
        directory += f"    db_path: {tmp_path / 'clixen.db'}\n"
    else:
        directory += "    url: https://db.test\n    api_key: k\n"
    path = tmp_path / "clixen.yaml"
    path.write_text(f"clixen:\n  directory:\n{directory}", encoding="utf-8")
    return str(path)


# ── Wiring ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_build_gateway_wires_channel_signer_and_backend() -> None:
    settings = ClixenSettings(
        telegram=TelegramConfig(bot_token="123:FAKE"),
        backend=BackendConfig(base_url="http://n8n.test", issuer="clixen-test", audience="workflows-test"),
    )
    directory = InMemoryDirectory()
    directory.add_account(CHAT, tier=Tier.pro, account_id="acct-wired")
    keys = StaticKeyManager()
    agent = FakeClassifierAgent(
        {"action": "route", "workflow_name": "weather_check", "parameters": {"location": "Oslo"}}
    )
    telegram_calls: list[httpx.Request] = []
    backend_calls: list[httpx.Request] = []

    def telegram(request: httpx.Request) -> httpx.Response:
        telegram_calls.append(request)
        return httpx.Response(200, json={"ok": True})

    def backend(request: httpx.Request) -> httpx.Response:
        backend_calls.append(request)
        return httpx.Response(200, json={"message": "Oslo: 4°C"})

    runtime = build_gateway(
        settings,
        directory=directory,
        key_manager=keys,  # type: ignore[arg-type]
        agent=agent,
        telegram_http=httpx.AsyncClient(transport=httpx.MockTransport(telegram)),
        backend_http=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )

    ack = await runtime.gateway.handle(make_message("weather in Oslo", chat_id=CHAT))
    await runtime.background.drain()

    assert ack.ok is True
    assert str(backend_calls[0].url) == "http://n8n.test/webhook/api/v1/weather_check"
    token = backend_calls[0].headers["Authorization"].removeprefix("Bearer ")
    claims = verify_dispatch_token(
        token,
        keys.private_key.public_key(),
        issuer="clixen-test",
        audience="workflows-test",
    )
    assert claims["sub"] == "acct-wired"

    by_method = {request.url.path.rsplit("/", 1)[-1]: request for request in telegram_calls}
    assert sorted(by_method) == ["sendChatAction", "sendMessage"]
    assert json.loads(by_method["sendMessage"].content)["text"] == "Oslo: 4°C"
    assert directory.quota_increments == [("acct-wired", 1)]

    await runtime.shutdown()


@pytest.mark.asyncio
async def test_build_gateway_without_agent_still_replies(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("clixen.main.build_classifier_agent", lambda *args, **kwargs: None)
    settings = ClixenSettings(telegram=TelegramConfig(bot_token="123:FAKE"))
    directory = InMemoryDirectory()
    directory.add_account(CHAT)
    sent: list[str] = []

    def telegram(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content).get("text", ""))
        return httpx.Response(200, json={"ok": True})

    runtime = build_gateway(
        settings,
        directory=directory,
        key_manager=StaticKeyManager(),  # type: ignore[arg-type]
        agent=None,
        telegram_http=httpx.AsyncClient(transport=httpx.MockTransport(telegram)),
        backend_http=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500))),
    )
    await runtime.gateway.handle(make_message("anything", chat_id=CHAT))
    await runtime.shutdown()

    assert sent == [FALLBACK_MESSAGE]


def test_build_directory_selects_backend(tmp_path: Path) -> None:
    sqlite_settings = ClixenSettings(directory=DirectoryConfig(db_path=tmp_path / "d.db"))
    postgrest_settings = ClixenSettings(
        directory=DirectoryConfig(kind="postgrest", url="https://db.test", api_key="k")
    )

    assert isinstance(build_directory(sqlite_settings), SQLiteDirectory)
    assert isinstance(build_directory(postgrest_settings), PostgrestDirectory)


# ── CLI ──────────────────────────────────────────────────────────────


def test_issue_link_token_then_verify_audit(tmp_path: Path) -> None:
    runner = CliRunner()
    config = _config(tmp_path)

    issued = runner.invoke(cli, ["issue-link-token", "--config", config, "--tier", "starter", "--trial-days", "7"])
    assert issued.exit_code == 0, issued.output
    assert re.search(r"Linking code \(valid 10 minutes\): [0-9a-f]{64}$", issued.output, re.MULTILINE)

    verified = runner.invoke(cli, ["verify-audit", "--config", config])
    assert verified.exit_code == 0, verified.output
    assert "Audit chain intact (0 entries)." in verified.output


def test_issue_link_token_requires_sqlite(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["issue-link-token", "--config", _config(tmp_path, kind="postgrest")])

    assert result.exit_code != 0
    assert "only works with the sqlite directory" in result.output


def test_verify_audit_without_database(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["verify-audit", "--config", _config(tmp_path)])

    assert result.exit_code != 0
    assert "no local sqlite audit log" in result.output


def test_missing_config_is_a_click_error(tmp_path: Path) -> None:
    result = CliRunner().invoke(cli, ["verify-audit", "--config", str(tmp_path / "nope.yaml")])

    assert result.exit_code != 0
    assert "config file not found" in result.output


def test_init_keys_prints_pem_and_keeps_existing(tmp_path: Path, fake_keyring: InMemoryKeyring) -> None:
    runner = CliRunner()
    config = _config(tmp_path)

    first = runner.invoke(cli, ["init-keys", "--config", config])
    assert first.exit_code == 0, first.output
    assert "Ed25519 dispatch key generated" in first.output
    assert "-----BEGIN PUBLIC KEY-----" in first.output
    stored = dict(fake_keyring.values)

    second = runner.invoke(cli, ["init-keys", "--config", config])
    assert "already exists" in second.output
    assert fake_keyring.values == stored

    forced = runner.invoke(cli, ["init-keys", "--config", config, "--force"])
    assert forced.exit_code == 0
    assert fake_keyring.values != stored


def test_serve_requires_bot_token(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("CLIXEN_TELEGRAM__BOT_TOKEN", raising=False)
    result = CliRunner().invoke(cli, ["serve", "--config", _config(tmp_path)])

    assert result.exit_code != 0
    assert "telegram.bot_token is required" in result.output
