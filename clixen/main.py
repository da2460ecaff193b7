"""Clixen CLI entry point and dependency wiring."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import click
import httpx
import uvicorn

from clixen.agents.classifier import IntentClassifier, StructuredRunnable, build_classifier_agent
from clixen.audit.sink import DirectoryAuditSink
from clixen.audit.sqlite_audit import SQLiteAuditLog
from clixen.channels.telegram import TelegramChannel
from clixen.config import ClixenSettings, load_config
from clixen.core.background import BackgroundTasks
from clixen.core.gateway import Gateway, RecentUpdates
from clixen.core.key_manager import DispatchKeyManager
from clixen.core.logging import setup_logging
from clixen.core.telemetry import init_tracing, shutdown_tracing
from clixen.directory.postgrest import PostgrestDirectory
from clixen.directory.sqlite_directory import SQLiteDirectory
from clixen.dispatch.dispatcher import WorkflowDispatcher
from clixen.dispatch.signer import DispatchTokenSigner
from clixen.gates.quota import PermissionGuard
from clixen.models.account import Tier
from clixen.models.catalog import WorkflowCatalog
from clixen.persistence.migrations import run_migrations
from clixen.protocols.directory import Directory
from clixen.server import create_app
from clixen.session.resolver import SessionResolver

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = "config/clixen.yaml"


@dataclass(slots=True)
class Runtime:
    gateway: Gateway
    channel: TelegramChannel
    directory: Directory
    background: BackgroundTasks
    _http_clients: list[httpx.AsyncClient] = field(default_factory=list)

    async def shutdown(self) -> None:
        await self.background.drain(timeout=10.0)
        for client in self._http_clients:
            await client.aclose()
        shutdown_tracing()


def build_directory(settings: ClixenSettings, http_client: httpx.AsyncClient | None = None) -> Directory:
    config = settings.directory
    if config.kind == "postgrest":
        return PostgrestDirectory(
            config.url or "",
            config.api_key or "",
            timeout_s=config.timeout_s,
            http_client=http_client,
        )
    return SQLiteDirectory(str(config.db_path))


def build_gateway(
    settings: ClixenSettings,
    *,
    directory: Directory | None = None,
    key_manager: DispatchKeyManager | None = None,
    agent: StructuredRunnable | None = None,
    telegram_http: httpx.AsyncClient | None = None,
    backend_http: httpx.AsyncClient | None = None,
) -> Runtime:
    """Construct every pipeline component explicitly and inject collaborators."""
    catalog = WorkflowCatalog()
    background = BackgroundTasks()
    owned: list[httpx.AsyncClient] = []

    if telegram_http is None:
        telegram_http = httpx.AsyncClient(timeout=httpx.Timeout(settings.telegram.timeout_s))
        owned.append(telegram_http)
    if backend_http is None:
        backend_http = httpx.AsyncClient(timeout=httpx.Timeout(settings.backend.timeout_s))
        owned.append(backend_http)

    if directory is None:
        directory_http = None
        if settings.directory.kind == "postgrest":
            directory_http = httpx.AsyncClient(timeout=httpx.Timeout(settings.directory.timeout_s))
            owned.append(directory_http)
        directory = build_directory(settings, directory_http)

    channel = TelegramChannel(settings.telegram, http_client=telegram_http)

    keys = key_manager or DispatchKeyManager()
    key_owner = settings.backend.key_owner
    signer = DispatchTokenSigner(
        lambda: keys.load_private_key(key_owner),
        issuer=settings.backend.issuer,
        audience=settings.backend.audience,
        ttl=timedelta(seconds=settings.backend.token_ttl_s),
    )
    dispatcher = WorkflowDispatcher(
        signer=signer,
        channel=channel,
        directory=directory,
        background=background,
        base_url=settings.backend.base_url,
        namespace=settings.backend.namespace,
        timeout_s=settings.backend.timeout_s,
        http_client=backend_http,
    )

    if agent is None:
        agent = build_classifier_agent(settings.models, catalog)
    classifier = IntentClassifier(
        agent,
        catalog,
        timeout_s=settings.models.timeout_s,
        model_name=settings.models.classifier,
    )

    app_url = settings.gateway.app_url
    gateway = Gateway(
        directory=directory,
        channel=channel,
        resolver=SessionResolver(directory, catalog),
        classifier=classifier,
        guard=PermissionGuard(catalog, upgrade_url=f"{app_url}/subscription"),
        dispatcher=dispatcher,
        audit=DirectoryAuditSink(directory, background),
        catalog=catalog,
        app_url=app_url,
        dedupe=RecentUpdates(settings.gateway.dedupe_window) if settings.gateway.dedupe_updates else None,
    )
    return Runtime(
        gateway=gateway,
        channel=channel,
        directory=directory,
        background=background,
        _http_clients=owned,
    )


@click.group()
def cli() -> None:
    """Clixen Telegram gateway CLI."""
    setup_logging()


def _load(config_path: str) -> ClixenSettings:
    try:
        return load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


async def _serve(settings: ClixenSettings) -> None:
    if settings.directory.kind == "sqlite":
        applied = await run_migrations(str(settings.directory.db_path))
        if applied:
            logger.info("Applied migrations: %s", ", ".join(applied))

    runtime = build_gateway(settings)
    app = create_app(
        runtime.gateway,
        runtime.channel,
        metrics_enabled=settings.observability.metrics_enabled,
        on_shutdown=runtime.shutdown,
    )
    config = uvicorn.Config(
        app,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.observability.log_level.lower(),
    )
    await uvicorn.Server(config).serve()


@cli.command("serve")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def serve_command(config_path: str) -> None:
    """Run the webhook server."""
    settings = _load(config_path)
    obs = settings.observability
    setup_logging(level=obs.log_level.upper(), json_output=obs.json_logs)
    if not settings.telegram.bot_token:
        raise click.ClickException("telegram.bot_token is required (CLIXEN_TELEGRAM__BOT_TOKEN)")
    init_tracing(env=obs.env, endpoint=obs.tracing_endpoint)

    try:
        asyncio.run(_serve(settings))
    except KeyboardInterrupt:
        click.echo("Shutting down.")


@cli.command("init-keys")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--force", is_flag=True, help="Replace an existing keypair.")
def init_keys_command(config_path: str, force: bool) -> None:
    """Generate the Ed25519 dispatch keypair and print the public key PEM."""
    settings = _load(config_path)
    owner = settings.backend.key_owner
    keys = DispatchKeyManager()
    if keys.has_keypair(owner) and not force:
        click.echo("Dispatch keypair already exists; use --force to replace it.")
    else:
        public_hex = keys.generate_keypair(owner)
        click.echo(f"Ed25519 dispatch key generated. Public key: {public_hex[:16]}...")
    click.echo(keys.public_key_pem(owner))


async def _issue_link_token(
    db_path: str,
    account_id: str | None,
    tier: Tier,
    quota_limit: int,
    trial_days: int | None,
) -> tuple[str, str]:
    await run_migrations(db_path)
    directory = SQLiteDirectory(db_path)
    if account_id is None:
        record = await directory.create_account(tier=tier, quota_limit=quota_limit, trial_days=trial_days)
        account_id = record.account_id
    return account_id, await directory.issue_linking_token(account_id)


@cli.command("issue-link-token")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
@click.option("--account-id", default=None, help="Existing account; omit to create one.")
@click.option("--tier", type=click.Choice([t.value for t in Tier]), default=Tier.free.value, show_default=True)
@click.option("--quota-limit", type=int, default=50, show_default=True)
@click.option("--trial-days", type=int, default=None)
def issue_link_token_command(
    config_path: str,
    account_id: str | None,
    tier: str,
    quota_limit: int,
    trial_days: int | None,
) -> None:
    """Mint a single-use linking code in the local SQLite directory."""
    settings = _load(config_path)
    if settings.directory.kind != "sqlite":
        raise click.ClickException("issue-link-token only works with the sqlite directory")
    account, token = asyncio.run(
        _issue_link_token(str(settings.directory.db_path), account_id, Tier(tier), quota_limit, trial_days)
    )
    click.echo(f"Account: {account}")
    click.echo(f"Linking code (valid 10 minutes): {token}")


@cli.command("verify-audit")
@click.option("--config", "config_path", default=_DEFAULT_CONFIG, show_default=True)
def verify_audit_command(config_path: str) -> None:
    """Check the hash chain of the local audit log."""
    settings = _load(config_path)
    db_path = str(settings.directory.db_path)
    if settings.directory.kind != "sqlite" or not Path(db_path).exists():
        raise click.ClickException("no local sqlite audit log to verify")
    ok, count = asyncio.run(SQLiteAuditLog(db_path).verify_chain())
    if not ok:
        raise click.ClickException("audit chain verification failed")
    click.echo(f"Audit chain intact ({count} entries).")


__all__ = ["Runtime", "build_directory", "build_gateway", "cli"]
