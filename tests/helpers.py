"""Shared test helpers."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from itertools import count

import httpx
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from clixen.agents.classifier import IntentClassifier
from clixen.audit.sink import DirectoryAuditSink
from clixen.core.background import BackgroundTasks
from clixen.core.gateway import Gateway, RecentUpdates
from clixen.dispatch.dispatcher import WorkflowDispatcher
from clixen.dispatch.signer import DispatchTokenSigner
from clixen.gates.quota import PermissionGuard
from clixen.models.catalog import WorkflowCatalog
from clixen.models.messages import Actor, Attachment, InboundMessage
from clixen.session.resolver import SessionResolver

from tests.fakes import FakeClassifierAgent, InMemoryChannel, InMemoryDirectory, StaticKeyManager

APP_URL = "https://clixen.test"
BACKEND_URL = "http://n8n.test"
BACKEND_MESSAGE = "☀️ Tokyo: 21°C, clear skies"

_update_ids = count(1000)


def make_message(
    text: str = "hello",
    *,
    chat_id: int = 4242,
    update_id: int | None = None,
    first_name: str = "Ada",
    attachment: Attachment | None = None,
) -> InboundMessage:
    return InboundMessage(
        update_id=next(_update_ids) if update_id is None else update_id,
        chat_id=chat_id,
        actor=Actor(external_id=chat_id, first_name=first_name, username="ada"),
        text=text,
        attachment=attachment,
    )


def backend_ok(message: str = BACKEND_MESSAGE) -> Callable[[httpx.Request], httpx.Response]:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "message": message})

    return handler


@dataclass
class GatewayHarness:
    gateway: Gateway
    directory: InMemoryDirectory
    channel: InMemoryChannel
    agent: FakeClassifierAgent
    keys: StaticKeyManager
    background: BackgroundTasks
    backend_requests: list[httpx.Request] = field(default_factory=list)

    async def settle(self) -> None:
        await self.background.drain()

    def backend_bodies(self) -> list[dict[str, object]]:
        return [json.loads(request.content) for request in self.backend_requests]


def make_harness(
    *,
    directory: InMemoryDirectory | None = None,
    agent: FakeClassifierAgent | None = None,
    backend: Callable[[httpx.Request], httpx.Response] | None = None,
    dedupe: bool = True,
    key_loader: Callable[[], Ed25519PrivateKey] | None = None,
) -> GatewayHarness:
    directory = directory or InMemoryDirectory()
    agent = agent or FakeClassifierAgent()
    channel = InMemoryChannel()
    keys = StaticKeyManager()
    background = BackgroundTasks()
    catalog = WorkflowCatalog()
    requests: list[httpx.Request] = []
    respond = backend or backend_ok()

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return respond(request)

    dispatcher = WorkflowDispatcher(
        signer=DispatchTokenSigner(key_loader or (lambda: keys.load_private_key("dispatch"))),
        channel=channel,
        directory=directory,
        background=background,
        base_url=BACKEND_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(record)),
    )
    gateway = Gateway(
        directory=directory,
        channel=channel,
        resolver=SessionResolver(directory, catalog),
        classifier=IntentClassifier(agent, catalog, timeout_s=2.0),
        guard=PermissionGuard(catalog, upgrade_url=f"{APP_URL}/subscription"),
        dispatcher=dispatcher,
        audit=DirectoryAuditSink(directory, background),
        catalog=catalog,
        app_url=APP_URL,
        dedupe=RecentUpdates() if dedupe else None,
    )
    return GatewayHarness(
        gateway=gateway,
        directory=directory,
        channel=channel,
        agent=agent,
        keys=keys,
        background=background,
        backend_requests=requests,
    )
