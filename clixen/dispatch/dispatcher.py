"""Signed, single-attempt dispatch of a routed decision to the automation backend."""

from __future__ import annotations

import logging

import httpx

from clixen.core.background import BackgroundTasks
from clixen.core.metrics import DISPATCH_TOTAL
from clixen.core.telemetry import get_tracer
from clixen.dispatch.signer import DispatchTokenSigner
from clixen.errors import DispatchError, SigningError
from clixen.models.account import UserContext
from clixen.models.dispatch import DEFAULT_SUCCESS_MESSAGE, DispatchResult
from clixen.models.intent import IntentAction, IntentDecision
from clixen.protocols.channels import ResponseChannel
from clixen.protocols.directory import Directory

logger = logging.getLogger(__name__)
_TRACER = get_tracer("clixen.dispatch")

AUTH_ERROR_MESSAGE = "Authentication error. Please try again."
FAILURE_MESSAGE = "I couldn't complete that task. Please try again."
SOURCE_HEADER = "X-Clixen-Source"
SOURCE_VALUE = "telegram-bot"


class WorkflowDispatcher:
    def __init__(
        self,
        *,
        signer: DispatchTokenSigner,
        channel: ResponseChannel,
        directory: Directory,
        background: BackgroundTasks,
        base_url: str,
        namespace: str = "webhook/api/v1",
        timeout_s: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._signer = signer
        self._channel = channel
        self._directory = directory
        self._background = background
        self._base_url = base_url.rstrip("/")
        self._namespace = namespace.strip("/")
        self._timeout_s = timeout_s
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._http.aclose()

    def endpoint_for(self, workflow_name: str) -> str:
        return f"{self._base_url}/{self._namespace}/{workflow_name}"

    async def dispatch(
        self,
        decision: IntentDecision,
        context: UserContext,
        chat_id: int,
        original_text: str,
    ) -> DispatchResult:
        if decision.action != IntentAction.route or decision.workflow_name is None:
            raise ValueError("only 'route' decisions with a workflow can be dispatched")
        workflow = decision.workflow_name

        self._background.spawn(self._channel.send_typing(chat_id), name="typing")

        try:
            token = self._signer.sign(context)
        except SigningError:
            DISPATCH_TOTAL.labels(workflow=workflow, outcome="auth_error").inc()
            logger.error("Dispatch token signing failed for %s", workflow, exc_info=True)
            return DispatchResult(success=False, message=AUTH_ERROR_MESSAGE)

        payload: dict[str, object] = {
            **decision.parameters,
            "chat_id": chat_id,
            "user_context": context.token_claims(),
            "original_text": original_text,
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            SOURCE_HEADER: SOURCE_VALUE,
        }

        with _TRACER.start_as_current_span("dispatch.post") as span:
            span.set_attribute("workflow.name", workflow)
            try:
                body = await self._post(self.endpoint_for(workflow), payload, headers)
            except DispatchError as exc:
                span.set_attribute("dispatch.status_code", exc.status_code or 0)
                DISPATCH_TOTAL.labels(workflow=workflow, outcome="failed").inc()
                logger.warning("Dispatch of %s failed: %s", workflow, exc)
                return DispatchResult(
                    success=False,
                    message=FAILURE_MESSAGE,
                    status_code=exc.status_code,
                )

        DISPATCH_TOTAL.labels(workflow=workflow, outcome="ok").inc()
        self._background.spawn(
            self._directory.increment_quota(context.account_id, decision.estimated_cost),
            name="increment_quota",
        )
        message = body.get("message")
        return DispatchResult(
            success=True,
            message=message if isinstance(message, str) and message else DEFAULT_SUCCESS_MESSAGE,
            status_code=200,
        )

    async def _post(
        self,
        url: str,
        payload: dict[str, object],
        headers: dict[str, str],
    ) -> dict[str, object]:
        try:
            resp = await self._http.post(url, json=payload, headers=headers, timeout=self._timeout_s)
        except httpx.HTTPError as exc:
            raise DispatchError(f"request failed: {exc!r}") from exc

        if not resp.is_success:
            raise DispatchError(f"backend returned HTTP {resp.status_code}", status_code=resp.status_code)
        try:
            body = resp.json()
        except ValueError as exc:
            raise DispatchError("backend returned a non-JSON body", status_code=resp.status_code) from exc
        if not isinstance(body, dict):
            raise DispatchError("backend returned a non-object body", status_code=resp.status_code)
        return body


__all__ = ["AUTH_ERROR_MESSAGE", "FAILURE_MESSAGE", "WorkflowDispatcher"]
