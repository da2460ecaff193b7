"""Per-update orchestration: sync → branch → classify → guard → dispatch → audit.

``Gateway.handle`` is the single catch boundary for the pipeline. It always
returns an acknowledgment because Telegram redelivers any webhook call that
does not get a 200.
"""

from __future__ import annotations

import logging
import re
import time
from collections import OrderedDict
from html import escape
from typing import Any, Protocol

from clixen.agents.classifier import IntentClassifier
from clixen.core import replies
from clixen.core.commands import CommandHandler
from clixen.core.logging import correlation_scope
from clixen.core.metrics import GUARD_DENIALS_TOTAL, UPDATES_TOTAL, observe_update_duration
from clixen.dispatch.dispatcher import WorkflowDispatcher
from clixen.errors import DirectoryError
from clixen.gates.quota import PermissionGuard
from clixen.models.account import LinkResult, LinkStatus, SyncResult, UserContext
from clixen.models.audit import SYSTEM_ACTOR, UNLINKED_ACTOR, AuditRecord
from clixen.models.catalog import WorkflowCatalog
from clixen.models.intent import IntentAction, IntentDecision
from clixen.models.messages import InboundMessage, TransportAck
from clixen.protocols.audit import AuditSink
from clixen.protocols.channels import ResponseChannel
from clixen.protocols.directory import Directory
from clixen.session.resolver import SessionResolver

logger = logging.getLogger(__name__)

LINK_TOKEN_PATTERN = re.compile(r"^[0-9a-f]{64}$")
ALREADY_LINKED_REPLY = "Your Telegram is already linked to your Clixen AI account."
_PREVIEW_CHARS = 100


class UpdateDeduplicator(Protocol):
    def remember(self, update_id: int) -> bool: ...


class RecentUpdates:
    """Bounded FIFO window of recently seen transport update ids."""

    def __init__(self, window: int = 2048) -> None:
        if window < 1:
            raise ValueError("window must be positive")
        self._window = window
        self._seen: OrderedDict[int, None] = OrderedDict()

    def remember(self, update_id: int) -> bool:
        """Record ``update_id``; return False if it was already in the window."""
        if update_id in self._seen:
            return False
        self._seen[update_id] = None
        if len(self._seen) > self._window:
            self._seen.popitem(last=False)
        return True

    def __len__(self) -> int:
        return len(self._seen)


class Gateway:
    def __init__(
        self,
        *,
        directory: Directory,
        channel: ResponseChannel,
        resolver: SessionResolver,
        classifier: IntentClassifier,
        guard: PermissionGuard,
        dispatcher: WorkflowDispatcher,
        audit: AuditSink,
        catalog: WorkflowCatalog,
        app_url: str,
        dedupe: UpdateDeduplicator | None = None,
    ) -> None:
        self._directory = directory
        self._channel = channel
        self._resolver = resolver
        self._classifier = classifier
        self._guard = guard
        self._dispatcher = dispatcher
        self._audit = audit
        self._catalog = catalog
        self._app_url = app_url.rstrip("/")
        self._commands = CommandHandler(catalog)
        self._dedupe = dedupe

    async def handle(self, update: InboundMessage | None) -> TransportAck:
        if update is None or not update.has_content:
            UPDATES_TOTAL.labels(outcome="ignored").inc()
            return TransportAck()
        if self._dedupe is not None and not self._dedupe.remember(update.update_id):
            logger.info("Skipping redelivered update %s", update.update_id)
            UPDATES_TOTAL.labels(outcome="duplicate").inc()
            return TransportAck()

        started = time.monotonic()
        with correlation_scope(update_id=update.update_id, chat_id=update.chat_id), observe_update_duration():
            try:
                outcome = await self._process(update, started)
            except Exception:
                logger.exception("Unhandled error while processing update %s", update.update_id)
                outcome = "error"
                self._record(
                    SYSTEM_ACTOR,
                    update,
                    started,
                    action_type="system_error",
                    action_detail="unhandled_exception",
                    success=False,
                )
        UPDATES_TOTAL.labels(outcome=outcome).inc()
        return TransportAck()

    # ── Branching ────────────────────────────────────────────────────

    async def _process(self, update: InboundMessage, started: float) -> str:
        sync = await self._sync(update)
        if sync.status == LinkStatus.unlinked:
            return await self._handle_unlinked(update, sync, started)
        with correlation_scope(account_id=sync.account_id):
            return await self._handle_linked(update, sync, started)

    async def _sync(self, update: InboundMessage) -> SyncResult:
        actor = update.actor
        try:
            return await self._directory.record_interaction(
                update.chat_id,
                username=actor.username,
                first_name=actor.first_name,
                last_name=actor.last_name,
                language_code=actor.locale,
                message_text=update.text,
            )
        except DirectoryError:
            logger.warning("Interaction sync failed; treating chat as unlinked", exc_info=True)
            return SyncResult.degraded("sync_error")

    async def _handle_unlinked(self, update: InboundMessage, sync: SyncResult, started: float) -> str:
        text = update.text.strip()
        if LINK_TOKEN_PATTERN.fullmatch(text):
            return await self._handle_linking(update, text, started)

        first_name = update.actor.first_name or update.actor.display_name
        command = update.command
        if command in ("/start", "/link"):
            reply = replies.unlinked_welcome(first_name, sync.interaction_count, self._app_url, self._catalog)
            detail = "onboarding"
        elif command == "/help":
            reply = replies.unlinked_help(sync.interaction_count, self._app_url)
            detail = "help"
        else:
            reply = replies.link_prompt(first_name, sync.interaction_count, self._app_url)
            detail = "unlinked_user_message"

        await self._channel.send(update.chat_id, reply)
        self._record(
            UNLINKED_ACTOR,
            update,
            started,
            action_type="telegram_temp_interaction",
            action_detail=detail,
            context={
                "username": update.actor.username,
                "first_name": update.actor.first_name,
                "interaction_count": sync.interaction_count,
                "sync_action": sync.action,
                "message_preview": text[:_PREVIEW_CHARS],
            },
        )
        return "unlinked"

    async def _handle_linking(self, update: InboundMessage, token: str, started: float) -> str:
        actor = update.actor
        try:
            result = await self._directory.link_account(
                token,
                update.chat_id,
                username=actor.username,
                first_name=actor.first_name,
                last_name=actor.last_name,
            )
        except DirectoryError:
            logger.warning("Linking call failed", exc_info=True)
            result = LinkResult(success=False)

        first_name = actor.first_name or actor.display_name
        if result.success:
            await self._channel.send(update.chat_id, replies.link_success(first_name, self._catalog))
        else:
            await self._channel.send(update.chat_id, replies.link_failure(result.error, self._app_url))

        self._record(
            result.account_id or UNLINKED_ACTOR,
            update,
            started,
            action_type="telegram_link",
            action_detail="link_success" if result.success else "link_failed",
            context={"error": result.error} if result.error else {},
            success=result.success,
        )
        return "linked" if result.success else "link_failed"

    async def _handle_linked(self, update: InboundMessage, sync: SyncResult, started: float) -> str:
        account_id = sync.account_id or UNLINKED_ACTOR
        context = await self._resolver.resolve(update.chat_id)
        if context is None:
            await self._channel.send(update.chat_id, replies.ACCOUNT_ACCESS_ERROR)
            self._record(
                account_id,
                update,
                started,
                action_type="telegram_message",
                action_detail="account_access_error",
                success=False,
            )
            return "session_miss"

        command = update.command
        if command is not None:
            reply = self._commands.handle(command, context)
            await self._channel.send(update.chat_id, reply.text)
            self._record(
                context.account_id,
                update,
                started,
                action_type="telegram_command",
                action_detail=reply.detail,
                context={"command": command, "user_tier": context.tier.value},
            )
            return "command"

        decision = await self._classifier.classify(update.text, update.attachment, context)
        audit_context = self._message_context(update, decision, context)

        verdict = self._guard.evaluate(decision, context)
        if not verdict.allowed:
            reason = verdict.reason.value if verdict.reason is not None else "denied"
            GUARD_DENIALS_TOTAL.labels(reason=reason).inc()
            await self._channel.send(update.chat_id, verdict.user_message)
            self._record(
                context.account_id,
                update,
                started,
                action_type="permission_check",
                action_detail="permission_denied",
                context={**audit_context, "reason": reason},
                success=False,
            )
            return "denied"

        success = True
        if decision.action == IntentAction.route:
            result = await self._dispatcher.dispatch(decision, context, update.chat_id, update.text)
            await self._channel.send(update.chat_id, result.message)
            success = result.success
            audit_context["status_code"] = result.status_code
        else:
            await self._channel.send(update.chat_id, self._conversational_reply(decision))

        self._record(
            context.account_id,
            update,
            started,
            action_type="telegram_message",
            action_detail=decision.action.value,
            context=audit_context,
            success=success,
        )
        return decision.action.value

    # ── Helpers ──────────────────────────────────────────────────────

    @staticmethod
    def _conversational_reply(decision: IntentDecision) -> str:
        if decision.action == IntentAction.clarify:
            text = decision.clarifying_question or decision.user_message or replies.DEFAULT_CLARIFY_REPLY
        elif decision.action == IntentAction.deny:
            text = decision.user_message or replies.DEFAULT_DENY_REPLY
        elif decision.action == IntentAction.link:
            text = decision.user_message or ALREADY_LINKED_REPLY
        else:
            text = decision.user_message or replies.DEFAULT_DIRECT_REPLY
        # Model text is untrusted; never let it carry markup.
        return escape(text, quote=False)

    @staticmethod
    def _message_context(
        update: InboundMessage,
        decision: IntentDecision,
        context: UserContext,
    ) -> dict[str, Any]:
        return {
            "workflow": decision.workflow_name,
            "text_length": len(update.text),
            "has_document": update.attachment is not None,
            "user_tier": context.tier.value,
            "estimated_cost": decision.estimated_cost,
        }

    def _record(
        self,
        actor_key: str,
        update: InboundMessage,
        started: float,
        *,
        action_type: str,
        action_detail: str,
        context: dict[str, Any] | None = None,
        success: bool = True,
    ) -> None:
        try:
            self._audit.record(
                AuditRecord(
                    actor_key=actor_key,
                    chat_id=update.chat_id,
                    action_type=action_type,
                    action_detail=action_detail,
                    context=context or {},
                    success=success,
                    duration_ms=int((time.monotonic() - started) * 1000),
                )
            )
        except Exception:
            logger.warning("Could not enqueue audit record %s/%s", action_type, action_detail, exc_info=True)


__all__ = ["ALREADY_LINKED_REPLY", "LINK_TOKEN_PATTERN", "Gateway", "RecentUpdates", "UpdateDeduplicator"]
