"""Telegram Bot API channel adapter.

Raw HTTP (httpx) for sendMessage/sendChatAction plus webhook parsing; the
gateway only needs those two calls and the inbound update shape.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from fastapi import Request
from pydantic import ValidationError

from clixen.config import TelegramConfig
from clixen.models.messages import Actor, Attachment, InboundMessage, TransportAck

logger = logging.getLogger(__name__)

# Telegram enforces a hard 4096 UTF-8 character limit per message.
_TG_MAX_LEN = 4096

SECRET_TOKEN_HEADER = "X-Telegram-Bot-Api-Secret-Token"

UpdateHandler = Callable[[InboundMessage | None], Awaitable[TransportAck]]


def _split_text(text: str, limit: int = _TG_MAX_LEN) -> list[str]:
    """Split long text into chunks that fit Telegram's message limit.

    Breaks on the last newline inside the limit; a single overlong line is
    hard-split.
    """
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= limit:
            chunks.append(remaining)
            break

        split_at = remaining.rfind("\n", 0, limit)
        if split_at <= 0:
            split_at = limit

        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip("\n")

    return chunks


def parse_update(update: dict[str, Any]) -> InboundMessage | None:
    """Convert a raw Telegram Update into an ``InboundMessage``.

    Returns ``None`` for anything that is not a plain message from a user
    (edits, channel posts, callback queries, malformed payloads).
    """
    update_id = update.get("update_id")
    message = update.get("message")
    if not isinstance(update_id, int) or not isinstance(message, dict):
        return None

    chat = message.get("chat")
    sender = message.get("from")
    if not isinstance(chat, dict) or not isinstance(sender, dict):
        return None

    text = message.get("text")
    if not isinstance(text, str):
        caption = message.get("caption")
        text = caption if isinstance(caption, str) else ""

    document = message.get("document")
    try:
        attachment: Attachment | None = None
        if isinstance(document, dict) and document.get("file_id"):
            attachment = Attachment(
                kind=str(document.get("mime_type") or "document"),
                reference=str(document["file_id"]),
                filename=document.get("file_name"),
            )
        return InboundMessage(
            update_id=update_id,
            chat_id=chat.get("id"),
            actor=Actor(
                external_id=sender.get("id"),
                first_name=sender.get("first_name") or "",
                last_name=sender.get("last_name"),
                username=sender.get("username"),
                locale=sender.get("language_code"),
            ),
            text=text,
            attachment=attachment,
        )
    except ValidationError as exc:
        logger.warning("Dropping malformed Telegram update %s: %s", update_id, exc.error_count())
        return None


class TelegramChannel:
    """Outbound Telegram sends plus the inbound webhook route.

    Sends are best-effort: Bot API failures are logged and never raised into
    the pipeline.
    """

    channel_name = "telegram"

    def __init__(
        self,
        config: TelegramConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(config.timeout_s))

    @property
    def api_url(self) -> str:
        return f"{self._config.api_base.rstrip('/')}/bot{self._config.bot_token}"

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── ResponseChannel ──────────────────────────────────────────────

    async def send(self, chat_id: int, text: str) -> None:
        """Send a message (possibly multi-part) to a Telegram chat."""
        for chunk in _split_text(text):
            try:
                await self._call(
                    "sendMessage",
                    {
                        "chat_id": chat_id,
                        "text": chunk,
                        "parse_mode": "HTML",
                        "disable_web_page_preview": True,
                    },
                )
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("sendMessage to %s failed: %s", chat_id, exc)
                return

    async def send_typing(self, chat_id: int) -> None:
        try:
            await self._call("sendChatAction", {"chat_id": chat_id, "action": "typing"})
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("sendChatAction to %s failed: %s", chat_id, exc)

    async def _call(self, method: str, payload: dict[str, object]) -> dict[str, object]:
        resp = await self._http.post(f"{self.api_url}/{method}", json=payload)
        resp.raise_for_status()
        result = resp.json()
        if not isinstance(result, dict):
            return {}
        return result

    # ── FastAPI route factory ────────────────────────────────────────

    def secret_matches(self, header_value: str | None) -> bool:
        expected = self._config.webhook_secret
        return not expected or header_value == expected

    def register_routes(self, app: object, handler: UpdateHandler) -> None:
        """Attach the webhook POST route to a FastAPI app.

        Every request is answered with 200 ``{"ok": true}``; Telegram would
        otherwise redeliver the update.
        """
        from fastapi import FastAPI
        from fastapi.responses import JSONResponse

        assert isinstance(app, FastAPI)

        @app.post(self._config.webhook_path)
        async def telegram_webhook(request: Request) -> JSONResponse:
            if not self.secret_matches(request.headers.get(SECRET_TOKEN_HEADER)):
                logger.warning("Dropping webhook call with a bad secret token")
                return JSONResponse({"ok": True})

            try:
                body = await request.json()
            except ValueError:
                logger.warning("Dropping unparseable webhook body")
                return JSONResponse({"ok": True})

            update = parse_update(body) if isinstance(body, dict) else None
            ack = await handler(update)
            return JSONResponse(ack.model_dump())


__all__ = ["SECRET_TOKEN_HEADER", "TelegramChannel", "parse_update"]
