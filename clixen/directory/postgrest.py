"""Directory client for a Supabase/PostgREST RPC surface.

The account database exposes the pipeline's operations as stored
procedures (``POST /rest/v1/rpc/<function>``); audit rows go straight into
the ``user_audit_log`` table.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from clixen.errors import DirectoryError
from clixen.models.account import AccountRecord, LinkResult, LinkStatus, SyncResult
from clixen.models.audit import AuditRecord

logger = logging.getLogger(__name__)


def _field(data: dict[str, Any], key: str, default: Any) -> Any:
    # Only a missing or null column falls back; 0 and "" are real values.
    value = data.get(key)
    return default if value is None else value


class PostgrestDirectory:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout_s: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        self._http = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, object], *, prefer: str | None = None) -> object:
        headers = dict(self._headers)
        if prefer is not None:
            headers["Prefer"] = prefer
        url = f"{self._base_url}/rest/v1/{path}"
        try:
            resp = await self._http.post(url, json=payload, headers=headers)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DirectoryError(f"{path} returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise DirectoryError(f"{path} request failed: {exc}") from exc

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise DirectoryError(f"{path} returned a non-JSON body") from exc

    async def _rpc(self, function: str, params: dict[str, object]) -> object:
        return await self._post(f"rpc/{function}", params)

    async def record_interaction(
        self,
        chat_id: int,
        *,
        username: str | None,
        first_name: str,
        last_name: str | None,
        language_code: str | None,
        message_text: str,
    ) -> SyncResult:
        data = await self._rpc(
            "handle_telegram_interaction",
            {
                "chat_id_param": chat_id,
                "username_param": username,
                "first_name_param": first_name,
                "last_name_param": last_name,
                "language_code_param": language_code,
                "message_text_param": message_text,
            },
        )
        if not isinstance(data, dict):
            raise DirectoryError("handle_telegram_interaction returned no object")
        try:
            return SyncResult(
                status=LinkStatus(data.get("status", "unlinked")),
                account_id=data.get("user_id") or data.get("account_id"),
                interaction_count=_field(data, "interaction_count", 1),
                action=str(data.get("action", "recorded")),
            )
        except (ValueError, ValidationError) as exc:
            raise DirectoryError(f"malformed sync result: {exc}") from exc

    async def link_account(
        self,
        token: str,
        chat_id: int,
        *,
        username: str | None,
        first_name: str,
        last_name: str | None,
    ) -> LinkResult:
        data = await self._rpc(
            "link_telegram_account",
            {
                "linking_token_param": token,
                "chat_id_param": chat_id,
                "username_param": username,
                "first_name_param": first_name,
                "last_name_param": last_name,
            },
        )
        if not isinstance(data, dict):
            return LinkResult(success=False, error="Unknown error")
        if not data.get("success"):
            return LinkResult(success=False, error=str(data.get("error") or "Unknown error"))
        return LinkResult(success=True, account_id=data.get("user_id"))

    async def get_account(self, chat_id: int) -> AccountRecord | None:
        data = await self._rpc("get_user_by_telegram_chat_id", {"chat_id": chat_id})
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            return None
        try:
            return AccountRecord(
                account_id=data["auth_user_id"],
                profile_id=data["profile_id"],
                tier=_field(data, "tier", "free"),
                quota_used=_field(data, "quota_used", 0),
                quota_limit=_field(data, "quota_limit", 50),
                trial_active=bool(data.get("trial_active")),
                permissions=data.get("permissions"),
            )
        except (KeyError, ValidationError) as exc:
            raise DirectoryError(f"malformed account row: {exc}") from exc

    async def increment_quota(self, account_id: str, amount: int) -> None:
        await self._rpc("increment_user_quota", {"user_id": account_id, "amount": amount})

    async def append_audit(self, record: AuditRecord) -> None:
        await self._post(
            "user_audit_log",
            {
                "auth_user_id": record.account_id,
                "telegram_chat_id": record.chat_id,
                "action_type": record.action_type,
                "action_detail": record.action_detail,
                "context": record.context,
                "success": record.success,
                "processing_time_ms": record.duration_ms,
            },
            prefer="return=minimal",
        )


__all__ = ["PostgrestDirectory"]
