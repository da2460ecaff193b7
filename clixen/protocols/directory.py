from __future__ import annotations

from typing import Protocol, runtime_checkable

from clixen.models.account import AccountRecord, LinkResult, SyncResult
from clixen.models.audit import AuditRecord


@runtime_checkable
class Directory(Protocol):
    """Account/identity store that owns all cross-request state."""

    async def record_interaction(
        self,
        chat_id: int,
        *,
        username: str | None,
        first_name: str,
        last_name: str | None,
        language_code: str | None,
        message_text: str,
    ) -> SyncResult: ...

    async def link_account(
        self,
        token: str,
        chat_id: int,
        *,
        username: str | None,
        first_name: str,
        last_name: str | None,
    ) -> LinkResult: ...

    async def get_account(self, chat_id: int) -> AccountRecord | None: ...

    async def increment_quota(self, account_id: str, amount: int) -> None: ...

    async def append_audit(self, record: AuditRecord) -> None: ...


__all__ = ["Directory"]
