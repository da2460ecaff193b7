"""SQLite implementation of the directory contract.

Used for local deployments and tests. Linking tokens are stored hashed,
are single-use, and expire after ``token_ttl``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import secrets
import sqlite3
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta

import aiosqlite
from pydantic import ValidationError

from clixen.audit.sqlite_audit import SQLiteAuditLog
from clixen.errors import DirectoryError
from clixen.models.account import AccountRecord, LinkResult, LinkStatus, SyncResult, Tier
from clixen.models.audit import AuditRecord
from clixen.models.messages import utc_now

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 100

LINK_ERROR_INVALID = "Invalid linking code"
LINK_ERROR_USED = "Linking code already used"
LINK_ERROR_EXPIRED = "Linking code expired"
LINK_ERROR_ACCOUNT_TAKEN = "Account is already linked to another Telegram chat"


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SQLiteDirectory:
    def __init__(
        self,
        db_path: str,
        *,
        token_ttl: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.db_path = db_path
        self._token_ttl = token_ttl
        self._clock = clock
        self.audit_log = SQLiteAuditLog(db_path)

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            async with aiosqlite.connect(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                yield db
        except sqlite3.Error as exc:
            raise DirectoryError(f"directory query failed: {exc}") from exc

    # ── Directory contract ───────────────────────────────────────────

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
        now = self._clock().isoformat()
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO telegram_contacts (
                       chat_id, username, first_name, last_name, language_code,
                       interaction_count, last_message_preview, first_seen_at, last_seen_at
                   ) VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
                   ON CONFLICT (chat_id) DO UPDATE SET
                       username = excluded.username,
                       first_name = excluded.first_name,
                       last_name = excluded.last_name,
                       language_code = excluded.language_code,
                       interaction_count = telegram_contacts.interaction_count + 1,
                       last_message_preview = excluded.last_message_preview,
                       last_seen_at = excluded.last_seen_at""",
                (
                    chat_id,
                    username,
                    first_name,
                    last_name,
                    language_code,
                    message_text[:_PREVIEW_CHARS],
                    now,
                    now,
                ),
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT account_id, interaction_count FROM telegram_contacts WHERE chat_id = ?",
                (chat_id,),
            )
            row = await cursor.fetchone()

        if row is None:
            raise DirectoryError(f"contact {chat_id} vanished after upsert")
        if row["account_id"]:
            return SyncResult(
                status=LinkStatus.linked,
                account_id=row["account_id"],
                interaction_count=row["interaction_count"],
                action="linked_interaction",
            )
        count = row["interaction_count"]
        return SyncResult(
            status=LinkStatus.unlinked,
            interaction_count=count,
            action="first_contact" if count == 1 else "temp_interaction",
        )

    async def link_account(
        self,
        token: str,
        chat_id: int,
        *,
        username: str | None,
        first_name: str,
        last_name: str | None,
    ) -> LinkResult:
        now = self._clock()
        token_hash = _hash_token(token)
        async with self._connect() as db:
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute(
                "SELECT account_id, expires_at, used_at FROM linking_tokens WHERE token_hash = ?",
                (token_hash,),
            )
            row = await cursor.fetchone()
            error = self._token_error(row, now)
            if error is None:
                cursor = await db.execute(
                    "SELECT chat_id FROM telegram_contacts WHERE account_id = ? AND chat_id != ?",
                    (row["account_id"], chat_id),
                )
                if await cursor.fetchone() is not None:
                    error = LINK_ERROR_ACCOUNT_TAKEN
            if error is not None:
                await db.rollback()
                return LinkResult(success=False, error=error)

            account_id = row["account_id"]
            await db.execute(
                "UPDATE linking_tokens SET used_at = ?, used_by_chat_id = ? WHERE token_hash = ?",
                (now.isoformat(), chat_id, token_hash),
            )
            await db.execute(
                """INSERT INTO telegram_contacts (
                       chat_id, account_id, username, first_name, last_name,
                       interaction_count, first_seen_at, last_seen_at, linked_at
                   ) VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                   ON CONFLICT (chat_id) DO UPDATE SET
                       account_id = excluded.account_id,
                       username = excluded.username,
                       first_name = excluded.first_name,
                       last_name = excluded.last_name,
                       linked_at = excluded.linked_at""",
                (
                    chat_id,
                    account_id,
                    username,
                    first_name,
                    last_name,
                    now.isoformat(),
                    now.isoformat(),
                    now.isoformat(),
                ),
            )
            await db.commit()

        logger.info("Linked chat %s to account %s", chat_id, account_id)
        return LinkResult(success=True, account_id=account_id)

    async def get_account(self, chat_id: int) -> AccountRecord | None:
        async with self._connect() as db:
            cursor = await db.execute(
                """SELECT a.account_id, a.profile_id, a.tier, a.quota_used, a.quota_limit,
                          a.trial_expires_at, a.permissions
                   FROM telegram_contacts c
                   JOIN accounts a ON a.account_id = c.account_id
                   WHERE c.chat_id = ?""",
                (chat_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            return None

        trial_expires_at = row["trial_expires_at"]
        try:
            trial_active = bool(
                trial_expires_at and datetime.fromisoformat(trial_expires_at) > self._clock()
            )
            permissions = json.loads(row["permissions"]) if row["permissions"] else None
            return AccountRecord(
                account_id=row["account_id"],
                profile_id=row["profile_id"],
                tier=Tier(row["tier"]),
                quota_used=row["quota_used"],
                quota_limit=row["quota_limit"],
                trial_active=trial_active,
                permissions=permissions,
            )
        except (TypeError, ValueError, ValidationError) as exc:
            raise DirectoryError(f"malformed account row for chat {chat_id}: {exc}") from exc

    async def increment_quota(self, account_id: str, amount: int) -> None:
        async with self._connect() as db:
            await db.execute(
                "UPDATE accounts SET quota_used = quota_used + ? WHERE account_id = ?",
                (amount, account_id),
            )
            await db.commit()

    async def append_audit(self, record: AuditRecord) -> None:
        try:
            await self.audit_log.append(record)
        except sqlite3.Error as exc:
            raise DirectoryError(f"audit append failed: {exc}") from exc

    # ── Local administration ─────────────────────────────────────────

    async def create_account(
        self,
        *,
        tier: Tier = Tier.free,
        quota_limit: int = 50,
        trial_days: int | None = None,
        permissions: list[str] | None = None,
        email: str | None = None,
    ) -> AccountRecord:
        now = self._clock()
        account_id = str(uuid.uuid4())
        profile_id = str(uuid.uuid4())
        trial_expires_at = (now + timedelta(days=trial_days)).isoformat() if trial_days else None
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO accounts (
                       account_id, profile_id, email, tier, quota_limit,
                       trial_expires_at, permissions, created_at
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    account_id,
                    profile_id,
                    email,
                    tier.value,
                    quota_limit,
                    trial_expires_at,
                    json.dumps(permissions) if permissions is not None else None,
                    now.isoformat(),
                ),
            )
            await db.commit()
        return AccountRecord(
            account_id=account_id,
            profile_id=profile_id,
            tier=tier,
            quota_limit=quota_limit,
            trial_active=trial_expires_at is not None,
            permissions=permissions,
        )

    async def issue_linking_token(self, account_id: str) -> str:
        """Mint a 64-hex-character single-use linking code for ``account_id``."""
        token = secrets.token_hex(32)
        now = self._clock()
        async with self._connect() as db:
            await db.execute(
                """INSERT INTO linking_tokens (token_hash, account_id, created_at, expires_at)
                   VALUES (?, ?, ?, ?)""",
                (
                    _hash_token(token),
                    account_id,
                    now.isoformat(),
                    (now + self._token_ttl).isoformat(),
                ),
            )
            await db.commit()
        return token

    def _token_error(self, row: aiosqlite.Row | None, now: datetime) -> str | None:
        if row is None:
            return LINK_ERROR_INVALID
        if row["used_at"] is not None:
            return LINK_ERROR_USED
        if datetime.fromisoformat(row["expires_at"]) <= now:
            return LINK_ERROR_EXPIRED
        return None


__all__ = [
    "LINK_ERROR_ACCOUNT_TAKEN",
    "LINK_ERROR_EXPIRED",
    "LINK_ERROR_INVALID",
    "LINK_ERROR_USED",
    "SQLiteDirectory",
]
