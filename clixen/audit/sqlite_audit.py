"""Hash-chained SQLite audit log."""

from __future__ import annotations

import hashlib
import json
import uuid
from datetime import UTC, datetime

import aiosqlite

from clixen.models.audit import AuditRecord


def _entry_hash(
    entry_id: str,
    account_id: str | None,
    chat_id: int | None,
    action_type: str,
    success: bool,
    data_json: str,
    timestamp: str,
    prev_hash: str,
) -> str:
    canonical = json.dumps(
        {
            "entry_id": entry_id,
            "account_id": account_id,
            "chat_id": chat_id,
            "action_type": action_type,
            "success": success,
            "data": data_json,
            "timestamp": timestamp,
            "prev_hash": prev_hash,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class SQLiteAuditLog:
    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    async def append(self, record: AuditRecord) -> str:
        entry_id = uuid.uuid4().hex
        now = datetime.now(UTC).isoformat()
        data_json = json.dumps(
            {
                "action_detail": record.action_detail,
                "context": record.context,
                "success": record.success,
                "duration_ms": record.duration_ms,
            },
            default=str,
            sort_keys=True,
        )

        async with aiosqlite.connect(self.db_path) as db:
            # Serialize chain extension across concurrent writers.
            await db.execute("BEGIN IMMEDIATE")
            cursor = await db.execute("SELECT entry_hash FROM audit_log ORDER BY id DESC LIMIT 1")
            row = await cursor.fetchone()
            prev_hash = row[0] if row else "genesis"
            entry_hash = _entry_hash(
                entry_id,
                record.account_id,
                record.chat_id,
                record.action_type,
                record.success,
                data_json,
                now,
                prev_hash,
            )

            await db.execute(
                """INSERT INTO audit_log (
                       entry_id, account_id, chat_id, action_type, data,
                       success, timestamp, prev_hash, entry_hash
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    entry_id,
                    record.account_id,
                    record.chat_id,
                    record.action_type,
                    data_json,
                    int(record.success),
                    now,
                    prev_hash,
                    entry_hash,
                ),
            )
            await db.commit()
        return entry_id

    async def verify_chain(self) -> tuple[bool, int]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM audit_log ORDER BY id ASC")
            rows = await cursor.fetchall()

        expected_prev = "genesis"
        for row in rows:
            if row["prev_hash"] != expected_prev:
                return False, 0
            computed = _entry_hash(
                row["entry_id"],
                row["account_id"],
                row["chat_id"],
                row["action_type"],
                bool(row["success"]),
                row["data"],
                row["timestamp"],
                row["prev_hash"],
            )
            if computed != row["entry_hash"]:
                return False, 0
            expected_prev = row["entry_hash"]

        return True, len(rows)

    async def entries_for_chat(self, chat_id: int) -> list[dict[str, object]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT account_id, action_type, data, success FROM audit_log "
                "WHERE chat_id = ? ORDER BY id ASC",
                (chat_id,),
            )
            rows = await cursor.fetchall()
        return [
            {
                "account_id": row["account_id"],
                "action_type": row["action_type"],
                "success": bool(row["success"]),
                **json.loads(row["data"]),
            }
            for row in rows
        ]


__all__ = ["SQLiteAuditLog"]
