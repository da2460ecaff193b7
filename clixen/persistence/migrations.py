"""Sequential, idempotent migration runner with SHA-256 checksums."""

from __future__ import annotations

import hashlib
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"


def _checksum(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()


def _run_migrations_sync(db_path: str, migrations_dir: Path) -> list[str]:
    # Plain sqlite3: aiosqlite's executescript() mishandles BEGIN/END in trigger bodies.
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    applied_now: list[str] = []
    try:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS _migrations ("
            "  name TEXT PRIMARY KEY,"
            "  checksum TEXT NOT NULL,"
            "  applied_at TEXT NOT NULL"
            ")"
        )
        conn.commit()

        applied = {
            row[0]: row[1]
            for row in conn.execute("SELECT name, checksum FROM _migrations ORDER BY name").fetchall()
        }

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            name = sql_file.name
            checksum = _checksum(sql_file)

            if name in applied:
                if applied[name] != checksum:
                    raise RuntimeError(
                        f"Migration {name} checksum mismatch: "
                        f"applied={applied[name]}, current={checksum}. "
                        f"Previously applied migrations must not be modified."
                    )
                continue

            conn.executescript(sql_file.read_text(encoding="utf-8"))
            conn.execute(
                "INSERT OR IGNORE INTO _migrations (name, checksum, applied_at) VALUES (?, ?, ?)",
                (name, checksum, datetime.now(UTC).isoformat()),
            )
            conn.commit()
            applied_now.append(name)
    finally:
        conn.close()
    return applied_now


async def run_migrations(db_path: str, migrations_dir: Path | None = None) -> list[str]:
    """Apply pending migrations in order and return the names applied.

    Fails fast on a checksum mismatch. Runs synchronously; this is a
    one-time startup step.
    """
    return _run_migrations_sync(db_path, migrations_dir or MIGRATIONS_DIR)


__all__ = ["MIGRATIONS_DIR", "run_migrations"]
