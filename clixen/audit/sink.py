"""Best-effort audit sink.

Each record is handed to the directory's append call on a detached task;
a failed write is logged and otherwise dropped.
"""

from __future__ import annotations

import logging

from clixen.core.background import BackgroundTasks
from clixen.models.audit import AuditRecord
from clixen.protocols.directory import Directory

logger = logging.getLogger(__name__)


class DirectoryAuditSink:
    def __init__(self, directory: Directory, background: BackgroundTasks) -> None:
        self._directory = directory
        self._background = background

    def record(self, record: AuditRecord) -> None:
        self._background.spawn(self._write(record), name="audit")

    async def _write(self, record: AuditRecord) -> None:
        try:
            await self._directory.append_audit(record)
        except Exception:
            logger.warning(
                "Audit write failed for %s/%s", record.action_type, record.action_detail,
                exc_info=True,
            )


__all__ = ["DirectoryAuditSink"]
