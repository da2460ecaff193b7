from __future__ import annotations

from typing import Protocol, runtime_checkable

from clixen.models.audit import AuditRecord


@runtime_checkable
class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> None: ...


__all__ = ["AuditSink"]
