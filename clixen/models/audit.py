from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UNLINKED_ACTOR = "unlinked"
SYSTEM_ACTOR = "system"


class AuditRecord(BaseModel):
    """One append-only interaction record."""

    model_config = ConfigDict(frozen=True)

    actor_key: str
    chat_id: int
    action_type: str
    action_detail: str
    context: dict[str, Any] = Field(default_factory=dict)
    success: bool = True
    duration_ms: int = Field(default=0, ge=0)

    @property
    def account_id(self) -> str | None:
        if self.actor_key in (UNLINKED_ACTOR, SYSTEM_ACTOR):
            return None
        return self.actor_key


__all__ = ["SYSTEM_ACTOR", "UNLINKED_ACTOR", "AuditRecord"]
