from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, model_validator


class DenialReason(StrEnum):
    insufficient_tier = "insufficient_tier"
    quota_exceeded = "quota_exceeded"


class PermissionVerdict(BaseModel):
    allowed: bool
    user_message: str
    reason: DenialReason | None = None

    @model_validator(mode="after")
    def _denial_requires_reason(self) -> PermissionVerdict:
        if not self.allowed and self.reason is None:
            raise ValueError("reason is required when allowed=False")
        if self.allowed and self.reason is not None:
            raise ValueError("reason must be None when allowed=True")
        return self


__all__ = ["DenialReason", "PermissionVerdict"]
