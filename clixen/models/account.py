from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Tier(StrEnum):
    free = "free"
    starter = "starter"
    pro = "pro"


TIER_ORDER: tuple[Tier, ...] = (Tier.free, Tier.starter, Tier.pro)


class LinkStatus(StrEnum):
    linked = "linked"
    unlinked = "unlinked"


class SyncResult(BaseModel):
    """Outcome of recording one inbound interaction with the directory."""

    status: LinkStatus
    account_id: str | None = None
    interaction_count: int = Field(default=1, ge=0)
    action: str = "recorded"

    @model_validator(mode="after")
    def _linked_requires_account(self) -> SyncResult:
        if self.status == LinkStatus.linked and not self.account_id:
            raise ValueError("account_id is required when status='linked'")
        return self

    @classmethod
    def degraded(cls, action: str) -> SyncResult:
        return cls(status=LinkStatus.unlinked, interaction_count=1, action=action)


class LinkResult(BaseModel):
    success: bool
    account_id: str | None = None
    error: str | None = None


class AccountRecord(BaseModel):
    """Raw account row as returned by the directory."""

    account_id: str
    profile_id: str
    tier: Tier = Tier.free
    quota_used: int = Field(default=0, ge=0)
    quota_limit: int = Field(default=50, ge=0)
    trial_active: bool = False
    permissions: list[str] | None = None


class UserContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_id: str
    profile_id: str
    tier: Tier
    permissions: frozenset[str] = frozenset()
    quota_used: int = Field(default=0, ge=0)
    quota_limit: int = Field(default=0, ge=0)
    trial_active: bool = False

    @property
    def quota_remaining(self) -> int:
        return max(self.quota_limit - self.quota_used, 0)

    def token_claims(self) -> dict[str, object]:
        """Subset of the context that leaves the process."""
        return {
            "account_id": self.account_id,
            "profile_id": self.profile_id,
            "tier": self.tier.value,
            "permissions": sorted(self.permissions),
        }


__all__ = [
    "TIER_ORDER",
    "AccountRecord",
    "LinkResult",
    "LinkStatus",
    "SyncResult",
    "Tier",
    "UserContext",
]
