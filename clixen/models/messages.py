from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    return datetime.now(UTC)


class Actor(BaseModel):
    model_config = ConfigDict(frozen=True)

    external_id: int
    first_name: str = ""
    last_name: str | None = None
    username: str | None = None
    locale: str | None = None

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full or (self.username or str(self.external_id))


class Attachment(BaseModel):
    """Reference to an uploaded file. Only metadata is ever forwarded."""

    model_config = ConfigDict(frozen=True)

    kind: str
    reference: str
    filename: str | None = None


class InboundMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    update_id: int
    chat_id: int
    actor: Actor
    text: str = ""
    attachment: Attachment | None = None
    received_at: datetime = Field(default_factory=utc_now)

    @field_validator("received_at")
    @classmethod
    def _ensure_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("received_at must be timezone-aware")
        return value

    @property
    def has_content(self) -> bool:
        return bool(self.text.strip()) or self.attachment is not None

    @property
    def is_command(self) -> bool:
        return self.text.lstrip().startswith("/")

    @property
    def command(self) -> str | None:
        if not self.is_command:
            return None
        head = self.text.strip().split(maxsplit=1)[0].lower()
        # "/help@clixen_bot" addresses the bot explicitly in group chats
        return head.split("@", 1)[0]


class TransportAck(BaseModel):
    ok: bool = True


__all__ = ["Actor", "Attachment", "InboundMessage", "TransportAck", "utc_now"]
