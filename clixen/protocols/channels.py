from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class ResponseChannel(Protocol):
    @property
    def channel_name(self) -> str: ...

    async def send(self, chat_id: int, text: str) -> None: ...

    async def send_typing(self, chat_id: int) -> None: ...


__all__ = ["ResponseChannel"]
