from __future__ import annotations

from dataclasses import dataclass

from clixen.core import replies
from clixen.models.account import UserContext
from clixen.models.catalog import WorkflowCatalog


@dataclass(frozen=True)
class CommandReply:
    text: str
    detail: str
    known: bool = True


class CommandHandler:
    """Slash commands available to linked users."""

    def __init__(self, catalog: WorkflowCatalog) -> None:
        self._catalog = catalog

    def handle(self, command: str, context: UserContext) -> CommandReply:
        if command == "/help":
            return CommandReply(replies.linked_help(context, self._catalog), detail="help")
        if command == "/status":
            return CommandReply(replies.linked_status(context), detail="status")
        return CommandReply(replies.unknown_command(command), detail="unknown_command", known=False)


__all__ = ["CommandHandler", "CommandReply"]
