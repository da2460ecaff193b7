from __future__ import annotations

import logging

from clixen.errors import DirectoryError
from clixen.models.account import AccountRecord, UserContext
from clixen.models.catalog import WorkflowCatalog
from clixen.protocols.directory import Directory

logger = logging.getLogger(__name__)


class SessionResolver:
    """Builds a fresh ``UserContext`` for one request.

    A miss (unknown chat, directory failure, malformed row) is returned as
    ``None``; callers apologize to the user and stop.
    """

    def __init__(self, directory: Directory, catalog: WorkflowCatalog) -> None:
        self._directory = directory
        self._catalog = catalog

    async def resolve(self, chat_id: int) -> UserContext | None:
        try:
            record = await self._directory.get_account(chat_id)
        except DirectoryError:
            logger.warning("Account lookup failed for chat %s", chat_id, exc_info=True)
            return None
        if record is None:
            logger.info("No account linked to chat %s", chat_id)
            return None
        return self.build_context(record)

    def build_context(self, record: AccountRecord) -> UserContext:
        if record.permissions is not None:
            permissions = frozenset(record.permissions)
        else:
            permissions = self._catalog.permissions_for(record.tier)
        return UserContext(
            account_id=record.account_id,
            profile_id=record.profile_id,
            tier=record.tier,
            permissions=permissions,
            quota_used=record.quota_used,
            quota_limit=record.quota_limit,
            trial_active=record.trial_active,
        )


__all__ = ["SessionResolver"]
