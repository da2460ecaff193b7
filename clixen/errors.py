"""Exception hierarchy raised by adapters and caught at component boundaries."""

from __future__ import annotations


class ClixenError(Exception):
    """Base class for all gateway errors."""


class DirectoryError(ClixenError):
    """The directory service could not complete an RPC."""


class SigningError(ClixenError):
    """A dispatch token could not be minted."""


class DispatchError(ClixenError):
    """The automation backend rejected or failed a workflow call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = ["ClixenError", "DirectoryError", "DispatchError", "SigningError"]
