from __future__ import annotations

from pydantic import BaseModel

DEFAULT_SUCCESS_MESSAGE = "Task completed successfully!"


class DispatchResult(BaseModel):
    success: bool
    message: str
    status_code: int | None = None


__all__ = ["DEFAULT_SUCCESS_MESSAGE", "DispatchResult"]
