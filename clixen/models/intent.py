from __future__ import annotations

import json
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

FALLBACK_MESSAGE = "I'm having trouble understanding right now. Please try again."


class IntentAction(StrEnum):
    route = "route"
    direct = "direct"
    clarify = "clarify"
    link = "link"
    deny = "deny"


class ClassifierOutput(BaseModel):
    """Loose JSON shape requested from the completion service.

    Only constrains the wire format; nothing here is trusted. Use
    ``parse_intent_decision`` to obtain an ``IntentDecision``.
    """

    action: str
    workflow_name: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    user_message: str | None = None
    clarifying_question: str | None = None
    estimated_cost: int | None = None


class IntentDecision(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    action: IntentAction
    workflow_name: str | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    user_message: str | None = None
    clarifying_question: str | None = None
    estimated_cost: int = Field(default=1, ge=1, le=5, strict=True)

    @field_validator("action", mode="before")
    @classmethod
    def _action_must_be_known(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("workflow_name")
    @classmethod
    def _workflow_in_catalog(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        catalog = (info.context or {}).get("catalog")
        if catalog is not None and value not in catalog:
            raise ValueError(f"workflow {value!r} is not in the catalog")
        return value

    @model_validator(mode="after")
    def _route_requires_workflow(self) -> IntentDecision:
        if self.action == IntentAction.route and self.workflow_name is None:
            raise ValueError("workflow_name is required when action='route'")
        return self

    @classmethod
    def fallback(cls, message: str = FALLBACK_MESSAGE) -> IntentDecision:
        return cls(action=IntentAction.direct, user_message=message)


def parse_intent_decision(raw: object, catalog: Mapping[str, object]) -> IntentDecision:
    """Validate untrusted classifier output against the decision contract.

    Accepts a JSON string, a mapping, or a pydantic model. Raises
    ``ValueError`` (``ValidationError`` included) on anything that does not
    conform, so callers can substitute the safe default.
    """
    if isinstance(raw, IntentDecision):
        data: object = raw.model_dump()
    elif isinstance(raw, BaseModel):
        data = raw.model_dump(exclude_none=True)
    elif isinstance(raw, (str, bytes)):
        data = json.loads(raw)
    else:
        data = raw

    if not isinstance(data, Mapping):
        raise ValueError("classifier output must be a JSON object")
    if data.get("parameters") is None:
        data = {**data, "parameters": {}}
    return IntentDecision.model_validate(data, context={"catalog": catalog})


__all__ = [
    "FALLBACK_MESSAGE",
    "ClassifierOutput",
    "IntentAction",
    "IntentDecision",
    "parse_intent_decision",
]
