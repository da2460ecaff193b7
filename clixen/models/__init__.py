from __future__ import annotations

from clixen.models.account import (
    TIER_ORDER,
    AccountRecord,
    LinkResult,
    LinkStatus,
    SyncResult,
    Tier,
    UserContext,
)
from clixen.models.audit import SYSTEM_ACTOR, UNLINKED_ACTOR, AuditRecord
from clixen.models.catalog import WorkflowCatalog, WorkflowSpec
from clixen.models.dispatch import DispatchResult
from clixen.models.gates import DenialReason, PermissionVerdict
from clixen.models.intent import (
    ClassifierOutput,
    IntentAction,
    IntentDecision,
    parse_intent_decision,
)
from clixen.models.messages import Actor, Attachment, InboundMessage, TransportAck

__all__ = [
    "SYSTEM_ACTOR",
    "TIER_ORDER",
    "UNLINKED_ACTOR",
    "AccountRecord",
    "Actor",
    "Attachment",
    "AuditRecord",
    "ClassifierOutput",
    "DenialReason",
    "DispatchResult",
    "InboundMessage",
    "IntentAction",
    "IntentDecision",
    "LinkResult",
    "LinkStatus",
    "PermissionVerdict",
    "SyncResult",
    "Tier",
    "TransportAck",
    "UserContext",
    "WorkflowCatalog",
    "WorkflowSpec",
    "parse_intent_decision",
]
