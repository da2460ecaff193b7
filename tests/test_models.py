from __future__ import annotations

from datetime import datetime

import pytest
from pydantic import ValidationError

from clixen.models.account import AccountRecord, LinkStatus, SyncResult, Tier, UserContext
from clixen.models.audit import SYSTEM_ACTOR, UNLINKED_ACTOR, AuditRecord
from clixen.models.catalog import WorkflowCatalog
from clixen.models.gates import DenialReason, PermissionVerdict
from clixen.models.intent import IntentAction, IntentDecision, parse_intent_decision
from clixen.models.messages import Actor, Attachment, InboundMessage


class TestInboundMessage:
    def test_command_strips_bot_suffix_and_lowercases(self) -> None:
        msg = InboundMessage(update_id=1, chat_id=1, actor=Actor(external_id=1), text="/Start@clixen_bot hi")
        assert msg.is_command is True
        assert msg.command == "/start"

    def test_plain_text_has_no_command(self) -> None:
        msg = InboundMessage(update_id=1, chat_id=1, actor=Actor(external_id=1), text="weather")
        assert msg.command is None

    def test_whitespace_only_has_no_content(self) -> None:
        msg = InboundMessage(update_id=1, chat_id=1, actor=Actor(external_id=1), text="  \n")
        assert msg.has_content is False

    def test_attachment_without_text_has_content(self) -> None:
        msg = InboundMessage(
            update_id=1,
            chat_id=1,
            actor=Actor(external_id=1),
            attachment=Attachment(kind="application/pdf", reference="BQAC-1"),
        )
        assert msg.has_content is True

    def test_naive_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationError, match="timezone-aware"):
            InboundMessage(
                update_id=1,
                chat_id=1,
                actor=Actor(external_id=1),
                received_at=datetime(2024, 1, 1),
            )

    def test_message_is_immutable(self) -> None:
        msg = InboundMessage(update_id=1, chat_id=1, actor=Actor(external_id=1), text="hi")
        with pytest.raises(ValidationError):
            msg.text = "changed"  # type: ignore[misc]

    def test_display_name_falls_back_to_username(self) -> None:
        assert Actor(external_id=5, username="ada").display_name == "ada"
        assert Actor(external_id=5, first_name="Ada", last_name="L").display_name == "Ada L"


class TestSyncResult:
    def test_linked_requires_account(self) -> None:
        with pytest.raises(ValidationError, match="account_id is required"):
            SyncResult(status=LinkStatus.linked)

    def test_degraded_is_unlinked(self) -> None:
        result = SyncResult.degraded("sync_error")
        assert result.status == LinkStatus.unlinked
        assert result.action == "sync_error"


class TestIntentDecision:
    def test_route_requires_workflow(self, catalog: WorkflowCatalog) -> None:
        with pytest.raises(ValidationError):
            parse_intent_decision({"action": "route"}, catalog)

    @pytest.mark.parametrize("cost", [0, 6, -1])
    def test_cost_out_of_range(self, catalog: WorkflowCatalog, cost: int) -> None:
        with pytest.raises(ValidationError):
            parse_intent_decision({"action": "direct", "estimated_cost": cost}, catalog)

    def test_action_is_normalized(self, catalog: WorkflowCatalog) -> None:
        decision = parse_intent_decision('{"action": " Clarify ", "clarifying_question": "Where?"}', catalog)
        assert decision.action == IntentAction.clarify

    def test_null_parameters_become_empty(self, catalog: WorkflowCatalog) -> None:
        decision = parse_intent_decision({"action": "direct", "parameters": None}, catalog)
        assert decision.parameters == {}

    def test_blank_workflow_name_is_dropped(self, catalog: WorkflowCatalog) -> None:
        decision = parse_intent_decision({"action": "direct", "workflow_name": "  "}, catalog)
        assert decision.workflow_name is None

    def test_non_object_json_rejected(self, catalog: WorkflowCatalog) -> None:
        with pytest.raises(ValueError, match="JSON object"):
            parse_intent_decision("[1, 2, 3]", catalog)

    def test_fallback_is_direct(self) -> None:
        decision = IntentDecision.fallback("sorry")
        assert decision.action == IntentAction.direct
        assert decision.user_message == "sorry"
        assert decision.estimated_cost == 1


class TestPermissionVerdict:
    def test_denial_requires_reason(self) -> None:
        with pytest.raises(ValidationError):
            PermissionVerdict(allowed=False, user_message="no")

    def test_allow_rejects_reason(self) -> None:
        with pytest.raises(ValidationError):
            PermissionVerdict(allowed=True, user_message="ok", reason=DenialReason.quota_exceeded)


class TestCatalog:
    def test_tier_grants_are_cumulative(self, catalog: WorkflowCatalog) -> None:
        free = catalog.permissions_for(Tier.free)
        starter = catalog.permissions_for(Tier.starter)
        pro = catalog.permissions_for(Tier.pro)

        assert free == {"weather_check", "text_translate"}
        assert free < starter <= pro
        assert pro == set(catalog)

    def test_required_tier_unknown_workflow(self, catalog: WorkflowCatalog) -> None:
        assert catalog.required_tier("nope") is None
        assert catalog.required_tier("daily_reminder") == Tier.starter

    def test_empty_catalog_rejected(self) -> None:
        with pytest.raises(ValueError):
            WorkflowCatalog([])


def test_user_context_token_claims_are_minimal() -> None:
    context = UserContext(
        account_id="a",
        profile_id="p",
        tier=Tier.pro,
        permissions=frozenset({"b", "a"}),
        quota_used=4,
        quota_limit=10,
    )
    assert context.token_claims() == {"account_id": "a", "profile_id": "p", "tier": "pro", "permissions": ["a", "b"]}
    assert context.quota_remaining == 6


def test_account_record_defaults() -> None:
    record = AccountRecord(account_id="a", profile_id="p")
    assert record.tier == Tier.free
    assert record.quota_limit == 50
    assert record.permissions is None


@pytest.mark.parametrize("actor", [UNLINKED_ACTOR, SYSTEM_ACTOR])
def test_audit_sentinels_have_no_account(actor: str) -> None:
    record = AuditRecord(actor_key=actor, chat_id=1, action_type="t", action_detail="d")
    assert record.account_id is None


def test_audit_duration_non_negative() -> None:
    with pytest.raises(ValidationError):
        AuditRecord(actor_key="a", chat_id=1, action_type="t", action_detail="d", duration_ms=-1)
