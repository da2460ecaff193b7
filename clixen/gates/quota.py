from __future__ import annotations

from clixen.models.account import TIER_ORDER, UserContext
from clixen.models.catalog import WorkflowCatalog
from clixen.models.gates import DenialReason, PermissionVerdict
from clixen.models.intent import IntentAction, IntentDecision


class PermissionGuard:
    """Pure allow/deny decision for a classified request.

    The tier check runs before the quota check so an ungranted capability
    never reveals quota numbers.
    """

    def __init__(self, catalog: WorkflowCatalog, upgrade_url: str) -> None:
        self._catalog = catalog
        self._upgrade_url = upgrade_url

    def evaluate(self, decision: IntentDecision, context: UserContext) -> PermissionVerdict:
        if (
            decision.action == IntentAction.route
            and decision.workflow_name not in context.permissions
        ):
            return PermissionVerdict(
                allowed=False,
                reason=DenialReason.insufficient_tier,
                user_message=self._tier_message(decision.workflow_name or "", context),
            )

        if context.quota_used + decision.estimated_cost > context.quota_limit:
            return PermissionVerdict(
                allowed=False,
                reason=DenialReason.quota_exceeded,
                user_message=(
                    f"📊 Quota limit reached ({context.quota_used}/{context.quota_limit}).\n\n"
                    f"Upgrade at {self._upgrade_url}"
                ),
            )

        return PermissionVerdict(allowed=True, user_message="Permission granted")

    def _tier_message(self, workflow_name: str, context: UserContext) -> str:
        required = self._catalog.required_tier(workflow_name)
        current_rank = TIER_ORDER.index(context.tier)
        if required is None or TIER_ORDER.index(required) <= current_rank:
            # Withheld on this account despite the tier; point at the next tier up.
            required = TIER_ORDER[min(current_rank + 1, len(TIER_ORDER) - 1)]
        spec = self._catalog.get(workflow_name)
        title = spec.title if spec is not None else workflow_name
        return (
            f"🔒 {title} requires the {required.value.capitalize()} tier.\n\n"
            f"Upgrade at {self._upgrade_url}"
        )


__all__ = ["PermissionGuard"]
