"""Fixed catalog of automations the classifier may route to."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping

from pydantic import BaseModel, Field

from clixen.models.account import TIER_ORDER, Tier


class WorkflowSpec(BaseModel):
    name: str
    title: str
    description: str
    min_tier: Tier = Tier.free
    example: str = ""
    parameters: list[str] = Field(default_factory=list)


_DEFAULT_WORKFLOWS: tuple[WorkflowSpec, ...] = (
    WorkflowSpec(
        name="weather_check",
        title="Weather Check",
        description="Get current weather for a location",
        example='"Weather in Tokyo"',
        parameters=["location"],
    ),
    WorkflowSpec(
        name="text_translate",
        title="Text Translator",
        description="Translate text into another language",
        example="\"Translate 'hello' to French\"",
        parameters=["text", "target_language"],
    ),
    WorkflowSpec(
        name="email_invoice_scan",
        title="Email Invoice Scanner",
        description="Scan the inbox for invoices and summarize spending",
        min_tier=Tier.starter,
        example='"Check my emails for invoices"',
        parameters=["period"],
    ),
    WorkflowSpec(
        name="pdf_summarize",
        title="PDF Summarizer",
        description="Summarize an uploaded document",
        min_tier=Tier.starter,
        example="Upload any document",
        parameters=["file_name"],
    ),
    WorkflowSpec(
        name="daily_reminder",
        title="Daily Reminder",
        description="Set a one-off or recurring reminder",
        min_tier=Tier.starter,
        example='"Remind me to call John tomorrow"',
        parameters=["message", "when"],
    ),
)


class WorkflowCatalog(Mapping[str, WorkflowSpec]):
    """Read-only name → spec mapping with tier grant helpers."""

    def __init__(self, workflows: Iterable[WorkflowSpec] = _DEFAULT_WORKFLOWS) -> None:
        self._by_name = {workflow.name: workflow for workflow in workflows}
        if not self._by_name:
            raise ValueError("workflow catalog must not be empty")

    def __getitem__(self, name: str) -> WorkflowSpec:
        return self._by_name[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def required_tier(self, name: str) -> Tier | None:
        spec = self._by_name.get(name)
        return spec.min_tier if spec is not None else None

    def permissions_for(self, tier: Tier) -> frozenset[str]:
        rank = TIER_ORDER.index(tier)
        return frozenset(
            spec.name
            for spec in self._by_name.values()
            if TIER_ORDER.index(spec.min_tier) <= rank
        )


__all__ = ["WorkflowCatalog", "WorkflowSpec"]
