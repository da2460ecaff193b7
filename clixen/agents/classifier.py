"""Intent classifier: one constrained completion per inbound message.

The completion service is asked for a ``ClassifierOutput`` JSON object at
low temperature with a token ceiling. Whatever comes back is re-validated by
``parse_intent_decision``; anything that fails becomes the safe default
``direct`` decision, so untrusted model output never reaches the guard.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from pydantic_ai import Agent
from pydantic_ai.settings import ModelSettings

from clixen.agents.prompts import PromptRenderer, build_user_prompt
from clixen.config import ModelsConfig
from clixen.core.metrics import CLASSIFIER_CALLS_TOTAL
from clixen.core.telemetry import get_tracer
from clixen.models.account import UserContext
from clixen.models.catalog import WorkflowCatalog
from clixen.models.intent import ClassifierOutput, IntentDecision, parse_intent_decision
from clixen.models.messages import Attachment

logger = logging.getLogger(__name__)
_TRACER = get_tracer("clixen.agents")


class StructuredRunnable(Protocol):
    async def run(self, prompt: str) -> object: ...


def _unwrap_run_result(result: object) -> object:
    """Extract ``.output`` from a pydantic-ai run result, or return as-is."""
    output = getattr(result, "output", None)
    return output if output is not None else result


class IntentClassifier:
    def __init__(
        self,
        agent: StructuredRunnable | None,
        catalog: WorkflowCatalog,
        *,
        timeout_s: float = 20.0,
        model_name: str = "unknown",
    ) -> None:
        self._agent = agent
        self._catalog = catalog
        self._timeout_s = timeout_s
        self._model_name = model_name

    async def classify(
        self,
        text: str,
        attachment: Attachment | None,
        context: UserContext,
    ) -> IntentDecision:
        if self._agent is None:
            CLASSIFIER_CALLS_TOTAL.labels(outcome="unavailable").inc()
            return IntentDecision.fallback()

        prompt = build_user_prompt(text, attachment, context)
        try:
            with _TRACER.start_as_current_span("classifier.run") as span:
                span.set_attribute("llm.model", self._model_name)
                result = await asyncio.wait_for(self._agent.run(prompt), timeout=self._timeout_s)
        except TimeoutError:
            CLASSIFIER_CALLS_TOTAL.labels(outcome="timeout").inc()
            logger.warning("Classifier timed out after %.1fs", self._timeout_s)
            return IntentDecision.fallback()
        except Exception:  # noqa: BLE001 - provider errors vary; any failure means fallback
            CLASSIFIER_CALLS_TOTAL.labels(outcome="error").inc()
            logger.warning("Classifier call failed; using fallback decision", exc_info=True)
            return IntentDecision.fallback()

        raw = _unwrap_run_result(result)
        try:
            decision = parse_intent_decision(raw, self._catalog)
        except ValueError as exc:
            CLASSIFIER_CALLS_TOTAL.labels(outcome="invalid").inc()
            logger.warning("Classifier output rejected: %s", exc)
            return IntentDecision.fallback()

        CLASSIFIER_CALLS_TOTAL.labels(outcome="ok").inc()
        logger.info(
            "Classified action=%s workflow=%s cost=%s",
            decision.action.value,
            decision.workflow_name,
            decision.estimated_cost,
        )
        return decision


def build_classifier_agent(
    models: ModelsConfig,
    catalog: WorkflowCatalog,
    prompts: PromptRenderer | None = None,
) -> Agent[None, ClassifierOutput] | None:
    """Construct the pydantic-ai agent, or ``None`` when the model cannot be initialized."""
    system_prompt = (prompts or PromptRenderer()).classifier_system_prompt(catalog)
    try:
        return Agent(
            model=models.classifier,
            output_type=ClassifierOutput,
            system_prompt=system_prompt,
            retries=0,
            model_settings=ModelSettings(
                temperature=models.temperature,
                max_tokens=models.max_tokens,
                timeout=models.timeout_s,
            ),
        )
    except (ImportError, ValueError, TypeError, RuntimeError) as exc:
        logger.warning("Failed to initialize classifier agent; every message gets the fallback: %s", exc)
        return None


__all__ = ["IntentClassifier", "StructuredRunnable", "build_classifier_agent"]
