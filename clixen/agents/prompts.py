"""Classifier prompt rendering.

Templates are jinja2 files in ``clixen/agents/prompts/<name>_system.md``
with a built-in fallback, so a missing or empty file never blocks startup.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

from jinja2 import Environment, StrictUndefined

from clixen.models.account import UserContext
from clixen.models.catalog import WorkflowCatalog
from clixen.models.messages import Attachment

logger = logging.getLogger(__name__)

_PROMPT_DIR = Path(__file__).resolve().parent / "prompts"
_VERSION_RE = re.compile(r"<!--\s*version\s*:\s*([^>]+?)\s*-->")

_FALLBACK_CLASSIFIER = (
    "You are {{ assistant_name }}, a secure automation assistant.\n\n"
    "Workflows: {% for workflow in workflows %}{{ workflow.name }}"
    "{% if not loop.last %}, {% endif %}{% endfor %}.\n\n"
    "Return one JSON object with keys action (route|direct|clarify|link|deny), "
    "workflow_name, parameters, user_message, clarifying_question and "
    "estimated_cost (1-5)."
)

USER_MESSAGE_MARKER = "[USER MESSAGE]"


class PromptRenderer:
    def __init__(self, prompt_dir: Path | None = None, assistant_name: str = "Clixen AI") -> None:
        self._prompt_dir = prompt_dir or _PROMPT_DIR
        self._assistant_name = assistant_name
        self._jinja = Environment(undefined=StrictUndefined, autoescape=False)
        self._cache: dict[str, str] = {}

    def classifier_system_prompt(self, catalog: WorkflowCatalog) -> str:
        cached = self._cache.get("classifier")
        if cached is not None:
            return cached
        template = self._load_template("classifier") or _FALLBACK_CLASSIFIER
        rendered = self._jinja.from_string(template).render(
            assistant_name=self._assistant_name,
            workflows=list(catalog.values()),
        )
        rendered = _VERSION_RE.sub("", rendered).strip()
        self._cache["classifier"] = rendered
        return rendered

    def _load_template(self, name: str) -> str | None:
        path = self._prompt_dir / f"{name}_system.md"
        if not path.exists():
            logger.warning("Prompt template missing, using built-in fallback: %s", path)
            return None
        template = path.read_text(encoding="utf-8").strip()
        if not template:
            logger.warning("Prompt template empty, using built-in fallback: %s", path)
            return None
        match = _VERSION_RE.search(template)
        logger.info("Loaded %s prompt version=%s", name, match.group(1) if match else "unknown")
        return template


def build_user_prompt(
    text: str,
    attachment: Attachment | None,
    context: UserContext,
) -> str:
    """User turn: context summary plus the message.

    For an attachment only its name and kind are included, never its content.
    """
    lines = [
        "[USER CONTEXT]",
        f"- Tier: {context.tier.value}",
        f"- Permissions: {', '.join(sorted(context.permissions)) or 'none'}",
        f"- Quota: {context.quota_used}/{context.quota_limit}",
        f"- Trial Active: {str(context.trial_active).lower()}",
        "",
        USER_MESSAGE_MARKER,
    ]
    if attachment is not None:
        name = attachment.filename or "unnamed file"
        upload = f'User uploaded {attachment.kind} "{name}"'
        lines.append(f"{upload} and said: {text}" if text.strip() else f"{upload} without a message.")
    else:
        lines.append(text)
    return "\n".join(lines)


__all__ = ["USER_MESSAGE_MARKER", "PromptRenderer", "build_user_prompt"]
