from clixen.agents.classifier import IntentClassifier, StructuredRunnable, build_classifier_agent
from clixen.agents.prompts import PromptRenderer, build_user_prompt

__all__ = [
    "IntentClassifier",
    "PromptRenderer",
    "StructuredRunnable",
    "build_classifier_agent",
    "build_user_prompt",
]
