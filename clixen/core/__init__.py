"""Core module: lightweight re-exports only.

The gateway is not imported here so the models and adapters can be used
without pulling in the classifier and dispatch stack:
    from clixen.core.gateway import Gateway
"""

from clixen.core.background import BackgroundTasks
from clixen.core.key_manager import DispatchKeyManager
from clixen.core.logging import correlation_scope, setup_logging

__all__ = ["BackgroundTasks", "DispatchKeyManager", "correlation_scope", "setup_logging"]
