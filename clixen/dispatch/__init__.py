from clixen.dispatch.dispatcher import AUTH_ERROR_MESSAGE, FAILURE_MESSAGE, WorkflowDispatcher
from clixen.dispatch.signer import DispatchTokenSigner, verify_dispatch_token

__all__ = [
    "AUTH_ERROR_MESSAGE",
    "FAILURE_MESSAGE",
    "DispatchTokenSigner",
    "WorkflowDispatcher",
    "verify_dispatch_token",
]
