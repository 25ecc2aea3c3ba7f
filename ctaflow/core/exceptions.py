# ctaflow/core/exceptions.py
"""
Error taxonomy for the flow builder.

Validation issues and rejected connections are plain data, not exceptions.
Only failures that cross the API boundary (transport, usage-lock conflicts)
and programming errors against the lifecycle are raised.
"""
from typing import Any, List, Optional


class FlowBuilderError(Exception):
    """Base class for all flow builder errors"""


class TransportFailure(FlowBuilderError):
    """Network or server error talking to the flow API. Always retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class UsageLockConflict(FlowBuilderError):
    """HTTP 409: the flow is attached to live campaigns. Resolve by forking, not retrying."""

    def __init__(self, campaigns: Optional[List[Any]] = None):
        super().__init__("Flow is attached to active campaign(s)")
        self.campaigns = list(campaigns or [])


class InvalidTransition(FlowBuilderError):
    """A lifecycle action was requested in a state that does not allow it"""

    def __init__(self, state: str, action: str):
        super().__init__(f"Cannot {action} while flow is {state}")
        self.state = state
        self.action = action


class ReadOnlyViolation(FlowBuilderError):
    """An explicit write (save/publish) was requested on a read-only session"""
