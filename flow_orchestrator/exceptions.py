"""
Exception hierarchy for flow-orchestrator.

Every error that makes a run reject inherits from OrchestratorError and
carries the state snapshot captured when the problem was detected, so the
caller always gets ``{state, error}`` back.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class OrchestratorError(Exception):
    """
    Base exception for all orchestrator errors.

    Attributes:
        state: State snapshot at detection time (set when the run rejects)
    """

    def __init__(self, message: str, *, state: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.state = state


class ValidationError(OrchestratorError):
    """
    Config or prior-state shape violation.

    Raised synchronously before any callable is invoked.

    Attributes:
        errors: List of validation error dicts (type, severity, error_message)
    """

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[List[Dict[str, Any]]] = None,
        state: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, state=state)
        self.errors = errors or []

    @classmethod
    def from_errors(cls, errors: List[Dict[str, Any]]) -> "ValidationError":
        """Build a single exception reporting every collected problem."""
        if len(errors) == 1:
            message = errors[0]["error_message"]
        else:
            message = f"{len(errors)} validation errors:\n" + "\n".join(
                f"  - {err['error_message']}" for err in errors
            )
        return cls(message, errors=errors)


class ExecutionError(OrchestratorError):
    """
    A callable or an expression failed.

    Fatal when the node opted in with ``throws`` or when it comes from a
    transition or an inputs/output transformation.

    Attributes:
        node: Name of the failing node, if any
        connection: Index of the failing connection, if any
    """

    def __init__(
        self,
        message: str,
        *,
        node: Optional[str] = None,
        connection: Optional[int] = None,
        state: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, state=state)
        self.node = node
        self.connection = connection


class ProtocolError(OrchestratorError):
    """Duplicate once-event receipt or a second concurrent run."""


class CancellationError(OrchestratorError):
    """
    The run was cancelled through its cancellation token.

    Attributes:
        reason: Whatever the caller passed to ``CancellationToken.cancel``
    """

    def __init__(self, reason: Any = None, *, state: Optional[Dict[str, Any]] = None):
        message = "Run cancelled" if reason is None else f"Run cancelled: {reason}"
        super().__init__(message, state=state)
        self.reason = reason
