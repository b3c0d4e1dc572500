"""
CancellationToken - Cooperative cancellation for orchestrator runs.

A token can be cancelled at any time, including before the run starts.
The coordinator checks it at every scheduling decision and also registers
a callback so a waiting run rejects as soon as the token fires. Nothing
already dispatched is interrupted.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    One-shot cancellation signal carrying a reason.

    Example:
        token = CancellationToken()
        handle = orchestrator.run(config, options={"cancellation_token": token})
        token.cancel("user aborted")
    """

    def __init__(self):
        self._cancelled = False
        self._reason: Any = None
        self._callbacks: List[Callable[[Any], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> Any:
        return self._reason

    def cancel(self, reason: Any = None) -> None:
        """Fire the token; later calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        logger.debug("Cancellation requested: %s", reason)
        for callback in list(self._callbacks):
            try:
                callback(reason)
            except Exception as e:
                logger.warning("Cancellation callback %r failed: %s", callback, e)

    def add_callback(self, callback: Callable[[Any], None]) -> None:
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[Any], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def __repr__(self) -> str:
        status = "CANCELLED" if self._cancelled else "ACTIVE"
        return f"CancellationToken({status}, reason={self._reason!r})"
