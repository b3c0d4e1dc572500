"""
RunEventDispatcher - Per-run notification bus.

Listeners subscribe by name (``state.change``, ``results``,
``results.<node>``, ``errors``, ``errors.<node>``, ``success``, ``error``)
and receive one ``detail`` argument. Subscriptions belong to a single run
and are dropped when it settles.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from flow_orchestrator.util.const import EVENT_ERRORS, EVENT_RESULTS, LIFECYCLE_EVENTS, NODE_SCOPED_EVENTS

logger = logging.getLogger(__name__)

Listener = Callable[[Any], None]


def is_notification(name: str) -> bool:
    """True for lifecycle names and node-scoped ones such as 'results.fn1'."""
    if name in LIFECYCLE_EVENTS:
        return True
    prefix, _, node = name.partition('.')
    return prefix in NODE_SCOPED_EVENTS and bool(node)


class RunEventDispatcher:
    """
    Synchronous publish/subscribe for run notifications.

    Emission happens inside the coordinator's callbacks, so listeners see
    notifications in the order the state changed. A failing listener is
    logged and never affects the run or the remaining listeners.
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, name: str, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A callable that removes the listener again
        """
        if not callable(listener):
            raise TypeError(f"Listener for {name!r} must be callable")
        if not is_notification(name):
            logger.warning("Subscribing to unknown notification %s", name)
        if self._closed:
            logger.debug("Ignoring subscription to %s on a settled run", name)
            return lambda: None
        self._listeners.setdefault(name, []).append(listener)
        return lambda: self.unsubscribe(name, listener)

    on = subscribe

    def unsubscribe(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self._listeners[name]

    def has_listeners(self, name: str) -> bool:
        return bool(self._listeners.get(name))

    def emit(self, name: str, detail: Any) -> None:
        """Deliver ``detail`` to every listener of ``name``."""
        for listener in list(self._listeners.get(name, [])):
            try:
                listener(detail)
            except Exception as e:
                logger.warning("Listener for %s raised %s: %s", name, type(e).__name__, e)

    def emit_result(self, node: str, result: Any) -> None:
        detail = {'node': node, 'result': result}
        self.emit(EVENT_RESULTS, detail)
        self.emit(f"{EVENT_RESULTS}.{node}", detail)

    def emit_error(self, node: str, error: Dict[str, Any]) -> None:
        detail = {'node': node, 'error': error}
        self.emit(EVENT_ERRORS, detail)
        self.emit(f"{EVENT_ERRORS}.{node}", detail)

    def close(self) -> None:
        """Drop every subscription; later subscriptions are ignored."""
        self._closed = True
        self._listeners.clear()
