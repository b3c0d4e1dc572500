"""
ConnectionInputTracker - Buffers dependency arrivals for one connection.

This implements the aggregation side of the reactive model: a connection
waits until every name in its ``from`` list has arrived as many times as
it occurs there, then releases exactly one payload per occurrence.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from flow_orchestrator.models.factory.ConnectionModel import ConnectionModel

logger = logging.getLogger(__name__)


class ConnectionInputTracker:
    """
    Tracks which dependencies a connection is waiting for.

    The buffer is the connection's ``waitings`` entry of the state store and
    is mutated in place, so the store always reflects arrived but
    unconsumed payloads (and a resumed run rehydrates simply by handing the
    restored entry back in).

    States:
    - PENDING: some name has fewer buffered payloads than occurrences
    - READY: every name is satisfied; ``take()`` releases one set
    """

    def __init__(self, index: int, connection: ConnectionModel, buffer: Dict[str, List[Any]]):
        """
        Initialize input tracker.

        Args:
            index: Position of the connection in the config
            connection: The connection being tracked
            buffer: Mutable name -> FIFO queue mapping from the state store
        """
        self.index = index
        self.connection = connection
        self._buffer = buffer
        self._required = connection.occurrences()

    @property
    def expected_names(self) -> List[str]:
        """Distinct dependency names, in declared order."""
        return list(self._required.keys())

    @property
    def missing(self) -> Dict[str, int]:
        """How many more arrivals each unsatisfied name still needs."""
        return {
            name: count - len(self._buffer.get(name, []))
            for name, count in self._required.items()
            if len(self._buffer.get(name, [])) < count
        }

    @property
    def is_ready(self) -> bool:
        """Check if every dependency has enough buffered payloads."""
        return all(
            len(self._buffer.get(name, [])) >= count
            for name, count in self._required.items()
        )

    def receive(self, name: str, record: Dict[str, Any]) -> bool:
        """
        Called when a node output arrives.

        Error records are dropped: a failing dependency never satisfies the
        connection.

        Args:
            name: Node that produced the output
            record: ``{"result": ...}`` or ``{"error": ...}``

        Returns:
            True if the payload was buffered
        """
        if name not in self._required:
            logger.warning(
                "Connection %d received unexpected input from %s",
                self.index, name
            )
            return False

        if 'error' in record:
            logger.debug(
                "Connection %d dropped error output from %s",
                self.index, name
            )
            return False

        self._buffer.setdefault(name, []).append(record['result'])
        logger.debug(
            "Connection %d buffered output from %s (%d queued)",
            self.index, name, len(self._buffer[name])
        )
        return True

    def take(self) -> List[Any]:
        """
        Release one complete dependency set.

        Payloads are dequeued oldest first; a name repeated in ``from``
        consumes its queue in order, so ``from=['e', 'e']`` yields the two
        oldest ``e`` payloads in arrival order.
        """
        if not self.is_ready:
            raise RuntimeError(
                f"Connection {self.index} is not ready, missing: {self.missing}"
            )
        payloads = [self._buffer[name].pop(0) for name in self.connection.from_]
        for name in self.expected_names:
            if not self._buffer.get(name):
                self._buffer.pop(name, None)
        logger.debug("Connection %d released a dependency set", self.index)
        return payloads

    def __repr__(self) -> str:
        status = "READY" if self.is_ready else "PENDING"
        return (
            f"ConnectionInputTracker({self.index}, {status}, "
            f"missing={self.missing})"
        )
