from typing import Any, Dict

from flow_orchestrator.node_system.Node import Node


class NodeEvent(Node):
    """
    Event node: raised externally through its channel (``ref``).

    A dispatched payload is handled exactly like a successful function
    output.
    """

    @property
    def once(self) -> bool:
        return bool(self.data is not None and self.data.once)

    def accept(self, payload: Any) -> Dict[str, Any]:
        return {'result': payload}
