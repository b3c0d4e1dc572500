from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, PrivateAttr

from flow_orchestrator.models.factory.ConnectionModel import ConnectionModel


class GraphFlowModel(BaseModel):
    """
    A validated, built graph ready to be run.

    Attributes:
        debug: Whether debug logging of node inputs/outputs is enabled
        functions: Dictionary of name -> NodeFunction instance
        events: Dictionary of name -> NodeEvent instance
        connections: Ordered list of connections
        _validation_warnings: Non-fatal findings of the graph validator
    """
    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='ignore'
    )

    debug: bool = False
    functions: Dict[str, Any]
    events: Dict[str, Any]
    connections: List[ConnectionModel]

    _validation_warnings: Optional[List[Dict[str, Any]]] = PrivateAttr(default=None)

    @property
    def validation_warnings(self) -> List[Dict[str, Any]]:
        return list(self._validation_warnings or [])
