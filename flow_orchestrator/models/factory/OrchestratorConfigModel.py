from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from flow_orchestrator.models.factory.ConnectionModel import ConnectionModel
from flow_orchestrator.models.factory.Nodes import EventNodeModel, FunctionNodeModel


class OrchestratorConfigModel(BaseModel):
    """
    Run configuration as supplied by the caller.

    Attributes:
        functions: Declared function nodes; None declares every constructor callable
        events: Declared event nodes
        connections: Ordered list of connections
    """
    model_config = ConfigDict(extra='forbid')

    functions: Optional[Dict[str, FunctionNodeModel]] = None
    events: Dict[str, EventNodeModel] = Field(default_factory=dict)
    connections: List[ConnectionModel] = Field(default_factory=list)
