from flow_orchestrator.models.factory.Nodes.BaseNodeModel import (
    BaseNodeModel,
    ModelOrchestratorNodeTypesModel,
)
from flow_orchestrator.models.factory.Nodes.FunctionNodeModel import FunctionNodeModel
from flow_orchestrator.models.factory.Nodes.EventNodeModel import EventNodeModel

__all__ = [
    "BaseNodeModel",
    "ModelOrchestratorNodeTypesModel",
    "FunctionNodeModel",
    "EventNodeModel",
]
