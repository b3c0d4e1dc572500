from flow_orchestrator.exceptions import (
    CancellationError,
    ExecutionError,
    OrchestratorError,
    ProtocolError,
    ValidationError,
)
from flow_orchestrator.execution import CancellationToken
from flow_orchestrator.graph_flow import build, validate_graph
from flow_orchestrator.models.factory.OrchestratorConfigModel import OrchestratorConfigModel
from flow_orchestrator.models.model_run_options import ModelRunOptions
from flow_orchestrator.orchestrator import Orchestrator, RunHandle
from flow_orchestrator.util.template_parser import TemplateEvaluator

__all__ = [
    "Orchestrator",
    "RunHandle",
    "CancellationToken",
    "ModelRunOptions",
    "OrchestratorConfigModel",
    "TemplateEvaluator",
    "build",
    "validate_graph",
    "OrchestratorError",
    "ValidationError",
    "ExecutionError",
    "ProtocolError",
    "CancellationError",
]
