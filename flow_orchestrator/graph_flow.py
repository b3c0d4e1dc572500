"""
Flow Orchestrator Graph Module

Turns a caller-supplied config (dict or OrchestratorConfigModel) and a set
of constructor callables into a validated GraphFlowModel, and a prior-state
snapshot into a state store compatible with that graph. Everything here is
synchronous and runs before any callable is invoked.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import pydantic

from flow_orchestrator.exceptions import ValidationError
from flow_orchestrator.execution.transition import TransitionStage
from flow_orchestrator.models.factory.GraphFlowModel import GraphFlowModel
from flow_orchestrator.models.factory.Nodes import (
    BaseNodeModel,
    FunctionNodeModel,
    ModelOrchestratorNodeTypesModel,
)
from flow_orchestrator.models.factory.OrchestratorConfigModel import OrchestratorConfigModel
from flow_orchestrator.models.model_orchestrator_state import ModelOrchestratorState, copy_containers
from flow_orchestrator.node_system import Node, NodeEvent, NodeFunction
from flow_orchestrator.util.graph_validator import ConfigValidator, StateValidator, only_errors

logger = logging.getLogger(__name__)


def schema_errors(error: pydantic.ValidationError, prefix: str) -> List[Dict[str, Any]]:
    """Convert pydantic errors into validator-style error dicts."""
    return [
        {
            "type": "SchemaError",
            "severity": "error",
            "error_message": f"{prefix}{'.'.join(str(part) for part in err['loc'])}: {err['msg']}",
            "location": list(err['loc']),
        }
        for err in error.errors()
    ]


def parse_config(config: Union[Mapping[str, Any], OrchestratorConfigModel]) -> OrchestratorConfigModel:
    """
    Parse a raw config.

    Raises:
        ValidationError: The config does not match the expected shape
    """
    if isinstance(config, OrchestratorConfigModel):
        return config
    if not isinstance(config, Mapping):
        raise ValidationError(f"Config must be a mapping, got {type(config).__name__}")
    try:
        return OrchestratorConfigModel.model_validate(dict(config))
    except pydantic.ValidationError as e:
        raise ValidationError.from_errors(schema_errors(e, "config.")) from e


def declared_functions(config: OrchestratorConfigModel, constructors: Mapping[str, Callable]) -> Dict[str, FunctionNodeModel]:
    """Declared function specs; an omitted ``functions`` declares every constructor."""
    if config.functions is None:
        return {name: FunctionNodeModel() for name in constructors}
    return dict(config.functions)


def create_node(
    name: str,
    node_type: str,
    data: BaseNodeModel,
    constructors: Mapping[str, Callable],
    stage: TransitionStage,
    debug: bool = False,
) -> Node:
    """
    Factory method to create node instances.

    Args:
        name: Declared node name
        node_type: One of ModelOrchestratorNodeTypesModel
        data: The node's validated spec
        constructors: Name -> callable mapping
        stage: Transition stage used for node transformations
        debug: Debug mode. Defaults to False.

    Returns:
        Node: Node instance.
    """
    extra = {'name': name, 'data': data, 'debug': debug}
    logger.debug("Creating %s node %s with data %s", node_type, name, data)

    if node_type == ModelOrchestratorNodeTypesModel.FUNCTION:
        return NodeFunction(function=constructors[data.resolve_ref(name)], stage=stage, **extra)
    if node_type == ModelOrchestratorNodeTypesModel.EVENT:
        return NodeEvent(**extra)
    raise ValueError(f"Unsupported node type: {node_type}")


def validate_graph(
    config: Union[Mapping[str, Any], OrchestratorConfigModel],
    constructors: Mapping[str, Callable],
) -> dict:
    """
    Validate the orchestrator graph structure.

    Returns:
        dict: Validation result with 'valid' (bool) and 'errors' (list) keys.
            Warnings are reported in 'errors' but do not make it invalid.
    """
    try:
        parsed = parse_config(config)
    except ValidationError as e:
        return {"valid": False, "errors": e.errors}
    errors = ConfigValidator.validate(parsed, dict(constructors), declared_functions(parsed, constructors))
    return {
        "valid": not only_errors(errors),
        "errors": errors,
    }


def build(
    config: Union[Mapping[str, Any], OrchestratorConfigModel],
    constructors: Mapping[str, Callable],
    stage: Optional[TransitionStage] = None,
    debug: bool = False,
) -> GraphFlowModel:
    """
    Validate the config and build the runnable graph.

    Raises:
        ValidationError: Reporting every problem found
    """
    parsed = parse_config(config)
    functions = declared_functions(parsed, constructors)

    findings = ConfigValidator.validate(parsed, dict(constructors), functions)
    errors = only_errors(findings)
    if errors:
        logger.error("Graph validation failed with %d error(s)", len(errors))
        for err in errors:
            logger.error("  - %s: %s", err['type'], err['error_message'])
        raise ValidationError.from_errors(errors)
    for warning in findings:
        logger.warning("Graph validation warning: %s", warning['error_message'])

    stage = stage or TransitionStage()
    graph = GraphFlowModel(
        debug=debug,
        functions={
            name: create_node(name, ModelOrchestratorNodeTypesModel.FUNCTION, spec, constructors, stage, debug)
            for name, spec in functions.items()
        },
        events={
            name: create_node(name, ModelOrchestratorNodeTypesModel.EVENT, spec, constructors, stage, debug)
            for name, spec in parsed.events.items()
        },
        connections=parsed.connections,
    )
    if findings:
        graph._validation_warnings = findings
    logger.debug(
        "Built graph: functions=%s events=%s connections=%d",
        list(graph.functions), list(graph.events), len(graph.connections)
    )
    return graph


def load_state(prior_state: Optional[Mapping[str, Any]], graph: GraphFlowModel) -> ModelOrchestratorState:
    """
    Create the state store for a run.

    Without a prior state the store is empty. A prior state is copied (so the
    caller's snapshot is never mutated) and checked against the graph.

    Raises:
        ValidationError: The snapshot is malformed or belongs to another graph
    """
    if prior_state is None:
        return ModelOrchestratorState.empty(len(graph.connections))
    if isinstance(prior_state, ModelOrchestratorState):
        prior_state = prior_state.snapshot()
    if not isinstance(prior_state, Mapping):
        raise ValidationError(f"Prior state must be a mapping, got {type(prior_state).__name__}")
    try:
        state = ModelOrchestratorState.model_validate(copy_containers(dict(prior_state)))
    except pydantic.ValidationError as e:
        raise ValidationError.from_errors(schema_errors(e, "prior_state.")) from e

    errors = StateValidator.validate(state, graph)
    if errors:
        logger.error("Prior state rejected with %d error(s)", len(errors))
        raise ValidationError.from_errors(errors)
    return state


__all__ = [
    "build",
    "create_node",
    "declared_functions",
    "load_state",
    "parse_config",
    "schema_errors",
    "validate_graph",
]
