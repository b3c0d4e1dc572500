"""
Graph Validator - Build-time validation for orchestrator configs and snapshots.

Every check returns a list of error dicts (``type``, ``severity``,
``error_message`` plus context keys) instead of raising, so that a single
ValidationError can report every problem at once.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, TYPE_CHECKING

import networkx as nx

from flow_orchestrator.node_system import build_graph

if TYPE_CHECKING:
    from flow_orchestrator.models.factory.GraphFlowModel import GraphFlowModel
    from flow_orchestrator.models.factory.OrchestratorConfigModel import OrchestratorConfigModel
    from flow_orchestrator.models.model_orchestrator_state import ModelOrchestratorState


def _error(type_: str, message: str, **context) -> Dict[str, Any]:
    return {"type": type_, "severity": "error", "error_message": message, **context}


def _warning(type_: str, message: str, **context) -> Dict[str, Any]:
    return {"type": type_, "severity": "warning", "error_message": message, **context}


def only_errors(findings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [f for f in findings if f.get("severity") == "error"]


class ConfigValidator:
    """
    Validates a parsed config against the constructor callables.

    Ensures:
    1. Every function ``ref`` resolves to a callable
    2. Function and event names are disjoint
    3. Connections reference declared nodes, and only functions as targets
    4. Connections without a transition have matching from/to lengths
    5. Warns about functions that can never run
    """

    @staticmethod
    def validate(
        config: 'OrchestratorConfigModel',
        constructors: Dict[str, Callable],
        functions: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """
        Validate a config.

        Args:
            config: Parsed config model
            constructors: Name -> callable mapping given to the orchestrator
            functions: Declared function specs (implicit declaration applied)

        Returns:
            List of validation errors/warnings (empty if valid)
        """
        errors = []
        events = config.events

        for name, constructor in constructors.items():
            if not callable(constructor):
                errors.append(_error(
                    "NotCallable",
                    f"Function `{name}` is not callable (got {type(constructor).__name__})",
                    node_id=name,
                ))

        for name, spec in functions.items():
            ref = spec.resolve_ref(name)
            if ref not in constructors:
                errors.append(_error(
                    "UnknownFunction",
                    f"Function or alias `{ref}` not existing",
                    node_id=name,
                    available_functions=list(constructors),
                ))

        for name in sorted(set(functions) & set(events)):
            errors.append(_error(
                "DuplicateNodeName",
                f"`{name}` is declared both as a function and as an event",
                node_id=name,
            ))

        for index, connection in enumerate(config.connections):
            dumped = connection.model_dump(by_alias=True, exclude_none=True)
            if not connection.from_:
                errors.append(_error(
                    "EmptyFrom",
                    f"The connection {index} from is an empty array.\nConnection: {dumped}",
                    connection=index,
                ))
            for name in dict.fromkeys(connection.from_):
                if name not in functions and name not in events:
                    errors.append(_error(
                        "UnknownNode",
                        f"Connection {index} depends on `{name}`, which is neither a "
                        "declared function nor a declared event",
                        connection=index,
                        node_id=name,
                    ))
            for name in dict.fromkeys(connection.to):
                if name in events:
                    errors.append(_error(
                        "EventTarget",
                        f"Connection {index} targets event `{name}`; events can only be "
                        "raised through dispatch",
                        connection=index,
                        node_id=name,
                    ))
                elif name not in functions:
                    errors.append(_error(
                        "UnknownFunction",
                        f"Function or alias `{name}` not existing (connection {index} to)",
                        connection=index,
                        node_id=name,
                    ))
            if connection.transition is None and connection.to and len(connection.from_) != len(connection.to):
                errors.append(_error(
                    "ConnectionArity",
                    f"Connection {index} has no transition, so from and to must have the "
                    f"same length (from={len(connection.from_)}, to={len(connection.to)})",
                    connection=index,
                ))

        if not only_errors(errors):
            errors.extend(ConfigValidator._reachability(config, functions))
        return errors

    @staticmethod
    def _reachability(config: 'OrchestratorConfigModel', functions: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Warn about functions no root or event can ever lead to."""
        graph = build_graph(list(functions) + list(config.events), config.connections)
        roots = [name for name, spec in functions.items() if spec.is_root]
        if not roots:
            roots = [name for name in functions if graph.in_degree(name) == 0]
        reachable = set()
        for start in roots + list(config.events):
            reachable.add(start)
            reachable |= nx.descendants(graph, start)

        warnings = []
        for name in functions:
            if name not in reachable:
                warnings.append(_warning(
                    "UnreachableFunction",
                    f"Function `{name}` is not a root and no root or event leads to it",
                    node_id=name,
                ))
        return warnings


class StateValidator:
    """
    Validates a prior-state snapshot against a built graph.

    A snapshot is compatible only with the graph that produced it: same
    connection count, only declared names, unique in-flight ids.
    """

    @staticmethod
    def validate(state: 'ModelOrchestratorState', graph: 'GraphFlowModel') -> List[Dict[str, Any]]:
        errors = []
        connections = graph.connections
        count = len(connections)

        if len(state.variables.locals) != count:
            errors.append(_error(
                "StateShape",
                f"variables.locals has {len(state.variables.locals)} entries, "
                f"expected one per connection ({count})",
            ))
        if len(state.waitings) != count:
            errors.append(_error(
                "StateShape",
                f"waitings has {len(state.waitings)} entries, expected one per connection ({count})",
            ))

        for name in state.finals.functions:
            if name not in graph.functions:
                errors.append(_error("StateUnknownNode", f"finals.functions names undeclared function `{name}`"))
        for name in state.finals.events:
            if name not in graph.events:
                errors.append(_error("StateUnknownNode", f"finals.events names undeclared event `{name}`"))
        for index in state.finals.connections:
            if not 0 <= index < count:
                errors.append(_error("StateUnknownNode", f"finals.connections index {index} out of range"))
        for name in state.errors:
            if name not in graph.functions:
                errors.append(_error("StateUnknownNode", f"errors names undeclared function `{name}`"))

        for index, buffer in enumerate(state.waitings[:count]):
            expected = set(connections[index].from_)
            for name in buffer:
                if name not in expected:
                    errors.append(_error(
                        "StateUnknownNode",
                        f"waitings[{index}] buffers `{name}`, which connection {index} does not depend on",
                    ))

        seen = set()
        for invocation in state.runnings:
            if invocation.name not in graph.functions:
                errors.append(_error("StateUnknownNode", f"runnings names undeclared function `{invocation.name}`"))
            if invocation.id in seen:
                errors.append(_error("StateDuplicateId", f"Duplicate in-flight id `{invocation.id}`"))
            seen.add(invocation.id)

        for firing in state.firings:
            if firing.id in seen:
                errors.append(_error("StateDuplicateId", f"Duplicate in-flight id `{firing.id}`"))
            seen.add(firing.id)
            if firing.connection >= count:
                errors.append(_error("StateShape", f"firings names connection {firing.connection}, out of range"))
            elif len(firing.from_) != len(connections[firing.connection].from_):
                errors.append(_error(
                    "StateShape",
                    f"firing `{firing.id}` carries {len(firing.from_)} payloads, connection "
                    f"{firing.connection} expects {len(connections[firing.connection].from_)}",
                ))

        for name in state.received:
            node = graph.events.get(name)
            if node is None or not node.once:
                errors.append(_error(
                    "StateUnknownNode",
                    f"received names `{name}`, which is not a declared once event",
                ))

        return errors
