from typing import Dict, Iterable, List, Tuple

import networkx as nx

from flow_orchestrator.models.factory.ConnectionModel import ConnectionModel
from flow_orchestrator.node_system.Node import Node
from flow_orchestrator.node_system.NodeEvent import NodeEvent
from flow_orchestrator.node_system.NodeFunction import NodeFunction, error_record


def build_graph(node_names: Iterable[str], connections: List[ConnectionModel]) -> nx.MultiDiGraph:
    """Create a producer -> consumer graph; each edge remembers its connection index."""
    graph = nx.MultiDiGraph()
    graph.add_nodes_from(node_names)
    for index, connection in enumerate(connections):
        for source in connection.from_:
            for target in connection.to:
                graph.add_edge(source, target, connection=index)
    return graph


def find_root_nodes(functions: Dict[str, NodeFunction], connections: List[ConnectionModel]) -> List[Tuple[str, list]]:
    """
    Work out which functions start a fresh run and with which arguments.

    Functions declaring ``args`` are explicit roots and disable discovery.
    Otherwise every function no connection ever targets is started with no
    arguments. Events never start on their own.
    """
    explicit = [
        (name, list(node.data.args))
        for name, node in functions.items()
        if node.data is not None and node.data.is_root
    ]
    if explicit:
        return explicit

    graph = build_graph(functions.keys(), connections)
    return [
        (name, [])
        for name in functions
        if graph.in_degree(name) == 0
    ]


def dependents_by_name(connections: List[ConnectionModel]) -> Dict[str, List[int]]:
    """Map each node name to the indexes of the connections depending on it."""
    dependents: Dict[str, List[int]] = {}
    for index, connection in enumerate(connections):
        for name in dict.fromkeys(connection.from_):
            dependents.setdefault(name, []).append(index)
    return dependents


__all__ = [
    "Node",
    "NodeEvent",
    "NodeFunction",
    "error_record",
    "build_graph",
    "find_root_nodes",
    "dependents_by_name",
]
