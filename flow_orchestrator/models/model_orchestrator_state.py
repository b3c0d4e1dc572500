"""
State store models.

The store is the single mutable record of a run. It is kept as pydantic
models while the run is in flight and handed out as plain dict snapshots
(see ``snapshot``) on every notification and at settlement.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class VariablesModel(BaseModel):
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    global_: Dict[str, Any] = Field(default_factory=dict, alias='global')
    locals: List[Dict[str, Any]] = Field(default_factory=list)


class FinalsModel(BaseModel):
    """Append-only output history per function, event and sink connection."""
    model_config = ConfigDict(extra='forbid')

    functions: Dict[str, List[Any]] = Field(default_factory=dict)
    events: Dict[str, List[Any]] = Field(default_factory=dict)
    connections: Dict[int, List[Any]] = Field(default_factory=dict)


class InvocationModel(BaseModel):
    """An in-flight function call, re-issued verbatim on resume."""
    model_config = ConfigDict(extra='forbid')

    id: str
    name: str
    inputs: List[Any] = Field(default_factory=list)
    transformed: bool = False


class FiringModel(BaseModel):
    """A dequeued dependency set whose transition has not been applied yet."""
    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    id: str
    connection: int = Field(ge=0)
    from_: List[Any] = Field(alias='from')


class ModelOrchestratorState(BaseModel):
    model_config = ConfigDict(extra='forbid')

    variables: VariablesModel = Field(default_factory=VariablesModel)
    finals: FinalsModel = Field(default_factory=FinalsModel)
    errors: Dict[str, List[Any]] = Field(default_factory=dict)
    waitings: List[Dict[str, List[Any]]] = Field(default_factory=list)
    runnings: List[InvocationModel] = Field(default_factory=list)
    firings: List[FiringModel] = Field(default_factory=list)
    received: Dict[str, bool] = Field(default_factory=dict)

    @classmethod
    def empty(cls, connection_count: int) -> "ModelOrchestratorState":
        """Fresh store sized for the given number of connections."""
        return cls(
            variables=VariablesModel(locals=[{} for _ in range(connection_count)]),
            waitings=[{} for _ in range(connection_count)],
        )

    def snapshot(self) -> Dict[str, Any]:
        return snapshot(self)


def copy_containers(value: Any) -> Any:
    """Copy dicts/lists/tuples recursively; other leaves are shared."""
    if isinstance(value, dict):
        return {k: copy_containers(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [copy_containers(v) for v in value]
    return value


def snapshot(state: Optional[ModelOrchestratorState]) -> Optional[Dict[str, Any]]:
    """
    Plain-dict copy of the store that the caller may keep and mutate.

    Opaque values produced by callables (functions, objects) are shared,
    everything else is a fresh container.
    """
    if state is None:
        return None
    return {
        'variables': {
            'global': copy_containers(state.variables.global_),
            'locals': copy_containers(state.variables.locals),
        },
        'finals': {
            'functions': copy_containers(state.finals.functions),
            'events': copy_containers(state.finals.events),
            'connections': copy_containers(state.finals.connections),
        },
        'errors': copy_containers(state.errors),
        'waitings': copy_containers(state.waitings),
        'runnings': [
            {
                'id': entry.id,
                'name': entry.name,
                'inputs': copy_containers(entry.inputs),
                'transformed': entry.transformed,
            }
            for entry in state.runnings
        ],
        'firings': [
            {
                'id': firing.id,
                'connection': firing.connection,
                'from': copy_containers(firing.from_),
            }
            for firing in state.firings
        ],
        'received': dict(state.received),
    }
