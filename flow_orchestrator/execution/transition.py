"""
TransitionStage - Bridges a connection firing to the expression evaluator.

A complete dependency set is turned into ``{from, global, local}``, handed
to the evaluator through the opaque value codec, and the returned object is
checked against the connection's declared ``to`` list before the
coordinator acts on it.
"""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

from flow_orchestrator.exceptions import ExecutionError
from flow_orchestrator.models.factory.ConnectionModel import ConnectionModel
from flow_orchestrator.util.const import (
    TRANSITION_KEY_FROM,
    TRANSITION_KEY_GLOBAL,
    TRANSITION_KEY_LOCAL,
    TRANSITION_KEY_TO,
)
from flow_orchestrator.util.opaque_codec import OpaqueCodec
from flow_orchestrator.util.template_parser import TemplateEvaluator

logger = logging.getLogger(__name__)


@runtime_checkable
class ExpressionEvaluator(Protocol):
    """
    Protocol for expression evaluators.

    ``evaluate`` may be a coroutine function or a plain function. It
    receives a JSON-shaped mapping and raises on syntax or evaluation
    errors.
    """

    def evaluate(self, expression: str, data: Mapping[str, Any]) -> Any:
        ...


@dataclass
class TransitionResult:
    """
    Validated transition output.

    Attributes:
        to: One entry per declared target: an argument list, or None to skip
        global_: Replacement for the global variables, None keeps them
        local: Replacement for the connection's locals, None keeps them
        output: The full (decoded) transition output
    """
    to: List[Optional[List[Any]]]
    global_: Optional[Dict[str, Any]]
    local: Optional[Dict[str, Any]]
    output: Any


def _dump(value: Any) -> str:
    return json.dumps(value, default=repr)


class TransitionStage:
    """
    Runs transitions and node transformations through one evaluator.

    Every failure raised here is an ExecutionError: malformed graph logic
    cannot be resolved locally, so the coordinator always treats it as
    fatal.
    """

    def __init__(self, evaluator: Optional[ExpressionEvaluator] = None):
        self.evaluator = evaluator or TemplateEvaluator()

    async def evaluate(
        self,
        expression: str,
        data: Mapping[str, Any],
        *,
        label: str,
        node: Optional[str] = None,
        connection: Optional[int] = None,
    ) -> Any:
        """Evaluate an expression with opaque values swapped for tokens."""
        codec = OpaqueCodec()
        try:
            output = self.evaluator.evaluate(expression, codec.encode(dict(data)))
            if inspect.isawaitable(output):
                output = await output
        except Exception as e:
            logger.error("%s failed: %s", label, e)
            raise ExecutionError(f"{label}: {e}", node=node, connection=connection) from e
        return codec.decode(output)

    async def apply(
        self,
        index: int,
        connection: ConnectionModel,
        payloads: List[Any],
        global_: Dict[str, Any],
        local: Dict[str, Any],
    ) -> TransitionResult:
        """
        Produce the validated transition output for one firing.

        Args:
            index: Connection index (used in error messages)
            connection: The connection being fired
            payloads: One payload per ``from`` occurrence, in declared order
            global_: Current global variables
            local: Current locals of this connection

        Returns:
            TransitionResult ready to be applied by the coordinator
        """
        if connection.transition is None:
            output = {TRANSITION_KEY_TO: [[payload] for payload in payloads]}
        else:
            output = await self.evaluate(
                connection.transition,
                {
                    TRANSITION_KEY_FROM: list(payloads),
                    TRANSITION_KEY_GLOBAL: global_,
                    TRANSITION_KEY_LOCAL: local,
                },
                label=f"Connection {index} transition",
                connection=index,
            )
        return self.validate_output(index, connection, output)

    def validate_output(self, index: int, connection: ConnectionModel, output: Any) -> TransitionResult:
        expected = len(connection.to)
        context = (
            f"\nReturned: {_dump(output)}"
            f"\nConnection: {_dump(connection.model_dump(by_alias=True, exclude_none=True))}"
        )

        if not isinstance(output, dict):
            if expected:
                raise ExecutionError(
                    f"Connection {index} transition must return an object with a "
                    f'"to" list of {expected} element(s), got {type(output).__name__}.{context}',
                    connection=index,
                )
            return TransitionResult(to=[], global_=None, local=None, output=output)

        to: List[Optional[List[Any]]] = []
        if expected:
            to = output.get(TRANSITION_KEY_TO)
            if not isinstance(to, list):
                raise ExecutionError(
                    f'Connection {index} transition: the returned "to" value must be a list '
                    f"of {expected} element(s), got {type(to).__name__}.{context}",
                    connection=index,
                )
            if len(to) != expected:
                raise ExecutionError(
                    f'Connection {index} transition: the returned "to" list must have the same '
                    f'length as "connection.to" (expected {expected}, got {len(to)}).{context}',
                    connection=index,
                )
            for position, inputs in enumerate(to):
                if inputs is not None and not isinstance(inputs, list):
                    raise ExecutionError(
                        f'Connection {index} transition: "to[{position}]" must be a list of input '
                        f"parameters or null, got {type(inputs).__name__}.{context}",
                        connection=index,
                    )

        variables = {}
        for key in (TRANSITION_KEY_GLOBAL, TRANSITION_KEY_LOCAL):
            value = output.get(key)
            if value is not None and not isinstance(value, dict):
                raise ExecutionError(
                    f'Connection {index} transition: the returned "{key}" value must be an '
                    f"object, got {type(value).__name__}.{context}",
                    connection=index,
                )
            variables[key] = value

        return TransitionResult(
            to=to,
            global_=variables[TRANSITION_KEY_GLOBAL],
            local=variables[TRANSITION_KEY_LOCAL],
            output=output,
        )
