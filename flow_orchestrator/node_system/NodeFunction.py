from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List, TYPE_CHECKING

from flow_orchestrator.exceptions import ExecutionError
from flow_orchestrator.node_system.Node import Node
from flow_orchestrator.util.const import TRANSFORMATION_KEY_ARGS, TRANSFORMATION_KEY_RESULT

if TYPE_CHECKING:
    from flow_orchestrator.execution.transition import TransitionStage

logger = logging.getLogger(__name__)


def error_record(error: BaseException) -> Dict[str, str]:
    """Serializable description of a caught exception."""
    return {
        'type': type(error).__name__,
        'message': str(error),
    }


class NodeFunction(Node):
    """
    Function node: wraps a caller-supplied callable.

    Calling the node runs the callable (sync or async) with the already
    transformed inputs, then the optional output transformation. A raised
    exception is returned as an ``{"error": ...}`` record; the coordinator
    decides whether it is fatal.
    """

    def __init__(self, function: Callable, stage: "TransitionStage", **kwargs):
        super().__init__(**kwargs)
        self.function = function
        self.stage = stage

    async def __call__(self, inputs: List[Any]) -> Dict[str, Any]:
        return await self.process(inputs)

    @property
    def throws(self) -> bool:
        return bool(self.data is not None and self.data.throws)

    @property
    def has_inputs_transformation(self) -> bool:
        return bool(self.data is not None and self.data.inputsTransformation)

    async def transform_inputs(self, inputs: List[Any]) -> List[Any]:
        """Apply ``inputsTransformation``; it must yield an argument list."""
        if not self.has_inputs_transformation:
            return list(inputs)
        args = await self.stage.evaluate(
            self.data.inputsTransformation,
            {TRANSFORMATION_KEY_ARGS: list(inputs)},
            label=f"Function {self.name} inputsTransformation",
            node=self.name,
        )
        if not isinstance(args, list):
            raise ExecutionError(
                f"Function {self.name} inputsTransformation must return a list of "
                f"arguments, got {type(args).__name__}",
                node=self.name,
            )
        return args

    async def process(self, inputs: List[Any]) -> Dict[str, Any]:
        try:
            result = self.function(*inputs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("Function %s raised %s: %s", self.name, type(e).__name__, e)
            return {'error': error_record(e), 'exception': e}

        if self.data is not None and self.data.outputTransformation:
            result = await self.stage.evaluate(
                self.data.outputTransformation,
                {TRANSFORMATION_KEY_RESULT: result},
                label=f"Function {self.name} outputTransformation",
                node=self.name,
            )
        return {'result': result}
