from typing import Any, List, Optional

from pydantic import Field

from flow_orchestrator.models.factory.Nodes.BaseNodeModel import BaseNodeModel


class FunctionNodeModel(BaseNodeModel):
    """
    Declared function node.

    Attributes:
        ref: Name of the constructor callable (defaults to the node name)
        args: Explicit root arguments; presence marks the node as a root
        throws: When True a raised exception aborts the run
        inputsTransformation: Expression mapping ``{"args": [...]}`` to a list
        outputTransformation: Expression mapping ``{"result": value}`` to the output
    """
    args: Optional[List[Any]] = None
    throws: bool = False
    inputsTransformation: Optional[str] = Field(default=None, min_length=1)
    outputTransformation: Optional[str] = Field(default=None, min_length=1)

    @property
    def is_root(self) -> bool:
        return self.args is not None
