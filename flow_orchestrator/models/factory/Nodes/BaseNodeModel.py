from typing import Optional

from pydantic import BaseModel, ConfigDict


class ModelOrchestratorNodeTypesModel:
    FUNCTION = 'function'
    EVENT = 'event'


class BaseNodeModel(BaseModel):
    """
    Base model for declared nodes.

    Unknown keys are rejected so that a misspelled option (e.g. ``throw``)
    fails validation instead of being silently ignored.
    """
    model_config = ConfigDict(extra='forbid')

    ref: Optional[str] = None

    def resolve_ref(self, name: str) -> str:
        """Name of the underlying callable/channel (defaults to the node name)."""
        return self.ref or name
