from typing import Optional

from pydantic import BaseModel, ConfigDict

from flow_orchestrator.execution.cancellation import CancellationToken


class ModelRunOptions(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

    cancellation_token: Optional[CancellationToken] = None
    debug: bool = False
