"""
Public entry point: Orchestrator and RunHandle.

Example:
    orchestrator = Orchestrator(functions={"fn1": fn1, "fn2": fn2})
    handle = orchestrator.run({
        "functions": {"fn1": {"args": ["Hello"]}, "fn2": {}},
        "connections": [{"from": ["fn1"], "to": ["fn2"]}],
    })
    handle.subscribe("state.change", lambda detail: save(detail["state"]))
    result = await handle
    result["state"]["finals"]["functions"]["fn2"]
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Union

import pydantic

from flow_orchestrator.exceptions import OrchestratorError, ProtocolError, ValidationError
from flow_orchestrator.execution import (
    ExpressionEvaluator,
    RunCoordinator,
    RunEventDispatcher,
    TransitionStage,
)
from flow_orchestrator.graph_flow import build, load_state, schema_errors
from flow_orchestrator.models.factory.OrchestratorConfigModel import OrchestratorConfigModel
from flow_orchestrator.models.model_run_options import ModelRunOptions

logger = logging.getLogger(__name__)


class RunHandle:
    """
    Awaitable handle of one run.

    Awaiting it yields ``{"state": snapshot}`` or raises the
    OrchestratorError that made the run reject (its ``state`` attribute
    holds the snapshot taken at detection time).
    """

    def __init__(
        self,
        future: asyncio.Future,
        coordinator: Optional[RunCoordinator] = None,
        dispatcher: Optional[RunEventDispatcher] = None,
    ):
        self._future = future
        self._coordinator = coordinator
        self._dispatcher = dispatcher

    @classmethod
    def rejected(cls, error: OrchestratorError) -> "RunHandle":
        """A handle whose run never started."""
        future = asyncio.get_running_loop().create_future()
        future.set_exception(error)
        return cls(future)

    def __await__(self):
        return self._future.__await__()

    def done(self) -> bool:
        return self._future.done()

    @property
    def state(self) -> Optional[Dict[str, Any]]:
        """Snapshot of the current state, None if the run never started."""
        if self._coordinator is None:
            return None
        return self._coordinator.snapshot()

    def subscribe(self, name: str, listener: Callable[[Any], None]) -> Callable[[], None]:
        """
        Listen to ``state.change``, ``results``, ``results.<node>``,
        ``errors``, ``errors.<node>``, ``success`` or ``error``.

        Returns:
            A callable removing the listener
        """
        if self._dispatcher is None:
            return lambda: None
        return self._dispatcher.subscribe(name, listener)

    on = subscribe

    def unsubscribe(self, name: str, listener: Callable[[Any], None]) -> None:
        if self._dispatcher is not None:
            self._dispatcher.unsubscribe(name, listener)

    def dispatch(self, channel: str, payload: Any = None) -> None:
        """Raise every event bound to ``channel`` with ``payload``."""
        if self._coordinator is None:
            logger.warning("Ignoring dispatch to %s: the run never started", channel)
            return
        # Delivered after the run start and in call order
        self._future.get_loop().call_soon(self._coordinator.receive_event, channel, payload)


class Orchestrator:
    """
    Runs declarative graphs of caller-supplied callables.

    Args:
        functions: Constructor callables by name (sync or async)
        evaluator: Expression evaluator; defaults to the Jinja2 TemplateEvaluator
    """

    def __init__(
        self,
        functions: Optional[Mapping[str, Callable]] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
    ):
        self.functions: Dict[str, Callable] = dict(functions or {})
        self.evaluator = evaluator
        self._active: Optional[RunHandle] = None

    @property
    def running(self) -> bool:
        return self._active is not None and not self._active.done()

    def run(
        self,
        config: Union[Mapping[str, Any], OrchestratorConfigModel],
        options: Optional[Union[Mapping[str, Any], ModelRunOptions]] = None,
        prior_state: Optional[Mapping[str, Any]] = None,
    ) -> RunHandle:
        """
        Start a run inside the running event loop.

        Validation happens synchronously; a problem rejects the returned
        handle before any callable is invoked.

        Args:
            config: Graph config (functions, events, connections)
            options: ModelRunOptions or a dict of its fields
            prior_state: A snapshot to resume from

        Returns:
            RunHandle
        """
        loop = asyncio.get_running_loop()
        if self.running:
            logger.error("run() called while another run is in progress")
            return RunHandle.rejected(ProtocolError("The orchestrator already has a run in progress"))

        try:
            run_options = self._parse_options(options)
            stage = TransitionStage(self.evaluator)
            graph = build(config, self.functions, stage, debug=run_options.debug)
            store = load_state(prior_state, graph)
        except ValidationError as e:
            return RunHandle.rejected(e)

        future = loop.create_future()
        dispatcher = RunEventDispatcher()
        coordinator = RunCoordinator(
            graph,
            store,
            stage,
            dispatcher,
            future,
            cancellation_token=run_options.cancellation_token,
            resumed=prior_state is not None,
        )
        handle = RunHandle(future, coordinator, dispatcher)
        self._active = handle
        # Listeners subscribed right after run() see the first notification
        loop.call_soon(coordinator.start)
        return handle

    @staticmethod
    def _parse_options(options: Optional[Union[Mapping[str, Any], ModelRunOptions]]) -> ModelRunOptions:
        if options is None:
            return ModelRunOptions()
        if isinstance(options, ModelRunOptions):
            return options
        try:
            return ModelRunOptions.model_validate(dict(options))
        except pydantic.ValidationError as e:
            raise ValidationError.from_errors(schema_errors(e, "options.")) from e
