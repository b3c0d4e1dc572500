"""
RunCoordinator - Event-based execution engine for one orchestrator run.

Nodes run as soon as a connection delivers their inputs. The coordinator
owns the state store while the run is in flight: every mutation happens
synchronously inside one callback or task step, so no locks are needed.

Two counters track outstanding work, unsettled function invocations and
in-progress connection firings. The run resolves once both reach zero
(re-checked after every decrement), and rejects on a fatal error or when its
cancellation token fires.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, List, Optional, Set

from flow_orchestrator.exceptions import (
    CancellationError,
    ExecutionError,
    OrchestratorError,
    ProtocolError,
)
from flow_orchestrator.execution.cancellation import CancellationToken
from flow_orchestrator.execution.event_dispatcher import RunEventDispatcher
from flow_orchestrator.execution.input_tracker import ConnectionInputTracker
from flow_orchestrator.execution.transition import TransitionResult, TransitionStage
from flow_orchestrator.models.factory.GraphFlowModel import GraphFlowModel
from flow_orchestrator.models.model_orchestrator_state import (
    FiringModel,
    InvocationModel,
    ModelOrchestratorState,
)
from flow_orchestrator.node_system import dependents_by_name, find_root_nodes
from flow_orchestrator.util.const import EVENT_ERROR, EVENT_STATE_CHANGE, EVENT_SUCCESS

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


class RunCoordinator:
    """
    Drives one run of a built graph against a state store.

    Lifecycle:
        coordinator = RunCoordinator(graph, store, stage, dispatcher, future)
        loop.call_soon(coordinator.start)
        ...
        coordinator.receive_event("channel", payload)
        result = await future   # {"state": snapshot}
    """

    def __init__(
        self,
        graph: GraphFlowModel,
        store: ModelOrchestratorState,
        stage: TransitionStage,
        dispatcher: RunEventDispatcher,
        future: asyncio.Future,
        *,
        cancellation_token: Optional[CancellationToken] = None,
        resumed: bool = False,
    ):
        self.graph = graph
        self.store = store
        self.stage = stage
        self.dispatcher = dispatcher
        self.future = future
        self.cancellation_token = cancellation_token
        self.resumed = resumed

        self._trackers: List[ConnectionInputTracker] = [
            ConnectionInputTracker(index, connection, store.waitings[index])
            for index, connection in enumerate(graph.connections)
        ]
        self._dependents = dependents_by_name(graph.connections)

        self._pending_invocations = 0
        self._pending_firings = 0
        self._settled = False
        self._tasks: Set[asyncio.Task] = set()

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def pending(self) -> int:
        return self._pending_invocations + self._pending_firings

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch roots (or re-issue in-flight work on resume)."""
        if self._settled:
            return
        token = self.cancellation_token
        if token is not None:
            if token.cancelled:
                self._cancel(token.reason)
                return
            token.add_callback(self._cancel)

        logger.info(
            "Starting run: functions=%d events=%d connections=%d resumed=%s",
            len(self.graph.functions), len(self.graph.events),
            len(self.graph.connections), self.resumed
        )

        if self.resumed:
            for invocation in list(self.store.runnings):
                self._dispatch_invocation(invocation)
            for firing in list(self.store.firings):
                self._dispatch_firing(firing)
        else:
            for name, args in find_root_nodes(self.graph.functions, self.graph.connections):
                self._schedule_invocation(name, args)

        # Buffers restored from a snapshot may already hold complete sets
        for tracker in self._trackers:
            self._drain(tracker)

        if self._settled:
            return
        self._emit_state_change()

        if self.pending == 0 and not self.graph.events:
            logger.debug("Nothing to run and no events declared")
            self._settle_success()
        elif self.pending == 0:
            logger.debug("Waiting for events: %s", list(self.graph.events))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def _accepting(self) -> bool:
        """Scheduling gate: false once settled or cancelled."""
        if self._settled:
            return False
        token = self.cancellation_token
        if token is not None and token.cancelled:
            self._cancel(token.reason)
            return False
        return True

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_invocation(self, name: str, inputs: List[Any]) -> None:
        if not self._accepting():
            return
        invocation = InvocationModel(id=_new_id(), name=name, inputs=list(inputs))
        self.store.runnings.append(invocation)
        self._dispatch_invocation(invocation)

    def _dispatch_invocation(self, invocation: InvocationModel) -> None:
        self._pending_invocations += 1
        logger.debug("Invoking %s (%s)", invocation.name, invocation.id)
        self._spawn(self._run_invocation(invocation), f"invocation_{invocation.name}_{invocation.id}")

    def _drain(self, tracker: ConnectionInputTracker) -> None:
        while tracker.is_ready and self._accepting():
            firing = FiringModel(id=_new_id(), connection=tracker.index, from_=tracker.take())
            self.store.firings.append(firing)
            self._dispatch_firing(firing)

    def _dispatch_firing(self, firing: FiringModel) -> None:
        self._pending_firings += 1
        logger.debug("Firing connection %d (%s)", firing.connection, firing.id)
        self._spawn(self._run_firing(firing), f"connection_{firing.connection}_{firing.id}")

    # ------------------------------------------------------------------
    # Function invocations
    # ------------------------------------------------------------------

    async def _run_invocation(self, invocation: InvocationModel) -> None:
        node = self.graph.functions[invocation.name]
        try:
            if not invocation.transformed and node.has_inputs_transformation:
                args = await node.transform_inputs(invocation.inputs)
                if self._settled:
                    return
                invocation.inputs = args
                invocation.transformed = True
                self._emit_state_change()
            record = await node(list(invocation.inputs))
        except OrchestratorError as e:
            self._fail(e)
            return
        except Exception as e:
            error = ExecutionError(f"Function {invocation.name}: {e}", node=invocation.name)
            error.__cause__ = e
            self._fail(error)
            return
        finally:
            self._pending_invocations -= 1

        if self._settled:
            logger.debug("Ignoring %s (%s) settled after the run", invocation.name, invocation.id)
            return
        self._complete_invocation(invocation, node, record)

    def _complete_invocation(self, invocation: InvocationModel, node, record: Dict[str, Any]) -> None:
        name = invocation.name
        self.store.runnings = [r for r in self.store.runnings if r.id != invocation.id]

        if 'error' in record:
            self.store.errors.setdefault(name, []).append(record['error'])
            self.dispatcher.emit_error(name, record['error'])
            if node.throws:
                error = ExecutionError(
                    f"Function {name} failed: {record['error']['message']}", node=name
                )
                error.__cause__ = record.get('exception')
                self._fail(error)
                return
            record = {'error': record['error']}
        else:
            self.store.finals.functions.setdefault(name, []).append(record['result'])
            self.dispatcher.emit_result(name, record['result'])

        self._route(name, record)
        self._emit_state_change()
        self._check_quiescence()

    def _route(self, name: str, record: Dict[str, Any]) -> None:
        """Hand an output record to every connection depending on ``name``."""
        for index in self._dependents.get(name, []):
            tracker = self._trackers[index]
            if tracker.receive(name, record):
                self._drain(tracker)

    # ------------------------------------------------------------------
    # Connection firings
    # ------------------------------------------------------------------

    async def _run_firing(self, firing: FiringModel) -> None:
        index = firing.connection
        connection = self.graph.connections[index]
        try:
            result = await self.stage.apply(
                index,
                connection,
                list(firing.from_),
                self.store.variables.global_,
                self.store.variables.locals[index],
            )
        except OrchestratorError as e:
            self._fail(e)
            return
        except Exception as e:
            error = ExecutionError(f"Connection {index} transition: {e}", connection=index)
            error.__cause__ = e
            self._fail(error)
            return
        finally:
            self._pending_firings -= 1

        if self._settled:
            return
        self._apply_transition(firing, result)

    def _apply_transition(self, firing: FiringModel, result: TransitionResult) -> None:
        index = firing.connection
        connection = self.graph.connections[index]
        self.store.firings = [f for f in self.store.firings if f.id != firing.id]

        if result.global_ is not None:
            self.store.variables.global_ = result.global_
        if result.local is not None:
            self.store.variables.locals[index] = result.local

        if not connection.to:
            self.store.finals.connections.setdefault(index, []).append(result.output)
        else:
            for target, inputs in zip(connection.to, result.to):
                if inputs is not None:
                    self._schedule_invocation(target, inputs)

        self._emit_state_change()
        self._check_quiescence()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def receive_event(self, channel: str, payload: Any) -> None:
        """Feed an externally raised payload to every event bound to ``channel``."""
        if self._settled:
            logger.warning("Ignoring dispatch to %s: the run has settled", channel)
            return
        nodes = [node for node in self.graph.events.values() if node.ref == channel]
        if not nodes:
            logger.warning("Ignoring dispatch to unknown channel %s", channel)
            return

        for node in nodes:
            if not self._accepting():
                return
            if node.once:
                if self.store.received.get(node.name):
                    self._fail(ProtocolError(
                        f"Event {node.name} can only be received once per run"
                    ))
                    return
                self.store.received[node.name] = True
            record = node.accept(payload)
            logger.debug("Event %s received on %s", node.name, channel)
            self.store.finals.events.setdefault(node.name, []).append(record['result'])
            self.dispatcher.emit_result(node.name, record['result'])
            self._route(node.name, record)

        if not self._settled:
            self._emit_state_change()

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return self.store.snapshot()

    def _emit_state_change(self) -> None:
        if self._settled or not self.dispatcher.has_listeners(EVENT_STATE_CHANGE):
            return
        self.dispatcher.emit(EVENT_STATE_CHANGE, {'state': self.snapshot()})

    def _check_quiescence(self) -> None:
        if not self._settled and self.pending == 0:
            self._settle_success()

    def _settle_success(self) -> None:
        state = self.snapshot()
        self._finish()
        logger.info("Run settled successfully")
        self.dispatcher.emit(EVENT_SUCCESS, {'state': state})
        self.dispatcher.close()
        if not self.future.done():
            self.future.set_result({'state': state})

    def _fail(self, error: OrchestratorError) -> None:
        if self._settled:
            logger.debug("Ignoring %s after settlement: %s", type(error).__name__, error)
            return
        state = self.snapshot()
        error.state = state
        self._finish()
        logger.error("Run failed with %s: %s", type(error).__name__, error)
        self.dispatcher.emit(EVENT_ERROR, {'state': state, 'error': error})
        self.dispatcher.close()
        if not self.future.done():
            self.future.set_exception(error)

    def _cancel(self, reason: Any) -> None:
        self._fail(CancellationError(reason))

    def _finish(self) -> None:
        self._settled = True
        if self.cancellation_token is not None:
            self.cancellation_token.remove_callback(self._cancel)
        if self._tasks:
            logger.debug("%d task(s) still running after settlement", len(self._tasks))
