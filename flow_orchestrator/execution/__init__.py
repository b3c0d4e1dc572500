"""
Event-based reactive execution module for flow-orchestrator.

This module implements the runtime execution model:
- Connections fire as soon as every dependency arrived
- Function invocations and transitions run concurrently on the event loop
- Runs settle on quiescence, on a fatal error or on cancellation
- Every intermediate state is a resumable snapshot

Architecture:
- ConnectionInputTracker: Buffers dependency arrivals per connection
- TransitionStage: Evaluates and validates transition expressions
- RunEventDispatcher: Per-run notification bus
- RunCoordinator: Main execution engine
"""

from flow_orchestrator.execution.cancellation import CancellationToken
from flow_orchestrator.execution.input_tracker import ConnectionInputTracker
from flow_orchestrator.execution.event_dispatcher import RunEventDispatcher
from flow_orchestrator.execution.transition import (
    ExpressionEvaluator,
    TransitionResult,
    TransitionStage,
)
from flow_orchestrator.execution.reactive_executor import RunCoordinator

__all__ = [
    "CancellationToken",
    "ConnectionInputTracker",
    "RunEventDispatcher",
    "ExpressionEvaluator",
    "TransitionResult",
    "TransitionStage",
    "RunCoordinator",
]
