"""Decomposition and execution engine."""

from mosaic.engine.agent import WorkItemAgent
from mosaic.engine.execution import Conversation, ExecutionLoop, RunResult, RunStatus
from mosaic.engine.interrupt import InterruptController
from mosaic.engine.payloads import DecompositionPlan, SubItemSpec, TurnAction
from mosaic.engine.planner import DecompositionPlanner
from mosaic.engine.propagation import CompletionPropagator
from mosaic.engine.resumption import ResumptionController, ResumptionReport

__all__ = [
    "WorkItemAgent",
    "Conversation",
    "ExecutionLoop",
    "RunResult",
    "RunStatus",
    "InterruptController",
    "DecompositionPlan",
    "SubItemSpec",
    "TurnAction",
    "DecompositionPlanner",
    "CompletionPropagator",
    "ResumptionController",
    "ResumptionReport",
]
