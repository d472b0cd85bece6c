"""Cutover execution engine."""

from cutover_engine.engine.events import CutoverEvent, EventStream, EventType
from cutover_engine.engine.instructions import render_manual_instructions
from cutover_engine.engine.orchestrator import (
    CANCELLED_BY_USER,
    CreatePlanRequest,
    CutoverError,
    CutoverExecution,
    CutoverOrchestrator,
    ExecuteOptions,
    ExecutionResult,
    InvalidPlanStateError,
    PlanNotFoundError,
    PlanStatus,
    PlanValidationError,
    TriggerNotFoundError,
)
from cutover_engine.engine.triggers import TriggerEvaluation, evaluate_step_failure

__all__ = [
    "CANCELLED_BY_USER",
    "CreatePlanRequest",
    "CutoverError",
    "CutoverEvent",
    "CutoverExecution",
    "CutoverOrchestrator",
    "EventStream",
    "EventType",
    "ExecuteOptions",
    "ExecutionResult",
    "InvalidPlanStateError",
    "PlanNotFoundError",
    "PlanStatus",
    "PlanValidationError",
    "TriggerEvaluation",
    "TriggerNotFoundError",
    "evaluate_step_failure",
    "render_manual_instructions",
]
