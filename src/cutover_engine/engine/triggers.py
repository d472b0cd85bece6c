"""Rollback trigger evaluation for failed steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cutover_engine.domain.plan import CutoverPlan, CutoverStep, CutoverStepType
from cutover_engine.domain.triggers import RollbackConditionType, RollbackTrigger

logger = logging.getLogger(__name__)


@dataclass
class TriggerEvaluation:
    should_rollback: bool = False
    reason: str = ""
    matched: list[RollbackTrigger] = field(default_factory=list)
    alerts: list[RollbackTrigger] = field(default_factory=list)


def failure_reason(step: CutoverStep) -> str:
    return f"{step.type.display_name} failed: {step.description}: {step.error}"


def active_triggers(plan: CutoverPlan) -> list[RollbackTrigger]:
    """Enabled triggers in evaluation order (ascending priority, then list order)."""
    enabled = [t for t in plan.rollback_triggers if t.enabled]
    return sorted(enabled, key=lambda t: t.priority)


def _matches(trigger: RollbackTrigger, step: CutoverStep) -> bool:
    if trigger.condition_type == RollbackConditionType.HEALTH_CHECK:
        return step.type == CutoverStepType.POST_CHECK
    if trigger.condition_type == RollbackConditionType.TIMEOUT:
        # The plan-wide timeout handles these.
        return False
    # Out-of-band triggers that already fired keep requesting rollback.
    return trigger.triggered and trigger.auto_rollback


def evaluate_step_failure(plan: CutoverPlan, step: CutoverStep) -> TriggerEvaluation:
    """Decide whether a failed step rolls the plan back.

    A failed post-check always rolls back. Triggers add rollback
    conditions for the other step types; pre-check failures never roll
    back because nothing has been applied yet. Matching triggers are fired
    with the failure reason.
    """
    reason = failure_reason(step)
    evaluation = TriggerEvaluation(reason=reason)

    for trigger in active_triggers(plan):
        if not _matches(trigger, step):
            continue
        if trigger.fire(reason):
            logger.info("Rollback trigger %s fired: %s", trigger.id, reason)
        if trigger.auto_rollback:
            evaluation.matched.append(trigger)
        else:
            evaluation.alerts.append(trigger)

    if evaluation.matched:
        evaluation.reason = evaluation.matched[0].triggered_reason or reason

    if step.type == CutoverStepType.POST_CHECK:
        evaluation.should_rollback = True
    elif step.type == CutoverStepType.DNS_CHANGE:
        evaluation.should_rollback = bool(evaluation.matched)
    return evaluation
