"""Cutover plan and step models.

A plan aggregates pre-checks, DNS changes, post-checks and rollback
triggers. ``build_steps`` flattens them into the ordered step sequence the
orchestrator executes: every pre-check, then every DNS change, then every
post-check, each group in list order.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cutover_engine.domain.dns import DNSChange
from cutover_engine.domain.health import HealthCheck
from cutover_engine.domain.triggers import RollbackTrigger
from cutover_engine.utils.time import utc_now

DEFAULT_PLAN_TIMEOUT_SECONDS = 30 * 60
DEFAULT_PROPAGATION_WAIT_SECONDS = 5 * 60


class CutoverStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (CutoverStatus.COMPLETED, CutoverStatus.FAILED, CutoverStatus.ROLLED_BACK)

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


_ALLOWED_TRANSITIONS: dict[CutoverStatus, frozenset[CutoverStatus]] = {
    CutoverStatus.PENDING: frozenset({CutoverStatus.RUNNING}),
    CutoverStatus.RUNNING: frozenset(
        {CutoverStatus.COMPLETED, CutoverStatus.FAILED, CutoverStatus.ROLLED_BACK}
    ),
    CutoverStatus.COMPLETED: frozenset({CutoverStatus.ROLLED_BACK}),
    CutoverStatus.FAILED: frozenset(),
    CutoverStatus.ROLLED_BACK: frozenset(),
}


class CutoverStepType(str, Enum):
    PRE_CHECK = "pre_check"
    DNS_CHANGE = "dns_change"
    POST_CHECK = "post_check"

    @property
    def display_name(self) -> str:
        return _STEP_DISPLAY_NAMES[self]


_STEP_DISPLAY_NAMES = {
    CutoverStepType.PRE_CHECK: "Pre-Cutover Check",
    CutoverStepType.DNS_CHANGE: "DNS Change",
    CutoverStepType.POST_CHECK: "Post-Cutover Check",
}


class CutoverStepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class InvalidTransitionError(ValueError):
    def __init__(self, current: CutoverStatus, target: CutoverStatus) -> None:
        super().__init__(f"Invalid cutover status transition: {current.value} -> {target.value}")
        self.current = current
        self.target = target


class CutoverStep(BaseModel):
    order: int
    type: CutoverStepType
    description: str
    reference_id: str
    status: CutoverStepStatus = CutoverStepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_seconds: float = 0.0
    output: str = ""
    error: str = ""

    @property
    def is_health_check(self) -> bool:
        return self.type in (CutoverStepType.PRE_CHECK, CutoverStepType.POST_CHECK)

    def mark_running(self) -> None:
        self.status = CutoverStepStatus.RUNNING
        self.started_at = utc_now()

    def mark_completed(self, output: str = "") -> None:
        self._finish(CutoverStepStatus.COMPLETED)
        self.output = output

    def mark_failed(self, error: str, output: str = "") -> None:
        self._finish(CutoverStepStatus.FAILED)
        self.error = error
        self.output = output

    def mark_skipped(self, output: str = "") -> None:
        self._finish(CutoverStepStatus.SKIPPED)
        self.output = output

    def _finish(self, status: CutoverStepStatus) -> None:
        self.status = status
        self.completed_at = utc_now()
        if self.started_at is not None:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()


class CutoverPlan(BaseModel):
    id: str
    bundle_id: str
    name: str = ""
    description: str = ""
    pre_checks: list[HealthCheck] = Field(default_factory=list)
    dns_changes: list[DNSChange] = Field(default_factory=list)
    post_checks: list[HealthCheck] = Field(default_factory=list)
    rollback_triggers: list[RollbackTrigger] = Field(default_factory=list)
    steps: list[CutoverStep] = Field(default_factory=list)
    dry_run: bool = False
    dns_propagation_wait_seconds: float = DEFAULT_PROPAGATION_WAIT_SECONDS
    timeout_seconds: float | None = DEFAULT_PLAN_TIMEOUT_SECONDS
    current_step_index: int = 0
    status: CutoverStatus = CutoverStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    executed_at: datetime | None = None
    completed_at: datetime | None = None
    rolled_back_at: datetime | None = None
    error: str | None = None

    @classmethod
    def from_yaml(cls, data: dict[str, Any]) -> "CutoverPlan":
        return cls.model_validate(data)

    def add_pre_check(self, check: HealthCheck) -> None:
        self.pre_checks.append(check)
        self._touch()

    def add_dns_change(self, change: DNSChange) -> None:
        self.dns_changes.append(change)
        self._touch()

    def add_post_check(self, check: HealthCheck) -> None:
        self.post_checks.append(check)
        self._touch()

    def add_rollback_trigger(self, trigger: RollbackTrigger) -> None:
        self.rollback_triggers.append(trigger)
        self._touch()

    def derive_steps(self) -> list[CutoverStep]:
        """Return the step sequence for the current lists without storing it."""
        steps: list[CutoverStep] = []
        for check in self.pre_checks:
            steps.append(
                CutoverStep(
                    order=len(steps) + 1,
                    type=CutoverStepType.PRE_CHECK,
                    description=check.name,
                    reference_id=check.id,
                )
            )
        for change in self.dns_changes:
            steps.append(
                CutoverStep(
                    order=len(steps) + 1,
                    type=CutoverStepType.DNS_CHANGE,
                    description=f"{change.record_type} record for {change.full_name}",
                    reference_id=change.id,
                )
            )
        for check in self.post_checks:
            steps.append(
                CutoverStep(
                    order=len(steps) + 1,
                    type=CutoverStepType.POST_CHECK,
                    description=check.name,
                    reference_id=check.id,
                )
            )
        return steps

    def build_steps(self) -> None:
        self.steps = self.derive_steps()
        self._touch()

    @property
    def total_steps(self) -> int:
        return len(self.steps)

    @property
    def completed_steps(self) -> int:
        return sum(1 for step in self.steps if step.status == CutoverStepStatus.COMPLETED)

    @property
    def progress(self) -> float:
        if not self.steps:
            return 0.0
        return self.completed_steps / len(self.steps) * 100

    def can_start(self) -> bool:
        return self.status == CutoverStatus.PENDING

    def has_auto_rollback(self) -> bool:
        return any(t.enabled and t.auto_rollback for t in self.rollback_triggers)

    def find_health_check(self, step: CutoverStep) -> HealthCheck | None:
        checks = self.pre_checks if step.type == CutoverStepType.PRE_CHECK else self.post_checks
        for check in checks:
            if check.id == step.reference_id:
                return check
        return None

    def find_dns_change(self, change_id: str) -> DNSChange | None:
        for change in self.dns_changes:
            if change.id == change_id:
                return change
        return None

    def is_last_dns_step(self, index: int) -> bool:
        return all(step.type != CutoverStepType.DNS_CHANGE for step in self.steps[index + 1 :])

    def transition(self, target: CutoverStatus) -> None:
        if target not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.status, target)
        self.status = target
        now = utc_now()
        self.updated_at = now
        if target == CutoverStatus.RUNNING:
            self.executed_at = now
        elif target == CutoverStatus.COMPLETED:
            self.completed_at = now
        elif target == CutoverStatus.ROLLED_BACK:
            self.rolled_back_at = now

    def record_error(self, message: str) -> None:
        # Set once at the terminal transition; later failures do not overwrite it.
        if self.error is None:
            self.error = message

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.id:
            errors.append("cutover plan ID is required")
        if not self.bundle_id:
            errors.append("bundle ID is required")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            errors.append("timeout must be positive")
        if self.dns_propagation_wait_seconds < 0:
            errors.append("DNS propagation wait must be non-negative")

        for label, checks in (("pre-check", self.pre_checks), ("post-check", self.post_checks)):
            errors.extend(_duplicate_errors(label, [c.id for c in checks]))
            for check in checks:
                errors.extend(f"{label} {check.name or check.id}: {e}" for e in check.validation_errors())

        errors.extend(_duplicate_errors("DNS change", [c.id for c in self.dns_changes]))
        for index, change in enumerate(self.dns_changes, start=1):
            errors.extend(f"DNS change {index}: {e}" for e in change.validation_errors())

        errors.extend(_duplicate_errors("rollback trigger", [t.id for t in self.rollback_triggers]))
        for trigger in self.rollback_triggers:
            errors.extend(
                f"rollback trigger {trigger.id}: {e}" for e in trigger.validation_errors()
            )

        for step in self.steps:
            if step.is_health_check:
                found = self.find_health_check(step) is not None
            else:
                found = self.find_dns_change(step.reference_id) is not None
            if not found:
                errors.append(
                    f"step {step.order} references unknown {step.type.value}: {step.reference_id}"
                )
        return errors

    def _touch(self) -> None:
        self.updated_at = utc_now()


def _duplicate_errors(label: str, ids: list[str]) -> list[str]:
    seen: set[str] = set()
    errors: list[str] = []
    for item in ids:
        if item in seen:
            errors.append(f"duplicate {label} ID: {item}")
        seen.add(item)
    return errors
