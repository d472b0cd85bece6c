"""Rollback trigger models."""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from cutover_engine.utils.time import utc_now


class RollbackConditionType(str, Enum):
    HEALTH_CHECK = "health_check"
    ERROR_RATE = "error_rate"
    LATENCY = "latency"
    TIMEOUT = "timeout"
    MANUAL = "manual"
    CUSTOM = "custom"


METRIC_CONDITIONS = frozenset({RollbackConditionType.ERROR_RATE, RollbackConditionType.LATENCY})


class RollbackTrigger(BaseModel):
    """A condition under which a cutover should be rolled back.

    ``auto_rollback=False`` makes the trigger alert-only: it is recorded as
    triggered but never starts a rollback by itself.
    """

    id: str
    name: str = ""
    description: str = ""
    condition: str = ""
    condition_type: RollbackConditionType = RollbackConditionType.HEALTH_CHECK
    threshold: float = 0.0
    threshold_unit: str = ""
    metric_name: str = ""
    health_check_id: str = ""
    consecutive_failures: int = 3
    window_seconds: float = 300.0
    auto_rollback: bool = True
    enabled: bool = True
    priority: int = Field(default=10, description="Lower values are evaluated first.")
    triggered: bool = False
    triggered_at: datetime | None = None
    triggered_reason: str = ""

    @property
    def label(self) -> str:
        return self.name or self.description or self.id

    def fire(self, reason: str) -> bool:
        """Record activation; returns False if the trigger had already fired."""
        if self.triggered:
            return False
        self.triggered = True
        self.triggered_at = utc_now()
        self.triggered_reason = reason
        return True

    def watching(self, since: datetime | None, now: datetime | None = None) -> bool:
        """True while ``now`` is inside the evaluation window opened at ``since``."""
        if since is None or self.window_seconds <= 0:
            return True
        return (now or utc_now()) - since <= timedelta(seconds=self.window_seconds)

    def breached_by(self, value: float) -> bool:
        return self.condition_type in METRIC_CONDITIONS and value > self.threshold

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.id:
            errors.append("rollback trigger ID is required")
        if not self.description and not self.name:
            errors.append("rollback trigger description or name is required")

        if self.condition_type == RollbackConditionType.HEALTH_CHECK:
            if not self.health_check_id:
                errors.append("health check ID is required for health check triggers")
            if self.consecutive_failures <= 0:
                errors.append("consecutive failures must be positive")
        elif self.condition_type in METRIC_CONDITIONS:
            if self.threshold <= 0:
                errors.append("threshold must be positive")
            if not self.metric_name:
                errors.append("metric name is required for metric-based triggers")
        elif self.condition_type == RollbackConditionType.CUSTOM:
            if not self.condition.strip():
                errors.append("condition expression is required for custom triggers")
        return errors


def new_rollback_trigger(
    id: str, description: str, auto_rollback: bool = True, **kwargs: Any
) -> RollbackTrigger:
    return RollbackTrigger(id=id, description=description, auto_rollback=auto_rollback, **kwargs)


def new_health_check_trigger(
    id: str, health_check_id: str, consecutive_failures: int = 3, auto_rollback: bool = True
) -> RollbackTrigger:
    return new_rollback_trigger(
        id,
        "Rollback on health check failure",
        auto_rollback,
        condition_type=RollbackConditionType.HEALTH_CHECK,
        health_check_id=health_check_id,
        consecutive_failures=consecutive_failures,
        condition=f"health_check.failures >= {consecutive_failures}",
    )


def new_error_rate_trigger(
    id: str, threshold_percent: float, auto_rollback: bool = True
) -> RollbackTrigger:
    return new_rollback_trigger(
        id,
        "Rollback on high error rate",
        auto_rollback,
        condition_type=RollbackConditionType.ERROR_RATE,
        threshold=threshold_percent,
        threshold_unit="%",
        metric_name="error_rate",
        condition=f"error_rate > {threshold_percent:g}%",
    )


def new_latency_trigger(id: str, threshold_ms: float, auto_rollback: bool = True) -> RollbackTrigger:
    return new_rollback_trigger(
        id,
        "Rollback on high latency",
        auto_rollback,
        condition_type=RollbackConditionType.LATENCY,
        threshold=threshold_ms,
        threshold_unit="ms",
        metric_name="p99_latency",
        condition=f"p99_latency > {threshold_ms:g}ms",
    )


def new_manual_trigger(id: str, description: str = "Operator-requested rollback") -> RollbackTrigger:
    return new_rollback_trigger(
        id, description, True, condition_type=RollbackConditionType.MANUAL
    )
