"""Cutover orchestration.

``CutoverOrchestrator`` runs each plan as one background asyncio task:
pre-checks, then DNS changes, then post-checks, strictly in order. A
failed critical post-check (or a matching rollback trigger) reverts the
applied DNS changes in reverse order; a failed pre-check, a cancel request
or the plan timeout ends the plan as failed without touching DNS.

Plan, step and log mutations happen under one re-entrant lock that is
never held across an await. Every blocking point (health check I/O, retry
delays, the propagation wait, dry-run delays and provider calls) observes
the execution's ``CancelToken``.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
import uuid
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field

from cutover_engine.config import Settings, load_settings
from cutover_engine.dns.registry import DNSProviderRegistry
from cutover_engine.domain.dns import (
    MANUAL_PROVIDER,
    DNSChange,
    DNSProviderError,
    ProviderNotFoundError,
)
from cutover_engine.domain.health import HealthCheck, HealthCheckResult
from cutover_engine.domain.plan import (
    CutoverPlan,
    CutoverStatus,
    CutoverStep,
    CutoverStepStatus,
    CutoverStepType,
)
from cutover_engine.domain.triggers import RollbackConditionType, RollbackTrigger
from cutover_engine.engine.events import CutoverEvent, EventStream, EventType
from cutover_engine.engine.instructions import render_manual_instructions
from cutover_engine.engine.triggers import active_triggers, evaluate_step_failure
from cutover_engine.health.checker import HealthChecker
from cutover_engine.logging_utils import plan_logger
from cutover_engine.utils.cancellation import CancelToken, OperationCancelled
from cutover_engine.utils.time import format_duration, log_timestamp, utc_now

logger = logging.getLogger(__name__)

CANCELLED_BY_USER = "cancelled by user"


class CutoverError(Exception):
    """Base class for orchestration errors raised to callers."""

    def __init__(self, message: str, code: str = "cutover_error") -> None:
        super().__init__(message)
        self.code = code


class PlanValidationError(CutoverError):
    def __init__(self, issues: list[str]) -> None:
        super().__init__("plan validation failed: " + "; ".join(issues), "validation_failed")
        self.issues = list(issues)


class PlanNotFoundError(CutoverError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(f"cutover plan not found: {plan_id}", "plan_not_found")
        self.plan_id = plan_id


class InvalidPlanStateError(CutoverError):
    def __init__(self, message: str) -> None:
        super().__init__(message, "invalid_state")


class TriggerNotFoundError(CutoverError):
    def __init__(self, plan_id: str, trigger_id: str) -> None:
        super().__init__(
            f"rollback trigger not found: {trigger_id} (plan {plan_id})", "trigger_not_found"
        )


class CreatePlanRequest(BaseModel):
    bundle_id: str
    name: str = ""
    description: str = ""
    pre_checks: list[HealthCheck] = Field(default_factory=list)
    dns_changes: list[DNSChange] = Field(default_factory=list)
    post_checks: list[HealthCheck] = Field(default_factory=list)
    rollback_triggers: list[RollbackTrigger] = Field(default_factory=list)
    dry_run: bool = False
    dns_provider: str = ""
    dns_propagation_wait_seconds: float | None = None
    timeout_seconds: float | None = None


@dataclass
class ExecuteOptions:
    dry_run: bool = False
    manual: bool = False
    dns_provider: str = ""
    timeout_seconds: float | None = None
    rollback_on_dns_failure: bool | None = None
    on_event: Callable[[CutoverEvent], None] | None = None


@dataclass
class ExecutionResult:
    plan_id: str
    success: bool = False
    steps_completed: int = 0
    steps_failed: int = 0
    duration_seconds: float = 0.0
    rolled_back: bool = False
    error: str = ""
    logs: list[str] = field(default_factory=list)
    manual_instructions: list[str] = field(default_factory=list)


@dataclass
class PlanStatus:
    plan_id: str
    status: CutoverStatus
    current_step_index: int
    total_steps: int
    completed_steps: int
    progress: float
    error: str | None
    logs: list[str]
    executed_at: datetime | None
    completed_at: datetime | None
    rolled_back_at: datetime | None


class CutoverExecution:
    """Handle for one background run (forward execution or rollback) of a plan."""

    def __init__(
        self,
        plan: CutoverPlan,
        options: ExecuteOptions,
        dry_run: bool,
        logs: list[str] | None = None,
    ) -> None:
        self.plan = plan
        self.options = options
        self.dry_run = dry_run
        self.token = CancelToken()
        self.stream = EventStream()
        self.logs: list[str] = logs if logs is not None else []
        self.task: asyncio.Task[None] | None = None
        self.result: ExecutionResult | None = None
        self.started = time.monotonic()
        self.rollback_reason: str | None = None
        self.rolling_back = False

    @property
    def plan_id(self) -> str:
        return self.plan.id

    @property
    def done(self) -> bool:
        return self.result is not None

    def events(self) -> AsyncIterator[CutoverEvent]:
        return self.stream.subscribe()

    def request_rollback(self, reason: str) -> None:
        if self.rollback_reason is None:
            self.rollback_reason = reason
        self.token.cancel(f"rollback requested: {reason}")

    async def wait(self) -> ExecutionResult:
        if self.task is not None:
            await asyncio.shield(self.task)
        if self.result is None:
            raise RuntimeError(f"execution of plan {self.plan.id} finished without a result")
        return self.result


@dataclass
class _StepOutcome:
    passed: bool
    output: str = ""
    error: str = ""
    skipped: bool = False
    cancelled: bool = False
    critical: bool = True


class CutoverOrchestrator:
    def __init__(
        self,
        health_checker: HealthChecker | None = None,
        providers: DNSProviderRegistry | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._checker = health_checker or HealthChecker(self._settings.health)
        self._providers = providers or DNSProviderRegistry()
        self._lock = threading.RLock()
        self._plans: dict[str, CutoverPlan] = {}
        self._executions: dict[str, CutoverExecution] = {}

    @property
    def providers(self) -> DNSProviderRegistry:
        return self._providers

    # Plan registry

    def create_plan(self, request: CreatePlanRequest) -> CutoverPlan:
        execution_settings = self._settings.execution
        provider = (request.dns_provider or self._settings.dns.default_provider).strip().lower()
        changes = [
            change.model_copy(update={"provider": provider})
            if provider != MANUAL_PROVIDER and change.provider == MANUAL_PROVIDER
            else change
            for change in request.dns_changes
        ]
        plan = CutoverPlan(
            id=uuid.uuid4().hex[:8],
            bundle_id=request.bundle_id,
            name=request.name,
            description=request.description,
            dry_run=request.dry_run,
            dns_propagation_wait_seconds=(
                request.dns_propagation_wait_seconds
                if request.dns_propagation_wait_seconds is not None
                else execution_settings.dns_propagation_wait_seconds
            ),
            timeout_seconds=request.timeout_seconds or execution_settings.default_timeout_seconds,
        )
        for check in request.pre_checks:
            plan.add_pre_check(check)
        for change in changes:
            plan.add_dns_change(change)
        for check in request.post_checks:
            plan.add_post_check(check)
        for trigger in request.rollback_triggers:
            plan.add_rollback_trigger(trigger)
        plan.build_steps()

        self.register_plan(plan)
        logger.info("Created cutover plan %s for bundle %s", plan.id, plan.bundle_id)
        return plan

    def register_plan(self, plan: CutoverPlan) -> None:
        with self._lock:
            existing = self._plans.get(plan.id)
            if existing is not None and existing is not plan:
                raise CutoverError(f"cutover plan already registered: {plan.id}", "duplicate_plan")
            self._plans[plan.id] = plan

    def get_plan(self, plan_id: str) -> CutoverPlan:
        with self._lock:
            plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(plan_id)
        return plan

    def list_plans(self) -> list[CutoverPlan]:
        with self._lock:
            return list(self._plans.values())

    def get_execution(self, plan_id: str) -> CutoverExecution | None:
        with self._lock:
            return self._executions.get(plan_id)

    def get_status(self, plan_id: str) -> PlanStatus:
        plan = self.get_plan(plan_id)
        with self._lock:
            execution = self._executions.get(plan_id)
            return PlanStatus(
                plan_id=plan.id,
                status=plan.status,
                current_step_index=plan.current_step_index,
                total_steps=plan.total_steps,
                completed_steps=plan.completed_steps,
                progress=plan.progress,
                error=plan.error,
                logs=list(execution.logs) if execution else [],
                executed_at=plan.executed_at,
                completed_at=plan.completed_at,
                rolled_back_at=plan.rolled_back_at,
            )

    # Validation

    def validate_plan(
        self, plan: CutoverPlan, options: ExecuteOptions | None = None
    ) -> list[str]:
        """Return every problem that would stop ``plan`` from executing. No I/O."""
        options = options or ExecuteOptions()
        issues = plan.validation_errors()
        if options.dry_run or options.manual or plan.dry_run:
            return issues

        for name in self._provider_names(plan, options):
            if name not in self._providers:
                issues.append(f"DNS provider not available: {name}")
        return issues

    async def verify_providers(
        self, plan: CutoverPlan, options: ExecuteOptions | None = None
    ) -> dict[str, str | None]:
        """Check credentials of each provider the plan uses; map name to error or None."""
        options = options or ExecuteOptions()
        report: dict[str, str | None] = {}
        for name in self._provider_names(plan, options):
            try:
                await self._providers.get(name).validate_credentials()
            except DNSProviderError as exc:
                report[name] = str(exc)
            else:
                report[name] = None
        return report

    # Execution

    async def execute(
        self, plan_or_id: CutoverPlan | str, options: ExecuteOptions | None = None
    ) -> CutoverExecution:
        """Validate and start a plan; returns as soon as the background task is scheduled.

        In manual mode nothing runs: the returned execution is already
        finished and its result carries the operator instructions.
        """
        options = options or ExecuteOptions()
        plan = self._resolve_plan(plan_or_id)
        dry_run = options.dry_run or plan.dry_run

        issues = self.validate_plan(plan, options)
        if issues:
            raise PlanValidationError(issues)

        if options.manual:
            execution = CutoverExecution(plan, options, dry_run)
            execution.result = ExecutionResult(
                plan_id=plan.id,
                success=True,
                manual_instructions=render_manual_instructions(plan),
            )
            execution.stream.close()
            return execution

        with self._lock:
            if plan.status == CutoverStatus.RUNNING:
                raise InvalidPlanStateError("cutover already running")
            if not plan.can_start():
                raise InvalidPlanStateError(
                    f"cutover plan {plan.id} cannot start from status {plan.status.value}"
                )
            if not plan.steps:
                plan.build_steps()
            plan.current_step_index = 0
            plan.transition(CutoverStatus.RUNNING)
            execution = CutoverExecution(plan, options, dry_run)
            self._executions[plan.id] = execution

        mode = " (dry run)" if dry_run else ""
        self._log(execution, f"Starting cutover {plan.name or plan.id}{mode}")
        if not plan.has_auto_rollback():
            self._log(execution, "No automatic rollback triggers; only failed post-checks roll back")
        execution.task = asyncio.get_running_loop().create_task(
            self._run(execution), name=f"cutover-{plan.id}"
        )
        return execution

    async def run(
        self, plan_or_id: CutoverPlan | str, options: ExecuteOptions | None = None
    ) -> ExecutionResult:
        execution = await self.execute(plan_or_id, options)
        return await execution.wait()

    def cancel(self, plan_id: str) -> None:
        plan = self.get_plan(plan_id)
        with self._lock:
            execution = self._executions.get(plan_id)
            if execution is None or plan.status != CutoverStatus.RUNNING:
                raise InvalidPlanStateError(f"cutover {plan_id} is not running")
            if execution.rolling_back:
                raise InvalidPlanStateError(f"cutover {plan_id} is rolling back")
            plan.transition(CutoverStatus.FAILED)
            plan.record_error(CANCELLED_BY_USER)
        self._log(execution, "Cutover cancelled by user")
        execution.token.cancel(CANCELLED_BY_USER)

    async def rollback(self, plan_id: str, reason: str | None = None) -> CutoverExecution:
        """Revert a completed plan's DNS changes in the background."""
        reason = reason or "manual rollback requested"
        plan = self.get_plan(plan_id)
        with self._lock:
            if plan.status != CutoverStatus.COMPLETED:
                raise InvalidPlanStateError("can only rollback completed cutovers")
            previous = self._executions.get(plan_id)
            if previous is not None and previous.rolling_back:
                raise InvalidPlanStateError(f"cutover {plan_id} is already rolling back")
            options = previous.options if previous else ExecuteOptions()
            dry_run = previous.dry_run if previous else plan.dry_run
            execution = CutoverExecution(
                plan, options, dry_run, logs=list(previous.logs) if previous else None
            )
            execution.rolling_back = True
            self._executions[plan_id] = execution
            for trigger in active_triggers(plan):
                if trigger.condition_type == RollbackConditionType.MANUAL:
                    trigger.fire(reason)

        execution.task = asyncio.get_running_loop().create_task(
            self._run_rollback(execution, reason), name=f"cutover-rollback-{plan.id}"
        )
        return execution

    async def fire_trigger(self, plan_id: str, trigger_id: str, reason: str) -> bool:
        """Activate a rollback trigger out of band; returns True if a rollback was started.

        Alert-only and disabled triggers never roll back. A running plan
        rolls back at its next suspension point; a completed plan rolls
        back immediately.
        """
        plan = self.get_plan(plan_id)
        with self._lock:
            trigger = next((t for t in plan.rollback_triggers if t.id == trigger_id), None)
            if trigger is None:
                raise TriggerNotFoundError(plan_id, trigger_id)
            execution = self._executions.get(plan_id)
            if not trigger.enabled:
                logger.info("Ignoring disabled rollback trigger %s on plan %s", trigger_id, plan_id)
                return False
            if trigger.auto_rollback and execution is not None and execution.rolling_back:
                logger.info(
                    "Ignoring rollback trigger %s: plan %s is already rolling back", trigger_id, plan_id
                )
                return False
            trigger.fire(reason)
            status = plan.status

        if not trigger.auto_rollback:
            logger.warning("Rollback trigger %s alert on plan %s: %s", trigger.id, plan_id, reason)
            if execution is not None:
                self._log(execution, f"Alert: rollback trigger {trigger.label} fired: {reason}")
            return False

        if status == CutoverStatus.RUNNING and execution is not None and not execution.rolling_back:
            self._log(execution, f"Rollback trigger {trigger.label} fired: {reason}")
            execution.request_rollback(reason)
            return True
        if status == CutoverStatus.COMPLETED:
            try:
                await self.rollback(plan_id, reason)
            except InvalidPlanStateError as exc:
                logger.info("Rollback trigger %s on plan %s not applied: %s", trigger.id, plan_id, exc)
                return False
            return True
        return False

    async def observe_metric(self, plan_id: str, metric_name: str, value: float) -> bool:
        """Feed a metric sample to the plan's error-rate and latency triggers.

        After completion a trigger only watches for ``window_seconds``.
        """
        plan = self.get_plan(plan_id)
        with self._lock:
            breached = [
                t
                for t in active_triggers(plan)
                if t.metric_name == metric_name
                and not t.triggered
                and t.watching(plan.completed_at)
                and t.breached_by(value)
            ]

        rolled_back = False
        for trigger in breached:
            unit = trigger.threshold_unit
            reason = f"{metric_name} {value:g}{unit} exceeded threshold {trigger.threshold:g}{unit}"
            if await self.fire_trigger(plan_id, trigger.id, reason):
                rolled_back = True
                break
        return rolled_back

    # Background task

    async def _run(self, execution: CutoverExecution) -> None:
        plan = execution.plan
        timeout = self._timeout_for(execution)
        handle = asyncio.get_running_loop().call_later(
            timeout,
            execution.token.cancel,
            f"cutover timed out after {format_duration(timeout)}",
        )
        try:
            await self._run_steps(execution)
        except Exception as exc:
            logger.exception("Cutover %s aborted by unexpected error", plan.id)
            self._fail(execution, f"unexpected error: {exc}")
        finally:
            handle.cancel()
            self._finalize(execution)

    async def _run_rollback(self, execution: CutoverExecution, reason: str) -> None:
        try:
            await self._rollback(execution, reason)
        except Exception as exc:
            logger.exception("Rollback of cutover %s aborted by unexpected error", execution.plan.id)
            self._log(execution, f"Rollback aborted: {exc}")
            self._emit(execution, EventType.ERROR, status=execution.plan.status.value, error=str(exc))
        finally:
            self._finalize(execution)

    async def _run_steps(self, execution: CutoverExecution) -> None:
        plan = execution.plan
        token = execution.token

        for index, step in enumerate(plan.steps):
            if token.cancelled:
                await self._interrupt(execution)
                return

            with self._lock:
                plan.current_step_index = index
                step.mark_running()
            self._log(execution, f"Starting step {step.order}: {step.description}")
            self._emit(execution, EventType.STEP_START, step, index)

            outcome = await self._execute_step(execution, step)

            if outcome.cancelled:
                self._record_step_failure(execution, step, index, outcome)
                await self._interrupt(execution)
                return

            if outcome.skipped:
                with self._lock:
                    step.mark_skipped(outcome.output)
                self._log(execution, f"Step {step.order} skipped: {outcome.output}")
                self._emit(execution, EventType.STEP_COMPLETE, step, index, message=outcome.output)
                continue

            if not outcome.passed:
                self._record_step_failure(execution, step, index, outcome)
                if not outcome.critical:
                    self._log(execution, f"Step {step.order} is not critical, continuing")
                    continue
                await self._handle_step_failure(execution, step)
                return

            with self._lock:
                step.mark_completed(outcome.output)
            self._log(execution, f"Step {step.order} completed: {step.description}")
            self._emit(execution, EventType.STEP_COMPLETE, step, index, message=outcome.output)

            if step.type == CutoverStepType.DNS_CHANGE and plan.is_last_dns_step(index):
                wait = plan.dns_propagation_wait_seconds
                if wait > 0:
                    self._log(execution, f"Waiting {format_duration(wait)} for DNS propagation...")
                    if await token.sleep(wait):
                        await self._interrupt(execution)
                        return

        if token.cancelled:
            await self._interrupt(execution)
            return

        with self._lock:
            plan.transition(CutoverStatus.COMPLETED)
        self._log(execution, "Cutover completed successfully!")
        self._emit(
            execution,
            EventType.COMPLETE,
            status=CutoverStatus.COMPLETED.value,
            message="Cutover completed successfully",
        )

    async def _execute_step(self, execution: CutoverExecution, step: CutoverStep) -> _StepOutcome:
        if step.is_health_check:
            return await self._execute_health_check(execution, step)
        if step.type == CutoverStepType.DNS_CHANGE:
            return await self._execute_dns_change(execution, step)
        return _StepOutcome(passed=False, error=f"unknown step type: {step.type}")

    async def _execute_health_check(
        self, execution: CutoverExecution, step: CutoverStep
    ) -> _StepOutcome:
        token = execution.token
        check = execution.plan.find_health_check(step)
        if check is None:
            return _StepOutcome(passed=False, error=f"health check not found: {step.reference_id}")
        if not check.enabled:
            return _StepOutcome(passed=True, skipped=True, output=f"health check disabled: {check.name}")

        if execution.dry_run:
            if await token.sleep(self._settings.execution.dry_run_check_delay_seconds):
                return _cancelled(token)
            return _StepOutcome(
                passed=True,
                output=f"[DRY RUN] Would execute {check.type} health check: {check.endpoint}",
            )

        result = await self._checker.execute(check, token)
        output = _summarize(result)
        if result.passed:
            return _StepOutcome(passed=True, output=output)
        if token.cancelled:
            return _StepOutcome(passed=False, cancelled=True, output=output, error=result.error)
        return _StepOutcome(
            passed=False,
            output=output,
            error=f"health check failed: {result.error}",
            critical=check.critical,
        )

    async def _execute_dns_change(
        self, execution: CutoverExecution, step: CutoverStep
    ) -> _StepOutcome:
        token = execution.token
        change = execution.plan.find_dns_change(step.reference_id)
        if change is None:
            return _StepOutcome(passed=False, error=f"DNS change not found: {step.reference_id}")

        if execution.dry_run:
            if await token.sleep(self._settings.execution.dry_run_dns_delay_seconds):
                return _cancelled(token)
            with self._lock:
                change.mark_applied()
            return _StepOutcome(
                passed=True,
                output=(
                    f"[DRY RUN] Would change {change.record_type} record {change.full_name} "
                    f"from {change.old_value} to {change.new_value}"
                ),
            )

        name = self._provider_name(change, execution.options)
        try:
            provider = self._providers.get(name)
        except ProviderNotFoundError as exc:
            with self._lock:
                change.mark_failed(str(exc))
            return _StepOutcome(passed=False, error=str(exc))

        try:
            await token.guard(provider.update_record(change))
        except OperationCancelled as exc:
            return _StepOutcome(passed=False, cancelled=True, error=exc.reason)
        except Exception as exc:
            # Provider failures of any kind fail the step the same way.
            logger.warning("DNS provider %s failed to apply change %s: %s", name, change.id, exc)
            with self._lock:
                change.mark_failed(str(exc))
            if token.cancelled:
                return _StepOutcome(passed=False, cancelled=True, error=str(exc))
            return _StepOutcome(passed=False, error=f"failed to apply DNS change: {exc}")

        with self._lock:
            if not change.is_applied():
                change.mark_applied()
        if name == MANUAL_PROVIDER:
            output = f"DNS change marked as applied (manual): {change.full_name} -> {change.new_value}"
        else:
            output = f"DNS change applied: {change.full_name} -> {change.new_value}"
        return _StepOutcome(passed=True, output=output)

    def _record_step_failure(
        self, execution: CutoverExecution, step: CutoverStep, index: int, outcome: _StepOutcome
    ) -> None:
        with self._lock:
            step.mark_failed(outcome.error, outcome.output)
        self._log(execution, f"Step {step.order} failed: {step.description} - {outcome.error}")
        self._emit(execution, EventType.STEP_FAILED, step, index, error=outcome.error)

    async def _handle_step_failure(self, execution: CutoverExecution, step: CutoverStep) -> None:
        plan = execution.plan
        with self._lock:
            evaluation = evaluate_step_failure(plan, step)
        for trigger in evaluation.alerts:
            self._log(execution, f"Alert: rollback trigger {trigger.label} matched: {evaluation.reason}")

        if step.type == CutoverStepType.PRE_CHECK:
            self._fail(execution, f"Pre-check failed: {step.error}")
            return

        should_rollback = evaluation.should_rollback
        if step.type == CutoverStepType.DNS_CHANGE and not should_rollback:
            should_rollback = self._rollback_on_dns_failure(execution.options)

        if should_rollback:
            if step.type == CutoverStepType.POST_CHECK:
                self._log(execution, "Post-check failed, initiating rollback...")
            await self._rollback(execution, evaluation.reason)
        else:
            self._fail(execution, f"DNS change failed: {step.error}")

    async def _interrupt(self, execution: CutoverExecution) -> None:
        """Stop a run whose token fired: roll back if a trigger asked for it, else fail."""
        with self._lock:
            running = execution.plan.status == CutoverStatus.RUNNING
        if running and execution.rollback_reason is not None:
            await self._rollback(execution, execution.rollback_reason)
            return
        self._fail(execution, execution.token.reason or "cancelled")

    def _fail(self, execution: CutoverExecution, error: str) -> None:
        plan = execution.plan
        with self._lock:
            if plan.status == CutoverStatus.RUNNING:
                plan.transition(CutoverStatus.FAILED)
            plan.record_error(error)
            status = plan.status.value
        self._log(execution, f"Cutover failed: {error}")
        self._emit(execution, EventType.ERROR, status=status, error=error)

    async def _rollback(self, execution: CutoverExecution, reason: str) -> None:
        plan = execution.plan
        with self._lock:
            status = plan.status
            revertible = status in (CutoverStatus.RUNNING, CutoverStatus.COMPLETED)
            if revertible:
                execution.rolling_back = True
        if not revertible:
            # Cancelled or timed out plans keep their applied changes.
            self._log(execution, f"Rollback skipped: cutover is {status.value}")
            self._fail(execution, reason)
            return
        self._log(execution, f"Starting rollback: {reason}")
        self._emit(execution, EventType.ROLLBACK, status=plan.status.value, message=reason)

        for change in reversed(plan.dns_changes):
            if not change.can_rollback():
                continue
            self._log(
                execution,
                f"Reverting {change.record_type} record for {change.full_name} "
                f"to {change.old_value or '(none)'}",
            )
            try:
                await self._revert(execution, change)
            except Exception as exc:
                # Best effort: keep reverting the remaining changes.
                logger.warning("Failed to revert DNS change %s: %s", change.id, exc)
                with self._lock:
                    change.error = f"rollback failed: {exc}"
                self._log(execution, f"Failed to revert DNS change for {change.full_name}: {exc}")
                continue
            with self._lock:
                change.mark_rolled_back()
            self._log(execution, f"Reverted DNS change for {change.full_name}")

        with self._lock:
            plan.transition(CutoverStatus.ROLLED_BACK)
            plan.record_error(reason)
        self._log(execution, "Rollback completed")
        self._emit(
            execution,
            EventType.COMPLETE,
            status=CutoverStatus.ROLLED_BACK.value,
            message="Rollback completed",
        )

    async def _revert(self, execution: CutoverExecution, change: DNSChange) -> None:
        reverse = change.reversed()
        if execution.dry_run:
            self._log(
                execution,
                f"[DRY RUN] Would change {reverse.record_type} record {reverse.full_name} "
                f"from {reverse.old_value} to {reverse.new_value}",
            )
            return
        provider = self._providers.get(self._provider_name(change, execution.options))
        await provider.update_record(reverse)

    def _finalize(self, execution: CutoverExecution) -> None:
        plan = execution.plan
        with self._lock:
            status = plan.status
            execution.rolling_back = False
            execution.result = ExecutionResult(
                plan_id=plan.id,
                success=status == CutoverStatus.COMPLETED,
                steps_completed=plan.completed_steps,
                steps_failed=sum(1 for s in plan.steps if s.status == CutoverStepStatus.FAILED),
                duration_seconds=time.monotonic() - execution.started,
                rolled_back=status == CutoverStatus.ROLLED_BACK,
                error=plan.error or "",
                logs=list(execution.logs),
            )
        execution.stream.close()

    # Helpers

    def _resolve_plan(self, plan_or_id: CutoverPlan | str) -> CutoverPlan:
        if isinstance(plan_or_id, str):
            return self.get_plan(plan_or_id)
        self.register_plan(plan_or_id)
        return plan_or_id

    def _timeout_for(self, execution: CutoverExecution) -> float:
        return (
            execution.options.timeout_seconds
            or execution.plan.timeout_seconds
            or self._settings.execution.default_timeout_seconds
        )

    def _rollback_on_dns_failure(self, options: ExecuteOptions) -> bool:
        if options.rollback_on_dns_failure is not None:
            return options.rollback_on_dns_failure
        return self._settings.execution.rollback_on_dns_failure

    @staticmethod
    def _provider_name(change: DNSChange, options: ExecuteOptions) -> str:
        return (options.dns_provider or change.provider or MANUAL_PROVIDER).strip().lower()

    def _provider_names(self, plan: CutoverPlan, options: ExecuteOptions) -> list[str]:
        names: list[str] = []
        for change in plan.dns_changes:
            name = self._provider_name(change, options)
            if name not in names:
                names.append(name)
        return names

    def _log(self, execution: CutoverExecution, message: str) -> None:
        with self._lock:
            execution.logs.append(f"[{log_timestamp()}] {message}")
        plan_logger(logger, execution.plan.id).info(message)

    def _emit(
        self,
        execution: CutoverExecution,
        event_type: EventType,
        step: CutoverStep | None = None,
        index: int | None = None,
        status: str = "",
        error: str = "",
        message: str = "",
    ) -> None:
        event = CutoverEvent(
            type=event_type,
            plan_id=execution.plan.id,
            step_index=index,
            step_type=step.type.value if step else "",
            step_description=step.description if step else "",
            status=status or (step.status.value if step else ""),
            error=error,
            message=message,
            timestamp=utc_now(),
        )
        execution.stream.publish(event)
        callback = execution.options.on_event
        if callback is not None:
            try:
                callback(event)
            except Exception:
                logger.exception("Cutover event callback failed for plan %s", execution.plan.id)


def _cancelled(token: CancelToken) -> _StepOutcome:
    return _StepOutcome(passed=False, cancelled=True, error=token.reason or "cancelled")


def _summarize(result: HealthCheckResult) -> str:
    parts = [f"attempts: {result.attempts}", f"duration: {result.duration_seconds:.2f}s"]
    if result.status_code is not None:
        parts.insert(0, f"status: {result.status_code}")
    if result.response:
        parts.append(f"response: {result.response[:200]}")
    return ", ".join(parts)
