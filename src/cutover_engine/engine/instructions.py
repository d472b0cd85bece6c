"""Manual-mode runbook text.

The section headers and line layout are read by operators and by
existing runbooks; keep them stable.
"""

from __future__ import annotations

from cutover_engine.domain.dns import MANUAL_PROVIDER
from cutover_engine.domain.health import HealthCheck
from cutover_engine.domain.plan import CutoverPlan
from cutover_engine.utils.time import format_duration

HEADER = "=== MANUAL CUTOVER INSTRUCTIONS ==="


def render_manual_instructions(plan: CutoverPlan) -> list[str]:
    lines = [HEADER, ""]

    if plan.pre_checks:
        lines.extend(["## Pre-Cutover Checks", ""])
        for index, check in enumerate(plan.pre_checks, start=1):
            lines.extend(_describe_check(index, check, with_status=True))

    if plan.dns_changes:
        lines.extend(["## DNS Changes", ""])
        for index, change in enumerate(plan.dns_changes, start=1):
            lines.append(f"{index}. Update {change.record_type} record for {change.full_name}")
            lines.append(f"   Old Value: {change.old_value}")
            lines.append(f"   New Value: {change.new_value}")
            lines.append(f"   TTL: {change.ttl} seconds")
            if change.provider and change.provider != MANUAL_PROVIDER:
                lines.append(f"   Provider: {change.provider}")
            lines.append("")

    lines.extend(
        [
            "## DNS Propagation",
            "",
            f"Wait {format_duration(plan.dns_propagation_wait_seconds)} "
            "for DNS propagation before proceeding.",
            "You can verify propagation using: dig +short <domain>",
            "",
        ]
    )

    if plan.post_checks:
        lines.extend(["## Post-Cutover Validation", ""])
        for index, check in enumerate(plan.post_checks, start=1):
            lines.extend(_describe_check(index, check, with_status=False))

    lines.extend(["## Rollback Instructions", "", "If issues occur, revert DNS changes:"])
    for index, change in enumerate(reversed(plan.dns_changes), start=1):
        lines.append(
            f"{index}. Revert {change.record_type} record for {change.full_name} "
            f"to: {change.old_value}"
        )
    return lines


def _describe_check(index: int, check: HealthCheck, with_status: bool) -> list[str]:
    lines = [
        f"{index}. {check.name}",
        f"   Type: {check.type}",
        f"   Endpoint: {check.endpoint}",
    ]
    expected_status = getattr(check, "expected_status", None)
    if with_status and expected_status:
        lines.append(f"   Expected Status: {expected_status}")
    lines.append("")
    return lines
