from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from cutover_engine.domain.health import HTTPHealthCheck
from cutover_engine.domain.plan import CutoverStepType
from cutover_engine.loader import load_plan


def test_load_plan_file_not_found(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_plan(str(tmp_path / "missing-plan.yaml"))


def test_load_plan_success(tmp_path: Path) -> None:
    document = {
        "id": "plan-7",
        "bundle_id": "bundle-7",
        "name": "Move storefront",
        "dns_propagation_wait_seconds": 60,
        "pre_checks": [
            {
                "type": "http",
                "id": "pre",
                "name": "new stack",
                "endpoint": "https://new.example.com/health",
                "expected_status": 200,
            }
        ],
        "dns_changes": [
            {
                "id": "apex",
                "domain": "example.com",
                "record_type": "A",
                "old_value": "1.1.1.1",
                "new_value": "2.2.2.2",
            }
        ],
        "rollback_triggers": [
            {"id": "post-fail", "name": "post fails", "health_check_id": "post"},
        ],
    }
    path = tmp_path / "plan.yaml"
    path.write_text(yaml.safe_dump(document), encoding="utf-8")

    plan = load_plan(str(path))

    assert plan.id == "plan-7"
    assert isinstance(plan.pre_checks[0], HTTPHealthCheck)
    assert [step.type for step in plan.steps] == [
        CutoverStepType.PRE_CHECK,
        CutoverStepType.DNS_CHANGE,
    ]
    assert plan.rollback_triggers[0].auto_rollback


def test_load_plan_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "plan.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_plan(str(path))
