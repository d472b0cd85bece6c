"""Plan loader for cutover plan YAML files."""

from __future__ import annotations

from pathlib import Path

import yaml

from cutover_engine.domain.plan import CutoverPlan


def load_plan(path: str) -> CutoverPlan:
    plan_path = Path(path)
    if not plan_path.exists():
        raise FileNotFoundError(f"Cutover plan file not found: {plan_path}")
    with plan_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Cutover plan file must contain a mapping: {plan_path}")
    plan = CutoverPlan.from_yaml(data)
    if not plan.steps:
        plan.build_steps()
    return plan
