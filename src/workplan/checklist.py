from __future__ import annotations

import re
from enum import StrEnum

from workplan.errors import PlanValidationError
from workplan.models import Plan

ITEM_PATTERN = re.compile(r"^[*-](?:\s+(.*))?$")


class ChecklistPhase(StrEnum):
    DESCRIPTIONS = "descriptions"
    ARCHITECTURE = "architecture"
    PLAN_REVIEW = "plan_review"


def expand(text: str) -> list[str]:
    """Split a `* item` template into items; unmarked lines continue the current item."""
    items: list[str] = []
    current: list[str] | None = None
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        match = ITEM_PATTERN.match(line)
        if match:
            if current:
                items.append("\n".join(current))
            head = (match.group(1) or "").strip()
            current = [head] if head else None
            continue
        if current is not None:
            current.append(line)
    if current:
        items.append("\n".join(current))
    return items


def initialize_review(plan: Plan, point_template: str, plan_template: str) -> bool:
    if plan.review_checklist:
        return False
    checklist: list[str] = []
    point_items = expand(point_template)
    for point in plan.points:
        for item in point_items:
            checklist.append(f"Point {point.id}: {item}")
    for item in expand(plan_template):
        checklist.append(f"Plan: {item}")
    plan.review_checklist = checklist
    return True


def initialize_creation(plan: Plan, template: str) -> bool:
    if plan.creation_checklist:
        return False
    plan.creation_checklist = expand(template)
    return True


def queue_for(plan: Plan, phase: ChecklistPhase) -> list[str] | None:
    if phase is ChecklistPhase.PLAN_REVIEW:
        return plan.review_checklist
    return plan.creation_checklist


def mark_phase_complete(plan: Plan, phase: ChecklistPhase, comment: str) -> None:
    if phase is ChecklistPhase.DESCRIPTIONS:
        plan.descriptions_reviewed = True
        plan.creation_checklist = None
    elif phase is ChecklistPhase.ARCHITECTURE:
        plan.architecture_reviewed = True
        plan.creation_checklist = None
    else:
        plan.reviewed = True
        plan.reviewed_comment = comment
        plan.accepted = False
        plan.accepted_comment = None
        plan.review_checklist = None


def consume_head(plan: Plan, phase: ChecklistPhase) -> str:
    queue = queue_for(plan, phase)
    if not queue:
        raise PlanValidationError(f"Plan '{plan.id}' does not have any {phase} checklist items")
    item = queue.pop(0)
    if not queue and not plan.needs_work:
        mark_phase_complete(plan, phase, "All checklist items completed")
    return item
