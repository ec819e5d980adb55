import pytest

from workplan import checklist
from workplan.checklist import ChecklistPhase
from workplan.errors import PlanValidationError
from workplan.models import Plan, PlanPoint


def _plan_with_points(*point_ids: str) -> Plan:
    return Plan(id="P1", name="Plan", points=[PlanPoint(id=point_id) for point_id in point_ids])


def test_expand_joins_continuation_lines_and_skips_noise() -> None:
    text = "preamble ignored\n* First item\n  more detail\n\n*\n- Second item\n*   Third"

    assert checklist.expand(text) == ["First item\nmore detail", "Second item", "Third"]


def test_expand_does_not_treat_emphasis_as_marker() -> None:
    assert checklist.expand("* Item\n**bold** continuation") == ["Item\n**bold** continuation"]


def test_initialize_review_orders_point_items_before_plan_items() -> None:
    plan = _plan_with_points("1", "2")

    created = checklist.initialize_review(plan, "* Works\n* Tested", "* Overall")

    assert created is True
    assert plan.review_checklist == [
        "Point 1: Works",
        "Point 1: Tested",
        "Point 2: Works",
        "Point 2: Tested",
        "Plan: Overall",
    ]


def test_initialize_review_is_idempotent_while_items_remain() -> None:
    plan = _plan_with_points("1")
    plan.review_checklist = ["Plan: remaining"]

    assert checklist.initialize_review(plan, "* a", "* b") is False
    assert plan.review_checklist == ["Plan: remaining"]


def test_consume_head_is_fifo_and_completes_phase() -> None:
    plan = _plan_with_points("1")
    checklist.initialize_creation(plan, "* one\n* two")

    assert checklist.consume_head(plan, ChecklistPhase.DESCRIPTIONS) == "one"
    assert plan.creation_checklist == ["two"]
    assert plan.descriptions_reviewed is False

    assert checklist.consume_head(plan, ChecklistPhase.DESCRIPTIONS) == "two"
    assert plan.descriptions_reviewed is True
    assert plan.creation_checklist is None


def test_consume_last_item_with_pending_feedback_does_not_complete() -> None:
    plan = _plan_with_points("1")
    plan.review_checklist = ["Plan: last"]
    plan.needs_work = True
    plan.needs_work_comments = ["fix"]

    checklist.consume_head(plan, ChecklistPhase.PLAN_REVIEW)

    assert plan.reviewed is False
    assert plan.review_checklist == []


def test_plan_review_completion_resets_acceptance() -> None:
    plan = _plan_with_points("1")
    plan.accepted = True
    plan.review_checklist = ["Plan: only"]

    checklist.consume_head(plan, ChecklistPhase.PLAN_REVIEW)

    assert plan.reviewed is True
    assert plan.accepted is False


def test_consume_empty_queue_raises() -> None:
    plan = _plan_with_points("1")

    with pytest.raises(PlanValidationError, match="architecture checklist"):
        checklist.consume_head(plan, ChecklistPhase.ARCHITECTURE)
