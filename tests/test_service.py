import re
from pathlib import Path

import pytest

from workplan.activity import ActivityLog
from workplan.errors import PlanNotFoundError, PlanPreconditionError, PlanValidationError
from workplan.repository import PlanRepository
from workplan.service import PlanningService
from workplan.state import PlanStore


def _draft(name: str, depends_on: list[str] | None = None) -> dict:
    return {
        "short_name": name,
        "short_description": f"{name} short",
        "detailed_description": f"{name} detailed",
        "review_instructions": "review it",
        "testing_instructions": "test it",
        "expected_outputs": "outputs",
        "expected_inputs": "inputs",
        "depends_on": ["-1"] if depends_on is None else depends_on,
    }


def _service(tmp_path: Path) -> PlanningService:
    repository = PlanRepository(PlanStore(tmp_path / "plans"), activity=ActivityLog())
    return PlanningService(repository)


def _reload(tmp_path: Path) -> PlanningService:
    return _service(tmp_path)


def test_create_plan_persists_and_logs(tmp_path: Path) -> None:
    service = _service(tmp_path)

    service.create_plan("P1", "Plan", "short", "long", original_request="do it")

    reloaded = _reload(tmp_path)
    assert reloaded.list_plans(include_short_description=True) == [
        {"id": "P1", "name": "Plan", "short_description": "short"}
    ]
    assert [entry.action for entry in reloaded.get_logs("P1")] == ["created"]
    with pytest.raises(PlanValidationError, match="already exists"):
        service.create_plan("P1", "Again")


def test_add_points_assigns_sequential_ids_at_position(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")

    assert service.add_points("P1", None, [_draft("a"), _draft("b")]) == ["1", "2"]
    assert service.add_points("P1", "1", [_draft("c")]) == ["3"]
    assert service.add_points("P1", None, [_draft("d")]) == ["4"]

    plan = service.repository.require("P1")
    assert [point.id for point in plan.points] == ["4", "1", "3", "2"]
    assert plan.points_created is True
    with pytest.raises(PlanNotFoundError, match="Point with ID '99'"):
        service.add_points("P1", "99", [_draft("e")])


def test_new_point_ids_follow_highest_existing_id(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a"), _draft("b")])

    service.remove_points("P1", ["2"])

    assert service.add_points("P1", "1", [_draft("c")]) == ["2"]
    service.remove_points("P1", ["1"])
    assert service.add_points("P1", "2", [_draft("d")]) == ["3"]


def test_remove_points_requires_every_id(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])

    with pytest.raises(PlanValidationError, match="Points not found in plan 'P1': 5"):
        service.remove_points("P1", ["1", "5"])

    assert len(service.repository.require("P1").points) == 1


def test_point_mutations_clear_rework_and_feedback(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a"), _draft("b")])
    service.set_point_need_rework("P1", "1", "broken")
    service.set_plan_needs_work("P1", ["rename things"])

    service.change_point("P1", "2", short_name="renamed")

    plan = service.repository.require("P1")
    assert plan.points[0].need_rework is False
    assert plan.points[0].rework_reason == ""
    assert plan.needs_work is False
    assert plan.points[1].short_name == "renamed"
    with pytest.raises(PlanValidationError, match="Unknown point field"):
        service.change_point("P1", "2", color="red")


def test_set_point_dependencies_validates_references(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a"), _draft("b")])

    service.set_point_dependencies("P1", "2", ["1"], ["1"])
    with pytest.raises(PlanValidationError, match="Depends-on point with ID '9'"):
        service.set_point_dependencies("P1", "2", ["9"], [])
    with pytest.raises(PlanValidationError, match="Care-on point with ID '-1'"):
        service.set_point_dependencies("P1", "2", ["-1"], ["-1"])

    point = service.repository.require("P1").find_point("2")
    assert point.depends_on == ["1"]
    assert point.care_on_points == ["1"]


def test_point_comments_are_timestamp_prefixed(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])

    comment = service.add_point_comment("P1", "1", "looks fine")

    assert re.fullmatch(r"\[\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z\] looks fine", comment)
    assert service.repository.require("P1").points[0].comments == [comment]


def test_review_and_test_require_implementation_unless_bypassed(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])

    with pytest.raises(PlanPreconditionError, match="implemented before it can be reviewed"):
        service.set_point_reviewed("P1", "1", "ok")
    with pytest.raises(PlanPreconditionError, match="implemented before it can be tested"):
        service.set_point_tested("P1", "1", "ok")

    point = service.set_point_reviewed("P1", "1", "admin", skip_if_not_implemented=True)
    assert point.reviewed is True
    assert point.implemented is False


def test_need_rework_clears_progress_flags(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])
    service.set_point_implemented("P1", "1")
    service.set_point_reviewed("P1", "1")
    service.set_point_tested("P1", "1")

    point = service.set_point_need_rework("P1", "1", "regression")

    assert (point.implemented, point.reviewed, point.tested) == (False, False, False)
    assert point.rework_reason == "regression"
    assert service.set_point_implemented("P1", "1").need_rework is False


def test_accept_requires_every_point_reviewed_and_tested(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])
    service.set_point_implemented("P1", "1")
    service.set_point_reviewed("P1", "1", "ok")
    before = service.repository.require("P1").to_dict()

    with pytest.raises(PlanValidationError, match="reviewed and tested"):
        service.set_plan_accepted("P1", "ship it")

    assert service.repository.require("P1").to_dict() == before
    assert _reload(tmp_path).repository.require("P1").accepted is False


def test_needs_work_clears_reviewed_and_accepted(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])
    for mark in (
        service.set_point_implemented,
        service.set_point_reviewed,
        service.set_point_tested,
    ):
        mark("P1", "1")
    service.set_plan_reviewed("P1", "good")
    service.set_plan_accepted("P1", "ship it")

    plan = service.set_plan_needs_work("P1", ["missing docs", "typo"])

    assert plan.needs_work is True
    assert plan.needs_work_comments == ["missing docs", "typo"]
    assert plan.reviewed is False
    assert plan.accepted is False


def _accepted_plan(service: PlanningService, points: int = 1) -> None:
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft(f"p{index}") for index in range(points)])
    for point_id in [str(index + 1) for index in range(points)]:
        service.set_point_implemented("P1", point_id)
        service.set_point_reviewed("P1", point_id, "ok")
        service.set_point_tested("P1", point_id, "ok")
    service.set_plan_reviewed("P1", "good")
    service.set_plan_accepted("P1", "ship it")


def _assert_accepted_means_all_done(service: PlanningService) -> None:
    plan = service.repository.require("P1")
    if plan.accepted:
        assert all(point.reviewed and point.tested for point in plan.points)


def test_reworking_a_point_reopens_plan_review_and_acceptance(tmp_path: Path) -> None:
    service = _service(tmp_path)
    _accepted_plan(service)

    service.set_point_need_rework("P1", "1", "regression")

    _assert_accepted_means_all_done(service)
    plan = _reload(tmp_path).repository.require("P1")
    assert plan.accepted is False
    assert plan.accepted_comment is None
    assert plan.reviewed is False
    assert plan.reviewed_comment is None
    assert service.is_plan_done("P1") == (False, ["1"])


def test_adding_a_point_reopens_plan_review_and_acceptance(tmp_path: Path) -> None:
    service = _service(tmp_path)
    _accepted_plan(service)
    service.repository.require("P1").review_checklist = ["Plan: stale item"]

    service.add_points("P1", "1", [_draft("extra")])

    _assert_accepted_means_all_done(service)
    plan = _reload(tmp_path).repository.require("P1")
    assert plan.accepted is False
    assert plan.reviewed is False
    assert plan.review_checklist is None


def test_point_drafts_accept_a_single_dependency_string(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    draft = _draft("a")
    draft["depends_on"] = "-1"
    service.add_points("P1", None, [draft])
    draft = _draft("b")
    draft["depends_on"] = "1"
    draft["care_on"] = "1"

    service.add_points("P1", None, [draft])

    plan = service.repository.require("P1")
    assert plan.find_point("1").depends_on == ["-1"]
    assert plan.find_point("2").depends_on == ["1"]
    assert plan.find_point("2").care_on_points == ["1"]
    assert service.change_point("P1", "2", depends_on="-1").depends_on == ["-1"]


@pytest.mark.parametrize("plan_id", ["../escape", "nested/plan", "win\\plan"])
def test_plan_ids_with_path_separators_are_rejected(tmp_path: Path, plan_id: str) -> None:
    service = _service(tmp_path)

    with pytest.raises(PlanValidationError, match="path separators"):
        service.create_plan(plan_id, "Plan")

    assert service.list_plans() == []
    assert not (tmp_path / "escape.json").exists()


def test_plan_review_validates_points_first(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a", depends_on=[])])

    with pytest.raises(PlanValidationError, match="Point 1 has no dependencies set"):
        service.set_plan_reviewed("P1", "ok")

    assert service.repository.require("P1").reviewed is False


def test_set_architecture_requires_json_object(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")

    with pytest.raises(PlanValidationError, match="valid JSON"):
        service.set_architecture("P1", "not json")
    plan = service.set_architecture("P1", '{"components": [], "connections": []}')

    assert plan.architecture_created is True
    assert service.get_logs("P1", limit=1)[0].action == "architecture_set"


def test_delete_requires_confirmation_unless_accepted(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")

    with pytest.raises(PlanValidationError) as excinfo:
        service.delete_plan("P1")
    assert excinfo.value.needs_confirmation is True
    assert excinfo.value.to_dict()["needs_confirmation"] is True

    service.delete_plan("P1", force=True)

    assert "P1" not in service.repository
    assert not (tmp_path / "plans" / "P1.json").exists()


def test_show_point_includes_neighbours_and_care_on(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft(name) for name in "abcdef"])
    service.set_point_dependencies("P1", "3", ["1"], ["6"])

    snapshot = service.show_point("P1", "3")

    assert [item["id"] for item in snapshot["previous_points"]] == ["1", "2"]
    assert [item["id"] for item in snapshot["next_points"]] == ["4", "5"]
    assert snapshot["care_on_points"] == [
        {"id": "6", "short_name": "f", "short_description": "f short"}
    ]
    assert snapshot["state"]["implemented"] is False


def test_show_plan_optionally_includes_point_descriptions(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])

    brief = service.show_plan("P1")
    full = service.show_plan("P1", include_point_descriptions=True)

    assert "review_instructions" not in brief["points"][0]
    assert full["points"][0]["review_instructions"] == "review it"


def test_plan_state_and_done(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a"), _draft("b")])
    service.set_point_implemented("P1", "1")

    state = service.plan_state("P1")

    assert state.implemented_count == 1
    assert service.is_plan_done("P1") == (False, ["1", "2"])


def test_update_plan_details_only_touches_given_fields(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan", "short", "long")

    plan = service.update_plan_details("P1", short_description="new short")

    assert (plan.name, plan.short_description, plan.long_description) == (
        "Plan",
        "new short",
        "long",
    )


def test_logs_are_newest_first(tmp_path: Path) -> None:
    service = _service(tmp_path)
    service.create_plan("P1", "Plan")
    service.add_points("P1", None, [_draft("a")])
    service.set_point_implemented("P1", "1")

    actions = [entry.action for entry in service.get_logs("P1")]

    assert actions == ["implemented", "added", "created"]
    assert len(service.get_logs("P1", limit=2)) == 2
