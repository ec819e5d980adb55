import pytest

from workplan.errors import PlanValidationError
from workplan.models import Plan, PlanPoint
from workplan.validation import parse_architecture, validate_architecture, validate_points


def _complete_point(point_id: str, depends_on: list[str] | None = None) -> PlanPoint:
    return PlanPoint(
        id=point_id,
        short_name=f"point {point_id}",
        short_description="short",
        detailed_description="detailed",
        review_instructions="review",
        testing_instructions="test",
        expected_outputs="outputs",
        expected_inputs="inputs",
        depends_on=["-1"] if depends_on is None else depends_on,
    )


def test_valid_points_pass() -> None:
    plan = Plan(id="P1", name="Plan", points=[_complete_point("1"), _complete_point("2", ["1"])])

    assert validate_points(plan) is None


def test_missing_field_reported_in_field_order() -> None:
    point = _complete_point("1")
    point.review_instructions = "   "
    point.expected_inputs = ""
    plan = Plan(id="P1", name="Plan", points=[point])

    issue = validate_points(plan)

    assert issue is not None
    assert issue.kind == "missing_field"
    assert issue.message == "Point 1 is missing review instructions"


def test_first_invalid_point_in_insertion_order_wins() -> None:
    later = _complete_point("1", [])
    earlier = _complete_point("2", ["7"])
    plan = Plan(id="P1", name="Plan", points=[earlier, later])

    issue = validate_points(plan)

    assert issue is not None
    assert issue.point_id == "2"
    assert issue.message == "Point 2 depends on non-existent point 7"


def test_empty_dependencies_are_reported() -> None:
    plan = Plan(id="P1", name="Plan", points=[_complete_point("1", [])])

    issue = validate_points(plan)

    assert issue is not None
    assert issue.kind == "missing_dependencies"
    assert '"-1"' in issue.message


def test_architecture_validation_messages() -> None:
    assert validate_architecture(None) == "Architecture document is missing"
    assert validate_architecture("[]") == "Architecture must be a JSON object"
    assert validate_architecture('{"connections": []}') == 'Missing or invalid "components" array'
    assert validate_architecture('{"components": []}') == 'Missing or invalid "connections" array'
    assert (
        validate_architecture('{"components": [], "connections": []}')
        == "Architecture must contain at least one component"
    )
    assert (
        validate_architecture(
            '{"components": [{"id": "c1", "name": "X"}], '
            '"connections": [{"from": "c1", "to": "c2"}]}'
        )
        == "Connection references non-existent component: c2"
    )
    assert (
        validate_architecture('{"components": [{"id": "c1", "name": "X"}], "connections": []}')
        is None
    )


def test_parse_architecture_rejects_invalid_json() -> None:
    with pytest.raises(PlanValidationError, match="valid JSON"):
        parse_architecture("{oops")
