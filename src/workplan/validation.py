from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from workplan.errors import PlanValidationError
from workplan.models import INDEPENDENT, Plan

REQUIRED_POINT_FIELDS: tuple[tuple[str, str], ...] = (
    ("short_name", "short name"),
    ("short_description", "short description"),
    ("detailed_description", "detailed description"),
    ("review_instructions", "review instructions"),
    ("testing_instructions", "testing instructions"),
    ("expected_outputs", "expected outputs"),
    ("expected_inputs", "expected inputs"),
)


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    kind: str
    point_id: str | None
    message: str


def validate_points(plan: Plan) -> ValidationIssue | None:
    """Return the first structural problem among the plan's points, in order."""
    known_ids = {point.id for point in plan.points}
    for point in plan.points:
        for attribute, label in REQUIRED_POINT_FIELDS:
            value = getattr(point, attribute)
            if not value or not value.strip():
                return ValidationIssue(
                    kind="missing_field",
                    point_id=point.id,
                    message=f"Point {point.id} is missing {label}",
                )

        if not point.depends_on:
            return ValidationIssue(
                kind="missing_dependencies",
                point_id=point.id,
                message=(
                    f"Point {point.id} has no dependencies set. Use \"{INDEPENDENT}\" to mark "
                    "as independent or specify dependent point IDs"
                ),
            )

        for dependency in point.depends_on:
            if dependency != INDEPENDENT and dependency not in known_ids:
                return ValidationIssue(
                    kind="invalid_dependency",
                    point_id=point.id,
                    message=f"Point {point.id} depends on non-existent point {dependency}",
                )
    return None


def parse_architecture(text: str) -> dict[str, Any]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PlanValidationError(f"Architecture must be valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise PlanValidationError("Architecture must be a JSON object")
    return document


def validate_architecture(text: str | None) -> str | None:
    """Return the first structural error of an architecture document, if any."""
    if not text:
        return "Architecture document is missing"
    try:
        document = parse_architecture(text)
    except PlanValidationError as exc:
        return str(exc)

    components = document.get("components")
    if not isinstance(components, list):
        return 'Missing or invalid "components" array'
    connections = document.get("connections")
    if not isinstance(connections, list):
        return 'Missing or invalid "connections" array'

    component_ids: set[str] = set()
    for component in components:
        if not isinstance(component, dict) or not component.get("id") or not component.get("name"):
            return 'Each component must have "id" and "name" properties'
        component_ids.add(str(component["id"]))

    for connection in connections:
        if (
            not isinstance(connection, dict)
            or not connection.get("from")
            or not connection.get("to")
        ):
            return 'Each connection must have "from" and "to" properties'
        for endpoint in (connection["from"], connection["to"]):
            if str(endpoint) not in component_ids:
                return f"Connection references non-existent component: {endpoint}"

    if not components:
        return "Architecture must contain at least one component"
    return None
