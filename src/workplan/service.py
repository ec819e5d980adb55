from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from workplan import checklist
from workplan.checklist import ChecklistPhase
from workplan.errors import PlanPreconditionError, PlanValidationError
from workplan.models import INDEPENDENT, LogEntry, Plan, PlanPoint, PlanState
from workplan.repository import PlanRepository
from workplan.validation import parse_architecture, validate_points

logger = logging.getLogger(__name__)

POINT_TEXT_FIELDS = (
    "short_name",
    "short_description",
    "detailed_description",
    "review_instructions",
    "testing_instructions",
    "expected_outputs",
    "expected_inputs",
)
POINT_LIST_FIELDS = ("depends_on", "care_on_points")
PLAN_ID_FORBIDDEN = ("/", "\\")


def _summary(point: PlanPoint) -> dict[str, str]:
    return {
        "id": point.id,
        "short_name": point.short_name,
        "short_description": point.short_description,
    }


def _id_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str | int):
        return [str(value)]
    return [str(item) for item in value]


def _point_from_draft(point_id: str, draft: Mapping[str, Any]) -> PlanPoint:
    unknown = set(draft) - set(POINT_TEXT_FIELDS) - set(POINT_LIST_FIELDS) - {"care_on"}
    if unknown:
        raise PlanValidationError(f"Unknown point field(s): {', '.join(sorted(unknown))}")
    return PlanPoint(
        id=point_id,
        **{name: str(draft.get(name) or "") for name in POINT_TEXT_FIELDS},
        depends_on=_id_list(draft.get("depends_on")),
        care_on_points=_id_list(draft.get("care_on_points", draft.get("care_on"))),
    )


class PlanningService:
    """Mutation and query API over the plan repository.

    Every mutation validates its input before touching the plan, records an
    activity entry where the state change is meaningful, and saves the plan
    before returning.
    """

    def __init__(self, repository: PlanRepository) -> None:
        self.repository = repository

    # -- plans ---------------------------------------------------------------

    def create_plan(
        self,
        plan_id: str,
        name: str,
        short_description: str = "",
        long_description: str = "",
        *,
        original_request: str | None = None,
        translated_request: str | None = None,
        detected_language: str | None = None,
    ) -> Plan:
        if not plan_id or not plan_id.strip():
            raise PlanValidationError("Plan id must not be empty")
        if any(separator in plan_id for separator in PLAN_ID_FORBIDDEN):
            raise PlanValidationError(f"Plan id '{plan_id}' must not contain path separators")
        if plan_id in self.repository:
            raise PlanValidationError(f"Plan with ID '{plan_id}' already exists")
        plan = Plan(
            id=plan_id,
            name=name,
            short_description=short_description,
            long_description=long_description,
            original_request=original_request,
            translated_request=translated_request,
            detected_language=detected_language,
        )
        self.repository.record(plan, "plan", "created", plan_id, "Plan created", name)
        self.repository.add(plan)
        logger.info("Created plan %s", plan_id)
        return plan

    def list_plans(self, include_short_description: bool = False) -> list[dict[str, str]]:
        summaries = []
        for plan in self.repository.list():
            summary = {"id": plan.id, "name": plan.name}
            if include_short_description:
                summary["short_description"] = plan.short_description
            summaries.append(summary)
        return summaries

    def update_plan_details(
        self,
        plan_id: str,
        name: str | None = None,
        short_description: str | None = None,
        long_description: str | None = None,
    ) -> Plan:
        plan = self.repository.require(plan_id)
        if name is not None:
            plan.name = name
        if short_description is not None:
            plan.short_description = short_description
        if long_description is not None:
            plan.long_description = long_description
        self.repository.record(plan, "plan", "details_updated", plan_id, "Plan details updated")
        self.repository.save(plan)
        return plan

    def set_architecture(self, plan_id: str, document: str) -> Plan:
        plan = self.repository.require(plan_id)
        parse_architecture(document)
        plan.architecture = document
        plan.architecture_created = True
        self.repository.record(
            plan,
            "plan",
            "architecture_set",
            plan_id,
            "Architecture design has been set for the plan",
        )
        self.repository.save(plan)
        return plan

    def set_plan_reviewed(self, plan_id: str, comment: str = "") -> Plan:
        plan = self.repository.require(plan_id)
        issue = validate_points(plan)
        if issue is not None:
            raise PlanValidationError(f"Plan review failed: {issue.message}")
        checklist.mark_phase_complete(plan, ChecklistPhase.PLAN_REVIEW, comment)
        plan.needs_work = False
        plan.needs_work_comments = []
        self.repository.record(
            plan, "plan", "reviewed", plan_id, "Plan new state reviewed", comment or plan.name
        )
        self.repository.save(plan)
        return plan

    def set_plan_needs_work(self, plan_id: str, comments: Iterable[str]) -> Plan:
        plan = self.repository.require(plan_id)
        feedback = [comment for comment in comments if comment and comment.strip()]
        if not feedback:
            raise PlanValidationError("At least one needs-work comment is required")
        plan.needs_work = True
        plan.needs_work_comments = feedback
        plan.reviewed = False
        plan.reviewed_comment = None
        plan.accepted = False
        plan.accepted_comment = None
        self.repository.record(
            plan, "plan", "needs_work", plan_id, "Plan new state needs work", "; ".join(feedback)
        )
        self.repository.save(plan)
        return plan

    def set_plan_accepted(self, plan_id: str, comment: str = "") -> Plan:
        plan = self.repository.require(plan_id)
        if not plan.points or not all(point.reviewed and point.tested for point in plan.points):
            raise PlanValidationError(
                "All plan points must be reviewed and tested before the plan can be accepted"
            )
        plan.accepted = True
        plan.accepted_comment = comment
        plan.needs_work = False
        plan.needs_work_comments = []
        self.repository.record(
            plan, "plan", "accepted", plan_id, "Plan new state accepted", comment or plan.name
        )
        self.repository.save(plan)
        return plan

    def delete_plan(self, plan_id: str, force: bool = False) -> Plan:
        plan = self.repository.require(plan_id)
        if not plan.accepted and not force:
            raise PlanValidationError(
                f"Plan '{plan_id}' is not complete. Use force delete with user confirmation "
                "to delete incomplete plan.",
                needs_confirmation=True,
            )
        logger.info("Deleting plan %s (forced=%s)", plan_id, force)
        return self.repository.remove(plan_id)

    def clear_need_rework_flags(self, plan_id: str) -> Plan:
        plan = self.repository.require(plan_id)
        if self._clear_rework(plan):
            self.repository.save(plan)
        return plan

    def _clear_rework(self, plan: Plan) -> bool:
        cleared = 0
        for point in plan.points:
            if point.need_rework:
                point.need_rework = False
                point.rework_reason = ""
                cleared += 1
        plan_cleared = plan.needs_work
        plan.needs_work = False
        plan.needs_work_comments = []
        if cleared or plan_cleared:
            logger.debug(
                "Plan %s: cleared %d rework flag(s), needs-work cleared=%s",
                plan.id,
                cleared,
                plan_cleared,
            )
        return bool(cleared or plan_cleared)

    def _reopen_review(self, plan: Plan) -> None:
        """Accepted and reviewed only hold while every point stays reviewed and tested."""
        if plan.reviewed or plan.accepted:
            logger.debug("Plan %s: review and acceptance reset", plan.id)
        plan.reviewed = False
        plan.reviewed_comment = None
        plan.accepted = False
        plan.accepted_comment = None
        plan.review_checklist = None

    # -- points --------------------------------------------------------------

    def add_points(
        self,
        plan_id: str,
        after_point_id: str | None,
        drafts: Iterable[Mapping[str, Any]],
    ) -> list[str]:
        plan = self.repository.require(plan_id)
        if after_point_id is not None:
            self.repository.require_point(plan, after_point_id)
        next_id = plan.next_point_id()
        new_points = []
        for offset, draft in enumerate(drafts):
            new_points.append(_point_from_draft(str(next_id + offset), draft))
        if not new_points:
            raise PlanValidationError("At least one point is required")

        position = 0 if after_point_id is None else plan.point_index(after_point_id) + 1
        plan.points[position:position] = new_points
        plan.points_created = True
        self._clear_rework(plan)
        self._reopen_review(plan)
        for point in new_points:
            self.repository.record(
                plan, "point", "added", point.id, f"Point {point.id} added", point.short_name
            )
        self.repository.save(plan)
        return [point.id for point in new_points]

    def change_point(self, plan_id: str, point_id: str, **fields: Any) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        unknown = set(fields) - set(POINT_TEXT_FIELDS) - set(POINT_LIST_FIELDS)
        if unknown:
            raise PlanValidationError(f"Unknown point field(s): {', '.join(sorted(unknown))}")
        for name, value in fields.items():
            if value is None:
                continue
            if name in POINT_LIST_FIELDS:
                setattr(point, name, _id_list(value))
            else:
                setattr(point, name, str(value))
        point.touch()
        self._clear_rework(plan)
        self.repository.record(plan, "point", "changed", point_id, f"Point {point_id} changed")
        self.repository.save(plan)
        return point

    def set_point_dependencies(
        self,
        plan_id: str,
        point_id: str,
        depends_on: Iterable[str],
        care_on: Iterable[str] = (),
    ) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        depends_on = [str(item) for item in depends_on]
        care_on = [str(item) for item in care_on]
        for dependency in depends_on:
            if dependency != INDEPENDENT and not plan.has_point(dependency):
                raise PlanValidationError(
                    f"Depends-on point with ID '{dependency}' not found in plan '{plan_id}'"
                )
        for related in care_on:
            if not plan.has_point(related):
                raise PlanValidationError(
                    f"Care-on point with ID '{related}' not found in plan '{plan_id}'"
                )
        point.depends_on = depends_on
        point.care_on_points = care_on
        point.touch()
        self.repository.save(plan)
        return point

    def add_point_comment(self, plan_id: str, point_id: str, text: str) -> str:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        stamp = datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        comment = f"[{stamp}] {text}"
        point.comments.append(comment)
        point.touch()
        self.repository.save(plan)
        return comment

    def set_point_implemented(self, plan_id: str, point_id: str) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        point.implemented = True
        point.need_rework = False
        point.touch()
        self.repository.record(
            plan,
            "point",
            "implemented",
            point_id,
            f"Point {point_id} new state implemented",
            point.short_name,
        )
        self.repository.save(plan)
        return point

    def set_point_reviewed(
        self,
        plan_id: str,
        point_id: str,
        comment: str = "",
        skip_if_not_implemented: bool = False,
    ) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        if not point.implemented and not skip_if_not_implemented:
            raise PlanPreconditionError(
                f"Point '{point_id}' must be implemented before it can be reviewed"
            )
        point.reviewed = True
        point.reviewed_comment = comment
        point.touch()
        self.repository.record(
            plan,
            "point",
            "reviewed",
            point_id,
            f"Point {point_id} new state reviewed",
            comment or point.short_name,
        )
        self.repository.save(plan)
        return point

    def set_point_tested(
        self,
        plan_id: str,
        point_id: str,
        comment: str = "",
        skip_if_not_implemented: bool = False,
    ) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        if not point.implemented and not skip_if_not_implemented:
            raise PlanPreconditionError(
                f"Point '{point_id}' must be implemented before it can be tested"
            )
        point.tested = True
        point.tested_comment = comment
        point.touch()
        self.repository.record(
            plan,
            "point",
            "tested",
            point_id,
            f"Point {point_id} new state tested",
            comment or point.short_name,
        )
        self.repository.save(plan)
        return point

    def set_point_need_rework(self, plan_id: str, point_id: str, reason: str) -> PlanPoint:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        point.implemented = False
        point.reviewed = False
        point.tested = False
        point.need_rework = True
        point.rework_reason = reason
        point.touch()
        self._reopen_review(plan)
        self.repository.record(
            plan,
            "point",
            "needs_rework",
            point_id,
            f"Point {point_id} new state needs rework",
            reason,
        )
        self.repository.save(plan)
        return point

    def remove_points(self, plan_id: str, point_ids: Iterable[str]) -> list[PlanPoint]:
        plan = self.repository.require(plan_id)
        point_ids = [str(item) for item in point_ids]
        if not point_ids:
            raise PlanValidationError("point_ids must be a non-empty list of point IDs")
        missing = [point_id for point_id in point_ids if not plan.has_point(point_id)]
        if missing:
            raise PlanValidationError(
                f"Points not found in plan '{plan_id}': {', '.join(missing)}"
            )
        removed = [point for point in plan.points if point.id in point_ids]
        plan.points = [point for point in plan.points if point.id not in point_ids]
        self._clear_rework(plan)
        for point in removed:
            self.repository.record(
                plan, "point", "removed", point.id, f"Point {point.id} removed", point.short_name
            )
        self.repository.save(plan)
        return removed

    # -- queries -------------------------------------------------------------

    def show_plan(self, plan_id: str, include_point_descriptions: bool = False) -> dict[str, Any]:
        plan = self.repository.require(plan_id)
        points = []
        for point in plan.points:
            item: dict[str, Any] = {
                "id": point.id,
                "short_name": point.short_name,
                "short_description": point.short_description,
                "detailed_description": point.detailed_description,
                "depends_on": list(point.depends_on),
                "implemented": point.implemented,
                "reviewed": point.reviewed,
                "tested": point.tested,
                "need_rework": point.need_rework,
            }
            if include_point_descriptions:
                item["review_instructions"] = point.review_instructions
                item["testing_instructions"] = point.testing_instructions
                item["expected_outputs"] = point.expected_outputs
                item["expected_inputs"] = point.expected_inputs
            points.append(item)
        return {
            "id": plan.id,
            "name": plan.name,
            "short_description": plan.short_description,
            "long_description": plan.long_description,
            "architecture": plan.architecture,
            "creation_step": plan.creation_step.value if plan.creation_step else None,
            "descriptions_updated": plan.descriptions_updated,
            "descriptions_reviewed": plan.descriptions_reviewed,
            "architecture_created": plan.architecture_created,
            "architecture_reviewed": plan.architecture_reviewed,
            "points_created": plan.points_created,
            "reviewed": plan.reviewed,
            "needs_work": plan.needs_work,
            "needs_work_comments": list(plan.needs_work_comments),
            "accepted": plan.accepted,
            "detected_language": plan.detected_language,
            "original_request": plan.original_request,
            "translated_request": plan.translated_request,
            "points": points,
        }

    def show_point(self, plan_id: str, point_id: str) -> dict[str, Any]:
        plan = self.repository.require(plan_id)
        point = self.repository.require_point(plan, point_id)
        index = plan.point_index(point_id)
        care_on = [plan.find_point(related) for related in point.care_on_points]
        return {
            "id": point.id,
            "short_name": point.short_name,
            "short_description": point.short_description,
            "detailed_description": point.detailed_description,
            "review_instructions": point.review_instructions,
            "testing_instructions": point.testing_instructions,
            "expected_outputs": point.expected_outputs,
            "expected_inputs": point.expected_inputs,
            "depends_on": list(point.depends_on),
            "state": {
                "implemented": point.implemented,
                "reviewed": point.reviewed,
                "reviewed_comment": point.reviewed_comment,
                "tested": point.tested,
                "tested_comment": point.tested_comment,
                "need_rework": point.need_rework,
                "rework_reason": point.rework_reason,
            },
            "comments": list(point.comments),
            "previous_points": [_summary(item) for item in plan.points[max(0, index - 2) : index]],
            "next_points": [_summary(item) for item in plan.points[index + 1 : index + 3]],
            "care_on_points": [_summary(item) for item in care_on if item is not None],
        }

    def plan_state(self, plan_id: str) -> PlanState:
        return PlanState.of(self.repository.require(plan_id))

    def is_plan_done(self, plan_id: str) -> tuple[bool, list[str]]:
        state = self.plan_state(plan_id)
        if state.accepted:
            return True, []
        return False, state.pending_points

    def get_logs(self, plan_id: str, limit: int | None = None) -> list[LogEntry]:
        plan = self.repository.require(plan_id)
        return self.repository.activity.newest_first(plan, limit)
