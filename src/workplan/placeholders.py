from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from enum import StrEnum

from workplan.models import Plan, PlanPoint

TOKEN_PATTERN = re.compile(r"<([a-z_]+)>")
NO_ARCHITECTURE = "No architecture defined"
NO_FEEDBACK = "No specific feedback provided"


class Token(StrEnum):
    PLAN_ID = "plan_id"
    PLAN_NAME = "plan_name"
    PLAN_SHORT_DESCRIPTION = "plan_short_description"
    PLAN_LONG_DESCRIPTION = "plan_long_description"
    PLAN_ARCHITECTURE = "plan_architecture"
    PLAN_ORIGINAL_REQUEST = "plan_original_request"
    PLAN_TRANSLATED_REQUEST = "plan_translated_request"
    PLAN_DETECTED_LANGUAGE = "plan_detected_language"
    PLAN_POINTS_COUNT = "plan_points_count"
    PLAN_IMPLEMENTED_COUNT = "plan_implemented_count"
    PLAN_REVIEWED_COUNT = "plan_reviewed_count"
    PLAN_TESTED_COUNT = "plan_tested_count"
    PLAN_NEEDWORK = "plan_needwork"

    POINT_ID = "point_id"
    POINT_SHORT_NAME = "point_short_name"
    POINT_SHORT_DESCRIPTION = "point_short_description"
    POINT_DETAILED_DESCRIPTION = "point_detailed_description"
    POINT_REVIEW_INSTRUCTIONS = "point_review_instructions"
    POINT_TESTING_INSTRUCTIONS = "point_testing_instructions"
    POINT_EXPECTED_OUTPUTS = "point_expected_outputs"
    POINT_EXPECTED_INPUTS = "point_expected_inputs"
    POINT_REWORK_REASON = "point_rework_reason"
    POINT_REVIEWED_COMMENT = "point_reviewed_comment"
    POINT_TESTED_COMMENT = "point_tested_comment"

    # Step-local values supplied by the caller through `context`.
    CHECKLIST = "checklist"
    REASON = "reason"
    ID = "id"
    FAILED_POINT_IDS = "failed_point_ids"
    REWORK_REASON = "rework_reason"


def first_feedback(plan: Plan) -> str:
    if plan.needs_work_comments:
        return plan.needs_work_comments[0]
    return NO_FEEDBACK


PLAN_RESOLVERS: dict[Token, Callable[[Plan], str]] = {
    Token.PLAN_ID: lambda plan: plan.id,
    Token.PLAN_NAME: lambda plan: plan.name or "",
    Token.PLAN_SHORT_DESCRIPTION: lambda plan: plan.short_description or "",
    Token.PLAN_LONG_DESCRIPTION: lambda plan: plan.long_description or "",
    Token.PLAN_ARCHITECTURE: lambda plan: plan.architecture or NO_ARCHITECTURE,
    Token.PLAN_ORIGINAL_REQUEST: lambda plan: plan.original_request or "",
    Token.PLAN_TRANSLATED_REQUEST: (
        lambda plan: plan.translated_request or plan.original_request or ""
    ),
    Token.PLAN_DETECTED_LANGUAGE: lambda plan: plan.detected_language or "",
    Token.PLAN_POINTS_COUNT: lambda plan: str(len(plan.points)),
    Token.PLAN_IMPLEMENTED_COUNT: (
        lambda plan: str(sum(1 for point in plan.points if point.implemented))
    ),
    Token.PLAN_REVIEWED_COUNT: lambda plan: str(sum(1 for point in plan.points if point.reviewed)),
    Token.PLAN_TESTED_COUNT: lambda plan: str(sum(1 for point in plan.points if point.tested)),
    Token.PLAN_NEEDWORK: first_feedback,
}

POINT_RESOLVERS: dict[Token, Callable[[PlanPoint], str]] = {
    Token.POINT_ID: lambda point: point.id,
    Token.POINT_SHORT_NAME: lambda point: point.short_name,
    Token.POINT_SHORT_DESCRIPTION: lambda point: point.short_description,
    Token.POINT_DETAILED_DESCRIPTION: lambda point: point.detailed_description,
    Token.POINT_REVIEW_INSTRUCTIONS: lambda point: point.review_instructions,
    Token.POINT_TESTING_INSTRUCTIONS: lambda point: point.testing_instructions,
    Token.POINT_EXPECTED_OUTPUTS: lambda point: point.expected_outputs,
    Token.POINT_EXPECTED_INPUTS: lambda point: point.expected_inputs,
    Token.POINT_REWORK_REASON: lambda point: point.rework_reason,
    Token.POINT_REVIEWED_COMMENT: lambda point: point.reviewed_comment,
    Token.POINT_TESTED_COMMENT: lambda point: point.tested_comment,
}


def resolve(
    token: Token,
    plan: Plan,
    point: PlanPoint | None = None,
    context: Mapping[Token, str] | None = None,
) -> str | None:
    if context and token in context:
        return context[token]
    if token in POINT_RESOLVERS:
        return POINT_RESOLVERS[token](point) if point is not None else None
    if token in PLAN_RESOLVERS:
        return PLAN_RESOLVERS[token](plan)
    return None


def render(
    template: str,
    plan: Plan,
    point: PlanPoint | None = None,
    context: Mapping[Token, str] | None = None,
) -> str:
    """Substitute `<token>` placeholders; unknown tokens are left as written."""

    def _substitute(match: re.Match[str]) -> str:
        try:
            token = Token(match.group(1))
        except ValueError:
            return match.group(0)
        value = resolve(token, plan, point, context)
        return match.group(0) if value is None else value

    return TOKEN_PATTERN.sub(_substitute, template)
