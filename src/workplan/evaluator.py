from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from workplan import checklist
from workplan.checklist import ChecklistPhase
from workplan.config import WorkplanConfig
from workplan.models import CreationStep, Plan, PlanPoint
from workplan.placeholders import Token, first_feedback, render
from workplan.repository import PlanRepository
from workplan.validation import validate_architecture, validate_points

logger = logging.getLogger(__name__)

CHECKLIST_TOKEN = f"<{Token.CHECKLIST}>"


class Phase(StrEnum):
    CREATION = "creation"
    EXECUTION = "execution"


class FailedStep(StrEnum):
    NONE = ""
    PLAN_REWORK = "plan_rework"
    DESCRIPTION_UPDATE = "plan_description_update"
    DESCRIPTION_UPDATE_REWORK = "plan_description_update_rework"
    DESCRIPTION_REVIEW = "plan_description_review"
    DESCRIPTION_REVIEW_REWORK = "plan_description_review_rework"
    ARCHITECTURE_CREATION = "plan_architecture_creation"
    ARCHITECTURE_CREATION_REWORK = "plan_architecture_creation_rework"
    ARCHITECTURE_REVIEW = "plan_architecture_review"
    ARCHITECTURE_REVIEW_REWORK = "plan_architecture_review_rework"
    POINTS_CREATION = "plan_points_creation"
    POINTS_CREATION_REWORK = "plan_points_creation_rework"
    PLAN_REVIEW = "plan_review"
    REWORK = "rework"
    CODE_REVIEW = "code_review"
    TESTING = "testing"
    IMPLEMENTATION = "implementation"
    ACCEPTANCE = "acceptance"


class ContinuationKind(StrEnum):
    SET_DESCRIPTIONS_UPDATED = "set_descriptions_updated"
    SET_ARCHITECTURE_CREATED = "set_architecture_created"
    SET_POINTS_CREATED = "set_points_created"
    CONSUME_CHECKLIST = "consume_checklist"
    RESOLVE_FEEDBACK = "resolve_feedback"


@dataclass(slots=True, frozen=True)
class Continuation:
    kind: ContinuationKind
    plan_id: str
    phase: ChecklistPhase | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "plan_id": self.plan_id,
            "phase": self.phase.value if self.phase else None,
        }


@dataclass(slots=True, frozen=True)
class CompletionCheck:
    plan_id: str
    binding: str

    def to_dict(self) -> dict[str, Any]:
        return {"plan_id": self.plan_id, "binding": self.binding}


@dataclass(slots=True)
class ActionDescriptor:
    is_done: bool
    next_step_prompt: str
    failed_step: FailedStep = FailedStep.NONE
    failed_points: list[str] = field(default_factory=list)
    reason: str = ""
    recommended_mode: str = ""
    done_callback: Continuation | None = None
    completion_callback: CompletionCheck | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_done": self.is_done,
            "next_step_prompt": self.next_step_prompt,
            "failed_step": self.failed_step.value,
            "failed_points": list(self.failed_points),
            "reason": self.reason,
            "recommended_mode": self.recommended_mode,
            "done_callback": self.done_callback.to_dict() if self.done_callback else None,
            "completion_callback": (
                self.completion_callback.to_dict() if self.completion_callback else None
            ),
        }


COMPLETION_BINDINGS: dict[str, Callable[[Plan], bool]] = {
    "plan.reviewed": lambda plan: plan.reviewed,
    "plan.descriptionsUpdated": lambda plan: plan.descriptions_updated,
    "plan.descriptionsReviewed": lambda plan: plan.descriptions_reviewed,
    "plan.architectureCreated": lambda plan: plan.architecture_created,
    "plan.architectureReviewed": lambda plan: plan.architecture_reviewed,
    "plan.pointsCreated": lambda plan: plan.points_created,
    "plan.accepted": lambda plan: plan.accepted,
    "!plan.needsWork": lambda plan: not plan.needs_work,
}

# creation step -> (prompt key, failed step, flag that ends the step)
STEP_REWORK: dict[CreationStep, tuple[str, FailedStep, Callable[[Plan], bool]]] = {
    CreationStep.DESCRIPTION_UPDATE: (
        "description_update_rework",
        FailedStep.DESCRIPTION_UPDATE_REWORK,
        lambda plan: plan.descriptions_updated,
    ),
    CreationStep.DESCRIPTION_REVIEW: (
        "description_review_rework",
        FailedStep.DESCRIPTION_REVIEW_REWORK,
        lambda plan: plan.descriptions_reviewed,
    ),
    CreationStep.ARCHITECTURE_CREATION: (
        "architecture_creation_rework",
        FailedStep.ARCHITECTURE_CREATION_REWORK,
        lambda plan: plan.architecture_created,
    ),
    CreationStep.ARCHITECTURE_REVIEW: (
        "architecture_review_rework",
        FailedStep.ARCHITECTURE_REVIEW_REWORK,
        lambda plan: plan.architecture_reviewed,
    ),
    CreationStep.POINTS_CREATION: (
        "points_creation_rework",
        FailedStep.POINTS_CREATION_REWORK,
        lambda plan: plan.points_created,
    ),
}


def classify(plan: Plan) -> Phase:
    if not plan.points:
        return Phase.CREATION
    if plan.creation_step is CreationStep.COMPLETE:
        return Phase.EXECUTION
    if all(plan.creation_flags) and validate_points(plan) is None:
        return Phase.EXECUTION
    return Phase.CREATION


class WorkflowEvaluator:
    """Computes the single next action for a plan and applies reported outcomes.

    `evaluate` walks a fixed priority chain for the plan's phase and returns the
    first unmet step. The only state it writes is bookkeeping (creation step,
    lazily built checklists, and empty checklists marked complete), so two
    calls without an intervening mutation return equal descriptors.
    """

    def __init__(self, repository: PlanRepository, config: WorkplanConfig | None = None) -> None:
        self.repository = repository
        self.config = config or WorkplanConfig.default()

    def evaluate(self, plan_id: str) -> ActionDescriptor:
        plan = self.repository.require(plan_id)
        phase = classify(plan)
        logger.debug("Plan %s classified as %s", plan_id, phase)
        if phase is Phase.EXECUTION:
            self._enter_step(plan, CreationStep.COMPLETE)
            action = self._evaluate_execution(plan)
        else:
            action = self._evaluate_creation(plan)
        logger.debug("Plan %s next step: %s", plan_id, action.failed_step or "(none)")
        return action

    def complete(self, continuation: Continuation, success: bool, info: str | None = None) -> Plan:
        plan = self.repository.require(continuation.plan_id)
        if not success:
            logger.info("Step %s reported failure for plan %s", continuation.kind, plan.id)
            return plan

        kind = continuation.kind
        if kind is ContinuationKind.SET_DESCRIPTIONS_UPDATED:
            plan.descriptions_updated = True
            message = "Descriptions updated"
        elif kind is ContinuationKind.SET_ARCHITECTURE_CREATED:
            plan.architecture_created = True
            message = "Architecture created"
        elif kind is ContinuationKind.SET_POINTS_CREATED:
            plan.points_created = True
            message = "Points created"
        elif kind is ContinuationKind.CONSUME_CHECKLIST:
            phase = continuation.phase or ChecklistPhase.PLAN_REVIEW
            item = checklist.consume_head(plan, phase)
            message = f"Checklist item completed: {item}"
        else:
            if plan.needs_work_comments:
                plan.needs_work_comments.pop(0)
            if not plan.needs_work_comments:
                plan.needs_work = False
            message = "Feedback resolved"

        self.repository.record(plan, "plan", kind.value, plan.id, message, info)
        self.repository.save(plan)
        return plan

    def is_complete(self, check: CompletionCheck) -> bool:
        plan = self.repository.require(check.plan_id)
        predicate = COMPLETION_BINDINGS.get(check.binding)
        if predicate is None:
            logger.warning("Unknown completion binding %r for plan %s", check.binding, plan.id)
            return False
        return predicate(plan)

    def _enter_step(self, plan: Plan, step: CreationStep) -> None:
        if plan.creation_step is step:
            return
        previous = plan.creation_step
        plan.creation_step = step
        self.repository.record(
            plan,
            "plan",
            "creation_step",
            plan.id,
            f"Creation step: {step}",
            f"{previous or 'none'} -> {step}",
        )
        self.repository.save(plan)
        logger.debug("Plan %s entered creation step %s", plan.id, step)

    def _render(
        self,
        template_key: str,
        plan: Plan,
        point: PlanPoint | None = None,
        **context: str,
    ) -> str:
        template = self.config.prompts.get(template_key)
        return render(template, plan, point, {Token(key): value for key, value in context.items()})

    def _checklist_prompt(self, template_key: str, plan: Plan, item: str) -> str:
        template = self.config.prompts.get(template_key)
        if CHECKLIST_TOKEN in template:
            return render(template, plan, None, {Token.CHECKLIST: item})
        return f"{render(template, plan)}\n\nCurrent checklist item: {item}"

    def _mode(self, key: str) -> str:
        return self.config.modes.get(key)

    def _check(self, plan: Plan, binding: str) -> CompletionCheck | None:
        return CompletionCheck(plan.id, binding) if binding else None

    def _creation_review(
        self,
        plan: Plan,
        phase: ChecklistPhase,
        key: str,
        failed_step: FailedStep,
        reason: str,
    ) -> ActionDescriptor | None:
        if checklist.initialize_creation(plan, self.config.checklists.get(key)):
            self.repository.save(plan)
        queue = plan.creation_checklist
        if not queue:
            checklist.mark_phase_complete(plan, phase, "Review checklist is empty")
            self.repository.record(plan, "plan", f"{phase}_reviewed", plan.id, "Empty checklist")
            self.repository.save(plan)
            return None
        return ActionDescriptor(
            is_done=False,
            next_step_prompt=self._checklist_prompt(key, plan, queue[0]),
            failed_step=failed_step,
            reason=reason,
            recommended_mode=self._mode(key),
            done_callback=Continuation(ContinuationKind.CONSUME_CHECKLIST, plan.id, phase),
            completion_callback=self._check(plan, self.config.callbacks.get(key)),
        )

    def _evaluate_creation(self, plan: Plan) -> ActionDescriptor:
        if plan.needs_work:
            feedback = first_feedback(plan)
            template_key, failed_step = "plan_rework", FailedStep.PLAN_REWORK
            rework = STEP_REWORK.get(plan.creation_step) if plan.creation_step else None
            if rework is not None and not rework[2](plan):
                template_key, failed_step = rework[0], rework[1]
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render(template_key, plan, rework_reason=feedback),
                failed_step=failed_step,
                reason=feedback,
                recommended_mode=self._mode("plan_rework"),
                done_callback=Continuation(ContinuationKind.RESOLVE_FEEDBACK, plan.id),
                completion_callback=CompletionCheck(plan.id, "!plan.needsWork"),
            )

        if not plan.descriptions_updated:
            self._enter_step(plan, CreationStep.DESCRIPTION_UPDATE)
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render("description_update", plan),
                failed_step=FailedStep.DESCRIPTION_UPDATE,
                reason="Plan descriptions need to be updated",
                recommended_mode=self._mode("description_update"),
                done_callback=Continuation(ContinuationKind.SET_DESCRIPTIONS_UPDATED, plan.id),
                completion_callback=CompletionCheck(plan.id, "plan.descriptionsUpdated"),
            )

        if not plan.descriptions_reviewed:
            self._enter_step(plan, CreationStep.DESCRIPTION_REVIEW)
            action = self._creation_review(
                plan,
                ChecklistPhase.DESCRIPTIONS,
                "description_review",
                FailedStep.DESCRIPTION_REVIEW,
                "Plan descriptions need review",
            )
            if action is not None:
                return action

        if not plan.architecture_created or not plan.architecture:
            self._enter_step(plan, CreationStep.ARCHITECTURE_CREATION)
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render("architecture_creation", plan),
                failed_step=FailedStep.ARCHITECTURE_CREATION,
                reason="Plan architecture needs to be created",
                recommended_mode=self._mode("architecture_creation"),
                done_callback=Continuation(ContinuationKind.SET_ARCHITECTURE_CREATED, plan.id),
                completion_callback=CompletionCheck(plan.id, "plan.architectureCreated"),
            )

        if not plan.architecture_reviewed:
            error = validate_architecture(plan.architecture)
            if error is not None:
                self._enter_step(plan, CreationStep.ARCHITECTURE_CREATION)
                return ActionDescriptor(
                    is_done=False,
                    next_step_prompt=self._render(
                        "architecture_creation_rework", plan, rework_reason=error
                    ),
                    failed_step=FailedStep.ARCHITECTURE_CREATION_REWORK,
                    reason=f"Architecture validation failed: {error}",
                    recommended_mode=self._mode("architecture_creation"),
                )

            self._enter_step(plan, CreationStep.ARCHITECTURE_REVIEW)
            action = self._creation_review(
                plan,
                ChecklistPhase.ARCHITECTURE,
                "architecture_review",
                FailedStep.ARCHITECTURE_REVIEW,
                "Plan architecture needs review",
            )
            if action is not None:
                return action

        if not plan.points_created or not plan.points:
            self._enter_step(plan, CreationStep.POINTS_CREATION)
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render("points_creation", plan),
                failed_step=FailedStep.POINTS_CREATION,
                reason="Plan points need to be created",
                recommended_mode=self._mode("points_creation"),
                done_callback=Continuation(ContinuationKind.SET_POINTS_CREATED, plan.id),
                completion_callback=CompletionCheck(plan.id, "plan.pointsCreated"),
            )

        issue = validate_points(plan)
        if issue is not None:
            self._enter_step(plan, CreationStep.POINTS_CREATION)
            failed_points = [issue.point_id] if issue.point_id else []
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render(
                    "points_creation_rework",
                    plan,
                    rework_reason=issue.message,
                    failed_point_ids=", ".join(failed_points),
                ),
                failed_step=FailedStep.POINTS_CREATION_REWORK,
                failed_points=failed_points,
                reason=issue.message,
                recommended_mode=self._mode("points_creation"),
            )

        self._enter_step(plan, CreationStep.COMPLETE)
        return ActionDescriptor(
            is_done=False,
            next_step_prompt=self._render("creation_complete", plan),
            failed_step=FailedStep.NONE,
            reason="Plan creation completed successfully",
            recommended_mode=self._mode("creation_complete"),
        )

    def _point_action(
        self,
        plan: Plan,
        point: PlanPoint,
        key: str,
        failed_step: FailedStep,
        reason: str,
    ) -> ActionDescriptor:
        return ActionDescriptor(
            is_done=False,
            next_step_prompt=self._render(
                key,
                plan,
                point,
                id=point.id,
                failed_point_ids=point.id,
                reason=reason,
            ),
            failed_step=failed_step,
            failed_points=[point.id],
            reason=reason,
            recommended_mode=self._mode(key),
        )

    def _evaluate_execution(self, plan: Plan) -> ActionDescriptor:
        if not plan.reviewed:
            issue = validate_points(plan)
            if issue is not None:
                return ActionDescriptor(
                    is_done=False,
                    next_step_prompt=self._render("plan_review_failed", plan, reason=issue.message),
                    failed_step=FailedStep.PLAN_REVIEW,
                    failed_points=[issue.point_id] if issue.point_id else [],
                    reason=issue.message,
                    recommended_mode=self._mode("plan_review"),
                )

        for point in plan.points:
            if point.need_rework:
                reason = point.rework_reason or f"Point {point.id} needs rework"
                return self._point_action(plan, point, "rework", FailedStep.REWORK, reason)
        for point in plan.points:
            if point.implemented and not point.reviewed:
                return self._point_action(
                    plan,
                    point,
                    "code_review",
                    FailedStep.CODE_REVIEW,
                    f"Point {point.id} is implemented but not reviewed",
                )
        for point in plan.points:
            if point.implemented and not point.tested:
                return self._point_action(
                    plan,
                    point,
                    "testing",
                    FailedStep.TESTING,
                    f"Point {point.id} is implemented but not tested",
                )
        for point in plan.points:
            if not point.implemented:
                return self._point_action(
                    plan,
                    point,
                    "implementation",
                    FailedStep.IMPLEMENTATION,
                    f"Point {point.id} is not implemented",
                )

        if not plan.reviewed:
            changed = checklist.initialize_review(
                plan,
                self.config.checklists.get("plan_review_points"),
                self.config.checklists.get("plan_review_plan"),
            )
            if changed:
                self.repository.save(plan)
            queue = plan.review_checklist
            if queue:
                return ActionDescriptor(
                    is_done=False,
                    next_step_prompt=self._checklist_prompt("plan_review", plan, queue[0]),
                    failed_step=FailedStep.PLAN_REVIEW,
                    reason="Plan needs review",
                    recommended_mode=self._mode("plan_review"),
                    done_callback=Continuation(
                        ContinuationKind.CONSUME_CHECKLIST, plan.id, ChecklistPhase.PLAN_REVIEW
                    ),
                    completion_callback=self._check(plan, self.config.callbacks.get("plan_review")),
                )
            checklist.mark_phase_complete(
                plan, ChecklistPhase.PLAN_REVIEW, "Review checklist is empty"
            )
            self.repository.record(plan, "plan", "reviewed", plan.id, "Empty review checklist")
            self.repository.save(plan)

        if not plan.accepted:
            return ActionDescriptor(
                is_done=False,
                next_step_prompt=self._render("acceptance", plan),
                failed_step=FailedStep.ACCEPTANCE,
                reason="Plan is reviewed but not accepted",
                recommended_mode=self._mode("acceptance"),
                completion_callback=CompletionCheck(plan.id, "plan.accepted"),
            )

        return ActionDescriptor(
            is_done=True,
            next_step_prompt=self._render("done", plan),
            failed_step=FailedStep.NONE,
            reason="Plan is done",
            recommended_mode=self._mode("done"),
        )
