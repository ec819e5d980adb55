from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

INDEPENDENT = "-1"


def _utcnow_iso() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


class CreationStep(StrEnum):
    DESCRIPTION_UPDATE = "description_update"
    DESCRIPTION_REVIEW = "description_review"
    ARCHITECTURE_CREATION = "architecture_creation"
    ARCHITECTURE_REVIEW = "architecture_review"
    POINTS_CREATION = "points_creation"
    COMPLETE = "complete"


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _optional_str_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    return _str_list(value)


@dataclass(slots=True)
class LogEntry:
    timestamp: int
    kind: str
    action: str
    target: str
    message: str
    details: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "kind": self.kind,
            "action": self.action,
            "target": self.target,
            "message": self.message,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogEntry:
        return cls(
            timestamp=int(data.get("timestamp", 0)),
            kind=str(data.get("kind", "plan")),
            action=str(data.get("action", "")),
            target=str(data.get("target", "")),
            message=str(data.get("message", "")),
            details=data.get("details"),
        )


@dataclass(slots=True)
class PlanPoint:
    id: str
    short_name: str = ""
    short_description: str = ""
    detailed_description: str = ""
    review_instructions: str = ""
    testing_instructions: str = ""
    expected_outputs: str = ""
    expected_inputs: str = ""
    depends_on: list[str] = field(default_factory=list)
    care_on_points: list[str] = field(default_factory=list)
    implemented: bool = False
    reviewed: bool = False
    reviewed_comment: str = ""
    tested: bool = False
    tested_comment: str = ""
    need_rework: bool = False
    rework_reason: str = ""
    comments: list[str] = field(default_factory=list)
    updated_at: str = field(default_factory=_utcnow_iso)

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "short_name": self.short_name,
            "short_description": self.short_description,
            "detailed_description": self.detailed_description,
            "review_instructions": self.review_instructions,
            "testing_instructions": self.testing_instructions,
            "expected_outputs": self.expected_outputs,
            "expected_inputs": self.expected_inputs,
            "depends_on": list(self.depends_on),
            "care_on_points": list(self.care_on_points),
            "implemented": self.implemented,
            "reviewed": self.reviewed,
            "reviewed_comment": self.reviewed_comment,
            "tested": self.tested,
            "tested_comment": self.tested_comment,
            "need_rework": self.need_rework,
            "rework_reason": self.rework_reason,
            "comments": list(self.comments),
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PlanPoint:
        return cls(
            id=str(data["id"]),
            short_name=str(data.get("short_name") or ""),
            short_description=str(data.get("short_description") or ""),
            detailed_description=str(data.get("detailed_description") or ""),
            review_instructions=str(data.get("review_instructions") or ""),
            testing_instructions=str(data.get("testing_instructions") or ""),
            expected_outputs=str(data.get("expected_outputs") or ""),
            expected_inputs=str(data.get("expected_inputs") or ""),
            depends_on=_str_list(data.get("depends_on")),
            care_on_points=_str_list(data.get("care_on_points")),
            implemented=bool(data.get("implemented", False)),
            reviewed=bool(data.get("reviewed", False)),
            reviewed_comment=str(data.get("reviewed_comment") or ""),
            tested=bool(data.get("tested", False)),
            tested_comment=str(data.get("tested_comment") or ""),
            need_rework=bool(data.get("need_rework", False)),
            rework_reason=str(data.get("rework_reason") or ""),
            comments=_str_list(data.get("comments")),
            updated_at=str(data.get("updated_at") or _utcnow_iso()),
        )


@dataclass(slots=True)
class Plan:
    id: str
    name: str
    short_description: str = ""
    long_description: str = ""
    architecture: str | None = None
    original_request: str | None = None
    translated_request: str | None = None
    detected_language: str | None = None
    creation_step: CreationStep | None = None
    descriptions_updated: bool = False
    descriptions_reviewed: bool = False
    architecture_created: bool = False
    architecture_reviewed: bool = False
    points_created: bool = False
    creation_checklist: list[str] | None = None
    review_checklist: list[str] | None = None
    reviewed: bool = False
    reviewed_comment: str | None = None
    needs_work: bool = False
    needs_work_comments: list[str] = field(default_factory=list)
    accepted: bool = False
    accepted_comment: str | None = None
    points: list[PlanPoint] = field(default_factory=list)
    logs: list[LogEntry] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)

    def touch(self) -> None:
        self.updated_at = _utcnow_iso()

    @property
    def creation_flags(self) -> tuple[bool, ...]:
        return (
            self.descriptions_updated,
            self.descriptions_reviewed,
            self.architecture_created,
            self.architecture_reviewed,
            self.points_created,
        )

    def find_point(self, point_id: str) -> PlanPoint | None:
        for point in self.points:
            if point.id == point_id:
                return point
        return None

    def point_index(self, point_id: str) -> int:
        for index, point in enumerate(self.points):
            if point.id == point_id:
                return index
        return -1

    def has_point(self, point_id: str) -> bool:
        return self.point_index(point_id) != -1

    def next_point_id(self) -> int:
        numeric_ids = [int(point.id) for point in self.points if point.id.isdigit()]
        return max(numeric_ids, default=0) + 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "short_description": self.short_description,
            "long_description": self.long_description,
            "architecture": self.architecture,
            "original_request": self.original_request,
            "translated_request": self.translated_request,
            "detected_language": self.detected_language,
            "creation_step": self.creation_step.value if self.creation_step else None,
            "descriptions_updated": self.descriptions_updated,
            "descriptions_reviewed": self.descriptions_reviewed,
            "architecture_created": self.architecture_created,
            "architecture_reviewed": self.architecture_reviewed,
            "points_created": self.points_created,
            "creation_checklist": (
                list(self.creation_checklist) if self.creation_checklist is not None else None
            ),
            "review_checklist": (
                list(self.review_checklist) if self.review_checklist is not None else None
            ),
            "reviewed": self.reviewed,
            "reviewed_comment": self.reviewed_comment,
            "needs_work": self.needs_work,
            "needs_work_comments": list(self.needs_work_comments),
            "accepted": self.accepted,
            "accepted_comment": self.accepted_comment,
            "points": [point.to_dict() for point in self.points],
            "logs": [entry.to_dict() for entry in self.logs],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Plan:
        raw_step = data.get("creation_step")
        try:
            creation_step = CreationStep(raw_step) if raw_step else None
        except ValueError:
            creation_step = None
        raw_points = data.get("points")
        raw_logs = data.get("logs")
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            short_description=str(data.get("short_description") or ""),
            long_description=str(data.get("long_description") or ""),
            architecture=data.get("architecture"),
            original_request=data.get("original_request"),
            translated_request=data.get("translated_request"),
            detected_language=data.get("detected_language"),
            creation_step=creation_step,
            descriptions_updated=bool(data.get("descriptions_updated", False)),
            descriptions_reviewed=bool(data.get("descriptions_reviewed", False)),
            architecture_created=bool(data.get("architecture_created", False)),
            architecture_reviewed=bool(data.get("architecture_reviewed", False)),
            points_created=bool(data.get("points_created", False)),
            creation_checklist=_optional_str_list(data.get("creation_checklist")),
            review_checklist=_optional_str_list(data.get("review_checklist")),
            reviewed=bool(data.get("reviewed", False)),
            reviewed_comment=data.get("reviewed_comment"),
            needs_work=bool(data.get("needs_work", False)),
            needs_work_comments=_str_list(data.get("needs_work_comments")),
            accepted=bool(data.get("accepted", False)),
            accepted_comment=data.get("accepted_comment"),
            points=[
                PlanPoint.from_dict(item)
                for item in (raw_points if isinstance(raw_points, list) else [])
                if isinstance(item, dict)
            ],
            logs=[
                LogEntry.from_dict(item)
                for item in (raw_logs if isinstance(raw_logs, list) else [])
                if isinstance(item, dict)
            ],
            created_at=str(data.get("created_at") or _utcnow_iso()),
            updated_at=str(data.get("updated_at") or _utcnow_iso()),
        )


@dataclass(slots=True)
class PlanState:
    total_count: int
    implemented_count: int
    reviewed_count: int
    tested_count: int
    all_implemented: bool
    all_reviewed: bool
    all_tested: bool
    accepted: bool
    pending_points: list[str]

    @classmethod
    def of(cls, plan: Plan) -> PlanState:
        total = len(plan.points)
        implemented = sum(1 for point in plan.points if point.implemented)
        reviewed = sum(1 for point in plan.points if point.reviewed)
        tested = sum(1 for point in plan.points if point.tested)
        return cls(
            total_count=total,
            implemented_count=implemented,
            reviewed_count=reviewed,
            tested_count=tested,
            all_implemented=total > 0 and implemented == total,
            all_reviewed=total > 0 and reviewed == total,
            all_tested=total > 0 and tested == total,
            accepted=plan.accepted,
            pending_points=[
                point.id for point in plan.points if not (point.reviewed and point.tested)
            ],
        )
