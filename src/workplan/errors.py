from __future__ import annotations

from typing import Any


class WorkplanError(RuntimeError):
    """Base class for failures reported back to the caller."""

    kind = "error"

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "kind": self.kind, "error": str(self)}


class PlanNotFoundError(WorkplanError):
    """Raised when a plan or point id does not exist."""

    kind = "not_found"


class PlanValidationError(WorkplanError):
    """Raised when input or plan state fails a validation rule."""

    kind = "validation"

    def __init__(self, message: str, *, needs_confirmation: bool = False) -> None:
        super().__init__(message)
        self.needs_confirmation = needs_confirmation

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.needs_confirmation:
            payload["needs_confirmation"] = True
        return payload


class PlanPreconditionError(WorkplanError):
    """Raised when a point is reviewed or tested before it is implemented."""

    kind = "precondition"


class PlanStoreError(WorkplanError):
    """Raised when a plan record cannot be persisted."""

    kind = "store"
