from __future__ import annotations

import logging

from workplan.activity import DEFAULT_LOG_LIMIT, ActivityLog
from workplan.errors import PlanNotFoundError, PlanValidationError
from workplan.models import LogEntry, Plan, PlanPoint
from workplan.state.store import PlanStore

logger = logging.getLogger(__name__)


class PlanRepository:
    """In-memory map of plans backed by a PlanStore.

    The map is the source of truth between saves. Callers are expected to
    serialise work on a given plan id.
    """

    def __init__(self, store: PlanStore, *, activity: ActivityLog | None = None) -> None:
        self.store = store
        self.activity = activity or ActivityLog(limit=DEFAULT_LOG_LIMIT)
        self._plans: dict[str, Plan] = store.load_all()
        for plan in self._plans.values():
            self.activity.observe(plan)
        logger.debug("Loaded %d plan(s) from %s", len(self._plans), store.plans_dir)

    def __contains__(self, plan_id: object) -> bool:
        return plan_id in self._plans

    def __len__(self) -> int:
        return len(self._plans)

    def get(self, plan_id: str) -> Plan | None:
        return self._plans.get(plan_id)

    def require(self, plan_id: str) -> Plan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise PlanNotFoundError(f"Plan with ID '{plan_id}' not found")
        return plan

    @staticmethod
    def require_point(plan: Plan, point_id: str) -> PlanPoint:
        point = plan.find_point(point_id)
        if point is None:
            raise PlanNotFoundError(f"Point with ID '{point_id}' not found in plan '{plan.id}'")
        return point

    def list(self) -> list[Plan]:
        return list(self._plans.values())

    def add(self, plan: Plan) -> Plan:
        if plan.id in self._plans:
            raise PlanValidationError(f"Plan with ID '{plan.id}' already exists")
        self.store.save(plan)
        self._plans[plan.id] = plan
        return plan

    def save(self, plan: Plan) -> None:
        plan.touch()
        self.store.save(plan)

    def remove(self, plan_id: str) -> Plan:
        plan = self.require(plan_id)
        self.store.delete(plan_id)
        del self._plans[plan_id]
        return plan

    def record(
        self,
        plan: Plan,
        kind: str,
        action: str,
        target: str,
        message: str,
        details: str | None = None,
    ) -> LogEntry:
        return self.activity.record(plan, kind, action, target, message, details)
