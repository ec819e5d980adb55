from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from datetime import datetime
from pathlib import Path
from typing import Any

from workplan.errors import PlanStoreError
from workplan.models import LogEntry, Plan

logger = logging.getLogger(__name__)


def _created_epoch_ms(created_at: str) -> int:
    try:
        return int(datetime.fromisoformat(created_at).timestamp() * 1000)
    except ValueError:
        return time.time_ns() // 1_000_000


class PlanStore:
    """One JSON document per plan, overwritten whole on every save."""

    def __init__(self, plans_dir: Path) -> None:
        self.plans_dir = plans_dir.resolve()

    def path_for(self, plan_id: str) -> Path:
        return self.plans_dir / f"{plan_id}.json"

    def _read_record(self, path: Path) -> dict[str, Any] | None:
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load plan record %s: %s", path, exc)
            return None
        if not isinstance(payload, dict) or not payload.get("id"):
            logger.warning("Ignoring plan record without an id: %s", path)
            return None
        return payload

    def load_all(self) -> dict[str, Plan]:
        plans: dict[str, Plan] = {}
        if not self.plans_dir.exists():
            return plans
        for path in sorted(self.plans_dir.glob("*.json")):
            payload = self._read_record(path)
            if payload is None:
                continue
            plan = Plan.from_dict(payload)
            if not isinstance(payload.get("logs"), list):
                plan.logs = [
                    LogEntry(
                        timestamp=_created_epoch_ms(plan.created_at),
                        kind="plan",
                        action="created",
                        target=plan.id,
                        message="Plan created",
                        details=plan.name,
                    )
                ]
                logger.info("Migrated plan record %s: added activity log", plan.id)
                self.save(plan)
            plans[plan.id] = plan
        return plans

    def save(self, plan: Plan) -> None:
        path = self.path_for(plan.id)
        try:
            self.plans_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                suffix=".tmp",
                prefix=path.name + ".",
                dir=self.plans_dir,
            )
        except OSError as exc:
            raise PlanStoreError(f"Failed to save plan {plan.id}: {exc}") from exc
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(plan.to_dict(), handle, indent=2, ensure_ascii=False)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, path)
        except OSError as exc:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise PlanStoreError(f"Failed to save plan {plan.id}: {exc}") from exc

    def delete(self, plan_id: str) -> None:
        try:
            self.path_for(plan_id).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PlanStoreError(f"Failed to delete plan file {plan_id}: {exc}") from exc
