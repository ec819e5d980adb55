from __future__ import annotations

import time
from collections.abc import Callable

from workplan.models import LogEntry, Plan

DEFAULT_LOG_LIMIT = 100


class ActivityLog:
    """Bounded per-plan history of state transitions.

    Timestamps are epoch milliseconds and strictly increasing for a given
    instance: when the clock has not advanced, the previous value plus one is
    used instead.
    """

    def __init__(
        self,
        *,
        limit: int = DEFAULT_LOG_LIMIT,
        clock: Callable[[], int] | None = None,
    ) -> None:
        self.limit = max(1, int(limit))
        self._clock = clock or (lambda: time.time_ns() // 1_000_000)
        self._last_timestamp = 0

    def next_timestamp(self) -> int:
        timestamp = int(self._clock())
        if timestamp <= self._last_timestamp:
            timestamp = self._last_timestamp + 1
        self._last_timestamp = timestamp
        return timestamp

    def observe(self, plan: Plan) -> None:
        for entry in plan.logs:
            if entry.timestamp > self._last_timestamp:
                self._last_timestamp = entry.timestamp

    def record(
        self,
        plan: Plan,
        kind: str,
        action: str,
        target: str,
        message: str,
        details: str | None = None,
    ) -> LogEntry:
        entry = LogEntry(
            timestamp=self.next_timestamp(),
            kind=kind,
            action=action,
            target=target,
            message=message,
            details=details,
        )
        plan.logs.append(entry)
        if len(plan.logs) > self.limit:
            plan.logs = plan.logs[-self.limit :]
        return entry

    @staticmethod
    def newest_first(plan: Plan, limit: int | None = None) -> list[LogEntry]:
        entries = sorted(plan.logs, key=lambda entry: entry.timestamp, reverse=True)
        if limit is not None and limit > 0:
            return entries[:limit]
        return entries
