"""
Injectable time source.

Engines and the service never read the wall clock themselves; the
``generated_at`` and ``collection_timestamp`` fields of statement metadata
come from the ``Clock`` handed to them.  Two generations over the same data
with the same ``DeterministicClock`` produce identical statements.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

#: Default instant of ``DeterministicClock``: start of fiscal year 2025/2026.
FISCAL_YEAR_START = datetime(2025, 7, 1, 8, 0, 0, tzinfo=timezone.utc)


@runtime_checkable
class Clock(Protocol):
    def now(self) -> datetime:
        """Timezone-aware current instant."""
        ...


class SystemClock:
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = FISCAL_YEAR_START):
        if start.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware start time")
        self._current = start

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: float = 1) -> datetime:
        self._current += timedelta(seconds=seconds)
        return self._current
