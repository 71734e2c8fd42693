"""Collaborator protocols -- the data the statement engine consumes.

The engine never queries storage directly.  It consumes raw event rows,
the event registry and reference data through these protocols.  The
SQLAlchemy selectors in ``statement_kernel.selectors`` implement them;
tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol, runtime_checkable

from statement_kernel.domain.dtos import (
    EntityType,
    EventInfo,
    FacilityRecord,
    ProjectInfo,
    RawEventRow,
    ReportingPeriodInfo,
)


@runtime_checkable
class EventDataSource(Protocol):
    """Source of raw planning/execution amounts."""

    def fetch_raw_events(
        self,
        project_id: int,
        facility_ids: Sequence[int],
        reporting_period_id: int,
        entity_types: Sequence[EntityType],
        event_codes: Iterable[str] | None = None,
    ) -> list[RawEventRow]:
        """Return the rows matching the filters.

        ``event_codes=None`` means all events.
        """
        ...


@runtime_checkable
class EventRegistry(Protocol):
    """Event code registry, read once per request to build the ID->code map."""

    def list_events(self) -> list[EventInfo]:
        ...


@runtime_checkable
class ReferenceDataSource(Protocol):
    """Facility, reporting-period and project metadata."""

    def get_facility(self, facility_id: int) -> FacilityRecord | None:
        ...

    def list_facilities(self, facility_ids: Iterable[int]) -> list[FacilityRecord]:
        ...

    def get_facilities_in_province(self, province_id: int) -> list[FacilityRecord]:
        ...

    def get_reporting_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        ...

    def get_previous_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        """The period immediately preceding ``reporting_period_id``, if any."""
        ...

    def get_project(self, project_id: int) -> ProjectInfo | None:
        ...
