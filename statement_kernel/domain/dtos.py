"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable inputs that flow into statement generation: raw
    event rows as delivered by the event data source, event registry
    entries, reference data (facilities, reporting periods, projects), and
    the filter set that selects which rows are summed.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Free of ORM dependencies.  ``from_model()`` class methods exist as
    boundary converters and are only invoked from the selector layer.

Invariants enforced:
    - Every RawEventRow carries an event code or an event ID (or both).
    - Amounts are Decimal, never float.
    - DataFilters carry an immutable, sorted facility tuple so that two
      filters over the same facilities compare equal.

Failure modes:
    - ValueError on RawEventRow with neither event code nor event ID.
    - ValueError on DataFilters with no entity types.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from statement_kernel.models.event import Event as EventModel
    from statement_kernel.models.hierarchy import Facility as FacilityModel
    from statement_kernel.models.period import Project as ProjectModel
    from statement_kernel.models.period import ReportingPeriod as ReportingPeriodModel


# Event references in templates are either registry IDs or symbolic codes.
EventRef = int | str


class EntityType(str, Enum):
    """Which side of the plan/execute cycle a row belongs to."""

    PLANNING = "PLANNING"
    EXECUTION = "EXECUTION"


class AggregationLevel(str, Enum):
    """Organizational scope over which event data is summed."""

    FACILITY = "FACILITY"
    DISTRICT = "DISTRICT"
    PROVINCE = "PROVINCE"


class StatementCode(str, Enum):
    """Statements the engine knows how to generate."""

    REV_EXP = "REV_EXP"
    ASSETS_LIAB = "ASSETS_LIAB"
    CASH_FLOW = "CASH_FLOW"
    NET_ASSETS_CHANGES = "NET_ASSETS_CHANGES"
    BUDGET_VS_ACTUAL = "BUDGET_VS_ACTUAL"


@dataclass(frozen=True)
class RawEventRow:
    """
    One raw amount as returned by the event data source.

    ``event_code`` is preferred; rows that only carry ``event_id`` are
    resolved through the ID->code table during aggregation.
    """

    facility_id: int
    reporting_period_id: int
    amount: Decimal
    event_code: str | None = None
    event_id: int | None = None
    entity_type: EntityType | None = None

    def __post_init__(self) -> None:
        if self.event_code is None and self.event_id is None:
            raise ValueError("RawEventRow requires an event_code or an event_id")


@dataclass(frozen=True)
class EventInfo:
    """Event registry entry: numeric ID and canonical code."""

    id: int
    code: str
    description: str = ""

    @classmethod
    def from_model(cls, model: EventModel) -> EventInfo:
        return cls(id=model.id, code=model.code, description=model.description or "")


@dataclass(frozen=True)
class FacilityRecord:
    """Facility with its position in the district/province hierarchy."""

    id: int
    name: str
    facility_type: str
    district_id: int | None = None
    district_name: str | None = None
    province_id: int | None = None

    @classmethod
    def from_model(cls, model: FacilityModel) -> FacilityRecord:
        district = model.district
        return cls(
            id=model.id,
            name=model.name,
            facility_type=model.facility_type,
            district_id=model.district_id,
            district_name=district.name if district is not None else None,
            province_id=district.province_id if district is not None else None,
        )


@dataclass(frozen=True)
class ReportingPeriodInfo:
    """A reporting period (fiscal year or quarter) by ID."""

    id: int
    year: int
    period_type: str
    start_date: date
    end_date: date

    @property
    def label(self) -> str:
        return f"FY {self.year}/{self.year + 1}"

    @classmethod
    def from_model(cls, model: ReportingPeriodModel) -> ReportingPeriodInfo:
        return cls(
            id=model.id,
            year=model.year,
            period_type=model.period_type,
            start_date=model.start_date,
            end_date=model.end_date,
        )


@dataclass(frozen=True)
class ProjectInfo:
    """Project (funding programme) by ID."""

    id: int
    name: str
    project_type: str

    @classmethod
    def from_model(cls, model: ProjectModel) -> ProjectInfo:
        return cls(id=model.id, name=model.name, project_type=model.project_type)


@dataclass(frozen=True)
class DataFilters:
    """Which raw rows to sum for one aggregation."""

    project_id: int
    facility_ids: tuple[int, ...]
    reporting_period_id: int
    entity_types: tuple[EntityType, ...] = field(
        default=(EntityType.EXECUTION,),
    )

    def __post_init__(self) -> None:
        if not self.entity_types:
            raise ValueError("DataFilters requires at least one entity type")
        object.__setattr__(
            self, "facility_ids", tuple(sorted(set(self.facility_ids)))
        )
        object.__setattr__(self, "entity_types", tuple(self.entity_types))

    def for_period(self, reporting_period_id: int) -> DataFilters:
        """Same filters against a different reporting period."""
        return DataFilters(
            project_id=self.project_id,
            facility_ids=self.facility_ids,
            reporting_period_id=reporting_period_id,
            entity_types=self.entity_types,
        )

    def for_entity_types(self, *entity_types: EntityType) -> DataFilters:
        """Same filters restricted to the given entity types."""
        return DataFilters(
            project_id=self.project_id,
            facility_ids=self.facility_ids,
            reporting_period_id=self.reporting_period_id,
            entity_types=entity_types,
        )
