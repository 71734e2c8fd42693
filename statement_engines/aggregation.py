"""
statement_engines.aggregation -- Event-data collection and summation.

Responsibility:
    Collect raw planning/execution rows for the current (and, when one
    exists, the previous) reporting period, and sum them into per-event,
    per-facility and per-period totals.  Also provides period-over-period
    comparisons and facility coverage information.

Architecture position:
    Engines -- calculation layer.  ``collect_event_data`` reads through the
    ``EventDataSource`` protocol; everything else is pure.

Invariants enforced:
    - Amounts are summed as Decimal; no rounding happens here.
    - Numeric event IDs are resolved through the ID->code table built once
      per request.  Rows with an unknown ID are skipped and counted in
      ``unresolved_events``.
    - A facility with no data is reported with ``has_data=False`` and a
      warning; it is never dropped from ``facilities_included``.
    - Aggregated maps are exposed read-only.

Failure modes:
    - Exceptions raised by the data source propagate unchanged.

Usage:
    engine = DataAggregationEngine(event_source, build_event_code_table(registry))
    collected = engine.collect_event_data(filters, event_codes, previous_period_id)
    current = engine.aggregate_by_event(collected.current_period)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from types import MappingProxyType

from statement_engines.tracer import traced_engine
from statement_kernel.domain.amounts import ZERO, percentage, sum_codes
from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.dtos import (
    DataFilters,
    EventRef,
    FacilityRecord,
    RawEventRow,
)
from statement_kernel.domain.protocols import EventDataSource, EventRegistry
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.aggregation")


def build_event_code_table(registry: EventRegistry) -> dict[int, str]:
    """Build the ID->code table from the event registry."""
    return {event.id: event.code for event in registry.list_events()}


def resolve_event_refs(
    refs: Iterable[EventRef],
    event_codes_by_id: Mapping[int, str],
) -> tuple[str, ...]:
    """Resolve template event references to canonical codes.

    Unknown numeric IDs are dropped; duplicates are removed, first use wins.
    """
    resolved: dict[str, None] = {}
    for ref in refs:
        if isinstance(ref, int):
            code = event_codes_by_id.get(ref)
            if code is None:
                continue
        else:
            code = ref
        resolved.setdefault(code, None)
    return tuple(resolved)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AggregationMetadata:
    total_events: int = 0
    total_facilities: int = 0
    total_amount: Decimal = ZERO
    aggregation_method: str = "SUM"
    processing_time_ms: float = 0.0
    unresolved_events: int = 0


@dataclass(frozen=True)
class AggregatedData:
    """
    Summed event data for one period.

    ``event_totals`` is keyed by canonical event code, ``facility_totals``
    by facility ID and ``period_totals`` by reporting period ID.
    """

    event_totals: Mapping[str, Decimal] = field(default_factory=dict)
    facility_totals: Mapping[int, Decimal] = field(default_factory=dict)
    period_totals: Mapping[int, Decimal] = field(default_factory=dict)
    metadata: AggregationMetadata = field(default_factory=AggregationMetadata)
    facility_event_totals: Mapping[int, Mapping[str, Decimal]] = field(
        default_factory=dict,
    )

    def __post_init__(self) -> None:
        for name in ("event_totals", "facility_totals", "period_totals"):
            value = getattr(self, name)
            if not isinstance(value, MappingProxyType):
                object.__setattr__(self, name, MappingProxyType(dict(value)))
        frozen_nested = {
            facility_id: MappingProxyType(dict(totals))
            for facility_id, totals in self.facility_event_totals.items()
        }
        object.__setattr__(self, "facility_event_totals", MappingProxyType(frozen_nested))

    def total_for(self, codes: Iterable[str]) -> Decimal:
        return sum_codes(self.event_totals, codes)

    def amount(self, code: str) -> Decimal:
        return self.event_totals.get(code, ZERO)

    def facility_amount(self, facility_id: int, code: str) -> Decimal:
        return self.facility_event_totals.get(facility_id, {}).get(code, ZERO)

    @property
    def is_empty(self) -> bool:
        return not self.event_totals

    def with_event_total(self, code: str, amount: Decimal) -> AggregatedData:
        """Copy with ``event_totals[code]`` replaced by ``amount``."""
        totals = dict(self.event_totals)
        totals[code] = amount
        return AggregatedData(
            event_totals=totals,
            facility_totals=self.facility_totals,
            period_totals=self.period_totals,
            metadata=self.metadata,
            facility_event_totals=self.facility_event_totals,
        )


@dataclass(frozen=True)
class EventVariance:
    event_code: str
    current: Decimal
    previous: Decimal
    absolute: Decimal
    percentage: Decimal
    percentage_undefined: bool = False


@dataclass(frozen=True)
class PeriodComparison:
    current_period: AggregatedData
    previous_period: AggregatedData
    variances: Mapping[str, EventVariance]

    def __post_init__(self) -> None:
        if not isinstance(self.variances, MappingProxyType):
            object.__setattr__(self, "variances", MappingProxyType(dict(self.variances)))


@dataclass(frozen=True)
class CollectionMetadata:
    total_events: int
    facilities_included: tuple[int, ...]
    periods_included: tuple[int, ...]
    data_sources: tuple[str, ...]
    collection_timestamp: datetime


@dataclass(frozen=True)
class CollectedEventData:
    current_period: tuple[RawEventRow, ...]
    previous_period: tuple[RawEventRow, ...]
    metadata: CollectionMetadata
    previous_period_id: int | None = None

    @property
    def has_previous_period_data(self) -> bool:
        return self.previous_period_id is not None and bool(self.previous_period)


@dataclass(frozen=True)
class FacilityInfo:
    id: int
    name: str
    facility_type: str
    district: str | None
    has_data: bool


@dataclass(frozen=True)
class EventDataSummary:
    total_events: int
    total_amount: Decimal
    event_code_counts: Mapping[str, int]
    facility_counts: Mapping[int, int]


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class DataAggregationEngine:
    """
    Collects and sums raw event rows.

    Contract:
        ``collect_event_data`` is the only method that touches the data
        source.  The other methods are pure over their arguments and the
        ID->code table given at construction.
    Guarantees:
        - ``aggregate_by_event`` sums every resolvable row exactly once.
        - ``calculate_period_comparisons`` covers every event code present
          in either period; missing keys count as zero.
    Non-goals:
        - No currency conversion and no rounding.
    """

    def __init__(
        self,
        data_source: EventDataSource,
        event_codes_by_id: Mapping[int, str] | None = None,
        clock: Clock | None = None,
    ):
        self._data_source = data_source
        self._event_codes_by_id = MappingProxyType(dict(event_codes_by_id or {}))
        self._clock = clock or SystemClock()

    @property
    def event_codes_by_id(self) -> Mapping[int, str]:
        return self._event_codes_by_id

    def collect_event_data(
        self,
        filters: DataFilters,
        event_codes: Iterable[str] | None,
        previous_period_id: int | None = None,
    ) -> CollectedEventData:
        """Fetch current-period rows and, when a previous period exists, its rows."""
        codes = tuple(sorted(set(event_codes))) if event_codes is not None else None

        current_rows = tuple(
            self._data_source.fetch_raw_events(
                filters.project_id,
                filters.facility_ids,
                filters.reporting_period_id,
                filters.entity_types,
                codes,
            )
        )

        previous_rows: tuple[RawEventRow, ...] = ()
        periods = [filters.reporting_period_id]
        if previous_period_id is not None:
            previous_rows = tuple(
                self._data_source.fetch_raw_events(
                    filters.project_id,
                    filters.facility_ids,
                    previous_period_id,
                    filters.entity_types,
                    codes,
                )
            )
            periods.append(previous_period_id)

        metadata = CollectionMetadata(
            total_events=len(current_rows) + len(previous_rows),
            facilities_included=filters.facility_ids,
            periods_included=tuple(periods),
            data_sources=tuple(et.value for et in filters.entity_types),
            collection_timestamp=self._clock.now(),
        )

        logger.info(
            "event_data_collected",
            extra={
                "current_rows": len(current_rows),
                "previous_rows": len(previous_rows),
                "facility_count": len(filters.facility_ids),
                "has_previous_period": previous_period_id is not None,
            },
        )
        return CollectedEventData(
            current_period=current_rows,
            previous_period=previous_rows,
            metadata=metadata,
            previous_period_id=previous_period_id,
        )

    @traced_engine("aggregation", "1.0")
    def aggregate_by_event(self, rows: Sequence[RawEventRow]) -> AggregatedData:
        """Sum rows into event, facility and period totals."""
        started = self._clock.now()
        event_totals: dict[str, Decimal] = {}
        facility_totals: dict[int, Decimal] = {}
        period_totals: dict[int, Decimal] = {}
        facility_event_totals: dict[int, dict[str, Decimal]] = {}
        total_amount = ZERO
        counted = 0
        unresolved = 0

        for row in rows:
            code = self._resolve_code(row)
            if code is None:
                unresolved += 1
                continue
            amount = row.amount
            event_totals[code] = event_totals.get(code, ZERO) + amount
            facility_totals[row.facility_id] = (
                facility_totals.get(row.facility_id, ZERO) + amount
            )
            period_totals[row.reporting_period_id] = (
                period_totals.get(row.reporting_period_id, ZERO) + amount
            )
            per_facility = facility_event_totals.setdefault(row.facility_id, {})
            per_facility[code] = per_facility.get(code, ZERO) + amount
            total_amount += amount
            counted += 1

        if unresolved:
            logger.warning(
                "unresolved_event_ids_skipped",
                extra={"unresolved_events": unresolved},
            )

        metadata = AggregationMetadata(
            total_events=counted,
            total_facilities=len(facility_totals),
            total_amount=total_amount,
            processing_time_ms=round(
                (self._clock.now() - started).total_seconds() * 1000, 2
            ),
            unresolved_events=unresolved,
        )
        return AggregatedData(
            event_totals=event_totals,
            facility_totals=facility_totals,
            period_totals=period_totals,
            metadata=metadata,
            facility_event_totals=facility_event_totals,
        )

    @traced_engine("aggregation", "1.0")
    def calculate_period_comparisons(
        self,
        current: AggregatedData,
        previous: AggregatedData,
    ) -> PeriodComparison:
        """Per-event absolute and percentage change between two periods."""
        variances: dict[str, EventVariance] = {}
        for code in sorted(set(current.event_totals) | set(previous.event_totals)):
            cur = current.amount(code)
            prev = previous.amount(code)
            absolute = cur - prev
            if prev == ZERO:
                variances[code] = EventVariance(
                    event_code=code,
                    current=cur,
                    previous=prev,
                    absolute=absolute,
                    percentage=ZERO,
                    percentage_undefined=True,
                )
            else:
                variances[code] = EventVariance(
                    event_code=code,
                    current=cur,
                    previous=prev,
                    absolute=absolute,
                    percentage=percentage(absolute, abs(prev)),
                )
        return PeriodComparison(
            current_period=current,
            previous_period=previous,
            variances=variances,
        )

    def get_facility_info(
        self,
        facilities: Sequence[FacilityRecord],
        aggregated: AggregatedData,
    ) -> dict[int, FacilityInfo]:
        """Facility details with ``has_data`` = contributed a non-zero amount."""
        return {
            facility.id: FacilityInfo(
                id=facility.id,
                name=facility.name,
                facility_type=facility.facility_type,
                district=facility.district_name,
                has_data=aggregated.facility_totals.get(facility.id, ZERO) != ZERO,
            )
            for facility in facilities
        }

    def validate_facility_data(
        self,
        facility_ids: Iterable[int],
        aggregated: AggregatedData,
    ) -> list[str]:
        """One warning per facility that contributed no data."""
        warnings: list[str] = []
        for facility_id in sorted(set(facility_ids)):
            if aggregated.facility_totals.get(facility_id, ZERO) == ZERO:
                warnings.append(
                    f"Facility {facility_id} has no event data for the selected period"
                )
        return warnings

    def get_event_data_summary(self, rows: Sequence[RawEventRow]) -> EventDataSummary:
        """Row counts per event code and per facility."""
        event_counts: dict[str, int] = {}
        facility_counts: dict[int, int] = {}
        total = ZERO
        for row in rows:
            code = self._resolve_code(row) or f"#{row.event_id}"
            event_counts[code] = event_counts.get(code, 0) + 1
            facility_counts[row.facility_id] = facility_counts.get(row.facility_id, 0) + 1
            total += row.amount
        return EventDataSummary(
            total_events=len(rows),
            total_amount=total,
            event_code_counts=MappingProxyType(event_counts),
            facility_counts=MappingProxyType(facility_counts),
        )

    def _resolve_code(self, row: RawEventRow) -> str | None:
        if row.event_code:
            return row.event_code
        if row.event_id is not None:
            return self._event_codes_by_id.get(row.event_id)
        return None
