"""
statement_engines.scope -- Aggregation-level facility resolution.

Responsibility:
    Turn a requested aggregation level (FACILITY, DISTRICT, PROVINCE) and
    the caller's accessible facilities into the set of facility IDs a
    statement is computed over.

Architecture position:
    Engines -- pure function over reference data handed in by the service.

Invariants enforced:
    - The result is always a subset of the accessible facilities.
    - The result is sorted and never empty.
    - A requested facility is checked for access at every level.

Failure modes:
    - FacilityRequiredError: FACILITY level without a facility ID.
    - AccessDeniedError: requested facility not accessible, or the
      expanded scope is empty.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from statement_kernel.domain.dtos import AggregationLevel, FacilityRecord
from statement_kernel.exceptions import AccessDeniedError, FacilityRequiredError
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.scope")


@dataclass(frozen=True)
class ScopeResolution:
    level: AggregationLevel
    facility_ids: tuple[int, ...]
    primary_facility_id: int
    district_id: int | None = None
    province_id: int | None = None

    @property
    def is_aggregated(self) -> bool:
        return len(self.facility_ids) > 1


def resolve_facility_scope(
    level: AggregationLevel | str,
    requested_facility_id: int | None,
    accessible_facility_ids: Iterable[int],
    facilities: Sequence[FacilityRecord] = (),
    district_id: int | None = None,
    province_id: int | None = None,
) -> ScopeResolution:
    """
    Resolve the facilities covered by a statement.

    ``facilities`` supplies the district/province of each facility and is
    only consulted when ``district_id`` or ``province_id`` narrows the
    scope.  Facilities missing from it never match a narrowing filter.

    Raises:
        FacilityRequiredError: FACILITY level without ``requested_facility_id``.
        AccessDeniedError: requested facility outside the accessible set,
            or nothing accessible in scope.
    """
    level = AggregationLevel(level)
    accessible = frozenset(accessible_facility_ids)

    if requested_facility_id is not None and requested_facility_id not in accessible:
        raise AccessDeniedError(requested_facility_id)

    if level == AggregationLevel.FACILITY:
        if requested_facility_id is None:
            raise FacilityRequiredError(level.value)
        facility_ids: tuple[int, ...] = (requested_facility_id,)
    else:
        candidates = set(accessible)
        if district_id is not None or province_id is not None:
            by_id = {f.id: f for f in facilities}
            candidates = {
                fid for fid in candidates
                if fid in by_id
                and (district_id is None or by_id[fid].district_id == district_id)
                and (province_id is None or by_id[fid].province_id == province_id)
            }
        facility_ids = tuple(sorted(candidates))

    if not facility_ids:
        raise AccessDeniedError(None, f"no accessible facilities at level {level.value}")

    primary = requested_facility_id if requested_facility_id is not None else facility_ids[0]
    logger.info(
        "facility_scope_resolved",
        extra={
            "aggregation_level": level.value,
            "facility_count": len(facility_ids),
            "district_id": district_id,
            "province_id": province_id,
        },
    )
    return ScopeResolution(
        level=level,
        facility_ids=facility_ids,
        primary_facility_id=primary,
        district_id=district_id,
        province_id=province_id,
    )
