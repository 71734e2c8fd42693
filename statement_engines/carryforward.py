"""
statement_engines.carryforward -- Beginning cash resolution.

Responsibility:
    Decide the beginning cash balance of a period: a manual entry in the
    current period's execution data, else the previous period's ending cash
    (summed per facility when the scope covers several facilities), else a
    zero fallback.  Detect manual-vs-carryforward discrepancies without
    correcting them.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The service collects the
    current and previous period data and calls ``resolve_beginning_cash``.

Invariants enforced:
    - A non-zero manual beginning cash is never overridden.
    - A discrepancy is recorded as ``manual - carryforward`` only when it
      exceeds the tolerance.
    - Carried-forward cash is injected into the current period only when
      the source is CARRYFORWARD or CARRYFORWARD_AGGREGATED and the
      existing amount is zero.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from statement_engines.aggregation import AggregatedData
from statement_engines.tracer import traced_engine
from statement_kernel.domain.amounts import TOLERANCE, ZERO, round_currency
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.carryforward")

BEGINNING_CASH_CODE = "CASH_EQUIVALENTS_BEGIN"
ENDING_CASH_CODE = "CASH_EQUIVALENTS_END"
LARGE_BALANCE_THRESHOLD = Decimal("1000000")


class CarryforwardSource(str, Enum):
    CARRYFORWARD = "CARRYFORWARD"
    CARRYFORWARD_AGGREGATED = "CARRYFORWARD_AGGREGATED"
    MANUAL_ENTRY = "MANUAL_ENTRY"
    FALLBACK = "FALLBACK"


@dataclass(frozen=True)
class FacilityCarryforward:
    facility_id: int
    ending_cash: Decimal
    has_previous_data: bool


@dataclass(frozen=True)
class CarryforwardResult:
    source: CarryforwardSource
    beginning_cash: Decimal
    discrepancy: Decimal | None = None
    previous_period_id: int | None = None
    previous_period_ending_cash: Decimal | None = None
    facility_breakdown: tuple[FacilityCarryforward, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_carryforward(self) -> bool:
        return self.source in (
            CarryforwardSource.CARRYFORWARD,
            CarryforwardSource.CARRYFORWARD_AGGREGATED,
        )


@traced_engine("carryforward", "1.0", fingerprint_fields=("previous_period_id", "facility_ids"))
def resolve_beginning_cash(
    *,
    current: AggregatedData,
    previous: AggregatedData | None,
    previous_period_id: int | None,
    facility_ids: Sequence[int],
    beginning_code: str = BEGINNING_CASH_CODE,
    ending_code: str = ENDING_CASH_CODE,
    tolerance: Decimal = TOLERANCE,
) -> CarryforwardResult:
    """
    Resolve beginning cash for the current period.

    Postconditions:
        - MANUAL_ENTRY when the current period has a non-zero beginning cash.
        - CARRYFORWARD / CARRYFORWARD_AGGREGATED from the previous period's
          ending cash when a previous period exists.
        - FALLBACK with zero otherwise.
    """
    manual = current.amount(beginning_code)

    if previous_period_id is None:
        if manual != ZERO:
            return CarryforwardResult(
                source=CarryforwardSource.MANUAL_ENTRY,
                beginning_cash=manual,
                warnings=("No previous period found. Using manual entry.",),
            )
        logger.info("carryforward_fallback", extra={"reason": "no_previous_period"})
        return CarryforwardResult(
            source=CarryforwardSource.FALLBACK,
            beginning_cash=ZERO,
            warnings=("No previous period found and no manual entry available.",),
        )

    previous = previous or AggregatedData()
    breakdown = tuple(
        FacilityCarryforward(
            facility_id=facility_id,
            ending_cash=previous.facility_amount(facility_id, ending_code),
            has_previous_data=facility_id in previous.facility_totals,
        )
        for facility_id in facility_ids
    )
    carryforward = sum((row.ending_cash for row in breakdown), ZERO)
    aggregated = len(facility_ids) > 1

    warnings: list[str] = []
    if aggregated:
        missing = [row.facility_id for row in breakdown if not row.has_previous_data]
        if len(missing) == len(breakdown):
            warnings.append(
                f"No previous period data available for any of the {len(breakdown)} "
                "facilities. This is expected for the first reporting period."
            )
        elif missing:
            warnings.append(
                f"Missing previous period statements for {len(missing)} out of "
                f"{len(breakdown)} facilities: {', '.join(str(f) for f in missing)}"
            )

    if manual != ZERO:
        discrepancy = None
        if abs(manual - carryforward) > tolerance:
            discrepancy = manual - carryforward
            warnings.insert(
                0,
                "Beginning cash override detected: Manual entry "
                f"({round_currency(manual)}) differs from previous period ending "
                f"cash ({round_currency(carryforward)}) by "
                f"{round_currency(abs(discrepancy))}. Using manual entry value.",
            )
            logger.warning(
                "carryforward_discrepancy",
                extra={
                    "manual_entry": str(manual),
                    "carryforward": str(carryforward),
                    "discrepancy": str(discrepancy),
                },
            )
        return CarryforwardResult(
            source=CarryforwardSource.MANUAL_ENTRY,
            beginning_cash=manual,
            discrepancy=discrepancy,
            previous_period_id=previous_period_id,
            previous_period_ending_cash=carryforward,
            facility_breakdown=breakdown if aggregated else (),
            warnings=tuple(warnings),
        )

    if carryforward == ZERO:
        warnings.insert(
            0,
            "Previous period ending cash is zero. "
            "This may indicate missing data or a new account.",
        )

    source = (
        CarryforwardSource.CARRYFORWARD_AGGREGATED
        if aggregated
        else CarryforwardSource.CARRYFORWARD
    )
    logger.info(
        "carryforward_resolved",
        extra={
            "source": source.value,
            "beginning_cash": str(carryforward),
            "previous_period_id": previous_period_id,
        },
    )
    return CarryforwardResult(
        source=source,
        beginning_cash=carryforward,
        previous_period_id=previous_period_id,
        previous_period_ending_cash=carryforward,
        facility_breakdown=breakdown if aggregated else (),
        warnings=tuple(warnings),
    )


def inject_beginning_cash(
    current: AggregatedData,
    result: CarryforwardResult,
    beginning_code: str = BEGINNING_CASH_CODE,
) -> AggregatedData:
    """Place carried-forward cash into the current totals if none is recorded."""
    if not result.is_carryforward:
        return current
    if current.amount(beginning_code) != ZERO:
        return current
    return current.with_event_total(beginning_code, result.beginning_cash)


class CarryforwardValidator:
    """
    Plausibility checks on a resolved beginning cash.

    Guarantees:
        Warnings for negative balances and balances above the large-balance
        threshold.  Never raises.
    """

    def __init__(self, large_balance_threshold: Decimal = LARGE_BALANCE_THRESHOLD):
        self._large_balance_threshold = large_balance_threshold

    def validate(self, result: CarryforwardResult) -> tuple[str, ...]:
        warnings: list[str] = []
        amount = result.beginning_cash
        if amount > self._large_balance_threshold:
            warnings.append(
                f"Large beginning cash balance detected ({round_currency(amount)}). "
                "Please verify this is correct."
            )
        if amount < ZERO:
            warnings.append(
                f"Negative beginning cash balance detected ({round_currency(amount)}). "
                "This may indicate a data error."
            )
        return tuple(warnings)
