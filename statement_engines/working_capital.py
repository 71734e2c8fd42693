"""
statement_engines.working_capital -- Receivables and payables movements.

Responsibility:
    Compute the period-over-period change in receivables and payables
    balances and the resulting cash flow adjustments used by the indirect
    cash flow statement.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumes the aggregated
    current and previous period data.

Invariants enforced:
    - ``change = current_balance - previous_balance``.
    - Receivables adjustment = ``-change`` (an increase in receivables
      consumes cash); payables adjustment = ``+change``.
    - A zero change is a valid computed result, not missing data.
    - Without a previous period the baseline is zero and a warning is
      recorded.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from statement_engines.aggregation import AggregatedData
from statement_engines.formula import (
    DEFAULT_PAYABLES_CODES,
    DEFAULT_RECEIVABLES_CODES,
    BalanceSheetContext,
)
from statement_engines.tracer import traced_engine
from statement_kernel.domain.amounts import HUNDRED, ZERO, round_currency
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.working_capital")

NO_PREVIOUS_PERIOD_WARNING = (
    "No previous period found. Using zero as baseline for previous period balances."
)


@dataclass(frozen=True)
class WorkingCapitalChange:
    account_type: str
    current_balance: Decimal
    previous_balance: Decimal
    change: Decimal
    cash_flow_adjustment: Decimal
    event_codes: tuple[str, ...]


@dataclass(frozen=True)
class WorkingCapitalResult:
    receivables_change: WorkingCapitalChange
    payables_change: WorkingCapitalChange
    warnings: tuple[str, ...] = ()
    has_previous_period: bool = True


@dataclass(frozen=True)
class FacilityWorkingCapital:
    facility_id: int
    account_type: str
    current_balance: Decimal
    previous_balance: Decimal
    change: Decimal


def _change(
    account_type: str,
    current: AggregatedData,
    previous: AggregatedData | None,
    codes: tuple[str, ...],
) -> WorkingCapitalChange:
    current_balance = current.total_for(codes)
    previous_balance = previous.total_for(codes) if previous is not None else ZERO
    change = current_balance - previous_balance
    adjustment = -change if account_type == "RECEIVABLES" else change
    return WorkingCapitalChange(
        account_type=account_type,
        current_balance=current_balance,
        previous_balance=previous_balance,
        change=change,
        cash_flow_adjustment=adjustment,
        event_codes=codes,
    )


def _swing_warning(label: str, change: WorkingCapitalChange) -> str | None:
    if change.previous_balance <= ZERO:
        return None
    ratio = abs(change.change / change.previous_balance)
    if ratio <= 1:
        return None
    return (
        f"Significant variance in {label}: changed by "
        f"{(ratio * HUNDRED).quantize(Decimal('0.1'))}% "
        f"(from {round_currency(change.previous_balance)} "
        f"to {round_currency(change.current_balance)})"
    )


class WorkingCapitalCalculator:
    """
    Pure calculator for working capital movements.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        - Sign law: receivables adjustment = -(cur - prev), payables
          adjustment = cur - prev.
        - Warnings for negative receivables, swings above 100% of the
          previous balance, and a missing previous period.
    """

    def __init__(
        self,
        receivables_codes: Iterable[str] = DEFAULT_RECEIVABLES_CODES,
        payables_codes: Iterable[str] = DEFAULT_PAYABLES_CODES,
    ):
        self._receivables_codes = tuple(receivables_codes)
        self._payables_codes = tuple(payables_codes)

    @property
    def receivables_codes(self) -> tuple[str, ...]:
        return self._receivables_codes

    @property
    def payables_codes(self) -> tuple[str, ...]:
        return self._payables_codes

    @traced_engine("working_capital", "1.0")
    def calculate(
        self,
        current: AggregatedData,
        previous: AggregatedData | None,
    ) -> WorkingCapitalResult:
        warnings: list[str] = []
        if previous is None:
            warnings.append(NO_PREVIOUS_PERIOD_WARNING)

        receivables = _change("RECEIVABLES", current, previous, self._receivables_codes)
        payables = _change("PAYABLES", current, previous, self._payables_codes)

        if receivables.current_balance < ZERO:
            warnings.append(
                "Negative receivables balance detected: "
                f"{round_currency(receivables.current_balance)}. "
                "This may indicate data quality issues."
            )
        for label, change in (("receivables", receivables), ("payables", payables)):
            warning = _swing_warning(label, change)
            if warning:
                warnings.append(warning)

        logger.info(
            "working_capital_calculated",
            extra={
                "receivables_change": str(receivables.change),
                "payables_change": str(payables.change),
                "has_previous_period": previous is not None,
                "warning_count": len(warnings),
            },
        )
        return WorkingCapitalResult(
            receivables_change=receivables,
            payables_change=payables,
            warnings=tuple(warnings),
            has_previous_period=previous is not None,
        )

    def build_balance_sheet_context(
        self,
        current: AggregatedData,
        previous: AggregatedData | None,
    ) -> BalanceSheetContext:
        """Balance-sheet maps consumed by WORKING_CAPITAL_CHANGE."""
        codes = self._receivables_codes + self._payables_codes
        return BalanceSheetContext(
            current={code: current.amount(code) for code in codes},
            previous={
                code: previous.amount(code) if previous is not None else ZERO
                for code in codes
            },
        )

    def facility_breakdown(
        self,
        current: AggregatedData,
        previous: AggregatedData | None,
        facility_ids: Sequence[int],
    ) -> tuple[tuple[FacilityWorkingCapital, ...], tuple[str, ...]]:
        """Per-facility balances, plus a warning naming facilities with no data."""
        rows: list[FacilityWorkingCapital] = []
        with_data: set[int] = set()
        for facility_id in facility_ids:
            for account_type, codes in (
                ("RECEIVABLES", self._receivables_codes),
                ("PAYABLES", self._payables_codes),
            ):
                cur = sum((current.facility_amount(facility_id, c) for c in codes), ZERO)
                prev = ZERO
                if previous is not None:
                    prev = sum(
                        (previous.facility_amount(facility_id, c) for c in codes), ZERO
                    )
                if cur != ZERO or prev != ZERO:
                    with_data.add(facility_id)
                rows.append(
                    FacilityWorkingCapital(
                        facility_id=facility_id,
                        account_type=account_type,
                        current_balance=cur,
                        previous_balance=prev,
                        change=cur - prev,
                    )
                )

        missing = [fid for fid in facility_ids if fid not in with_data]
        warnings: tuple[str, ...] = ()
        if missing:
            warnings = (
                "Facilities with no balance sheet data: "
                + ", ".join(str(fid) for fid in missing),
            )
        return tuple(rows), warnings
