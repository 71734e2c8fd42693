"""
statement_engines.special_totals -- Fixed totals computed by line-code lookup.

Responsibility:
    Registry of statement totals whose composition is fixed by the
    reporting standard rather than written as a template formula.  Each
    entry names its input line codes and how they combine; it is evaluated
    over already-computed line values without the expression evaluator.
    Also decides each template line's computation mode.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - The registry is immutable.
    - A special total reads only the line values of its declared inputs;
      missing inputs count as zero.
    - A line with a formula is never treated as a special total.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from statement_config.schema import TemplateLine
from statement_kernel.domain.amounts import ZERO, sum_codes

ValueMap = Mapping[str, Decimal]


class LineMode(str, Enum):
    """How a template line obtains its value."""

    DATA = "DATA"
    FORMULA = "FORMULA"
    SPECIAL_TOTAL = "SPECIAL_TOTAL"
    HEADER = "HEADER"


@dataclass(frozen=True)
class SpecialTotal:
    inputs: tuple[str, ...]
    compute: Callable[[ValueMap], Decimal]


# Cash flow line groups (line codes of the CASH_FLOW template)
OPERATING_REVENUE_LINES: tuple[str, ...] = (
    "TAX_REVENUE",
    "GRANTS",
    "TRANSFERS_CENTRAL",
    "TRANSFERS_PUBLIC",
    "FINES_PENALTIES",
    "PROPERTY_INCOME",
    "SALES_GOODS_SERVICES",
    "OTHER_REVENUE",
)
OPERATING_EXPENSE_LINES: tuple[str, ...] = (
    "COMPENSATION_EMPLOYEES",
    "GOODS_SERVICES",
    "GRANTS_TRANSFERS",
    "SUBSIDIES",
    "SOCIAL_ASSISTANCE",
    "FINANCE_COSTS",
    "OTHER_EXPENSES",
)
OPERATING_ADJUSTMENT_LINES: tuple[str, ...] = (
    "CHANGES_RECEIVABLES",
    "CHANGES_PAYABLES",
    "PRIOR_YEAR_ADJUSTMENTS",
)

# Net assets changes adjustment lines; values are already signed
_ADJUSTMENT_STEMS = (
    "CASH_EQUIVALENT",
    "RECEIVABLES",
    "INVESTMENTS",
    "PAYABLES",
    "BORROWING",
    "NET_SURPLUS",
)
PREV_CURRENT_ADJUSTMENTS: tuple[str, ...] = tuple(
    f"{stem}_PREV_CURRENT" for stem in _ADJUSTMENT_STEMS
)
CURRENT_NEXT_ADJUSTMENTS: tuple[str, ...] = tuple(
    f"{stem}_CURRENT_NEXT" for stem in _ADJUSTMENT_STEMS
)


def _sum_of(*codes: str) -> SpecialTotal:
    return SpecialTotal(inputs=codes, compute=lambda v: sum_codes(v, codes))


def _operating(values: ValueMap) -> Decimal:
    return (
        sum_codes(values, OPERATING_REVENUE_LINES)
        - sum_codes(values, OPERATING_EXPENSE_LINES)
        + sum_codes(values, OPERATING_ADJUSTMENT_LINES)
    )


def _investing(values: ValueMap) -> Decimal:
    return values.get("PROCEEDS_SALE_CAPITAL", ZERO) - (
        values.get("ACQUISITION_FIXED_ASSETS", ZERO) + values.get("PURCHASE_SHARES", ZERO)
    )


def _financing(values: ValueMap) -> Decimal:
    return values.get("PROCEEDS_BORROWINGS", ZERO) - values.get(
        "REPAYMENT_BORROWINGS", ZERO
    )


def _net_lending(values: ValueMap) -> Decimal:
    return (
        values.get("TOTAL_RECEIPTS", ZERO)
        - values.get("TOTAL_EXPENDITURES", ZERO)
        - values.get("TOTAL_NON_FINANCIAL_ASSETS", ZERO)
    )


SPECIAL_TOTALS: Mapping[str, SpecialTotal] = MappingProxyType({
    # Balance sheet
    "TOTAL_CURRENT_ASSETS": _sum_of(
        "CASH_EQUIVALENTS", "RECEIVABLES_EXCHANGE", "ADVANCE_PAYMENTS",
    ),
    "TOTAL_NON_CURRENT_ASSETS": _sum_of("DIRECT_INVESTMENTS"),
    "TOTAL_CURRENT_LIABILITIES": _sum_of(
        "PAYABLES", "PAYMENTS_RECEIVED_ADVANCE", "RETAINED_PERFORMANCE_SECURITIES",
    ),
    "TOTAL_NON_CURRENT_LIABILITIES": _sum_of("DIRECT_BORROWINGS"),
    "TOTAL_NET_ASSETS": _sum_of(
        "ACCUMULATED_SURPLUS_DEFICITS", "PRIOR_YEAR_ADJUSTMENTS", "SURPLUS_DEFICITS_PERIOD",
    ),
    # Cash flow
    "NET_CASH_FLOW_OPERATING": SpecialTotal(
        inputs=OPERATING_REVENUE_LINES + OPERATING_EXPENSE_LINES + OPERATING_ADJUSTMENT_LINES,
        compute=_operating,
    ),
    "NET_CASH_FLOW_INVESTING": SpecialTotal(
        inputs=("PROCEEDS_SALE_CAPITAL", "ACQUISITION_FIXED_ASSETS", "PURCHASE_SHARES"),
        compute=_investing,
    ),
    "NET_CASH_FLOW_FINANCING": SpecialTotal(
        inputs=("PROCEEDS_BORROWINGS", "REPAYMENT_BORROWINGS"),
        compute=_financing,
    ),
    "NET_INCREASE_CASH": _sum_of(
        "NET_CASH_FLOW_OPERATING", "NET_CASH_FLOW_INVESTING", "NET_CASH_FLOW_FINANCING",
    ),
    # Net assets changes
    "BALANCE_JUNE_CURRENT": _sum_of("BALANCES_JUNE_PREV", *PREV_CURRENT_ADJUSTMENTS),
    "BALANCE_JULY_CURRENT": _sum_of("BALANCE_JUNE_CURRENT"),
    "BALANCE_PERIOD_END": _sum_of("BALANCE_JULY_CURRENT", *CURRENT_NEXT_ADJUSTMENTS),
    # Budget vs actual
    "TOTAL_RECEIPTS": _sum_of(
        "TAX_REVENUE", "GRANTS_TRANSFERS", "OTHER_REVENUE", "TRANSFERS_PUBLIC",
    ),
    "TOTAL_EXPENDITURES": _sum_of(
        "COMPENSATION_EMPLOYEES",
        "GOODS_SERVICES",
        "FINANCE_COSTS",
        "SUBSIDIES",
        "GRANTS_OTHER_TRANSFERS",
        "SOCIAL_ASSISTANCE",
        "OTHER_EXPENSES",
    ),
    "NET_LENDING_BORROWING": SpecialTotal(
        inputs=("TOTAL_RECEIPTS", "TOTAL_EXPENDITURES", "TOTAL_NON_FINANCIAL_ASSETS"),
        compute=_net_lending,
    ),
})


def is_special_total(line_code: str, registry: Mapping[str, SpecialTotal] = SPECIAL_TOTALS) -> bool:
    return line_code in registry


def evaluate_special_total(
    line_code: str,
    values: ValueMap,
    registry: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> Decimal:
    """Evaluate a registered total over computed line values.

    Raises:
        KeyError: if ``line_code`` is not registered.
    """
    return registry[line_code].compute(values)


def resolve_line_mode(
    line: TemplateLine,
    registry: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> LineMode:
    """Exactly one mode per line: formula, special total, data or header."""
    if line.has_formula:
        return LineMode.FORMULA
    if line.line_code in registry:
        return LineMode.SPECIAL_TOTAL
    if line.has_event_mappings:
        return LineMode.DATA
    if line.formatting.is_section:
        return LineMode.HEADER
    return LineMode.DATA
