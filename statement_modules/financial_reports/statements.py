"""
Pure financial statement assembly functions.

These functions turn a template, aggregated event data and the side
calculations (working capital, carryforward, cross-statement surplus) into
statement lines.  ZERO I/O. ZERO side effects.

All monetary values are Decimal. All inputs/outputs are frozen dataclasses.

Per-line evaluation precedence, per period (exactly one path runs):

1. working-capital override (``CHANGES_RECEIVABLES`` / ``CHANGES_PAYABLES``)
2. Net Assets Changes column routing (ACCUMULATED / ADJUSTMENT lines)
3. ``calculation_formula``
4. special totals registry
5. sum of ``event_mappings``

Section lines with nothing to compute are NOT_APPLICABLE in both periods.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from statement_config.schema import (
    ColumnType,
    NetAssetEffect,
    PeriodSource,
    StatementTemplate,
    TemplateLine,
)
from statement_engines.aggregation import resolve_event_refs
from statement_engines.budget_vs_actual import BudgetVsActualStatement
from statement_engines.dependencies import DependencyResolution
from statement_engines.formula import BalanceSheetContext, FormulaContext, FormulaEngine
from statement_engines.special_totals import (
    SPECIAL_TOTALS,
    LineMode,
    SpecialTotal,
    evaluate_special_total,
    resolve_line_mode,
)
from statement_engines.variance import LineVarianceCalculator
from statement_engines.working_capital import WorkingCapitalChange, WorkingCapitalResult
from statement_kernel.domain.amounts import ZERO, fits_currency, round_currency, sum_codes
from statement_modules.financial_reports.config import FinancialReportsConfig
from statement_modules.financial_reports.models import (
    DisplayFormatting,
    LineState,
    StatementLine,
    StatementLineMetadata,
)

NET_ASSETS_CHANGES = "NET_ASSETS_CHANGES"

WORKING_CAPITAL_LINES: Mapping[str, str] = MappingProxyType({
    "CHANGES_RECEIVABLES": "receivables_change",
    "CHANGES_PAYABLES": "payables_change",
})


# =========================================================================
# Period inputs and results
# =========================================================================


@dataclasses.dataclass(frozen=True)
class PeriodInputs:
    """Everything a single period's line values are computed from."""

    event_values: Mapping[str, Decimal]
    balance_sheet: BalanceSheetContext | None = None
    cross_statement_values: Mapping[str, Decimal] | None = None
    working_capital: WorkingCapitalResult | None = None


@dataclasses.dataclass(frozen=True)
class PeriodValues:
    """
    Computed line values for one period.

    ``formula_lines`` maps line code to formula for the lines valued
    through the formula path; ``context`` is the formula context they were
    evaluated in, reading the final ``values``.
    """

    values: Mapping[str, Decimal]
    states: Mapping[str, LineState]
    computed: frozenset[str]
    formula_lines: Mapping[str, str]
    context: FormulaContext | None
    warnings: tuple[str, ...] = ()
    formulas_calculated: int = 0

    def state(self, line_code: str) -> LineState:
        return self.states.get(line_code, LineState.MISSING_DATA)


def missing_period(template: StatementTemplate) -> PeriodValues:
    """Zero values for a period that has no data at all."""
    states = {
        line.line_code: (
            LineState.NOT_APPLICABLE
            if resolve_line_mode(line) == LineMode.HEADER
            else LineState.MISSING_DATA
        )
        for line in template.lines
    }
    return PeriodValues(
        values=MappingProxyType({code: ZERO for code in template.line_codes}),
        states=MappingProxyType(states),
        computed=frozenset(),
        formula_lines=MappingProxyType({}),
        context=None,
    )


def cross_statement_surplus(
    event_values: Mapping[str, Decimal],
    revenue_codes: Sequence[str],
    expense_codes: Sequence[str],
) -> Decimal:
    """Surplus/deficit from revenue and expense event totals."""
    return round_currency(
        sum_codes(event_values, revenue_codes) - sum_codes(event_values, expense_codes)
    )


def routes_by_column(statement_code: str, line: TemplateLine) -> bool:
    """True for Net Assets Changes lines valued from their period source."""
    if statement_code != NET_ASSETS_CHANGES:
        return False
    column = line.metadata.column_type
    if column == ColumnType.ADJUSTMENT:
        return line.has_event_mappings or line.has_formula
    return column == ColumnType.ACCUMULATED and line.has_event_mappings


def compute_period_values(
    template: StatementTemplate,
    resolution: DependencyResolution,
    inputs: PeriodInputs,
    *,
    formula_engine: FormulaEngine,
    event_codes_by_id: Mapping[int, str],
    period_sources: Mapping[PeriodSource, PeriodInputs | None],
    previous_values: Mapping[str, Decimal] | None = None,
    custom_mappings: Mapping[str, Decimal] | None = None,
    special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> PeriodValues:
    """
    Compute every template line for one period, in dependency order.

    ``period_sources`` says which period's inputs a Net Assets Changes line
    with a given ``period_source`` reads; a None entry means that period
    is unavailable and the line is MISSING_DATA.

    Postconditions:
        Every template line has a finite value rounded to 2dp and a state.
    """
    known = frozenset(template.line_codes)
    values: dict[str, Decimal] = {}
    states: dict[str, LineState] = {}
    computed: set[str] = set()
    formula_lines: dict[str, str] = {}
    warnings: list[str] = []
    formulas = 0

    def context_for(source: PeriodInputs) -> FormulaContext:
        return FormulaContext(
            event_values=source.event_values,
            line_values=MappingProxyType(values),
            previous_period_values=previous_values or {},
            custom_mappings=custom_mappings or {},
            balance_sheet=source.balance_sheet,
            cross_statement_values=source.cross_statement_values,
            known_line_codes=known,
        )

    context = context_for(inputs)

    def evaluate(formula: str, ctx: FormulaContext) -> Decimal:
        nonlocal formulas
        result = formula_engine.evaluate_formula(formula, ctx)
        formulas += 1
        for message in result.warnings:
            if message not in warnings:
                warnings.append(message)
        return result.value

    for line in resolution.ordered_lines:
        code = line.line_code
        mode = resolve_line_mode(line, special_totals)
        state = LineState.COMPUTED
        is_computed = True

        if code in WORKING_CAPITAL_LINES:
            if inputs.working_capital is not None:
                change: WorkingCapitalChange = getattr(
                    inputs.working_capital, WORKING_CAPITAL_LINES[code]
                )
                value = change.cash_flow_adjustment
            else:
                value = ZERO
                state = LineState.MISSING_DATA
                is_computed = False
        elif routes_by_column(template.statement_code, line):
            source = period_sources.get(line.metadata.period_source)
            if source is None:
                value = ZERO
                state = LineState.MISSING_DATA
                is_computed = False
            else:
                if line.has_formula:
                    value = evaluate(line.calculation_formula or "", context_for(source))
                else:
                    codes = resolve_event_refs(line.event_mappings, event_codes_by_id)
                    value = sum_codes(source.event_values, codes)
                if line.metadata.net_asset_effect == NetAssetEffect.DECREASE:
                    value = -value
        elif mode == LineMode.FORMULA:
            formula = line.calculation_formula or ""
            value = evaluate(formula, context)
            formula_lines[code] = formula
        elif mode == LineMode.SPECIAL_TOTAL:
            value = evaluate_special_total(code, values, special_totals)
        elif mode == LineMode.HEADER:
            value = ZERO
            state = LineState.NOT_APPLICABLE
            is_computed = False
        else:
            codes = resolve_event_refs(line.event_mappings, event_codes_by_id)
            value = sum_codes(inputs.event_values, codes)
            is_computed = False

        if not fits_currency(value):
            message = f"Line {code} exceeds currency precision; using 0"
            if message not in warnings:
                warnings.append(message)
            value = ZERO
        values[code] = round_currency(value)
        states[code] = state
        if is_computed:
            computed.add(code)

    return PeriodValues(
        values=MappingProxyType(values),
        states=MappingProxyType(states),
        computed=frozenset(computed),
        formula_lines=MappingProxyType(formula_lines),
        context=context,
        warnings=tuple(warnings),
        formulas_calculated=formulas,
    )


# =========================================================================
# Line assembly
# =========================================================================


def format_statement_value(
    value: Decimal,
    precision: int = 2,
    negative_format: str = "parentheses",
    show_zero_values: bool = True,
) -> str:
    """Display string: fixed precision, negatives in parentheses or with a minus."""
    rounded = round_currency(value, precision)
    if rounded == ZERO:
        return "0" if show_zero_values else "-"
    text = f"{abs(rounded):.{precision}f}"
    if rounded < ZERO:
        return f"({text})" if negative_format == "parentheses" else f"-{text}"
    return text


def _display(
    current: Decimal, previous: Decimal, config: FinancialReportsConfig
) -> DisplayFormatting:
    def fmt(v: Decimal) -> str:
        return format_statement_value(
            v, config.display_precision, config.negative_format, config.show_zero_values
        )

    rounded = round_currency(current, config.display_precision)
    return DisplayFormatting(
        current_period_display=fmt(current),
        previous_period_display=fmt(previous),
        is_negative=rounded < ZERO,
        is_zero=rounded == ZERO,
    )


def _net_asset_columns(
    line: TemplateLine, value: Decimal
) -> tuple[Decimal | None, Decimal | None, Decimal | None]:
    column = line.metadata.column_type
    if column == ColumnType.ACCUMULATED:
        return value, None, value
    if column == ColumnType.ADJUSTMENT:
        return None, value, value
    if column == ColumnType.TOTAL:
        return None, None, value
    return None, None, None


def build_statement_lines(
    template: StatementTemplate,
    current: PeriodValues,
    previous: PeriodValues,
    config: FinancialReportsConfig,
    *,
    event_codes_by_id: Mapping[int, str],
    working_capital: WorkingCapitalResult | None = None,
    include_comparatives: bool = True,
    variance_calculator: LineVarianceCalculator | None = None,
    special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> tuple[StatementLine, ...]:
    """Statement lines in display order."""
    variance_calculator = variance_calculator or LineVarianceCalculator(
        config.significance_thresholds
    )
    is_net_assets = template.statement_code == NET_ASSETS_CHANGES
    lines: list[StatementLine] = []

    for line in template.lines:
        code = line.line_code
        mode = resolve_line_mode(line, special_totals)
        cur = current.values.get(code, ZERO)
        prev = previous.values.get(code, ZERO)
        prev_state = previous.state(code)

        variance = None
        if (
            include_comparatives
            and mode != LineMode.HEADER
            and prev_state == LineState.COMPUTED
        ):
            variance = variance_calculator.calculate(cur, prev)

        change = None
        if working_capital is not None and code in WORKING_CAPITAL_LINES:
            change = getattr(working_capital, WORKING_CAPITAL_LINES[code]).change

        accumulated = adjustments = total = None
        if is_net_assets:
            accumulated, adjustments, total = _net_asset_columns(line, cur)

        lines.append(
            StatementLine(
                id=code,
                description=line.description,
                current_period_value=cur,
                previous_period_value=prev,
                formatting=line.formatting,
                metadata=StatementLineMetadata(
                    line_code=code,
                    event_codes=resolve_event_refs(line.event_mappings, event_codes_by_id),
                    display_order=line.display_order,
                    mode=mode,
                    is_computed=code in current.computed,
                    current_state=current.state(code),
                    previous_state=prev_state,
                    formula=line.calculation_formula,
                    column_type=line.metadata.column_type,
                    note=line.metadata.note,
                ),
                display_formatting=_display(cur, prev, config),
                variance=variance,
                change_in_current_period_value=change,
                accumulated_surplus=accumulated,
                adjustments=adjustments,
                total=total,
            )
        )
    return tuple(lines)


def build_budget_vs_actual_lines(
    template: StatementTemplate,
    statement: BudgetVsActualStatement,
    config: FinancialReportsConfig,
    special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> tuple[StatementLine, ...]:
    """
    Statement lines for Budget-vs-Actual.

    The current period value is the actual; there is no comparative
    period, so previous values are 0 and NOT_APPLICABLE.
    """
    lines: list[StatementLine] = []
    for line in template.lines:
        bva = statement.get_line(line.line_code)
        if bva is None:
            continue
        mode = resolve_line_mode(line, special_totals)
        state = LineState.NOT_APPLICABLE if bva.is_header else LineState.COMPUTED
        lines.append(
            StatementLine(
                id=line.line_code,
                description=line.description,
                current_period_value=bva.actual,
                previous_period_value=ZERO,
                formatting=line.formatting,
                metadata=StatementLineMetadata(
                    line_code=line.line_code,
                    event_codes=bva.actual_events,
                    display_order=line.display_order,
                    mode=mode,
                    is_computed=mode in (LineMode.FORMULA, LineMode.SPECIAL_TOTAL),
                    current_state=state,
                    previous_state=LineState.NOT_APPLICABLE,
                    formula=line.calculation_formula,
                    note=bva.note,
                ),
                display_formatting=_display(bva.actual, ZERO, config),
                budget_vs_actual=bva,
            )
        )
    return tuple(lines)


def collect_totals(lines: Sequence[StatementLine]) -> dict[str, Decimal]:
    """Current values of total and subtotal lines, by line code."""
    return {
        line.metadata.line_code: line.current_period_value
        for line in lines
        if line.formatting.is_total or line.formatting.is_subtotal
    }


# =========================================================================
# RENDERER (dict/JSON output)
# =========================================================================


def render_to_dict(obj: object) -> dict | list | str | int | float | bool | None:
    """
    Convert any statement dataclass to plain JSON-safe primitives.

    Handles:
    - Decimal -> str (preserving precision)
    - date/datetime -> ISO format string
    - Enum -> .value
    - Nested frozen dataclasses -> nested dicts
    - Mappings (including read-only views) -> dicts with str keys
    - Tuples, lists, sets -> lists (sets sorted)
    - None preserved
    """
    if obj is None:
        return None
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [render_to_dict(item) for item in obj]
    if isinstance(obj, (set, frozenset)):
        return [render_to_dict(item) for item in sorted(obj, key=str)]
    if isinstance(obj, Mapping):
        return {str(k): render_to_dict(v) for k, v in obj.items()}
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: render_to_dict(getattr(obj, f.name))
            for f in dataclasses.fields(obj)
        }
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
