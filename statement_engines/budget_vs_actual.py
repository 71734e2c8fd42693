"""
statement_engines.budget_vs_actual -- Budget versus actual comparison.

Responsibility:
    For each line of the Budget-vs-Actual template, sum the budget from
    planning data and the actual from execution data, and derive the
    variance and performance percentage.  Computed lines (formulas and
    special totals) are evaluated separately over budget values and over
    actual values.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The event-code
    translation tables are injected (``EventMappingTables``).

Invariants enforced:
    - ``variance = budget - actual`` for every line.
    - ``performance_percentage = actual / budget * 100`` (2dp) when budget
      is non-zero, else None.
    - Budget codes come from, in order: the custom mapping table, the
      line's metadata mapping, or the execution-to-planning translation of
      its actual codes.  Translated codes are de-duplicated per line and
      unmapped codes translate to themselves.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType

from statement_config.schema import (
    BudgetVsActualMapping,
    EventMappingTables,
    StatementTemplate,
    TemplateLine,
)
from statement_engines.aggregation import AggregatedData, resolve_event_refs
from statement_engines.dependencies import resolve_dependencies
from statement_engines.formula import FormulaContext, FormulaEngine
from statement_engines.special_totals import (
    SPECIAL_TOTALS,
    LineMode,
    SpecialTotal,
    evaluate_special_total,
    resolve_line_mode,
)
from statement_engines.tracer import traced_engine
from statement_kernel.domain.amounts import ZERO, percentage, round_currency
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.budget_vs_actual")

REQUIRED_SECTIONS: tuple[str, ...] = ("RECEIPTS_HEADER", "EXPENDITURES_HEADER")


@dataclass(frozen=True)
class BudgetVsActualLine:
    line_code: str
    description: str
    budget: Decimal
    actual: Decimal
    variance: Decimal
    performance_percentage: Decimal | None
    note: int | None = None
    budget_events: tuple[str, ...] = ()
    actual_events: tuple[str, ...] = ()
    is_total: bool = False
    is_header: bool = False


@dataclass(frozen=True)
class BudgetVsActualStatement:
    lines: tuple[BudgetVsActualLine, ...]
    totals: Mapping[str, BudgetVsActualLine]
    warnings: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.totals, MappingProxyType):
            object.__setattr__(self, "totals", MappingProxyType(dict(self.totals)))

    def get_line(self, line_code: str) -> BudgetVsActualLine | None:
        for line in self.lines:
            if line.line_code == line_code:
                return line
        return None


def performance_percentage(budget: Decimal, actual: Decimal) -> Decimal | None:
    """actual / budget * 100 at 2dp; None when there is no budget."""
    if budget == ZERO:
        return None
    return percentage(actual, budget)


def validate_template(template: StatementTemplate) -> list[str]:
    """Structural checks specific to Budget-vs-Actual templates."""
    problems: list[str] = []
    codes = set(template.line_codes)
    for required in REQUIRED_SECTIONS:
        if required not in codes:
            problems.append(f"Missing required section: {required}")
    orders = [line.display_order for line in template.lines]
    if len(orders) != len(set(orders)):
        problems.append("Display orders must be unique")
    return problems


class BudgetVsActualProcessor:
    """
    Builds the Budget-vs-Actual comparison for one template.

    Contract:
        No I/O, fully deterministic.
    Guarantees:
        Every template line yields exactly one ``BudgetVsActualLine``, in
        display order.
    Non-goals:
        Budget revisions and supplementary budgets are not modelled.
    """

    def __init__(
        self,
        mapping_tables: EventMappingTables | None = None,
        formula_engine: FormulaEngine | None = None,
        special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
    ):
        self._tables = mapping_tables or EventMappingTables()
        self._formula_engine = formula_engine or FormulaEngine()
        self._special_totals = special_totals

    def resolve_codes(
        self,
        line: TemplateLine,
        event_codes_by_id: Mapping[int, str],
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        """Return (budget_codes, actual_codes) for a data line."""
        line_actual = resolve_event_refs(line.event_mappings, event_codes_by_id)
        mapping: BudgetVsActualMapping | None = (
            self._tables.budget_mapping_for(line.line_code)
            or line.metadata.budget_vs_actual
        )
        if mapping is not None:
            actual = mapping.actual_events or line_actual
            return tuple(mapping.budget_events), tuple(actual)

        translation = self._tables.execution_to_planning
        budget = tuple(dict.fromkeys(translation.get(code, code) for code in line_actual))
        return budget, line_actual

    @traced_engine("budget_vs_actual", "1.0")
    def generate_statement(
        self,
        template: StatementTemplate,
        planning: AggregatedData,
        execution: AggregatedData,
        event_codes_by_id: Mapping[int, str] | None = None,
    ) -> BudgetVsActualStatement:
        event_codes_by_id = event_codes_by_id or {}
        warnings: list[str] = []
        if planning.is_empty:
            warnings.append("No planning (budget) data found for the selected scope and period")
        if execution.is_empty:
            warnings.append("No execution (actual) data found for the selected scope and period")

        resolution = resolve_dependencies(template.lines, self._special_totals)
        known = frozenset(template.line_codes)
        budget_values: dict[str, Decimal] = {}
        actual_values: dict[str, Decimal] = {}
        budget_context = FormulaContext(
            event_values=planning.event_totals,
            line_values=MappingProxyType(budget_values),
            known_line_codes=known,
        )
        actual_context = FormulaContext(
            event_values=execution.event_totals,
            line_values=MappingProxyType(actual_values),
            known_line_codes=known,
        )

        computed: dict[str, BudgetVsActualLine] = {}
        for line in resolution.ordered_lines:
            mode = resolve_line_mode(line, self._special_totals)
            budget_codes: tuple[str, ...] = ()
            actual_codes: tuple[str, ...] = ()

            if mode == LineMode.HEADER:
                budget = actual = ZERO
            elif mode == LineMode.FORMULA:
                formula = line.calculation_formula or ""
                budget_result = self._formula_engine.evaluate_formula(formula, budget_context)
                actual_result = self._formula_engine.evaluate_formula(formula, actual_context)
                budget, actual = budget_result.value, actual_result.value
                for message in budget_result.warnings + actual_result.warnings:
                    if message not in warnings:
                        warnings.append(message)
            elif mode == LineMode.SPECIAL_TOTAL:
                budget = evaluate_special_total(line.line_code, budget_values, self._special_totals)
                actual = evaluate_special_total(line.line_code, actual_values, self._special_totals)
            else:
                budget_codes, actual_codes = self.resolve_codes(line, event_codes_by_id)
                budget = planning.total_for(budget_codes)
                actual = execution.total_for(actual_codes)
                for code in actual_codes:
                    if code not in execution.event_totals and not execution.is_empty:
                        warnings.append(
                            f"No actual data for event {code} (line {line.line_code})"
                        )
                for code in budget_codes:
                    if code not in planning.event_totals and not planning.is_empty:
                        warnings.append(
                            f"No budget data for event {code} (line {line.line_code})"
                        )

            budget = round_currency(budget)
            actual = round_currency(actual)
            budget_values[line.line_code] = budget
            actual_values[line.line_code] = actual

            mapping = self._tables.budget_mapping_for(line.line_code)
            note = line.metadata.note
            if note is None and mapping is not None:
                note = mapping.note

            computed[line.line_code] = BudgetVsActualLine(
                line_code=line.line_code,
                description=line.description,
                budget=budget,
                actual=actual,
                variance=budget - actual,
                performance_percentage=performance_percentage(budget, actual),
                note=note,
                budget_events=budget_codes,
                actual_events=actual_codes,
                is_total=line.formatting.is_total or line.formatting.is_subtotal,
                is_header=mode == LineMode.HEADER,
            )

        ordered = tuple(computed[line.line_code] for line in template.lines)
        totals = {bva.line_code: bva for bva in ordered if bva.is_total}

        logger.info(
            "budget_vs_actual_generated",
            extra={
                "line_count": len(ordered),
                "total_budget": str(planning.metadata.total_amount),
                "total_actual": str(execution.metadata.total_amount),
                "warning_count": len(warnings),
            },
        )
        return BudgetVsActualStatement(lines=ordered, totals=totals, warnings=tuple(warnings))
