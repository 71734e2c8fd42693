"""
statement_engines.formula -- Decimal evaluation of template formulas.

Responsibility:
    Evaluate a line's ``calculation_formula`` against the values available
    for one period: line values computed so far, aggregated event totals,
    custom mappings, the balance-sheet context used by
    ``WORKING_CAPITAL_CHANGE`` and cross-statement values used by
    ``CROSS_STATEMENT_SURPLUS_DEFICIT``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Formulas are parsed with
    the restricted grammar in ``statement_config.formula_ast`` and walked
    node by node; nothing is passed to ``eval``.

Invariants enforced:
    - Symbol resolution order: line values, then event values, then custom
      mappings.
    - An unresolved symbol evaluates to 0 and records a warning.
    - Division by zero evaluates to 0 and records a warning.
    - A result too large to round to cents evaluates to 0 with a warning.
    - A formula that fails validation evaluates to 0 with a warning.
    - Results are always finite Decimals.

Failure modes:
    - None at evaluation time; every degradation becomes a warning.
      ``FormulaSyntaxError`` is raised only by ``require_valid``.
"""

from __future__ import annotations

import ast
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from functools import lru_cache
from decimal import Decimal

from statement_config.formula_ast import (
    BARE_DOMAIN_NAMES,
    extract_references,
    parse_formula,
    validate_formula_expression,
)
from statement_kernel.domain.amounts import ZERO, fits_currency, sum_codes, to_amount
from statement_kernel.exceptions import FormulaSyntaxError
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.formula")

DEFAULT_RECEIVABLES_CODES: tuple[str, ...] = (
    "ADVANCE_PAYMENTS",
    "RECEIVABLES_EXCHANGE",
    "RECEIVABLES_NON_EXCHANGE",
)
DEFAULT_PAYABLES_CODES: tuple[str, ...] = ("PAYABLES",)

SURPLUS_DEFICIT_KEY = "surplus_deficit"


@dataclass(frozen=True)
class BalanceSheetContext:
    """Balance-sheet event totals for the current and previous period."""

    current: Mapping[str, Decimal] = field(default_factory=dict)
    previous: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class FormulaContext:
    """
    Values a formula may reference for one period.

    ``line_values`` may be a live read-only view of the map being filled
    during statement assembly.  ``known_line_codes`` lists every line of
    the template; a reference to one of them that has no value yet (a
    broken dependency cycle) evaluates to 0 with a warning.
    """

    event_values: Mapping[str, Decimal] = field(default_factory=dict)
    line_values: Mapping[str, Decimal] = field(default_factory=dict)
    previous_period_values: Mapping[str, Decimal] = field(default_factory=dict)
    custom_mappings: Mapping[str, Decimal] = field(default_factory=dict)
    balance_sheet: BalanceSheetContext | None = None
    cross_statement_values: Mapping[str, Decimal] | None = None
    known_line_codes: frozenset[str] = frozenset()


@dataclass(frozen=True)
class FormulaResult:
    value: Decimal
    references: tuple[str, ...] = ()
    unresolved: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()


class _Evaluation:
    """Mutable state of a single evaluation (warnings, unresolved names)."""

    def __init__(self, expression: str, context: FormulaContext):
        self.expression = expression
        self.context = context
        self.warnings: list[str] = []
        self.unresolved: list[str] = []

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


class FormulaEngine:
    """
    Evaluates restricted formulas over Decimal values.

    Contract:
        ``evaluate_formula`` never raises; results are finite Decimals.
    Guarantees:
        - Holds no mutable state; parsed formulas are cached process-wide
          by ``compile_formula``.
        - ``WORKING_CAPITAL_CHANGE(RECEIVABLES)`` = -(current - previous)
          and ``WORKING_CAPITAL_CHANGE(PAYABLES)`` = current - previous,
          summed over the configured code sets; 0 without balance-sheet
          context.
    Non-goals:
        - No string values, no user-defined functions.
    """

    def __init__(
        self,
        receivables_codes: Iterable[str] = DEFAULT_RECEIVABLES_CODES,
        payables_codes: Iterable[str] = DEFAULT_PAYABLES_CODES,
    ):
        self._receivables_codes = tuple(receivables_codes)
        self._payables_codes = tuple(payables_codes)

    # -- validation ---------------------------------------------------------

    def validate_formula_syntax(self, expression: str) -> list[str]:
        """Return validation messages; empty means the formula is valid."""
        return [error.message for error in validate_formula_expression(expression)]

    def require_valid(self, expression: str, line_code: str | None = None) -> None:
        """Raise FormulaSyntaxError if the formula is invalid."""
        messages = self.validate_formula_syntax(expression)
        if messages:
            raise FormulaSyntaxError(expression, messages, line_code=line_code)

    def get_references(self, expression: str) -> tuple[str, ...]:
        return extract_references(expression)

    # -- evaluation ---------------------------------------------------------

    def evaluate_formula(self, expression: str, context: FormulaContext) -> FormulaResult:
        compiled = compile_formula(expression)
        if not isinstance(compiled, ast.Expression):
            messages = compiled
            warning = f"Invalid formula '{expression}': {'; '.join(messages)}"
            logger.warning(
                "formula_invalid",
                extra={"formula": expression, "problems": list(messages)},
            )
            return FormulaResult(value=ZERO, warnings=(warning,))

        state = _Evaluation(expression, context)
        try:
            value = self._eval(compiled.body, state)
        except (ArithmeticError, ValueError) as exc:
            state.warn(f"Formula '{expression}' could not be evaluated: {exc}")
            value = ZERO

        if not value.is_finite():
            state.warn(f"Formula '{expression}' produced a non-finite value")
            value = ZERO
        elif not fits_currency(value):
            state.warn(
                f"Formula '{expression}' result exceeds currency precision; using 0"
            )
            value = ZERO

        return FormulaResult(
            value=value,
            references=extract_references(expression),
            unresolved=tuple(dict.fromkeys(state.unresolved)),
            warnings=tuple(state.warnings),
        )

    def _eval(self, node: ast.AST, state: _Evaluation) -> Decimal:
        if isinstance(node, ast.Constant):
            return to_amount(node.value)

        if isinstance(node, ast.Name):
            return self._resolve_name(node.id, state)

        if isinstance(node, ast.UnaryOp):
            operand = self._eval(node.operand, state)
            return -operand if isinstance(node.op, ast.USub) else operand

        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, state)
            right = self._eval(node.right, state)
            if isinstance(node.op, ast.Add):
                return left + right
            if isinstance(node.op, ast.Sub):
                return left - right
            if isinstance(node.op, ast.Mult):
                return left * right
            if right == ZERO:
                state.warn(f"Division by zero in formula '{state.expression}'")
                return ZERO
            return left / right

        if isinstance(node, ast.Call):
            return self._call(node, state)

        # Comparisons only appear inside IF and are handled by _condition.
        raise ValueError(f"Unsupported expression node: {type(node).__name__}")

    def _condition(self, node: ast.AST, state: _Evaluation) -> bool:
        if isinstance(node, ast.BoolOp):
            results = [self._condition(v, state) for v in node.values]
            return all(results) if isinstance(node.op, ast.And) else any(results)
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, state)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, state)
                if not _compare(op, left, right):
                    return False
                left = right
            return True
        return self._eval(node, state) != ZERO

    def _call(self, node: ast.Call, state: _Evaluation) -> Decimal:
        name = node.func.id  # type: ignore[attr-defined]

        if name == "WORKING_CAPITAL_CHANGE":
            kind = node.args[0].id  # type: ignore[attr-defined]
            return self._working_capital_change(kind, state)
        if name == "CROSS_STATEMENT_SURPLUS_DEFICIT":
            return self._cross_statement_surplus(state)
        if name == "IF":
            branch = node.args[1] if self._condition(node.args[0], state) else node.args[2]
            return self._eval(branch, state)

        values = [self._eval(arg, state) for arg in node.args]
        if name == "SUM":
            return sum(values, ZERO)
        if name == "DIFF":
            return values[0] - values[1]
        if name == "MAX":
            return max(values)
        if name == "MIN":
            return min(values)
        if name == "AVG":
            return sum(values, ZERO) / Decimal(len(values))
        if name == "ABS":
            return abs(values[0])
        if name == "COUNT":
            return Decimal(sum(1 for v in values if v != ZERO))
        raise ValueError(f"Unsupported function: {name}")

    def _resolve_name(self, name: str, state: _Evaluation) -> Decimal:
        if name in BARE_DOMAIN_NAMES:
            return self._cross_statement_surplus(state)

        context = state.context
        if name in context.line_values:
            return context.line_values[name]
        if name in context.known_line_codes:
            state.unresolved.append(name)
            state.warn(
                f"Line {name} referenced before it was computed "
                "(dependency cycle); using 0"
            )
            return ZERO
        if name in context.event_values:
            return context.event_values[name]
        if name in context.custom_mappings:
            return context.custom_mappings[name]

        state.unresolved.append(name)
        state.warn(f"Unresolved reference '{name}' in formula; using 0")
        return ZERO

    def _working_capital_change(self, kind: str, state: _Evaluation) -> Decimal:
        balance_sheet = state.context.balance_sheet
        if balance_sheet is None:
            state.warn(
                f"WORKING_CAPITAL_CHANGE({kind}) has no balance-sheet context; using 0"
            )
            return ZERO
        codes = self._receivables_codes if kind == "RECEIVABLES" else self._payables_codes
        change = sum_codes(balance_sheet.current, codes) - sum_codes(
            balance_sheet.previous, codes
        )
        return -change if kind == "RECEIVABLES" else change

    def _cross_statement_surplus(self, state: _Evaluation) -> Decimal:
        values = state.context.cross_statement_values
        if values is None or SURPLUS_DEFICIT_KEY not in values:
            state.warn("Cross-statement surplus/deficit is not available; using 0")
            return ZERO
        return values[SURPLUS_DEFICIT_KEY]


@lru_cache(maxsize=1024)
def compile_formula(expression: str) -> ast.Expression | tuple[str, ...]:
    """Parsed tree for a valid formula, or its validation messages."""
    errors = validate_formula_expression(expression)
    if errors:
        return tuple(error.message for error in errors)
    return parse_formula(expression)


def _compare(op: ast.cmpop, left: Decimal, right: Decimal) -> bool:
    if isinstance(op, ast.Eq):
        return left == right
    if isinstance(op, ast.NotEq):
        return left != right
    if isinstance(op, ast.Lt):
        return left < right
    if isinstance(op, ast.LtE):
        return left <= right
    if isinstance(op, ast.Gt):
        return left > right
    if isinstance(op, ast.GtE):
        return left >= right
    raise ValueError(f"Unsupported comparison: {type(op).__name__}")
