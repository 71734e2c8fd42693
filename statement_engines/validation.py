"""
statement_engines.validation -- Post-generation checks on statement values.

Responsibility:
    Verify a generated statement: the statement-specific accounting
    equation, consistency of every formula line with a re-evaluation,
    cash reconciliation for the cash flow statement, and a set of business
    rules each carrying a severity.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Operates on the final
    line values handed over by the statement service.

Invariants enforced:
    - Comparisons use the 0.01 tolerance.
    - Equation and reconciliation mismatches are reported as warnings.
    - ``is_valid`` is False when the equation fails or any rule with
      severity ``error`` fails.
    - Validation never raises; a rule whose inputs are absent passes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from statement_engines.budget_vs_actual import BudgetVsActualStatement
from statement_engines.formula import FormulaContext, FormulaEngine
from statement_engines.special_totals import (
    CURRENT_NEXT_ADJUSTMENTS,
    OPERATING_REVENUE_LINES,
)
from statement_engines.tracer import traced_engine
from statement_engines.working_capital import WorkingCapitalResult
from statement_kernel.domain.amounts import (
    TOLERANCE,
    ZERO,
    round_currency,
    sum_codes,
)
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.validation")

EXTREME_VALUE_THRESHOLD = Decimal("1000000000")
OPERATING_REVENUE_RATIO_LIMIT = Decimal("3")


class RuleSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class StatementValues:
    """
    Everything validation needs to know about one generated statement.

    ``formula_lines`` maps line code to formula for the lines whose value
    came from formula evaluation; ``formula_context`` is the context they
    were evaluated in (with the final line values).
    """

    statement_code: str
    current: Mapping[str, Decimal]
    previous: Mapping[str, Decimal] = field(default_factory=dict)
    formula_lines: Mapping[str, str] = field(default_factory=dict)
    formula_context: FormulaContext | None = None
    working_capital: WorkingCapitalResult | None = None
    budget_vs_actual: BudgetVsActualStatement | None = None
    has_previous_period: bool = True

    def value(self, line_code: str) -> Decimal:
        return self.current.get(line_code, ZERO)


@dataclass(frozen=True)
class BalanceValidation:
    is_valid: bool
    left_side: Decimal
    right_side: Decimal
    difference: Decimal
    equation: str


@dataclass(frozen=True)
class BusinessRuleResult:
    rule_id: str
    name: str
    is_valid: bool
    message: str
    severity: RuleSeverity
    affected_fields: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationResults:
    is_valid: bool
    accounting_equation: BalanceValidation
    business_rules: tuple[BusinessRuleResult, ...] = ()
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class BusinessRule:
    id: str
    name: str
    statement_codes: frozenset[str]
    severity: RuleSeverity
    message: str
    check: Callable[[StatementValues], bool]
    affected_fields: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Accounting equations
# ---------------------------------------------------------------------------


def _balance(left: Decimal, right: Decimal, equation: str, tolerance: Decimal) -> BalanceValidation:
    difference = left - right
    return BalanceValidation(
        is_valid=abs(difference) <= tolerance,
        left_side=left,
        right_side=right,
        difference=difference,
        equation=equation,
    )


def _assets_liabilities(values: StatementValues, tolerance: Decimal) -> BalanceValidation:
    assets = values.value("TOTAL_CURRENT_ASSETS") + values.value("TOTAL_NON_CURRENT_ASSETS")
    claims = (
        values.value("TOTAL_CURRENT_LIABILITIES")
        + values.value("TOTAL_NON_CURRENT_LIABILITIES")
        + values.value("TOTAL_NET_ASSETS")
    )
    return _balance(assets, claims, "Assets = Liabilities + Net Assets", tolerance)


def _revenue_expenditure(values: StatementValues, tolerance: Decimal) -> BalanceValidation:
    return _balance(
        values.value("SURPLUS_DEFICIT"),
        values.value("TOTAL_REVENUE") - values.value("TOTAL_EXPENSES"),
        "Surplus/Deficit = Total Revenue - Total Expenses",
        tolerance,
    )


def _cash_flow(values: StatementValues, tolerance: Decimal) -> BalanceValidation:
    return _balance(
        values.value("NET_INCREASE_CASH"),
        values.value("NET_CASH_FLOW_OPERATING")
        + values.value("NET_CASH_FLOW_INVESTING")
        + values.value("NET_CASH_FLOW_FINANCING"),
        "Net Increase in Cash = Operating + Investing + Financing",
        tolerance,
    )


def _net_assets(values: StatementValues, tolerance: Decimal) -> BalanceValidation:
    return _balance(
        values.value("BALANCE_PERIOD_END"),
        values.value("BALANCE_JULY_CURRENT") + sum_codes(values.current, CURRENT_NEXT_ADJUSTMENTS),
        "Closing Balance = Opening Balance + Changes in the Period",
        tolerance,
    )


def _budget_vs_actual(values: StatementValues, tolerance: Decimal) -> BalanceValidation:
    bva = values.budget_vs_actual
    lines = bva.lines if bva is not None else ()
    checked = Decimal(len(lines))
    errors = Decimal(
        sum(1 for line in lines if abs(line.variance - (line.budget - line.actual)) > tolerance)
    )
    return BalanceValidation(
        is_valid=errors == ZERO,
        left_side=checked,
        right_side=checked - errors,
        difference=errors,
        equation="Variance = Budget - Actual for every line",
    )


_EQUATIONS: Mapping[str, Callable[[StatementValues, Decimal], BalanceValidation]] = {
    "ASSETS_LIAB": _assets_liabilities,
    "REV_EXP": _revenue_expenditure,
    "CASH_FLOW": _cash_flow,
    "NET_ASSETS_CHANGES": _net_assets,
    "BUDGET_VS_ACTUAL": _budget_vs_actual,
}


# ---------------------------------------------------------------------------
# Business rules
# ---------------------------------------------------------------------------


def _swing_within_limit(change_attr: str) -> Callable[[StatementValues], bool]:
    def check(values: StatementValues) -> bool:
        wc = values.working_capital
        if wc is None:
            return True
        change = getattr(wc, change_attr)
        if change.previous_balance <= ZERO:
            return True
        return abs(change.change / change.previous_balance) <= 1
    return check


def _operating_reasonable(values: StatementValues) -> bool:
    revenue = sum_codes(values.current, OPERATING_REVENUE_LINES)
    if revenue == ZERO:
        return True
    ratio = abs(values.value("NET_CASH_FLOW_OPERATING") / revenue)
    return ratio <= OPERATING_REVENUE_RATIO_LIMIT


def _bva_variances_correct(values: StatementValues) -> bool:
    if values.budget_vs_actual is None:
        return True
    return all(
        abs(line.variance - (line.budget - line.actual)) <= TOLERANCE
        for line in values.budget_vs_actual.lines
    )


def _no_extreme_values(threshold: Decimal) -> Callable[[StatementValues], bool]:
    def check(values: StatementValues) -> bool:
        for mapping in (values.current, values.previous):
            if any(abs(v) > threshold for v in mapping.values()):
                return False
        return True
    return check


_ALL_STATEMENTS = frozenset(_EQUATIONS)


def default_business_rules(
    extreme_value_threshold: Decimal = EXTREME_VALUE_THRESHOLD,
) -> tuple[BusinessRule, ...]:
    return (
        BusinessRule(
            id="WC_NEGATIVE_RECEIVABLES",
            name="Working Capital Negative Receivables",
            statement_codes=frozenset({"CASH_FLOW"}),
            severity=RuleSeverity.WARNING,
            message="Negative receivables balance detected. This may indicate data quality issues.",
            check=lambda v: v.working_capital is None
            or v.working_capital.receivables_change.current_balance >= ZERO,
            affected_fields=("CHANGES_RECEIVABLES",),
        ),
        BusinessRule(
            id="WC_EXTREME_RECEIVABLES_VARIANCE",
            name="Working Capital Receivables Variance",
            statement_codes=frozenset({"CASH_FLOW"}),
            severity=RuleSeverity.WARNING,
            message=(
                "Significant variance in receivables detected (>100% change). "
                "Please review the underlying data."
            ),
            check=_swing_within_limit("receivables_change"),
            affected_fields=("CHANGES_RECEIVABLES",),
        ),
        BusinessRule(
            id="WC_EXTREME_PAYABLES_VARIANCE",
            name="Working Capital Payables Variance",
            statement_codes=frozenset({"CASH_FLOW"}),
            severity=RuleSeverity.WARNING,
            message=(
                "Significant variance in payables detected (>100% change). "
                "Please review the underlying data."
            ),
            check=_swing_within_limit("payables_change"),
            affected_fields=("CHANGES_PAYABLES",),
        ),
        BusinessRule(
            id="WC_MISSING_PREVIOUS_PERIOD",
            name="Working Capital Previous Period",
            statement_codes=frozenset({"CASH_FLOW"}),
            severity=RuleSeverity.WARNING,
            message=(
                "Previous period data not available for working capital calculation. "
                "Using zero as baseline."
            ),
            check=lambda v: v.has_previous_period,
            affected_fields=("CHANGES_RECEIVABLES", "CHANGES_PAYABLES"),
        ),
        BusinessRule(
            id="BS_POSITIVE_ASSETS",
            name="Balance Sheet Positive Assets",
            statement_codes=frozenset({"ASSETS_LIAB"}),
            severity=RuleSeverity.ERROR,
            message="Total assets cannot be negative",
            check=lambda v: v.value("TOTAL_ASSETS") >= ZERO,
            affected_fields=("TOTAL_ASSETS",),
        ),
        BusinessRule(
            id="RE_POSITIVE_REVENUE",
            name="Revenue Expenditure Positive Revenue",
            statement_codes=frozenset({"REV_EXP"}),
            severity=RuleSeverity.WARNING,
            message="Total revenue should not be negative",
            check=lambda v: v.value("TOTAL_REVENUE") >= ZERO,
            affected_fields=("TOTAL_REVENUE",),
        ),
        BusinessRule(
            id="RE_POSITIVE_EXPENSES",
            name="Revenue Expenditure Positive Expenses",
            statement_codes=frozenset({"REV_EXP"}),
            severity=RuleSeverity.WARNING,
            message="Total expenses should not be negative",
            check=lambda v: v.value("TOTAL_EXPENSES") >= ZERO,
            affected_fields=("TOTAL_EXPENSES",),
        ),
        BusinessRule(
            id="CF_REASONABLE_OPERATING",
            name="Cash Flow Reasonable Operating Flow",
            statement_codes=frozenset({"CASH_FLOW"}),
            severity=RuleSeverity.WARNING,
            message="Operating cash flow appears unreasonable compared to revenue",
            check=_operating_reasonable,
            affected_fields=("NET_CASH_FLOW_OPERATING",),
        ),
        BusinessRule(
            id="BVA_VARIANCE_CALCULATION",
            name="Budget vs Actual Variance Calculation",
            statement_codes=frozenset({"BUDGET_VS_ACTUAL"}),
            severity=RuleSeverity.ERROR,
            message="One or more variance calculations are incorrect",
            check=_bva_variances_correct,
            affected_fields=("variance",),
        ),
        BusinessRule(
            id="GEN_NO_EXTREME_VALUES",
            name="General No Extreme Values",
            statement_codes=_ALL_STATEMENTS,
            severity=RuleSeverity.WARNING,
            message="Statement contains extremely large values that may indicate data errors",
            check=_no_extreme_values(extreme_value_threshold),
            affected_fields=("all_values",),
        ),
    )


def cash_reconciliation_warning(
    values: StatementValues, tolerance: Decimal = TOLERANCE
) -> str | None:
    """Warning when ending cash != beginning cash + net increase."""
    ending = values.value("CASH_ENDING")
    beginning = values.value("CASH_BEGINNING")
    net_increase = values.value("NET_INCREASE_CASH")
    expected = beginning + net_increase
    difference = ending - expected
    if abs(difference) <= tolerance:
        return None
    return (
        f"Cash reconciliation discrepancy: Ending cash ({round_currency(ending)}) "
        f"does not equal Beginning cash ({round_currency(beginning)}) + "
        f"Net increase ({round_currency(net_increase)}) = {round_currency(expected)}. "
        f"Difference: {round_currency(difference)}. "
        "This may indicate data entry errors or missing transactions."
    )


class CalculationValidator:
    """
    Runs all post-generation checks for a statement.

    Contract:
        ``validate_calculations`` is pure and never raises.
    Guarantees:
        - One ``BusinessRuleResult`` per applicable rule, in rule order.
        - Formula mismatches above the tolerance become warnings naming
          the line.
    """

    def __init__(
        self,
        formula_engine: FormulaEngine | None = None,
        rules: Sequence[BusinessRule] | None = None,
        tolerance: Decimal = TOLERANCE,
    ):
        self._formula_engine = formula_engine or FormulaEngine()
        self._rules = tuple(rules) if rules is not None else default_business_rules()
        self._tolerance = tolerance

    @traced_engine("validation", "1.0")
    def validate_calculations(self, values: StatementValues) -> ValidationResults:
        equation_fn = _EQUATIONS.get(values.statement_code)
        if equation_fn is None:
            equation = BalanceValidation(
                is_valid=True,
                left_side=ZERO,
                right_side=ZERO,
                difference=ZERO,
                equation="No equation defined",
            )
        else:
            equation = equation_fn(values, self._tolerance)

        warnings: list[str] = []
        errors: list[str] = []

        if not equation.is_valid:
            warnings.append(
                f"Accounting equation validation failed: {equation.equation} "
                f"(difference {round_currency(equation.difference)})"
            )

        warnings.extend(self._check_formulas(values))

        if values.statement_code == "CASH_FLOW":
            reconciliation = cash_reconciliation_warning(values, self._tolerance)
            if reconciliation:
                warnings.append(reconciliation)

        rule_results: list[BusinessRuleResult] = []
        for rule in self._rules:
            if values.statement_code not in rule.statement_codes:
                continue
            is_valid = rule.check(values)
            rule_results.append(
                BusinessRuleResult(
                    rule_id=rule.id,
                    name=rule.name,
                    is_valid=is_valid,
                    message=f"{rule.name} validation passed" if is_valid else rule.message,
                    severity=rule.severity,
                    affected_fields=rule.affected_fields,
                )
            )
            if not is_valid:
                target = errors if rule.severity == RuleSeverity.ERROR else warnings
                target.append(rule.message)

        is_valid = equation.is_valid and not errors
        if not is_valid:
            logger.warning(
                "statement_validation_failed",
                extra={
                    "statement_code": values.statement_code,
                    "equation_valid": equation.is_valid,
                    "errors": errors,
                },
            )
        return ValidationResults(
            is_valid=is_valid,
            accounting_equation=equation,
            business_rules=tuple(rule_results),
            warnings=tuple(warnings),
            errors=tuple(errors),
        )

    def _check_formulas(self, values: StatementValues) -> list[str]:
        if values.formula_context is None:
            return []
        mismatches: list[str] = []
        for line_code, formula in values.formula_lines.items():
            result = self._formula_engine.evaluate_formula(formula, values.formula_context)
            expected = round_currency(result.value)
            actual = values.value(line_code)
            if abs(expected - actual) > self._tolerance:
                mismatches.append(
                    f"Formula check failed for {line_code}: expected "
                    f"{expected}, got {actual}"
                )
        return mismatches
