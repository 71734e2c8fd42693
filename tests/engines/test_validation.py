"""
Tests for post-generation statement validation.

Covers:
- Accounting equation per statement type
- Business rules and their severities
- Formula consistency and cash reconciliation
"""

from decimal import Decimal

from statement_engines.aggregation import AggregatedData
from statement_engines.budget_vs_actual import BudgetVsActualLine, BudgetVsActualStatement
from statement_engines.formula import FormulaContext
from statement_engines.validation import (
    CalculationValidator,
    RuleSeverity,
    StatementValues,
    cash_reconciliation_warning,
    default_business_rules,
)
from statement_engines.working_capital import WorkingCapitalCalculator


def _values(statement_code, **current):
    return StatementValues(
        statement_code=statement_code,
        current={k: Decimal(v) for k, v in current.items()},
    )


def _rule(results, rule_id):
    return next(r for r in results.business_rules if r.rule_id == rule_id)


class TestAccountingEquation:
    def setup_method(self):
        self.validator = CalculationValidator()

    def test_balanced_balance_sheet(self):
        values = _values(
            "ASSETS_LIAB",
            TOTAL_CURRENT_ASSETS="500",
            TOTAL_NON_CURRENT_ASSETS="100",
            TOTAL_CURRENT_LIABILITIES="200",
            TOTAL_NON_CURRENT_LIABILITIES="50",
            TOTAL_NET_ASSETS="350",
            TOTAL_ASSETS="600",
        )
        results = self.validator.validate_calculations(values)
        assert results.is_valid
        assert results.accounting_equation.equation == "Assets = Liabilities + Net Assets"
        assert results.accounting_equation.difference == Decimal("0")

    def test_unbalanced_balance_sheet_is_invalid_with_warning(self, captured_logs):
        values = _values(
            "ASSETS_LIAB",
            TOTAL_CURRENT_ASSETS="500",
            TOTAL_NET_ASSETS="400",
            TOTAL_ASSETS="500",
        )
        results = self.validator.validate_calculations(values)
        assert not results.is_valid
        assert results.accounting_equation.difference == Decimal("100")
        assert results.warnings[0].startswith("Accounting equation validation failed")
        assert results.errors == ()
        assert any(r["message"] == "statement_validation_failed" for r in captured_logs())

    def test_difference_within_tolerance(self):
        values = _values(
            "REV_EXP",
            TOTAL_REVENUE="1000",
            TOTAL_EXPENSES="400",
            SURPLUS_DEFICIT="600.01",
        )
        assert self.validator.validate_calculations(values).accounting_equation.is_valid

    def test_cash_flow_equation(self):
        values = _values(
            "CASH_FLOW",
            NET_CASH_FLOW_OPERATING="60000",
            NET_CASH_FLOW_INVESTING="-1000",
            NET_INCREASE_CASH="59000",
            CASH_ENDING="59000",
        )
        results = self.validator.validate_calculations(values)
        assert results.accounting_equation.is_valid
        assert results.warnings == ()

    def test_net_assets_equation(self):
        values = _values(
            "NET_ASSETS_CHANGES",
            BALANCE_JULY_CURRENT="1000",
            CASH_EQUIVALENT_CURRENT_NEXT="200",
            PAYABLES_CURRENT_NEXT="-50",
            BALANCE_PERIOD_END="1150",
        )
        assert self.validator.validate_calculations(values).is_valid

    def test_unknown_statement_has_no_equation(self):
        results = self.validator.validate_calculations(_values("CUSTOM", X="1"))
        assert results.is_valid
        assert results.accounting_equation.equation == "No equation defined"
        assert results.business_rules == ()


class TestBusinessRules:
    def setup_method(self):
        self.validator = CalculationValidator()

    def test_negative_assets_is_an_error(self):
        values = _values("ASSETS_LIAB", TOTAL_ASSETS="-1", TOTAL_CURRENT_ASSETS="-1", TOTAL_NET_ASSETS="-1")
        results = self.validator.validate_calculations(values)
        rule = _rule(results, "BS_POSITIVE_ASSETS")
        assert not rule.is_valid
        assert rule.severity == RuleSeverity.ERROR
        assert results.errors == ("Total assets cannot be negative",)
        assert not results.is_valid

    def test_negative_revenue_is_a_warning(self):
        values = _values("REV_EXP", TOTAL_REVENUE="-10", SURPLUS_DEFICIT="-10")
        results = self.validator.validate_calculations(values)
        assert not _rule(results, "RE_POSITIVE_REVENUE").is_valid
        assert results.is_valid
        assert "Total revenue should not be negative" in results.warnings

    def test_rules_scoped_to_statement(self):
        results = self.validator.validate_calculations(_values("REV_EXP"))
        assert [r.rule_id for r in results.business_rules] == [
            "RE_POSITIVE_REVENUE",
            "RE_POSITIVE_EXPENSES",
            "GEN_NO_EXTREME_VALUES",
        ]
        assert _rule(results, "RE_POSITIVE_EXPENSES").message == (
            "Revenue Expenditure Positive Expenses validation passed"
        )

    def test_extreme_values(self):
        values = StatementValues(
            statement_code="REV_EXP",
            current={"TOTAL_REVENUE": Decimal("0")},
            previous={"TOTAL_REVENUE": Decimal("2000000000")},
        )
        results = self.validator.validate_calculations(values)
        assert not _rule(results, "GEN_NO_EXTREME_VALUES").is_valid

    def test_unreasonable_operating_cash_flow(self):
        values = _values(
            "CASH_FLOW",
            TAX_REVENUE="100",
            NET_CASH_FLOW_OPERATING="400",
            NET_INCREASE_CASH="400",
            CASH_ENDING="400",
        )
        results = self.validator.validate_calculations(values)
        assert not _rule(results, "CF_REASONABLE_OPERATING").is_valid

    def test_working_capital_rules(self):
        calculator = WorkingCapitalCalculator()
        wc = calculator.calculate(
            AggregatedData(event_totals={"RECEIVABLES_EXCHANGE": Decimal("-500")}),
            None,
        )
        values = StatementValues(
            statement_code="CASH_FLOW",
            current={},
            working_capital=wc,
            has_previous_period=False,
        )
        results = self.validator.validate_calculations(values)
        assert not _rule(results, "WC_NEGATIVE_RECEIVABLES").is_valid
        assert not _rule(results, "WC_MISSING_PREVIOUS_PERIOD").is_valid
        assert _rule(results, "WC_EXTREME_PAYABLES_VARIANCE").is_valid
        assert results.is_valid

    def test_bva_variance_rule(self):
        good = BudgetVsActualLine("A", "", Decimal("10"), Decimal("4"), Decimal("6"), None)
        bad = BudgetVsActualLine("B", "", Decimal("10"), Decimal("4"), Decimal("5"), None)
        values = StatementValues(
            statement_code="BUDGET_VS_ACTUAL",
            current={},
            budget_vs_actual=BudgetVsActualStatement(lines=(good, bad), totals={}),
        )
        results = self.validator.validate_calculations(values)
        assert not _rule(results, "BVA_VARIANCE_CALCULATION").is_valid
        assert not results.is_valid
        assert results.accounting_equation.difference == Decimal("1")

    def test_default_rules_have_unique_ids(self):
        ids = [rule.id for rule in default_business_rules()]
        assert len(ids) == len(set(ids)) == 10


class TestFormulaAndReconciliation:
    def test_formula_mismatch_reported(self):
        values = StatementValues(
            statement_code="REV_EXP",
            current={
                "TOTAL_REVENUE": Decimal("100"),
                "TOTAL_EXPENSES": Decimal("40"),
                "SURPLUS_DEFICIT": Decimal("70"),
            },
            formula_lines={"SURPLUS_DEFICIT": "TOTAL_REVENUE - TOTAL_EXPENSES"},
            formula_context=FormulaContext(
                line_values={"TOTAL_REVENUE": Decimal("100"), "TOTAL_EXPENSES": Decimal("40")}
            ),
        )
        results = CalculationValidator().validate_calculations(values)
        assert "Formula check failed for SURPLUS_DEFICIT: expected 60.00, got 70" in results.warnings

    def test_cash_reconciliation(self):
        values = _values(
            "CASH_FLOW", CASH_BEGINNING="100", NET_INCREASE_CASH="50", CASH_ENDING="160"
        )
        warning = cash_reconciliation_warning(values)
        assert warning.startswith(
            "Cash reconciliation discrepancy: Ending cash (160.00) does not equal "
            "Beginning cash (100.00) + Net increase (50.00) = 150.00. Difference: 10.00."
        )
        assert cash_reconciliation_warning(
            _values("CASH_FLOW", CASH_BEGINNING="100", NET_INCREASE_CASH="50", CASH_ENDING="150")
        ) is None
