"""Tests for FinancialReportsConfig defaults, validation and from_dict."""

from decimal import Decimal

import pytest

from statement_engines.variance import SignificanceThresholds
from statement_kernel.exceptions import ConfigurationError
from statement_modules.financial_reports.config import (
    DEFAULT_EXPENSE_CODES,
    DEFAULT_REVENUE_CODES,
    FinancialReportsConfig,
)


class TestDefaults:
    def test_with_defaults(self):
        config = FinancialReportsConfig.with_defaults()
        assert config.tolerance == Decimal("0.01")
        assert config.display_precision == 2
        assert config.negative_format == "parentheses"
        assert config.include_comparatives
        assert config.receivables_codes == (
            "ADVANCE_PAYMENTS",
            "RECEIVABLES_EXCHANGE",
            "RECEIVABLES_NON_EXCHANGE",
        )
        assert config.payables_codes == ("PAYABLES",)
        assert config.revenue_codes == DEFAULT_REVENUE_CODES
        assert config.expense_codes == DEFAULT_EXPENSE_CODES
        assert config.significance_thresholds == SignificanceThresholds()

    def test_packaged_mapping_tables_loaded(self):
        config = FinancialReportsConfig()
        assert config.execution_to_planning["GOODS_SERVICES"] == "GOODS_SERVICES_PLANNING"
        assert {m.line_code for m in config.budget_vs_actual_mappings} == {
            "TRANSFERS_PUBLIC",
            "GOODS_SERVICES",
        }


class TestValidation:
    @pytest.mark.parametrize(
        "kwargs, field",
        [
            ({"tolerance": Decimal("-0.01")}, "tolerance"),
            ({"display_precision": -1}, "display_precision"),
            ({"negative_format": "red"}, "negative_format"),
            ({"receivables_codes": ()}, "receivables_codes"),
            ({"large_balance_threshold": Decimal("0")}, "large_balance_threshold"),
        ],
    )
    def test_invalid_values(self, kwargs, field):
        with pytest.raises(ConfigurationError) as exc_info:
            FinancialReportsConfig(**kwargs)
        assert exc_info.value.field == field
        assert exc_info.value.code == "CONFIGURATION_ERROR"


class TestFromDict:
    def test_amounts_and_code_lists(self):
        config = FinancialReportsConfig.from_dict(
            {
                "tolerance": "0.05",
                "negative_format": "minus",
                "show_zero_values": False,
                "significance_thresholds": {"medium": 5, "high": "15", "critical": 40},
                "payables_codes": ["PAYABLES", "ACCRUED_EXPENSES"],
                "extreme_value_threshold": 5000000,
            }
        )
        assert config.tolerance == Decimal("0.05")
        assert config.negative_format == "minus"
        assert not config.show_zero_values
        assert config.significance_thresholds.high == Decimal("15")
        assert config.payables_codes == ("PAYABLES", "ACCRUED_EXPENSES")
        assert config.extreme_value_threshold == Decimal("5000000")

    def test_mappings_path(self, tmp_path):
        path = tmp_path / "mappings.yaml"
        path.write_text(
            "execution_to_planning:\n"
            "  TAX_REVENUE: TAX_REVENUE_PLAN\n"
            "budget_vs_actual:\n"
            "  - line_code: GRANTS_TRANSFERS\n"
            "    budget_events: [GRANTS_PLAN]\n"
            "    actual_events: [GRANTS]\n"
        )
        config = FinancialReportsConfig.from_dict({"mappings_path": str(path)})
        assert dict(config.execution_to_planning) == {"TAX_REVENUE": "TAX_REVENUE_PLAN"}
        mapping = config.mapping_tables.budget_mapping_for("GRANTS_TRANSFERS")
        assert mapping.budget_events == ("GRANTS_PLAN",)
        assert mapping.note is None

    def test_invalid_value_from_dict(self):
        with pytest.raises(ConfigurationError):
            FinancialReportsConfig.from_dict({"negative_format": "brackets"})

    def test_unknown_key(self):
        with pytest.raises(TypeError):
            FinancialReportsConfig.from_dict({"currency": "RWF"})
