"""
Financial Reports Configuration Schema.

Tolerances, display options, variance thresholds and the event-code sets
the statement service needs beyond what the templates declare: working
capital balances, cash carryforward codes, cross-statement surplus codes
and the Budget-vs-Actual translation tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Self

from statement_config.loader import load_event_mapping_tables
from statement_config.schema import EventMappingTables
from statement_engines.carryforward import (
    BEGINNING_CASH_CODE,
    ENDING_CASH_CODE,
    LARGE_BALANCE_THRESHOLD,
)
from statement_engines.formula import DEFAULT_PAYABLES_CODES, DEFAULT_RECEIVABLES_CODES
from statement_engines.validation import EXTREME_VALUE_THRESHOLD
from statement_engines.variance import SignificanceThresholds
from statement_kernel.domain.amounts import TOLERANCE, to_amount
from statement_kernel.exceptions import ConfigurationError
from statement_kernel.logging_config import get_logger

logger = get_logger("modules.financial_reports.config")

NEGATIVE_FORMATS = ("parentheses", "minus")

# Event codes summed for the cross-statement surplus/deficit
DEFAULT_REVENUE_CODES: tuple[str, ...] = (
    "TAX_REVENUE",
    "GRANTS",
    "TRANSFERS_CENTRAL_TREASURY",
    "TRANSFERS_PUBLIC_ENTITIES",
    "FINES_PENALTIES_LICENSES",
    "PROPERTY_INCOME",
    "SALES_GOODS_SERVICES",
    "PROCEEDS_SALE_CAPITAL",
    "OTHER_REVENUE",
    "DOMESTIC_BORROWINGS",
    "EXTERNAL_BORROWINGS",
)
DEFAULT_EXPENSE_CODES: tuple[str, ...] = (
    "COMPENSATION_EMPLOYEES",
    "GOODS_SERVICES",
    "GRANTS_TRANSFERS",
    "SUBSIDIES",
    "SOCIAL_ASSISTANCE",
    "FINANCE_COSTS",
    "ACQUISITION_FIXED_ASSETS",
    "REPAYMENT_BORROWINGS",
    "OTHER_EXPENSES",
)


@dataclass
class FinancialReportsConfig:
    """
    Configuration schema for the financial reports module.

    ``mapping_tables`` defaults to the packaged ``event_mappings.yaml``.
    """

    # Comparison tolerance for equations, reconciliations and discrepancies
    tolerance: Decimal = TOLERANCE

    # Display
    display_precision: int = 2
    negative_format: str = "parentheses"
    show_zero_values: bool = True
    include_comparatives: bool = True

    # Line variance bands
    significance_thresholds: SignificanceThresholds = field(
        default_factory=SignificanceThresholds,
    )

    # Working capital balance codes
    receivables_codes: tuple[str, ...] = DEFAULT_RECEIVABLES_CODES
    payables_codes: tuple[str, ...] = DEFAULT_PAYABLES_CODES

    # Cash carryforward
    beginning_cash_code: str = BEGINNING_CASH_CODE
    ending_cash_code: str = ENDING_CASH_CODE
    large_balance_threshold: Decimal = LARGE_BALANCE_THRESHOLD

    # Cross-statement surplus/deficit
    revenue_codes: tuple[str, ...] = DEFAULT_REVENUE_CODES
    expense_codes: tuple[str, ...] = DEFAULT_EXPENSE_CODES

    # Validation
    extreme_value_threshold: Decimal = EXTREME_VALUE_THRESHOLD

    # Budget-vs-Actual translation tables
    mapping_tables: EventMappingTables | None = None

    def __post_init__(self):
        if self.tolerance < 0:
            raise ConfigurationError("tolerance cannot be negative", field="tolerance")
        if self.display_precision < 0:
            raise ConfigurationError(
                "display_precision cannot be negative", field="display_precision"
            )
        if self.negative_format not in NEGATIVE_FORMATS:
            raise ConfigurationError(
                f"negative_format must be one of {', '.join(NEGATIVE_FORMATS)}",
                field="negative_format",
            )
        if not self.receivables_codes or not self.payables_codes:
            raise ConfigurationError(
                "working capital code sets cannot be empty", field="receivables_codes"
            )
        if self.large_balance_threshold <= 0:
            raise ConfigurationError(
                "large_balance_threshold must be positive", field="large_balance_threshold"
            )
        if self.mapping_tables is None:
            self.mapping_tables = load_event_mapping_tables()

    @property
    def execution_to_planning(self):
        return self.mapping_tables.execution_to_planning

    @property
    def budget_vs_actual_mappings(self):
        return self.mapping_tables.budget_vs_actual

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with standard defaults."""
        logger.info("financial_reports_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """
        Create config from a dictionary (e.g. parsed YAML or JSON).

        ``mappings_path`` loads the mapping tables from another YAML file.
        Amount fields accept strings or numbers.
        """
        data = dict(data)
        if "significance_thresholds" in data and isinstance(
            data["significance_thresholds"], dict
        ):
            data["significance_thresholds"] = SignificanceThresholds(
                **{k: to_amount(v) for k, v in data["significance_thresholds"].items()}
            )
        for key in ("tolerance", "large_balance_threshold", "extreme_value_threshold"):
            if key in data:
                data[key] = to_amount(data[key])
        for key in ("receivables_codes", "payables_codes", "revenue_codes", "expense_codes"):
            if key in data:
                data[key] = tuple(data[key])
        mappings_path = data.pop("mappings_path", None)
        if mappings_path is not None:
            data["mapping_tables"] = load_event_mapping_tables(Path(mappings_path))
        logger.info(
            "financial_reports_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)
