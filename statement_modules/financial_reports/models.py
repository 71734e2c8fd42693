"""
Financial Statement Domain Models (``statement_modules.financial_reports.models``).

Responsibility
--------------
Frozen dataclass value objects for generation requests and outputs:
statement lines with their per-period state, display formatting and
variance, the assembled statement with its metadata, validation results
and performance metrics.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Built by
``statements.py`` and returned by ``FinancialStatementService``.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* ``current_period_value`` and ``previous_period_value`` are always
  finite; a period without a value carries 0 and a non-COMPUTED state.

Audit relevance
---------------
* ``StatementMetadata`` records the template version, the facilities
  covered, the generation timestamp from the injected clock, and the
  carryforward and working-capital side calculations, so a statement can
  be reproduced from the same inputs.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from statement_config.schema import ColumnType, LineFormatting
from statement_engines.aggregation import AggregationMetadata, FacilityInfo
from statement_engines.budget_vs_actual import BudgetVsActualLine
from statement_engines.carryforward import CarryforwardResult
from statement_engines.special_totals import LineMode
from statement_engines.validation import (
    BalanceValidation,
    BusinessRuleResult,
    ValidationResults,
)
from statement_engines.variance import LineVariance, VarianceSummary
from statement_engines.working_capital import FacilityWorkingCapital, WorkingCapitalResult
from statement_kernel.domain.dtos import AggregationLevel, ReportingPeriodInfo

__all__ = [
    "BalanceValidation",
    "BudgetVsActualLine",
    "BusinessRuleResult",
    "DisplayFormatting",
    "FinancialStatement",
    "FinancialStatementResponse",
    "LineState",
    "LineVariance",
    "PerformanceMetrics",
    "StatementLine",
    "StatementLineMetadata",
    "StatementMetadata",
    "StatementRequest",
    "ValidationResults",
]


class LineState(str, Enum):
    """Outcome of computing one line for one period."""

    COMPUTED = "COMPUTED"
    NOT_APPLICABLE = "NOT_APPLICABLE"
    MISSING_DATA = "MISSING_DATA"


# =========================================================================
# Request
# =========================================================================


@dataclass(frozen=True)
class StatementRequest:
    """Parameters of one statement generation."""

    statement_code: str
    project_id: int
    reporting_period_id: int
    accessible_facility_ids: tuple[int, ...]
    aggregation_level: AggregationLevel = AggregationLevel.DISTRICT
    facility_id: int | None = None
    district_id: int | None = None
    province_id: int | None = None
    include_comparatives: bool | None = None
    correlation_id: str | None = None
    actor_id: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "accessible_facility_ids", tuple(self.accessible_facility_ids)
        )
        object.__setattr__(
            self, "aggregation_level", AggregationLevel(self.aggregation_level)
        )
        if isinstance(self.statement_code, Enum):
            object.__setattr__(self, "statement_code", self.statement_code.value)


# =========================================================================
# Lines
# =========================================================================


@dataclass(frozen=True)
class DisplayFormatting:
    current_period_display: str
    previous_period_display: str
    is_negative: bool
    is_zero: bool


@dataclass(frozen=True)
class StatementLineMetadata:
    line_code: str
    event_codes: tuple[str, ...]
    display_order: int
    mode: LineMode
    is_computed: bool
    current_state: LineState
    previous_state: LineState
    formula: str | None = None
    column_type: ColumnType | None = None
    note: int | None = None


@dataclass(frozen=True)
class StatementLine:
    """
    One rendered statement line.

    ``change_in_current_period_value`` is set on working-capital lines;
    ``accumulated_surplus`` / ``adjustments`` / ``total`` on Net Assets
    Changes lines; ``budget_vs_actual`` on Budget-vs-Actual lines.
    """

    id: str
    description: str
    current_period_value: Decimal
    previous_period_value: Decimal
    formatting: LineFormatting
    metadata: StatementLineMetadata
    display_formatting: DisplayFormatting
    variance: LineVariance | None = None
    change_in_current_period_value: Decimal | None = None
    accumulated_surplus: Decimal | None = None
    adjustments: Decimal | None = None
    total: Decimal | None = None
    budget_vs_actual: BudgetVsActualLine | None = None


# =========================================================================
# Statement
# =========================================================================


@dataclass(frozen=True)
class StatementMetadata:
    template_id: str
    template_version: int
    generated_at: datetime
    aggregation_level: AggregationLevel
    facility_ids: tuple[int, ...]
    has_previous_period_data: bool
    previous_period_id: int | None = None
    aggregation_metadata: AggregationMetadata = field(default_factory=AggregationMetadata)
    facility_breakdown: tuple[FacilityInfo, ...] = ()
    working_capital: WorkingCapitalResult | None = None
    working_capital_breakdown: tuple[FacilityWorkingCapital, ...] = ()
    carryforward: CarryforwardResult | None = None
    variance_summary: VarianceSummary | None = None
    cycles_broken: tuple[str, ...] = ()


@dataclass(frozen=True)
class FinancialStatement:
    statement_code: str
    statement_name: str
    reporting_period: ReportingPeriodInfo
    facility: FacilityInfo | None
    lines: tuple[StatementLine, ...]
    totals: Mapping[str, Decimal]
    metadata: StatementMetadata

    def __post_init__(self) -> None:
        if not isinstance(self.totals, MappingProxyType):
            object.__setattr__(self, "totals", MappingProxyType(dict(self.totals)))

    def get_line(self, line_code: str) -> StatementLine | None:
        for line in self.lines:
            if line.metadata.line_code == line_code:
                return line
        return None

    def value(self, line_code: str) -> Decimal:
        line = self.get_line(line_code)
        return line.current_period_value if line is not None else Decimal("0")


@dataclass(frozen=True)
class PerformanceMetrics:
    processing_time_ms: float
    lines_processed: int
    events_processed: int
    formulas_calculated: int


@dataclass(frozen=True)
class FinancialStatementResponse:
    statement: FinancialStatement
    validation: ValidationResults
    performance: PerformanceMetrics
