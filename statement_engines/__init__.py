"""
Module: statement_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the statement
    calculation engines.  This is the import surface for
    ``statement_modules``.

Architecture position:
    Engines -- calculation layer.  May import statement_kernel and
    statement_config.  MUST NOT import statement_modules.

Invariants enforced:
    - Purity: engines never read the clock or storage directly.  The only
      I/O is ``DataAggregationEngine.collect_event_data``, which goes
      through the injected ``EventDataSource``.
    - Decimal-only arithmetic: amounts are ``Decimal``; floats are
      converted at the boundary.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine`` (see
    ``statement_engines.tracer``), emitting STATEMENT_ENGINE_TRACE records
    with engine name, version, input fingerprint and duration.

Usage:
    from statement_engines import FormulaEngine, resolve_dependencies
    from statement_engines.working_capital import WorkingCapitalCalculator
"""

from statement_kernel.logging_config import get_logger

logger = get_logger("engines")

from statement_engines.aggregation import (  # noqa: E402
    AggregatedData,
    AggregationMetadata,
    CollectedEventData,
    CollectionMetadata,
    DataAggregationEngine,
    EventDataSummary,
    EventVariance,
    FacilityInfo,
    PeriodComparison,
    build_event_code_table,
    resolve_event_refs,
)
from statement_engines.budget_vs_actual import (  # noqa: E402
    BudgetVsActualLine,
    BudgetVsActualProcessor,
    BudgetVsActualStatement,
    performance_percentage,
)
from statement_engines.carryforward import (  # noqa: E402
    CarryforwardResult,
    CarryforwardSource,
    CarryforwardValidator,
    FacilityCarryforward,
    inject_beginning_cash,
    resolve_beginning_cash,
)
from statement_engines.dependencies import (  # noqa: E402
    BrokenEdge,
    DependencyResolution,
    resolve_dependencies,
)
from statement_engines.formula import (  # noqa: E402
    BalanceSheetContext,
    FormulaContext,
    FormulaEngine,
    FormulaResult,
)
from statement_engines.scope import ScopeResolution, resolve_facility_scope  # noqa: E402
from statement_engines.special_totals import (  # noqa: E402
    SPECIAL_TOTALS,
    LineMode,
    SpecialTotal,
    evaluate_special_total,
    resolve_line_mode,
)
from statement_engines.tracer import compute_input_fingerprint, traced_engine  # noqa: E402
from statement_engines.validation import (  # noqa: E402
    BalanceValidation,
    BusinessRule,
    BusinessRuleResult,
    CalculationValidator,
    RuleSeverity,
    StatementValues,
    ValidationResults,
)
from statement_engines.variance import (  # noqa: E402
    LineVariance,
    LineVarianceCalculator,
    SignificanceThresholds,
    VarianceSignificance,
    VarianceSummary,
    VarianceTrend,
)
from statement_engines.working_capital import (  # noqa: E402
    WorkingCapitalCalculator,
    WorkingCapitalChange,
    WorkingCapitalResult,
)

__all__ = [
    "AggregatedData",
    "AggregationMetadata",
    "BalanceSheetContext",
    "BalanceValidation",
    "BrokenEdge",
    "BudgetVsActualLine",
    "BudgetVsActualProcessor",
    "BudgetVsActualStatement",
    "BusinessRule",
    "BusinessRuleResult",
    "CalculationValidator",
    "CarryforwardResult",
    "CarryforwardSource",
    "CarryforwardValidator",
    "CollectedEventData",
    "CollectionMetadata",
    "DataAggregationEngine",
    "DependencyResolution",
    "EventDataSummary",
    "EventVariance",
    "FacilityCarryforward",
    "FacilityInfo",
    "FormulaContext",
    "FormulaEngine",
    "FormulaResult",
    "LineMode",
    "LineVariance",
    "LineVarianceCalculator",
    "PeriodComparison",
    "RuleSeverity",
    "SPECIAL_TOTALS",
    "ScopeResolution",
    "SignificanceThresholds",
    "SpecialTotal",
    "StatementValues",
    "ValidationResults",
    "VarianceSignificance",
    "VarianceSummary",
    "VarianceTrend",
    "WorkingCapitalCalculator",
    "WorkingCapitalChange",
    "WorkingCapitalResult",
    "build_event_code_table",
    "compute_input_fingerprint",
    "evaluate_special_total",
    "inject_beginning_cash",
    "performance_percentage",
    "resolve_beginning_cash",
    "resolve_dependencies",
    "resolve_event_refs",
    "resolve_facility_scope",
    "traced_engine",
]
