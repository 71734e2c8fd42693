"""
Financial Statement Service (``statement_modules.financial_reports.service``).

Responsibility
--------------
Orchestrates statement generation: resolve the facility scope, load the
active template, collect and aggregate event data for the current and
previous period, run the statement-specific side calculations
(carryforward, working capital, cross-statement surplus, Budget-vs-Actual),
evaluate every line in dependency order, assemble the statement and
validate it.

Architecture position
---------------------
**Modules layer** -- thin glue.  ``FinancialStatementService`` is the sole
public entry point for statement generation.  It reads only through the
collaborator protocols and delegates all arithmetic to the engines and to
the pure functions in ``statements.py``.

Invariants enforced
-------------------
* Read-only -- nothing is persisted.
* Request-local -- no state survives a call except the immutable template
  cache owned by the ``TemplateStore``.
* Partial results are never returned: any exception discards the
  in-progress statement.
* Recoverable conditions are accumulated as validation warnings.

Failure modes
-------------
* ``ReportingPeriodNotFoundError`` / ``ProjectNotFoundError`` -- unknown
  reference data.
* ``FacilityRequiredError`` / ``AccessDeniedError`` -- scope resolution.
* ``TemplateNotFoundError`` / ``TemplateValidationError`` -- templates.
* Data source exceptions propagate unchanged.

Audit relevance
---------------
Structured log events bracket every generation (``statement_generation_started``
/ ``statement_generated``) under a ``LogContext`` carrying the correlation
ID, statement code, project and period.
"""

from __future__ import annotations

import dataclasses
import time
from decimal import Decimal

from sqlalchemy.orm import Session

from statement_config.schema import PeriodSource, StatementTemplate
from statement_config.template_store import TemplateStore, extract_event_codes
from statement_engines.aggregation import (
    AggregatedData,
    DataAggregationEngine,
    build_event_code_table,
)
from statement_engines.budget_vs_actual import (
    BudgetVsActualProcessor,
    BudgetVsActualStatement,
    validate_template as validate_bva_template,
)
from statement_engines.carryforward import (
    CarryforwardResult,
    CarryforwardValidator,
    inject_beginning_cash,
    resolve_beginning_cash,
)
from statement_engines.dependencies import resolve_dependencies
from statement_engines.formula import SURPLUS_DEFICIT_KEY, FormulaEngine
from statement_engines.scope import ScopeResolution, resolve_facility_scope
from statement_engines.validation import (
    CalculationValidator,
    StatementValues,
    default_business_rules,
)
from statement_engines.variance import LineVarianceCalculator
from statement_engines.working_capital import (
    FacilityWorkingCapital,
    WorkingCapitalCalculator,
    WorkingCapitalResult,
)
from statement_kernel.domain.clock import Clock, SystemClock
from statement_kernel.domain.dtos import (
    AggregationLevel,
    DataFilters,
    EntityType,
    FacilityRecord,
)
from statement_kernel.domain.protocols import (
    EventDataSource,
    EventRegistry,
    ReferenceDataSource,
)
from statement_kernel.exceptions import (
    ProjectNotFoundError,
    ReportingPeriodNotFoundError,
)
from statement_kernel.logging_config import LogContext, get_logger
from statement_modules.financial_reports.config import FinancialReportsConfig
from statement_modules.financial_reports.models import (
    FinancialStatement,
    FinancialStatementResponse,
    PerformanceMetrics,
    StatementMetadata,
    StatementRequest,
)
from statement_modules.financial_reports.statements import (
    PeriodInputs,
    PeriodValues,
    build_budget_vs_actual_lines,
    build_statement_lines,
    collect_totals,
    compute_period_values,
    cross_statement_surplus,
    missing_period,
)

logger = get_logger("modules.financial_reports.service")

BUDGET_VS_ACTUAL = "BUDGET_VS_ACTUAL"
CASH_FLOW = "CASH_FLOW"
CROSS_STATEMENT_CODES = frozenset({"ASSETS_LIAB", "NET_ASSETS_CHANGES"})


class FinancialStatementService:
    """
    Statement generation service.

    Contract
    --------
    * ``generate_statement`` returns a ``FinancialStatementResponse`` or
      raises one of the typed exceptions listed in the module docstring.

    Guarantees
    ----------
    * Identical inputs and clock produce identical statements and validation
      results. Only ``performance.processing_time_ms`` measures wall time.
    * Every line carries finite current and previous values.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT persist statements or enforce approval workflows.
    * Does NOT render PDF/CSV/Excel output.
    """

    def __init__(
        self,
        event_source: EventDataSource,
        event_registry: EventRegistry,
        reference_data: ReferenceDataSource,
        template_store: TemplateStore | None = None,
        config: FinancialReportsConfig | None = None,
        clock: Clock | None = None,
    ):
        self._event_source = event_source
        self._event_registry = event_registry
        self._reference = reference_data
        self._templates = template_store or TemplateStore()
        self._config = config or FinancialReportsConfig.with_defaults()
        self._clock = clock or SystemClock()

        self._formula_engine = FormulaEngine(
            self._config.receivables_codes, self._config.payables_codes
        )
        self._working_capital = WorkingCapitalCalculator(
            self._config.receivables_codes, self._config.payables_codes
        )
        self._carryforward_validator = CarryforwardValidator(
            self._config.large_balance_threshold
        )
        self._bva = BudgetVsActualProcessor(
            self._config.mapping_tables, self._formula_engine
        )
        self._variance = LineVarianceCalculator(self._config.significance_thresholds)
        self._validator = CalculationValidator(
            self._formula_engine,
            default_business_rules(self._config.extreme_value_threshold),
            self._config.tolerance,
        )

    @classmethod
    def from_session(
        cls,
        session: Session,
        template_store: TemplateStore | None = None,
        config: FinancialReportsConfig | None = None,
        clock: Clock | None = None,
    ) -> FinancialStatementService:
        """Service reading through the SQLAlchemy selectors."""
        from statement_kernel.selectors import EventSelector, ReferenceSelector

        events = EventSelector(session)
        return cls(
            event_source=events,
            event_registry=events,
            reference_data=ReferenceSelector(session),
            template_store=template_store,
            config=config,
            clock=clock,
        )

    # =========================================================================
    # Public API
    # =========================================================================

    def generate_statement(self, request: StatementRequest) -> FinancialStatementResponse:
        """
        Generate one financial statement.

        Raises:
            ReportingPeriodNotFoundError, ProjectNotFoundError,
            FacilityRequiredError, AccessDeniedError,
            TemplateNotFoundError, TemplateValidationError.
        """
        with LogContext.bind(
            correlation_id=request.correlation_id,
            actor_id=request.actor_id,
            statement_code=request.statement_code,
            project_id=str(request.project_id),
            reporting_period_id=str(request.reporting_period_id),
        ):
            logger.info(
                "statement_generation_started",
                extra={
                    "aggregation_level": request.aggregation_level.value,
                    "facility_id": request.facility_id,
                },
            )
            return self._generate(request)

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _generate(self, request: StatementRequest) -> FinancialStatementResponse:
        t0 = time.monotonic()
        config = self._config
        include_comparatives = (
            config.include_comparatives
            if request.include_comparatives is None
            else request.include_comparatives
        )

        period = self._reference.get_reporting_period(request.reporting_period_id)
        if period is None:
            raise ReportingPeriodNotFoundError(request.reporting_period_id)
        if self._reference.get_project(request.project_id) is None:
            raise ProjectNotFoundError(request.project_id)

        scope = self._resolve_scope(request)
        template = self._templates.load_template(request.statement_code)
        event_codes_by_id = build_event_code_table(self._event_registry)
        previous_period = self._reference.get_previous_period(period.id)
        previous_period_id = previous_period.id if previous_period is not None else None

        is_bva = template.statement_code == BUDGET_VS_ACTUAL
        entity_types = (
            (EntityType.PLANNING, EntityType.EXECUTION) if is_bva else (EntityType.EXECUTION,)
        )
        filters = DataFilters(
            project_id=request.project_id,
            facility_ids=scope.facility_ids,
            reporting_period_id=period.id,
            entity_types=entity_types,
        )
        aggregation = DataAggregationEngine(
            self._event_source, event_codes_by_id, clock=self._clock
        )
        collected = aggregation.collect_event_data(
            filters,
            self._event_codes_for(template),
            previous_period_id=None if is_bva else previous_period_id,
        )

        warnings: list[str] = []
        working_capital: WorkingCapitalResult | None = None
        wc_breakdown: tuple[FacilityWorkingCapital, ...] = ()
        carryforward: CarryforwardResult | None = None
        bva_statement: BudgetVsActualStatement | None = None
        formulas = 0
        resolution = resolve_dependencies(template.lines)
        for edge in resolution.cycles_broken:
            warnings.append(
                f"Circular dependency: {edge.line_code} evaluated before {edge.depends_on}"
            )

        if is_bva:
            warnings.extend(
                f"Template {template.statement_code}: {problem}"
                for problem in validate_bva_template(template)
            )
            planning = aggregation.aggregate_by_event(
                [r for r in collected.current_period if r.entity_type == EntityType.PLANNING]
            )
            execution = aggregation.aggregate_by_event(
                [r for r in collected.current_period if r.entity_type != EntityType.PLANNING]
            )
            current_agg = execution
            bva_statement = self._bva.generate_statement(
                template, planning, execution, event_codes_by_id
            )
            warnings.extend(bva_statement.warnings)
            lines = build_budget_vs_actual_lines(template, bva_statement, config)
            current_values: PeriodValues | None = None
            previous_values: dict[str, Decimal] = {}
            has_previous = False
        else:
            current_agg = aggregation.aggregate_by_event(collected.current_period)
            previous_agg: AggregatedData | None = None
            if previous_period_id is not None:
                previous_agg = aggregation.aggregate_by_event(collected.previous_period)
            has_previous = collected.has_previous_period_data

            balance_sheet = None
            if template.statement_code == CASH_FLOW:
                carryforward = resolve_beginning_cash(
                    current=current_agg,
                    previous=previous_agg,
                    previous_period_id=previous_period_id,
                    facility_ids=scope.facility_ids,
                    beginning_code=config.beginning_cash_code,
                    ending_code=config.ending_cash_code,
                    tolerance=config.tolerance,
                )
                warnings.extend(carryforward.warnings)
                warnings.extend(self._carryforward_validator.validate(carryforward))
                current_agg = inject_beginning_cash(
                    current_agg, carryforward, config.beginning_cash_code
                )

                working_capital = self._working_capital.calculate(current_agg, previous_agg)
                warnings.extend(working_capital.warnings)
                balance_sheet = self._working_capital.build_balance_sheet_context(
                    current_agg, previous_agg
                )
                if scope.is_aggregated:
                    wc_breakdown, wc_warnings = self._working_capital.facility_breakdown(
                        current_agg, previous_agg, scope.facility_ids
                    )
                    warnings.extend(wc_warnings)

            current_cross = previous_cross = None
            if template.statement_code in CROSS_STATEMENT_CODES:
                current_cross = {
                    SURPLUS_DEFICIT_KEY: cross_statement_surplus(
                        current_agg.event_totals, config.revenue_codes, config.expense_codes
                    )
                }
                if previous_agg is not None:
                    previous_cross = {
                        SURPLUS_DEFICIT_KEY: cross_statement_surplus(
                            previous_agg.event_totals,
                            config.revenue_codes,
                            config.expense_codes,
                        )
                    }

            current_inputs = PeriodInputs(
                event_values=current_agg.event_totals,
                balance_sheet=balance_sheet,
                cross_statement_values=current_cross,
                working_capital=working_capital,
            )
            previous_inputs = None
            if previous_agg is not None:
                previous_inputs = PeriodInputs(
                    event_values=previous_agg.event_totals,
                    cross_statement_values=previous_cross,
                )

            if previous_inputs is not None:
                previous_period_values = compute_period_values(
                    template,
                    resolution,
                    previous_inputs,
                    formula_engine=self._formula_engine,
                    event_codes_by_id=event_codes_by_id,
                    period_sources={
                        PeriodSource.CURRENT: previous_inputs,
                        PeriodSource.PREVIOUS: None,
                    },
                )
            else:
                previous_period_values = missing_period(template)

            current_values = compute_period_values(
                template,
                resolution,
                current_inputs,
                formula_engine=self._formula_engine,
                event_codes_by_id=event_codes_by_id,
                period_sources={
                    PeriodSource.CURRENT: current_inputs,
                    PeriodSource.PREVIOUS: previous_inputs,
                },
                previous_values=previous_period_values.values,
            )
            warnings.extend(current_values.warnings)
            warnings.extend(
                f"(previous period) {warning}" for warning in previous_period_values.warnings
            )
            formulas = current_values.formulas_calculated + previous_period_values.formulas_calculated
            previous_values = dict(previous_period_values.values)

            lines = build_statement_lines(
                template,
                current_values,
                previous_period_values,
                config,
                event_codes_by_id=event_codes_by_id,
                working_capital=working_capital,
                include_comparatives=include_comparatives and has_previous,
                variance_calculator=self._variance,
            )

        facilities = self._reference.list_facilities(scope.facility_ids)
        facility_info = aggregation.get_facility_info(facilities, current_agg)
        warnings.extend(aggregation.validate_facility_data(scope.facility_ids, current_agg))

        values = {line.metadata.line_code: line.current_period_value for line in lines}
        validation = self._validator.validate_calculations(
            StatementValues(
                statement_code=template.statement_code,
                current=values,
                previous=previous_values,
                formula_lines=current_values.formula_lines if current_values else {},
                formula_context=current_values.context if current_values else None,
                working_capital=working_capital,
                budget_vs_actual=bva_statement,
                has_previous_period=has_previous,
            )
        )
        validation = dataclasses.replace(
            validation,
            warnings=tuple(dict.fromkeys([*warnings, *validation.warnings])),
        )

        variance_summary = None
        variances = [(line.id, line.variance) for line in lines if line.variance is not None]
        if variances:
            variance_summary = self._variance.summarize(variances)

        statement = FinancialStatement(
            statement_code=template.statement_code,
            statement_name=template.statement_name,
            reporting_period=period,
            facility=(
                facility_info.get(scope.primary_facility_id)
                if scope.level == AggregationLevel.FACILITY
                else None
            ),
            lines=lines,
            totals=collect_totals(lines),
            metadata=StatementMetadata(
                template_id=template.id,
                template_version=template.version,
                generated_at=self._clock.now(),
                aggregation_level=scope.level,
                facility_ids=scope.facility_ids,
                has_previous_period_data=has_previous,
                previous_period_id=previous_period_id,
                aggregation_metadata=current_agg.metadata,
                facility_breakdown=tuple(
                    facility_info[fid] for fid in scope.facility_ids if fid in facility_info
                ),
                working_capital=working_capital,
                working_capital_breakdown=wc_breakdown,
                carryforward=carryforward,
                variance_summary=variance_summary,
                cycles_broken=tuple(
                    f"{e.line_code}->{e.depends_on}" for e in resolution.cycles_broken
                ),
            ),
        )
        performance = PerformanceMetrics(
            processing_time_ms=round((time.monotonic() - t0) * 1000, 2),
            lines_processed=len(lines),
            events_processed=collected.metadata.total_events,
            formulas_calculated=formulas,
        )

        logger.info(
            "statement_generated",
            extra={
                "line_count": len(lines),
                "facility_count": len(scope.facility_ids),
                "has_previous_period_data": has_previous,
                "is_valid": validation.is_valid,
                "warning_count": len(validation.warnings),
                "processing_time_ms": performance.processing_time_ms,
            },
        )
        return FinancialStatementResponse(
            statement=statement,
            validation=validation,
            performance=performance,
        )

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _resolve_scope(self, request: StatementRequest) -> ScopeResolution:
        facilities: list[FacilityRecord] = []
        if request.district_id is not None or request.province_id is not None:
            facilities = self._reference.list_facilities(request.accessible_facility_ids)
        return resolve_facility_scope(
            request.aggregation_level,
            request.facility_id,
            request.accessible_facility_ids,
            facilities,
            district_id=request.district_id,
            province_id=request.province_id,
        )

    def _event_codes_for(self, template: StatementTemplate) -> tuple[str, ...] | None:
        """
        Event codes to fetch for a template, or None for all events.

        Templates that reference numeric event IDs fetch everything, since
        IDs are only resolved after the rows are read.
        """
        if any(
            isinstance(ref, int) for line in template.lines for ref in line.event_mappings
        ):
            return None
        config = self._config
        codes = set(extract_event_codes(template))
        code = template.statement_code
        if code == CASH_FLOW:
            codes.update(config.receivables_codes)
            codes.update(config.payables_codes)
            codes.update((config.beginning_cash_code, config.ending_cash_code))
        if code in CROSS_STATEMENT_CODES:
            codes.update(config.revenue_codes)
            codes.update(config.expense_codes)
        if code == BUDGET_VS_ACTUAL:
            codes.update(config.execution_to_planning.keys())
            codes.update(config.execution_to_planning.values())
            for mapping in config.budget_vs_actual_mappings:
                codes.update(mapping.budget_events)
                codes.update(mapping.actual_events)
        return tuple(sorted(codes))

    @property
    def config(self) -> FinancialReportsConfig:
        return self._config
