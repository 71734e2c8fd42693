"""
Typed Exception Hierarchy for the Statement Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Statement generation distinguishes between conditions that abort a request
(template missing, period missing, facility outside scope) and conditions
that merely degrade the result (missing previous period, unresolved formula
symbol, reconciliation mismatch). The degrading conditions never raise: they
are accumulated as validation warnings. Everything that DOES raise comes from
this module, so callers can map errors by type instead of parsing messages:

    try:
        response = service.generate_statement(request)
    except TemplateNotFoundError as e:
        return not_found(code=e.code, statement_code=e.statement_code)
    except AccessDeniedError as e:
        return forbidden(code=e.code, facility_id=e.facility_id)

Every exception has a CODE class attribute (machine-readable, API-safe) and
carries its context as attributes (not just a message string).

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StatementEngineError (base)
    |
    +-- TemplateError
    |   +-- TemplateNotFoundError
    |   +-- TemplateValidationError
    |
    +-- FormulaError
    |   +-- FormulaSyntaxError
    |
    +-- ReferenceDataError
    |   +-- ReportingPeriodNotFoundError
    |   +-- ProjectNotFoundError
    |   +-- FacilityNotFoundError
    |
    +-- ScopeError
    |   +-- AccessDeniedError
    |   +-- FacilityRequiredError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Template        | TEMPLATE_NOT_FOUND          | No active template for statement code
                | TEMPLATE_VALIDATION_FAILED  | Template file violates structural rules
----------------|-----------------------------|-----------------------------------------
Formula         | FORMULA_SYNTAX_ERROR        | Formula rejected by the restricted AST
----------------|-----------------------------|-----------------------------------------
Reference data  | REPORTING_PERIOD_NOT_FOUND  | Requested period does not exist
                | PROJECT_NOT_FOUND           | Requested project does not exist
                | FACILITY_NOT_FOUND          | Facility ID unknown to the directory
----------------|-----------------------------|-----------------------------------------
Scope           | ACCESS_DENIED               | Facility outside caller's accessible set
                | FACILITY_REQUIRED           | FACILITY level without a facility ID
----------------|-----------------------------|-----------------------------------------
Configuration   | CONFIGURATION_ERROR         | Invalid engine configuration
"""


class StatementEngineError(Exception):
    """
    Base exception for all statement engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STATEMENT_ENGINE_ERROR"


# Template exceptions


class TemplateError(StatementEngineError):
    """Base exception for template-related errors."""

    code: str = "TEMPLATE_ERROR"


class TemplateNotFoundError(TemplateError):
    """No active template exists for the requested statement code."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, statement_code: str):
        self.statement_code = statement_code
        super().__init__(f"No active template found for statement: {statement_code}")


class TemplateValidationError(TemplateError):
    """A template definition violates structural rules."""

    code: str = "TEMPLATE_VALIDATION_FAILED"

    def __init__(self, statement_code: str, problems: list[str]):
        self.statement_code = statement_code
        self.problems = problems
        super().__init__(
            f"Template {statement_code} is invalid: {'; '.join(problems)}"
        )


# Formula exceptions


class FormulaError(StatementEngineError):
    """Base exception for formula-related errors."""

    code: str = "FORMULA_ERROR"


class FormulaSyntaxError(FormulaError):
    """A formula was rejected by the restricted expression grammar."""

    code: str = "FORMULA_SYNTAX_ERROR"

    def __init__(self, formula: str, messages: list[str], line_code: str | None = None):
        self.formula = formula
        self.messages = messages
        self.line_code = line_code
        where = f" (line {line_code})" if line_code else ""
        super().__init__(f"Invalid formula{where} '{formula}': {'; '.join(messages)}")


# Reference data exceptions


class ReferenceDataError(StatementEngineError):
    """Base exception for missing projects, periods and facilities."""

    code: str = "REFERENCE_DATA_ERROR"


class ReportingPeriodNotFoundError(ReferenceDataError):
    """Requested reporting period does not exist."""

    code: str = "REPORTING_PERIOD_NOT_FOUND"

    def __init__(self, reporting_period_id: int):
        self.reporting_period_id = reporting_period_id
        super().__init__(f"Reporting period not found: {reporting_period_id}")


class ProjectNotFoundError(ReferenceDataError):
    """Requested project does not exist."""

    code: str = "PROJECT_NOT_FOUND"

    def __init__(self, project_id: int):
        self.project_id = project_id
        super().__init__(f"Project not found: {project_id}")


class FacilityNotFoundError(ReferenceDataError):
    """Facility ID is unknown to the facility directory."""

    code: str = "FACILITY_NOT_FOUND"

    def __init__(self, facility_id: int):
        self.facility_id = facility_id
        super().__init__(f"Facility not found: {facility_id}")


# Scope exceptions


class ScopeError(StatementEngineError):
    """Base exception for aggregation scope errors."""

    code: str = "SCOPE_ERROR"


class AccessDeniedError(ScopeError):
    """Requested facility (or expanded scope) is outside the caller's access."""

    code: str = "ACCESS_DENIED"

    def __init__(self, facility_id: int | None, reason: str | None = None):
        self.facility_id = facility_id
        self.reason = reason
        if facility_id is None:
            msg = f"Access denied: {reason or 'no accessible facilities in scope'}"
        else:
            msg = f"Access denied to facility {facility_id}"
            if reason:
                msg += f": {reason}"
        super().__init__(msg)


class FacilityRequiredError(ScopeError):
    """FACILITY aggregation level requested without a facility ID."""

    code: str = "FACILITY_REQUIRED"

    def __init__(self, aggregation_level: str):
        self.aggregation_level = aggregation_level
        super().__init__(
            f"A facility ID is required for aggregation level {aggregation_level}"
        )


# Configuration exceptions


class ConfigurationError(StatementEngineError):
    """Engine configuration is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)
