"""
Financial Reports Module (``statement_modules.financial_reports``).

Responsibility
--------------
Read-only module that generates the five health-sector financial
statements (REV_EXP, ASSETS_LIAB, CASH_FLOW, NET_ASSETS_CHANGES,
BUDGET_VS_ACTUAL) from raw planning and execution event data, using the
versioned templates in ``statement_config``.

Architecture position
---------------------
**Modules layer** -- ``FinancialStatementService`` orchestrates; the pure
functions in ``statements.py`` assemble lines; all arithmetic lives in
``statement_engines``.

Invariants enforced
-------------------
* Nothing is persisted (read-only guarantee).
* Every line carries finite current and previous values.

Failure modes
-------------
* Typed exceptions from ``statement_kernel.exceptions`` for missing
  reference data, templates and scope violations.
* Everything recoverable becomes a validation warning.
"""

from statement_modules.financial_reports.config import FinancialReportsConfig
from statement_modules.financial_reports.models import (
    DisplayFormatting,
    FinancialStatement,
    FinancialStatementResponse,
    LineState,
    PerformanceMetrics,
    StatementLine,
    StatementLineMetadata,
    StatementMetadata,
    StatementRequest,
)
from statement_modules.financial_reports.service import FinancialStatementService
from statement_modules.financial_reports.statements import (
    format_statement_value,
    render_to_dict,
)

__all__ = [
    # Service
    "FinancialStatementService",
    # Config
    "FinancialReportsConfig",
    # Models
    "DisplayFormatting",
    "FinancialStatement",
    "FinancialStatementResponse",
    "LineState",
    "PerformanceMetrics",
    "StatementLine",
    "StatementLineMetadata",
    "StatementMetadata",
    "StatementRequest",
    # Rendering
    "format_statement_value",
    "render_to_dict",
]
