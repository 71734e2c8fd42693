"""
Statement Modules.

Thin orchestration layers over the statement kernel, configuration and
engines.  Each module contains:
- Domain models (requests and outputs)
- Configuration schema (tolerances, display, code sets)
- Pure assembly functions
- The orchestrating service

Modules:
- financial_reports: Revenue & Expenditure, Balance Sheet, Cash Flow,
  Changes in Net Assets and Budget vs Actual statements
"""
