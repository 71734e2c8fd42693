"""
statement_config -- statement templates and event-mapping tables.

Responsibility:
    Owns the human-authored configuration of the statement engine: the
    versioned YAML templates (one per statement code), the restricted
    formula grammar they are written in, and the execution-to-planning
    event-mapping tables used by Budget-vs-Actual.

Architecture position:
    Configuration -- sits above ``statement_kernel`` and below
    ``statement_engines`` / ``statement_modules``.  The kernel never
    imports from this package.

Failure modes:
    - ``TemplateNotFoundError`` -- no active template for a statement code.
    - ``TemplateValidationError`` -- a template file violates structural
      rules (duplicate codes or orders, invalid formulas, ambiguous lines).
"""

from statement_config.loader import (
    load_event_mapping_tables,
    load_template_directory,
    load_template_file,
    parse_template,
    validate_template,
)
from statement_config.schema import (
    BudgetVsActualMapping,
    ColumnType,
    EventMappingTables,
    LineFormatting,
    LineKind,
    LineMetadata,
    NetAssetEffect,
    PeriodSource,
    StatementTemplate,
    TemplateLine,
)
from statement_config.template_store import TemplateStore, extract_event_codes

__all__ = [
    "BudgetVsActualMapping",
    "ColumnType",
    "EventMappingTables",
    "LineFormatting",
    "LineKind",
    "LineMetadata",
    "NetAssetEffect",
    "PeriodSource",
    "StatementTemplate",
    "TemplateLine",
    "TemplateStore",
    "extract_event_codes",
    "load_event_mapping_tables",
    "load_template_directory",
    "load_template_file",
    "parse_template",
    "validate_template",
]
