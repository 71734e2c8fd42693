"""
Template Loader (``statement_config.loader``).

Responsibility
--------------
Loads statement template YAML files and the event-mapping tables, and
parses them into typed ``statement_config.schema`` dataclass instances.
Runtime callers obtain templates through ``TemplateStore``; this module is
the parsing layer underneath it.

Architecture position
---------------------
**Config layer**.  Depends on the kernel (exceptions, EventRef) and on
``statement_config.formula_ast``.  It never imports engines or modules.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* A template is returned only after ``validate_template`` finds no problems:
  unique line codes, unique display orders, valid formula syntax, and no
  line declaring both a formula and event mappings.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  template document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing top-level keys  -> ``KeyError`` propagates.
* Structural problems in lines  -> ``TemplateValidationError`` listing
  every problem found.

Audit relevance
---------------
Each template carries the checksum of the document it was parsed from, so a
generated statement can be traced to the exact template text.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from statement_config.formula_ast import validate_formula_expression
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
from statement_kernel.domain.dtos import EventRef
from statement_kernel.exceptions import TemplateValidationError

TEMPLATES_DIR = Path(__file__).parent / "templates"
DEFAULT_MAPPINGS_PATH = Path(__file__).parent / "mappings" / "event_mappings.yaml"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Preconditions:
        - ``path`` must point to an existing, readable YAML file.
    Postconditions:
        - Returns a ``dict`` (possibly empty if the YAML is empty).
    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _parse_event_ref(value: Any) -> EventRef:
    if isinstance(value, bool):
        raise ValueError(f"Invalid event reference: {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        return int(text) if text.isdigit() else text
    raise ValueError(f"Invalid event reference: {value!r}")


def parse_formatting(data: dict[str, Any] | None) -> LineFormatting:
    """Parse formatting hints. Missing keys take the LineFormatting defaults."""
    data = data or {}
    return LineFormatting(
        indent_level=int(data.get("indent_level", 0)),
        bold=bool(data.get("bold", False)),
        italic=bool(data.get("italic", False)),
        kind=LineKind(data.get("kind", LineKind.ITEM.value)),
    )


def parse_metadata(line_code: str, data: dict[str, Any] | None) -> LineMetadata:
    """
    Parse line metadata.

    Raises:
        ValueError: if an enum field holds an unknown value.
    """
    data = data or {}
    note = data.get("note")
    column_type = data.get("column_type")

    bva_data = data.get("budget_vs_actual")
    bva = None
    if bva_data:
        bva = BudgetVsActualMapping(
            line_code=line_code,
            budget_events=tuple(str(c) for c in bva_data.get("budget_events", ())),
            actual_events=tuple(str(c) for c in bva_data.get("actual_events", ())),
            note=int(bva_data["note"]) if bva_data.get("note") is not None else (
                int(note) if note is not None else None
            ),
        )

    return LineMetadata(
        note=int(note) if note is not None else None,
        column_type=ColumnType(column_type) if column_type else None,
        net_asset_effect=NetAssetEffect(
            data.get("net_asset_effect", NetAssetEffect.INCREASE.value)
        ),
        period_source=PeriodSource(
            data.get("period_source", PeriodSource.CURRENT.value)
        ),
        budget_vs_actual=bva,
    )


def parse_line(data: dict[str, Any]) -> TemplateLine:
    """
    Parse a ``TemplateLine`` from a dict.

    Preconditions:
        - ``data`` must contain ``line_code`` and ``display_order``.
    Raises:
        KeyError: if required keys are missing.
        ValueError: if enum fields or event references are invalid.
    """
    line_code = str(data["line_code"])
    formula = data.get("calculation_formula")
    return TemplateLine(
        line_code=line_code,
        description=str(data.get("description", line_code)),
        display_order=int(data["display_order"]),
        event_mappings=tuple(
            _parse_event_ref(ref) for ref in data.get("event_mappings") or ()
        ),
        calculation_formula=str(formula).strip() if formula else None,
        formatting=parse_formatting(data.get("formatting")),
        metadata=parse_metadata(line_code, data.get("metadata")),
    )


def validate_template(template: StatementTemplate) -> list[str]:
    """
    Check a parsed template for structural problems.

    Returns a list of problem descriptions. Empty list means valid.
    """
    problems: list[str] = []

    seen_codes: set[str] = set()
    seen_orders: dict[int, str] = {}
    for line in template.lines:
        if line.line_code in seen_codes:
            problems.append(f"Duplicate line code: {line.line_code}")
        seen_codes.add(line.line_code)

        other = seen_orders.get(line.display_order)
        if other is not None:
            problems.append(
                f"Duplicate display order {line.display_order}: "
                f"{other} and {line.line_code}"
            )
        else:
            seen_orders[line.display_order] = line.line_code

        if line.has_formula and line.has_event_mappings:
            problems.append(
                f"Line {line.line_code} declares both a formula and event mappings"
            )

        if line.has_formula:
            for error in validate_formula_expression(line.calculation_formula or ""):
                problems.append(f"Line {line.line_code}: {error.message}")

    if not template.lines:
        problems.append("Template has no lines")

    return problems


def parse_template(data: dict[str, Any]) -> StatementTemplate:
    """
    Parse and validate a ``StatementTemplate`` from a template document.

    Preconditions:
        - ``data`` must contain ``statement_code`` and ``lines``.
    Postconditions:
        - Returns a template that passed ``validate_template``.
    Raises:
        KeyError: if ``statement_code`` or ``lines`` is missing.
        TemplateValidationError: if any line is malformed or the template
            violates a structural rule.
    """
    statement_code = str(data["statement_code"])
    version = int(data.get("version", 1))

    problems: list[str] = []
    lines: list[TemplateLine] = []
    for index, raw_line in enumerate(data["lines"] or ()):
        try:
            lines.append(parse_line(raw_line))
        except (KeyError, ValueError, TypeError) as exc:
            problems.append(f"Line #{index + 1} is malformed: {exc}")

    template = StatementTemplate(
        id=str(data.get("id") or f"{statement_code}-v{version}"),
        statement_code=statement_code,
        statement_name=str(data.get("statement_name", statement_code)),
        version=version,
        lines=tuple(lines),
        is_active=bool(data.get("is_active", True)),
        checksum=compute_checksum(data),
    )
    problems.extend(validate_template(template))
    if problems:
        raise TemplateValidationError(statement_code, problems)
    return template


def load_template_file(path: Path) -> StatementTemplate:
    """Load, parse and validate one template file."""
    return parse_template(load_yaml_file(path))


def load_template_directory(directory: Path = TEMPLATES_DIR) -> list[StatementTemplate]:
    """Load every ``*.yaml`` template in ``directory``, in file-name order."""
    return [load_template_file(path) for path in sorted(Path(directory).glob("*.yaml"))]


def parse_event_mapping_tables(data: dict[str, Any]) -> EventMappingTables:
    """
    Parse the execution-to-planning table and the Budget-vs-Actual mappings.

    Raises:
        KeyError: if a Budget-vs-Actual mapping has no ``line_code``.
    """
    mappings = tuple(
        BudgetVsActualMapping(
            line_code=str(item["line_code"]),
            budget_events=tuple(str(c) for c in item.get("budget_events", ())),
            actual_events=tuple(str(c) for c in item.get("actual_events", ())),
            note=int(item["note"]) if item.get("note") is not None else None,
        )
        for item in data.get("budget_vs_actual") or ()
    )
    return EventMappingTables(
        execution_to_planning={
            str(k): str(v) for k, v in (data.get("execution_to_planning") or {}).items()
        },
        budget_vs_actual=mappings,
    )


def load_event_mapping_tables(path: Path | None = None) -> EventMappingTables:
    """Load event-mapping tables, defaulting to the packaged YAML file."""
    return parse_event_mapping_tables(load_yaml_file(path or DEFAULT_MAPPINGS_PATH))
