"""Tests for template parsing, validation and the packaged YAML files."""

from pathlib import Path

import pytest
import yaml

from statement_config.loader import (
    TEMPLATES_DIR,
    compute_checksum,
    load_event_mapping_tables,
    load_template_directory,
    load_template_file,
    parse_template,
)
from statement_config.schema import ColumnType, LineKind, NetAssetEffect, PeriodSource
from statement_kernel.exceptions import TemplateValidationError


def _document(lines: list[dict], **overrides) -> dict:
    doc = {"statement_code": "TEST", "statement_name": "Test", "version": 1, "lines": lines}
    doc.update(overrides)
    return doc


class TestParseTemplate:
    """Parsing a template document into frozen schema objects."""

    def test_lines_sorted_by_display_order(self):
        template = parse_template(
            _document(
                [
                    {"line_code": "B", "display_order": 2, "event_mappings": ["X"]},
                    {"line_code": "A", "display_order": 1, "event_mappings": ["Y"]},
                ]
            )
        )
        assert template.line_codes == ("A", "B")
        assert template.id == "TEST-v1"

    def test_numeric_event_references(self):
        """Digits become event IDs; other strings stay codes."""
        template = parse_template(
            _document([{"line_code": "A", "display_order": 1, "event_mappings": [12, "13", "TAX"]}])
        )
        assert template.lines[0].event_mappings == (12, 13, "TAX")

    def test_formatting_and_metadata(self):
        template = parse_template(
            _document(
                [
                    {
                        "line_code": "A",
                        "display_order": 1,
                        "event_mappings": ["X"],
                        "formatting": {"kind": "TOTAL", "bold": True, "indent_level": 2},
                        "metadata": {
                            "note": 4,
                            "column_type": "ADJUSTMENT",
                            "net_asset_effect": "DECREASE",
                            "period_source": "PREVIOUS",
                        },
                    }
                ]
            )
        )
        line = template.lines[0]
        assert line.formatting.kind == LineKind.TOTAL
        assert line.formatting.is_total
        assert line.formatting.indent_level == 2
        assert line.metadata.note == 4
        assert line.metadata.column_type == ColumnType.ADJUSTMENT
        assert line.metadata.net_asset_effect == NetAssetEffect.DECREASE
        assert line.metadata.period_source == PeriodSource.PREVIOUS

    def test_budget_vs_actual_metadata(self):
        template = parse_template(
            _document(
                [
                    {
                        "line_code": "GOODS",
                        "display_order": 1,
                        "event_mappings": ["GOODS_SERVICES"],
                        "metadata": {
                            "note": 23,
                            "budget_vs_actual": {
                                "budget_events": ["GOODS_SERVICES_PLANNING"],
                                "actual_events": ["GOODS_SERVICES"],
                            },
                        },
                    }
                ]
            )
        )
        bva = template.lines[0].metadata.budget_vs_actual
        assert bva.budget_events == ("GOODS_SERVICES_PLANNING",)
        assert bva.actual_events == ("GOODS_SERVICES",)
        assert bva.note == 23

    def test_checksum_is_deterministic(self):
        doc = _document([{"line_code": "A", "display_order": 1, "event_mappings": ["X"]}])
        assert parse_template(doc).checksum == parse_template(dict(doc)).checksum
        assert compute_checksum(doc) == parse_template(doc).checksum


class TestTemplateValidation:
    """Structural problems are collected and raised together."""

    def test_duplicate_codes_and_orders(self):
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template(
                _document(
                    [
                        {"line_code": "A", "display_order": 1, "event_mappings": ["X"]},
                        {"line_code": "A", "display_order": 1, "event_mappings": ["Y"]},
                    ]
                )
            )
        problems = exc_info.value.problems
        assert "Duplicate line code: A" in problems
        assert any(p.startswith("Duplicate display order 1") for p in problems)

    def test_formula_and_mappings_are_exclusive(self):
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template(
                _document(
                    [
                        {
                            "line_code": "A",
                            "display_order": 1,
                            "event_mappings": ["X"],
                            "calculation_formula": "X + 1",
                        }
                    ]
                )
            )
        assert exc_info.value.problems == [
            "Line A declares both a formula and event mappings"
        ]

    def test_invalid_formula(self):
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template(
                _document([{"line_code": "A", "display_order": 1, "calculation_formula": "EVAL(X)"}])
            )
        assert any("Disallowed function call" in p for p in exc_info.value.problems)

    def test_malformed_line(self):
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template(_document([{"line_code": "A"}]))
        assert exc_info.value.problems[0].startswith("Line #1 is malformed")

    def test_unknown_enum_value(self):
        with pytest.raises(TemplateValidationError):
            parse_template(
                _document(
                    [{"line_code": "A", "display_order": 1, "formatting": {"kind": "FOOTER"}}]
                )
            )

    def test_no_lines(self):
        with pytest.raises(TemplateValidationError) as exc_info:
            parse_template(_document([]))
        assert "Template has no lines" in exc_info.value.problems

    def test_missing_statement_code(self):
        with pytest.raises(KeyError):
            parse_template({"lines": []})


class TestPackagedFiles:
    """The shipped templates and mapping tables load cleanly."""

    def test_all_statements_present(self):
        codes = {t.statement_code for t in load_template_directory()}
        assert codes == {
            "REV_EXP",
            "ASSETS_LIAB",
            "CASH_FLOW",
            "NET_ASSETS_CHANGES",
            "BUDGET_VS_ACTUAL",
        }

    def test_load_single_file(self):
        template = load_template_file(TEMPLATES_DIR / "CASH_FLOW.yaml")
        assert template.get_line("CHANGES_RECEIVABLES").calculation_formula == (
            "WORKING_CAPITAL_CHANGE(RECEIVABLES)"
        )
        assert template.get_line("NET_CASH_FLOW_OPERATING").formatting.is_subtotal

    def test_mapping_tables(self):
        tables = load_event_mapping_tables()
        assert tables.execution_to_planning["GOODS_SERVICES"] == "GOODS_SERVICES_PLANNING"
        goods = tables.budget_mapping_for("GOODS_SERVICES")
        assert goods.actual_events == ("GOODS_SERVICES",)
        assert goods.note == 23
        assert tables.budget_mapping_for("UNKNOWN") is None

    def test_mapping_tables_from_custom_file(self, tmp_path: Path):
        path = tmp_path / "mappings.yaml"
        path.write_text(
            yaml.safe_dump({"execution_to_planning": {"TAX_REVENUE": "TAX_REVENUE_PLANNING"}})
        )
        tables = load_event_mapping_tables(path)
        assert dict(tables.execution_to_planning) == {"TAX_REVENUE": "TAX_REVENUE_PLANNING"}
        assert tables.budget_vs_actual == ()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_template_file(tmp_path / "absent.yaml")
