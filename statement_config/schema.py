"""
Statement template schema.

Defines the human-authored, versioned template artifacts: a
``StatementTemplate`` is an ordered set of ``TemplateLine`` definitions
(event mappings, formulas, formatting hints) for one statement code.  YAML
files are parsed into these types by the loader and served by the
``TemplateStore``.

Line ordering (``display_order``) defines presentation only.  Evaluation
order is derived from formula references at generation time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from statement_kernel.domain.dtos import EventRef

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class LineKind(str, Enum):
    """Presentation role of a line, set at authoring time."""

    SECTION = "SECTION"
    SUBTOTAL = "SUBTOTAL"
    TOTAL = "TOTAL"
    ITEM = "ITEM"


class ColumnType(str, Enum):
    """Net Assets Changes column a line's value is presented in."""

    ACCUMULATED = "ACCUMULATED"
    ADJUSTMENT = "ADJUSTMENT"
    TOTAL = "TOTAL"


class NetAssetEffect(str, Enum):
    """Whether an adjustment increases or decreases net assets."""

    INCREASE = "INCREASE"
    DECREASE = "DECREASE"


class PeriodSource(str, Enum):
    """Which period's event data feeds a Net Assets Changes line."""

    CURRENT = "CURRENT"
    PREVIOUS = "PREVIOUS"


# ---------------------------------------------------------------------------
# Line definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineFormatting:
    """Formatting hints for one template line."""

    indent_level: int = 0
    bold: bool = False
    italic: bool = False
    kind: LineKind = LineKind.ITEM

    @property
    def is_section(self) -> bool:
        return self.kind == LineKind.SECTION

    @property
    def is_subtotal(self) -> bool:
        return self.kind == LineKind.SUBTOTAL

    @property
    def is_total(self) -> bool:
        return self.kind == LineKind.TOTAL


@dataclass(frozen=True)
class BudgetVsActualMapping:
    """Explicit budget/actual event codes for a Budget-vs-Actual line."""

    line_code: str
    budget_events: tuple[str, ...]
    actual_events: tuple[str, ...]
    note: int | None = None


@dataclass(frozen=True)
class LineMetadata:
    """Statement-specific line attributes."""

    note: int | None = None
    column_type: ColumnType | None = None
    net_asset_effect: NetAssetEffect = NetAssetEffect.INCREASE
    period_source: PeriodSource = PeriodSource.CURRENT
    budget_vs_actual: BudgetVsActualMapping | None = None


@dataclass(frozen=True)
class TemplateLine:
    """One line of a statement template."""

    line_code: str
    description: str
    display_order: int
    event_mappings: tuple[EventRef, ...] = ()
    calculation_formula: str | None = None
    formatting: LineFormatting = field(default_factory=LineFormatting)
    metadata: LineMetadata = field(default_factory=LineMetadata)

    @property
    def has_formula(self) -> bool:
        return bool(self.calculation_formula and self.calculation_formula.strip())

    @property
    def has_event_mappings(self) -> bool:
        return bool(self.event_mappings)


@dataclass(frozen=True)
class StatementTemplate:
    """
    Immutable, versioned template for one statement code.

    ``lines`` are stored sorted by ``display_order``.
    """

    id: str
    statement_code: str
    statement_name: str
    version: int
    lines: tuple[TemplateLine, ...]
    is_active: bool = True
    checksum: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "lines",
            tuple(sorted(self.lines, key=lambda ln: (ln.display_order, ln.line_code))),
        )

    @property
    def line_codes(self) -> tuple[str, ...]:
        return tuple(line.line_code for line in self.lines)

    def get_line(self, line_code: str) -> TemplateLine | None:
        for line in self.lines:
            if line.line_code == line_code:
                return line
        return None


@dataclass(frozen=True)
class EventMappingTables:
    """
    Injectable event-code translation tables.

    ``execution_to_planning`` translates an execution event code to the
    planning event that carries its budget.  Several execution codes may
    share one planning code.  ``budget_vs_actual`` lists explicit per-line
    mappings that take precedence over the translation.
    """

    execution_to_planning: dict[str, str] | MappingProxyType = field(
        default_factory=dict,
    )
    budget_vs_actual: tuple[BudgetVsActualMapping, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.execution_to_planning, MappingProxyType):
            object.__setattr__(
                self,
                "execution_to_planning",
                MappingProxyType(dict(self.execution_to_planning)),
            )

    def budget_mapping_for(self, line_code: str) -> BudgetVsActualMapping | None:
        for mapping in self.budget_vs_actual:
            if mapping.line_code == line_code:
                return mapping
        return None
