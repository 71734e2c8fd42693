"""
statement_engines.dependencies -- Evaluation order of template lines.

Responsibility:
    Order template lines so that every line is evaluated after the lines it
    references, using Kahn's algorithm over a graph keyed by line code.
    Edges come from formula references to other line codes and from the
    declared inputs of special totals.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Every line appears exactly once in ``ordered_lines``.
    - Among lines that are ready, the lowest (display_order, line_code)
      is emitted first, so the order is deterministic.
    - Always terminates: when only cycle members remain, the lowest
      (display_order, line_code) among them is emitted and its edges to
      pending lines are recorded in ``cycles_broken``.
"""

from __future__ import annotations

import heapq
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from statement_config.formula_ast import extract_references
from statement_config.schema import TemplateLine
from statement_engines.special_totals import SPECIAL_TOTALS, SpecialTotal
from statement_engines.tracer import traced_engine
from statement_kernel.logging_config import get_logger

logger = get_logger("engines.dependencies")


@dataclass(frozen=True)
class BrokenEdge:
    """``line_code`` was evaluated before ``depends_on`` to break a cycle."""

    line_code: str
    depends_on: str


@dataclass(frozen=True)
class DependencyResolution:
    ordered_lines: tuple[TemplateLine, ...]
    cycles_broken: tuple[BrokenEdge, ...] = ()

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles_broken)

    @property
    def order(self) -> tuple[str, ...]:
        return tuple(line.line_code for line in self.ordered_lines)


def line_dependencies(
    line: TemplateLine,
    line_codes: frozenset[str],
    special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> tuple[str, ...]:
    """Line codes ``line`` must be evaluated after."""
    if line.has_formula:
        refs = extract_references(line.calculation_formula or "")
    elif line.line_code in special_totals:
        refs = special_totals[line.line_code].inputs
    else:
        return ()
    return tuple(ref for ref in dict.fromkeys(refs) if ref in line_codes)


@traced_engine("dependencies", "1.0")
def resolve_dependencies(
    lines: Sequence[TemplateLine],
    special_totals: Mapping[str, SpecialTotal] = SPECIAL_TOTALS,
) -> DependencyResolution:
    """Return the lines in evaluation order."""
    by_code = {line.line_code: line for line in lines}
    line_codes = frozenset(by_code)

    def sort_key(code: str) -> tuple[int, str]:
        return (by_code[code].display_order, code)

    pending_deps: dict[str, set[str]] = {}
    dependents: dict[str, set[str]] = {code: set() for code in by_code}
    for code, line in by_code.items():
        deps = set(line_dependencies(line, line_codes, special_totals))
        pending_deps[code] = deps
        for dep in deps:
            dependents[dep].add(code)

    ready: list[tuple[int, str]] = [
        sort_key(code) for code, deps in pending_deps.items() if not deps
    ]
    heapq.heapify(ready)

    emitted: set[str] = set()
    ordered: list[TemplateLine] = []
    broken: list[BrokenEdge] = []

    while len(ordered) < len(by_code):
        if ready:
            _, code = heapq.heappop(ready)
            if code in emitted:
                continue
        else:
            code = min((c for c in by_code if c not in emitted), key=sort_key)
            for dep in sorted(pending_deps[code], key=sort_key):
                broken.append(BrokenEdge(line_code=code, depends_on=dep))
            pending_deps[code] = set()

        emitted.add(code)
        ordered.append(by_code[code])
        for dependent in dependents[code]:
            deps = pending_deps[dependent]
            if code in deps:
                deps.discard(code)
                if not deps and dependent not in emitted:
                    heapq.heappush(ready, sort_key(dependent))

    if broken:
        logger.warning(
            "dependency_cycle_broken",
            extra={
                "broken_edges": [f"{e.line_code}->{e.depends_on}" for e in broken],
            },
        )
    return DependencyResolution(ordered_lines=tuple(ordered), cycles_broken=tuple(broken))
