"""
TemplateStore -- versioned statement templates by statement code.

Responsibility:
    Serves the single active template for a statement code.  Templates are
    loaded once from the packaged YAML directory (or supplied directly, in
    tests) and cached; cached entries are immutable so they are shared
    freely between requests.

Architecture position:
    Config layer.  Consumed by ``FinancialStatementService``; never imports
    engines or modules.

Invariants enforced:
    - At most one template is served per statement code: when several
      active versions exist the highest version wins and a warning is
      logged.
    - Inactive templates are never served.
    - The cache is populated under a lock.

Failure modes:
    - TemplateNotFoundError when no active template exists for the code.
    - TemplateValidationError propagates from the loader for invalid files.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from enum import Enum
from pathlib import Path

from statement_config.loader import TEMPLATES_DIR, load_template_directory
from statement_config.schema import StatementTemplate
from statement_kernel.exceptions import TemplateNotFoundError
from statement_kernel.logging_config import get_logger

logger = get_logger("config.template_store")


def extract_event_codes(template: StatementTemplate) -> tuple[str, ...]:
    """Return the symbolic event codes a template uses, sorted.

    Includes codes referenced by Budget-vs-Actual metadata mappings.
    Numeric event IDs are not codes and are left to the ID->code table.
    """
    codes: set[str] = set()
    for line in template.lines:
        codes.update(ref for ref in line.event_mappings if isinstance(ref, str))
        bva = line.metadata.budget_vs_actual
        if bva is not None:
            codes.update(bva.budget_events)
            codes.update(bva.actual_events)
    return tuple(sorted(codes))


class TemplateStore:
    """
    Active-template lookup with a lock-protected cache.

    Contract:
        ``load_template(code)`` returns the active ``StatementTemplate``
        with the highest version for ``code``.
    Non-goals:
        Template authoring and version approval happen outside the engine.
    """

    def __init__(
        self,
        templates_dir: Path | None = TEMPLATES_DIR,
        templates: Iterable[StatementTemplate] | None = None,
    ):
        self._templates_dir = templates_dir
        self._preloaded = tuple(templates) if templates is not None else None
        self._cache: dict[str, StatementTemplate] | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_templates(cls, templates: Iterable[StatementTemplate]) -> TemplateStore:
        """Store over an explicit set of templates (no file access)."""
        return cls(templates_dir=None, templates=templates)

    def load_template(self, statement_code: str | Enum) -> StatementTemplate:
        code = statement_code.value if isinstance(statement_code, Enum) else statement_code
        template = self._active_templates().get(code)
        if template is None:
            logger.warning("template_not_found", extra={"statement_code": code})
            raise TemplateNotFoundError(code)
        logger.debug(
            "template_loaded",
            extra={
                "statement_code": code,
                "template_version": template.version,
                "line_count": len(template.lines),
            },
        )
        return template

    def statement_codes(self) -> tuple[str, ...]:
        return tuple(sorted(self._active_templates()))

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = None

    def _active_templates(self) -> dict[str, StatementTemplate]:
        with self._lock:
            if self._cache is None:
                self._cache = self._select_active(self._read_all())
            return self._cache

    def _read_all(self) -> tuple[StatementTemplate, ...]:
        if self._preloaded is not None:
            return self._preloaded
        if self._templates_dir is None:
            return ()
        return tuple(load_template_directory(self._templates_dir))

    @staticmethod
    def _select_active(
        templates: Iterable[StatementTemplate],
    ) -> dict[str, StatementTemplate]:
        by_code: dict[str, list[StatementTemplate]] = {}
        for template in templates:
            if template.is_active:
                by_code.setdefault(template.statement_code, []).append(template)

        selected: dict[str, StatementTemplate] = {}
        for code, candidates in by_code.items():
            candidates.sort(key=lambda t: t.version, reverse=True)
            if len(candidates) > 1:
                logger.warning(
                    "multiple_active_templates",
                    extra={
                        "statement_code": code,
                        "versions": [t.version for t in candidates],
                        "selected_version": candidates[0].version,
                    },
                )
            selected[code] = candidates[0]
        return selected
