"""Selectors for the statement kernel (read side)."""

from statement_kernel.selectors.event_selector import EventSelector
from statement_kernel.selectors.reference_selector import ReferenceSelector

__all__ = [
    "EventSelector",
    "ReferenceSelector",
]
