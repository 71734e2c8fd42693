"""ORM models backing the event data source and reference data selectors."""

from statement_kernel.models.event import Event, EventDataEntry
from statement_kernel.models.hierarchy import District, Facility, Province
from statement_kernel.models.period import Project, ReportingPeriod

__all__ = [
    "District",
    "Event",
    "EventDataEntry",
    "Facility",
    "Project",
    "Province",
    "ReportingPeriod",
]
