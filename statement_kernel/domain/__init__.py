"""
Pure domain layer.

This module contains pure data transfer objects, amount helpers and the
collaborator protocols, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Time/clock (except the injectable Clock itself)

All domain objects are immutable and deterministic.
"""

from statement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from statement_kernel.domain.dtos import (
    AggregationLevel,
    DataFilters,
    EntityType,
    EventInfo,
    EventRef,
    FacilityRecord,
    ProjectInfo,
    RawEventRow,
    ReportingPeriodInfo,
    StatementCode,
)
from statement_kernel.domain.protocols import (
    EventDataSource,
    EventRegistry,
    ReferenceDataSource,
)

__all__ = [
    "AggregationLevel",
    "Clock",
    "DataFilters",
    "DeterministicClock",
    "EntityType",
    "EventDataSource",
    "EventInfo",
    "EventRef",
    "EventRegistry",
    "FacilityRecord",
    "ProjectInfo",
    "RawEventRow",
    "ReferenceDataSource",
    "ReportingPeriodInfo",
    "StatementCode",
    "SystemClock",
]
