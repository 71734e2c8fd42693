"""
Pytest fixtures for the statement engine test suite.

Provides:
- In-memory fakes for the collaborator protocols (event data source,
  event registry, reference data)
- A seeded SQLite in-memory database for selector tests
- Deterministic clock, packaged template store and service factory
- Structured-log capture
"""

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from datetime import date
from decimal import Decimal
from io import StringIO

import pytest

from statement_config.template_store import TemplateStore
from statement_kernel.db.engine import (
    create_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from statement_kernel.domain.clock import DeterministicClock
from statement_kernel.domain.dtos import (
    EntityType,
    EventInfo,
    FacilityRecord,
    ProjectInfo,
    RawEventRow,
    ReportingPeriodInfo,
)
from statement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from statement_kernel.models import (
    District,
    Event,
    EventDataEntry,
    Facility,
    Project,
    Province,
    ReportingPeriod,
)
from statement_modules.financial_reports.config import FinancialReportsConfig
from statement_modules.financial_reports.service import FinancialStatementService

# Reference data shared by the fakes and the seeded database
PROJECT_ID = 1
PREVIOUS_PERIOD_ID = 1
CURRENT_PERIOD_ID = 2
HOSPITAL_ID = 1
HEALTH_CENTER_ID = 2
OTHER_DISTRICT_FACILITY_ID = 3
DISTRICT_ID = 10
OTHER_DISTRICT_ID = 20
PROVINCE_ID = 100


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture statement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, make_service):
            make_service(rows).generate_statement(request)
            logs = captured_logs()
            assert any(r["message"] == "statement_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("statement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# In-memory collaborators
# =============================================================================


class InMemoryEventSource:
    """EventDataSource over a fixed list of rows; records every call."""

    def __init__(self, rows: Iterable[RawEventRow] = (), project_id: int = PROJECT_ID):
        self.rows = list(rows)
        self.project_id = project_id
        self.calls: list[dict] = []

    def fetch_raw_events(
        self,
        project_id: int,
        facility_ids: Sequence[int],
        reporting_period_id: int,
        entity_types: Sequence[EntityType],
        event_codes: Iterable[str] | None = None,
    ) -> list[RawEventRow]:
        codes = set(event_codes) if event_codes is not None else None
        self.calls.append(
            {
                "project_id": project_id,
                "facility_ids": tuple(facility_ids),
                "reporting_period_id": reporting_period_id,
                "entity_types": tuple(entity_types),
                "event_codes": codes,
            }
        )
        if project_id != self.project_id:
            return []
        return [
            row
            for row in self.rows
            if row.facility_id in facility_ids
            and row.reporting_period_id == reporting_period_id
            and (row.entity_type or EntityType.EXECUTION) in entity_types
            and (codes is None or row.event_code is None or row.event_code in codes)
        ]


class InMemoryEventRegistry:
    def __init__(self, events: Iterable[EventInfo] = ()):
        self.events = list(events)

    def list_events(self) -> list[EventInfo]:
        return list(self.events)


class InMemoryReferenceData:
    """ReferenceDataSource over fixed facilities, periods and projects."""

    def __init__(
        self,
        facilities: Iterable[FacilityRecord],
        periods: Iterable[ReportingPeriodInfo],
        projects: Iterable[ProjectInfo],
    ):
        self.facilities = {f.id: f for f in facilities}
        self.periods = {p.id: p for p in periods}
        self.projects = {p.id: p for p in projects}

    def get_facility(self, facility_id: int) -> FacilityRecord | None:
        return self.facilities.get(facility_id)

    def list_facilities(self, facility_ids: Iterable[int]) -> list[FacilityRecord]:
        return [self.facilities[fid] for fid in sorted(set(facility_ids)) if fid in self.facilities]

    def get_facilities_in_province(self, province_id: int) -> list[FacilityRecord]:
        return [f for f in self.facilities.values() if f.province_id == province_id]

    def get_reporting_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        return self.periods.get(reporting_period_id)

    def get_previous_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        current = self.periods.get(reporting_period_id)
        if current is None:
            return None
        candidates = [
            p for p in self.periods.values()
            if p.period_type == current.period_type and p.end_date < current.start_date
        ]
        return max(candidates, key=lambda p: p.end_date) if candidates else None

    def get_project(self, project_id: int) -> ProjectInfo | None:
        return self.projects.get(project_id)


def rows_for(
    period_id: int,
    facility_id: int,
    amounts: Mapping[str, object],
    entity_type: EntityType = EntityType.EXECUTION,
) -> list[RawEventRow]:
    """One raw row per event code."""
    return [
        RawEventRow(
            facility_id=facility_id,
            reporting_period_id=period_id,
            amount=Decimal(str(amount)),
            event_code=code,
            entity_type=entity_type,
        )
        for code, amount in amounts.items()
    ]


@pytest.fixture
def make_rows():
    """``make_rows(period_id, facility_id, {code: amount}, entity_type)``."""
    return rows_for


@pytest.fixture
def make_event_source():
    return InMemoryEventSource


# =============================================================================
# Reference data fixtures
# =============================================================================


@pytest.fixture
def facilities() -> list[FacilityRecord]:
    return [
        FacilityRecord(
            id=HOSPITAL_ID,
            name="Kibagabaga Hospital",
            facility_type="hospital",
            district_id=DISTRICT_ID,
            district_name="Gasabo",
            province_id=PROVINCE_ID,
        ),
        FacilityRecord(
            id=HEALTH_CENTER_ID,
            name="Kimironko Health Center",
            facility_type="health_center",
            district_id=DISTRICT_ID,
            district_name="Gasabo",
            province_id=PROVINCE_ID,
        ),
        FacilityRecord(
            id=OTHER_DISTRICT_FACILITY_ID,
            name="Masaka Health Center",
            facility_type="health_center",
            district_id=OTHER_DISTRICT_ID,
            district_name="Kicukiro",
            province_id=PROVINCE_ID,
        ),
    ]


@pytest.fixture
def periods() -> list[ReportingPeriodInfo]:
    return [
        ReportingPeriodInfo(
            id=PREVIOUS_PERIOD_ID,
            year=2024,
            period_type="ANNUAL",
            start_date=date(2024, 7, 1),
            end_date=date(2025, 6, 30),
        ),
        ReportingPeriodInfo(
            id=CURRENT_PERIOD_ID,
            year=2025,
            period_type="ANNUAL",
            start_date=date(2025, 7, 1),
            end_date=date(2026, 6, 30),
        ),
    ]


@pytest.fixture
def reference_data(facilities, periods) -> InMemoryReferenceData:
    return InMemoryReferenceData(
        facilities,
        periods,
        [ProjectInfo(id=PROJECT_ID, name="HIV Programme", project_type="HIV")],
    )


@pytest.fixture
def event_registry() -> InMemoryEventRegistry:
    return InMemoryEventRegistry(
        [
            EventInfo(id=1, code="TAX_REVENUE"),
            EventInfo(id=2, code="GOODS_SERVICES"),
            EventInfo(id=3, code="GOODS_SERVICES_PLANNING"),
            EventInfo(id=4, code="CASH_EQUIVALENTS_BEGIN"),
            EventInfo(id=5, code="CASH_EQUIVALENTS_END"),
        ]
    )


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture(scope="session")
def template_store() -> TemplateStore:
    """The packaged templates; read-only, so shared across the session."""
    return TemplateStore()


@pytest.fixture
def make_service(reference_data, event_registry, template_store, clock):
    """
    Factory for a service over in-memory rows.

    Usage::

        service = make_service(rows)
        service = make_service(rows, config=FinancialReportsConfig(...))
    """

    def _make(
        rows: Iterable[RawEventRow] = (),
        config: FinancialReportsConfig | None = None,
    ) -> FinancialStatementService:
        return FinancialStatementService(
            event_source=InMemoryEventSource(rows),
            event_registry=event_registry,
            reference_data=reference_data,
            template_store=template_store,
            config=config,
            clock=clock,
        )

    return _make


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session():
    """Session on a fresh in-memory SQLite database."""
    init_engine_from_url("sqlite://")
    create_tables()
    db_session = get_session()
    yield db_session
    db_session.close()
    reset_engine()


@pytest.fixture
def seeded_session(session):
    """
    Database with one province, two districts, three facilities, two
    annual periods, one project and a handful of event entries.
    """
    province = Province(id=PROVINCE_ID, name="Kigali City")
    session.add(province)
    session.add_all(
        [
            District(id=DISTRICT_ID, name="Gasabo", province_id=PROVINCE_ID),
            District(id=OTHER_DISTRICT_ID, name="Kicukiro", province_id=PROVINCE_ID),
        ]
    )
    session.add_all(
        [
            Facility(
                id=HOSPITAL_ID,
                name="Kibagabaga Hospital",
                facility_type="hospital",
                district_id=DISTRICT_ID,
            ),
            Facility(
                id=HEALTH_CENTER_ID,
                name="Kimironko Health Center",
                facility_type="health_center",
                district_id=DISTRICT_ID,
            ),
            Facility(
                id=OTHER_DISTRICT_FACILITY_ID,
                name="Masaka Health Center",
                facility_type="health_center",
                district_id=OTHER_DISTRICT_ID,
            ),
        ]
    )
    session.add_all(
        [
            ReportingPeriod(
                id=PREVIOUS_PERIOD_ID,
                year=2024,
                period_type="ANNUAL",
                start_date=date(2024, 7, 1),
                end_date=date(2025, 6, 30),
            ),
            ReportingPeriod(
                id=CURRENT_PERIOD_ID,
                year=2025,
                period_type="ANNUAL",
                start_date=date(2025, 7, 1),
                end_date=date(2026, 6, 30),
            ),
            Project(id=PROJECT_ID, name="HIV Programme", project_type="HIV"),
        ]
    )
    session.add_all(
        [
            Event(id=1, code="TAX_REVENUE", event_type="EXECUTION"),
            Event(id=2, code="GOODS_SERVICES", event_type="EXECUTION"),
            Event(id=3, code="GOODS_SERVICES_PLANNING", event_type="PLANNING"),
            Event(id=4, code="CASH_EQUIVALENTS_END", event_type="EXECUTION"),
        ]
    )
    session.flush()

    def entry(facility_id, period_id, entity_type, event_id, amount):
        return EventDataEntry(
            project_id=PROJECT_ID,
            facility_id=facility_id,
            reporting_period_id=period_id,
            entity_type=entity_type,
            event_id=event_id,
            amount=Decimal(amount),
        )

    session.add_all(
        [
            entry(HOSPITAL_ID, CURRENT_PERIOD_ID, "EXECUTION", 1, "250000.00"),
            entry(HOSPITAL_ID, CURRENT_PERIOD_ID, "EXECUTION", 2, "180000.00"),
            entry(HOSPITAL_ID, CURRENT_PERIOD_ID, "PLANNING", 3, "200000.00"),
            entry(HEALTH_CENTER_ID, CURRENT_PERIOD_ID, "EXECUTION", 1, "50000.00"),
            entry(HOSPITAL_ID, PREVIOUS_PERIOD_ID, "EXECUTION", 4, "75000.00"),
        ]
    )
    session.commit()
    return session
