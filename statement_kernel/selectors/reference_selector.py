"""
Module: statement_kernel.selectors.reference_selector
Responsibility: SQLAlchemy implementation of ``ReferenceDataSource``:
    facilities (with district/province), reporting periods and projects.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - ``get_previous_period`` follows the adjacency rule documented on
      ``ReportingPeriod``: same period type, latest end date strictly
      before the requested period starts.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from statement_kernel.domain.dtos import FacilityRecord, ProjectInfo, ReportingPeriodInfo
from statement_kernel.models.hierarchy import District, Facility
from statement_kernel.models.period import Project, ReportingPeriod
from statement_kernel.selectors.base import BaseSelector


class ReferenceSelector(BaseSelector):
    """Read facility, period and project metadata."""

    def get_facility(self, facility_id: int) -> FacilityRecord | None:
        facility = self.session.get(
            Facility, facility_id, options=[selectinload(Facility.district)]
        )
        return FacilityRecord.from_model(facility) if facility is not None else None

    def list_facilities(self, facility_ids: Iterable[int]) -> list[FacilityRecord]:
        ids = sorted(set(facility_ids))
        if not ids:
            return []
        facilities = self.session.scalars(
            select(Facility)
            .options(selectinload(Facility.district))
            .where(Facility.id.in_(ids))
            .order_by(Facility.id)
        ).all()
        return [FacilityRecord.from_model(f) for f in facilities]

    def get_facilities_in_province(self, province_id: int) -> list[FacilityRecord]:
        facilities = self.session.scalars(
            select(Facility)
            .join(District, District.id == Facility.district_id)
            .options(selectinload(Facility.district))
            .where(District.province_id == province_id)
            .order_by(Facility.id)
        ).all()
        return [FacilityRecord.from_model(f) for f in facilities]

    def get_reporting_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        period = self.session.get(ReportingPeriod, reporting_period_id)
        return ReportingPeriodInfo.from_model(period) if period is not None else None

    def get_previous_period(self, reporting_period_id: int) -> ReportingPeriodInfo | None:
        current = self.session.get(ReportingPeriod, reporting_period_id)
        if current is None:
            return None
        previous = self.session.scalars(
            select(ReportingPeriod)
            .where(
                ReportingPeriod.period_type == current.period_type,
                ReportingPeriod.end_date < current.start_date,
            )
            .order_by(ReportingPeriod.end_date.desc())
            .limit(1)
        ).first()
        return ReportingPeriodInfo.from_model(previous) if previous is not None else None

    def get_project(self, project_id: int) -> ProjectInfo | None:
        project = self.session.get(Project, project_id)
        return ProjectInfo.from_model(project) if project is not None else None
