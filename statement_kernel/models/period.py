"""Reporting periods and projects."""

from datetime import date

from sqlalchemy import Date, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from statement_kernel.db.base import Base


class ReportingPeriod(Base):
    """
    Fiscal reporting period.

    Contract:
        Periods of the same ``period_type`` are totally ordered by
        ``start_date``; the previous period of P is the latest period of the
        same type whose ``end_date`` is before P's ``start_date``.
    """

    __tablename__ = "reporting_periods"

    __table_args__ = (
        UniqueConstraint("year", "period_type", name="uq_period_year_type"),
        Index("idx_period_dates", "start_date", "end_date"),
    )

    year: Mapped[int] = mapped_column(nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False, default="ANNUAL")
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    def __repr__(self) -> str:
        return f"<ReportingPeriod {self.id}: {self.year} {self.period_type}>"


class Project(Base):
    """Funding programme (e.g. HIV, Malaria, TB)."""

    __tablename__ = "projects"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    project_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.project_type}>"
