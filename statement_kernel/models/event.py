"""
Event registry and raw event data.

``Event`` is the registry of canonical event codes (TAX_REVENUE,
GOODS_SERVICES_PLANNING, CASH_EQUIVALENTS_BEGIN, ...).  ``EventDataEntry``
holds one raw amount per (project, facility, period, entity type, event).
"""

from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statement_kernel.db.base import Base


class Event(Base):
    __tablename__ = "events"

    code: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, default="EXECUTION")

    def __repr__(self) -> str:
        return f"<Event {self.id}: {self.code}>"


class EventDataEntry(Base):
    """
    One raw amount for an event.

    Contract:
        ``entity_type`` is PLANNING or EXECUTION.  Amounts are stored at
        currency precision; the engine never writes this table.
    """

    __tablename__ = "event_data_entries"

    __table_args__ = (
        Index(
            "idx_event_data_lookup",
            "project_id",
            "reporting_period_id",
            "entity_type",
        ),
        Index("idx_event_data_facility", "facility_id"),
    )

    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False)
    facility_id: Mapped[int] = mapped_column(ForeignKey("facilities.id"), nullable=False)
    reporting_period_id: Mapped[int] = mapped_column(
        ForeignKey("reporting_periods.id"), nullable=False
    )
    entity_type: Mapped[str] = mapped_column(String(20), nullable=False)
    event_id: Mapped[int] = mapped_column(ForeignKey("events.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    event: Mapped[Event] = relationship()

    def __repr__(self) -> str:
        return (
            f"<EventDataEntry {self.id}: facility={self.facility_id} "
            f"event={self.event_id} amount={self.amount}>"
        )
