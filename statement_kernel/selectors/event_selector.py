"""
Module: statement_kernel.selectors.event_selector
Responsibility: SQLAlchemy implementation of the ``EventDataSource`` and
    ``EventRegistry`` protocols.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Rows are returned in insertion order (primary key), so aggregation
      over the same data is deterministic.
    - An empty facility list selects nothing (never "all facilities").
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from sqlalchemy import select

from statement_kernel.domain.amounts import to_amount
from statement_kernel.domain.dtos import EntityType, EventInfo, RawEventRow
from statement_kernel.logging_config import get_logger
from statement_kernel.models.event import Event, EventDataEntry
from statement_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.event")


class EventSelector(BaseSelector):
    """Read raw event rows and the event registry."""

    def fetch_raw_events(
        self,
        project_id: int,
        facility_ids: Sequence[int],
        reporting_period_id: int,
        entity_types: Sequence[EntityType],
        event_codes: Iterable[str] | None = None,
    ) -> list[RawEventRow]:
        if not facility_ids:
            return []

        query = (
            select(
                EventDataEntry.facility_id,
                EventDataEntry.reporting_period_id,
                EventDataEntry.entity_type,
                EventDataEntry.amount,
                Event.id,
                Event.code,
            )
            .join(Event, Event.id == EventDataEntry.event_id)
            .where(
                EventDataEntry.project_id == project_id,
                EventDataEntry.facility_id.in_(list(facility_ids)),
                EventDataEntry.reporting_period_id == reporting_period_id,
                EventDataEntry.entity_type.in_([e.value for e in entity_types]),
            )
            .order_by(EventDataEntry.id)
        )
        if event_codes is not None:
            query = query.where(Event.code.in_(sorted(set(event_codes))))

        rows = [
            RawEventRow(
                facility_id=facility_id,
                reporting_period_id=period_id,
                amount=to_amount(amount),
                event_code=code,
                event_id=event_id,
                entity_type=EntityType(entity_type),
            )
            for facility_id, period_id, entity_type, amount, event_id, code
            in self.session.execute(query).all()
        ]

        logger.debug(
            "raw_events_fetched",
            extra={
                "project_id": project_id,
                "reporting_period_id": reporting_period_id,
                "facility_count": len(facility_ids),
                "row_count": len(rows),
            },
        )
        return rows

    def list_events(self) -> list[EventInfo]:
        events = self.session.scalars(select(Event).order_by(Event.id)).all()
        return [EventInfo.from_model(event) for event in events]
