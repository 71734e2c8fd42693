"""
Tests for the data aggregation engine.

Covers:
- Collection of current and previous period rows through the data source
- Summation by event, facility and period
- Event ID resolution
- Period comparisons, facility coverage and data summaries
"""

from decimal import Decimal

import pytest

from statement_engines.aggregation import (
    AggregatedData,
    DataAggregationEngine,
    build_event_code_table,
    resolve_event_refs,
)
from statement_kernel.domain.dtos import (
    DataFilters,
    EntityType,
    FacilityRecord,
    RawEventRow,
)


def _row(facility_id, period_id, amount, code=None, event_id=None):
    return RawEventRow(
        facility_id=facility_id,
        reporting_period_id=period_id,
        amount=Decimal(amount),
        event_code=code,
        event_id=event_id,
        entity_type=EntityType.EXECUTION,
    )


class TestCollectEventData:
    """Only collect_event_data touches the data source."""

    def test_current_and_previous_period(self, make_event_source, clock):
        source = make_event_source(
            [
                _row(1, 2, "100", "TAX_REVENUE"),
                _row(1, 1, "80", "TAX_REVENUE"),
                _row(1, 2, "5", "OTHER_REVENUE"),
            ]
        )
        engine = DataAggregationEngine(source, clock=clock)
        filters = DataFilters(project_id=1, facility_ids=(1,), reporting_period_id=2)

        collected = engine.collect_event_data(filters, ["TAX_REVENUE"], previous_period_id=1)

        assert [r.amount for r in collected.current_period] == [Decimal("100")]
        assert [r.amount for r in collected.previous_period] == [Decimal("80")]
        assert collected.has_previous_period_data
        assert collected.metadata.total_events == 2
        assert collected.metadata.periods_included == (2, 1)
        assert collected.metadata.data_sources == ("EXECUTION",)
        assert collected.metadata.collection_timestamp == clock.now()
        assert source.calls[0]["event_codes"] == {"TAX_REVENUE"}

    def test_no_previous_period_makes_one_call(self, make_event_source):
        source = make_event_source([_row(1, 2, "100", "TAX_REVENUE")])
        engine = DataAggregationEngine(source)
        filters = DataFilters(project_id=1, facility_ids=(1,), reporting_period_id=2)

        collected = engine.collect_event_data(filters, None)

        assert len(source.calls) == 1
        assert source.calls[0]["event_codes"] is None
        assert collected.previous_period == ()
        assert not collected.has_previous_period_data

    def test_previous_period_without_rows(self, make_event_source):
        """A previous period that exists but has no rows is not previous data."""
        source = make_event_source([_row(1, 2, "100", "TAX_REVENUE")])
        engine = DataAggregationEngine(source)
        filters = DataFilters(project_id=1, facility_ids=(1,), reporting_period_id=2)

        collected = engine.collect_event_data(filters, None, previous_period_id=1)

        assert collected.previous_period_id == 1
        assert not collected.has_previous_period_data

    def test_source_errors_propagate(self):
        class FailingSource:
            def fetch_raw_events(self, *args, **kwargs):
                raise ConnectionError("database unavailable")

        engine = DataAggregationEngine(FailingSource())
        filters = DataFilters(project_id=1, facility_ids=(1,), reporting_period_id=2)
        with pytest.raises(ConnectionError):
            engine.collect_event_data(filters, None)


class TestAggregateByEvent:
    def setup_method(self):
        self.engine = DataAggregationEngine(None, {7: "GOODS_SERVICES"})

    def test_sums_by_event_facility_and_period(self):
        data = self.engine.aggregate_by_event(
            [
                _row(1, 2, "100.10", "TAX_REVENUE"),
                _row(2, 2, "50.20", "TAX_REVENUE"),
                _row(1, 2, "30", "GOODS_SERVICES"),
            ]
        )
        assert data.event_totals == {
            "TAX_REVENUE": Decimal("150.30"),
            "GOODS_SERVICES": Decimal("30"),
        }
        assert data.facility_totals[1] == Decimal("130.10")
        assert data.period_totals[2] == Decimal("180.30")
        assert data.facility_amount(2, "TAX_REVENUE") == Decimal("50.20")
        assert data.metadata.total_events == 3
        assert data.metadata.total_facilities == 2
        assert data.metadata.total_amount == Decimal("180.30")

    def test_event_ids_resolved(self):
        data = self.engine.aggregate_by_event([_row(1, 2, "40", event_id=7)])
        assert data.amount("GOODS_SERVICES") == Decimal("40")

    def test_unknown_ids_skipped_and_counted(self, captured_logs):
        data = self.engine.aggregate_by_event(
            [_row(1, 2, "40", event_id=99), _row(1, 2, "10", "TAX_REVENUE")]
        )
        assert data.metadata.unresolved_events == 1
        assert data.metadata.total_amount == Decimal("10")
        assert any(r["message"] == "unresolved_event_ids_skipped" for r in captured_logs())

    def test_empty_rows(self):
        data = self.engine.aggregate_by_event([])
        assert data.is_empty
        assert data.amount("TAX_REVENUE") == Decimal("0")
        assert data.total_for(["A", "B"]) == Decimal("0")

    def test_maps_are_read_only(self):
        data = self.engine.aggregate_by_event([_row(1, 2, "1", "TAX_REVENUE")])
        with pytest.raises(TypeError):
            data.event_totals["TAX_REVENUE"] = Decimal("2")

    def test_with_event_total_copies(self):
        data = self.engine.aggregate_by_event([_row(1, 2, "1", "TAX_REVENUE")])
        updated = data.with_event_total("CASH_EQUIVALENTS_BEGIN", Decimal("500"))
        assert updated.amount("CASH_EQUIVALENTS_BEGIN") == Decimal("500")
        assert data.amount("CASH_EQUIVALENTS_BEGIN") == Decimal("0")
        assert updated.facility_totals == data.facility_totals


class TestPeriodComparisons:
    def setup_method(self):
        self.engine = DataAggregationEngine(None)

    def test_variances_cover_both_periods(self):
        current = AggregatedData(event_totals={"A": Decimal("120"), "B": Decimal("10")})
        previous = AggregatedData(event_totals={"A": Decimal("100"), "C": Decimal("5")})

        comparison = self.engine.calculate_period_comparisons(current, previous)

        assert set(comparison.variances) == {"A", "B", "C"}
        a = comparison.variances["A"]
        assert a.absolute == Decimal("20")
        assert a.percentage == Decimal("20.00")
        assert not a.percentage_undefined
        b = comparison.variances["B"]
        assert b.percentage == Decimal("0")
        assert b.percentage_undefined
        assert comparison.variances["C"].absolute == Decimal("-5")

    def test_negative_previous_uses_magnitude(self):
        current = AggregatedData(event_totals={"A": Decimal("-50")})
        previous = AggregatedData(event_totals={"A": Decimal("-100")})
        variance = self.engine.calculate_period_comparisons(current, previous).variances["A"]
        assert variance.percentage == Decimal("50.00")


class TestFacilityCoverage:
    def setup_method(self):
        self.engine = DataAggregationEngine(None)
        self.data = AggregatedData(facility_totals={1: Decimal("10"), 2: Decimal("0")})

    def test_facility_info(self):
        facilities = [
            FacilityRecord(id=1, name="H", facility_type="hospital", district_name="Gasabo"),
            FacilityRecord(id=2, name="C", facility_type="health_center"),
        ]
        info = self.engine.get_facility_info(facilities, self.data)
        assert info[1].has_data
        assert info[1].district == "Gasabo"
        assert not info[2].has_data

    def test_validate_facility_data(self):
        warnings = self.engine.validate_facility_data([3, 1, 2], self.data)
        assert warnings == [
            "Facility 2 has no event data for the selected period",
            "Facility 3 has no event data for the selected period",
        ]

    def test_event_data_summary(self):
        engine = DataAggregationEngine(None, {9: "GRANTS"})
        summary = engine.get_event_data_summary(
            [
                _row(1, 2, "10", "TAX_REVENUE"),
                _row(1, 2, "5", event_id=9),
                _row(2, 2, "1", event_id=42),
            ]
        )
        assert summary.total_events == 3
        assert summary.total_amount == Decimal("16")
        assert summary.event_code_counts == {"TAX_REVENUE": 1, "GRANTS": 1, "#42": 1}
        assert summary.facility_counts == {1: 2, 2: 1}


class TestEventReferences:
    def test_build_event_code_table(self, event_registry):
        table = build_event_code_table(event_registry)
        assert table[1] == "TAX_REVENUE"
        assert table[3] == "GOODS_SERVICES_PLANNING"

    def test_resolve_refs(self):
        refs = resolve_event_refs([1, "GRANTS", 99, "TAX_REVENUE"], {1: "TAX_REVENUE"})
        assert refs == ("TAX_REVENUE", "GRANTS")
