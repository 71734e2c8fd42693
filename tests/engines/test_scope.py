"""Tests for aggregation-level facility scope resolution."""

import pytest

from statement_engines.scope import resolve_facility_scope
from statement_kernel.domain.dtos import AggregationLevel
from statement_kernel.exceptions import AccessDeniedError, FacilityRequiredError


class TestFacilityLevel:
    def test_single_facility(self, facilities):
        scope = resolve_facility_scope("FACILITY", 2, [1, 2, 3], facilities)
        assert scope.level == AggregationLevel.FACILITY
        assert scope.facility_ids == (2,)
        assert scope.primary_facility_id == 2
        assert not scope.is_aggregated

    def test_facility_required(self):
        with pytest.raises(FacilityRequiredError):
            resolve_facility_scope(AggregationLevel.FACILITY, None, [1, 2])

    def test_inaccessible_facility(self):
        with pytest.raises(AccessDeniedError) as exc_info:
            resolve_facility_scope(AggregationLevel.FACILITY, 3, [1, 2])
        assert exc_info.value.facility_id == 3

    def test_unknown_level(self):
        with pytest.raises(ValueError):
            resolve_facility_scope("COUNTRY", 1, [1])


class TestAggregatedLevels:
    def test_district_uses_accessible_set(self):
        scope = resolve_facility_scope(AggregationLevel.DISTRICT, None, [3, 1, 2])
        assert scope.facility_ids == (1, 2, 3)
        assert scope.primary_facility_id == 1
        assert scope.is_aggregated

    def test_district_narrowing(self, facilities):
        scope = resolve_facility_scope(
            AggregationLevel.DISTRICT, None, [1, 2, 3], facilities, district_id=10
        )
        assert scope.facility_ids == (1, 2)
        assert scope.district_id == 10

    def test_province_narrowing(self, facilities):
        scope = resolve_facility_scope(
            AggregationLevel.PROVINCE, None, [1, 3], facilities, province_id=100
        )
        assert scope.facility_ids == (1, 3)

    def test_result_never_exceeds_access(self, facilities):
        scope = resolve_facility_scope(
            AggregationLevel.DISTRICT, None, [2], facilities, district_id=10
        )
        assert scope.facility_ids == (2,)

    def test_requested_facility_checked_at_every_level(self, facilities):
        with pytest.raises(AccessDeniedError):
            resolve_facility_scope(AggregationLevel.PROVINCE, 3, [1, 2], facilities)

    def test_requested_facility_becomes_primary(self, facilities):
        scope = resolve_facility_scope(AggregationLevel.DISTRICT, 2, [1, 2], facilities)
        assert scope.facility_ids == (1, 2)
        assert scope.primary_facility_id == 2

    def test_empty_scope_denied(self, facilities):
        with pytest.raises(AccessDeniedError) as exc_info:
            resolve_facility_scope(
                AggregationLevel.DISTRICT, None, [1, 2], facilities, district_id=20
            )
        assert exc_info.value.facility_id is None
        assert "no accessible facilities at level DISTRICT" in str(exc_info.value)

    def test_no_access_at_all(self):
        with pytest.raises(AccessDeniedError):
            resolve_facility_scope(AggregationLevel.PROVINCE, None, [])
