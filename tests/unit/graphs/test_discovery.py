"""
Unit tests for the discovery graph and service.

These run the real compiled LangGraph pipeline against in-memory stores.
"""

import math
from datetime import date
from unittest.mock import MagicMock

import pytest
from geomatch.graphs.discovery import DiscoveryService
from geomatch.tools import social_tools
from geomatch.utils.errors import InvalidInputError, StoreUnavailableError
from geomatch.utils.geo import EARTH_RADIUS_KM, haversine_km

TODAY = date(2024, 6, 15)
KM_PER_DEGREE = EARTH_RADIUS_KM * math.pi / 180


@pytest.fixture
def service(stores):
    return DiscoveryService(stores, max_candidates=100, default_band=(0.0, 1000.0))


def _ids(rows):
    return sorted(r["id"] for r in rows)


class TestExclusionScenario:
    def test_accepted_and_skipped_hidden_pending_visible(self, stores, service):
        for uid in ("A", "B", "C", "D"):
            stores.users.put(uid)
        stores.connections.create("A", "B")
        stores.connections.set_status("A", "B", "accepted")
        stores.connections.create("C", "A")
        stores.skips.add("A", "D")

        assert _ids(service.discover("A", {}, today=TODAY)) == ["C"]

    def test_rejected_in_either_direction_hidden(self, stores, service):
        for uid in ("A", "B", "C", "D"):
            stores.users.put(uid)
        stores.connections.create("B", "A")
        stores.connections.set_status("B", "A", "rejected")
        stores.connections.create("A", "C")
        stores.connections.set_status("A", "C", "rejected")

        assert _ids(service.discover("A", None, today=TODAY)) == ["D"]

    def test_requester_never_a_candidate(self, stores, service):
        stores.users.put("A")
        assert service.discover("A", {}, today=TODAY) == []

    def test_inactive_users_invisible(self, stores, service):
        stores.users.put("A")
        stores.users.put("B", status="NON_ACTIVE")
        stores.users.put("C")
        assert _ids(service.discover("A", {}, today=TODAY)) == ["C"]


class TestAttributeFilters:
    @pytest.fixture(autouse=True)
    def population(self, stores):
        stores.users.put("A", gender="female")
        stores.users.put("M", gender="male", date_of_birth="2000-01-01", interests=["chess"])
        stores.users.put("F", gender="female", date_of_birth="1990-01-01", interests=["music"])
        stores.users.put("N", gender="non-binary", date_of_birth="2005-01-01", interests=["music", "chess"])

    def test_gender_tokens(self, service):
        result = service.discover("A", {"gender": "male,female"}, today=TODAY)
        assert _ids(result) == ["F", "M"]
        assert all(
            any(token in r["gender"] for token in ("male", "female")) for r in result
        )

    def test_age_range(self, service):
        result = service.discover("A", {"ageRange": "18-25"}, today=TODAY)
        assert _ids(result) == ["M", "N"]
        for row in result:
            dob = date.fromisoformat(row["date_of_birth"])
            assert date(1999, 6, 15) <= dob <= date(2006, 6, 15)

    def test_interests_or(self, service):
        assert _ids(service.discover("A", {"interests": "chess"}, today=TODAY)) == ["M", "N"]

    def test_filters_conjoined(self, service):
        result = service.discover(
            "A", {"interests": "music", "ageRange": "30-40"}, today=TODAY
        )
        assert _ids(result) == ["F"]

    def test_no_match_is_empty_list(self, service):
        assert service.discover("A", {"gender": "robot"}, today=TODAY) == []


class TestDistanceFilter:
    @pytest.fixture(autouse=True)
    def population(self, stores):
        stores.users.put("A", latitude=0.0, longitude=0.0)
        stores.users.put("near", latitude=50 / KM_PER_DEGREE, longitude=0.0)
        stores.users.put("far", latitude=150 / KM_PER_DEGREE, longitude=0.0)
        stores.users.put("nowhere")

    def test_radius_range_with_explicit_point(self, service):
        filters = {"latitude": "0", "longitude": "0", "radiusRange": "0-100"}
        assert _ids(service.discover("A", filters, today=TODAY)) == ["near"]

    def test_exact_boundary_included(self, stores, service):
        stores.users.put("edge", latitude=100 / KM_PER_DEGREE, longitude=0.0)
        exact = haversine_km(0.0, 0.0, 100 / KM_PER_DEGREE, 0.0)
        filters = {"latitude": 0, "longitude": 0, "radiusRange": f"0-{exact!r}"}
        assert "edge" in _ids(service.discover("A", filters, today=TODAY))

    def test_point_without_range_uses_default_band(self, stores, service):
        stores.users.put("other-side", latitude=0.0, longitude=180.0)
        filters = {"latitude": 0, "longitude": 0}
        assert _ids(service.discover("A", filters, today=TODAY)) == ["far", "near"]

    def test_radius_without_point_uses_stored_location(self, service):
        assert _ids(service.discover("A", {"radius": "100"}, today=TODAY)) == ["near"]

    def test_radius_without_any_location_skips_distance(self, stores, service):
        stores.users.rows["A"].pop("latitude")
        result = service.discover("A", {"radius": "100"}, today=TODAY)
        assert _ids(result) == ["far", "near", "nowhere"]

    def test_no_geo_params_keeps_rows_without_coordinates(self, service):
        assert "nowhere" in _ids(service.discover("A", {}, today=TODAY))

    def test_metadata_reports_distance_step(self, service):
        state = service.run("A", {"latitude": 0, "longitude": 0, "radius": "100"}, today=TODAY)
        metadata = state["response_metadata"]
        assert metadata["distance_filter"] is True
        assert metadata["fetched_count"] == 3
        assert metadata["result_count"] == 1


class TestFailureSemantics:
    def test_invalid_filters_rejected_before_store_access(self, stores, service):
        with pytest.raises(InvalidInputError):
            service.discover("A", {"ageRange": "old"})
        assert stores.users.fetch_calls == 0

    def test_missing_requester(self, service):
        with pytest.raises(InvalidInputError):
            service.discover("", {})

    def test_fetch_error_aborts(self, stores):
        stores.users = MagicMock()
        stores.users.fetch_candidates.side_effect = StoreUnavailableError("down")
        service = DiscoveryService(stores, max_candidates=10, default_band=(0.0, 1000.0))

        with pytest.raises(StoreUnavailableError):
            service.discover("A", {})

    def test_exclusion_error_aborts(self, stores):
        stores.skips = MagicMock()
        stores.skips.list_skipped_by.side_effect = StoreUnavailableError("down")
        service = DiscoveryService(stores, max_candidates=10, default_band=(0.0, 1000.0))

        with pytest.raises(StoreUnavailableError):
            service.discover("A", {})
        assert stores.users.fetch_calls == 0


class TestIdempotence:
    def test_same_inputs_same_results(self, stores, service):
        for uid in ("A", "B", "C"):
            stores.users.put(uid, gender="female")
        first = service.discover("A", {"gender": "female"}, today=TODAY)
        second = service.discover("A", {"gender": "female"}, today=TODAY)
        assert first == second

    def test_max_candidates_caps_results(self, stores):
        for i in range(10):
            stores.users.put(str(i))
        service = DiscoveryService(stores, max_candidates=3, default_band=(0.0, 1000.0))
        assert len(service.discover("0", {})) == 3

    def test_cap_applies_after_distance_band(self, stores):
        stores.users.put("A", latitude=0.0, longitude=0.0)
        stores.users.put("far1", latitude=40.0, longitude=0.0)
        stores.users.put("far2", latitude=41.0, longitude=0.0)
        stores.users.put("near", latitude=0.1, longitude=0.0)
        service = DiscoveryService(stores, max_candidates=2, default_band=(0.0, 1000.0))

        filters = {"latitude": 0, "longitude": 0, "radiusRange": "0-100"}
        assert _ids(service.discover("A", filters, today=TODAY)) == ["near"]

    def test_cap_trims_distance_results(self, stores):
        stores.users.put("A", latitude=0.0, longitude=0.0)
        for i in range(5):
            stores.users.put(f"n{i}", latitude=0.01 * (i + 1), longitude=0.0)
        service = DiscoveryService(stores, max_candidates=2, default_band=(0.0, 1000.0))

        result = service.discover("A", {"latitude": 0, "longitude": 0}, today=TODAY)
        assert [r["id"] for r in result] == ["n0", "n1"]

    def test_explicit_zero_cap_not_replaced_by_config(self, stores):
        stores.users.put("A")
        stores.users.put("B")
        service = DiscoveryService(stores, max_candidates=0, default_band=(0.0, 1000.0))
        assert service.discover("A", {}, today=TODAY) == []


class TestNonAsciiInterests:
    def test_signup_then_discover_by_accented_interest(self, stores, service):
        stores.users.put("A")
        user = social_tools.signup(
            stores,
            {
                "name": "Lucía",
                "contact": "+34600000001",
                "gender": "female",
                "bio": "Hola",
                "dob": "1995-03-10",
                "interests": "café,música",
                "latitude": 40.4,
                "longitude": -3.7,
                "education": "Grado",
            },
        )

        result = service.discover("A", {"interests": "café"}, today=TODAY)

        assert [r["id"] for r in result] == [user["id"]]
