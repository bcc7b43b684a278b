"""Tests for distance-based shipping estimates and geocoding."""

import asyncio
import math
from decimal import Decimal

import httpx
import pytest

from services.geocoding_service import GeocodingClient, mock_coordinates
from services.location_service import (
    LocationService,
    calculate_estimated_days,
    distance_tier_cost,
    haversine_distance,
)

STORE = {
    "id": 1,
    "name": "Test Store",
    "address": "1 Store Street",
    "lat": 40.0,
    "lng": -74.0,
    "phone": "+1 (555) 000-0000",
    "hours": "9:00 AM - 9:00 PM",
}

# One degree of latitude is ~111.19km on a sphere of radius 6371km
KM_PER_DEGREE = 6371 * math.pi / 180


class StubGeocoder:
    def __init__(self, coords):
        self.coords = coords
        self.calls = []

    async def geocode(self, address):
        self.calls.append(address)
        return self.coords


def at_distance_km(km):
    return {"lat": STORE["lat"] + km / KM_PER_DEGREE, "lng": STORE["lng"], "formatted_address": "x"}


def estimate(geocoder, order_value="100", option="standard"):
    service = LocationService(geocoder, stores=[STORE])
    return asyncio.run(service.calculate_shipping("1 Customer Road", Decimal(order_value), option))


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_distance(40.0, -74.0, 40.0, -74.0) == 0

    def test_new_york_to_los_angeles(self):
        distance = haversine_distance(40.7128, -74.0060, 34.0522, -118.2437)
        assert distance == pytest.approx(3936, rel=0.01)

    def test_one_degree_of_latitude(self):
        assert haversine_distance(0, 0, 1, 0) == pytest.approx(KM_PER_DEGREE)


class TestShippingEstimate:
    def test_local_standard(self):
        result = estimate(StubGeocoder(at_distance_km(5)))
        assert result["cost"] == Decimal("9.99")
        assert result["store"]["id"] == 1
        assert result["store"]["distance"] == pytest.approx(5, rel=1e-6)
        assert result["free_shipping_eligible"] is False

    @pytest.mark.parametrize("km,expected", [(9.9, "9.99"), (10.1, "19.99"), (49.9, "19.99"), (50.1, "29.99")])
    def test_distance_tiers(self, km, expected):
        assert estimate(StubGeocoder(at_distance_km(km)))["cost"] == Decimal(expected)

    @pytest.mark.parametrize("option,expected", [("standard", "19.99"), ("express", "39.98"), ("priority", "59.97")])
    def test_delivery_multiplier(self, option, expected):
        result = estimate(StubGeocoder(at_distance_km(20)), option=option)
        assert result["cost"] == Decimal(expected)

    def test_free_shipping_over_500(self):
        result = estimate(StubGeocoder(at_distance_km(200)), order_value="500.01", option="priority")
        assert result["cost"] == Decimal("0.00")
        assert result["free_shipping_eligible"] is True

    def test_exactly_500_is_not_free(self):
        result = estimate(StubGeocoder(at_distance_km(5)), order_value="500")
        assert result["cost"] == Decimal("9.99")

    @pytest.mark.parametrize("option,expected", [("standard", "29.99"), ("express", "44.98"), ("priority", "59.98")])
    def test_fallback_when_address_unknown(self, option, expected):
        result = estimate(StubGeocoder(None), option=option)
        assert result["cost"] == Decimal(expected)
        assert result["store"] is None
        assert result["estimated_days"] == 3

    def test_fallback_respects_free_shipping(self):
        result = estimate(StubGeocoder(None), order_value="800")
        assert result["cost"] == Decimal("0.00")

    def test_pickup_has_no_estimate(self):
        with pytest.raises(ValueError):
            estimate(StubGeocoder(at_distance_km(5)), option="pickup")


class TestEstimatedDays:
    def test_standard_is_one_day_per_100km(self):
        assert calculate_estimated_days(250, "standard") == 3

    def test_express_halves_with_minimum_one(self):
        assert calculate_estimated_days(250, "express") == 1
        assert calculate_estimated_days(50, "express") == 1
        assert calculate_estimated_days(900, "express") == 4

    def test_priority_is_next_day(self):
        assert calculate_estimated_days(3000, "priority") == 1


class TestNearestStore:
    def test_picks_closest(self):
        service = LocationService(StubGeocoder({"lat": 34.05, "lng": -118.25, "formatted_address": "LA"}))
        store = asyncio.run(service.find_nearest_store("somewhere in LA"))
        assert store["name"] == "TechStore LA"
        assert store["distance"] < 5

    def test_unknown_address(self):
        service = LocationService(StubGeocoder(None))
        assert asyncio.run(service.find_nearest_store("nowhere")) is None

    def test_store_catalog(self):
        service = LocationService(StubGeocoder(None))
        assert len(service.get_stores()) == 5
        assert [zone["name"] for zone in service.get_shipping_zones()] == ["Local", "Regional", "National"]


class TestDistanceTierCost:
    def test_boundaries_are_exclusive(self):
        assert distance_tier_cost(10) == Decimal("19.99")
        assert distance_tier_cost(50) == Decimal("29.99")


def geocoder_with(handler, api_key="test-key"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeocodingClient(client, api_key, "https://geocode.test/json")


class TestGeocodingClient:
    def test_without_api_key_uses_development_coordinates(self):
        def handler(request):
            raise AssertionError("provider must not be called")

        coords = asyncio.run(geocoder_with(handler, api_key=None).geocode("1 Main Street"))
        assert coords == mock_coordinates("1 Main Street")
        assert 40.7128 <= coords["lat"] < 40.8128

    def test_development_coordinates_are_stable(self):
        assert mock_coordinates("42 Elm Road") == mock_coordinates("42 Elm Road")

    def test_parses_first_result(self):
        def handler(request):
            assert request.url.params["address"] == "1 Main Street"
            assert request.url.params["key"] == "test-key"
            return httpx.Response(200, json={"results": [{
                "geometry": {"location": {"lat": 41.0, "lng": -73.5}},
                "formatted_address": "1 Main St, Somewhere",
            }]})

        coords = asyncio.run(geocoder_with(handler).geocode("1 Main Street"))
        assert coords == {"lat": 41.0, "lng": -73.5, "formatted_address": "1 Main St, Somewhere"}

    def test_no_results(self):
        coords = asyncio.run(geocoder_with(lambda request: httpx.Response(200, json={"results": []})).geocode("x"))
        assert coords is None

    def test_provider_error(self):
        coords = asyncio.run(geocoder_with(lambda request: httpx.Response(503)).geocode("x"))
        assert coords is None

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        assert asyncio.run(geocoder_with(handler).geocode("x")) is None
