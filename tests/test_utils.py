import pytest
from datetime import datetime, timedelta

from smart_delivery.models import GeoPoint
from smart_delivery.utils import (
    age_minutes,
    distance_km,
    format_time_duration,
    format_time_range,
    haversine_distance,
    js_round,
    normalize_address,
    route_key,
    travel_minutes,
)

from conftest import north_of


def test_haversine_zero_for_same_point():
    assert haversine_distance(17.5455, -98.5750, 17.5455, -98.5750) == 0.0


def test_haversine_is_symmetric():
    a = (17.5455, -98.5750)
    b = (17.5490, -98.5770)
    assert haversine_distance(*a, *b) == haversine_distance(*b, *a)


def test_haversine_one_degree_of_latitude():
    assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.195, abs=0.001)


def test_haversine_short_city_hop():
    # m1 to the default delivery point, ~150 m
    assert haversine_distance(17.5455, -98.5750, 17.5445, -98.5740) == pytest.approx(0.154, abs=0.002)


def test_distance_km_on_geopoints():
    origin = GeoPoint(17.5455, -98.5750)
    assert distance_km(origin, north_of(origin, 2.1)) == pytest.approx(2.1, abs=1e-6)


@pytest.mark.parametrize("distance, vehicle, expected", [
    (0.0, "moto", 0),
    (2.1, "moto", 6),
    (1.8, "moto", 5),
    (1.0, "bici", 5),
    (1.0, "auto", 3),
])
def test_travel_minutes(distance, vehicle, expected):
    assert travel_minutes(distance, vehicle) == expected


def test_travel_minutes_unknown_vehicle_uses_moto():
    assert travel_minutes(2.1, "scooter") == travel_minutes(2.1, "moto")
    assert travel_minutes(2.1, None) == travel_minutes(2.1, "moto")


def test_travel_minutes_monotonic_in_distance():
    previous = 0
    for step in range(0, 60):
        minutes = travel_minutes(step * 0.1, "bici")
        assert minutes >= previous
        previous = minutes


def test_slower_vehicles_never_arrive_sooner():
    for step in range(0, 121):
        distance = step * 0.05
        bici = travel_minutes(distance, "bici")
        auto = travel_minutes(distance, "auto")
        moto = travel_minutes(distance, "moto")
        assert bici >= auto >= moto, distance


def test_js_round_rounds_half_up():
    assert js_round(26.5) == 27
    assert js_round(27.5) == 28
    assert js_round(64.6) == 65
    assert js_round(27.0) == 27
    assert js_round(26.49) == 26


def test_route_key_rounds_to_four_decimals():
    assert route_key(17.54551, -98.57499, 17.5445, -98.574) == "17.5455,-98.5750→17.5445,-98.5740"


def test_nearby_points_share_route_key():
    assert route_key(17.54551, -98.5750, 17.5445, -98.5740) == route_key(17.54549, -98.57501, 17.5445, -98.5740)


def test_normalize_address():
    assert normalize_address("  Calle  Morelos 12,\tCENTRO ") == "calle morelos 12, centro"


def test_age_minutes():
    now = datetime(2025, 6, 14, 13, 30)
    assert age_minutes(now - timedelta(minutes=12, seconds=30), now) == pytest.approx(12.5)


def test_formatting_helpers():
    assert format_time_range(33, 43) == "33-43"
    assert format_time_duration(45) == "45m"
    assert format_time_duration(83) == "1h 23m"
