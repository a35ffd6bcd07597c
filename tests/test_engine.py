from unittest import mock

import pytest

from smart_delivery import config
from smart_delivery.cache import ETA, GEOCODE, RouteCache
from smart_delivery.engine import SmartDeliveryEngine
from smart_delivery.models import GeoPoint, LoadLevel
from smart_delivery.snapshot import load_snapshot
from smart_delivery.weather import WEATHER_CONDITIONS

from conftest import NOW, north_of


@pytest.fixture
def engine(small_snapshot):
    e = SmartDeliveryEngine(lambda: small_snapshot)
    yield e
    e.close()


@pytest.fixture
def tlapa_engine(dataset_paths):
    snapshot = load_snapshot(*dataset_paths)
    e = SmartDeliveryEngine(lambda: snapshot)
    yield e
    e.close()


# -----------------------------------------------------------------------------
# Small hand-built snapshot
# -----------------------------------------------------------------------------

def test_best_driver_skips_busy_driver(engine):
    best = engine.get_best_driver("m1")
    assert best.driver.driver_id == "d2"
    assert not best.is_busy


def test_gps_push_changes_ranking(engine, merchant_point):
    engine.update_driver_location("d2", merchant_point.lat, merchant_point.lng)
    ranking = engine.get_driver_ranking("m1")
    assert ranking[0].driver.driver_id == "d2"
    assert ranking[0].distance_km == 0.0


def test_dynamic_eta_uses_fresh_snapshot(engine):
    report = engine.get_dynamic_eta("m1")
    assert (report.prep_time, report.pickup_time, report.delivery_time) == (20, 6, 10)
    assert report.total_minutes == 36
    assert report.factor_kinds() == ["distance"]


def test_weather_override_applies(engine):
    engine.weather_override = WEATHER_CONDITIONS["storm"]
    assert engine.get_dynamic_eta("m1").total_minutes == 61


def test_weather_from_monitor(small_snapshot):
    monitor = mock.Mock()
    monitor.condition = WEATHER_CONDITIONS["rain"]
    engine = SmartDeliveryEngine(lambda: small_snapshot, weather=monitor)

    assert engine.weather_condition() is WEATHER_CONDITIONS["rain"]
    engine.weather_override = WEATHER_CONDITIONS["clear"]
    assert engine.weather_condition() is WEATHER_CONDITIONS["clear"]
    engine.close()
    monitor.stop.assert_called_once()


def test_unknown_merchant_eta_is_default(engine):
    assert engine.get_dynamic_eta("ghost").display_range == "30-40"


def test_prioritized_orders(engine):
    assert [o.order_id for o in engine.get_prioritized_orders(now=NOW)] == ["o2"]
    everything = engine.get_prioritized_orders(now=NOW, queue_only=False)
    assert everything[0].order_id == "o2"
    assert len(everything) == 3


def test_route_between_caches_distance(engine, merchant_point):
    destination = north_of(merchant_point, 2.1)
    by_moto = engine.route_between(merchant_point, destination, "moto")
    by_bike = engine.route_between(merchant_point, destination, "bici")

    assert by_moto["distance_km"] == pytest.approx(2.1)
    assert by_moto["duration_minutes"] == 6
    assert by_bike["duration_minutes"] == 11
    stats = engine.cache.stats()
    assert stats[ETA] == 1
    assert stats["hits"] == 1


def test_geocode_without_geocoder_reads_cache_only(engine):
    assert engine.geocode("Calle Morelos 12") is None
    engine.cache.put_geocode("Calle Morelos 12", GeoPoint(17.546, -98.576))
    assert engine.geocode("calle morelos 12") == GeoPoint(17.546, -98.576)


def test_geocode_with_geocoder_is_cached(small_snapshot):
    geocoder = mock.Mock(return_value=GeoPoint(17.55, -98.58))
    engine = SmartDeliveryEngine(lambda: small_snapshot, cache=RouteCache(), geocoder=geocoder)

    assert engine.geocode("Mercado") == GeoPoint(17.55, -98.58)
    assert engine.geocode("mercado") == GeoPoint(17.55, -98.58)
    geocoder.assert_called_once_with("Mercado")
    assert engine.cache.stats()[GEOCODE] == 1
    engine.close()


# -----------------------------------------------------------------------------
# Bundled Tlapa dataset
# -----------------------------------------------------------------------------

def test_tlapa_merchant_load(tlapa_engine):
    levels = {r.merchant_id: r.load_level for r in tlapa_engine.get_all_merchants_load()}
    assert levels == {
        "m1": LoadLevel.MEDIUM,
        "m2": LoadLevel.HIGH,
        "m3": LoadLevel.LOW,
        "m4": LoadLevel.LOW,
        "m5": LoadLevel.LOW,
        "m6": LoadLevel.CRITICAL,
    }
    assert [r.merchant_id for r in tlapa_engine.get_overloaded_merchants()] == ["m2", "m6"]
    assert tlapa_engine.get_merchant_load("m2").warning.startswith("Pollos El Fogón")


def test_tlapa_driver_ranking(tlapa_engine):
    ranking = tlapa_engine.get_driver_ranking("m1")
    assert [r.driver.driver_id for r in ranking] == ["d1", "d3", "d2", "d4"]
    assert [r.is_busy for r in ranking] == [False, False, True, True]


def test_tlapa_eta_at_saturated_kitchen(tlapa_engine):
    report = tlapa_engine.get_dynamic_eta("m6", GeoPoint(17.5445, -98.5740))
    assert report.prep_time == 32
    assert report.best_driver.driver.driver_id == "d1"
    assert report.factor_kinds()[0] == "load"
    assert report.display_range_min >= report.prep_time


def test_tlapa_queue(tlapa_engine):
    queue = tlapa_engine.get_prioritized_orders(now=NOW)
    assert [o.order_id for o in queue] == ["o111", "o108", "o118", "o103", "o117", "o123"]


def test_eta_tunables_stay_with_their_engine(dataset_paths):
    snapshot = load_snapshot(*dataset_paths)
    tuned = SmartDeliveryEngine(lambda: snapshot, default_prep_minutes=30, distance_threshold_km=0.01)
    stock = SmartDeliveryEngine(lambda: snapshot)

    # m6 publishes no prep time and its kitchen is saturated (x1.6)
    assert tuned.get_dynamic_eta("m6").prep_time == 48
    assert "distance" in tuned.get_dynamic_eta("m6").factor_kinds()
    assert stock.get_dynamic_eta("m6").prep_time == 32
    assert config.DEFAULT_PREP_TIME_MINS == 20
    assert config.DISTANCE_FACTOR_THRESHOLD_KM == 1.5
    tuned.close()
    stock.close()
