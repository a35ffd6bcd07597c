from smart_delivery.load import get_all_merchants_load
from smart_delivery.mapping import LOAD_COLORS, build_deck, driver_points, merchant_points
from smart_delivery.models import Driver, GeoPoint, LoadLevel, Merchant
from smart_delivery.ranking import MemoryLocationStore


def test_merchant_points_colored_by_load(merchant, busy_kitchen_orders):
    merchants = [merchant, Merchant("m2", "Sin ubicación")]
    points = merchant_points(merchants, get_all_merchants_load(merchants, busy_kitchen_orders))

    assert len(points) == 1
    assert points[0]["level"] == "high"
    assert points[0]["color"] == LOAD_COLORS[LoadLevel.HIGH]
    assert points[0]["position"] == [merchant.location.lng, merchant.location.lat]
    assert "5 active" in points[0]["label"]


def test_driver_points_use_store_and_skip_inactive():
    store = MemoryLocationStore()
    store.update("d3", 17.55, -98.58)
    drivers = [
        Driver("d1", current_location=GeoPoint(17.54, -98.57)),
        Driver("d2", is_active=False, current_location=GeoPoint(17.54, -98.57)),
        Driver("d3"),
        Driver("d4"),
    ]
    points = driver_points(drivers, busy_ids={"d1"}, store=store)

    assert [p["status"] for p in points] == ["busy", "available"]
    assert points[1]["position"] == [-98.58, 17.55]


def test_build_deck_has_both_layers(merchant, busy_kitchen_orders):
    deck = build_deck(merchant_points([merchant], []), [])
    assert len(deck.layers) == 2
