import pytest

from smart_delivery.load import (
    analyze_merchant_load,
    classify_load,
    get_all_merchants_load,
    get_overloaded_merchants,
)
from smart_delivery.models import LoadLevel, Merchant, OrderStatus

from conftest import make_order


@pytest.mark.parametrize("count, level, multiplier", [
    (0, LoadLevel.LOW, 1.0),
    (2, LoadLevel.LOW, 1.0),
    (3, LoadLevel.MEDIUM, 1.15),
    (4, LoadLevel.MEDIUM, 1.15),
    (5, LoadLevel.HIGH, 1.35),
    (6, LoadLevel.HIGH, 1.35),
    (7, LoadLevel.CRITICAL, 1.6),
    (40, LoadLevel.CRITICAL, 1.6),
])
def test_tier_boundaries(count, level, multiplier):
    assert classify_load(count) == (level, multiplier)


def test_multiplier_non_decreasing_in_active_count():
    multipliers = [classify_load(n)[1] for n in range(0, 15)]
    assert multipliers == sorted(multipliers)


def test_only_pre_pickup_statuses_count(busy_kitchen_orders):
    orders = busy_kitchen_orders + [
        make_order("x1", status=OrderStatus.DELIVERED),
        make_order("x2", status=OrderStatus.CANCELLED),
        make_order("x3", status=OrderStatus.ON_THE_WAY),
        make_order("x4", status=OrderStatus.SEARCHING_DRIVER),
        make_order("x5", status=OrderStatus.CREATED),
        make_order("x6", merchant_id="m2", status=OrderStatus.PREPARING),
    ]
    report = analyze_merchant_load("m1", orders)

    assert report.active_order_count == 5
    assert report.load_level == LoadLevel.HIGH
    assert report.prep_time_multiplier == 1.35
    assert report.preparing_count == 2
    assert report.waiting_count == 2
    assert report.is_overloaded


def test_unknown_merchant_is_low_load(busy_kitchen_orders):
    report = analyze_merchant_load("nope", busy_kitchen_orders)
    assert report.active_order_count == 0
    assert report.load_level == LoadLevel.LOW
    assert report.prep_time_multiplier == 1.0
    assert report.warning is None


def test_warning_names_the_merchant(busy_kitchen_orders):
    report = analyze_merchant_load("m1", busy_kitchen_orders, merchant_name="La Cantina")
    assert "La Cantina" in report.warning
    assert report.icon == "🔥"


def test_all_merchants_in_catalog_order(busy_kitchen_orders):
    merchants = [Merchant("m2", "Pollos"), Merchant("m1", "Cantina"), Merchant("m9", "Empty")]
    reports = get_all_merchants_load(merchants, busy_kitchen_orders)

    assert [r.merchant_id for r in reports] == ["m2", "m1", "m9"]
    assert [r.load_level for r in reports] == [LoadLevel.LOW, LoadLevel.HIGH, LoadLevel.LOW]


def test_overloaded_merchants(busy_kitchen_orders):
    merchants = [Merchant("m1", "Cantina"), Merchant("m2", "Pollos")]
    overloaded = get_overloaded_merchants(merchants, busy_kitchen_orders)
    assert [r.merchant_id for r in overloaded] == ["m1"]
