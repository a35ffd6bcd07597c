import os
from datetime import datetime, timedelta

import pytest

from smart_delivery.models import Driver, GeoPoint, Merchant, Order, OrderStatus
from smart_delivery.snapshot import Snapshot

# Kilometers per degree of latitude on the haversine sphere (R = 6371 km)
KM_PER_DEG_LAT = 111.19492664455873

DATA_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "data")

NOW = datetime(2025, 6, 14, 13, 30, 0)


def north_of(point: GeoPoint, km: float) -> GeoPoint:
    """A point ``km`` kilometers due north of ``point`` (same meridian)."""
    return GeoPoint(point.lat + km / KM_PER_DEG_LAT, point.lng)


def make_order(order_id, merchant_id="m1", status=OrderStatus.PREPARING, minutes_ago=0.0,
               driver_id=None, total=100.0, payment_method="card"):
    return Order(
        order_id=order_id,
        merchant_id=merchant_id,
        status=status,
        created_at=NOW - timedelta(minutes=minutes_ago),
        driver_id=driver_id,
        total=total,
        payment_method=payment_method,
    )


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def merchant_point():
    return GeoPoint(17.5455, -98.5750)


@pytest.fixture
def merchant(merchant_point):
    return Merchant(
        merchant_id="m1",
        name="La Cantina del Sabor",
        location=merchant_point,
        avg_prep_time_minutes=20,
        delivery_fee=25.0,
    )


@pytest.fixture
def busy_kitchen_orders():
    """Five active orders at m1: high load."""
    return [
        make_order("o1", status=OrderStatus.PAID),
        make_order("o2", status=OrderStatus.ACCEPTED),
        make_order("o3", status=OrderStatus.PREPARING),
        make_order("o4", status=OrderStatus.PREPARING),
        make_order("o5", status=OrderStatus.READY),
    ]


@pytest.fixture
def small_snapshot(merchant, merchant_point):
    drivers = [
        Driver("d1", name="Near", vehicle_type="moto", current_location=north_of(merchant_point, 0.5)),
        Driver("d2", name="Far", vehicle_type="moto", current_location=north_of(merchant_point, 2.1)),
    ]
    orders = [
        make_order("o1", status=OrderStatus.PREPARING),
        make_order("o2", status=OrderStatus.READY, minutes_ago=20),
        make_order("o3", status=OrderStatus.ON_THE_WAY, driver_id="d1"),
    ]
    return Snapshot(merchants=[merchant], drivers=drivers, orders=orders, taken_at=NOW)


@pytest.fixture
def dataset_paths():
    return (
        os.path.join(DATA_DIR, "tlapa_merchants.csv"),
        os.path.join(DATA_DIR, "tlapa_drivers.csv"),
        os.path.join(DATA_DIR, "tlapa_orders.csv"),
    )
