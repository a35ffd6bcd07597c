# smart-delivery-engine/smart_delivery/ranking.py
"""
Driver proximity ranking.

Produces the candidate list a dispatcher (human or greedy policy) picks from:
every active driver with a known position, annotated with the great-circle
distance to the restaurant, an estimated pickup time for their vehicle, and
whether they are already busy with another order.

Ordering rule: every available driver comes before every busy driver, and
within each group the nearest comes first. A busy driver cannot pick up right
away no matter how close they are.

Driver positions are resolved through an explicit fallback chain:
1. the external location store (latest GPS push),
2. the location embedded in the driver record,
3. otherwise the driver is left out of the ranking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from threading import RLock
from typing import Dict, Iterable, List, Mapping, Optional, Set, Union

from . import config
from .models import Driver, GeoPoint, Merchant, Order
from .utils import distance_km, travel_minutes

logger = logging.getLogger(__name__)


# =============================================================================
# LOCATION STORE
# =============================================================================

class LocationStore:
    """Read side of the external "last known driver location" store."""

    def get(self, driver_id: str) -> Optional[GeoPoint]:
        raise NotImplementedError


class MemoryLocationStore(LocationStore):
    """
    Thread-safe in-process location store.

    Driver apps push GPS fixes through ``update``; the ranker reads them through
    ``get``. Each fix keeps the time it was received.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._locations: Dict[str, GeoPoint] = {}
        self._updated_at: Dict[str, datetime] = {}

    def update(self, driver_id: str, lat: float, lng: float, updated_at: Optional[datetime] = None) -> GeoPoint:
        """Record a driver's latest position and return it."""
        point = GeoPoint(lat=float(lat), lng=float(lng))
        with self._lock:
            self._locations[driver_id] = point
            self._updated_at[driver_id] = updated_at or datetime.now()
        return point

    def get(self, driver_id: str) -> Optional[GeoPoint]:
        with self._lock:
            return self._locations.get(driver_id)

    def last_update(self, driver_id: str) -> Optional[datetime]:
        with self._lock:
            return self._updated_at.get(driver_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._locations)


def resolve_driver_location(driver: Driver, store: Optional[LocationStore] = None) -> Optional[GeoPoint]:
    """
    Latest known position of a driver.

    Args:
        driver: Driver record
        store: Optional override store, consulted first

    Returns:
        The store's position, else the record's embedded one, else None
    """
    if store is not None:
        override = store.get(driver.driver_id)
        if override is not None:
            return override
    return driver.current_location


def busy_driver_ids(orders: Iterable[Order]) -> Set[str]:
    """Drivers referenced by any order that is neither delivered nor cancelled."""
    return {
        o.driver_id for o in orders
        if o.driver_id and not o.status.is_terminal
    }


# =============================================================================
# RANKING
# =============================================================================

@dataclass
class RankedDriver:
    """
    A driver annotated for dispatch ordering.

    Attributes:
        driver: The driver record
        distance_km: Distance to the merchant, rounded to 2 decimals
        estimated_pickup_minutes: Travel time to the merchant for this vehicle
        vehicle_type: Vehicle used for the estimate
        is_busy: Driver already has an order in progress
        rating: Driver rating (0 if unknown)
        total_deliveries: Lifetime deliveries (0 if unknown)
        location: Position the distance was measured from
    """
    driver: Driver
    distance_km: float
    estimated_pickup_minutes: int
    vehicle_type: str
    is_busy: bool
    rating: float = 0.0
    total_deliveries: int = 0
    location: Optional[GeoPoint] = None

    def __repr__(self) -> str:
        state = "busy" if self.is_busy else "free"
        return f"RankedDriver({self.driver.driver_id}, {self.distance_km:.2f}km, {state})"


class DriverProximityRanker:
    """
    Ranks active drivers by proximity to a merchant.

    Attributes:
        merchants: Merchant catalog keyed by id
        location_store: Optional override store for driver positions
    """

    def __init__(
        self,
        merchants: Union[Mapping[str, Merchant], Iterable[Merchant]],
        location_store: Optional[LocationStore] = None,
    ) -> None:
        if not isinstance(merchants, Mapping):
            merchants = {m.merchant_id: m for m in merchants}
        self.merchants: Mapping[str, Merchant] = merchants
        self.location_store = location_store

    def rank(self, merchant_id: str, drivers: Iterable[Driver], orders: Iterable[Order]) -> List[RankedDriver]:
        """
        Rank drivers for a pickup at ``merchant_id``.

        Args:
            merchant_id: Restaurant the order is picked up from
            drivers: Current driver snapshot
            orders: Current order snapshot, used to detect busy drivers

        Returns:
            Available drivers nearest-first, followed by busy drivers nearest-first.
            Empty if the merchant is unknown or has no location.
        """
        merchant = self.merchants.get(merchant_id)
        if merchant is None:
            return []
        return self.rank_for_merchant(merchant, drivers, orders)

    def rank_for_merchant(self, merchant: Merchant, drivers: Iterable[Driver], orders: Iterable[Order]) -> List[RankedDriver]:
        """Same as ``rank`` for a merchant record that may not be in the catalog."""
        if merchant.location is None:
            return []

        busy = busy_driver_ids(orders)
        ranked: List[RankedDriver] = []

        for driver in drivers:
            if not driver.is_active:
                continue

            location = resolve_driver_location(driver, self.location_store)
            if location is None:
                continue

            distance = distance_km(location, merchant.location)
            vehicle_type = driver.vehicle_type or config.DEFAULT_VEHICLE_TYPE

            ranked.append(RankedDriver(
                driver=driver,
                distance_km=round(distance, 2),
                estimated_pickup_minutes=travel_minutes(distance, vehicle_type),
                vehicle_type=vehicle_type,
                is_busy=driver.driver_id in busy,
                rating=driver.rating or 0.0,
                total_deliveries=driver.total_deliveries or 0,
                location=location,
            ))

        # Stable sort: equal distances keep snapshot order
        ranked.sort(key=lambda r: (r.is_busy, r.distance_km))
        logger.debug(f"Ranked {len(ranked)} drivers for merchant {merchant.merchant_id}")
        return ranked

    def best_available(self, merchant_id: str, drivers: Iterable[Driver], orders: Iterable[Order]) -> Optional[RankedDriver]:
        """
        Best driver for a new order at ``merchant_id``.

        Returns the nearest available driver. If everyone is busy, the nearest
        busy driver is returned as a hint (not a commitment). None if no driver
        has a known location.
        """
        return _first_available(self.rank(merchant_id, drivers, orders))

    def best_for_merchant(self, merchant: Merchant, drivers: Iterable[Driver], orders: Iterable[Order]) -> Optional[RankedDriver]:
        return _first_available(self.rank_for_merchant(merchant, drivers, orders))


def _first_available(ranked: List[RankedDriver]) -> Optional[RankedDriver]:
    for candidate in ranked:
        if not candidate.is_busy:
            return candidate
    return ranked[0] if ranked else None
