# smart-delivery-engine/smart_delivery/engine.py
"""
Smart Delivery Engine facade.

Ties the analyzers together behind one object that surfaces (CLI, dispatch
console, driver app) can call. The engine holds no marketplace state of its
own: every call reads a fresh snapshot from the provider and recomputes, so
results always reflect the latest orders and driver positions.

Shared, long-lived pieces are the route cache, the driver location store and
the weather monitor; all three are safe to use from several threads.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import config
from .cache import RouteCache
from .eta import ETACompositor, ETAReport
from .load import LoadReport, analyze_merchant_load, get_all_merchants_load, get_overloaded_merchants
from .models import GeoPoint, Order, WeatherCondition
from .priority import prioritized_queue, sort_orders_by_priority
from .ranking import DriverProximityRanker, MemoryLocationStore, RankedDriver
from .snapshot import Snapshot
from .utils import haversine_distance, travel_minutes
from .weather import WeatherMonitor

logger = logging.getLogger(__name__)


class SmartDeliveryEngine:
    """
    Entry point for load, ranking, ETA and queue computations.

    Attributes:
        snapshot_provider: Zero-argument callable returning the current Snapshot
        cache: Route cache shared by geocoding and distance lookups
        location_store: Latest driver GPS fixes, consulted before driver records
        weather: Optional monitor supplying the live weather condition
        weather_override: Fixed condition that takes precedence over the monitor
        geocoder: Optional callable resolving an address to a GeoPoint
        default_prep_minutes: Prep time for merchants that publish none
        distance_threshold_km: Pickup distance past which the ETA lists a distance factor
    """

    def __init__(
        self,
        snapshot_provider: Callable[[], Snapshot],
        cache: Optional[RouteCache] = None,
        location_store: Optional[MemoryLocationStore] = None,
        weather: Optional[WeatherMonitor] = None,
        geocoder: Optional[Callable[[str], GeoPoint]] = None,
        default_prep_minutes: Optional[int] = None,
        distance_threshold_km: Optional[float] = None,
    ) -> None:
        self.snapshot_provider = snapshot_provider
        self.cache = cache if cache is not None else RouteCache()
        self.location_store = location_store if location_store is not None else MemoryLocationStore()
        self.weather = weather
        self.weather_override: Optional[WeatherCondition] = None
        self.geocoder = geocoder
        self.default_prep_minutes = (
            default_prep_minutes if default_prep_minutes is not None else config.DEFAULT_PREP_TIME_MINS
        )
        self.distance_threshold_km = (
            distance_threshold_km if distance_threshold_km is not None else config.DISTANCE_FACTOR_THRESHOLD_KM
        )

    def _ranker(self, snapshot: Snapshot) -> DriverProximityRanker:
        return DriverProximityRanker(snapshot.merchants_by_id, self.location_store)

    # -------------------------------------------------------------------------
    # Merchant load
    # -------------------------------------------------------------------------

    def get_merchant_load(self, merchant_id: str) -> LoadReport:
        snapshot = self.snapshot_provider()
        merchant = snapshot.merchant(merchant_id)
        return analyze_merchant_load(
            merchant_id, snapshot.orders, merchant_name=merchant.name if merchant else None
        )

    def get_all_merchants_load(self) -> List[LoadReport]:
        snapshot = self.snapshot_provider()
        return get_all_merchants_load(snapshot.merchants, snapshot.orders)

    def get_overloaded_merchants(self) -> List[LoadReport]:
        snapshot = self.snapshot_provider()
        return get_overloaded_merchants(snapshot.merchants, snapshot.orders)

    # -------------------------------------------------------------------------
    # Drivers
    # -------------------------------------------------------------------------

    def get_driver_ranking(self, merchant_id: str) -> List[RankedDriver]:
        snapshot = self.snapshot_provider()
        return self._ranker(snapshot).rank(merchant_id, snapshot.drivers, snapshot.orders)

    def get_best_driver(self, merchant_id: str) -> Optional[RankedDriver]:
        snapshot = self.snapshot_provider()
        return self._ranker(snapshot).best_available(merchant_id, snapshot.drivers, snapshot.orders)

    def update_driver_location(self, driver_id: str, lat: float, lng: float) -> GeoPoint:
        """Record a GPS fix pushed by a driver app."""
        point = self.location_store.update(driver_id, lat, lng)
        logger.debug(f"Driver {driver_id} at {point}")
        return point

    # -------------------------------------------------------------------------
    # ETA
    # -------------------------------------------------------------------------

    def weather_condition(self) -> Optional[WeatherCondition]:
        """Effective weather: the override if set, else the monitor's, else None (clear)."""
        if self.weather_override is not None:
            return self.weather_override
        if self.weather is not None:
            return self.weather.condition
        return None

    def get_dynamic_eta(self, merchant_id: str, delivery_point: Optional[GeoPoint] = None) -> ETAReport:
        """
        Compose the ETA for a new order at ``merchant_id``.

        An unknown merchant yields the default report; an unknown delivery point
        uses the fallback delivery leg.
        """
        snapshot = self.snapshot_provider()
        compositor = ETACompositor(
            self._ranker(snapshot),
            default_prep_minutes=self.default_prep_minutes,
            distance_threshold_km=self.distance_threshold_km,
        )
        return compositor.compose(
            snapshot.merchant(merchant_id),
            delivery_point,
            snapshot.orders,
            snapshot.drivers,
            weather=self.weather_condition(),
        )

    # -------------------------------------------------------------------------
    # Order queue
    # -------------------------------------------------------------------------

    def get_prioritized_orders(self, now: Optional[datetime] = None, queue_only: bool = True) -> List[Order]:
        """
        Orders sorted most urgent first.

        Args:
            now: Reference instant for order ages
            queue_only: Only orders waiting for a driver (ready / searching_driver)
        """
        snapshot = self.snapshot_provider()
        if queue_only:
            return prioritized_queue(snapshot.orders, now)
        return sort_orders_by_priority(snapshot.orders, now)

    # -------------------------------------------------------------------------
    # Geo lookups (cached)
    # -------------------------------------------------------------------------

    def route_between(self, origin: GeoPoint, destination: GeoPoint, vehicle_type: str = "moto") -> Dict[str, Any]:
        """
        Distance and travel time between two points.

        The distance is cached (ETA category, keyed by rounded coordinates) and
        shared across vehicle types; travel time is derived per vehicle.
        """
        data = self.cache.fetch_eta(
            origin.lat, origin.lng, destination.lat, destination.lng,
            lambda o_lat, o_lng, d_lat, d_lng: {"distance_km": haversine_distance(o_lat, o_lng, d_lat, d_lng)},
        )
        distance = data["distance_km"]
        return {
            "distance_km": distance,
            "duration_minutes": travel_minutes(distance, vehicle_type),
            "vehicle_type": vehicle_type,
        }

    def geocode(self, address: str) -> Optional[GeoPoint]:
        """
        Coordinates for an address.

        Answers from the permanent geocode cache; on a miss asks the geocoder
        (deduplicated across concurrent callers). None if there is no geocoder.
        """
        if self.geocoder is None:
            return self.cache.get_geocode(address)
        return self.cache.fetch_geocode(address, self.geocoder)

    def close(self) -> None:
        if self.weather is not None:
            self.weather.stop()
        self.cache.close()
