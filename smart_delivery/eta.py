# smart-delivery-engine/smart_delivery/eta.py
"""
Dynamic ETA composition.

Combines everything that delays an order into one customer-facing estimate:

    total = round((adjusted prep + pickup leg + delivery leg) x weather multiplier)

1. Preparation: the merchant's average prep time scaled by its current load tier.
2. Pickup leg: travel time of the best available driver to the restaurant.
3. Delivery leg: restaurant → customer at that driver's vehicle speed.
4. Weather: a multiplier on the whole estimate when conditions are bad.

Every contribution that pushes the estimate up is listed as a factor, so the
customer sees why the order takes longer. When data is missing the compositor
falls back to fixed conservative values instead of failing: an ETA must always
render.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from . import config
from .load import LoadReport, analyze_merchant_load
from .models import Driver, GeoPoint, LoadLevel, Merchant, Order, WeatherCondition
from .ranking import DriverProximityRanker, RankedDriver
from .utils import distance_km, format_time_range, js_round, travel_minutes

logger = logging.getLogger(__name__)


@dataclass
class ETAFactor:
    """One reason the estimate is longer than usual."""
    label: str
    impact: str
    icon: str
    kind: str  # 'load', 'distance' or 'weather'


@dataclass
class ETAReport:
    """
    A composed delivery estimate.

    Attributes:
        prep_time: Load-adjusted preparation minutes
        pickup_time: Minutes for the driver to reach the restaurant
        delivery_time: Minutes from restaurant to customer
        total_minutes: Weather-adjusted total
        display_range_min: Lower bound shown to the customer (never below prep time)
        display_range_max: Upper bound shown to the customer
        factors: Delays that contributed to the estimate
        best_driver: Driver the estimate assumes, if any
        merchant_load: Load report used for the prep adjustment
    """
    prep_time: int
    pickup_time: int
    delivery_time: int
    total_minutes: int
    display_range_min: int
    display_range_max: int
    factors: List[ETAFactor] = field(default_factory=list)
    best_driver: Optional[RankedDriver] = None
    merchant_load: Optional[LoadReport] = None

    @property
    def display_range(self) -> str:
        return format_time_range(self.display_range_min, self.display_range_max)

    def factor_kinds(self) -> List[str]:
        return [f.kind for f in self.factors]


def default_eta_report() -> ETAReport:
    """Fixed report used when the merchant is unknown."""
    defaults = config.DEFAULT_ETA_MINUTES
    return ETAReport(
        prep_time=defaults["prep"],
        pickup_time=defaults["pickup"],
        delivery_time=defaults["delivery"],
        total_minutes=defaults["total"],
        display_range_min=defaults["range_min"],
        display_range_max=defaults["range_max"],
    )


class ETACompositor:
    """
    Builds ETAReports from merchant load, driver proximity, distance and weather.

    Attributes:
        ranker: Picks the driver assumed for the pickup leg
        default_prep_minutes: Prep time for merchants that publish none
        distance_threshold_km: Drivers farther than this add a distance factor
    """

    def __init__(
        self,
        ranker: DriverProximityRanker,
        default_prep_minutes: Optional[int] = None,
        distance_threshold_km: Optional[float] = None,
    ) -> None:
        self.ranker = ranker
        self.default_prep_minutes = (
            default_prep_minutes if default_prep_minutes is not None else config.DEFAULT_PREP_TIME_MINS
        )
        self.distance_threshold_km = (
            distance_threshold_km if distance_threshold_km is not None else config.DISTANCE_FACTOR_THRESHOLD_KM
        )

    def compose(
        self,
        merchant: Optional[Merchant],
        delivery_point: Optional[GeoPoint],
        orders: Iterable[Order],
        drivers: Iterable[Driver],
        weather: Optional[WeatherCondition] = None,
    ) -> ETAReport:
        """
        Compose the ETA for a new order.

        Args:
            merchant: Restaurant preparing the order (None → default report)
            delivery_point: Customer location, None if unknown
            orders: Current order snapshot
            drivers: Current driver snapshot
            weather: Effective weather condition, None for clear weather

        Returns:
            ETAReport with the breakdown and contributing factors
        """
        if merchant is None:
            logger.debug("ETA requested for unknown merchant, returning default report")
            return default_eta_report()

        orders = list(orders)
        drivers = list(drivers)
        factors: List[ETAFactor] = []

        # 1. Base prep time from the merchant
        base_prep = merchant.avg_prep_time_minutes or self.default_prep_minutes

        # 2. Kitchen load adjustment
        load = analyze_merchant_load(merchant.merchant_id, orders, merchant_name=merchant.name)
        adjusted_prep = js_round(base_prep * load.prep_time_multiplier)
        if load.load_level != LoadLevel.LOW:
            factors.append(ETAFactor(
                label=f"High demand at {merchant.name or merchant.merchant_id}",
                impact=f"+{adjusted_prep - base_prep} min",
                icon=load.icon,
                kind="load",
            ))

        # 3. Pickup leg from the best driver
        best = self.ranker.best_for_merchant(merchant, drivers, orders)
        pickup_time = best.estimated_pickup_minutes if best else config.FALLBACK_PICKUP_MINS
        if best and best.distance_km > self.distance_threshold_km:
            factors.append(ETAFactor(
                label=f"Driver {best.distance_km:.1f} km away",
                impact=f"~{pickup_time} min pickup",
                icon="🛵",
                kind="distance",
            ))

        # 4. Delivery leg (restaurant → customer)
        if delivery_point is not None and merchant.location is not None:
            vehicle_type = best.vehicle_type if best else config.DEFAULT_VEHICLE_TYPE
            delivery_time = travel_minutes(distance_km(merchant.location, delivery_point), vehicle_type)
        else:
            delivery_time = config.FALLBACK_DELIVERY_MINS

        # 5. Weather
        weather_multiplier = 1.0
        if weather is not None and weather.delay_multiplier > 1.0:
            weather_multiplier = weather.delay_multiplier
            factors.append(ETAFactor(
                label=f"{weather.icon} {weather.label}",
                impact=f"+{js_round((weather_multiplier - 1) * 100)}% time",
                icon=weather.icon,
                kind="weather",
            ))

        # 6. Totals
        total_base = adjusted_prep + pickup_time + delivery_time
        total_minutes = js_round(total_base * weather_multiplier)

        # 7. Display range: an order cannot arrive before it is cooked
        range_min = max(total_minutes - config.ETA_RANGE_SPREAD_MINS, adjusted_prep)
        range_max = total_minutes + config.ETA_RANGE_SPREAD_MINS

        return ETAReport(
            prep_time=adjusted_prep,
            pickup_time=pickup_time,
            delivery_time=delivery_time,
            total_minutes=total_minutes,
            display_range_min=range_min,
            display_range_max=range_max,
            factors=factors,
            best_driver=best,
            merchant_load=load,
        )
