# smart-delivery-engine/smart_delivery/config.py
"""
Configuration parameters for the Smart Dispatch & ETA Engine.

This module centralizes every constant the engine relies on, making it easy to:
- Adjust the travel-time model per vehicle type
- Tune cache lifetimes and size bounds
- Review the merchant load tiers and ETA fallbacks in one place

Values marked ``Final`` are part of the engine's contract and should not be
changed at runtime. The remaining ones are tunables that the dispatch console
may adjust.
"""

from typing import Dict, Final, Tuple

# =============================================================================
# GEOGRAPHY
# =============================================================================

EARTH_RADIUS_KM: Final[float] = 6371.0
"""Mean Earth radius used by the haversine formula."""

CITY_CENTER: Final[Tuple[float, float]] = (17.5460, -98.5764)
"""(lat, lng) of Tlapa de Comonfort. Used as the weather query point and map center."""

DEFAULT_DELIVERY_POINT: Final[Tuple[float, float]] = (17.5445, -98.5740)
"""Fallback delivery destination when a request does not specify one."""

MERCHANT_COORDS: Final[Dict[str, Tuple[float, float]]] = {
    "m1": (17.5455, -98.5750),  # La Cantina del Sabor
    "m2": (17.5480, -98.5780),  # Pollos El Fogón
    "m3": (17.5440, -98.5730),  # Mariscos El Puerto
    "m4": (17.5470, -98.5760),  # Postres de la Abuela
    "m5": (17.5465, -98.5745),  # Café Tlapa
    "m6": (17.5490, -98.5770),  # Antojitos Doña Mary
}
"""
Pre-seeded restaurant coordinates.
Known merchants never need geocoding; the snapshot loader uses these when a
merchant row arrives without coordinates.
"""

# =============================================================================
# TRAVEL TIME MODEL
# =============================================================================

VEHICLE_SPEEDS_KMH: Final[Dict[str, float]] = {
    "moto": 25.0,
    "bici": 12.0,
    "auto": 20.0,
}
"""
Average city speed per vehicle type (km/h), traffic and stops included.
Cars are slower than motorbikes in the city center; bicycles are slowest.
"""

DEFAULT_VEHICLE_TYPE: Final[str] = "moto"
"""Vehicle type assumed when a driver record has none or an unknown one."""

# =============================================================================
# ROUTE CACHE
# =============================================================================

COORD_KEY_PRECISION: Final[int] = 4
"""Decimal places kept in route/ETA cache keys (~11 m, plenty for city delivery)."""

ROUTE_TTL_SECONDS: Final[float] = 30 * 60
"""Route data is refreshed after 30 minutes (traffic conditions may shift)."""

ETA_TTL_SECONDS: Final[float] = 15 * 60
"""Distance/duration estimates expire after 15 minutes."""

WEATHER_TTL_SECONDS: Final[float] = 15 * 60
"""A fetched weather report is reused for 15 minutes."""

ROUTE_CACHE_MAX_ENTRIES: Final[int] = 100
"""Upper bound on stored routes. A write that exceeds it triggers eviction."""

ROUTE_CACHE_TRIM_TO: Final[int] = 80
"""Number of newest routes kept after an eviction pass."""

DEDUP_MAX_WORKERS: int = 8
"""Worker threads available to deduplicated fetches."""

# =============================================================================
# MERCHANT LOAD TIERS
# =============================================================================
# Upper bound (inclusive) of active orders for each tier, with the preparation
# time multiplier applied at that tier. Anything above the high bound is
# critical. These are fixed constants, not per-merchant settings.

LOAD_LOW_MAX: Final[int] = 2
LOAD_MEDIUM_MAX: Final[int] = 4
LOAD_HIGH_MAX: Final[int] = 6

PREP_MULTIPLIER_LOW: Final[float] = 1.0
PREP_MULTIPLIER_MEDIUM: Final[float] = 1.15
PREP_MULTIPLIER_HIGH: Final[float] = 1.35
PREP_MULTIPLIER_CRITICAL: Final[float] = 1.6

# =============================================================================
# ETA COMPOSITION
# =============================================================================

DEFAULT_PREP_TIME_MINS: int = 20
"""Preparation time assumed for merchants that do not publish one."""

FALLBACK_PICKUP_MINS: int = 8
"""Pickup leg used when no driver with a known location is available."""

FALLBACK_DELIVERY_MINS: int = 10
"""Delivery leg used when the merchant or the customer location is unknown."""

DISTANCE_FACTOR_THRESHOLD_KM: float = 1.5
"""Best driver farther than this from the merchant is reported as an ETA factor."""

ETA_RANGE_SPREAD_MINS: int = 5
"""Half-width of the customer-facing ETA range."""

DEFAULT_ETA_MINUTES: Final[Dict[str, int]] = {
    "prep": 20,
    "pickup": 5,
    "delivery": 10,
    "total": 35,
    "range_min": 30,
    "range_max": 40,
}
"""Report returned when the merchant cannot be found, so the ETA always renders."""

# =============================================================================
# ORDER PRIORITY
# =============================================================================

PRIORITY_AGE_WEIGHT: float = 2.0
"""Points per minute of order age."""

PRIORITY_AGE_CAP: float = 60.0
"""Maximum points from age alone."""

PRIORITY_VALUE_DIVISOR: float = 10.0
"""Order total is divided by this to get value points."""

PRIORITY_VALUE_CAP: float = 20.0
"""Maximum points from order value."""

PRIORITY_CASH_BONUS: float = 5.0
"""Cash orders complete faster at handover, so they get a small boost."""

PRIORITY_STALE_MINS: float = 30.0
PRIORITY_STALE_BONUS: float = 20.0
PRIORITY_VERY_STALE_MINS: float = 45.0
PRIORITY_VERY_STALE_BONUS: float = 30.0

# =============================================================================
# WEATHER
# =============================================================================

WEATHER_API_URL: str = "https://api.open-meteo.com/v1/forecast"
"""Open-Meteo forecast endpoint (free, no API key)."""

WEATHER_TIMEZONE: str = "America/Mexico_City"

WEATHER_TIMEOUT_SECONDS: float = 5.0
"""Fail fast: a slow weather API must never delay an ETA."""

WEATHER_REFRESH_SECONDS: Final[float] = 10 * 60
"""Background weather refresh period."""

# =============================================================================
# DATASETS
# =============================================================================

DATASETS: Dict[str, Dict[str, str]] = {
    "tlapa_lunch": {
        "merchants": "data/tlapa_merchants.csv",
        "drivers": "data/tlapa_drivers.csv",
        "orders": "data/tlapa_orders.csv",
        "now": "2025-06-14 13:30:00",
        "description": "Saturday lunch rush in Tlapa: 6 merchants, 6 drivers, 23 orders",
    },
}
"""
Snapshot exports bundled with the project, paths relative to the repository root.
``now`` is the instant the export was taken, used as the reference time for
order ages when replaying it.
"""
