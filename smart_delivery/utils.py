# smart-delivery-engine/smart_delivery/utils.py
"""
Utility functions for the Smart Dispatch & ETA Engine.

Provides the geographic distance model, the vehicle speed profile used to turn
distances into travel minutes, and the small key/time helpers shared by the
cache and the analyzers.
"""

from __future__ import annotations

import math
import logging
from datetime import datetime
from typing import Optional, Union

from . import config
from .models import GeoPoint

# Configure logging
logger = logging.getLogger(__name__)


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula to compute the distance between two GPS coordinates.
    Road topology is ignored: in a small city the great-circle distance is a good
    enough proxy and costs nothing to compute.

    Args:
        lat1: Latitude of point 1 in decimal degrees
        lon1: Longitude of point 1 in decimal degrees
        lat2: Latitude of point 2 in decimal degrees
        lon2: Longitude of point 2 in decimal degrees

    Returns:
        Distance in kilometers between the two points (always >= 0, symmetric)

    Example:
        >>> haversine_distance(17.5455, -98.5750, 17.5445, -98.5740)
        0.154  # ~154 meters
    """
    # Convert decimal degrees to radians
    lon1, lat1, lon2, lat2 = map(math.radians, [lon1, lat1, lon2, lat2])

    # Absolute deltas keep the result bit-for-bit symmetric
    dlon = abs(lon2 - lon1)
    dlat = abs(lat2 - lat1)
    a = math.sin(dlat / 2)**2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2)**2
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * config.EARTH_RADIUS_KM


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two GeoPoints in kilometers."""
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def vehicle_speed(vehicle_type: Optional[str]) -> float:
    """
    Get the average city speed for a vehicle type.

    Unknown or missing vehicle types fall back to the motorbike speed, which is
    what most of the fleet rides.

    Args:
        vehicle_type: One of 'moto', 'bici', 'auto'

    Returns:
        Speed in km/h
    """
    speeds = config.VEHICLE_SPEEDS_KMH
    return speeds.get((vehicle_type or "").lower(), speeds[config.DEFAULT_VEHICLE_TYPE])


def travel_minutes(distance: float, vehicle_type: Optional[str] = "moto") -> int:
    """
    Convert a distance into whole travel minutes for a vehicle type.

    The result is rounded up: a 4.3 minute ride is quoted as 5 minutes.
    Monotonically non-decreasing in distance for a fixed vehicle type.

    Args:
        distance: Distance in kilometers
        vehicle_type: One of 'moto' (25 km/h), 'bici' (12 km/h), 'auto' (20 km/h)

    Returns:
        Travel time in whole minutes

    Example:
        >>> travel_minutes(2.1, "moto")
        6
    """
    return math.ceil((distance / vehicle_speed(vehicle_type)) * 60)


def js_round(value: float) -> int:
    """
    Round half up, the way dashboards and mobile clients round.

    Python's built-in round() uses banker's rounding (26.5 -> 26); ETA minutes
    must round 26.5 up to 27 so every surface quotes the same number.
    """
    return int(math.floor(value + 0.5))


def round_coordinate(value: float, places: int = config.COORD_KEY_PRECISION) -> str:
    """Format a coordinate with a fixed number of decimals for use in cache keys."""
    return f"{float(value):.{places}f}"


def route_key(origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> str:
    """
    Build a route/ETA cache key with rounded coordinates.

    Rounding to 4 decimals (~11 m) lets nearby requests share an entry.

    Example:
        >>> route_key(17.54551, -98.57499, 17.5445, -98.574)
        '17.5455,-98.5750→17.5445,-98.5740'
    """
    return (
        f"{round_coordinate(origin_lat)},{round_coordinate(origin_lng)}"
        f"→{round_coordinate(dest_lat)},{round_coordinate(dest_lng)}"
    )


def normalize_address(address: str) -> str:
    """Trim, lowercase and collapse whitespace so equivalent addresses share a key."""
    return " ".join(address.split()).lower()


def age_minutes(created_at: datetime, now: Optional[datetime] = None) -> float:
    """
    Minutes elapsed since ``created_at``.

    Args:
        created_at: When the order was placed
        now: Reference instant (defaults to the current time)

    Returns:
        Age in (fractional) minutes; negative if ``created_at`` is in the future
    """
    if now is None:
        now = datetime.now()
    return (now - created_at).total_seconds() / 60


def format_time_range(low: int, high: int) -> str:
    """Format an ETA range for display, e.g. ``"33-43"``."""
    return f"{low}-{high}"


def format_time_duration(minutes: Union[int, float]) -> str:
    """
    Format a duration in minutes as a human-readable string.

    Args:
        minutes: Duration in minutes

    Returns:
        Formatted string like "1h 23m" or "45m"
    """
    if minutes < 60:
        return f"{minutes:.0f}m"
    hours = int(minutes // 60)
    mins = int(minutes % 60)
    return f"{hours}h {mins}m"
