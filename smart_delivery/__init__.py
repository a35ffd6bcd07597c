# smart-delivery-engine/smart_delivery/__init__.py

from .models import (
    CacheEntry,
    Driver,
    GeoPoint,
    LoadLevel,
    Merchant,
    Order,
    OrderStatus,
    WeatherCondition,
)
from .config import (
    VEHICLE_SPEEDS_KMH,
    ROUTE_TTL_SECONDS,
    ETA_TTL_SECONDS,
    DEFAULT_PREP_TIME_MINS,
)
from .cache import RouteCache, CacheStorageError, MemoryBackend, JsonFileBackend
from .load import LoadReport, analyze_merchant_load, get_all_merchants_load
from .ranking import DriverProximityRanker, RankedDriver, MemoryLocationStore
from .eta import ETACompositor, ETAReport, ETAFactor
from .priority import calculate_order_priority, sort_orders_by_priority
from .weather import WeatherMonitor, OpenMeteoClient, WeatherServiceError
from .snapshot import Snapshot, load_snapshot
from .engine import SmartDeliveryEngine
from .utils import haversine_distance, travel_minutes

__version__ = "1.0.0"
__author__ = "Tlapa Delivery Team"

__all__ = [
    # Models
    "CacheEntry",
    "Driver",
    "GeoPoint",
    "LoadLevel",
    "Merchant",
    "Order",
    "OrderStatus",
    "WeatherCondition",
    # Core
    "SmartDeliveryEngine",
    "RouteCache",
    "MemoryBackend",
    "JsonFileBackend",
    "DriverProximityRanker",
    "MemoryLocationStore",
    "ETACompositor",
    "WeatherMonitor",
    "OpenMeteoClient",
    "Snapshot",
    # Results
    "LoadReport",
    "RankedDriver",
    "ETAReport",
    "ETAFactor",
    # Errors
    "CacheStorageError",
    "WeatherServiceError",
    # Functions
    "analyze_merchant_load",
    "get_all_merchants_load",
    "calculate_order_priority",
    "sort_orders_by_priority",
    "load_snapshot",
    "haversine_distance",
    "travel_minutes",
    # Config
    "VEHICLE_SPEEDS_KMH",
    "ROUTE_TTL_SECONDS",
    "ETA_TTL_SECONDS",
    "DEFAULT_PREP_TIME_MINS",
]
