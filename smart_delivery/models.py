# smart-delivery-engine/smart_delivery/models.py
"""
Core domain models for the Smart Dispatch & ETA Engine.

This module defines the snapshot records the engine reads:
- GeoPoint: An immutable latitude/longitude pair
- Merchant: A restaurant with its location and average preparation time
- Driver: A courier with vehicle type and last known location
- Order: A customer order with its lifecycle status and totals
- WeatherCondition: The effective weather, expressed as delay and surcharge
- CacheEntry: A value stored in the route cache with its write timestamp

Records are owned by external storage. The engine never mutates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class OrderStatus(Enum):
    """
    Lifecycle states of an order.

    created → confirmed → preparing → ready → searching_driver →
    assigned_to_driver → arrived_at_merchant → picked_up → on_the_way → delivered,
    with cancelled reachable from any pre-pickup state.

    The legacy states (paid, pending, accepted) still appear on older stored orders
    and count toward merchant load.
    """
    CREATED = "created"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    SEARCHING_DRIVER = "searching_driver"
    ASSIGNED_TO_DRIVER = "assigned_to_driver"
    ARRIVED_AT_MERCHANT = "arrived_at_merchant"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    # Legacy statuses
    PAID = "paid"
    PENDING = "pending"
    ACCEPTED = "accepted"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class LoadLevel(Enum):
    """Discrete classification of a merchant's kitchen backlog."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class GeoPoint:
    """A (lat, lng) pair in decimal degrees. No datum correction is applied."""
    lat: float
    lng: float

    def as_tuple(self) -> tuple:
        return (self.lat, self.lng)

    def __repr__(self) -> str:
        return f"GeoPoint({self.lat:.4f}, {self.lng:.4f})"


@dataclass
class Merchant:
    """
    A restaurant in the merchant catalog.

    Attributes:
        merchant_id: Unique identifier
        name: Display name, used in load warnings and ETA factors
        location: Restaurant coordinates, None when unknown
        avg_prep_time_minutes: Published average preparation time, None if unset
        delivery_fee: Base delivery fee before any weather surcharge
    """
    merchant_id: str
    name: str = ""
    location: Optional[GeoPoint] = None
    avg_prep_time_minutes: Optional[int] = None
    delivery_fee: float = 0.0

    def __repr__(self) -> str:
        return f"Merchant({self.merchant_id}, {self.name!r})"


@dataclass
class Driver:
    """
    A courier in the delivery fleet.

    Attributes:
        driver_id: Unique identifier
        name: Display name
        is_active: Whether the driver is on shift
        vehicle_type: 'moto', 'bici' or 'auto'
        current_location: Last GPS position embedded in the record, None if never reported
        rating: Average customer rating
        total_deliveries: Lifetime completed deliveries
    """
    driver_id: str
    name: str = ""
    is_active: bool = True
    vehicle_type: str = "moto"
    current_location: Optional[GeoPoint] = None
    rating: float = 0.0
    total_deliveries: int = 0

    def __repr__(self) -> str:
        state = "active" if self.is_active else "off"
        return f"Driver({self.driver_id}, {self.vehicle_type}, {state})"


@dataclass
class Order:
    """
    A customer order.

    Attributes:
        order_id: Unique identifier
        merchant_id: Restaurant preparing the order
        driver_id: Assigned courier, None until assignment
        status: Current lifecycle state
        created_at: When the order was placed
        total: Amount charged to the customer
        subtotal: Food amount before fees
        delivery_fee: Fee charged for delivery
        payment_method: 'cash', 'card', ...
    """
    order_id: str
    merchant_id: str
    status: OrderStatus
    created_at: datetime
    driver_id: Optional[str] = None
    total: float = 0.0
    subtotal: float = 0.0
    delivery_fee: float = 0.0
    payment_method: str = "cash"

    def __repr__(self) -> str:
        return f"Order({self.order_id}, {self.status.value})"


@dataclass(frozen=True)
class WeatherCondition:
    """
    The effective weather as the engine sees it.

    Attributes:
        condition_id: Stable identifier ('clear', 'rain', 'storm', ...)
        label: Human readable name
        icon: Emoji shown next to the label
        delay_multiplier: Factor applied to the whole ETA, always >= 1.0
        delivery_surcharge: Amount added to the delivery fee, always >= 0
        message: Optional customer-facing notice
    """
    condition_id: str
    label: str
    icon: str
    delay_multiplier: float = 1.0
    delivery_surcharge: float = 0.0
    message: Optional[str] = None


@dataclass
class CacheEntry:
    """
    A value held by the route cache.

    Attributes:
        key: Normalized cache key
        value: Cached payload (plain data, so backends can serialize it)
        stored_at: Cache clock reading at write time, in seconds
    """
    key: str
    value: Any
    stored_at: float = field(default=0.0)

    def is_expired(self, now: float, ttl: Optional[float]) -> bool:
        """True once more than ``ttl`` seconds have passed. A None ttl never expires."""
        if ttl is None:
            return False
        return now - self.stored_at > ttl

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "value": self.value, "stored_at": self.stored_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> CacheEntry:
        return cls(key=data["key"], value=data["value"], stored_at=float(data["stored_at"]))
