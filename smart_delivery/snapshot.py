# smart-delivery-engine/smart_delivery/snapshot.py
"""
Snapshot loading for the Smart Dispatch & ETA Engine.

The engine never owns its data: merchants, drivers and orders live in external
storage and are read as a point-in-time snapshot before each computation. This
module reads such a snapshot from three CSV exports.

Expected columns:
    merchants: merchant_id, name, lat, lng, avg_prep_time_minutes, delivery_fee
    drivers:   driver_id, name, is_active, vehicle_type, lat, lng, rating, total_deliveries
    orders:    order_id, merchant_id, status, created_at, driver_id, total,
               subtotal, delivery_fee, payment_method

Blank optional cells (coordinates, prep time, driver id) are read as missing.
"""

from __future__ import annotations

import csv
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from . import config
from .models import Driver, GeoPoint, Merchant, Order, OrderStatus

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """
    A point-in-time copy of the marketplace.

    Attributes:
        merchants: Merchant catalog, in file order
        drivers: Driver fleet, in file order
        orders: Orders of the day, in file order
        taken_at: When the snapshot was read
    """
    merchants: List[Merchant] = field(default_factory=list)
    drivers: List[Driver] = field(default_factory=list)
    orders: List[Order] = field(default_factory=list)
    taken_at: Optional[datetime] = None

    @property
    def merchants_by_id(self) -> Dict[str, Merchant]:
        return {m.merchant_id: m for m in self.merchants}

    def merchant(self, merchant_id: str) -> Optional[Merchant]:
        """Look up a merchant by id, None if it is not in the catalog."""
        for m in self.merchants:
            if m.merchant_id == merchant_id:
                return m
        return None

    def driver(self, driver_id: str) -> Optional[Driver]:
        for d in self.drivers:
            if d.driver_id == driver_id:
                return d
        return None


# =============================================================================
# CELL PARSERS
# =============================================================================

def _blank(value: Optional[str]) -> bool:
    return value is None or value.strip() == ""


def _optional_float(value: Optional[str]) -> Optional[float]:
    return None if _blank(value) else float(value)


def _optional_point(lat: Optional[str], lng: Optional[str]) -> Optional[GeoPoint]:
    if _blank(lat) or _blank(lng):
        return None
    return GeoPoint(lat=float(lat), lng=float(lng))


def _parse_bool(value: Optional[str], default: bool = True) -> bool:
    if _blank(value):
        return default
    normalized = value.strip().lower()
    if normalized in ("1", "true", "yes", "y"):
        return True
    if normalized in ("0", "false", "no", "n"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _parse_datetime(value: str) -> datetime:
    # Accept both '2025-01-15 18:07:14' and ISO '2025-01-15T18:07:14'
    value = value.strip()
    if " " in value:
        return datetime.strptime(value, "%Y-%m-%d %H:%M:%S")
    return datetime.fromisoformat(value)


# =============================================================================
# ROW READERS
# =============================================================================

def _read_rows(path: str) -> List[Dict[str, str]]:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Snapshot file not found: {path}")
    with open(path, "r", encoding="utf-8", newline="") as f:
        return list(csv.DictReader(f))


def load_merchants(merchant_file: str) -> List[Merchant]:
    """Read the merchant catalog. Rows without coordinates use the pre-seeded ones."""
    merchants: List[Merchant] = []
    for line, row in enumerate(_read_rows(merchant_file), start=2):
        try:
            merchant_id = row["merchant_id"].strip()
            location = _optional_point(row.get("lat"), row.get("lng"))
            if location is None and merchant_id in config.MERCHANT_COORDS:
                lat, lng = config.MERCHANT_COORDS[merchant_id]
                location = GeoPoint(lat=lat, lng=lng)

            prep = _optional_float(row.get("avg_prep_time_minutes"))
            merchants.append(Merchant(
                merchant_id=merchant_id,
                name=(row.get("name") or "").strip(),
                location=location,
                avg_prep_time_minutes=int(prep) if prep is not None else None,
                delivery_fee=_optional_float(row.get("delivery_fee")) or 0.0,
            ))
        except (KeyError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid merchant data in {merchant_file} (line {line}): {e}")
    return merchants


def load_drivers(driver_file: str) -> List[Driver]:
    """Read the driver fleet."""
    drivers: List[Driver] = []
    for line, row in enumerate(_read_rows(driver_file), start=2):
        try:
            drivers.append(Driver(
                driver_id=row["driver_id"].strip(),
                name=(row.get("name") or "").strip(),
                is_active=_parse_bool(row.get("is_active")),
                vehicle_type=(row.get("vehicle_type") or config.DEFAULT_VEHICLE_TYPE).strip().lower(),
                current_location=_optional_point(row.get("lat"), row.get("lng")),
                rating=_optional_float(row.get("rating")) or 0.0,
                total_deliveries=int(_optional_float(row.get("total_deliveries")) or 0),
            ))
        except (KeyError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid driver data in {driver_file} (line {line}): {e}")
    return drivers


def load_orders(order_file: str) -> List[Order]:
    """Read the orders. Unknown status values are rejected."""
    orders: List[Order] = []
    for line, row in enumerate(_read_rows(order_file), start=2):
        try:
            driver_id = row.get("driver_id")
            orders.append(Order(
                order_id=row["order_id"].strip(),
                merchant_id=row["merchant_id"].strip(),
                status=OrderStatus(row["status"].strip().lower()),
                created_at=_parse_datetime(row["created_at"]),
                driver_id=None if _blank(driver_id) else driver_id.strip(),
                total=_optional_float(row.get("total")) or 0.0,
                subtotal=_optional_float(row.get("subtotal")) or 0.0,
                delivery_fee=_optional_float(row.get("delivery_fee")) or 0.0,
                payment_method=(row.get("payment_method") or "cash").strip().lower(),
            ))
        except (KeyError, ValueError, AttributeError) as e:
            raise ValueError(f"Invalid order data in {order_file} (line {line}): {e}")
    return orders


def load_snapshot(merchant_file: str, driver_file: str, order_file: str) -> Snapshot:
    """
    Load a marketplace snapshot from CSV files.

    Args:
        merchant_file: Path to merchants CSV
        driver_file: Path to drivers CSV
        order_file: Path to orders CSV

    Returns:
        Snapshot with merchants, drivers and orders

    Raises:
        FileNotFoundError: If a file doesn't exist
        ValueError: If a row is malformed (message names the file and line)
    """
    snapshot = Snapshot(
        merchants=load_merchants(merchant_file),
        drivers=load_drivers(driver_file),
        orders=load_orders(order_file),
        taken_at=datetime.now(),
    )
    logger.debug(
        f"Loaded snapshot: {len(snapshot.merchants)} merchants, "
        f"{len(snapshot.drivers)} drivers, {len(snapshot.orders)} orders"
    )
    return snapshot
