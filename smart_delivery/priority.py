# smart-delivery-engine/smart_delivery/priority.py
"""
Order priority scoring for driver-facing queues.

Key Design Principles:
1. Higher score = more urgent = shown first
2. Age dominates: an order that has waited longer never scores lower,
   with escalating bonuses past 30 and 45 minutes
3. Value and cash payment only break ties between orders of similar age
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from . import config
from .models import Order, OrderStatus
from .utils import age_minutes

QUEUE_STATUSES = frozenset({OrderStatus.READY, OrderStatus.SEARCHING_DRIVER})
"""Orders a driver can pick up right now."""


def calculate_order_priority(order: Order, now: Optional[datetime] = None) -> float:
    """
    Score an order for queue ordering.

    The score is built from:
    1. Age: 2 points per minute, capped at 60
    2. Value: order total / 10, capped at 20
    3. Cash payment: +5 (quicker handover)
    4. Staleness: +20 past 30 minutes, a further +30 past 45 minutes

    The score is left unrounded: below the age cap it grows with every second
    an order waits, and it never decreases with age.

    Args:
        order: The order to score
        now: Reference instant (defaults to the current time)

    Returns:
        Priority score (higher is more urgent)
    """
    age = age_minutes(order.created_at, now)
    score = 0.0

    score += min(age * config.PRIORITY_AGE_WEIGHT, config.PRIORITY_AGE_CAP)
    score += min((order.total or 0.0) / config.PRIORITY_VALUE_DIVISOR, config.PRIORITY_VALUE_CAP)

    if order.payment_method == "cash":
        score += config.PRIORITY_CASH_BONUS

    if age > config.PRIORITY_STALE_MINS:
        score += config.PRIORITY_STALE_BONUS
    if age > config.PRIORITY_VERY_STALE_MINS:
        score += config.PRIORITY_VERY_STALE_BONUS

    return score


def sort_orders_by_priority(orders: Iterable[Order], now: Optional[datetime] = None) -> List[Order]:
    """
    Sort orders by priority, highest first.

    The sort is stable: orders with equal scores keep their input order, so the
    queue does not reshuffle between refreshes. All orders are scored against
    the same instant.
    """
    if now is None:
        now = datetime.now()
    return sorted(orders, key=lambda o: calculate_order_priority(o, now), reverse=True)


def prioritized_queue(orders: Iterable[Order], now: Optional[datetime] = None) -> List[Order]:
    """Orders waiting for a driver (ready / searching_driver), most urgent first."""
    return sort_orders_by_priority(
        (o for o in orders if o.status in QUEUE_STATUSES), now
    )
