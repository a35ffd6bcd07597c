# smart-delivery-engine/smart_delivery/load.py
"""
Merchant load analysis.

Counts the orders a kitchen is currently working on and turns that backlog into
a load tier and a preparation-time multiplier. The tiers are fixed:

    active orders   tier       prep multiplier
    0-2             low        x1.00
    3-4             medium     x1.15
    5-6             high       x1.35
    7+              critical   x1.60

Only pre-pickup states count as active: paid, accepted, preparing, ready.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from . import config
from .models import LoadLevel, Merchant, Order, OrderStatus

ACTIVE_STATUSES = frozenset({
    OrderStatus.PAID,
    OrderStatus.ACCEPTED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})

WAITING_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.ACCEPTED})

LOAD_ICONS = {
    LoadLevel.LOW: "✅",
    LoadLevel.MEDIUM: "⏳",
    LoadLevel.HIGH: "🔥",
    LoadLevel.CRITICAL: "🚨",
}


@dataclass
class LoadReport:
    """
    Current load of one merchant.

    Attributes:
        merchant_id: The merchant analyzed
        active_order_count: Orders paid/accepted/preparing/ready
        load_level: Tier derived from the active count
        prep_time_multiplier: Factor applied to the merchant's prep time
        preparing_count: Active orders with status 'preparing'
        waiting_count: Active orders with status 'paid' or 'accepted'
        warning: Customer-facing notice, None at low load
        icon: Emoji for the tier
    """
    merchant_id: str
    active_order_count: int
    load_level: LoadLevel
    prep_time_multiplier: float
    preparing_count: int = 0
    waiting_count: int = 0
    warning: Optional[str] = None
    icon: str = "✅"

    @property
    def is_overloaded(self) -> bool:
        return self.load_level in (LoadLevel.HIGH, LoadLevel.CRITICAL)


def classify_load(active_count: int) -> tuple:
    """
    Map an active order count to its (LoadLevel, prep multiplier) tier.

    Example:
        >>> classify_load(5)
        (<LoadLevel.HIGH: 'high'>, 1.35)
    """
    if active_count <= config.LOAD_LOW_MAX:
        return LoadLevel.LOW, config.PREP_MULTIPLIER_LOW
    if active_count <= config.LOAD_MEDIUM_MAX:
        return LoadLevel.MEDIUM, config.PREP_MULTIPLIER_MEDIUM
    if active_count <= config.LOAD_HIGH_MAX:
        return LoadLevel.HIGH, config.PREP_MULTIPLIER_HIGH
    return LoadLevel.CRITICAL, config.PREP_MULTIPLIER_CRITICAL


def _warning_for(level: LoadLevel, merchant_name: Optional[str]) -> Optional[str]:
    name = merchant_name or "This restaurant"
    if level == LoadLevel.MEDIUM:
        return f"{name} has several orders, yours may take a little longer"
    if level == LoadLevel.HIGH:
        return f"{name} is in high demand: preparation time extended"
    if level == LoadLevel.CRITICAL:
        return f"{name} is saturated: delivery times are much longer than usual"
    return None


def analyze_merchant_load(
    merchant_id: str,
    orders: Iterable[Order],
    merchant_name: Optional[str] = None,
) -> LoadReport:
    """
    Analyze a merchant's load from the current order snapshot.

    An unknown merchant simply has no active orders and comes back as low load.

    Args:
        merchant_id: The merchant to analyze
        orders: Current order snapshot (all merchants)
        merchant_name: Used in the warning text when given

    Returns:
        LoadReport for the merchant
    """
    active = [
        o for o in orders
        if o.merchant_id == merchant_id and o.status in ACTIVE_STATUSES
    ]
    level, multiplier = classify_load(len(active))

    return LoadReport(
        merchant_id=merchant_id,
        active_order_count=len(active),
        load_level=level,
        prep_time_multiplier=multiplier,
        preparing_count=sum(1 for o in active if o.status == OrderStatus.PREPARING),
        waiting_count=sum(1 for o in active if o.status in WAITING_STATUSES),
        warning=_warning_for(level, merchant_name),
        icon=LOAD_ICONS[level],
    )


def get_all_merchants_load(merchants: Iterable[Merchant], orders: Iterable[Order]) -> List[LoadReport]:
    """Load report for every merchant, in catalog order (for dashboard-wide views)."""
    orders = list(orders)
    return [
        analyze_merchant_load(m.merchant_id, orders, merchant_name=m.name)
        for m in merchants
    ]


def get_overloaded_merchants(merchants: Iterable[Merchant], orders: Iterable[Order]) -> List[LoadReport]:
    """Merchants currently at high or critical load."""
    return [report for report in get_all_merchants_load(merchants, orders) if report.is_overloaded]
