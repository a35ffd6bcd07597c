# smart-delivery-engine/smart_delivery/mapping.py
"""pydeck layers for the live dispatch map: merchants by load tier, drivers by availability."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import pydeck as pdk

from . import config
from .load import LoadReport
from .models import Driver, GeoPoint, LoadLevel, Merchant
from .ranking import LocationStore, resolve_driver_location

LOAD_COLORS: Dict[LoadLevel, List[int]] = {
    LoadLevel.LOW: [16, 185, 129],
    LoadLevel.MEDIUM: [251, 191, 36],
    LoadLevel.HIGH: [249, 115, 22],
    LoadLevel.CRITICAL: [239, 68, 68],
}

DRIVER_COLORS: Dict[str, List[int]] = {
    "available": [59, 130, 246],
    "busy": [100, 116, 139],
}


def merchant_points(merchants: Iterable[Merchant], reports: Iterable[LoadReport]) -> List[Dict]:
    """One map point per located merchant, colored by its load tier."""
    by_id = {r.merchant_id: r for r in reports}
    data = []
    for m in merchants:
        if m.location is None:
            continue
        report = by_id.get(m.merchant_id)
        level = report.load_level if report else LoadLevel.LOW
        active = report.active_order_count if report else 0
        data.append({
            "position": [m.location.lng, m.location.lat],
            "level": level.value,
            "color": LOAD_COLORS[level],
            "label": f"{m.name or m.merchant_id} · {level.value} ({active} active)",
        })
    return data


def driver_points(
    drivers: Iterable[Driver],
    busy_ids: Iterable[str],
    store: Optional[LocationStore] = None,
) -> List[Dict]:
    """One map point per active driver with a known position."""
    busy_ids = set(busy_ids)
    data = []
    for d in drivers:
        if not d.is_active:
            continue
        location = resolve_driver_location(d, store)
        if location is None:
            continue
        state = "busy" if d.driver_id in busy_ids else "available"
        data.append({
            "position": [location.lng, location.lat],
            "status": state,
            "color": DRIVER_COLORS[state],
            "label": f"{d.name or d.driver_id} · {d.vehicle_type} · {state}",
        })
    return data


def merchant_layer(data: List[Dict]) -> pdk.Layer:
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=35,
        pickable=True,
        stroked=True,
        filled=True,
        line_width_min_pixels=1,
    )


def driver_layer(data: List[Dict]) -> pdk.Layer:
    return pdk.Layer(
        "ScatterplotLayer",
        data,
        get_position="position",
        get_fill_color="color",
        get_radius=20,
        opacity=0.8,
        pickable=True,
    )


def build_deck(
    merchant_data: List[Dict],
    driver_data: List[Dict],
    center: Optional[GeoPoint] = None,
    zoom: int = 15,
) -> pdk.Deck:
    if center is None:
        center = GeoPoint(*config.CITY_CENTER)
    view_state = pdk.ViewState(latitude=center.lat, longitude=center.lng, zoom=zoom)
    return pdk.Deck(
        layers=[merchant_layer(merchant_data), driver_layer(driver_data)],
        initial_view_state=view_state,
        tooltip={"text": "{label}"},
    )
