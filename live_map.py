"""Streamlit map: live driver positions against merchant load.

Run:
    streamlit run live_map.py

Push GPS fixes for drivers and watch the proximity ranking for a restaurant
change. Fixes go to the location store, which takes precedence over the
position in the driver export.
"""

from __future__ import annotations

from typing import Dict, List

import streamlit as st

from smart_delivery import config
from smart_delivery.engine import SmartDeliveryEngine
from smart_delivery.mapping import build_deck, driver_points, merchant_points
from smart_delivery.ranking import MemoryLocationStore, busy_driver_ids
from smart_delivery.snapshot import Snapshot, load_snapshot

# -----------------------------------------------------------------------------
# Data
# -----------------------------------------------------------------------------

DATASET = config.DATASETS["tlapa_lunch"]


@st.cache_data(show_spinner=False)
def get_snapshot() -> Snapshot:
    return load_snapshot(DATASET["merchants"], DATASET["drivers"], DATASET["orders"])


def get_location_store() -> MemoryLocationStore:
    # Per browser session, so fixes pushed here don't leak into other sessions
    if "location_store" not in st.session_state:
        st.session_state["location_store"] = MemoryLocationStore()
    return st.session_state["location_store"]


def ranking_rows(engine: SmartDeliveryEngine, merchant_id: str) -> List[Dict]:
    return [
        {
            "driver": r.driver.name or r.driver.driver_id,
            "vehicle": r.vehicle_type,
            "km": r.distance_km,
            "pickup_min": r.estimated_pickup_minutes,
            "status": "busy" if r.is_busy else "available",
            "source": "gps push" if engine.location_store.get(r.driver.driver_id) else "export",
        }
        for r in engine.get_driver_ranking(merchant_id)
    ]


# -----------------------------------------------------------------------------
# UI
# -----------------------------------------------------------------------------

st.set_page_config(page_title="Live Dispatch Map", page_icon="🗺️", layout="wide")
st.title("🗺️ Live Dispatch Map")
st.write("**Demo:** Tlapa lunch rush. Kitchens are colored by load, drivers by availability.")

snapshot = get_snapshot()
engine = SmartDeliveryEngine(lambda: snapshot, location_store=get_location_store())

names = {m.merchant_id: m.name or m.merchant_id for m in snapshot.merchants}
merchant_id = st.radio(
    "Restaurant", list(names.keys()), format_func=lambda mid: names[mid], horizontal=True
)

col1, col2 = st.columns([1, 2])
with col1:
    st.markdown("**Push a GPS fix**")
    active = [d for d in snapshot.drivers if d.is_active]
    driver_id = st.selectbox(
        "Driver", [d.driver_id for d in active],
        format_func=lambda did: next(d.name or d.driver_id for d in active if d.driver_id == did),
    )
    lat = st.number_input("Latitude", value=config.CITY_CENTER[0], format="%.4f")
    lng = st.number_input("Longitude", value=config.CITY_CENTER[1], format="%.4f")
    if st.button("📍 Update location", use_container_width=True):
        point = engine.update_driver_location(driver_id, lat, lng)
        st.success(f"{driver_id} now at {point.lat:.4f}, {point.lng:.4f}")

with col2:
    st.markdown(f"**Ranking for {names[merchant_id]}**")
    rows = ranking_rows(engine, merchant_id)
    if rows:
        st.dataframe(rows, use_container_width=True, hide_index=True)
    else:
        st.info("No active drivers with a known location.")

deck = build_deck(
    merchant_points(snapshot.merchants, engine.get_all_merchants_load()),
    driver_points(snapshot.drivers, busy_driver_ids(snapshot.orders), engine.location_store),
)
st.pydeck_chart(deck)
