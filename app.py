"""
Smart Dispatch Console
======================================

Dispatcher dashboard for the Smart Dispatch & ETA Engine.

Features:
- Merchant load overview with overload warnings
- Driver ranking for any restaurant
- Dynamic ETA breakdown with the factors a customer sees
- Driver-facing order queue by priority
- Live map of merchants by load tier and drivers by availability
- Weather: live from Open-Meteo or forced for what-if checks
"""

import streamlit as st
import pandas as pd
from datetime import datetime
from typing import Dict, List, Optional

from smart_delivery import config
from smart_delivery.cache import RouteCache
from smart_delivery.engine import SmartDeliveryEngine
from smart_delivery.eta import ETAReport
from smart_delivery.load import LoadReport
from smart_delivery.mapping import build_deck, driver_points, merchant_points
from smart_delivery.models import GeoPoint, Order
from smart_delivery.priority import calculate_order_priority
from smart_delivery.ranking import RankedDriver, busy_driver_ids
from smart_delivery.snapshot import Snapshot, load_snapshot
from smart_delivery.utils import age_minutes
from smart_delivery.weather import (
    WEATHER_CONDITIONS,
    OpenMeteoClient,
    WeatherMonitor,
    adjusted_delivery_fee,
)

# =============================================================================
# PAGE CONFIG
# =============================================================================

st.set_page_config(
    page_title="Smart Dispatch Console",
    page_icon="🛵",
    layout="wide",
    initial_sidebar_state="expanded"
)

# =============================================================================
# CUSTOM STYLING
# =============================================================================

st.markdown("""
<style>
    .main .block-container {
        padding-top: 2rem;
        padding-bottom: 2rem;
    }

    .kpi-card {
        background: linear-gradient(135deg, #667eea 0%, #764ba2 100%);
        border-radius: 16px;
        padding: 1.25rem;
        color: white;
        text-align: center;
        box-shadow: 0 10px 40px rgba(102, 126, 234, 0.3);
    }

    .kpi-card.green {
        background: linear-gradient(135deg, #11998e 0%, #38ef7d 100%);
    }

    .kpi-card.orange {
        background: linear-gradient(135deg, #f093fb 0%, #f5576c 100%);
    }

    .kpi-value {
        font-size: 2.2rem;
        font-weight: 800;
        margin: 0.4rem 0;
    }

    .kpi-label {
        font-size: 0.85rem;
        opacity: 0.9;
        text-transform: uppercase;
        letter-spacing: 1px;
    }

    .section-header {
        font-size: 1.4rem;
        font-weight: 700;
        color: #1a1a2e;
        margin: 1.5rem 0 1rem 0;
        padding-bottom: 0.5rem;
        border-bottom: 3px solid #667eea;
    }

    .eta-card {
        padding: 1rem 1.25rem;
        background: #0f172a;
        color: #e2e8f0;
        border-radius: 12px;
    }

    .eta-range {
        font-size: 2.4rem;
        font-weight: 800;
    }
</style>
""", unsafe_allow_html=True)


# =============================================================================
# DATA LOADING
# =============================================================================

@st.cache_data(show_spinner=False)
def load_dataset(merchant_file: str, driver_file: str, order_file: str) -> Snapshot:
    """Load and cache a snapshot export."""
    return load_snapshot(merchant_file, driver_file, order_file)


@st.cache_resource
def get_route_cache() -> RouteCache:
    """One route cache per server process, shared by every session."""
    return RouteCache()


@st.cache_resource
def get_weather_monitor() -> WeatherMonitor:
    monitor = WeatherMonitor(OpenMeteoClient(), get_route_cache())
    monitor.start()
    return monitor


# =============================================================================
# SIDEBAR
# =============================================================================

def render_sidebar() -> Optional[Dict]:
    """Render the sidebar configuration panel."""
    st.sidebar.markdown("## 🎛️ Configuration")
    st.sidebar.markdown("---")

    # Dataset selection
    st.sidebar.markdown("### 📊 Dataset")
    selected_dataset = st.sidebar.selectbox(
        "Select Dataset",
        options=list(config.DATASETS.keys()),
        index=0,
        help="Snapshot export to inspect"
    )
    dataset = config.DATASETS[selected_dataset]

    try:
        snapshot = load_dataset(dataset["merchants"], dataset["drivers"], dataset["orders"])
    except (FileNotFoundError, ValueError) as e:
        st.sidebar.error(f"Failed to load data: {e}")
        return None

    st.sidebar.success(
        f"Loaded {len(snapshot.merchants)} merchants, {len(snapshot.drivers)} drivers, "
        f"{len(snapshot.orders)} orders"
    )

    use_export_time = st.sidebar.checkbox(
        "Use export time as 'now'",
        value=True,
        help="Order ages are measured from the moment the export was taken"
    )
    now = datetime.fromisoformat(dataset["now"]) if use_export_time else datetime.now()

    # Order
    st.sidebar.markdown("---")
    st.sidebar.markdown("### 🍽️ New Order")
    names = {m.merchant_id: m.name or m.merchant_id for m in snapshot.merchants}
    merchant_id = st.sidebar.selectbox(
        "Restaurant",
        options=list(names.keys()),
        format_func=lambda mid: names[mid],
    )
    lat = st.sidebar.number_input("Delivery latitude", value=config.DEFAULT_DELIVERY_POINT[0], format="%.4f")
    lng = st.sidebar.number_input("Delivery longitude", value=config.DEFAULT_DELIVERY_POINT[1], format="%.4f")

    # Weather
    st.sidebar.markdown("---")
    st.sidebar.markdown("### 🌦️ Weather")
    weather_mode = st.sidebar.selectbox(
        "Condition",
        options=["live"] + list(WEATHER_CONDITIONS.keys()),
        format_func=lambda c: "Live (Open-Meteo)" if c == "live" else
        f"{WEATHER_CONDITIONS[c].icon} {WEATHER_CONDITIONS[c].label}",
        help="Force a condition to see how the ETA reacts"
    )

    # Tunables
    st.sidebar.markdown("---")
    st.sidebar.markdown("### ⚙️ Parameters")

    default_prep = st.sidebar.slider(
        "Default prep time (minutes)",
        min_value=5,
        max_value=45,
        value=int(config.DEFAULT_PREP_TIME_MINS),
        step=1,
        help="Used for restaurants that don't publish an average"
    )

    distance_threshold = st.sidebar.slider(
        "Far driver threshold (km)",
        min_value=0.5,
        max_value=5.0,
        value=float(config.DISTANCE_FACTOR_THRESHOLD_KM),
        step=0.25,
        help="Drivers farther than this are shown as an ETA factor"
    )

    return {
        "snapshot": snapshot,
        "now": now,
        "merchant_id": merchant_id,
        "delivery_point": GeoPoint(lat, lng),
        "weather_mode": weather_mode,
        "default_prep": default_prep,
        "distance_threshold": distance_threshold,
    }


# =============================================================================
# KPI DISPLAY
# =============================================================================

def render_kpi_row(snapshot: Snapshot, loads: List[LoadReport], engine: SmartDeliveryEngine) -> None:
    """Render the top KPI cards."""
    active_orders = sum(r.active_order_count for r in loads)
    overloaded = sum(1 for r in loads if r.is_overloaded)
    busy = busy_driver_ids(snapshot.orders)
    available = sum(1 for d in snapshot.drivers if d.is_active and d.driver_id not in busy)
    condition = engine.weather_condition() or WEATHER_CONDITIONS["clear"]

    cards = [
        ("", "Active Orders", active_orders),
        ("orange" if overloaded else "green", "Overloaded Kitchens", overloaded),
        ("green" if available else "orange", "Available Drivers", available),
        ("", "Weather", f"{condition.icon} {condition.label}"),
    ]
    for col, (style, label, value) in zip(st.columns(4), cards):
        with col:
            st.markdown(f"""
            <div class="kpi-card {style}">
                <div class="kpi-label">{label}</div>
                <div class="kpi-value">{value}</div>
            </div>
            """, unsafe_allow_html=True)


# =============================================================================
# TABLES
# =============================================================================

def render_load_table(loads: List[LoadReport], names: Dict[str, str]) -> None:
    st.markdown('<div class="section-header">🍳 Merchant Load</div>', unsafe_allow_html=True)

    df = pd.DataFrame([
        {
            "Merchant": names.get(r.merchant_id, r.merchant_id),
            "Level": f"{r.icon} {r.load_level.value}",
            "Active": r.active_order_count,
            "Waiting": r.waiting_count,
            "Preparing": r.preparing_count,
            "Prep ×": f"{r.prep_time_multiplier:.2f}",
        }
        for r in loads
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)

    for r in loads:
        if r.is_overloaded and r.warning:
            st.warning(f"{r.icon} {r.warning}")


def render_ranking_table(ranked: List[RankedDriver]) -> None:
    st.markdown('<div class="section-header">🛵 Driver Ranking</div>', unsafe_allow_html=True)

    if not ranked:
        st.info("No active drivers with a known location.")
        return

    df = pd.DataFrame([
        {
            "Driver": r.driver.name or r.driver.driver_id,
            "Vehicle": r.vehicle_type,
            "Distance (km)": r.distance_km,
            "Pickup (min)": r.estimated_pickup_minutes,
            "Status": "busy" if r.is_busy else "available",
            "Rating": r.rating,
            "Deliveries": r.total_deliveries,
        }
        for r in ranked
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)


def render_eta(report: ETAReport, base_fee: float, engine: SmartDeliveryEngine) -> None:
    st.markdown('<div class="section-header">⏱️ Dynamic ETA</div>', unsafe_allow_html=True)

    col1, col2 = st.columns([1, 1])
    with col1:
        condition = engine.weather_condition()
        fee = adjusted_delivery_fee(base_fee, condition)
        st.markdown(
            f"<div class='eta-card'>"
            f"<div class='kpi-label'>Estimated delivery</div>"
            f"<div class='eta-range'>{report.display_range} min</div>"
            f"Prep {report.prep_time} · Pickup {report.pickup_time} · Delivery {report.delivery_time}"
            f"<br>Delivery fee: ${fee:.2f}"
            f"</div>",
            unsafe_allow_html=True,
        )
        if condition is not None and condition.message:
            st.info(f"{condition.icon} {condition.message}")

    with col2:
        if report.factors:
            st.markdown("**Why it takes longer**")
            for f in report.factors:
                st.markdown(f"- {f.icon} {f.label} · **{f.impact}**")
        else:
            st.markdown("**No delays right now** ✅")


def render_queue(orders: List[Order], now: datetime, names: Dict[str, str]) -> None:
    st.markdown('<div class="section-header">📋 Available Orders</div>', unsafe_allow_html=True)

    if not orders:
        st.info("No orders waiting for a driver.")
        return

    df = pd.DataFrame([
        {
            "Order": o.order_id,
            "Merchant": names.get(o.merchant_id, o.merchant_id),
            "Status": o.status.value,
            "Waiting (min)": round(age_minutes(o.created_at, now), 1),
            "Total": o.total,
            "Payment": o.payment_method,
            "Priority": round(calculate_order_priority(o, now), 1),
        }
        for o in orders
    ])
    st.dataframe(df, use_container_width=True, hide_index=True)


# =============================================================================
# MAIN APPLICATION
# =============================================================================

def main():
    """Main application entry point."""

    st.markdown("""
    <div style="text-align: center; padding: 1rem 0 2rem 0;">
        <h1 style="font-size: 2.6rem; font-weight: 800; margin-bottom: 0.5rem;">
            🛵 Smart Dispatch Console
        </h1>
        <p style="font-size: 1.1rem; color: #666; max-width: 700px; margin: 0 auto;">
            Kitchen load, driver proximity and honest ETAs for Tlapa de Comonfort
        </p>
    </div>
    """, unsafe_allow_html=True)

    settings = render_sidebar()
    if settings is None:
        st.error("No snapshot available. Check the data/ directory.")
        return

    snapshot: Snapshot = settings["snapshot"]
    now: datetime = settings["now"]
    names = {m.merchant_id: m.name or m.merchant_id for m in snapshot.merchants}

    weather = get_weather_monitor() if settings["weather_mode"] == "live" else None
    # Sidebar tunables apply to this session's engine only
    engine = SmartDeliveryEngine(
        lambda: snapshot,
        cache=get_route_cache(),
        weather=weather,
        default_prep_minutes=settings["default_prep"],
        distance_threshold_km=settings["distance_threshold"],
    )
    if settings["weather_mode"] != "live":
        engine.weather_override = WEATHER_CONDITIONS[settings["weather_mode"]]

    loads = engine.get_all_merchants_load()
    render_kpi_row(snapshot, loads, engine)

    merchant_id = settings["merchant_id"]
    merchant = snapshot.merchant(merchant_id)
    eta = engine.get_dynamic_eta(merchant_id, settings["delivery_point"])
    render_eta(eta, merchant.delivery_fee if merchant else 0.0, engine)

    col1, col2 = st.columns([1, 1])
    with col1:
        render_load_table(loads, names)
    with col2:
        render_ranking_table(engine.get_driver_ranking(merchant_id))

    render_queue(engine.get_prioritized_orders(now=now), now, names)

    # Map
    st.markdown('<div class="section-header">🗺️ Live Map</div>', unsafe_allow_html=True)
    deck = build_deck(
        merchant_points(snapshot.merchants, loads),
        driver_points(snapshot.drivers, busy_driver_ids(snapshot.orders), engine.location_store),
    )
    st.pydeck_chart(deck)

    stats = engine.cache.stats()
    st.markdown("---")
    st.caption(
        f"Route cache: {stats['eta']} distances, {stats['geocode']} geocodes, "
        f"{stats['hits']} hits / {stats['misses']} misses"
    )


if __name__ == "__main__":
    main()
