#!/usr/bin/env python3
# smart-delivery-engine/main.py
"""
Command-Line Interface for the Smart Dispatch & ETA Engine.

Prints the dispatcher's view of a marketplace snapshot without the dashboard:
merchant load, driver ranking for a restaurant, the dynamic ETA a customer
would see, and the driver-facing order queue.

Usage:
    python main.py                                  # All reports, default dataset
    python main.py --report eta --merchant m2       # ETA for one restaurant
    python main.py --report rank --merchant m6      # Driver ranking
    python main.py --weather storm                  # Force a weather condition
    python main.py --live-weather                   # Ask Open-Meteo for the weather
    python main.py --verbose                        # Debug logging

Exit Codes:
    0: Success
    1: Data loading error
    2: Report error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import datetime
from typing import List, Optional

from smart_delivery import config
from smart_delivery.cache import RouteCache
from smart_delivery.engine import SmartDeliveryEngine
from smart_delivery.eta import ETAReport
from smart_delivery.load import LoadReport
from smart_delivery.models import GeoPoint, Order
from smart_delivery.priority import calculate_order_priority
from smart_delivery.ranking import RankedDriver
from smart_delivery.snapshot import Snapshot, load_snapshot
from smart_delivery.utils import age_minutes, format_time_duration
from smart_delivery.weather import (
    WEATHER_CONDITIONS,
    OpenMeteoClient,
    WeatherMonitor,
    adjusted_delivery_fee,
)

REPORTS = ["load", "rank", "eta", "queue", "all"]


def print_header() -> None:
    """Print the CLI header."""
    print("\n" + "=" * 60)
    print("  SMART DISPATCH - Tlapa de Comonfort")
    print("  Merchant Load, Driver Ranking & Dynamic ETA")
    print("=" * 60 + "\n")


def print_load_report(reports: List[LoadReport]) -> None:
    print("\n" + "=" * 60)
    print("  MERCHANT LOAD")
    print("=" * 60 + "\n")

    print(f"| {'Merchant':<10} | {'Active':^6} | {'Waiting':^7} | {'Preparing':^9} | {'Level':^8} | {'Prep x':^6} |")
    print("|" + "-" * 12 + "|" + "-" * 8 + "|" + "-" * 9 + "|" + "-" * 11 + "|" + "-" * 10 + "|" + "-" * 8 + "|")
    for r in reports:
        print(
            f"| {r.merchant_id:<10} | {r.active_order_count:^6} | {r.waiting_count:^7} | "
            f"{r.preparing_count:^9} | {r.icon} {r.load_level.value:<6}| {r.prep_time_multiplier:^6.2f} |"
        )

    warnings = [r.warning for r in reports if r.warning]
    if warnings:
        print()
        for w in warnings:
            print(f"  ! {w}")


def print_ranking(merchant_id: str, ranked: List[RankedDriver]) -> None:
    print("\n" + "=" * 60)
    print(f"  DRIVER RANKING FOR {merchant_id}")
    print("=" * 60 + "\n")

    if not ranked:
        print("  No active drivers with a known location.")
        return

    for i, r in enumerate(ranked, start=1):
        state = "BUSY" if r.is_busy else "free"
        name = r.driver.name or r.driver.driver_id
        print(
            f"  {i}. {name:<18} {r.vehicle_type:<5} {r.distance_km:>5.2f} km  "
            f"~{r.estimated_pickup_minutes:>2} min  [{state}]  ★ {r.rating:.1f}"
        )


def print_eta(merchant_id: str, report: ETAReport, base_fee: Optional[float], engine: SmartDeliveryEngine) -> None:
    print("\n" + "=" * 60)
    print(f"  DYNAMIC ETA FOR {merchant_id}")
    print("=" * 60 + "\n")

    print(f"  Estimated delivery: {report.display_range} min (total {report.total_minutes} min)")
    print(f"    Preparation: {report.prep_time} min")
    print(f"    Pickup:      {report.pickup_time} min")
    print(f"    Delivery:    {report.delivery_time} min")

    if report.best_driver is not None:
        print(f"  Assumed driver: {report.best_driver.driver.name or report.best_driver.driver.driver_id}")

    if report.factors:
        print("\n  Why it takes longer:")
        for f in report.factors:
            print(f"    {f.icon} {f.label} ({f.impact})")

    condition = engine.weather_condition()
    if base_fee is not None and condition is not None and condition.delivery_surcharge:
        fee = adjusted_delivery_fee(base_fee, condition)
        print(f"\n  Delivery fee: ${fee:.2f} (includes ${condition.delivery_surcharge:.2f} weather surcharge)")


def print_queue(orders: List[Order], now: datetime) -> None:
    print("\n" + "=" * 60)
    print("  AVAILABLE ORDERS (most urgent first)")
    print("=" * 60 + "\n")

    if not orders:
        print("  No orders waiting for a driver.")
        return

    for o in orders:
        score = calculate_order_priority(o, now)
        waited = format_time_duration(age_minutes(o.created_at, now))
        print(
            f"  {o.order_id:<6} {o.merchant_id:<4} {o.status.value:<17} waiting {waited:>6}  "
            f"${o.total:>7.2f} {o.payment_method:<5} score {score:6.1f}"
        )


def load_snapshot_safe(dataset_name: str) -> Optional[Snapshot]:
    """
    Load a dataset with graceful error handling.

    Returns:
        The snapshot, or None if it could not be loaded
    """
    if dataset_name not in config.DATASETS:
        print(f"ERROR: Unknown dataset '{dataset_name}'")
        print(f"Available datasets: {', '.join(config.DATASETS.keys())}")
        return None

    dataset = config.DATASETS[dataset_name]
    try:
        snapshot = load_snapshot(dataset["merchants"], dataset["drivers"], dataset["orders"])
    except FileNotFoundError as e:
        print(f"ERROR: {e}")
        print("Please run from the repository root so data/ can be found.")
        return None
    except ValueError as e:
        print(f"ERROR: Failed to load data: {e}")
        return None

    print(
        f"Loaded {len(snapshot.merchants)} merchants, {len(snapshot.drivers)} drivers "
        f"and {len(snapshot.orders)} orders from '{dataset_name}' dataset"
    )
    return snapshot


def parse_now(value: Optional[str], dataset_name: str) -> datetime:
    if value:
        return datetime.fromisoformat(value)
    reference = config.DATASETS.get(dataset_name, {}).get("now")
    return datetime.fromisoformat(reference) if reference else datetime.now()


def main() -> int:
    """
    Main entry point for the CLI.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Smart Dispatch & ETA Engine CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # All reports
  python main.py --report eta --merchant m6       # ETA at a saturated kitchen
  python main.py --report eta --weather storm     # Same, in a storm
  python main.py --list-datasets                  # Show available datasets
        """
    )

    parser.add_argument(
        "--dataset", "-d",
        type=str,
        default="tlapa_lunch",
        help=f"Dataset to use (default: tlapa_lunch). Options: {', '.join(config.DATASETS.keys())}"
    )

    parser.add_argument(
        "--report", "-r",
        choices=REPORTS,
        default="all",
        help="Report to print (default: all)"
    )

    parser.add_argument(
        "--merchant", "-m",
        type=str,
        default="m1",
        help="Merchant for the ranking and ETA reports (default: m1)"
    )

    parser.add_argument("--lat", type=float, default=config.DEFAULT_DELIVERY_POINT[0], help="Delivery latitude")
    parser.add_argument("--lng", type=float, default=config.DEFAULT_DELIVERY_POINT[1], help="Delivery longitude")

    weather_group = parser.add_mutually_exclusive_group()
    weather_group.add_argument(
        "--weather", "-w",
        choices=list(WEATHER_CONDITIONS.keys()),
        help="Force a weather condition"
    )
    weather_group.add_argument(
        "--live-weather",
        action="store_true",
        help="Fetch the current weather from Open-Meteo (falls back to clear)"
    )

    parser.add_argument(
        "--now",
        type=str,
        default=None,
        help="Reference time for order ages, e.g. '2025-06-14 13:30:00' (default: the dataset's)"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging"
    )

    parser.add_argument(
        "--list-datasets",
        action="store_true",
        help="List available datasets and exit"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # List datasets mode
    if args.list_datasets:
        print("\nAvailable Datasets:")
        print("-" * 50)
        for name, info in config.DATASETS.items():
            files = (info["merchants"], info["drivers"], info["orders"])
            exists = "OK" if all(os.path.exists(f) for f in files) else "MISSING"
            print(f"  {name:15} [{exists}] - {info['description']}")
        return 0

    print_header()

    snapshot = load_snapshot_safe(args.dataset)
    if snapshot is None:
        return 1

    try:
        now = parse_now(args.now, args.dataset)
    except ValueError:
        print(f"ERROR: Invalid --now value '{args.now}'")
        return 1

    cache = RouteCache()
    weather = WeatherMonitor(OpenMeteoClient(), cache) if args.live_weather else None
    engine = SmartDeliveryEngine(lambda: snapshot, cache=cache, weather=weather)
    if args.weather:
        engine.weather_override = WEATHER_CONDITIONS[args.weather]
    elif weather is not None:
        report = weather.refresh()
        source = "fallback" if report.is_fallback else "Open-Meteo"
        print(f"Weather: {report.condition.icon} {report.condition.label}, {report.temperature}°C ({source})")

    try:
        wanted = REPORTS[:-1] if args.report == "all" else [args.report]

        if "load" in wanted:
            print_load_report(engine.get_all_merchants_load())

        if "rank" in wanted:
            print_ranking(args.merchant, engine.get_driver_ranking(args.merchant))

        if "eta" in wanted:
            merchant = snapshot.merchant(args.merchant)
            if merchant is None:
                print(f"\nWARN: Unknown merchant '{args.merchant}', showing the default estimate")
            eta = engine.get_dynamic_eta(args.merchant, GeoPoint(args.lat, args.lng))
            print_eta(args.merchant, eta, merchant.delivery_fee if merchant else None, engine)

        if "queue" in wanted:
            print_queue(engine.get_prioritized_orders(now=now), now)
    except Exception as e:
        print(f"ERROR: Report failed: {e}")
        import traceback
        traceback.print_exc()
        return 2
    finally:
        engine.close()

    print("\n" + "=" * 60 + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
