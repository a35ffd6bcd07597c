# smart-delivery-engine/smart_delivery/weather.py
"""
Weather conditions for the Smart Dispatch & ETA Engine.

Uses the Open-Meteo API (free, no API key) to read the current weather over the
city and maps its WMO weather code onto a small set of delivery conditions,
each with a delay multiplier and a delivery-fee surcharge.

WMO weather codes:
    0        clear sky
    1-3      mainly clear, partly cloudy, overcast
    45, 48   fog
    51-57    drizzle (incl. freezing drizzle)
    61-67    rain (slight, moderate, heavy, freezing)
    71-77    snow
    80-82    rain showers
    85-86    snow showers
    95-99    thunderstorm (with or without hail)

Weather is never allowed to break an ETA: when the API is unreachable the
monitor falls back to clear weather.
"""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import requests

from . import config
from .cache import RouteCache
from .models import WeatherCondition
from .utils import js_round

logger = logging.getLogger(__name__)


class WeatherServiceError(Exception):
    """Raised when the weather API cannot be reached or returns unusable data."""
    pass


WEATHER_CONDITIONS: Dict[str, WeatherCondition] = {
    "clear": WeatherCondition("clear", "Clear", "☀️", 1.0, 0),
    "cloudy": WeatherCondition("cloudy", "Cloudy", "⛅", 1.0, 0),
    "fog": WeatherCondition(
        "fog", "Fog", "🌫️", 1.15, 5,
        "Foggy: delivery times may be slightly longer",
    ),
    "drizzle": WeatherCondition(
        "drizzle", "Drizzle", "🌦️", 1.2, 5,
        "Light drizzle: your order may take a little longer",
    ),
    "rain": WeatherCondition(
        "rain", "Rain", "🌧️", 1.35, 10,
        "It's raining: delivery times will be longer than usual",
    ),
    "heavy_rain": WeatherCondition(
        "heavy_rain", "Heavy rain", "⛈️", 1.5, 15,
        "Heavy rain! Drivers are taking extra precautions",
    ),
    "storm": WeatherCondition(
        "storm", "Storm", "🌩️", 1.7, 20,
        "Thunderstorm: deliveries may be significantly delayed",
    ),
}

RAINY_CONDITIONS = frozenset({"drizzle", "rain", "heavy_rain", "storm"})


def weather_code_to_condition(code: int) -> WeatherCondition:
    """
    Map an Open-Meteo (WMO) weather code to a delivery condition.

    Unknown codes are treated as clear weather.
    """
    if code == 0:
        return WEATHER_CONDITIONS["clear"]
    if 1 <= code <= 3:
        return WEATHER_CONDITIONS["cloudy"]
    if code in (45, 48):
        return WEATHER_CONDITIONS["fog"]
    if 51 <= code <= 57:
        return WEATHER_CONDITIONS["drizzle"]
    if code in (61, 63, 80, 81):
        return WEATHER_CONDITIONS["rain"]
    if code in (65, 82):
        return WEATHER_CONDITIONS["heavy_rain"]
    if 66 <= code <= 67:
        return WEATHER_CONDITIONS["rain"]
    if 71 <= code <= 77:
        # Snow is unheard of here; treat it as slow going like fog
        return WEATHER_CONDITIONS["fog"]
    if 85 <= code <= 86:
        return WEATHER_CONDITIONS["rain"]
    if code >= 95:
        return WEATHER_CONDITIONS["storm"]
    return WEATHER_CONDITIONS["clear"]


@dataclass
class WeatherReport:
    """
    Current weather over the city.

    Attributes:
        temperature: Rounded temperature in °C
        weather_code: Raw WMO code
        condition: Delivery condition derived from the code
        wind_speed: Wind speed at 10 m (km/h)
        humidity: Relative humidity (%)
        precipitation: Precipitation (mm)
        is_raining: Condition is drizzle, rain, heavy rain or storm
        fetched_at: When the report was produced
        is_fallback: True if the API was unavailable and clear weather was assumed
    """
    temperature: int
    weather_code: int
    condition: WeatherCondition
    wind_speed: float = 0.0
    humidity: float = 0.0
    precipitation: float = 0.0
    is_raining: bool = False
    fetched_at: Optional[datetime] = None
    is_fallback: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["fetched_at"] = self.fetched_at.isoformat() if self.fetched_at else None
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> WeatherReport:
        fetched_at = data.get("fetched_at")
        return cls(
            temperature=data["temperature"],
            weather_code=data["weather_code"],
            condition=WeatherCondition(**data["condition"]),
            wind_speed=data.get("wind_speed", 0.0),
            humidity=data.get("humidity", 0.0),
            precipitation=data.get("precipitation", 0.0),
            is_raining=data.get("is_raining", False),
            fetched_at=datetime.fromisoformat(fetched_at) if fetched_at else None,
            is_fallback=data.get("is_fallback", False),
        )


def fallback_report() -> WeatherReport:
    """Clear-weather report used when the real weather is unavailable."""
    return WeatherReport(
        temperature=28,
        weather_code=0,
        condition=WEATHER_CONDITIONS["clear"],
        wind_speed=5.0,
        humidity=60.0,
        precipitation=0.0,
        is_raining=False,
        fetched_at=datetime.now(),
        is_fallback=True,
    )


class OpenMeteoClient:
    """
    Open-Meteo adapter.

    Sole responsibility: talk to the forecast endpoint over HTTP and return a
    normalized WeatherReport. No caching or fallback here; see WeatherMonitor.
    """

    def __init__(
        self,
        latitude: float = config.CITY_CENTER[0],
        longitude: float = config.CITY_CENTER[1],
        timeout: float = config.WEATHER_TIMEOUT_SECONDS,
        base_url: str = config.WEATHER_API_URL,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.latitude = latitude
        self.longitude = longitude
        self.timeout = timeout
        self.base_url = base_url
        self.session = session or requests.Session()

    def fetch_current(self) -> WeatherReport:
        """
        Fetch the current weather.

        Raises:
            WeatherServiceError: on timeout, HTTP error or malformed payload
        """
        params = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "current": "temperature_2m,relative_humidity_2m,weather_code,wind_speed_10m,precipitation",
            "timezone": config.WEATHER_TIMEZONE,
        }
        try:
            response = self.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            current = response.json()["current"]

            condition = weather_code_to_condition(int(current["weather_code"]))
            return WeatherReport(
                temperature=js_round(float(current["temperature_2m"])),
                weather_code=int(current["weather_code"]),
                condition=condition,
                wind_speed=float(current.get("wind_speed_10m") or 0.0),
                humidity=float(current.get("relative_humidity_2m") or 0.0),
                precipitation=float(current.get("precipitation") or 0.0),
                is_raining=condition.condition_id in RAINY_CONDITIONS,
                fetched_at=datetime.now(),
            )
        except requests.exceptions.Timeout as e:
            raise WeatherServiceError("weather request timed out") from e
        except requests.exceptions.RequestException as e:
            raise WeatherServiceError(f"weather request failed: {e}") from e
        except (KeyError, ValueError, TypeError) as e:
            raise WeatherServiceError(f"weather response parsing failed: {e}") from e


class WeatherMonitor:
    """
    Keeps the effective weather condition fresh.

    ``refresh`` reads the cached report (15 min TTL) or fetches a new one through
    the cache's request deduplication, so overlapping refreshes share one HTTP
    call. ``start`` repeats the refresh on a fixed period in a daemon timer.

    Attributes:
        client: Object with a ``fetch_current() -> WeatherReport`` method
        cache: RouteCache used for the weather category and deduplication
        interval: Seconds between background refreshes
    """

    DEDUP_KEY = "weather:current"

    def __init__(
        self,
        client: Any,
        cache: RouteCache,
        interval: float = config.WEATHER_REFRESH_SECONDS,
    ) -> None:
        self.client = client
        self.cache = cache
        self.interval = interval

        self._lock = threading.Lock()
        self._report: Optional[WeatherReport] = None
        self._timer: Optional[threading.Timer] = None
        self._running = False

    def _fetch_and_store(self) -> Dict[str, Any]:
        report = self.client.fetch_current()
        data = report.to_dict()
        self.cache.put_weather(data)
        return data

    def _cached_report(self) -> Optional[WeatherReport]:
        cached = self.cache.get_weather()
        if cached is None:
            return None
        try:
            return WeatherReport.from_dict(cached)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable cached weather report: {e!r}")
            return None

    def refresh(self) -> WeatherReport:
        """
        Refresh the weather report. Never raises.

        Returns:
            The cached or freshly fetched report, or the clear-weather fallback
        """
        report = self._cached_report()
        if report is None:
            try:
                report = WeatherReport.from_dict(self.cache.deduplicate(self.DEDUP_KEY, self._fetch_and_store))
            except Exception as e:
                logger.warning(f"Weather fetch failed, assuming clear weather: {e}")
                report = fallback_report()

        with self._lock:
            self._report = report
        return report

    @property
    def report(self) -> Optional[WeatherReport]:
        with self._lock:
            return self._report

    @property
    def condition(self) -> Optional[WeatherCondition]:
        """Effective condition, or None before the first refresh (treated as clear)."""
        report = self.report
        return report.condition if report else None

    # -------------------------------------------------------------------------
    # Background refresh
    # -------------------------------------------------------------------------

    def _tick(self) -> None:
        try:
            self.refresh()
        finally:
            with self._lock:
                if self._running:
                    self._schedule()

    def _schedule(self) -> None:
        self._timer = threading.Timer(self.interval, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def start(self) -> None:
        """Refresh now, then every ``interval`` seconds until ``stop``."""
        with self._lock:
            if self._running:
                return
            self._running = True
        self.refresh()
        with self._lock:
            if self._running:
                self._schedule()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running


def adjusted_delivery_fee(base_fee: float, condition: Optional[WeatherCondition]) -> float:
    """Delivery fee including the weather surcharge."""
    if condition is None:
        return base_fee
    return base_fee + (condition.delivery_surcharge or 0)


def apply_weather_delay(delivery_range: str, condition: Optional[WeatherCondition]) -> str:
    """
    Scale a "min-max" delivery range by the weather delay.

    Example:
        >>> apply_weather_delay("25-35", WEATHER_CONDITIONS["heavy_rain"])
        '38-53'
    """
    if condition is None or condition.delay_multiplier == 1.0:
        return delivery_range
    match = re.search(r"(\d+)-(\d+)", delivery_range or "")
    if not match:
        return delivery_range
    low = js_round(int(match.group(1)) * condition.delay_multiplier)
    high = js_round(int(match.group(2)) * condition.delay_multiplier)
    return f"{low}-{high}"
