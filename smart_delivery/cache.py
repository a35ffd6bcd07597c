# smart-delivery-engine/smart_delivery/cache.py
"""
Route cache for the Smart Dispatch & ETA Engine.

Geo lookups (geocoding, route computation, distance/duration estimates) are the
only expensive calls the engine makes, and in a small city the same handful of
restaurant → neighborhood pairs repeat all day. This module keeps their results:

1. GEOCODE: address → coordinates, stored permanently (addresses don't move).
2. ROUTES: origin + destination → route data, refreshed after 30 minutes and
   bounded to 100 entries (trimmed back to the newest 80).
3. ETA: origin + destination → distance/duration, refreshed after 15 minutes.
4. WEATHER: the last weather report, refreshed after 15 minutes.

It also collapses concurrent identical cache misses into a single fetch
(request deduplication). The cache is an optimization only: every failure to
persist is swallowed, and callers treat a miss exactly like "never cached".
"""

from __future__ import annotations

import errno
import json
import logging
import os
import tempfile
import time
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock, RLock
from typing import Any, Callable, Dict, Optional, TypeVar

from . import config
from .models import CacheEntry, GeoPoint
from .utils import normalize_address, route_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

GEOCODE = "geocode"
ROUTES = "routes"
ETA = "eta"
WEATHER = "weather"

CATEGORY_TTLS: Dict[str, Optional[float]] = {
    GEOCODE: None,
    ROUTES: config.ROUTE_TTL_SECONDS,
    ETA: config.ETA_TTL_SECONDS,
    WEATHER: config.WEATHER_TTL_SECONDS,
}
"""Time-to-live per category in seconds. None means the entry never expires."""


STORAGE_FULL_ERRNOS = frozenset(
    code for code in (errno.ENOSPC, getattr(errno, "EDQUOT", None)) if code is not None
)
"""OS errors that mean the storage itself is exhausted."""


class CacheStorageError(Exception):
    """Raised by a backend when a category cannot be persisted because storage is exhausted."""
    pass


def _discard(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


# =============================================================================
# STORAGE BACKENDS
# =============================================================================

class CacheBackend:
    """
    Storage for cache categories.

    A category is a mapping of key → CacheEntry that is loaded and saved as a
    whole. ``save`` raises CacheStorageError when the write cannot be kept.
    """

    def load(self, category: str) -> Dict[str, CacheEntry]:
        raise NotImplementedError

    def save(self, category: str, entries: Dict[str, CacheEntry]) -> None:
        raise NotImplementedError

    def clear(self, category: str) -> None:
        raise NotImplementedError


class MemoryBackend(CacheBackend):
    """
    In-process storage.

    Args:
        max_entries: Optional quota across all categories. A save that would
            exceed it raises CacheStorageError, like a full browser store.
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self.max_entries = max_entries
        self._store: Dict[str, Dict[str, CacheEntry]] = {}

    def load(self, category: str) -> Dict[str, CacheEntry]:
        return dict(self._store.get(category, {}))

    def save(self, category: str, entries: Dict[str, CacheEntry]) -> None:
        if self.max_entries is not None:
            others = sum(len(v) for k, v in self._store.items() if k != category)
            total = others + len(entries)
            if total > self.max_entries:
                raise CacheStorageError(
                    f"storage quota exceeded ({total} > {self.max_entries} entries)"
                )
        self._store[category] = dict(entries)

    def clear(self, category: str) -> None:
        self._store.pop(category, None)


class JsonFileBackend(CacheBackend):
    """
    One JSON file per category inside ``directory``.

    Lets several engine processes on the same host share geocodes and routes.
    Every save writes a private temp file and renames it over the category
    file, so a reader in another process sees either the previous or the new
    content. Concurrent writers are last-writer-wins. Only a full disk or an
    exhausted quota raises CacheStorageError; any other write failure drops
    that one write and leaves the category in place.
    """

    def __init__(self, directory: str) -> None:
        self.directory = directory
        os.makedirs(directory, exist_ok=True)

    def _path(self, category: str) -> str:
        return os.path.join(self.directory, f"{category}.json")

    def load(self, category: str) -> Dict[str, CacheEntry]:
        path = self._path(category)
        if not os.path.exists(path):
            return {}
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            return {key: CacheEntry.from_dict(item) for key, item in raw.items()}
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Unreadable cache file {path}, starting empty: {e}")
            return {}

    def save(self, category: str, entries: Dict[str, CacheEntry]) -> None:
        path = self._path(category)
        try:
            payload = json.dumps({key: entry.to_dict() for key, entry in entries.items()})
        except (TypeError, ValueError) as e:
            logger.warning(f"Dropping unserializable '{category}' cache write: {e}")
            return

        # Each writer gets its own temp file; only the rename is shared
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=f".{category}.", suffix=".tmp", dir=self.directory)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path is not None:
                _discard(tmp_path)
            if e.errno in STORAGE_FULL_ERRNOS:
                raise CacheStorageError(f"cannot write {path}: {e}") from e
            logger.warning(f"Dropping '{category}' cache write to {path}: {e}")

    def clear(self, category: str) -> None:
        try:
            os.remove(self._path(category))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove cache file for '{category}': {e}")


# =============================================================================
# ROUTE CACHE
# =============================================================================

class RouteCache:
    """
    TTL-bounded store for geo lookups with in-flight request deduplication.

    All reads and writes of a category go through one re-entrant lock, so a
    write fully replaces the previous value before any other reader sees the
    category again. Deduplicated fetches run on a small thread pool owned by the
    cache; a caller that stops waiting never cancels the fetch for the others.

    Attributes:
        backend: Where categories are stored (in memory by default)
        clock: Returns the current time in seconds (injectable for tests)
        hits: Number of reads answered from the cache
        misses: Number of reads that found nothing usable
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        clock: Callable[[], float] = time.time,
        max_workers: int = config.DEDUP_MAX_WORKERS,
    ) -> None:
        self.backend: CacheBackend = backend if backend is not None else MemoryBackend()
        self.clock = clock
        self.hits: int = 0
        self.misses: int = 0

        self._lock = RLock()
        self._inflight: Dict[str, Future] = {}
        self._inflight_lock = Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="route-cache"
        )

    # -------------------------------------------------------------------------
    # Generic category access
    # -------------------------------------------------------------------------

    def _read(self, category: str, key: str) -> Optional[Any]:
        with self._lock:
            entries = self.backend.load(category)
            entry = entries.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired(self.clock(), CATEGORY_TTLS[category]):
                logger.debug(f"Expired {category} entry {key}")
                del entries[key]
                self._persist(category, entries)
                self.misses += 1
                return None

            self.hits += 1
            return entry.value

    def _write(self, category: str, key: str, value: Any) -> None:
        with self._lock:
            entries = self.backend.load(category)
            entries[key] = CacheEntry(key=key, value=value, stored_at=self.clock())
            if category == ROUTES:
                self._evict_oldest(entries)
            self._persist(category, entries)

    def _persist(self, category: str, entries: Dict[str, CacheEntry]) -> None:
        """Save a category; on storage failure drop the write and purge the category."""
        try:
            self.backend.save(category, entries)
        except CacheStorageError as e:
            logger.warning(f"Cache storage full, purging '{category}' cache: {e}")
            self.backend.clear(category)

    @staticmethod
    def _evict_oldest(entries: Dict[str, CacheEntry]) -> None:
        """Keep the route category bounded: past the max, trim to the newest entries."""
        if len(entries) <= config.ROUTE_CACHE_MAX_ENTRIES:
            return
        oldest_first = sorted(entries, key=lambda k: entries[k].stored_at)
        excess = len(entries) - config.ROUTE_CACHE_TRIM_TO
        for key in oldest_first[:excess]:
            del entries[key]
        logger.debug(f"Evicted {excess} oldest routes")

    # -------------------------------------------------------------------------
    # Geocoding (permanent)
    # -------------------------------------------------------------------------

    def get_geocode(self, address: str) -> Optional[GeoPoint]:
        """Get the cached coordinates for an address, or None."""
        value = self._read(GEOCODE, normalize_address(address))
        if value is None:
            return None
        return GeoPoint(lat=value["lat"], lng=value["lng"])

    def put_geocode(self, address: str, point: GeoPoint) -> None:
        """Store coordinates for an address. Never expires."""
        self._write(GEOCODE, normalize_address(address), {"lat": point.lat, "lng": point.lng})

    # -------------------------------------------------------------------------
    # Routes (TTL = 30 min, bounded)
    # -------------------------------------------------------------------------

    def get_route(self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> Optional[Any]:
        """Get cached route data between two points, or None if absent or stale."""
        return self._read(ROUTES, route_key(origin_lat, origin_lng, dest_lat, dest_lng))

    def put_route(self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float, data: Any) -> None:
        """Store route data with the current timestamp."""
        self._write(ROUTES, route_key(origin_lat, origin_lng, dest_lat, dest_lng), data)

    # -------------------------------------------------------------------------
    # ETA / distance (TTL = 15 min)
    # -------------------------------------------------------------------------

    def get_eta(self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> Optional[Any]:
        return self._read(ETA, route_key(origin_lat, origin_lng, dest_lat, dest_lng))

    def put_eta(self, origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float, data: Any) -> None:
        self._write(ETA, route_key(origin_lat, origin_lng, dest_lat, dest_lng), data)

    # -------------------------------------------------------------------------
    # Weather (TTL = 15 min)
    # -------------------------------------------------------------------------

    def get_weather(self, key: str = "current") -> Optional[Any]:
        return self._read(WEATHER, key)

    def put_weather(self, data: Any, key: str = "current") -> None:
        self._write(WEATHER, key, data)

    # -------------------------------------------------------------------------
    # Request deduplication
    # -------------------------------------------------------------------------

    def submit(self, key: str, fetch_fn: Callable[[], T]) -> "Future[T]":
        """
        Start ``fetch_fn`` for ``key`` unless a fetch for it is already in flight.

        Returns the Future of the single outstanding fetch. Once that fetch
        settles (value or exception) the slot is released, so the next call
        starts a fresh fetch.
        """
        with self._inflight_lock:
            future = self._inflight.get(key)
            if future is not None and not future.done():
                logger.debug(f"Joining in-flight request {key}")
                return future

            future = self._executor.submit(fetch_fn)
            self._inflight[key] = future

        future.add_done_callback(lambda f: self._release(key, f))
        return future

    def _release(self, key: str, future: Future) -> None:
        with self._inflight_lock:
            if self._inflight.get(key) is future:
                del self._inflight[key]

    def deduplicate(self, key: str, fetch_fn: Callable[[], T], timeout: Optional[float] = None) -> T:
        """
        Run ``fetch_fn`` at most once for concurrent callers sharing ``key``.

        Every caller that arrives while the fetch is outstanding blocks on the
        same result and receives the same value, or the same exception.

        Args:
            key: Identity of the request
            fetch_fn: Zero-argument callable doing the expensive lookup
            timeout: Seconds to wait before giving up (the fetch keeps running
                for any other waiters)

        Raises:
            Whatever ``fetch_fn`` raised, or concurrent.futures.TimeoutError
        """
        return self.submit(key, fetch_fn).result(timeout=timeout)

    def inflight_count(self) -> int:
        with self._inflight_lock:
            return sum(1 for f in self._inflight.values() if not f.done())

    # -------------------------------------------------------------------------
    # Get-or-fetch helpers
    # -------------------------------------------------------------------------

    def fetch_geocode(
        self,
        address: str,
        geocoder: Callable[[str], GeoPoint],
        timeout: Optional[float] = None,
    ) -> GeoPoint:
        """Return cached coordinates, or geocode once (deduplicated) and cache them."""
        cached = self.get_geocode(address)
        if cached is not None:
            return cached

        def load() -> GeoPoint:
            point = geocoder(address)
            self.put_geocode(address, point)
            return point

        return self.deduplicate(f"{GEOCODE}:{normalize_address(address)}", load, timeout=timeout)

    def fetch_route(
        self,
        origin_lat: float, origin_lng: float,
        dest_lat: float, dest_lng: float,
        router: Callable[[float, float, float, float], Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """Return a cached route, or compute it once (deduplicated) and cache it."""
        cached = self.get_route(origin_lat, origin_lng, dest_lat, dest_lng)
        if cached is not None:
            return cached

        def load() -> Any:
            data = router(origin_lat, origin_lng, dest_lat, dest_lng)
            self.put_route(origin_lat, origin_lng, dest_lat, dest_lng, data)
            return data

        key = f"{ROUTES}:{route_key(origin_lat, origin_lng, dest_lat, dest_lng)}"
        return self.deduplicate(key, load, timeout=timeout)

    def fetch_eta(
        self,
        origin_lat: float, origin_lng: float,
        dest_lat: float, dest_lng: float,
        estimator: Callable[[float, float, float, float], Any],
        timeout: Optional[float] = None,
    ) -> Any:
        """Return a cached distance/duration estimate, or compute it once and cache it."""
        cached = self.get_eta(origin_lat, origin_lng, dest_lat, dest_lng)
        if cached is not None:
            return cached

        def load() -> Any:
            data = estimator(origin_lat, origin_lng, dest_lat, dest_lng)
            self.put_eta(origin_lat, origin_lng, dest_lat, dest_lng, data)
            return data

        key = f"{ETA}:{route_key(origin_lat, origin_lng, dest_lat, dest_lng)}"
        return self.deduplicate(key, load, timeout=timeout)

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    def clear(self, category: Optional[str] = None) -> None:
        """Clear one category, or all of them. The only way geocodes are removed."""
        with self._lock:
            categories = [category] if category else list(CATEGORY_TTLS)
            for name in categories:
                self.backend.clear(name)

    def stats(self) -> Dict[str, Any]:
        """
        Get statistics about the cache.

        Returns:
            Dictionary with entry counts per category, hit/miss counters and
            the number of fetches currently in flight
        """
        with self._lock:
            counts = {name: len(self.backend.load(name)) for name in CATEGORY_TTLS}
        return {
            **counts,
            "route_utilization": counts[ROUTES] / config.ROUTE_CACHE_MAX_ENTRIES,
            "hits": self.hits,
            "misses": self.misses,
            "inflight": self.inflight_count(),
        }

    def close(self) -> None:
        """Stop accepting new fetches. Outstanding ones still complete."""
        self._executor.shutdown(wait=False)
