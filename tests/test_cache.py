import errno
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from unittest import mock

import pytest

from smart_delivery.cache import (
    ETA,
    GEOCODE,
    ROUTES,
    CacheStorageError,
    JsonFileBackend,
    MemoryBackend,
    RouteCache,
)
from smart_delivery.models import GeoPoint


@pytest.fixture
def cache(clock):
    c = RouteCache(clock=clock)
    yield c
    c.close()


# -----------------------------------------------------------------------------
# TTL behaviour
# -----------------------------------------------------------------------------

def test_route_roundtrip_and_expiry(cache, clock):
    cache.put_route(17.5455, -98.5750, 17.5445, -98.5740, {"km": 0.15})
    assert cache.get_route(17.5455, -98.5750, 17.5445, -98.5740) == {"km": 0.15}

    clock.advance(30 * 60)
    assert cache.get_route(17.5455, -98.5750, 17.5445, -98.5740) == {"km": 0.15}

    clock.advance(1)
    assert cache.get_route(17.5455, -98.5750, 17.5445, -98.5740) is None
    assert cache.stats()[ROUTES] == 0


def test_eta_expires_after_fifteen_minutes(cache, clock):
    cache.put_eta(1.0, 2.0, 3.0, 4.0, {"distance_km": 1.2})
    clock.advance(15 * 60 + 1)
    assert cache.get_eta(1.0, 2.0, 3.0, 4.0) is None


def test_route_lookup_uses_rounded_coordinates(cache):
    cache.put_route(17.54551, -98.57501, 17.5445, -98.5740, "route")
    assert cache.get_route(17.54549, -98.57499, 17.5445, -98.5740) == "route"


def test_geocode_never_expires(cache, clock):
    cache.put_geocode("Calle Morelos 12, Centro", GeoPoint(17.546, -98.576))
    clock.advance(10 * 365 * 24 * 3600)
    assert cache.get_geocode("  calle morelos 12,   CENTRO") == GeoPoint(17.546, -98.576)


def test_geocode_removed_only_by_clear(cache):
    cache.put_geocode("Zócalo", GeoPoint(17.546, -98.576))
    cache.clear(GEOCODE)
    assert cache.get_geocode("Zócalo") is None


def test_hit_and_miss_counters(cache):
    cache.get_eta(0, 0, 1, 1)
    cache.put_eta(0, 0, 1, 1, 5)
    cache.get_eta(0, 0, 1, 1)
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1


# -----------------------------------------------------------------------------
# Bounded route category
# -----------------------------------------------------------------------------

def test_route_category_trimmed_to_newest_eighty(cache, clock):
    for i in range(101):
        cache.put_route(17.0 + i * 0.001, -98.0, 17.5, -98.5, i)
        clock.advance(1)

    assert cache.stats()[ROUTES] == 80
    # The 21 oldest are gone, the newest are kept
    assert cache.get_route(17.0, -98.0, 17.5, -98.5) is None
    assert cache.get_route(17.0 + 20 * 0.001, -98.0, 17.5, -98.5) is None
    assert cache.get_route(17.0 + 21 * 0.001, -98.0, 17.5, -98.5) == 21
    assert cache.get_route(17.0 + 100 * 0.001, -98.0, 17.5, -98.5) == 100


def test_hundred_routes_are_not_trimmed(cache, clock):
    for i in range(100):
        cache.put_route(17.0 + i * 0.001, -98.0, 17.5, -98.5, i)
        clock.advance(1)
    assert cache.stats()[ROUTES] == 100


# -----------------------------------------------------------------------------
# Storage failures
# -----------------------------------------------------------------------------

class FailingBackend(MemoryBackend):
    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, category, entries):
        if self.fail:
            raise CacheStorageError("quota exceeded")
        super().save(category, entries)


def test_storage_failure_clears_category_and_drops_write(clock, caplog):
    backend = FailingBackend()
    cache = RouteCache(backend=backend, clock=clock)
    cache.put_eta(0, 0, 1, 1, "kept until failure")
    cache.put_route(0, 0, 1, 1, "other category")

    backend.fail = True
    with caplog.at_level("WARNING"):
        cache.put_eta(2, 2, 3, 3, "new")

    assert cache.get_eta(0, 0, 1, 1) is None
    assert cache.get_eta(2, 2, 3, 3) is None
    assert cache.get_route(0, 0, 1, 1) == "other category"
    assert "purging 'eta'" in caplog.text
    cache.close()


def test_memory_backend_quota():
    backend = MemoryBackend(max_entries=2)
    cache = RouteCache(backend=backend)
    cache.put_geocode("a", GeoPoint(1, 1))
    cache.put_geocode("b", GeoPoint(2, 2))
    cache.put_geocode("c", GeoPoint(3, 3))
    assert cache.stats()[GEOCODE] == 0
    cache.close()


def test_json_file_backend_shared_between_instances(tmp_path, clock):
    first = RouteCache(backend=JsonFileBackend(str(tmp_path)), clock=clock)
    first.put_geocode("Calle Hidalgo 3", GeoPoint(17.5, -98.5))
    first.put_route(1, 2, 3, 4, {"km": 2.0})

    second = RouteCache(backend=JsonFileBackend(str(tmp_path)), clock=clock)
    assert second.get_geocode("calle hidalgo 3") == GeoPoint(17.5, -98.5)
    assert second.get_route(1, 2, 3, 4) == {"km": 2.0}
    assert (tmp_path / "geocode.json").exists()
    first.close()
    second.close()


def test_json_file_backend_ignores_corrupt_file(tmp_path):
    (tmp_path / "routes.json").write_text("{not json", encoding="utf-8")
    cache = RouteCache(backend=JsonFileBackend(str(tmp_path)))
    assert cache.get_route(1, 2, 3, 4) is None
    cache.close()


def test_json_file_backends_racing_on_one_directory(tmp_path, caplog):
    caches = [RouteCache(backend=JsonFileBackend(str(tmp_path))) for _ in range(2)]
    start = threading.Barrier(2)

    def writer(cache, lane):
        start.wait(5)
        for i in range(300):
            cache.put_route(lane, i, lane + 1, i + 1, {"km": i})

    with caplog.at_level("WARNING", logger="smart_delivery.cache"):
        threads = [threading.Thread(target=writer, args=(c, n)) for n, c in enumerate(caches)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
    assert not list(tmp_path.glob("*.tmp"))
    with open(tmp_path / "routes.json", encoding="utf-8") as f:
        stored = json.load(f)
    assert 0 < len(stored) <= 100
    for c in caches:
        c.close()


def test_json_file_backend_lost_write_keeps_category(tmp_path, caplog):
    cache = RouteCache(backend=JsonFileBackend(str(tmp_path)))
    cache.put_geocode("Calle Hidalgo 3", GeoPoint(17.5, -98.5))

    lost = FileNotFoundError(errno.ENOENT, "No such file or directory")
    with mock.patch("smart_delivery.cache.os.replace", side_effect=lost), caplog.at_level("WARNING"):
        cache.put_geocode("Calle Morelos 8", GeoPoint(17.6, -98.6))

    assert cache.get_geocode("Calle Hidalgo 3") == GeoPoint(17.5, -98.5)
    assert cache.get_geocode("Calle Morelos 8") is None
    assert "purging" not in caplog.text
    assert not list(tmp_path.glob("*.tmp"))
    cache.close()


def test_json_file_backend_full_disk_purges_category(tmp_path, caplog):
    cache = RouteCache(backend=JsonFileBackend(str(tmp_path)))
    cache.put_eta(0, 0, 1, 1, "kept until failure")

    full = OSError(errno.ENOSPC, "No space left on device")
    with mock.patch("smart_delivery.cache.os.replace", side_effect=full), caplog.at_level("WARNING"):
        cache.put_eta(2, 2, 3, 3, "new")

    assert cache.get_eta(0, 0, 1, 1) is None
    assert not (tmp_path / "eta.json").exists()
    assert "purging 'eta'" in caplog.text
    cache.close()


# -----------------------------------------------------------------------------
# Request deduplication
# -----------------------------------------------------------------------------

def test_concurrent_callers_share_one_fetch(cache):
    release = threading.Event()
    calls = []

    def fetch():
        calls.append(1)
        release.wait(5)
        return "route-data"

    futures = [cache.submit("routes:a→b", fetch) for _ in range(5)]
    assert cache.inflight_count() == 1
    release.set()

    assert [f.result(5) for f in futures] == ["route-data"] * 5
    assert len(calls) == 1


def test_concurrent_blocking_callers_share_one_fetch(cache):
    started = threading.Event()
    release = threading.Event()
    calls = []

    def fetch():
        calls.append(1)
        started.set()
        release.wait(5)
        return 42

    with ThreadPoolExecutor(max_workers=5) as pool:
        first = pool.submit(cache.deduplicate, "eta:x", fetch)
        assert started.wait(5)
        others = [pool.submit(cache.deduplicate, "eta:x", fetch) for _ in range(4)]
        release.set()
        results = [first.result(5)] + [f.result(5) for f in others]

    assert results == [42] * 5
    assert len(calls) == 1


def test_failure_reaches_every_waiter_and_frees_slot(cache):
    release = threading.Event()

    def failing():
        release.wait(5)
        raise RuntimeError("geocoder down")

    futures = [cache.submit("geocode:x", failing) for _ in range(3)]
    release.set()
    for f in futures:
        with pytest.raises(RuntimeError, match="geocoder down"):
            f.result(5)

    # Slot released: the next call runs a fresh fetch
    assert cache.deduplicate("geocode:x", lambda: "recovered", timeout=5) == "recovered"


def test_impatient_caller_does_not_cancel_shared_fetch(cache):
    release = threading.Event()
    calls = []

    def slow_fetch():
        calls.append(1)
        release.wait(5)
        return "geocoded"

    with pytest.raises(FutureTimeoutError):
        cache.deduplicate("geocode:mercado", slow_fetch, timeout=0.01)
    assert cache.inflight_count() == 1

    # Joins the fetch the first caller gave up on, then waits without a timeout
    patient = cache.submit("geocode:mercado", slow_fetch)
    release.set()
    assert patient.result() == "geocoded"

    assert len(calls) == 1


def test_settled_fetch_is_not_reused(cache):
    counter = iter(range(10))
    assert cache.deduplicate("k", lambda: next(counter), timeout=5) == 0
    assert cache.deduplicate("k", lambda: next(counter), timeout=5) == 1


def test_different_keys_fetch_independently(cache):
    assert cache.deduplicate("a", lambda: "A", timeout=5) == "A"
    assert cache.deduplicate("b", lambda: "B", timeout=5) == "B"


def test_fetch_geocode_caches_result(cache):
    calls = []

    def geocoder(address):
        calls.append(address)
        return GeoPoint(17.55, -98.57)

    assert cache.fetch_geocode("Mercado Municipal", geocoder, timeout=5) == GeoPoint(17.55, -98.57)
    assert cache.fetch_geocode("mercado  municipal", geocoder, timeout=5) == GeoPoint(17.55, -98.57)
    assert calls == ["Mercado Municipal"]


def test_fetch_route_refetches_after_ttl(cache, clock):
    calls = []

    def router(o_lat, o_lng, d_lat, d_lng):
        calls.append((o_lat, o_lng))
        return {"km": len(calls)}

    assert cache.fetch_route(1, 2, 3, 4, router, timeout=5) == {"km": 1}
    assert cache.fetch_route(1, 2, 3, 4, router, timeout=5) == {"km": 1}
    clock.advance(30 * 60 + 1)
    assert cache.fetch_route(1, 2, 3, 4, router, timeout=5) == {"km": 2}


def test_stats_reports_all_categories(cache):
    cache.put_eta(0, 0, 1, 1, 1)
    stats = cache.stats()
    assert stats[ETA] == 1
    assert stats["route_utilization"] == 0.0
    assert stats["inflight"] == 0
