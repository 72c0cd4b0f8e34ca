"""
Time-boxed memoization of availability results.

Entries are keyed by (restaurant, date, party size, duration) and dropped
for a whole (restaurant, date) whenever a booking on that date changes.
Cached data is never used for conflict checks.
"""
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional, Protocol

from core.config import Settings, settings as default_settings
from core.utils_time import format_date
from domain.models import AvailabilityResult


logger = logging.getLogger(__name__)

KEY_PREFIX = "restaurant:availability"


def cache_key(restaurant_id: int, reservation_date: date, party_size: int, duration_minutes: int) -> str:
    return f"{KEY_PREFIX}:{restaurant_id}:{format_date(reservation_date)}:{party_size}:{duration_minutes}"


def date_prefix(restaurant_id: int, reservation_date: date) -> str:
    return f"{KEY_PREFIX}:{restaurant_id}:{format_date(reservation_date)}:"


def restaurant_prefix(restaurant_id: int) -> str:
    return f"{KEY_PREFIX}:{restaurant_id}:"


class AvailabilityCache(Protocol):
    """Cache collaborator used by the availability engine and the booking ledger."""

    def get(self, restaurant_id: int, reservation_date: date, party_size: int, duration_minutes: int) -> Optional[AvailabilityResult]:
        ...

    def set(self, result: AvailabilityResult) -> None:
        ...

    def invalidate(self, restaurant_id: int, reservation_date: date) -> int:
        ...

    def invalidate_restaurant(self, restaurant_id: int) -> int:
        ...


@dataclass
class CacheEntry:
    """Serialized result with its expiry."""
    payload: str
    created_at: float = field(default_factory=time.monotonic)
    ttl_seconds: float = 300

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.monotonic()) - self.created_at >= self.ttl_seconds


@dataclass
class CacheStats:
    """Cache hit and eviction counters."""
    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class InMemoryAvailabilityCache:
    """
    Thread-safe TTL cache holding JSON-serialized availability results.

    Results are stored as JSON so callers always get an independent copy.
    When full, expired entries are dropped first, then the oldest ones.
    """

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 1000):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.RLock()
        self.stats = CacheStats()

    def get(self, restaurant_id: int, reservation_date: date, party_size: int, duration_minutes: int) -> Optional[AvailabilityResult]:
        key = cache_key(restaurant_id, reservation_date, party_size, duration_minutes)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats.misses += 1
                return None
            if entry.is_expired():
                del self._entries[key]
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            payload = entry.payload
        return AvailabilityResult.model_validate_json(payload)

    def set(self, result: AvailabilityResult) -> None:
        key = cache_key(result.restaurant_id, result.reservation_date, result.party_size, result.duration_minutes)
        payload = result.model_dump_json()
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(payload=payload, ttl_seconds=self.ttl_seconds)
            self.stats.sets += 1
            self._evict()

    def _evict(self) -> None:
        if len(self._entries) <= self.max_entries:
            return
        now = time.monotonic()
        for key in [k for k, e in self._entries.items() if e.is_expired(now)]:
            del self._entries[key]
            self.stats.evictions += 1
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            self.stats.evictions += 1

    def _delete_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for key in keys:
                del self._entries[key]
            self.stats.invalidations += len(keys)
        return len(keys)

    def invalidate(self, restaurant_id: int, reservation_date: date) -> int:
        """Drop every cached result for the restaurant on that date."""
        removed = self._delete_prefix(date_prefix(restaurant_id, reservation_date))
        logger.debug(f"Invalidated {removed} availability entries for restaurant {restaurant_id} on {reservation_date}")
        return removed

    def invalidate_restaurant(self, restaurant_id: int) -> int:
        """Drop every cached result for the restaurant."""
        return self._delete_prefix(restaurant_prefix(restaurant_id))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def keys(self) -> Dict[str, float]:
        """Cached keys with their remaining lifetime in seconds."""
        now = time.monotonic()
        with self._lock:
            return {
                k: max(0.0, e.ttl_seconds - (now - e.created_at))
                for k, e in self._entries.items()
            }


# Process-wide instance shared by every service the factories build
_availability_cache_instance: Optional[InMemoryAvailabilityCache] = None
_instance_lock = threading.Lock()


def get_availability_cache(app_settings: Optional[Settings] = None) -> InMemoryAvailabilityCache:
    """
    Get or create the shared availability cache.

    Args:
        app_settings: Settings to size the cache from on first use
            (defaults to the global settings)

    Returns:
        InMemoryAvailabilityCache instance
    """
    global _availability_cache_instance

    with _instance_lock:
        if _availability_cache_instance is None:
            s = app_settings or default_settings
            _availability_cache_instance = InMemoryAvailabilityCache(
                ttl_seconds=s.availability_cache_ttl_seconds,
                max_entries=s.availability_cache_max_entries,
            )
        return _availability_cache_instance
