"""
In-memory response cache for AI results.

Two tables back each cache: a static table of pre-generated values that
never expires, and a dynamic table of model responses that expire after a
TTL. Both live in process memory, so a multi-process deployment gets one
independent cache per worker.
"""

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_TTL = timedelta(days=7)
DEFAULT_UNIT_COST = 0.0015


def fingerprint(name: str) -> str:
    """Cache key for a habit name: trimmed and lower-cased, nothing else."""
    return name.strip().lower()


@dataclass
class CacheEntry:
    key: str
    value: Any
    cost: float
    created_at: datetime


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters."""
    total_requests: int
    cache_hits: int
    cache_misses: int
    total_cost_saved: float

    @property
    def hit_rate(self) -> float:
        """Hit rate as a percentage of all lookups."""
        if self.total_requests == 0:
            return 0.0
        return (self.cache_hits / self.total_requests) * 100

    def to_dict(self) -> Dict[str, float]:
        return {
            "totalRequests": self.total_requests,
            "cacheHits": self.cache_hits,
            "cacheMisses": self.cache_misses,
            "totalCostSaved": round(self.total_cost_saved, 6),
            "hitRate": round(self.hit_rate, 2),
        }


class ResponseCache:
    """Static-then-dynamic lookup table with hit/miss accounting.

    Args:
        static_entries: Pre-generated values served ahead of the dynamic table
        ttl: Age after which a dynamic entry is expired
        unit_cost: Estimated cost credited to savings on every hit
        clock: Callable returning the current time
    """

    def __init__(
        self,
        static_entries: Optional[Dict[str, Any]] = None,
        ttl: timedelta = DEFAULT_TTL,
        unit_cost: float = DEFAULT_UNIT_COST,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._static = dict(static_entries or {})
        self._entries: Dict[str, CacheEntry] = {}
        self.ttl = ttl
        self.unit_cost = unit_cost
        self._clock = clock
        self._requests = 0
        self._hits = 0
        self._misses = 0
        self._cost_saved = 0.0

    def _is_expired(self, entry: CacheEntry, now: datetime) -> bool:
        return now - entry.created_at > self.ttl

    def get(self, key: str) -> Optional[Any]:
        """Look up a value, static table first.

        Returns a copy of the stored value, or None on a miss or an expired
        dynamic entry.
        """
        self._requests += 1

        if key in self._static:
            self._record_hit()
            logger.debug("Cache hit (static)", extra={"cache_key": key})
            return copy.deepcopy(self._static[key])

        entry = self._entries.get(key)
        if entry is not None and not self._is_expired(entry, self._clock()):
            self._record_hit()
            logger.debug("Cache hit", extra={"cache_key": key})
            return copy.deepcopy(entry.value)

        self._misses += 1
        logger.debug("Cache miss", extra={"cache_key": key})
        return None

    def _record_hit(self) -> None:
        self._hits += 1
        self._cost_saved += self.unit_cost

    def set(self, key: str, value: Any, cost: float) -> None:
        """Store a value, overwriting any existing entry for the key."""
        self._entries[key] = CacheEntry(
            key=key,
            value=copy.deepcopy(value),
            cost=cost,
            created_at=self._clock(),
        )
        logger.info("Cache store", extra={"cache_key": key, "cost": cost})

    def cleanup(self) -> int:
        """Remove expired dynamic entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self._is_expired(entry, now)]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("Cache cleanup", extra={"removed": len(expired)})
        return len(expired)

    def stats(self) -> CacheStats:
        return CacheStats(
            total_requests=self._requests,
            cache_hits=self._hits,
            cache_misses=self._misses,
            total_cost_saved=self._cost_saved,
        )

    def size(self) -> int:
        """Number of dynamic entries, expired ones included until cleanup."""
        return len(self._entries)

    def clear(self) -> None:
        """Drop all dynamic entries. Counters and the static table are kept."""
        self._entries.clear()
        logger.info("Cache cleared")
