"""
Evidence Cache

TTL cache of raw evidence keyed by (drug, source). Concurrent misses for the
same key are coalesced so the underlying extractor is called once.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ddi_mining.exceptions import MiningCancelledError
from ddi_mining.models import EvidenceSource, RawEvidenceEntry
from ddi_mining.utils.pair_key import canonical_drug_name

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, EvidenceSource]

DEFAULT_TTL_SECONDS = 24 * 3600


@dataclass
class CacheEntry:
    """Cached extractor output for one (drug, source)."""
    drug: str
    source: EvidenceSource
    entries: List[RawEvidenceEntry]
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class EvidenceCache:
    """
    Thread-safe TTL cache with single-flight fetches.

    Expiry is checked lazily on access; ``cleanup_expired`` can be called to
    purge stale entries eagerly.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_size: int = 5000,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            default_ttl: Seconds an entry stays fresh
            max_size: Entries kept before the oldest is evicted
            clock: Time source, injectable for tests
        """
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock = clock

        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, Future] = {}
        self._lock = threading.Lock()
        # Bumped by clear() so fetches started earlier never repopulate
        self._generation = 0

        self._hits = 0
        self._misses = 0
        self._coalesced = 0
        self._expired = 0
        self._evictions = 0

    @staticmethod
    def _key(drug: str, source) -> CacheKey:
        return canonical_drug_name(drug), EvidenceSource(source)

    def get(self, drug: str, source) -> Optional[List[RawEvidenceEntry]]:
        """Return fresh cached entries or None."""
        key = self._key(drug, source)
        with self._lock:
            entry = self._lookup(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return list(entry.entries)

    def put(self, drug: str, source, entries: List[RawEvidenceEntry], ttl: Optional[float] = None):
        """Store entries for (drug, source)."""
        key = self._key(drug, source)
        with self._lock:
            self._store(key, entries, ttl)

    def get_or_fetch(
        self,
        drug: str,
        source,
        fetch: Callable[[], List[RawEvidenceEntry]],
        ttl: Optional[float] = None,
    ) -> Tuple[List[RawEvidenceEntry], bool]:
        """
        Return cached entries, fetching them on a miss.

        When several callers miss on the same key at once, only the first one
        runs ``fetch``; the others wait for its result (or its exception).
        A waiter whose shared fetch was cancelled runs ``fetch`` itself, so one
        job's stop never cancels another. Failed fetches are not cached.

        Returns:
            (entries, served_from_cache) where the flag is False only for the
            caller that actually ran ``fetch``
        """
        key = self._key(drug, source)

        while True:
            with self._lock:
                entry = self._lookup(key)
                if entry is not None:
                    self._hits += 1
                    return list(entry.entries), True

                pending = self._inflight.get(key)
                if pending is not None:
                    self._coalesced += 1
                    owner = False
                else:
                    self._misses += 1
                    pending = Future()
                    self._inflight[key] = pending
                    owner = True
                generation = self._generation

            if owner:
                break
            try:
                return list(pending.result()), True
            except MiningCancelledError:
                # The owner's job was stopped, not ours; take the key over
                logger.debug(f"Shared fetch for {key[0]}/{key[1].value} was cancelled; retrying")

        try:
            entries = list(fetch())
        except BaseException as exc:
            with self._lock:
                if self._inflight.get(key) is pending:
                    del self._inflight[key]
            pending.set_exception(exc)
            raise

        with self._lock:
            if generation == self._generation:
                self._store(key, entries, ttl)
            if self._inflight.get(key) is pending:
                del self._inflight[key]
        pending.set_result(entries)

        return list(entries), False

    def _lookup(self, key: CacheKey) -> Optional[CacheEntry]:
        """Fresh entry for key; caller holds the lock."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._expired += 1
            return None
        return entry

    def _store(self, key: CacheKey, entries: List[RawEvidenceEntry], ttl: Optional[float]):
        """Insert entry; caller holds the lock."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_oldest()

        now = self._clock()
        self._entries[key] = CacheEntry(
            drug=key[0],
            source=key[1],
            entries=list(entries),
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            created_at=now,
        )

    def _evict_oldest(self):
        if not self._entries:
            return
        oldest_key = min(self._entries, key=lambda k: self._entries[k].created_at)
        del self._entries[oldest_key]
        self._evictions += 1

    def clear(self) -> int:
        """
        Drop every entry.

        Returns:
            Number of entries removed
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._generation += 1
        logger.info(f"Evidence cache cleared ({count} entries)")
        return count

    def clear_for(self, drug: str) -> int:
        """Drop all sources cached for one drug."""
        name = canonical_drug_name(drug)
        with self._lock:
            keys = [k for k in self._entries if k[0] == name]
            for key in keys:
                del self._entries[key]
        return len(keys)

    def cleanup_expired(self) -> int:
        """Remove expired entries eagerly."""
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            self._expired += len(expired)
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired cache entries")
        return len(expired)

    def get_stats(self) -> Dict:
        """Cache statistics."""
        with self._lock:
            per_source = {s.value: 0 for s in EvidenceSource}
            for drug, source in self._entries:
                per_source[source.value] += 1
            lookups = self._hits + self._misses + self._coalesced
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "coalesced": self._coalesced,
                "expired": self._expired,
                "evictions": self._evictions,
                "in_flight": len(self._inflight),
                "hit_rate": round((self._hits + self._coalesced) / lookups, 3) if lookups else 0.0,
                "per_source": per_source,
                "default_ttl": self.default_ttl,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
