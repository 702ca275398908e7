# vinyl_offers/storage/price_cache.py

"""In-memory TTL cache of offer sets, backed by the durable store."""

import logging
import threading
from datetime import datetime

from vinyl_offers.config.settings import Settings
from vinyl_offers.models.cache_entry import CacheEntry
from vinyl_offers.models.offer import VendorOffer
from vinyl_offers.storage.offer_store import OfferStore

logger = logging.getLogger("vinyl_offers.cache")


class PriceCache:
    """Read-through, write-through cache keyed by product id.

    The store is the source of truth.  Memory only ever holds entries
    that were read from, or successfully written to, the store, so a
    failed write never leaves a phantom entry behind.
    """

    def __init__(
        self,
        store: OfferStore,
        ttl: float | None = None,
    ) -> None:
        self.store = store
        self._ttl: float = Settings.CACHE_TTL if ttl is None else ttl
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def is_fresh(
        self, entry: CacheEntry, now: datetime | None = None,
    ) -> bool:
        """True if *entry* is younger than the TTL."""
        return entry.age_seconds(now or datetime.now()) < self._ttl

    def get(self, product_id: str) -> CacheEntry | None:
        """Return the entry for *product_id*, fresh or not.

        Falls through to the store on a memory miss.  Raises
        :class:`~vinyl_offers.errors.StoreError` if the store read fails.
        """
        with self._lock:
            self._evict_expired(datetime.now())
            entry = self._entries.get(product_id)
        if entry is not None:
            logger.debug("Memory hit for %s", product_id)
            return entry

        entry = self.store.get(product_id)
        if entry is None:
            return None
        with self._lock:
            # A put may have landed while the store was being read.
            current = self._entries.get(product_id)
            if (
                current is not None
                and current.last_checked_at >= entry.last_checked_at
            ):
                return current
            self._entries[product_id] = entry
        logger.debug(
            "Loaded %s from store (%d offers)",
            product_id,
            len(entry.offers),
        )
        return entry

    def put(
        self,
        product_id: str,
        offers: list[VendorOffer],
        checked_at: datetime | None = None,
    ) -> CacheEntry:
        """Persist *offers* and remember the entry the store wrote.

        Products that lost offers to the write's shared-URL check are
        forgotten, so their next read comes from the store.
        """
        entry, purged = self.store.write(product_id, offers, checked_at)
        with self._lock:
            for other in purged:
                self._entries.pop(other, None)
            self._entries[product_id] = entry
            self._evict_expired(datetime.now())
        if purged:
            logger.debug(
                "Dropped %d entries sharing URLs with %s",
                len(purged),
                product_id,
            )
        return entry

    def invalidate(self, product_id: str) -> None:
        """Forget *product_id* in memory and in the store."""
        with self._lock:
            self._entries.pop(product_id, None)
        self.store.invalidate(product_id)

    def clear(self) -> int:
        """Purge the memory layer only.

        Returns the number of entries that were removed.
        """
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cache manually purged (%d entries removed)", count)
        return count

    def _evict_expired(self, now: datetime) -> None:
        """Remove entries older than the TTL.  Caller holds the lock."""
        before = len(self._entries)
        self._entries = {
            pid: e
            for pid, e in self._entries.items()
            if self.is_fresh(e, now)
        }
        evicted = before - len(self._entries)
        if evicted:
            logger.debug("Evicted %d expired cache entries", evicted)
