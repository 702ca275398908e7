# vinyl_offers/models/cache_entry.py

"""A product's resolved offer set and when it was last checked."""

from dataclasses import dataclass
from datetime import datetime

from vinyl_offers.models.offer import VendorOffer


@dataclass(frozen=True)
class CacheEntry:
    """Offers for one product, ordered by ascending base price."""

    product_id: str
    offers: tuple[VendorOffer, ...]
    last_checked_at: datetime

    def age_seconds(self, now: datetime) -> float:
        """Seconds elapsed since the entry was written."""
        return (now - self.last_checked_at).total_seconds()
