# vinyl_offers/filters/deduplicator.py

"""Offer deduplication, ranking and cross-product URL collision checks."""

import logging
from collections import defaultdict
from collections.abc import Iterable
from urllib.parse import urlsplit

from vinyl_offers.config.settings import Settings
from vinyl_offers.models.offer import VendorOffer

logger = logging.getLogger("vinyl_offers.filters")


class OfferDeduplicator:
    """Collapse redundant offers before they are persisted."""

    @staticmethod
    def canonical_url(url: str) -> str:
        """Reduce *url* to ``scheme://host/path`` for duplicate detection.

        Drops the query string, fragment and trailing slash, and
        lowercases the result.  Unparseable input is only stripped and
        lowercased.
        """
        if not url:
            return ""
        raw = url.strip()
        try:
            parts = urlsplit(raw)
        except ValueError:
            return raw.lower()
        if not parts.scheme or not parts.netloc:
            return raw.lower()
        path = parts.path.rstrip("/")
        return f"{parts.scheme}://{parts.netloc}{path}".lower()

    @staticmethod
    def deduplicate(
        offers: list[VendorOffer],
    ) -> tuple[list[VendorOffer], int]:
        """Keep the first offer seen for each canonical URL.

        Returns the surviving offers (original order) and the number
        of duplicates removed.  Offers without a URL are dropped and
        counted as removed.
        """
        seen: set[str] = set()
        kept: list[VendorOffer] = []
        removed = 0

        for offer in offers:
            # Query-keyed pages (Aladin ItemId, Naver gate links) share a
            # key; the first one seen wins, not the cheapest.
            key = OfferDeduplicator.canonical_url(offer.url)
            if not key or key in seen:
                removed += 1
                continue
            seen.add(key)
            kept.append(offer)

        if removed:
            logger.info(
                "Deduplication removed %d duplicate offers", removed,
            )
        return kept, removed

    @staticmethod
    def rank(
        offers: list[VendorOffer],
        cap: int | None = None,
    ) -> list[VendorOffer]:
        """Sort by ascending base price and keep at most *cap* offers."""
        limit = Settings.MAX_OFFERS_PER_PRODUCT if cap is None else cap
        ordered = sorted(offers, key=lambda o: o.base_price)
        if len(ordered) > limit:
            logger.debug(
                "Capping %d offers to the cheapest %d",
                len(ordered),
                limit,
            )
        return ordered[:limit]

    @staticmethod
    def find_shared_urls(
        attachments: Iterable[tuple[str, str]],
    ) -> dict[str, set[str]]:
        """Find URLs attached to more than one distinct product.

        *attachments* yields ``(product_id, url)`` pairs.  A product
        page belongs to exactly one release, so a URL shared across
        products is a category or search-results link captured by
        mistake.  Comparison uses the exact URL (whitespace stripped):
        several storefronts carry the item id in the query string.

        Returns a mapping of each shared URL to its product ids.
        """
        owners: dict[str, set[str]] = defaultdict(set)
        for product_id, url in attachments:
            if not url:
                continue
            owners[url.strip()].add(product_id)
        shared = {
            url: ids for url, ids in owners.items() if len(ids) > 1
        }
        for url, ids in shared.items():
            logger.warning(
                "URL shared by %d products: %s", len(ids), url,
            )
        return shared
