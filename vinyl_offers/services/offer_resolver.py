# vinyl_offers/services/offer_resolver.py

"""Resolves a product identifier into validated, ranked vendor offers."""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from vinyl_offers.config.settings import Settings
from vinyl_offers.errors import StoreError
from vinyl_offers.filters.deduplicator import OfferDeduplicator
from vinyl_offers.filters.match_validator import MatchValidator
from vinyl_offers.filters.query_builder import QueryBuilder
from vinyl_offers.models.offer import VendorOffer
from vinyl_offers.models.policy import MatchPolicy
from vinyl_offers.models.product import ProductIdentifier
from vinyl_offers.storage.offer_store import OfferStore
from vinyl_offers.storage.price_cache import PriceCache
from vinyl_offers.vendors.base_vendor import BaseVendor

logger = logging.getLogger("vinyl_offers.resolver")


@dataclass
class ResolutionRequest:
    """One request for the offers of a release."""

    product_id: str | None = None
    artist: str | None = None
    title: str | None = None
    ean: str | None = None
    catalog_id: str | None = None
    force_refresh: bool = False

    def identifier(self) -> ProductIdentifier:
        return ProductIdentifier(
            ean=self.ean,
            catalog_id=self.catalog_id,
            title=self.title,
            artist=self.artist,
        )


@dataclass
class ResolutionResult:
    """Container for a completed resolution."""

    product_id: str | None = None
    offers: list[VendorOffer] = field(
        default_factory=lambda: list[VendorOffer]()
    )
    cached: bool = False
    search_time: float = 0.0
    persisted: bool = False
    rejected_count: int = 0
    deduplicated_count: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )

    def to_response(self) -> dict[str, Any]:
        """Serialise to the camelCase response shape."""
        return {
            "offers": [o.to_dict() for o in self.offers],
            "cached": self.cached,
            "searchTime": self.search_time,
            "productId": self.product_id,
            "persisted": self.persisted,
            "errors": list(self.errors),
        }


def load_vendor_class(dotted_path: str) -> type[Any]:
    """Dynamically import a vendor class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def _merge_identifier(
    catalog: ProductIdentifier | None,
    request: ProductIdentifier,
) -> ProductIdentifier:
    """Catalog fields win; request fields fill the gaps."""
    if catalog is None:
        return request
    return ProductIdentifier(
        ean=catalog.ean or request.ean,
        catalog_id=catalog.catalog_id or request.catalog_id,
        title=catalog.title or request.title,
        artist=catalog.artist or request.artist,
    )


class OfferResolver:
    """Coordinates the cache, vendor fan-out, validation and persistence.

    Vendors are called one at a time with ``vendor_delay`` seconds
    between calls.  A failing vendor is logged and recorded in the
    result's ``errors``; it never aborts the others.
    """

    def __init__(
        self,
        cache: PriceCache | None = None,
        vendors: list[BaseVendor] | None = None,
        policy: MatchPolicy | None = None,
        vendor_delay: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.cache = cache or PriceCache(OfferStore())
        self.validator = MatchValidator(policy=policy)
        self.vendor_delay = (
            self.settings.VENDOR_DELAY
            if vendor_delay is None
            else vendor_delay
        )
        if vendors is None:
            vendors = [
                load_vendor_class(v["adapter"])()
                for v in self.settings.AVAILABLE_VENDORS
            ]
        self.vendors = vendors

    # ── Private helpers ──────────────────────────────────

    async def _identifier_for(
        self, request: ResolutionRequest,
    ) -> ProductIdentifier:
        """Look the product up in the catalog, falling back to the request."""
        identifier = request.identifier()
        if not request.product_id:
            return identifier
        try:
            catalog = await asyncio.to_thread(
                self.cache.store.get_product, request.product_id,
            )
        except StoreError as exc:
            logger.warning(
                "Catalog lookup failed for %s, using request "
                "fields: %s",
                request.product_id,
                exc,
            )
            return identifier
        return _merge_identifier(catalog, identifier)

    async def _cached_result(
        self, product_id: str, result: ResolutionResult,
    ) -> bool:
        """Fill *result* from a fresh cache entry.  True on a hit."""
        try:
            entry = await asyncio.to_thread(self.cache.get, product_id)
        except StoreError as exc:
            logger.warning(
                "Cache read failed for %s, resolving live: %s",
                product_id,
                exc,
            )
            result.errors.append(str(exc))
            return False
        if entry is None or not self.cache.is_fresh(entry):
            return False
        result.offers = list(entry.offers)
        result.cached = True
        logger.info(
            "Serving %d cached offers for %s (age %.0fs)",
            len(entry.offers),
            product_id,
            entry.age_seconds(datetime.now()),
        )
        return True

    async def _run_vendors(
        self,
        query: str,
        identifier: ProductIdentifier,
        result: ResolutionResult,
    ) -> tuple[list[VendorOffer], int, int]:
        """Call each configured vendor in turn and validate its listings.

        Returns the accepted offers plus the number of vendors called
        and the number that failed.
        """
        offers: list[VendorOffer] = []
        attempted = 0
        failed = 0

        for vendor in self.vendors:
            if not vendor.is_configured():
                logger.warning(
                    "Skipping %s: credentials not configured",
                    vendor.vendor_id,
                )
                continue
            if attempted and self.vendor_delay > 0:
                await asyncio.sleep(self.vendor_delay)
            attempted += 1

            try:
                listings = await asyncio.to_thread(vendor.search, query)
            except Exception as exc:
                failed += 1
                result.errors.append(str(exc))
                logger.error(
                    "Vendor %s failed for '%s': %s",
                    vendor.vendor_id,
                    query,
                    exc,
                    exc_info=exc,
                )
                continue

            accepted, rejected = self.validator.validate(
                listings, identifier, vendor.profile,
            )
            result.rejected_count += rejected
            offers.extend(accepted)

        return offers, attempted, failed

    # ── Entry point ──────────────────────────────────────

    async def resolve(
        self, request: ResolutionRequest,
    ) -> ResolutionResult:
        """Resolve *request* to offers, from cache or from the vendors.

        Raises :class:`~vinyl_offers.errors.InputError` before any
        network call when the request names neither a product id with a
        resolvable catalog entry nor a resolvable identifier.
        """
        result = ResolutionResult(product_id=request.product_id)
        identifier = await self._identifier_for(request)

        if request.product_id and not request.force_refresh:
            if await self._cached_result(request.product_id, result):
                return result

        query = QueryBuilder.build_query(identifier)
        logger.info(
            "Resolving %s with query '%s'",
            identifier.describe(),
            query,
        )

        started = time.perf_counter()
        offers, attempted, failed = await self._run_vendors(
            query, identifier, result,
        )
        deduped, result.deduplicated_count = (
            OfferDeduplicator.deduplicate(offers)
        )
        ranked = OfferDeduplicator.rank(deduped)
        result.offers = ranked

        if request.product_id:
            if not ranked and attempted == failed:
                # Nothing was actually checked; an empty set would
                # mask the outage until the entry expires
                logger.warning(
                    "No vendor answered for %s, keeping the "
                    "existing entry",
                    request.product_id,
                )
            else:
                await self._persist(request.product_id, ranked, result)

        result.search_time = round(time.perf_counter() - started, 2)
        logger.info(
            "Resolved %s: %d offers (%d rejected, %d duplicates, "
            "%d vendor errors) in %.2fs",
            identifier.describe(),
            len(result.offers),
            result.rejected_count,
            result.deduplicated_count,
            len(result.errors),
            result.search_time,
        )
        return result

    async def _persist(
        self,
        product_id: str,
        offers: list[VendorOffer],
        result: ResolutionResult,
    ) -> None:
        try:
            entry = await asyncio.to_thread(
                self.cache.put, product_id, offers,
            )
        except StoreError as exc:
            logger.error(
                "Could not persist offers for %s: %s",
                product_id,
                exc,
                exc_info=True,
            )
            result.errors.append(str(exc))
            return
        result.offers = list(entry.offers)
        result.persisted = True
