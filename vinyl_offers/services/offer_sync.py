# vinyl_offers/services/offer_sync.py

"""Batch refresh of catalog products whose offers have gone stale."""

import asyncio
import logging
from dataclasses import dataclass, field

from vinyl_offers.config.settings import Settings
from vinyl_offers.errors import InputError, OfferEngineError
from vinyl_offers.services.offer_resolver import (
    OfferResolver,
    ResolutionRequest,
)
from vinyl_offers.storage.offer_store import OfferStore
from vinyl_offers.storage.price_cache import PriceCache

logger = logging.getLogger("vinyl_offers.sync")


@dataclass
class SyncReport:
    """Tally of one sync run."""

    attempted: int = 0
    refreshed: int = 0
    skipped: int = 0
    failed: int = 0
    offers_written: int = 0
    errors: list[str] = field(
        default_factory=lambda: list[str]()
    )


class OfferSync:
    """Refresh the stalest catalog products, oldest first.

    Products that were never synced come before everything else.  Each
    one is resolved with a forced refresh under the sync match policy,
    which is stricter than the interactive default.
    """

    def __init__(
        self,
        store: OfferStore,
        resolver: OfferResolver | None = None,
        product_delay: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.store = store
        self.resolver = resolver or OfferResolver(
            cache=PriceCache(store),
            policy=self.settings.MATCH_POLICIES[
                self.settings.SYNC_MATCH_POLICY
            ],
        )
        self.product_delay = (
            self.settings.PRODUCT_DELAY
            if product_delay is None
            else product_delay
        )

    async def run(self, limit: int | None = None) -> SyncReport:
        """Sync up to *limit* stale products and report the outcome."""
        batch = self.settings.SYNC_BATCH_SIZE if limit is None else limit
        report = SyncReport()
        products = await asyncio.to_thread(
            self.store.list_stale_products,
            self.settings.CACHE_TTL,
            batch,
        )
        logger.info("Sync started: %d stale products", len(products))

        for index, (product_id, identifier) in enumerate(products):
            if index and self.product_delay > 0:
                await asyncio.sleep(self.product_delay)
            report.attempted += 1

            if not identifier.is_resolvable():
                logger.warning(
                    "Skipping %s: catalog entry has no EAN, catalog "
                    "id, or artist + title",
                    product_id,
                )
                await asyncio.to_thread(self.store.mark_synced, product_id)
                report.skipped += 1
                continue

            try:
                result = await self.resolver.resolve(
                    ResolutionRequest(
                        product_id=product_id, force_refresh=True,
                    )
                )
            except InputError as exc:
                logger.warning("Skipping %s: %s", product_id, exc)
                report.skipped += 1
                continue
            except OfferEngineError as exc:
                logger.error(
                    "Sync failed for %s: %s",
                    product_id,
                    exc,
                    exc_info=True,
                )
                report.failed += 1
                report.errors.append(f"{product_id}: {exc}")
                continue

            if result.persisted:
                report.refreshed += 1
                report.offers_written += len(result.offers)
            else:
                report.failed += 1
                report.errors.extend(
                    f"{product_id}: {e}" for e in result.errors
                )

        logger.info(
            "Sync finished: %d attempted, %d refreshed, %d skipped, "
            "%d failed, %d offers written",
            report.attempted,
            report.refreshed,
            report.skipped,
            report.failed,
            report.offers_written,
        )
        return report
