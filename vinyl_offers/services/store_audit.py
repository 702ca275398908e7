# vinyl_offers/services/store_audit.py

"""Re-check stored offers against the live validation rules."""

import logging
from dataclasses import dataclass, field

from vinyl_offers.filters.match_validator import MatchValidator
from vinyl_offers.storage.offer_store import OfferStore, StoredOffer

logger = logging.getLogger("vinyl_offers.audit")


@dataclass
class AuditReport:
    """What the audit found, and what it removed when purging."""

    shared_urls: dict[str, set[str]] = field(
        default_factory=lambda: dict[str, set[str]]()
    )
    out_of_band: list[StoredOffer] = field(
        default_factory=lambda: list[StoredOffer]()
    )
    bad_links: list[tuple[StoredOffer, str]] = field(
        default_factory=lambda: list[tuple[StoredOffer, str]]()
    )
    deleted: int = 0

    @property
    def clean(self) -> bool:
        return not (self.shared_urls or self.out_of_band or self.bad_links)


def _link_rejection(validator: MatchValidator, url: str) -> str:
    reason = validator.url_rejection(url)
    if reason:
        return reason
    if not validator.is_allowed_domain(url):
        return "domain: storefront not allow-listed"
    return ""


def audit_store(
    store: OfferStore,
    validator: MatchValidator | None = None,
    purge: bool = False,
) -> AuditReport:
    """Audit *store* with the same rules the live path applies.

    Flags URLs attached to more than one product, offers priced
    outside the sanity band, and links that no longer pass the URL
    category or storefront checks.  With *purge*, flagged offers are
    deleted and shared URLs are quarantined.
    """
    checker = validator or MatchValidator()
    report = AuditReport()

    report.shared_urls = store.find_shared_urls()
    report.out_of_band = store.find_offers_outside_band(
        checker.price_floor, checker.price_ceiling,
    )
    for stored in store.all_offers():
        reason = _link_rejection(checker, stored.offer.url)
        if reason:
            report.bad_links.append((stored, reason))

    logger.info(
        "Audit: %d shared URLs, %d out-of-band prices, %d bad links",
        len(report.shared_urls),
        len(report.out_of_band),
        len(report.bad_links),
    )
    for stored in report.out_of_band:
        logger.warning(
            "Out-of-band price %d for %s at %s",
            stored.offer.base_price,
            stored.product_id,
            stored.offer.url,
        )
    for stored, reason in report.bad_links:
        logger.warning(
            "Bad link for %s (%s): %s",
            stored.product_id,
            reason,
            stored.offer.url,
        )

    if not purge:
        return report

    report.deleted = store.purge_shared_urls()
    flagged = {s.offer_id for s in report.out_of_band}
    flagged.update(s.offer_id for s, _ in report.bad_links)
    report.deleted += store.delete_offers(sorted(flagged))
    logger.info("Audit purge removed %d offers", report.deleted)
    return report
