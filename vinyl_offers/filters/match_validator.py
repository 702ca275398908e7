# vinyl_offers/filters/match_validator.py

"""Decide whether a vendor listing is the requested vinyl release.

Shopping searches for "<artist> <album> LP" return a mix of the right
pressing, the CD edition, posters and shirts, and unrelated items that
happen to share keywords.  Every listing must pass all of these checks:

1. URL category: the link path must not sit under a non-music category
   (books, apparel, health scales, posters, CDs, turntable hardware)
   unless the path also carries a music segment.  Malformed links fail.
2. Format conflict: a digital-format keyword (CD, MP3, FLAC, ...) without
   a vinyl keyword fails.
3. Vinyl keyword: the title must say LP / vinyl / record / 12".
4. Merchandise: shirt, poster, turntable and similar keywords fail,
   unless the word is part of the artist or album name itself.
5. Artist: the normalised artist must appear in the normalised title.
6. Album title: enough album-title tokens must appear in the listing
   title (threshold and token length come from the :class:`MatchPolicy`).
7. Price: within the configured sanity band.
8. Domain: the link host must be an allow-listed storefront.

A rejection is a normal outcome, reported as a :class:`MatchDecision`
with a reason string for the logs, never as an exception.
"""

import logging
from collections import Counter
from dataclasses import dataclass
from urllib.parse import parse_qs, unquote, urlsplit

from vinyl_offers.config.match_rules import MatchRules, load_match_rules
from vinyl_offers.config.settings import Settings
from vinyl_offers.filters.query_builder import QueryBuilder
from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorOffer, VendorProfile
from vinyl_offers.models.policy import MatchPolicy
from vinyl_offers.models.product import ProductIdentifier

logger = logging.getLogger("vinyl_offers.filters")

_CATEGORY_PARAMS: tuple[str, ...] = ("category", "cat", "c")


@dataclass(frozen=True)
class MatchDecision:
    """Outcome of validating one listing."""

    accepted: bool
    reason: str = ""

    @property
    def check(self) -> str:
        """The name of the check that rejected the listing."""
        return self.reason.split(":", 1)[0] if self.reason else ""


_ACCEPT = MatchDecision(accepted=True)


def _reject(check: str, detail: str) -> MatchDecision:
    return MatchDecision(accepted=False, reason=f"{check}: {detail}")


class MatchValidator:
    """Validate candidate listings against a product identifier."""

    def __init__(
        self,
        policy: MatchPolicy | None = None,
        rules: MatchRules | None = None,
        price_floor: int | None = None,
        price_ceiling: int | None = None,
        allowed_domains: tuple[str, ...] | None = None,
    ) -> None:
        self.policy = policy or Settings.MATCH_POLICIES[
            Settings.DEFAULT_MATCH_POLICY
        ]
        self.rules = rules or load_match_rules()
        self.price_floor = (
            Settings.PRICE_FLOOR if price_floor is None else price_floor
        )
        self.price_ceiling = (
            Settings.PRICE_CEILING
            if price_ceiling is None
            else price_ceiling
        )
        domains = (
            Settings.ALLOWED_DOMAINS
            if allowed_domains is None
            else allowed_domains
        )
        self.allowed_domains: tuple[str, ...] = tuple(
            d.lower().removeprefix("www.") for d in domains
        )

    # ── Single-listing checks ────────────────────────────

    def url_rejection(self, url: str) -> str:
        """Return why *url* sits in a non-music category, or ``""``."""
        if not url:
            return "url: empty link"
        try:
            parts = urlsplit(url.strip())
            host = parts.hostname
        except ValueError:
            return "url: malformed link"
        if parts.scheme not in ("http", "https") or not host:
            return "url: malformed link"

        segments = {
            s for s in unquote(parts.path).lower().split("/") if s
        }
        blocked = segments & self.rules.blocked_path_segments
        if blocked and not segments & self.rules.music_path_segments:
            return (
                "url: non-music category "
                f"'{sorted(blocked)[0]}' in path"
            )

        params = parse_qs(parts.query)
        for key in _CATEGORY_PARAMS:
            for value in params.get(key, []):
                lower = value.lower()
                for category in self.rules.blocked_category_params:
                    if category in lower:
                        return (
                            "url: non-music category "
                            f"'{category}' in query"
                        )
        return ""

    def is_valid_url(self, url: str) -> bool:
        """True if *url* parses and is not under a non-music category."""
        return not self.url_rejection(url)

    def is_valid_price(self, price: int) -> bool:
        """True if *price* lies inside the sanity band (inclusive)."""
        return self.price_floor <= price <= self.price_ceiling

    def is_allowed_domain(self, url: str) -> bool:
        """True if the link host is (a subdomain of) a trusted storefront."""
        try:
            host = (urlsplit(url.strip()).hostname or "").lower()
        except ValueError:
            return False
        host = host.removeprefix("www.")
        if not host:
            return False
        return any(
            host == domain or host.endswith(f".{domain}")
            for domain in self.allowed_domains
        )

    def _format_rejection(self, title: str) -> str:
        rules = self.rules
        digital = rules.digital_keywords.find(title)
        has_vinyl = rules.vinyl_keywords.matches(title)
        if digital and not has_vinyl:
            return f"format: digital keyword '{digital[0]}'"
        if not has_vinyl:
            return "format: no vinyl keyword"
        return ""

    def _merch_rejection(
        self, title: str, identifier: ProductIdentifier,
    ) -> str:
        found = self.rules.non_music_keywords.find(title)
        if not found:
            return ""
        own_words = set(
            self.rules.non_music_keywords.find(
                f"{identifier.artist or ''} {identifier.title or ''}"
            )
        )
        foreign = [kw for kw in found if kw not in own_words]
        if foreign:
            return f"merch: non-music keyword '{foreign[0]}'"
        return ""

    def _artist_rejection(
        self, norm_title: str, identifier: ProductIdentifier,
    ) -> str:
        norm_artist = QueryBuilder.normalize(identifier.artist or "")
        if len(norm_artist) < 2:
            return "artist: missing or too short to match on"
        if norm_artist not in norm_title:
            return f"artist: '{identifier.artist}' not in title"
        return ""

    def title_match_ratio(
        self, norm_title: str, album_title: str,
    ) -> float:
        """Fraction of album-title tokens found in *norm_title*.

        Falls back to whole-title containment (1.0 or 0.0) when no
        token is long enough to count under the current policy.
        """
        tokens = QueryBuilder.tokenize(
            album_title, self.policy.min_token_length
        )
        if not tokens:
            norm_album = QueryBuilder.normalize(album_title)
            return 1.0 if norm_album and norm_album in norm_title else 0.0
        matched = sum(1 for t in tokens if t in norm_title)
        return matched / len(tokens)

    def _album_rejection(
        self, norm_title: str, identifier: ProductIdentifier,
    ) -> str:
        if not identifier.title or not identifier.title.strip():
            return "title: album title missing"
        ratio = self.title_match_ratio(norm_title, identifier.title)
        if ratio < self.policy.threshold:
            return (
                f"title: {ratio:.0%} of album tokens matched "
                f"(need {self.policy.threshold:.0%}, "
                f"{self.policy.name})"
            )
        return ""

    def evaluate(
        self,
        listing: CandidateListing,
        identifier: ProductIdentifier,
    ) -> MatchDecision:
        """Run every check against *listing*, stopping at the first failure."""
        title = listing.raw_title.strip()
        if len(title) < Settings.MIN_TITLE_LENGTH:
            return _reject("title", "listing title too short")

        reason = self.url_rejection(listing.link)
        if reason:
            return MatchDecision(accepted=False, reason=reason)

        reason = self._format_rejection(title)
        if reason:
            return MatchDecision(accepted=False, reason=reason)

        reason = self._merch_rejection(title, identifier)
        if reason:
            return MatchDecision(accepted=False, reason=reason)

        norm_title = QueryBuilder.normalize(title)
        reason = self._artist_rejection(norm_title, identifier)
        if reason:
            return MatchDecision(accepted=False, reason=reason)

        reason = self._album_rejection(norm_title, identifier)
        if reason:
            return MatchDecision(accepted=False, reason=reason)

        if not self.is_valid_price(listing.price):
            return _reject(
                "price",
                f"{listing.price} outside "
                f"{self.price_floor}-{self.price_ceiling}",
            )

        if not self.is_allowed_domain(listing.link):
            return _reject("domain", "storefront not allow-listed")

        return _ACCEPT

    # ── Batch validation ─────────────────────────────────

    def validate(
        self,
        listings: list[CandidateListing],
        identifier: ProductIdentifier,
        profile: VendorProfile,
    ) -> tuple[list[VendorOffer], int]:
        """Turn accepted listings into offers.

        Returns the offers (in vendor result order) and the number of
        rejected listings.
        """
        offers: list[VendorOffer] = []
        rejected: Counter[str] = Counter()

        for listing in listings:
            decision = self.evaluate(listing, identifier)
            if not decision.accepted:
                rejected[decision.check] += 1
                logger.debug(
                    "[%s] Rejected '%s': %s",
                    profile.channel_id,
                    listing.raw_title[:60],
                    decision.reason,
                )
                continue
            offers.append(
                VendorOffer.from_listing(
                    profile,
                    price=listing.price,
                    url=listing.link.strip(),
                    in_stock=listing.in_stock,
                )
            )

        total_rejected = sum(rejected.values())
        logger.info(
            "[%s] %d of %d listings matched %s (rejected: %s)",
            profile.channel_id,
            len(offers),
            len(listings),
            identifier.describe(),
            dict(rejected) or "none",
        )
        return offers, total_rejected
