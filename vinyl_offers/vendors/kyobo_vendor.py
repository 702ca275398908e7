# vinyl_offers/vendors/kyobo_vendor.py

"""Adapter for the Kyobo music search page."""

from urllib.parse import urljoin

from bs4 import Tag

from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorProfile
from vinyl_offers.vendors.base_vendor import BaseVendor

_SOLD_OUT_MARKERS = ("품절", "일시품절", "절판")


class KyoboVendor(BaseVendor):
    """Scraper for search.kyobobook.co.kr, music (MUC) category."""

    SEARCH_URL = "https://search.kyobobook.co.kr/search"
    PRODUCT_BASE = "https://product.kyobobook.co.kr/"

    profile = VendorProfile(
        vendor_name="교보문고",
        channel_id="mega-book",
        shipping_fee=0,
        shipping_policy="5만원 이상 무료배송",
        affiliate_code="itsmyturn",
        affiliate_param_key="KyoboCode",
    )

    def __init__(self) -> None:
        super().__init__("kyobo")

    def _get_homepage(self) -> str:
        return "https://www.kyobobook.co.kr/"

    def _parse_card(self, card: Tag) -> CandidateListing | None:
        url_el = card.select_one(self.selectors["url"])
        title_el = card.select_one(self.selectors["title"]) or url_el
        price_el = card.select_one(self.selectors["price"])

        title = title_el.get_text(" ", strip=True) if title_el else ""
        href = str(url_el.get("href", "")) if url_el else ""
        if not title or not href:
            return None

        full_text = card.get_text(" ", strip=True)
        return CandidateListing(
            raw_title=title,
            price=self.extract_price(
                price_el.get_text() if price_el else ""
            ),
            link=urljoin(self.PRODUCT_BASE, href),
            in_stock=not any(m in full_text for m in _SOLD_OUT_MARKERS),
        )

    def search(self, query: str) -> list[CandidateListing]:
        """Search Kyobo's music catalog for *query*."""
        soup = self._get_page(
            self.SEARCH_URL,
            params={"keyword": query, "gbCode": "MUC", "target": "total"},
        )
        listings: list[CandidateListing] = []
        for card in soup.select(self.selectors["item"]):
            listing = self._parse_card(card)
            if listing:
                listings.append(listing)
            if len(listings) >= self.settings.MAX_RESULTS:
                break
        self.logger.info(
            "[kyobo] %d listings for '%s'", len(listings), query,
        )
        return listings
