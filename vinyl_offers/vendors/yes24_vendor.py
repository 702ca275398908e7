# vinyl_offers/vendors/yes24_vendor.py

"""Adapter for the YES24 search results page."""

from urllib.parse import urljoin

from bs4 import Tag

from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorProfile
from vinyl_offers.vendors.base_vendor import BaseVendor


class Yes24Vendor(BaseVendor):
    """Scraper for yes24.com (all-category search)."""

    SEARCH_URL = "https://www.yes24.com/Product/Search"

    profile = VendorProfile(
        vendor_name="YES24",
        channel_id="mega-book",
        shipping_fee=0,
        shipping_policy="5만원 이상 무료배송",
        affiliate_code="itsmyturn",
        affiliate_param_key="Acode",
    )

    def __init__(self) -> None:
        super().__init__("yes24")

    def _get_homepage(self) -> str:
        return "https://www.yes24.com/"

    def _parse_card(self, card: Tag) -> CandidateListing | None:
        """Parse one result card; None if it lacks a title or link."""
        title_el = card.select_one(self.selectors["title"])
        url_el = card.select_one(self.selectors["url"])
        price_el = card.select_one(self.selectors["price"])
        stock_el = card.select_one(self.selectors["stock"])

        title = title_el.get_text(" ", strip=True) if title_el else ""
        href = str(url_el.get("href", "")) if url_el else ""
        if not title or not href:
            return None

        price_text = price_el.get_text() if price_el else ""
        if not price_text:
            # Some layouts only print the price inline as "35,000원"
            price_text = next(
                (
                    s for s in card.stripped_strings
                    if s.endswith("원")
                ),
                "",
            )
        stock_text = stock_el.get_text().lower() if stock_el else ""

        return CandidateListing(
            raw_title=title,
            price=self.extract_price(price_text),
            link=urljoin(self._get_homepage(), href),
            in_stock=(
                "품절" not in stock_text
                and "out of stock" not in stock_text
            ),
        )

    def search(self, query: str) -> list[CandidateListing]:
        """Search YES24 for *query*."""
        soup = self._get_page(
            self.SEARCH_URL, params={"domain": "ALL", "query": query},
        )
        listings: list[CandidateListing] = []
        for card in soup.select(self.selectors["item"]):
            listing = self._parse_card(card)
            if listing:
                listings.append(listing)
            if len(listings) >= self.settings.MAX_RESULTS:
                break
        self.logger.info(
            "[yes24] %d listings for '%s'", len(listings), query,
        )
        return listings
