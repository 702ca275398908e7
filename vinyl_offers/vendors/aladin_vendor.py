# vinyl_offers/vendors/aladin_vendor.py

"""Adapter for the Aladin TTB open API (music category)."""

from typing import Any

from vinyl_offers.errors import VendorError
from vinyl_offers.filters.query_builder import QueryBuilder
from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorProfile
from vinyl_offers.vendors.base_vendor import BaseVendor


class AladinVendor(BaseVendor):
    """Aladin item search restricted to the Music target."""

    SEARCH_API = "http://www.aladin.co.kr/ttb/api/ItemSearch.aspx"

    profile = VendorProfile(
        vendor_name="알라딘",
        channel_id="aladin-api",
        shipping_fee=0,
        shipping_policy="조건부 무료",
        affiliate_code="itsmyturn",
        affiliate_param_key="Acode",
    )

    def __init__(self) -> None:
        super().__init__("aladin")

    def _get_homepage(self) -> str:
        return "https://www.aladin.co.kr/"

    def is_configured(self) -> bool:
        return bool(self.settings.ALADIN_TTB_KEY)

    def _parse_item(self, item: dict[str, Any]) -> CandidateListing:
        """Parse a single API item into a CandidateListing.

        Aladin keeps the performer in ``author`` rather than the title,
        so it is prepended when the title does not already name it.
        An empty ``stockStatus`` means the item is in normal circulation.
        """
        title = QueryBuilder.clean_title(str(item.get("title", "")))
        author = QueryBuilder.clean_title(str(item.get("author", "")))
        if author and author.lower() not in title.lower():
            title = f"{author} - {title}"
        price = item.get("priceSales") or item.get("priceStandard") or 0
        return CandidateListing(
            raw_title=title,
            price=self.extract_price(str(price)),
            link=str(item.get("link", "") or ""),
            in_stock=not str(item.get("stockStatus", "") or "").strip(),
        )

    def search(self, query: str) -> list[CandidateListing]:
        """Search Aladin's music catalog for *query*."""
        params: dict[str, Any] = {
            "ttbkey": self.settings.ALADIN_TTB_KEY,
            "QueryType": "Keyword",
            "Query": query,
            "MaxResults": self.settings.MAX_RESULTS,
            "start": 1,
            "SearchTarget": "Music",
            "Output": "JS",
            "Version": "20131101",
        }
        headers: dict[str, str] = {"Accept": "application/json"}
        data = self._fetch_json(self.SEARCH_API, headers, params)
        if data.get("errorCode"):
            raise VendorError(
                self.vendor_id,
                f"API error {data['errorCode']}: "
                f"{data.get('errorMessage', '')}",
            )
        items: list[dict[str, Any]] = data.get("item") or []
        listings = [self._parse_item(item) for item in items]
        self.logger.info(
            "[aladin] %d listings for '%s'", len(listings), query,
        )
        return listings
