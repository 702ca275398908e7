# vinyl_offers/vendors/naver_vendor.py

"""Adapter for the Naver Shopping open search API."""

from typing import Any

from vinyl_offers.filters.query_builder import QueryBuilder
from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorProfile
from vinyl_offers.vendors.base_vendor import BaseVendor


class NaverVendor(BaseVendor):
    """Naver Shopping search via the official JSON API.

    The API aggregates many storefronts, so its results are the noisiest
    of all vendors: titles carry ``<b>`` highlight markup and links point
    at whichever mall lists the item.
    """

    SEARCH_API = "https://openapi.naver.com/v1/search/shop.json"

    profile = VendorProfile(
        vendor_name="네이버쇼핑",
        channel_id="naver-api",
        shipping_fee=0,
        shipping_policy="상세 페이지 참조",
        affiliate_code="itsmyturn",
        affiliate_param_key="NaverCode",
    )

    def __init__(self) -> None:
        super().__init__("naver")

    def _get_homepage(self) -> str:
        return "https://shopping.naver.com/"

    def is_configured(self) -> bool:
        return bool(
            self.settings.NAVER_CLIENT_ID
            and self.settings.NAVER_CLIENT_SECRET
        )

    def _parse_item(self, item: dict[str, Any]) -> CandidateListing:
        """Parse a single API item into a CandidateListing."""
        return CandidateListing(
            raw_title=QueryBuilder.clean_title(str(item.get("title", ""))),
            price=self.extract_price(str(item.get("lprice", ""))),
            link=str(item.get("link", "") or ""),
        )

    def search(self, query: str) -> list[CandidateListing]:
        """Search Naver Shopping for *query*."""
        headers: dict[str, str] = {
            "Accept": "application/json",
            "X-Naver-Client-Id": self.settings.NAVER_CLIENT_ID,
            "X-Naver-Client-Secret": self.settings.NAVER_CLIENT_SECRET,
        }
        params: dict[str, Any] = {
            "query": query,
            "display": self.settings.MAX_RESULTS,
            "sort": "sim",
        }
        data = self._fetch_json(self.SEARCH_API, headers, params)
        items: list[dict[str, Any]] = data.get("items") or []
        listings = [self._parse_item(item) for item in items]
        self.logger.info(
            "[naver] %d listings for '%s'", len(listings), query,
        )
        return listings
