# tests/test_yes24_vendor.py

"""Tests for the YES24 scraper using a saved search page."""

import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.vendors.yes24_vendor import Yes24Vendor

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestYes24Vendor(unittest.TestCase):
    """Result-card parsing for yes24.com."""

    def _search(
        self, mock_session_cls: MagicMock,
    ) -> tuple[MagicMock, list[CandidateListing]]:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        resp = MagicMock()
        resp.status_code = 200
        resp.text = (FIXTURES_DIR / "yes24_search.html").read_text(
            encoding="utf-8"
        )
        mock_session.get.return_value = resp
        listings = Yes24Vendor().search("Miles Davis Kind Of Blue LP")
        return mock_session, listings

    def test_cards_without_title_skipped(
        self, mock_session_cls: MagicMock,
    ) -> None:
        _, listings = self._search(mock_session_cls)
        self.assertEqual(len(listings), 3)

    def test_fields_parsed(self, mock_session_cls: MagicMock) -> None:
        _, listings = self._search(mock_session_cls)
        first = listings[0]
        self.assertEqual(first.raw_title, "Miles Davis - Kind Of Blue [180g LP]")
        self.assertEqual(first.price, 35_000)
        self.assertTrue(first.in_stock)

    def test_relative_links_made_absolute(
        self, mock_session_cls: MagicMock,
    ) -> None:
        _, listings = self._search(mock_session_cls)
        self.assertEqual(
            [item.link for item in listings],
            [
                "https://www.yes24.com/Product/Goods/1001",
                "https://www.yes24.com/Product/Goods/1002",
                "https://www.yes24.com/Product/Goods/1003",
            ],
        )

    def test_sold_out_card(self, mock_session_cls: MagicMock) -> None:
        _, listings = self._search(mock_session_cls)
        self.assertFalse(listings[1].in_stock)

    def test_inline_price_fallback(self, mock_session_cls: MagicMock) -> None:
        _, listings = self._search(mock_session_cls)
        self.assertEqual(listings[2].price, 42_000)

    def test_search_params(self, mock_session_cls: MagicMock) -> None:
        mock_session, _ = self._search(mock_session_cls)
        call = mock_session.get.call_args
        self.assertEqual(call.args[0], Yes24Vendor.SEARCH_URL)
        self.assertEqual(
            call.kwargs["params"],
            {"domain": "ALL", "query": "Miles Davis Kind Of Blue LP"},
        )

    def test_empty_page(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        resp = MagicMock()
        resp.status_code = 200
        resp.text = "<html><body><ul id='yesSchList'></ul></body></html>"
        mock_session.get.return_value = resp
        self.assertEqual(Yes24Vendor().search("nothing"), [])


if __name__ == "__main__":
    unittest.main()
