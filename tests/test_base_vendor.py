# tests/test_base_vendor.py

"""Tests for BaseVendor resilience features."""

import time
import unittest
from typing import Any
from unittest.mock import MagicMock, patch

from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from vinyl_offers.errors import VendorError
from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.vendors.base_vendor import BaseVendor


class _StubVendor(BaseVendor):
    """Concrete vendor exposing protected members for testing."""

    def _get_homepage(self) -> str:
        return "https://example.com"

    def search(self, query: str) -> list[CandidateListing]:
        return []

    @property
    def circuit_open(self) -> bool:
        """Expose circuit breaker flag."""
        return self._circuit_open

    @circuit_open.setter
    def circuit_open(self, value: bool) -> None:
        self._circuit_open = value

    @property
    def circuit_opened_at(self) -> float:
        """Expose circuit breaker timestamp."""
        return self._circuit_opened_at

    @circuit_opened_at.setter
    def circuit_opened_at(self, value: float) -> None:
        self._circuit_opened_at = value

    @property
    def consecutive_failures(self) -> int:
        """Expose failure counter."""
        return self._consecutive_failures

    @consecutive_failures.setter
    def consecutive_failures(self, value: int) -> None:
        self._consecutive_failures = value

    @property
    def current_delay(self) -> float:
        """Expose adaptive delay."""
        return self._current_delay

    @current_delay.setter
    def current_delay(self, value: float) -> None:
        self._current_delay = value

    def fetch_get(
        self, url: str, headers: dict[str, str],
    ) -> curl_requests.Response:
        """Public wrapper for _fetch_get."""
        return self._fetch_get(url, headers)

    def fetch_json(self, url: str) -> dict[str, Any]:
        """Public wrapper for _fetch_json."""
        return self._fetch_json(url, {})

    def get_page(self, url: str) -> BeautifulSoup:
        """Public wrapper for _get_page."""
        return self._get_page(url)

    def escalate_delay(self) -> None:
        """Public wrapper for _escalate_delay."""
        self._escalate_delay()


def _resp(status: int, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.text = text
    return resp


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestCircuitBreaker(unittest.TestCase):
    """Circuit breaker opens after consecutive failures."""

    def test_exhausted_retries_raise_vendor_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        vendor = _StubVendor("test")
        with self.assertRaises(VendorError) as ctx:
            vendor.fetch_get("https://example.com", {})

        self.assertEqual(ctx.exception.vendor_id, "test")
        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(
            mock_session.get.call_count, vendor.settings.MAX_RETRIES,
        )

    def test_transport_exception_kept_on_error(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        boom = ConnectionError("reset by peer")
        mock_session.get.side_effect = boom

        vendor = _StubVendor("test")
        with self.assertRaises(VendorError) as ctx:
            vendor.fetch_get("https://example.com", {})
        self.assertIs(ctx.exception.original_exception, boom)

    def test_circuit_opens_after_threshold(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        vendor = _StubVendor("test")
        threshold = vendor.settings.CIRCUIT_BREAKER_THRESHOLD

        for _ in range(threshold):
            with self.assertRaises(VendorError):
                vendor.fetch_get("https://example.com", {})

        self.assertTrue(vendor.circuit_open)

        # Subsequent calls short-circuit immediately
        mock_session.get.reset_mock()
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})
        mock_session.get.assert_not_called()

    def test_success_resets_counter(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        retries = 3
        side_effects: list[Any] = (
            [_resp(500)] * retries + [_resp(200, '{"ok": true}')]
        )
        mock_session.get.side_effect = side_effects

        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})
        self.assertEqual(vendor.consecutive_failures, 1)

        vendor.fetch_get("https://example.com", {})
        self.assertEqual(vendor.consecutive_failures, 0)

    def test_circuit_skips_get_page_fallback(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session

        vendor = _StubVendor("test")
        vendor.circuit_open = True
        vendor.circuit_opened_at = time.time()

        with patch(
            "vinyl_offers.vendors.base_vendor.cloudscraper.create_scraper"
        ) as mock_create:
            with self.assertRaises(VendorError):
                vendor.get_page("https://example.com")
        mock_session.get.assert_not_called()
        mock_create.assert_not_called()


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestCircuitBreakerCooldown(unittest.TestCase):
    """Circuit breaker half-open reset after cooldown."""

    def test_circuit_resets_after_cooldown(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"ok": true}')

        vendor = _StubVendor("test")
        vendor.circuit_open = True
        cooldown = vendor.settings.CIRCUIT_BREAKER_COOLDOWN
        vendor.circuit_opened_at = time.time() - cooldown - 1

        vendor.fetch_get("https://example.com", {})
        mock_session.get.assert_called()
        self.assertFalse(vendor.circuit_open)
        self.assertEqual(vendor.consecutive_failures, 0)

    def test_circuit_reopens_on_probe_failure(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        vendor = _StubVendor("test")
        vendor.circuit_open = True
        cooldown = vendor.settings.CIRCUIT_BREAKER_COOLDOWN
        vendor.circuit_opened_at = time.time() - cooldown - 1
        threshold = vendor.settings.CIRCUIT_BREAKER_THRESHOLD
        vendor.consecutive_failures = threshold - 1

        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})
        self.assertTrue(vendor.circuit_open)


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestAdaptiveDelay(unittest.TestCase):
    """Rate-limiting detection escalates the delay."""

    def _escalated_after(
        self, mock_session_cls: MagicMock, status: int,
    ) -> tuple[float, float]:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(status)
        vendor = _StubVendor("test")
        original = vendor.current_delay
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})
        return original, vendor.current_delay

    def test_429_escalates_delay(self, mock_session_cls: MagicMock) -> None:
        original, current = self._escalated_after(mock_session_cls, 429)
        self.assertGreater(current, original)

    def test_403_escalates_delay(self, mock_session_cls: MagicMock) -> None:
        original, current = self._escalated_after(mock_session_cls, 403)
        self.assertGreater(current, original)

    def test_500_does_not_escalate(self, mock_session_cls: MagicMock) -> None:
        original, current = self._escalated_after(mock_session_cls, 500)
        self.assertEqual(current, original)

    def test_success_resets_delay(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"items": []}')

        vendor = _StubVendor("test")
        vendor.current_delay = 8.0

        vendor.fetch_get("https://example.com", {})

        self.assertEqual(vendor.current_delay, vendor.settings.REQUEST_DELAY)

    def test_delay_capped_at_max(self, mock_session_cls: MagicMock) -> None:
        mock_session_cls.return_value = MagicMock()
        vendor = _StubVendor("test")
        max_delay = (
            vendor.settings.REQUEST_DELAY
            * vendor.settings.MAX_DELAY_MULTIPLIER
        )
        for _ in range(20):
            vendor.escalate_delay()
        self.assertLessEqual(vendor.current_delay, max_delay)

    @patch("vinyl_offers.vendors.base_vendor.time.sleep")
    def test_linear_backoff_between_attempts(
        self, mock_sleep: MagicMock, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(500)

        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})

        base = vendor.settings.REQUEST_DELAY
        waits = [c.args[0] for c in mock_sleep.call_args_list]
        self.assertEqual(waits, [base * 1, base * 2])


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestCaptchaDetection(unittest.TestCase):
    """CAPTCHA and challenge detection in non-JSON responses."""

    def test_captcha_html_triggers_retry(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.side_effect = [
            _resp(200, "<html>Please solve the captcha</html>"),
            _resp(200, '{"ok": true}'),
        ]

        vendor = _StubVendor("test")
        vendor.fetch_get("https://example.com", {})
        self.assertEqual(mock_session.get.call_count, 2)

    def test_korean_captcha_keyword(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(
            200, "<html>자동입력 방지 문자를 입력하세요</html>",
        )
        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})

    def test_cloudflare_challenge_detected(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(
            200, "<html><title>Just a moment...</title></html>",
        )
        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_get("https://example.com", {})

    def test_json_response_skips_captcha_check(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(
            200, '{"title": "Captcha - Live LP", "price": 30000}',
        )
        vendor = _StubVendor("test")
        resp = vendor.fetch_get("https://example.com", {})
        self.assertEqual(resp.status_code, 200)

    def test_large_result_page_skips_keyword_scan(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        page = (
            "<html><body>"
            + "<li>Captcha - Live LP</li>" * 300
            + "</body></html>"
        )
        mock_session.get.return_value = _resp(200, page)
        vendor = _StubVendor("test")
        resp = vendor.fetch_get("https://example.com", {})
        self.assertEqual(mock_session.get.call_count, 1)
        self.assertIs(resp, mock_session.get.return_value)


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestFetchJson(unittest.TestCase):
    """JSON endpoint decoding."""

    def test_decodes_object(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"item": []}')
        vendor = _StubVendor("test")
        self.assertEqual(vendor.fetch_json("https://example.com"), {"item": []})

    def test_trailing_semicolon_stripped(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, '{"item": []};\n')
        vendor = _StubVendor("test")
        self.assertEqual(vendor.fetch_json("https://example.com"), {"item": []})

    def test_invalid_json_raises(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, "{not json")
        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_json("https://example.com")

    def test_non_object_payload_raises(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, "[1, 2, 3]")
        vendor = _StubVendor("test")
        with self.assertRaises(VendorError):
            vendor.fetch_json("https://example.com")


@patch("vinyl_offers.vendors.base_vendor.curl_requests.Session")
class TestCloudscraperFallback(unittest.TestCase):
    """_get_page retries through cloudscraper once curl_cffi gives up."""

    def test_fallback_page_returned(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(503)
        vendor = _StubVendor("test")

        with patch(
            "vinyl_offers.vendors.base_vendor.cloudscraper.create_scraper"
        ) as mock_create:
            mock_create.return_value.get.return_value = _resp(
                200, "<html><body><p>ok</p></body></html>",
            )
            soup = vendor.get_page("https://example.com")

        self.assertEqual(soup.p.get_text(), "ok")
        self.assertEqual(vendor.consecutive_failures, 0)

    def test_fallback_failure_reraises_original(
        self, mock_session_cls: MagicMock,
    ) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(503)
        vendor = _StubVendor("test")

        with patch(
            "vinyl_offers.vendors.base_vendor.cloudscraper.create_scraper"
        ) as mock_create:
            mock_create.return_value.get.return_value = _resp(403)
            with self.assertRaises(VendorError) as ctx:
                vendor.get_page("https://example.com")
        self.assertEqual(ctx.exception.status_code, 503)

    def test_referer_header_sent(self, mock_session_cls: MagicMock) -> None:
        mock_session = MagicMock()
        mock_session_cls.return_value = mock_session
        mock_session.get.return_value = _resp(200, "<html></html>")
        vendor = _StubVendor("test")
        vendor.get_page("https://example.com/search")
        headers = mock_session.get.call_args.kwargs["headers"]
        self.assertEqual(headers["Referer"], "https://example.com")


class TestExtractPrice(unittest.TestCase):
    """Whole-won price parsing."""

    def test_grouped_digits(self) -> None:
        self.assertEqual(BaseVendor.extract_price("35,000원"), 35_000)

    def test_first_number_wins(self) -> None:
        self.assertEqual(
            BaseVendor.extract_price("판매가 42,500원 (정가 50,000원)"),
            42_500,
        )

    def test_plain_number(self) -> None:
        self.assertEqual(BaseVendor.extract_price("29000"), 29_000)

    def test_empty_or_missing(self) -> None:
        self.assertEqual(BaseVendor.extract_price(""), 0)
        self.assertEqual(BaseVendor.extract_price(None), 0)
        self.assertEqual(BaseVendor.extract_price("품절"), 0)


if __name__ == "__main__":
    unittest.main()
