# vinyl_offers/vendors/base_vendor.py

"""Abstract base class for all vendor adapters."""

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any

import cloudscraper  # type: ignore[import-untyped]
from bs4 import BeautifulSoup
from curl_cffi import requests as curl_requests

from vinyl_offers.config.settings import Settings
from vinyl_offers.errors import VendorError
from vinyl_offers.models.listing import CandidateListing
from vinyl_offers.models.offer import VendorProfile

_PRICE_RE = re.compile(r"\d[\d,]*")


class BaseVendor(ABC):
    """Abstract base class for all vendor adapters.

    Subclasses set :attr:`profile` and implement :meth:`search`.  Every
    network call goes through :meth:`_fetch_get`, which retries with a
    linear backoff and raises :class:`VendorError` once retries are
    exhausted, so callers can tell "no results" from "vendor down".
    """

    profile: VendorProfile

    def __init__(self, vendor_id: str) -> None:
        self.vendor_id = vendor_id
        self.logger = logging.getLogger(f"vinyl_offers.{vendor_id}")
        self.settings = Settings()
        self.selectors: dict[str, str] = self._load_selectors()
        self.session = curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._current_delay: float = self.settings.REQUEST_DELAY
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = self.settings.REQUEST_TIMEOUT

    def _load_selectors(self) -> dict[str, str]:
        """Load CSS selectors for this vendor from selectors.json."""
        with open(self.settings.SELECTORS_PATH, encoding="utf-8") as f:
            all_selectors: dict[str, Any] = json.load(f)
        result: dict[str, str] = all_selectors.get(self.vendor_id, {})
        return result

    def is_configured(self) -> bool:
        """False when credentials this vendor needs are missing."""
        return True

    # Cloudflare challenge page markers (checked before keyword scan)
    _CF_CHALLENGE_MARKERS: list[str] = [
        "challenges.cloudflare.com",
        "cdn-cgi/challenge-platform",
        "just a moment",
        "cf-turnstile",
        "cf_chl_opt",
    ]

    def _validate_response(
        self, resp: curl_requests.Response,
    ) -> bool:
        """Check for Cloudflare challenge pages and CAPTCHA indicators."""
        text = resp.text
        if text.lstrip().startswith(("{", "[")):
            return True
        lower = text.lower()

        for marker in self._CF_CHALLENGE_MARKERS:
            if marker in lower:
                self.logger.warning(
                    "[%s] Cloudflare challenge detected "
                    "(marker: '%s')",
                    self.vendor_id,
                    marker,
                )
                return False

        # Skip the keyword scan on real result pages to avoid
        # matching a product literally named "captcha"
        has_body_content = "<body" in lower and len(text) > 5000
        if not has_body_content:
            for keyword in self.settings.CAPTCHA_KEYWORDS:
                if keyword in lower:
                    self.logger.warning(
                        "[%s] CAPTCHA keyword '%s' detected",
                        self.vendor_id,
                        keyword,
                    )
                    return False
        return True

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single probe request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.vendor_id,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0
        self._current_delay = self.settings.REQUEST_DELAY

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        threshold = self.settings.CIRCUIT_BREAKER_THRESHOLD
        if self._consecutive_failures >= threshold:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.vendor_id,
                self._consecutive_failures,
            )

    def _escalate_delay(self) -> None:
        """Double the current delay up to the configured max."""
        max_delay = (
            self.settings.REQUEST_DELAY
            * self.settings.MAX_DELAY_MULTIPLIER
        )
        self._current_delay = min(self._current_delay * 2, max_delay)
        self.logger.warning(
            "[%s] Rate-limited, delay escalated to %.1fs",
            self.vendor_id,
            self._current_delay,
        )

    def _backoff(self, attempt: int) -> None:
        """Linear backoff between attempts; none after the last one."""
        if attempt + 1 < self.settings.MAX_RETRIES:
            time.sleep(self._current_delay * (attempt + 1))

    def _fetch_get(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> curl_requests.Response:
        """GET with retries, adaptive delay, and circuit breaker.

        Raises :class:`VendorError` when the breaker is open or every
        attempt failed.
        """
        if self._check_circuit():
            raise VendorError(
                self.vendor_id, "Circuit breaker open, call skipped"
            )
        last_status: int | None = None
        last_exc: Exception | None = None
        for attempt in range(self.settings.MAX_RETRIES):
            try:
                resp = self.session.get(
                    url,
                    headers=headers,
                    params=params,
                    timeout=self._request_timeout,
                )
                if resp.status_code == 200:
                    if not self._validate_response(resp):
                        self._escalate_delay()
                        self._backoff(attempt)
                        continue
                    self._record_success()
                    return resp
                last_status = resp.status_code
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d",
                    self.vendor_id,
                    resp.status_code,
                    attempt + 1,
                )
                if resp.status_code in (429, 403):
                    self._escalate_delay()
            except Exception as exc:
                last_exc = exc
                self.logger.warning(
                    "[%s] Request error on attempt %d: %s",
                    self.vendor_id,
                    attempt + 1,
                    exc,
                    exc_info=True,
                )
            self._backoff(attempt)
        self._record_failure()
        raise VendorError(
            self.vendor_id,
            f"Gave up after {self.settings.MAX_RETRIES} attempts",
            original_exception=last_exc,
            status_code=last_status,
        )

    def _fetch_json(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """GET a JSON API endpoint and decode the object it returns."""
        resp = self._fetch_get(url, headers, params)
        # Some endpoints terminate the JSON body with a semicolon
        body = resp.text.strip().rstrip(";")
        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise VendorError(
                self.vendor_id, "Response was not valid JSON", exc,
            ) from exc
        if not isinstance(data, dict):
            raise VendorError(
                self.vendor_id, "Unexpected JSON payload shape",
            )
        return data

    def _get_page(
        self,
        url: str,
        params: dict[str, Any] | None = None,
    ) -> BeautifulSoup:
        """Fetch an HTML page, falling back to cloudscraper on failure."""
        headers: dict[str, str] = {
            **self.settings.DEFAULT_HEADERS,
            "Referer": self._get_homepage(),
        }

        # Primary: curl_cffi (browser-impersonating TLS)
        try:
            resp = self._fetch_get(url, headers, params)
            return BeautifulSoup(resp.text, "lxml")
        except VendorError as primary_error:
            if self._circuit_open:
                raise
            error = primary_error

        # Fallback: cloudscraper (JS challenge solver)
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.vendor_id,
        )
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            fallback_resp: Any = scraper.get(
                url,
                headers=headers,
                params=params,
                timeout=self._request_timeout,
            )
            if fallback_resp.status_code == 200:
                self._record_success()
                return BeautifulSoup(str(fallback_resp.text), "lxml")
            self.logger.warning(
                "[%s] cloudscraper fallback returned HTTP %d",
                self.vendor_id,
                fallback_resp.status_code,
            )
        except Exception as e:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.vendor_id,
                e,
                exc_info=True,
            )
        raise error

    @staticmethod
    def extract_price(text: str | None) -> int:
        """Extract a whole-won price from a string like '35,000원'."""
        if not text:
            return 0
        match = _PRICE_RE.search(text)
        if not match:
            return 0
        return int(match.group(0).replace(",", ""))

    @abstractmethod
    def _get_homepage(self) -> str:
        """Return the homepage URL for the Referer header."""
        ...

    @abstractmethod
    def search(self, query: str) -> list[CandidateListing]:
        """Search the vendor and return raw candidate listings.

        Raises :class:`VendorError` if the vendor could not be reached.
        """
        ...
