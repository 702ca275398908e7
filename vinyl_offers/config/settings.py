# vinyl_offers/config/settings.py

"""Central configuration for the vinyl_offers engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

from vinyl_offers.models.policy import MatchPolicy

load_dotenv()


class Settings:
    """Central configuration for the vinyl_offers engine."""

    # --- Vendor calls ---
    VENDOR_DELAY: float = 2.0           # Seconds between vendor calls
    PRODUCT_DELAY: float = 0.5          # Seconds between products (sync)
    REQUEST_DELAY: float = 1.0          # Base backoff unit (linear)
    REQUEST_TIMEOUT: int = 5            # Seconds before a call times out
    MAX_RETRIES: int = 3                # Attempts per vendor call
    MAX_RESULTS: int = 50               # Listings requested per search

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 3  # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    MAX_DELAY_MULTIPLIER: int = 8       # Cap for adaptive backoff
    CAPTCHA_KEYWORDS: list[str] = [
        "captcha",
        "verify you are human",
        "unusual traffic",
        "automated requests",
        "자동입력 방지",
    ]

    # --- Matching ---
    PRICE_FLOOR: int = 20_000
    PRICE_CEILING: int = 1_000_000
    MATCH_POLICIES: dict[str, MatchPolicy] = {
        "relaxed": MatchPolicy(
            name="relaxed", threshold=0.70, min_token_length=1
        ),
        "strict": MatchPolicy(
            name="strict", threshold=0.95, min_token_length=2
        ),
    }
    DEFAULT_MATCH_POLICY: str = "relaxed"
    SYNC_MATCH_POLICY: str = "strict"
    MIN_TITLE_LENGTH: int = 5           # Shorter listing titles are noise

    # Trusted storefronts; subdomains of an entry are accepted too
    ALLOWED_DOMAINS: tuple[str, ...] = (
        "smartstore.naver.com",
        "brand.naver.com",
        "shopping.naver.com",
        "yes24.com",
        "aladin.co.kr",
        "synnara.co.kr",
        "hottracks.kyobobook.co.kr",
        "product.kyobobook.co.kr",
        "book.interpark.com",
        "shopping.interpark.com",
        "coupang.com",
        "gmarket.co.kr",
        "auction.co.kr",
    )

    # --- Cache / store ---
    CACHE_TTL: float = 24 * 60 * 60     # Offer-set freshness (secs)
    MAX_OFFERS_PER_PRODUCT: int = 5
    SYNC_BATCH_SIZE: int = 10

    # --- Credentials (from environment / .env) ---
    NAVER_CLIENT_ID: str = os.getenv("NAVER_CLIENT_ID", "")
    NAVER_CLIENT_SECRET: str = os.getenv("NAVER_CLIENT_SECRET", "")
    ALADIN_TTB_KEY: str = os.getenv("ALADIN_TTB_KEY", "")

    # --- Browser Impersonation ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
        "sec-ch-ua": (
            '"Google Chrome";v="131", '
            '"Chromium";v="131", '
            '"Not_A Brand";v="24"'
        ),
        "sec-ch-ua-mobile": "?0",
        "sec-ch-ua-platform": '"Windows"',
        "sec-fetch-dest": "document",
        "sec-fetch-mode": "navigate",
        "sec-fetch-site": "none",
        "sec-fetch-user": "?1",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "vinyl_offers" / "config" / "selectors.json"
    )
    MATCH_RULES_PATH: Path = (
        BASE_DIR / "vinyl_offers" / "config" / "match_rules.json"
    )
    DATA_DIR: Path = BASE_DIR / "data"
    OFFER_DB_PATH: Path = Path(
        os.getenv("VINYL_OFFERS_DB", str(DATA_DIR / "offers.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"

    # --- Vendors (resolution order is the list order) ---
    AVAILABLE_VENDORS: list[dict[str, str]] = [
        {
            "id": "aladin",
            "label": "Aladin",
            "adapter": "vinyl_offers.vendors.aladin_vendor.AladinVendor",
        },
        {
            "id": "naver",
            "label": "Naver Shopping",
            "adapter": "vinyl_offers.vendors.naver_vendor.NaverVendor",
        },
        {
            "id": "yes24",
            "label": "YES24",
            "adapter": "vinyl_offers.vendors.yes24_vendor.Yes24Vendor",
        },
        {
            "id": "kyobo",
            "label": "Kyobo",
            "adapter": "vinyl_offers.vendors.kyobo_vendor.KyoboVendor",
        },
    ]
