# vinyl_offers/filters/query_builder.py

"""Search-query construction and text normalisation for matching."""

import html
import logging
import re

from vinyl_offers.errors import InputError
from vinyl_offers.models.product import ProductIdentifier

logger = logging.getLogger("vinyl_offers.filters")

# Characters dropped before substring comparison
_NORMALIZE_RE = re.compile(r"[\s_.,()\[\]\-]")
# Word separators for title tokenisation (anything not a letter/digit)
_TOKEN_SPLIT_RE = re.compile(r"[\W_]+")
_TAG_RE = re.compile(r"<[^>]+>")


class QueryBuilder:
    """Build vendor search queries and comparison keys from identifiers."""

    @staticmethod
    def build_query(identifier: ProductIdentifier) -> str:
        """Return the vendor search string for *identifier*.

        Prefers the EAN, then the external catalog id, and otherwise
        falls back to ``"<artist> <title> LP"``.
        """
        if identifier.ean and identifier.ean.strip():
            return identifier.ean.strip()
        if identifier.catalog_id and identifier.catalog_id.strip():
            return identifier.catalog_id.strip()
        if identifier.is_resolvable():
            artist = (identifier.artist or "").strip()
            title = (identifier.title or "").strip()
            query = f"{artist} {title} LP"
            logger.debug("Built text query: '%s'", query)
            return query
        raise InputError(
            "An EAN, a catalog id, or both artist and title are required"
        )

    @staticmethod
    def normalize(text: str) -> str:
        """Lowercase and strip whitespace and ``_ . , ( ) [ ] -``."""
        if not text:
            return ""
        return _NORMALIZE_RE.sub("", text).lower()

    @staticmethod
    def tokenize(text: str, min_length: int = 1) -> list[str]:
        """Split *text* into normalised words longer than *min_length*."""
        if not text:
            return []
        words = _TOKEN_SPLIT_RE.split(text.lower())
        tokens = [QueryBuilder.normalize(w) for w in words]
        return [t for t in tokens if len(t) > min_length]

    @staticmethod
    def clean_title(raw: str) -> str:
        """Strip vendor highlight markup and collapse whitespace.

        Shopping APIs wrap the matched terms in ``<b>`` tags and
        escape entities (``&amp;``, ``&quot;``).
        """
        if not raw:
            return ""
        text = html.unescape(_TAG_RE.sub("", raw))
        return " ".join(text.split())
