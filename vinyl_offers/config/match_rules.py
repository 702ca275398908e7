# vinyl_offers/config/match_rules.py

"""Keyword and URL-category vocabulary shared by every validation path.

The lists live in ``match_rules.json`` and are loaded once into an
immutable :class:`MatchRules`.  Both the interactive resolver and the
offline audit read the same instance, so the two can never drift apart.
"""

import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from vinyl_offers.config.settings import Settings

logger = logging.getLogger("vinyl_offers.config")

_LATIN_RE = re.compile(r"[a-z]")


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Compile a matcher for one lowercase keyword.

    Keywords containing Latin letters must not be glued to other Latin
    letters ("help" does not contain "lp", but "2lp" and "lp판" do).
    Hangul and digit-only keywords match as plain substrings.
    """
    escaped = re.escape(keyword)
    if _LATIN_RE.search(keyword):
        return re.compile(rf"(?<![a-z]){escaped}(?![a-z])")
    return re.compile(escaped)


@dataclass(frozen=True)
class KeywordSet:
    """A named, precompiled set of lowercase keywords."""

    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def of(cls, keywords: list[str]) -> "KeywordSet":
        lowered = tuple(k.lower() for k in keywords if k)
        return cls(
            keywords=lowered,
            patterns=tuple(_keyword_pattern(k) for k in lowered),
        )

    def find(self, text: str) -> list[str]:
        """Return every keyword present in *text* (case-insensitive)."""
        lower = text.lower()
        return [
            kw
            for kw, pattern in zip(self.keywords, self.patterns)
            if pattern.search(lower)
        ]

    def matches(self, text: str) -> bool:
        """True if any keyword is present in *text*."""
        lower = text.lower()
        return any(p.search(lower) for p in self.patterns)


@dataclass(frozen=True)
class MatchRules:
    """Immutable validation vocabulary."""

    vinyl_keywords: KeywordSet
    digital_keywords: KeywordSet
    non_music_keywords: KeywordSet
    blocked_path_segments: frozenset[str]
    music_path_segments: frozenset[str]
    blocked_category_params: tuple[str, ...]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchRules":
        """Build rules from the parsed JSON document."""
        return cls(
            vinyl_keywords=KeywordSet.of(data["vinyl_keywords"]),
            digital_keywords=KeywordSet.of(data["digital_keywords"]),
            non_music_keywords=KeywordSet.of(
                data.get("non_music_keywords", [])
            ),
            blocked_path_segments=frozenset(
                s.lower() for s in data["blocked_path_segments"]
            ),
            music_path_segments=frozenset(
                s.lower() for s in data["music_path_segments"]
            ),
            blocked_category_params=tuple(
                s.lower()
                for s in data.get("blocked_category_params", [])
            ),
        )


@lru_cache(maxsize=None)
def load_match_rules(path: Path | None = None) -> MatchRules:
    """Load and cache the rules file (defaults to ``match_rules.json``)."""
    rules_path = path or Settings.MATCH_RULES_PATH
    with open(rules_path, encoding="utf-8") as f:
        data: dict[str, Any] = json.load(f)
    rules = MatchRules.from_dict(data)
    logger.debug(
        "Loaded match rules from %s (%d vinyl, %d digital keywords)",
        rules_path,
        len(rules.vinyl_keywords.keywords),
        len(rules.digital_keywords.keywords),
    )
    return rules
