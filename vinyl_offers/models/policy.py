# vinyl_offers/models/policy.py

"""Title-matching strictness tiers."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MatchPolicy:
    """How strictly an album title must match a listing title.

    ``threshold`` is the fraction of album-title tokens that must
    appear in the listing title.  Only tokens longer than
    ``min_token_length`` characters are counted.
    """

    name: str
    threshold: float
    min_token_length: int = 1
