# vinyl_offers/models/listing.py

"""Raw search result as returned by a vendor."""

from dataclasses import dataclass


@dataclass
class CandidateListing:
    """An unvalidated listing from a vendor search."""

    raw_title: str
    price: int
    link: str
    in_stock: bool = True
