# vinyl_offers/models/product.py

"""Catalog identifier for the record being priced."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ProductIdentifier:
    """Names a single release: barcode, catalog id and/or artist + title."""

    ean: str | None = None
    catalog_id: str | None = None
    title: str | None = None
    artist: str | None = None

    def is_resolvable(self) -> bool:
        """Return True when there is enough to run a constrained search.

        An EAN or catalog id is enough on its own; otherwise both
        title and artist are required.
        """
        if _present(self.ean) or _present(self.catalog_id):
            return True
        return _present(self.title) and _present(self.artist)

    def describe(self) -> str:
        """Short human-readable label for log lines."""
        if _present(self.artist) or _present(self.title):
            label = f"{self.artist or '?'} - {self.title or '?'}"
        else:
            label = "unknown release"
        if _present(self.ean):
            label += f" (EAN {self.ean})"
        elif _present(self.catalog_id):
            label += f" (catalog {self.catalog_id})"
        return label


def _present(value: str | None) -> bool:
    return bool(value and value.strip())
