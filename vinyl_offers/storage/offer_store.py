# vinyl_offers/storage/offer_store.py

"""SQLite-backed store for the product catalog and resolved offer sets."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, cast

from vinyl_offers.config.settings import Settings
from vinyl_offers.errors import StoreError
from vinyl_offers.filters.deduplicator import OfferDeduplicator
from vinyl_offers.models.cache_entry import CacheEntry
from vinyl_offers.models.offer import VendorOffer
from vinyl_offers.models.product import ProductIdentifier

logger = logging.getLogger("vinyl_offers.store")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id             TEXT PRIMARY KEY,
    ean            TEXT,
    catalog_id     TEXT,
    title          TEXT,
    artist         TEXT,
    last_synced_at TEXT
);

CREATE TABLE IF NOT EXISTS offer_sets (
    product_id      TEXT PRIMARY KEY,
    last_checked_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS offers (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id          TEXT    NOT NULL
                        REFERENCES offer_sets(product_id) ON DELETE CASCADE,
    position            INTEGER NOT NULL,
    vendor_name         TEXT    NOT NULL,
    channel_id          TEXT    NOT NULL,
    base_price          INTEGER NOT NULL,
    currency            TEXT    NOT NULL DEFAULT 'KRW',
    shipping_fee        INTEGER NOT NULL DEFAULT 0,
    shipping_policy     TEXT    NOT NULL DEFAULT '',
    url                 TEXT    NOT NULL,
    in_stock            INTEGER NOT NULL DEFAULT 1,
    affiliate_code      TEXT,
    affiliate_param_key TEXT
);

CREATE INDEX IF NOT EXISTS idx_offers_product
    ON offers(product_id, position);

CREATE INDEX IF NOT EXISTS idx_offers_url
    ON offers(url);

CREATE TABLE IF NOT EXISTS shared_urls (
    url        TEXT PRIMARY KEY,
    flagged_at TEXT NOT NULL
);
"""

_OFFER_COLUMNS = (
    "vendor_name, channel_id, base_price, shipping_fee, "
    "shipping_policy, url, in_stock, affiliate_code, affiliate_param_key"
)


def _ts(moment: datetime) -> str:
    """Fixed-width ISO timestamp so stored values sort lexically."""
    return moment.isoformat(timespec="microseconds")


def _row_to_offer(row: tuple[Any, ...]) -> VendorOffer:
    return VendorOffer(
        vendor_name=row[0],
        channel_id=row[1],
        base_price=int(row[2]),
        shipping_fee=int(row[3]),
        shipping_policy=row[4],
        url=row[5],
        in_stock=bool(row[6]),
        affiliate_code=row[7],
        affiliate_param_key=row[8],
    )


@dataclass(frozen=True)
class StoredOffer:
    """An offer row together with its row id and owning product."""

    offer_id: int
    product_id: str
    offer: VendorOffer


class OfferStore:
    """Durable catalog + offer-set store.

    Offer sets are replaced wholesale inside one transaction, so a
    reader never sees half of an old set mixed with half of a new one.
    A single connection is shared between threads behind a lock.
    """

    def __init__(
        self, db_path: Path | None = None,
    ) -> None:
        path = db_path or Settings.OFFER_DB_PATH
        self._lock = threading.RLock()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(path),
                check_same_thread=False,
                isolation_level=None,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise StoreError(
                f"Could not open offer store at {path}", exc
            ) from exc
        logger.debug("OfferStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Run statements in one IMMEDIATE transaction."""
        with self._lock:
            cur = self._conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                yield cur
            except BaseException:
                if self._conn.in_transaction:
                    cur.execute("ROLLBACK")
                raise
            cur.execute("COMMIT")

    def _query(
        self, sql: str, params: tuple[Any, ...] = (),
    ) -> list[tuple[Any, ...]]:
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return cast(list[tuple[Any, ...]], rows)

    # ── Offer sets ───────────────────────────────────────

    def get(self, product_id: str) -> CacheEntry | None:
        """Return the stored offer set for *product_id*, if any."""
        try:
            head = self._query(
                "SELECT last_checked_at FROM offer_sets "
                "WHERE product_id = ?",
                (product_id,),
            )
            if not head:
                return None
            rows = self._query(
                f"SELECT {_OFFER_COLUMNS} FROM offers "
                "WHERE product_id = ? ORDER BY position",
                (product_id,),
            )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to read offers for {product_id}", exc
            ) from exc
        return CacheEntry(
            product_id=product_id,
            offers=tuple(_row_to_offer(r) for r in rows),
            last_checked_at=datetime.fromisoformat(head[0][0]),
        )

    def put(
        self,
        product_id: str,
        offers: list[VendorOffer],
        checked_at: datetime | None = None,
    ) -> CacheEntry:
        """Replace the offer set for *product_id* and stamp it.

        Returns the entry as written.  See :meth:`write`.
        """
        entry, _ = self.write(product_id, offers, checked_at)
        return entry

    def write(
        self,
        product_id: str,
        offers: list[VendorOffer],
        checked_at: datetime | None = None,
    ) -> tuple[CacheEntry, set[str]]:
        """Replace the offer set for *product_id* and stamp it.

        Before writing, every incoming URL is checked against the rest
        of the store.  A URL that is quarantined, or already attached to
        a different product, is not written; the other product's offers
        carrying it are purged and the URL is quarantined for good.

        Returns the entry as written and the ids of the other products
        whose offers were purged.
        """
        now = checked_at or datetime.now()
        ts = _ts(now)
        kept: list[VendorOffer] = []
        purged: set[str] = set()
        try:
            with self._transaction() as cur:
                for offer in offers:
                    url = offer.url.strip()
                    if self._claim_url(cur, product_id, url, ts, purged):
                        kept.append(offer)

                cur.execute(
                    "DELETE FROM offers WHERE product_id = ?",
                    (product_id,),
                )
                cur.execute(
                    "INSERT INTO offer_sets (product_id, last_checked_at) "
                    "VALUES (?, ?) "
                    "ON CONFLICT(product_id) DO UPDATE "
                    "SET last_checked_at = excluded.last_checked_at",
                    (product_id, ts),
                )
                cur.executemany(
                    f"INSERT INTO offers (product_id, position, "
                    f"{_OFFER_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (
                            product_id,
                            pos,
                            o.vendor_name,
                            o.channel_id,
                            o.base_price,
                            o.shipping_fee,
                            o.shipping_policy,
                            o.url.strip(),
                            int(o.in_stock),
                            o.affiliate_code,
                            o.affiliate_param_key,
                        )
                        for pos, o in enumerate(kept)
                    ],
                )
                cur.execute(
                    "UPDATE products SET last_synced_at = ? "
                    "WHERE id = ?",
                    (ts, product_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to write offers for {product_id}", exc
            ) from exc

        logger.info(
            "Stored %d offers for %s (%d dropped as shared URLs)",
            len(kept),
            product_id,
            len(offers) - len(kept),
        )
        entry = CacheEntry(
            product_id=product_id,
            offers=tuple(kept),
            last_checked_at=now,
        )
        return entry, purged

    @staticmethod
    def _claim_url(
        cur: sqlite3.Cursor,
        product_id: str,
        url: str,
        ts: str,
        purged: set[str],
    ) -> bool:
        """Return True if *url* may be attached to *product_id*.

        Ids of other products that lose offers are added to *purged*.
        """
        if cur.execute(
            "SELECT 1 FROM shared_urls WHERE url = ?", (url,),
        ).fetchone():
            logger.info(
                "Dropping quarantined URL for %s: %s", product_id, url,
            )
            return False
        others = cur.execute(
            "SELECT DISTINCT product_id FROM offers "
            "WHERE url = ? AND product_id != ?",
            (url, product_id),
        ).fetchall()
        if not others:
            return True
        logger.warning(
            "URL already attached to %s, quarantining: %s",
            ", ".join(r[0] for r in others),
            url,
        )
        cur.execute(
            "INSERT OR IGNORE INTO shared_urls (url, flagged_at) "
            "VALUES (?, ?)",
            (url, ts),
        )
        cur.execute("DELETE FROM offers WHERE url = ?", (url,))
        purged.update(r[0] for r in others)
        return False

    def invalidate(self, product_id: str) -> bool:
        """Drop the stored offer set.  Returns True if one existed."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    "DELETE FROM offer_sets WHERE product_id = ?",
                    (product_id,),
                )
                removed = cur.rowcount > 0
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to invalidate {product_id}", exc
            ) from exc
        if removed:
            logger.info("Invalidated offer set for %s", product_id)
        return removed

    # ── Catalog ──────────────────────────────────────────

    def upsert_product(
        self, product_id: str, identifier: ProductIdentifier,
    ) -> None:
        """Insert or update a catalog product."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    "INSERT INTO products "
                    "(id, ean, catalog_id, title, artist) "
                    "VALUES (?, ?, ?, ?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET "
                    "ean = excluded.ean, "
                    "catalog_id = excluded.catalog_id, "
                    "title = excluded.title, "
                    "artist = excluded.artist",
                    (
                        product_id,
                        identifier.ean,
                        identifier.catalog_id,
                        identifier.title,
                        identifier.artist,
                    ),
                )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to save product {product_id}", exc
            ) from exc

    def get_product(
        self, product_id: str,
    ) -> ProductIdentifier | None:
        """Look up a catalog product by id."""
        try:
            rows = self._query(
                "SELECT ean, catalog_id, title, artist "
                "FROM products WHERE id = ?",
                (product_id,),
            )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to read product {product_id}", exc
            ) from exc
        if not rows:
            return None
        ean, catalog_id, title, artist = rows[0]
        return ProductIdentifier(
            ean=ean, catalog_id=catalog_id, title=title, artist=artist,
        )

    def list_stale_products(
        self,
        max_age: float,
        limit: int,
        now: datetime | None = None,
    ) -> list[tuple[str, ProductIdentifier]]:
        """Products never synced or synced more than *max_age* secs ago.

        Never-synced products come first, then the oldest.
        """
        cutoff = _ts((now or datetime.now()) - timedelta(seconds=max_age))
        try:
            rows = self._query(
                "SELECT id, ean, catalog_id, title, artist "
                "FROM products "
                "WHERE last_synced_at IS NULL OR last_synced_at < ? "
                "ORDER BY last_synced_at ASC, id ASC LIMIT ?",
                (cutoff, limit),
            )
        except sqlite3.Error as exc:
            raise StoreError("Failed to list stale products", exc) from exc
        return [
            (
                r[0],
                ProductIdentifier(
                    ean=r[1], catalog_id=r[2], title=r[3], artist=r[4],
                ),
            )
            for r in rows
        ]

    def mark_synced(
        self, product_id: str, at: datetime | None = None,
    ) -> None:
        """Stamp a catalog product as synced without touching its offers."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    "UPDATE products SET last_synced_at = ? WHERE id = ?",
                    (_ts(at or datetime.now()), product_id),
                )
        except sqlite3.Error as exc:
            raise StoreError(
                f"Failed to mark {product_id} synced", exc
            ) from exc

    def import_catalog_file(self, filepath: Path) -> int:
        """Import products from a JSON list of objects.

        Each object needs an ``id`` plus identifier fields (``ean``,
        ``catalogId``, ``title``, ``artist``).  Entries that cannot be
        resolved are skipped.  Returns the number imported.
        """
        try:
            with open(filepath, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("Failed to read %s: %s", filepath, exc)
            return 0

        if not isinstance(data, list):
            logger.warning("%s is not a JSON list", filepath)
            return 0

        items: list[object] = cast(list[object], data)
        count = 0
        for row in items:
            if not isinstance(row, dict) or not row.get("id"):
                continue
            identifier = ProductIdentifier(
                ean=row.get("ean") or None,
                catalog_id=(
                    row.get("catalogId") or row.get("catalog_id") or None
                ),
                title=row.get("title") or None,
                artist=row.get("artist") or None,
            )
            if not identifier.is_resolvable():
                logger.warning(
                    "Skipping product %s: no EAN, catalog id, "
                    "or artist + title",
                    row["id"],
                )
                continue
            self.upsert_product(str(row["id"]), identifier)
            count += 1

        logger.info("Imported %d products from %s", count, filepath)
        return count

    # ── Audit ────────────────────────────────────────────

    def all_offers(self) -> list[StoredOffer]:
        """Every stored offer with its row id and product."""
        try:
            rows = self._query(
                f"SELECT id, product_id, {_OFFER_COLUMNS} FROM offers "
                "ORDER BY product_id, position",
            )
        except sqlite3.Error as exc:
            raise StoreError("Failed to read offers", exc) from exc
        return [
            StoredOffer(
                offer_id=int(r[0]),
                product_id=r[1],
                offer=_row_to_offer(r[2:]),
            )
            for r in rows
        ]

    def find_shared_urls(self) -> dict[str, set[str]]:
        """URLs currently attached to more than one product."""
        return OfferDeduplicator.find_shared_urls(
            (s.product_id, s.offer.url) for s in self.all_offers()
        )

    def purge_shared_urls(self) -> int:
        """Delete every offer whose URL is shared, and quarantine it.

        Returns the number of offers deleted.
        """
        shared = self.find_shared_urls()
        if not shared:
            return 0
        ts = _ts(datetime.now())
        deleted = 0
        try:
            with self._transaction() as cur:
                for url in shared:
                    cur.execute(
                        "INSERT OR IGNORE INTO shared_urls "
                        "(url, flagged_at) VALUES (?, ?)",
                        (url, ts),
                    )
                    cur.execute(
                        "DELETE FROM offers WHERE url = ?", (url,),
                    )
                    deleted += cur.rowcount
        except sqlite3.Error as exc:
            raise StoreError("Failed to purge shared URLs", exc) from exc
        logger.info(
            "Purged %d offers across %d shared URLs",
            deleted,
            len(shared),
        )
        return deleted

    def quarantined_urls(self) -> set[str]:
        """URLs that may never be attached to a product again."""
        try:
            rows = self._query("SELECT url FROM shared_urls")
        except sqlite3.Error as exc:
            raise StoreError("Failed to read shared URLs", exc) from exc
        return {r[0] for r in rows}

    def find_offers_outside_band(
        self, floor: int, ceiling: int,
    ) -> list[StoredOffer]:
        """Stored offers priced below *floor* or above *ceiling*."""
        return [
            s
            for s in self.all_offers()
            if not floor <= s.offer.base_price <= ceiling
        ]

    def delete_offers(self, offer_ids: list[int]) -> int:
        """Delete offers by row id.  Returns the number removed."""
        if not offer_ids:
            return 0
        deleted = 0
        try:
            with self._transaction() as cur:
                for offer_id in offer_ids:
                    cur.execute(
                        "DELETE FROM offers WHERE id = ?", (offer_id,),
                    )
                    deleted += cur.rowcount
        except sqlite3.Error as exc:
            raise StoreError("Failed to delete offers", exc) from exc
        return deleted
