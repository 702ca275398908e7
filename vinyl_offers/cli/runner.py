# vinyl_offers/cli/runner.py

"""Headless CLI commands built on the async resolver."""

import json
import logging
import sys
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from vinyl_offers.config.settings import Settings
from vinyl_offers.errors import InputError, StoreError
from vinyl_offers.models.offer import VendorOffer
from vinyl_offers.services.offer_resolver import (
    OfferResolver,
    ResolutionRequest,
    ResolutionResult,
    load_vendor_class,
)
from vinyl_offers.services.offer_sync import OfferSync
from vinyl_offers.services.store_audit import audit_store
from vinyl_offers.storage.offer_store import OfferStore
from vinyl_offers.storage.price_cache import PriceCache
from vinyl_offers.vendors.base_vendor import BaseVendor

logger = logging.getLogger("vinyl_offers.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INPUT_ERROR = 2


def resolve_vendors(vendor_csv: str | None) -> list[dict[str, str]]:
    """Map a comma-separated list of vendor IDs to their config dicts.

    Returns all vendors when *vendor_csv* is ``None``.
    Raises ``InputError`` on unknown IDs.
    """
    available = {v["id"]: v for v in Settings.AVAILABLE_VENDORS}
    if vendor_csv is None:
        return Settings.AVAILABLE_VENDORS

    requested = [v.strip() for v in vendor_csv.split(",") if v.strip()]
    unknown = [r for r in requested if r not in available]
    if unknown:
        valid = ", ".join(sorted(available))
        raise InputError(
            f"Unknown vendor(s): {', '.join(unknown)} "
            f"(available: {valid})"
        )
    return [available[r] for r in requested]


def _open_store(db_path: str | None) -> OfferStore:
    return OfferStore(Path(db_path) if db_path else None)


def _print_table(offers: list[VendorOffer]) -> None:
    """Render a Rich table of offers to stdout."""
    table = Table(
        title="Offers",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Vendor", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Shipping", max_width=24)
    table.add_column("Stock", justify="center")
    table.add_column("URL", overflow="fold", style="dim")

    for idx, o in enumerate(offers, 1):
        shipping = (
            f"₩{o.shipping_fee:,} {o.shipping_policy}".strip()
            if o.shipping_fee
            else o.shipping_policy or "—"
        )
        table.add_row(
            str(idx),
            o.vendor_name,
            f"₩{o.base_price:,}",
            shipping,
            "✓" if o.in_stock else "✗",
            o.url,
        )

    Console().print(table)


def _print_summary(result: ResolutionResult) -> None:
    for error_msg in result.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")

    if result.cached:
        _err.print(
            f"[green]✓ {len(result.offers)} cached offers[/green]"
        )
        return

    parts: list[str] = []
    if result.rejected_count:
        parts.append(f"{result.rejected_count} rejected")
    if result.deduplicated_count:
        parts.append(f"{result.deduplicated_count} deduped")
    if result.product_id and not result.persisted:
        parts.append("not saved")
    detail = f" ({', '.join(parts)})" if parts else ""
    _err.print(
        f"[green]✓ {len(result.offers)} offers in "
        f"{result.search_time:.2f}s{detail}[/green]"
    )


async def cli_resolve(
    request: ResolutionRequest,
    vendor_csv: str | None,
    strict: bool,
    output_format: str,
    db_path: str | None,
) -> int:
    """Resolve one release and return an exit code."""
    try:
        vendor_configs = resolve_vendors(vendor_csv)
        if not (
            request.product_id or request.identifier().is_resolvable()
        ):
            raise InputError(
                "Give --product-id, or --ean / --catalog-id, "
                "or both --artist and --title"
            )
    except InputError as exc:
        _err.print(f"[red]{exc}[/red]")
        return EXIT_INPUT_ERROR

    try:
        store = _open_store(db_path)
    except StoreError as exc:
        logger.error("Store unavailable: %s", exc)
        _err.print(f"[red]{exc}[/red]")
        return EXIT_FAILURE

    vendors: list[BaseVendor] = [
        load_vendor_class(v["adapter"])() for v in vendor_configs
    ]
    policy_name = (
        Settings.SYNC_MATCH_POLICY
        if strict
        else Settings.DEFAULT_MATCH_POLICY
    )
    resolver = OfferResolver(
        cache=PriceCache(store),
        vendors=vendors,
        policy=Settings.MATCH_POLICIES[policy_name],
    )

    labels = ", ".join(v["label"] for v in vendor_configs)
    _err.print(
        f"[bold]Resolving:[/bold] "
        f"{request.identifier().describe()}  "
        f"[dim]vendors={labels} policy={policy_name}[/dim]"
    )

    try:
        result = await resolver.resolve(request)
    except InputError as exc:
        _err.print(f"[red]{exc}[/red]")
        return EXIT_INPUT_ERROR
    finally:
        store.close()

    _print_summary(result)

    if output_format == "table":
        if result.offers:
            _print_table(result.offers)
    else:
        json.dump(
            result.to_response(),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")

    if not result.offers:
        _err.print("[yellow]No offers found.[/yellow]")
        return EXIT_FAILURE
    return EXIT_OK


def run_import_catalog(filepath: str, db_path: str | None) -> int:
    """Load a JSON list of products into the catalog."""
    path = Path(filepath)
    if not path.exists():
        _err.print(f"[red]File not found: {path}[/red]")
        return EXIT_INPUT_ERROR

    _err.print(f"[bold]Importing catalog from {path}...[/bold]")
    try:
        store = _open_store(db_path)
        try:
            count = store.import_catalog_file(path)
        finally:
            store.close()
    except StoreError as exc:
        logger.error("Catalog import failed: %s", exc)
        _err.print(f"[red]{exc}[/red]")
        return EXIT_FAILURE

    if not count:
        _err.print("[yellow]No products imported.[/yellow]")
        return EXIT_FAILURE
    _err.print(f"[green]✓ Imported {count:,} products[/green]")
    return EXIT_OK


async def run_sync(limit: int | None, db_path: str | None) -> int:
    """Refresh stale catalog products and print a summary."""
    try:
        store = _open_store(db_path)
    except StoreError as exc:
        _err.print(f"[red]{exc}[/red]")
        return EXIT_FAILURE

    _err.print("[bold]Syncing stale products...[/bold]")
    try:
        report = await OfferSync(store).run(limit)
    except StoreError as exc:
        logger.error("Sync aborted: %s", exc)
        _err.print(f"[red]{exc}[/red]")
        return EXIT_FAILURE
    finally:
        store.close()

    table = Table(title="Sync Report", title_style="bold cyan")
    table.add_column("Attempted", justify="right")
    table.add_column("Refreshed", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Offers written", justify="right")
    table.add_row(
        str(report.attempted),
        str(report.refreshed),
        str(report.skipped),
        str(report.failed),
        str(report.offers_written),
    )
    Console().print(table)

    for error_msg in report.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")
    return EXIT_FAILURE if report.failed else EXIT_OK


def run_audit(purge: bool, db_path: str | None) -> int:
    """Audit the store and optionally purge what it flags."""
    try:
        store = _open_store(db_path)
        try:
            report = audit_store(store, purge=purge)
        finally:
            store.close()
    except StoreError as exc:
        logger.error("Audit failed: %s", exc)
        _err.print(f"[red]{exc}[/red]")
        return EXIT_FAILURE

    table = Table(
        title="Store Audit",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Issue", style="bold")
    table.add_column("Product(s)")
    table.add_column("Detail", overflow="fold", style="dim")

    rows: list[tuple[Any, ...]] = []
    for url, ids in sorted(report.shared_urls.items()):
        rows.append(("shared URL", ", ".join(sorted(ids)), url))
    for stored in report.out_of_band:
        rows.append((
            "price band",
            stored.product_id,
            f"₩{stored.offer.base_price:,} {stored.offer.url}",
        ))
    for stored, reason in report.bad_links:
        rows.append((
            "link",
            stored.product_id,
            f"{reason} {stored.offer.url}",
        ))
    for row in rows:
        table.add_row(*row)

    if report.clean:
        _err.print("[green]✓ No issues found.[/green]")
        return EXIT_OK

    Console().print(table)
    if purge:
        _err.print(
            f"[green]✓ Purged {report.deleted} offers[/green]"
        )
        return EXIT_OK
    _err.print(
        "[yellow]Run with --purge to delete flagged offers.[/yellow]"
    )
    return EXIT_FAILURE
