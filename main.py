# main.py

"""Entry point for the vinyl_offers command line."""

import argparse
import asyncio
import logging
import sys

from vinyl_offers.config.logging_config import setup_logging
from vinyl_offers.config.settings import Settings

logger = logging.getLogger("vinyl_offers.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    valid_ids = ", ".join(v["id"] for v in Settings.AVAILABLE_VENDORS)

    parser = argparse.ArgumentParser(
        prog="vinyl_offers",
        description="Vinyl record price resolution across Korean stores.",
        epilog=f"Available vendors: {valid_ids}",
    )
    ident = parser.add_argument_group("release to resolve")
    ident.add_argument("--artist", default=None, help="Artist name.")
    ident.add_argument("--title", default=None, help="Album title.")
    ident.add_argument("--ean", default=None, help="Barcode (EAN/UPC).")
    ident.add_argument(
        "--catalog-id",
        default=None,
        dest="catalog_id",
        help="External catalog id (e.g. a Discogs release id).",
    )
    ident.add_argument(
        "--product-id",
        default=None,
        dest="product_id",
        help="Catalog product id; enables the offer cache.",
    )
    parser.add_argument(
        "--force-refresh",
        action="store_true",
        default=False,
        dest="force_refresh",
        help="Ignore a fresh cached entry and query vendors.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        default=False,
        help="Use the strict title-match policy.",
    )
    parser.add_argument(
        "-v",
        "--vendors",
        default=None,
        help="Comma-separated vendor IDs (default: all).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--db",
        default=None,
        dest="db_path",
        help="Offer store path (default: $VINYL_OFFERS_DB or data/).",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--import-catalog",
        default=None,
        dest="import_catalog",
        metavar="FILE",
        help="Load a JSON list of products into the catalog.",
    )
    mode.add_argument(
        "--sync",
        nargs="?",
        type=int,
        const=Settings.SYNC_BATCH_SIZE,
        default=None,
        metavar="N",
        help="Refresh up to N stale catalog products "
        f"(default: {Settings.SYNC_BATCH_SIZE}).",
    )
    mode.add_argument(
        "--audit",
        action="store_true",
        default=False,
        help="Check stored offers against the current rules.",
    )
    parser.add_argument(
        "--purge",
        action="store_true",
        default=False,
        help="With --audit, delete flagged offers.",
    )
    return parser


def _run_resolve(args: argparse.Namespace) -> None:
    """Resolve a single release and exit."""
    from vinyl_offers.cli.runner import cli_resolve
    from vinyl_offers.services.offer_resolver import ResolutionRequest

    request = ResolutionRequest(
        product_id=args.product_id,
        artist=args.artist,
        title=args.title,
        ean=args.ean,
        catalog_id=args.catalog_id,
        force_refresh=args.force_refresh,
    )
    exit_code = asyncio.run(
        cli_resolve(
            request=request,
            vendor_csv=args.vendors,
            strict=args.strict,
            output_format=args.output_format,
            db_path=args.db_path,
        )
    )
    sys.exit(exit_code)


def _run_import_catalog(args: argparse.Namespace) -> None:
    from vinyl_offers.cli.runner import run_import_catalog

    sys.exit(run_import_catalog(args.import_catalog, args.db_path))


def _run_sync(args: argparse.Namespace) -> None:
    from vinyl_offers.cli.runner import run_sync

    sys.exit(asyncio.run(run_sync(args.sync, args.db_path)))


def _run_audit(args: argparse.Namespace) -> None:
    from vinyl_offers.cli.runner import run_audit

    sys.exit(run_audit(args.purge, args.db_path))


def main() -> None:
    """Route to resolve (default), catalog import, sync or audit."""
    log_file = setup_logging()
    logger.info("vinyl_offers starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    if args.purge and not args.audit:
        parser.error("--purge only applies to --audit")

    try:
        if args.import_catalog is not None:
            _run_import_catalog(args)
        elif args.sync is not None:
            _run_sync(args)
        elif args.audit:
            _run_audit(args)
        else:
            _run_resolve(args)
    except Exception:
        logger.critical("Fatal error during run", exc_info=True)
        raise
    finally:
        logger.info("vinyl_offers shutting down")


if __name__ == "__main__":
    main()
