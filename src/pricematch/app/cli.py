import argparse
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import List, Optional

from ..config.rules import CHANGE_THRESHOLD_PCT, SIMILARITY_THRESHOLD
from ..config.settings import EXPORT_DIR
from ..ingestion.orchestrator import REPORT_COUNTS, IngestPipeline, IngestReport
from ..matching.matcher import CrossSiteMatcher
from ..processing.normalize import format_minor
from ..processing.read import read_feed
from ..storage.export import write_read_model
from ..storage.ledger import PriceLedger
from ..storage.repository import CatalogStore
from ..utils.console import format_table, safe_print
from ..utils.logging import get_logger, set_level

logger = get_logger(__name__)


def percent_arg(value: str) -> Decimal:
    try:
        pct = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a percentage: {value!r}") from None
    if not pct.is_finite() or pct < 0:
        raise argparse.ArgumentTypeError(f"percentage must be a non-negative number: {value!r}")
    return pct


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pricematch",
        description="Cross-site product matching and price tracking",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    sub = parser.add_subparsers(dest="command", required=True)

    ingest = sub.add_parser("ingest", help="Ingest scraper feed CSV files in order")
    ingest.add_argument("feeds", nargs="+", type=Path, help="Feed CSV files (one batch each)")
    ingest.add_argument("--site", default=None, help="Site id for rows without a site column")
    ingest.add_argument("--out", type=Path, nargs="?", const=EXPORT_DIR, default=None,
                        help="Write the read model to this directory (bare flag: %(const)s)")
    ingest.add_argument("--threshold", type=float, default=SIMILARITY_THRESHOLD,
                        help="Title similarity needed for a match (default: %(default)s)")
    ingest.add_argument("--change-threshold", type=percent_arg, default=CHANGE_THRESHOLD_PCT,
                        help="Percent move flagged as significant (default: %(default)s)")
    return parser


def print_report(report: IngestReport, title: str) -> None:
    safe_print(f"\n== {title} ==")
    counts = report.counts()
    safe_print(format_table([(name, counts[name]) for name in REPORT_COUNTS], ("metric", "value")))

    if report.rejected_records:
        safe_print("\nRejected records:")
        rows = [(r.observation.site, r.reason, r.message[:60]) for r in report.rejected_records]
        safe_print(format_table(rows, ("site", "reason", "message")))

    if report.low_confidence:
        safe_print("\nLow-confidence matches (review):")
        rows = [(m.listing_id, m.product_id, f"{m.score:.3f}", m.runner_up or "-")
                for m in report.low_confidence]
        safe_print(format_table(rows, ("listing", "product", "score", "runner-up")))

    if report.significant_changes:
        safe_print("\nSignificant price changes:")
        rows = [
            (
                c.variant_id,
                format_minor(c.previous.amount_minor, c.previous.currency),
                format_minor(c.current.amount_minor, c.current.currency),
                f"{c.delta_pct:+}%" if c.delta_pct is not None else "n/a",
            )
            for c in report.significant_changes
        ]
        safe_print(format_table(rows, ("variant", "previous", "current", "delta")))


def run_ingest(args: argparse.Namespace) -> int:
    store = CatalogStore()
    ledger = PriceLedger(store, change_threshold_pct=args.change_threshold)
    matcher = CrossSiteMatcher(store, threshold=args.threshold)
    pipeline = IngestPipeline(store, ledger, matcher)

    exit_code = 0
    for feed in args.feeds:
        if not feed.exists():
            logger.error("%s not found", feed)
            exit_code = 1
            continue
        try:
            observations = read_feed(feed, site=args.site)
        except ValueError as e:
            logger.error("%s could not be read: %s", feed.name, e)
            exit_code = 1
            continue
        report = pipeline.ingest(observations)
        print_report(report, feed.name)

    live = sum(1 for p in store.products.values() if not p.tombstoned)
    safe_print(f"\nCanonical products: {live}  listings: {len(store.listings)}  "
               f"variants: {len(store.variants)}")

    if args.out is not None:
        write_read_model(store, ledger, args.out)
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.debug:
        set_level(logging.DEBUG)
    if args.command == "ingest":
        return run_ingest(args)
    parser.error(f"unknown command {args.command}")
    return 2
