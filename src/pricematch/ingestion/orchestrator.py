from collections import Counter, OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ..matching.matcher import CrossSiteMatcher, MatchResult
from ..models import NormalizedRecord, RawObservation, RejectedRecord
from ..processing.normalize import normalize_batch
from ..processing.validate import validate_record
from ..processing.variants import VariantResolver
from ..storage.ledger import NoData, PriceChange, PriceLedger
from ..storage.repository import CatalogStore
from ..utils.logging import get_logger

logger = get_logger(__name__)

REPORT_COUNTS = (
    "normalized",
    "rejected",
    "new_products",
    "matched",
    "merges",
    "listings_refreshed",
    "variants_created",
    "observations_appended",
    "duplicates_skipped",
    "stale_skipped",
    "unpriced_variants",
)


@dataclass
class IngestReport:
    normalized: int = 0
    rejected: int = 0
    new_products: int = 0
    matched: int = 0
    merges: int = 0
    listings_refreshed: int = 0
    variants_created: int = 0
    observations_appended: int = 0
    duplicates_skipped: int = 0
    stale_skipped: int = 0
    unpriced_variants: int = 0
    rejected_records: List[RejectedRecord] = field(default_factory=list)
    low_confidence: List[MatchResult] = field(default_factory=list)
    matches: List[MatchResult] = field(default_factory=list)
    significant_changes: List[PriceChange] = field(default_factory=list)
    warnings: Counter = field(default_factory=Counter)

    def counts(self) -> Dict[str, int]:
        return {name: getattr(self, name) for name in REPORT_COUNTS}


def group_by_listing(records: Iterable[NormalizedRecord]) -> "OrderedDict[str, List[NormalizedRecord]]":
    """Collect each listing's records in first-seen order."""
    groups: "OrderedDict[str, List[NormalizedRecord]]" = OrderedDict()
    for record in records:
        groups.setdefault(record.listing_id, []).append(record)
    return groups


class IngestPipeline:
    """Normalizer -> matcher -> variant resolver -> ledger, one batch at a time."""

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        ledger: Optional[PriceLedger] = None,
        matcher: Optional[CrossSiteMatcher] = None,
    ):
        self.store = store if store is not None else CatalogStore()
        self.ledger = ledger if ledger is not None else PriceLedger(self.store)
        self.matcher = matcher if matcher is not None else CrossSiteMatcher(self.store)
        self.resolver = VariantResolver(self.store, self.ledger)

    def ingest(self, observations: Iterable[RawObservation]) -> IngestReport:
        report = IngestReport()

        records, rejected = normalize_batch(observations)
        report.normalized = len(records)
        report.rejected = len(rejected)
        report.rejected_records = rejected

        for record in records:
            for warning in validate_record(record):
                report.warnings[warning] += 1

        touched: Dict[str, None] = {}
        for listing_id, group in group_by_listing(records).items():
            # The freshest record speaks for the listing.
            head = max(group, key=lambda r: r.observed_at)
            match = self.matcher.assign(head)
            report.matches.append(match)
            if match.is_new:
                report.new_products += 1
            elif match.is_match:
                report.matched += 1
            else:
                report.listings_refreshed += 1
            report.merges += len(match.merged)
            if match.ambiguous:
                report.low_confidence.append(match)

            resolved = self.resolver.resolve(group)
            report.variants_created += len(resolved.variants_created)
            report.observations_appended += resolved.appended
            report.duplicates_skipped += resolved.duplicates_skipped
            report.stale_skipped += len(resolved.stale)
            report.unpriced_variants += len(resolved.unpriced)
            touched.update(dict.fromkeys(resolved.variants_seen))

        for variant_id in touched:
            change = self.ledger.detect_change(variant_id)
            if change is not NoData and change.significant:
                report.significant_changes.append(change)

        logger.info(
            "Batch ingested: %d normalized, %d rejected, %d new products, "
            "%d matched, %d merges",
            report.normalized, report.rejected, report.new_products,
            report.matched, report.merges,
        )
        if report.low_confidence:
            logger.warning("%d low-confidence matches need review", len(report.low_confidence))
        return report


def ingest_batch(
    observations: Iterable[RawObservation],
    store: CatalogStore,
    ledger: PriceLedger,
    matcher: Optional[CrossSiteMatcher] = None,
) -> IngestReport:
    """One-shot ingestion against an existing store and ledger."""
    pipeline = IngestPipeline(store, ledger, matcher or CrossSiteMatcher(store))
    return pipeline.ingest(observations)
