"""pricematch: cross-site product matching and price tracking core.

Public API surface; import submodules directly for full access:
  pricematch.processing.normalize   record normalizer
  pricematch.processing.variants    variant resolver
  pricematch.matching.matcher       cross-site matcher
  pricematch.storage.repository     catalog store (products, listings, variants)
  pricematch.storage.ledger         append-only price ledger
  pricematch.ingestion.orchestrator batch ingestion pipeline
  pricematch.app.cli                CLI entry point
"""

from .ingestion.orchestrator import IngestPipeline, IngestReport, ingest_batch
from .matching.matcher import CrossSiteMatcher, MatchResult
from .models import RawObservation
from .processing.normalize import normalize_record
from .processing.variants import VariantResolver
from .storage.ledger import NoData, PriceLedger
from .storage.repository import CatalogStore


def main():
    """CLI entry point."""
    from .app.main import main as _main
    return _main()


__all__ = [
    "CatalogStore",
    "CrossSiteMatcher",
    "IngestPipeline",
    "IngestReport",
    "MatchResult",
    "NoData",
    "PriceLedger",
    "RawObservation",
    "VariantResolver",
    "ingest_batch",
    "normalize_record",
    "main",
]
