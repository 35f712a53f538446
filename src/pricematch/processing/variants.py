"""Partition one listing's scrape pass into stable variants."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List, Tuple

from ..errors import EmptyBatch, MixedListingBatch, StaleObservation, UnknownListing
from ..models import Listing, NormalizedRecord, PriceObservation, Variant, variant_id_for
from ..utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ResolveResult:
    listing_id: str
    variants_created: List[str] = field(default_factory=list)
    variants_seen: List[str] = field(default_factory=list)
    unpriced: List[str] = field(default_factory=list)
    appended: int = 0
    duplicates_skipped: int = 0
    stale: List[Tuple[str, str]] = field(default_factory=list)
    new_generations: List[FrozenSet[str]] = field(default_factory=list)


def _schema_generation(listing: Listing, axis_names: FrozenSet[str], result: ResolveResult) -> int:
    """
    1-based schema generation for a record's axis set.
    A cardinality the listing has never exposed opens a new generation.
    """
    for idx, schema in enumerate(listing.schema_generations, start=1):
        if len(schema) == len(axis_names):
            return idx
    listing.schema_generations.append(axis_names)
    result.new_generations.append(axis_names)
    if len(listing.schema_generations) > 1:
        logger.info(
            "Listing %s exposes a new variant schema %s (generation %d)",
            listing.id, sorted(axis_names), len(listing.schema_generations),
        )
    return len(listing.schema_generations)


class VariantResolver:
    def __init__(self, store, ledger):
        self.store = store
        self.ledger = ledger

    def resolve(self, records: Iterable[NormalizedRecord]) -> ResolveResult:
        """
        Resolve every record of one listing from one scrape pass.

        Records sharing a normalized axis mapping land on the same variant;
        each priced record is appended to the ledger. Existing variants are
        never removed, whatever the page shows this time.
        """
        records = sorted(records, key=lambda r: r.observed_at)
        if not records:
            raise EmptyBatch("cannot resolve an empty batch")

        listing_ids = {r.listing_id for r in records}
        if len(listing_ids) > 1:
            raise MixedListingBatch(f"records span {len(listing_ids)} listings: {sorted(listing_ids)}")
        listing_id = listing_ids.pop()
        listing = self.store.get_listing(listing_id)
        if listing is None:
            raise UnknownListing(listing_id)

        result = ResolveResult(listing_id=listing_id)
        priced_this_pass = set()

        for record in records:
            variant_id = variant_id_for(listing_id, record.axes)
            if self.store.has_variant(variant_id):
                variant = self.store.get_variant(variant_id)
            else:
                generation = _schema_generation(listing, record.axis_names, result)
                variant = self.store.add_variant(Variant(
                    id=variant_id,
                    listing_id=listing_id,
                    axes=dict(record.axes),
                    schema_generation=generation,
                    sku=record.sku,
                ))
                self.ledger.register(variant_id)
                result.variants_created.append(variant_id)
                logger.debug("New variant %s %s", variant_id, variant.axes or "(default)")

            if variant_id not in result.variants_seen:
                result.variants_seen.append(variant_id)
            if record.sku and not variant.sku:
                variant.sku = record.sku

            if record.price_minor is None:
                variant.available = False
                continue

            observation = PriceObservation(
                variant_id=variant_id,
                amount_minor=record.price_minor,
                currency=record.currency,
                available=record.available,
                observed_at=record.observed_at,
            )
            if self.ledger.contains(variant_id, observation):
                result.duplicates_skipped += 1
                priced_this_pass.add(variant_id)
                continue
            try:
                self.ledger.append(variant_id, observation)
            except StaleObservation as exc:
                logger.warning("Skipping stale observation: %s", exc)
                result.stale.append((variant_id, str(exc)))
                priced_this_pass.add(variant_id)
                continue

            result.appended += 1
            priced_this_pass.add(variant_id)
            variant.priced = True
            variant.available = record.available

        result.unpriced = [v for v in result.variants_seen if v not in priced_this_pass]
        return result
