"""In-memory catalog of canonical products, listings and variants.

The store is an explicit handle passed to the matcher, resolver and ledger;
tests build a fresh one per case. Canonical products form a disjoint-set
forest: a merge tombstones the absorbed product and points it at the
survivor, so old ids keep resolving.
"""

from __future__ import annotations

import itertools
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

import pandas as pd

from ..config.rules import DEFAULT_VARIANT_AXIS
from ..errors import UnknownProduct, UnknownVariant
from ..models import CanonicalProduct, Listing, NormalizedRecord, Variant
from ..utils.logging import get_logger

logger = get_logger(__name__)

MatchKey = Tuple[str, FrozenSet[str]]


class CatalogStore:
    def __init__(self, id_prefix: str = "cp"):
        self._id_prefix = id_prefix
        self._counter = itertools.count(1)
        self._registry_lock = threading.RLock()
        self._product_locks: Dict[str, threading.RLock] = {}

        self.products: Dict[str, CanonicalProduct] = {}
        self.listings: Dict[str, Listing] = {}
        self.variants: Dict[str, Variant] = {}

        self._exact_index: Dict[MatchKey, str] = {}
        self._gtin_index: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Products
    # ------------------------------------------------------------------
    def create_product(self, record: NormalizedRecord) -> CanonicalProduct:
        with self._registry_lock:
            product_id = f"{self._id_prefix}-{next(self._counter):06d}"
            product = CanonicalProduct(
                id=product_id,
                name=record.title,
                brand=record.brand,
                category=record.category,
                tokens=record.tokens,
                updated_at=record.observed_at,
            )
            self.products[product_id] = product
            self._product_locks[product_id] = threading.RLock()
        logger.debug("Created canonical product %s (%s)", product_id, record.title)
        return product

    def get_product(self, product_id: str) -> CanonicalProduct:
        try:
            return self.products[product_id]
        except KeyError:
            raise UnknownProduct(product_id) from None

    def resolve(self, product_id: str) -> str:
        """Follow merge pointers to the live product, compressing the path."""
        root = self.get_product(product_id)
        path = []
        while root.merged_into is not None:
            path.append(root)
            root = self.products[root.merged_into]
        for node in path:
            node.merged_into = root.id
        return root.id

    def live_product(self, product_id: str) -> CanonicalProduct:
        return self.products[self.resolve(product_id)]

    def snapshot_live(self, category: Optional[str] = None) -> List[CanonicalProduct]:
        """
        Copy of the live products for unsynchronized candidate scoring.
        With a category, products of that category or of unknown category
        are returned.
        """
        with self._registry_lock:
            products = [p for p in self.products.values() if not p.tombstoned]
        if category:
            products = [p for p in products if p.category in (None, category)]
        return products

    @contextmanager
    def exclusive(self, product_id: str) -> Iterator[CanonicalProduct]:
        """Hold the membership lock of one product."""
        product = self.get_product(product_id)
        lock = self._product_locks[product.id]
        with lock:
            yield product

    def touch(self, product_id: str, when: datetime) -> None:
        product = self.live_product(product_id)
        if when > product.updated_at:
            product.updated_at = when

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------
    def get_listing(self, listing_id: str) -> Optional[Listing]:
        return self.listings.get(listing_id)

    def listing_owner(self, listing_id: str) -> Optional[str]:
        listing = self.listings.get(listing_id)
        if listing is None:
            return None
        return self.resolve(listing.product_id)

    def attach_listing(self, product_id: str, record: NormalizedRecord) -> Listing:
        """Add a new listing built from ``record`` to a live product."""
        product_id = self.resolve(product_id)
        with self.exclusive(product_id) as product:
            listing = Listing(
                id=record.listing_id,
                site=record.site,
                native_id=record.listing_key,
                url=record.url,
                product_id=product_id,
                match_key=record.match_key,
            )
            self.listings[listing.id] = listing
            product.listing_ids.add(listing.id)
            if record.observed_at > product.updated_at:
                product.updated_at = record.observed_at
        with self._registry_lock:
            self._exact_index.setdefault(record.match_key, product_id)
        return listing

    def reassign_listing(self, listing_id: str, product_id: str) -> None:
        listing = self.listings[listing_id]
        target = self.resolve(product_id)
        source = self.resolve(listing.product_id)
        if source == target:
            return
        for pid in sorted((source, target)):
            self._product_locks[pid].acquire()
        try:
            self.products[source].listing_ids.discard(listing_id)
            self.products[target].listing_ids.add(listing_id)
            listing.product_id = target
        finally:
            for pid in sorted((source, target), reverse=True):
                self._product_locks[pid].release()
        with self._registry_lock:
            if self._exact_index.get(listing.match_key) == source:
                self._exact_index[listing.match_key] = target
        logger.info("Listing %s moved from %s to %s", listing_id, source, target)

    def find_exact(self, key: MatchKey) -> Optional[str]:
        product_id = self._exact_index.get(key)
        return self.resolve(product_id) if product_id else None

    def register_gtin(self, gtin: str, product_id: str) -> None:
        with self._registry_lock:
            self._gtin_index.setdefault(gtin, product_id)

    def find_gtin(self, gtin: Optional[str]) -> Optional[str]:
        if not gtin:
            return None
        product_id = self._gtin_index.get(gtin)
        return self.resolve(product_id) if product_id else None

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------
    def merge(self, first_id: str, second_id: str, survivor_id: Optional[str] = None) -> str:
        """
        Merge two canonical products and return the survivor's id.

        Without an explicit survivor the more recently updated product
        survives (union by recency). Every listing of the absorbed product
        moves to the survivor; the absorbed record is tombstoned, not removed.
        """
        a = self.resolve(first_id)
        b = self.resolve(second_id)
        if a == b:
            return a

        if survivor_id is not None:
            survivor = self.resolve(survivor_id)
            if survivor not in (a, b):
                raise ValueError(f"{survivor_id} is neither {first_id} nor {second_id}")
        else:
            pa, pb = self.products[a], self.products[b]
            if pa.updated_at == pb.updated_at:
                survivor = min(a, b)
            else:
                survivor = a if pa.updated_at > pb.updated_at else b
        absorbed = b if survivor == a else a

        for pid in sorted((survivor, absorbed)):
            self._product_locks[pid].acquire()
        try:
            keep = self.products[survivor]
            gone = self.products[absorbed]
            for listing_id in sorted(gone.listing_ids):
                self.listings[listing_id].product_id = survivor
                keep.listing_ids.add(listing_id)
            gone.listing_ids.clear()
            gone.tombstoned = True
            gone.merged_into = survivor
            if gone.updated_at > keep.updated_at:
                keep.updated_at = gone.updated_at
            keep.brand = keep.brand or gone.brand
            keep.category = keep.category or gone.category
        finally:
            for pid in sorted((survivor, absorbed), reverse=True):
                self._product_locks[pid].release()

        logger.info("Merged canonical product %s into %s", absorbed, survivor)
        return survivor

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------
    def add_variant(self, variant: Variant) -> Variant:
        listing = self.listings[variant.listing_id]
        with self._registry_lock:
            existing = self.variants.get(variant.id)
            if existing is not None:
                return existing
            self.variants[variant.id] = variant
            listing.variant_ids.append(variant.id)
        return variant

    def get_variant(self, variant_id: str) -> Variant:
        try:
            return self.variants[variant_id]
        except KeyError:
            raise UnknownVariant(variant_id) from None

    def has_variant(self, variant_id: str) -> bool:
        return variant_id in self.variants

    def variants_of(self, listing_id: str) -> List[Variant]:
        listing = self.listings.get(listing_id)
        if listing is None:
            return []
        return [self.variants[v] for v in listing.variant_ids]

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------
    def products_frame(self) -> pd.DataFrame:
        rows = [
            {
                "product_id": p.id,
                "name": p.name,
                "brand": p.brand,
                "category": p.category,
                "listing_count": len(p.listing_ids),
                "updated_at": p.updated_at,
                "tombstoned": p.tombstoned,
                "merged_into": p.merged_into,
            }
            for p in self.products.values()
        ]
        return pd.DataFrame(rows, columns=[
            "product_id", "name", "brand", "category", "listing_count",
            "updated_at", "tombstoned", "merged_into",
        ])

    def listings_frame(self) -> pd.DataFrame:
        rows = [
            {
                "listing_id": l.id,
                "site": l.site,
                "native_id": l.native_id,
                "url": l.url,
                "product_id": self.resolve(l.product_id),
                "variant_count": len(l.variant_ids),
                "schema_generation": l.schema_generation,
            }
            for l in self.listings.values()
        ]
        return pd.DataFrame(rows, columns=[
            "listing_id", "site", "native_id", "url", "product_id",
            "variant_count", "schema_generation",
        ])

    def variants_frame(self) -> pd.DataFrame:
        rows = [
            {
                "variant_id": v.id,
                "listing_id": v.listing_id,
                "axes": ";".join(f"{k}:{val}" for k, val in v.axes.items()) or DEFAULT_VARIANT_AXIS,
                "sku": v.sku,
                "schema_generation": v.schema_generation,
                "priced": v.priced,
                "available": v.available,
            }
            for v in self.variants.values()
        ]
        return pd.DataFrame(rows, columns=[
            "variant_id", "listing_id", "axes", "sku", "schema_generation",
            "priced", "available",
        ])

    def to_frames(self) -> Dict[str, pd.DataFrame]:
        return {
            "products": self.products_frame(),
            "listings": self.listings_frame(),
            "variants": self.variants_frame(),
        }
