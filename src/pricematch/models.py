"""Core records shared by the normalizer, resolver, matcher and ledger."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Set, Tuple

Axes = Tuple[Tuple[str, str], ...]


@dataclass(frozen=True)
class RawObservation:
    """One scrape result as delivered by a scraper."""

    site: str
    url: str
    title: str
    price: Any
    currency: str
    observed_at: datetime
    variant_labels: Tuple[Any, ...] = ()
    available: bool = True
    listing_ref: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    sku: Optional[str] = None
    gtin: Optional[str] = None

    def __post_init__(self):
        # Lists are accepted for convenience but stored as tuples.
        if not isinstance(self.variant_labels, tuple):
            object.__setattr__(self, "variant_labels", tuple(self.variant_labels or ()))


@dataclass(frozen=True)
class NormalizedRecord:
    site: str
    listing_key: str
    url: str
    title: str
    tokens: FrozenSet[str]
    stripped_tokens: FrozenSet[str]
    brand: Optional[str]
    category: Optional[str]
    price_minor: Optional[int]
    currency: str
    axes: Axes
    available: bool
    observed_at: datetime
    sku: Optional[str] = None
    gtin: Optional[str] = None

    @property
    def listing_id(self) -> str:
        return f"{self.site}:{self.listing_key}"

    @property
    def match_key(self) -> Tuple[str, FrozenSet[str]]:
        return (self.brand or "", self.tokens)

    @property
    def axis_names(self) -> FrozenSet[str]:
        return frozenset(name for name, _ in self.axes)


@dataclass
class CanonicalProduct:
    id: str
    name: str
    brand: Optional[str]
    category: Optional[str]
    tokens: FrozenSet[str]
    updated_at: datetime
    listing_ids: Set[str] = field(default_factory=set)
    tombstoned: bool = False
    merged_into: Optional[str] = None


@dataclass
class Listing:
    id: str
    site: str
    native_id: str
    url: str
    product_id: str
    match_key: Tuple[str, FrozenSet[str]]
    variant_ids: List[str] = field(default_factory=list)
    schema_generations: List[FrozenSet[str]] = field(default_factory=list)

    @property
    def schema_generation(self) -> int:
        return len(self.schema_generations)


@dataclass
class Variant:
    id: str
    listing_id: str
    axes: Dict[str, str]
    schema_generation: int
    sku: Optional[str] = None
    priced: bool = False
    available: bool = False


@dataclass(frozen=True)
class PriceObservation:
    variant_id: str
    amount_minor: int
    currency: str
    available: bool
    observed_at: datetime


@dataclass(frozen=True)
class RejectedRecord:
    observation: RawObservation
    reason: str
    message: str


def variant_id_for(listing_id: str, axes: Axes) -> str:
    """Stable variant id derived from the listing and its sorted axis pairs."""
    payload = listing_id + "|" + "|".join(f"{name}={value}" for name, value in axes)
    digest = hashlib.sha1(payload.encode("utf-8")).hexdigest()[:16]
    return f"{listing_id}#{digest}"
