"""Cross-site product matching.

Assigns each incoming listing to a canonical product with an ordered cascade:

  0. manual override for the listing (out-of-band, wins over everything)
  -  listing already in the catalog keeps its current owner
  -  GTIN already attached to a product
  1. exact (brand, title token set) equality
  2. title similarity at or above the threshold
  3. otherwise a new canonical product

Missed matches are preferred over wrong ones: anything not clearly a match
falls through to a new product, which a later merge can still fold in.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..config.rules import AMBIGUITY_MARGIN, SIMILARITY_THRESHOLD
from ..errors import UnknownProduct
from ..models import NormalizedRecord
from ..utils.logging import get_logger
from .similarity import SimilarityScorer, TokenSetScorer

logger = get_logger(__name__)

MATCH_METHODS = ("override", "existing", "gtin", "exact", "similar", "new")


@dataclass
class MatchResult:
    listing_id: str
    product_id: str
    method: str
    score: float = 1.0
    ambiguous: bool = False
    runner_up: Optional[str] = None
    merged: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.method not in MATCH_METHODS:
            raise ValueError(f"unknown match method: {self.method}")

    @property
    def is_new(self) -> bool:
        return self.method == "new"

    @property
    def is_match(self) -> bool:
        return self.method in ("override", "gtin", "exact", "similar")


@dataclass(frozen=True)
class _Candidate:
    product_id: str
    score: float
    ambiguous: bool
    runner_up: Optional[str]


class CrossSiteMatcher:
    def __init__(
        self,
        store,
        scorer: Optional[SimilarityScorer] = None,
        threshold: float = SIMILARITY_THRESHOLD,
        ambiguity_margin: float = AMBIGUITY_MARGIN,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be within [0, 1], got {threshold}")
        self.store = store
        self.scorer = scorer or TokenSetScorer()
        self.threshold = threshold
        self.ambiguity_margin = ambiguity_margin
        self.review_queue: List[MatchResult] = []
        self._overrides: Dict[str, str] = {}
        self._write_lock = threading.RLock()

    # ------------------------------------------------------------------
    # Manual signals
    # ------------------------------------------------------------------
    def add_override(self, listing_id: str, product_id: str) -> None:
        """Pin a listing to a product; applied immediately if the listing exists."""
        target = self.store.resolve(product_id)
        with self._write_lock:
            self._overrides[listing_id] = target
            if self.store.get_listing(listing_id) is not None:
                self.store.reassign_listing(listing_id, target)
        logger.info("Override: listing %s -> %s", listing_id, target)

    def remove_override(self, listing_id: str) -> None:
        with self._write_lock:
            self._overrides.pop(listing_id, None)

    def merge(self, first_id: str, second_id: str, survivor_id: Optional[str] = None) -> str:
        """Declare two canonical products identical."""
        with self._write_lock:
            return self.store.merge(first_id, second_id, survivor_id=survivor_id)

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------
    def score_candidates(self, record: NormalizedRecord) -> List[Tuple[str, float]]:
        """Scores of every eligible live product, best first."""
        scored = []
        for product in self.store.snapshot_live(record.category):
            if record.brand and product.brand and record.brand != product.brand:
                continue
            score = self.scorer.score(record.tokens, product.tokens)
            scored.append((product, score))
        scored.sort(key=lambda item: (item[1], item[0].updated_at), reverse=True)
        return [(product.id, score) for product, score in scored]

    def _best_candidate(self, record: NormalizedRecord) -> Optional[_Candidate]:
        accepted = [(pid, s) for pid, s in self.score_candidates(record) if s >= self.threshold]
        if not accepted:
            return None
        best_id, best_score = accepted[0]
        runner_up = None
        ambiguous = False
        if len(accepted) > 1:
            runner_up, second_score = accepted[1]
            ambiguous = best_score - second_score <= self.ambiguity_margin
        return _Candidate(best_id, best_score, ambiguous, runner_up)

    def assign(self, record: NormalizedRecord) -> MatchResult:
        """Attach the record's listing to a canonical product; never raises on no-match."""
        candidate = None
        if (
            record.listing_id not in self._overrides
            and self.store.get_listing(record.listing_id) is None
            and self.store.find_gtin(record.gtin) is None
            and self.store.find_exact(record.match_key) is None
        ):
            # Scoring runs on a snapshot outside the write lock.
            candidate = self._best_candidate(record)

        with self._write_lock:
            result = self._decide(record, candidate)

        self.store.touch(result.product_id, record.observed_at)
        if result.ambiguous:
            self.review_queue.append(result)
            logger.warning(
                "Low-confidence match for %s: %s (%.3f) vs runner-up %s",
                result.listing_id, result.product_id, result.score, result.runner_up,
            )
        return result

    def _decide(self, record: NormalizedRecord, candidate: Optional[_Candidate]) -> MatchResult:
        listing_id = record.listing_id
        store = self.store

        override = self._overrides.get(listing_id)
        if override is not None:
            try:
                target = store.resolve(override)
            except UnknownProduct:
                logger.warning("Ignoring override of %s to unknown product %s", listing_id, override)
            else:
                if store.get_listing(listing_id) is None:
                    store.attach_listing(target, record)
                else:
                    store.reassign_listing(listing_id, target)
                merged = self._link_gtin(record, target)
                return MatchResult(listing_id, store.resolve(target), "override", merged=merged)

        owner = store.listing_owner(listing_id)
        if owner is not None:
            merged = self._link_gtin(record, owner)
            return MatchResult(listing_id, store.resolve(owner), "existing", merged=merged)

        gtin_owner = store.find_gtin(record.gtin)
        if gtin_owner is not None:
            store.attach_listing(gtin_owner, record)
            return MatchResult(listing_id, gtin_owner, "gtin")

        exact = store.find_exact(record.match_key)
        if exact is not None:
            store.attach_listing(exact, record)
            self._link_gtin(record, exact)
            return MatchResult(listing_id, exact, "exact")

        if candidate is not None:
            target = store.resolve(candidate.product_id)
            store.attach_listing(target, record)
            self._link_gtin(record, target)
            logger.debug("Similarity match %s -> %s (%.3f)", listing_id, target, candidate.score)
            runner_up = store.resolve(candidate.runner_up) if candidate.runner_up else None
            return MatchResult(
                listing_id, target, "similar",
                score=candidate.score,
                ambiguous=candidate.ambiguous,
                runner_up=runner_up,
            )

        product = store.create_product(record)
        store.attach_listing(product.id, record)
        self._link_gtin(record, product.id)
        logger.info("New canonical product %s for listing %s", product.id, listing_id)
        return MatchResult(listing_id, product.id, "new", score=0.0)

    def _link_gtin(self, record: NormalizedRecord, product_id: str) -> List[str]:
        """
        Register the record's GTIN; if another product already owns it the
        two products are the same and get merged. Returns absorbed ids.
        """
        if not record.gtin:
            return []
        other = self.store.find_gtin(record.gtin)
        if other is None:
            self.store.register_gtin(record.gtin, product_id)
            return []
        owner = self.store.resolve(product_id)
        if other == owner:
            return []
        survivor = self.store.merge(owner, other)
        absorbed = other if survivor == owner else owner
        logger.info("GTIN %s joined products %s and %s", record.gtin, owner, other)
        return [absorbed]
