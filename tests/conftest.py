"""Shared fixtures for the pricematch test suite."""

import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

# Ensure src/ is on the path so "import pricematch" works when running from repo root.
src_path = str(Path(__file__).resolve().parents[1] / "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from pricematch.matching.matcher import CrossSiteMatcher  # noqa: E402
from pricematch.models import RawObservation  # noqa: E402
from pricematch.processing.variants import VariantResolver  # noqa: E402
from pricematch.storage.ledger import PriceLedger  # noqa: E402
from pricematch.storage.repository import CatalogStore  # noqa: E402


T0 = datetime(2024, 3, 1, 12, 0, 0)


class FixedScorer:
    """Scorer stub returning canned scores keyed by the candidate's token set."""

    def __init__(self, scores=None, default=0.0, only_for=None):
        self.scores = scores or {}
        self.default = default
        self.only_for = only_for
        self.calls = []

    def score(self, a, b):
        self.calls.append((a, b))
        if self.only_for is not None and frozenset(a) != self.only_for:
            return self.default
        return self.scores.get(frozenset(b), self.default)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def t0():
    return T0


@pytest.fixture
def make_obs():
    """Factory for RawObservation with sensible defaults."""

    def _make(
        site="a",
        title="Acme Widget Pro",
        price="19.99",
        currency="USD",
        variants=(),
        url=None,
        listing_ref=None,
        minutes=0,
        **extra,
    ):
        return RawObservation(
            site=site,
            url=url if url is not None else f"https://{site}.example.com/p/widget-pro",
            title=title,
            price=price,
            currency=currency,
            observed_at=T0 + timedelta(minutes=minutes),
            variant_labels=tuple(variants),
            listing_ref=listing_ref,
            **extra,
        )

    return _make


@pytest.fixture
def store():
    return CatalogStore()


@pytest.fixture
def ledger(store):
    return PriceLedger(store)


@pytest.fixture
def matcher(store):
    return CrossSiteMatcher(store)


@pytest.fixture
def resolver(store, ledger):
    return VariantResolver(store, ledger)


@pytest.fixture
def make_scorer():
    """Build a canned-score scorer: make_scorer({candidate_tokens: score}, ...)."""
    return FixedScorer
