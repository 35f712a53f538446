"""Unit tests for pricematch.storage.ledger: append-only price history."""

from datetime import timedelta
from decimal import Decimal

import pytest

from pricematch.errors import StaleObservation, UnknownVariant
from pricematch.models import PriceObservation
from pricematch.storage.ledger import NoData, PriceLedger

VID = "a:https://a.example.com/p/widget-pro#0000000000000000"


@pytest.fixture
def book():
    ledger = PriceLedger()
    ledger.register(VID)
    return ledger


@pytest.fixture
def obs(t0):
    def _obs(amount, minutes=0, currency="USD", available=True, variant_id=VID):
        return PriceObservation(
            variant_id=variant_id,
            amount_minor=amount,
            currency=currency,
            available=available,
            observed_at=t0 + timedelta(minutes=minutes),
        )

    return _obs


# ============================================================================
# NoData
# ============================================================================
class TestNoData:
    def test_falsy_singleton(self):
        assert not NoData
        assert repr(NoData) == "NoData"
        assert type(NoData)() is NoData


# ============================================================================
# Append / read
# ============================================================================
class TestAppend:
    def test_entries_kept_in_order(self, book, obs):
        for i, amount in enumerate([100, 120, 90]):
            book.append(VID, obs(amount, minutes=i))
        assert book.count(VID) == 3
        assert [o.amount_minor for o in book.history(VID)] == [100, 120, 90]
        assert book.latest(VID).amount_minor == 90

    def test_equal_timestamps_allowed(self, book, obs):
        book.append(VID, obs(100, minutes=1))
        book.append(VID, obs(110, minutes=1))
        assert book.count(VID) == 2

    def test_unknown_variant(self, book, obs):
        with pytest.raises(UnknownVariant):
            book.append("nope", obs(100, variant_id="nope"))
        with pytest.raises(UnknownVariant):
            book.latest("nope")

    def test_mismatched_variant_id(self, book, obs):
        with pytest.raises(ValueError):
            book.append(VID, obs(100, variant_id="other"))

    def test_stale_observation_rejected(self, book, obs):
        book.append(VID, obs(100, minutes=10))
        with pytest.raises(StaleObservation):
            book.append(VID, obs(90, minutes=5))
        assert book.count(VID) == 1

    def test_contains_matches_any_entry_at_timestamp(self, book, obs):
        book.append(VID, obs(100, minutes=0))
        book.append(VID, obs(110, minutes=1))
        book.append(VID, obs(120, minutes=1))
        assert book.contains(VID, obs(100, minutes=0))
        assert book.contains(VID, obs(110, minutes=1))
        assert not book.contains(VID, obs(130, minutes=1))
        assert not book.contains(VID, obs(100, minutes=2))

    def test_latest_on_empty(self, book):
        assert book.latest(VID) is NoData

    def test_store_variants_are_known(self, store, obs, make_obs):
        from pricematch.models import Variant
        from pricematch.processing.normalize import normalize_record

        record = normalize_record(make_obs())
        product = store.create_product(record)
        store.attach_listing(product.id, record)
        store.add_variant(Variant(VID, record.listing_id, {}, 1))

        ledger = PriceLedger(store)
        ledger.append(VID, obs(100))
        assert ledger.count(VID) == 1


class TestHistory:
    def test_inclusive_range(self, book, obs, t0):
        for minutes in (0, 10, 20, 30):
            book.append(VID, obs(100 + minutes, minutes=minutes))
        view = book.history(VID, start=t0 + timedelta(minutes=10), end=t0 + timedelta(minutes=20))
        assert [o.amount_minor for o in view] == [110, 120]
        assert len(view) == 2

    def test_open_bounds(self, book, obs, t0):
        for minutes in (0, 10, 20):
            book.append(VID, obs(100, minutes=minutes))
        assert len(book.history(VID, start=t0 + timedelta(minutes=5))) == 2
        assert len(book.history(VID, end=t0 + timedelta(minutes=5))) == 1

    def test_view_is_restartable(self, book, obs):
        book.append(VID, obs(100))
        book.append(VID, obs(200, minutes=1))
        view = book.history(VID)
        assert list(view) == list(view)

    def test_empty_range(self, book, obs, t0):
        book.append(VID, obs(100, minutes=10))
        assert list(book.history(VID, start=t0 + timedelta(hours=1))) == []


# ============================================================================
# Change detection
# ============================================================================
class TestDetectChange:
    def test_no_data_with_one_observation(self, book, obs):
        assert book.detect_change(VID) is NoData
        book.append(VID, obs(100))
        assert book.detect_change(VID) is NoData

    def test_exactly_threshold_not_significant(self, book, obs):
        book.append(VID, obs(1000))
        book.append(VID, obs(1100, minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct == Decimal("10.00")
        assert change.significant is False

    def test_drop_beyond_threshold(self, book, obs):
        book.append(VID, obs(1000))
        book.append(VID, obs(850, minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct == Decimal("-15.00")
        assert change.significant is True

    def test_small_excess_over_threshold_is_significant(self, book, obs):
        book.append(VID, obs(100000))
        book.append(VID, obs(110001, minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct == Decimal("10.00")
        assert change.significant is True

    def test_currency_switch_not_comparable(self, book, obs):
        book.append(VID, obs(1000, currency="USD"))
        book.append(VID, obs(5000, currency="EUR", minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct is None
        assert not change.significant
        assert not change.comparable

    def test_move_from_zero(self, book, obs):
        book.append(VID, obs(0))
        book.append(VID, obs(500, minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct is None
        assert change.significant

    def test_zero_to_zero(self, book, obs):
        book.append(VID, obs(0))
        book.append(VID, obs(0, minutes=1))
        change = book.detect_change(VID)
        assert change.delta_pct == Decimal("0")
        assert not change.significant

    def test_custom_threshold(self, obs):
        ledger = PriceLedger(change_threshold_pct="2.5")
        ledger.register(VID)
        ledger.append(VID, obs(1000))
        ledger.append(VID, obs(1030, minutes=1))
        assert ledger.detect_change(VID).significant

    def test_significant_changes(self, book, obs):
        other = VID.replace("#0000", "#1111")
        book.register(other)
        book.append(VID, obs(1000))
        book.append(VID, obs(2000, minutes=1))
        book.append(other, obs(1000, variant_id=other))
        book.append(other, obs(1010, minutes=1, variant_id=other))
        assert [c.variant_id for c in book.significant_changes()] == [VID]


# ============================================================================
# Read model
# ============================================================================
class TestToFrame:
    def test_columns_and_rows(self, book, obs):
        book.append(VID, obs(100))
        book.append(VID, obs(110, minutes=1, available=False))
        df = book.to_frame()
        assert list(df.columns) == ["variant_id", "amount_minor", "currency", "available", "observed_at"]
        assert list(df["amount_minor"]) == [100, 110]

    def test_single_variant(self, book, obs):
        book.append(VID, obs(100))
        assert len(book.to_frame(VID)) == 1
        with pytest.raises(UnknownVariant):
            book.to_frame("nope")
