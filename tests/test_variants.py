"""Unit tests for pricematch.processing.variants: variant resolution."""

import pytest

from pricematch.errors import EmptyBatch, MixedListingBatch, PriceMatchError, UnknownListing
from pricematch.models import variant_id_for
from pricematch.processing.normalize import normalize_record
from pricematch.storage.ledger import NoData


@pytest.fixture
def attach(store):
    """Attach the listing of a normalized record to a fresh product."""

    def _attach(record):
        product = store.create_product(record)
        store.attach_listing(product.id, record)
        return record

    return _attach


def _records(make_obs, rows):
    return [normalize_record(make_obs(**row)) for row in rows]


class TestVariantIdentity:
    def test_axis_order_irrelevant(self, make_obs):
        a = normalize_record(make_obs(variants=["Size:M", "Color:Red"]))
        b = normalize_record(make_obs(variants=["Color:Red", "Size:M"]))
        assert variant_id_for(a.listing_id, a.axes) == variant_id_for(b.listing_id, b.axes)

    def test_listing_scoped(self, make_obs):
        a = normalize_record(make_obs(site="a", variants=["Color:Red"]))
        b = normalize_record(make_obs(site="b", variants=["Color:Red"]))
        assert variant_id_for(a.listing_id, a.axes) != variant_id_for(b.listing_id, b.axes)


class TestResolve:
    def test_partitions_by_axes(self, make_obs, attach, resolver, store, ledger):
        records = _records(make_obs, [
            {"variants": ["Color:Red"], "price": "10.00"},
            {"variants": ["Color:Blue"], "price": "11.00"},
            {"variants": ["colour:red"], "price": "10.50", "minutes": 1},
        ])
        attach(records[0])
        result = resolver.resolve(records)

        assert len(result.variants_created) == 2
        assert result.appended == 3
        red = variant_id_for(records[0].listing_id, (("color", "red"),))
        assert [o.amount_minor for o in ledger.history(red)] == [1000, 1050]
        assert store.get_variant(red).axes == {"color": "red"}
        assert store.get_variant(red).priced is True

    def test_zero_axes_default_variant(self, make_obs, attach, resolver, store):
        records = _records(make_obs, [{}, {"minutes": 5, "price": "20.00"}])
        attach(records[0])
        result = resolver.resolve(records)
        assert len(result.variants_created) == 1
        variant = store.get_variant(result.variants_created[0])
        assert variant.axes == {}
        assert variant.schema_generation == 1

    def test_unpriced_enumerated_not_dropped(self, make_obs, attach, resolver, store, ledger):
        records = _records(make_obs, [
            {"variants": ["Size:S"], "price": "9.99"},
            {"variants": ["Size:XL"], "price": None},
        ])
        attach(records[0])
        result = resolver.resolve(records)

        xl = variant_id_for(records[1].listing_id, (("size", "xl"),))
        assert xl in result.variants_created
        assert result.unpriced == [xl]
        assert store.get_variant(xl).available is False
        assert store.get_variant(xl).priced is False
        assert ledger.latest(xl) is NoData

    def test_duplicate_observation_skipped(self, make_obs, attach, resolver, ledger):
        records = _records(make_obs, [{"variants": ["Color:Red"]}])
        attach(records[0])
        resolver.resolve(records)
        again = resolver.resolve(records)
        assert again.variants_created == []
        assert again.appended == 0
        assert again.duplicates_skipped == 1
        vid = again.variants_seen[0]
        assert ledger.count(vid) == 1

    def test_earlier_records_of_reingested_pass_are_duplicates(self, make_obs, attach, resolver, ledger):
        records = _records(make_obs, [
            {"minutes": 0, "price": "1.00"},
            {"minutes": 5, "price": "2.00"},
        ])
        attach(records[0])
        resolver.resolve(records)
        again = resolver.resolve(records)
        assert again.duplicates_skipped == 2
        assert again.stale == []
        assert ledger.count(again.variants_seen[0]) == 2

    def test_stale_observation_reported(self, make_obs, attach, resolver, ledger):
        newer = _records(make_obs, [{"minutes": 10, "price": "5.00"}])
        attach(newer[0])
        resolver.resolve(newer)
        older = _records(make_obs, [{"minutes": 0, "price": "4.00"}])
        result = resolver.resolve(older)
        assert len(result.stale) == 1
        assert result.unpriced == []
        assert ledger.latest(result.variants_seen[0]).amount_minor == 500

    def test_records_processed_in_time_order(self, make_obs, attach, resolver, ledger):
        records = _records(make_obs, [
            {"minutes": 5, "price": "2.00"},
            {"minutes": 1, "price": "1.00"},
        ])
        attach(records[0])
        result = resolver.resolve(records)
        assert result.stale == []
        assert [o.amount_minor for o in ledger.history(result.variants_seen[0])] == [100, 200]

    def test_sku_recorded(self, make_obs, attach, resolver, store):
        records = _records(make_obs, [{"variants": ["Color:Red"], "sku": "W-RED"}])
        attach(records[0])
        result = resolver.resolve(records)
        assert store.get_variant(result.variants_created[0]).sku == "W-RED"


class TestSchemaGenerations:
    def test_new_cardinality_adds_generation(self, make_obs, attach, resolver, store, ledger):
        first = _records(make_obs, [
            {"variants": ["Color:Red"], "price": "10.00"},
            {"variants": ["Color:Blue"], "price": "10.00"},
        ])
        attach(first[0])
        gen1 = resolver.resolve(first)

        second = _records(make_obs, [
            {"variants": ["Color:Red", "Size:M"], "price": "12.00", "minutes": 60},
            {"variants": ["Color:Red", "Size:L"], "price": "12.00", "minutes": 60},
        ])
        gen2 = resolver.resolve(second)

        listing = store.get_listing(first[0].listing_id)
        assert listing.schema_generation == 2
        assert gen2.new_generations == [frozenset({"color", "size"})]
        assert len(listing.variant_ids) == 4
        for vid in gen1.variants_created:
            assert store.get_variant(vid).schema_generation == 1
            assert ledger.count(vid) == 1
        for vid in gen2.variants_created:
            assert store.get_variant(vid).schema_generation == 2

    def test_same_cardinality_reuses_generation(self, make_obs, attach, resolver, store):
        first = _records(make_obs, [{"variants": ["Color:Red"]}])
        attach(first[0])
        resolver.resolve(first)
        result = resolver.resolve(_records(make_obs, [{"variants": ["Color:Green"], "minutes": 1}]))
        assert result.new_generations == []
        assert store.get_variant(result.variants_created[0]).schema_generation == 1


class TestResolveErrors:
    def test_mixed_listings(self, make_obs, attach, resolver):
        records = _records(make_obs, [{"site": "a"}, {"site": "b"}])
        attach(records[0])
        with pytest.raises(MixedListingBatch):
            resolver.resolve(records)

    def test_empty_batch(self, resolver):
        with pytest.raises(EmptyBatch):
            resolver.resolve([])

    def test_unattached_listing(self, make_obs, resolver):
        with pytest.raises(UnknownListing) as excinfo:
            resolver.resolve(_records(make_obs, [{}]))
        assert isinstance(excinfo.value, PriceMatchError)
        assert excinfo.value.listing_id == "a:https://a.example.com/p/widget-pro"
