"""Exception hierarchy for pricematch.

Normalization errors are collected per record and never abort a batch.
Ledger and store errors propagate to the immediate caller.
"""

from typing import Any, Optional


class PriceMatchError(Exception):
    """Base class for all pricematch errors."""


class NormalizationError(PriceMatchError, ValueError):
    reason = "invalid"

    def __init__(self, message: str, record: Optional[Any] = None):
        super().__init__(message)
        self.record = record


class MalformedPrice(NormalizationError):
    reason = "malformed_price"


class MissingTitle(NormalizationError):
    reason = "missing_title"


class InvalidCurrency(NormalizationError):
    reason = "invalid_currency"


class MissingListing(NormalizationError):
    reason = "missing_listing"


class UnknownVariant(PriceMatchError, KeyError):
    def __init__(self, variant_id: str):
        super().__init__(variant_id)
        self.variant_id = variant_id

    def __str__(self) -> str:
        return f"unknown variant: {self.variant_id}"


class StaleObservation(PriceMatchError, ValueError):
    """Observation is older than the last one appended for the variant."""


class UnknownProduct(PriceMatchError, KeyError):
    def __init__(self, product_id: str):
        super().__init__(product_id)
        self.product_id = product_id

    def __str__(self) -> str:
        return f"unknown canonical product: {self.product_id}"


class MixedListingBatch(PriceMatchError, ValueError):
    """Variant resolution was handed records from more than one listing."""


class EmptyBatch(PriceMatchError, ValueError):
    """Variant resolution was handed no records."""


class UnknownListing(PriceMatchError, KeyError):
    def __init__(self, listing_id: str):
        super().__init__(listing_id)
        self.listing_id = listing_id

    def __str__(self) -> str:
        return f"listing is not in the catalog: {self.listing_id}"
