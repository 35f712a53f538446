from typing import List

from ..models import NormalizedRecord
from .normalize import minor_units

# Prices above this many major units are almost always parse slips
PRICE_SANITY_MAX_MAJOR = 1_000_000


def validate_record(record: NormalizedRecord) -> List[str]:
    """Soft checks on a normalized record; warnings never reject it."""
    warnings = []

    if record.price_minor == 0:
        warnings.append("zero_price")
    elif record.price_minor is not None:
        if record.price_minor > PRICE_SANITY_MAX_MAJOR * 10 ** minor_units(record.currency):
            warnings.append("price_out_of_range")

    if record.price_minor is None:
        warnings.append("unpriced_variant")

    if not record.tokens - record.stripped_tokens:
        warnings.append("title_only_brand_or_stopwords")

    if len(record.tokens) == 1:
        warnings.append("single_token_title")

    return warnings
