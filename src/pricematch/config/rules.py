"""Normalization tables and matching thresholds."""

from decimal import Decimal

# Title similarity at or above this value is accepted as the same product
SIMILARITY_THRESHOLD = 0.85

# Runner-up within this distance of the winner marks the match for review
AMBIGUITY_MARGIN = 0.03

# Price moves larger than this (absolute, percent) are significant
CHANGE_THRESHOLD_PCT = Decimal("10")

# Weights of the default title scorer (token overlap, sequence ratio)
SCORER_WEIGHTS = (0.5, 0.5)

DEFAULT_VARIANT_AXIS = "default"

AXIS_SYNONYMS = {
    "colour": "color",
    "colours": "color",
    "colors": "color",
    "col": "color",
    "renk": "color",
    "farbe": "color",
    "couleur": "color",
    "sz": "size",
    "sizes": "size",
    "size/fit": "size",
    "beden": "size",
    "groesse": "size",
    "größe": "size",
    "taille": "size",
    "capacity": "storage",
    "storage capacity": "storage",
    "memory": "storage",
    "qty": "quantity",
    "pack": "quantity",
    "pack size": "quantity",
    "count": "quantity",
    "material type": "material",
    "style name": "style",
    "flavour": "flavor",
}

TITLE_STOPWORDS = {
    "a",
    "an",
    "and",
    "the",
    "for",
    "with",
    "of",
    "by",
    "in",
    "new",
    "sale",
    "free",
    "shipping",
    "official",
    "genuine",
    "original",
    "edition",
    "&",
}

KNOWN_BRANDS = {
    "acer",
    "adidas",
    "apple",
    "asus",
    "bosch",
    "dell",
    "hp",
    "lenovo",
    "lg",
    "logitech",
    "msi",
    "nike",
    "philips",
    "samsung",
    "sony",
    "xiaomi",
}

CURRENCY_SYMBOLS = {
    "$": "USD",
    "us$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₺": "TRY",
    "tl": "TRY",
    "₹": "INR",
    "c$": "CAD",
    "a$": "AUD",
    "kr": "SEK",
}

# ISO 4217 exponents that differ from the default of 2
CURRENCY_MINOR_UNITS = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "CLP": 0,
    "ISK": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}
DEFAULT_MINOR_UNITS = 2
