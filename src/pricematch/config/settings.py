import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[3]
DATA_DIR = Path(os.getenv("PRICEMATCH_DATA_DIR", str(BASE_DIR / "data")))
EXPORT_DIR = Path(os.getenv("PRICEMATCH_EXPORT_DIR", str(DATA_DIR / "export")))

# Read-model files written by the CLI export step
EXPORT_FILES = {
    "products": "products.csv",
    "listings": "listings.csv",
    "variants": "variants.csv",
    "prices": "prices.csv",
}

# Columns expected in a scraper feed CSV (extra columns are ignored)
FEED_REQUIRED_COLUMNS = ("site", "url", "title", "price", "currency")
FEED_OPTIONAL_COLUMNS = (
    "variants",
    "available",
    "observed_at",
    "listing_ref",
    "brand",
    "category",
    "sku",
    "gtin",
)
FEED_VARIANT_SEPARATOR = ";"
