from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

import pandas as pd

from ..config.settings import (
    FEED_OPTIONAL_COLUMNS,
    FEED_REQUIRED_COLUMNS,
    FEED_VARIANT_SEPARATOR,
)
from ..models import RawObservation
from ..utils.logging import get_logger

logger = get_logger(__name__)

_TRUE_WORDS = {"1", "true", "yes", "y", "in stock", "instock", "available"}
_FALSE_WORDS = {"0", "false", "no", "n", "out of stock", "outofstock", "unavailable", "sold out"}


def _sanitize_column_name(name: Any) -> str:
    return str(name).replace("\ufeff", "").strip().lower()


def _standardize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df.columns = [_sanitize_column_name(c) for c in df.columns]
    return df


def read_csv_robust(path: Path) -> pd.DataFrame:
    """Read CSV with encoding fallbacks and auto delimiter detection.

    Every column is read as text so prices never pass through float.
    """
    encodings: tuple[str, ...] = ("utf-8-sig", "utf-8", "cp1254", "latin1")
    last_error: Exception | None = None
    for encoding in encodings:
        try:
            df = pd.read_csv(
                path,
                encoding=encoding,
                sep=None,
                engine="python",
                dtype=str,
                on_bad_lines="skip",
            )
            return _standardize_columns(df)
        except (UnicodeDecodeError, pd.errors.ParserError) as e:
            last_error = e
    assert last_error is not None
    raise last_error


def _cell(row: pd.Series, column: str) -> Optional[str]:
    value = row.get(column)
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    text = str(value).strip()
    return text or None


def parse_available(value: Any, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    return default


def parse_variant_cell(value: Optional[str]) -> tuple:
    if not value:
        return ()
    return tuple(part.strip() for part in value.split(FEED_VARIANT_SEPARATOR) if part.strip())


def parse_observed_at(value: Optional[str], default: datetime) -> datetime:
    if not value:
        return default
    stamp = pd.to_datetime(value, errors="coerce")
    if pd.isna(stamp):
        logger.warning("Unparsable observed_at %r, using batch time", value)
        return default
    return stamp.to_pydatetime()


def observations_from_frame(
    df: pd.DataFrame,
    site: Optional[str] = None,
    observed_at: Optional[datetime] = None,
) -> List[RawObservation]:
    """
    Convert a scraper DataFrame into RawObservations.

    ``site`` fills rows without a site column value; ``observed_at`` is the
    batch time used when a row carries no timestamp.
    """
    df = _standardize_columns(df.copy())
    batch_time = observed_at or datetime.now()

    missing = [c for c in FEED_REQUIRED_COLUMNS if c not in df.columns and not (c == "site" and site)]
    if missing:
        raise ValueError(f"feed is missing required columns: {', '.join(missing)}")
    for column in FEED_OPTIONAL_COLUMNS:
        if column not in df.columns:
            df[column] = None

    observations = []
    for _, row in df.iterrows():
        observations.append(RawObservation(
            site=_cell(row, "site") or site or "",
            url=_cell(row, "url") or "",
            title=_cell(row, "title") or "",
            price=_cell(row, "price"),
            currency=_cell(row, "currency") or "",
            observed_at=parse_observed_at(_cell(row, "observed_at"), batch_time),
            variant_labels=parse_variant_cell(_cell(row, "variants")),
            available=parse_available(_cell(row, "available")),
            listing_ref=_cell(row, "listing_ref"),
            brand=_cell(row, "brand"),
            category=_cell(row, "category"),
            sku=_cell(row, "sku"),
            gtin=_cell(row, "gtin"),
        ))
    return observations


def read_feed(path: Path, site: Optional[str] = None) -> List[RawObservation]:
    """Load one scraper output file; the file stem is the default site."""
    path = Path(path)
    df = read_csv_robust(path)
    observations = observations_from_frame(df, site=site or path.stem)
    logger.info("[OK] %s: %d observations", path.name, len(observations))
    return observations
