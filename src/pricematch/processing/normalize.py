import re
import unicodedata
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

import pandas as pd

from ..config.rules import (
    AXIS_SYNONYMS,
    CURRENCY_MINOR_UNITS,
    CURRENCY_SYMBOLS,
    DEFAULT_MINOR_UNITS,
    KNOWN_BRANDS,
    TITLE_STOPWORDS,
)
from ..errors import (
    InvalidCurrency,
    MalformedPrice,
    MissingListing,
    MissingTitle,
    NormalizationError,
)
from ..models import Axes, NormalizedRecord, RawObservation, RejectedRecord
from ..utils.logging import get_logger

logger = get_logger(__name__)

_TOKEN_RE = re.compile(r"[^\W_]+", re.UNICODE)
_CODE_RE = re.compile(r"\b([A-Za-z]{3})\b")
_LABEL_SEPARATORS = (":", "=")
# One to three leading digits, one dot, one three-digit group: "1.299", "12.999"
_THOUSANDS_GROUP_RE = re.compile(r"[1-9]\d{0,2}\.\d{3}")
# Symbols checked longest first so "us$" wins over "$"
_SYMBOLS_BY_LENGTH = sorted(CURRENCY_SYMBOLS, key=len, reverse=True)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (Mapping, list, tuple)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _collapse(text: Any) -> str:
    if _is_missing(text):
        return ""
    s = unicodedata.normalize("NFKC", str(text)).lower()
    return re.sub(r"\s+", " ", s).strip()


def normalize_title_text(text: Any) -> str:
    """Lower-case and whitespace-collapse a product title."""
    return _collapse(text)


def tokenize(text: Any) -> List[str]:
    return _TOKEN_RE.findall(_collapse(text))


def detect_brand(title: str, brand: Optional[str] = None) -> Optional[str]:
    """
    Return the normalized brand.
    An explicit brand always wins; otherwise the leading title token is used
    when it is a known brand.
    """
    explicit = _collapse(brand)
    if explicit:
        return explicit
    tokens = tokenize(title)
    if tokens and tokens[0] in KNOWN_BRANDS:
        return tokens[0]
    return None


def split_title_tokens(title: str, brand: Optional[str]) -> Tuple[frozenset, frozenset]:
    """Split title tokens into (content tokens, stripped brand/stopword tokens)."""
    tokens = tokenize(title)
    brand_tokens = set(tokenize(brand)) if brand else set()
    stripped = {t for t in tokens if t in TITLE_STOPWORDS or t in brand_tokens}
    content = {t for t in tokens if t not in stripped}
    if not content:
        # A title made only of brand/stopwords still has to identify something.
        content = set(tokens)
    return frozenset(content), frozenset(stripped)


def normalize_currency(currency: Any, price: Any = None) -> str:
    """
    Map a currency field to its 3-letter code.
    When the field is empty the code is inferred from the price text
    ("$19.99", "USD 19.99", "1.299,00 TL").
    """
    raw = _collapse(currency) if not _is_missing(currency) else ""
    if raw:
        if raw in CURRENCY_SYMBOLS:
            return CURRENCY_SYMBOLS[raw]
        if re.fullmatch(r"[a-z]{3}", raw):
            return raw.upper()
        raise InvalidCurrency(f"unrecognized currency: {currency!r}")

    if isinstance(price, str):
        text = price.strip().lower()
        for symbol in _SYMBOLS_BY_LENGTH:
            if symbol.isalpha():
                if re.search(rf"\b{re.escape(symbol)}\b", text):
                    return CURRENCY_SYMBOLS[symbol]
            elif symbol in text:
                return CURRENCY_SYMBOLS[symbol]
        m = _CODE_RE.search(price)
        if m:
            return m.group(1).upper()
    raise InvalidCurrency("currency missing and not inferable from price")


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS.get(currency, DEFAULT_MINOR_UNITS)


def _price_text_to_decimal(text: str, exponent: int = DEFAULT_MINOR_UNITS) -> Decimal:
    """
    Parse a scraped price string. A lone separator followed by exactly three
    digits is a thousands separator ("1.299 TL", "1,299") unless the currency
    itself has three minor digits.
    """
    s = text.strip()
    if "-" in s or "\u2212" in s:
        raise MalformedPrice(f"negative or ranged price: {text!r}")
    s = re.sub(r"[^\d,.]", "", s)
    if not s or not re.search(r"\d", s):
        raise MalformedPrice(f"no digits in price: {text!r}")

    has_comma = "," in s
    has_dot = "." in s
    if has_comma and has_dot:
        # The separator appearing last is the decimal mark.
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif has_comma:
        head, _, tail = s.rpartition(",")
        if s.count(",") == 1 and (len(tail) <= 2 or (len(tail) == 3 and exponent == 3)):
            s = f"{head}.{tail}"
        else:
            s = s.replace(",", "")
    elif has_dot and s.count(".") > 1:
        s = s.replace(".", "")
    elif has_dot and exponent != 3 and _THOUSANDS_GROUP_RE.fullmatch(s):
        s = s.replace(".", "")

    if not re.fullmatch(r"\d+(?:\.\d+)?|\.\d+", s):
        raise MalformedPrice(f"unparsable price: {text!r}")
    return Decimal(s)


def _to_decimal(value: Any, currency: Optional[str] = None) -> Decimal:
    if isinstance(value, bool):
        raise MalformedPrice(f"boolean is not a price: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int):
        amount = Decimal(value)
    elif isinstance(value, float):
        # repr() keeps the shortest round-tripping digits, not binary noise
        amount = Decimal(repr(value))
    elif isinstance(value, str):
        exponent = minor_units(currency) if currency else DEFAULT_MINOR_UNITS
        amount = _price_text_to_decimal(value, exponent)
    else:
        raise MalformedPrice(f"unsupported price type: {type(value).__name__}")

    if not amount.is_finite():
        raise MalformedPrice(f"non-finite price: {value!r}")
    if amount < 0:
        raise MalformedPrice(f"negative price: {value!r}")
    return amount


def parse_price_minor(value: Any, currency: str) -> Optional[int]:
    """
    Convert a scraped price to integer minor units of ``currency``.
    Returns None when the page showed no price at all.
    """
    if _is_missing(value):
        return None
    amount = _to_decimal(value, currency)
    scale = Decimal(10) ** minor_units(currency)
    return int((amount * scale).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def format_minor(amount_minor: int, currency: str) -> str:
    exp = minor_units(currency)
    value = Decimal(amount_minor).scaleb(-exp)
    return f"{value:.{exp}f} {currency}"


def normalize_axis_name(name: Any) -> str:
    key = _collapse(name)
    return AXIS_SYNONYMS.get(key, key)


def _label_pairs(label: Any) -> List[Tuple[Any, Any]]:
    if isinstance(label, Mapping):
        return list(label.items())
    if isinstance(label, (tuple, list)) and len(label) == 2:
        return [(label[0], label[1])]
    text = str(label)
    for sep in _LABEL_SEPARATORS:
        if sep in text:
            name, _, value = text.partition(sep)
            return [(name, value)]
    return [("variant", text)]


def normalize_axes(labels: Iterable[Any]) -> Axes:
    """
    Turn raw variant labels into a canonical, sorted tuple of (axis, value).
    Axis order in the source never changes the result.
    """
    axes = {}
    for label in labels or ():
        if _is_missing(label):
            continue
        for name, value in _label_pairs(label):
            axis = normalize_axis_name(name)
            val = _collapse(value)
            if not axis or not val:
                continue
            axes[axis] = val
    return tuple(sorted(axes.items()))


def normalize_url(url: Any) -> str:
    text = str(url or "").strip()
    if not text:
        return ""
    parts = urlsplit(text)
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def listing_key(raw: RawObservation) -> str:
    if not _is_missing(raw.listing_ref):
        return str(raw.listing_ref).strip()
    key = normalize_url(raw.url)
    if not key:
        raise MissingListing("observation has neither listing_ref nor url", raw)
    return key


def _optional_text(value: Any) -> Optional[str]:
    if _is_missing(value):
        return None
    return str(value).strip()


def normalize_record(raw: RawObservation) -> NormalizedRecord:
    """Canonicalize one scrape result; raises a NormalizationError subclass."""
    title = normalize_title_text(raw.title)
    if not title:
        raise MissingTitle("title is empty after trimming", raw)

    site = _collapse(raw.site)
    if not site:
        raise MissingListing("observation has no site", raw)

    try:
        currency = normalize_currency(raw.currency, raw.price)
        price_minor = parse_price_minor(raw.price, currency)
    except NormalizationError as exc:
        exc.record = raw
        raise

    brand = detect_brand(raw.title, raw.brand)
    tokens, stripped = split_title_tokens(title, brand)
    category = None if _is_missing(raw.category) else (_collapse(raw.category) or None)

    return NormalizedRecord(
        site=site,
        listing_key=listing_key(raw),
        url=str(raw.url or "").strip(),
        title=title,
        tokens=tokens,
        stripped_tokens=stripped,
        brand=brand,
        category=category,
        price_minor=price_minor,
        currency=currency,
        axes=normalize_axes(raw.variant_labels),
        available=bool(raw.available) and price_minor is not None,
        observed_at=raw.observed_at,
        sku=_optional_text(raw.sku),
        gtin=_optional_text(raw.gtin),
    )


def normalize_batch(
    observations: Iterable[RawObservation],
) -> Tuple[List[NormalizedRecord], List[RejectedRecord]]:
    """Normalize a batch; failures are collected, never raised."""
    records: List[NormalizedRecord] = []
    rejected: List[RejectedRecord] = []
    for raw in observations:
        try:
            records.append(normalize_record(raw))
        except NormalizationError as exc:
            logger.warning("Rejected %s record from %s: %s", exc.reason, raw.site, exc)
            rejected.append(RejectedRecord(observation=raw, reason=exc.reason, message=str(exc)))
    return records, rejected
