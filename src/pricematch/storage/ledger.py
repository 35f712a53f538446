"""Append-only price history per variant."""

from __future__ import annotations

import threading
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterator, List, Optional, Union

import pandas as pd

from ..config.rules import CHANGE_THRESHOLD_PCT
from ..errors import StaleObservation, UnknownVariant
from ..models import PriceObservation
from ..utils.logging import get_logger

logger = get_logger(__name__)


class _NoDataType:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoData"


NoData = _NoDataType()


@dataclass(frozen=True)
class PriceChange:
    variant_id: str
    previous: PriceObservation
    current: PriceObservation
    delta_pct: Optional[Decimal]
    significant: bool

    @property
    def comparable(self) -> bool:
        return self.previous.currency == self.current.currency


class HistoryView:
    """Time-ordered, restartable view over one variant's observations."""

    def __init__(self, entries: List[PriceObservation], times: List[datetime],
                 start: Optional[datetime], end: Optional[datetime]):
        self._entries = entries
        self._times = times
        self._start = start
        self._end = end

    def _bounds(self):
        lo = 0 if self._start is None else bisect_left(self._times, self._start)
        hi = len(self._times) if self._end is None else bisect_right(self._times, self._end)
        return lo, hi

    def __iter__(self) -> Iterator[PriceObservation]:
        lo, hi = self._bounds()
        for idx in range(lo, hi):
            yield self._entries[idx]

    def __len__(self) -> int:
        lo, hi = self._bounds()
        return max(hi - lo, 0)


class PriceLedger:
    def __init__(self, store=None, change_threshold_pct: Union[Decimal, float, str] = CHANGE_THRESHOLD_PCT):
        self._store = store
        self.change_threshold_pct = Decimal(str(change_threshold_pct))
        self._entries: Dict[str, List[PriceObservation]] = {}
        self._times: Dict[str, List[datetime]] = {}
        self._lock = threading.Lock()

    def register(self, variant_id: str) -> None:
        with self._lock:
            self._entries.setdefault(variant_id, [])
            self._times.setdefault(variant_id, [])

    def is_known(self, variant_id: str) -> bool:
        if variant_id in self._entries:
            return True
        return self._store is not None and self._store.has_variant(variant_id)

    def _series(self, variant_id: str) -> List[PriceObservation]:
        if not self.is_known(variant_id):
            raise UnknownVariant(variant_id)
        return self._entries.get(variant_id, [])

    def append(self, variant_id: str, observation: PriceObservation) -> None:
        if not self.is_known(variant_id):
            raise UnknownVariant(variant_id)
        if observation.variant_id != variant_id:
            raise ValueError(
                f"observation belongs to {observation.variant_id}, not {variant_id}"
            )
        with self._lock:
            entries = self._entries.setdefault(variant_id, [])
            times = self._times.setdefault(variant_id, [])
            if times and observation.observed_at < times[-1]:
                raise StaleObservation(
                    f"{variant_id}: observation at {observation.observed_at.isoformat()} "
                    f"is older than {times[-1].isoformat()}"
                )
            entries.append(observation)
            times.append(observation.observed_at)

    def contains(self, variant_id: str, observation: PriceObservation) -> bool:
        """True when an identical observation is already recorded at its timestamp."""
        self._series(variant_id)
        with self._lock:
            entries = self._entries.get(variant_id, [])
            times = self._times.get(variant_id, [])
            lo = bisect_left(times, observation.observed_at)
            hi = bisect_right(times, observation.observed_at)
            return any(entries[idx] == observation for idx in range(lo, hi))

    def latest(self, variant_id: str):
        entries = self._series(variant_id)
        return entries[-1] if entries else NoData

    def history(self, variant_id: str, start: Optional[datetime] = None,
                end: Optional[datetime] = None) -> HistoryView:
        """Observations with ``start <= observed_at <= end``; bounds are optional."""
        self._series(variant_id)
        with self._lock:
            entries = self._entries.setdefault(variant_id, [])
            times = self._times.setdefault(variant_id, [])
        return HistoryView(entries, times, start, end)

    def count(self, variant_id: str) -> int:
        return len(self._series(variant_id))

    def detect_change(self, variant_id: str):
        """
        Compare the two most recent observations.

        Returns NoData with fewer than two observations. A currency switch
        is reported with ``delta_pct=None`` and never flagged. A move away
        from a zero price has no percentage and is always significant.
        """
        entries = self._series(variant_id)
        if len(entries) < 2:
            return NoData
        previous, current = entries[-2], entries[-1]

        if previous.currency != current.currency:
            logger.warning(
                "Currency changed for %s (%s -> %s); change not comparable",
                variant_id, previous.currency, current.currency,
            )
            return PriceChange(variant_id, previous, current, None, False)

        if previous.amount_minor == 0:
            moved = current.amount_minor != 0
            delta = None if moved else Decimal("0.00")
            return PriceChange(variant_id, previous, current, delta, moved)

        raw = (Decimal(current.amount_minor - previous.amount_minor) * 100
               / Decimal(previous.amount_minor))
        significant = abs(raw) > self.change_threshold_pct
        delta = raw.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        if significant:
            logger.info("Significant price change on %s: %s%%", variant_id, delta)
        return PriceChange(variant_id, previous, current, delta, significant)

    def significant_changes(self) -> List[PriceChange]:
        changes = []
        for variant_id in list(self._entries):
            change = self.detect_change(variant_id)
            if change is not NoData and change.significant:
                changes.append(change)
        return changes

    def to_frame(self, variant_id: Optional[str] = None) -> pd.DataFrame:
        if variant_id is not None:
            series = {variant_id: self._series(variant_id)}
        else:
            series = self._entries
        rows = [
            {
                "variant_id": obs.variant_id,
                "amount_minor": obs.amount_minor,
                "currency": obs.currency,
                "available": obs.available,
                "observed_at": obs.observed_at,
            }
            for entries in series.values()
            for obs in entries
        ]
        return pd.DataFrame(
            rows, columns=["variant_id", "amount_minor", "currency", "available", "observed_at"]
        )
