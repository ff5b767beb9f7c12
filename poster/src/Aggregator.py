"""Aggregator: Median of on-chain records across attestors.

Algorithm:
    1. Drop absent records and records older than max_age_seconds
    2. Numeric values: initial median, optional outlier cut at
       max_deviation_percent, final median of the survivors
    3. String values: most common value, ties go to the most recent record
    4. Raise InsufficientData if fewer than min_records remain

Median keeps a single misbehaving attestor from moving the aggregate, and the
age cut keeps a dead attestor from anchoring a stale value forever.

.. code-block:: python

    >>> aggregator = Aggregator(max_age_seconds=3600)
    >>> records = [
    ...     StoredRecord("0xA...", "X", 100, 1000),
    ...     StoredRecord("0xB...", "X", 110, 1000),
    ... ]
    >>> entry = aggregator.recompute("X", records, now=1100)
    >>> entry.value, entry.source_record_count
    (105, 2)
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from collections.abc import Iterable

from .errors import InsufficientData
from .Observation import AggregateEntry, StoredRecord

logger = logging.getLogger(__name__)


def exact_median(values: Iterable[int | float]) -> int | float:
    """Median that stays an integer whenever the result is a whole number.

    uint64 values above 2**53 do not survive a round trip through float.
    """
    ordered = sorted(values)
    if not ordered:
        raise ValueError("median of no values")
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    total = ordered[mid - 1] + ordered[mid]
    if isinstance(total, int) and total % 2 == 0:
        return total // 2
    return total / 2


class Aggregator:
    """Computes one representative value per key.

    :ivar max_age_seconds: Maximum record age relative to now.
    :ivar max_deviation_percent: Optional outlier cut-off around the median.
    :ivar min_records: Minimum records required.
    """

    def __init__(
        self,
        max_age_seconds: float = 3600.0,
        max_deviation_percent: float | None = None,
        min_records: int = 1,
    ) -> None:
        """Initialize the aggregator.

        :param max_age_seconds: Records older than this are ignored (default 1h).
        :param max_deviation_percent: Drop numeric records deviating more than
            this from the initial median. None disables the check.
        :param min_records: Minimum records needed for an aggregate (default 1).
        :raises ValueError: If parameters are invalid.
        """
        if max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")
        if max_deviation_percent is not None and max_deviation_percent <= 0:
            raise ValueError("max_deviation_percent must be positive if specified")
        if min_records < 1:
            raise ValueError("min_records must be at least 1")

        self.max_age_seconds = max_age_seconds
        self.max_deviation_percent = max_deviation_percent
        self.min_records = min_records

    def recompute(
        self,
        key: str,
        records: Iterable[StoredRecord | None],
        now: float | None = None,
    ) -> AggregateEntry:
        """Aggregate the records of one key.

        :param key: Observation key.
        :param records: Current records across attestors; None entries are
            attestors with nothing stored.
        :param now: Current unix time (default: time.time()).
        :returns: New AggregateEntry stamped with ``now``.
        :raises InsufficientData: If fewer than min_records survive filtering.
        """
        now = time.time() if now is None else now
        fresh = [
            r for r in records
            if r is not None and now - r.timestamp <= self.max_age_seconds
        ]

        if len(fresh) < self.min_records:
            raise InsufficientData(key, len(fresh), self.min_records)

        if all(isinstance(r.value, str) for r in fresh):
            value: int | float | str = self._most_common(fresh)
            used = fresh
        else:
            value, used = self._median(key, fresh)

        return AggregateEntry(
            key=key, value=value, computed_at=now, source_record_count=len(used)
        )

    def _median(
        self, key: str, records: list[StoredRecord]
    ) -> tuple[int | float, list[StoredRecord]]:
        """Median with optional outlier exclusion.

        :raises InsufficientData: If outlier exclusion leaves too few records.
        """
        initial_median = exact_median(r.value for r in records)
        if self.max_deviation_percent is None or initial_median == 0:
            return initial_median, records

        kept: list[StoredRecord] = []
        for record in records:
            deviation = abs(record.value - initial_median) / abs(initial_median) * 100
            if deviation <= self.max_deviation_percent:
                kept.append(record)
            else:
                logger.info(
                    f"{key}: dropping {record.value} from {record.attestor} "
                    f"({deviation:.2f}% from median {initial_median})"
                )

        if len(kept) < self.min_records:
            raise InsufficientData(key, len(kept), self.min_records)
        return exact_median(r.value for r in kept), kept

    @staticmethod
    def _most_common(records: list[StoredRecord]) -> str:
        counts = Counter(r.value for r in records)
        top = max(counts.values())
        candidates = [r for r in records if counts[r.value] == top]
        return max(candidates, key=lambda r: r.timestamp).value
