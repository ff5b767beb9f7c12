"""FreshnessGate: Only forward observations newer than what is on-chain.

The data contract writes ``(attestor, key)`` only when the message timestamp
is strictly greater than the stored one and not too far in the future. The
gate applies the same rule before submission so that predictably-losing
payloads never cost gas. The contract stays the final arbiter.

.. code-block:: python

    >>> gate = FreshnessGate()
    >>> gate.is_eligible(Observation("BTC", 100, 10), attestor, None)
    True
    >>> gate.is_eligible(Observation("BTC", 100, 10), attestor, record_at_10)
    False
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .Observation import Observation, StoredRecord, VerifiedPayload

if TYPE_CHECKING:
    from .RecordReader import RecordReader

logger = logging.getLogger(__name__)

# Matches the data contract's tolerance for clock skew (60 minutes).
DEFAULT_MAX_FUTURE_SECONDS = 60 * 60


@dataclass
class GateResult:
    """Candidates split by the gate.

    :ivar eligible: Payloads to submit, at most one per (attestor, key).
    :ivar stale: Payloads filtered out as not newer than the current record.
    :ivar future: Payloads dated too far ahead of local time.
    """

    eligible: list[VerifiedPayload] = field(default_factory=list)
    stale: list[VerifiedPayload] = field(default_factory=list)
    future: list[VerifiedPayload] = field(default_factory=list)


class FreshnessGate:
    """Decides which verified payloads are worth submitting.

    :ivar max_future_seconds: Largest accepted lead of a timestamp over local time.
    """

    def __init__(self, max_future_seconds: int | None = DEFAULT_MAX_FUTURE_SECONDS) -> None:
        """Initialize the gate.

        :param max_future_seconds: Future horizon in seconds; None disables it.
        """
        self.max_future_seconds = max_future_seconds

    @staticmethod
    def is_eligible(
        candidate: Observation, attestor: str, current: StoredRecord | None
    ) -> bool:
        """Check whether a candidate would replace the current record.

        :param candidate: Decoded observation.
        :param attestor: Attestor that signed the candidate.
        :param current: Record currently stored for (attestor, key), or None.
        :returns: True iff there is no record or the candidate is strictly newer.
        """
        if current is None:
            return True
        return candidate.timestamp > current.timestamp

    def select(
        self,
        candidates: list[VerifiedPayload],
        reader: RecordReader,
        now: float | None = None,
    ) -> GateResult:
        """Split candidates into eligible and stale against live chain state.

        Records are read from the chain on every call. Within the batch, only
        the newest payload per (attestor, key) survives; an equal timestamp
        seen later in the batch counts as stale.

        :param candidates: Verified payloads in arrival order.
        :param reader: Read path to the data contract.
        :param now: Current unix time (default: time.time()).
        :returns: GateResult with eligible, stale and future payloads.
        """
        now = time.time() if now is None else now
        result = GateResult()

        newest: dict[tuple[str, str], VerifiedPayload] = {}
        for candidate in candidates:
            if (
                self.max_future_seconds is not None
                and candidate.observation.timestamp > now + self.max_future_seconds
            ):
                logger.warning(
                    f"{candidate.key}: timestamp {candidate.observation.timestamp} "
                    f"from {candidate.attestor} is too far in the future"
                )
                result.future.append(candidate)
                continue

            slot = (candidate.attestor, candidate.key)
            previous = newest.get(slot)
            if previous is None:
                newest[slot] = candidate
            elif candidate.observation.timestamp > previous.observation.timestamp:
                result.stale.append(previous)
                newest[slot] = candidate
            else:
                result.stale.append(candidate)

        for (attestor, key), candidate in newest.items():
            current = reader.read(attestor, key)
            if self.is_eligible(candidate.observation, attestor, current):
                result.eligible.append(candidate)
            else:
                logger.debug(
                    f"{key}: skipping stale observation from {attestor} "
                    f"(candidate={candidate.observation.timestamp}, "
                    f"stored={current.timestamp})"
                )
                result.stale.append(candidate)

        return result
