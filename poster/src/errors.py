"""Error taxonomy for the oracle poster.

Per-payload errors (DecodeError, InvalidSignature) reject a single payload and
never abort the batch. Batch-level errors (SubmissionRejected,
SubmissionTimedOut) apply to the whole submitted set since it is one
transaction.
"""

from __future__ import annotations


class PosterError(Exception):
    """Base exception for poster errors."""

    pass


class ConfigError(PosterError):
    """Raised when configuration or a contract binding is invalid."""

    pass


class DecodeError(PosterError):
    """Raised when a payload message does not match the expected ABI layout."""

    pass


class InvalidSignature(PosterError):
    """Raised when a signature does not prove a trusted attestor identity.

    The recovered address (if any) is deliberately not attached: nothing has
    been proven about it.
    """

    pass


class InsufficientData(PosterError):
    """Raised when too few valid records remain for aggregation.

    :ivar key: Observation key that could not be aggregated.
    :ivar available: Number of records left after filtering.
    """

    def __init__(self, key: str, available: int, required: int = 1):
        """Initialize the error.

        :param key: Observation key.
        :param available: Records remaining after age/outlier filtering.
        :param required: Minimum records required.
        """
        self.key = key
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient data for {key}: {available} record(s), need {required}"
        )


class SubmissionError(PosterError):
    """Base class for batch-level submission failures.

    :ivar tx_hash: Transaction hash if the transaction was broadcast.
    """

    def __init__(self, message: str, tx_hash: str | None = None):
        """Initialize the submission error.

        :param message: Error description.
        :param tx_hash: Optional hex transaction hash.
        """
        self.tx_hash = tx_hash
        super().__init__(message)


class SubmissionRejected(SubmissionError):
    """The write call reverted or was refused by the node. Not retryable."""

    pass


class SubmissionTimedOut(SubmissionError):
    """No confirmation within the wait window. The outcome is unknown."""

    pass


class PayloadSourceError(PosterError):
    """Raised when a payload source cannot be fetched or parsed."""

    pass
