"""PosterConfig: Explicit configuration passed into each poster component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from eth_utils import is_address, to_checksum_address

from .errors import ConfigError
from .FreshnessGate import DEFAULT_MAX_FUTURE_SECONDS

# Argument shapes a write method can be bound to.
ARG_SHAPES = ("messages_signatures", "messages_signatures_keys")


@dataclass(frozen=True)
class TxOptions:
    """Caller-supplied transaction parameters.

    :ivar sender: Address the transaction is sent from.
    :ivar gas: Gas limit.
    :ivar gas_price: Gas price in wei, or None to let the caller fill it in.
    :ivar extra: Additional transaction parameters passed through verbatim.
    """

    sender: str
    gas: int = 500_000
    gas_price: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not is_address(self.sender):
            raise ConfigError(f"Invalid sender address: {self.sender!r}")
        if self.gas <= 0:
            raise ConfigError("gas must be positive")
        if self.gas_price is not None and self.gas_price < 0:
            raise ConfigError("gas_price must not be negative")

    def to_tx_params(self) -> dict[str, Any]:
        """Build web3 transaction params ``{from, gas, gasPrice, **extra}``.

        :raises ConfigError: If gas_price has not been set.
        """
        if self.gas_price is None:
            raise ConfigError("gas_price must be set before submission")
        params: dict[str, Any] = {
            "from": to_checksum_address(self.sender),
            "gas": self.gas,
            "gasPrice": self.gas_price,
        }
        params.update(self.extra)
        return params

    def with_gas_price(self, gas_price: int) -> TxOptions:
        """Return a copy with a different gas price."""
        return TxOptions(
            sender=self.sender, gas=self.gas, gas_price=gas_price, extra=dict(self.extra)
        )


@dataclass
class PosterConfig:
    """Process-wide poster configuration.

    :ivar view_address: Address of the oracle view contract receiving writes.
    :ivar data_address: Address of the oracle data contract holding records.
    :ivar attestors: Trusted attestor addresses (also the aggregation set).
    :ivar keys: Keys to aggregate at startup.
    :ivar sources: Payload source URLs polled by the run loop.
    :ivar write_method: View method receiving the batch.
    :ivar arg_shape: Argument shape of the write method.
    :ivar confirmation_event: Event marking an accepted write.
    :ivar event_key_field: Event argument holding the key.
    :ivar read_method: Data contract getter.
    :ivar kind: Expected message kind.
    :ivar value_type: ABI type of observation values.
    :ivar max_age_seconds: Records older than this are ignored in aggregation.
    :ivar max_deviation_percent: Optional outlier cut-off around the median.
    :ivar min_records: Records required for an aggregate.
    :ivar max_future_seconds: Future horizon of the freshness gate.
    :ivar wait_timeout: Seconds to wait for a receipt.
    :ivar poll_interval: Seconds between receipt polls.
    :ivar timeout_retries: Resubmissions after a confirmation timeout.
    :ivar gas_price_bump_percent: Gas price increase per resubmission.
    :ivar poll_period: Seconds between run loop cycles.
    :ivar fetch_timeout: HTTP timeout for payload sources.
    :ivar serialize_keys: Hold a per-key lock while a submission is pending.
    """

    view_address: str
    data_address: str
    attestors: list[str] = field(default_factory=list)
    keys: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    write_method: str = "postPrices"
    arg_shape: str = "messages_signatures_keys"
    confirmation_event: str = "Write"
    event_key_field: str = "key"
    read_method: str = "get"
    kind: str = "prices"
    value_type: str = "uint64"
    max_age_seconds: float = 3600.0
    max_deviation_percent: float | None = None
    min_records: int = 1
    max_future_seconds: int | None = DEFAULT_MAX_FUTURE_SECONDS
    wait_timeout: float = 120.0
    poll_interval: float = 1.0
    timeout_retries: int = 0
    gas_price_bump_percent: float = 10.0
    poll_period: float = 60.0
    fetch_timeout: float = 10.0
    serialize_keys: bool = False

    def __post_init__(self) -> None:
        for name in ("view_address", "data_address"):
            value = getattr(self, name)
            if not is_address(value):
                raise ConfigError(f"Invalid {name}: {value!r}")
            setattr(self, name, to_checksum_address(value))

        if not self.attestors:
            raise ConfigError("At least one trusted attestor is required")
        invalid = [a for a in self.attestors if not is_address(a)]
        if invalid:
            raise ConfigError(f"Invalid attestor addresses: {invalid}")
        self.attestors = [to_checksum_address(a) for a in self.attestors]

        if self.arg_shape not in ARG_SHAPES:
            raise ConfigError(f"Unknown arg_shape '{self.arg_shape}'. Expected {ARG_SHAPES}")
        if self.max_age_seconds <= 0:
            raise ConfigError("max_age_seconds must be positive")
        if self.min_records < 1:
            raise ConfigError("min_records must be at least 1")
        if self.wait_timeout <= 0:
            raise ConfigError("wait_timeout must be positive")
        if self.timeout_retries < 0:
            raise ConfigError("timeout_retries must not be negative")
        if self.poll_period < 1:
            raise ConfigError("poll_period must be at least 1 second")
