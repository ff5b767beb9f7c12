"""OraclePoster: Main orchestrator for posting signed observations on-chain.

Pipeline for one batch of payloads:
    - SignatureVerifier proves each payload's attestor
    - PayloadCodec decodes its observation
    - FreshnessGate keeps only payloads newer than the chain's current records
    - ContractWriter posts the survivors in a single transaction
    - For each key the contract confirmed, Aggregator recomputes the median
      over the attestor set from chain state and AggregateCache is updated

Blocking chain reads run in worker threads.

Invalid or malformed payloads are dropped individually; submission failures
apply to the whole batch. A confirmation timeout may be retried with a bumped
gas price, re-running the gate first since the earlier transaction can still
land; keys such a transaction wrote still get their aggregate refreshed.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .AggregateCache import AggregateCache
from .Aggregator import Aggregator
from .ContractUtility import ContractUtility
from .ContractWriter import ContractCall, ContractWriter, TransactionOutcome
from .errors import (
    DecodeError,
    InsufficientData,
    InvalidSignature,
    SubmissionError,
    SubmissionTimedOut,
)
from .FreshnessGate import FreshnessGate
from .Observation import AggregateEntry, Payload, VerifiedPayload
from .PayloadCodec import PayloadCodec
from .PayloadSource import PayloadSource
from .RecordReader import ContractRecordReader, RecordReader
from .SignatureVerifier import SignatureVerifier

if TYPE_CHECKING:
    from .PosterConfig import PosterConfig, TxOptions

logger = logging.getLogger(__name__)


@dataclass
class RejectedPayload:
    """A payload dropped before the gate.

    :ivar index: Position of the payload in the batch.
    :ivar reason: "signature" or "decode".
    :ivar detail: Error message.
    """

    index: int
    reason: str
    detail: str


@dataclass
class BatchResult:
    """Everything that happened to one batch.

    :ivar rejected: Payloads that failed verification or decoding.
    :ivar eligible: Payloads included in the last submission attempt.
    :ivar stale: Payloads filtered as not newer than the chain.
    :ivar future: Payloads dated too far ahead.
    :ivar outcome: Confirmed transaction outcome, if any.
    :ivar error: Batch-level submission error, if any.
    :ivar aggregates: Aggregates refreshed after confirmation.
    :ivar insufficient: Keys whose aggregate could not be recomputed.
    :ivar attempts: Number of submission attempts.
    :ivar landed: Keys written by a transaction that timed out.
    """

    rejected: list[RejectedPayload] = field(default_factory=list)
    eligible: list[VerifiedPayload] = field(default_factory=list)
    stale: list[VerifiedPayload] = field(default_factory=list)
    future: list[VerifiedPayload] = field(default_factory=list)
    outcome: TransactionOutcome | None = None
    error: SubmissionError | None = None
    aggregates: dict[str, AggregateEntry] = field(default_factory=dict)
    insufficient: list[str] = field(default_factory=list)
    attempts: int = 0
    landed: set[str] = field(default_factory=set)

    @property
    def success(self) -> bool:
        """True if no batch-level error occurred."""
        return self.error is None


class OraclePoster:
    """Posts fresh signed observations and maintains cached aggregates.

    :ivar config: Poster configuration.
    :ivar tx_options: Default transaction parameters.
    :ivar cache: Aggregate cache read by consumers.
    """

    def __init__(
        self,
        config: PosterConfig,
        tx_options: TxOptions,
        writer: ContractWriter,
        reader: RecordReader,
        verifier: SignatureVerifier | None = None,
        codec: PayloadCodec | None = None,
        gate: FreshnessGate | None = None,
        aggregator: Aggregator | None = None,
        cache: AggregateCache | None = None,
        payload_source: PayloadSource | None = None,
        gas_price_fn: Callable[[], int] | None = None,
    ) -> None:
        """Initialize the poster from its components.

        Components left as None are built from ``config``.

        :param config: Poster configuration.
        :param tx_options: Default transaction parameters.
        :param writer: Contract writer for the view contract.
        :param reader: Read path to the data contract.
        :param verifier: Signature verifier.
        :param codec: Payload codec.
        :param gate: Freshness gate.
        :param aggregator: Aggregator.
        :param cache: Aggregate cache.
        :param payload_source: Optional HTTP payload source for run().
        :param gas_price_fn: Callable returning the gas price when
            tx_options leaves it unset.
        """
        self.config = config
        self.tx_options = tx_options
        self.writer = writer
        self.reader = reader
        self.verifier = verifier or SignatureVerifier(config.attestors)
        self.codec = codec or PayloadCodec(kind=config.kind, value_type=config.value_type)
        self.gate = gate or FreshnessGate(max_future_seconds=config.max_future_seconds)
        self.aggregator = aggregator or Aggregator(
            max_age_seconds=config.max_age_seconds,
            max_deviation_percent=config.max_deviation_percent,
            min_records=config.min_records,
        )
        self.cache = cache or AggregateCache()
        self.payload_source = payload_source
        self.gas_price_fn = gas_price_fn
        self._key_locks: dict[str, asyncio.Lock] = {}

    @classmethod
    def from_config(
        cls,
        config: PosterConfig,
        contract_utility: ContractUtility,
        tx_options: TxOptions,
        view_abi_path: str | None = None,
        data_abi_path: str | None = None,
    ) -> OraclePoster:
        """Build a poster wired to the configured contracts.

        :param config: Poster configuration.
        :param contract_utility: Connected contract utility.
        :param tx_options: Default transaction parameters.
        :param view_abi_path: Optional ABI override for the view contract.
        :param data_abi_path: Optional ABI override for the data contract.
        :returns: Ready OraclePoster.
        :raises ConfigError: If a contract binding does not match its ABI.
        """
        w3 = contract_utility.w3
        view = w3.eth.contract(
            address=config.view_address,
            abi=ContractUtility.get_abi("OpenOracleView", view_abi_path),
        )
        data = w3.eth.contract(
            address=config.data_address,
            abi=ContractUtility.get_abi("OpenOracleData", data_abi_path),
        )

        writer = ContractWriter(
            w3,
            ContractCall(view, config.write_method, config.arg_shape),
            events_contract=data,
            event_name=config.confirmation_event,
            key_field=config.event_key_field,
            wait_timeout=config.wait_timeout,
            poll_interval=config.poll_interval,
        )
        reader = ContractRecordReader(data, config.read_method)
        payload_source = None
        if config.sources:
            payload_source = PayloadSource(config.sources, timeout=config.fetch_timeout)

        return cls(
            config=config,
            tx_options=tx_options,
            writer=writer,
            reader=reader,
            payload_source=payload_source,
            gas_price_fn=lambda: w3.eth.gas_price,
        )

    def authenticate(
        self, payloads: list[Payload], result: BatchResult
    ) -> list[VerifiedPayload]:
        """Verify and decode payloads, recording the ones that fail.

        :param payloads: Raw payloads.
        :param result: Batch result collecting rejections.
        :returns: Verified payloads in batch order.
        """
        verified: list[VerifiedPayload] = []
        for index, payload in enumerate(payloads):
            try:
                attestor = self.verifier.verify(payload.message, payload.signature)
            except InvalidSignature as e:
                logger.warning(f"Payload {index}: invalid signature ({e})")
                result.rejected.append(RejectedPayload(index, "signature", str(e)))
                continue

            try:
                observations = self.codec.decode(payload.message)
            except DecodeError as e:
                logger.warning(f"Payload {index} from {attestor}: {e}")
                result.rejected.append(RejectedPayload(index, "decode", str(e)))
                continue

            for observation in observations:
                verified.append(
                    VerifiedPayload(
                        attestor=attestor,
                        observation=observation,
                        message=payload.message,
                        signature=payload.signature,
                    )
                )
        return verified

    async def process_batch(
        self, payloads: list[Payload], tx_options: TxOptions | None = None
    ) -> BatchResult:
        """Run one batch through the full pipeline.

        :param payloads: Signed payloads to post.
        :param tx_options: Transaction parameters (default: self.tx_options).
        :returns: BatchResult describing rejections, submission and aggregates.
        """
        result = BatchResult()
        verified = self.authenticate(payloads, result)
        if not verified:
            logger.info(f"No valid payloads in batch of {len(payloads)}")
            return result

        keys = sorted({p.key for p in verified})
        async with AsyncExitStack() as stack:
            if self.config.serialize_keys:
                for key in keys:
                    lock = self._key_locks.setdefault(key, asyncio.Lock())
                    await stack.enter_async_context(lock)
            try:
                result.outcome = await self._submit(
                    verified, tx_options or self.tx_options, result
                )
            except SubmissionError as e:
                logger.error(f"Submission of {keys} failed: {e}")
                result.error = e

        refresh = set(result.landed)
        if result.outcome is not None:
            refresh |= result.outcome.updated_keys
        for key in sorted(refresh):
            entry = await asyncio.to_thread(self.refresh_aggregate, key)
            if entry is None:
                result.insufficient.append(key)
            else:
                result.aggregates[key] = entry
        return result

    async def _submit(
        self, verified: list[VerifiedPayload], tx_options: TxOptions, result: BatchResult
    ) -> TransactionOutcome:
        """Gate and submit, resubmitting after timeouts if configured."""
        options = await asyncio.to_thread(self._resolve_gas_price, tx_options)
        timed_out = False
        while True:
            gated = await asyncio.to_thread(self.gate.select, verified, self.reader)
            result.eligible = gated.eligible
            result.stale = gated.stale
            result.future = gated.future
            if timed_out:
                result.landed |= await asyncio.to_thread(self._landed_keys, gated.stale)
            if not gated.eligible:
                logger.info(f"All {len(verified)} observation(s) already on-chain or stale")
                return TransactionOutcome(tx_hash=None)

            result.attempts += 1
            try:
                return await self.writer.submit(gated.eligible, options)
            except SubmissionTimedOut as e:
                if result.attempts > self.config.timeout_retries:
                    result.landed |= await asyncio.to_thread(
                        self._landed_keys, gated.eligible
                    )
                    raise
                bumped = max(
                    options.gas_price + 1,
                    int(options.gas_price * (1 + self.config.gas_price_bump_percent / 100)),
                )
                logger.warning(f"{e}; resubmitting with gas price {bumped}")
                options = options.with_gas_price(bumped)
                timed_out = True

    def _landed_keys(self, candidates: list[VerifiedPayload]) -> set[str]:
        """Keys whose candidates are exactly what the chain now stores.

        After a timeout these were written by the earlier transaction.
        """
        landed: set[str] = set()
        for candidate in candidates:
            current = self.reader.read(candidate.attestor, candidate.key)
            if current is not None and current.timestamp == candidate.observation.timestamp:
                landed.add(candidate.key)
        if landed:
            logger.info(f"Timed-out transaction landed for {sorted(landed)}")
        return landed

    def _resolve_gas_price(self, tx_options: TxOptions) -> TxOptions:
        if tx_options.gas_price is not None or self.gas_price_fn is None:
            return tx_options
        return tx_options.with_gas_price(self.gas_price_fn())

    def refresh_aggregate(self, key: str) -> AggregateEntry | None:
        """Recompute one key's aggregate from chain state and cache it.

        :param key: Observation key.
        :returns: The new entry, or None if data was insufficient (the
            previous cached entry is kept).
        """
        records = self.reader.read_many(self.config.attestors, key)
        try:
            entry = self.aggregator.recompute(key, records.values())
        except InsufficientData as e:
            logger.warning(f"{e}; keeping previous aggregate")
            return None

        self.cache.put(key, entry)
        logger.info(
            f"{key}: aggregate {entry.value} from {entry.source_record_count} record(s)"
        )
        return entry

    def refresh_aggregates(self, keys: list[str]) -> dict[str, AggregateEntry]:
        """Recompute aggregates for several keys.

        :returns: Dict of keys that produced a new entry.
        """
        entries: dict[str, AggregateEntry] = {}
        for key in keys:
            entry = self.refresh_aggregate(key)
            if entry is not None:
                entries[key] = entry
        return entries

    async def run_once(self) -> BatchResult | None:
        """Fetch payloads from the sources and process them as one batch."""
        if self.payload_source is None:
            raise RuntimeError("No payload sources configured")
        payloads = await self.payload_source.fetch_all()
        if not payloads:
            logger.info("No payloads fetched")
            return None
        return await self.process_batch(payloads)

    async def run(self) -> None:
        """Run the poll loop until cancelled.

        A failing cycle (e.g. the node being unreachable) is logged and the
        loop carries on with the next poll.

        :raises RuntimeError: If no payload source is configured.
        """
        if self.payload_source is None:
            raise RuntimeError("No payload sources configured")
        if self.config.keys:
            try:
                await asyncio.to_thread(self.refresh_aggregates, self.config.keys)
            except Exception as exc:
                logger.error(f"Startup aggregation failed: {exc}")

        logger.info(
            f"Polling {len(self.config.sources)} source(s) "
            f"every {self.config.poll_period}s"
        )
        try:
            while True:
                try:
                    await self.run_once()
                except Exception:
                    logger.exception("Poll cycle failed")
                await asyncio.sleep(self.config.poll_period)
        finally:
            if self.payload_source is not None:
                await self.payload_source.close()
