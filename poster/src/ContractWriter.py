"""ContractWriter: Batched submission of verified payloads to the oracle view.

All eligible payloads go into a single transaction. The write method is bound
once at startup (``ContractCall``). Blocking RPC calls run in a worker thread;
confirmation is awaited by polling for the receipt until a deadline.

Submission lifecycle::

    PENDING --receipt status 1--> CONFIRMED
            --revert / refused--> REJECTED
            --no receipt------->  TIMED_OUT
            --task cancelled--->  CANCELLED   (the broadcast tx is unaffected)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from web3 import Web3
from web3.exceptions import (
    ContractLogicError,
    TransactionNotFound,
    Web3Exception,
    Web3RPCError,
)
from web3.logs import DISCARD

from .errors import ConfigError, SubmissionRejected, SubmissionTimedOut
from .Observation import VerifiedPayload

if TYPE_CHECKING:
    from web3.contract import Contract
    from web3.contract.contract import ContractFunction

    from .PosterConfig import TxOptions

logger = logging.getLogger(__name__)

# Expected ABI input types per argument shape.
ARG_SHAPE_TYPES: dict[str, list[str]] = {
    "messages_signatures": ["bytes[]", "bytes[]"],
    "messages_signatures_keys": ["bytes[]", "bytes[]", "string[]"],
}


class SubmissionState(Enum):
    """State of a single write transaction."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass
class PendingSubmission:
    """Observable record of an in-flight submission.

    :ivar keys: Keys carried by the transaction.
    :ivar state: Current lifecycle state.
    :ivar tx_hash: Hex transaction hash once broadcast.
    :ivar error: Failure description when not confirmed.
    """

    keys: frozenset[str]
    state: SubmissionState = SubmissionState.PENDING
    tx_hash: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class TransactionOutcome:
    """Result of a confirmed submission.

    :ivar tx_hash: Hex transaction hash, or None if nothing was sent.
    :ivar submitted_keys: Keys carried by the transaction.
    :ivar updated_keys: Keys the contract confirmed writing.
    """

    tx_hash: str | None
    submitted_keys: frozenset[str] = field(default_factory=frozenset)
    updated_keys: frozenset[str] = field(default_factory=frozenset)

    @property
    def skipped_keys(self) -> frozenset[str]:
        """Keys submitted but not written by the contract."""
        return self.submitted_keys - self.updated_keys


class ContractCall:
    """A write method bound to one name and argument shape.

    :ivar contract: View contract instance.
    :ivar method: Method name.
    :ivar arg_shape: One of ``ARG_SHAPE_TYPES``.
    """

    def __init__(self, contract: Contract, method: str, arg_shape: str) -> None:
        """Resolve and validate the write method.

        :param contract: Web3 contract exposing the method.
        :param method: Method name (e.g. "postPrices").
        :param arg_shape: "messages_signatures" or "messages_signatures_keys".
        :raises ConfigError: If the method is missing or its inputs do not
            match the argument shape.
        """
        if arg_shape not in ARG_SHAPE_TYPES:
            raise ConfigError(f"Unknown argument shape '{arg_shape}'")
        self.contract = contract
        self.method = method
        self.arg_shape = arg_shape
        try:
            self._function = contract.get_function_by_name(method)
        except ValueError as e:
            raise ConfigError(f"Contract has no usable '{method}' method: {e}") from e

        abi = getattr(self._function, "abi", None)
        if isinstance(abi, dict):
            types = [i.get("type") for i in abi.get("inputs", [])]
            if types != ARG_SHAPE_TYPES[arg_shape]:
                raise ConfigError(
                    f"Method '{method}' takes {types}, expected "
                    f"{ARG_SHAPE_TYPES[arg_shape]} for shape '{arg_shape}'"
                )

    def bind(self, payloads: list[VerifiedPayload]) -> ContractFunction:
        """Bind the batch to the method's arguments."""
        args: list[list[Any]] = [
            [p.message for p in payloads],
            [p.signature for p in payloads],
        ]
        if self.arg_shape == "messages_signatures_keys":
            args.append([p.key for p in payloads])
        return self._function(*args)


class ContractWriter:
    """Submits eligible payloads and reports which keys were written.

    :ivar w3: Web3 instance able to send from the configured sender.
    :ivar call: Bound write method.
    :ivar events_contract: Contract whose events confirm writes.
    :ivar event_name: Confirmation event name.
    :ivar key_field: Event argument holding the key.
    :ivar wait_timeout: Seconds to wait for a receipt.
    :ivar poll_interval: Seconds between receipt polls.
    :ivar last_submission: Most recent PendingSubmission, if any.
    """

    def __init__(
        self,
        w3: Web3,
        call: ContractCall,
        events_contract: Contract | None = None,
        event_name: str = "Write",
        key_field: str = "key",
        wait_timeout: float = 120.0,
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the writer.

        :param w3: Web3 instance.
        :param call: Bound write method.
        :param events_contract: Contract emitting confirmation events
            (default: the view contract).
        :param event_name: Confirmation event name (default "Write").
        :param key_field: Event argument with the key (default "key").
        :param wait_timeout: Receipt wait window in seconds (default: 120).
        :param poll_interval: Receipt poll interval in seconds (default: 1).
        :raises ConfigError: If the confirmation event does not exist.
        """
        self.w3 = w3
        self.call = call
        self.events_contract = events_contract or call.contract
        self.event_name = event_name
        self.key_field = key_field
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self.last_submission: PendingSubmission | None = None

        try:
            self._event = getattr(self.events_contract.events, event_name)
        except (AttributeError, Web3Exception) as e:
            raise ConfigError(f"Contract has no '{event_name}' event: {e}") from e

    async def submit(
        self, eligible: list[VerifiedPayload], tx_options: TxOptions
    ) -> TransactionOutcome:
        """Send one transaction carrying all eligible payloads.

        :param eligible: Payloads that passed the freshness gate.
        :param tx_options: Sender and gas parameters.
        :returns: TransactionOutcome with the keys the contract wrote.
        :raises SubmissionRejected: If the call reverted or was refused.
        :raises SubmissionTimedOut: If no receipt arrived in time.
        """
        if not eligible:
            return TransactionOutcome(tx_hash=None)

        submitted = frozenset(p.key for p in eligible)
        pending = PendingSubmission(keys=submitted)
        self.last_submission = pending

        try:
            pending.tx_hash = await asyncio.to_thread(self._send, eligible, tx_options)
            logger.info(
                f"Submitted {len(eligible)} payload(s) for {sorted(submitted)} "
                f"in {pending.tx_hash}"
            )
            receipt = await self._await_receipt(pending.tx_hash)
        except SubmissionRejected as e:
            pending.state = SubmissionState.REJECTED
            pending.error = str(e)
            raise
        except SubmissionTimedOut as e:
            pending.state = SubmissionState.TIMED_OUT
            pending.error = str(e)
            raise
        except asyncio.CancelledError:
            pending.state = SubmissionState.CANCELLED
            logger.warning(f"Stopped waiting for {pending.tx_hash}; it may still be mined")
            raise

        if receipt["status"] != 1:
            pending.state = SubmissionState.REJECTED
            pending.error = "reverted"
            raise SubmissionRejected(
                f"Transaction {pending.tx_hash} reverted", tx_hash=pending.tx_hash
            )

        updated = self._updated_keys(receipt) & submitted
        pending.state = SubmissionState.CONFIRMED
        outcome = TransactionOutcome(
            tx_hash=pending.tx_hash, submitted_keys=submitted, updated_keys=updated
        )
        if outcome.skipped_keys:
            logger.info(
                f"{pending.tx_hash}: contract skipped {sorted(outcome.skipped_keys)}"
            )
        return outcome

    def _send(self, eligible: list[VerifiedPayload], tx_options: TxOptions) -> str:
        """Build and broadcast the write transaction.

        :returns: Hex transaction hash.
        :raises SubmissionRejected: If the call reverts or the node refuses it.
        """
        params = tx_options.to_tx_params()
        try:
            tx = self.call.bind(eligible).build_transaction(params)
            tx_hash = self.w3.eth.send_transaction(tx)
        except ContractLogicError as e:
            raise SubmissionRejected(f"Write call reverted: {e}") from e
        except (Web3RPCError, ValueError) as e:
            raise SubmissionRejected(f"Node refused transaction: {e}") from e
        return Web3.to_hex(tx_hash)

    async def _await_receipt(self, tx_hash: str) -> Any:
        """Poll for the receipt until it arrives or the wait window closes.

        RPC and connection errors while polling leave the outcome unknown, so
        they are logged and polling continues until the deadline.

        :raises SubmissionTimedOut: When the window closes without a receipt.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wait_timeout
        while True:
            try:
                return await asyncio.to_thread(self.w3.eth.get_transaction_receipt, tx_hash)
            except TransactionNotFound:
                pass
            except (Web3Exception, OSError) as e:
                logger.warning(f"Polling receipt for {tx_hash} failed: {e}")
            if loop.time() >= deadline:
                raise SubmissionTimedOut(
                    f"No receipt for {tx_hash} after {self.wait_timeout}s",
                    tx_hash=tx_hash,
                )
            await asyncio.sleep(self.poll_interval)

    def _updated_keys(self, receipt: Any) -> frozenset[str]:
        """Keys named by confirmation events in the receipt."""
        logs = self._event().process_receipt(receipt, errors=DISCARD)
        return frozenset(log["args"][self.key_field] for log in logs)
