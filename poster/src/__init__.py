"""
Open Oracle Poster - Freshness-gated posting of signed observations

This module provides:
- PayloadCodec: ABI codec for signed observation messages
- SignatureVerifier: Attestor recovery from payload signatures
- FreshnessGate: Drops payloads not newer than the on-chain record
- ContractWriter: Single-transaction batch submission with receipt tracking
- Aggregator: Median over attestors with age filtering
- AggregateCache: Latest aggregate per key
- OraclePoster: Orchestrator and poll loop
"""

from .AggregateCache import AggregateCache
from .Aggregator import Aggregator
from .ContractWriter import (
    ContractCall,
    ContractWriter,
    PendingSubmission,
    SubmissionState,
    TransactionOutcome,
)
from .errors import (
    ConfigError,
    DecodeError,
    InsufficientData,
    InvalidSignature,
    PayloadSourceError,
    PosterError,
    SubmissionError,
    SubmissionRejected,
    SubmissionTimedOut,
)
from .FreshnessGate import FreshnessGate, GateResult
from .Observation import AggregateEntry, Observation, Payload, StoredRecord, VerifiedPayload
from .OraclePoster import BatchResult, OraclePoster, RejectedPayload
from .PayloadCodec import PayloadCodec
from .PayloadSource import PayloadSource
from .PosterConfig import PosterConfig, TxOptions
from .RecordReader import ContractRecordReader, RecordReader
from .SignatureVerifier import SignatureVerifier

__all__ = [
    "AggregateCache",
    "AggregateEntry",
    "Aggregator",
    "BatchResult",
    "ConfigError",
    "ContractCall",
    "ContractRecordReader",
    "ContractWriter",
    "DecodeError",
    "FreshnessGate",
    "GateResult",
    "InsufficientData",
    "InvalidSignature",
    "Observation",
    "OraclePoster",
    "Payload",
    "PayloadCodec",
    "PayloadSource",
    "PayloadSourceError",
    "PendingSubmission",
    "PosterConfig",
    "PosterError",
    "RecordReader",
    "RejectedPayload",
    "SignatureVerifier",
    "StoredRecord",
    "SubmissionError",
    "SubmissionRejected",
    "SubmissionState",
    "SubmissionTimedOut",
    "TransactionOutcome",
    "TxOptions",
    "VerifiedPayload",
]
