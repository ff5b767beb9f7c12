#!/usr/bin/env python3
"""Open Oracle Poster.

Polls attestor endpoints for signed observations, posts the ones newer than
what the oracle data contract holds in a single transaction, and keeps a
median aggregate per key from the resulting on-chain state.
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.ContractUtility import NETWORKS, ContractUtility
from .src.errors import ConfigError
from .src.OraclePoster import OraclePoster
from .src.PosterConfig import ARG_SHAPES, PosterConfig, TxOptions

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def parse_list(value: str | None) -> list[str]:
    """Split a comma-separated string, dropping blanks.

    :param value: Comma-separated string or None.
    :returns: List of stripped items.
    """
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment variable defaults."""
    parser = argparse.ArgumentParser(
        description="Open Oracle Poster: post fresh signed observations on-chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Known networks:
  {', '.join(NETWORKS)}

Examples:
  # Post prices from one attestor endpoint every minute
  python -m poster.main --sources https://prices.example.com/oracle \\
      --view-address 0x... --data-address 0x... --attestors 0x...

  # Single cycle with verbose logging
  python -m poster.main --sources https://prices.example.com/oracle \\
      --view-address 0x... --data-address 0x... --attestors 0x... --once -v

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, VIEW_ADDRESS, DATA_ADDRESS, SOURCES, ATTESTORS, KEYS,
  GAS, GAS_PRICE, POLL_PERIOD, MAX_AGE, WAIT_TIMEOUT, TIMEOUT_RETRIES,
  POSTER_KEY (signing key for the sender account)
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="Network name or RPC URL (default: localnet)",
        default=os.environ.get("NETWORK") or "localnet",
    )
    parser.add_argument(
        "--rpc-url",
        dest="rpc_url",
        type=str,
        help="RPC URL overriding the network default",
        default=os.environ.get("RPC_URL"),
    )
    parser.add_argument(
        "--view-address",
        dest="view_address",
        type=str,
        help="Address of the oracle view contract receiving posts",
        default=os.environ.get("VIEW_ADDRESS"),
    )
    parser.add_argument(
        "--data-address",
        dest="data_address",
        type=str,
        help="Address of the oracle data contract holding records",
        default=os.environ.get("DATA_ADDRESS"),
    )
    parser.add_argument(
        "--view-abi",
        dest="view_abi",
        type=str,
        help="Path to a JSON ABI for the view contract (default: bundled)",
        default=os.environ.get("VIEW_ABI"),
    )
    parser.add_argument(
        "--data-abi",
        dest="data_abi",
        type=str,
        help="Path to a JSON ABI for the data contract (default: bundled)",
        default=os.environ.get("DATA_ABI"),
    )
    parser.add_argument(
        "--sources",
        type=str,
        help="Comma-separated payload source URLs",
        default=os.environ.get("SOURCES"),
    )
    parser.add_argument(
        "--attestors",
        type=str,
        help="Comma-separated trusted attestor addresses (required)",
        default=os.environ.get("ATTESTORS"),
    )
    parser.add_argument(
        "--keys",
        type=str,
        help="Comma-separated keys to aggregate at startup (e.g., BTC,ETH)",
        default=os.environ.get("KEYS"),
    )
    parser.add_argument(
        "--write-method",
        dest="write_method",
        type=str,
        help="View method receiving the batch (default: postPrices)",
        default=os.environ.get("WRITE_METHOD") or "postPrices",
    )
    parser.add_argument(
        "--arg-shape",
        dest="arg_shape",
        choices=ARG_SHAPES,
        help="Argument shape of the write method (default: messages_signatures_keys)",
        default=os.environ.get("ARG_SHAPE") or "messages_signatures_keys",
    )
    parser.add_argument(
        "--value-type",
        dest="value_type",
        choices=("uint64", "string"),
        help="ABI type of observation values (default: uint64)",
        default=os.environ.get("VALUE_TYPE") or "uint64",
    )
    parser.add_argument(
        "--gas",
        type=int,
        help="Gas limit per post (default: 500000)",
        default=int(os.environ.get("GAS") or "500000"),
    )
    parser.add_argument(
        "--gas-price",
        dest="gas_price",
        type=int,
        help="Gas price in wei (default: node's current gas price)",
        default=int(os.environ["GAS_PRICE"]) if os.environ.get("GAS_PRICE") else None,
    )
    parser.add_argument(
        "--max-age",
        dest="max_age",
        type=float,
        help="Ignore records older than this in aggregation, seconds (default: 3600)",
        default=float(os.environ.get("MAX_AGE") or "3600"),
    )
    parser.add_argument(
        "--max-deviation",
        dest="max_deviation",
        type=float,
        help="Drop records deviating more than this percent from the median (0 disables)",
        default=float(os.environ.get("MAX_DEVIATION_PERCENT") or "0"),
    )
    parser.add_argument(
        "--min-records",
        dest="min_records",
        type=int,
        help="Minimum records required for an aggregate (default: 1)",
        default=int(os.environ.get("MIN_RECORDS") or "1"),
    )
    parser.add_argument(
        "--poll-period",
        dest="poll_period",
        type=float,
        help="Seconds between polls (minimum: 1, default: 60)",
        default=float(os.environ.get("POLL_PERIOD") or "60"),
    )
    parser.add_argument(
        "--wait-timeout",
        dest="wait_timeout",
        type=float,
        help="Seconds to wait for a transaction receipt (default: 120)",
        default=float(os.environ.get("WAIT_TIMEOUT") or "120"),
    )
    parser.add_argument(
        "--timeout-retries",
        dest="timeout_retries",
        type=int,
        help="Resubmissions with bumped gas price after a timeout (default: 0)",
        default=int(os.environ.get("TIMEOUT_RETRIES") or "0"),
    )
    parser.add_argument(
        "--serialize-keys",
        dest="serialize_keys",
        action="store_true",
        help="Hold a per-key lock while a submission is pending",
        default=bool(os.environ.get("SERIALIZE_KEYS")),
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single poll cycle and exit",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def main() -> None:
    """Main entry point for the Open Oracle Poster CLI."""
    parser = build_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    sources = parse_list(args.sources)
    if not sources:
        parser.error("At least one payload source must be specified")
    if not args.view_address or not args.data_address:
        parser.error("--view-address and --data-address are required")
    attestors = parse_list(args.attestors)
    if not attestors:
        parser.error("At least one trusted attestor must be specified")

    contract_utility = ContractUtility(
        args.network, rpc_url=args.rpc_url, private_key=os.environ.get("POSTER_KEY")
    )
    sender = contract_utility.default_sender()
    if not sender:
        parser.error("No sender account: set POSTER_KEY or use a node with an unlocked account")

    try:
        config = PosterConfig(
            view_address=args.view_address,
            data_address=args.data_address,
            attestors=attestors,
            keys=parse_list(args.keys),
            sources=sources,
            write_method=args.write_method,
            arg_shape=args.arg_shape,
            value_type=args.value_type,
            max_age_seconds=args.max_age,
            max_deviation_percent=args.max_deviation if args.max_deviation > 0 else None,
            min_records=args.min_records,
            wait_timeout=args.wait_timeout,
            timeout_retries=args.timeout_retries,
            poll_period=args.poll_period,
            serialize_keys=args.serialize_keys,
        )
        tx_options = TxOptions(sender=sender, gas=args.gas, gas_price=args.gas_price)
    except ConfigError as e:
        parser.error(str(e))

    logger.info("=" * 60)
    logger.info("Open Oracle Poster")
    logger.info("=" * 60)
    logger.info(f"Network:           {contract_utility.network}")
    logger.info(f"View:              {config.view_address}")
    logger.info(f"Data:              {config.data_address}")
    logger.info(f"Write Method:      {config.write_method} ({config.arg_shape})")
    logger.info(f"Sender:            {tx_options.sender}")
    logger.info(f"Sources:           {', '.join(config.sources)}")
    logger.info(f"Attestors:         {', '.join(config.attestors)}")
    logger.info(f"Max Age:           {config.max_age_seconds}s")
    logger.info(f"Poll Period:       {config.poll_period}s")
    logger.info("=" * 60)

    try:
        poster = OraclePoster.from_config(
            config,
            contract_utility,
            tx_options,
            view_abi_path=args.view_abi,
            data_abi_path=args.data_abi,
        )
        if args.once:
            asyncio.run(_run_once(poster))
        else:
            asyncio.run(poster.run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)


async def _run_once(poster: OraclePoster) -> None:
    try:
        result = await poster.run_once()
    finally:
        if poster.payload_source is not None:
            await poster.payload_source.close()
    if result is not None and not result.success:
        raise result.error


if __name__ == "__main__":
    main()
