#!/usr/bin/env python3
"""TEE Price Oracle Node.

Fetches cryptocurrency prices from multiple public HTTP sources, computes
the median price per asset and reports it to the NEAR oracle contract on a
fixed schedule.

Configure via CLI arguments or environment variables (a ``.env`` file is
loaded if present).
"""

import argparse
import asyncio
import logging
import os
import signal
import sys

from dotenv import load_dotenv

from .src.config import (
    ConfigError,
    load_assets,
    parse_attestation_issued_at_ms,
    parse_update_interval_ms,
    select_assets,
)
from .src.LedgerReporter import Attestation, LedgerReporter
from .src.LedgerReporterDryRun import LedgerReporterDryRun
from .src.LedgerReporterNear import NEAR_RPC_URLS, LedgerReporterNear
from .src.OracleNode import OracleNode

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def env_flag(name: str) -> bool:
    """Interpret an environment variable as a boolean flag."""
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser with environment defaults."""
    parser = argparse.ArgumentParser(
        description="TEE Price Oracle Node: median price feeds for NEAR",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Dry run with the built-in assets, no ledger submission
  python -m oracle_node.main --dry-run

  # Report BTC and ETH every 30s through a local signer daemon
  python -m oracle_node.main --assets bitcoin,ethereum --update-interval 30 \\
      --signer-url http://localhost:8080

Environment variables (CLI args take precedence):
  NEAR_NETWORK, NEAR_NODE_URL, ORACLE_CONTRACT_ID, NODE_ACCOUNT_ID,
  SIGNER_URL, UPDATE_INTERVAL (ms), ASSET_DELAY, FETCH_TIMEOUT, ASSETS_FILE,
  ASSETS, CODE_HASH, TEE_MR_ENCLAVE, ATTESTATION_ISSUED_AT_MS, DRY_RUN
""",
    )

    parser.add_argument(
        "--network",
        type=str,
        help="NEAR network (testnet, mainnet)",
        default=os.environ.get("NEAR_NETWORK") or "testnet",
    )

    parser.add_argument(
        "--node-url",
        dest="node_url",
        type=str,
        help="NEAR JSON-RPC URL (default: public RPC of --network)",
        default=os.environ.get("NEAR_NODE_URL"),
    )

    parser.add_argument(
        "--contract-id",
        dest="contract_id",
        type=str,
        help="Oracle contract account id",
        default=os.environ.get("ORACLE_CONTRACT_ID") or "oracle.testnet",
    )

    parser.add_argument(
        "--account-id",
        dest="account_id",
        type=str,
        help="Account this node reports from",
        default=os.environ.get("NODE_ACCOUNT_ID") or "node1.testnet",
    )

    parser.add_argument(
        "--signer-url",
        dest="signer_url",
        type=str,
        help="Signer daemon URL or Unix socket path (required unless --dry-run)",
        default=os.environ.get("SIGNER_URL"),
    )

    parser.add_argument(
        "--update-interval",
        dest="update_interval",
        type=float,
        help=(
            "Seconds between the end of a cycle and the next "
            "(default: UPDATE_INTERVAL in ms, else 60)"
        ),
        default=None,
    )

    parser.add_argument(
        "--asset-delay",
        dest="asset_delay",
        type=float,
        help="Pause between assets within a cycle in seconds (default: 1.0)",
        default=os.environ.get("ASSET_DELAY") or "1.0",
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Deadline for a single source fetch in seconds (default: 5.0)",
        default=os.environ.get("FETCH_TIMEOUT") or "5.0",
    )

    parser.add_argument(
        "--assets-file",
        dest="assets_file",
        type=str,
        help="JSON file with asset and source definitions (default: built-in)",
        default=os.environ.get("ASSETS_FILE"),
    )

    parser.add_argument(
        "--assets",
        type=str,
        help="Comma-separated asset ids to report (default: all configured)",
        default=os.environ.get("ASSETS") or "",
    )

    parser.add_argument(
        "--code-hash",
        dest="code_hash",
        type=str,
        help="Code hash submitted at registration",
        default=os.environ.get("CODE_HASH") or "dev_hash",
    )

    parser.add_argument(
        "--mr-enclave",
        dest="mr_enclave",
        type=str,
        help="TEE enclave measurement submitted at registration",
        default=os.environ.get("TEE_MR_ENCLAVE", "dev_mr_enclave"),
    )

    parser.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Log reports instead of submitting them",
        default=env_flag("DRY_RUN"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    return parser


def resolve_update_interval(args: argparse.Namespace) -> float:
    """Return the update interval in seconds.

    The CLI flag is in seconds; the UPDATE_INTERVAL environment variable is
    in milliseconds.

    :raises ConfigError: If UPDATE_INTERVAL is malformed.
    """
    if args.update_interval is not None:
        return args.update_interval
    return parse_update_interval_ms(os.environ.get("UPDATE_INTERVAL"))


def build_reporter(args: argparse.Namespace) -> LedgerReporter:
    """Create the ledger reporter selected by the arguments.

    :raises ConfigError: If required settings are missing.
    """
    if args.dry_run:
        return LedgerReporterDryRun()

    if not args.signer_url:
        raise ConfigError("SIGNER_URL is required unless running with --dry-run")

    node_url = args.node_url or NEAR_RPC_URLS.get(args.network)
    if not node_url:
        raise ConfigError(f"No RPC URL configured for network {args.network}")

    return LedgerReporterNear(
        node_url=node_url,
        contract_id=args.contract_id,
        signer_url=args.signer_url,
    )


def main() -> None:
    """Main entry point for the oracle node CLI."""
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        args.update_interval = resolve_update_interval(args)
    except ConfigError as e:
        parser.error(str(e))

    # Validate arguments
    if args.update_interval < 1:
        parser.error("--update-interval must be at least 1 second")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    if args.asset_delay < 0:
        parser.error("--asset-delay must not be negative")

    try:
        if not args.mr_enclave:
            raise ConfigError("TEE_MR_ENCLAVE environment variable is required")

        issued_at_ms = parse_attestation_issued_at_ms(
            os.environ.get("ATTESTATION_ISSUED_AT_MS")
        )
        assets = select_assets(
            load_assets(args.assets_file), args.assets.split(",")
        )
        reporter = build_reporter(args)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    # Log configuration
    logger.info("=" * 60)
    logger.info("TEE Price Oracle Node")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"Oracle Contract:   {args.contract_id}")
    logger.info(f"Node Account:      {args.account_id}")
    logger.info(f"Reporter:          {'dry-run' if args.dry_run else args.signer_url}")
    logger.info(f"Assets:            {', '.join(a.symbol for a in assets)}")
    logger.info(f"Update Interval:   {args.update_interval}s")
    logger.info(f"Asset Delay:       {args.asset_delay}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info("=" * 60)
    for asset in assets:
        for source in asset.sources:
            logger.debug(f"{asset.symbol} <- {source.name}: {source.url} [{source.path}]")

    node = OracleNode(
        assets=assets,
        reporter=reporter,
        node_account_id=args.account_id,
        code_hash=args.code_hash,
        attestation=Attestation.from_millis(args.mr_enclave, issued_at_ms),
        update_interval=args.update_interval,
        asset_delay=args.asset_delay,
        fetch_timeout=args.fetch_timeout,
    )

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, node.stop)
            except NotImplementedError:
                pass  # Windows
        await node.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    logger.info("Oracle node stopped")


if __name__ == "__main__":
    main()
