"""OracleNode: Main orchestrator for the TEE price oracle node.

Architecture:
    - One SourceManager tallies failures for every source name
    - One SourceFetcher (shared HTTP client) serves every source
    - PriceAggregator fetches all sources of an asset concurrently and
      takes the median of the valid readings
    - UpdateScheduler processes assets one after another every
      update_interval seconds and reports fixed-point prices on-chain
    - At startup the node checks it is authorized on the oracle contract
      and registers itself with its attestation if not
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .LedgerReporter import Attestation, LedgerError
from .PriceAggregator import PriceAggregator
from .SourceFetcher import SourceFetcher
from .SourceManager import SourceManager
from .UpdateScheduler import UpdateScheduler

if TYPE_CHECKING:
    from .config import AssetConfig
    from .LedgerReporter import LedgerReporter

logger = logging.getLogger(__name__)


class OracleNode:
    """Oracle node: registration, then periodic price reporting.

    :ivar assets: Assets reported by this node.
    :ivar reporter: Ledger reporter.
    :ivar node_account_id: Account this node reports from.
    :ivar code_hash: Code hash submitted at registration.
    :ivar attestation: Attestation submitted at registration.
    :ivar source_manager: Process-wide failure tally.
    :ivar scheduler: Update scheduler.
    """

    def __init__(
        self,
        assets: list[AssetConfig],
        reporter: LedgerReporter,
        node_account_id: str,
        code_hash: str,
        attestation: Attestation,
        update_interval: float = 60.0,
        asset_delay: float = 1.0,
        fetch_timeout: float = SourceFetcher.DEFAULT_TIMEOUT,
        fetcher: SourceFetcher | None = None,
    ) -> None:
        """Initialize the oracle node.

        :param assets: Assets to report, in processing order.
        :param reporter: Ledger reporter.
        :param node_account_id: Account this node reports from.
        :param code_hash: Code hash for registration.
        :param attestation: Attestation for registration.
        :param update_interval: Seconds between cycles (default: 60).
        :param asset_delay: Pause between assets in seconds (default: 1).
        :param fetch_timeout: Per-source fetch deadline (default: 5).
        :param fetcher: Optional pre-built fetcher.
        :raises ValueError: If no assets are given.
        """
        if not assets:
            raise ValueError("At least one asset must be configured")

        self.assets = list(assets)
        self.reporter = reporter
        self.node_account_id = node_account_id
        self.code_hash = code_hash
        self.attestation = attestation

        if fetcher is None:
            source_names = [n for a in self.assets for n in a.source_names]
            fetcher = SourceFetcher(
                SourceManager(list(dict.fromkeys(source_names))),
                timeout=fetch_timeout,
            )
        self.fetcher = fetcher
        self.source_manager = fetcher.source_manager

        self.scheduler = UpdateScheduler(
            assets=self.assets,
            aggregator=PriceAggregator(fetcher),
            reporter=reporter,
            update_interval=update_interval,
            asset_delay=asset_delay,
        )

        logger.info(
            f"OracleNode initialized: assets={[a.symbol for a in self.assets]}, "
            f"sources={self.source_manager.sources}, "
            f"update_interval={update_interval}s, fetch_timeout={fetcher.timeout}s"
        )

    async def ensure_registered(self) -> None:
        """Register the node with the oracle contract if needed.

        :raises RuntimeError: If registration fails.
        """
        if await self.reporter.is_authorized(self.node_account_id):
            logger.info("Node is already registered")
            return

        logger.info("Node not registered. Attempting registration...")
        try:
            result = await self.reporter.register_node(self.code_hash, self.attestation)
        except LedgerError as e:
            logger.error(f"Failed to register node: {e}")
            raise RuntimeError(f"Node registration failed: {e}") from e
        logger.info(f"Node registered successfully: {result}")

    async def log_onchain_prices(self) -> None:
        """Log the current on-chain price of every asset."""
        for asset in self.assets:
            data = await self.reporter.get_price(asset.id)
            if data:
                logger.info(f"{asset.symbol}: on-chain price {data.get('price')}")
            else:
                logger.info(f"{asset.symbol}: no fresh on-chain price")

    def log_source_health(self) -> None:
        """Log a per-source summary, warning about persistently failing sources."""
        status = self.source_manager.get_all_status()
        for source, st in status.items():
            logger.info(
                f"Source {source}: {st.total_successes} ok, "
                f"{st.total_failures} failed, "
                f"{st.consecutive_failures} consecutive failures"
            )
        for source in self.source_manager.get_failing_sources():
            logger.warning(
                f"Source {source} still failing "
                f"({status[source].consecutive_failures} in a row): "
                f"{status[source].last_error}"
            )

    def stop(self) -> None:
        """Request a graceful shutdown."""
        self.scheduler.stop()

    async def run(self, max_cycles: int | None = None) -> None:
        """Run the oracle node.

        Registers if needed, then runs update cycles until stopped.

        :param max_cycles: Optional number of cycles after which to return.
        """
        try:
            await self.ensure_registered()
            await self.log_onchain_prices()
            await self.scheduler.run(max_cycles=max_cycles)
        finally:
            self.log_source_health()
            await SourceFetcher.close_shared_client()
            await self.reporter.close()
