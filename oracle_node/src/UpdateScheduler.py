"""UpdateScheduler: Periodic fetch, aggregate and report cycles.

Each cycle walks the configured assets in order, one at a time:

    fetch (all sources concurrently) -> aggregate -> encode -> report

with a short pause between assets to respect upstream rate limits. A
failure on one asset is logged and the cycle moves on. After the last
asset the scheduler waits ``update_interval`` seconds, measured from the
end of the cycle, so a slow cycle shifts the schedule instead of
overlapping the next one.

``stop()`` cancels a pending wait immediately. A cycle in flight is
drained: every remaining asset is still processed, without the pauses
between them, and no further cycle is started.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .fixed_point import to_encoded_price

if TYPE_CHECKING:
    from .config import AssetConfig
    from .LedgerReporter import LedgerReporter
    from .PriceAggregator import PriceAggregator

logger = logging.getLogger(__name__)


@dataclass
class CycleSummary:
    """Outcome of one update cycle.

    :ivar cycle: Cycle number, starting at 1.
    :ivar reported: Assets whose price was reported.
    :ivar skipped: Assets with no price this cycle.
    :ivar failed: Assets whose processing or reporting raised.
    """

    cycle: int
    reported: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class UpdateScheduler:
    """Drives update cycles over all configured assets.

    :ivar assets: Assets in processing order.
    :ivar aggregator: Aggregator used for every asset.
    :ivar reporter: Ledger reporter receiving encoded prices.
    :ivar update_interval: Seconds between the end of a cycle and the next.
    :ivar asset_delay: Seconds to pause after each asset.
    :ivar cycles: Number of completed cycles.
    """

    def __init__(
        self,
        assets: list[AssetConfig],
        aggregator: PriceAggregator,
        reporter: LedgerReporter,
        update_interval: float = 60.0,
        asset_delay: float = 1.0,
    ) -> None:
        """Initialize the scheduler.

        :param assets: Assets to process every cycle.
        :param aggregator: Aggregator fetching and reducing prices.
        :param reporter: Ledger reporter.
        :param update_interval: Seconds to wait after each cycle (default: 60).
        :param asset_delay: Pause between assets in seconds (default: 1).
        """
        self.assets = list(assets)
        self.aggregator = aggregator
        self.reporter = reporter
        self.update_interval = update_interval
        self.asset_delay = asset_delay
        self.cycles = 0
        self._stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request shutdown. Safe to call more than once."""
        if not self._stop_event.is_set():
            logger.info("Stop requested, finishing current work")
        self._stop_event.set()

    async def _wait(self, seconds: float) -> bool:
        """Wait up to ``seconds`` or until stop is requested.

        :returns: True if stop was requested.
        """
        if seconds <= 0:
            return self._stop_event.is_set()
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def process_asset(self, asset: AssetConfig) -> bool:
        """Fetch, aggregate, encode and report one asset.

        :param asset: Asset to process.
        :returns: True if a price was reported, False if no price was
            available.
        :raises Exception: If encoding or reporting fails.
        """
        aggregated = await self.aggregator.fetch_price(asset)
        if aggregated is None:
            logger.warning(f"Failed to fetch price for {asset.symbol}")
            return False

        encoded = to_encoded_price(aggregated, asset.decimals)
        await self.reporter.report_price(
            encoded.asset_id, encoded.multiplier, encoded.decimals
        )
        logger.info(
            f"Price reported for {asset.id}: ${aggregated.price:.{asset.decimals}f} "
            f"({encoded.multiplier} / 10^{encoded.decimals}, "
            f"{aggregated.sources} sources)"
        )
        return True

    async def run_cycle(self) -> CycleSummary:
        """Run one pass over all assets.

        :returns: CycleSummary of the pass.
        """
        summary = CycleSummary(cycle=self.cycles + 1)
        logger.info(f"Update cycle {summary.cycle}: updating prices...")

        for index, asset in enumerate(self.assets):
            try:
                if await self.process_asset(asset):
                    summary.reported.append(asset.id)
                else:
                    summary.skipped.append(asset.id)
            except Exception as e:
                logger.error(f"Error processing {asset.symbol}: {e}")
                summary.failed.append(asset.id)

            # Once stopping, the rest of the cycle runs without pauses
            if index < len(self.assets) - 1 and not self.stopping:
                await self._wait(self.asset_delay)

        self.cycles += 1
        logger.info(
            f"Price update cycle {summary.cycle} completed: "
            f"reported={summary.reported}, skipped={summary.skipped}, "
            f"failed={summary.failed}"
        )
        return summary

    async def run(self, max_cycles: int | None = None) -> None:
        """Run cycles until stopped.

        :param max_cycles: Optional number of cycles after which to return.
        """
        logger.info(
            f"Starting update loop for {len(self.assets)} assets "
            f"every {self.update_interval}s"
        )

        while not self.stopping:
            await self.run_cycle()

            if max_cycles is not None and self.cycles >= max_cycles:
                break
            if await self._wait(self.update_interval):
                break

        logger.info(f"Update loop stopped after {self.cycles} cycles")
