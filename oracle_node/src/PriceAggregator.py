"""PriceAggregator: Median aggregation of per-source readings.

Algorithm:
    1. Query every source of the asset concurrently, each bounded by its
       own deadline
    2. Filter out None, zero, negative and non-finite readings
    3. Fail if no reading is left (or fewer than ``min_sources``)
    4. Return the median of the remaining readings

There is no outlier filtering and no carry-forward of stale prices: an
asset with no valid reading simply produces no price for this cycle.

.. code-block:: python

    >>> result = aggregate_readings({"coinbase": 100.0, "kraken": 101.0, "okx": None})
    >>> result.success
    True
    >>> result.price
    100.5
    >>> result.metadata["count"]
    2
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from statistics import median as _median
from typing import TYPE_CHECKING, Iterable, TypedDict

if TYPE_CHECKING:
    from .config import AssetConfig
    from .SourceFetcher import SourceFetcher

logger = logging.getLogger(__name__)


class AggregationError(TypedDict, total=False):
    """Error information when aggregation fails.

    :ivar error: Error type identifier.
    :ivar available: Number of valid sources available.
    :ivar required: Number of valid sources required.
    """

    error: str
    available: int
    required: int


class AggregationMetadata(TypedDict, total=False):
    """Metadata about a successful aggregation.

    :ivar sources: List of sources used in the median.
    :ivar failed: List of sources without a valid reading.
    :ivar count: Number of sources used.
    """

    sources: list[str]
    failed: list[str]
    count: int


@dataclass
class AggregationResult:
    """Result of reducing a set of readings.

    :ivar price: Median price, or None if aggregation failed.
    :ivar metadata: Additional information about the aggregation.
    """

    price: float | None
    metadata: AggregationMetadata | AggregationError

    @property
    def success(self) -> bool:
        """Check if aggregation was successful."""
        return self.price is not None

    @property
    def error(self) -> str | None:
        """Get error type if aggregation failed."""
        if self.price is None:
            return self.metadata.get("error")
        return None


@dataclass
class AggregatedPrice:
    """Consensus price of one asset for one cycle.

    :ivar asset_id: Asset identifier.
    :ivar price: Median price.
    :ivar sources: Number of sources that contributed.
    :ivar timestamp: Computation time in milliseconds since the epoch.
    :ivar source_names: Names of the contributing sources.
    """

    asset_id: str
    price: float
    sources: int
    timestamp: int
    source_names: tuple[str, ...] = field(default_factory=tuple)


def is_valid_price(value: object) -> bool:
    """Check that a reading is a finite number strictly greater than zero."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value) and value > 0
    except OverflowError:
        return False


def calculate_median(values: Iterable[float]) -> float:
    """Calculate the median of a list of values.

    Returns 0.0 for an empty input. Callers must treat "no input" as a
    failure before getting here; the zero is never reported.

    .. code-block:: python

        >>> calculate_median([1, 3, 2, 10, 5])
        3
        >>> calculate_median([4, 1, 3, 2])
        2.5
    """
    values = list(values)
    if not values:
        return 0.0
    return _median(values)


def aggregate_readings(
    readings: dict[str, float | None],
    min_sources: int = 1,
) -> AggregationResult:
    """Reduce per-source readings into a single median price.

    :param readings: Dict mapping source name to price (or None if the
        fetch failed).
    :param min_sources: Minimum valid readings required (default: 1).
    :returns: AggregationResult with price and metadata, or None price with
        error info.
    """
    if min_sources < 1:
        raise ValueError("min_sources must be at least 1")

    valid: dict[str, float] = {
        source: float(price)
        for source, price in readings.items()
        if is_valid_price(price)
    }

    if not valid:
        return AggregationResult(
            price=None,
            metadata={"error": "no_sources", "available": 0, "required": min_sources},
        )

    if len(valid) < min_sources:
        return AggregationResult(
            price=None,
            metadata={
                "error": "insufficient_sources",
                "available": len(valid),
                "required": min_sources,
            },
        )

    return AggregationResult(
        price=calculate_median(valid.values()),
        metadata={
            "sources": list(valid.keys()),
            "failed": [s for s in readings if s not in valid],
            "count": len(valid),
        },
    )


class PriceAggregator:
    """Fetches all sources of an asset and reduces them to a median.

    Sources of one asset are queried concurrently; each fetch is bounded by
    the fetcher's own deadline, so one slow source delays the result by at
    most one timeout and never cancels the others.

    :ivar fetcher: SourceFetcher used for every source.
    """

    def __init__(self, fetcher: SourceFetcher) -> None:
        """Initialize the aggregator.

        :param fetcher: Fetcher shared by all assets.
        """
        self.fetcher = fetcher

    async def fetch_readings(self, asset: AssetConfig) -> dict[str, float | None]:
        """Query every source of an asset concurrently.

        :param asset: Asset to fetch.
        :returns: Dict mapping source name to price or None, in
            configuration order.
        """
        results = await asyncio.gather(
            *(self.fetcher.fetch(source) for source in asset.sources),
            return_exceptions=True,
        )

        readings: dict[str, float | None] = {}
        for source, result in zip(asset.sources, results, strict=True):
            if isinstance(result, BaseException):
                # fetch() already handles Exception; anything else is a bug
                logger.warning(f"[{source.name}] Fetch raised {result!r}")
                readings[source.name] = None
            else:
                readings[source.name] = result
        return readings

    async def fetch_price(self, asset: AssetConfig) -> AggregatedPrice | None:
        """Fetch and aggregate the price of one asset.

        :param asset: Asset to aggregate.
        :returns: AggregatedPrice, or None if no source produced a valid
            reading (the caller must skip reporting).
        """
        readings = await self.fetch_readings(asset)
        result = aggregate_readings(readings, min_sources=asset.min_sources)

        if not result.success:
            logger.error(
                f"No price for {asset.symbol} ({result.error}): {result.metadata}"
            )
            return None

        assert result.price is not None
        meta = result.metadata
        sources_used = meta.get("sources", [])

        breakdown = ", ".join(f"{s}=${readings[s]:.6f}" for s in sources_used)
        log_msg = f"{asset.symbol}: ${result.price:.6f} (median of [{breakdown}]"
        if meta.get("failed"):
            log_msg += f", failed: {meta['failed']}"
        log_msg += ")"
        logger.info(log_msg)

        return AggregatedPrice(
            asset_id=asset.id,
            price=result.price,
            sources=len(sources_used),
            timestamp=int(time.time() * 1000),
            source_names=tuple(sources_used),
        )
