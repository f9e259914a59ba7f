"""Unit tests for PriceAggregator."""

import asyncio
import time

import httpx
import pytest

from oracle_node.src.config import AssetConfig, SourceConfig
from oracle_node.src.PriceAggregator import (
    AggregationResult,
    PriceAggregator,
    aggregate_readings,
    calculate_median,
    is_valid_price,
)
from oracle_node.src.SourceFetcher import SourceFetcher
from oracle_node.src.SourceManager import SourceManager


def make_asset(*names: str, min_sources: int = 1) -> AssetConfig:
    return AssetConfig(
        id="near",
        symbol="NEAR",
        decimals=4,
        sources=tuple(
            SourceConfig(n, f"https://{n}.example/price", "price") for n in names
        ),
        min_sources=min_sources,
    )


class StubFetcher:
    """Fetcher returning canned prices, optionally raising."""

    def __init__(self, prices: dict[str, object]) -> None:
        self.prices = prices
        self.calls: list[str] = []

    async def fetch(self, source: SourceConfig) -> float | None:
        self.calls.append(source.name)
        value = self.prices.get(source.name)
        if isinstance(value, BaseException):
            raise value
        return value


class TestCalculateMedian:
    """Test calculate_median()."""

    def test_odd_length(self) -> None:
        """Odd-length input gives the sorted middle element."""
        assert calculate_median([1, 3, 2, 10, 5]) == 3

    def test_even_length(self) -> None:
        """Even-length input gives the mean of the two middles."""
        assert calculate_median([4, 1, 3, 2]) == 2.5

    def test_empty(self) -> None:
        """Empty input gives the zero sentinel."""
        assert calculate_median([]) == 0

    def test_single(self) -> None:
        assert calculate_median([7.5]) == 7.5

    def test_order_independent(self) -> None:
        assert calculate_median([3.0, 1.0, 2.0]) == calculate_median([1.0, 2.0, 3.0])

    def test_does_not_mutate_input(self) -> None:
        values = [3.0, 1.0, 2.0]
        calculate_median(values)
        assert values == [3.0, 1.0, 2.0]


class TestAggregateReadings:
    """Test aggregate_readings() reduction."""

    def test_simple_median_odd(self) -> None:
        result = aggregate_readings({"a": 100.0, "b": 101.0, "c": 102.0})

        assert result.success
        assert result.price == 101.0
        assert result.metadata["count"] == 3

    def test_simple_median_even(self) -> None:
        result = aggregate_readings({"a": 100.0, "b": 101.0})

        assert result.success
        assert result.price == 100.5
        assert result.metadata["count"] == 2

    def test_single_source_is_enough(self) -> None:
        """No quorum is enforced by default."""
        result = aggregate_readings({"a": 100.0, "b": None})

        assert result.success
        assert result.price == 100.0
        assert result.metadata["sources"] == ["a"]
        assert result.metadata["failed"] == ["b"]

    def test_invalid_readings_excluded(self) -> None:
        """None, zero, negative and non-finite readings never reach the median."""
        result = aggregate_readings({
            "valid1": 100.0,
            "valid2": 101.0,
            "none": None,
            "zero": 0.0,
            "negative": -50.0,
            "nan": float("nan"),
            "inf": float("inf"),
        })

        assert result.success
        assert result.price == 100.5
        assert result.metadata["sources"] == ["valid1", "valid2"]

    def test_empty_readings(self) -> None:
        """No readings should fail, never report zero."""
        result = aggregate_readings({})

        assert not result.success
        assert result.price is None
        assert result.error == "no_sources"

    def test_huge_integer_reading_excluded(self) -> None:
        """Integers beyond the float range are invalid, not an error."""
        huge = int("9" * 400)
        assert not is_valid_price(huge)

        result = aggregate_readings({"a": 100.0, "huge": huge})
        assert result.price == 100.0
        assert result.metadata["failed"] == ["huge"]

    def test_all_invalid(self) -> None:
        result = aggregate_readings({"a": None, "b": 0.0, "c": -1.0})

        assert not result.success
        assert result.error == "no_sources"
        assert result.metadata["available"] == 0

    def test_min_sources_enforced_when_configured(self) -> None:
        result = aggregate_readings({"a": 100.0, "b": None}, min_sources=2)

        assert not result.success
        assert result.error == "insufficient_sources"
        assert result.metadata["available"] == 1
        assert result.metadata["required"] == 2

    def test_invalid_min_sources(self) -> None:
        with pytest.raises(ValueError, match="min_sources must be at least 1"):
            aggregate_readings({"a": 1.0}, min_sources=0)


class TestAggregationResult:
    """Test AggregationResult properties."""

    def test_success_property(self) -> None:
        """success should be True when price is not None."""
        assert AggregationResult(price=100.0, metadata={"sources": ["a"]}).success
        assert not AggregationResult(price=None, metadata={"error": "x"}).success

    def test_error_property(self) -> None:
        """error should return error string or None."""
        success_result = AggregationResult(price=100.0, metadata={"sources": ["a"]})
        assert success_result.error is None

        error_result = AggregationResult(price=None, metadata={"error": "no_sources"})
        assert error_result.error == "no_sources"


class TestPriceAggregatorFetchPrice:
    """Test PriceAggregator.fetch_price() over an asset's sources."""

    @pytest.mark.asyncio
    async def test_median_of_successful_sources(self) -> None:
        fetcher = StubFetcher({"a": 3.0, "b": 1.0, "c": 2.0})
        aggregated = await PriceAggregator(fetcher).fetch_price(make_asset("a", "b", "c"))

        assert aggregated is not None
        assert aggregated.asset_id == "near"
        assert aggregated.price == 2.0
        assert aggregated.sources == 3
        assert aggregated.timestamp > 0
        assert fetcher.calls == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_single_failing_source_tolerated(self) -> None:
        fetcher = StubFetcher({"a": 10.0, "b": None, "c": 12.0})
        aggregated = await PriceAggregator(fetcher).fetch_price(make_asset("a", "b", "c"))

        assert aggregated is not None
        assert aggregated.price == 11.0
        assert aggregated.sources == 2
        assert aggregated.source_names == ("a", "c")

    @pytest.mark.asyncio
    async def test_raising_fetch_is_a_failed_reading(self) -> None:
        fetcher = StubFetcher({"a": 10.0, "b": RuntimeError("bug")})
        aggregated = await PriceAggregator(fetcher).fetch_price(make_asset("a", "b"))

        assert aggregated is not None
        assert aggregated.price == 10.0
        assert aggregated.sources == 1

    @pytest.mark.asyncio
    async def test_all_sources_failing(self) -> None:
        """All sources failing should give an explicit None, never zero."""
        fetcher = StubFetcher({"a": None, "b": None})
        assert await PriceAggregator(fetcher).fetch_price(make_asset("a", "b")) is None

    @pytest.mark.asyncio
    async def test_asset_min_sources(self) -> None:
        fetcher = StubFetcher({"a": 10.0, "b": None})
        asset = make_asset("a", "b", min_sources=2)
        assert await PriceAggregator(fetcher).fetch_price(asset) is None

    @pytest.mark.asyncio
    async def test_slow_source_bounded_by_its_deadline(self) -> None:
        """Latency is about one timeout, not the sum over sources."""

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host.startswith("slow"):
                await asyncio.sleep(10)
            return httpx.Response(200, json={"price": "100"})

        fetcher = SourceFetcher(
            SourceManager(),
            timeout=0.2,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        asset = make_asset("slow1", "fast1", "slow2", "fast2")

        start = time.monotonic()
        aggregated = await PriceAggregator(fetcher).fetch_price(asset)
        elapsed = time.monotonic() - start

        assert aggregated is not None
        assert aggregated.price == 100.0
        assert aggregated.sources == 2
        assert elapsed < 1.0
        assert fetcher.get_failure_stats() == {
            "slow1": 1,
            "fast1": 0,
            "slow2": 1,
            "fast2": 0,
        }
