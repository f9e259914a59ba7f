"""
TEE Price Oracle Node - Aggregation Pipeline

This module provides the price acquisition and reporting pipeline:
- path_extractor: Numeric value extraction from JSON via dotted paths
- SourceFetcher: Deadline-bounded HTTP fetching of configured sources
- SourceManager: Per-source consecutive failure tally
- PriceAggregator: Concurrent per-asset fetching and median reduction
- fixed_point: Fixed-point encoding for on-chain prices
- UpdateScheduler: Periodic, sequential per-asset update cycles
- LedgerReporter: Interface to the on-chain oracle contract
- OracleNode: Main orchestrator (registration, then update loop)
"""

from .config import AssetConfig, ConfigError, SourceConfig, load_assets
from .fixed_point import EncodedPrice, decode_price, encode_price
from .LedgerReporter import Attestation, LedgerError, LedgerReporter
from .OracleNode import OracleNode
from .path_extractor import extract_price_from_path
from .PriceAggregator import (
    AggregatedPrice,
    AggregationResult,
    PriceAggregator,
    aggregate_readings,
    calculate_median,
)
from .SourceFetcher import SourceFetcher
from .SourceManager import SourceManager, SourceStatus
from .UpdateScheduler import CycleSummary, UpdateScheduler

__all__ = [
    "AggregatedPrice",
    "AggregationResult",
    "AssetConfig",
    "Attestation",
    "ConfigError",
    "CycleSummary",
    "EncodedPrice",
    "LedgerError",
    "LedgerReporter",
    "OracleNode",
    "PriceAggregator",
    "SourceConfig",
    "SourceFetcher",
    "SourceManager",
    "SourceStatus",
    "UpdateScheduler",
    "aggregate_readings",
    "calculate_median",
    "decode_price",
    "encode_price",
    "extract_price_from_path",
    "load_assets",
]
