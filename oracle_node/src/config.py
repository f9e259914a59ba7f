"""Asset and source configuration.

Assets are immutable after load. The built-in defaults track NEAR, BTC,
ETH and USDC from six public endpoints each; an ``ASSETS_FILE`` JSON
document with the same shape replaces them:

.. code-block:: json

    [
      {
        "id": "near",
        "symbol": "NEAR",
        "decimals": 4,
        "min_sources": 1,
        "sources": [
          {"name": "binance", "url": "https://...", "path": "price", "weight": 1.0}
        ]
      }
    ]
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


class ConfigError(ValueError):
    """Raised when node configuration is missing or malformed."""

    pass


@dataclass(frozen=True)
class SourceConfig:
    """One upstream HTTP endpoint quoting a price for one asset.

    :ivar name: Source name, unique within an asset.
    :ivar url: URL fetched with a plain GET.
    :ivar path: Dotted/indexed path to the price inside the JSON body.
    :ivar weight: Reserved for weighted aggregation, unused by the median.
    """

    name: str
    url: str
    path: str
    weight: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceConfig:
        """Build a SourceConfig from a decoded JSON object.

        :raises ConfigError: If a required field is missing or empty.
        """
        try:
            name = str(data["name"]).strip()
            url = str(data["url"]).strip()
            path = str(data["path"]).strip()
            weight = float(data.get("weight", 1.0))
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid source definition {data!r}: {e}") from e

        if not name or not url or not path:
            raise ConfigError(f"Source needs non-empty name, url and path: {data!r}")
        return cls(name=name, url=url, path=path, weight=weight)


@dataclass(frozen=True)
class AssetConfig:
    """An asset tracked by the node.

    :ivar id: Asset identifier used by the oracle contract.
    :ivar symbol: Display symbol (e.g., "BTC").
    :ivar decimals: Fixed-point precision reported on-chain.
    :ivar sources: Sources in configuration order.
    :ivar min_sources: Minimum successful sources before reporting.
        Defaults to 1, i.e. quorum is left to the contract.
    """

    id: str
    symbol: str
    decimals: int
    sources: tuple[SourceConfig, ...] = field(default_factory=tuple)
    min_sources: int = 1

    def __post_init__(self) -> None:
        if self.decimals < 0:
            raise ConfigError(f"{self.symbol}: decimals must be non-negative")
        if self.min_sources < 1:
            raise ConfigError(f"{self.symbol}: min_sources must be at least 1")

        names = [s.name for s in self.sources]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConfigError(f"{self.symbol}: duplicate source names {duplicates}")

    @property
    def source_names(self) -> list[str]:
        return [s.name for s in self.sources]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AssetConfig:
        """Build an AssetConfig from a decoded JSON object.

        :raises ConfigError: If the definition is malformed.
        """
        try:
            asset_id = str(data["id"]).strip()
            symbol = str(data.get("symbol") or asset_id.upper()).strip()
            decimals = int(data["decimals"])
            min_sources = int(data.get("min_sources", 1))
            raw_sources = data.get("sources") or []
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigError(f"Invalid asset definition: {e}") from e

        if not asset_id:
            raise ConfigError("Asset id must not be empty")
        if not isinstance(raw_sources, list) or not raw_sources:
            raise ConfigError(f"{symbol}: at least one source is required")

        return cls(
            id=asset_id,
            symbol=symbol,
            decimals=decimals,
            sources=tuple(SourceConfig.from_dict(s) for s in raw_sources),
            min_sources=min_sources,
        )


def _default_sources(coingecko_id: str, symbol: str) -> tuple[SourceConfig, ...]:
    """Build the six public sources used for the built-in assets."""
    return (
        SourceConfig(
            "coingecko",
            "https://api.coingecko.com/api/v3/simple/price"
            f"?ids={coingecko_id}&vs_currencies=usd",
            f"{coingecko_id}.usd",
        ),
        SourceConfig(
            "binance",
            f"https://api.binance.com/api/v3/ticker/price?symbol={symbol}USDT",
            "price",
        ),
        SourceConfig(
            "coinbase",
            f"https://api.coinbase.com/v2/prices/{symbol}-USD/spot",
            "data.amount",
        ),
        SourceConfig(
            "cryptocompare",
            f"https://min-api.cryptocompare.com/data/price?fsym={symbol}&tsyms=USD",
            "USD",
        ),
        SourceConfig(
            "okx",
            f"https://www.okx.com/api/v5/market/ticker?instId={symbol}-USDT",
            "data.0.last",
        ),
        SourceConfig(
            "kucoin",
            "https://api.kucoin.com/api/v1/market/orderbook/level1"
            f"?symbol={symbol}-USDT",
            "data.price",
        ),
    )


DEFAULT_DECIMALS = 4

DEFAULT_ASSETS: tuple[AssetConfig, ...] = (
    AssetConfig("near", "NEAR", DEFAULT_DECIMALS, _default_sources("near", "NEAR")),
    AssetConfig("bitcoin", "BTC", DEFAULT_DECIMALS, _default_sources("bitcoin", "BTC")),
    AssetConfig(
        "ethereum", "ETH", DEFAULT_DECIMALS, _default_sources("ethereum", "ETH")
    ),
    AssetConfig("usdc", "USDC", DEFAULT_DECIMALS, _default_sources("usd-coin", "USDC")),
)


def parse_assets(data: Any) -> list[AssetConfig]:
    """Parse a decoded JSON list of asset definitions.

    :param data: Decoded JSON (list of objects, or ``{"assets": [...]}``).
    :returns: List of AssetConfig in document order.
    :raises ConfigError: On malformed input or duplicate asset ids.
    """
    if isinstance(data, dict):
        data = data.get("assets")
    if not isinstance(data, list) or not data:
        raise ConfigError("Assets configuration must be a non-empty list")

    assets: list[AssetConfig] = []
    for item in data:
        if not isinstance(item, dict):
            raise ConfigError(f"Asset definition must be an object, got {item!r}")
        assets.append(AssetConfig.from_dict(item))

    ids = [a.id for a in assets]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate asset ids: {duplicates}")
    return assets


def load_assets(path: str | Path | None = None) -> list[AssetConfig]:
    """Load asset definitions from a JSON file, or return the defaults.

    :param path: Optional path to a JSON assets file.
    :returns: List of AssetConfig.
    :raises ConfigError: If the file cannot be read or parsed.
    """
    if not path:
        return list(DEFAULT_ASSETS)

    try:
        with open(path, "r") as file:
            data = json.load(file)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot load assets file {path}: {e}") from e

    return parse_assets(data)


def select_assets(assets: list[AssetConfig], ids: list[str]) -> list[AssetConfig]:
    """Restrict assets to the given ids, keeping configuration order.

    :param assets: All configured assets.
    :param ids: Asset ids (case-insensitive) to keep; empty keeps all.
    :returns: Filtered list of AssetConfig.
    :raises ConfigError: If an id is unknown.
    """
    wanted = [i.strip().lower() for i in ids if i.strip()]
    if not wanted:
        return list(assets)

    known = {a.id.lower() for a in assets}
    unknown = [i for i in wanted if i not in known]
    if unknown:
        raise ConfigError(
            f"Unknown assets: {unknown}. Available: {', '.join(a.id for a in assets)}"
        )
    return [a for a in assets if a.id.lower() in wanted]


def parse_attestation_issued_at_ms(value: str | None) -> int | None:
    """Parse the optional attestation issue time in milliseconds.

    :param value: Raw environment value.
    :returns: Integer milliseconds, or None if unset.
    :raises ConfigError: If set but not an integer.
    """
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as e:
        raise ConfigError(
            "ATTESTATION_ISSUED_AT_MS must be a valid integer (milliseconds)"
        ) from e


DEFAULT_UPDATE_INTERVAL_MS = 60_000


def parse_update_interval_ms(value: str | None) -> float:
    """Parse ``UPDATE_INTERVAL`` (milliseconds) into seconds.

    :param value: Raw environment value; unset means 60000.
    :returns: Interval in seconds.
    :raises ConfigError: If set but not an integer.
    """
    if value is None or not value.strip():
        return DEFAULT_UPDATE_INTERVAL_MS / 1000
    try:
        return int(value.strip()) / 1000
    except ValueError as e:
        raise ConfigError(
            "UPDATE_INTERVAL must be a valid integer (milliseconds)"
        ) from e
