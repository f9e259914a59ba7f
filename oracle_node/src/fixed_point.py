"""Fixed-point encoding of prices for on-chain storage.

The oracle contract stores a price as ``multiplier / 10**decimals``.
Encoding truncates (floor), it does not round.

.. code-block:: python

    >>> encode_price(3.14159, 4)
    31415
    >>> decode_price(31415, 4)
    3.1415
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .PriceAggregator import AggregatedPrice


@dataclass(frozen=True)
class EncodedPrice:
    """Wire-ready price for the ledger.

    :ivar asset_id: Asset identifier as registered in the contract.
    :ivar multiplier: Integer mantissa.
    :ivar decimals: Decimal precision of the mantissa.
    """

    asset_id: str
    multiplier: int
    decimals: int


def encode_price(price: float, decimals: int) -> int:
    """Convert a float price to an integer mantissa.

    :param price: Price as float (expected positive).
    :param decimals: Number of decimal places to keep.
    :returns: ``floor(price * 10**decimals)``.
    :raises ValueError: If decimals is negative or price is not finite.
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    if not math.isfinite(price):
        raise ValueError(f"Cannot encode non-finite price {price}")
    return math.floor(price * 10**decimals)


def decode_price(multiplier: int, decimals: int) -> float:
    """Convert an integer mantissa back to a float price."""
    return multiplier / 10**decimals


def to_encoded_price(aggregated: AggregatedPrice, decimals: int) -> EncodedPrice:
    """Encode an aggregated price at the asset's precision.

    :param aggregated: Result of one aggregation pass.
    :param decimals: Asset decimal precision.
    :returns: EncodedPrice ready for reporting.
    """
    return EncodedPrice(
        asset_id=aggregated.asset_id,
        multiplier=encode_price(aggregated.price, decimals),
        decimals=decimals,
    )
