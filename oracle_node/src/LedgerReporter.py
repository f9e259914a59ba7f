"""LedgerReporter: Abstract interface to the on-chain oracle contract."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


class LedgerError(Exception):
    """Raised when a ledger call fails."""

    pass


@dataclass(frozen=True)
class Attestation:
    """TEE attestation submitted once at registration.

    :ivar mr_enclave: Enclave measurement.
    :ivar issued_at: Issue time in nanoseconds since the epoch.
    """

    mr_enclave: str
    issued_at: int

    @classmethod
    def from_millis(cls, mr_enclave: str, issued_at_ms: int | None = None) -> Attestation:
        """Build an attestation from a millisecond timestamp.

        :param mr_enclave: Enclave measurement.
        :param issued_at_ms: Issue time in milliseconds; now if None.
            Negative values are clamped to zero.
        :returns: Attestation with ``issued_at`` in nanoseconds.
        """
        if issued_at_ms is None:
            issued_at_ms = int(time.time() * 1000)
        return cls(mr_enclave=mr_enclave, issued_at=max(0, issued_at_ms) * 1_000_000)

    def to_args(self) -> dict[str, Any]:
        return {"mr_enclave": self.mr_enclave, "issued_at": self.issued_at}


class LedgerReporter(ABC):
    """Abstract base class for ledger reporter implementations.

    Provides the interface for node registration and price reporting
    against the oracle contract.
    """

    @abstractmethod
    async def report_price(self, asset_id: str, multiplier: int, decimals: int) -> Any:
        """Report a fixed-point price for an asset.

        :param asset_id: Asset identifier.
        :param multiplier: Price mantissa.
        :param decimals: Decimal precision of the mantissa.
        :returns: Call result.
        :raises LedgerError: If the call fails.
        """
        pass

    @abstractmethod
    async def register_node(self, code_hash: str, attestation: Attestation) -> Any:
        """Register this node with the oracle contract.

        :param code_hash: Hash of the node's code.
        :param attestation: TEE attestation data.
        :returns: Call result.
        :raises LedgerError: If the call fails.
        """
        pass

    @abstractmethod
    async def is_authorized(self, account_id: str) -> bool:
        """Check whether an account is an authorized reporting node.

        :param account_id: Account to check.
        :returns: True if authorized.
        """
        pass

    async def get_price(self, asset_id: str) -> dict[str, Any] | None:
        """Read the current on-chain price of an asset, if available."""
        return None

    async def close(self) -> None:
        """Release any held resources."""
        pass
