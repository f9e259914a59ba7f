"""LedgerReporterDryRun: Ledger reporter for local development."""

from __future__ import annotations

import logging
import time
from typing import Any

from .fixed_point import decode_price
from .LedgerReporter import Attestation, LedgerReporter

logger = logging.getLogger(__name__)


class LedgerReporterDryRun(LedgerReporter):
    """Ledger reporter that logs calls instead of submitting them.

    Keeps the last report per asset so ``get_price`` mirrors the contract.

    :ivar authorized: Whether ``is_authorized`` reports the node as registered.
    :ivar reports: Every (asset_id, multiplier, decimals) reported, in order.
    :ivar registrations: Every (code_hash, attestation) registered.
    """

    def __init__(self, authorized: bool = False) -> None:
        """Initialize the dry-run reporter.

        :param authorized: Initial registration state.
        """
        self.authorized = authorized
        self.reports: list[tuple[str, int, int]] = []
        self.registrations: list[tuple[str, Attestation]] = []
        self._latest: dict[str, dict[str, Any]] = {}

    async def report_price(self, asset_id: str, multiplier: int, decimals: int) -> Any:
        self.reports.append((asset_id, multiplier, decimals))
        self._latest[asset_id] = {
            "asset_id": asset_id,
            "price": {
                "multiplier": multiplier,
                "decimals": decimals,
                "timestamp": time.time_ns(),
            },
        }
        logger.info(
            f"[dry-run] report_price {asset_id}: "
            f"{decode_price(multiplier, decimals):.{decimals}f} "
            f"({multiplier} / 10^{decimals})"
        )
        return {"dry_run": True}

    async def register_node(self, code_hash: str, attestation: Attestation) -> Any:
        self.registrations.append((code_hash, attestation))
        self.authorized = True
        logger.info(
            f"[dry-run] register_node code_hash={code_hash} "
            f"attestation={attestation.to_args()}"
        )
        return {"dry_run": True}

    async def is_authorized(self, account_id: str) -> bool:
        return self.authorized

    async def get_price(self, asset_id: str) -> dict[str, Any] | None:
        return self._latest.get(asset_id)
