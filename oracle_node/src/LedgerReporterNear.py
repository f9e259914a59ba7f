"""LedgerReporterNear: Ledger reporter for the NEAR oracle contract.

View calls (``is_authorized``, ``get_price``) go straight to a NEAR JSON-RPC
node. Change calls (``report_price``, ``register_node``) need a signed
transaction and are handed to a signer daemon running next to the node,
which holds the account key and pays gas. The signer is reached over HTTP
or a Unix domain socket.
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from typing import Any

import httpx

from .LedgerReporter import Attestation, LedgerError, LedgerReporter

logger = logging.getLogger(__name__)

# Retry configuration for signer requests during startup
MAX_RETRIES = 30
BACKOFF_BASE = 1.0
BACKOFF_MAX = 5.0

# Gas attached to change calls (30 TGas)
DEFAULT_GAS = 30_000_000_000_000

NEAR_RPC_URLS: dict[str, str] = {
    "testnet": "https://rpc.testnet.near.org",
    "mainnet": "https://rpc.mainnet.near.org",
}


class LedgerReporterNear(LedgerReporter):
    """Ledger reporter talking to NEAR RPC and a signer daemon.

    :ivar node_url: NEAR JSON-RPC endpoint.
    :ivar contract_id: Oracle contract account.
    :ivar signer_url: Signer daemon HTTP URL or Unix socket path.
    :ivar gas: Gas attached to change calls.
    """

    FUNCTION_CALL_PATH = "/v1/function-call"

    def __init__(
        self,
        node_url: str,
        contract_id: str,
        signer_url: str,
        gas: int = DEFAULT_GAS,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        signer_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the reporter.

        :param node_url: NEAR JSON-RPC endpoint.
        :param contract_id: Oracle contract account id.
        :param signer_url: Signer daemon URL (``http(s)://...``) or Unix
            socket path.
        :param gas: Gas attached to change calls (default: 30 TGas).
        :param timeout: Request timeout in seconds.
        :param transport: Optional transport for RPC requests.
        :param signer_transport: Optional transport for signer requests.
        """
        self.node_url = node_url
        self.contract_id = contract_id
        self.signer_url = signer_url
        self.gas = gas

        self._rpc = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._signer = httpx.AsyncClient(
            timeout=timeout,
            transport=signer_transport or self._build_signer_transport(),
        )

    def _build_signer_transport(self) -> httpx.AsyncHTTPTransport | None:
        """Build HTTP transport for signer requests."""
        if not self.signer_url.startswith("http"):
            logger.debug("Using signer unix domain socket: %s", self.signer_url)
            return httpx.AsyncHTTPTransport(uds=self.signer_url)
        return None

    @property
    def _signer_base_url(self) -> str:
        if self.signer_url.startswith("http"):
            return self.signer_url.rstrip("/")
        return "http://localhost"

    async def close(self) -> None:
        await self._rpc.aclose()
        await self._signer.aclose()

    async def view(self, method_name: str, args: dict[str, Any]) -> Any:
        """Call a view method on the oracle contract.

        :param method_name: Contract view method.
        :param args: JSON arguments.
        :returns: Decoded JSON result.
        :raises LedgerError: On RPC or contract errors.
        """
        payload = {
            "jsonrpc": "2.0",
            "id": "oracle-node",
            "method": "query",
            "params": {
                "request_type": "call_function",
                "finality": "final",
                "account_id": self.contract_id,
                "method_name": method_name,
                "args_base64": base64.b64encode(
                    json.dumps(args).encode("utf-8")
                ).decode("ascii"),
            },
        }

        try:
            response = await self._rpc.post(self.node_url, json=payload)
        except httpx.RequestError as e:
            raise LedgerError(f"RPC {method_name} request failed: {e}") from e

        if not response.is_success:
            raise LedgerError(
                f"RPC {method_name} failed: {response.status_code} "
                f"{response.reason_phrase}"
            )

        body = response.json()
        if "error" in body:
            raise LedgerError(f"RPC {method_name} error: {body['error']}")

        result = body.get("result") or {}
        if "error" in result:
            raise LedgerError(f"View {method_name} error: {result['error']}")

        raw = bytes(result.get("result") or [])
        if not raw:
            return None
        return json.loads(raw.decode("utf-8"))

    async def _signer_post(
        self, path: str, payload: Any, max_attempts: int = 1
    ) -> httpx.Response:
        """Make a POST request to the signer with optional retry and backoff.

        :param path: API endpoint path.
        :param payload: JSON payload.
        :param max_attempts: Number of attempts before giving up.
        :returns: HTTP response.
        :raises LedgerError: If all attempts fail.
        """
        last_error = ""
        for attempt in range(max_attempts):
            try:
                logger.debug(
                    "POST %s payload=%s (attempt %d)",
                    path,
                    json.dumps(payload),
                    attempt + 1,
                )
                response = await self._signer.post(
                    self._signer_base_url + path, json=payload
                )
                logger.debug(
                    "Response: %s %s", response.status_code, response.reason_phrase
                )
                if response.is_success:
                    return response
                last_error = f"{response.status_code} {response.reason_phrase}"
                logger.warning(
                    "signer POST %s failed: %s (attempt %d/%d)",
                    path,
                    last_error,
                    attempt + 1,
                    max_attempts,
                )
            except httpx.RequestError as exc:
                last_error = str(exc)
                logger.warning(
                    "signer POST %s error: %s (attempt %d/%d)",
                    path,
                    exc,
                    attempt + 1,
                    max_attempts,
                )
            if attempt + 1 < max_attempts:
                delay = min(BACKOFF_BASE * (1.5**attempt), BACKOFF_MAX)
                await asyncio.sleep(delay)

        raise LedgerError(
            f"signer POST {path} failed after {max_attempts} attempts: {last_error}"
        )

    async def function_call(
        self, method_name: str, args: dict[str, Any], max_attempts: int = 1
    ) -> Any:
        """Submit a change call on the oracle contract through the signer.

        :param method_name: Contract change method.
        :param args: JSON arguments.
        :param max_attempts: Signer attempts before giving up.
        :returns: Decoded signer response.
        :raises LedgerError: If the call fails.
        """
        payload = {
            "contract_id": self.contract_id,
            "method_name": method_name,
            "args": args,
            "gas": str(self.gas),
        }
        response = await self._signer_post(
            self.FUNCTION_CALL_PATH, payload, max_attempts=max_attempts
        )
        try:
            result = response.json()
        except ValueError:
            result = {"raw": response.text}

        if isinstance(result, dict) and result.get("error"):
            raise LedgerError(f"{method_name} rejected: {result['error']}")
        return result

    async def report_price(self, asset_id: str, multiplier: int, decimals: int) -> Any:
        # No retry here: the next cycle is the retry
        return await self.function_call(
            "report_price",
            {"asset_id": asset_id, "multiplier": multiplier, "decimals": decimals},
        )

    async def register_node(self, code_hash: str, attestation: Attestation) -> Any:
        logger.info(f"Registering node with code hash: {code_hash}")
        return await self.function_call(
            "register_node",
            {"code_hash": code_hash, "attestation": attestation.to_args()},
            max_attempts=MAX_RETRIES,
        )

    async def is_authorized(self, account_id: str) -> bool:
        try:
            result = await self.view("is_authorized", {"account_id": account_id})
        except (LedgerError, ValueError) as e:
            logger.error(f"Failed to check registration: {e}")
            return False
        return result is True

    async def get_price(self, asset_id: str) -> dict[str, Any] | None:
        try:
            return await self.view("get_price", {"asset_id": asset_id})
        except (LedgerError, ValueError) as e:
            logger.error(f"Failed to get price for {asset_id}: {e}")
            return None
