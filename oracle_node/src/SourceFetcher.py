"""SourceFetcher: Path-driven HTTP price fetching with a bounded deadline.

Every source is described by configuration only (URL + extraction path),
so a single fetcher serves all of them. A shared httpx.AsyncClient is used
across all fetches to avoid connection overhead.

A fetch fails for one of several distinct reasons, each raised internally
as its own FetcherError subclass and logged with the source name so
operators can tell them apart. Callers of fetch() only ever see a price or
None.

.. code-block:: python

    fetcher = SourceFetcher(SourceManager(), timeout=5.0)
    price = await fetcher.fetch(
        SourceConfig("binance", "https://api.binance.com/...", "price")
    )
"""

from __future__ import annotations

import asyncio
import logging
from typing import ClassVar

import httpx

from .config import SourceConfig
from .path_extractor import coerce_price, resolve_path
from .SourceManager import SourceManager

logger = logging.getLogger(__name__)


class FetcherError(Exception):
    """Base exception for fetcher errors (also raised on transport errors)."""

    kind = "transport"


class FetcherTimeoutError(FetcherError):
    """Raised when the fetch deadline expires."""

    kind = "timeout"


class FetcherHTTPError(FetcherError):
    """Raised when the source answers with a non-2xx status.

    :ivar status_code: HTTP status code from the failed request.
    """

    kind = "http_status"

    def __init__(self, status_code: int, message: str):
        """Initialize the HTTP error.

        :param status_code: HTTP status code.
        :param message: Error message from response.
        """
        self.status_code = status_code
        super().__init__(f"HTTP {status_code}: {message}")


class FetcherDecodeError(FetcherError):
    """Raised when the response body is not valid JSON."""

    kind = "decode"


class FetcherExtractionError(FetcherError):
    """Raised when the configured path does not yield a number."""

    kind = "extraction"


class FetcherInvalidPriceError(FetcherError):
    """Raised when the extracted value is zero, negative or non-finite."""

    kind = "invalid_price"


class SourceFetcher:
    """Fetches one price per call from a configured source.

    :cvar DEFAULT_TIMEOUT: Deadline for a whole fetch in seconds.
    :cvar USER_AGENT: User-Agent header sent to every source.
    :ivar source_manager: Failure tally updated after every fetch.
    :ivar timeout: Deadline for a whole fetch in seconds.
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    DEFAULT_TIMEOUT = 5.0
    USER_AGENT = "NEAR-TEE-Oracle/1.0"

    def __init__(
        self,
        source_manager: SourceManager | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the fetcher.

        :param source_manager: Failure tally to update. A private one is
            created if not given.
        :param timeout: Fetch deadline in seconds (default: 5).
        :param client: Optional HTTP client; the shared client is used if
            not given.
        """
        self.source_manager = source_manager or SourceManager()
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if cls._shared_client is None or cls._shared_client.is_closed:
            cls._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                headers={"User-Agent": cls.USER_AGENT},
                follow_redirects=True,
            )
        return cls._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        if cls._shared_client is not None and not cls._shared_client.is_closed:
            await cls._shared_client.aclose()
            cls._shared_client = None

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client or self.get_shared_client()

    async def _get(self, url: str) -> httpx.Response:
        """Make an HTTP GET request.

        :param url: Request URL.
        :returns: httpx.Response object.
        :raises FetcherHTTPError: On non-2xx response.
        :raises FetcherTimeoutError: On client-side timeout.
        :raises FetcherError: On network errors.
        """
        try:
            response = await self.client.get(
                url,
                headers={"User-Agent": self.USER_AGENT},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise FetcherTimeoutError(f"Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise FetcherError(f"Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP GET %s failed with status %s: %s",
                url,
                response.status_code,
                response.text[:200],
            )
            raise FetcherHTTPError(response.status_code, response.reason_phrase)
        return response

    async def _fetch_price(self, source: SourceConfig) -> float:
        response = await self._get(source.url)

        try:
            data = response.json()
        except ValueError as e:
            raise FetcherDecodeError(f"Invalid JSON body: {e}") from e

        found, value = resolve_path(data, source.path)
        if not found:
            raise FetcherExtractionError(f"Path '{source.path}' not found")

        price = coerce_price(value)
        if price is None:
            raise FetcherExtractionError(
                f"Value at '{source.path}' is not numeric: {value!r}"
            )
        if price <= 0:
            raise FetcherInvalidPriceError(f"Invalid price value: {price}")
        return price

    async def fetch_or_raise(self, source: SourceConfig) -> float:
        """Fetch a price, raising on any failure.

        The whole fetch (connect, response and decode) is bounded by
        ``self.timeout``; on expiry the in-flight request is cancelled.

        :param source: Source to query.
        :returns: Finite positive price.
        :raises FetcherError: On any failure.
        """
        try:
            return await asyncio.wait_for(
                self._fetch_price(source), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise FetcherTimeoutError(
                f"No response within {self.timeout:.1f}s"
            ) from e

    async def fetch(self, source: SourceConfig) -> float | None:
        """Fetch a price and update the failure tally.

        :param source: Source to query.
        :returns: Finite positive price, or None on any failure.
        """
        try:
            price = await self.fetch_or_raise(source)
        except FetcherError as e:
            logger.warning(f"[{source.name}] Fetch failed ({e.kind}): {e}")
            self.source_manager.record_failure(source.name, f"{e.kind}: {e}")
            return None
        except Exception as e:
            logger.warning(f"[{source.name}] Unexpected fetch error: {e!r}")
            self.source_manager.record_failure(source.name, repr(e))
            return None

        logger.debug(f"[{source.name}] {source.url} -> {price}")
        self.source_manager.record_success(source.name)
        return price

    def get_failure_stats(self) -> dict[str, int]:
        """Get consecutive failure counts per source name."""
        return self.source_manager.get_failure_stats()
