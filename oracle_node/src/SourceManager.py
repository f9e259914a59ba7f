"""SourceManager: Per-source consecutive failure tally.

Every failed fetch (transport error, bad status, bad body, missing or
non-positive value, timeout) increments the source's consecutive failure
count; a successful fetch resets it to zero. The count never decays with
time.

The tally is for observability only. A failing source is never excluded:
it is retried on every cycle so it can recover on its own.

Sources are keyed by name, so assets sharing a source name (e.g. "binance")
share one tally. Updates are taken under a lock so concurrent fetches of
the same source name never lose an increment or a reset.

.. code-block:: python

    >>> manager = SourceManager(["coinbase", "kraken"])
    >>> manager.record_failure("kraken")
    1
    >>> manager.record_failure("kraken")
    2
    >>> manager.record_success("kraken")
    >>> manager.get_source_status("kraken").consecutive_failures
    0
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace

logger = logging.getLogger(__name__)

# Consecutive failures after which every further failure is logged as a warning.
FAILURE_WARNING_THRESHOLD = 3


@dataclass
class SourceStatus:
    """Tracks the status of a single source.

    :ivar consecutive_failures: Number of consecutive failures.
    :ivar total_failures: Total failures since tracking began.
    :ivar total_successes: Total successes since tracking began.
    :ivar last_error: Description of the most recent failure, if any.
    """

    consecutive_failures: int = 0
    total_failures: int = 0
    total_successes: int = 0
    last_error: str | None = None


class SourceManager:
    """Tracks source health across all assets.

    :ivar sources: List of tracked source names.
    :ivar warning_threshold: Consecutive failures before warnings are logged.
    """

    def __init__(
        self,
        sources: list[str] | None = None,
        warning_threshold: int = FAILURE_WARNING_THRESHOLD,
    ) -> None:
        """Initialize the source manager.

        :param sources: Source names to track up front. Unknown names are
            added on first use.
        :param warning_threshold: Consecutive failures before warnings.
        """
        self.sources: list[str] = []
        self.warning_threshold = warning_threshold
        self._status: dict[str, SourceStatus] = {}
        self._lock = threading.Lock()

        for source in sources or []:
            self.add_source(source)

    def _ensure(self, source: str) -> SourceStatus:
        # Caller holds the lock
        if source not in self._status:
            self._status[source] = SourceStatus()
            self.sources.append(source)
        return self._status[source]

    def record_failure(self, source: str, error: str | None = None) -> int:
        """Record a failure for a source.

        :param source: Source name that failed.
        :param error: Optional description of the failure.
        :returns: The consecutive failure count after this failure.
        """
        with self._lock:
            status = self._ensure(source)
            status.consecutive_failures += 1
            status.total_failures += 1
            status.last_error = error
            failures = status.consecutive_failures

        if failures >= self.warning_threshold:
            logger.warning(
                f"Source {source} has failed {failures} times consecutively"
            )
        return failures

    def record_success(self, source: str) -> None:
        """Record a successful fetch, resetting the failure counter.

        :param source: Source name that succeeded.
        """
        with self._lock:
            status = self._ensure(source)
            if status.consecutive_failures:
                logger.info(
                    f"Source {source} recovered after "
                    f"{status.consecutive_failures} consecutive failures"
                )
            status.consecutive_failures = 0
            status.total_successes += 1

    def get_consecutive_failures(self, source: str) -> int:
        """Get the consecutive failure count of a source (0 if unknown)."""
        with self._lock:
            status = self._status.get(source)
            return status.consecutive_failures if status else 0

    def get_source_status(self, source: str) -> SourceStatus | None:
        """Get a snapshot of the status of a specific source.

        :param source: Source name to query.
        :returns: SourceStatus copy or None if source not tracked.
        """
        with self._lock:
            status = self._status.get(source)
            return replace(status) if status else None

    def get_all_status(self) -> dict[str, SourceStatus]:
        """Get a snapshot of the status of all sources.

        :returns: Dict mapping source names to copies of their status.
        """
        with self._lock:
            return {s: replace(status) for s, status in self._status.items()}

    def get_failure_stats(self) -> dict[str, int]:
        """Get consecutive failure counts for all tracked sources.

        :returns: Dict mapping source names to consecutive failures.
        """
        with self._lock:
            return {s: st.consecutive_failures for s, st in self._status.items()}

    def get_failing_sources(self) -> list[str]:
        """Get sources at or above the warning threshold."""
        with self._lock:
            return [
                s
                for s, st in self._status.items()
                if st.consecutive_failures >= self.warning_threshold
            ]

    def add_source(self, source: str) -> None:
        """Add a new source to track.

        :param source: Source name to add.
        """
        with self._lock:
            self._ensure(source)
