"""Unit tests for SourceManager."""

import logging
import threading

from oracle_node.src.SourceManager import SourceManager, SourceStatus


class TestSourceManagerInit:
    """Test SourceManager initialization."""

    def test_init_with_sources(self) -> None:
        """Sources should be tracked from init."""
        manager = SourceManager(["a", "b", "c"])
        assert manager.sources == ["a", "b", "c"]
        assert len(manager.get_all_status()) == 3

    def test_init_empty_sources(self) -> None:
        """No sources should work."""
        manager = SourceManager()
        assert manager.sources == []
        assert manager.get_failure_stats() == {}

    def test_duplicate_sources_tracked_once(self) -> None:
        """Source names shared by several assets share one tally."""
        manager = SourceManager(["binance", "okx", "binance"])
        assert manager.sources == ["binance", "okx"]

    def test_initial_status(self) -> None:
        """Initial status should have zero failures."""
        manager = SourceManager(["a"])
        status = manager.get_source_status("a")

        assert status is not None
        assert status.consecutive_failures == 0
        assert status.total_failures == 0
        assert status.total_successes == 0
        assert status.last_error is None


class TestSourceManagerFailures:
    """Test failure recording."""

    def test_failures_increment(self) -> None:
        """Each failure should increment the consecutive count."""
        manager = SourceManager(["a"])

        assert manager.record_failure("a") == 1
        assert manager.record_failure("a") == 2
        assert manager.record_failure("a") == 3

        status = manager.get_source_status("a")
        assert status.consecutive_failures == 3
        assert status.total_failures == 3

    def test_failure_stores_last_error(self) -> None:
        manager = SourceManager(["a"])
        manager.record_failure("a", "timeout: no response")
        assert manager.get_source_status("a").last_error == "timeout: no response"

    def test_failure_unknown_source(self) -> None:
        """Recording failure for unknown source should create it."""
        manager = SourceManager(["a"])
        manager.record_failure("unknown")

        assert "unknown" in manager.sources
        assert manager.get_consecutive_failures("unknown") == 1

    def test_warning_after_threshold(self, caplog) -> None:
        """Warnings start once the threshold is reached."""
        manager = SourceManager(["a"], warning_threshold=3)

        with caplog.at_level(logging.WARNING, logger="oracle_node.src.SourceManager"):
            manager.record_failure("a")
            manager.record_failure("a")
            assert not caplog.records

            manager.record_failure("a")
            assert "failed 3 times consecutively" in caplog.text

    def test_failing_sources(self) -> None:
        manager = SourceManager(["a", "b"], warning_threshold=2)
        manager.record_failure("a")
        manager.record_failure("a")
        manager.record_failure("b")

        assert manager.get_failing_sources() == ["a"]


class TestSourceManagerSuccess:
    """Test success recording."""

    def test_success_resets_consecutive_failures(self) -> None:
        """Success should reset consecutive failures for any N >= 1."""
        for n in (1, 2, 5, 50):
            manager = SourceManager(["a"])
            for _ in range(n):
                manager.record_failure("a")
            assert manager.get_consecutive_failures("a") == n

            manager.record_success("a")
            assert manager.get_consecutive_failures("a") == 0

    def test_success_tracks_total(self) -> None:
        """Success should increment total_successes."""
        manager = SourceManager(["a"])

        manager.record_success("a")
        manager.record_success("a")
        manager.record_success("a")

        assert manager.get_source_status("a").total_successes == 3

    def test_success_preserves_total_failures(self) -> None:
        """Success should not reset total_failures."""
        manager = SourceManager(["a"])

        manager.record_failure("a")
        manager.record_failure("a")
        manager.record_success("a")
        manager.record_failure("a")

        status = manager.get_source_status("a")
        assert status.total_failures == 3
        assert status.consecutive_failures == 1

    def test_success_unknown_source(self) -> None:
        """Recording success for unknown source should create it."""
        manager = SourceManager(["a"])
        manager.record_success("unknown")

        status = manager.get_source_status("unknown")
        assert status is not None
        assert status.total_successes == 1


class TestSourceManagerConcurrency:
    """Test tally updates from several threads."""

    def test_concurrent_failures_not_lost(self) -> None:
        """Concurrent increments of one source name must all count."""
        manager = SourceManager(["shared"])

        def fail_many() -> None:
            for _ in range(1000):
                manager.record_failure("shared")

        threads = [threading.Thread(target=fail_many) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        status = manager.get_source_status("shared")
        assert status.consecutive_failures == 8000
        assert status.total_failures == 8000


class TestSourceManagerHelpers:
    """Test helper methods."""

    def test_get_source_status_unknown(self) -> None:
        """get_source_status for unknown source should return None."""
        manager = SourceManager(["a"])
        assert manager.get_source_status("unknown") is None

    def test_get_consecutive_failures_unknown(self) -> None:
        manager = SourceManager()
        assert manager.get_consecutive_failures("unknown") == 0

    def test_get_all_status_is_copy(self) -> None:
        """get_all_status should return copies of all statuses."""
        manager = SourceManager(["a", "b"])
        manager.record_failure("a")
        manager.record_success("b")

        all_status = manager.get_all_status()
        assert all_status["a"].consecutive_failures == 1
        assert all_status["b"].total_successes == 1

        all_status["a"].consecutive_failures = 99
        all_status["b"] = SourceStatus()
        assert manager.get_consecutive_failures("a") == 1
        assert manager.get_source_status("b").total_successes == 1

    def test_get_failure_stats(self) -> None:
        manager = SourceManager(["a", "b"])
        manager.record_failure("a")
        assert manager.get_failure_stats() == {"a": 1, "b": 0}
