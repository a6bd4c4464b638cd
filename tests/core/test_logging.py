"""Tests for structured logging."""

import json
import logging
from datetime import datetime
from pathlib import Path

import structlog

from capsuleos.config.models import LoggingConfig, LogOutputConfig
from capsuleos.core.logging import (
    clear_request_id,
    configure_daemon_logging,
    configure_logging,
    get_logger,
    get_request_id,
    run_log_path,
    set_request_id,
)


class TestRequestIdCorrelation:
    """Request ID context variable tests."""

    def setup_method(self) -> None:
        clear_request_id()

    def test_given_request_id_when_set_then_can_retrieve(self) -> None:
        result = set_request_id("test-123")
        assert result == "test-123"
        assert get_request_id() == "test-123"

    def test_given_no_id_when_set_then_generates_uuid(self) -> None:
        rid = set_request_id()
        assert len(rid) == 12  # uuid4().hex[:12]

    def test_clear(self) -> None:
        set_request_id("x")
        clear_request_id()
        assert get_request_id() is None


class TestConfigureLogging:
    def teardown_method(self) -> None:
        clear_request_id()
        configure_logging(level="WARNING")

    def test_json_file_output_includes_request_id(self, tmp_path: Path) -> None:
        # Given
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(
            config=LoggingConfig(
                level="DEBUG",
                outputs=[LogOutputConfig(destination=str(log_file), format="json")],
            )
        )
        set_request_id("req-1")

        # When
        get_logger("test").info("document_written", base="idea", version=2)
        for handler in logging.getLogger().handlers:
            handler.flush()

        # Then
        record = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert record["event"] == "document_written"
        assert record["version"] == 2
        assert record["request_id"] == "req-1"
        assert record["logger"] == "test"

    def test_level_filters_events(self, tmp_path: Path) -> None:
        log_file = tmp_path / "run.log"
        configure_logging(
            config=LoggingConfig(
                level="WARNING",
                outputs=[LogOutputConfig(destination=str(log_file), format="json")],
            )
        )

        structlog.get_logger().info("too_quiet")
        structlog.get_logger().warning("loud_enough")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "too_quiet" not in text
        assert "loud_enough" in text

    def test_reconfigure_replaces_handlers(self) -> None:
        configure_logging(level="INFO")
        configure_logging(level="INFO")
        assert len(logging.getLogger().handlers) == 1

    def test_watchfiles_quietened(self) -> None:
        configure_logging(level="DEBUG")
        assert logging.getLogger("watchfiles.main").level == logging.WARNING

    def test_request_id_is_removed_after_clear(self, tmp_path: Path) -> None:
        log_file = tmp_path / "run.log"
        configure_logging(
            config=LoggingConfig(outputs=[LogOutputConfig(destination=str(log_file), format="json")])
        )
        set_request_id("req-2")
        clear_request_id()

        get_logger().info("index_built")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "request_id" not in json.loads(log_file.read_text().strip())


class TestDaemonLogging:
    def teardown_method(self) -> None:
        configure_logging(level="WARNING")

    def test_run_log_path_layout(self, tmp_path: Path) -> None:
        path = run_log_path(tmp_path, now=datetime(2024, 3, 5, 14, 7, 9))

        assert path.parent == tmp_path / "logs" / "2024-03-05"
        assert path.name.startswith("140709-")
        assert path.suffix == ".log"

    def test_console_plus_debug_json_file(self, tmp_path: Path) -> None:
        # Given
        log_file = configure_daemon_logging(tmp_path, console_level="WARNING")

        # When
        get_logger("store").debug("version_one_promoted", path="capsules/a.v1.json")
        for handler in logging.getLogger().handlers:
            handler.flush()

        # Then
        handlers = logging.getLogger().handlers
        assert [h.level for h in handlers] == [logging.WARNING, logging.DEBUG]
        assert log_file.is_relative_to(tmp_path / "logs")
        record = json.loads(log_file.read_text().strip())
        assert record["event"] == "version_one_promoted"
        assert record["level"] == "debug"
