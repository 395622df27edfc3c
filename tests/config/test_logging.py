"""Tests for structlog configuration."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator

import pytest

from switcheroo.config.logging import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    sw = logging.getLogger("switcheroo")
    sw_level = sw.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    sw.setLevel(sw_level)


class TestConfigureLogging:
    def test_verbose_enables_debug(self) -> None:
        configure_logging(verbose=True, log_json=False)
        assert logging.getLogger("switcheroo").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self) -> None:
        configure_logging(verbose=False, log_json=False)
        assert logging.getLogger("switcheroo").level == logging.WARNING

    def test_single_handler(self) -> None:
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1

    def test_human_mode_output(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=False)
        logging.getLogger("switcheroo.test").warning("hello world")
        assert "hello world" in capfd.readouterr().err

    def test_json_mode_carries_extra_fields(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("switcheroo.handover").warning(
            "Port %d was allocated", 40400, extra={"namespace": "api", "stage": "start"}
        )
        parsed = json.loads(capfd.readouterr().err.strip().splitlines()[-1])
        assert parsed["event"] == "Port 40400 was allocated"
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "switcheroo.handover"
        assert parsed["namespace"] == "api"
        assert parsed["stage"] == "start"

    def test_quiet_mode_hides_info(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(verbose=False, log_json=True)
        logging.getLogger("switcheroo.handover").info("not shown")
        assert "not shown" not in capfd.readouterr().err

    def test_json_output_holds_back_errors(self, capfd: pytest.CaptureFixture[str]) -> None:
        configure_logging(json_output=True)
        assert logging.getLogger("switcheroo").level == logging.CRITICAL
        logging.getLogger("switcheroo.handover").error("deleting rule failed")
        assert capfd.readouterr().err == ""

    def test_verbose_wins_over_json_output(self) -> None:
        configure_logging(verbose=True, json_output=True)
        assert logging.getLogger("switcheroo").level == logging.DEBUG
