"""Tests for package logging setup."""

import io
import logging

import pytest

from cachekeeper.shared.telemetry import setup_logging
from cachekeeper.shared.telemetry.logging import ROOT_LOGGER_NAME


@pytest.fixture(autouse=True)
def _restore_package_logger():
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers = list(package_logger.handlers)
    level = package_logger.level
    yield
    package_logger.handlers = handlers
    package_logger.setLevel(level)


class TestSetupLogging:
    def test_writes_package_records_to_stream(self) -> None:
        """Records from cachekeeper modules reach the given stream."""
        stream = io.StringIO()
        setup_logging(logging.INFO, stream)
        logging.getLogger("cachekeeper.infrastructure.cache.keys").info("ready")
        assert "cachekeeper.infrastructure.cache.keys - INFO - ready" in stream.getvalue()

    def test_repeated_setup_does_not_stack_handlers(self) -> None:
        """Second call replaces the handler from the first."""
        first = setup_logging(logging.INFO, io.StringIO())
        count = len(first.handlers)
        second = setup_logging(logging.WARNING, io.StringIO())
        assert len(second.handlers) == count
        assert second.level == logging.WARNING

    def test_level_follows_debug_setting(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Without an explicit level, debug=True selects DEBUG."""
        from cachekeeper.core.config import get_settings

        monkeypatch.setenv("DEBUG", "true")
        get_settings.cache_clear()
        assert setup_logging(stream=io.StringIO()).level == logging.DEBUG

    def test_root_logger_untouched(self) -> None:
        """Root logger handlers are left alone."""
        root_handlers = list(logging.getLogger().handlers)
        setup_logging(logging.INFO, io.StringIO())
        assert logging.getLogger().handlers == root_handlers
