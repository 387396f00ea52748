"""
Tests for logging setup and the timing helpers.
"""

import io
import logging

import pytest

from core.logging_config import log_timing, resolve_level, setup_logging, timed


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    quiet = {name: logging.getLogger(name).level for name in ("httpx", "anthropic")}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, value in quiet.items():
        logging.getLogger(name).setLevel(value)


class TestSetupLogging:
    """Test root logger configuration."""

    def test_resolve_level(self, monkeypatch):
        """The argument wins over LOG_LEVEL; unknown names fall back to INFO."""
        monkeypatch.setenv("LOG_LEVEL", "warning")
        assert resolve_level() == logging.WARNING
        assert resolve_level("debug") == logging.DEBUG
        assert resolve_level("chatty") == logging.INFO

    def test_writes_to_stream_and_quiets_clients(self, restore_root_logger):
        """Records go to the given stream and HTTP client loggers are raised to WARNING."""
        stream = io.StringIO()
        setup_logging("info", stream=stream)
        logging.getLogger("agent.test").info("hello")
        logging.getLogger("httpx").info("GET https://example.com")
        assert "| agent.test | hello" in stream.getvalue()
        assert "example.com" not in stream.getvalue()
        assert logging.getLogger("anthropic").level == logging.WARNING

    def test_debug_format_has_line_numbers(self, restore_root_logger):
        """DEBUG output names the function and line."""
        stream = io.StringIO()
        setup_logging("DEBUG", stream=stream)
        logging.getLogger("agent.test").debug("detail")
        assert "agent.test:test_debug_format_has_line_numbers:" in stream.getvalue()


class TestTiming:
    """Test log_timing and timed."""

    def test_log_timing_completed(self, caplog):
        """A block that finishes is logged as completed."""
        logger = logging.getLogger("agent.timing")
        with caplog.at_level(logging.DEBUG, logger="agent.timing"):
            with log_timing(logger, "tool View"):
                pass
        assert caplog.records[-1].getMessage().startswith("tool View completed in ")

    def test_log_timing_failed(self, caplog):
        """A block that raises is logged as failed and the error propagates."""
        logger = logging.getLogger("agent.timing")
        with caplog.at_level(logging.DEBUG, logger="agent.timing"):
            with pytest.raises(RuntimeError):
                with log_timing(logger, "openai chat gpt-4.1"):
                    raise RuntimeError("boom")
        assert caplog.records[-1].getMessage().startswith("openai chat gpt-4.1 failed in ")

    @pytest.mark.asyncio
    async def test_timed_decorator(self, caplog):
        """Decorated coroutines keep their result and log under their module."""

        @timed("image description")
        async def describe():
            return "a cat"

        with caplog.at_level(logging.DEBUG, logger=__name__):
            assert await describe() == "a cat"
        assert caplog.records[-1].name == __name__
        assert caplog.records[-1].getMessage().startswith("image description completed in ")
