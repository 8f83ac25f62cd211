"""Tests for loguru setup and the log_call decorator."""

import sys

import pytest
from loguru import logger

import logging_setup
from logging_decorators import _redact, log_call


@pytest.fixture
def captured():
    lines = []
    sink = logger.add(lambda m: lines.append(m.record["message"]), level="DEBUG")
    yield lines
    logger.remove(sink)


class TestLogCall:

    def test_logs_entry_and_exit(self, captured):
        @log_call("read_file")
        def read(path):
            return "a\nb"

        assert read(path="x") == "a\nb"
        assert any(line.startswith("→ read_file args={'path': 'x'}") for line in captured)
        assert any("✓ read_file done" in line and "'lines': 2" in line for line in captured)

    def test_failure_is_logged_and_reraised(self, captured):
        @log_call("boom")
        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            boom()
        assert any("✗ boom failed" in line for line in captured)

    def test_not_wrapped_twice(self):
        @log_call()
        def f():
            return ""

        assert log_call()(f) is f

    def test_redaction_and_truncation(self):
        out = _redact({"api_key": "sekrit", "text": "x" * 10, "items": list(range(5))}, {"api_key"}, 4, 2)
        assert out["api_key"] == "******"
        assert out["text"].startswith("xxxx...(+6 chars)")
        assert out["items"] == [0, 1, "... (+3 more)"]


class TestConfigureLogging:

    def test_file_sink_and_verbose_console(self, tmp_path):
        log_file = tmp_path / "logs" / "devpilot.log"
        logging_setup.configure_logging(verbose=True, log_file=log_file)
        try:
            logger.debug("hello from test")
            cfg = logging_setup.current_config()
            assert cfg["console"] is True
            assert cfg["sinks"] == 2
        finally:
            # closing the sinks flushes the file
            logger.remove()
            logger.add(sys.stderr)
        assert "hello from test" in log_file.read_text(encoding="utf-8")

    def test_level_from_environment(self, monkeypatch):
        monkeypatch.setenv("DEVPILOT_LOG_LEVEL", "warning")
        assert logging_setup._resolve_level(None) == "WARNING"
