"""
Unit tests for src/utils/logging

Covers JSON and console formatting, context logging, file rotation setup
and environment-based configuration.
"""

import json
import logging

import pytest

from utils.logging import (
    ConsoleFormatter,
    ContextLogger,
    JSONFormatter,
    configure_from_env,
    setup_logging,
    shutdown_logging,
)


def make_record(msg="Partition verified", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="verification.orchestrator",
        level=level,
        pathname=__file__,
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    shutdown_logging()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


class TestJSONFormatter:

    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "verification.orchestrator"
        assert data["message"] == "Partition verified"
        assert data["app"] == "data-verification"
        assert "timestamp" in data
        assert data["hostname"]
        assert data["source"].endswith(":42")

    def test_optional_fields_can_be_disabled(self):
        formatter = JSONFormatter(include_timestamp=False, include_hostname=False, app_name="x")

        data = json.loads(formatter.format(make_record()))

        assert "timestamp" not in data
        assert "hostname" not in data
        assert data["app"] == "x"

    def test_extra_fields_go_to_context(self):
        data = json.loads(JSONFormatter().format(make_record(table="orders", partition="year=2025")))

        assert data["context"] == {"table": "orders", "partition": "year=2025"}

    def test_exception_is_serialized(self):
        try:
            raise ValueError("bad partition")
        except ValueError:
            import sys
            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad partition"


class TestConsoleFormatter:

    def test_context_is_appended(self):
        text = ConsoleFormatter(use_colors=False).format(make_record(table="orders", odate="20250101"))

        assert "[INFO]" in text
        assert "Partition verified" in text
        assert text.endswith("[table=orders, odate=20250101]")

    def test_levelname_is_restored(self):
        formatter = ConsoleFormatter(use_colors=True)
        formatter.use_colors = True
        record = make_record()

        formatter.format(record)

        assert record.levelname == "INFO"


class TestContextLogger:

    def test_context_is_attached(self, caplog):
        log = ContextLogger("verification.test", table="orders", mid="run_7")

        with caplog.at_level(logging.INFO, logger="verification.test"):
            log.info("compared", partition="year=2025")

        record = caplog.records[-1]
        assert record.table == "orders"
        assert record.mid == "run_7"
        assert record.partition == "year=2025"

    def test_bind_returns_child(self):
        parent = ContextLogger("verification.test", table="orders")

        child = parent.bind(partition="year=2025")

        assert child.get_context() == {"table": "orders", "partition": "year=2025"}
        assert parent.get_context() == {"table": "orders"}

    def test_exception_includes_traceback(self, caplog):
        log = ContextLogger("verification.test")

        with caplog.at_level(logging.ERROR, logger="verification.test"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                log.exception("failed")

        assert caplog.records[-1].exc_info is not None


class TestSetupLogging:

    def test_console_handler(self):
        setup_logging(level="WARNING")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, ConsoleFormatter)

    def test_rotating_json_file(self, tmp_path):
        log_file = tmp_path / "logs" / "verify.log"

        setup_logging(level="INFO", log_file=str(log_file), console_output=False, json_format=True)
        logging.getLogger("verification.test").info("written", extra={"table": "orders"})
        shutdown_logging()

        line = log_file.read_text().strip().splitlines()[-1]
        assert json.loads(line)["context"] == {"table": "orders"}

    def test_noisy_loggers_are_quieted(self):
        setup_logging(level="DEBUG")

        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_configure_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")
        monkeypatch.setenv("LOG_JSON", "true")

        configure_from_env()

        root = logging.getLogger()
        assert root.level == logging.ERROR
        assert isinstance(root.handlers[0].formatter, JSONFormatter)

    def test_explicit_level_wins_over_environment(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "ERROR")

        configure_from_env(level="DEBUG")

        assert logging.getLogger().level == logging.DEBUG
