"""
Unit tests for utils.logging

Covers JSON and console formatting, context logging, and
environment-based configuration.
"""

import json
import logging
import logging.handlers
import os
import sys
from unittest.mock import patch

from utils.logging import (
    ConsoleFormatter,
    ContextLogger,
    JSONFormatter,
    configure_from_env,
    setup_logging,
    shutdown_logging,
)


def make_record(msg="Compared table", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="dbcompare.engine",
        level=level,
        pathname="/src/dbcompare/engine.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSONFormatter class"""

    def test_init_with_defaults(self):
        """Test initialization with default parameters"""
        formatter = JSONFormatter()

        assert formatter.include_timestamp is True
        assert formatter.include_hostname is True
        assert formatter.app_name == "dbcompare"
        assert formatter.hostname is not None

    def test_format_basic_log_record(self):
        """Test formatting a basic log record"""
        # Arrange
        formatter = JSONFormatter(app_name="nightly-compare")

        # Act
        data = json.loads(formatter.format(make_record()))

        # Assert
        assert data["level"] == "INFO"
        assert data["logger"] == "dbcompare.engine"
        assert data["message"] == "Compared table"
        assert data["app"] == "nightly-compare"
        assert data["source"]["line"] == 42
        assert "timestamp" in data
        assert "context" not in data

    def test_format_without_timestamp_and_hostname(self):
        formatter = JSONFormatter(include_timestamp=False, include_hostname=False)

        data = json.loads(formatter.format(make_record()))

        assert "timestamp" not in data
        assert "hostname" not in data

    def test_format_with_exception_info(self):
        """Test formatting with exception information"""
        # Arrange
        formatter = JSONFormatter()
        try:
            raise ValueError("bad value")
        except ValueError:
            exc_info = sys.exc_info()

        # Act
        data = json.loads(formatter.format(make_record(level=logging.ERROR, exc_info=exc_info)))

        # Assert
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "bad value"
        assert data["exception"]["traceback"]

    def test_format_with_extra_context(self):
        """Test that extra fields land under context"""
        formatter = JSONFormatter()

        data = json.loads(formatter.format(make_record(source_table="T", matched=3)))

        assert data["context"] == {"source_table": "T", "matched": 3}

    def test_format_excludes_private_fields(self):
        formatter = JSONFormatter()

        data = json.loads(formatter.format(make_record(_internal="x")))

        assert "context" not in data


class TestConsoleFormatter:
    """Test ConsoleFormatter class"""

    def test_init_without_tty_disables_colors(self):
        with patch.object(sys.stderr, "isatty", return_value=False):
            formatter = ConsoleFormatter(use_colors=True)

        assert formatter.use_colors is False

    def test_format_with_colors_restores_levelname(self):
        """Test colour codes are applied without mutating the record"""
        # Arrange
        with patch.object(sys.stderr, "isatty", return_value=True):
            formatter = ConsoleFormatter(use_colors=True)
        record = make_record(level=logging.WARNING)

        # Act
        output = formatter.format(record)

        # Assert
        assert "\033[33m" in output
        assert record.levelname == "WARNING"

    def test_format_with_extra_context(self):
        formatter = ConsoleFormatter(use_colors=False)

        output = formatter.format(make_record(source_table="T", side="source"))

        assert "dbcompare.engine: Compared table" in output
        assert output.endswith("[source_table=T, side=source]")


class TestSetupLogging:
    """Test setup_logging function"""

    def teardown_method(self):
        """Clean up logging handlers after each test"""
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            handler.close()
            root_logger.removeHandler(handler)
        root_logger.setLevel(logging.WARNING)

    def test_setup_logging_with_defaults(self):
        setup_logging()

        root_logger = logging.getLogger()
        assert root_logger.level == logging.INFO
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_setup_logging_with_invalid_level_defaults_to_info(self):
        setup_logging(level="INVALID")

        assert logging.getLogger().level == logging.INFO

    def test_setup_logging_with_json_file(self, tmp_path):
        """Test file logging in JSON format, creating the directory"""
        # Arrange
        log_file = tmp_path / "logs" / "run.log"

        # Act
        setup_logging(level="DEBUG", log_file=str(log_file), console_output=False, json_format=True)
        logging.getLogger("dbcompare.test").info("hello")
        for handler in logging.getLogger().handlers:
            handler.flush()

        # Assert
        (handler,) = logging.getLogger().handlers
        assert isinstance(handler, logging.handlers.RotatingFileHandler)
        assert isinstance(handler.formatter, JSONFormatter)
        lines = log_file.read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "hello"

    def test_setup_logging_clears_existing_handlers(self):
        logging.getLogger().addHandler(logging.NullHandler())

        setup_logging()

        assert not any(isinstance(h, logging.NullHandler) for h in logging.getLogger().handlers)

    def test_noisy_loggers_quietened(self):
        setup_logging(level="DEBUG")

        assert logging.getLogger("opentelemetry").level == logging.WARNING

    def test_shutdown_logging_removes_handlers(self, tmp_path):
        setup_logging(log_file=str(tmp_path / "run.log"))

        with patch("utils.logging.config.logging.shutdown"):
            shutdown_logging()

        assert logging.getLogger().handlers == []


class TestContextLogger:
    """Test ContextLogger class"""

    @patch("logging.Logger.log")
    def test_info_adds_context(self, mock_log):
        """Test bound context and call-site fields are merged into extra"""
        # Arrange
        logger = ContextLogger("dbcompare.test_context", source_table="T")
        logger.logger.setLevel(logging.DEBUG)

        # Act
        logger.info("Comparing", side="source")

        # Assert
        level, msg = mock_log.call_args.args
        assert level == logging.INFO
        assert msg == "Comparing"
        assert mock_log.call_args.kwargs["extra"] == {"source_table": "T", "side": "source"}

    @patch("logging.Logger.log")
    def test_error_with_exc_info(self, mock_log):
        logger = ContextLogger("dbcompare.test_context", source_table="T")
        logger.logger.setLevel(logging.DEBUG)

        logger.error("Failed", exc_info=True)

        assert mock_log.call_args.kwargs["exc_info"] is True

    @patch("logging.Logger.log")
    def test_disabled_level_skipped(self, mock_log):
        logger = ContextLogger("dbcompare.quiet")
        logger.logger.setLevel(logging.WARNING)

        logger.debug("ignored")

        mock_log.assert_not_called()

    def test_bind_returns_new_logger(self):
        logger = ContextLogger("dbcompare.engine", source_table="T")

        bound = logger.bind(target_table="U")

        assert bound.get_context() == {"source_table": "T", "target_table": "U"}
        assert logger.get_context() == {"source_table": "T"}

    def test_get_context_returns_copy(self):
        logger = ContextLogger("dbcompare.engine", source_table="T")

        logger.get_context()["source_table"] = "changed"

        assert logger.context["source_table"] == "T"


class TestConfigureFromEnv:
    """Test configure_from_env function"""

    @patch.dict(os.environ, {
        "LOG_LEVEL": "DEBUG",
        "LOG_FILE": "/tmp/dbcompare.log",
        "LOG_JSON": "true",
        "LOG_CONSOLE": "false"
    })
    @patch("utils.logging.config.setup_logging")
    def test_configure_from_env_all_vars_set(self, mock_setup):
        configure_from_env()

        mock_setup.assert_called_once_with(
            level="DEBUG",
            log_file="/tmp/dbcompare.log",
            console_output=False,
            json_format=True
        )

    @patch.dict(os.environ, {}, clear=True)
    @patch("utils.logging.config.setup_logging")
    def test_configure_from_env_with_defaults(self, mock_setup):
        configure_from_env()

        mock_setup.assert_called_once_with(
            level="INFO",
            log_file=None,
            console_output=True,
            json_format=False
        )
