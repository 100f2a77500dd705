# tests/common/test_logger.py
"""
Unit тесты для модуля логирования (src/common/logger.py).
"""

import json
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

import src.common.logger as logger_module
from src.common.constants import TypeMsg
from src.common.logger import (
    DEFAULT_LOGGER_NAME,
    ColoredFormatter,
    JsonFormatter,
    SizeRotatingFileHandler,
    _get_caller_info,
    _loggers,
    _read_logging_options,
    get_logger,
    log_debug,
    log_error,
    log_info,
    log_warning,
    setup_logging,
)


def make_record(level: int = logging.INFO, msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test_logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    record.module = "test_module"
    record.funcName = "test_function"
    return record


@pytest.fixture(autouse=True)
def clean_loggers(monkeypatch: pytest.MonkeyPatch):
    """Каждый тест начинает с пустого кэша логгеров."""
    _loggers.clear()
    monkeypatch.setattr(logger_module, "_GLOBAL_FILE_HANDLER", None)
    monkeypatch.setattr(logger_module, "_GLOBAL_ERROR_HANDLER", None)
    monkeypatch.setattr(logger_module, "_LOGGING_INITIALIZED", False)
    yield
    for name in list(_loggers):
        for handler in _loggers[name].handlers:
            handler.close()
        _loggers[name].handlers.clear()
    _loggers.clear()


class TestJsonFormatter:
    """Тесты для JsonFormatter."""

    def test_format_basic_record(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["module"] == "test_module"
        assert data["function"] == "test_function"
        assert data["line"] == 10
        assert data["timestamp"].endswith("Z")

    def test_format_with_extra_data(self) -> None:
        record = make_record(logging.WARNING)
        record.extra_data = {"error_code": "concurrent_update", "payment_id": "p-1"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"error_code": "concurrent_update", "payment_id": "p-1"}

    def test_format_with_exception(self) -> None:
        try:
            raise ValueError("Test exception")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(make_record(logging.ERROR, exc_info=exc_info)))

        assert "ValueError: Test exception" in data["exception"]

    def test_non_serializable_extra_uses_str(self) -> None:
        record = make_record()
        record.extra_data = {"path": Path("logs")}

        assert json.loads(JsonFormatter().format(record))["extra"]["path"] == "logs"


class TestColoredFormatter:
    """Тесты для ColoredFormatter."""

    def test_format_basic_record(self) -> None:
        result = ColoredFormatter().format(make_record())

        assert "[INFO]" in result
        assert "Test message" in result
        assert "\033[32m" in result

    def test_format_with_caller_info(self) -> None:
        record = make_record(logging.DEBUG)
        record.extra_data = {
            "caller_function": "commit_match",
            "caller_module": "src.core.matching.coordinator",
            "caller_file": "coordinator.py",
            "caller_line": 42,
        }

        result = ColoredFormatter().format(record)

        assert "src.core.matching.coordinator.commit_match()" in result
        assert "coordinator.py:42" in result


class TestSizeRotatingFileHandler:
    """Тесты для ротации файлов по размеру."""

    def test_rollover_archives_file(self, tmp_path: Path) -> None:
        handler = SizeRotatingFileHandler(log_dir=str(tmp_path), max_bytes=10, logger_name="app")
        handler.setFormatter(logging.Formatter("%(message)s"))
        try:
            handler.emit(make_record(msg="first message is long enough"))
            handler.emit(make_record(msg="second"))
        finally:
            handler.close()

        archived = list(tmp_path.glob("app_*.log"))
        assert len(archived) == 1
        assert (tmp_path / "app.log").read_text(encoding="utf-8").strip() == "second"

    def test_zero_max_bytes_never_rolls(self, tmp_path: Path) -> None:
        handler = SizeRotatingFileHandler(log_dir=str(tmp_path), max_bytes=0)
        try:
            assert not handler.shouldRollover(make_record())
        finally:
            handler.close()


class TestGetLogger:
    """Тесты для get_logger."""

    def test_get_logger_creates_new_logger(self) -> None:
        logger = get_logger("test_logger")

        assert logger.name == "test_logger"
        assert len(logger.handlers) >= 1
        assert logger.propagate is False

    def test_get_logger_returns_cached_logger(self) -> None:
        assert get_logger("test_logger") is get_logger("test_logger")

    @patch("src.config.settings")
    def test_get_logger_uses_settings(self, mock_settings: MagicMock, tmp_path: Path) -> None:
        mock_settings.logging.LOG_LEVEL = "WARNING"
        mock_settings.logging.LOG_FORMAT = "json"
        mock_settings.logging.LOG_TO_FILE = True
        mock_settings.logging.LOG_FILE_PATH = str(tmp_path / "hub.log")
        mock_settings.logging.LOG_MAX_BYTES = 1024

        logger = get_logger("test_with_settings")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JsonFormatter)
        file_names = {Path(h.baseFilename).name for h in logger.handlers if isinstance(h, SizeRotatingFileHandler)}
        assert file_names == {"hub.log", "error.log"}

    @patch("src.config.settings")
    def test_mock_values_fall_back_to_defaults(self, mock_settings: MagicMock) -> None:
        """Нестроковые значения настроек (MagicMock) игнорируются."""
        options = _read_logging_options()

        assert options["level"] == "DEBUG"
        assert options["to_file"] is False

    def test_get_logger_handles_missing_settings(self) -> None:
        with patch.dict("sys.modules", {"src.config": None}):
            logger = get_logger("test_no_settings")

        assert logger.level == logging.DEBUG


class TestSetupLogging:
    """Тесты для setup_logging."""

    def test_setup_logging_initializes_system(self) -> None:
        setup_logging()

        assert DEFAULT_LOGGER_NAME in _loggers

    def test_setup_logging_is_idempotent(self) -> None:
        setup_logging()
        handlers = list(_loggers[DEFAULT_LOGGER_NAME].handlers)

        setup_logging()

        assert _loggers[DEFAULT_LOGGER_NAME].handlers == handlers

    def test_setup_logging_quiets_third_party(self) -> None:
        setup_logging()

        for name in ("asyncpg", "redis", "aio_pika", "httpx"):
            assert logging.getLogger(name).level == logging.WARNING


class TestGetCallerInfo:
    """Тесты для _get_caller_info."""

    def test_reports_calling_function(self) -> None:
        def commit_match():
            return _get_caller_info()

        info = commit_match()

        assert info["caller_function"] == "commit_match"
        assert info["caller_file"] == "test_logger.py"


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    @pytest.mark.asyncio
    async def test_log_info_basic(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message")

        mock_info.assert_called_once()
        assert mock_info.call_args.args[0] == "Test message"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "type_msg, method",
        [
            (TypeMsg.DEBUG, "debug"),
            (TypeMsg.WARNING, "warning"),
            (TypeMsg.ERROR, "error"),
            (TypeMsg.CRITICAL, "critical"),
        ],
    )
    async def test_log_info_with_type_msg(self, type_msg: TypeMsg, method: str) -> None:
        with patch.object(logging.Logger, method) as mock_method:
            await log_info("message", type_msg=type_msg)

        mock_method.assert_called_once()

    @pytest.mark.asyncio
    async def test_extra_merged_with_caller_info(self) -> None:
        with patch.object(logging.Logger, "info") as mock_info:
            await log_info("Test message", extra={"error_code": "offer_unavailable"})

        extra_data = mock_info.call_args.kwargs["extra"]["extra_data"]
        assert extra_data["error_code"] == "offer_unavailable"
        assert extra_data["caller_function"] == "test_extra_merged_with_caller_info"

    @pytest.mark.asyncio
    async def test_log_debug_and_warning(self) -> None:
        with patch.object(logging.Logger, "debug") as mock_debug, \
                patch.object(logging.Logger, "warning") as mock_warning:
            await log_debug("Debug message")
            await log_warning("Warning message")

        mock_debug.assert_called_once()
        mock_warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self) -> None:
        with patch.object(logging.Logger, "error") as mock_error:
            await log_error("Error message", exc_info=True)

        assert mock_error.call_args.kwargs["exc_info"] is True

    @pytest.mark.asyncio
    async def test_custom_logger_name(self) -> None:
        with patch("src.common.logger.get_logger") as mock_get_logger:
            mock_logger = MagicMock()
            mock_get_logger.return_value = mock_logger

            await log_info("Test message", logger_name="custom_logger")

        mock_get_logger.assert_called_once_with("custom_logger")
        mock_logger.info.assert_called_once()
