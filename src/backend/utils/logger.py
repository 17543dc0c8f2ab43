"""
Logging setup for JS Sandbox using Python's standard logging
with JSON formatting for structured logs.

Log destinations:
- Console (stderr): Human-readable format for debugging. stdout carries the
  MCP stdio transport and must never receive log output.
- logs/sandbox.jsonl: JSON format for sandbox lifecycle and tool calls
- logs/errors.jsonl: JSON format for error tracking
"""

from __future__ import annotations

import logging
import logging.handlers
import re
import sys
import uuid

from pathlib import Path
from typing import Any

from pythonjsonlogger import json as jsonlogger

from core.constants import (
    LOG_BACKUP_COUNT_ERRORS,
    LOG_BACKUP_COUNT_SANDBOX,
    LOG_MAX_SIZE,
    LOG_PREVIEW_LENGTH,
    get_settings,
)

# Secret redaction patterns applied to logged tool arguments
REDACTION_PATTERNS = [
    (r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b", "[EMAIL]"),
    (r"\b(sk-|pk-|api[-_]?key[-_]?)[A-Za-z0-9]{20,}\b", "[API_KEY]"),
    (r"\b(password|secret|token)\s*[:=]\s*\S+", "[REDACTED]"),
]

#: Length of the per-process run identifier attached to log records.
RUN_ID_LENGTH = 8


class SandboxFilter(logging.Filter):
    """Filter to allow all INFO level logs into the sandbox log"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.INFO


class ErrorFilter(logging.Filter):
    """Filter to only allow ERROR and CRITICAL logs"""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to log levels and standardizes format.
    Format: HH:MM:SS [LEVEL] logger_name - message
    """

    # ANSI color codes
    GREY = "\x1b[38;20m"
    GREEN = "\x1b[32;20m"
    YELLOW = "\x1b[33;20m"
    RED = "\x1b[31;20m"
    BOLD_RED = "\x1b[31;1m"
    RESET = "\x1b[0m"

    LEVEL_COLORS = {
        logging.DEBUG: GREY,
        logging.INFO: GREEN,
        logging.WARNING: YELLOW,
        logging.ERROR: RED,
        logging.CRITICAL: BOLD_RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        level_fmt = f"[{record.levelname}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            level_fmt = f"{color}{level_fmt}{self.RESET}"

        record.asctime = self.formatTime(record, "%H:%M:%S")
        message = f"{record.asctime} {level_fmt} {record.name} - {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(
    name: str | None = None,
    debug: bool | None = None,
    log_dir: Path | None = None,
) -> logging.Logger:
    """
    Set up logging with a console handler and rotating JSON file handlers.

    Called once at startup. With no name the root logger is configured, so
    every module logger (`logging.getLogger(__name__)`) shares the handlers.

    Args:
        name: Logger name (root logger when None)
        debug: Enable debug logging (defaults to the DEBUG setting)
        log_dir: Directory for JSON log files (defaults to the LOG_DIR setting)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    settings = get_settings()
    if debug is None:
        debug = bool(settings.debug)
    if log_dir is None:
        log_dir = Path(settings.log_path)

    # --- Console Handler (Human-readable, stderr) ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    logger.addHandler(console_handler)

    # --- Sandbox Log Handler (JSON) ---
    log_dir.mkdir(parents=True, exist_ok=True)

    sandbox_handler = logging.handlers.RotatingFileHandler(
        log_dir / "sandbox.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_SANDBOX,
        encoding="utf-8",
    )
    sandbox_handler.setLevel(logging.INFO)
    sandbox_handler.addFilter(SandboxFilter())
    sandbox_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s %(run_id)s %(sandbox_id)s %(tool)s",
            timestamp=True,
        )
    )
    logger.addHandler(sandbox_handler)

    # --- Error Log Handler (JSON) ---
    error_handler = logging.handlers.RotatingFileHandler(
        log_dir / "errors.jsonl",
        maxBytes=LOG_MAX_SIZE,
        backupCount=LOG_BACKUP_COUNT_ERRORS,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.addFilter(ErrorFilter())
    error_handler.setFormatter(
        jsonlogger.JsonFormatter(
            "%(timestamp)s %(levelname)s %(name)s %(message)s",
            timestamp=True,
        )
    )
    logger.addHandler(error_handler)

    return logger


class SandboxLogger:
    """
    High-level logging interface for JS Sandbox.
    Wraps standard Python logging with convenience methods.
    """

    def __init__(self, name: str = "js-sandbox", run_id: str | None = None):
        self.logger = logging.getLogger(name)
        self.run_id = run_id or str(uuid.uuid4())[:RUN_ID_LENGTH]

    def _enrich_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        kwargs.setdefault("run_id", self.run_id)
        return kwargs

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=self._enrich_context(kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=self._enrich_context(kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=self._enrich_context(kwargs))

    def error(self, message: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Error level logging with optional exception info"""
        self.logger.error(message, extra=self._enrich_context(kwargs), exc_info=exc_info)

    def _should_log_content(self) -> bool:
        return bool(get_settings().enable_content_logging)

    def _redact_content(self, text: str) -> str:
        """Redact secrets from text using defined patterns."""
        if not text:
            return text

        redacted = text
        for pattern, replacement in REDACTION_PATTERNS:
            redacted = re.sub(pattern, replacement, redacted)
        return redacted

    def log_tool_call(
        self,
        tool_name: str,
        args: dict[str, Any],
        result: Any,
        duration_ms: float | None = None,
        sandbox_id: str | None = None,
    ) -> None:
        """
        Log a tool call. Arguments and result are shown (redacted) only when
        content logging is enabled; user code can carry credentials.
        """
        should_log_content = self._should_log_content()

        if should_log_content:
            redacted_args = self._redact_content(str(args))[:LOG_PREVIEW_LENGTH]
            result_preview = self._redact_content(str(result))[:LOG_PREVIEW_LENGTH]
            message = f"Tool call: {tool_name}({redacted_args}...) -> {result_preview}..."
        else:
            message = f"Tool call: {tool_name}(...) -> [HIDDEN]"

        if duration_ms is not None:
            message += f" [{duration_ms:.0f}ms]"

        extra_data: dict[str, Any] = {"tool": tool_name, "content_logging": should_log_content}
        if sandbox_id:
            extra_data["sandbox_id"] = sandbox_id
        if duration_ms is not None:
            extra_data["ms"] = int(duration_ms)

        self.logger.info(message, extra=self._enrich_context(extra_data))


# Global logger instance
logger = SandboxLogger()
