"""
Declara Logger
==============

Structured logging for the annotation compiler.

Records carry key=value context (structure, field, hash, ...) and are
rendered as text or JSON lines. Package loggers default to the level in
``logging.level`` so that compilation stays silent unless asked.

Example:
    logger = get_logger("declara.generator")
    logger.debug("Compiled validation", struct="User", fields=3)
"""

from __future__ import annotations

import logging
import sys
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, List, Optional, TextIO, Union

import orjson

from declara.core.config import get_config


class LogLevel(IntEnum):
    """Log levels, numerically equal to the ``logging`` constants."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL

    @classmethod
    def parse(cls, value: Union[str, int, "LogLevel"]) -> "LogLevel":
        """Accept a level name ("debug") or number."""
        if not isinstance(value, str):
            return cls(value)
        try:
            return cls[value.strip().upper()]
        except KeyError:
            raise ValueError(f"unknown log level {value!r}") from None


@dataclass
class LogRecord:
    """One log event with its context."""

    level: LogLevel
    message: str
    logger_name: str = "declara"
    context: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    created: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.created.isoformat(),
            "level": self.level.name,
            "logger": self.logger_name,
            "message": self.message,
        }
        if self.context:
            data["context"] = dict(self.context)
        if self.exception is not None:
            data["exception"] = {
                "type": type(self.exception).__name__,
                "message": str(self.exception),
            }
        return data


def _render_exception(exc: BaseException) -> str:
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


class LogFormatter:
    """Turns a record into one output entry."""

    def format(self, record: LogRecord) -> str:
        raise NotImplementedError


class TextFormatter(LogFormatter):
    """
    Human-readable lines.

    Example output:
        2024-01-15 10:30:45 [DEBUG] declara.generator: Compiled validation struct=User fields=3
    """

    LEVEL_COLORS = {
        LogLevel.DEBUG: "\033[36m",
        LogLevel.INFO: "\033[32m",
        LogLevel.WARNING: "\033[33m",
        LogLevel.ERROR: "\033[31m",
        LogLevel.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(
        self,
        template: str = "{timestamp} [{level}] {logger}: {message}",
        time_format: str = "%Y-%m-%d %H:%M:%S",
        colors: bool = False,
    ) -> None:
        self.template = template
        self.time_format = time_format
        self.colors = colors

    def _level_label(self, level: LogLevel) -> str:
        if not self.colors:
            return level.name
        return f"{self.LEVEL_COLORS[level]}{level.name}{self.RESET}"

    def format(self, record: LogRecord) -> str:
        message = record.message
        if record.context:
            message += " " + " ".join(f"{key}={value}" for key, value in record.context.items())

        line = self.template.format(
            timestamp=record.created.strftime(self.time_format),
            level=self._level_label(record.level),
            logger=record.logger_name,
            message=message,
        )
        if record.exception is not None:
            line += "\n" + _render_exception(record.exception)
        return line


class JsonFormatter(LogFormatter):
    """One JSON object per line."""

    def format(self, record: LogRecord) -> str:
        return orjson.dumps(record.to_dict(), default=str).decode()


class StreamHandler:
    """Writes formatted records to a stream (stderr by default)."""

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        formatter: Optional[LogFormatter] = None,
        level: LogLevel = LogLevel.DEBUG,
    ) -> None:
        self.stream = stream
        self.formatter = formatter if formatter is not None else TextFormatter()
        self.level = level

    def handle(self, record: LogRecord) -> None:
        if record.level < self.level:
            return
        # sys.stderr is looked up per write
        stream = self.stream if self.stream is not None else sys.stderr
        stream.write(self.formatter.format(record) + "\n")
        stream.flush()


class Logger:
    """
    Structured logger.

    Example:
        logger = Logger("declara.generator")
        logger.debug("Compiled validation", struct="User")

        bound = logger.with_context(struct="User")
        bound.debug("Resolved validator", validator="RangeValidation")
    """

    def __init__(
        self,
        name: str = "declara",
        level: LogLevel = LogLevel.WARNING,
        handlers: Optional[List[StreamHandler]] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.name = name
        self.level = level
        self._handlers = handlers if handlers is not None else []
        self._context: Dict[str, Any] = dict(context or {})

    def add_handler(self, handler: StreamHandler) -> "Logger":
        self._handlers.append(handler)
        return self

    def with_context(self, **context: Any) -> "Logger":
        """Logger sharing this one's handlers, with extra context."""
        return Logger(self.name, self.level, self._handlers, {**self._context, **context})

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self.level

    def log(
        self,
        level: LogLevel,
        message: str,
        exception: Optional[BaseException] = None,
        **context: Any,
    ) -> None:
        if not self.is_enabled_for(level):
            return
        record = LogRecord(
            level=level,
            message=message,
            logger_name=self.name,
            context={**self._context, **context},
            exception=exception,
        )
        for handler in self._handlers:
            handler.handle(record)

    def debug(self, message: str, **context: Any) -> None:
        self.log(LogLevel.DEBUG, message, **context)

    def info(self, message: str, **context: Any) -> None:
        self.log(LogLevel.INFO, message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self.log(LogLevel.WARNING, message, **context)

    def error(self, message: str, exception: Optional[BaseException] = None, **context: Any) -> None:
        self.log(LogLevel.ERROR, message, exception, **context)


# Package loggers by name
_loggers: Dict[str, Logger] = {}

# Handlers shared by every package logger
_handlers: List[StreamHandler] = []


def _default_formatter() -> LogFormatter:
    if get_config().get("logging.format", "text") == "json":
        return JsonFormatter()
    return TextFormatter()


def get_logger(name: str = "declara", level: Optional[LogLevel] = None) -> Logger:
    """
    Get or create a package logger.

    Args:
        name: Logger name, conventionally ``declara.<module>``
        level: Log level (defaults to ``logging.level`` from config)
    """
    logger = _loggers.get(name)
    if logger is None:
        if level is None:
            level = LogLevel.parse(get_config().get("logging.level", "WARNING"))
        if not _handlers:
            _handlers.append(StreamHandler(formatter=_default_formatter()))
        logger = _loggers[name] = Logger(name=name, level=level, handlers=_handlers)
    return logger


def configure_logging(
    level: Union[str, LogLevel] = LogLevel.INFO,
    format: str = "text",
    stream: Optional[TextIO] = None,
    colors: bool = False,
) -> Logger:
    """
    Reconfigure every package logger.

    Args:
        level: Log level
        format: "text" or "json"
        stream: Output stream (stderr by default)
        colors: Colored level names in text output

    Returns:
        The root ``declara`` logger
    """
    level = LogLevel.parse(level)
    formatter: LogFormatter = JsonFormatter() if format == "json" else TextFormatter(colors=colors)

    _handlers[:] = [StreamHandler(stream=stream, formatter=formatter, level=level)]
    root = get_logger("declara", level)
    for logger in _loggers.values():
        logger.level = level
    return root
