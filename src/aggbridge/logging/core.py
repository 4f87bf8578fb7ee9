"""Core logging interfaces and data structures for aggbridge.

Defines log levels, the per-entry context carried by tracker messages
(transaction reference, networks, operation), the handler and formatter
interfaces, and the process-wide :class:`LogManager` that loggers dispatch
through.
"""

import json
import os
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class LogLevel(Enum):
    """Log levels."""

    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"

    @property
    def rank(self) -> int:
        return _LEVEL_RANKS[self]


_LEVEL_RANKS = {level: index for index, level in enumerate(LogLevel)}


@dataclass
class LogContext:
    """Log context information."""

    component: Optional[str] = None
    operation: Optional[str] = None
    transaction_ref: Optional[str] = None
    source_network: Optional[int] = None
    destination_network: Optional[int] = None
    correlation_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "component": self.component,
            "operation": self.operation,
            "transaction_ref": self.transaction_ref,
            "source_network": self.source_network,
            "destination_network": self.destination_network,
            "correlation_id": self.correlation_id,
            "metadata": self.metadata,
        }

    def merged_with(self, base: "LogContext") -> "LogContext":
        """Return a context whose unset fields fall back to ``base``."""
        return LogContext(
            component=self.component or base.component,
            operation=self.operation or base.operation,
            transaction_ref=self.transaction_ref or base.transaction_ref,
            source_network=(
                self.source_network
                if self.source_network is not None
                else base.source_network
            ),
            destination_network=(
                self.destination_network
                if self.destination_network is not None
                else base.destination_network
            ),
            correlation_id=self.correlation_id or base.correlation_id,
            metadata={**base.metadata, **self.metadata},
        )


@dataclass
class LogEntry:
    """Log entry data structure."""

    timestamp: float
    level: LogLevel
    message: str
    logger_name: str
    context: LogContext
    exception: Optional[BaseException] = None
    extra: Dict[str, Any] = field(default_factory=dict)
    thread_id: Optional[int] = None
    process_id: Optional[int] = None

    def __post_init__(self):
        if self.thread_id is None:
            self.thread_id = threading.get_ident()
        if self.process_id is None:
            self.process_id = os.getpid()

    def to_dict(self) -> Dict[str, Any]:
        """Convert log entry to dictionary."""
        return {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "message": self.message,
            "logger_name": self.logger_name,
            "context": self.context.to_dict(),
            "exception": str(self.exception) if self.exception else None,
            "extra": self.extra,
            "thread_id": self.thread_id,
            "process_id": self.process_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class LogConfig:
    """Log configuration."""

    def __init__(
        self,
        name: str = "aggbridge",
        level: LogLevel = LogLevel.INFO,
        format_type: str = "text",
        handlers: Optional[List[str]] = None,
    ):
        self.name = name
        self.level = level
        self.format_type = format_type
        self.handlers = handlers or ["console"]


class LogFormatter(ABC):
    """Abstract log formatter."""

    @abstractmethod
    def format(self, entry: LogEntry) -> str:
        """Format log entry."""


class LogHandler(ABC):
    """Abstract log handler."""

    def __init__(self, name: Optional[str] = None):
        self.name = name or self.__class__.__name__
        self.formatter: Optional[LogFormatter] = None
        self.level: LogLevel = LogLevel.DEBUG
        self._lock = threading.RLock()

    def set_formatter(self, formatter: LogFormatter) -> None:
        with self._lock:
            self.formatter = formatter

    def set_level(self, level: LogLevel) -> None:
        with self._lock:
            self.level = level

    def should_handle(self, entry: LogEntry) -> bool:
        with self._lock:
            return entry.level.rank >= self.level.rank

    def format(self, entry: LogEntry) -> str:
        if self.formatter:
            return self.formatter.format(entry)
        return (
            f"{entry.timestamp} [{entry.level.value.upper()}] "
            f"{entry.logger_name}: {entry.message}"
        )

    @abstractmethod
    def emit(self, entry: LogEntry) -> None:
        """Emit log entry."""

    def handle(self, entry: LogEntry) -> None:
        if self.should_handle(entry):
            self.emit(entry)

    def close(self) -> None:
        pass


class LogManager:
    """Log manager for orchestrating logging operations."""

    def __init__(self, config: Optional[LogConfig] = None):
        self.config = config or LogConfig()
        self.loggers: Dict[str, "AggBridgeLogger"] = {}
        self.handlers: Dict[str, LogHandler] = {}
        self.formatters: Dict[str, LogFormatter] = {}
        self._lock = threading.RLock()
        self._context = LogContext()

        self._setup_defaults()

    def _setup_defaults(self) -> None:
        from .formatters import JSONFormatter, TextFormatter
        from .handlers import ConsoleHandler

        self.add_formatter("json", JSONFormatter())
        self.add_formatter("text", TextFormatter())

        console = ConsoleHandler()
        console.set_formatter(
            self.formatters.get(self.config.format_type, self.formatters["text"])
        )
        self.add_handler("console", console)

    def get_logger(self, name: str) -> "AggBridgeLogger":
        with self._lock:
            if name not in self.loggers:
                self.loggers[name] = AggBridgeLogger(name)
            return self.loggers[name]

    def add_handler(self, name: str, handler: LogHandler) -> None:
        with self._lock:
            self.handlers[name] = handler

    def remove_handler(self, name: str) -> None:
        with self._lock:
            handler = self.handlers.pop(name, None)
        if handler is not None:
            handler.close()

    def add_formatter(self, name: str, formatter: LogFormatter) -> None:
        with self._lock:
            self.formatters[name] = formatter

    def set_context(self, context: LogContext) -> None:
        """Set context merged into every entry."""
        with self._lock:
            self._context = context

    def get_context(self) -> LogContext:
        with self._lock:
            return self._context

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level.rank >= self.config.level.rank

    def log(
        self,
        level: LogLevel,
        message: str,
        logger_name: str = "root",
        context: Optional[LogContext] = None,
        exception: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a message."""
        if not self.is_enabled_for(level):
            return

        with self._lock:
            if context is None:
                context = self._context
            else:
                context = context.merged_with(self._context)

            entry = LogEntry(
                timestamp=time.time(),
                level=level,
                message=message,
                logger_name=logger_name,
                context=context,
                exception=exception,
                extra=extra or {},
            )

            for handler_name in self.config.handlers:
                handler = self.handlers.get(handler_name)
                if handler is not None:
                    handler.handle(entry)

    def shutdown(self) -> None:
        with self._lock:
            for handler in self.handlers.values():
                handler.close()

            self.loggers.clear()
            self.handlers.clear()
            self.formatters.clear()


class AggBridgeLogger:
    """Named logger bound to whichever manager is active when it emits.

    Module-level loggers are created at import time; resolving the manager per
    call lets :func:`setup_logging` reconfigure them afterwards.
    """

    def __init__(self, name: str):
        self.name = name

    @property
    def manager(self) -> LogManager:
        return get_log_manager()

    def log(
        self,
        level: LogLevel,
        message: str,
        context: Optional[LogContext] = None,
        exception: Optional[BaseException] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.manager.log(
            level=level,
            message=message,
            logger_name=self.name,
            context=context,
            exception=exception,
            extra=extra,
        )

    def trace(self, message: str, **kwargs) -> None:
        self.log(LogLevel.TRACE, message, **kwargs)

    def debug(self, message: str, **kwargs) -> None:
        self.log(LogLevel.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.log(LogLevel.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.log(LogLevel.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.log(LogLevel.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        self.log(LogLevel.CRITICAL, message, **kwargs)

    def fatal(self, message: str, **kwargs) -> None:
        self.log(LogLevel.FATAL, message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log at ERROR level, attaching the exception being handled."""
        exc_info = sys.exc_info()
        if exc_info[0] is not None:
            kwargs.setdefault("exception", exc_info[1])
        self.log(LogLevel.ERROR, message, **kwargs)


_global_manager: Optional[LogManager] = None
_global_lock = threading.Lock()


def get_log_manager() -> LogManager:
    """Return the active manager, creating a default one on first use."""
    global _global_manager
    with _global_lock:
        if _global_manager is None:
            _global_manager = LogManager()
        return _global_manager


def get_logger(name: str = "root") -> AggBridgeLogger:
    """Get logger instance."""
    return get_log_manager().get_logger(name)


def setup_logging(config: LogConfig) -> LogManager:
    """Replace the active manager with one built from ``config``."""
    global _global_manager
    with _global_lock:
        previous = _global_manager
        _global_manager = LogManager(config)
        manager = _global_manager
    if previous is not None:
        previous.shutdown()
    return manager


def shutdown_logging() -> None:
    global _global_manager
    with _global_lock:
        manager = _global_manager
        _global_manager = None
    if manager is not None:
        manager.shutdown()
