"""aggbridge logging system.

Structured logging with per-transaction context:

- Log levels from TRACE to FATAL
- Context carrying the transaction reference and networks
- JSON and text formatters
- Console and in-memory handlers
"""

from .core import (
    AggBridgeLogger,
    LogConfig,
    LogContext,
    LogEntry,
    LogFormatter,
    LogHandler,
    LogLevel,
    LogManager,
    get_log_manager,
    get_logger,
    setup_logging,
    shutdown_logging,
)
from .formatters import JSONFormatter, TextFormatter
from .handlers import ConsoleHandler, MemoryHandler

__all__ = [
    "AggBridgeLogger",
    "LogConfig",
    "LogContext",
    "LogEntry",
    "LogFormatter",
    "LogHandler",
    "LogLevel",
    "LogManager",
    "get_log_manager",
    "get_logger",
    "setup_logging",
    "shutdown_logging",
    "JSONFormatter",
    "TextFormatter",
    "ConsoleHandler",
    "MemoryHandler",
]
