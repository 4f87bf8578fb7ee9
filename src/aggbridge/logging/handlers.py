"""Log handlers for aggbridge."""

import sys
import threading
from typing import Any, Dict, List, Optional

from .core import LogEntry, LogHandler, LogLevel


class ConsoleHandler(LogHandler):
    """Console log handler."""

    def __init__(self, stream: Any = None):
        super().__init__()
        self.stream = stream or sys.stderr

    def emit(self, entry: LogEntry) -> None:
        with self._lock:
            if self.stream is None:
                return
            self.stream.write(self.format(entry) + "\n")
            self.stream.flush()

    def close(self) -> None:
        with self._lock:
            if self.stream not in (None, sys.stdout, sys.stderr):
                self.stream.close()
            self.stream = None


class MemoryHandler(LogHandler):
    """Keeps the most recent entries in memory."""

    def __init__(self, max_size: int = 1000):
        super().__init__()
        self.max_size = max_size
        self.buffer: List[Dict[str, Any]] = []

    def emit(self, entry: LogEntry) -> None:
        with self._lock:
            self.buffer.append(
                {
                    "timestamp": entry.timestamp,
                    "level": entry.level.value,
                    "message": entry.message,
                    "logger_name": entry.logger_name,
                    "transaction_ref": entry.context.transaction_ref,
                    "formatted": self.format(entry),
                }
            )

            if len(self.buffer) > self.max_size:
                self.buffer.pop(0)

    def get_logs(self, level: Optional[LogLevel] = None) -> List[Dict[str, Any]]:
        """Get buffered entries, optionally only those at ``level``."""
        with self._lock:
            if level is None:
                return self.buffer.copy()
            return [item for item in self.buffer if item["level"] == level.value]

    def clear_logs(self) -> None:
        with self._lock:
            self.buffer.clear()

    def close(self) -> None:
        self.clear_logs()
