"""Tests for logging core module."""

from unittest.mock import MagicMock, Mock, patch

import pytest

from aggbridge.logging.core import (
    AggBridgeLogger,
    LogConfig,
    LogContext,
    LogEntry,
    LogHandler,
    LogLevel,
    LogManager,
    get_log_manager,
    get_logger,
    setup_logging,
    shutdown_logging,
)

TX_HASH = "0x" + "ab" * 32


class RecordingHandler(LogHandler):
    """Handler keeping the raw entries it receives."""

    def __init__(self):
        super().__init__()
        self.entries = []
        self.closed = False

    def emit(self, entry):
        self.entries.append(entry)

    def close(self):
        self.closed = True


class TestLogLevel:
    """Test LogLevel enum."""

    def test_log_level_values(self):
        """Test log level values."""
        assert LogLevel.TRACE.value == "trace"
        assert LogLevel.DEBUG.value == "debug"
        assert LogLevel.INFO.value == "info"
        assert LogLevel.WARNING.value == "warning"
        assert LogLevel.ERROR.value == "error"
        assert LogLevel.CRITICAL.value == "critical"
        assert LogLevel.FATAL.value == "fatal"

    def test_log_level_rank(self):
        """Test log level ranks follow severity."""
        assert LogLevel.TRACE.rank < LogLevel.DEBUG.rank < LogLevel.INFO.rank
        assert LogLevel.WARNING.rank < LogLevel.ERROR.rank < LogLevel.FATAL.rank


class TestLogContext:
    """Test LogContext functionality."""

    def test_log_context_creation(self):
        """Test creating log context."""
        context = LogContext(
            component="tracker",
            operation="track",
            transaction_ref=TX_HASH,
            source_network=0,
            destination_network=1,
        )

        data = context.to_dict()
        assert data["transaction_ref"] == TX_HASH
        assert data["source_network"] == 0
        assert data["metadata"] == {}

    def test_merged_with_prefers_own_values(self):
        """Test merging keeps set fields and fills the rest from the base."""
        base = LogContext(component="client", correlation_id="run-1", metadata={"a": 1})
        context = LogContext(operation="claim", source_network=0, metadata={"b": 2})

        merged = context.merged_with(base)

        assert merged.component == "client"
        assert merged.operation == "claim"
        assert merged.source_network == 0
        assert merged.correlation_id == "run-1"
        assert merged.metadata == {"a": 1, "b": 2}


class TestLogEntry:
    """Test LogEntry functionality."""

    def test_log_entry_to_dict(self):
        """Test entry serialisation."""
        entry = LogEntry(
            timestamp=1.0,
            level=LogLevel.INFO,
            message="State BRIDGED -> CLAIMED",
            logger_name="aggbridge.bridge.tracker",
            context=LogContext(transaction_ref=TX_HASH),
            exception=ValueError("boom"),
        )

        data = entry.to_dict()

        assert data["level"] == "info"
        assert data["context"]["transaction_ref"] == TX_HASH
        assert data["exception"] == "boom"
        assert entry.thread_id is not None
        assert entry.process_id is not None
        assert '"level": "info"' in entry.to_json()


class TestLogManager:
    """Test LogManager functionality."""

    @pytest.fixture
    def manager(self):
        manager = LogManager(LogConfig(level=LogLevel.INFO, handlers=["recording"]))
        manager.add_handler("recording", RecordingHandler())
        yield manager
        manager.shutdown()

    def test_defaults(self):
        """Test the default formatters and console handler are installed."""
        manager = LogManager()

        assert "json" in manager.formatters
        assert "text" in manager.formatters
        assert "console" in manager.handlers
        manager.shutdown()

    def test_level_filtering(self, manager):
        """Test entries below the configured level are dropped."""
        handler = manager.handlers["recording"]

        manager.log(LogLevel.DEBUG, "hidden")
        manager.log(LogLevel.WARNING, "shown")

        assert [entry.message for entry in handler.entries] == ["shown"]

    def test_global_context_is_merged(self, manager):
        """Test the manager context fills unset entry fields."""
        handler = manager.handlers["recording"]
        manager.set_context(LogContext(component="tracker"))

        manager.log(LogLevel.INFO, "message", context=LogContext(transaction_ref=TX_HASH))
        manager.log(LogLevel.INFO, "plain")

        assert handler.entries[0].context.component == "tracker"
        assert handler.entries[0].context.transaction_ref == TX_HASH
        assert handler.entries[1].context.component == "tracker"
        assert manager.get_context().component == "tracker"

    def test_only_configured_handlers_receive_entries(self, manager):
        """Test handlers not named in the config stay silent."""
        other = RecordingHandler()
        manager.add_handler("other", other)

        manager.log(LogLevel.ERROR, "message")

        assert other.entries == []

    def test_remove_handler_closes_it(self, manager):
        """Test removing a handler closes it."""
        handler = manager.handlers["recording"]

        manager.remove_handler("recording")

        assert handler.closed
        assert "recording" not in manager.handlers

    def test_get_logger_is_cached(self, manager):
        """Test loggers are cached by name."""
        assert manager.get_logger("a") is manager.get_logger("a")


class TestAggBridgeLogger:
    """Test AggBridgeLogger functionality."""

    def setup_method(self):
        self.manager = setup_logging(LogConfig(level=LogLevel.TRACE, handlers=["recording"]))
        self.handler = RecordingHandler()
        self.manager.add_handler("recording", self.handler)

    def teardown_method(self):
        shutdown_logging()

    def test_level_methods(self):
        """Test every level method emits at its level."""
        logger = AggBridgeLogger("test")

        logger.trace("t")
        logger.debug("d")
        logger.info("i")
        logger.warning("w")
        logger.error("e")
        logger.critical("c")
        logger.fatal("f")

        assert [entry.level for entry in self.handler.entries] == list(LogLevel)
        assert all(entry.logger_name == "test" for entry in self.handler.entries)

    def test_exception_attaches_current_error(self):
        """Test exception() records the exception being handled."""
        logger = AggBridgeLogger("test")

        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("failed")

        entry = self.handler.entries[0]
        assert entry.level == LogLevel.ERROR
        assert isinstance(entry.exception, ValueError)

    def test_logger_follows_reconfiguration(self):
        """Test loggers created earlier emit through the new manager."""
        logger = get_logger("early")
        manager = setup_logging(LogConfig(handlers=["second"]))
        second = RecordingHandler()
        manager.add_handler("second", second)

        logger.info("after")

        assert [entry.message for entry in second.entries] == ["after"]
        assert self.handler.entries == []

    def test_setup_logging_shuts_down_previous(self):
        """Test replacing the manager closes the old handlers."""
        setup_logging(LogConfig())

        assert self.handler.closed
        assert get_log_manager() is not self.manager


class TestModuleFunctions:
    """Test module level helpers."""

    def teardown_method(self):
        shutdown_logging()

    def test_get_log_manager_creates_default(self):
        """Test a default manager is created on first use."""
        shutdown_logging()

        manager = get_log_manager()

        assert isinstance(manager, LogManager)
        assert get_log_manager() is manager
        assert manager.config.level == LogLevel.INFO

    def test_shutdown_logging(self):
        """Test shutdown closes handlers of the active manager."""
        manager = get_log_manager()
        handler = Mock(spec=LogHandler)
        manager.add_handler("mock", handler)

        shutdown_logging()

        handler.close.assert_called_once()
