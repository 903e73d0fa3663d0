"""Unit tests for structured logging configuration."""

from unittest.mock import MagicMock, patch

import pytest

from retention_service.observability.logging import (
    LogContext,
    StructuredLogger,
    correlation_id_scope,
    get_correlation_id,
    get_log_context,
    setup_logging,
)


@pytest.mark.unit
class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    def test_init(self):
        """Test StructuredLogger initialization."""
        logger = StructuredLogger()
        assert logger._configured is False

    @patch("retention_service.observability.logging.logging.basicConfig")
    @patch("retention_service.observability.logging.structlog.configure")
    def test_setup_logging_json_format(self, mock_configure, mock_basic_config):
        """Test setup with JSON format."""
        logger = StructuredLogger()
        logger.setup_logging(json_format=True, log_level="DEBUG")

        assert logger._configured is True
        processors = mock_configure.call_args.kwargs["processors"]
        assert any("JSONRenderer" in str(type(p)) for p in processors)

    @patch("retention_service.observability.logging.logging.basicConfig")
    @patch("retention_service.observability.logging.structlog.configure")
    def test_setup_logging_console_format(self, mock_configure, mock_basic_config):
        """Test setup with console format."""
        logger = StructuredLogger()
        logger.setup_logging(json_format=False)

        processors = mock_configure.call_args.kwargs["processors"]
        assert any("ConsoleRenderer" in str(type(p)) for p in processors)

    @patch("retention_service.observability.logging.logging.basicConfig")
    @patch("retention_service.observability.logging.structlog.configure")
    def test_setup_logging_already_configured(self, mock_configure, mock_basic_config):
        """Test setup is a no-op once configured."""
        logger = StructuredLogger()
        logger.setup_logging()
        logger.setup_logging()

        mock_configure.assert_called_once()

    @patch("retention_service.observability.logging.logging.basicConfig")
    @patch("retention_service.observability.logging.structlog.configure")
    def test_setup_logging_with_extra_processors(self, mock_configure, mock_basic_config):
        """Test extra processors are included."""
        extra = MagicMock()
        logger = StructuredLogger()
        logger.setup_logging(extra_processors=[extra])

        assert extra in mock_configure.call_args.kwargs["processors"]

    def test_add_trace_context_with_invalid_span(self):
        """Test no trace ids are added outside a span."""
        logger = StructuredLogger()
        mock_span = MagicMock()
        mock_span.get_span_context.return_value.is_valid = False

        with patch("opentelemetry.trace.get_current_span", return_value=mock_span):
            result = logger._add_trace_context(None, "info", {})

        assert "trace_id" not in result

    def test_add_trace_context_with_valid_span(self):
        """Test trace ids are formatted as hex."""
        logger = StructuredLogger()
        mock_span = MagicMock()
        context = mock_span.get_span_context.return_value
        context.is_valid = True
        context.trace_id = 1
        context.span_id = 2

        with patch("opentelemetry.trace.get_current_span", return_value=mock_span):
            result = logger._add_trace_context(None, "info", {})

        assert result["trace_id"] == "0" * 31 + "1"
        assert result["span_id"] == "0" * 15 + "2"

    def test_add_correlation_id(self):
        """Test adding the run correlation ID."""
        logger = StructuredLogger()

        with correlation_id_scope("run-123"):
            result = logger._add_correlation_id(None, "info", {})

        assert result["correlation_id"] == "run-123"
        assert get_correlation_id() is None

    def test_add_log_context_keeps_explicit_fields(self):
        """Test context values never override event fields."""
        logger = StructuredLogger()

        with LogContext(rule_id="rule-1", scope="file"):
            result = logger._add_log_context(None, "info", {"scope": "knowledge"})

        assert result == {"rule_id": "rule-1", "scope": "knowledge"}


@pytest.mark.unit
class TestLogContext:
    """Tests for LogContext."""

    def test_nested_contexts_merge(self):
        with LogContext(correlation_id="run-1", manager="RETENTION_MANAGER"):
            with LogContext(rule_id="rule-1"):
                assert get_log_context() == {"manager": "RETENTION_MANAGER", "rule_id": "rule-1"}
                assert get_correlation_id() == "run-1"
            assert get_log_context() == {"manager": "RETENTION_MANAGER"}

        assert get_log_context() == {}
        assert get_correlation_id() is None

    def test_context_reset_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext(rule_id="rule-1"):
                raise RuntimeError("boom")

        assert get_log_context() == {}


@pytest.mark.unit
@patch("retention_service.observability.logging.logging.basicConfig")
@patch("retention_service.observability.logging.structlog.configure")
def test_setup_logging_global(mock_configure, mock_basic_config):
    """Test global setup returns a configured logger manager."""
    structured = setup_logging(json_format=False, log_level="WARNING")

    assert structured._configured is True
    mock_basic_config.assert_called_once()
