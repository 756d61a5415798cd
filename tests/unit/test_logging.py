"""Unit tests for logging configuration."""

import json
import logging

from authkernel.logging_config import (
    CallContextFilter,
    JsonFormatter,
    configure_logging,
    correlation_scope,
    get_correlation_id,
    get_logger,
    get_operation,
    operation_scope,
)


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("authkernel.test", logging.INFO, __file__, 1, "Granted %s", ("roles",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestCallContext:
    """Tests for correlation and operation scopes."""

    def test_correlation_scope_sets_and_resets(self):
        assert get_correlation_id() is None
        with correlation_scope("req-1"):
            assert get_correlation_id() == "req-1"
        assert get_correlation_id() is None

    def test_operation_scope_mints_correlation_id(self):
        with operation_scope("grant_roles") as correlation_id:
            assert get_operation() == "grant_roles"
            assert get_correlation_id() == correlation_id
            assert len(correlation_id) == 32

        assert get_operation() is None
        assert get_correlation_id() is None

    def test_operation_scope_keeps_caller_correlation_id(self):
        with correlation_scope("req-2"):
            with operation_scope("login_pin") as correlation_id:
                assert correlation_id == "req-2"
            assert get_correlation_id() == "req-2"

    def test_filter_stamps_record(self):
        record = make_record()
        with correlation_scope("req-3"), operation_scope("can_access"):
            CallContextFilter().filter(record)

        assert record.correlation_id == "req-3"
        assert record.operation == "can_access"

    def test_filter_placeholder_without_scope(self):
        record = make_record()
        CallContextFilter().filter(record)

        assert record.correlation_id == "-"
        assert record.operation == "-"

    def test_engine_logger_stamps_before_handlers(self, caplog):
        logger = get_logger("authkernel.test")

        with caplog.at_level("INFO", logger="authkernel.test"):
            with operation_scope("delete_role") as correlation_id:
                logger.info("Deleted role", extra={"role_id": 3})

        record = caplog.records[-1]
        assert record.operation == "delete_role"
        assert record.correlation_id == correlation_id

    def test_engine_logger_filter_added_once(self):
        logger = get_logger("authkernel.test.once")
        get_logger("authkernel.test.once")

        assert len(logger.filters) == 1


class TestJsonFormatter:
    def test_message_and_extra_fields(self):
        record = make_record(correlation_id="req-4", operation="grant_roles", principal_id=7, role_ids=[1, 2])

        payload = json.loads(JsonFormatter().format(record))

        assert payload["message"] == "Granted roles"
        assert payload["level"] == "INFO"
        assert payload["correlation_id"] == "req-4"
        assert payload["operation"] == "grant_roles"
        assert payload["principal_id"] == 7
        assert payload["role_ids"] == [1, 2]
        assert "lineno" not in payload

    def test_placeholders_omitted(self):
        record = make_record(correlation_id="-", operation="-")

        payload = json.loads(JsonFormatter().format(record))

        assert "correlation_id" not in payload
        assert "operation" not in payload

    def test_unserializable_extra_stringified(self):
        record = make_record(error_details={"role_id"})

        payload = json.loads(JsonFormatter().format(record))

        assert payload["error_details"] == "{'role_id'}"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def setup_method(self):
        root = logging.getLogger()
        self._saved = (root.level, root.handlers[:])

    def teardown_method(self):
        root = logging.getLogger()
        level, handlers = self._saved
        root.setLevel(level)
        root.handlers[:] = handlers

    def test_production_uses_json(self):
        configure_logging(log_level="WARNING", environment="production")

        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_debug_overrides_level(self):
        configure_logging(log_level="ERROR", debug=True)

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert not isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_dev_format_renders_foreign_records(self):
        """Records from loggers outside the engine still render."""
        configure_logging(log_level="INFO")
        handler = logging.getLogger().handlers[0]
        record = logging.LogRecord("sqlalchemy.pool", logging.INFO, __file__, 1, "checkout", (), None)

        handler.filter(record)
        line = handler.format(record)

        assert "corr=- op=- checkout" in line
