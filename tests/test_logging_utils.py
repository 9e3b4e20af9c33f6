"""
Tests for structured logging helpers.
"""

import json
import logging
import sys

import pytest

from logserver_storage.logging_utils import (
    StorageLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
    get_storage_logger,
)


def _record(message="stored entry", **extra):
    record = logging.LogRecord(
        name="logserver_storage.memory",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    record.created = 1_700_000_000.5
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def scratch_logger():
    name = "logserver_storage.test_configure"
    yield name
    logging.getLogger(name).handlers.clear()


class TestStructuredJsonFormatter:
    def test_base_fields(self):
        output = json.loads(StructuredJsonFormatter().format(_record()))
        assert output["level"] == "INFO"
        assert output["logger"] == "logserver_storage.memory"
        assert output["message"] == "stored entry"
        assert output["timestamp"] == "2023-11-14T22:13:20.500000+00:00"

    def test_extra_fields_are_copied(self):
        """Context fields are kept; private and unset ones are not."""
        record = _record(namespace="ns", tenant_id="T1", _private="hidden", error=None)
        output = json.loads(StructuredJsonFormatter().format(record))
        assert output["namespace"] == "ns"
        assert output["tenant_id"] == "T1"
        assert "_private" not in output
        assert "error" not in output
        assert "lineno" not in output

    def test_static_fields(self):
        formatter = StructuredJsonFormatter({"service": "logserver"})
        assert json.loads(formatter.format(_record()))["service"] == "logserver"

    def test_unserializable_extra_is_stringified(self):
        output = json.loads(StructuredJsonFormatter().format(_record(payload={1, 2})))
        assert isinstance(output["payload"], str)

    def test_exception_is_included(self):
        try:
            raise RuntimeError("backend down")
        except RuntimeError:
            record = _record()
            record.exc_info = sys.exc_info()
        output = json.loads(StructuredJsonFormatter().format(record))
        assert "backend down" in output["exception"]


class TestStorageLoggerAdapter:
    def test_storage_logger_name(self):
        assert get_storage_logger("redis").name == "logserver_storage.redis"

    def test_adapter_adds_context(self, caplog):
        logger = StorageLoggerAdapter(get_storage_logger("memory"), {"namespace": "ns", "tenant_id": "T1"})
        with caplog.at_level(logging.INFO, logger="logserver_storage.memory"):
            logger.info("purged", extra={"purged_count": 3, "tenant_id": "other"})
        record = caplog.records[-1]
        assert record.namespace == "ns"
        assert record.tenant_id == "T1"
        assert record.purged_count == 3

    def test_bind_extends_context(self, caplog):
        base = StorageLoggerAdapter(get_storage_logger("retention"), {"namespace": "ns"})
        bound = base.bind(tenant_id="T2")
        with caplog.at_level(logging.INFO, logger="logserver_storage.retention"):
            bound.info("sweep")
        record = caplog.records[-1]
        assert (record.namespace, record.tenant_id) == ("ns", "T2")
        assert base.extra == {"namespace": "ns"}


class TestConfigureStructuredLogging:
    def test_replaces_handlers(self, scratch_logger):
        configure_structured_logging(logging.DEBUG, scratch_logger)
        logger = configure_structured_logging(logging.DEBUG, scratch_logger)
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)
        assert logger.level == logging.DEBUG

    def test_level_and_format_from_env(self, monkeypatch, scratch_logger):
        monkeypatch.setenv("LOGSERVER_LOG_LEVEL", "warning")
        monkeypatch.setenv("LOGSERVER_LOG_FORMAT", "text")
        logger = configure_structured_logging(logger_name=scratch_logger)
        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)

    def test_unknown_env_level_uses_info(self, monkeypatch, scratch_logger):
        monkeypatch.setenv("LOGSERVER_LOG_LEVEL", "chatty")
        monkeypatch.delenv("LOGSERVER_LOG_FORMAT", raising=False)
        logger = configure_structured_logging(logger_name=scratch_logger)
        assert logger.level == logging.INFO
        assert isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)

    def test_text_format_without_context(self, capsys, scratch_logger):
        """Records without adapter context still render in text mode."""
        logger = configure_structured_logging(logging.INFO, scratch_logger, json_format=False)
        logger.info("plain")
        assert "[-/-] plain" in capsys.readouterr().out
