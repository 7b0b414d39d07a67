import json
import logging
import sys

from stampbot.logging_config import JSONFormatter, LoggerAdapter, get_logger, mask_phone


def _record(context=None, exc_info=None):
    record = logging.LogRecord("stampbot.dispatcher", logging.INFO, __file__, 1, "Dispatched", None, exc_info)
    if context is not None:
        record.context = context
    return record


class TestMaskPhone:
    def test_keeps_last_four_digits(self):
        assert mask_phone("27821234567") == "*******4567"

    def test_short_values_untouched(self):
        assert mask_phone("123") == "123"
        assert mask_phone(None) is None


class TestJSONFormatter:
    def test_basic_fields(self):
        data = json.loads(JSONFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "stampbot.dispatcher"
        assert data["message"] == "Dispatched"
        assert "context" not in data

    def test_context_is_masked_and_promoted(self):
        data = json.loads(
            JSONFormatter().format(_record({"message_id": "wamid.1", "customer_id": "27821234567", "flow": "demo"}))
        )

        assert data["message_id"] == "wamid.1"
        assert data["customer_id"] == "*******4567"
        assert data["flow"] == "demo"
        assert data["context"]["customer_id"] == "*******4567"

    def test_exception_is_rendered(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            data = json.loads(JSONFormatter().format(_record(exc_info=sys.exc_info())))

        assert "RuntimeError: boom" in data["exception"]


class TestLoggerAdapter:
    def test_call_context_merges_over_bound_context(self):
        adapter = LoggerAdapter(get_logger("test"), {"message_id": "wamid.1", "attempt": 1})

        _, kwargs = adapter.process("msg", {"context": {"attempt": 2}})

        assert kwargs["extra"]["context"] == {"message_id": "wamid.1", "attempt": 2}
