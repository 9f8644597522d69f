"""Tests for observability utilities."""

import json
import logging

from physiohub.observability.correlation import (
    generate_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from physiohub.observability.logging import JsonFormatter, get_logger
from physiohub.observability.redaction import (
    hash_identifier,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 66 99652-5791")
        assert "99652" not in result
        assert "[REDACTED]" in result

    def test_redact_bare_digits(self):
        assert "5566996525791" not in redact_string("sender 5566996525791")

    def test_redact_jid(self):
        result = redact_string("from 5566996525791@s.whatsapp.net")
        assert "5566996525791" not in result
        assert "whatsapp" not in result

    def test_redact_email(self):
        result = redact_string("Email: user@example.com")
        assert "user@example.com" not in result

    def test_ids_untouched(self):
        assert redact_string("appt-1234567890") == "appt-1234567890"
        assert redact_string("MSG-0001-ABCDEF") == "MSG-0001-ABCDEF"

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"phone": "66996525791", "name": "Maria"})
        assert "66996525791" not in result
        assert "Maria" not in result
        assert "phone" in result

    def test_redact_value_collections_only_len(self):
        assert redact_value(["a", "b", "c"]) == "list(len=3)"
        assert redact_value({"x", "y"}) == "list(len=2)"

    def test_redact_value_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5566996525791", count=42)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"

    def test_hash_identifier(self):
        h = hash_identifier("5566996525791@s.whatsapp.net")
        assert len(h) == 12
        assert h == hash_identifier("5566996525791@s.whatsapp.net")
        assert h != hash_identifier("5566996525792@s.whatsapp.net")


class TestCorrelation:
    def test_set_and_reset(self):
        token = set_correlation_id("abc")
        try:
            assert get_correlation_id() == "abc"
        finally:
            reset_correlation_id(token)
        assert get_correlation_id() == ""

    def test_generate_unique(self):
        assert generate_correlation_id() != generate_correlation_id()


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("physiohub.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_fields(self):
        token = set_correlation_id("corr-9")
        try:
            out = json.loads(JsonFormatter().format(self._record(extra_fields={"k": "v"})))
        finally:
            reset_correlation_id(token)
        assert out["message"] == "hello"
        assert out["level"] == "INFO"
        assert out["correlationId"] == "corr-9"
        assert out["k"] == "v"

    def test_non_ascii_kept(self):
        out = JsonFormatter().format(self._record(extra_fields={"msg": "confirmação"}))
        assert "confirmação" in out


class TestGetLogger:
    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")
        logger = get_logger("physiohub.test.level_env")
        assert logger.level == logging.WARNING

    def test_invalid_level_defaults_to_info(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        logger = get_logger("physiohub.test.level_invalid")
        assert logger.level == logging.INFO

    def test_single_handler(self):
        logger = get_logger("physiohub.test.handlers")
        get_logger("physiohub.test.handlers")
        assert len(logger.handlers) == 1
