"""Tests for observability utilities."""

import json
import logging

from warelay.observability.correlation import (
    correlation_scope,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from warelay.observability.logging import JsonFormatter
from warelay.observability.redaction import (
    hash_identifier,
    recipient_context,
    redact_string,
    redact_value,
    safe_log_context,
)


class TestRedaction:
    """Tests for redaction helpers."""

    def test_redact_phone_number(self):
        result = redact_string("Call me at +55 11 99999-8888")
        assert "99999" not in result
        assert "[REDACTED]" in result

    def test_redact_email(self):
        result = redact_string("Email: user@example.com")
        assert "user@example.com" not in result
        assert "[REDACTED]" in result

    def test_redact_signed_url_signature(self):
        url = "https://bucket.s3.amazonaws.com/k.jpg?X-Amz-Expires=3600&X-Amz-Signature=abcdef123"
        result = redact_string(url)
        assert "abcdef123" not in result
        assert "X-Amz-Signature=[REDACTED]" in result

    def test_redact_value_dict_only_keys(self):
        result = redact_value({"password": "secret123", "user": "john"})
        assert "secret123" not in result
        assert "john" not in result
        assert "password" in result

    def test_redact_value_list_only_len(self):
        result = redact_value(["a", "b", "c"])
        assert "len=3" in result

    def test_safe_log_context(self):
        ctx = safe_log_context(phone="+5511999998888", count=42, ok=True)
        assert "[REDACTED]" in ctx["phone"]
        assert ctx["count"] == "42"
        assert ctx["ok"] == "true"

    def test_hash_identifier_is_short_and_stable(self):
        assert hash_identifier("5511888888888") == hash_identifier("5511888888888")
        assert len(hash_identifier("5511888888888")) == 12
        assert "5511888888888" not in hash_identifier("5511888888888")

    def test_recipient_context_hashes_key(self):
        ctx = recipient_context("5511888888888", message_type="text")
        assert ctx["to_hash"] == hash_identifier("5511888888888")
        assert ctx["message_type"] == "text"
        assert "5511888888888" not in json.dumps(ctx)


class TestCorrelation:
    def test_scope_sets_and_restores(self):
        token = set_correlation_id("outer")
        try:
            with correlation_scope("inner") as cid:
                assert cid == "inner"
                assert get_correlation_id() == "inner"
            assert get_correlation_id() == "outer"
        finally:
            reset_correlation_id(token)

    def test_scope_generates_id_when_empty(self):
        with correlation_scope("") as cid:
            assert cid
            assert get_correlation_id() == cid


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("warelay.test", logging.INFO, __file__, 1, "hello", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_output_is_json_with_extra_fields(self):
        output = JsonFormatter().format(self._record(extra_fields={"to_hash": "abc"}))
        data = json.loads(output)
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["to_hash"] == "abc"

    def test_includes_correlation_id(self):
        with correlation_scope("cid-123"):
            data = json.loads(JsonFormatter().format(self._record()))
        assert data["correlationId"] == "cid-123"
