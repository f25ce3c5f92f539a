"""Tests for redaction, correlation context and JSON logging."""

import json
import logging
import sys

from guestcomms.observability.correlation import (
    get_correlation_id,
    get_job_name,
    job_context,
    reset_correlation_id,
    set_correlation_id,
)
from guestcomms.observability.logging import JsonFormatter
from guestcomms.observability.redaction import (
    MAX_ERROR_LENGTH,
    describe_error,
    redact_string,
    redact_value,
    safe_log_context,
)


def _record(msg="hello", **extra):
    record = logging.LogRecord("guestcomms.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRedaction:
    def test_redacts_phone_and_email(self):
        text = redact_string("call +81 90 1234 5678 or mail hanako@example.jp")
        assert "1234" not in text
        assert "example.jp" not in text
        assert text.count("[REDACTED]") == 2

    def test_payload_dict_shows_keys_only(self):
        assert redact_value({"guest_name": "Hanako", "wifi_password": "pw"}) == (
            "dict(keys=['guest_name', 'wifi_password'])"
        )

    def test_scalars(self):
        assert redact_value(None) == "null"
        assert redact_value(True) == "true"
        assert redact_value(3) == "3"
        assert redact_value([1, 2]) == "list(len=2)"

    def test_safe_log_context(self):
        ctx = safe_log_context(reservation_id="res-1", phone="+81 90 1234 5678")
        assert ctx == {"reservation_id": "res-1", "phone": "[REDACTED]"}


class TestDescribeError:
    def test_type_and_message(self):
        assert describe_error(ValueError("bad time")) == "ValueError: bad time"

    def test_empty_message(self):
        assert describe_error(TimeoutError()) == "TimeoutError"

    def test_redacts_and_truncates(self):
        text = describe_error(RuntimeError("guest@example.com " + "x" * 1000))
        assert "guest@example.com" not in text
        assert len(text) == MAX_ERROR_LENGTH
        assert text.endswith("...")


class TestCorrelation:
    def test_set_and_reset(self):
        token = set_correlation_id("cid-1")
        assert get_correlation_id() == "cid-1"
        reset_correlation_id(token)
        assert get_correlation_id() == ""

    def test_job_context_scopes_name_and_id(self):
        with job_context("dispatch_due") as cid:
            assert get_job_name() == "dispatch_due"
            assert get_correlation_id() == cid
        assert get_job_name() == ""
        assert get_correlation_id() == ""


class TestJsonFormatter:
    def test_base_fields(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert data["service"] == "guestcomms"
        assert data["level"] == "INFO"
        assert data["message"] == "hello"
        assert "correlationId" not in data
        assert "job" not in data

    def test_job_and_extra_fields(self):
        with job_context("reconcile_windows") as cid:
            line = JsonFormatter().format(_record(extra_fields={"generated": "2"}))
        data = json.loads(line)
        assert data["job"] == "reconcile_windows"
        assert data["correlationId"] == cid
        assert data["generated"] == "2"

    def test_exception(self):
        try:
            raise KeyError("missing")
        except KeyError:
            record = _record()
            record.exc_info = sys.exc_info()
        data = json.loads(JsonFormatter().format(record))
        assert "KeyError" in data["exception"]
