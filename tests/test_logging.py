"""
Structured logging and payload sanitization tests.
"""

import logging

import pytest

from util.logging import StructuredLogger, logger, audit_event, sanitize_payload, _mask_email


@pytest.fixture
def captured(caplog):
    caplog.set_level(logging.DEBUG, logger="signature_bridge")
    return caplog


class TestSanitizePayload:
    """Test redaction of sensitive values."""

    def test_redacts_sensitive_keys(self):
        sanitized = sanitize_payload({"token": "pat-123", "Authorization": "Bearer x", "form_id": "F123"})
        assert sanitized == {"token": "[REDACTED]", "Authorization": "[REDACTED]", "form_id": "F123"}

    def test_redacts_data_uris_anywhere(self):
        sanitized = sanitize_payload({"note": "data:image/png;base64,AAAA", "items": ["data:image/gif;base64,R0lG"]})
        assert sanitized == {"note": "[REDACTED]", "items": ["[REDACTED]"]}

    def test_truncates_long_strings(self):
        sanitized = sanitize_payload({"text": "a" * 150})
        assert sanitized["text"] == "a" * 100 + "..."

    def test_reveal_sensitive(self):
        assert sanitize_payload({"token": "pat-123"}, reveal_sensitive=True) == {"token": "pat-123"}

    def test_passthrough_scalars(self):
        assert sanitize_payload(42) == 42
        assert sanitize_payload(None) is None


class TestStructuredLogger:
    """Test operation log lines."""

    def test_failed_status_logs_error(self, captured):
        logger.log_operation("signature.finalize", "failed", {"form_id": "F123"})
        record = captured.records[-1]
        assert record.levelno == logging.ERROR
        assert "Operation: signature.finalize, Status: failed" in record.getMessage()

    def test_degraded_status_logs_warning(self, captured):
        logger.log_contact_update("jane@example.com", "98765", updated=False, error="HTTP 404")
        record = captured.records[-1]
        assert record.levelno == logging.WARNING
        assert "jane@example.com" not in record.getMessage()
        assert "j***@example.com" in record.getMessage()

    def test_remote_call_redacts_details(self, captured):
        logger.log_remote_call("upload", "success", 1.0, 1.25, {"file_id": "1", "authorization": "Bearer x"})
        message = captured.records[-1].getMessage()
        assert "'duration_ms': 250.0" in message
        assert "Bearer x" not in message

    def test_audit_event(self, captured):
        audit_event("signature.uploaded", {"filename": "signature_1_a.png"}, payload={"signature_base64": "data:image/png;base64,AAAA"})
        message = captured.records[-1].getMessage()
        assert "signature_uploaded" in message
        assert "AAAA" not in message

    def test_no_duplicate_handlers(self):
        first = StructuredLogger("signature_bridge_test")
        second = StructuredLogger("signature_bridge_test")
        assert len(second.logger.handlers) == 1
        assert first.logger is second.logger


def test_mask_email():
    assert _mask_email("jane@example.com") == "j***@example.com"
    assert _mask_email("") == ""
    assert _mask_email("not-an-email") == "not-an-email"
