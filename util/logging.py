"""
Structured operation logging for the signature bridge.
Every server-side operation and coordinator transition is reported through
this module so that tokens and image payloads never reach a log line.
"""

import logging
from typing import Any, Dict, List

DEFAULT_SENSITIVE_FIELDS = ['token', 'authorization', 'signature_base64', 'payload', 'data', 'secret', 'password']


class StructuredLogger:
    """Structured logger for store, finalize, remote-call and housekeeping operations."""

    def __init__(self, name: str = "signature_bridge"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("skipped", "rejected", "degraded"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_signature_stored(self, filename: str, size: int, image_type: str, status: str = "success"):
        """Log a signature image written to transient storage."""
        details = {"filename": filename, "size": size, "type": image_type}
        self.log_operation("signature.store", status, details)

    def log_signature_rejected(self, reason: str):
        """Log a store request rejected by validation."""
        self.log_operation("signature.store", "rejected", {"reason": reason[:100]})

    def log_remote_call(self, call: str, status: str, start_time: float, end_time: float, details: Dict[str, Any] = None):
        """Log a call against the remote CRM API with its duration."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(sanitize_payload(details))

        self.log_operation(f"hubspot.{call}", status, log_details)

    def log_contact_update(self, email: str, file_id: str, updated: bool, error: str = None):
        """Log the best-effort contact patch."""
        log_details = {"email": _mask_email(email), "file_id": file_id, "updated": updated}
        if error:
            log_details["error"] = error[:100]

        self.log_operation("contact.update", "success" if updated else "degraded", log_details)

    def log_finalize(self, form_id: str, file_id: str = None, status: str = "success", details: Dict[str, Any] = None):
        """Log the outcome of a finalize call."""
        log_details = {"form_id": form_id}
        if file_id:
            log_details["file_id"] = file_id
        if details:
            log_details.update(details)

        self.log_operation("signature.finalize", status, log_details)

    def log_cleanup(self, files_scanned: int, files_removed: int, bytes_removed: int, status: str = "success"):
        """Log a housekeeping sweep."""
        log_details = {
            "files_scanned": files_scanned,
            "files_removed": files_removed,
            "bytes_removed": bytes_removed
        }
        self.log_operation("housekeeping.cleanup", status, log_details)

    def log_coordinator_transition(self, from_state: str, to_state: str, trigger: str):
        """Log a coordinator state machine transition."""
        log_details = {"from": from_state, "to": to_state, "trigger": trigger}
        self.log_operation("coordinator.transition", "success", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def _mask_email(email: str) -> str:
    if not email or "@" not in email:
        return email or ""
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None, sensitive_fields: List[str] = None):
    """General audit event logging with privacy controls."""
    if sensitive_fields is None:
        sensitive_fields = DEFAULT_SENSITIVE_FIELDS

    log_details = identifiers.copy() if identifiers else {}

    if payload:
        log_details["payload"] = sanitize_payload(payload, sensitive_fields=sensitive_fields)

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = DEFAULT_SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or str(k).lower() not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Image payloads are never logged, even under a non-sensitive key
        if payload.startswith("data:"):
            return "[REDACTED]"
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
