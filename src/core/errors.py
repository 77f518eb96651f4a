"""
Error taxonomy for the upload-and-link operations.
Each error carries the HTTP status the API layer answers with.
"""


class SignatureError(Exception):
    """Base class for every failure surfaced by store or finalize."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SignatureValidationError(SignatureError):
    """Malformed, wrong-type, empty or oversized input."""
    status_code = 400


class SignatureStorageError(SignatureError):
    """The transient storage directory or file could not be written or read."""
    status_code = 500


class ConfigurationError(SignatureError):
    """Remote API token or account identifier missing."""
    status_code = 500


class SubmissionLookupError(SignatureError):
    """The form submission could not be resolved."""
    status_code = 502


class RemoteUploadError(SignatureError):
    """Upload to the remote file store failed (transport, status or body)."""
    status_code = 502


class AlreadyLinkedError(SignatureError):
    """The stored reference was already linked by an earlier finalize."""
    status_code = 409


class ContactUpdateError(SignatureError):
    """Contact patch failed. Best-effort: never escapes finalize."""
    status_code = 502
