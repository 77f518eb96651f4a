"""
HTTP client for the signature endpoints, used by the coordinator.
"""

from typing import Any, Dict

import requests

from util.logging import logger


class TransportError(Exception):
    """The request did not complete (network failure, timeout, unreadable reply)."""
    pass


class RequestRejectedError(TransportError):
    """The server answered with success=false."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class OrchestratorClient:
    """Calls the store and finalize operations over HTTP."""

    def __init__(
        self,
        base_url: str,
        store_path: str = "/signature/upload",
        finalize_path: str = "/signature/process",
        timeout: float = 30.0,
        session: requests.Session = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.store_path = store_path
        self.finalize_path = finalize_path
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(self.base_url + path, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"Request to {path} failed: {e}")

        try:
            payload = response.json()
        except ValueError:
            raise TransportError(f"Unreadable response from {path}: HTTP {response.status_code}")

        if not isinstance(payload, dict) or "success" not in payload:
            raise TransportError(f"Unexpected response from {path}: HTTP {response.status_code}")

        if not payload["success"]:
            message = (payload.get("data") or {}).get("message", "Request rejected")
            logger.warning(f"{path} rejected: {message}")
            raise RequestRejectedError(message)

        return payload.get("data") or {}

    def store(self, data_url: str) -> Dict[str, Any]:
        """Send an encoded signature; returns the stored image reference."""
        return self._post(self.store_path, {"signature_base64": data_url})

    def finalize(self, form_id: str, signature_path: str) -> Dict[str, Any]:
        """Ask the server to upload and link a stored signature."""
        return self._post(self.finalize_path, {"form_id": form_id, "signature_path": signature_path})
