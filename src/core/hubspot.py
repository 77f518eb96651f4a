"""
HubSpot API client - file manager uploads, contact patches and form submission lookups.
One attempt per call, bounded timeouts, no retry.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from .config import UPLOAD_TIMEOUT_SEC, PATCH_TIMEOUT_SEC, get_hubspot_config, get_submission_lookup_mode
from .errors import RemoteUploadError, ContactUpdateError, SubmissionLookupError
from util.logging import logger

UPLOAD_PATH = "/filemanager/api/v3/files/upload"
CONTACT_PATH = "/crm/v3/objects/contacts/{email}"
SUBMISSIONS_PATH = "/form-integrations/v1/submissions/forms/{form_id}"


@dataclass
class RemoteFile:
    """A file as created by the remote file store."""
    id: str
    url: str


@dataclass
class SubmissionRecord:
    """What a submission lookup knows about one form submission."""
    form_id: str
    email: str = ""
    submitted_at: Optional[datetime] = None


class HubSpotClient:
    """Thin bearer-token client over a requests session."""

    def __init__(self, config: Dict[str, Any] = None, session: requests.Session = None):
        self.config = config if config is not None else get_hubspot_config()
        self.session = session or requests.Session()

    def _url(self, path: str) -> str:
        return self.config["api_base"].rstrip("/") + path

    def _headers(self, json_body: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.config['token']}"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def upload_file(self, local_path: Path, mime_type: str, filename: str = None) -> RemoteFile:
        """
        Upload a local file to the file manager as a private file.

        Args:
            local_path: File to upload
            mime_type: MIME type sent with the file part
            filename: Name given to the remote file (defaults to signature_<unix>.<ext>)

        Returns:
            RemoteFile with the created id and url

        Raises:
            RemoteUploadError: transport failure, status other than 201, or a
                body without an `id`
        """
        if filename is None:
            filename = f"signature_{int(time.time())}{local_path.suffix}"

        options = {"access": "PRIVATE", "folderId": self.config.get("folder_id") or ""}
        start_time = time.monotonic()

        try:
            fh = open(local_path, "rb")
        except OSError as e:
            raise RemoteUploadError(f"Local signature file not readable: {e}")

        # requests exceptions subclass OSError; keep them apart from the open above
        with fh:
            try:
                response = self.session.post(
                    self._url(UPLOAD_PATH),
                    files={
                        "file": (filename, fh, mime_type),
                        "options": (None, json.dumps(options)),
                    },
                    headers=self._headers(),
                    timeout=UPLOAD_TIMEOUT_SEC,
                )
            except requests.RequestException as e:
                logger.log_remote_call("upload", "failed", start_time, time.monotonic(), {"error": str(e)})
                raise RemoteUploadError(f"HubSpot upload request failed: {e}")

        end_time = time.monotonic()
        if response.status_code != 201:
            logger.log_remote_call("upload", "failed", start_time, end_time, {"http_status": response.status_code})
            raise RemoteUploadError(
                f"HubSpot upload failed: HTTP {response.status_code} - {response.text[:200]}"
            )

        try:
            result = response.json()
        except ValueError:
            raise RemoteUploadError(f"Invalid HubSpot response: {response.text[:200]}")

        # Older endpoints wrap the created file in an `objects` list
        if isinstance(result, dict) and "id" not in result and result.get("objects"):
            result = result["objects"][0]

        if not isinstance(result, dict) or not result.get("id"):
            raise RemoteUploadError(f"Invalid HubSpot response: {response.text[:200]}")

        remote_file = RemoteFile(id=str(result["id"]), url=result.get("url") or result.get("friendly_url") or "")
        logger.log_remote_call("upload", "success", start_time, end_time, {"file_id": remote_file.id})
        return remote_file

    def update_contact(self, email: str, properties: Dict[str, Any]) -> None:
        """
        Patch contact properties, addressing the contact by email.

        Raises:
            ContactUpdateError: transport failure or a status other than 200
        """
        start_time = time.monotonic()
        try:
            response = self.session.patch(
                self._url(CONTACT_PATH.format(email=quote(email, safe=""))),
                params={"idProperty": "email"},
                data=json.dumps({"properties": properties}),
                headers=self._headers(json_body=True),
                timeout=PATCH_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            logger.log_remote_call("contact_update", "failed", start_time, time.monotonic(), {"error": str(e)})
            raise ContactUpdateError(f"Contact update request failed: {e}")

        end_time = time.monotonic()
        if response.status_code != 200:
            logger.log_remote_call("contact_update", "failed", start_time, end_time, {"http_status": response.status_code})
            raise ContactUpdateError(
                f"Contact update failed: HTTP {response.status_code} - {response.text[:200]}"
            )

        logger.log_remote_call("contact_update", "success", start_time, end_time)

    def get_latest_submission(self, form_id: str) -> Optional[Dict[str, Any]]:
        """Return the most recent raw submission of a form, or None."""
        start_time = time.monotonic()
        try:
            response = self.session.get(
                self._url(SUBMISSIONS_PATH.format(form_id=quote(form_id, safe=""))),
                params={"limit": 1},
                headers=self._headers(),
                timeout=PATCH_TIMEOUT_SEC,
            )
        except requests.RequestException as e:
            logger.log_remote_call("submission_lookup", "failed", start_time, time.monotonic(), {"error": str(e)})
            raise SubmissionLookupError(f"Submission lookup request failed: {e}")

        end_time = time.monotonic()
        if response.status_code != 200:
            logger.log_remote_call("submission_lookup", "failed", start_time, end_time, {"http_status": response.status_code})
            raise SubmissionLookupError(f"Submission lookup failed: HTTP {response.status_code}")

        try:
            results = response.json().get("results") or []
        except (ValueError, AttributeError):
            raise SubmissionLookupError("Invalid submission lookup response")

        logger.log_remote_call("submission_lookup", "success", start_time, end_time, {"results": len(results)})
        return results[0] if results else None


class SubmissionLookup(ABC):
    """Resolves the submission (and its email) behind a form identifier."""

    @abstractmethod
    def lookup(self, form_id: str) -> Optional[SubmissionRecord]:
        """Return the submission record, or None when it cannot be found."""
        pass


class StaticSubmissionLookup(SubmissionLookup):
    """Knows nothing beyond the form id; finalize then skips the contact patch."""

    def lookup(self, form_id: str) -> Optional[SubmissionRecord]:
        return SubmissionRecord(form_id=form_id, email="", submitted_at=datetime.now())


class HubSpotSubmissionLookup(SubmissionLookup):
    """Reads the form's most recent submission and takes its `email` field."""

    def __init__(self, client: HubSpotClient):
        self.client = client

    def lookup(self, form_id: str) -> Optional[SubmissionRecord]:
        submission = self.client.get_latest_submission(form_id)
        if not submission:
            return None

        try:
            email = ""
            for field in submission.get("values") or []:
                if field.get("name") == "email":
                    email = field.get("value") or ""
                    break

            submitted_at = None
            if submission.get("submittedAt"):
                submitted_at = datetime.fromtimestamp(int(submission["submittedAt"]) / 1000)
        except (AttributeError, TypeError, ValueError, OverflowError, OSError) as e:
            raise SubmissionLookupError(f"Invalid submission lookup response: {e}")

        return SubmissionRecord(form_id=form_id, email=email, submitted_at=submitted_at)


def get_submission_lookup(client: HubSpotClient) -> SubmissionLookup:
    """Get configured submission lookup implementation."""
    if get_submission_lookup_mode() == "hubspot":
        return HubSpotSubmissionLookup(client)
    return StaticSubmissionLookup()
