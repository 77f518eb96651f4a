"""
Upload-and-link orchestration.

store() persists a captured signature to transient storage. finalize() uploads
a stored signature to the HubSpot file manager and then annotates the contact
behind the form submission. The upload is the primary outcome and must
succeed; the contact patch is best-effort and only recorded in the result.
"""

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .config import get_hubspot_config, is_link_guard_enabled
from .errors import (
    ConfigurationError,
    SignatureValidationError,
    SubmissionLookupError,
    AlreadyLinkedError,
    ContactUpdateError,
)
from .hubspot import HubSpotClient, RemoteFile, SubmissionLookup, get_submission_lookup
from .storage import (
    StoredImageReference,
    store_image,
    resolve_reference,
    mime_type_for,
    is_linked,
    mark_linked,
    read_link_marker,
)
from util.logging import logger


@dataclass
class ContactOutcome:
    """Secondary outcome: the contact patch attempted for a resolved email."""
    email: str
    updated: bool
    error: Optional[str] = None


@dataclass
class LinkResult:
    """Two-phase result of finalize: primary upload, optional contact patch."""
    form_id: str
    primary: RemoteFile
    secondary: Optional[ContactOutcome] = None

    @property
    def contact_updated(self) -> bool:
        return bool(self.secondary and self.secondary.updated)

    def to_response(self) -> Dict[str, Any]:
        """Flatten into the payload returned to the coordinator."""
        return {
            "form_id": self.form_id,
            "hubspot_file_id": self.primary.id,
            "hubspot_file_url": self.primary.url,
            "contact_updated": self.contact_updated,
            "message": "Signature processed successfully",
        }


def build_contact_properties(file_id: str) -> Dict[str, Any]:
    """Contact properties written once a signature file exists."""
    return {
        "signature_file_id": file_id,
        "signature_date": datetime.now().astimezone().isoformat(timespec="seconds"),
        "signature_status": "signed",
        "last_signature_update": int(time.time()),
    }


class SignatureOrchestrator:
    """
    Server-side operations behind the signature endpoints.

    The client and lookup are optional so tests can inject fakes; by default
    both are built per call from the current configuration.
    """

    def __init__(self, client: HubSpotClient = None, lookup: SubmissionLookup = None):
        self._client = client
        self._lookup = lookup

    def _get_client(self, hubspot_config: Dict[str, Any]) -> HubSpotClient:
        return self._client or HubSpotClient(hubspot_config)

    def store(self, payload: str) -> StoredImageReference:
        """Validate and persist an encoded signature image."""
        return store_image(payload)

    def finalize(self, form_id: str, signature_path: str) -> LinkResult:
        """
        Upload a stored signature and link it to the submission's contact.

        Raises:
            ConfigurationError: token or portal id missing
            SignatureValidationError: missing inputs or unknown reference
            SubmissionLookupError: submission could not be resolved
            AlreadyLinkedError: reference already uploaded by an earlier call
            RemoteUploadError: the upload failed; no contact patch is attempted
        """
        hubspot_config = get_hubspot_config()
        if not hubspot_config["token"] or not hubspot_config["portal_id"]:
            raise ConfigurationError("HubSpot configuration missing")

        form_id = (form_id or "").strip()
        signature_path = (signature_path or "").strip()
        if not form_id or not signature_path:
            raise SignatureValidationError("Form ID and signature path required")

        client = self._get_client(hubspot_config)
        lookup = self._lookup or get_submission_lookup(client)

        submission = lookup.lookup(form_id)
        if not submission:
            raise SubmissionLookupError("Could not retrieve form submission data")

        local_path = resolve_reference(signature_path)
        if is_link_guard_enabled() and is_linked(local_path):
            marker = read_link_marker(local_path) or {}
            if marker.get("file_id"):
                raise AlreadyLinkedError(f"Signature already linked as HubSpot file {marker['file_id']}")
            raise AlreadyLinkedError(f"Signature already linked: {local_path.name}")

        remote_file = client.upload_file(local_path, mime_type_for(local_path))
        mark_linked(local_path, remote_file.id)

        result = LinkResult(form_id=form_id, primary=remote_file)

        if submission.email:
            try:
                client.update_contact(submission.email, build_contact_properties(remote_file.id))
                result.secondary = ContactOutcome(email=submission.email, updated=True)
            except ContactUpdateError as e:
                result.secondary = ContactOutcome(email=submission.email, updated=False, error=e.message)
            logger.log_contact_update(submission.email, remote_file.id, result.secondary.updated, result.secondary.error)

        logger.log_finalize(form_id, remote_file.id, details={"contact_updated": result.contact_updated})
        return result
