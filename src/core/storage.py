"""
Transient signature storage.
Decodes data-URI image payloads, writes them under an enumeration-resistant
name in a private directory, and maps stored references back to files.
"""

import base64
import binascii
import json
import re
import secrets
import string
import time
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from .config import ALLOWED_IMAGE_TYPES, get_max_signature_bytes, get_storage_dir, get_public_base_url
from .errors import SignatureValidationError, SignatureStorageError
from util.logging import logger

DATA_URI_PATTERN = re.compile(r'^data:image/(\w+);base64,(.+)$')
FILENAME_PATTERN = re.compile(r'^signature_\d+_[A-Za-z0-9]+\.(png|jpg|jpeg|gif)$')
TOKEN_LENGTH = 12
LINK_MARKER_SUFFIX = ".linked"

MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
}

_TOKEN_ALPHABET = string.ascii_letters + string.digits


@dataclass
class StoredImageReference:
    """A persisted-but-not-yet-linked signature image."""
    file_path: str  # public reference URL handed to the client
    local_path: str
    filename: str
    size: int
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_data_uri(payload: str) -> Tuple[str, bytes]:
    """
    Validate and decode a `data:image/<type>;base64,<body>` payload.

    Returns:
        (image_type, decoded bytes)

    Raises:
        SignatureValidationError: on missing, malformed, disallowed,
            undecodable or oversized payloads.
    """
    if not payload:
        raise SignatureValidationError("No signature data provided")

    match = DATA_URI_PATTERN.match(payload)
    if not match:
        raise SignatureValidationError("Invalid base64 image format")

    image_type = match.group(1).lower()
    encoded = match.group(2)

    if image_type not in ALLOWED_IMAGE_TYPES:
        raise SignatureValidationError(
            "Invalid image type. Allowed: " + ", ".join(ALLOWED_IMAGE_TYPES)
        )

    try:
        image_data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise SignatureValidationError("Failed to decode base64 data")

    if not image_data:
        raise SignatureValidationError("Failed to decode base64 data")

    max_bytes = get_max_signature_bytes()
    if len(image_data) > max_bytes:
        raise SignatureValidationError(f"Signature file too large (max {format_size_limit(max_bytes)})")

    return image_type, image_data


def format_size_limit(max_bytes: int) -> str:
    if max_bytes % (1024 * 1024) == 0:
        return f"{max_bytes // (1024 * 1024)}MB"
    return f"{max_bytes} bytes"


def generate_filename(image_type: str, timestamp: Optional[int] = None) -> str:
    """Build `signature_<unix-timestamp>_<random-token>.<ext>`."""
    if timestamp is None:
        timestamp = int(time.time())
    token = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(TOKEN_LENGTH))
    return f"signature_{timestamp}_{token}.{image_type}"


def _prepare_storage_dir() -> Path:
    storage_dir = get_storage_dir()
    if storage_dir.exists():
        return storage_dir

    try:
        storage_dir.mkdir(parents=True, exist_ok=True)
        # Deny direct listing/serving when the directory sits under a web root
        (storage_dir / ".htaccess").write_text("deny from all")
    except OSError as e:
        raise SignatureStorageError(f"Failed to create signatures directory: {e}")

    return storage_dir


def store_image(payload: str) -> StoredImageReference:
    """
    Validate, decode and persist a signature payload.

    Nothing is written unless the payload passes every validation step.
    """
    try:
        image_type, image_data = parse_data_uri(payload)
    except SignatureValidationError as e:
        logger.log_signature_rejected(e.message)
        raise

    storage_dir = _prepare_storage_dir()
    filename = generate_filename(image_type)
    file_path = storage_dir / filename

    try:
        file_path.write_bytes(image_data)
    except OSError as e:
        logger.log_signature_stored(filename, len(image_data), image_type, status="failed")
        raise SignatureStorageError(f"Failed to save signature file: {e}")

    logger.log_signature_stored(filename, len(image_data), image_type)

    return StoredImageReference(
        file_path=f"{get_public_base_url()}/{filename}",
        local_path=str(file_path),
        filename=filename,
        size=len(image_data),
        type=image_type,
    )


def resolve_reference(reference: str) -> Path:
    """
    Map a stored reference (public URL, path or bare filename) to its file.

    Only generated signature filenames inside the storage directory resolve;
    anything else is rejected so a reference can never point elsewhere.
    """
    if not reference:
        raise SignatureValidationError("Signature reference required")

    filename = Path(urlparse(reference).path).name
    if not FILENAME_PATTERN.match(filename):
        raise SignatureValidationError(f"Invalid signature reference: {filename}")

    local_path = get_storage_dir() / filename
    if not local_path.is_file():
        raise SignatureValidationError(f"Local signature file not found: {filename}")

    return local_path


def mime_type_for(path: Path) -> str:
    """MIME type of a stored image, from its extension."""
    return MIME_TYPES.get(path.suffix.lstrip(".").lower(), "image/png")


def _marker_path(path: Path) -> Path:
    return path.with_name(path.name + LINK_MARKER_SUFFIX)


def is_linked(path: Path) -> bool:
    """Check whether a stored image was already uploaded by a finalize call."""
    return _marker_path(path).exists()


def mark_linked(path: Path, file_id: str) -> None:
    """Record that a stored image has been uploaded as remote file `file_id`."""
    marker = {"file_id": str(file_id), "linked_at": datetime.now().isoformat()}
    try:
        _marker_path(path).write_text(json.dumps(marker))
    except OSError as e:
        # Upload already done; the marker is best-effort
        logger.warning(f"Failed to write link marker for {path.name}: {e}")


def read_link_marker(path: Path) -> Optional[Dict[str, Any]]:
    """Return the link marker of a stored image, if any."""
    marker = _marker_path(path)
    if not marker.exists():
        return None
    try:
        return json.loads(marker.read_text())
    except (OSError, ValueError):
        return {}
