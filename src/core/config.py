"""
Signature bridge configuration.
All values come from the environment (optionally a .env file). Values that
callers may change at runtime are read through accessor functions.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()

# Debug flag
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Remote CRM API (HubSpot)
DEFAULT_API_BASE = "https://api.hubapi.com"
UPLOAD_TIMEOUT_SEC = int(os.getenv("HUBSPOT_UPLOAD_TIMEOUT_SEC", "60"))
PATCH_TIMEOUT_SEC = int(os.getenv("HUBSPOT_PATCH_TIMEOUT_SEC", "30"))
SUBMISSION_LOOKUP = os.getenv("SUBMISSION_LOOKUP", "static")  # static|hubspot

# Transient signature storage
DEFAULT_STORAGE_DIR = "./data/hubspot-signatures"
DEFAULT_PUBLIC_BASE_URL = "/uploads/hubspot-signatures"
ALLOWED_IMAGE_TYPES = ("png", "jpg", "jpeg", "gif")
DEFAULT_MAX_SIGNATURE_BYTES = 5 * 1024 * 1024

# Housekeeping (daily sweep, 7 day retention)
HOUSEKEEPING_ENABLED = os.getenv("HOUSEKEEPING_ENABLED", "false").lower() == "true"
HOUSEKEEPING_INTERVAL_SEC = int(os.getenv("HOUSEKEEPING_INTERVAL_SEC", "86400"))
RETENTION_DAYS = int(os.getenv("SIGNATURE_RETENTION_DAYS", "7"))

# API surface
CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

# Version string
VERSION = "2.0.0"


def get_hubspot_config() -> Dict[str, Optional[str]]:
    """Return the remote API settings as a dict (token, portal_id, folder_id, api_base)."""
    return {
        "token": os.getenv("HUBSPOT_TOKEN", ""),
        "portal_id": os.getenv("HUBSPOT_PORTAL_ID", ""),
        "folder_id": os.getenv("HUBSPOT_FOLDER_ID", ""),
        "api_base": os.getenv("HUBSPOT_API_BASE", DEFAULT_API_BASE).rstrip("/"),
    }


def is_hubspot_configured() -> bool:
    """Check that the token and portal id required by finalize are present."""
    hubspot = get_hubspot_config()
    return bool(hubspot["token"] and hubspot["portal_id"])


def get_storage_dir() -> Path:
    """Directory holding stored-but-not-yet-linked signature images."""
    return Path(os.getenv("SIGNATURE_STORAGE_DIR", DEFAULT_STORAGE_DIR))


def get_public_base_url() -> str:
    """Base URL under which stored images are referenced by the client."""
    return os.getenv("SIGNATURE_PUBLIC_BASE_URL", DEFAULT_PUBLIC_BASE_URL).rstrip("/")


def get_max_signature_bytes() -> int:
    """Largest decoded signature image accepted by the store operation."""
    return int(os.getenv("SIGNATURE_MAX_BYTES", str(DEFAULT_MAX_SIGNATURE_BYTES)))


def get_submission_lookup_mode() -> str:
    """Get submission lookup mode (static|hubspot)."""
    return os.getenv("SUBMISSION_LOOKUP", SUBMISSION_LOOKUP)


def is_link_guard_enabled() -> bool:
    """Check if finalize refuses references that were already linked."""
    return os.getenv("LINK_GUARD_ENABLED", "true").lower() == "true"


def is_housekeeping_enabled() -> bool:
    """Check if the periodic cleanup sweep is enabled."""
    return os.getenv("HOUSEKEEPING_ENABLED", "false").lower() == "true"


def get_housekeeping_interval() -> int:
    """Get housekeeping interval in seconds."""
    return int(os.getenv("HOUSEKEEPING_INTERVAL_SEC", str(HOUSEKEEPING_INTERVAL_SEC)))


def get_retention_days() -> int:
    """Get the age in days after which stored images are reaped."""
    return int(os.getenv("SIGNATURE_RETENTION_DAYS", str(RETENTION_DAYS)))


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def validate_config() -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    hubspot = get_hubspot_config()
    if not hubspot["token"]:
        issues.append("HUBSPOT_TOKEN is not set")
    if not hubspot["portal_id"]:
        issues.append("HUBSPOT_PORTAL_ID is not set")
    if not hubspot["folder_id"]:
        issues.append("HUBSPOT_FOLDER_ID is not set (uploads go to the account root)")

    if get_submission_lookup_mode() not in ["static", "hubspot"]:
        issues.append(f"Invalid SUBMISSION_LOOKUP: {get_submission_lookup_mode()}")

    if get_housekeeping_interval() < 1:
        issues.append("HOUSEKEEPING_INTERVAL_SEC must be >= 1")

    if get_retention_days() < 1:
        issues.append("SIGNATURE_RETENTION_DAYS must be >= 1")

    if get_max_signature_bytes() < 1:
        issues.append("SIGNATURE_MAX_BYTES must be >= 1")

    return issues
