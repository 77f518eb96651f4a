"""
Environment configuration tests.
"""

from pathlib import Path

from src.core.config import (
    DEFAULT_API_BASE,
    get_hubspot_config,
    is_hubspot_configured,
    get_storage_dir,
    get_public_base_url,
    get_max_signature_bytes,
    DEFAULT_MAX_SIGNATURE_BYTES,
    is_link_guard_enabled,
    validate_config,
)

HUBSPOT_VARS = ["HUBSPOT_TOKEN", "HUBSPOT_PORTAL_ID", "HUBSPOT_FOLDER_ID", "HUBSPOT_API_BASE"]


def clear_hubspot(monkeypatch):
    for name in HUBSPOT_VARS:
        monkeypatch.delenv(name, raising=False)


class TestHubSpotConfig:

    def test_defaults(self, monkeypatch):
        clear_hubspot(monkeypatch)
        config = get_hubspot_config()
        assert config == {"token": "", "portal_id": "", "folder_id": "", "api_base": DEFAULT_API_BASE}
        assert is_hubspot_configured() is False

    def test_read_at_call_time(self, monkeypatch):
        clear_hubspot(monkeypatch)
        monkeypatch.setenv("HUBSPOT_TOKEN", "pat-test")
        monkeypatch.setenv("HUBSPOT_PORTAL_ID", "12345")
        monkeypatch.setenv("HUBSPOT_API_BASE", "https://api.example.test/")

        config = get_hubspot_config()
        assert config["api_base"] == "https://api.example.test"
        assert is_hubspot_configured() is True


class TestStorageConfig:

    def test_storage_dir(self, monkeypatch, tmp_path):
        monkeypatch.setenv("SIGNATURE_STORAGE_DIR", str(tmp_path))
        assert get_storage_dir() == Path(tmp_path)

    def test_public_base_url_strips_slash(self, monkeypatch):
        monkeypatch.setenv("SIGNATURE_PUBLIC_BASE_URL", "https://example.com/uploads/")
        assert get_public_base_url() == "https://example.com/uploads"

    def test_link_guard_default_on(self, monkeypatch):
        monkeypatch.delenv("LINK_GUARD_ENABLED", raising=False)
        assert is_link_guard_enabled() is True
        monkeypatch.setenv("LINK_GUARD_ENABLED", "false")
        assert is_link_guard_enabled() is False

    def test_max_signature_bytes_read_at_call_time(self, monkeypatch):
        monkeypatch.delenv("SIGNATURE_MAX_BYTES", raising=False)
        assert get_max_signature_bytes() == DEFAULT_MAX_SIGNATURE_BYTES
        monkeypatch.setenv("SIGNATURE_MAX_BYTES", "2048")
        assert get_max_signature_bytes() == 2048


class TestValidateConfig:

    def test_reports_missing_credentials(self, monkeypatch):
        clear_hubspot(monkeypatch)
        issues = validate_config()
        assert "HUBSPOT_TOKEN is not set" in issues
        assert "HUBSPOT_PORTAL_ID is not set" in issues

    def test_reports_bad_values(self, monkeypatch):
        monkeypatch.setenv("SUBMISSION_LOOKUP", "crm")
        monkeypatch.setenv("SIGNATURE_RETENTION_DAYS", "0")
        monkeypatch.setenv("SIGNATURE_MAX_BYTES", "0")
        issues = validate_config()
        assert "Invalid SUBMISSION_LOOKUP: crm" in issues
        assert "SIGNATURE_RETENTION_DAYS must be >= 1" in issues
        assert "SIGNATURE_MAX_BYTES must be >= 1" in issues

    def test_clean_config(self, monkeypatch):
        monkeypatch.setenv("HUBSPOT_TOKEN", "pat-test")
        monkeypatch.setenv("HUBSPOT_PORTAL_ID", "12345")
        monkeypatch.setenv("HUBSPOT_FOLDER_ID", "678")
        monkeypatch.setenv("SUBMISSION_LOOKUP", "static")
        monkeypatch.setenv("HOUSEKEEPING_INTERVAL_SEC", "86400")
        monkeypatch.setenv("SIGNATURE_RETENTION_DAYS", "7")
        monkeypatch.delenv("SIGNATURE_MAX_BYTES", raising=False)
        assert validate_config() == []
