"""
Upload-and-link orchestration tests.
"""

import base64
from pathlib import Path
from unittest.mock import Mock

import pytest

from src.core.errors import (
    ConfigurationError,
    SignatureValidationError,
    SubmissionLookupError,
    RemoteUploadError,
    AlreadyLinkedError,
    ContactUpdateError,
)
from src.core.hubspot import HubSpotClient, RemoteFile, SubmissionLookup, SubmissionRecord
from src.core.orchestrator import SignatureOrchestrator, LinkResult, build_contact_properties
from src.core.storage import is_linked

PNG_PAYLOAD = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x01" * 32).decode("ascii")


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Configured remote account and temporary storage."""
    storage_dir = tmp_path / "signatures"
    monkeypatch.setenv("SIGNATURE_STORAGE_DIR", str(storage_dir))
    monkeypatch.setenv("SIGNATURE_PUBLIC_BASE_URL", "https://example.com/uploads/hubspot-signatures")
    monkeypatch.setenv("HUBSPOT_TOKEN", "pat-test")
    monkeypatch.setenv("HUBSPOT_PORTAL_ID", "12345")
    monkeypatch.setenv("LINK_GUARD_ENABLED", "true")
    return storage_dir


@pytest.fixture
def client():
    fake = Mock(spec=HubSpotClient)
    fake.upload_file.return_value = RemoteFile(id="98765", url="https://files.example/98765.png")
    return fake


def make_lookup(email="jane@example.com"):
    lookup = Mock(spec=SubmissionLookup)
    lookup.lookup.side_effect = lambda form_id: SubmissionRecord(form_id=form_id, email=email)
    return lookup


class TestStore:
    """Test the store operation."""

    def test_store_returns_reference(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        assert reference.type == "png"
        assert (env / reference.filename).exists()
        client.upload_file.assert_not_called()


class TestFinalize:
    """Test the finalize operation."""

    def test_upload_and_patch(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        result = orchestrator.finalize("F123", reference.file_path)

        assert isinstance(result, LinkResult)
        assert result.primary.id == "98765"
        assert result.contact_updated is True
        upload_args = client.upload_file.call_args[0]
        assert upload_args[0] == env / reference.filename
        assert upload_args[1] == "image/png"

        email, properties = client.update_contact.call_args[0]
        assert email == "jane@example.com"
        assert properties["signature_file_id"] == "98765"
        assert properties["signature_status"] == "signed"

    def test_response_payload(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        response = orchestrator.finalize("F123", reference.file_path).to_response()

        assert response == {
            "form_id": "F123",
            "hubspot_file_id": "98765",
            "hubspot_file_url": "https://files.example/98765.png",
            "contact_updated": True,
            "message": "Signature processed successfully",
        }

    def test_upload_failure_skips_patch(self, env, client):
        client.upload_file.side_effect = RemoteUploadError("HubSpot upload failed: HTTP 500 - boom")
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        with pytest.raises(RemoteUploadError):
            orchestrator.finalize("F123", reference.file_path)

        client.update_contact.assert_not_called()
        assert not is_linked(env / reference.filename)

    def test_patch_timeout_still_succeeds(self, env, client):
        client.update_contact.side_effect = ContactUpdateError("Contact update request failed: timed out")
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        result = orchestrator.finalize("F123", reference.file_path)

        assert result.primary.id == "98765"
        assert result.contact_updated is False
        assert "timed out" in result.secondary.error

    def test_no_email_skips_patch(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup(email=""))
        reference = orchestrator.store(PNG_PAYLOAD)

        result = orchestrator.finalize("F123", reference.file_path)

        assert result.secondary is None
        assert result.contact_updated is False
        client.update_contact.assert_not_called()

    def test_missing_configuration(self, env, client, monkeypatch):
        monkeypatch.setenv("HUBSPOT_TOKEN", "")
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())

        with pytest.raises(ConfigurationError, match="HubSpot configuration missing"):
            orchestrator.finalize("F123", "signature_1_abc.png")
        client.upload_file.assert_not_called()

    @pytest.mark.parametrize("form_id,signature_path", [("", "signature_1_abc.png"), ("F123", ""), ("  ", "  ")])
    def test_missing_inputs(self, env, client, form_id, signature_path):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        with pytest.raises(SignatureValidationError, match="Form ID and signature path required"):
            orchestrator.finalize(form_id, signature_path)

    def test_lookup_returns_nothing(self, env, client):
        lookup = Mock(spec=SubmissionLookup)
        lookup.lookup.return_value = None
        orchestrator = SignatureOrchestrator(client=client, lookup=lookup)
        reference = orchestrator.store(PNG_PAYLOAD)

        with pytest.raises(SubmissionLookupError, match="Could not retrieve form submission data"):
            orchestrator.finalize("F123", reference.file_path)
        client.upload_file.assert_not_called()

    def test_unknown_reference(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        with pytest.raises(SignatureValidationError, match="not found"):
            orchestrator.finalize("F123", "https://example.com/uploads/signature_1700000000_abcdefABCDEF.png")

    def test_second_finalize_rejected(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)
        orchestrator.finalize("F123", reference.file_path)

        with pytest.raises(AlreadyLinkedError, match="linked as HubSpot file 98765"):
            orchestrator.finalize("F123", reference.file_path)
        assert client.upload_file.call_count == 1

    def test_unreadable_marker_still_rejected(self, env, client):
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)
        local_path = Path(reference.local_path)
        Path(str(local_path) + ".linked").write_text("not json")

        with pytest.raises(AlreadyLinkedError, match=local_path.name):
            orchestrator.finalize("F123", reference.file_path)
        client.upload_file.assert_not_called()

    def test_guard_disabled_allows_repeat(self, env, client, monkeypatch):
        monkeypatch.setenv("LINK_GUARD_ENABLED", "false")
        orchestrator = SignatureOrchestrator(client=client, lookup=make_lookup())
        reference = orchestrator.store(PNG_PAYLOAD)

        orchestrator.finalize("F123", reference.file_path)
        orchestrator.finalize("F123", reference.file_path)
        assert client.upload_file.call_count == 2


def test_contact_properties():
    properties = build_contact_properties("555")
    assert properties["signature_file_id"] == "555"
    assert properties["signature_status"] == "signed"
    assert isinstance(properties["last_signature_update"], int)
    assert "T" in properties["signature_date"]
