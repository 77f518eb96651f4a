"""
Transient signature storage - data-URI validation, filenames, reference resolution.
"""

import base64
import re

import pytest

from src.core.config import DEFAULT_MAX_SIGNATURE_BYTES
from src.core.errors import SignatureValidationError, SignatureStorageError
from src.core.storage import (
    parse_data_uri,
    generate_filename,
    store_image,
    resolve_reference,
    mime_type_for,
    is_linked,
    mark_linked,
    read_link_marker,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def data_uri(image_type: str, raw: bytes) -> str:
    return f"data:image/{image_type};base64," + base64.b64encode(raw).decode("ascii")


@pytest.fixture
def storage_dir(tmp_path, monkeypatch):
    """Point signature storage at a fresh temporary directory."""
    directory = tmp_path / "hubspot-signatures"
    monkeypatch.setenv("SIGNATURE_STORAGE_DIR", str(directory))
    monkeypatch.setenv("SIGNATURE_PUBLIC_BASE_URL", "https://example.com/uploads/hubspot-signatures")
    return directory


class TestParseDataUri:
    """Test payload validation."""

    @pytest.mark.parametrize("image_type", ["png", "jpg", "jpeg", "gif", "PNG"])
    def test_allowed_types(self, image_type):
        parsed_type, raw = parse_data_uri(data_uri(image_type, PNG_BYTES))
        assert parsed_type == image_type.lower()
        assert raw == PNG_BYTES

    def test_empty_payload(self):
        with pytest.raises(SignatureValidationError, match="No signature data provided"):
            parse_data_uri("")

    def test_missing_prefix(self):
        with pytest.raises(SignatureValidationError, match="Invalid base64 image format"):
            parse_data_uri(base64.b64encode(PNG_BYTES).decode("ascii"))

    def test_non_image_mime(self):
        with pytest.raises(SignatureValidationError, match="Invalid base64 image format"):
            parse_data_uri("data:text/plain;base64,aGVsbG8=")

    def test_bmp_rejected(self):
        with pytest.raises(SignatureValidationError, match="Invalid image type"):
            parse_data_uri(data_uri("bmp", PNG_BYTES))

    def test_undecodable_body(self):
        with pytest.raises(SignatureValidationError, match="Failed to decode base64 data"):
            parse_data_uri("data:image/png;base64,@@not-base64@@")

    def test_size_ceiling_inclusive(self):
        image_type, raw = parse_data_uri(data_uri("png", b"\x00" * DEFAULT_MAX_SIGNATURE_BYTES))
        assert len(raw) == DEFAULT_MAX_SIGNATURE_BYTES

    def test_oversized(self):
        with pytest.raises(SignatureValidationError, match=r"too large \(max 5MB\)"):
            parse_data_uri(data_uri("png", b"\x00" * (DEFAULT_MAX_SIGNATURE_BYTES + 1)))

    def test_limit_read_from_environment(self, monkeypatch):
        monkeypatch.setenv("SIGNATURE_MAX_BYTES", "10")

        assert parse_data_uri(data_uri("png", b"\x00" * 10))[1] == b"\x00" * 10
        with pytest.raises(SignatureValidationError, match=r"max 10 bytes"):
            parse_data_uri(data_uri("png", b"\x00" * 11))

    def test_limit_message_in_megabytes(self, monkeypatch):
        monkeypatch.setenv("SIGNATURE_MAX_BYTES", str(2 * 1024 * 1024))
        with pytest.raises(SignatureValidationError, match=r"max 2MB"):
            parse_data_uri(data_uri("png", b"\x00" * (2 * 1024 * 1024 + 1)))


class TestFilenames:
    """Test generated filenames."""

    def test_pattern(self):
        filename = generate_filename("png", timestamp=1700000000)
        assert re.match(r"^signature_1700000000_[A-Za-z0-9]{12}\.png$", filename)

    def test_random_token_differs(self):
        names = {generate_filename("png", timestamp=1) for _ in range(20)}
        assert len(names) == 20


class TestStoreImage:
    """Test persisting payloads."""

    def test_store_png(self, storage_dir):
        reference = store_image(data_uri("png", PNG_BYTES))

        assert reference.size == len(PNG_BYTES)
        assert reference.type == "png"
        assert reference.file_path == f"https://example.com/uploads/hubspot-signatures/{reference.filename}"
        assert (storage_dir / reference.filename).read_bytes() == PNG_BYTES
        assert reference.local_path == str(storage_dir / reference.filename)

    def test_store_creates_deny_marker(self, storage_dir):
        store_image(data_uri("gif", PNG_BYTES))
        assert (storage_dir / ".htaccess").read_text() == "deny from all"

    def test_rejected_payload_writes_nothing(self, storage_dir):
        with pytest.raises(SignatureValidationError):
            store_image(data_uri("bmp", PNG_BYTES))
        with pytest.raises(SignatureValidationError):
            store_image(data_uri("png", b"\x00" * (DEFAULT_MAX_SIGNATURE_BYTES + 1)))

        assert not storage_dir.exists()

    def test_write_failure(self, storage_dir, monkeypatch):
        storage_dir.mkdir()

        def fail_write(self, data):
            raise OSError("disk full")

        monkeypatch.setattr("pathlib.Path.write_bytes", fail_write)
        with pytest.raises(SignatureStorageError, match="Failed to save signature file"):
            store_image(data_uri("png", PNG_BYTES))

    def test_to_dict(self, storage_dir):
        reference = store_image(data_uri("jpeg", PNG_BYTES))
        assert set(reference.to_dict()) == {"file_path", "local_path", "filename", "size", "type"}


class TestResolveReference:
    """Test mapping references back to stored files."""

    def test_resolve_public_url(self, storage_dir):
        reference = store_image(data_uri("png", PNG_BYTES))
        assert resolve_reference(reference.file_path) == storage_dir / reference.filename

    def test_resolve_bare_filename(self, storage_dir):
        reference = store_image(data_uri("png", PNG_BYTES))
        assert resolve_reference(reference.filename) == storage_dir / reference.filename

    def test_traversal_rejected(self, storage_dir):
        with pytest.raises(SignatureValidationError, match="Invalid signature reference"):
            resolve_reference("https://example.com/uploads/../../etc/passwd")

    def test_missing_file(self, storage_dir):
        with pytest.raises(SignatureValidationError, match="not found"):
            resolve_reference("signature_1700000000_abcdefABCDEF.png")

    def test_empty_reference(self, storage_dir):
        with pytest.raises(SignatureValidationError):
            resolve_reference("")


class TestLinkMarkers:
    """Test the already-linked markers."""

    def test_mark_and_read(self, storage_dir):
        reference = store_image(data_uri("png", PNG_BYTES))
        path = storage_dir / reference.filename

        assert not is_linked(path)
        mark_linked(path, "98765")
        assert is_linked(path)
        assert read_link_marker(path)["file_id"] == "98765"

    def test_mime_types(self, tmp_path):
        assert mime_type_for(tmp_path / "a.png") == "image/png"
        assert mime_type_for(tmp_path / "a.jpg") == "image/jpeg"
        assert mime_type_for(tmp_path / "a.jpeg") == "image/jpeg"
        assert mime_type_for(tmp_path / "a.gif") == "image/gif"
