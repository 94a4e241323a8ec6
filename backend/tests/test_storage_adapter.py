"""Upload rules and the download allow-list for the external file store."""
import httpx
import pytest
from unittest.mock import patch

from services.errors import ValidationError
from services.storage_adapter import (
    MB, HttpStorageAdapter, StorageError, StorageNotConfiguredError,
    is_allowed_download_url, validate_upload,
)

_RealAsyncClient = httpx.AsyncClient


def _mock_http(handler):
    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)
    return patch("services.storage_adapter.httpx.AsyncClient", side_effect=factory)


def test_document_accepts_pdf_and_images():
    assert validate_upload("document", "application/pdf", 1024)["max_bytes"] == 8 * MB
    assert validate_upload("document", "image/png", 1024)


@pytest.mark.parametrize("kind,content_type,size", [
    ("document", "application/zip", 1024),
    ("document", "application/pdf", 8 * MB + 1),
    ("package-image", "application/pdf", 1024),
    ("package-image", "image/jpeg", 4 * MB + 1),
    ("document", "image/png", 0),
    ("avatar", "image/png", 1024),
])
def test_rejected_uploads(kind, content_type, size):
    with pytest.raises(ValidationError):
        validate_upload(kind, content_type, size)


def test_download_prefix(monkeypatch):
    monkeypatch.delenv("STORAGE_ALLOWED_URL_PREFIX", raising=False)
    assert is_allowed_download_url("https://utfs.io/f/ktp.pdf")
    assert not is_allowed_download_url("https://evil.example.com/https://utfs.io/f/ktp.pdf")
    assert not is_allowed_download_url(None)


@pytest.mark.asyncio
async def test_upload_without_configuration(monkeypatch):
    monkeypatch.delenv("STORAGE_UPLOAD_URL", raising=False)
    monkeypatch.delenv("STORAGE_API_KEY", raising=False)
    with pytest.raises(StorageNotConfiguredError) as exc_info:
        await HttpStorageAdapter().upload_file(b"%PDF", "ktp.pdf", "application/pdf")
    assert exc_info.value.status_code == 503


@pytest.mark.asyncio
async def test_upload_forwards_file_with_bearer_key():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["authorization"]
        seen["body"] = request.content
        return httpx.Response(200, json={"url": "https://utfs.io/f/abc.pdf", "size": 4})

    adapter = HttpStorageAdapter(upload_url="https://storage.example.com/upload", api_key="sk-test")
    with _mock_http(handler):
        meta = await adapter.upload_file(b"%PDF", "ktp.pdf", "application/pdf")

    assert meta.to_dict() == {"url": "https://utfs.io/f/abc.pdf", "size": 4, "file_name": "ktp.pdf"}
    assert seen["auth"] == "Bearer sk-test"
    assert b"ktp.pdf" in seen["body"]


@pytest.mark.asyncio
async def test_upload_rejected_by_provider():
    adapter = HttpStorageAdapter(upload_url="https://storage.example.com/upload", api_key="sk-test")
    with _mock_http(lambda request: httpx.Response(500, text="boom")):
        with pytest.raises(StorageError):
            await adapter.upload_file(b"%PDF", "ktp.pdf", "application/pdf")
