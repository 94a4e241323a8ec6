"""
Storage Adapter - external file storage collaborator.

The service never keeps file bytes itself: uploads are forwarded to the
storage provider, and only the returned URL and size are persisted. Downloads
are proxied from a single allow-listed URL prefix.
"""
import os
import logging
import httpx
from abc import ABC, abstractmethod
from typing import Optional, Dict, Any, Tuple

from services.errors import ServiceError, ValidationError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Upload kinds accepted by the storage endpoint
UPLOAD_KINDS: Dict[str, Dict[str, Any]] = {
    "package-image": {
        "max_bytes": 4 * MB,
        "content_types": ("image/",),
        "admin_only": True,
    },
    "document": {
        "max_bytes": 8 * MB,
        "content_types": ("image/", "application/pdf"),
        "admin_only": False,
    },
}

STORAGE_TIMEOUT_SECONDS = 30.0


class StorageError(ServiceError):
    """Storage provider failed or is unavailable."""
    status_code = 502
    default_message = "File storage failed"


class StorageNotConfiguredError(StorageError):
    status_code = 503
    default_message = "File storage is not configured"


class FileMetadata:
    """What the storage provider tells us about one stored file."""
    def __init__(self, url: str, size: int, file_name: str, content_type: Optional[str] = None):
        self.url = url
        self.size = size
        self.file_name = file_name
        self.content_type = content_type
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "size": self.size,
            "file_name": self.file_name,
        }


def get_allowed_url_prefix() -> str:
    return os.getenv("STORAGE_ALLOWED_URL_PREFIX", "https://utfs.io/")


def is_allowed_download_url(file_url: Optional[str]) -> bool:
    return bool(file_url) and file_url.startswith(get_allowed_url_prefix())


def validate_upload(kind: str, content_type: Optional[str], size: int) -> Dict[str, Any]:
    """Check an upload against its kind's type and size limits; returns the kind's rules."""
    rules = UPLOAD_KINDS.get(kind)
    if not rules:
        raise ValidationError("Unknown upload kind", {"kind": f"Unsupported upload kind '{kind}'"})
    content_type = (content_type or "").lower()
    if not any(content_type.startswith(prefix) for prefix in rules["content_types"]):
        raise ValidationError("Unsupported file type", {"file": f"File type '{content_type or 'unknown'}' is not allowed"})
    if size <= 0:
        raise ValidationError("Empty file", {"file": "File is empty"})
    if size > rules["max_bytes"]:
        raise ValidationError(
            "File too large",
            {"file": f"File exceeds {rules['max_bytes'] // MB}MB limit"}
        )
    return rules


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""
    
    @abstractmethod
    async def upload_file(self, data: bytes, file_name: str, content_type: str) -> FileMetadata:
        """Store a file and return its public metadata."""
        pass
    
    @abstractmethod
    async def open_download(self, file_url: str) -> Tuple[httpx.AsyncClient, httpx.Response]:
        """Open a streaming download. Caller must close both response and client."""
        pass


class HttpStorageAdapter(StorageAdapter):
    """Forwards uploads to an HTTP storage provider with a bearer API key."""
    
    def __init__(self, upload_url: Optional[str] = None, api_key: Optional[str] = None):
        self.upload_url = upload_url
        self.api_key = api_key
    
    def _settings(self) -> Tuple[str, str]:
        upload_url = self.upload_url or os.getenv("STORAGE_UPLOAD_URL")
        api_key = self.api_key or os.getenv("STORAGE_API_KEY")
        if not upload_url or not api_key:
            raise StorageNotConfiguredError()
        return upload_url, api_key
    
    async def upload_file(self, data: bytes, file_name: str, content_type: str) -> FileMetadata:
        upload_url, api_key = self._settings()
        try:
            async with httpx.AsyncClient(timeout=STORAGE_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    upload_url,
                    files={"file": (file_name, data, content_type)},
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.TimeoutException:
            logger.error(f"Storage upload timed out: {file_name}")
            raise StorageError("File storage timeout")
        except httpx.HTTPError as e:
            logger.error(f"Storage upload failed for {file_name}: {e}")
            raise StorageError()
        
        if response.status_code not in (200, 201):
            logger.error(f"Storage rejected {file_name} ({response.status_code}): {response.text}")
            raise StorageError()
        
        body = response.json()
        url = body.get("url")
        if not url:
            logger.error(f"Storage response for {file_name} had no url: {body}")
            raise StorageError()
        
        logger.info(f"Stored {file_name} ({len(data)} bytes) at {url}")
        return FileMetadata(
            url=url,
            size=int(body.get("size") or len(data)),
            file_name=file_name,
            content_type=content_type,
        )
    
    async def open_download(self, file_url: str) -> Tuple[httpx.AsyncClient, httpx.Response]:
        client = httpx.AsyncClient(timeout=STORAGE_TIMEOUT_SECONDS, follow_redirects=True)
        try:
            request = client.build_request("GET", file_url)
            response = await client.send(request, stream=True)
        except httpx.HTTPError as e:
            await client.aclose()
            logger.error(f"Download proxy failed for {file_url}: {e}")
            raise StorageError("Failed to fetch file")
        return client, response


def get_storage_adapter() -> StorageAdapter:
    return HttpStorageAdapter()
