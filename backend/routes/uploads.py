"""
File Routes
Uploads are forwarded to the storage provider; downloads are proxied from the
allow-listed storage domain with a forced attachment disposition.
"""
from urllib.parse import quote

from fastapi import APIRouter, File, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse, Response
from starlette.background import BackgroundTask
from middleware import admin_route_guard, user_route_guard
from services.storage_adapter import (
    get_storage_adapter, is_allowed_download_url, validate_upload, UPLOAD_KINDS,
)
from services.errors import ValidationError
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["files"])


def attachment_disposition(file_name: str) -> str:
    """Attachment header with an ASCII fallback name plus the UTF-8 name (RFC 5987)."""
    name = file_name.replace("\r", "").replace("\n", "").strip() or "download"
    fallback = "".join(ch if 32 <= ord(ch) < 127 and ch not in '"\\' else "_" for ch in name)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


@router.post("/api/uploads/{kind}")
async def upload_file(request: Request, kind: str, file: UploadFile = File(...)):
    """
    Upload a package image (admin, images up to 4MB) or an order document
    (any signed-in user, image or PDF up to 8MB).
    """
    if kind not in UPLOAD_KINDS:
        raise ValidationError("Unknown upload kind", {"kind": f"Unsupported upload kind '{kind}'"})
    if UPLOAD_KINDS[kind]["admin_only"]:
        user = await admin_route_guard(request)
    else:
        user = await user_route_guard(request)
    
    # Declared size first, then a bounded read for clients that omit it
    if file.size is not None:
        validate_upload(kind, file.content_type, file.size)
    data = await file.read(UPLOAD_KINDS[kind]["max_bytes"] + 1)
    validate_upload(kind, file.content_type, len(data))
    
    stored = await get_storage_adapter().upload_file(
        data=data,
        file_name=file.filename or "upload",
        content_type=file.content_type,
    )
    logger.info(f"Upload ({kind}) by {user.get('user_id')}: {stored.url}")
    return stored.to_dict()


@router.get("/api/download")
async def download_file(
    request: Request,
    fileUrl: str = Query(...),
    fileName: str = Query("download"),
):
    """Stream a stored file back as an attachment (admin only)."""
    await admin_route_guard(request)
    
    if not is_allowed_download_url(fileUrl):
        logger.warning(f"Download proxy refused URL outside storage domain: {fileUrl}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid file URL")
    
    client, upstream = await get_storage_adapter().open_download(fileUrl)

    async def close_upstream():
        await upstream.aclose()
        await client.aclose()

    try:
        if upstream.status_code != 200:
            logger.error(f"Download proxy upstream error {upstream.status_code} for {fileUrl}")
            await close_upstream()
            return Response(
                content="Failed to fetch file",
                status_code=upstream.status_code,
                media_type="text/plain",
            )

        return StreamingResponse(
            upstream.aiter_bytes(),
            media_type=upstream.headers.get("content-type", "application/octet-stream"),
            headers={"Content-Disposition": attachment_disposition(fileName)},
            background=BackgroundTask(close_upstream),
        )
    except Exception:
        await close_upstream()
        raise
