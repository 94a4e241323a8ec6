"""Admin package management."""
from fastapi import APIRouter, Body, Request, status
from typing import Any, Dict
from middleware import admin_route_guard
from services import package_service
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/packages", tags=["admin-packages"])

@router.get("/table")
async def package_table(request: Request):
    """Catalog overview with sales counts."""
    admin = await admin_route_guard(request)
    rows = await package_service.get_package_table(admin)
    return {"packages": to_json_safe(rows), "total": len(rows)}

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_package(request: Request, payload: Dict[str, Any] = Body(...)):
    admin = await admin_route_guard(request)
    package = await package_service.create_package(admin, payload)
    return to_json_safe(package)

@router.put("/{package_id}")
async def update_package(request: Request, package_id: str, payload: Dict[str, Any] = Body(...)):
    """Full replace: the submitted field list becomes the package's field list."""
    admin = await admin_route_guard(request)
    package = await package_service.update_package(admin, package_id, payload)
    return to_json_safe(package)

@router.delete("/{package_id}")
async def delete_package(request: Request, package_id: str):
    admin = await admin_route_guard(request)
    return await package_service.delete_package(admin, package_id)
