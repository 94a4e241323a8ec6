"""Public package catalog."""
from fastapi import APIRouter
from services.errors import NotFoundError
from services import package_service
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/packages", tags=["packages"])

@router.get("")
async def list_packages():
    """Active packages with their form fields, newest first."""
    packages = await package_service.list_active_packages()
    return {"packages": to_json_safe(packages), "total": len(packages)}

@router.get("/{package_id}")
async def get_package(package_id: str):
    package = await package_service.get_package(package_id)
    if not package:
        raise NotFoundError("Package not found")
    return to_json_safe(package)
