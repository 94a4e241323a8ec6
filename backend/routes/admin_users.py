"""Admin user management: customer list and soft deletion."""
from fastapi import APIRouter, Request
from middleware import admin_route_guard
from services import user_service
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/users", tags=["admin-users"])

@router.get("")
async def list_users(request: Request):
    """Customer accounts, newest first."""
    admin = await admin_route_guard(request)
    users = await user_service.list_customers(admin)
    return {"users": to_json_safe(users), "total": len(users)}

@router.delete("/{user_id}")
async def delete_user(request: Request, user_id: str):
    admin = await admin_route_guard(request)
    return await user_service.soft_delete_user(admin, user_id)
