from fastapi import Request, HTTPException, status
from typing import Optional
import logging
from auth import decode_access_token
from models import UserRole
from database import database

logger = logging.getLogger(__name__)

async def get_current_user(request: Request) -> Optional[dict]:
    """Extract and validate current user from JWT token."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    
    token = auth_header.split(" ")[1]
    return decode_access_token(token)

async def require_auth(request: Request) -> dict:
    """Require valid authentication."""
    user = await get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user

async def _load_active_user(user_id: str) -> Optional[dict]:
    db = database.get_db()
    return await db.users.find_one(
        {"user_id": user_id, "deleted_at": None},
        {"_id": 0, "password_hash": 0}
    )

async def user_route_guard(request: Request) -> dict:
    """Guard for signed-in routes. Rejects tokens whose account was deleted."""
    user = await require_auth(request)
    account = await _load_active_user(user.get("user_id"))
    if not account:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    # Role is read from the stored account, not the token
    user["role"] = account["role"]
    user["name"] = account.get("name")
    return user

async def admin_route_guard(request: Request) -> dict:
    """Guard for admin routes."""
    user = await user_route_guard(request)
    if user.get("role") != UserRole.ADMIN.value:
        logger.warning(f"Admin route denied for user {user.get('user_id')} on {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions"
        )
    return user
