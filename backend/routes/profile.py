"""User Profile Routes
Lets signed-in users view and edit their own account details.
"""
from fastapi import APIRouter, HTTPException, Request, status
from middleware import user_route_guard
from models import ProfileUpdateRequest
from services.errors import ServiceError
from services import user_service
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/profile", tags=["profile"])

@router.get("")
async def get_profile(request: Request):
    """Get current user profile."""
    user = await user_route_guard(request)
    return to_json_safe(await user_service.get_user(user["user_id"]))

@router.patch("")
async def update_profile(request: Request, payload: ProfileUpdateRequest):
    """Update name, email, phone, address or avatar image."""
    user = await user_route_guard(request)
    try:
        updated = await user_service.update_profile(user["user_id"], payload.model_dump(exclude_unset=True))
        return to_json_safe(updated)
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Update profile error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )
