from fastapi import APIRouter, HTTPException, Request, status
from models import LoginRequest, SignUpRequest, TokenResponse, UserRole, AuditAction
from auth import token_for_user
from middleware import user_route_guard
from services.errors import ServiceError
from services import user_service
from utils.audit import create_audit_log
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])

def _public_user(user: dict) -> dict:
    return to_json_safe({
        "user_id": user["user_id"],
        "name": user.get("name"),
        "email": user["email"],
        "role": user["role"],
    })

@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def signup(payload: SignUpRequest):
    """Customer self sign-up. New accounts are always USER."""
    try:
        user = await user_service.create_user(payload.name, payload.email, payload.password)
        return TokenResponse(access_token=token_for_user(user), user=_public_user(user))
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Signup error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Sign-up failed"
        )

@router.post("/login", response_model=TokenResponse)
async def login(credentials: LoginRequest):
    """Login for customers and staff."""
    try:
        user = await user_service.authenticate(credentials.email, credentials.password)
        if not user:
            await create_audit_log(
                action=AuditAction.USER_LOGIN_FAILED,
                metadata={"email": credentials.email}
            )
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials"
            )
        
        await create_audit_log(
            action=AuditAction.USER_LOGIN_SUCCESS,
            actor_role=UserRole(user["role"]),
            actor_id=user["user_id"],
        )
        return TokenResponse(access_token=token_for_user(user), user=_public_user(user))
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Login error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )

@router.get("/me")
async def me(request: Request):
    """Current signed-in user."""
    user = await user_route_guard(request)
    account = await user_service.get_user(user["user_id"])
    return _public_user(account)
