"""
User Service - accounts, profiles and soft deletion.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from auth import hash_password, verify_password, validate_password_strength
from database import database
from models import AuditAction, UserRole
from services.errors import AuthorizationError, NotFoundError, ValidationError
from utils.audit import create_audit_log

logger = logging.getLogger(__name__)

PUBLIC_PROJECTION = {"_id": 0, "password_hash": 0}


def _normalise_email(email: str) -> str:
    return email.strip().lower()


async def create_user(name: str, email: str, password: str, role: UserRole = UserRole.USER) -> Dict[str, Any]:
    """Register an account. Raises ValidationError for weak passwords or taken emails."""
    ok, message = validate_password_strength(password)
    if not ok:
        raise ValidationError("Invalid sign-up", {"password": message})

    db = database.get_db()
    email = _normalise_email(email)
    if await db.users.find_one({"email": email}, {"_id": 0, "user_id": 1}):
        raise ValidationError("Invalid sign-up", {"email": "Email is already registered"})

    now = datetime.now(timezone.utc)
    doc = {
        "user_id": str(uuid.uuid4()),
        "name": name.strip(),
        "email": email,
        "password_hash": hash_password(password),
        "role": role.value,
        "phone": None,
        "address": None,
        "image": None,
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await db.users.insert_one(doc)
    logger.info(f"User registered: {doc['user_id']} ({role.value})")

    await create_audit_log(
        action=AuditAction.USER_SIGNED_UP,
        actor_role=role,
        actor_id=doc["user_id"],
        resource_type="user",
        resource_id=doc["user_id"],
    )
    return {k: v for k, v in doc.items() if k not in ("_id", "password_hash")}


async def authenticate(email: str, password: str) -> Optional[Dict[str, Any]]:
    """Active account matching the credentials, or None."""
    db = database.get_db()
    user = await db.users.find_one({"email": _normalise_email(email), "deleted_at": None}, {"_id": 0})
    if not user or not verify_password(password, user.get("password_hash")):
        return None
    user.pop("password_hash", None)
    return user


async def get_user(user_id: str) -> Dict[str, Any]:
    db = database.get_db()
    user = await db.users.find_one({"user_id": user_id, "deleted_at": None}, PUBLIC_PROJECTION)
    if not user:
        raise NotFoundError("User not found")
    return user


async def update_profile(user_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the provided profile fields; email must stay unique."""
    db = database.get_db()
    before = await get_user(user_id)

    updates = {k: v for k, v in changes.items() if v is not None}
    if "email" in updates:
        updates["email"] = _normalise_email(updates["email"])
        if updates["email"] != before["email"]:
            taken = await db.users.find_one(
                {"email": updates["email"], "user_id": {"$ne": user_id}},
                {"_id": 0, "user_id": 1}
            )
            if taken:
                raise ValidationError("Invalid profile", {"email": "Email is already registered"})
    if "name" in updates:
        updates["name"] = updates["name"].strip()
        if not updates["name"]:
            raise ValidationError("Invalid profile", {"name": "Name is required"})

    if not updates:
        return before

    updates["updated_at"] = datetime.now(timezone.utc)
    await db.users.update_one({"user_id": user_id}, {"$set": updates})
    after = await get_user(user_id)

    await create_audit_log(
        action=AuditAction.PROFILE_UPDATED,
        actor_role=UserRole(after["role"]),
        actor_id=user_id,
        resource_type="user",
        resource_id=user_id,
        before_state={k: before.get(k) for k in updates if k != "updated_at"},
        after_state={k: after.get(k) for k in updates if k != "updated_at"},
    )
    return after


async def list_customers(actor: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Non-deleted USER accounts, newest first."""
    if not actor or actor.get("role") != UserRole.ADMIN.value:
        raise AuthorizationError()
    db = database.get_db()
    return await db.users.find(
        {"role": UserRole.USER.value, "deleted_at": None},
        PUBLIC_PROJECTION
    ).sort("created_at", -1).to_list(length=None)


async def soft_delete_user(actor: Dict[str, Any], user_id: str) -> Dict[str, Any]:
    """Retire an account. Its orders stay; it can no longer sign in."""
    if not actor or actor.get("role") != UserRole.ADMIN.value:
        raise AuthorizationError()
    if actor.get("user_id") == user_id:
        raise ValidationError("Invalid request", {"user_id": "You cannot delete your own account"})

    db = database.get_db()
    now = datetime.now(timezone.utc)
    result = await db.users.update_one(
        {"user_id": user_id, "deleted_at": None},
        {"$set": {"deleted_at": now, "updated_at": now}}
    )
    if result.matched_count == 0:
        raise NotFoundError("User not found")

    logger.info(f"User soft-deleted: {user_id} by {actor.get('user_id')}")
    await create_audit_log(
        action=AuditAction.USER_DELETED,
        actor_role=UserRole.ADMIN,
        actor_id=actor.get("user_id"),
        resource_type="user",
        resource_id=user_id,
    )
    return {"user_id": user_id, "deleted": True}
