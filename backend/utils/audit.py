"""
Audit trail for packages, orders, payments and accounts.

Entries are append-only documents in `audit_logs`. Writing one is best-effort:
a failed audit insert is logged and the business operation carries on.
"""
from database import database
from models import AuditLog, AuditAction, UserRole
from utils.serialization import to_json_safe
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)

def calculate_diff(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Keys added, removed and changed between two flat snapshots; empty groups are omitted."""
    before = before or {}
    after = after or {}
    added = {k: after[k] for k in after.keys() - before.keys()}
    removed = {k: before[k] for k in before.keys() - after.keys()}
    changed = {
        k: {"from": before[k], "to": after[k]}
        for k in before.keys() & after.keys()
        if before[k] != after[k]
    }
    diff = {"added": added, "removed": removed, "changed": changed}
    return {group: values for group, values in diff.items() if values}

async def create_audit_log(
    action: AuditAction,
    actor_role: Optional[UserRole] = None,
    actor_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    before_state: Optional[Dict[str, Any]] = None,
    after_state: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    auto_diff: bool = True
) -> str:
    """
    Record one audit entry and return its id ("" if it could not be stored).

    actor_role is None for gateway and system actions. States and metadata may
    hold Decimals, datetimes and enums; they are stored in their JSON form.
    When both states are given, their diff is added to metadata["diff"].
    """
    before_state = to_json_safe(before_state) if before_state else None
    after_state = to_json_safe(after_state) if after_state else None
    extra = to_json_safe(metadata) if metadata else {}
    if auto_diff and before_state and after_state:
        diff = calculate_diff(before_state, after_state)
        if diff:
            extra["diff"] = diff

    entry = AuditLog(
        action=action,
        actor_role=actor_role,
        actor_id=actor_id,
        resource_type=resource_type,
        resource_id=resource_id,
        before_state=before_state,
        after_state=after_state,
        metadata=extra or None,
    )
    try:
        await database.get_db().audit_logs.insert_one(entry.model_dump(mode="json"))
    except Exception as e:
        logger.error(f"Failed to write audit log {action.value} for {resource_type}:{resource_id}: {e}")
        return ""
    logger.debug(f"Audit: {action.value} {resource_type or ''} {resource_id or ''}".rstrip())
    return entry.audit_id

async def get_audit_logs_for_resource(
    resource_type: str,
    resource_id: str,
    limit: int = 50
) -> List[Dict[str, Any]]:
    """History of one resource, newest first."""
    db = database.get_db()
    return await db.audit_logs.find(
        {"resource_type": resource_type, "resource_id": resource_id},
        {"_id": 0}
    ).sort("timestamp", -1).limit(limit).to_list(length=limit)
