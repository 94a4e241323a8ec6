"""
Package Definition Store
CRUD for purchasable packages and their ordered, dynamically-typed form fields.

A package document embeds its `required_fields` array, so a create or a full
replace-on-update is a single-document write: either the new package with all
its fields is visible, or nothing changed.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from database import database
from models import AuditAction, FieldType, PackageInput, UserRole
from services.errors import AuthorizationError, NotFoundError, ValidationError
from utils.audit import create_audit_log
from utils.serialization import clean_document, to_storage_decimal

logger = logging.getLogger(__name__)

ACTIVE = {"deleted_at": None}


def _require_admin(actor: Optional[Dict[str, Any]]) -> None:
    if not actor or actor.get("role") != UserRole.ADMIN.value:
        raise AuthorizationError()


def _format_loc(loc: tuple) -> str:
    return ".".join(str(part) for part in loc)


def parse_package_input(payload: Dict[str, Any]) -> PackageInput:
    """Validate raw input; every problem is reported against its field path."""
    try:
        data = PackageInput.model_validate(payload or {})
    except PydanticValidationError as e:
        field_errors = {}
        for err in e.errors():
            key = _format_loc(err.get("loc", ())) or "__root__"
            field_errors.setdefault(key, err.get("msg", "Invalid value"))
        raise ValidationError("Invalid package", field_errors)

    field_errors = {}
    seen = {}
    for idx, field in enumerate(data.required_fields):
        if field.field_name in seen:
            field_errors[f"required_fields.{idx}.field_name"] = (
                f"Duplicate field name '{field.field_name}'"
            )
        seen.setdefault(field.field_name, idx)
        if field.field_type == FieldType.SELECT:
            options = [o.strip() for o in field.options if o and o.strip()]
            if not options:
                field_errors[f"required_fields.{idx}.options"] = "Select fields need at least one option"
    if field_errors:
        raise ValidationError("Invalid package", field_errors)
    return data


def build_field_documents(data: PackageInput) -> List[Dict[str, Any]]:
    """
    Order fields by submitted `order` (ties keep submission order), then rank
    them densely from 0. Options are only kept on SELECT fields.
    """
    indexed = sorted(enumerate(data.required_fields), key=lambda pair: (pair[1].order, pair[0]))
    docs = []
    for rank, (_, field) in enumerate(indexed):
        is_select = field.field_type == FieldType.SELECT
        docs.append({
            "field_name": field.field_name,
            "field_label": field.field_label,
            "field_type": field.field_type.value,
            "is_required": field.is_required,
            "options": [o.strip() for o in field.options if o and o.strip()] if is_select else [],
            "order": rank,
        })
    return docs


def _package_body(data: PackageInput) -> Dict[str, Any]:
    return {
        "name": data.name,
        "image": data.image,
        "description": data.description,
        "price": to_storage_decimal(data.price),
        "required_fields": build_field_documents(data),
    }


def _present(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not doc:
        return None
    package = clean_document(doc)
    package["required_fields"] = sorted(package.get("required_fields", []), key=lambda f: f.get("order", 0))
    return package


async def create_package(actor: Dict[str, Any], payload: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and persist a package together with its fields."""
    _require_admin(actor)
    data = parse_package_input(payload)
    db = database.get_db()

    now = datetime.now(timezone.utc)
    doc = {
        "package_id": str(uuid.uuid4()),
        **_package_body(data),
        "deleted_at": None,
        "created_at": now,
        "updated_at": now,
    }
    await db.packages.insert_one(doc)
    package = _present(doc)

    logger.info(f"Package created: {package['package_id']} ({package['name']}, {len(package['required_fields'])} fields)")
    await create_audit_log(
        action=AuditAction.PACKAGE_CREATED,
        actor_role=UserRole.ADMIN,
        actor_id=actor.get("user_id"),
        resource_type="package",
        resource_id=package["package_id"],
        after_state={"name": package["name"], "price": package["price"]},
    )
    return package


async def update_package(actor: Dict[str, Any], package_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Replace a package's attributes and its entire field list."""
    _require_admin(actor)
    data = parse_package_input(payload)
    db = database.get_db()

    existing = await db.packages.find_one({"package_id": package_id, **ACTIVE}, {"_id": 0})
    if not existing:
        raise NotFoundError("Package not found")

    update_fields = {**_package_body(data), "updated_at": datetime.now(timezone.utc)}
    result = await db.packages.update_one(
        {"package_id": package_id, **ACTIVE},
        {"$set": update_fields}
    )
    if result.matched_count == 0:
        # Deleted between the read and the write
        raise NotFoundError("Package not found")

    updated = _present(await db.packages.find_one({"package_id": package_id}, {"_id": 0}))
    before = clean_document(existing)

    logger.info(f"Package updated: {package_id}")
    await create_audit_log(
        action=AuditAction.PACKAGE_UPDATED,
        actor_role=UserRole.ADMIN,
        actor_id=actor.get("user_id"),
        resource_type="package",
        resource_id=package_id,
        before_state={
            "name": before["name"],
            "price": before["price"],
            "fields": [f["field_name"] for f in before.get("required_fields", [])],
        },
        after_state={
            "name": updated["name"],
            "price": updated["price"],
            "fields": [f["field_name"] for f in updated["required_fields"]],
        },
    )
    return updated


async def delete_package(actor: Dict[str, Any], package_id: str) -> Dict[str, Any]:
    """
    Soft-delete a package. Fields and historical orders are left untouched.
    Deleting an already-deleted package succeeds.
    """
    _require_admin(actor)
    db = database.get_db()

    existing = await db.packages.find_one({"package_id": package_id}, {"_id": 0, "deleted_at": 1})
    if not existing:
        raise NotFoundError("Package not found")
    if existing.get("deleted_at") is not None:
        return {"package_id": package_id, "deleted": True}

    now = datetime.now(timezone.utc)
    await db.packages.update_one(
        {"package_id": package_id, **ACTIVE},
        {"$set": {"deleted_at": now, "updated_at": now}}
    )
    logger.info(f"Package soft-deleted: {package_id}")
    await create_audit_log(
        action=AuditAction.PACKAGE_DELETED,
        actor_role=UserRole.ADMIN,
        actor_id=actor.get("user_id"),
        resource_type="package",
        resource_id=package_id,
    )
    return {"package_id": package_id, "deleted": True}


async def get_package(package_id: str) -> Optional[Dict[str, Any]]:
    """Active package with fields sorted by `order`, or None."""
    db = database.get_db()
    doc = await db.packages.find_one({"package_id": package_id, **ACTIVE}, {"_id": 0})
    return _present(doc)


async def list_active_packages() -> List[Dict[str, Any]]:
    """All active packages with their fields, newest first."""
    db = database.get_db()
    docs = await db.packages.find(ACTIVE, {"_id": 0}).sort("created_at", -1).to_list(length=None)
    return [_present(doc) for doc in docs]


async def get_package_table(actor: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Admin catalog table: active packages with how many orders reference each."""
    _require_admin(actor)
    db = database.get_db()
    rows = []
    for package in await list_active_packages():
        sold = await db.orders.count_documents({"package_id": package["package_id"]})
        rows.append({
            "id": package["package_id"],
            "name": package["name"],
            "image": package["image"],
            "price": package["price"],
            "sold": sold,
        })
    return rows
