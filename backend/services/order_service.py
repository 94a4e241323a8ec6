"""
Order Service - Business Logic Layer
Creates orders and moves them along their two status axes.

payment_status is written only by the payment orchestrator (webhook or
reconciliation); order_status is written only by administrators. An order
document embeds its uploaded `files`, so creation is one atomic insert.
"""
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, List, Any

from database import database
from models import AuditAction, UserRole
from services.errors import (
    AuthorizationError, InvalidStateError, NotFoundError, ValidationError,
)
from services import form_validator
from services.order_notification_service import notify_order_status_changed
from services.order_workflow import (
    OrderStatus, PaymentStatus,
    can_set_order_status, parse_status_filter,
)
from services.package_service import get_package
from utils.audit import create_audit_log
from utils.serialization import clean_document, to_storage_decimal

logger = logging.getLogger(__name__)


def generate_order_id() -> str:
    """Generate unique order ID: ORD-YYYY-XXXXXX"""
    year = datetime.now(timezone.utc).strftime("%Y")
    short_uuid = uuid.uuid4().hex[:6].upper()
    return f"ORD-{year}-{short_uuid}"


def check_uploaded_files(
    fields: List[Dict[str, Any]],
    uploaded_files: List[Dict[str, Any]],
) -> Dict[str, str]:
    """
    Match uploaded file metadata against the package's FILE fields.
    Returns field errors; empty when every file belongs to a FILE field and
    every required FILE field has a non-empty URL.
    """
    file_field_names = {f["field_name"] for f in form_validator.file_fields(fields)}
    errors: Dict[str, str] = {}
    satisfied = set()

    for upload in uploaded_files:
        name = upload.get("field_name")
        if name not in file_field_names:
            errors[name or "uploaded_files"] = "Uploaded file does not match a file field of this package"
            continue
        if upload.get("file_url"):
            satisfied.add(name)

    for field in form_validator.file_fields(fields):
        if field.get("is_required") and field["field_name"] not in satisfied:
            errors.setdefault(field["field_name"], f"{field['field_label']} is required")
    return errors


async def create_order(
    user_id: str,
    package_id: str,
    form_data: Dict[str, Any],
    uploaded_files: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Create a new order in PENDING / REQUESTED status.
    total_amount is copied from the package price now and never changes.
    Payment initiation is a separate step.
    """
    uploaded_files = uploaded_files or []
    package = await get_package(package_id)
    if not package:
        raise NotFoundError("Package not found")

    fields = package["required_fields"]
    result = form_validator.validate(form_validator.non_file_fields(fields), form_data)
    field_errors = {} if result["ok"] else dict(result["field_errors"])
    field_errors.update(check_uploaded_files(fields, uploaded_files))
    if field_errors:
        raise ValidationError("Invalid order form", field_errors)

    data = dict(result["data"])
    files = []
    for upload in uploaded_files:
        if not upload.get("file_url"):
            continue
        # Final form data holds the stored URL in place of the browser placeholder
        data[upload["field_name"]] = upload["file_url"]
        files.append({
            "field_name": upload["field_name"],
            "file_name": upload.get("file_name") or "",
            "file_url": upload["file_url"],
            "file_size": int(upload.get("file_size") or 0),
        })

    now = datetime.now(timezone.utc)
    order_doc = {
        "order_id": generate_order_id(),
        "user_id": user_id,
        "package_id": package_id,
        "form_data": data,
        "files": files,
        "total_amount": to_storage_decimal(package["price"]),
        "payment_status": PaymentStatus.PENDING.value,
        "order_status": OrderStatus.REQUESTED.value,
        "created_at": now,
        "updated_at": now,
    }

    db = database.get_db()
    await db.orders.insert_one(order_doc)
    order = clean_document(order_doc)

    logger.info(f"Order created: {order['order_id']} for package {package_id} by user {user_id}")
    await create_audit_log(
        action=AuditAction.ORDER_CREATED,
        actor_role=UserRole.USER,
        actor_id=user_id,
        resource_type="order",
        resource_id=order["order_id"],
        metadata={"package_id": package_id, "total_amount": order["total_amount"], "files": len(files)},
    )
    return order


async def get_order(order_id: str) -> Optional[Dict[str, Any]]:
    db = database.get_db()
    doc = await db.orders.find_one({"order_id": order_id}, {"_id": 0})
    return clean_document(doc) if doc else None


async def get_order_for_user(user_id: str, order_id: str) -> Dict[str, Any]:
    """Owner view of one order. Other users' orders look like missing ones."""
    order = await get_order(order_id)
    if not order or order.get("user_id") != user_id:
        raise NotFoundError("Order not found")
    return (await _attach_details([order]))[0]


async def _attach_details(orders: List[Dict[str, Any]], include_user: bool = False) -> List[Dict[str, Any]]:
    """Expand package (and optionally user) summaries onto each order."""
    if not orders:
        return orders
    db = database.get_db()

    package_ids = list({o["package_id"] for o in orders})
    packages = await db.packages.find(
        {"package_id": {"$in": package_ids}},
        {"_id": 0, "package_id": 1, "name": 1, "image": 1, "price": 1, "description": 1}
    ).to_list(length=None)
    package_map = {p["package_id"]: clean_document(p) for p in packages}

    user_map = {}
    if include_user:
        user_ids = list({o["user_id"] for o in orders})
        users = await db.users.find(
            {"user_id": {"$in": user_ids}},
            {"_id": 0, "user_id": 1, "name": 1, "email": 1, "phone": 1}
        ).to_list(length=None)
        user_map = {u["user_id"]: u for u in users}

    for order in orders:
        order["package"] = package_map.get(order["package_id"])
        if include_user:
            order["user"] = user_map.get(order["user_id"])
    return orders


async def list_orders_for_user(user_id: str, status_filter: Optional[str] = None) -> List[Dict[str, Any]]:
    """Orders owned by the user, newest first, optionally by payment status ("ALL" = no filter)."""
    try:
        payment_status = parse_status_filter(status_filter)
    except ValueError:
        raise ValidationError("Invalid status filter", {"status": f"Unknown status '{status_filter}'"})

    query: Dict[str, Any] = {"user_id": user_id}
    if payment_status:
        query["payment_status"] = payment_status.value

    db = database.get_db()
    docs = await db.orders.find(query, {"_id": 0}).sort("created_at", -1).to_list(length=None)
    return await _attach_details([clean_document(d) for d in docs])


async def list_orders_for_admin(order_status: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Fulfilment queue: PAID orders only, filtered by order_status (default
    REQUESTED), newest first. Unpaid orders never appear here.
    """
    try:
        status = OrderStatus(order_status or OrderStatus.REQUESTED.value)
    except ValueError:
        raise ValidationError("Invalid status filter", {"order_status": f"Unknown status '{order_status}'"})

    db = database.get_db()
    docs = await db.orders.find(
        {"payment_status": PaymentStatus.PAID.value, "order_status": status.value},
        {"_id": 0}
    ).sort("created_at", -1).to_list(length=None)
    orders = await _attach_details([clean_document(d) for d in docs], include_user=True)

    return [
        {
            "order_id": o["order_id"],
            "user_name": (o.get("user") or {}).get("name"),
            "package_name": (o.get("package") or {}).get("name"),
            "total_amount": o["total_amount"],
            "payment_status": o["payment_status"],
            "order_status": o["order_status"],
            "created_at": o["created_at"],
        }
        for o in orders
    ]


async def get_order_for_admin(order_id: str) -> Dict[str, Any]:
    order = await get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return (await _attach_details([order], include_user=True))[0]


async def set_payment_status(
    order_id: str,
    status: PaymentStatus,
    expected_current: Optional[PaymentStatus] = None,
) -> bool:
    """
    Overwrite payment_status and bump updated_at.

    With expected_current the write is a compare-and-set: it only applies if
    the stored status still equals expected_current. Writing the status the
    order already has is a no-op. Returns True when a write happened.
    """
    db = database.get_db()
    order = await db.orders.find_one({"order_id": order_id}, {"_id": 0, "payment_status": 1})
    if not order:
        raise NotFoundError("Order not found")
    if order["payment_status"] == status.value:
        return False

    query: Dict[str, Any] = {"order_id": order_id}
    if expected_current is not None:
        query["payment_status"] = expected_current.value
    result = await db.orders.update_one(
        query,
        {"$set": {"payment_status": status.value, "updated_at": datetime.now(timezone.utc)}}
    )
    return result.modified_count > 0


async def set_order_status(actor: Dict[str, Any], order_id: str, status: OrderStatus) -> Dict[str, Any]:
    """
    Move an order's fulfilment status, then notify the customer.

    The owning user is looked up before anything is written. PROCESSING and
    COMPLETED need a PAID order. Re-setting the current status rewrites it,
    bumps updated_at and notifies again. The notification runs after the
    write has committed and its outcome is reported, never raised.

    Returns {"order": ..., "notification": "sent" | "failed"}.
    """
    if not actor or actor.get("role") != UserRole.ADMIN.value:
        raise AuthorizationError()

    db = database.get_db()
    order = await get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")

    user = await db.users.find_one({"user_id": order["user_id"]}, {"_id": 0, "password_hash": 0})
    if not user:
        raise NotFoundError("User not found")

    current = OrderStatus(order["order_status"])
    if not can_set_order_status(PaymentStatus(order["payment_status"]), status):
        raise InvalidStateError(
            f"Order {order_id} must be paid before it can move to {status.value}"
        )

    now = datetime.now(timezone.utc)
    await db.orders.update_one(
        {"order_id": order_id},
        {"$set": {"order_status": status.value, "updated_at": now}}
    )
    logger.info(f"Order {order_id} status: {current.value} → {status.value} by {actor.get('user_id')}")

    await create_audit_log(
        action=AuditAction.ORDER_STATUS_CHANGED,
        actor_role=UserRole.ADMIN,
        actor_id=actor.get("user_id"),
        resource_type="order",
        resource_id=order_id,
        before_state={"order_status": current.value},
        after_state={"order_status": status.value},
    )

    sent = await notify_order_status_changed(order_id=order_id, user=user, new_status=status)

    updated = await get_order(order_id)
    return {"order": updated, "notification": "sent" if sent else "failed"}
