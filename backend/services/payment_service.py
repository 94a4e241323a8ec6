"""
Payment Orchestrator
Bridges orders to the Midtrans gateway and owns the payment state machine:

    PENDING -> PAID | CANCELLED      (PENDING -> PENDING is a no-op)

PAID and CANCELLED are terminal. Payment status only changes through a
verified webhook or an explicit reconciliation against the gateway, and each
write is a compare-and-set on the status that was read.
"""
import os
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from database import database
from models import AuditAction
from services import order_service
from services.errors import (
    GatewayError, InvalidStateError, NotFoundError, SignatureError, WebhookConfigurationError,
)
from services.order_workflow import (
    PaymentStatus, is_valid_payment_transition, map_gateway_status,
)
from services.payment_gateway import (
    get_client_key, get_merchant_id, get_server_key, snap_client, snap_script_url,
)
from utils.audit import create_audit_log
from utils.public_app_url import order_status_url

logger = logging.getLogger(__name__)

# Midtrans limits item names to 50 characters
ITEM_NAME_MAX_LENGTH = 50


def gross_amount(total_amount: Any) -> int:
    """Gateway amount: whole currency units."""
    return int(Decimal(str(total_amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_transaction_request(order: Dict[str, Any], user: Dict[str, Any], package: Dict[str, Any]) -> Dict[str, Any]:
    """Snap transaction body for an order."""
    order_id = order["order_id"]
    amount = gross_amount(order["total_amount"])
    return {
        "transaction_details": {
            "order_id": order_id,
            "gross_amount": amount,
        },
        "credit_card": {
            "secure": True,
        },
        "customer_details": {
            "first_name": user.get("name") or "",
            "email": user.get("email") or "",
            "phone": user.get("phone") or (order.get("form_data") or {}).get("phone") or "",
        },
        "callbacks": {
            "finish": order_status_url(order_id, "success"),
            "error": order_status_url(order_id, "failed"),
            "pending": order_status_url(order_id, "pending"),
        },
        "item_details": [
            {
                "id": package["package_id"],
                "price": amount,
                "quantity": 1,
                "name": (package.get("name") or "")[:ITEM_NAME_MAX_LENGTH],
                "merchant_id": get_merchant_id(),
            }
        ],
    }


async def initiate_payment(order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Request a payment session for an order. Does not touch the order: it stays
    PENDING until a webhook or reconciliation says otherwise.

    Raises GatewayError when the gateway is unconfigured, unreachable or rejects.
    """
    if not get_server_key() or not get_client_key():
        logger.error(f"Payment initiation for {order['order_id']} refused: Midtrans keys not configured")
        raise GatewayError("Payment gateway is not configured")

    db = database.get_db()
    user = await db.users.find_one({"user_id": order["user_id"]}, {"_id": 0, "password_hash": 0})
    if not user:
        raise NotFoundError("User not found")
    # Historical orders may point at a retired package; the reference still resolves
    package = await db.packages.find_one({"package_id": order["package_id"]}, {"_id": 0, "package_id": 1, "name": 1})
    if not package:
        raise NotFoundError("Package not found")

    session = await snap_client.create_transaction(build_transaction_request(order, user, package))
    return {
        "order_id": order["order_id"],
        "snap_token": session["token"],
        "redirect_url": session["redirect_url"],
    }


async def reinitiate_payment(user_id: str, order_id: str) -> Dict[str, Any]:
    """New payment session for the owner's order; only while payment is PENDING."""
    order = await order_service.get_order(order_id)
    if not order or order.get("user_id") != user_id:
        raise NotFoundError("Order not found")
    if order["payment_status"] != PaymentStatus.PENDING.value:
        raise InvalidStateError(
            f"Order {order_id} cannot be paid again (payment is {order['payment_status']})"
        )
    return await initiate_payment(order)


# ============================================================================
# WEBHOOK
# ============================================================================

def compute_signature(order_id: str, status_code: str, amount: str, server_key: str) -> str:
    """Hex SHA-512 of order_id + status_code + gross_amount + server key."""
    raw = f"{order_id}{status_code}{amount}{server_key}"
    return hashlib.sha512(raw.encode("utf-8")).hexdigest()


def verify_signature(payload: Dict[str, Any], server_key: str) -> bool:
    required = ("order_id", "status_code", "gross_amount", "signature_key")
    if any(payload.get(key) in (None, "") for key in required):
        return False
    expected = compute_signature(
        str(payload["order_id"]),
        str(payload["status_code"]),
        str(payload["gross_amount"]),
        server_key,
    )
    return hmac.compare_digest(expected, str(payload["signature_key"]))


async def _record_notification(payload: Dict[str, Any], signature_valid: bool, mapped: Optional[PaymentStatus]) -> None:
    """Append to the webhook ledger. Ledger problems never block processing."""
    try:
        db = database.get_db()
        await db.payment_notifications.insert_one({
            "order_id": payload.get("order_id"),
            "transaction_status": payload.get("transaction_status"),
            "fraud_status": payload.get("fraud_status"),
            "status_code": payload.get("status_code"),
            "gross_amount": str(payload.get("gross_amount")) if payload.get("gross_amount") is not None else None,
            "transaction_id": payload.get("transaction_id"),
            "signature_valid": signature_valid,
            "mapped_status": mapped.value if mapped else None,
            "received_at": datetime.now(timezone.utc),
        })
    except Exception as e:
        logger.error(f"Failed to record payment notification for {payload.get('order_id')}: {e}")


async def apply_gateway_status(order_id: str, mapped: PaymentStatus, source: str) -> Dict[str, Any]:
    """
    Move the order's payment status to `mapped` if the state machine allows it.
    Same status, or a terminal current status, leaves the order untouched.
    """
    order = await order_service.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")

    current = PaymentStatus(order["payment_status"])
    if current == mapped:
        return {"order_id": order_id, "payment_status": current.value, "changed": False}

    if not is_valid_payment_transition(current, mapped):
        logger.warning(f"Payment {order_id}: ignoring {current.value} → {mapped.value} from {source} (terminal)")
        return {"order_id": order_id, "payment_status": current.value, "changed": False}

    changed = await order_service.set_payment_status(order_id, mapped, expected_current=current)
    if not changed:
        # Another writer moved it first; report what is stored now
        latest = await order_service.get_order(order_id)
        logger.info(f"Payment {order_id}: concurrent update won, now {latest['payment_status']}")
        return {"order_id": order_id, "payment_status": latest["payment_status"], "changed": False}

    logger.info(f"Payment {order_id}: {current.value} → {mapped.value} ({source})")
    await create_audit_log(
        action=AuditAction.PAYMENT_STATUS_CHANGED,
        resource_type="order",
        resource_id=order_id,
        before_state={"payment_status": current.value},
        after_state={"payment_status": mapped.value},
        metadata={"source": source},
    )
    return {"order_id": order_id, "payment_status": mapped.value, "changed": True}


async def handle_webhook(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Verify and apply a gateway notification. Replaying a payload yields the
    same end state. A bad signature changes nothing and raises SignatureError.
    """
    server_key = get_server_key()
    if not server_key:
        logger.error("Midtrans webhook received but MIDTRANS_SERVER_KEY is not configured")
        raise WebhookConfigurationError()

    order_id = payload.get("order_id")
    if not verify_signature(payload, server_key):
        logger.warning(f"Invalid Midtrans signature for order: {order_id}")
        await _record_notification(payload, signature_valid=False, mapped=None)
        await create_audit_log(
            action=AuditAction.PAYMENT_WEBHOOK_REJECTED,
            resource_type="order",
            resource_id=str(order_id) if order_id else None,
            metadata={"transaction_status": payload.get("transaction_status")},
        )
        raise SignatureError()

    mapped = map_gateway_status(payload.get("transaction_status"), payload.get("fraud_status"))
    logger.info(
        f"Midtrans webhook for {order_id}: {payload.get('transaction_status')}/"
        f"{payload.get('fraud_status')} → {mapped.value}"
    )
    await _record_notification(payload, signature_valid=True, mapped=mapped)
    return await apply_gateway_status(str(order_id), mapped, source="webhook")


async def reconcile_payment(order_id: str) -> Dict[str, Any]:
    """Pull the gateway's current view of the order and apply it like a webhook would."""
    order = await order_service.get_order(order_id)
    if not order:
        raise NotFoundError("Order not found")

    status = await snap_client.get_transaction_status(order_id)
    if status is None:
        logger.info(f"Reconcile {order_id}: gateway has no transaction yet")
        return {"order_id": order_id, "payment_status": order["payment_status"], "changed": False}

    mapped = map_gateway_status(status.get("transaction_status"), status.get("fraud_status"))
    return await apply_gateway_status(order_id, mapped, source="reconciliation")


def get_widget_config() -> Dict[str, Any]:
    """What the browser needs to load the Snap widget, including its bounded wait."""
    return {
        "client_key": get_client_key(),
        "snap_script_url": snap_script_url(),
        "widget_timeout_seconds": int(os.getenv("PAYMENT_WIDGET_TIMEOUT_SECONDS", "15")),
    }
