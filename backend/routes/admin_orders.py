"""
Admin Orders Routes
Fulfilment queue, order detail, status changes and payment reconciliation.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from middleware import admin_route_guard
from services.errors import ServiceError
from services.order_workflow import OrderStatus
from services import order_service, payment_service
from utils.audit import get_audit_logs_for_resource
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin/orders", tags=["admin-orders"])


# ============================================
# MODELS
# ============================================

class StatusUpdateRequest(BaseModel):
    order_status: OrderStatus


# ============================================
# QUEUE / DETAIL
# ============================================

@router.get("")
async def list_orders(
    order_status: Optional[str] = OrderStatus.REQUESTED.value,
    current_user: dict = Depends(admin_route_guard),
):
    """Paid orders in the given fulfilment status, newest first."""
    orders = await order_service.list_orders_for_admin(order_status)
    return {"orders": to_json_safe(orders), "total": len(orders)}


@router.get("/{order_id}")
async def get_order_detail(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    """Order with customer, package, files and its audit history."""
    order = await order_service.get_order_for_admin(order_id)
    history = await get_audit_logs_for_resource("order", order_id)
    return {"order": to_json_safe(order), "history": history}


# ============================================
# ACTIONS
# ============================================

@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: str,
    payload: StatusUpdateRequest,
    current_user: dict = Depends(admin_route_guard),
):
    """
    Change fulfilment status and notify the customer.
    The response reports the notification outcome separately; a failed email
    does not undo the status change.
    """
    try:
        result = await order_service.set_order_status(current_user, order_id, payload.order_status)
        return {
            "success": True,
            "order": to_json_safe(result["order"]),
            "notification": result["notification"],
        }
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Update order status error for {order_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to update order status")


@router.post("/{order_id}/reconcile-payment")
async def reconcile_payment(
    order_id: str,
    current_user: dict = Depends(admin_route_guard),
):
    """Pull payment status from the gateway for an order whose webhook never arrived."""
    result = await payment_service.reconcile_payment(order_id)
    logger.info(f"Admin {current_user.get('user_id')} reconciled {order_id}: {result['payment_status']}")
    return result
