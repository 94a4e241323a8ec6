"""
Customer Order Routes
Order submission (with payment session), order history and re-payment.
"""
from fastapi import APIRouter, HTTPException, Request, status
from typing import Optional
from middleware import user_route_guard
from models import CreateOrderRequest
from services.errors import ServiceError
from services import order_service, payment_service
from utils.serialization import to_json_safe
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(request: Request, payload: CreateOrderRequest):
    """
    Submit an order form and open a payment session for it.
    
    If the gateway call fails the order is kept (payment PENDING) and the
    customer can pay later from their order history.
    """
    user = await user_route_guard(request)
    try:
        order = await order_service.create_order(
            user_id=user["user_id"],
            package_id=payload.package_id,
            form_data=payload.form_data,
            uploaded_files=[f.model_dump() for f in payload.uploaded_files],
        )
        session = await payment_service.initiate_payment(order)
        return {
            "success": True,
            "order_id": order["order_id"],
            "snap_token": session["snap_token"],
            "redirect_url": session["redirect_url"],
        }
    except (HTTPException, ServiceError):
        raise
    except Exception as e:
        logger.error(f"Create order error: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create order"
        )


@router.get("")
async def list_my_orders(request: Request, status: Optional[str] = "ALL"):
    """Order history, optionally filtered by payment status (ALL, PENDING, PAID, CANCELLED)."""
    user = await user_route_guard(request)
    orders = await order_service.list_orders_for_user(user["user_id"], status)
    return {"orders": to_json_safe(orders), "total": len(orders)}


@router.get("/{order_id}")
async def get_my_order(request: Request, order_id: str):
    user = await user_route_guard(request)
    order = await order_service.get_order_for_user(user["user_id"], order_id)
    return to_json_safe(order)


@router.post("/{order_id}/pay")
async def pay_order(request: Request, order_id: str):
    """New payment session for an order that is still awaiting payment."""
    user = await user_route_guard(request)
    session = await payment_service.reinitiate_payment(user["user_id"], order_id)
    return {"success": True, **session}
