"""
Order Notification Service
Tells the customer when staff change their order's fulfilment status.

Best-effort: called after the status change has been committed. A failure is
logged and reported to the caller as False, never raised, never retried.
"""
import logging
from typing import Any, Dict

from models import EmailTemplateAlias
from services.email_service import email_service
from services.order_email_templates import build_order_status_email
from services.order_workflow import OrderStatus
from utils.public_app_url import get_public_app_url

logger = logging.getLogger(__name__)


async def notify_order_status_changed(order_id: str, user: Dict[str, Any], new_status: OrderStatus) -> bool:
    """Email the order owner about the new status. Returns True when the email went out."""
    recipient = user.get("email")
    if not recipient:
        logger.warning(f"Order {order_id}: owner has no email, status notification skipped")
        return False

    try:
        content = build_order_status_email(
            client_name=user.get("name") or "there",
            order_reference=order_id,
            new_status=new_status,
            view_orders_link=f"{get_public_app_url()}/my-orders",
        )
        message_log = await email_service.send_email(
            recipient=recipient,
            template_alias=EmailTemplateAlias.ORDER_STATUS_UPDATE,
            subject=content["subject"],
            html_body=content["html"],
            text_body=content["text"],
            user_id=user.get("user_id"),
            order_id=order_id,
        )
    except Exception as e:
        logger.error(f"Order {order_id}: status notification failed: {e}", exc_info=True)
        return False

    if message_log.status != "sent":
        logger.warning(f"Order {order_id}: status notification to {recipient} not delivered ({message_log.error_message})")
        return False
    logger.info(f"Order {order_id}: status notification sent ({new_status.value})")
    return True
