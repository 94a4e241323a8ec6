"""
Order Email Templates - Branded HTML + plaintext emails for order status updates.
"""
from typing import Dict, Optional
import os

from services.order_workflow import OrderStatus, ORDER_STATUS_LABELS

# Branding constants
COMPANY_NAME = os.getenv("COMPANY_NAME", "TaxDesk")
BRAND_COLOR_PRIMARY = "#24292e"
BRAND_COLOR_ACCENT = "#1A63D0"
SUPPORT_EMAIL = os.getenv("EMAIL_SENDER", "support@taxdesk.local")


STATUS_MESSAGES: Dict[OrderStatus, str] = {
    OrderStatus.REQUESTED: (
        "We have received your order. Please wait while our team prepares the next step. "
        "Use the button below to view your order details."
    ),
    OrderStatus.PROCESSING: (
        "Your order is now being processed. "
        "Use the button below to view your order details."
    ),
    OrderStatus.COMPLETED: (
        "Your order is complete and ready to collect at our office. "
        f"If you need any further help, contact us at {SUPPORT_EMAIL}. Thank you for your order!"
    ),
    OrderStatus.CANCELLED: (
        "Your order has been cancelled by our team. Your payment will be refunded within 24 hours. "
        f"If you need any further help, contact us at {SUPPORT_EMAIL}."
    ),
}


def _build_email_header(title: str, badge_text: Optional[str] = None) -> str:
    """Build consistent branded header."""
    badge_html = ""
    if badge_text:
        badge_html = f'<span style="background-color: {BRAND_COLOR_ACCENT}; color: white; padding: 4px 12px; border-radius: 4px; font-family: monospace; font-size: 12px; margin-left: 10px;">{badge_text}</span>'
    
    return f"""
        <div style="padding: 20px 0;">
            <h1 style="color: {BRAND_COLOR_PRIMARY}; margin: 0; font-size: 20px; display: inline-block;">{title}</h1>
            {badge_html}
        </div>
    """


def _build_email_footer(order_reference: Optional[str] = None) -> str:
    """Build consistent branded footer."""
    ref_line = ""
    if order_reference:
        ref_line = f"<br><strong>Order Reference:</strong> {order_reference}"
    
    return f"""
        <hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;">
        <p style="color: #6a737d; font-size: 12px; text-align: center; margin: 0;">
            {COMPANY_NAME}{ref_line}<br>
            Questions? <a href="mailto:{SUPPORT_EMAIL}" style="color: {BRAND_COLOR_ACCENT};">{SUPPORT_EMAIL}</a>
        </p>
    """


def _build_text_footer(order_reference: Optional[str] = None) -> str:
    """Build consistent plaintext footer."""
    ref_line = f"\nOrder Reference: {order_reference}" if order_reference else ""
    return f"""
--
{COMPANY_NAME}{ref_line}

Questions? Contact us at {SUPPORT_EMAIL}
"""


# ============================================================================
# ORDER STATUS UPDATE EMAIL (Sent to customer when staff change the status)
# ============================================================================

def build_order_status_email(
    client_name: str,
    order_reference: str,
    new_status: OrderStatus,
    view_orders_link: str,
) -> Dict[str, str]:
    """
    Build 'Order Status Updated' email.
    
    Returns dict with 'subject', 'html', 'text' keys.
    """
    subject = "Your order status has been updated"
    status_label = ORDER_STATUS_LABELS[new_status]
    message = STATUS_MESSAGES[new_status]
    
    html = f"""
    <html>
    <body style="font-family: -apple-system, 'Segoe UI', Helvetica, Arial, sans-serif; color: {BRAND_COLOR_PRIMARY}; max-width: 480px; margin: 0 auto;">
        {_build_email_header(f"Order #{order_reference} updated", status_label)}
        
        <div style="padding: 24px; border: 1px solid #dedede; border-radius: 5px;">
            <p style="margin: 0 0 10px 0;">Hi <strong>{client_name}</strong>!</p>
            <p style="margin: 0 0 10px 0;">{message}</p>
            <div style="text-align: center; margin: 20px 0 0 0;">
                <a href="{view_orders_link}" style="background-color: {BRAND_COLOR_ACCENT}; color: #fff; 
                          padding: 12px 24px; text-decoration: none; border-radius: 0.5em; 
                          display: inline-block; font-size: 14px;">
                    View My Orders
                </a>
            </div>
        </div>
        
        {_build_email_footer(order_reference)}
    </body>
    </html>
    """
    
    text = f"""Hi {client_name}!

Order #{order_reference} is now: {status_label}

{message}

View your orders: {view_orders_link}
{_build_text_footer(order_reference)}"""
    
    return {"subject": subject, "html": html, "text": text}
