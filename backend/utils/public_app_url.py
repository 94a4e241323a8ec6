"""
Canonical public storefront base URL for payment callbacks and email links.
No other code should build storefront links directly.
"""
import os
import logging

logger = logging.getLogger(__name__)


def get_public_app_url() -> str:
    """
    Return normalized public storefront base URL (no trailing slash).
    Reads PUBLIC_APP_URL; falls back to http://localhost:3000 for local dev.
    In production a localhost value is logged, since the gateway would redirect
    customers to an unreachable page.
    """
    raw = (os.getenv("PUBLIC_APP_URL") or "").strip().rstrip("/")
    if not raw:
        return "http://localhost:3000"
    if "localhost" in raw.lower():
        env = (os.getenv("ENVIRONMENT") or "").strip().lower()
        if env in ("production", "prod"):
            logger.warning("PUBLIC_APP_URL points at localhost in production; payment redirects will not resolve")
    return raw


def order_status_url(order_id: str, outcome: str = "") -> str:
    """Storefront page showing one order; outcome is success, failed or pending."""
    url = f"{get_public_app_url()}/order-status/{order_id}"
    if outcome:
        url += f"?status={outcome}"
    return url
