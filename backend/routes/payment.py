"""Payment widget configuration for the storefront."""
from fastapi import APIRouter
from services import payment_service

router = APIRouter(prefix="/api/payment", tags=["payment"])


@router.get("/config")
async def payment_config():
    """Client key, Snap script URL and how long the browser should wait for it."""
    return payment_service.get_widget_config()
