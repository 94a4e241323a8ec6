"""Webhook Routes - Midtrans payment notifications.

POST /api/payment/webhook - signature-verified payment status updates.
Replays are safe: the same payload always leads to the same order state.
"""
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from services import payment_service
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["webhooks"])


@router.post("/api/payment/webhook")
async def midtrans_webhook(request: Request):
    """Midtrans HTTP notification endpoint."""
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("Midtrans webhook with unparseable body")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": "Invalid payload"}
        )
    if not isinstance(payload, dict):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"status": "error", "message": "Invalid payload"}
        )
    
    await payment_service.handle_webhook(payload)
    return {"status": "ok"}
