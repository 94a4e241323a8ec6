"""
Midtrans Snap Integration
Creates Snap payment sessions and reads transaction status for reconciliation.
No retries: a failed call is reported to the caller as GatewayError.
"""
import os
import logging
import httpx
from typing import Any, Dict, Optional

from services.errors import GatewayError

logger = logging.getLogger(__name__)

SANDBOX_SNAP_BASE = "https://app.sandbox.midtrans.com"
SANDBOX_API_BASE = "https://api.sandbox.midtrans.com"
PRODUCTION_SNAP_BASE = "https://app.midtrans.com"
PRODUCTION_API_BASE = "https://api.midtrans.com"

GATEWAY_TIMEOUT_SECONDS = 10.0


def is_production() -> bool:
    return os.getenv("MIDTRANS_IS_PRODUCTION", "false").strip().lower() in ("1", "true", "yes")


def get_server_key() -> Optional[str]:
    return (os.getenv("MIDTRANS_SERVER_KEY") or "").strip() or None


def get_client_key() -> Optional[str]:
    return (os.getenv("MIDTRANS_CLIENT_KEY") or "").strip() or None


def get_merchant_id() -> Optional[str]:
    return (os.getenv("MIDTRANS_MERCHANT_ID") or "").strip() or None


def snap_base_url() -> str:
    return PRODUCTION_SNAP_BASE if is_production() else SANDBOX_SNAP_BASE


def api_base_url() -> str:
    return PRODUCTION_API_BASE if is_production() else SANDBOX_API_BASE


def snap_script_url() -> str:
    return f"{snap_base_url()}/snap/snap.js"


class MidtransSnapClient:
    """Midtrans Snap / Core status API client."""
    
    def _auth(self) -> tuple:
        server_key = get_server_key()
        if not server_key:
            logger.error("Midtrans: MIDTRANS_SERVER_KEY not configured")
            raise GatewayError("Payment gateway is not configured")
        # Basic auth: server key as username, empty password
        return (server_key, "")
    
    async def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, str]:
        """
        Request a Snap session for a transaction.
        
        Returns: {"token": str, "redirect_url": str}
        """
        auth = self._auth()
        order_id = payload.get("transaction_details", {}).get("order_id")
        url = f"{snap_base_url()}/snap/v1/transactions"
        
        try:
            async with httpx.AsyncClient(timeout=GATEWAY_TIMEOUT_SECONDS) as client:
                response = await client.post(
                    url,
                    json=payload,
                    auth=auth,
                    headers={"Accept": "application/json"},
                )
        except httpx.TimeoutException:
            logger.error(f"Midtrans: Snap request timed out for {order_id}")
            raise GatewayError("Payment gateway timeout")
        except httpx.HTTPError as e:
            logger.error(f"Midtrans: Snap request failed for {order_id}: {e}")
            raise GatewayError(f"Payment gateway unreachable: {e}")
        
        if response.status_code not in (200, 201):
            logger.error(f"Midtrans: Snap rejected {order_id} ({response.status_code}): {response.text}")
            raise GatewayError(f"Payment gateway error {response.status_code}")
        
        data = response.json()
        if not data.get("token"):
            logger.error(f"Midtrans: Snap response for {order_id} had no token: {data}")
            raise GatewayError("Payment gateway returned no token")
        
        logger.info(f"Midtrans: Snap session created for {order_id}")
        return {"token": data["token"], "redirect_url": data.get("redirect_url", "")}
    
    async def get_transaction_status(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Current gateway view of a transaction, or None if the gateway has no record of it."""
        auth = self._auth()
        url = f"{api_base_url()}/v2/{order_id}/status"
        
        try:
            async with httpx.AsyncClient(timeout=GATEWAY_TIMEOUT_SECONDS) as client:
                response = await client.get(url, auth=auth, headers={"Accept": "application/json"})
        except httpx.TimeoutException:
            logger.error(f"Midtrans: status request timed out for {order_id}")
            raise GatewayError("Payment gateway timeout")
        except httpx.HTTPError as e:
            logger.error(f"Midtrans: status request failed for {order_id}: {e}")
            raise GatewayError(f"Payment gateway unreachable: {e}")
        
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(f"Midtrans: status lookup for {order_id} failed ({response.status_code}): {response.text}")
            raise GatewayError(f"Payment gateway error {response.status_code}")
        
        data = response.json()
        # The status API answers 200 with an embedded status_code for unknown orders
        if str(data.get("status_code")) == "404":
            return None
        return data


# Singleton instance
snap_client = MidtransSnapClient()
