"""
Payment Orchestrator: Snap session requests, webhook verification and the
PENDING -> PAID | CANCELLED state machine.
"""
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import base64
import hashlib

import httpx
import pytest
import pytest_asyncio

from conftest import package_payload
from services import order_service, package_service, payment_service
from services.errors import (
    GatewayError, InvalidStateError, NotFoundError, SignatureError, WebhookConfigurationError,
)
from services.payment_gateway import MidtransSnapClient

SERVER_KEY = "SB-Mid-server-test"


@pytest.fixture
def midtrans_env(monkeypatch):
    monkeypatch.setenv("MIDTRANS_SERVER_KEY", SERVER_KEY)
    monkeypatch.setenv("MIDTRANS_CLIENT_KEY", "SB-Mid-client-test")
    monkeypatch.setenv("MIDTRANS_MERCHANT_ID", "G123456789")
    monkeypatch.setenv("PUBLIC_APP_URL", "https://shop.example.com")
    monkeypatch.delenv("MIDTRANS_IS_PRODUCTION", raising=False)


@pytest.fixture
def mock_snap():
    snap = MagicMock()
    snap.create_transaction = AsyncMock(return_value={
        "token": "snap-token-1",
        "redirect_url": "https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-token-1",
    })
    snap.get_transaction_status = AsyncMock(return_value=None)
    with patch("services.payment_service.snap_client", snap):
        yield snap


@pytest_asyncio.fixture
async def pending_order(fake_db, admin_user, customer):
    package = await package_service.create_package(admin_user, package_payload())
    return await order_service.create_order(customer["user_id"], package["package_id"], {"ktp_number": "3171"})


def notification(order_id, transaction_status, fraud_status=None, status_code="200", amount="50000.00", key=SERVER_KEY):
    payload = {
        "order_id": order_id,
        "status_code": status_code,
        "gross_amount": amount,
        "transaction_status": transaction_status,
        "transaction_id": "txn-1",
    }
    if fraud_status:
        payload["fraud_status"] = fraud_status
    payload["signature_key"] = payment_service.compute_signature(order_id, status_code, amount, key)
    return payload


def _stored_status(db, order_id):
    return next(d for d in db.orders.docs if d["order_id"] == order_id)["payment_status"]


# ============================================================================
# SIGNATURE
# ============================================================================

def test_signature_is_sha512_of_concatenated_fields():
    expected = hashlib.sha512(b"ORD-2026-ABC123" b"200" b"50000.00" b"key").hexdigest()
    assert payment_service.compute_signature("ORD-2026-ABC123", "200", "50000.00", "key") == expected


def test_verify_signature_rejects_tampering():
    payload = notification("ORD-2026-ABC123", "settlement")
    assert payment_service.verify_signature(payload, SERVER_KEY) is True

    assert payment_service.verify_signature({**payload, "gross_amount": "1.00"}, SERVER_KEY) is False
    assert payment_service.verify_signature({**payload, "signature_key": payload["signature_key"].upper()}, SERVER_KEY) is False
    assert payment_service.verify_signature({k: v for k, v in payload.items() if k != "status_code"}, SERVER_KEY) is False
    assert payment_service.verify_signature(payload, "other-key") is False


# ============================================================================
# SESSION REQUESTS
# ============================================================================

def test_transaction_request_shape(midtrans_env):
    order = {"order_id": "ORD-2026-ABC123", "total_amount": Decimal("50000.50")}
    user = {"name": "Siti Aminah", "email": "siti@example.com", "phone": "0812"}
    package = {"package_id": "pkg-1", "name": "P" * 80}

    body = payment_service.build_transaction_request(order, user, package)

    assert body["transaction_details"] == {"order_id": "ORD-2026-ABC123", "gross_amount": 50001}
    assert body["credit_card"] == {"secure": True}
    assert body["customer_details"]["email"] == "siti@example.com"
    assert body["callbacks"]["finish"] == "https://shop.example.com/order-status/ORD-2026-ABC123?status=success"
    assert body["callbacks"]["error"].endswith("?status=failed")
    assert body["callbacks"]["pending"].endswith("?status=pending")
    item = body["item_details"][0]
    assert item["price"] == 50001
    assert item["quantity"] == 1
    assert len(item["name"]) == 50
    assert item["merchant_id"] == "G123456789"


def test_transaction_request_takes_phone_from_order_form(midtrans_env):
    order = {
        "order_id": "ORD-2026-PHN001",
        "total_amount": Decimal("50000"),
        "form_data": {"ktp_number": "3174", "phone": "081234567890"},
    }
    package = {"package_id": "pkg-1", "name": "Tax Renewal"}

    without_profile_phone = payment_service.build_transaction_request(
        order, {"name": "Siti Aminah", "email": "siti@example.com"}, package,
    )
    with_profile_phone = payment_service.build_transaction_request(
        order, {"name": "Siti Aminah", "email": "siti@example.com", "phone": "0812"}, package,
    )

    assert without_profile_phone["customer_details"]["phone"] == "081234567890"
    assert with_profile_phone["customer_details"]["phone"] == "0812"


@pytest.mark.asyncio
async def test_initiate_payment_returns_session(midtrans_env, mock_snap, pending_order):
    session = await payment_service.initiate_payment(pending_order)

    assert session == {
        "order_id": pending_order["order_id"],
        "snap_token": "snap-token-1",
        "redirect_url": "https://app.sandbox.midtrans.com/snap/v2/vtweb/snap-token-1",
    }
    sent = mock_snap.create_transaction.await_args.args[0]
    assert sent["transaction_details"]["gross_amount"] == 50000
    assert sent["customer_details"]["first_name"] == "Siti Aminah"


@pytest.mark.asyncio
async def test_initiate_payment_without_keys_fails(monkeypatch, mock_snap, pending_order):
    monkeypatch.delenv("MIDTRANS_SERVER_KEY", raising=False)
    monkeypatch.delenv("MIDTRANS_CLIENT_KEY", raising=False)
    with pytest.raises(GatewayError):
        await payment_service.initiate_payment(pending_order)
    mock_snap.create_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_reinitiate_pending_order(midtrans_env, mock_snap, fake_db, customer, pending_order):
    session = await payment_service.reinitiate_payment(customer["user_id"], pending_order["order_id"])
    assert session["snap_token"] == "snap-token-1"
    assert _stored_status(fake_db, pending_order["order_id"]) == "PENDING"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["PAID", "CANCELLED"])
async def test_reinitiate_settled_order_rejected(midtrans_env, mock_snap, fake_db, customer, pending_order, status):
    fake_db.orders.docs[0]["payment_status"] = status
    with pytest.raises(InvalidStateError):
        await payment_service.reinitiate_payment(customer["user_id"], pending_order["order_id"])
    mock_snap.create_transaction.assert_not_awaited()


@pytest.mark.asyncio
async def test_reinitiate_other_users_order_not_found(midtrans_env, mock_snap, pending_order):
    with pytest.raises(NotFoundError):
        await payment_service.reinitiate_payment("someone-else", pending_order["order_id"])


# ============================================================================
# WEBHOOK
# ============================================================================

@pytest.mark.asyncio
async def test_settlement_marks_order_paid(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    result = await payment_service.handle_webhook(notification(order_id, "settlement"))

    assert result == {"order_id": order_id, "payment_status": "PAID", "changed": True}
    assert _stored_status(fake_db, order_id) == "PAID"
    ledger = fake_db.payment_notifications.docs
    assert len(ledger) == 1
    assert ledger[0]["signature_valid"] is True
    assert ledger[0]["mapped_status"] == "PAID"


@pytest.mark.asyncio
async def test_capture_accept_marks_paid_and_challenge_stays_pending(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    await payment_service.handle_webhook(notification(order_id, "capture", fraud_status="challenge"))
    assert _stored_status(fake_db, order_id) == "PENDING"

    await payment_service.handle_webhook(notification(order_id, "capture", fraud_status="accept"))
    assert _stored_status(fake_db, order_id) == "PAID"


@pytest.mark.asyncio
@pytest.mark.parametrize("transaction_status", ["expire", "cancel", "deny"])
async def test_failed_transactions_cancel_payment(midtrans_env, fake_db, pending_order, transaction_status):
    order_id = pending_order["order_id"]
    await payment_service.handle_webhook(notification(order_id, transaction_status, status_code="407"))
    assert _stored_status(fake_db, order_id) == "CANCELLED"


@pytest.mark.asyncio
async def test_replayed_webhook_is_idempotent(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    payload = notification(order_id, "settlement")
    await payment_service.handle_webhook(payload)
    updated_at = fake_db.orders.docs[0]["updated_at"]

    result = await payment_service.handle_webhook(payload)

    assert result["changed"] is False
    assert result["payment_status"] == "PAID"
    assert fake_db.orders.docs[0]["updated_at"] == updated_at


@pytest.mark.asyncio
async def test_paid_is_terminal(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    await payment_service.handle_webhook(notification(order_id, "settlement"))
    result = await payment_service.handle_webhook(notification(order_id, "expire", status_code="407"))

    assert result["changed"] is False
    assert _stored_status(fake_db, order_id) == "PAID"


@pytest.mark.asyncio
async def test_unknown_transaction_status_keeps_pending(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    result = await payment_service.handle_webhook(notification(order_id, "refund"))
    assert result["payment_status"] == "PENDING"
    assert _stored_status(fake_db, order_id) == "PENDING"


@pytest.mark.asyncio
async def test_bad_signature_changes_nothing(midtrans_env, fake_db, pending_order):
    order_id = pending_order["order_id"]
    forged = notification(order_id, "settlement", key="attacker-key")

    with pytest.raises(SignatureError):
        await payment_service.handle_webhook(forged)

    assert _stored_status(fake_db, order_id) == "PENDING"
    assert fake_db.payment_notifications.docs[0]["signature_valid"] is False
    actions = [log["action"] for log in fake_db.audit_logs.docs]
    assert "PAYMENT_WEBHOOK_REJECTED" in actions


@pytest.mark.asyncio
async def test_webhook_without_server_key(monkeypatch, fake_db, pending_order):
    payload = notification(pending_order["order_id"], "settlement")
    monkeypatch.delenv("MIDTRANS_SERVER_KEY", raising=False)
    with pytest.raises(WebhookConfigurationError):
        await payment_service.handle_webhook(payload)
    assert _stored_status(fake_db, pending_order["order_id"]) == "PENDING"


@pytest.mark.asyncio
async def test_webhook_for_unknown_order(midtrans_env, fake_db):
    with pytest.raises(NotFoundError):
        await payment_service.handle_webhook(notification("ORD-2026-NOPE00", "settlement"))


# ============================================================================
# RECONCILIATION
# ============================================================================

@pytest.mark.asyncio
async def test_reconcile_applies_gateway_view(midtrans_env, mock_snap, fake_db, pending_order):
    order_id = pending_order["order_id"]
    mock_snap.get_transaction_status.return_value = {"transaction_status": "settlement", "status_code": "200"}

    result = await payment_service.reconcile_payment(order_id)

    assert result["changed"] is True
    assert _stored_status(fake_db, order_id) == "PAID"
    audit = [log for log in fake_db.audit_logs.docs if log["action"] == "PAYMENT_STATUS_CHANGED"]
    assert audit[0]["metadata"]["source"] == "reconciliation"


@pytest.mark.asyncio
async def test_reconcile_without_gateway_record(midtrans_env, mock_snap, fake_db, pending_order):
    result = await payment_service.reconcile_payment(pending_order["order_id"])
    assert result == {"order_id": pending_order["order_id"], "payment_status": "PENDING", "changed": False}


def test_widget_config(midtrans_env, monkeypatch):
    monkeypatch.setenv("PAYMENT_WIDGET_TIMEOUT_SECONDS", "20")
    config = payment_service.get_widget_config()
    assert config == {
        "client_key": "SB-Mid-client-test",
        "snap_script_url": "https://app.sandbox.midtrans.com/snap/snap.js",
        "widget_timeout_seconds": 20,
    }


# ============================================================================
# SNAP CLIENT
# ============================================================================

_RealAsyncClient = httpx.AsyncClient


def _mock_http(handler):
    def factory(*args, **kwargs):
        return _RealAsyncClient(*args, transport=httpx.MockTransport(handler), **kwargs)
    return patch("services.payment_gateway.httpx.AsyncClient", side_effect=factory)


@pytest.mark.asyncio
async def test_snap_client_posts_with_basic_auth(midtrans_env):
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("authorization")
        return httpx.Response(201, json={"token": "tok", "redirect_url": "https://pay/tok"})

    with _mock_http(handler):
        session = await MidtransSnapClient().create_transaction({"transaction_details": {"order_id": "ORD-1"}})

    assert session == {"token": "tok", "redirect_url": "https://pay/tok"}
    assert seen["url"] == "https://app.sandbox.midtrans.com/snap/v1/transactions"
    assert seen["auth"] == "Basic " + base64.b64encode(f"{SERVER_KEY}:".encode()).decode()


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code,body", [
    (401, {"error_messages": ["Access denied"]}),
    (200, {"redirect_url": "https://pay/none"}),
])
async def test_snap_client_rejections_raise_gateway_error(midtrans_env, status_code, body):
    with _mock_http(lambda request: httpx.Response(status_code, json=body)):
        with pytest.raises(GatewayError):
            await MidtransSnapClient().create_transaction({"transaction_details": {"order_id": "ORD-1"}})


@pytest.mark.asyncio
async def test_snap_client_timeout_raises_gateway_error(midtrans_env):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    with _mock_http(handler):
        with pytest.raises(GatewayError):
            await MidtransSnapClient().create_transaction({"transaction_details": {"order_id": "ORD-1"}})


@pytest.mark.asyncio
async def test_status_lookup_for_unknown_transaction_returns_none(midtrans_env):
    with _mock_http(lambda request: httpx.Response(200, json={"status_code": "404"})):
        assert await MidtransSnapClient().get_transaction_status("ORD-1") is None
