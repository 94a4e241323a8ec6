"""Tests for get_public_app_url (payment callback and email link base URL)."""
import os
from unittest.mock import patch

from utils.public_app_url import get_public_app_url, order_status_url


def test_get_public_app_url_strips_trailing_slash():
    with patch.dict(os.environ, {"PUBLIC_APP_URL": "https://shop.example.com/"}, clear=False):
        assert get_public_app_url() == "https://shop.example.com"


def test_get_public_app_url_defaults_to_local_dev():
    with patch.dict(os.environ, {"PUBLIC_APP_URL": ""}, clear=False):
        assert get_public_app_url() == "http://localhost:3000"


def test_order_status_url_carries_outcome():
    with patch.dict(os.environ, {"PUBLIC_APP_URL": "https://shop.example.com"}, clear=False):
        assert order_status_url("ORD-2026-ABC123", "pending") == (
            "https://shop.example.com/order-status/ORD-2026-ABC123?status=pending"
        )
        assert order_status_url("ORD-2026-ABC123") == "https://shop.example.com/order-status/ORD-2026-ABC123"
