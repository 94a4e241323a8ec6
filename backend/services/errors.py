"""
Service-layer error taxonomy.

Services raise these; routes let them propagate and server.py maps each kind
to an HTTP response. Messages are safe to show to the caller.
"""
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base exception for service operations."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message}
        if self.details:
            body.update(self.details)
        return body


class ValidationError(ServiceError):
    """Malformed input to a create/update operation, reported field by field."""
    status_code = 400
    default_message = "Invalid input"

    def __init__(self, message: Optional[str] = None, field_errors: Optional[Dict[str, str]] = None):
        self.field_errors = field_errors or {}
        super().__init__(message, {"field_errors": self.field_errors})


class AuthorizationError(ServiceError):
    status_code = 403
    default_message = "Insufficient permissions"

    def to_dict(self) -> Dict[str, Any]:
        # Generic denial only
        return {"detail": self.default_message}


class NotFoundError(ServiceError):
    status_code = 404
    default_message = "Not found"


class InvalidStateError(ServiceError):
    """Operation attempted against an order in an incompatible status."""
    status_code = 409
    default_message = "Operation not allowed in the current state"


class GatewayError(ServiceError):
    """Payment gateway rejected the request, is unreachable, or is not configured."""
    status_code = 502
    default_message = "Payment initiation failed"

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.default_message}


class SignatureError(ServiceError):
    """Webhook payload failed its integrity check."""
    status_code = 403
    default_message = "Invalid signature"

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "error", "message": self.default_message}


class WebhookConfigurationError(ServiceError):
    """Webhook cannot be verified because the gateway secret is not configured."""
    status_code = 500
    default_message = "Server key not configured"

    def to_dict(self) -> Dict[str, Any]:
        return {"status": "error", "message": self.default_message}
