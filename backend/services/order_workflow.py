"""
Order Workflow Rules
Defines the payment and fulfilment states of an order and the rules for
moving between them. Single source of truth for order status logic.

An order carries two independent dimensions:
- payment_status: driven only by verified gateway notifications (and reconciliation)
- order_status: driven only by administrators
"""
from enum import Enum
from typing import Dict, List, Optional, Set


class PaymentStatus(str, Enum):
    PENDING = "PENDING"       # Created, awaiting gateway outcome
    PAID = "PAID"             # Settled / captured and accepted
    CANCELLED = "CANCELLED"   # Cancelled, expired or denied at the gateway


class OrderStatus(str, Enum):
    REQUESTED = "REQUESTED"   # Default, waiting for staff
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Payment transitions - whitelist approach. Only PENDING may move.
ALLOWED_PAYMENT_TRANSITIONS: Dict[PaymentStatus, List[PaymentStatus]] = {
    PaymentStatus.PENDING: [PaymentStatus.PAID, PaymentStatus.CANCELLED],
    PaymentStatus.PAID: [],
    PaymentStatus.CANCELLED: [],
}


# Fulfilment work only starts once the customer has paid
PAID_REQUIRED_ORDER_STATES: Set[OrderStatus] = {
    OrderStatus.PROCESSING,
    OrderStatus.COMPLETED,
}


# Status filter value accepted by the customer order history
ALL_STATUSES = "ALL"


# Gateway transaction_status -> payment status. Values not listed map to PENDING.
GATEWAY_STATUS_MAP: Dict[str, PaymentStatus] = {
    "settlement": PaymentStatus.PAID,
    "cancel": PaymentStatus.CANCELLED,
    "expire": PaymentStatus.CANCELLED,
    "deny": PaymentStatus.CANCELLED,
    "pending": PaymentStatus.PENDING,
}


def map_gateway_status(transaction_status: Optional[str], fraud_status: Optional[str] = None) -> PaymentStatus:
    """Translate a gateway (transaction_status, fraud_status) pair into a payment status."""
    if transaction_status == "capture":
        if fraud_status == "accept":
            return PaymentStatus.PAID
        # challenge (or missing fraud verdict) stays pending
        return PaymentStatus.PENDING
    return GATEWAY_STATUS_MAP.get(transaction_status or "", PaymentStatus.PENDING)


def is_valid_payment_transition(from_status: PaymentStatus, to_status: PaymentStatus) -> bool:
    """Check if a payment status transition is valid"""
    return to_status in ALLOWED_PAYMENT_TRANSITIONS.get(from_status, [])


def can_set_order_status(payment_status: PaymentStatus, target: OrderStatus) -> bool:
    """REQUESTED and CANCELLED are always reachable; work states need a paid order."""
    if target in PAID_REQUIRED_ORDER_STATES:
        return payment_status == PaymentStatus.PAID
    return True


def parse_status_filter(value: Optional[str]) -> Optional[PaymentStatus]:
    """Customer history filter: None / "ALL" means no filter. Raises ValueError on junk."""
    if value is None or value == "" or value == ALL_STATUSES:
        return None
    return PaymentStatus(value)


# Customer-facing labels used in emails
ORDER_STATUS_LABELS: Dict[OrderStatus, str] = {
    OrderStatus.REQUESTED: "Requested",
    OrderStatus.PROCESSING: "Processing",
    OrderStatus.COMPLETED: "Completed",
    OrderStatus.CANCELLED: "Cancelled",
}
