"""Refund state machine transitions, labels, and event types."""

from __future__ import annotations

from src.models.enums import PaymentMode, RefundReason, RefundStatus

# Status code -> (label, legal next statuses)
REFUND_STATUSES: dict[RefundStatus, tuple[str, list[RefundStatus]]] = {
    RefundStatus.PENDING: ("Pending", [RefundStatus.APPROVED, RefundStatus.REJECTED]),
    RefundStatus.APPROVED: ("Approved", [RefundStatus.PROCESSING]),
    RefundStatus.PROCESSING: ("Processing", [RefundStatus.COMPLETED, RefundStatus.FAILED]),
    RefundStatus.COMPLETED: ("Completed", []),
    RefundStatus.FAILED: ("Failed", [RefundStatus.PROCESSING, RefundStatus.REJECTED]),
    RefundStatus.REJECTED: ("Rejected", []),
}

TERMINAL_REFUND_STATUSES: frozenset[RefundStatus] = frozenset(
    status for status, (_, next_statuses) in REFUND_STATUSES.items() if not next_statuses
)

# Statuses from which the quick-complete shortcut may skip PROCESSING
QUICK_COMPLETE_FROM: frozenset[RefundStatus] = frozenset(
    {RefundStatus.PENDING, RefundStatus.APPROVED}
)

# Entering these captures the acting admin as processor
PROCESSOR_STATUSES: frozenset[RefundStatus] = frozenset(
    {RefundStatus.PROCESSING, RefundStatus.COMPLETED}
)

REASON_LABELS: dict[RefundReason, str] = {
    RefundReason.RETURN: "Product Return",
    RefundReason.ORDER_CANCELLED: "Order Cancelled",
    RefundReason.PARTIAL_DELIVERY: "Partial Delivery",
    RefundReason.DAMAGED_PRODUCT: "Damaged Product",
    RefundReason.WRONG_PRODUCT: "Wrong Product Delivered",
    RefundReason.DUPLICATE_PAYMENT: "Duplicate Payment",
    RefundReason.OVERCHARGE: "Overcharge",
    RefundReason.GOODWILL: "Goodwill/Compensation",
    RefundReason.OTHER: "Other",
}

PAYMENT_MODE_LABELS: dict[PaymentMode, str] = {
    PaymentMode.ORIGINAL: "Refund to Original Payment Method",
    PaymentMode.WALLET: "Store Credit/Wallet",
    PaymentMode.BANK_TRANSFER: "Bank Transfer",
    PaymentMode.UPI: "UPI",
    PaymentMode.CHEQUE: "Cheque",
}

# Activity types
ACTIVITY_REFUND_INITIATED = "refund_initiated"
ACTIVITY_REFUND_STATUS_CHANGED = "status_changed"
ACTIVITY_REFUND_QUICK_COMPLETED = "refund_quick_completed"

# Event type strings for the outbox
EVENT_REFUND_INITIATED = "refund.initiated"
EVENT_REFUND_STATUS_CHANGED = "refund.status_changed"
EVENT_REFUND_COMPLETED = "refund.completed"
