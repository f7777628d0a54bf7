"""Replacement state machine transitions, order-status mapping, and labels."""

from __future__ import annotations

from src.models.enums import OrderStatus, ReplacementReason, ReplacementStatus

# Status code -> (label, legal next statuses)
REPLACEMENT_STATUSES: dict[ReplacementStatus, tuple[str, list[ReplacementStatus]]] = {
    ReplacementStatus.PENDING: (
        "Pending Approval",
        [ReplacementStatus.APPROVED, ReplacementStatus.REJECTED, ReplacementStatus.CANCELLED],
    ),
    ReplacementStatus.APPROVED: (
        "Approved",
        [ReplacementStatus.PROCESSING, ReplacementStatus.CANCELLED],
    ),
    ReplacementStatus.PROCESSING: (
        "Processing",
        [ReplacementStatus.SHIPPED, ReplacementStatus.CANCELLED],
    ),
    ReplacementStatus.SHIPPED: ("Shipped", [ReplacementStatus.DELIVERED]),
    ReplacementStatus.DELIVERED: ("Delivered", [ReplacementStatus.COMPLETED]),
    ReplacementStatus.COMPLETED: ("Completed", []),
    ReplacementStatus.REJECTED: ("Rejected", []),
    ReplacementStatus.CANCELLED: ("Cancelled", []),
}

TERMINAL_REPLACEMENT_STATUSES: frozenset[ReplacementStatus] = frozenset(
    status for status, (_, next_statuses) in REPLACEMENT_STATUSES.items() if not next_statuses
)

# Only reachable through approve() / reject()
DEDICATED_OPERATION_STATUSES: frozenset[ReplacementStatus] = frozenset(
    {ReplacementStatus.APPROVED, ReplacementStatus.REJECTED}
)

# Replacement status -> status of the linked replacement order
ORDER_STATUS_MAPPING: dict[ReplacementStatus, OrderStatus] = {
    ReplacementStatus.PROCESSING: OrderStatus.PROCESSING,
    ReplacementStatus.SHIPPED: OrderStatus.SHIPPED,
    ReplacementStatus.DELIVERED: OrderStatus.DELIVERED,
    ReplacementStatus.COMPLETED: OrderStatus.DELIVERED,
    ReplacementStatus.CANCELLED: OrderStatus.CANCELLED,
}

REASON_LABELS: dict[ReplacementReason, str] = {
    ReplacementReason.DEFECTIVE: "Defective Product",
    ReplacementReason.WRONG_ITEM: "Wrong Item Received",
    ReplacementReason.DAMAGED_SHIPPING: "Damaged in Shipping",
    ReplacementReason.MISSING_PARTS: "Missing Parts",
    ReplacementReason.QUALITY_ISSUE: "Quality Issue",
    ReplacementReason.SIZE_EXCHANGE: "Size/Color Exchange",
    ReplacementReason.WARRANTY: "Warranty Replacement",
    ReplacementReason.OTHER: "Other",
}

# Activity types
ACTIVITY_REPLACEMENT_INITIATED = "replacement_initiated"
ACTIVITY_REPLACEMENT_APPROVED = "replacement_approved"
ACTIVITY_REPLACEMENT_REJECTED = "replacement_rejected"
ACTIVITY_REPLACEMENT_STATUS_CHANGED = "status_changed"
ACTIVITY_REPLACEMENT_ORDER_CREATED = "replacement_order_created"

# Event type strings for the outbox
EVENT_REPLACEMENT_INITIATED = "replacement.initiated"
EVENT_REPLACEMENT_APPROVED = "replacement.approved"
EVENT_REPLACEMENT_REJECTED = "replacement.rejected"
EVENT_REPLACEMENT_STATUS_CHANGED = "replacement.status_changed"
