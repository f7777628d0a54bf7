"""Ticket state machine transitions, labels, SLA budgets, and event types."""

from __future__ import annotations

from src.models.enums import TicketCategory, TicketPriority, TicketStatus

# Status code -> (label, legal next statuses)
TICKET_STATUSES: dict[TicketStatus, tuple[str, list[TicketStatus]]] = {
    TicketStatus.OPEN: (
        "Open",
        [
            TicketStatus.IN_PROGRESS,
            TicketStatus.AWAITING_CUSTOMER,
            TicketStatus.AWAITING_INTERNAL,
            TicketStatus.ESCALATED,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ],
    ),
    TicketStatus.IN_PROGRESS: (
        "In Progress",
        [
            TicketStatus.AWAITING_CUSTOMER,
            TicketStatus.AWAITING_INTERNAL,
            TicketStatus.ESCALATED,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ],
    ),
    TicketStatus.AWAITING_CUSTOMER: (
        "Awaiting Customer",
        [
            TicketStatus.IN_PROGRESS,
            TicketStatus.AWAITING_INTERNAL,
            TicketStatus.ESCALATED,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ],
    ),
    TicketStatus.AWAITING_INTERNAL: (
        "Awaiting Internal",
        [
            TicketStatus.IN_PROGRESS,
            TicketStatus.AWAITING_CUSTOMER,
            TicketStatus.ESCALATED,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ],
    ),
    TicketStatus.ESCALATED: (
        "Escalated",
        [
            TicketStatus.IN_PROGRESS,
            TicketStatus.AWAITING_CUSTOMER,
            TicketStatus.AWAITING_INTERNAL,
            TicketStatus.RESOLVED,
            TicketStatus.CLOSED,
        ],
    ),
    TicketStatus.RESOLVED: ("Resolved", []),
    TicketStatus.CLOSED: ("Closed", []),
}

TERMINAL_TICKET_STATUSES: frozenset[TicketStatus] = frozenset(
    status for status, (_, next_statuses) in TICKET_STATUSES.items() if not next_statuses
)

CLOSING_STATUSES: tuple[TicketStatus, ...] = (TicketStatus.RESOLVED, TicketStatus.CLOSED)

# Only reachable through escalate()
DEDICATED_OPERATION_STATUSES: frozenset[TicketStatus] = frozenset({TicketStatus.ESCALATED})

PRIORITY_LABELS: dict[TicketPriority, str] = {
    TicketPriority.LOW: "Low",
    TicketPriority.MEDIUM: "Medium",
    TicketPriority.HIGH: "High",
    TicketPriority.URGENT: "Urgent",
}

# Response-time budget per priority (hours)
SLA_HOURS: dict[TicketPriority, int] = {
    TicketPriority.URGENT: 4,
    TicketPriority.HIGH: 24,
    TicketPriority.MEDIUM: 48,
    TicketPriority.LOW: 72,
}

# Lower rank sorts first in the admin queue
PRIORITY_RANK: dict[TicketPriority, int] = {
    TicketPriority.URGENT: 0,
    TicketPriority.HIGH: 1,
    TicketPriority.MEDIUM: 2,
    TicketPriority.LOW: 3,
}

CATEGORY_LABELS: dict[TicketCategory, str] = {
    TicketCategory.GENERAL: "General Inquiry",
    TicketCategory.ORDER: "Order Issue",
    TicketCategory.PAYMENT: "Payment Issue",
    TicketCategory.DELIVERY: "Delivery Problem",
    TicketCategory.PRODUCT: "Product Quality",
    TicketCategory.REFUND: "Refund Request",
    TicketCategory.RETURN: "Return Issue",
    TicketCategory.ACCOUNT: "Account Issue",
    TicketCategory.TECHNICAL: "Technical Support",
    TicketCategory.FEEDBACK: "Feedback/Suggestion",
    TicketCategory.OTHER: "Other",
}

# Activity types
ACTIVITY_TICKET_CREATED = "ticket_created"
ACTIVITY_MESSAGE_ADDED = "message_added"
ACTIVITY_ADMIN_REPLY = "admin_reply"
ACTIVITY_INTERNAL_NOTE = "internal_note_added"
ACTIVITY_ASSIGNED = "assigned"
ACTIVITY_STATUS_CHANGED = "status_changed"
ACTIVITY_PRIORITY_CHANGED = "priority_changed"
ACTIVITY_ESCALATED = "escalated"
ACTIVITY_CLOSED = "ticket_closed"
ACTIVITY_SLA_BREACHED = "sla_breached"

# Event type strings for the outbox
EVENT_TICKET_CREATED = "ticket.created"
EVENT_TICKET_REPLIED = "ticket.replied"
EVENT_TICKET_STATUS_CHANGED = "ticket.status_changed"
EVENT_TICKET_ESCALATED = "ticket.escalated"
EVENT_TICKET_CLOSED = "ticket.closed"
EVENT_TICKET_SLA_BREACHED = "ticket.sla_breached"
