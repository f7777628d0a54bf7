# Import all models so SQLAlchemy metadata is populated for Alembic autogenerate
from src.models.enums import (
    ActorRole,
    EntityType,
    EventStatus,
    MessageSenderType,
    OrderStatus,
    PaymentMode,
    RefundReason,
    RefundStatus,
    ReplacementReason,
    ReplacementStatus,
    ReturnStatus,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from src.models.event_outbox import EventOutbox
from src.models.order import Order
from src.models.processed_event import ProcessedEvent
from src.models.refund import Refund
from src.models.replacement import Replacement
from src.models.return_request import ReturnRequest
from src.models.ticket import Ticket
from src.models.ticket_escalation import TicketEscalation
from src.models.ticket_message import TicketMessage
from src.models.workflow_activity import WorkflowActivity

__all__ = [
    # Enums
    "ActorRole",
    "EntityType",
    "EventStatus",
    "MessageSenderType",
    "OrderStatus",
    "PaymentMode",
    "RefundReason",
    "RefundStatus",
    "ReplacementReason",
    "ReplacementStatus",
    "ReturnStatus",
    "TicketCategory",
    "TicketPriority",
    "TicketStatus",
    # Models
    "EventOutbox",
    "Order",
    "ProcessedEvent",
    "Refund",
    "Replacement",
    "ReturnRequest",
    "Ticket",
    "TicketEscalation",
    "TicketMessage",
    "WorkflowActivity",
]
