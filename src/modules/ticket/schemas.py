"""Pydantic v2 schemas for the support ticket API."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    EntityType,
    MessageSenderType,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from src.models.ticket import Ticket
from src.modules.ticket.constants import CATEGORY_LABELS, PRIORITY_LABELS
from src.modules.workflow import sla
from src.modules.workflow.registry import StatusRegistry
from src.modules.workflow.schemas import (
    LabelledOption,
    StatusOption,
    TransitionOption,
    transitions_for,
)

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=500)
    description: str = Field(..., min_length=1)
    category: TicketCategory = TicketCategory.GENERAL
    priority: TicketPriority = TicketPriority.MEDIUM
    order_id: uuid.UUID | None = None


class ReplyRequest(BaseModel):
    message: str = Field(..., min_length=1)
    is_internal: bool = False


class AssignRequest(BaseModel):
    assignee_id: uuid.UUID | None = None
    expected_version: int | None = None


class TicketStatusUpdate(BaseModel):
    status: TicketStatus
    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = None


class TicketPriorityUpdate(BaseModel):
    priority: TicketPriority
    expected_version: int | None = None


class EscalateRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    notes: str | None = Field(None, max_length=2000)
    escalate_to: uuid.UUID | None = None
    expected_version: int | None = None


class CloseRequest(BaseModel):
    resolution_summary: str = Field(..., min_length=1)
    final_status: TicketStatus = TicketStatus.RESOLVED
    expected_version: int | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class TicketMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_id: uuid.UUID
    sender_type: MessageSenderType
    sender_id: uuid.UUID
    sender_name: str | None = None
    message: str
    is_internal: bool
    created_at: datetime


class TicketEscalationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_id: uuid.UUID
    previous_level: int
    new_level: int
    escalated_by: uuid.UUID
    escalated_to: uuid.UUID | None = None
    reason: str
    notes: str | None = None
    resolved_at: datetime | None = None
    resolved_by: uuid.UUID | None = None
    resolution_notes: str | None = None
    created_at: datetime


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    ticket_number: str
    customer_id: uuid.UUID
    customer_name: str | None = None
    order_id: uuid.UUID | None = None
    subject: str
    description: str
    category: TicketCategory
    priority: TicketPriority
    status: TicketStatus
    sla_hours: int
    sla_due_at: datetime
    sla_breached: bool
    escalation_level: int
    assigned_to: uuid.UUID | None = None
    assigned_at: datetime | None = None
    first_response_at: datetime | None = None
    last_response_at: datetime | None = None
    resolution_summary: str | None = None
    closed_at: datetime | None = None
    closed_by: uuid.UUID | None = None
    version: int
    created_at: datetime
    updated_at: datetime

    # Derived
    status_label: str = ""
    priority_label: str = ""
    category_label: str = ""
    is_sla_breached: bool = False
    sla_remaining_minutes: int = 0
    available_transitions: list[TransitionOption] = Field(default_factory=list)


class TicketDetailResponse(TicketResponse):
    messages: list[TicketMessageResponse] = Field(default_factory=list)
    escalations: list[TicketEscalationResponse] = Field(default_factory=list)


class TicketListResponse(BaseModel):
    items: list[TicketResponse]
    total: int
    limit: int
    offset: int


class TicketOptionsResponse(BaseModel):
    statuses: list[StatusOption]
    priorities: list[LabelledOption]
    categories: list[LabelledOption]


class TicketStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    open: int
    unassigned: int
    sla_breached: int
    sla_at_risk: int
    by_priority: list[dict]
    by_category: list[dict]
    created_today: int
    closed_today: int
    avg_resolution_hours: float | None = None
    avg_first_response_hours: float | None = None


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def build_ticket_response(
    ticket: Ticket, registry: StatusRegistry, now: datetime
) -> TicketResponse:
    """Ticket row plus labels, live SLA state, and the legal next statuses."""
    response = TicketResponse.model_validate(ticket)
    breached = ticket.sla_breached or sla.is_breached(ticket.sla_due_at, ticket.status, now)
    return response.model_copy(
        update={
            "status_label": registry.label(EntityType.TICKET, ticket.status),
            "priority_label": PRIORITY_LABELS[ticket.priority],
            "category_label": CATEGORY_LABELS[ticket.category],
            "is_sla_breached": breached,
            "sla_remaining_minutes": (
                0 if registry.is_terminal(EntityType.TICKET, ticket.status)
                else sla.minutes_remaining(ticket.sla_due_at, now)
            ),
            "available_transitions": transitions_for(registry, EntityType.TICKET, ticket.status),
        }
    )


def build_ticket_detail(
    ticket: Ticket,
    registry: StatusRegistry,
    now: datetime,
    include_internal: bool,
) -> TicketDetailResponse:
    """Detail view; internal notes and escalation records are admin-only."""
    base = build_ticket_response(ticket, registry, now)
    messages = [
        TicketMessageResponse.model_validate(m)
        for m in ticket.messages
        if include_internal or not m.is_internal
    ]
    escalations = (
        [TicketEscalationResponse.model_validate(e) for e in ticket.escalations]
        if include_internal
        else []
    )
    return TicketDetailResponse(
        **base.model_dump(),
        messages=messages,
        escalations=escalations,
    )
