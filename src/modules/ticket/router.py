"""Support ticket API router: customer and admin endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.app import limiter
from src.database.session import get_db
from src.models.enums import EntityType, TicketCategory, TicketPriority, TicketStatus
from src.modules.identity.auth import Actor, get_current_actor, require_admin
from src.modules.ticket.constants import CATEGORY_LABELS, PRIORITY_LABELS
from src.modules.ticket.schemas import (
    AssignRequest,
    CloseRequest,
    EscalateRequest,
    ReplyRequest,
    TicketCreate,
    TicketDetailResponse,
    TicketListResponse,
    TicketOptionsResponse,
    TicketPriorityUpdate,
    TicketResponse,
    TicketStatsResponse,
    TicketStatusUpdate,
    build_ticket_detail,
    build_ticket_response,
)
from src.modules.ticket.service import TicketService
from src.modules.workflow import sla
from src.modules.workflow.dependencies import get_status_registry
from src.modules.workflow.registry import StatusRegistry
from src.modules.workflow.schemas import ActivityResponse, labelled_options, status_options
from src.schemas.responses import ErrorResponse

router = APIRouter(prefix="/tickets", tags=["tickets"])

_TRANSITION_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


async def _detail(
    svc: TicketService, ticket_id: uuid.UUID, actor: Actor
) -> TicketDetailResponse:
    ticket = await svc.get_ticket(ticket_id, actor)
    return build_ticket_detail(
        ticket, svc.registry, sla.utcnow(), include_internal=actor.is_admin
    )


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@router.get("/options", response_model=TicketOptionsResponse)
async def ticket_options(
    actor: Actor = Depends(get_current_actor),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Statuses, priorities, and categories for form dropdowns."""
    return TicketOptionsResponse(
        statuses=status_options(registry, EntityType.TICKET),
        priorities=labelled_options(PRIORITY_LABELS),
        categories=labelled_options(CATEGORY_LABELS),
    )


# ---------------------------------------------------------------------------
# Customer endpoints
# ---------------------------------------------------------------------------


@router.post("/", response_model=TicketDetailResponse, status_code=201)
@limiter.limit("20/minute")
async def create_ticket(
    request: Request,
    body: TicketCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Open a support ticket for the calling customer."""
    svc = TicketService(db, registry)
    ticket = await svc.create_ticket(
        actor=actor,
        subject=body.subject,
        description=body.description,
        category=body.category,
        priority=body.priority,
        order_id=body.order_id,
    )
    return await _detail(svc, ticket.id, actor)


@router.get("/mine", response_model=TicketListResponse)
async def list_my_tickets(
    status: TicketStatus | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    items, total = await svc.list_customer_tickets(
        actor, status=status, limit=limit, offset=offset
    )
    now = sla.utcnow()
    return TicketListResponse(
        items=[build_ticket_response(t, registry, now) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/mine/{ticket_id}", response_model=TicketDetailResponse)
async def get_my_ticket(
    ticket_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """A customer's own ticket with its public conversation."""
    svc = TicketService(db, registry)
    return await _detail(svc, ticket_id, actor)


@router.post(
    "/{ticket_id}/reply", response_model=TicketDetailResponse, responses=_TRANSITION_ERRORS
)
@limiter.limit("30/minute")
async def customer_reply(
    request: Request,
    ticket_id: uuid.UUID,
    body: ReplyRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    await svc.reply(ticket_id, actor, body.message, is_internal=body.is_internal)
    return await _detail(svc, ticket_id, actor)


# ---------------------------------------------------------------------------
# Admin queue
# ---------------------------------------------------------------------------


@router.get("/admin", response_model=TicketListResponse)
async def list_tickets(
    status: TicketStatus | None = Query(None),
    priority: TicketPriority | None = Query(None),
    category: TicketCategory | None = Query(None),
    assigned_to: uuid.UUID | None = Query(None),
    unassigned: bool = Query(False),
    sla_status: str | None = Query(None, pattern="^(breached|at_risk)$"),
    search: str | None = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Admin ticket queue: escalated first, then priority, then SLA deadline."""
    svc = TicketService(db, registry)
    items, total = await svc.list_tickets(
        actor,
        status=status,
        priority=priority,
        category=category,
        assigned_to=assigned_to,
        unassigned=unassigned,
        sla_status=sla_status,
        search=search,
        limit=limit,
        offset=offset,
    )
    now = sla.utcnow()
    return TicketListResponse(
        items=[build_ticket_response(t, registry, now) for t in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/admin/stats", response_model=TicketStatsResponse)
async def ticket_stats(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    return TicketStatsResponse(**await svc.get_stats(actor))


@router.get("/admin/escalated", response_model=list[TicketResponse])
async def list_escalated(
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    tickets = await svc.list_escalated(actor, limit=limit)
    now = sla.utcnow()
    return [build_ticket_response(t, registry, now) for t in tickets]


@router.get("/admin/{ticket_id}", response_model=TicketDetailResponse)
async def get_ticket(
    ticket_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Full ticket including internal notes and escalation history."""
    require_admin(actor)
    svc = TicketService(db, registry)
    return await _detail(svc, ticket_id, actor)


@router.get("/admin/{ticket_id}/activities", response_model=list[ActivityResponse])
async def list_ticket_activities(
    ticket_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    activities = await svc.list_activities(ticket_id, actor)
    return [ActivityResponse.model_validate(a) for a in activities]


# ---------------------------------------------------------------------------
# Admin operations
# ---------------------------------------------------------------------------


@router.post(
    "/admin/{ticket_id}/reply",
    response_model=TicketDetailResponse,
    responses=_TRANSITION_ERRORS,
)
async def admin_reply(
    ticket_id: uuid.UUID,
    body: ReplyRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Reply to the customer, or add an internal note with ``is_internal``."""
    require_admin(actor)
    svc = TicketService(db, registry)
    await svc.reply(ticket_id, actor, body.message, is_internal=body.is_internal)
    return await _detail(svc, ticket_id, actor)


@router.put("/admin/{ticket_id}/assign", response_model=TicketDetailResponse)
async def assign_ticket(
    ticket_id: uuid.UUID,
    body: AssignRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    await svc.assign(
        ticket_id, actor, body.assignee_id, expected_version=body.expected_version
    )
    return await _detail(svc, ticket_id, actor)


@router.put(
    "/admin/{ticket_id}/status",
    response_model=TicketDetailResponse,
    responses=_TRANSITION_ERRORS,
)
async def change_ticket_status(
    ticket_id: uuid.UUID,
    body: TicketStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    await svc.change_status(
        ticket_id,
        actor,
        body.status,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    return await _detail(svc, ticket_id, actor)


@router.put(
    "/admin/{ticket_id}/priority",
    response_model=TicketDetailResponse,
    responses=_TRANSITION_ERRORS,
)
async def change_ticket_priority(
    ticket_id: uuid.UUID,
    body: TicketPriorityUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Change priority; the SLA deadline restarts from now."""
    svc = TicketService(db, registry)
    await svc.change_priority(
        ticket_id, actor, body.priority, expected_version=body.expected_version
    )
    return await _detail(svc, ticket_id, actor)


@router.put(
    "/admin/{ticket_id}/escalate",
    response_model=TicketDetailResponse,
    responses=_TRANSITION_ERRORS,
)
async def escalate_ticket(
    ticket_id: uuid.UUID,
    body: EscalateRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = TicketService(db, registry)
    await svc.escalate(
        ticket_id,
        actor,
        reason=body.reason,
        notes=body.notes,
        escalate_to=body.escalate_to,
        expected_version=body.expected_version,
    )
    return await _detail(svc, ticket_id, actor)


@router.put(
    "/admin/{ticket_id}/close",
    response_model=TicketDetailResponse,
    responses=_TRANSITION_ERRORS,
)
async def close_ticket(
    ticket_id: uuid.UUID,
    body: CloseRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Resolve or close a ticket with a resolution summary."""
    svc = TicketService(db, registry)
    await svc.close(
        ticket_id,
        actor,
        resolution_summary=body.resolution_summary,
        final_status=body.final_status,
        expected_version=body.expected_version,
    )
    return await _detail(svc, ticket_id, actor)
