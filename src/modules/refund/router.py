"""Refund API router: customer lookups and admin processing."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.models.enums import EntityType, PaymentMode, RefundReason, RefundStatus
from src.modules.identity.auth import Actor, get_current_actor
from src.modules.refund.constants import PAYMENT_MODE_LABELS, REASON_LABELS
from src.modules.refund.schemas import (
    QuickCompleteRequest,
    RefundCreate,
    RefundListResponse,
    RefundOptionsResponse,
    RefundResponse,
    RefundStatsResponse,
    RefundStatusUpdate,
    build_refund_response,
)
from src.modules.refund.service import RefundService
from src.modules.workflow.dependencies import get_status_registry
from src.modules.workflow.registry import StatusRegistry
from src.modules.workflow.schemas import ActivityResponse, labelled_options, status_options
from src.schemas.responses import ErrorResponse

router = APIRouter(prefix="/refunds", tags=["refunds"])

_TRANSITION_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.get("/options", response_model=RefundOptionsResponse)
async def refund_options(
    actor: Actor = Depends(get_current_actor),
    registry: StatusRegistry = Depends(get_status_registry),
):
    return RefundOptionsResponse(
        statuses=status_options(registry, EntityType.REFUND),
        reasons=labelled_options(REASON_LABELS),
        payment_modes=labelled_options(PAYMENT_MODE_LABELS),
    )


# ---------------------------------------------------------------------------
# Customer endpoints
# ---------------------------------------------------------------------------


@router.get("/mine", response_model=RefundListResponse)
async def list_my_refunds(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Refunds against the caller's orders, newest first."""
    svc = RefundService(db, registry)
    items, total = await svc.list_customer_refunds(actor, limit=limit, offset=offset)
    return RefundListResponse(
        items=[build_refund_response(r, registry) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/order/{order_id}", response_model=RefundResponse | None)
async def get_refund_for_order(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Latest refund on one of the caller's orders, or null."""
    svc = RefundService(db, registry)
    refund = await svc.get_refund_for_order(order_id, actor)
    return build_refund_response(refund, registry) if refund else None


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/admin", response_model=RefundListResponse)
async def list_refunds(
    status: RefundStatus | None = Query(None),
    reason: RefundReason | None = Query(None),
    payment_mode: PaymentMode | None = Query(None),
    search: str | None = Query(None, max_length=100),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = RefundService(db, registry)
    items, total = await svc.list_refunds(
        actor,
        status=status,
        reason=reason,
        payment_mode=payment_mode,
        search=search,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return RefundListResponse(
        items=[build_refund_response(r, registry) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/admin/stats", response_model=RefundStatsResponse)
async def refund_stats(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = RefundService(db, registry)
    return RefundStatsResponse(**await svc.get_stats(actor))


@router.post(
    "/admin", response_model=RefundResponse, status_code=201, responses=_TRANSITION_ERRORS
)
async def initiate_refund(
    body: RefundCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Initiate a refund against an order, optionally linked to a return."""
    svc = RefundService(db, registry)
    refund = await svc.initiate_refund(
        actor,
        order_id=body.order_id,
        amount=body.amount,
        reason=body.reason,
        payment_mode=body.payment_mode,
        return_id=body.return_id,
        currency=body.currency,
        notes=body.notes,
    )
    return build_refund_response(refund, registry)


@router.get("/admin/{refund_id}", response_model=RefundResponse)
async def get_refund(
    refund_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = RefundService(db, registry)
    return build_refund_response(await svc.get_refund(refund_id, actor), registry)


@router.get("/admin/{refund_id}/activities", response_model=list[ActivityResponse])
async def list_refund_activities(
    refund_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = RefundService(db, registry)
    activities = await svc.list_activities(refund_id, actor)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.put(
    "/admin/{refund_id}/status", response_model=RefundResponse, responses=_TRANSITION_ERRORS
)
async def change_refund_status(
    refund_id: uuid.UUID,
    body: RefundStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Move a refund along its status graph; completion updates the order and return."""
    svc = RefundService(db, registry)
    refund = await svc.transition(
        refund_id,
        actor,
        body.status,
        transaction_id=body.transaction_id,
        bank_reference=body.bank_reference,
        failure_reason=body.failure_reason,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    return build_refund_response(refund, registry)


@router.put(
    "/admin/{refund_id}/quick-complete",
    response_model=RefundResponse,
    responses=_TRANSITION_ERRORS,
)
async def quick_complete_refund(
    refund_id: uuid.UUID,
    body: QuickCompleteRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Complete a pending or approved refund in one step."""
    svc = RefundService(db, registry)
    refund = await svc.quick_complete(
        refund_id,
        actor,
        transaction_id=body.transaction_id,
        bank_reference=body.bank_reference,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    return build_refund_response(refund, registry)
