"""Replacement API router: customer lookups and admin approval/fulfilment."""

from __future__ import annotations

import uuid
from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.session import get_db
from src.models.enums import EntityType, ReplacementReason, ReplacementStatus
from src.modules.identity.auth import Actor, get_current_actor
from src.modules.replacement.constants import REASON_LABELS
from src.modules.replacement.schemas import (
    ApproveRequest,
    RejectRequest,
    ReplacementCreate,
    ReplacementListResponse,
    ReplacementOptionsResponse,
    ReplacementResponse,
    ReplacementStatsResponse,
    ReplacementStatusUpdate,
    build_replacement_response,
)
from src.modules.replacement.service import ReplacementService
from src.modules.workflow.dependencies import get_status_registry
from src.modules.workflow.registry import StatusRegistry
from src.modules.workflow.schemas import ActivityResponse, labelled_options, status_options
from src.schemas.responses import ErrorResponse

router = APIRouter(prefix="/replacements", tags=["replacements"])

_TRANSITION_ERRORS = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.get("/options", response_model=ReplacementOptionsResponse)
async def replacement_options(
    actor: Actor = Depends(get_current_actor),
    registry: StatusRegistry = Depends(get_status_registry),
):
    return ReplacementOptionsResponse(
        statuses=status_options(registry, EntityType.REPLACEMENT),
        reasons=labelled_options(REASON_LABELS),
    )


# ---------------------------------------------------------------------------
# Customer endpoints
# ---------------------------------------------------------------------------


@router.get("/mine", response_model=ReplacementListResponse)
async def list_my_replacements(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    items, total = await svc.list_customer_replacements(actor, limit=limit, offset=offset)
    return ReplacementListResponse(
        items=[build_replacement_response(r, registry) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/order/{order_id}", response_model=ReplacementResponse | None)
async def get_replacement_for_order(
    order_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Latest replacement on one of the caller's orders, or null."""
    svc = ReplacementService(db, registry)
    replacement = await svc.get_replacement_for_order(order_id, actor)
    return build_replacement_response(replacement, registry) if replacement else None


# ---------------------------------------------------------------------------
# Admin endpoints
# ---------------------------------------------------------------------------


@router.get("/admin", response_model=ReplacementListResponse)
async def list_replacements(
    status: ReplacementStatus | None = Query(None),
    reason: ReplacementReason | None = Query(None),
    search: str | None = Query(None, max_length=100),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    items, total = await svc.list_replacements(
        actor,
        status=status,
        reason=reason,
        search=search,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return ReplacementListResponse(
        items=[build_replacement_response(r, registry) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/admin/stats", response_model=ReplacementStatsResponse)
async def replacement_stats(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    return ReplacementStatsResponse(**await svc.get_stats(actor))


@router.post(
    "/admin",
    response_model=ReplacementResponse,
    status_code=201,
    responses=_TRANSITION_ERRORS,
)
async def initiate_replacement(
    body: ReplacementCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Initiate a replacement; items default to the original order's items."""
    svc = ReplacementService(db, registry)
    replacement = await svc.initiate_replacement(
        actor,
        original_order_id=body.original_order_id,
        reason=body.reason,
        items=[item.model_dump(mode="json") for item in body.items]
        if body.items is not None
        else None,
        return_id=body.return_id,
        notes=body.notes,
        auto_approve=body.auto_approve,
    )
    return build_replacement_response(replacement, registry)


@router.get("/admin/{replacement_id}", response_model=ReplacementResponse)
async def get_replacement(
    replacement_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    return build_replacement_response(await svc.get_replacement(replacement_id, actor), registry)


@router.get("/admin/{replacement_id}/activities", response_model=list[ActivityResponse])
async def list_replacement_activities(
    replacement_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    activities = await svc.list_activities(replacement_id, actor)
    return [ActivityResponse.model_validate(a) for a in activities]


@router.put(
    "/admin/{replacement_id}/approve",
    response_model=ReplacementResponse,
    responses=_TRANSITION_ERRORS,
)
async def approve_replacement(
    replacement_id: uuid.UUID,
    body: ApproveRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Approve a pending replacement and (by default) create the replacement order."""
    svc = ReplacementService(db, registry)
    replacement = await svc.approve(
        replacement_id,
        actor,
        create_order=body.create_order,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    return build_replacement_response(replacement, registry)


@router.put(
    "/admin/{replacement_id}/reject",
    response_model=ReplacementResponse,
    responses=_TRANSITION_ERRORS,
)
async def reject_replacement(
    replacement_id: uuid.UUID,
    body: RejectRequest,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    svc = ReplacementService(db, registry)
    replacement = await svc.reject(
        replacement_id, actor, body.reason, expected_version=body.expected_version
    )
    return build_replacement_response(replacement, registry)


@router.put(
    "/admin/{replacement_id}/status",
    response_model=ReplacementResponse,
    responses=_TRANSITION_ERRORS,
)
async def change_replacement_status(
    replacement_id: uuid.UUID,
    body: ReplacementStatusUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
    registry: StatusRegistry = Depends(get_status_registry),
):
    """Fulfilment transitions; the linked replacement order follows along."""
    svc = ReplacementService(db, registry)
    replacement = await svc.transition(
        replacement_id,
        actor,
        body.status,
        notes=body.notes,
        expected_version=body.expected_version,
    )
    return build_replacement_response(replacement, registry)
