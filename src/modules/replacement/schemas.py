"""Pydantic v2 schemas for the replacement API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import EntityType, ReplacementReason, ReplacementStatus
from src.models.replacement import Replacement
from src.modules.replacement.constants import REASON_LABELS
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


class ReplacementItem(BaseModel):
    product_id: str | None = None
    name: str | None = None
    quantity: int = Field(1, ge=1)
    price: Decimal = Field(Decimal("0"), ge=0)


class ReplacementCreate(BaseModel):
    original_order_id: uuid.UUID
    return_id: uuid.UUID | None = None
    reason: ReplacementReason
    items: list[ReplacementItem] | None = None
    notes: str | None = Field(None, max_length=2000)
    auto_approve: bool = False


class ApproveRequest(BaseModel):
    create_order: bool = True
    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = None


class RejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000)
    expected_version: int | None = None


class ReplacementStatusUpdate(BaseModel):
    status: ReplacementStatus
    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ReplacementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    replacement_number: str
    original_order_id: uuid.UUID
    replacement_order_id: uuid.UUID | None = None
    return_id: uuid.UUID | None = None
    reason: ReplacementReason
    status: ReplacementStatus
    items: list[dict]
    notes: str | None = None
    rejection_reason: str | None = None
    created_by: uuid.UUID
    approved_by: uuid.UUID | None = None
    approved_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime

    # Derived
    status_label: str = ""
    reason_label: str = ""
    available_transitions: list[TransitionOption] = Field(default_factory=list)


class ReplacementListResponse(BaseModel):
    items: list[ReplacementResponse]
    total: int
    limit: int
    offset: int


class ReplacementOptionsResponse(BaseModel):
    statuses: list[StatusOption]
    reasons: list[LabelledOption]


class ReplacementStatsResponse(BaseModel):
    total_replacements: int
    by_status: dict[str, int]
    active: int
    by_reason: list[dict]
    created_today: int


def build_replacement_response(
    replacement: Replacement, registry: StatusRegistry
) -> ReplacementResponse:
    return ReplacementResponse.model_validate(replacement).model_copy(
        update={
            "status_label": registry.label(EntityType.REPLACEMENT, replacement.status),
            "reason_label": REASON_LABELS[replacement.reason],
            "available_transitions": transitions_for(
                registry, EntityType.REPLACEMENT, replacement.status
            ),
        }
    )
