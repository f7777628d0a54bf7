"""Pydantic v2 schemas for the refund API."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import EntityType, PaymentMode, RefundReason, RefundStatus
from src.models.refund import Refund
from src.modules.refund.constants import PAYMENT_MODE_LABELS, REASON_LABELS
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


class RefundCreate(BaseModel):
    order_id: uuid.UUID
    return_id: uuid.UUID | None = None
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    currency: str = Field("USD", min_length=3, max_length=3)
    reason: RefundReason
    payment_mode: PaymentMode = PaymentMode.ORIGINAL
    notes: str | None = Field(None, max_length=2000)


class RefundStatusUpdate(BaseModel):
    status: RefundStatus
    transaction_id: str | None = Field(None, max_length=100)
    bank_reference: str | None = Field(None, max_length=100)
    failure_reason: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = None


class QuickCompleteRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=100)
    bank_reference: str | None = Field(None, max_length=100)
    notes: str | None = Field(None, max_length=2000)
    expected_version: int | None = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RefundResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    refund_number: str
    order_id: uuid.UUID
    return_id: uuid.UUID | None = None
    amount: Decimal
    currency: str
    reason: RefundReason
    payment_mode: PaymentMode
    status: RefundStatus
    transaction_id: str | None = None
    bank_reference: str | None = None
    failure_reason: str | None = None
    notes: str | None = None
    initiated_by: uuid.UUID
    processed_by: uuid.UUID | None = None
    processed_at: datetime | None = None
    completed_at: datetime | None = None
    version: int
    created_at: datetime
    updated_at: datetime

    # Derived
    status_label: str = ""
    reason_label: str = ""
    payment_mode_label: str = ""
    available_transitions: list[TransitionOption] = Field(default_factory=list)


class RefundListResponse(BaseModel):
    items: list[RefundResponse]
    total: int
    limit: int
    offset: int


class RefundOptionsResponse(BaseModel):
    statuses: list[StatusOption]
    reasons: list[LabelledOption]
    payment_modes: list[LabelledOption]


class RefundTodayStats(BaseModel):
    created: int
    completed: int
    amount: Decimal


class RefundStatsResponse(BaseModel):
    total_refunds: int
    by_status: dict[str, int]
    total_amount: Decimal
    refunded_amount: Decimal
    pending_amount: Decimal
    by_payment_mode: list[dict]
    today: RefundTodayStats


def build_refund_response(refund: Refund, registry: StatusRegistry) -> RefundResponse:
    return RefundResponse.model_validate(refund).model_copy(
        update={
            "status_label": registry.label(EntityType.REFUND, refund.status),
            "reason_label": REASON_LABELS[refund.reason],
            "payment_mode_label": PAYMENT_MODE_LABELS[refund.payment_mode],
            "available_transitions": transitions_for(registry, EntityType.REFUND, refund.status),
        }
    )
