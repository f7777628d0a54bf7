"""Pydantic v2 schemas shared by the ticket, refund, and replacement APIs."""

from __future__ import annotations

import enum
import uuid
from collections.abc import Mapping
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from src.models.enums import ActorRole, EntityType
from src.modules.workflow.registry import StatusRegistry


class TransitionOption(BaseModel):
    status: str
    label: str


class StatusOption(BaseModel):
    status: str
    label: str
    next: list[str]
    is_terminal: bool


class LabelledOption(BaseModel):
    value: str
    label: str


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    entity_type: EntityType
    entity_id: uuid.UUID
    activity_type: str
    actor_id: uuid.UUID
    actor_name: str | None = None
    actor_role: ActorRole
    field_name: str | None = None
    old_value: str | None = None
    new_value: str | None = None
    description: str | None = None
    created_at: datetime


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def status_options(registry: StatusRegistry, entity_type: EntityType) -> list[StatusOption]:
    """Every declared state of ``entity_type`` with its label and legal next states."""
    return [
        StatusOption(
            status=definition.code,
            label=definition.label,
            next=sorted(definition.next),
            is_terminal=definition.is_terminal,
        )
        for definition in registry.definitions(entity_type)
    ]


def labelled_options(labels: Mapping[enum.Enum, str]) -> list[LabelledOption]:
    return [LabelledOption(value=member.value, label=label) for member, label in labels.items()]


def transitions_for(
    registry: StatusRegistry, entity_type: EntityType, status: enum.Enum
) -> list[TransitionOption]:
    return [
        TransitionOption(**option)
        for option in registry.available_transitions(entity_type, status)
    ]
