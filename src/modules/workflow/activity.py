"""Append-only activity log shared by every workflow entity."""

from __future__ import annotations

import enum
import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EntityType
from src.models.workflow_activity import WorkflowActivity
from src.modules.identity.auth import Actor


def _stringify(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


class ActivityLogger:
    """Adds activity rows to the caller's unit of work; never updates or deletes."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def record(
        self,
        entity_type: EntityType,
        entity_id: uuid.UUID,
        activity_type: str,
        actor: Actor,
        *,
        field_name: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        description: str | None = None,
    ) -> WorkflowActivity:
        activity = WorkflowActivity(
            entity_type=entity_type,
            entity_id=entity_id,
            activity_type=activity_type,
            actor_id=actor.id,
            actor_name=actor.name,
            actor_role=actor.role,
            field_name=field_name,
            old_value=_stringify(old_value),
            new_value=_stringify(new_value),
            description=description,
        )
        self.db.add(activity)
        return activity

    async def list_for(
        self, entity_type: EntityType, entity_id: uuid.UUID
    ) -> list[WorkflowActivity]:
        """Activity for one entity, oldest first."""
        result = await self.db.execute(
            select(WorkflowActivity)
            .where(
                WorkflowActivity.entity_type == entity_type,
                WorkflowActivity.entity_id == entity_id,
            )
            .order_by(WorkflowActivity.created_at.asc(), WorkflowActivity.id.asc())
        )
        return list(result.scalars().all())
