"""WorkflowActivity model: append-only audit trail for workflow entities."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, enum_type, utcnow
from src.models.enums import ActorRole, EntityType


class WorkflowActivity(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "workflow_activities"

    entity_type: Mapped[EntityType] = mapped_column(
        enum_type(EntityType, "entitytype"), nullable=False
    )
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    actor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    actor_name: Mapped[str | None] = mapped_column(String(255))
    actor_role: Mapped[ActorRole] = mapped_column(
        enum_type(ActorRole, "actorrole"), nullable=False
    )

    field_name: Mapped[str | None] = mapped_column(String(50))
    old_value: Mapped[str | None] = mapped_column(Text)
    new_value: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("ix_workflow_activities_entity", "entity_type", "entity_id"),
        Index("ix_workflow_activities_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WorkflowActivity {self.entity_type.value}/{self.entity_id} "
            f"{self.activity_type} {self.old_value!r}->{self.new_value!r}>"
        )
