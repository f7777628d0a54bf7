"""OutboxService: async service for publishing and managing outbox events."""

import enum
import uuid
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox


def to_json_safe(value: Any) -> Any:
    """Coerce UUIDs, enums, decimals, and datetimes into JSON-friendly values."""
    if isinstance(value, dict):
        return {str(k): to_json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_safe(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class OutboxService:
    """Manages the event outbox lifecycle (publish, fetch, mark)."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def publish_event(
        self,
        event_type: str,
        aggregate_type: str,
        aggregate_id: str,
        payload: dict,
        schema_version: int = 1,
    ) -> EventOutbox:
        """Queue an event in the outbox with PENDING status, in the caller's transaction."""
        event = EventOutbox(
            event_type=event_type,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload=to_json_safe(payload),
            status=EventStatus.PENDING,
            schema_version=schema_version,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_pending_events(self, batch_size: int = 50) -> list[EventOutbox]:
        """Get pending events ordered by created_at, limited to batch_size."""
        statement = (
            select(EventOutbox)
            .where(EventOutbox.status == EventStatus.PENDING)
            .order_by(EventOutbox.created_at.asc())
            .limit(batch_size)
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def list_for_aggregate(
        self, aggregate_type: str, aggregate_id: str
    ) -> list[EventOutbox]:
        """All events queued for one aggregate, oldest first."""
        statement = (
            select(EventOutbox)
            .where(
                EventOutbox.aggregate_type == aggregate_type,
                EventOutbox.aggregate_id == str(aggregate_id),
            )
            .order_by(EventOutbox.created_at.asc())
        )
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def mark_processing(self, event_id: uuid.UUID) -> None:
        statement = (
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(status=EventStatus.PROCESSING)
        )
        await self.session.execute(statement)
        await self.session.flush()

    async def mark_completed(self, event_id: uuid.UUID) -> None:
        """Set event status to COMPLETED and record processed_at timestamp."""
        statement = (
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventStatus.COMPLETED,
                processed_at=datetime.now(UTC),
            )
        )
        await self.session.execute(statement)
        await self.session.flush()

    async def mark_failed(self, event_id: uuid.UUID, error: str) -> None:
        """Increment retry_count and set last_error.

        Once retry_count reaches max_retries the event is parked as FAILED;
        before that it goes back to PENDING for the next poll.
        """
        result = await self.session.execute(
            select(EventOutbox).where(EventOutbox.id == event_id)
        )
        event = result.scalar_one()

        new_retry_count = event.retry_count + 1
        new_status = (
            EventStatus.FAILED
            if new_retry_count >= event.max_retries
            else EventStatus.PENDING
        )

        await self.session.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                retry_count=new_retry_count,
                last_error=error,
                status=new_status,
            )
        )
        await self.session.flush()
