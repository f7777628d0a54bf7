"""Queue customer notifications as outbox events.

Workflow services never talk to the delivery channel directly: a request is
an outbox row written in the same transaction as the state change, and the
outbox processor hands it to ``deliver_notification`` later.  A delivery
failure therefore retries on the outbox row and never touches workflow data.
"""

from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from src.models.event_outbox import EventOutbox
from src.modules.events.outbox_service import OutboxService

EVENT_NOTIFICATION_REQUESTED = "notification.requested"


class NotificationRequester:
    def __init__(self, db: AsyncSession) -> None:
        self.outbox = OutboxService(db)

    async def request(
        self,
        event: str,
        recipient_id: uuid.UUID,
        aggregate_type: str,
        aggregate_id: uuid.UUID,
        payload: dict | None = None,
    ) -> EventOutbox:
        return await self.outbox.publish_event(
            event_type=EVENT_NOTIFICATION_REQUESTED,
            aggregate_type=aggregate_type,
            aggregate_id=str(aggregate_id),
            payload={
                "event": event,
                "recipient_id": recipient_id,
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "data": payload or {},
            },
        )
