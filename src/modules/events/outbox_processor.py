"""OutboxProcessor: synchronous batch processor for Celery workers."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy import Engine, delete, select
from sqlalchemy.orm import Session

from src.models.enums import EventStatus
from src.models.event_outbox import EventOutbox
from src.models.processed_event import ProcessedEvent
from src.modules.events.handlers import EventHandlerRegistry

logger = logging.getLogger(__name__)

PROCESSED_EVENT_TTL = timedelta(days=7)
COMPLETED_EVENT_RETENTION = timedelta(days=30)


class OutboxProcessor:
    """Processes pending outbox events using sync sessions (for Celery workers).

    Uses SELECT ... FOR UPDATE SKIP LOCKED for safe multi-worker concurrency.
    Tracks idempotency via the processed_events table.  Each event is
    committed on its own, so a failing handler only affects its own row.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        if engine is None:
            from src.database.engine import sync_engine

            engine = sync_engine
        self.engine = engine

    def _fetch_pending(self, session: Session, batch_size: int) -> list[EventOutbox]:
        return list(
            session.execute(
                select(EventOutbox)
                .where(EventOutbox.status == EventStatus.PENDING)
                .order_by(EventOutbox.created_at.asc())
                .limit(batch_size)
                .with_for_update(skip_locked=True)
            ).scalars().all()
        )

    def _already_processed(self, session: Session, event: EventOutbox) -> bool:
        return session.execute(
            select(ProcessedEvent.id).where(ProcessedEvent.event_id == event.id).limit(1)
        ).first() is not None

    def process_batch(self, batch_size: int = 50) -> dict:
        """Process a batch of pending events.

        Returns dict with 'processed' and 'failed' counts.
        """
        processed_count = 0
        failed_count = 0

        with Session(self.engine, expire_on_commit=False) as session:
            events = self._fetch_pending(session, batch_size)

            for event in events:
                now = datetime.now(UTC)

                if self._already_processed(session, event):
                    event.status = EventStatus.COMPLETED
                    event.processed_at = now
                    session.commit()
                    processed_count += 1
                    continue

                event.status = EventStatus.PROCESSING
                results = EventHandlerRegistry.dispatch(event.event_type, event.payload)
                handler_errors = [r for r in results if r["status"] == "error"]

                if handler_errors:
                    error_message = "; ".join(
                        f"{r['handler']}: {r['error']}" for r in handler_errors
                    )
                    event.retry_count += 1
                    event.last_error = error_message
                    event.status = (
                        EventStatus.FAILED
                        if event.retry_count >= event.max_retries
                        else EventStatus.PENDING
                    )
                    session.commit()
                    logger.warning(
                        "Event %s (type=%s) failed, attempt %d/%d: %s",
                        event.id,
                        event.event_type,
                        event.retry_count,
                        event.max_retries,
                        error_message,
                    )
                    failed_count += 1
                    continue

                session.add(
                    ProcessedEvent(
                        event_id=event.id,
                        event_type=event.event_type,
                        handler_name=",".join(r["handler"] for r in results)
                        if results
                        else "no_handlers",
                        processed_at=now,
                        expires_at=now + PROCESSED_EVENT_TTL,
                    )
                )
                event.status = EventStatus.COMPLETED
                event.processed_at = now
                session.commit()
                processed_count += 1

        return {"processed": processed_count, "failed": failed_count}

    def cleanup_expired(self) -> int:
        """Delete expired processed_events and old completed outbox events.

        Returns total number of rows deleted.
        """
        now = datetime.now(UTC)
        total_deleted = 0

        with Session(self.engine) as session:
            result = session.execute(
                delete(ProcessedEvent).where(ProcessedEvent.expires_at < now)
            )
            total_deleted += result.rowcount

            result = session.execute(
                delete(EventOutbox).where(
                    EventOutbox.status == EventStatus.COMPLETED,
                    EventOutbox.processed_at < now - COMPLETED_EVENT_RETENTION,
                )
            )
            total_deleted += result.rowcount

            session.commit()

        logger.info("Cleaned up %d expired event records", total_deleted)
        return total_deleted
