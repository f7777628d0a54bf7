"""Support ticket service: creation, conversation, SLA, escalation, closure."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, time, timedelta

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.config import settings
from src.exceptions import (
    ClosedTicketException,
    ForbiddenException,
    IllegalTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import (
    EntityType,
    MessageSenderType,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from src.models.order import Order
from src.models.ticket import Ticket
from src.models.ticket_escalation import TicketEscalation
from src.models.ticket_message import TicketMessage
from src.models.workflow_activity import WorkflowActivity
from src.modules.identity.auth import SYSTEM_ACTOR, Actor, require_admin, require_customer
from src.modules.notifications.requester import NotificationRequester
from src.modules.ticket.constants import (
    ACTIVITY_ADMIN_REPLY,
    ACTIVITY_ASSIGNED,
    ACTIVITY_CLOSED,
    ACTIVITY_ESCALATED,
    ACTIVITY_INTERNAL_NOTE,
    ACTIVITY_MESSAGE_ADDED,
    ACTIVITY_PRIORITY_CHANGED,
    ACTIVITY_SLA_BREACHED,
    ACTIVITY_STATUS_CHANGED,
    ACTIVITY_TICKET_CREATED,
    CATEGORY_LABELS,
    CLOSING_STATUSES,
    DEDICATED_OPERATION_STATUSES,
    EVENT_TICKET_CLOSED,
    EVENT_TICKET_CREATED,
    EVENT_TICKET_ESCALATED,
    EVENT_TICKET_REPLIED,
    EVENT_TICKET_SLA_BREACHED,
    EVENT_TICKET_STATUS_CHANGED,
    PRIORITY_LABELS,
    PRIORITY_RANK,
    TERMINAL_TICKET_STATUSES,
)
from src.modules.workflow import numbering, sla
from src.modules.workflow.activity import ActivityLogger
from src.modules.workflow.concurrency import ensure_version, flush_changes, load_for_update
from src.modules.workflow.fields import coerce_enum, require_text
from src.modules.workflow.registry import StatusRegistry

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = sorted(TERMINAL_TICKET_STATUSES, key=lambda s: s.value)


class TicketService:
    def __init__(
        self,
        db: AsyncSession,
        registry: StatusRegistry,
        clock: Callable[[], datetime] = sla.utcnow,
    ):
        self.db = db
        self.registry = registry
        self.clock = clock
        self.activity = ActivityLogger(db)
        self.notifications = NotificationRequester(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_terminal(self, ticket: Ticket) -> bool:
        return self.registry.is_terminal(EntityType.TICKET, ticket.status)

    async def _lock_ticket(
        self, ticket_id: uuid.UUID, expected_version: int | None = None
    ) -> Ticket:
        ticket = await load_for_update(self.db, Ticket, ticket_id, "Ticket")
        ensure_version(ticket, expected_version, "Ticket")
        return ticket

    def _ensure_open(self, ticket: Ticket) -> None:
        if self._is_terminal(ticket):
            raise ClosedTicketException(
                f"Ticket {ticket.ticket_number} is {ticket.status.value} and cannot be modified"
            )

    def _add_message(
        self,
        ticket: Ticket,
        actor: Actor,
        message: str,
        is_internal: bool = False,
    ) -> TicketMessage:
        entry = TicketMessage(
            ticket_id=ticket.id,
            sender_type=MessageSenderType.USER if actor.is_customer else MessageSenderType.ADMIN,
            sender_id=actor.id,
            sender_name=actor.name,
            message=message,
            is_internal=is_internal,
        )
        self.db.add(entry)
        return entry

    def _log(self, ticket: Ticket, activity_type: str, actor: Actor, **fields) -> None:
        self.activity.record(EntityType.TICKET, ticket.id, activity_type, actor, **fields)

    def _apply_sla(self, ticket: Ticket, priority: TicketPriority, now: datetime) -> None:
        ticket.priority = priority
        ticket.sla_hours = sla.sla_hours(priority)
        ticket.sla_due_at = sla.due_at(priority, now)

    def _set_status(
        self, ticket: Ticket, new_status: TicketStatus, actor: Actor, description: str | None = None
    ) -> TicketStatus:
        """Validate and apply a status change, logging it. Returns the previous status."""
        old_status = ticket.status
        self.registry.validate(EntityType.TICKET, old_status, new_status)
        ticket.status = new_status
        self._log(
            ticket,
            ACTIVITY_STATUS_CHANGED,
            actor,
            field_name="status",
            old_value=old_status,
            new_value=new_status,
            description=description
            or (
                f"Status changed from {self.registry.label(EntityType.TICKET, old_status)} "
                f"to {self.registry.label(EntityType.TICKET, new_status)}"
            ),
        )
        return old_status

    async def _freeze_closure(
        self,
        ticket: Ticket,
        previous_status: TicketStatus,
        actor: Actor,
        now: datetime,
        resolution_notes: str | None = None,
    ) -> None:
        """Record breach-at-closure and resolve any open escalations."""
        ticket.sla_breached = sla.is_breached(ticket.sla_due_at, previous_status, now)
        ticket.closed_at = now
        ticket.closed_by = actor.id

        result = await self.db.execute(
            select(TicketEscalation).where(
                TicketEscalation.ticket_id == ticket.id,
                TicketEscalation.resolved_at.is_(None),
            )
        )
        for escalation in result.scalars().all():
            escalation.resolved_at = now
            escalation.resolved_by = actor.id
            escalation.resolution_notes = resolution_notes

    async def _notify_customer(self, ticket: Ticket, event: str, data: dict) -> None:
        await self.notifications.request(
            event=event,
            recipient_id=ticket.customer_id,
            aggregate_type=EntityType.TICKET.value,
            aggregate_id=ticket.id,
            payload={"ticket_number": ticket.ticket_number, "subject": ticket.subject, **data},
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_ticket(
        self,
        actor: Actor,
        subject: str,
        description: str,
        category: TicketCategory | str = TicketCategory.GENERAL,
        priority: TicketPriority | str = TicketPriority.MEDIUM,
        order_id: uuid.UUID | None = None,
    ) -> Ticket:
        """Open a ticket for the calling customer; the description becomes the first message."""
        require_customer(actor)
        subject = require_text(subject, "subject")
        description = require_text(description, "description")
        category = coerce_enum(TicketCategory, category, "category")
        priority = coerce_enum(TicketPriority, priority, "priority")

        if order_id is not None:
            result = await self.db.execute(
                select(Order.id).where(Order.id == order_id, Order.customer_id == actor.id)
            )
            if result.scalar_one_or_none() is None:
                raise NotFoundException(f"Order {order_id} not found")

        now = self.clock()
        ticket = Ticket(
            id=uuid.uuid4(),
            ticket_number=numbering.ticket_number(),
            customer_id=actor.id,
            customer_name=actor.name,
            order_id=order_id,
            subject=subject,
            description=description,
            category=category,
            status=TicketStatus.OPEN,
            escalation_level=0,
            sla_breached=False,
            created_at=now,
            updated_at=now,
        )
        self._apply_sla(ticket, priority, now)
        self.db.add(ticket)
        self._add_message(ticket, actor, description)
        self._log(
            ticket,
            ACTIVITY_TICKET_CREATED,
            actor,
            new_value=TicketStatus.OPEN,
            description=f"Ticket created with {PRIORITY_LABELS[priority]} priority",
        )
        await self._notify_customer(
            ticket, EVENT_TICKET_CREATED, {"priority": priority, "sla_due_at": ticket.sla_due_at}
        )
        await flush_changes(self.db, "Ticket")

        logger.info("Created ticket %s (%s) for customer %s", ticket.id, ticket.ticket_number, actor.id)
        return ticket

    # ------------------------------------------------------------------
    # Conversation
    # ------------------------------------------------------------------

    async def reply(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        message: str,
        is_internal: bool = False,
        expected_version: int | None = None,
    ) -> Ticket:
        message = require_text(message, "message")
        ticket = await self._lock_ticket(ticket_id)

        if actor.is_customer:
            if ticket.customer_id != actor.id:
                raise NotFoundException(f"Ticket {ticket_id} not found")
            if is_internal:
                raise ForbiddenException("Customers cannot post internal notes")

        self._ensure_open(ticket)
        ensure_version(ticket, expected_version, "Ticket")

        now = self.clock()
        self._add_message(ticket, actor, message, is_internal=is_internal)

        if actor.is_customer:
            self._log(ticket, ACTIVITY_MESSAGE_ADDED, actor, description="Customer replied")
            if ticket.status == TicketStatus.AWAITING_CUSTOMER:
                self._set_status(
                    ticket, TicketStatus.IN_PROGRESS, actor, description="Customer replied"
                )
        else:
            ticket.last_response_at = now
            if is_internal:
                self._log(ticket, ACTIVITY_INTERNAL_NOTE, actor, description="Internal note added")
            else:
                if ticket.first_response_at is None:
                    ticket.first_response_at = now
                self._log(ticket, ACTIVITY_ADMIN_REPLY, actor, description="Support replied")
                if ticket.status in (TicketStatus.OPEN, TicketStatus.IN_PROGRESS):
                    self._set_status(
                        ticket,
                        TicketStatus.AWAITING_CUSTOMER,
                        actor,
                        description="Awaiting customer after support reply",
                    )
                await self._notify_customer(
                    ticket, EVENT_TICKET_REPLIED, {"sender_name": actor.name}
                )

        ticket.updated_at = now
        await flush_changes(self.db, "Ticket")

        logger.info(
            "Reply on ticket %s by %s %s (internal=%s)",
            ticket.ticket_number, actor.role.value, actor.id, is_internal,
        )
        return ticket

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def assign(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        assignee_id: uuid.UUID | None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Reassign (or unassign) a ticket; legal in every status."""
        require_admin(actor)
        ticket = await self._lock_ticket(ticket_id, expected_version)

        now = self.clock()
        old_assignee = ticket.assigned_to
        ticket.assigned_to = assignee_id
        ticket.assigned_at = now if assignee_id is not None else None
        ticket.updated_at = now

        self._log(
            ticket,
            ACTIVITY_ASSIGNED,
            actor,
            field_name="assigned_to",
            old_value=old_assignee,
            new_value=assignee_id,
            description="Ticket assigned" if assignee_id else "Ticket unassigned",
        )
        await flush_changes(self.db, "Ticket")

        logger.info("Ticket %s assigned %s -> %s", ticket.ticket_number, old_assignee, assignee_id)
        return ticket

    async def change_status(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        new_status: TicketStatus | str,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        require_admin(actor)
        new_status = coerce_enum(TicketStatus, new_status, "status")
        if new_status in DEDICATED_OPERATION_STATUSES:
            raise ValidationException(
                f"Use the escalate operation to move a ticket to '{new_status.value}'",
                details=[{"field": "status", "message": new_status.value}],
            )
        ticket = await self._lock_ticket(ticket_id, expected_version)

        now = self.clock()
        old_status = self._set_status(ticket, new_status, actor)

        if new_status in TERMINAL_TICKET_STATUSES:
            await self._freeze_closure(ticket, old_status, actor, now, resolution_notes=notes)

        notes = (notes or "").strip()
        if notes:
            label = self.registry.label(EntityType.TICKET, new_status)
            self._add_message(ticket, actor, f"Status changed to {label}: {notes}", is_internal=True)

        ticket.updated_at = now
        await self._notify_customer(
            ticket,
            EVENT_TICKET_STATUS_CHANGED,
            {"old_status": old_status, "new_status": new_status},
        )
        await flush_changes(self.db, "Ticket")

        logger.info(
            "Ticket %s status %s -> %s by %s",
            ticket.ticket_number, old_status.value, new_status.value, actor.id,
        )
        return ticket

    async def change_priority(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        new_priority: TicketPriority | str,
        expected_version: int | None = None,
    ) -> Ticket:
        """Change priority and restart the SLA clock from now."""
        require_admin(actor)
        new_priority = coerce_enum(TicketPriority, new_priority, "priority")
        ticket = await self._lock_ticket(ticket_id, expected_version)
        self._ensure_open(ticket)

        now = self.clock()
        old_priority = ticket.priority
        self._apply_sla(ticket, new_priority, now)
        ticket.updated_at = now

        self._log(
            ticket,
            ACTIVITY_PRIORITY_CHANGED,
            actor,
            field_name="priority",
            old_value=old_priority,
            new_value=new_priority,
            description=(
                f"Priority changed from {PRIORITY_LABELS[old_priority]} "
                f"to {PRIORITY_LABELS[new_priority]}"
            ),
        )
        await flush_changes(self.db, "Ticket")

        logger.info(
            "Ticket %s priority %s -> %s, SLA due %s",
            ticket.ticket_number, old_priority.value, new_priority.value, ticket.sla_due_at,
        )
        return ticket

    async def escalate(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        reason: str,
        notes: str | None = None,
        escalate_to: uuid.UUID | None = None,
        expected_version: int | None = None,
    ) -> Ticket:
        """Raise the escalation level, force urgent priority, and restart the SLA clock.

        Every call increments the level, including on an already escalated ticket.
        """
        require_admin(actor)
        reason = require_text(reason, "reason")
        ticket = await self._lock_ticket(ticket_id, expected_version)

        if self._is_terminal(ticket):
            raise IllegalTransitionException(
                current=ticket.status.value,
                requested=TicketStatus.ESCALATED.value,
                allowed=[],
                message=f"Ticket {ticket.ticket_number} is {ticket.status.value} and cannot be escalated",
            )

        now = self.clock()
        old_status = ticket.status
        previous_level = ticket.escalation_level
        new_level = previous_level + 1

        ticket.escalation_level = new_level
        ticket.status = TicketStatus.ESCALATED
        self._apply_sla(ticket, TicketPriority.URGENT, now)
        if escalate_to is not None:
            ticket.assigned_to = escalate_to
            ticket.assigned_at = now
        ticket.updated_at = now

        self.db.add(
            TicketEscalation(
                ticket_id=ticket.id,
                previous_level=previous_level,
                new_level=new_level,
                escalated_by=actor.id,
                escalated_to=escalate_to,
                reason=reason,
                notes=notes,
            )
        )
        note = f"Escalated to level {new_level}: {reason}"
        if notes:
            note = f"{note}\n{notes}"
        self._add_message(ticket, actor, note, is_internal=True)
        self._log(
            ticket,
            ACTIVITY_ESCALATED,
            actor,
            field_name="escalation_level",
            old_value=previous_level,
            new_value=new_level,
            description=f"Escalated from {old_status.value}: {reason}",
        )
        if escalate_to is not None:
            await self.notifications.request(
                event=EVENT_TICKET_ESCALATED,
                recipient_id=escalate_to,
                aggregate_type=EntityType.TICKET.value,
                aggregate_id=ticket.id,
                payload={
                    "ticket_number": ticket.ticket_number,
                    "escalation_level": new_level,
                    "reason": reason,
                },
            )
        await flush_changes(self.db, "Ticket")

        logger.info(
            "Ticket %s escalated to level %d by %s", ticket.ticket_number, new_level, actor.id
        )
        return ticket

    async def close(
        self,
        ticket_id: uuid.UUID,
        actor: Actor,
        resolution_summary: str,
        final_status: TicketStatus | str = TicketStatus.RESOLVED,
        expected_version: int | None = None,
    ) -> Ticket:
        require_admin(actor)
        ticket = await self._lock_ticket(ticket_id)
        self._ensure_open(ticket)
        ensure_version(ticket, expected_version, "Ticket")

        summary = require_text(resolution_summary, "resolution_summary")
        final_status = coerce_enum(TicketStatus, final_status, "status")
        if final_status not in CLOSING_STATUSES:
            raise ValidationException(
                f"Final status must be one of {[s.value for s in CLOSING_STATUSES]}",
                details=[{"field": "status", "message": final_status.value}],
            )

        now = self.clock()
        old_status = self._set_status(
            ticket, final_status, actor, description=f"Ticket {final_status.value}: {summary}"
        )
        ticket.resolution_summary = summary
        await self._freeze_closure(ticket, old_status, actor, now, resolution_notes=summary)
        ticket.updated_at = now

        label = self.registry.label(EntityType.TICKET, final_status)
        self._add_message(ticket, actor, f"Ticket {label.lower()}: {summary}")
        self._log(
            ticket,
            ACTIVITY_CLOSED,
            actor,
            field_name="sla_breached",
            new_value=ticket.sla_breached,
            description=summary,
        )
        await self._notify_customer(
            ticket,
            EVENT_TICKET_CLOSED,
            {"status": final_status, "resolution_summary": summary},
        )
        await flush_changes(self.db, "Ticket")

        logger.info(
            "Ticket %s %s by %s (sla_breached=%s)",
            ticket.ticket_number, final_status.value, actor.id, ticket.sla_breached,
        )
        return ticket

    # ------------------------------------------------------------------
    # SLA sweep
    # ------------------------------------------------------------------

    async def flag_sla_breaches(self, limit: int = 500) -> dict:
        """Publish ``ticket.sla_breached`` once per due time for overdue open tickets.

        Only stamps ``sla_breach_notified_at``; status, priority, and escalation
        level are left alone.
        """
        now = self.clock()
        result = await self.db.execute(
            select(Ticket.id)
            .where(
                self._open_filter(),
                Ticket.sla_due_at < now,
                or_(
                    Ticket.sla_breach_notified_at.is_(None),
                    Ticket.sla_breach_notified_at < Ticket.sla_due_at,
                ),
            )
            .order_by(Ticket.sla_due_at.asc())
            .limit(limit)
        )
        ticket_ids = list(result.scalars().all())

        flagged = 0
        for ticket_id in ticket_ids:
            ticket = await self._lock_ticket(ticket_id)
            # Re-check under the lock; an admin may have closed or re-prioritized it
            if not sla.is_breached(ticket.sla_due_at, ticket.status, now):
                continue
            notified_at = ticket.sla_breach_notified_at
            if notified_at is not None and notified_at >= ticket.sla_due_at:
                continue

            ticket.sla_breach_notified_at = now
            self._log(
                ticket,
                ACTIVITY_SLA_BREACHED,
                SYSTEM_ACTOR,
                field_name="sla_due_at",
                new_value=ticket.sla_due_at.isoformat(),
                description=f"SLA deadline passed ({PRIORITY_LABELS[ticket.priority]})",
            )
            await self.notifications.request(
                event=EVENT_TICKET_SLA_BREACHED,
                recipient_id=ticket.assigned_to or SYSTEM_ACTOR.id,
                aggregate_type=EntityType.TICKET.value,
                aggregate_id=ticket.id,
                payload={
                    "ticket_number": ticket.ticket_number,
                    "priority": ticket.priority,
                    "status": ticket.status,
                    "escalation_level": ticket.escalation_level,
                    "sla_due_at": ticket.sla_due_at,
                },
            )
            flagged += 1

        await flush_changes(self.db, "Ticket")
        if flagged:
            logger.warning("Flagged %d ticket(s) past their SLA deadline", flagged)
        return {"checked": len(ticket_ids), "flagged": flagged}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_ticket(self, ticket_id: uuid.UUID, actor: Actor | None = None) -> Ticket:
        """Ticket with messages and escalations; customers only see their own."""
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.messages), selectinload(Ticket.escalations))
            .where(Ticket.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        ticket = result.scalar_one_or_none()
        if ticket is None or (
            actor is not None and actor.is_customer and ticket.customer_id != actor.id
        ):
            raise NotFoundException(f"Ticket {ticket_id} not found")
        return ticket

    def _queue_ordering(self):
        escalated_first = case((Ticket.status == TicketStatus.ESCALATED, 0), else_=1)
        priority_rank = case(
            *[(Ticket.priority == p, rank) for p, rank in PRIORITY_RANK.items()],
            else_=len(PRIORITY_RANK),
        )
        return escalated_first, priority_rank, Ticket.sla_due_at.asc()

    def _open_filter(self):
        return Ticket.status.not_in(_TERMINAL_STATUSES)

    async def list_tickets(
        self,
        actor: Actor,
        status: TicketStatus | None = None,
        priority: TicketPriority | None = None,
        category: TicketCategory | None = None,
        assigned_to: uuid.UUID | None = None,
        unassigned: bool = False,
        sla_status: str | None = None,
        search: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Ticket], int]:
        """Admin queue: escalated first, then priority, then nearest SLA deadline."""
        require_admin(actor)
        filters = []
        if status is not None:
            filters.append(Ticket.status == status)
        if priority is not None:
            filters.append(Ticket.priority == priority)
        if category is not None:
            filters.append(Ticket.category == category)
        if unassigned:
            filters.append(Ticket.assigned_to.is_(None))
        elif assigned_to is not None:
            filters.append(Ticket.assigned_to == assigned_to)
        if sla_status:
            now = self.clock()
            if sla_status == "breached":
                filters.extend([self._open_filter(), Ticket.sla_due_at < now])
            elif sla_status == "at_risk":
                window = now + timedelta(hours=settings.sla_at_risk_window_hours)
                filters.extend(
                    [self._open_filter(), Ticket.sla_due_at >= now, Ticket.sla_due_at <= window]
                )
            else:
                raise ValidationException(
                    f"Invalid sla_status '{sla_status}'",
                    details=[{"field": "sla_status", "message": "Must be breached or at_risk"}],
                )
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(Ticket.ticket_number.ilike(pattern), Ticket.subject.ilike(pattern))
            )

        total = (
            await self.db.execute(select(func.count()).select_from(Ticket).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(Ticket)
            .where(*filters)
            .order_by(*self._queue_ordering())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_customer_tickets(
        self,
        actor: Actor,
        status: TicketStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Ticket], int]:
        filters = [Ticket.customer_id == actor.id]
        if status is not None:
            filters.append(Ticket.status == status)

        total = (
            await self.db.execute(select(func.count()).select_from(Ticket).where(*filters))
        ).scalar() or 0
        result = await self.db.execute(
            select(Ticket)
            .where(*filters)
            .order_by(Ticket.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_escalated(self, actor: Actor, limit: int = 50) -> list[Ticket]:
        require_admin(actor)
        result = await self.db.execute(
            select(Ticket)
            .where(Ticket.status == TicketStatus.ESCALATED)
            .order_by(Ticket.escalation_level.desc(), Ticket.sla_due_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_activities(
        self, ticket_id: uuid.UUID, actor: Actor
    ) -> list[WorkflowActivity]:
        require_admin(actor)
        await self.get_ticket(ticket_id)
        return await self.activity.list_for(EntityType.TICKET, ticket_id)

    async def get_stats(self, actor: Actor) -> dict:
        """Queue health: per-status counts, SLA exposure, throughput, response times."""
        require_admin(actor)
        now = self.clock()
        start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        at_risk_until = now + timedelta(hours=settings.sla_at_risk_window_hours)

        async def count(*filters) -> int:
            result = await self.db.execute(
                select(func.count()).select_from(Ticket).where(*filters)
            )
            return result.scalar() or 0

        status_rows = await self.db.execute(
            select(Ticket.status, func.count()).group_by(Ticket.status)
        )
        by_status = {s.value: 0 for s in TicketStatus}
        by_status.update({status.value: n for status, n in status_rows.all()})

        priority_rows = await self.db.execute(
            select(Ticket.priority, func.count())
            .where(self._open_filter())
            .group_by(Ticket.priority)
        )
        category_rows = await self.db.execute(
            select(Ticket.category, func.count().label("n"))
            .group_by(Ticket.category)
            .order_by(func.count().desc())
            .limit(5)
        )

        timing_rows = await self.db.execute(
            select(Ticket.created_at, Ticket.closed_at, Ticket.first_response_at)
        )
        resolution_hours: list[float] = []
        response_hours: list[float] = []
        for created_at, closed_at, first_response_at in timing_rows.all():
            if closed_at is not None:
                resolution_hours.append(
                    (closed_at - created_at).total_seconds() / 3600
                )
            if first_response_at is not None:
                response_hours.append(
                    (first_response_at - created_at).total_seconds() / 3600
                )

        def average(values: list[float]) -> float | None:
            return round(sum(values) / len(values), 2) if values else None

        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "open": sum(
                n for code, n in by_status.items()
                if TicketStatus(code) not in TERMINAL_TICKET_STATUSES
            ),
            "unassigned": await count(self._open_filter(), Ticket.assigned_to.is_(None)),
            "sla_breached": await count(self._open_filter(), Ticket.sla_due_at < now),
            "sla_at_risk": await count(
                self._open_filter(), Ticket.sla_due_at >= now, Ticket.sla_due_at <= at_risk_until
            ),
            "by_priority": [
                {"priority": p.value, "priority_label": PRIORITY_LABELS[p], "count": n}
                for p, n in priority_rows.all()
            ],
            "by_category": [
                {"category": c.value, "category_label": CATEGORY_LABELS[c], "count": n}
                for c, n in category_rows.all()
            ],
            "created_today": await count(Ticket.created_at >= start_of_day),
            "closed_today": await count(Ticket.closed_at >= start_of_day),
            "avg_resolution_hours": average(resolution_hours),
            "avg_first_response_hours": average(response_hours),
        }
