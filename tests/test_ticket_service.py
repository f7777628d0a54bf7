"""Service tests for TicketService: conversation, SLA, escalation, closure."""

import uuid
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError

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
from src.models.event_outbox import EventOutbox
from src.models.ticket import Ticket
from src.models.ticket_escalation import TicketEscalation
from src.models.ticket_message import TicketMessage
from src.models.workflow_activity import WorkflowActivity
from src.modules.notifications.requester import EVENT_NOTIFICATION_REQUESTED
from src.modules.ticket.service import TicketService
from tests.conftest import create_order


@pytest.fixture
def service(async_test_session, registry, clock):
    return TicketService(async_test_session, registry, clock=clock)


@pytest_asyncio.fixture
async def ticket(service, customer):
    return await service.create_ticket(
        customer,
        subject="Kettle arrived cracked",
        description="The lid is split down the middle.",
        category=TicketCategory.PRODUCT,
        priority=TicketPriority.HIGH,
    )


async def _messages(session, ticket_id):
    result = await session.execute(
        select(TicketMessage)
        .where(TicketMessage.ticket_id == ticket_id)
        .order_by(TicketMessage.created_at)
    )
    return list(result.scalars().all())


async def _activity_types(session, ticket_id):
    result = await session.execute(
        select(WorkflowActivity.activity_type)
        .where(
            WorkflowActivity.entity_type == EntityType.TICKET,
            WorkflowActivity.entity_id == ticket_id,
        )
        .order_by(WorkflowActivity.created_at)
    )
    return list(result.scalars().all())


class TestCreateTicket:
    @pytest.mark.asyncio
    async def test_creates_open_ticket_with_sla(self, ticket, customer, clock, async_test_session):
        assert ticket.ticket_number.startswith("TKT-")
        assert len(ticket.ticket_number) == 12
        assert ticket.status == TicketStatus.OPEN
        assert ticket.customer_id == customer.id
        assert ticket.sla_hours == 24
        assert ticket.sla_due_at == clock.now + timedelta(hours=24)
        assert ticket.escalation_level == 0
        assert ticket.version == 1

        messages = await _messages(async_test_session, ticket.id)
        assert len(messages) == 1
        assert messages[0].message == "The lid is split down the middle."
        assert messages[0].sender_type == MessageSenderType.USER
        assert await _activity_types(async_test_session, ticket.id) == ["ticket_created"]

    @pytest.mark.asyncio
    async def test_queues_created_notification(self, ticket, customer, async_test_session):
        result = await async_test_session.execute(
            select(EventOutbox).where(EventOutbox.aggregate_id == str(ticket.id))
        )
        events = list(result.scalars().all())
        assert len(events) == 1
        assert events[0].event_type == EVENT_NOTIFICATION_REQUESTED
        assert events[0].payload["event"] == "ticket.created"
        assert events[0].payload["recipient_id"] == str(customer.id)

    @pytest.mark.asyncio
    async def test_admin_cannot_create(self, service, admin):
        with pytest.raises(ForbiddenException):
            await service.create_ticket(admin, subject="x", description="y")

    @pytest.mark.asyncio
    async def test_blank_subject_rejected(self, service, customer):
        with pytest.raises(ValidationException):
            await service.create_ticket(customer, subject="   ", description="y")

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, service, customer):
        with pytest.raises(ValidationException):
            await service.create_ticket(
                customer, subject="Help", description="y", category="complaints"
            )

    @pytest.mark.asyncio
    async def test_order_must_belong_to_customer(
        self, service, customer, other_customer, async_test_session
    ):
        foreign_order = await create_order(async_test_session, other_customer.id)
        with pytest.raises(NotFoundException):
            await service.create_ticket(
                customer, subject="Where is it", description="y", order_id=foreign_order.id
            )

    @pytest.mark.asyncio
    async def test_links_own_order(self, service, customer, order):
        created = await service.create_ticket(
            customer, subject="Late", description="Still waiting", order_id=order.id
        )
        assert created.order_id == order.id


class TestReply:
    @pytest.mark.asyncio
    async def test_admin_reply_moves_to_awaiting_customer(
        self, service, ticket, admin, clock, async_test_session
    ):
        due_before = ticket.sla_due_at
        clock.advance(hours=2)

        updated = await service.reply(ticket.id, admin, "Sorry! A replacement is on its way.")

        assert updated.status == TicketStatus.AWAITING_CUSTOMER
        assert updated.first_response_at == clock.now
        assert updated.last_response_at == clock.now
        assert updated.sla_due_at == due_before
        types = await _activity_types(async_test_session, ticket.id)
        assert "admin_reply" in types
        assert "status_changed" in types

    @pytest.mark.asyncio
    async def test_first_response_only_set_once(self, service, ticket, admin, clock):
        await service.reply(ticket.id, admin, "First")
        first = clock.now
        clock.advance(hours=1)
        updated = await service.reply(ticket.id, admin, "Second")
        assert updated.first_response_at == first
        assert updated.last_response_at == clock.now

    @pytest.mark.asyncio
    async def test_internal_note_keeps_status(self, service, ticket, admin, async_test_session):
        updated = await service.reply(ticket.id, admin, "Check the courier claim", is_internal=True)

        assert updated.status == TicketStatus.OPEN
        assert updated.first_response_at is None
        messages = await _messages(async_test_session, ticket.id)
        note = next(m for m in messages if m.message == "Check the courier claim")
        assert note.is_internal is True
        assert "internal_note_added" in await _activity_types(async_test_session, ticket.id)

    @pytest.mark.asyncio
    async def test_customer_reply_resumes_work(self, service, ticket, admin, customer):
        await service.reply(ticket.id, admin, "Can you send a photo?")
        updated = await service.reply(ticket.id, customer, "Photo attached.")
        assert updated.status == TicketStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_customer_cannot_post_internal(self, service, ticket, customer):
        with pytest.raises(ForbiddenException):
            await service.reply(ticket.id, customer, "psst", is_internal=True)

    @pytest.mark.asyncio
    async def test_other_customer_gets_not_found(self, service, ticket, other_customer):
        with pytest.raises(NotFoundException):
            await service.reply(ticket.id, other_customer, "Me too")

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, service, ticket, admin):
        with pytest.raises(ValidationException):
            await service.reply(ticket.id, admin, "  ")

    @pytest.mark.asyncio
    async def test_reply_on_closed_ticket(self, service, ticket, admin, customer):
        await service.close(ticket.id, admin, "Refunded in full")
        with pytest.raises(ClosedTicketException) as exc_info:
            await service.reply(ticket.id, customer, "Thanks!")
        assert exc_info.value.status_code == 409


class TestAssignAndStatus:
    @pytest.mark.asyncio
    async def test_assign_and_unassign(self, service, ticket, admin, clock):
        updated = await service.assign(ticket.id, admin, admin.id)
        assert updated.assigned_to == admin.id
        assert updated.assigned_at == clock.now

        updated = await service.assign(ticket.id, admin, None)
        assert updated.assigned_to is None
        assert updated.assigned_at is None

    @pytest.mark.asyncio
    async def test_customer_cannot_assign(self, service, ticket, customer):
        with pytest.raises(ForbiddenException):
            await service.assign(ticket.id, customer, customer.id)

    @pytest.mark.asyncio
    async def test_status_change_with_notes(self, service, ticket, admin, async_test_session):
        updated = await service.change_status(
            ticket.id, admin, TicketStatus.AWAITING_INTERNAL, notes="Waiting on warehouse"
        )
        assert updated.status == TicketStatus.AWAITING_INTERNAL
        messages = await _messages(async_test_session, ticket.id)
        note = next(m for m in messages if "Waiting on warehouse" in m.message)
        assert note.is_internal is True

    @pytest.mark.asyncio
    async def test_illegal_transition_leaves_ticket_unchanged(self, service, ticket, admin, registry):
        await service.escalate(ticket.id, admin, "VIP customer")
        before = registry.available_transitions(EntityType.TICKET, TicketStatus.ESCALATED)

        with pytest.raises(IllegalTransitionException) as exc_info:
            await service.change_status(ticket.id, admin, TicketStatus.OPEN)

        assert exc_info.value.current == "escalated"
        assert "open" not in exc_info.value.allowed
        refreshed = await service.get_ticket(ticket.id)
        assert refreshed.status == TicketStatus.ESCALATED
        assert registry.available_transitions(EntityType.TICKET, refreshed.status) == before

    @pytest.mark.asyncio
    async def test_terminal_status_change_freezes_breach(self, service, ticket, admin, clock):
        clock.advance(hours=30)
        updated = await service.change_status(ticket.id, admin, TicketStatus.CLOSED)
        assert updated.sla_breached is True
        assert updated.closed_at == clock.now
        assert updated.closed_by == admin.id

    @pytest.mark.asyncio
    async def test_escalated_only_through_escalate(
        self, service, ticket, admin, async_test_session
    ):
        with pytest.raises(ValidationException) as exc_info:
            await service.change_status(ticket.id, admin, TicketStatus.ESCALATED)

        assert exc_info.value.status_code == 422
        assert {"field": "status", "message": "escalated"} in exc_info.value.details
        refreshed = await service.get_ticket(ticket.id)
        assert refreshed.status == TicketStatus.OPEN
        assert refreshed.escalation_level == 0
        assert refreshed.priority == TicketPriority.HIGH
        assert refreshed.escalations == []
        escalations = await async_test_session.execute(
            select(TicketEscalation).where(TicketEscalation.ticket_id == ticket.id)
        )
        assert escalations.scalars().all() == []
        assert await service.list_escalated(admin) == []


class TestPriorityAndEscalation:
    @pytest.mark.asyncio
    async def test_priority_change_restarts_sla(self, service, ticket, admin, clock):
        clock.advance(hours=5)
        updated = await service.change_priority(ticket.id, admin, TicketPriority.URGENT)
        assert updated.priority == TicketPriority.URGENT
        assert updated.sla_hours == 4
        assert updated.sla_due_at == clock.now + timedelta(hours=4)
        assert updated.escalation_level == 0

    @pytest.mark.asyncio
    async def test_priority_change_on_closed_ticket(self, service, ticket, admin):
        await service.close(ticket.id, admin, "Done", final_status=TicketStatus.CLOSED)
        with pytest.raises(ClosedTicketException):
            await service.change_priority(ticket.id, admin, TicketPriority.LOW)

    @pytest.mark.asyncio
    async def test_escalate_twice_increments_level(
        self, service, ticket, admin, clock, async_test_session
    ):
        clock.advance(hours=1)
        await service.escalate(ticket.id, admin, "Angry customer")
        clock.advance(hours=1)
        updated = await service.escalate(ticket.id, admin, "Still angry", notes="Call back")

        assert updated.escalation_level == 2
        assert updated.status == TicketStatus.ESCALATED
        assert updated.priority == TicketPriority.URGENT
        assert updated.sla_due_at == clock.now + timedelta(hours=4)

        result = await async_test_session.execute(
            select(TicketEscalation).where(TicketEscalation.ticket_id == ticket.id)
        )
        levels = sorted((e.previous_level, e.new_level) for e in result.scalars().all())
        assert levels == [(0, 1), (1, 2)]
        internal = [m for m in await _messages(async_test_session, ticket.id) if m.is_internal]
        assert len(internal) == 2

    @pytest.mark.asyncio
    async def test_escalate_reassigns_and_notifies_lead(
        self, service, ticket, admin, async_test_session
    ):
        lead_id = uuid.uuid4()
        updated = await service.escalate(ticket.id, admin, "Needs a lead", escalate_to=lead_id)
        assert updated.assigned_to == lead_id

        result = await async_test_session.execute(
            select(EventOutbox).where(EventOutbox.aggregate_id == str(ticket.id))
        )
        escalated = [e for e in result.scalars().all() if e.payload["event"] == "ticket.escalated"]
        assert len(escalated) == 1
        assert escalated[0].payload["recipient_id"] == str(lead_id)

    @pytest.mark.asyncio
    async def test_escalate_requires_reason(self, service, ticket, admin):
        with pytest.raises(ValidationException):
            await service.escalate(ticket.id, admin, "")

    @pytest.mark.asyncio
    async def test_escalate_closed_ticket(self, service, ticket, admin):
        await service.close(ticket.id, admin, "Done")
        with pytest.raises(IllegalTransitionException):
            await service.escalate(ticket.id, admin, "Too late")


class TestClose:
    @pytest.mark.asyncio
    async def test_close_within_sla(self, service, ticket, admin, clock, async_test_session):
        clock.advance(hours=3)
        closed = await service.close(ticket.id, admin, "Replacement shipped")

        assert closed.status == TicketStatus.RESOLVED
        assert closed.sla_breached is False
        assert closed.resolution_summary == "Replacement shipped"
        assert closed.closed_at == clock.now
        messages = await _messages(async_test_session, ticket.id)
        closing = next(m for m in messages if m.message == "Ticket resolved: Replacement shipped")
        assert closing.is_internal is False
        assert "ticket_closed" in await _activity_types(async_test_session, ticket.id)

    @pytest.mark.asyncio
    async def test_close_after_deadline_records_breach(self, service, ticket, admin, clock):
        clock.advance(hours=25)
        closed = await service.close(ticket.id, admin, "Late but fixed")
        assert closed.sla_breached is True

    @pytest.mark.asyncio
    async def test_close_resolves_open_escalations(
        self, service, ticket, admin, clock, async_test_session
    ):
        await service.escalate(ticket.id, admin, "Urgent")
        clock.advance(hours=1)
        await service.close(ticket.id, admin, "Handled by lead", final_status=TicketStatus.CLOSED)

        result = await async_test_session.execute(
            select(TicketEscalation).where(TicketEscalation.ticket_id == ticket.id)
        )
        escalation = result.scalar_one()
        assert escalation.resolved_at is not None
        assert escalation.resolved_by == admin.id
        assert escalation.resolution_notes == "Handled by lead"

    @pytest.mark.asyncio
    async def test_close_twice(self, service, ticket, admin):
        await service.close(ticket.id, admin, "Done")
        with pytest.raises(ClosedTicketException):
            await service.close(ticket.id, admin, "Again")

    @pytest.mark.asyncio
    async def test_close_requires_summary(self, service, ticket, admin):
        with pytest.raises(ValidationException):
            await service.close(ticket.id, admin, "")

    @pytest.mark.asyncio
    async def test_close_rejects_non_terminal_final_status(self, service, ticket, admin):
        with pytest.raises(ValidationException):
            await service.close(ticket.id, admin, "Done", final_status=TicketStatus.IN_PROGRESS)


class TestReads:
    @pytest.mark.asyncio
    async def test_customer_sees_only_own_ticket(self, service, ticket, customer, other_customer):
        assert (await service.get_ticket(ticket.id, customer)).id == ticket.id
        with pytest.raises(NotFoundException):
            await service.get_ticket(ticket.id, other_customer)

    @pytest.mark.asyncio
    async def test_queue_orders_escalated_then_priority(self, service, customer, admin):
        low = await service.create_ticket(
            customer, subject="Low", description="d", priority=TicketPriority.LOW
        )
        urgent = await service.create_ticket(
            customer, subject="Urgent", description="d", priority=TicketPriority.URGENT
        )
        escalated = await service.create_ticket(
            customer, subject="Medium", description="d", priority=TicketPriority.MEDIUM
        )
        await service.escalate(escalated.id, admin, "Escalate me")

        items, total = await service.list_tickets(admin)

        assert total == 3
        assert [t.id for t in items] == [escalated.id, urgent.id, low.id]

    @pytest.mark.asyncio
    async def test_breached_filter(self, service, customer, admin, clock):
        urgent = await service.create_ticket(
            customer, subject="Urgent", description="d", priority=TicketPriority.URGENT
        )
        await service.create_ticket(
            customer, subject="Low", description="d", priority=TicketPriority.LOW
        )
        clock.advance(hours=5)

        items, total = await service.list_tickets(admin, sla_status="breached")

        assert total == 1
        assert items[0].id == urgent.id

    @pytest.mark.asyncio
    async def test_search_by_subject(self, service, ticket, admin):
        items, total = await service.list_tickets(admin, search="cracked")
        assert total == 1
        assert items[0].id == ticket.id

    @pytest.mark.asyncio
    async def test_invalid_sla_filter(self, service, admin):
        with pytest.raises(ValidationException):
            await service.list_tickets(admin, sla_status="soon")

    @pytest.mark.asyncio
    async def test_list_customer_tickets(self, service, ticket, customer, other_customer):
        items, total = await service.list_customer_tickets(customer)
        assert total == 1
        items, total = await service.list_customer_tickets(other_customer)
        assert total == 0

    @pytest.mark.asyncio
    async def test_stats(self, service, ticket, customer, admin, clock):
        other = await service.create_ticket(
            customer, subject="Billing", description="d", category=TicketCategory.PAYMENT
        )
        clock.advance(hours=1)
        await service.reply(ticket.id, admin, "Looking into it")
        await service.close(other.id, admin, "Explained the charge")

        stats = await service.get_stats(admin)

        assert stats["total"] == 2
        assert stats["by_status"]["awaiting_customer"] == 1
        assert stats["by_status"]["resolved"] == 1
        assert stats["open"] == 1
        assert stats["unassigned"] == 1
        assert stats["avg_first_response_hours"] == 1.0
        assert stats["avg_resolution_hours"] == 1.0
        assert {c["category"] for c in stats["by_category"]} == {"product", "payment"}

    @pytest.mark.asyncio
    async def test_stats_requires_admin(self, service, customer):
        with pytest.raises(ForbiddenException):
            await service.get_stats(customer)


class TestSlaSweep:
    @pytest.mark.asyncio
    async def test_flags_once_per_due_time(self, service, ticket, admin, clock, async_test_session):
        clock.advance(hours=25)

        first = await service.flag_sla_breaches()
        second = await service.flag_sla_breaches()

        assert first["flagged"] == 1
        assert second["flagged"] == 0
        refreshed = await service.get_ticket(ticket.id)
        assert refreshed.status == TicketStatus.OPEN
        assert refreshed.escalation_level == 0

        result = await async_test_session.execute(
            select(EventOutbox).where(EventOutbox.aggregate_id == str(ticket.id))
        )
        events = [e.payload["event"] for e in result.scalars().all()]
        assert events.count("ticket.sla_breached") == 1

    @pytest.mark.asyncio
    async def test_new_deadline_can_breach_again(self, service, ticket, admin, clock):
        clock.advance(hours=25)
        await service.flag_sla_breaches()

        await service.change_priority(ticket.id, admin, TicketPriority.URGENT)
        clock.advance(hours=5)

        assert (await service.flag_sla_breaches())["flagged"] == 1

    @pytest.mark.asyncio
    async def test_ignores_closed_tickets(self, service, ticket, admin, clock):
        await service.close(ticket.id, admin, "Done")
        clock.advance(days=5)
        assert (await service.flag_sla_breaches())["flagged"] == 0


class TestStoredTimestamps:
    @pytest.mark.asyncio
    async def test_reloaded_timestamps_are_utc(
        self, session_factory, registry, clock, customer, admin
    ):
        async with session_factory() as session:
            svc = TicketService(session, registry, clock=clock)
            created = await svc.create_ticket(
                customer, subject="Late parcel", description="d", priority=TicketPriority.HIGH
            )
            clock.advance(hours=2)
            await svc.reply(created.id, admin, "Looking into it")
            await session.commit()
            ticket_id = created.id

        async with session_factory() as session:
            ticket = await TicketService(session, registry, clock=clock).get_ticket(ticket_id)

        for value in (ticket.created_at, ticket.sla_due_at, ticket.first_response_at):
            assert value.tzinfo is not None
            assert value.utcoffset() == timedelta(0)
        assert ticket.first_response_at == clock.now
        assert ticket.sla_due_at == clock.now - timedelta(hours=2) + timedelta(hours=24)
        assert all(m.created_at.tzinfo is not None for m in ticket.messages)


class TestRelationshipLoading:
    @pytest.mark.asyncio
    async def test_get_ticket_loads_conversation(self, service, ticket, admin):
        await service.reply(ticket.id, admin, "Replacement approved")
        await service.escalate(ticket.id, admin, "Second complaint")

        loaded = await service.get_ticket(ticket.id)

        texts = [m.message for m in loaded.messages]
        assert "The lid is split down the middle." in texts
        assert "Replacement approved" in texts
        assert [e.new_level for e in loaded.escalations] == [1]

    @pytest.mark.asyncio
    async def test_unloaded_collections_raise(self, session_factory, registry, clock, customer):
        async with session_factory() as session:
            created = await TicketService(session, registry, clock=clock).create_ticket(
                customer, subject="Wrong size", description="d"
            )
            await session.commit()
            ticket_id = created.id

        async with session_factory() as session:
            ticket = (
                await session.execute(select(Ticket).where(Ticket.id == ticket_id))
            ).scalar_one()

            with pytest.raises(InvalidRequestError):
                ticket.messages
            with pytest.raises(InvalidRequestError):
                ticket.escalations
