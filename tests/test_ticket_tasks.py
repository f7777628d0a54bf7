"""Tests for the periodic ticket SLA sweep task body."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import select

from src.models.event_outbox import EventOutbox
from src.models.ticket import Ticket
from src.modules.ticket.service import TicketService
from src.modules.ticket.tasks import _flag_sla_breaches_async
from tests.conftest import FrozenClock


class TestFlagSlaBreachesTask:
    @pytest.mark.asyncio
    async def test_sweep_commits_and_is_idempotent(
        self, session_factory, registry, customer
    ):
        opened_at = FrozenClock(datetime.now(UTC) - timedelta(days=5))
        async with session_factory() as session:
            svc = TicketService(session, registry, clock=opened_at)
            overdue = await svc.create_ticket(
                customer, subject="No answer yet", description="d", priority="urgent"
            )
            await session.commit()
            overdue_id = overdue.id

        first = await _flag_sla_breaches_async(session_factory)
        second = await _flag_sla_breaches_async(session_factory)

        assert first == {"checked": 1, "flagged": 1}
        assert second == {"checked": 0, "flagged": 0}

        async with session_factory() as session:
            ticket = (
                await session.execute(select(Ticket).where(Ticket.id == overdue_id))
            ).scalar_one()
            assert ticket.sla_breach_notified_at is not None
            assert ticket.escalation_level == 0

            payloads = (await session.execute(select(EventOutbox.payload))).scalars().all()
            assert [p["event"] for p in payloads].count("ticket.sla_breached") == 1

    @pytest.mark.asyncio
    async def test_ticket_within_sla_is_skipped(self, session_factory, registry, customer):
        async with session_factory() as session:
            svc = TicketService(session, registry, clock=lambda: datetime.now(UTC))
            await svc.create_ticket(customer, subject="Fresh", description="d", priority="low")
            await session.commit()

        assert await _flag_sla_breaches_async(session_factory) == {"checked": 0, "flagged": 0}
