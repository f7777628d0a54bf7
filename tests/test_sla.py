"""Unit tests for the ticket SLA calculator."""

from datetime import UTC, datetime, timedelta

import pytest

from src.exceptions import ValidationException
from src.models.enums import TicketPriority, TicketStatus
from src.modules.workflow import sla

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=UTC)


class TestDueAt:
    @pytest.mark.parametrize(
        "priority,hours",
        [
            (TicketPriority.URGENT, 4),
            (TicketPriority.HIGH, 24),
            (TicketPriority.MEDIUM, 48),
            (TicketPriority.LOW, 72),
        ],
    )
    def test_budget_per_priority(self, priority, hours):
        assert sla.sla_hours(priority) == hours
        assert sla.due_at(priority, NOW) == NOW + timedelta(hours=hours)

    def test_accepts_plain_code(self):
        assert sla.sla_hours("urgent") == 4

    def test_unknown_priority(self):
        with pytest.raises(ValidationException):
            sla.sla_hours("whenever")


class TestBreach:
    def test_breached_once_past_due(self):
        due = NOW - timedelta(minutes=1)
        assert sla.is_breached(due, TicketStatus.IN_PROGRESS, NOW)

    def test_not_breached_exactly_at_due(self):
        assert not sla.is_breached(NOW, TicketStatus.OPEN, NOW)

    @pytest.mark.parametrize("status", [TicketStatus.RESOLVED, TicketStatus.CLOSED])
    def test_terminal_tickets_never_breach(self, status):
        assert not sla.is_breached(NOW - timedelta(days=3), status, NOW)

    def test_naive_timestamps_are_utc(self):
        naive_due = (NOW - timedelta(hours=1)).replace(tzinfo=None)
        assert sla.is_breached(naive_due, TicketStatus.OPEN, NOW)


class TestAtRisk:
    def test_due_inside_window(self):
        due = NOW + timedelta(hours=3)
        assert sla.is_at_risk(due, TicketStatus.OPEN, NOW, window_hours=4)

    def test_due_outside_window(self):
        due = NOW + timedelta(hours=5)
        assert not sla.is_at_risk(due, TicketStatus.OPEN, NOW, window_hours=4)

    def test_breached_is_not_at_risk(self):
        due = NOW - timedelta(hours=1)
        assert not sla.is_at_risk(due, TicketStatus.OPEN, NOW, window_hours=4)

    def test_terminal_is_not_at_risk(self):
        due = NOW + timedelta(hours=1)
        assert not sla.is_at_risk(due, TicketStatus.RESOLVED, NOW, window_hours=4)


class TestMinutesRemaining:
    def test_counts_whole_minutes(self):
        assert sla.minutes_remaining(NOW + timedelta(minutes=90, seconds=30), NOW) == 90

    def test_never_negative(self):
        assert sla.minutes_remaining(NOW - timedelta(hours=2), NOW) == 0
