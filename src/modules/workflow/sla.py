"""SLA calculator for support tickets: due times, breach and at-risk predicates."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from src.config import settings
from src.database.base import utcnow
from src.exceptions import ValidationException
from src.models.enums import TicketPriority, TicketStatus
from src.modules.ticket.constants import SLA_HOURS, TERMINAL_TICKET_STATUSES

__all__ = [
    "as_utc",
    "due_at",
    "is_at_risk",
    "is_breached",
    "minutes_remaining",
    "sla_hours",
    "utcnow",
]


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a caller-supplied timestamp to UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def sla_hours(priority: TicketPriority | str) -> int:
    try:
        return SLA_HOURS[TicketPriority(priority)]
    except ValueError:
        raise ValidationException(f"Unknown ticket priority '{priority}'") from None


def due_at(priority: TicketPriority | str, now: datetime) -> datetime:
    return as_utc(now) + timedelta(hours=sla_hours(priority))


def _is_terminal(status: TicketStatus | str) -> bool:
    return TicketStatus(status) in TERMINAL_TICKET_STATUSES


def is_breached(
    sla_due_at: datetime | None, status: TicketStatus | str, now: datetime
) -> bool:
    if sla_due_at is None or _is_terminal(status):
        return False
    return as_utc(sla_due_at) < as_utc(now)


def is_at_risk(
    sla_due_at: datetime | None,
    status: TicketStatus | str,
    now: datetime,
    window_hours: int | None = None,
) -> bool:
    """Not yet breached, but due within the at-risk window."""
    if sla_due_at is None or _is_terminal(status):
        return False
    if is_breached(sla_due_at, status, now):
        return False
    window = timedelta(
        hours=settings.sla_at_risk_window_hours if window_hours is None else window_hours
    )
    return as_utc(sla_due_at) <= as_utc(now) + window


def minutes_remaining(sla_due_at: datetime | None, now: datetime) -> int:
    if sla_due_at is None:
        return 0
    remaining = (as_utc(sla_due_at) - as_utc(now)).total_seconds()
    return max(0, int(remaining // 60))
