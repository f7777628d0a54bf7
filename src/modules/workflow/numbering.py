"""Human-facing reference numbers for workflow records."""

from __future__ import annotations

import secrets
import string
from datetime import datetime

from src.database.base import utcnow

_ALPHABET = string.ascii_uppercase + string.digits
_BASE36 = string.digits + string.ascii_uppercase


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def _timestamped(prefix: str, now: datetime | None) -> str:
    millis = int((now or utcnow()).timestamp() * 1000)
    return f"{prefix}-{_base36(millis)}-{_random_suffix(4)}"


def ticket_number() -> str:
    """TKT- followed by 8 upper-case alphanumerics."""
    return f"TKT-{_random_suffix(8)}"


def refund_number(now: datetime | None = None) -> str:
    return _timestamped("REF", now)


def replacement_number(now: datetime | None = None) -> str:
    return _timestamped("RPL", now)


def order_number(now: datetime | None = None) -> str:
    return _timestamped("ORD", now)
