"""Input checks shared by the workflow services."""

from __future__ import annotations

import enum
from typing import TypeVar

from src.exceptions import ValidationException

EnumT = TypeVar("EnumT", bound=enum.Enum)


def coerce_enum(enum_cls: type[EnumT], value: EnumT | str, field: str) -> EnumT:
    """Return ``value`` as a member of ``enum_cls`` or raise ValidationException."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ValidationException(
            f"Invalid {field} '{value}'",
            details=[{"field": field, "message": f"Must be one of {allowed}"}],
        ) from None


def require_text(value: str | None, field: str) -> str:
    """Strip ``value`` and reject it when empty."""
    text = (value or "").strip()
    if not text:
        raise ValidationException(
            f"{field.replace('_', ' ').capitalize()} is required",
            details=[{"field": field, "message": "Must not be empty"}],
        )
    return text
