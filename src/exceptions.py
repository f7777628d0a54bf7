"""Domain exception hierarchy for structured error responses."""

from __future__ import annotations

from collections.abc import Iterable


class AppException(Exception):
    """Base exception for all domain errors.

    Subclasses set ``code`` and ``status_code`` at the class level; callers
    provide ``message`` and an optional ``details`` list.
    """

    code: str = "APP_ERROR"
    status_code: int = 500

    def __init__(self, message: str, details: list[dict] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundException(AppException):
    code = "NOT_FOUND"
    status_code = 404


class ConflictException(AppException):
    code = "CONFLICT"
    status_code = 409


class ClosedTicketException(ConflictException):
    code = "TICKET_CLOSED"


class ConcurrentModificationException(ConflictException):
    """The record changed between read and write; retry with fresh state."""

    code = "CONCURRENT_MODIFICATION"


class IllegalTransitionException(AppException):
    """Requested state is not in the legal-next set of the current state."""

    code = "ILLEGAL_TRANSITION"
    status_code = 409

    def __init__(
        self,
        current: str,
        requested: str,
        allowed: Iterable[str],
        message: str | None = None,
    ) -> None:
        self.current = current
        self.requested = requested
        self.allowed = sorted(allowed)
        super().__init__(
            message
            or (
                f"Cannot transition from '{current}' to '{requested}'. "
                f"Allowed transitions: {self.allowed}"
            ),
            details=[
                {"field": "current_status", "message": current},
                {"field": "requested_status", "message": requested},
                {"field": "allowed_statuses", "message": ",".join(self.allowed)},
            ],
        )


class ForbiddenException(AppException):
    code = "FORBIDDEN"
    status_code = 403


class UnauthorizedException(AppException):
    code = "UNAUTHORIZED"
    status_code = 401


class ValidationException(AppException):
    code = "VALIDATION_ERROR"
    status_code = 422


class RateLimitException(AppException):
    code = "RATE_LIMITED"
    status_code = 429
