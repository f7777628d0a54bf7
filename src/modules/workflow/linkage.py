"""Cross-entity cascades between refunds, replacements, orders, and returns.

Every cascade is planned as a list of ``LinkageIntent`` objects before the
primary entity is mutated.  Planning loads and row-locks each target, so a
missing or mismatched sibling fails the operation while nothing has changed
yet.  ``apply`` then writes the planned statuses and their activity rows into
the same unit of work as the primary transition.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.exceptions import ValidationException
from src.models.enums import EntityType, OrderStatus, ReplacementStatus, ReturnStatus
from src.models.order import Order
from src.models.return_request import ReturnRequest
from src.modules.identity.auth import Actor
from src.modules.workflow.activity import ActivityLogger
from src.modules.workflow.concurrency import load_for_update

logger = logging.getLogger(__name__)

ACTIVITY_LINKED_STATUS_CHANGED = "linked_status_changed"


@dataclass
class LinkageIntent:
    """A planned status change on an already-loaded sibling record."""

    entity_type: EntityType
    target: Order | ReturnRequest
    new_status: enum.Enum
    description: str
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return self.target.status == self.new_status and not self.extra


class LinkageResolver:
    def __init__(
        self,
        db: AsyncSession,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.clock = clock
        self.activity = ActivityLogger(db)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_order(self, order_id: uuid.UUID) -> Order:
        return await load_for_update(self.db, Order, order_id, "Order")

    async def load_return(
        self, return_id: uuid.UUID, order_id: uuid.UUID
    ) -> ReturnRequest:
        """Load and lock a return request, which must belong to ``order_id``."""
        return_request = await load_for_update(
            self.db, ReturnRequest, return_id, "Return request"
        )
        if return_request.order_id != order_id:
            raise ValidationException(
                f"Return request {return_request.return_number} does not belong to this order",
                details=[{"field": "return_id", "message": "Return belongs to a different order"}],
            )
        return return_request

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def _return_intent(
        self, return_request: ReturnRequest, status: ReturnStatus, reason: str
    ) -> LinkageIntent:
        extra: dict[str, Any] = {}
        if status == ReturnStatus.COMPLETED and return_request.completed_at is None:
            extra["completed_at"] = self.clock()
        return LinkageIntent(
            entity_type=EntityType.RETURN,
            target=return_request,
            new_status=status,
            description=f"Return {return_request.return_number} -> {status.value} ({reason})",
            extra=extra,
        )

    def _order_intent(self, order: Order, status: OrderStatus, reason: str) -> LinkageIntent:
        return LinkageIntent(
            entity_type=EntityType.ORDER,
            target=order,
            new_status=status,
            description=f"Order {order.order_number} -> {status.value} ({reason})",
        )

    async def plan_refund_initiated(
        self, refund_number: str, return_request: ReturnRequest | None
    ) -> list[LinkageIntent]:
        if return_request is None:
            return []
        return [
            self._return_intent(
                return_request,
                ReturnStatus.REFUND_INITIATED,
                f"refund {refund_number} initiated",
            )
        ]

    async def plan_refund_completed(self, refund) -> list[LinkageIntent]:
        """Return -> completed (when linked), order -> refunded."""
        reason = f"refund {refund.refund_number} completed"
        intents: list[LinkageIntent] = []
        if refund.return_id is not None:
            return_request = await self.load_return(refund.return_id, refund.order_id)
            intents.append(self._return_intent(return_request, ReturnStatus.COMPLETED, reason))
        order = await self.load_order(refund.order_id)
        intents.append(self._order_intent(order, OrderStatus.REFUNDED, reason))
        return intents

    async def plan_replacement_initiated(
        self,
        replacement_number: str,
        original_order: Order,
        return_request: ReturnRequest | None,
    ) -> list[LinkageIntent]:
        reason = f"replacement {replacement_number} initiated"
        intents = [
            self._order_intent(original_order, OrderStatus.REPLACEMENT_INITIATED, reason)
        ]
        if return_request is not None:
            intents.append(
                self._return_intent(return_request, ReturnStatus.REPLACEMENT_INITIATED, reason)
            )
        return intents

    async def plan_replacement_approved(self, replacement) -> list[LinkageIntent]:
        if replacement.return_id is None:
            return []
        return_request = await self.load_return(
            replacement.return_id, replacement.original_order_id
        )
        return [
            self._return_intent(
                return_request,
                ReturnStatus.COMPLETED,
                f"replacement {replacement.replacement_number} approved",
            )
        ]

    async def plan_replacement_status(
        self,
        replacement,
        new_status: ReplacementStatus,
        mapping: dict[ReplacementStatus, OrderStatus],
    ) -> list[LinkageIntent]:
        """Keep the linked replacement order in step via ``mapping``."""
        order_status = mapping.get(new_status)
        if order_status is None or replacement.replacement_order_id is None:
            return []
        order = await self.load_order(replacement.replacement_order_id)
        return [
            self._order_intent(
                order,
                order_status,
                f"replacement {replacement.replacement_number} {new_status.value}",
            )
        ]

    # ------------------------------------------------------------------
    # Applying
    # ------------------------------------------------------------------

    def apply(self, intents: list[LinkageIntent], actor: Actor) -> None:
        for intent in intents:
            if intent.is_noop:
                continue
            target = intent.target
            old_status = target.status
            target.status = intent.new_status
            for attr, value in intent.extra.items():
                setattr(target, attr, value)
            self.activity.record(
                intent.entity_type,
                target.id,
                ACTIVITY_LINKED_STATUS_CHANGED,
                actor,
                field_name="status",
                old_value=old_status,
                new_value=intent.new_status,
                description=intent.description,
            )
            logger.info("Linked update: %s", intent.description)
