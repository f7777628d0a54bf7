"""Replacement service: initiation, approval with order creation, and status sync."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta
from decimal import Decimal, InvalidOperation

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.database.base import utcnow
from src.exceptions import (
    ConflictException,
    IllegalTransitionException,
    NotFoundException,
    ValidationException,
)
from src.models.enums import EntityType, OrderStatus, ReplacementReason, ReplacementStatus
from src.models.order import Order
from src.models.replacement import Replacement
from src.models.workflow_activity import WorkflowActivity
from src.modules.identity.auth import Actor, require_admin
from src.modules.notifications.requester import NotificationRequester
from src.modules.replacement.constants import (
    ACTIVITY_REPLACEMENT_APPROVED,
    ACTIVITY_REPLACEMENT_INITIATED,
    ACTIVITY_REPLACEMENT_ORDER_CREATED,
    ACTIVITY_REPLACEMENT_REJECTED,
    ACTIVITY_REPLACEMENT_STATUS_CHANGED,
    DEDICATED_OPERATION_STATUSES,
    EVENT_REPLACEMENT_APPROVED,
    EVENT_REPLACEMENT_INITIATED,
    EVENT_REPLACEMENT_REJECTED,
    EVENT_REPLACEMENT_STATUS_CHANGED,
    ORDER_STATUS_MAPPING,
    REASON_LABELS,
    TERMINAL_REPLACEMENT_STATUSES,
)
from src.modules.workflow import numbering
from src.modules.workflow.activity import ActivityLogger
from src.modules.workflow.concurrency import ensure_version, flush_changes, load_for_update
from src.modules.workflow.fields import coerce_enum, require_text
from src.modules.workflow.linkage import LinkageResolver
from src.modules.workflow.registry import StatusRegistry

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = sorted(TERMINAL_REPLACEMENT_STATUSES, key=lambda s: s.value)


def normalize_items(items: list[dict]) -> list[dict]:
    """Validate replacement line items into ``{product_id, name, quantity, price}`` dicts."""
    if not items:
        raise ValidationException(
            "A replacement needs at least one item",
            details=[{"field": "items", "message": "Must not be empty"}],
        )
    normalized = []
    for index, item in enumerate(items):
        try:
            quantity = int(item.get("quantity", 1))
            price = Decimal(str(item.get("price", 0)))
        except (TypeError, ValueError, InvalidOperation):
            raise ValidationException(
                f"Item {index} has an invalid quantity or price",
                details=[{"field": f"items.{index}", "message": "Invalid quantity or price"}],
            ) from None
        if quantity <= 0 or price < 0:
            raise ValidationException(
                f"Item {index} must have a positive quantity and non-negative price",
                details=[{"field": f"items.{index}", "message": "Out of range"}],
            )
        normalized.append(
            {
                "product_id": item.get("product_id"),
                "name": item.get("name"),
                "quantity": quantity,
                "price": str(price),
            }
        )
    return normalized


def items_total(items: list[dict]) -> Decimal:
    return sum(
        (Decimal(str(item["price"])) * int(item.get("quantity", 1)) for item in items),
        Decimal("0"),
    ).quantize(Decimal("0.01"))


class ReplacementService:
    def __init__(
        self,
        db: AsyncSession,
        registry: StatusRegistry,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.registry = registry
        self.clock = clock
        self.activity = ActivityLogger(db)
        self.linkage = LinkageResolver(db, clock)
        self.notifications = NotificationRequester(db)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _lock_replacement(
        self, replacement_id: uuid.UUID, expected_version: int | None
    ) -> Replacement:
        replacement = await load_for_update(
            self.db, Replacement, replacement_id, "Replacement"
        )
        ensure_version(replacement, expected_version, "Replacement")
        return replacement

    def _require_pending(self, replacement: Replacement, requested: ReplacementStatus) -> None:
        if replacement.status != ReplacementStatus.PENDING:
            raise IllegalTransitionException(
                current=replacement.status.value,
                requested=requested.value,
                allowed=self.registry.legal_next(EntityType.REPLACEMENT, replacement.status),
                message=(
                    f"Replacement {replacement.replacement_number} is not pending "
                    f"(status '{replacement.status.value}')"
                ),
            )

    def _log_status(
        self,
        replacement: Replacement,
        activity_type: str,
        actor: Actor,
        old_status: ReplacementStatus,
        new_status: ReplacementStatus,
        description: str | None = None,
    ) -> None:
        self.activity.record(
            EntityType.REPLACEMENT,
            replacement.id,
            activity_type,
            actor,
            field_name="status",
            old_value=old_status,
            new_value=new_status,
            description=description
            or (
                f"Status changed from {self.registry.label(EntityType.REPLACEMENT, old_status)} "
                f"to {self.registry.label(EntityType.REPLACEMENT, new_status)}"
            ),
        )

    async def _notify_customer(self, replacement: Replacement, event: str, data: dict) -> None:
        result = await self.db.execute(
            select(Order.customer_id).where(Order.id == replacement.original_order_id)
        )
        customer_id = result.scalar_one_or_none()
        if customer_id is None:
            return
        await self.notifications.request(
            event=event,
            recipient_id=customer_id,
            aggregate_type=EntityType.REPLACEMENT.value,
            aggregate_id=replacement.id,
            payload={
                "replacement_number": replacement.replacement_number,
                "status": replacement.status,
                **data,
            },
        )

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate_replacement(
        self,
        actor: Actor,
        original_order_id: uuid.UUID,
        reason: ReplacementReason | str,
        items: list[dict] | None = None,
        return_id: uuid.UUID | None = None,
        notes: str | None = None,
        auto_approve: bool = False,
    ) -> Replacement:
        """Open a replacement for an order; items default to the order's own items.

        ``auto_approve`` only starts the record in APPROVED; it does not create
        the replacement order (use ``approve`` on a pending replacement for that).
        """
        require_admin(actor)
        reason = coerce_enum(ReplacementReason, reason, "reason")
        order = await self.linkage.load_order(original_order_id)

        active = await self.db.execute(
            select(Replacement)
            .where(
                Replacement.original_order_id == order.id,
                Replacement.status.not_in(_TERMINAL_STATUSES),
            )
            .limit(1)
        )
        existing = active.scalar_one_or_none()
        if existing is not None:
            raise ConflictException(
                f"Order {order.order_number} already has an active replacement "
                f"({existing.replacement_number}, {existing.status.value})"
            )

        line_items = normalize_items(items if items is not None else list(order.items or []))

        return_request = None
        if return_id is not None:
            return_request = await self.linkage.load_return(return_id, order.id)

        now = self.clock()
        status = ReplacementStatus.APPROVED if auto_approve else ReplacementStatus.PENDING
        replacement = Replacement(
            id=uuid.uuid4(),
            replacement_number=numbering.replacement_number(now),
            original_order_id=order.id,
            return_id=return_id,
            reason=reason,
            status=status,
            items=line_items,
            notes=notes,
            created_by=actor.id,
            approved_by=actor.id if auto_approve else None,
            approved_at=now if auto_approve else None,
            created_at=now,
            updated_at=now,
        )
        intents = await self.linkage.plan_replacement_initiated(
            replacement.replacement_number, order, return_request
        )

        self.db.add(replacement)
        self.linkage.apply(intents, actor)
        self.activity.record(
            EntityType.REPLACEMENT,
            replacement.id,
            ACTIVITY_REPLACEMENT_INITIATED,
            actor,
            new_value=status,
            description=(
                f"Replacement for {order.order_number} initiated ({REASON_LABELS[reason]})"
                + (", auto-approved" if auto_approve else "")
            ),
        )
        await self._notify_customer(replacement, EVENT_REPLACEMENT_INITIATED, {"reason": reason})
        await flush_changes(self.db, "Replacement")

        logger.info(
            "Initiated replacement %s (%s) for order %s status=%s",
            replacement.id, replacement.replacement_number, order.order_number, status.value,
        )
        return replacement

    # ------------------------------------------------------------------
    # Approval / rejection
    # ------------------------------------------------------------------

    async def approve(
        self,
        replacement_id: uuid.UUID,
        actor: Actor,
        create_order: bool = True,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Replacement:
        """Approve a pending replacement, optionally creating the replacement order."""
        require_admin(actor)
        replacement = await self._lock_replacement(replacement_id, expected_version)
        self._require_pending(replacement, ReplacementStatus.APPROVED)
        self.registry.validate(
            EntityType.REPLACEMENT, replacement.status, ReplacementStatus.APPROVED
        )

        original = await self.linkage.load_order(replacement.original_order_id)
        intents = await self.linkage.plan_replacement_approved(replacement)

        now = self.clock()
        new_order = None
        if create_order:
            new_order = Order(
                id=uuid.uuid4(),
                order_number=numbering.order_number(now),
                customer_id=original.customer_id,
                status=OrderStatus.PROCESSING,
                total_amount=items_total(replacement.items),
                currency=original.currency,
                items=list(replacement.items),
                delivery_address=original.delivery_address,
                city=original.city,
                postal_code=original.postal_code,
                phone=original.phone,
                notes=f"Replacement for order {original.order_number} "
                f"({replacement.replacement_number})",
                created_at=now,
                updated_at=now,
            )
            self.db.add(new_order)
            # Insert the order before the replacement row references it
            await self.db.flush()
            replacement.replacement_order_id = new_order.id
            self.activity.record(
                EntityType.ORDER,
                new_order.id,
                ACTIVITY_REPLACEMENT_ORDER_CREATED,
                actor,
                new_value=OrderStatus.PROCESSING,
                description=f"Replacement order created from {replacement.replacement_number}",
            )

        old_status = replacement.status
        replacement.status = ReplacementStatus.APPROVED
        replacement.approved_by = actor.id
        replacement.approved_at = now
        if notes:
            replacement.notes = notes
        replacement.updated_at = now

        self.linkage.apply(intents, actor)
        self._log_status(
            replacement,
            ACTIVITY_REPLACEMENT_APPROVED,
            actor,
            old_status,
            ReplacementStatus.APPROVED,
            description=(
                f"Approved with replacement order {new_order.order_number}"
                if new_order
                else "Approved without creating a replacement order"
            ),
        )
        await self._notify_customer(
            replacement,
            EVENT_REPLACEMENT_APPROVED,
            {"replacement_order_number": new_order.order_number if new_order else None},
        )
        await flush_changes(self.db, "Replacement")

        logger.info(
            "Replacement %s approved by %s (order=%s)",
            replacement.replacement_number,
            actor.id,
            new_order.order_number if new_order else None,
        )
        return replacement

    async def reject(
        self,
        replacement_id: uuid.UUID,
        actor: Actor,
        reason: str,
        expected_version: int | None = None,
    ) -> Replacement:
        require_admin(actor)
        reason = require_text(reason, "reason")
        replacement = await self._lock_replacement(replacement_id, expected_version)
        self._require_pending(replacement, ReplacementStatus.REJECTED)
        self.registry.validate(
            EntityType.REPLACEMENT, replacement.status, ReplacementStatus.REJECTED
        )

        now = self.clock()
        old_status = replacement.status
        replacement.status = ReplacementStatus.REJECTED
        replacement.rejection_reason = reason
        replacement.updated_at = now

        self._log_status(
            replacement,
            ACTIVITY_REPLACEMENT_REJECTED,
            actor,
            old_status,
            ReplacementStatus.REJECTED,
            description=f"Rejected: {reason}",
        )
        await self._notify_customer(replacement, EVENT_REPLACEMENT_REJECTED, {"reason": reason})
        await flush_changes(self.db, "Replacement")

        logger.info("Replacement %s rejected by %s", replacement.replacement_number, actor.id)
        return replacement

    # ------------------------------------------------------------------
    # Fulfilment transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        replacement_id: uuid.UUID,
        actor: Actor,
        new_status: ReplacementStatus | str,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Replacement:
        """Move a replacement along its graph, keeping the replacement order in step."""
        require_admin(actor)
        new_status = coerce_enum(ReplacementStatus, new_status, "status")
        if new_status in DEDICATED_OPERATION_STATUSES:
            raise ValidationException(
                f"Use the {'approve' if new_status == ReplacementStatus.APPROVED else 'reject'} "
                f"operation to move a replacement to '{new_status.value}'",
                details=[{"field": "status", "message": new_status.value}],
            )
        replacement = await self._lock_replacement(replacement_id, expected_version)

        old_status = replacement.status
        self.registry.validate(EntityType.REPLACEMENT, old_status, new_status)
        intents = await self.linkage.plan_replacement_status(
            replacement, new_status, ORDER_STATUS_MAPPING
        )

        now = self.clock()
        replacement.status = new_status
        if notes:
            replacement.notes = notes
        replacement.updated_at = now

        self.linkage.apply(intents, actor)
        self._log_status(
            replacement, ACTIVITY_REPLACEMENT_STATUS_CHANGED, actor, old_status, new_status
        )
        await self._notify_customer(
            replacement, EVENT_REPLACEMENT_STATUS_CHANGED, {"old_status": old_status}
        )
        await flush_changes(self.db, "Replacement")

        logger.info(
            "Replacement %s status %s -> %s by %s",
            replacement.replacement_number, old_status.value, new_status.value, actor.id,
        )
        return replacement

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_replacement(self, replacement_id: uuid.UUID, actor: Actor) -> Replacement:
        require_admin(actor)
        result = await self.db.execute(
            select(Replacement).where(Replacement.id == replacement_id)
        )
        replacement = result.scalar_one_or_none()
        if replacement is None:
            raise NotFoundException(f"Replacement {replacement_id} not found")
        return replacement

    async def list_replacements(
        self,
        actor: Actor,
        status: ReplacementStatus | None = None,
        reason: ReplacementReason | None = None,
        search: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Replacement], int]:
        """Admin listing, pending first then newest."""
        require_admin(actor)
        filters = []
        if status is not None:
            filters.append(Replacement.status == status)
        if reason is not None:
            filters.append(Replacement.reason == reason)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    Replacement.replacement_number.ilike(pattern),
                    Order.order_number.ilike(pattern),
                )
            )
        if date_from is not None:
            filters.append(
                Replacement.created_at >= datetime.combine(date_from, time.min, tzinfo=UTC)
            )
        if date_to is not None:
            filters.append(
                Replacement.created_at
                < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=UTC)
            )

        base = (
            select(Replacement)
            .join(Order, Order.id == Replacement.original_order_id)
            .where(*filters)
        )
        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            base.order_by(
                case((Replacement.status == ReplacementStatus.PENDING, 0), else_=1),
                Replacement.created_at.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_customer_replacements(
        self, actor: Actor, limit: int = 20, offset: int = 0
    ) -> tuple[list[Replacement], int]:
        base = (
            select(Replacement)
            .join(Order, Order.id == Replacement.original_order_id)
            .where(Order.customer_id == actor.id)
        )
        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            base.order_by(Replacement.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_replacement_for_order(
        self, order_id: uuid.UUID, actor: Actor
    ) -> Replacement | None:
        owned = await self.db.execute(
            select(Order.id).where(Order.id == order_id, Order.customer_id == actor.id)
        )
        if owned.scalar_one_or_none() is None:
            raise NotFoundException(f"Order {order_id} not found")
        result = await self.db.execute(
            select(Replacement)
            .where(Replacement.original_order_id == order_id)
            .order_by(Replacement.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_activities(
        self, replacement_id: uuid.UUID, actor: Actor
    ) -> list[WorkflowActivity]:
        await self.get_replacement(replacement_id, actor)
        return await self.activity.list_for(EntityType.REPLACEMENT, replacement_id)

    async def get_stats(self, actor: Actor) -> dict:
        require_admin(actor)
        now = self.clock()
        start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)

        status_rows = await self.db.execute(
            select(Replacement.status, func.count()).group_by(Replacement.status)
        )
        by_status = {s.value: 0 for s in ReplacementStatus}
        by_status.update({status.value: n for status, n in status_rows.all()})

        reason_rows = await self.db.execute(
            select(Replacement.reason, func.count())
            .group_by(Replacement.reason)
            .order_by(func.count().desc())
        )
        created_today = (
            await self.db.execute(
                select(func.count())
                .select_from(Replacement)
                .where(Replacement.created_at >= start_of_day)
            )
        ).scalar() or 0

        return {
            "total_replacements": sum(by_status.values()),
            "by_status": by_status,
            "active": sum(
                n for code, n in by_status.items()
                if ReplacementStatus(code) not in TERMINAL_REPLACEMENT_STATUSES
            ),
            "by_reason": [
                {"reason": r.value, "reason_label": REASON_LABELS[r], "count": n}
                for r, n in reason_rows.all()
            ],
            "created_today": created_today,
        }
