"""Refund service: initiation, guarded status changes, and completion cascades."""

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
from src.models.enums import EntityType, PaymentMode, RefundReason, RefundStatus
from src.models.order import Order
from src.models.refund import Refund
from src.models.workflow_activity import WorkflowActivity
from src.modules.identity.auth import Actor, require_admin
from src.modules.notifications.requester import NotificationRequester
from src.modules.refund.constants import (
    ACTIVITY_REFUND_INITIATED,
    ACTIVITY_REFUND_QUICK_COMPLETED,
    ACTIVITY_REFUND_STATUS_CHANGED,
    EVENT_REFUND_COMPLETED,
    EVENT_REFUND_INITIATED,
    EVENT_REFUND_STATUS_CHANGED,
    PAYMENT_MODE_LABELS,
    PROCESSOR_STATUSES,
    QUICK_COMPLETE_FROM,
    TERMINAL_REFUND_STATUSES,
)
from src.modules.workflow import numbering
from src.modules.workflow.activity import ActivityLogger
from src.modules.workflow.concurrency import ensure_version, flush_changes, load_for_update
from src.modules.workflow.fields import coerce_enum, require_text
from src.modules.workflow.linkage import LinkageIntent, LinkageResolver
from src.modules.workflow.registry import StatusRegistry

logger = logging.getLogger(__name__)

_TERMINAL_STATUSES = sorted(TERMINAL_REFUND_STATUSES, key=lambda s: s.value)


def _parse_amount(amount: Decimal | float | str) -> Decimal:
    try:
        return Decimal(str(amount)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise ValidationException(
            f"Invalid refund amount '{amount}'",
            details=[{"field": "amount", "message": "Must be a decimal number"}],
        ) from None


def _parse_currency(currency: str | None) -> str:
    code = (currency or "USD").strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValidationException(
            f"Invalid currency '{currency}'",
            details=[{"field": "currency", "message": "Must be a 3-letter ISO code"}],
        )
    return code


class RefundService:
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

    async def _lock_refund(
        self, refund_id: uuid.UUID, expected_version: int | None
    ) -> Refund:
        refund = await load_for_update(self.db, Refund, refund_id, "Refund")
        ensure_version(refund, expected_version, "Refund")
        return refund

    async def _active_refund_for(self, order_id: uuid.UUID) -> Refund | None:
        result = await self.db.execute(
            select(Refund)
            .where(Refund.order_id == order_id, Refund.status.not_in(_TERMINAL_STATUSES))
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _notify_customer(self, refund: Refund, event: str, data: dict) -> None:
        result = await self.db.execute(
            select(Order.customer_id).where(Order.id == refund.order_id)
        )
        customer_id = result.scalar_one_or_none()
        if customer_id is None:
            return
        await self.notifications.request(
            event=event,
            recipient_id=customer_id,
            aggregate_type=EntityType.REFUND.value,
            aggregate_id=refund.id,
            payload={
                "refund_number": refund.refund_number,
                "amount": refund.amount,
                "currency": refund.currency,
                "status": refund.status,
                **data,
            },
        )

    def _apply_details(
        self,
        refund: Refund,
        transaction_id: str | None,
        bank_reference: str | None,
        failure_reason: str | None,
        notes: str | None,
    ) -> None:
        if transaction_id:
            refund.transaction_id = transaction_id
        if bank_reference:
            refund.bank_reference = bank_reference
        if failure_reason:
            refund.failure_reason = failure_reason
        if notes:
            refund.notes = notes

    def _mark_completed(self, refund: Refund, actor: Actor, now: datetime) -> None:
        refund.status = RefundStatus.COMPLETED
        refund.processed_by = actor.id
        refund.processed_at = now
        refund.completed_at = now

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    async def initiate_refund(
        self,
        actor: Actor,
        order_id: uuid.UUID,
        amount: Decimal | float | str,
        reason: RefundReason | str,
        payment_mode: PaymentMode | str = PaymentMode.ORIGINAL,
        return_id: uuid.UUID | None = None,
        currency: str | None = "USD",
        notes: str | None = None,
    ) -> Refund:
        """Create a PENDING refund against an order (and optionally a return)."""
        require_admin(actor)
        reason = coerce_enum(RefundReason, reason, "reason")
        payment_mode = coerce_enum(PaymentMode, payment_mode, "payment_mode")
        amount = _parse_amount(amount)
        currency = _parse_currency(currency)

        order = await self.linkage.load_order(order_id)

        if amount <= 0:
            raise ValidationException(
                "Refund amount must be greater than zero",
                details=[{"field": "amount", "message": str(amount)}],
            )
        if amount > order.total_amount:
            raise ValidationException(
                f"Refund amount {amount} exceeds order total {order.total_amount}",
                details=[{"field": "amount", "message": f"Maximum is {order.total_amount}"}],
            )

        active = await self._active_refund_for(order.id)
        if active is not None:
            raise ConflictException(
                f"Order {order.order_number} already has an active refund "
                f"({active.refund_number}, {active.status.value})"
            )

        return_request = None
        if return_id is not None:
            return_request = await self.linkage.load_return(return_id, order.id)

        now = self.clock()
        refund = Refund(
            id=uuid.uuid4(),
            refund_number=numbering.refund_number(now),
            order_id=order.id,
            return_id=return_id,
            amount=amount,
            currency=currency,
            reason=reason,
            payment_mode=payment_mode,
            status=RefundStatus.PENDING,
            notes=notes,
            initiated_by=actor.id,
            created_at=now,
            updated_at=now,
        )
        intents = await self.linkage.plan_refund_initiated(refund.refund_number, return_request)

        self.db.add(refund)
        self.linkage.apply(intents, actor)
        self.activity.record(
            EntityType.REFUND,
            refund.id,
            ACTIVITY_REFUND_INITIATED,
            actor,
            new_value=RefundStatus.PENDING,
            description=(
                f"Refund of {amount} {currency} initiated via "
                f"{PAYMENT_MODE_LABELS[payment_mode]}"
            ),
        )
        await self._notify_customer(refund, EVENT_REFUND_INITIATED, {"reason": reason})
        await flush_changes(self.db, "Refund")

        logger.info(
            "Initiated refund %s (%s) for order %s amount=%s",
            refund.id, refund.refund_number, order.order_number, amount,
        )
        return refund

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition(
        self,
        refund_id: uuid.UUID,
        actor: Actor,
        new_status: RefundStatus | str,
        transaction_id: str | None = None,
        bank_reference: str | None = None,
        failure_reason: str | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Refund:
        """Move a refund along its graph; completion cascades to return and order."""
        require_admin(actor)
        new_status = coerce_enum(RefundStatus, new_status, "status")
        refund = await self._lock_refund(refund_id, expected_version)

        old_status = refund.status
        self.registry.validate(EntityType.REFUND, old_status, new_status)

        intents: list[LinkageIntent] = []
        if new_status == RefundStatus.COMPLETED:
            intents = await self.linkage.plan_refund_completed(refund)

        now = self.clock()
        if new_status == RefundStatus.COMPLETED:
            self._mark_completed(refund, actor, now)
        else:
            refund.status = new_status
            if new_status in PROCESSOR_STATUSES:
                refund.processed_by = actor.id
        self._apply_details(refund, transaction_id, bank_reference, failure_reason, notes)
        refund.updated_at = now

        self.linkage.apply(intents, actor)
        self.activity.record(
            EntityType.REFUND,
            refund.id,
            ACTIVITY_REFUND_STATUS_CHANGED,
            actor,
            field_name="status",
            old_value=old_status,
            new_value=new_status,
            description=(
                f"Status changed from {self.registry.label(EntityType.REFUND, old_status)} "
                f"to {self.registry.label(EntityType.REFUND, new_status)}"
            ),
        )
        await self._notify_customer(
            refund,
            EVENT_REFUND_COMPLETED
            if new_status == RefundStatus.COMPLETED
            else EVENT_REFUND_STATUS_CHANGED,
            {"old_status": old_status},
        )
        await flush_changes(self.db, "Refund")

        logger.info(
            "Refund %s status %s -> %s by %s",
            refund.refund_number, old_status.value, new_status.value, actor.id,
        )
        return refund

    async def quick_complete(
        self,
        refund_id: uuid.UUID,
        actor: Actor,
        transaction_id: str,
        bank_reference: str | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> Refund:
        """Admin shortcut: PENDING/APPROVED straight to COMPLETED, skipping PROCESSING.

        Recorded under its own activity type so the skipped step stays visible
        in the audit trail.
        """
        require_admin(actor)
        transaction_id = require_text(transaction_id, "transaction_id")
        refund = await self._lock_refund(refund_id, expected_version)

        old_status = refund.status
        if old_status not in QUICK_COMPLETE_FROM:
            raise IllegalTransitionException(
                current=old_status.value,
                requested=RefundStatus.COMPLETED.value,
                allowed=self.registry.legal_next(EntityType.REFUND, old_status),
                message=(
                    f"Quick completion is only possible from "
                    f"{sorted(s.value for s in QUICK_COMPLETE_FROM)}, refund is '{old_status.value}'"
                ),
            )

        intents = await self.linkage.plan_refund_completed(refund)

        now = self.clock()
        self._mark_completed(refund, actor, now)
        self._apply_details(refund, transaction_id, bank_reference, None, notes)
        refund.updated_at = now

        self.linkage.apply(intents, actor)
        self.activity.record(
            EntityType.REFUND,
            refund.id,
            ACTIVITY_REFUND_QUICK_COMPLETED,
            actor,
            field_name="status",
            old_value=old_status,
            new_value=RefundStatus.COMPLETED,
            description=f"Refund completed directly from {old_status.value} (txn {transaction_id})",
        )
        await self._notify_customer(refund, EVENT_REFUND_COMPLETED, {"old_status": old_status})
        await flush_changes(self.db, "Refund")

        logger.info(
            "Refund %s quick-completed from %s by %s", refund.refund_number, old_status.value, actor.id
        )
        return refund

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_refund(self, refund_id: uuid.UUID, actor: Actor) -> Refund:
        require_admin(actor)
        result = await self.db.execute(select(Refund).where(Refund.id == refund_id))
        refund = result.scalar_one_or_none()
        if refund is None:
            raise NotFoundException(f"Refund {refund_id} not found")
        return refund

    async def list_refunds(
        self,
        actor: Actor,
        status: RefundStatus | None = None,
        reason: RefundReason | None = None,
        payment_mode: PaymentMode | None = None,
        search: str | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Refund], int]:
        """Admin listing, pending first then newest."""
        require_admin(actor)
        filters = []
        if status is not None:
            filters.append(Refund.status == status)
        if reason is not None:
            filters.append(Refund.reason == reason)
        if payment_mode is not None:
            filters.append(Refund.payment_mode == payment_mode)
        if search:
            pattern = f"%{search.strip()}%"
            filters.append(
                or_(
                    Refund.refund_number.ilike(pattern),
                    Refund.transaction_id.ilike(pattern),
                    Order.order_number.ilike(pattern),
                )
            )
        if date_from is not None:
            filters.append(
                Refund.created_at >= datetime.combine(date_from, time.min, tzinfo=UTC)
            )
        if date_to is not None:
            filters.append(
                Refund.created_at
                < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=UTC)
            )

        base = select(Refund).join(Order, Order.id == Refund.order_id).where(*filters)
        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            base.order_by(
                case((Refund.status == RefundStatus.PENDING, 0), else_=1),
                Refund.created_at.desc(),
            )
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_customer_refunds(
        self, actor: Actor, limit: int = 20, offset: int = 0
    ) -> tuple[list[Refund], int]:
        base = (
            select(Refund)
            .join(Order, Order.id == Refund.order_id)
            .where(Order.customer_id == actor.id)
        )
        total = (
            await self.db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            base.order_by(Refund.created_at.desc()).offset(offset).limit(limit)
        )
        return list(result.scalars().all()), total

    async def get_refund_for_order(self, order_id: uuid.UUID, actor: Actor) -> Refund | None:
        """Latest refund on one of the caller's orders (None when there is none)."""
        owned = await self.db.execute(
            select(Order.id).where(Order.id == order_id, Order.customer_id == actor.id)
        )
        if owned.scalar_one_or_none() is None:
            raise NotFoundException(f"Order {order_id} not found")
        result = await self.db.execute(
            select(Refund)
            .where(Refund.order_id == order_id)
            .order_by(Refund.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_activities(self, refund_id: uuid.UUID, actor: Actor) -> list[WorkflowActivity]:
        await self.get_refund(refund_id, actor)
        return await self.activity.list_for(EntityType.REFUND, refund_id)

    async def get_stats(self, actor: Actor) -> dict:
        require_admin(actor)
        now = self.clock()
        start_of_day = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
        in_flight = (RefundStatus.PENDING, RefundStatus.APPROVED, RefundStatus.PROCESSING)

        def amount_where(condition):
            return func.coalesce(func.sum(case((condition, Refund.amount), else_=0)), 0)

        totals = (
            await self.db.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(Refund.amount), 0),
                    amount_where(Refund.status == RefundStatus.COMPLETED),
                    amount_where(Refund.status.in_(in_flight)),
                ).select_from(Refund)
            )
        ).one()

        status_rows = await self.db.execute(
            select(Refund.status, func.count()).group_by(Refund.status)
        )
        by_status = {s.value: 0 for s in RefundStatus}
        by_status.update({status.value: n for status, n in status_rows.all()})

        mode_rows = await self.db.execute(
            select(Refund.payment_mode, func.count(), func.sum(Refund.amount))
            .where(Refund.status == RefundStatus.COMPLETED)
            .group_by(Refund.payment_mode)
        )

        today = (
            await self.db.execute(
                select(
                    func.count(),
                    func.coalesce(
                        func.sum(case((Refund.status == RefundStatus.COMPLETED, 1), else_=0)), 0
                    ),
                    amount_where(Refund.status == RefundStatus.COMPLETED),
                )
                .select_from(Refund)
                .where(Refund.created_at >= start_of_day)
            )
        ).one()

        return {
            "total_refunds": totals[0],
            "by_status": by_status,
            "total_amount": Decimal(str(totals[1])),
            "refunded_amount": Decimal(str(totals[2])),
            "pending_amount": Decimal(str(totals[3])),
            "by_payment_mode": [
                {
                    "payment_mode": mode.value,
                    "payment_mode_label": PAYMENT_MODE_LABELS[mode],
                    "count": count,
                    "total": Decimal(str(total or 0)),
                }
                for mode, count, total in mode_rows.all()
            ],
            "today": {
                "created": today[0],
                "completed": today[1],
                "amount": Decimal(str(today[2])),
            },
        }
