"""Refund model: money returned to the customer against an order."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import ForeignKey, Index, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import PaymentMode, RefundReason, RefundStatus


class Refund(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "refunds"

    refund_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    return_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("return_requests.id", ondelete="SET NULL")
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    currency: Mapped[str] = mapped_column(
        String(3), nullable=False, default="USD", server_default="USD"
    )
    reason: Mapped[RefundReason] = mapped_column(
        enum_type(RefundReason, "refundreason"), nullable=False
    )
    payment_mode: Mapped[PaymentMode] = mapped_column(
        enum_type(PaymentMode, "paymentmode"), nullable=False
    )
    status: Mapped[RefundStatus] = mapped_column(
        enum_type(RefundStatus, "refundstatus"),
        nullable=False,
        default=RefundStatus.PENDING,
    )

    # Processing
    transaction_id: Mapped[str | None] = mapped_column(String(100))
    bank_reference: Mapped[str | None] = mapped_column(String(100))
    failure_reason: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)

    initiated_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    processed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_refunds_order_id", "order_id"),
        Index("ix_refunds_return_id", "return_id"),
        Index("ix_refunds_status", "status"),
    )
