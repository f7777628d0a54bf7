"""Replacement model: re-shipment of items from an original order."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, JsonType, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import ReplacementReason, ReplacementStatus


class Replacement(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "replacement_orders"

    replacement_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    original_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    replacement_order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL")
    )
    return_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("return_requests.id", ondelete="SET NULL")
    )

    reason: Mapped[ReplacementReason] = mapped_column(
        enum_type(ReplacementReason, "replacementreason"), nullable=False
    )
    status: Mapped[ReplacementStatus] = mapped_column(
        enum_type(ReplacementStatus, "replacementstatus"),
        nullable=False,
        default=ReplacementStatus.PENDING,
    )
    items: Mapped[list[dict]] = mapped_column(JsonType, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    approved_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_replacement_orders_original_order_id", "original_order_id"),
        Index("ix_replacement_orders_status", "status"),
    )
