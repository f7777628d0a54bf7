"""ReturnRequest model: customer return that a refund or replacement settles."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.database.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import ReturnStatus


class ReturnRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "return_requests"

    return_number: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    status: Mapped[ReturnStatus] = mapped_column(
        enum_type(ReturnStatus, "returnstatus"),
        nullable=False,
        default=ReturnStatus.PENDING,
    )
    requested_action: Mapped[str] = mapped_column(
        String(20), nullable=False, default="refund", server_default="refund"
    )
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_return_requests_order_id", "order_id"),
    )
