"""TicketMessage model: conversation trail for a support ticket."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, UTCDateTime, UUIDPrimaryKeyMixin, enum_type, utcnow
from src.models.enums import MessageSenderType

if TYPE_CHECKING:
    from src.models.ticket import Ticket


class TicketMessage(UUIDPrimaryKeyMixin, Base):
    __tablename__ = "ticket_messages"

    ticket_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    sender_type: Mapped[MessageSenderType] = mapped_column(
        enum_type(MessageSenderType, "messagesendertype"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    sender_name: Mapped[str | None] = mapped_column(String(255))
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_internal: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=utcnow, server_default=func.now()
    )

    ticket: Mapped[Ticket] = relationship(
        "Ticket", back_populates="messages", lazy="raise"
    )

    __table_args__ = (
        Index("ix_ticket_messages_ticket_id", "ticket_id"),
    )
