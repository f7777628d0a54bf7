"""Ticket model: customer support tickets with SLA tracking."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.database.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin, enum_type
from src.models.enums import TicketCategory, TicketPriority, TicketStatus

if TYPE_CHECKING:
    from src.models.ticket_escalation import TicketEscalation
    from src.models.ticket_message import TicketMessage


class Ticket(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "tickets"

    ticket_number: Mapped[str] = mapped_column(
        String(20), nullable=False, unique=True
    )
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_name: Mapped[str | None] = mapped_column(String(255))
    order_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("orders.id", ondelete="SET NULL")
    )

    subject: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[TicketCategory] = mapped_column(
        enum_type(TicketCategory, "ticketcategory"),
        nullable=False,
        default=TicketCategory.GENERAL,
    )
    priority: Mapped[TicketPriority] = mapped_column(
        enum_type(TicketPriority, "ticketpriority"),
        nullable=False,
        default=TicketPriority.MEDIUM,
    )
    status: Mapped[TicketStatus] = mapped_column(
        enum_type(TicketStatus, "ticketstatus"),
        nullable=False,
        default=TicketStatus.OPEN,
    )

    # SLA
    sla_hours: Mapped[int] = mapped_column(Integer, nullable=False)
    sla_due_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    sla_breached: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )
    sla_breach_notified_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    escalation_level: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    # Assignment
    assigned_to: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Response tracking
    first_response_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    last_response_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # Closure
    resolution_summary: Mapped[str | None] = mapped_column(Text)
    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    closed_by: Mapped[uuid.UUID | None] = mapped_column(Uuid)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    messages: Mapped[list[TicketMessage]] = relationship(
        "TicketMessage",
        back_populates="ticket",
        lazy="raise",
        cascade="all, delete-orphan",
        order_by="TicketMessage.created_at",
    )
    escalations: Mapped[list[TicketEscalation]] = relationship(
        "TicketEscalation",
        back_populates="ticket",
        lazy="raise",
        cascade="all, delete-orphan",
        order_by="TicketEscalation.created_at.desc()",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_tickets_customer_id", "customer_id"),
        Index("ix_tickets_status", "status"),
        Index("ix_tickets_assigned_to", "assigned_to"),
        Index("ix_tickets_sla_due_at", "sla_due_at"),
    )
