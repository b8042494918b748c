"""
SLA Infrastructure Models
=========================

SQLAlchemy ORM models for the ticket/event/actor store behind the SLA
engine's reader interfaces.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.infrastructure.database import Base


class TicketSlaModel(Base):
    """
    Database model for a ticket's SLA-relevant state.

    Maps to the 'sla_tickets' table.
    """
    __tablename__ = "sla_tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Business identifier (external ticket ID)
    external_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    priority: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    ticket_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    current_status_code: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_handler_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    # Cached counters kept by the ticket system
    cumulative_paused_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    escalation_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    terminal_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    status_changes: Mapped[List["StatusChangeModel"]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="StatusChangeModel.at",
    )
    trail_events: Mapped[List["TrailEventModel"]] = relationship(
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="TrailEventModel.at",
    )


class StatusChangeModel(Base):
    """
    Database model for one status change of a ticket.

    Maps to the 'sla_status_changes' table.
    """
    __tablename__ = "sla_status_changes"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sla_tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    from_code: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    to_code: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class TrailEventModel(Base):
    """
    Database model for one typed activity trail entry.

    Maps to the 'sla_trail_events' table.
    """
    __tablename__ = "sla_trail_events"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("sla_tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    action_kind: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    actor_role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    target_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class ActorModel(Base):
    """
    Database model for an actor profile.

    Maps to the 'sla_actors' table.
    """
    __tablename__ = "sla_actors"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role_tier: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
