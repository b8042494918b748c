"""
Workflow Infrastructure Models
==============================

SQLAlchemy ORM models for the status registry and workflow graphs.

Nodes and transitions cascade on graph deletion; transitions also cascade
when either endpoint node is deleted.
"""

from datetime import datetime, timezone
from typing import Any, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ticketflow.config import SlaBehavior, StatusCategory
from ticketflow.infrastructure.database import Base


class StatusModel(Base):
    """
    Database model for a registry status.

    Maps to the 'ticket_statuses' table.
    """
    __tablename__ = "ticket_statuses"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default=StatusCategory.AGENT.value)
    is_final: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sla_behavior: Mapped[str] = mapped_column(String(20), nullable=False, default=SlaBehavior.RUN.value)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class WorkflowGraphModel(Base):
    """
    Database model for a workflow template or instance.

    Maps to the 'workflow_graphs' table.
    """
    __tablename__ = "workflow_graphs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Provenance of instances cloned from a template
    parent_template_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    template_version: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    nodes: Mapped[List["WorkflowNodeModel"]] = relationship(
        back_populates="graph",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WorkflowNodeModel.sort_order",
    )
    transitions: Mapped[List["WorkflowTransitionModel"]] = relationship(
        back_populates="graph",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class WorkflowNodeModel(Base):
    """
    Database model for a status bound into a graph.

    Maps to the 'workflow_nodes' table.
    """
    __tablename__ = "workflow_nodes"
    __table_args__ = (
        UniqueConstraint("graph_id", "status_id", name="uq_workflow_node_status"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    graph_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workflow_graphs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("ticket_statuses.id"), nullable=False, index=True
    )
    is_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    x: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    y: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    graph: Mapped[WorkflowGraphModel] = relationship(back_populates="nodes")


class WorkflowTransitionModel(Base):
    """
    Database model for a directed transition.

    Maps to the 'workflow_transitions' table.
    """
    __tablename__ = "workflow_transitions"
    __table_args__ = (
        UniqueConstraint("graph_id", "from_node_id", "to_node_id", name="uq_workflow_transition_pair"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    graph_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workflow_graphs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_node_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workflow_nodes.id", ondelete="CASCADE"), nullable=False
    )
    to_node_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("workflow_nodes.id", ondelete="CASCADE"), nullable=False
    )
    roles: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    condition: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    label: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    graph: Mapped[WorkflowGraphModel] = relationship(back_populates="transitions")
