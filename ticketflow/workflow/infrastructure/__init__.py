"""
Workflow Infrastructure Layer
=============================

Infrastructure implementations for the workflow builder:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
"""

from ticketflow.workflow.infrastructure.models import (
    StatusModel,
    WorkflowGraphModel,
    WorkflowNodeModel,
    WorkflowTransitionModel,
)
from ticketflow.workflow.infrastructure.repositories import (
    SQLAlchemyStatusRepository,
    SQLAlchemyWorkflowGraphRepository,
)

__all__ = [
    "StatusModel",
    "WorkflowGraphModel",
    "WorkflowNodeModel",
    "WorkflowTransitionModel",
    "SQLAlchemyStatusRepository",
    "SQLAlchemyWorkflowGraphRepository",
]
