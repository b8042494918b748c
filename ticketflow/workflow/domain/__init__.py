"""
Workflow Domain Layer
=====================

Contains:
- Entities: Status, GraphNode, Transition, WorkflowGraph (aggregate root)
- Value Objects & rules: StatusRules, StatusUpdateResult

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketflow.workflow.domain.entities import (
    Status,
    GraphNode,
    Transition,
    WorkflowGraph,
    new_id,
)
from ticketflow.workflow.domain.value_objects import (
    StatusRules,
    StatusUpdateResult,
)

__all__ = [
    # Entities
    "Status",
    "GraphNode",
    "Transition",
    "WorkflowGraph",
    "new_id",
    # Value Objects & Rules
    "StatusRules",
    "StatusUpdateResult",
]
