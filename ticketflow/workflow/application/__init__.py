"""
Workflow Application Layer
==========================

Use cases for the status registry and workflow graph editing.
"""

from ticketflow.workflow.application.services import (
    GraphLockRegistry,
    IStatusRepository,
    IWorkflowGraphRepository,
    StatusRegistryService,
    WorkflowGraphService,
    graph_locks,
)

__all__ = [
    "GraphLockRegistry",
    "IStatusRepository",
    "IWorkflowGraphRepository",
    "StatusRegistryService",
    "WorkflowGraphService",
    "graph_locks",
]
