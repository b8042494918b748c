"""
Workflow Interfaces Layer
=========================

FastAPI route handlers for the status registry and workflow builder.
"""

from ticketflow.workflow.interfaces.controllers import workflow_router

__all__ = ["workflow_router"]
