"""
Workflow Controllers (API Routes)
=================================

FastAPI routes for the status registry and the workflow builder.

Controllers are thin - they delegate to application services. Domain
exceptions propagate to the application exception handler, which maps
them to HTTP status codes.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.config import GraphKind, SlaBehavior, StatusCategory
from ticketflow.infrastructure.database import get_session
from ticketflow.workflow.application import StatusRegistryService, WorkflowGraphService
from ticketflow.workflow.application.dto import (
    CloneRequest,
    GraphCreateRequest,
    GraphKindStr,
    GraphResponse,
    GraphUpdateRequest,
    NodeCreateRequest,
    NodeRemovedResponse,
    NodeResponse,
    StatusActiveRequest,
    StatusCreateRequest,
    StatusReorderRequest,
    StatusResponse,
    StatusUpdateRequest,
    StatusUpdateResponse,
    TransitionCreateRequest,
    TransitionResponse,
)
from ticketflow.workflow.infrastructure import (
    SQLAlchemyStatusRepository,
    SQLAlchemyWorkflowGraphRepository,
)

router = APIRouter(prefix="/workflow", tags=["Workflow Builder"])


# ========== Example payloads for Swagger ==========

STATUS_CREATE_EXAMPLE = {
    "name": "Pending Vendor",
    "category": "agent",
    "is_final": False,
    "sla_behavior": "pause"
}

TRANSITION_CREATE_EXAMPLE = {
    "from_node_id": "0f6f3c9e-8d0f-4a57-9d7e-3c1bb1d0a111",
    "to_node_id": "5a2d9f14-6a0b-4f3e-b1a4-2d7f3c2e9222",
    "roles": ["agent", "supervisor"],
    "label": "Escalate to vendor"
}


# ========== Dependencies ==========

async def get_status_service(
    session: AsyncSession = Depends(get_session)
) -> StatusRegistryService:
    """Get status registry service instance."""
    return StatusRegistryService(
        SQLAlchemyStatusRepository(session),
        SQLAlchemyWorkflowGraphRepository(session),
    )


async def get_graph_service(
    session: AsyncSession = Depends(get_session)
) -> WorkflowGraphService:
    """Get workflow graph service instance."""
    return WorkflowGraphService(
        SQLAlchemyWorkflowGraphRepository(session),
        SQLAlchemyStatusRepository(session),
    )


# ========== Status Registry ==========

@router.get(
    "/statuses",
    response_model=List[StatusResponse],
    summary="List registry statuses",
)
async def list_statuses(
    active_only: bool = Query(False, description="Only active statuses"),
    service: StatusRegistryService = Depends(get_status_service)
):
    statuses = await service.list_statuses(active_only=active_only)
    return [StatusResponse.from_domain(s) for s in statuses]


@router.post(
    "/statuses",
    response_model=StatusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a status",
    description="""
    Register a new status in the central catalog.

    When `code` is omitted it is derived from the name: lower-cased,
    whitespace replaced by `_`, anything outside `[a-z0-9_]` dropped.

    A final status cannot keep the SLA clock running.
    """,
    responses={201: {"content": {"application/json": {"example": STATUS_CREATE_EXAMPLE}}}}
)
async def create_status(
    request: StatusCreateRequest,
    service: StatusRegistryService = Depends(get_status_service)
):
    created = await service.create_status(
        name=request.name,
        code=request.code,
        category=StatusCategory(request.category),
        is_final=request.is_final,
        sla_behavior=SlaBehavior(request.sla_behavior),
        is_active=request.is_active,
    )
    return StatusResponse.from_domain(created)


@router.put(
    "/statuses/reorder",
    response_model=List[StatusResponse],
    summary="Reorder agent statuses",
)
async def reorder_statuses(
    request: StatusReorderRequest,
    service: StatusRegistryService = Depends(get_status_service)
):
    statuses = await service.reorder(request.ordered_ids)
    return [StatusResponse.from_domain(s) for s in statuses]


@router.put(
    "/statuses/{status_id}",
    response_model=StatusUpdateResponse,
    summary="Update a status",
    description="""
    Update a status. System statuses only accept `is_active`.

    `affects_running_slas` is true when the SLA behaviour of a status already
    bound into a workflow changed.
    """
)
async def update_status(
    status_id: str,
    request: StatusUpdateRequest,
    service: StatusRegistryService = Depends(get_status_service)
):
    result = await service.update_status(status_id, request.changes())
    return StatusUpdateResponse(
        status=StatusResponse.from_domain(result.status),
        affects_running_slas=result.affects_running_slas,
    )


@router.patch(
    "/statuses/{status_id}/active",
    response_model=StatusResponse,
    summary="Activate or deactivate a status",
)
async def toggle_status_active(
    status_id: str,
    request: StatusActiveRequest,
    service: StatusRegistryService = Depends(get_status_service)
):
    updated = await service.set_active(status_id, request.is_active)
    return StatusResponse.from_domain(updated)


@router.delete(
    "/statuses/{status_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an agent status",
)
async def delete_status(
    status_id: str,
    service: StatusRegistryService = Depends(get_status_service)
):
    await service.delete_status(status_id)


# ========== Graphs ==========

@router.get(
    "/graphs",
    response_model=List[GraphResponse],
    summary="List workflows",
)
async def list_graphs(
    kind: Optional[GraphKindStr] = Query(None, description="template or instance"),
    service: WorkflowGraphService = Depends(get_graph_service)
):
    graphs = await service.list_graphs(GraphKind(kind) if kind else None)
    return [GraphResponse.from_domain(g) for g in graphs]


@router.post(
    "/graphs",
    response_model=GraphResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow template or instance",
)
async def create_graph(
    request: GraphCreateRequest,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    graph = await service.create_graph(
        name=request.name,
        kind=GraphKind(request.kind),
        category=request.category,
        description=request.description,
        is_active=request.is_active,
    )
    return GraphResponse.from_domain(graph)


@router.get(
    "/graphs/{graph_id}",
    response_model=GraphResponse,
    summary="Get a workflow with nodes and transitions",
)
async def get_graph(
    graph_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    return GraphResponse.from_domain(await service.get_graph(graph_id))


@router.patch(
    "/graphs/{graph_id}",
    response_model=GraphResponse,
    summary="Rename, describe or (de)activate a workflow",
)
async def update_graph(
    graph_id: str,
    request: GraphUpdateRequest,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    graph = await service.update_graph(
        graph_id,
        name=request.name,
        is_active=request.is_active,
        category=request.category,
        description=request.description,
    )
    return GraphResponse.from_domain(graph)


@router.delete(
    "/graphs/{graph_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a workflow",
)
async def delete_graph(
    graph_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    await service.delete_graph(graph_id)


@router.post(
    "/graphs/{graph_id}/nodes",
    response_model=NodeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a status to a workflow",
    description="The first status added to a workflow without one becomes its entry status."
)
async def add_node(
    graph_id: str,
    request: NodeCreateRequest,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    node = await service.add_node(graph_id, request.status_id, x=request.x, y=request.y)
    return NodeResponse.from_domain(node)


@router.delete(
    "/graphs/{graph_id}/nodes/{node_id}",
    response_model=NodeRemovedResponse,
    summary="Remove a status and its transitions from a workflow",
)
async def remove_node(
    graph_id: str,
    node_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    removed = await service.remove_node(graph_id, node_id)
    return NodeRemovedResponse(
        node_id=node_id,
        removed_transition_ids=[t.id for t in removed],
    )


@router.put(
    "/graphs/{graph_id}/entry/{node_id}",
    response_model=NodeResponse,
    summary="Make a node the entry status",
)
async def set_entry(
    graph_id: str,
    node_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    return NodeResponse.from_domain(await service.set_entry(graph_id, node_id))


@router.post(
    "/graphs/{graph_id}/transitions",
    response_model=TransitionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a transition",
    description="""
    Add a directed transition between two statuses of the workflow.

    Rejected with 409 when it would start and end on the same status, leave a
    final status, enter the entry status, or duplicate an existing pair.
    """,
    responses={201: {"content": {"application/json": {"example": TRANSITION_CREATE_EXAMPLE}}}}
)
async def add_transition(
    graph_id: str,
    request: TransitionCreateRequest,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    transition = await service.add_transition(
        graph_id,
        request.from_node_id,
        request.to_node_id,
        roles=request.roles,
        is_automatic=request.is_automatic,
        condition=request.condition,
        label=request.label,
        is_locked=request.is_locked,
    )
    return TransitionResponse.from_domain(transition)


@router.delete(
    "/graphs/{graph_id}/transitions/{transition_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a transition",
)
async def remove_transition(
    graph_id: str,
    transition_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    await service.remove_transition(graph_id, transition_id)


# ========== Templates ==========

@router.post(
    "/templates/{template_id}/clone",
    response_model=GraphResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Instantiate a template",
    description="Copy a template's statuses and transitions into a new workflow instance."
)
async def clone_template(
    template_id: str,
    request: CloneRequest,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    clone = await service.clone_template(template_id, name=request.name)
    return GraphResponse.from_domain(clone)


@router.post(
    "/templates/{template_id}/versions",
    response_model=GraphResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create the next version of a template",
)
async def new_template_version(
    template_id: str,
    service: WorkflowGraphService = Depends(get_graph_service)
):
    return GraphResponse.from_domain(await service.new_template_version(template_id))


workflow_router = router
