"""
Workflow Application DTOs
=========================

Pydantic models for the status registry and workflow graph API.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ticketflow.workflow.domain import GraphNode, Status, Transition, WorkflowGraph


# ========== Type Aliases for Literals ==========
StatusCategoryStr = Literal["system", "agent"]
SlaBehaviorStr = Literal["run", "pause", "stop"]
GraphKindStr = Literal["template", "instance"]


# ========== Request DTOs ==========

class StatusCreateRequest(BaseModel):
    """Request model for registering a status."""
    name: str = Field(..., min_length=1, description="Display name")
    code: Optional[str] = Field(None, description="Machine code; derived from name when omitted")
    category: StatusCategoryStr = Field(default="agent", description="Ownership category")
    is_final: bool = Field(default=False, description="Terminal status")
    sla_behavior: SlaBehaviorStr = Field(default="run", description="Clock behaviour while in this status")
    is_active: bool = Field(default=True)


class StatusUpdateRequest(BaseModel):
    """Full-record status update; omitted fields keep their values."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, min_length=1)
    code: Optional[str] = None
    category: Optional[StatusCategoryStr] = None
    is_final: Optional[bool] = None
    sla_behavior: Optional[SlaBehaviorStr] = None
    is_active: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class StatusActiveRequest(BaseModel):
    is_active: bool


class StatusReorderRequest(BaseModel):
    """Agent status ids in their new display order."""
    ordered_ids: List[str] = Field(..., description="Status ids, first to last")


class GraphCreateRequest(BaseModel):
    """Request model for creating a workflow template or instance."""
    name: str = Field(..., min_length=1)
    kind: GraphKindStr = Field(default="instance")
    category: Optional[str] = Field(None, description="Template category, e.g. 'IT Support'")
    description: Optional[str] = None
    is_active: bool = True


class GraphUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    is_active: Optional[bool] = None
    category: Optional[str] = None
    description: Optional[str] = None


class NodeCreateRequest(BaseModel):
    """Bind a registry status into a graph."""
    status_id: str = Field(..., description="Registry status id")
    x: float = Field(default=0.0, description="Canvas x position")
    y: float = Field(default=0.0, description="Canvas y position")


class TransitionCreateRequest(BaseModel):
    """Request model for adding a transition between two nodes."""
    from_node_id: str
    to_node_id: str
    roles: List[str] = Field(default_factory=list, description="Roles allowed to fire it")
    is_automatic: bool = False
    condition: Optional[Dict[str, Any]] = Field(None, description="Opaque condition expression")
    label: Optional[str] = None
    is_locked: bool = False


class CloneRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, description="Name of the new workflow")


# ========== Response DTOs ==========

class StatusResponse(BaseModel):
    id: str
    name: str
    code: str
    category: StatusCategoryStr
    is_final: bool
    sla_behavior: SlaBehaviorStr
    sort_order: int
    is_active: bool

    @classmethod
    def from_domain(cls, status: Status) -> "StatusResponse":
        return cls(
            id=status.id,
            name=status.name,
            code=status.code,
            category=status.category.value,
            is_final=status.is_final,
            sla_behavior=status.sla_behavior.value,
            sort_order=status.sort_order,
            is_active=status.is_active,
        )


class StatusUpdateResponse(BaseModel):
    status: StatusResponse
    affects_running_slas: bool = Field(
        default=False,
        description="SLA behaviour changed on a status already used by a workflow"
    )


class NodeResponse(BaseModel):
    id: str
    graph_id: str
    status_id: str
    x: float
    y: float
    sort_order: int
    is_entry: bool

    @classmethod
    def from_domain(cls, node: GraphNode) -> "NodeResponse":
        return cls(
            id=node.id,
            graph_id=node.graph_id,
            status_id=node.status_id,
            x=node.x,
            y=node.y,
            sort_order=node.sort_order,
            is_entry=node.is_entry,
        )


class TransitionResponse(BaseModel):
    id: str
    graph_id: str
    from_node_id: str
    to_node_id: str
    roles: List[str]
    is_automatic: bool
    condition: Optional[Dict[str, Any]] = None
    label: Optional[str] = None
    is_locked: bool

    @classmethod
    def from_domain(cls, transition: Transition) -> "TransitionResponse":
        return cls(
            id=transition.id,
            graph_id=transition.graph_id,
            from_node_id=transition.from_node_id,
            to_node_id=transition.to_node_id,
            roles=transition.roles,
            is_automatic=transition.is_automatic,
            condition=transition.condition,
            label=transition.label,
            is_locked=transition.is_locked,
        )


class GraphResponse(BaseModel):
    """Full workflow aggregate."""
    id: str
    name: str
    kind: GraphKindStr
    is_active: bool
    version: int
    category: Optional[str] = None
    description: Optional[str] = None
    parent_template_id: Optional[str] = None
    template_version: Optional[int] = None
    entry_node_id: Optional[str] = None
    nodes: List[NodeResponse] = Field(default_factory=list)
    transitions: List[TransitionResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, graph: WorkflowGraph) -> "GraphResponse":
        entry = graph.entry_node
        return cls(
            id=graph.id,
            name=graph.name,
            kind=graph.kind.value,
            is_active=graph.is_active,
            version=graph.version,
            category=graph.category,
            description=graph.description,
            parent_template_id=graph.parent_template_id,
            template_version=graph.template_version,
            entry_node_id=entry.id if entry else None,
            nodes=[NodeResponse.from_domain(n) for n in graph.ordered_nodes()],
            transitions=[TransitionResponse.from_domain(t) for t in graph.transitions],
        )


class NodeRemovedResponse(BaseModel):
    node_id: str
    removed_transition_ids: List[str] = Field(default_factory=list)
