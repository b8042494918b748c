"""
Workflow Domain Entities
========================

Pure Python domain entities for the status registry and workflow graphs.

A WorkflowGraph is the aggregate root: every structural rule (no self-loops,
nothing leaves a final status, nothing re-enters the entry status, one
transition per ordered pair, one node per status) is enforced here before any
repository sees the change.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional
from uuid import uuid4

from ticketflow.config import GraphKind, SlaBehavior, StatusCategory
from ticketflow.core import (
    AlreadyPresentError,
    CloneException,
    DuplicateTransitionError,
    InvalidSlaCombinationError,
    LockedException,
    ResourceNotFoundException,
    SelfLoopError,
    TransitionFromFinalError,
    TransitionToEntryError,
    ValidationException,
)

STATUS_CODE_PATTERN = re.compile(r"^[a-z0-9_]+$")


def new_id() -> str:
    return str(uuid4())


@dataclass
class Status:
    """
    A ticket status in the central registry.

    System-category statuses are owned by the platform; agents may only
    toggle their `is_active` flag.
    """

    id: str
    name: str
    code: str
    category: StatusCategory = StatusCategory.AGENT
    is_final: bool = False
    sla_behavior: SlaBehavior = SlaBehavior.RUN
    sort_order: int = 0
    is_active: bool = True

    def __post_init__(self):
        """Validate status on initialization."""
        self.category = StatusCategory(self.category)
        self.sla_behavior = SlaBehavior(self.sla_behavior)

        if not self.name or not self.name.strip():
            raise ValidationException("Status name is required", {"field": "name"})

        if not STATUS_CODE_PATTERN.match(self.code or ""):
            raise ValidationException(
                f"Status code '{self.code}' must match [a-z0-9_]+",
                {"field": "code", "value": self.code}
            )

        if self.is_final and self.sla_behavior == SlaBehavior.RUN:
            raise InvalidSlaCombinationError(
                "Final status cannot have SLA running",
                {"code": self.code}
            )

    @property
    def is_system(self) -> bool:
        return self.category == StatusCategory.SYSTEM

    @property
    def stops_clock(self) -> bool:
        return self.sla_behavior == SlaBehavior.STOP


@dataclass
class GraphNode:
    """Binds one registry status into one graph. Layout is cosmetic."""

    id: str
    graph_id: str
    status_id: str
    x: float = 0.0
    y: float = 0.0
    sort_order: int = 0
    is_entry: bool = False


@dataclass
class Transition:
    """Directed edge between two nodes of the same graph."""

    id: str
    graph_id: str
    from_node_id: str
    to_node_id: str
    roles: List[str] = field(default_factory=list)
    is_automatic: bool = False
    condition: Optional[Dict[str, Any]] = None
    label: Optional[str] = None
    is_locked: bool = False

    @property
    def pair(self) -> tuple[str, str]:
        return self.from_node_id, self.to_node_id


@dataclass
class WorkflowGraph:
    """
    Workflow graph aggregate, either a reusable template or a per-team instance.

    The entry status is whichever node carries `is_entry`; the first node added
    to a graph without an entry becomes it.
    """

    id: str
    name: str
    kind: GraphKind = GraphKind.INSTANCE
    is_active: bool = True
    version: int = 1
    category: Optional[str] = None
    description: Optional[str] = None
    parent_template_id: Optional[str] = None
    template_version: Optional[int] = None
    nodes: List[GraphNode] = field(default_factory=list)
    transitions: List[Transition] = field(default_factory=list)

    def __post_init__(self):
        self.kind = GraphKind(self.kind)
        if not self.name or not self.name.strip():
            raise ValidationException("Workflow name is required", {"field": "name"})
        if self.version < 1:
            raise ValidationException("Version must be >= 1", {"field": "version"})

    # ----- lookups -----

    @property
    def is_template(self) -> bool:
        return self.kind == GraphKind.TEMPLATE

    @property
    def entry_node(self) -> Optional[GraphNode]:
        return next((n for n in self.nodes if n.is_entry), None)

    def ordered_nodes(self) -> List[GraphNode]:
        return sorted(self.nodes, key=lambda n: n.sort_order)

    def node(self, node_id: str) -> GraphNode:
        for candidate in self.nodes:
            if candidate.id == node_id:
                return candidate
        raise ResourceNotFoundException("GraphNode", node_id, {"graph_id": self.id})

    def node_for_status(self, status_id: str) -> Optional[GraphNode]:
        return next((n for n in self.nodes if n.status_id == status_id), None)

    def transition(self, transition_id: str) -> Transition:
        for candidate in self.transitions:
            if candidate.id == transition_id:
                return candidate
        raise ResourceNotFoundException("Transition", transition_id, {"graph_id": self.id})

    def has_transition(self, from_node_id: str, to_node_id: str) -> bool:
        return any(t.pair == (from_node_id, to_node_id) for t in self.transitions)

    def transitions_touching(self, node_id: str) -> List[Transition]:
        return [t for t in self.transitions if node_id in t.pair]

    # ----- mutations -----

    def add_node(
        self,
        status: Status,
        x: float = 0.0,
        y: float = 0.0,
        node_id: Optional[str] = None
    ) -> GraphNode:
        """Bind a status into this graph; each status at most once."""
        if self.node_for_status(status.id) is not None:
            raise AlreadyPresentError(
                "Status already added to workflow",
                {"graph_id": self.id, "status_id": status.id}
            )

        next_order = max((n.sort_order for n in self.nodes), default=0) + 1
        node = GraphNode(
            id=node_id or new_id(),
            graph_id=self.id,
            status_id=status.id,
            x=x,
            y=y,
            sort_order=next_order,
            is_entry=self.entry_node is None,
        )
        self.nodes.append(node)
        return node

    def remove_node(self, node_id: str, status: Status) -> List[Transition]:
        """
        Remove a node and every transition touching it.

        Returns:
            The transitions removed by the cascade
        """
        node = self.node(node_id)
        if status.is_system:
            raise LockedException(
                "Cannot remove a system status from a workflow",
                {"graph_id": self.id, "node_id": node_id, "status_code": status.code}
            )

        removed = self.transitions_touching(node.id)
        self.transitions = [t for t in self.transitions if node.id not in t.pair]
        self.nodes = [n for n in self.nodes if n.id != node.id]
        return removed

    def set_entry(self, node_id: str) -> GraphNode:
        node = self.node(node_id)
        if any(t.to_node_id == node.id for t in self.transitions):
            raise TransitionToEntryError(
                "Node already has incoming transitions and cannot become the entry status",
                {"graph_id": self.id, "node_id": node_id}
            )
        for candidate in self.nodes:
            candidate.is_entry = candidate.id == node.id
        return node

    def add_transition(
        self,
        from_node_id: str,
        to_node_id: str,
        statuses: Mapping[str, Status],
        roles: Optional[List[str]] = None,
        is_automatic: bool = False,
        condition: Optional[Dict[str, Any]] = None,
        label: Optional[str] = None,
        is_locked: bool = False,
        transition_id: Optional[str] = None
    ) -> Transition:
        """
        Validate and add a transition.

        Checks run in a fixed order: self-loop, source final, target entry,
        duplicate pair. The graph is untouched when any check fails.
        """
        from_node = self.node(from_node_id)
        to_node = self.node(to_node_id)

        if from_node.id == to_node.id:
            raise SelfLoopError(
                "A transition cannot start and end on the same status",
                {"graph_id": self.id, "node_id": from_node.id}
            )

        from_status = statuses.get(from_node.status_id)
        if from_status is None:
            raise ResourceNotFoundException("Status", from_node.status_id)
        if from_status.is_final:
            raise TransitionFromFinalError(
                f"Final status '{from_status.code}' cannot have outgoing transitions",
                {"graph_id": self.id, "node_id": from_node.id}
            )

        if to_node.is_entry:
            raise TransitionToEntryError(
                "Cannot create an incoming transition to the entry status",
                {"graph_id": self.id, "node_id": to_node.id}
            )

        if self.has_transition(from_node.id, to_node.id):
            raise DuplicateTransitionError(
                "Transition already exists",
                {"graph_id": self.id, "from_node_id": from_node.id, "to_node_id": to_node.id}
            )

        transition = Transition(
            id=transition_id or new_id(),
            graph_id=self.id,
            from_node_id=from_node.id,
            to_node_id=to_node.id,
            roles=list(roles or []),
            is_automatic=is_automatic,
            condition=condition,
            label=label,
            is_locked=is_locked,
        )
        self.transitions.append(transition)
        return transition

    def remove_transition(self, transition_id: str) -> Transition:
        transition = self.transition(transition_id)
        if transition.is_locked:
            raise LockedException(
                "Transition is locked",
                {"graph_id": self.id, "transition_id": transition_id}
            )
        self.transitions = [t for t in self.transitions if t.id != transition_id]
        return transition

    # ----- cloning -----

    def clone(
        self,
        *,
        name: Optional[str] = None,
        kind: GraphKind = GraphKind.INSTANCE,
        version: int = 1,
        id_factory: Callable[[], str] = new_id
    ) -> "WorkflowGraph":
        """
        Deep-copy nodes and transitions under fresh ids.

        Transition endpoints are remapped through the old->new node id map;
        a transition pointing at a node this graph does not own aborts the
        whole clone.
        """
        graph_id = id_factory()
        node_map: Dict[str, str] = {}
        nodes: List[GraphNode] = []

        for node in self.ordered_nodes():
            node_map[node.id] = id_factory()
            nodes.append(GraphNode(
                id=node_map[node.id],
                graph_id=graph_id,
                status_id=node.status_id,
                x=node.x,
                y=node.y,
                sort_order=node.sort_order,
                is_entry=node.is_entry,
            ))

        transitions: List[Transition] = []
        for transition in self.transitions:
            if transition.from_node_id not in node_map or transition.to_node_id not in node_map:
                raise CloneException(
                    "Transition references a node outside the source graph",
                    {"graph_id": self.id, "transition_id": transition.id}
                )
            transitions.append(Transition(
                id=id_factory(),
                graph_id=graph_id,
                from_node_id=node_map[transition.from_node_id],
                to_node_id=node_map[transition.to_node_id],
                roles=list(transition.roles),
                is_automatic=transition.is_automatic,
                condition=dict(transition.condition) if transition.condition else None,
                label=transition.label,
                is_locked=transition.is_locked,
            ))

        return WorkflowGraph(
            id=graph_id,
            name=name or self.name,
            kind=kind,
            is_active=self.is_active if kind == GraphKind.TEMPLATE else True,
            version=version,
            category=self.category,
            description=self.description,
            parent_template_id=self.id if self.is_template else self.parent_template_id,
            template_version=self.version if self.is_template else self.template_version,
            nodes=nodes,
            transitions=transitions,
        )

    def status_pairs(self) -> List[tuple[str, str]]:
        """(from status id, to status id) for every transition."""
        by_node = {n.id: n.status_id for n in self.nodes}
        return [(by_node[t.from_node_id], by_node[t.to_node_id]) for t in self.transitions]
