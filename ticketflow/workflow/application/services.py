"""
Workflow Application Services
=============================

Application services orchestrate the status registry and graph aggregates
and coordinate with repositories.

Graph mutations are serialized per graph id: validity rules read the full
node/transition set before writing, so two writers on one graph must not
interleave. Each mutation commits before its lock is released. Clones only
read the source and may run in parallel.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from ticketflow.config import GraphKind, StatusCategory, SlaBehavior
from ticketflow.core import (
    CloneException,
    DuplicateCodeError,
    LockedException,
    ReferentialException,
    ResourceNotFoundException,
    StructuralException,
    ValidationException,
)
from ticketflow.shared.infrastructure.logging import get_logger, log_latency
from ticketflow.workflow.domain import (
    GraphNode,
    Status,
    StatusRules,
    StatusUpdateResult,
    Transition,
    WorkflowGraph,
    new_id,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IStatusRepository(ABC):
    """Interface for status registry data access."""

    @abstractmethod
    async def list(self, active_only: bool = False) -> List[Status]:
        """List statuses ordered by sort_order."""

    @abstractmethod
    async def get(self, status_id: str) -> Optional[Status]:
        """Get status by id."""

    @abstractmethod
    async def get_many(self, status_ids: List[str]) -> Dict[str, Status]:
        """Get statuses keyed by id; unknown ids are omitted."""

    @abstractmethod
    async def get_by_code(self, code: str) -> Optional[Status]:
        """Get status by machine code."""

    @abstractmethod
    async def add(self, status: Status) -> Status:
        """Persist a new status."""

    @abstractmethod
    async def save(self, status: Status) -> Status:
        """Persist the full record of an existing status."""

    @abstractmethod
    async def delete(self, status_id: str) -> None:
        """Hard-delete a status."""


class IWorkflowGraphRepository(ABC):
    """Interface for workflow graph data access."""

    @abstractmethod
    async def get(self, graph_id: str) -> Optional[WorkflowGraph]:
        """Load the full aggregate (nodes and transitions)."""

    @abstractmethod
    async def list(self, kind: Optional[GraphKind] = None) -> List[WorkflowGraph]:
        """List graphs, optionally filtered by kind."""

    @abstractmethod
    async def add(self, graph: WorkflowGraph) -> WorkflowGraph:
        """Persist a graph with all its nodes and transitions in one unit."""

    @abstractmethod
    async def save_header(self, graph: WorkflowGraph) -> None:
        """Persist name/active/category/description of a graph."""

    @abstractmethod
    async def delete(self, graph_id: str) -> None:
        """Delete a graph; nodes and transitions cascade."""

    @abstractmethod
    async def add_node(self, node: GraphNode) -> None:
        """Persist a new node."""

    @abstractmethod
    async def save_nodes(self, nodes: List[GraphNode]) -> None:
        """Persist layout/order/entry flags of existing nodes."""

    @abstractmethod
    async def delete_node(self, node_id: str) -> None:
        """Delete a node; transitions touching it cascade."""

    @abstractmethod
    async def add_transition(self, transition: Transition) -> None:
        """Persist a new transition."""

    @abstractmethod
    async def delete_transition(self, transition_id: str) -> None:
        """Delete a transition."""

    @abstractmethod
    async def is_status_bound(self, status_id: str) -> bool:
        """Whether any graph still binds this status."""

    @abstractmethod
    async def commit(self) -> None:
        """Make the writes so far visible to other sessions."""


# ========== Concurrency ==========

class GraphLockRegistry:
    """One asyncio.Lock per graph id, created on first use."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def hold(self, graph_id: str) -> AsyncIterator[None]:
        async with self._locks[graph_id]:
            yield

    def discard(self, graph_id: str) -> None:
        lock = self._locks.get(graph_id)
        if lock is not None and not lock.locked():
            self._locks.pop(graph_id, None)


# Process-wide registry; every service instance must share it
graph_locks = GraphLockRegistry()


# ========== Application Services ==========

class StatusRegistryService:
    """
    Service for the central status catalog.

    Only agent-category statuses may be freely edited, reordered or deleted;
    system statuses accept an is_active toggle and nothing else.
    """

    def __init__(
        self,
        status_repository: IStatusRepository,
        graph_repository: IWorkflowGraphRepository
    ):
        self._status_repo = status_repository
        self._graph_repo = graph_repository

    async def list_statuses(self, active_only: bool = False) -> List[Status]:
        return await self._status_repo.list(active_only=active_only)

    async def get_status(self, status_id: str) -> Status:
        status = await self._status_repo.get(status_id)
        if status is None:
            raise ResourceNotFoundException("Status", status_id)
        return status

    async def create_status(
        self,
        name: str,
        code: Optional[str] = None,
        category: StatusCategory = StatusCategory.AGENT,
        is_final: bool = False,
        sla_behavior: SlaBehavior = SlaBehavior.RUN,
        is_active: bool = True
    ) -> Status:
        """
        Create a status at the end of the ordering.

        Raises:
            DuplicateCodeError: code already used
            InvalidSlaCombinationError: final status with a running clock
        """
        code = code if code else StatusRules.generate_code(name)

        if await self._status_repo.get_by_code(code) is not None:
            raise DuplicateCodeError(
                "Status code already exists",
                {"field": "code", "value": code}
            )

        existing = await self._status_repo.list()
        status = Status(
            id=new_id(),
            name=name,
            code=code,
            category=category,
            is_final=is_final,
            sla_behavior=sla_behavior,
            sort_order=max((s.sort_order for s in existing), default=0) + 1,
            is_active=is_active,
        )
        await self._status_repo.add(status)

        logger.info(
            "Status created",
            extra={"status_id": status.id, "code": status.code, "category": status.category.value}
        )
        return status

    async def update_status(self, status_id: str, changes: Dict[str, Any]) -> StatusUpdateResult:
        """
        Full-record update of a status.

        Changing the SLA behaviour of a status that graphs already use is
        allowed but reported, since running tickets pick it up immediately.
        """
        current = await self.get_status(status_id)
        updated = StatusRules.apply_update(current, changes)

        if updated.code != current.code:
            clash = await self._status_repo.get_by_code(updated.code)
            if clash is not None and clash.id != status_id:
                raise DuplicateCodeError(
                    "Status code already exists",
                    {"field": "code", "value": updated.code}
                )

        affects_running = (
            updated.sla_behavior != current.sla_behavior
            and await self._graph_repo.is_status_bound(status_id)
        )
        if affects_running:
            logger.warning(
                "SLA behavior changed on a status in use",
                extra={
                    "status_id": status_id,
                    "from_behavior": current.sla_behavior.value,
                    "to_behavior": updated.sla_behavior.value,
                }
            )

        await self._status_repo.save(updated)
        logger.info("Status updated", extra={"status_id": status_id})
        return StatusUpdateResult(status=updated, affects_running_slas=affects_running)

    async def set_active(self, status_id: str, is_active: bool) -> Status:
        """Toggle is_active; the one edit system statuses accept."""
        result = await self.update_status(status_id, {"is_active": is_active})
        return result.status

    async def reorder(self, ordered_ids: List[str]) -> List[Status]:
        statuses = await self._status_repo.list()
        changed = StatusRules.reorder(statuses, ordered_ids)
        for status in changed:
            await self._status_repo.save(status)
        logger.info("Statuses reordered", extra={"changed": len(changed)})
        return sorted(statuses, key=lambda s: s.sort_order)

    async def delete_status(self, status_id: str) -> None:
        """
        Delete an agent status no graph references.

        Raises:
            LockedException: system-category status
            ReferentialException: still bound by a workflow graph
        """
        status = await self.get_status(status_id)
        if status.is_system:
            raise LockedException(
                "System statuses cannot be deleted",
                {"status_id": status_id}
            )
        if await self._graph_repo.is_status_bound(status_id):
            raise ReferentialException(
                f"Status '{status.code}' is still used by a workflow",
                {"status_id": status_id}
            )
        await self._status_repo.delete(status_id)
        logger.info("Status deleted", extra={"status_id": status_id, "code": status.code})


class WorkflowGraphService:
    """
    Service for editing workflow graphs and instantiating templates.

    Every edit loads the aggregate, validates in the domain, writes the delta
    through the repository and commits it, all while holding the graph's lock.
    The next writer on the graph therefore loads committed state.
    """

    def __init__(
        self,
        graph_repository: IWorkflowGraphRepository,
        status_repository: IStatusRepository,
        locks: GraphLockRegistry = graph_locks
    ):
        self._graph_repo = graph_repository
        self._status_repo = status_repository
        self._locks = locks

    async def _load(self, graph_id: str) -> WorkflowGraph:
        graph = await self._graph_repo.get(graph_id)
        if graph is None:
            raise ResourceNotFoundException("WorkflowGraph", graph_id)
        return graph

    async def _statuses_for(self, graph: WorkflowGraph) -> Mapping[str, Status]:
        return await self._status_repo.get_many([n.status_id for n in graph.nodes])

    # ----- graphs -----

    async def create_graph(
        self,
        name: str,
        kind: GraphKind = GraphKind.INSTANCE,
        category: Optional[str] = None,
        description: Optional[str] = None,
        is_active: bool = True
    ) -> WorkflowGraph:
        graph = WorkflowGraph(
            id=new_id(),
            name=name,
            kind=kind,
            is_active=is_active,
            category=category,
            description=description,
        )
        await self._graph_repo.add(graph)
        await self._graph_repo.commit()
        logger.info("Workflow created", extra={"graph_id": graph.id, "kind": graph.kind.value})
        return graph

    async def get_graph(self, graph_id: str) -> WorkflowGraph:
        return await self._load(graph_id)

    async def list_graphs(self, kind: Optional[GraphKind] = None) -> List[WorkflowGraph]:
        return await self._graph_repo.list(kind)

    async def update_graph(
        self,
        graph_id: str,
        name: Optional[str] = None,
        is_active: Optional[bool] = None,
        category: Optional[str] = None,
        description: Optional[str] = None
    ) -> WorkflowGraph:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            if name is not None:
                if not name.strip():
                    raise ValidationException("Workflow name is required", {"field": "name"})
                graph.name = name
            if is_active is not None:
                graph.is_active = is_active
            if category is not None:
                graph.category = category
            if description is not None:
                graph.description = description
            await self._graph_repo.save_header(graph)
            await self._graph_repo.commit()
            return graph

    async def delete_graph(self, graph_id: str) -> None:
        async with self._locks.hold(graph_id):
            await self._load(graph_id)
            await self._graph_repo.delete(graph_id)
            await self._graph_repo.commit()
        self._locks.discard(graph_id)
        logger.info("Workflow deleted", extra={"graph_id": graph_id})

    # ----- nodes -----

    async def add_node(
        self,
        graph_id: str,
        status_id: str,
        x: float = 0.0,
        y: float = 0.0
    ) -> GraphNode:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            status = await self._status_repo.get(status_id)
            if status is None:
                raise ResourceNotFoundException("Status", status_id)
            if not status.is_active:
                raise ValidationException(
                    f"Status '{status.code}' is inactive",
                    {"status_id": status_id}
                )

            node = graph.add_node(status, x=x, y=y)
            await self._graph_repo.add_node(node)
            await self._graph_repo.commit()

        logger.info(
            "Node added",
            extra={"graph_id": graph_id, "node_id": node.id, "status_code": status.code, "is_entry": node.is_entry}
        )
        return node

    async def remove_node(self, graph_id: str, node_id: str) -> List[Transition]:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            node = graph.node(node_id)
            status = await self._status_repo.get(node.status_id)
            if status is None:
                raise ResourceNotFoundException("Status", node.status_id)

            removed = graph.remove_node(node_id, status)
            await self._graph_repo.delete_node(node_id)
            await self._graph_repo.commit()

        logger.info(
            "Node removed",
            extra={"graph_id": graph_id, "node_id": node_id, "cascaded_transitions": len(removed)}
        )
        return removed

    async def set_entry(self, graph_id: str, node_id: str) -> GraphNode:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            node = graph.set_entry(node_id)
            await self._graph_repo.save_nodes(graph.nodes)
            await self._graph_repo.commit()
        logger.info("Entry status moved", extra={"graph_id": graph_id, "node_id": node_id})
        return node

    # ----- transitions -----

    async def add_transition(
        self,
        graph_id: str,
        from_node_id: str,
        to_node_id: str,
        roles: Optional[List[str]] = None,
        is_automatic: bool = False,
        condition: Optional[Dict[str, Any]] = None,
        label: Optional[str] = None,
        is_locked: bool = False
    ) -> Transition:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            statuses = await self._statuses_for(graph)
            try:
                transition = graph.add_transition(
                    from_node_id,
                    to_node_id,
                    statuses,
                    roles=roles,
                    is_automatic=is_automatic,
                    condition=condition,
                    label=label,
                    is_locked=is_locked,
                )
            except StructuralException as e:
                logger.info(
                    "Transition rejected",
                    extra={
                        "graph_id": graph_id,
                        "from_node_id": from_node_id,
                        "to_node_id": to_node_id,
                        "reason": e.code,
                    }
                )
                raise
            await self._graph_repo.add_transition(transition)
            await self._graph_repo.commit()

        logger.info(
            "Transition added",
            extra={"graph_id": graph_id, "transition_id": transition.id}
        )
        return transition

    async def remove_transition(self, graph_id: str, transition_id: str) -> None:
        async with self._locks.hold(graph_id):
            graph = await self._load(graph_id)
            graph.remove_transition(transition_id)
            await self._graph_repo.delete_transition(transition_id)
            await self._graph_repo.commit()
        logger.info("Transition removed", extra={"graph_id": graph_id, "transition_id": transition_id})

    # ----- templates -----

    async def _load_template(self, template_id: str) -> WorkflowGraph:
        template = await self._load(template_id)
        if not template.is_template:
            raise ValidationException(
                "Only templates can be cloned",
                {"graph_id": template_id, "kind": template.kind.value}
            )
        return template

    async def _persist_clone(self, clone: WorkflowGraph, source_id: str) -> WorkflowGraph:
        try:
            await self._graph_repo.add(clone)
            await self._graph_repo.commit()
        except Exception as e:
            logger.error(
                "Clone rolled back",
                extra={"source_id": source_id, "graph_id": clone.id, "error": str(e)}
            )
            raise CloneException(
                f"Failed to clone workflow {source_id}",
                {"source_id": source_id}
            ) from e
        return clone

    async def clone_template(self, template_id: str, name: Optional[str] = None) -> WorkflowGraph:
        """
        Instantiate a template as a new per-team graph.

        The clone is built completely in memory and written in a single
        repository call; any failure leaves nothing behind.
        """
        with log_latency(logger, "workflow_clone", template_id=template_id):
            template = await self._load_template(template_id)
            clone = template.clone(name=name, kind=GraphKind.INSTANCE)
            await self._persist_clone(clone, template_id)

        logger.info(
            "Template cloned",
            extra={
                "template_id": template_id,
                "graph_id": clone.id,
                "nodes": len(clone.nodes),
                "transitions": len(clone.transitions),
            }
        )
        return clone

    async def new_template_version(self, template_id: str) -> WorkflowGraph:
        """Copy a template into a new template one version higher."""
        template = await self._load_template(template_id)
        clone = template.clone(kind=GraphKind.TEMPLATE, version=template.version + 1)
        await self._persist_clone(clone, template_id)
        logger.info(
            "Template versioned",
            extra={"template_id": template_id, "graph_id": clone.id, "version": clone.version}
        )
        return clone
