"""
Workflow Infrastructure Repositories
====================================

SQLAlchemy implementations of the status and workflow graph repositories.

Repositories translate between ORM rows and domain entities; identifiers are
UUID columns in the database and strings in the domain.
"""

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, exists, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ticketflow.config import GraphKind
from ticketflow.core import RepositoryException
from ticketflow.workflow.application import IStatusRepository, IWorkflowGraphRepository
from ticketflow.workflow.domain import GraphNode, Status, Transition, WorkflowGraph
from ticketflow.workflow.infrastructure.models import (
    StatusModel,
    WorkflowGraphModel,
    WorkflowNodeModel,
    WorkflowTransitionModel,
)


def _uuid(value: Optional[str]) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _str(value: Optional[UUID]) -> Optional[str]:
    return str(value) if value is not None else None


# ========== Mappers ==========

def status_to_domain(model: StatusModel) -> Status:
    return Status(
        id=str(model.id),
        name=model.name,
        code=model.code,
        category=model.category,
        is_final=model.is_final,
        sla_behavior=model.sla_behavior,
        sort_order=model.sort_order,
        is_active=model.is_active,
    )


def node_to_domain(model: WorkflowNodeModel) -> GraphNode:
    return GraphNode(
        id=str(model.id),
        graph_id=str(model.graph_id),
        status_id=str(model.status_id),
        x=model.x,
        y=model.y,
        sort_order=model.sort_order,
        is_entry=model.is_entry,
    )


def transition_to_domain(model: WorkflowTransitionModel) -> Transition:
    return Transition(
        id=str(model.id),
        graph_id=str(model.graph_id),
        from_node_id=str(model.from_node_id),
        to_node_id=str(model.to_node_id),
        roles=list(model.roles or []),
        is_automatic=model.is_automatic,
        condition=model.condition,
        label=model.label,
        is_locked=model.is_locked,
    )


def graph_to_domain(model: WorkflowGraphModel) -> WorkflowGraph:
    return WorkflowGraph(
        id=str(model.id),
        name=model.name,
        kind=model.kind,
        is_active=model.is_active,
        version=model.version,
        category=model.category,
        description=model.description,
        parent_template_id=_str(model.parent_template_id),
        template_version=model.template_version,
        nodes=[node_to_domain(n) for n in model.nodes],
        transitions=[transition_to_domain(t) for t in model.transitions],
    )


def _node_model(node: GraphNode) -> WorkflowNodeModel:
    return WorkflowNodeModel(
        id=UUID(node.id),
        graph_id=UUID(node.graph_id),
        status_id=UUID(node.status_id),
        is_entry=node.is_entry,
        sort_order=node.sort_order,
        x=node.x,
        y=node.y,
    )


def _transition_model(transition: Transition) -> WorkflowTransitionModel:
    return WorkflowTransitionModel(
        id=UUID(transition.id),
        graph_id=UUID(transition.graph_id),
        from_node_id=UUID(transition.from_node_id),
        to_node_id=UUID(transition.to_node_id),
        roles=list(transition.roles),
        is_automatic=transition.is_automatic,
        condition=transition.condition,
        label=transition.label,
        is_locked=transition.is_locked,
    )


# ========== Repositories ==========

class SQLAlchemyStatusRepository(IStatusRepository):
    """SQLAlchemy implementation of the status registry repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list(self, active_only: bool = False) -> List[Status]:
        stmt = select(StatusModel).order_by(StatusModel.sort_order, StatusModel.name)
        if active_only:
            stmt = stmt.where(StatusModel.is_active.is_(True))
        result = await self._session.execute(stmt)
        return [status_to_domain(m) for m in result.scalars().all()]

    async def get(self, status_id: str) -> Optional[Status]:
        status_uuid = _uuid(status_id)
        if status_uuid is None:
            return None
        model = await self._session.get(StatusModel, status_uuid)
        return status_to_domain(model) if model else None

    async def get_many(self, status_ids: List[str]) -> Dict[str, Status]:
        uuids = [u for u in (_uuid(s) for s in status_ids) if u is not None]
        if not uuids:
            return {}
        result = await self._session.execute(
            select(StatusModel).where(StatusModel.id.in_(uuids))
        )
        return {str(m.id): status_to_domain(m) for m in result.scalars().all()}

    async def get_by_code(self, code: str) -> Optional[Status]:
        result = await self._session.execute(
            select(StatusModel).where(StatusModel.code == code)
        )
        model = result.scalar_one_or_none()
        return status_to_domain(model) if model else None

    async def add(self, status: Status) -> Status:
        model = StatusModel(
            id=UUID(status.id),
            name=status.name,
            code=status.code,
            category=status.category.value,
            is_final=status.is_final,
            sla_behavior=status.sla_behavior.value,
            sort_order=status.sort_order,
            is_active=status.is_active,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                f"Failed to store status '{status.code}'",
                {"status_id": status.id}
            ) from e
        return status

    async def save(self, status: Status) -> Status:
        model = await self._session.get(StatusModel, UUID(status.id))
        if model is None:
            raise RepositoryException(f"Status {status.id} not found")

        model.name = status.name
        model.code = status.code
        model.category = status.category.value
        model.is_final = status.is_final
        model.sla_behavior = status.sla_behavior.value
        model.sort_order = status.sort_order
        model.is_active = status.is_active

        await self._session.flush()
        return status

    async def delete(self, status_id: str) -> None:
        await self._session.execute(
            delete(StatusModel).where(StatusModel.id == UUID(status_id))
        )
        await self._session.flush()


class SQLAlchemyWorkflowGraphRepository(IWorkflowGraphRepository):
    """
    SQLAlchemy implementation of the workflow graph repository.

    The whole aggregate is loaded eagerly with selectinload; edits write only
    the changed rows.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _aggregate_query(self):
        return (
            select(WorkflowGraphModel)
            .options(
                selectinload(WorkflowGraphModel.nodes),
                selectinload(WorkflowGraphModel.transitions),
            )
            .execution_options(populate_existing=True)
        )

    async def get(self, graph_id: str) -> Optional[WorkflowGraph]:
        graph_uuid = _uuid(graph_id)
        if graph_uuid is None:
            return None
        result = await self._session.execute(
            self._aggregate_query().where(WorkflowGraphModel.id == graph_uuid)
        )
        model = result.scalar_one_or_none()
        return graph_to_domain(model) if model else None

    async def list(self, kind: Optional[GraphKind] = None) -> List[WorkflowGraph]:
        stmt = self._aggregate_query().order_by(WorkflowGraphModel.created_at)
        if kind is not None:
            stmt = stmt.where(WorkflowGraphModel.kind == GraphKind(kind).value)
        result = await self._session.execute(stmt)
        return [graph_to_domain(m) for m in result.scalars().all()]

    async def add(self, graph: WorkflowGraph) -> WorkflowGraph:
        model = WorkflowGraphModel(
            id=UUID(graph.id),
            kind=graph.kind.value,
            name=graph.name,
            is_active=graph.is_active,
            version=graph.version,
            category=graph.category,
            description=graph.description,
            parent_template_id=_uuid(graph.parent_template_id),
            template_version=graph.template_version,
            nodes=[_node_model(n) for n in graph.nodes],
            transitions=[],
        )
        self._session.add(model)
        # Nodes first so transition FKs resolve; the session rolls back on failure
        try:
            await self._session.flush()
            self._session.add_all([_transition_model(t) for t in graph.transitions])
            await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                f"Failed to store workflow {graph.id}",
                {"graph_id": graph.id}
            ) from e
        return graph

    async def save_header(self, graph: WorkflowGraph) -> None:
        model = await self._session.get(WorkflowGraphModel, UUID(graph.id))
        if model is None:
            raise RepositoryException(f"Workflow {graph.id} not found")
        model.name = graph.name
        model.is_active = graph.is_active
        model.category = graph.category
        model.description = graph.description
        await self._session.flush()

    async def delete(self, graph_id: str) -> None:
        graph_uuid = UUID(graph_id)
        await self._session.execute(
            delete(WorkflowTransitionModel).where(WorkflowTransitionModel.graph_id == graph_uuid)
        )
        await self._session.execute(
            delete(WorkflowNodeModel).where(WorkflowNodeModel.graph_id == graph_uuid)
        )
        await self._session.execute(
            delete(WorkflowGraphModel).where(WorkflowGraphModel.id == graph_uuid)
        )
        await self._session.flush()

    async def add_node(self, node: GraphNode) -> None:
        self._session.add(_node_model(node))
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                "Status already bound to this workflow",
                {"graph_id": node.graph_id, "status_id": node.status_id}
            ) from e

    async def save_nodes(self, nodes: List[GraphNode]) -> None:
        for node in nodes:
            model = await self._session.get(WorkflowNodeModel, UUID(node.id))
            if model is None:
                raise RepositoryException(f"Node {node.id} not found")
            model.is_entry = node.is_entry
            model.sort_order = node.sort_order
            model.x = node.x
            model.y = node.y
        await self._session.flush()

    async def delete_node(self, node_id: str) -> None:
        node_uuid = UUID(node_id)
        await self._session.execute(
            delete(WorkflowTransitionModel).where(
                or_(
                    WorkflowTransitionModel.from_node_id == node_uuid,
                    WorkflowTransitionModel.to_node_id == node_uuid,
                )
            )
        )
        await self._session.execute(
            delete(WorkflowNodeModel).where(WorkflowNodeModel.id == node_uuid)
        )
        await self._session.flush()

    async def add_transition(self, transition: Transition) -> None:
        self._session.add(_transition_model(transition))
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise RepositoryException(
                "Transition already exists",
                {"graph_id": transition.graph_id}
            ) from e

    async def delete_transition(self, transition_id: str) -> None:
        await self._session.execute(
            delete(WorkflowTransitionModel).where(WorkflowTransitionModel.id == UUID(transition_id))
        )
        await self._session.flush()

    async def is_status_bound(self, status_id: str) -> bool:
        status_uuid = _uuid(status_id)
        if status_uuid is None:
            return False
        result = await self._session.execute(
            select(exists().where(WorkflowNodeModel.status_id == status_uuid))
        )
        return bool(result.scalar())

    async def commit(self) -> None:
        await self._session.commit()
