import copy
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from ticketflow.config import ActionKind, GraphKind, SlaBehavior, StatusCategory
from ticketflow.sla.application import (
    IActorDirectory,
    ISLAConfigProvider,
    IStatusCatalog,
    ITicketSlaSource,
    ReportFilter,
)
from ticketflow.sla.domain import (
    ActorProfile,
    SLAConfig,
    StatusChange,
    TicketSlaRecord,
    TrailEvent,
    ticket_type_aliases,
)
from ticketflow.workflow.application.services import IStatusRepository, IWorkflowGraphRepository
from ticketflow.workflow.domain import GraphNode, Status, Transition, WorkflowGraph

T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def at(minutes: float) -> datetime:
    return T0 + timedelta(minutes=minutes)


def make_status(
    code: str,
    *,
    category: StatusCategory = StatusCategory.AGENT,
    is_final: bool = False,
    sla_behavior: SlaBehavior = SlaBehavior.RUN,
    sort_order: int = 0,
    is_active: bool = True,
) -> Status:
    return Status(
        id=str(uuid4()),
        name=code.replace("_", " ").title(),
        code=code,
        category=category,
        is_final=is_final,
        sla_behavior=sla_behavior,
        sort_order=sort_order,
        is_active=is_active,
    )


def standard_statuses() -> List[Status]:
    return [
        make_status("new", category=StatusCategory.SYSTEM, sort_order=1),
        make_status("open", sort_order=2),
        make_status("in_progress", sort_order=3),
        make_status("pending_customer", sla_behavior=SlaBehavior.PAUSE, sort_order=4),
        make_status("resolved", is_final=True, sla_behavior=SlaBehavior.PAUSE, sort_order=5),
        make_status("closed", category=StatusCategory.SYSTEM, is_final=True,
                    sla_behavior=SlaBehavior.PAUSE, sort_order=6),
        make_status("canceled", category=StatusCategory.SYSTEM, is_final=True,
                    sla_behavior=SlaBehavior.STOP, sort_order=7),
    ]


def by_code(statuses: Iterable[Status]) -> Dict[str, Status]:
    return {s.code: s for s in statuses}


def by_id(statuses: Iterable[Status]) -> Dict[str, Status]:
    return {s.id: s for s in statuses}


def make_record(
    *,
    priority: str = "High",
    status: str = "in_progress",
    changes: Optional[List[StatusChange]] = None,
    trail: Optional[List[TrailEvent]] = None,
    external_id: Optional[str] = None,
    **kwargs,
) -> TicketSlaRecord:
    return TicketSlaRecord(
        id=kwargs.pop("id", str(uuid4())),
        external_id=external_id or f"TICKET-{uuid4().hex[:6]}",
        priority=priority,
        created_at=kwargs.pop("created_at", T0),
        current_status_code=status,
        status_changes=changes or [],
        trail=trail or [],
        **kwargs,
    )


def change(minutes: float, from_code: Optional[str], to_code: str, actor_id: Optional[str] = None) -> StatusChange:
    return StatusChange(at=at(minutes), from_code=from_code, to_code=to_code, actor_id=actor_id)


def event(minutes: float, kind: ActionKind, actor_id: Optional[str] = None, **kwargs) -> TrailEvent:
    return TrailEvent(at=at(minutes), action_kind=kind, actor_id=actor_id, **kwargs)


def make_template(name: str = "IT Support", kind: GraphKind = GraphKind.TEMPLATE) -> WorkflowGraph:
    return WorkflowGraph(id=str(uuid4()), name=name, kind=kind, category="IT Support")


# ========== In-memory doubles ==========

class InMemoryStatusRepository(IStatusRepository):
    def __init__(self, statuses: Iterable[Status] = ()):
        self.rows: Dict[str, Status] = {s.id: copy.deepcopy(s) for s in statuses}

    async def list(self, active_only: bool = False) -> List[Status]:
        rows = sorted(self.rows.values(), key=lambda s: (s.sort_order, s.name))
        return [copy.deepcopy(s) for s in rows if s.is_active or not active_only]

    async def get(self, status_id: str) -> Optional[Status]:
        status = self.rows.get(status_id)
        return copy.deepcopy(status) if status else None

    async def get_many(self, status_ids: List[str]) -> Dict[str, Status]:
        return {i: copy.deepcopy(self.rows[i]) for i in status_ids if i in self.rows}

    async def get_by_code(self, code: str) -> Optional[Status]:
        return next((copy.deepcopy(s) for s in self.rows.values() if s.code == code), None)

    async def add(self, status: Status) -> Status:
        self.rows[status.id] = copy.deepcopy(status)
        return status

    async def save(self, status: Status) -> Status:
        self.rows[status.id] = copy.deepcopy(status)
        return status

    async def delete(self, status_id: str) -> None:
        self.rows.pop(status_id, None)


class InMemoryGraphRepository(IWorkflowGraphRepository):
    def __init__(self):
        self.graphs: Dict[str, WorkflowGraph] = {}
        self.fail_on_add = False
        self.commits = 0

    async def get(self, graph_id: str) -> Optional[WorkflowGraph]:
        graph = self.graphs.get(graph_id)
        return copy.deepcopy(graph) if graph else None

    async def list(self, kind: Optional[GraphKind] = None) -> List[WorkflowGraph]:
        return [copy.deepcopy(g) for g in self.graphs.values() if kind is None or g.kind == kind]

    async def add(self, graph: WorkflowGraph) -> WorkflowGraph:
        if self.fail_on_add:
            raise RuntimeError("storage unavailable")
        self.graphs[graph.id] = copy.deepcopy(graph)
        return graph

    async def save_header(self, graph: WorkflowGraph) -> None:
        stored = self.graphs[graph.id]
        stored.name = graph.name
        stored.is_active = graph.is_active
        stored.category = graph.category
        stored.description = graph.description

    async def delete(self, graph_id: str) -> None:
        self.graphs.pop(graph_id, None)

    async def add_node(self, node: GraphNode) -> None:
        self.graphs[node.graph_id].nodes.append(copy.deepcopy(node))

    async def save_nodes(self, nodes: List[GraphNode]) -> None:
        for node in nodes:
            stored = self.graphs[node.graph_id]
            stored.nodes = [copy.deepcopy(node) if n.id == node.id else n for n in stored.nodes]

    async def delete_node(self, node_id: str) -> None:
        for graph in self.graphs.values():
            graph.nodes = [n for n in graph.nodes if n.id != node_id]
            graph.transitions = [t for t in graph.transitions if node_id not in t.pair]

    async def add_transition(self, transition: Transition) -> None:
        self.graphs[transition.graph_id].transitions.append(copy.deepcopy(transition))

    async def delete_transition(self, transition_id: str) -> None:
        for graph in self.graphs.values():
            graph.transitions = [t for t in graph.transitions if t.id != transition_id]

    async def is_status_bound(self, status_id: str) -> bool:
        return any(n.status_id == status_id for g in self.graphs.values() for n in g.nodes)

    async def commit(self) -> None:
        self.commits += 1


class InMemoryTicketSource(ITicketSlaSource):
    def __init__(self, records: Iterable[TicketSlaRecord] = ()):
        self.records: Dict[str, TicketSlaRecord] = {r.id: r for r in records}

    async def get(self, ticket_id: str) -> Optional[TicketSlaRecord]:
        return self.records.get(ticket_id) or await self.get_by_external_id(ticket_id)

    async def get_by_external_id(self, external_id: str) -> Optional[TicketSlaRecord]:
        return next((r for r in self.records.values() if r.external_id == external_id), None)

    async def list_records(self, report_filter: ReportFilter) -> List[TicketSlaRecord]:
        records = list(self.records.values())
        if report_filter.priority:
            records = [r for r in records if r.priority.lower() == report_filter.priority.lower()]
        if report_filter.handler_id:
            records = [r for r in records if r.assigned_handler_id == report_filter.handler_id]
        if report_filter.ticket_type:
            aliases = ticket_type_aliases(report_filter.ticket_type)
            records = [r for r in records if (r.ticket_type or "").strip().lower() in aliases]
        return records

    async def add(self, record: TicketSlaRecord) -> TicketSlaRecord:
        self.records[record.id] = record
        return record

    async def replace(self, record: TicketSlaRecord) -> TicketSlaRecord:
        self.records[record.id] = record
        return record


class InMemoryActorDirectory(IActorDirectory):
    def __init__(self, profiles: Iterable[ActorProfile] = ()):
        self.profiles: Dict[str, ActorProfile] = {p.id: p for p in profiles}

    async def get_many(self, actor_ids: Iterable[str]) -> Dict[str, ActorProfile]:
        return {i: self.profiles[i] for i in actor_ids if i in self.profiles}

    async def upsert(self, profile: ActorProfile) -> ActorProfile:
        self.profiles[profile.id] = profile
        return profile


class StaticStatusCatalog(IStatusCatalog):
    def __init__(self, statuses: Iterable[Status]):
        self._statuses = by_code(statuses)

    async def by_code(self) -> Dict[str, Status]:
        return dict(self._statuses)


class StaticConfigProvider(ISLAConfigProvider):
    def __init__(self, config: Optional[SLAConfig] = None):
        self.config = config or SLAConfig()

    def get_config(self) -> SLAConfig:
        return self.config
