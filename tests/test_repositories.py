import asyncio

import pytest

from ticketflow.config import ActionKind, GraphKind, SupportTier
from ticketflow.core import RepositoryException, TransitionToEntryError
from ticketflow.sla.application import ReportFilter
from ticketflow.sla.domain import ActorProfile
from ticketflow.sla.infrastructure import (
    RegistryStatusCatalog,
    SQLAlchemyActorDirectory,
    SQLAlchemyTicketSlaRepository,
)
from ticketflow.workflow.application import GraphLockRegistry, WorkflowGraphService
from ticketflow.workflow.domain import Transition
from ticketflow.workflow.infrastructure import (
    SQLAlchemyStatusRepository,
    SQLAlchemyWorkflowGraphRepository,
)

from tests.factories import at, by_code, by_id, change, event, make_record, make_template, standard_statuses


async def _store_statuses(session):
    statuses = standard_statuses()
    repo = SQLAlchemyStatusRepository(session)
    for status in statuses:
        await repo.add(status)
    return by_code(statuses)


async def _store_template(session, registry):
    template = make_template()
    nodes = {code: template.add_node(registry[code]) for code in ("new", "open", "in_progress", "resolved")}
    statuses = by_id(registry.values())
    template.add_transition(nodes["new"].id, nodes["open"].id, statuses, roles=["agent"])
    template.add_transition(nodes["open"].id, nodes["in_progress"].id, statuses, condition={"field": "priority"})
    template.add_transition(nodes["in_progress"].id, nodes["resolved"].id, statuses, is_locked=True)
    await SQLAlchemyWorkflowGraphRepository(session).add(template)
    return template, nodes


# ========== Status registry ==========

@pytest.mark.asyncio
async def test_status_round_trip(db_session):
    registry = await _store_statuses(db_session)
    repo = SQLAlchemyStatusRepository(db_session)

    listed = await repo.list()
    fetched = await repo.get_by_code("pending_customer")

    assert [s.code for s in listed] == list(registry)
    assert fetched == registry["pending_customer"]
    assert await repo.get("not-a-uuid") is None


@pytest.mark.asyncio
async def test_status_save_and_delete(db_session):
    registry = await _store_statuses(db_session)
    repo = SQLAlchemyStatusRepository(db_session)
    status = registry["pending_customer"]
    status.is_active = False

    await repo.save(status)
    active = await repo.list(active_only=True)
    assert "pending_customer" not in {s.code for s in active}

    await repo.delete(status.id)
    assert await repo.get(status.id) is None


@pytest.mark.asyncio
async def test_status_code_is_unique_in_storage(db_session):
    registry = await _store_statuses(db_session)
    clash = standard_statuses()[1]
    assert clash.code == registry["open"].code

    with pytest.raises(RepositoryException):
        await SQLAlchemyStatusRepository(db_session).add(clash)


# ========== Workflow graphs ==========

@pytest.mark.asyncio
async def test_graph_aggregate_round_trip(db_session):
    registry = await _store_statuses(db_session)
    template, _ = await _store_template(db_session, registry)

    loaded = await SQLAlchemyWorkflowGraphRepository(db_session).get(template.id)

    assert loaded.kind == GraphKind.TEMPLATE
    assert [n.id for n in loaded.nodes] == [n.id for n in template.ordered_nodes()]
    assert loaded.entry_node.status_id == registry["new"].id
    assert sorted(loaded.status_pairs()) == sorted(template.status_pairs())
    conditions = [t.condition for t in loaded.transitions if t.condition]
    assert conditions == [{"field": "priority"}]


@pytest.mark.asyncio
async def test_clone_persists_in_one_call(db_session):
    registry = await _store_statuses(db_session)
    template, _ = await _store_template(db_session, registry)
    repo = SQLAlchemyWorkflowGraphRepository(db_session)

    clone = template.clone(name="Team Blue")
    await repo.add(clone)

    instances = await repo.list(GraphKind.INSTANCE)
    assert [g.id for g in instances] == [clone.id]
    assert instances[0].parent_template_id == template.id
    assert len(instances[0].transitions) == 3


@pytest.mark.asyncio
async def test_delete_node_cascades_transitions(db_session):
    registry = await _store_statuses(db_session)
    template, nodes = await _store_template(db_session, registry)
    repo = SQLAlchemyWorkflowGraphRepository(db_session)

    await repo.delete_node(nodes["open"].id)
    loaded = await repo.get(template.id)

    assert len(loaded.nodes) == 3
    assert [t.pair for t in loaded.transitions] == [(nodes["in_progress"].id, nodes["resolved"].id)]
    assert await repo.is_status_bound(registry["open"].id) is False
    assert await repo.is_status_bound(registry["in_progress"].id) is True


@pytest.mark.asyncio
async def test_save_nodes_and_header(db_session):
    registry = await _store_statuses(db_session)
    template, nodes = await _store_template(db_session, registry)
    repo = SQLAlchemyWorkflowGraphRepository(db_session)

    moved = nodes["resolved"]
    moved.x, moved.y = 120.5, 40.0
    template.name = "IT Support v1"
    await repo.save_nodes([moved])
    await repo.save_header(template)

    loaded = await repo.get(template.id)
    assert loaded.name == "IT Support v1"
    assert (loaded.node(moved.id).x, loaded.node(moved.id).y) == (120.5, 40.0)


@pytest.mark.asyncio
async def test_delete_graph(db_session):
    registry = await _store_statuses(db_session)
    template, _ = await _store_template(db_session, registry)
    repo = SQLAlchemyWorkflowGraphRepository(db_session)

    await repo.delete(template.id)

    assert await repo.get(template.id) is None
    assert await repo.is_status_bound(registry["new"].id) is False


@pytest.mark.asyncio
async def test_duplicate_pair_rejected_by_storage(db_session):
    registry = await _store_statuses(db_session)
    template, nodes = await _store_template(db_session, registry)

    duplicate = Transition(
        id="00000000-0000-0000-0000-000000000001",
        graph_id=template.id,
        from_node_id=nodes["new"].id,
        to_node_id=nodes["open"].id,
    )
    with pytest.raises(RepositoryException):
        await SQLAlchemyWorkflowGraphRepository(db_session).add_transition(duplicate)


# ========== SLA store ==========

def _ticket(external_id, **kwargs):
    return make_record(
        external_id=external_id,
        changes=[change(5, "new", "in_progress", "a1"), change(20, "in_progress", "pending_customer", "a1")],
        trail=[
            event(0, ActionKind.CREATED, "a1"),
            event(60, ActionKind.ESCALATED, "a1", target_name="Bruno Keller"),
        ],
        **kwargs,
    )


@pytest.mark.asyncio
async def test_ticket_round_trip_by_either_id(db_session):
    repo = SQLAlchemyTicketSlaRepository(db_session)
    record = _ticket("INC-1", assigned_handler_id="a1", cumulative_paused_minutes=15)
    await repo.add(record)

    by_uuid = await repo.get(record.id)
    by_external = await repo.get("INC-1")

    assert by_uuid.external_id == "INC-1"
    assert by_external.id == record.id
    assert by_uuid.created_at == record.created_at
    assert [c.to_code for c in by_uuid.status_changes] == ["in_progress", "pending_customer"]
    assert by_uuid.trail[1].action_kind == ActionKind.ESCALATED
    assert by_uuid.trail[1].target_name == "Bruno Keller"
    assert by_uuid.cumulative_paused_minutes == 15
    assert await repo.get("INC-404") is None


@pytest.mark.asyncio
async def test_list_records_filters(db_session):
    repo = SQLAlchemyTicketSlaRepository(db_session)
    await repo.add(_ticket("INC-1", priority="High", assigned_handler_id="a1"))
    await repo.add(_ticket("INC-2", priority="Critical", created_at=at(120)))
    await repo.add(_ticket("INC-3", priority="critical", created_at=at(300)))

    assert len(await repo.list_records(ReportFilter())) == 3
    critical = await repo.list_records(ReportFilter(priority="CRITICAL"))
    assert [r.external_id for r in critical] == ["INC-2", "INC-3"]
    windowed = await repo.list_records(ReportFilter(created_from=at(60), created_to=at(200)))
    assert [r.external_id for r in windowed] == ["INC-2"]
    handled = await repo.list_records(ReportFilter(handler_id="a1"))
    assert [r.external_id for r in handled] == ["INC-1"]


@pytest.mark.asyncio
async def test_list_records_matches_ticket_type_aliases(db_session):
    repo = SQLAlchemyTicketSlaRepository(db_session)
    await repo.add(_ticket("INC-1", ticket_type="Incident"))
    await repo.add(_ticket("REQ-1", ticket_type="Service Request", created_at=at(10)))
    await repo.add(_ticket("REQ-2", ticket_type=" request ", created_at=at(20)))
    await repo.add(_ticket("CHG-1", ticket_type="change", created_at=at(30)))
    await repo.add(_ticket("UNTYPED", created_at=at(40)))

    async def matching(ticket_type):
        return [r.external_id for r in await repo.list_records(ReportFilter(ticket_type=ticket_type))]

    assert await matching("incident") == ["INC-1"]
    assert await matching("Service") == ["REQ-1", "REQ-2"]
    assert await matching("change") == ["CHG-1"]
    assert await matching("problem") == []


@pytest.mark.asyncio
async def test_replace_swaps_history(db_session):
    repo = SQLAlchemyTicketSlaRepository(db_session)
    record = _ticket("INC-1")
    await repo.add(record)

    updated = make_record(
        id=record.id,
        external_id="INC-1",
        status="resolved",
        changes=[change(5, "new", "resolved")],
        updated_at=at(90),
    )
    await repo.replace(updated)
    loaded = await repo.get(record.id)

    assert loaded.current_status_code == "resolved"
    assert [c.to_code for c in loaded.status_changes] == ["resolved"]
    assert loaded.trail == []
    assert loaded.updated_at == at(90)


@pytest.mark.asyncio
async def test_replace_unknown_ticket(db_session):
    with pytest.raises(RepositoryException):
        await SQLAlchemyTicketSlaRepository(db_session).replace(_ticket("INC-9"))


@pytest.mark.asyncio
async def test_actor_directory_upsert(db_session):
    directory = SQLAlchemyActorDirectory(db_session)
    await directory.upsert(ActorProfile(id="a1", display_name="Alice", role_tier=SupportTier.L1))
    await directory.upsert(ActorProfile(id="a1", display_name="Alice Moreno", role_tier=SupportTier.L2))
    await directory.upsert(ActorProfile(id="bot", display_name="SLA Bot"))

    profiles = await directory.get_many(["a1", "bot", "ghost"])

    assert set(profiles) == {"a1", "bot"}
    assert profiles["a1"].display_name == "Alice Moreno"
    assert profiles["a1"].role_tier == SupportTier.L2
    assert profiles["bot"].role_tier is None
    assert await directory.get_many([]) == {}


@pytest.mark.asyncio
async def test_registry_status_catalog(db_session):
    registry = await _store_statuses(db_session)

    catalog = await RegistryStatusCatalog(db_session).by_code()

    assert set(catalog) == set(registry)
    assert catalog["canceled"].stops_clock


# ========== Graph edits across sessions ==========

def _sql_graph_service(session, locks):
    return WorkflowGraphService(
        SQLAlchemyWorkflowGraphRepository(session),
        SQLAlchemyStatusRepository(session),
        locks=locks,
    )


async def _seed_template(session_factory):
    async with session_factory() as session:
        registry = await _store_statuses(session)
        template, nodes = await _store_template(session, registry)
        await session.commit()
    return registry, template, nodes


@pytest.mark.asyncio
async def test_graph_edit_is_visible_to_next_writer_before_request_ends(session_factory):
    registry, template, nodes = await _seed_template(session_factory)
    locks = GraphLockRegistry()

    async with session_factory() as first, session_factory() as second:
        writer = _sql_graph_service(first, locks)
        pending = await writer.add_node(template.id, registry["pending_customer"].id)
        await writer.add_transition(template.id, nodes["open"].id, pending.id)

        # first's request has not finished; its edit must already be committed
        with pytest.raises(TransitionToEntryError):
            await _sql_graph_service(second, locks).set_entry(template.id, pending.id)

    async with session_factory() as check:
        stored = await SQLAlchemyWorkflowGraphRepository(check).get(template.id)

    assert stored.entry_node.id == nodes["new"].id
    assert not any(t.to_node_id == stored.entry_node.id for t in stored.transitions)
    assert len(stored.transitions) == 4


@pytest.mark.asyncio
async def test_concurrent_writers_on_separate_sessions_both_land(session_factory):
    registry, template, nodes = await _seed_template(session_factory)
    locks = GraphLockRegistry()

    async with session_factory() as first, session_factory() as second:
        await asyncio.gather(
            _sql_graph_service(first, locks).add_transition(
                template.id, nodes["open"].id, nodes["resolved"].id
            ),
            _sql_graph_service(second, locks).add_transition(
                template.id, nodes["new"].id, nodes["in_progress"].id
            ),
        )

    async with session_factory() as check:
        stored = await SQLAlchemyWorkflowGraphRepository(check).get(template.id)

    assert len(stored.transitions) == 5
