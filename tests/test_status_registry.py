import pytest

from ticketflow.config import GraphKind, SlaBehavior
from ticketflow.core import (
    DuplicateCodeError,
    InvalidSlaCombinationError,
    LockedException,
    ReferentialException,
    ResourceNotFoundException,
)

from tests.factories import by_code


@pytest.mark.asyncio
async def test_create_status_generates_code_and_appends(registry_service, status_repo):
    status = await registry_service.create_status(name="Pending Vendor", sla_behavior=SlaBehavior.PAUSE)

    assert status.code == "pending_vendor"
    assert status.sort_order == 8
    assert status.id in status_repo.rows


@pytest.mark.asyncio
async def test_create_status_rejects_duplicate_code(registry_service, status_repo):
    before = len(status_repo.rows)

    with pytest.raises(DuplicateCodeError) as exc_info:
        await registry_service.create_status(name="Open again", code="open")

    assert exc_info.value.details["field"] == "code"
    assert len(status_repo.rows) == before


@pytest.mark.asyncio
async def test_create_final_running_status_is_rejected(registry_service, status_repo):
    before = len(status_repo.rows)

    with pytest.raises(InvalidSlaCombinationError):
        await registry_service.create_status(name="Done", is_final=True, sla_behavior=SlaBehavior.RUN)

    assert len(status_repo.rows) == before


@pytest.mark.asyncio
async def test_update_reports_behavior_change_on_bound_status(registry_service, graph_service, statuses):
    registry = by_code(statuses)
    graph = await graph_service.create_graph("Ops", kind=GraphKind.TEMPLATE)
    await graph_service.add_node(graph.id, registry["open"].id)

    result = await registry_service.update_status(registry["open"].id, {"sla_behavior": SlaBehavior.PAUSE})

    assert result.affects_running_slas is True
    assert result.status.sla_behavior == SlaBehavior.PAUSE


@pytest.mark.asyncio
async def test_update_unbound_status_does_not_flag_running_slas(registry_service, statuses):
    registry = by_code(statuses)

    result = await registry_service.update_status(registry["open"].id, {"sla_behavior": SlaBehavior.PAUSE})

    assert result.affects_running_slas is False


@pytest.mark.asyncio
async def test_update_rejects_code_taken_by_another_status(registry_service, statuses):
    registry = by_code(statuses)

    with pytest.raises(DuplicateCodeError):
        await registry_service.update_status(registry["open"].id, {"code": "in_progress"})


@pytest.mark.asyncio
async def test_system_status_can_only_be_toggled(registry_service, statuses):
    registry = by_code(statuses)

    status = await registry_service.set_active(registry["new"].id, False)
    assert status.is_active is False

    with pytest.raises(LockedException):
        await registry_service.update_status(registry["new"].id, {"sla_behavior": SlaBehavior.PAUSE})


@pytest.mark.asyncio
async def test_delete_system_status_is_locked(registry_service, statuses):
    with pytest.raises(LockedException):
        await registry_service.delete_status(by_code(statuses)["canceled"].id)


@pytest.mark.asyncio
async def test_delete_bound_status_is_referential_error(registry_service, graph_service, statuses, status_repo):
    registry = by_code(statuses)
    graph = await graph_service.create_graph("Ops")
    await graph_service.add_node(graph.id, registry["in_progress"].id)

    with pytest.raises(ReferentialException):
        await registry_service.delete_status(registry["in_progress"].id)
    assert registry["in_progress"].id in status_repo.rows


@pytest.mark.asyncio
async def test_delete_unbound_agent_status(registry_service, statuses, status_repo):
    status_id = by_code(statuses)["pending_customer"].id

    await registry_service.delete_status(status_id)

    assert status_id not in status_repo.rows
    with pytest.raises(ResourceNotFoundException):
        await registry_service.get_status(status_id)


@pytest.mark.asyncio
async def test_reorder_persists_new_positions(registry_service, statuses):
    registry = by_code(statuses)

    ordered = await registry_service.reorder([registry["resolved"].id, registry["open"].id])

    codes = [s.code for s in ordered]
    assert codes[0] == "new"
    assert codes[1:3] == ["resolved", "open"]
    listed = await registry_service.list_statuses()
    assert [s.code for s in listed] == codes


@pytest.mark.asyncio
async def test_list_active_only(registry_service, statuses):
    await registry_service.set_active(by_code(statuses)["pending_customer"].id, False)

    active = await registry_service.list_statuses(active_only=True)

    assert "pending_customer" not in {s.code for s in active}
    assert len(active) == len(statuses) - 1
