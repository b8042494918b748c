"""
SLA Infrastructure Repositories
===============================

Concrete implementations of the SLA source interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
ticket SLA records, actors and registry statuses.
"""

from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ticketflow.config import ActionKind, SupportTier
from ticketflow.core import RepositoryException
from ticketflow.sla.application import (
    IActorDirectory,
    IStatusCatalog,
    ITicketSlaSource,
    ReportFilter,
)
from ticketflow.sla.domain import (
    ActorProfile,
    StatusChange,
    TicketSlaRecord,
    TrailEvent,
    as_utc,
    ticket_type_aliases,
)
from ticketflow.sla.infrastructure.models import (
    ActorModel,
    StatusChangeModel,
    TicketSlaModel,
    TrailEventModel,
)
from ticketflow.workflow.domain import Status
from ticketflow.workflow.infrastructure import SQLAlchemyStatusRepository


def record_to_domain(model: TicketSlaModel) -> TicketSlaRecord:
    return TicketSlaRecord(
        id=str(model.id),
        external_id=model.external_id,
        priority=model.priority,
        ticket_type=model.ticket_type,
        created_at=model.created_at,
        updated_at=model.updated_at,
        current_status_code=model.current_status_code,
        status_changes=[
            StatusChange(at=c.at, from_code=c.from_code, to_code=c.to_code, actor_id=c.actor_id)
            for c in model.status_changes
        ],
        trail=[
            TrailEvent(
                at=e.at,
                action_kind=ActionKind(e.action_kind),
                actor_id=e.actor_id,
                actor_role=e.actor_role,
                target_name=e.target_name,
            )
            for e in model.trail_events
        ],
        cumulative_paused_minutes=model.cumulative_paused_minutes,
        escalation_at=model.escalation_at,
        terminal_at=model.terminal_at,
        assigned_handler_id=model.assigned_handler_id,
    )


def _children(record: TicketSlaRecord):
    changes = [
        StatusChangeModel(at=c.at, from_code=c.from_code, to_code=c.to_code, actor_id=c.actor_id)
        for c in record.status_changes
    ]
    events = [
        TrailEventModel(
            at=e.at,
            action_kind=ActionKind(e.action_kind).value,
            actor_id=e.actor_id,
            actor_role=e.actor_role,
            target_name=e.target_name,
        )
        for e in record.trail
    ]
    return changes, events


class SQLAlchemyTicketSlaRepository(ITicketSlaSource):
    """
    SQLAlchemy implementation of the ticket SLA source.

    Records are loaded together with their status history and trail.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    def _query(self):
        return (
            select(TicketSlaModel)
            .options(
                selectinload(TicketSlaModel.status_changes),
                selectinload(TicketSlaModel.trail_events),
            )
            .execution_options(populate_existing=True)
        )

    async def get(self, ticket_id: str) -> Optional[TicketSlaRecord]:
        """Get ticket by internal UUID, falling back to the external ID."""
        try:
            ticket_uuid = UUID(ticket_id)
        except ValueError:
            ticket_uuid = None

        if ticket_uuid is not None:
            result = await self._session.execute(self._query().where(TicketSlaModel.id == ticket_uuid))
            model = result.scalar_one_or_none()
            if model is not None:
                return record_to_domain(model)

        return await self.get_by_external_id(ticket_id)

    async def get_by_external_id(self, external_id: str) -> Optional[TicketSlaRecord]:
        result = await self._session.execute(
            self._query().where(TicketSlaModel.external_id == external_id)
        )
        model = result.scalar_one_or_none()
        return record_to_domain(model) if model else None

    async def list_records(self, report_filter: ReportFilter) -> List[TicketSlaRecord]:
        stmt = self._query()

        conditions = []
        if report_filter.priority:
            conditions.append(func.lower(TicketSlaModel.priority) == report_filter.priority.strip().lower())
        if report_filter.created_from:
            conditions.append(TicketSlaModel.created_at >= as_utc(report_filter.created_from))
        if report_filter.created_to:
            conditions.append(TicketSlaModel.created_at <= as_utc(report_filter.created_to))
        if report_filter.handler_id:
            conditions.append(TicketSlaModel.assigned_handler_id == report_filter.handler_id)
        if report_filter.ticket_type:
            aliases = ticket_type_aliases(report_filter.ticket_type)
            conditions.append(func.lower(func.trim(TicketSlaModel.ticket_type)).in_(aliases))

        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = stmt.order_by(TicketSlaModel.created_at)
        result = await self._session.execute(stmt)
        return [record_to_domain(m) for m in result.scalars().all()]

    async def add(self, record: TicketSlaRecord) -> TicketSlaRecord:
        changes, events = _children(record)
        model = TicketSlaModel(
            id=UUID(record.id),
            external_id=record.external_id,
            priority=record.priority,
            ticket_type=record.ticket_type,
            current_status_code=record.current_status_code,
            assigned_handler_id=record.assigned_handler_id,
            cumulative_paused_minutes=record.cumulative_paused_minutes,
            escalation_at=record.escalation_at,
            terminal_at=record.terminal_at,
            created_at=record.created_at,
            updated_at=record.updated_at or record.created_at,
            status_changes=changes,
            trail_events=events,
        )
        self._session.add(model)
        await self._session.flush()
        return record

    async def replace(self, record: TicketSlaRecord) -> TicketSlaRecord:
        result = await self._session.execute(
            self._query().where(TicketSlaModel.id == UUID(record.id))
        )
        model = result.scalar_one_or_none()
        if model is None:
            raise RepositoryException(f"Ticket {record.external_id} not found")

        # delete-orphan drops the previous history rows
        model.status_changes, model.trail_events = _children(record)
        model.priority = record.priority
        model.ticket_type = record.ticket_type
        model.current_status_code = record.current_status_code
        model.assigned_handler_id = record.assigned_handler_id
        model.cumulative_paused_minutes = record.cumulative_paused_minutes
        model.escalation_at = record.escalation_at
        model.terminal_at = record.terminal_at
        model.created_at = record.created_at
        model.updated_at = record.updated_at or model.updated_at

        await self._session.flush()
        return record


class SQLAlchemyActorDirectory(IActorDirectory):
    """SQLAlchemy implementation of the actor/profile lookup."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_many(self, actor_ids: Iterable[str]) -> Dict[str, ActorProfile]:
        ids = list(actor_ids)
        if not ids:
            return {}
        result = await self._session.execute(select(ActorModel).where(ActorModel.id.in_(ids)))
        return {
            m.id: ActorProfile(
                id=m.id,
                display_name=m.display_name,
                role_tier=SupportTier(m.role_tier) if m.role_tier else None,
            )
            for m in result.scalars().all()
        }

    async def upsert(self, profile: ActorProfile) -> ActorProfile:
        model = await self._session.get(ActorModel, profile.id)
        tier = profile.role_tier.value if profile.role_tier else None
        if model is None:
            self._session.add(ActorModel(id=profile.id, display_name=profile.display_name, role_tier=tier))
        else:
            model.display_name = profile.display_name
            model.role_tier = tier
        await self._session.flush()
        return profile


class RegistryStatusCatalog(IStatusCatalog):
    """Status catalog backed by the workflow status registry."""

    def __init__(self, session: AsyncSession):
        self._statuses = SQLAlchemyStatusRepository(session)

    async def by_code(self) -> Dict[str, Status]:
        return {s.code: s for s in await self._statuses.list()}
