"""
SLA Application Services
========================

Application services orchestrate SLA evaluation and coordinate between the
pure domain engine and the data sources it reads.

Following SOLID principles:
- Single Responsibility: SLAService only reads, evaluates and ingests
- Dependency Inversion: Depend on abstractions (sources), not concrete implementations

Evaluation and aggregation are pure reads; they never write to the ticket
store. Nothing here retries a failed source call.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from ticketflow.config import settings
from ticketflow.core import ResourceNotFoundException
from ticketflow.shared.infrastructure.logging import get_logger, log_latency
from ticketflow.sla.domain import (
    ActorProfile,
    BreachAggregator,
    BreachReport,
    SLAConfig,
    SlaEvaluation,
    SlaEvaluator,
    TicketSlaRecord,
    as_utc,
)
from ticketflow.sla.domain.clock import WorkingTimePredicate
from ticketflow.workflow.domain import Status

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Query Objects ==========

@dataclass(frozen=True)
class ReportFilter:
    """Selection of tickets for a breach report."""
    priority: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    handler_id: Optional[str] = None
    ticket_type: Optional[str] = None
    as_of: Optional[datetime] = None


@dataclass
class IngestResult:
    created: int = 0
    updated: int = 0
    skipped: int = 0


# ========== Source Interfaces (Dependency Inversion) ==========

class ITicketSlaSource(ABC):
    """Reader (and ingest writer) for ticket SLA records and their trails."""

    @abstractmethod
    async def get(self, ticket_id: str) -> Optional[TicketSlaRecord]:
        """Get a record by internal id or external id."""

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Optional[TicketSlaRecord]:
        """Get a record by the ticket system's id."""

    @abstractmethod
    async def list_records(self, report_filter: ReportFilter) -> List[TicketSlaRecord]:
        """List records matching a report filter, with history and trail."""

    @abstractmethod
    async def add(self, record: TicketSlaRecord) -> TicketSlaRecord:
        """Store a new record."""

    @abstractmethod
    async def replace(self, record: TicketSlaRecord) -> TicketSlaRecord:
        """Replace an existing record, history and trail included."""


class IActorDirectory(ABC):
    """Actor/profile lookup by id."""

    @abstractmethod
    async def get_many(self, actor_ids: Iterable[str]) -> Dict[str, ActorProfile]:
        """Get profiles keyed by id; unknown ids are omitted."""

    @abstractmethod
    async def upsert(self, profile: ActorProfile) -> ActorProfile:
        """Create or update a profile."""


class IStatusCatalog(ABC):
    """Registry statuses as the clock engine needs them."""

    @abstractmethod
    async def by_code(self) -> Dict[str, Status]:
        """All registry statuses keyed by code."""


class ISLAConfigProvider(ABC):
    """Interface for SLA configuration access."""

    @abstractmethod
    def get_config(self) -> SLAConfig:
        """Get current SLA configuration."""


# ========== Application Services ==========

def _actor_ids(records: Iterable[TicketSlaRecord]) -> List[str]:
    ids = set()
    for record in records:
        if record.assigned_handler_id:
            ids.add(record.assigned_handler_id)
        ids.update(e.actor_id for e in record.trail if e.actor_id)
        ids.update(c.actor_id for c in record.status_changes if c.actor_id)
    return sorted(ids)


class SLAService:
    """
    Service for SLA evaluation, breach reporting and ticket ingest.

    The SLA configuration is read from the provider on every call, so a
    hot-reloaded YAML file takes effect on the next request.
    """

    def __init__(
        self,
        ticket_source: ITicketSlaSource,
        actor_directory: IActorDirectory,
        status_catalog: IStatusCatalog,
        config_provider: ISLAConfigProvider,
        clock: Clock = utc_now,
        is_working_time: Optional[WorkingTimePredicate] = None,
        max_workers: Optional[int] = None
    ):
        self._tickets = ticket_source
        self._actors = actor_directory
        self._statuses = status_catalog
        self._config_provider = config_provider
        self._clock = clock
        self._is_working_time = is_working_time
        self._max_workers = max_workers or settings.aggregation_max_workers

    def _evaluator(self) -> SlaEvaluator:
        return SlaEvaluator(self._config_provider.get_config(), self._is_working_time)

    async def evaluate_ticket(self, ticket_id: str, as_of: Optional[datetime] = None) -> SlaEvaluation:
        """
        Evaluate one ticket's response and resolution clocks.

        Raises:
            ResourceNotFoundException: unknown ticket
        """
        record = await self._tickets.get(ticket_id)
        if record is None:
            raise ResourceNotFoundException("Ticket", ticket_id)

        now = as_utc(as_of or self._clock())
        statuses = await self._statuses.by_code()
        actors = await self._actors.get_many(_actor_ids([record]))

        evaluation = self._evaluator().evaluate(record, statuses, now, actors)

        logger.info(
            "Ticket evaluated",
            extra={
                "ticket_id": record.id,
                "external_id": record.external_id,
                "response_overdue": evaluation.is_response_overdue,
                "resolution_overdue": evaluation.is_resolution_overdue,
                "escalated": evaluation.escalation.escalated,
            }
        )
        return evaluation

    async def aggregate(self, report_filter: Optional[ReportFilter] = None) -> BreachReport:
        """Build a breach report over every ticket matching the filter."""
        report_filter = report_filter or ReportFilter()
        as_of = as_utc(report_filter.as_of or self._clock())

        records = await self._tickets.list_records(report_filter)
        statuses = await self._statuses.by_code()
        actors = await self._actors.get_many(_actor_ids(records))

        aggregator = BreachAggregator(self._evaluator(), max_workers=self._max_workers)
        with log_latency(logger, "breach_aggregation", tickets=len(records)):
            # Thread pool work; keep the event loop free
            report = await asyncio.to_thread(aggregator.aggregate, records, statuses, as_of, actors)

        logger.info(
            "Breach report aggregated",
            extra={
                "total": report.total,
                "overdue": report.overdue_count,
                "excluded": report.excluded_count,
                "sla_met_percent": round(report.sla_met_percent, 1),
            }
        )
        return report

    async def ingest(self, records: List[TicketSlaRecord]) -> IngestResult:
        """
        Store ticket SLA records from the ticket system.

        Idempotent on external id: an existing record is only replaced when
        the incoming `updated_at` is newer.
        """
        result = IngestResult()

        for record in records:
            existing = await self._tickets.get_by_external_id(record.external_id)
            if existing is None:
                await self._tickets.add(record)
                result.created += 1
                continue

            if (
                existing.updated_at is not None
                and record.updated_at is not None
                and record.updated_at <= existing.updated_at
            ):
                result.skipped += 1
                continue

            record.id = existing.id
            await self._tickets.replace(record)
            result.updated += 1

        logger.info(
            "Ticket ingestion complete",
            extra={
                "tickets_created": result.created,
                "tickets_updated": result.updated,
                "tickets_skipped": result.skipped,
            }
        )
        return result

    async def upsert_actors(self, profiles: List[ActorProfile]) -> List[ActorProfile]:
        stored = [await self._actors.upsert(profile) for profile in profiles]
        logger.info("Actors upserted", extra={"count": len(stored)})
        return stored
