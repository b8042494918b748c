"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA tracking endpoints.

Controllers are thin - they delegate to application services.
"""

import time
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ticketflow.infrastructure.database import get_session
from ticketflow.shared.infrastructure.logging import get_logger
from ticketflow.sla.application import ReportFilter, SLAService
from ticketflow.sla.application.dto import (
    ActorDTO,
    ActorUpsertRequest,
    BreachReportResponse,
    IngestResponse,
    TicketIngestRequest,
    TicketSLAResponse,
)
from ticketflow.sla.infrastructure import (
    RegistryStatusCatalog,
    SQLAlchemyActorDirectory,
    SQLAlchemyTicketSlaRepository,
)
from ticketflow.sla.infrastructure.external import SLAConfigManager, get_sla_config_manager

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Tracking"])


# ========== Example payloads for Swagger ==========

TICKET_CREATE_EXAMPLE = {
    "id": "TICKET-001",
    "priority": "High",
    "status": "in_progress",
    "created_at": "2024-01-15T10:00:00Z",
    "updated_at": "2024-01-15T12:00:00Z",
    "status_changes": [
        {"at": "2024-01-15T10:20:00Z", "from_status": "open", "to_status": "in_progress", "actor_id": "agent-7"}
    ],
    "trail": [
        {"at": "2024-01-15T11:40:00Z", "action_kind": "escalated", "actor_id": "agent-7",
         "actor_role": "l1", "target_name": "Dana L2"}
    ],
    "assigned_handler_id": "agent-7"
}

INGEST_RESPONSE_EXAMPLE = {
    "created": 1,
    "updated": 0,
    "skipped": 0
}

TICKET_SLA_RESPONSE_EXAMPLE = {
    "ticket_id": "123e4567-e89b-12d3-a456-426614174000",
    "external_id": "TICKET-001",
    "priority": "High",
    "status": "in_progress",
    "evaluated_at": "2024-01-15T13:00:00Z",
    "is_exempt": False,
    "has_responded": True,
    "response_at": "2024-01-15T10:20:00Z",
    "terminal_at": "2024-01-15T13:00:00Z",
    "is_response_overdue": False,
    "is_resolution_overdue": False,
    "response_sla": {
        "target_minutes": 60.0,
        "elapsed_minutes": 20,
        "remaining_minutes": 40.0,
        "is_overdue": False,
        "state": "met",
        "stopped_at": "2024-01-15T10:20:00Z"
    },
    "resolution_sla": {
        "target_minutes": 240.0,
        "elapsed_minutes": 180,
        "remaining_minutes": 60.0,
        "is_overdue": False,
        "state": "on_track",
        "stopped_at": None
    },
    "raw_resolution_minutes": 180,
    "paused_minutes": 0,
    "net_resolution_minutes": 180,
    "escalation": {
        "escalated": True,
        "escalation_at": "2024-01-15T11:40:00Z",
        "l1_minutes": 100,
        "l2_minutes": 80,
        "l1_handler": "Sam Agent",
        "l2_handler": "Dana L2"
    },
    "assigned_handler": "Sam Agent"
}


# ========== Dependencies ==========

async def get_sla_service(
    session: AsyncSession = Depends(get_session),
    config_manager: SLAConfigManager = Depends(get_sla_config_manager)
) -> SLAService:
    """Get SLA service instance."""
    return SLAService(
        SQLAlchemyTicketSlaRepository(session),
        SQLAlchemyActorDirectory(session),
        RegistryStatusCatalog(session),
        config_manager,
    )


# ========== Route Handlers ==========

@router.post(
    "/tickets",
    response_model=IngestResponse,
    summary="Ingest tickets for SLA tracking",
    description="""
    Store the SLA-relevant state of a batch of tickets.

    **Idempotent**: Tickets are identified by `id` (external ticket ID). If a ticket
    already exists and the new `updated_at` is newer, its history is replaced;
    otherwise it is skipped.

    Status codes in `status_changes` refer to the status registry.
    """,
    responses={
        200: {
            "description": "Tickets ingested successfully",
            "content": {"application/json": {"example": INGEST_RESPONSE_EXAMPLE}}
        }
    }
)
async def ingest_tickets(
    request: TicketIngestRequest,
    service: SLAService = Depends(get_sla_service)
):
    start_time = time.perf_counter()

    result = await service.ingest([t.to_domain() for t in request.tickets])

    logger.info(
        "Ticket ingest request handled",
        extra={
            "tickets_received": len(request.tickets),
            "processing_time_ms": int((time.perf_counter() - start_time) * 1000)
        }
    )
    return IngestResponse(created=result.created, updated=result.updated, skipped=result.skipped)


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketSLAResponse,
    summary="Get ticket SLA evaluation",
    description="""
    Evaluate a single ticket's response and resolution clocks.

    `ticket_id` may be the internal UUID or the external ticket ID.

    Returns:
        - Response and resolution clocks (target, elapsed, remaining, state)
        - Raw, paused and net resolution minutes
        - L1/L2 time split and handler attribution
    """,
    responses={
        200: {
            "description": "Ticket SLA evaluation",
            "content": {"application/json": {"example": TICKET_SLA_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Ticket not found"}
    }
)
async def get_ticket_sla(
    ticket_id: str,
    as_of: Optional[datetime] = Query(None, description="Evaluate as of this instant (default: now)"),
    service: SLAService = Depends(get_sla_service)
):
    evaluation = await service.evaluate_ticket(ticket_id, as_of=as_of)
    return TicketSLAResponse.from_domain(evaluation)


@router.post(
    "/actors",
    response_model=List[ActorDTO],
    summary="Create or update actor profiles",
    description="Register display names and L1/L2 tiers used for handler attribution."
)
async def upsert_actors(
    request: ActorUpsertRequest,
    service: SLAService = Depends(get_sla_service)
):
    stored = await service.upsert_actors([a.to_domain() for a in request.actors])
    return [ActorDTO.from_domain(p) for p in stored]


@router.get(
    "/report",
    response_model=BreachReportResponse,
    summary="Get SLA breach report",
    description="""
    Aggregate compliance over every ticket matching the filters.

    **Query Parameters:**
    - `priority`: Filter by priority label (case-insensitive)
    - `created_from` / `created_to`: Creation date range
    - `handler`: Filter by assigned handler id
    - `ticket_type`: incident, service (service request or request) or
      change (change request or change); other values match exactly
    - `as_of`: Reference instant (default: now)

    Tickets whose current status stops the clock are excluded from the
    totals and counted in `excluded_count`. An empty selection reports
    100% compliance.
    """
)
async def get_breach_report(
    priority: Optional[str] = Query(None, description="Filter by priority"),
    created_from: Optional[datetime] = Query(None, description="Created at or after"),
    created_to: Optional[datetime] = Query(None, description="Created at or before"),
    handler: Optional[str] = Query(None, description="Filter by assigned handler id"),
    ticket_type: Optional[str] = Query(None, description="Filter by ticket type"),
    as_of: Optional[datetime] = Query(None, description="Reference instant"),
    service: SLAService = Depends(get_sla_service)
):
    report = await service.aggregate(
        ReportFilter(
            priority=priority,
            created_from=created_from,
            created_to=created_to,
            handler_id=handler,
            ticket_type=ticket_type,
            as_of=as_of,
        )
    )
    return BreachReportResponse.from_domain(report)


# Export router
sla_router = router
