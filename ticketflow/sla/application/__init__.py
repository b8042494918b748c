"""
SLA Application Layer
=====================

Application layer for SLA tracking.

Contains:
- Services: Evaluate tickets, aggregate breach reports, ingest ticket state
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and source interfaces,
but not on concrete infrastructure implementations.
"""

from ticketflow.sla.application.services import (
    IActorDirectory,
    IngestResult,
    ISLAConfigProvider,
    IStatusCatalog,
    ITicketSlaSource,
    ReportFilter,
    SLAService,
    utc_now,
)

__all__ = [
    "IActorDirectory",
    "IngestResult",
    "ISLAConfigProvider",
    "IStatusCatalog",
    "ITicketSlaSource",
    "ReportFilter",
    "SLAService",
    "utc_now",
]
