"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: External service integrations (config watcher, scheduler)
"""

from ticketflow.sla.infrastructure.models import (
    ActorModel,
    StatusChangeModel,
    TicketSlaModel,
    TrailEventModel,
)
from ticketflow.sla.infrastructure.repositories import (
    RegistryStatusCatalog,
    SQLAlchemyActorDirectory,
    SQLAlchemyTicketSlaRepository,
)

__all__ = [
    "ActorModel",
    "StatusChangeModel",
    "TicketSlaModel",
    "TrailEventModel",
    "RegistryStatusCatalog",
    "SQLAlchemyActorDirectory",
    "SQLAlchemyTicketSlaRepository",
]
