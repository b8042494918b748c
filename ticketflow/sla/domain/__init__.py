"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: TicketSlaRecord and its events, evaluation results, BreachReport
- Value Objects: SLAConfig, SLAPolicy, EscalationRule, SlaTargets,
  SlaPolicyResolver
- Domain Services: SlaClockEngine, EscalationSplitter, EscalationRuleMatcher,
  SlaEvaluator, BreachAggregator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from ticketflow.sla.domain.entities import (
    ActorProfile,
    BreachedTicket,
    BreachReport,
    ClockReading,
    ComplianceBucket,
    EscalationSplit,
    FiredRule,
    SlaEvaluation,
    StatusChange,
    TicketSlaRecord,
    TrailEvent,
    as_utc,
)
from ticketflow.sla.domain.value_objects import (
    EscalationRule,
    PolicyCondition,
    SLAConfig,
    SLAPolicy,
    SlaPolicyResolver,
    SlaTargets,
    ticket_type_aliases,
)
from ticketflow.sla.domain.clock import SlaClockEngine
from ticketflow.sla.domain.escalation import EscalationSplitter
from ticketflow.sla.domain.triggers import EscalationRuleMatcher
from ticketflow.sla.domain.evaluator import SlaEvaluator
from ticketflow.sla.domain.aggregation import BreachAggregator, priority_bucket

__all__ = [
    # Entities
    "ActorProfile",
    "BreachedTicket",
    "BreachReport",
    "ClockReading",
    "ComplianceBucket",
    "EscalationSplit",
    "FiredRule",
    "SlaEvaluation",
    "StatusChange",
    "TicketSlaRecord",
    "TrailEvent",
    "as_utc",
    # Value Objects
    "EscalationRule",
    "PolicyCondition",
    "SLAConfig",
    "SLAPolicy",
    "SlaPolicyResolver",
    "SlaTargets",
    "ticket_type_aliases",
    # Domain Services
    "SlaClockEngine",
    "EscalationSplitter",
    "EscalationRuleMatcher",
    "SlaEvaluator",
    "BreachAggregator",
    "priority_bucket",
]
