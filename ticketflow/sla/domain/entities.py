"""
SLA Domain Entities
===================

Pure Python domain entities for SLA tracking.

A TicketSlaRecord is the engine's input: creation instant, status history,
typed activity trail and the few cached figures the ticket side keeps. The
engine's outputs (ClockReading, EscalationSplit, SlaEvaluation, BreachReport)
are immutable results.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ticketflow.config import ActionKind, SLAState, SLAType, SupportTier, TriggerType
from ticketflow.core import ValidationException


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class StatusChange:
    """One move of a ticket from one status code to another."""

    at: datetime
    from_code: Optional[str]
    to_code: str
    actor_id: Optional[str] = None


@dataclass(frozen=True)
class TrailEvent:
    """
    One typed entry of a ticket's activity trail.

    `target_name` is the free-text recipient recorded on escalation events
    (e.g. the L2 engineer the ticket was handed to).
    """

    at: datetime
    action_kind: ActionKind
    actor_id: Optional[str] = None
    actor_role: Optional[str] = None
    target_name: Optional[str] = None

    @property
    def is_escalation(self) -> bool:
        return self.action_kind == ActionKind.ESCALATED


@dataclass(frozen=True)
class ActorProfile:
    """Directory entry for a person or integration acting on tickets."""

    id: str
    display_name: str
    role_tier: Optional[SupportTier] = None


@dataclass
class TicketSlaRecord:
    """
    SLA view of a ticket.

    Status changes and trail events are kept in chronological order.
    `cumulative_paused_minutes` is the ticket side's cached counter; the
    clock engine prefers recomputing it from `status_changes`.
    """

    id: str
    external_id: str
    priority: str
    created_at: datetime
    current_status_code: str
    status_changes: List[StatusChange] = field(default_factory=list)
    trail: List[TrailEvent] = field(default_factory=list)
    cumulative_paused_minutes: int = 0
    escalation_at: Optional[datetime] = None
    terminal_at: Optional[datetime] = None
    assigned_handler_id: Optional[str] = None
    ticket_type: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.cumulative_paused_minutes < 0:
            raise ValidationException(
                "Paused minutes cannot be negative",
                {"ticket_id": self.id, "field": "cumulative_paused_minutes"}
            )
        self.created_at = as_utc(self.created_at)
        self.escalation_at = as_utc(self.escalation_at)
        self.terminal_at = as_utc(self.terminal_at)
        self.updated_at = as_utc(self.updated_at)
        self.status_changes = sorted(
            (replace(c, at=as_utc(c.at)) for c in self.status_changes),
            key=lambda c: c.at
        )
        self.trail = sorted(
            (replace(e, at=as_utc(e.at)) for e in self.trail),
            key=lambda e: e.at
        )

    def attributes(self) -> Dict[str, Any]:
        """Ticket attributes visible to conditional SLA policies."""
        return {
            "priority": self.priority,
            "ticket_type": self.ticket_type,
            "status": self.current_status_code,
        }


@dataclass(frozen=True)
class ClockReading:
    """State of one SLA clock (response or resolution) at a reference instant."""

    target_minutes: float
    elapsed_minutes: int
    is_overdue: bool
    state: SLAState
    remaining_minutes: float
    stopped_at: Optional[datetime] = None


@dataclass(frozen=True)
class EscalationSplit:
    """
    Attribution of resolution time to the two support tiers.

    L1 minutes are raw wall-clock time up to the escalation; L2 minutes carry
    the whole pause deduction. An escalated ticket is L2-overdue once its
    L2 minutes exceed the resolution target.
    """

    escalated: bool
    escalation_at: Optional[datetime]
    l1_minutes: int
    l2_minutes: int
    l1_handler: Optional[str] = None
    l2_handler: Optional[str] = None
    l2_target_minutes: Optional[float] = None
    is_l2_overdue: bool = False


@dataclass(frozen=True)
class FiredRule:
    """An escalation rule whose trigger a running clock has reached."""

    name: str
    sla_type: SLAType
    trigger_type: TriggerType
    trigger_value: int
    elapsed_minutes: int
    target_minutes: float
    actions: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SlaEvaluation:
    """Clock engine plus escalation splitter output for one ticket."""

    ticket_id: str
    external_id: str
    priority: str
    current_status_code: str
    evaluated_at: datetime
    is_exempt: bool
    has_responded: bool
    response_at: Optional[datetime]
    terminal_at: datetime
    is_terminal: bool
    response: ClockReading
    resolution: ClockReading
    raw_resolution_minutes: int
    paused_minutes: int
    net_resolution_minutes: int
    escalation: EscalationSplit
    assigned_handler: Optional[str] = None
    fired_rules: List[FiredRule] = field(default_factory=list)

    @property
    def is_response_overdue(self) -> bool:
        return self.response.is_overdue

    @property
    def is_resolution_overdue(self) -> bool:
        return self.resolution.is_overdue


@dataclass(frozen=True)
class BreachedTicket:
    ticket_id: str
    external_id: str
    actual_minutes: int
    target_minutes: float

    @property
    def overrun_minutes(self) -> float:
        return self.actual_minutes - self.target_minutes


@dataclass
class ComplianceBucket:
    """Ticket and overdue counts for one bucket (agent, priority or day)."""

    total: int = 0
    overdue: int = 0

    @property
    def within_sla(self) -> int:
        return self.total - self.overdue


@dataclass
class BreachReport:
    """Aggregate SLA compliance over a ticket population."""

    as_of: datetime
    total: int = 0
    overdue_count: int = 0
    sla_met_percent: float = 100.0
    excluded_count: int = 0
    per_agent: Dict[str, ComplianceBucket] = field(default_factory=dict)
    per_priority: Dict[str, ComplianceBucket] = field(default_factory=dict)
    per_day: Dict[date, ComplianceBucket] = field(default_factory=dict)
    breached: List[BreachedTicket] = field(default_factory=list)
    avg_response_minutes: Optional[float] = None
    avg_resolution_minutes: Optional[float] = None
    escalated_count: int = 0
    l2_overdue_count: int = 0
    rules_fired: Dict[str, int] = field(default_factory=dict)
