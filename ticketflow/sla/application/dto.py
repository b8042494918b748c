"""
SLA Application DTOs
====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses, and convert to and from domain objects.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from ticketflow.config import ActionKind, SupportTier
from ticketflow.sla.domain import (
    ActorProfile,
    BreachReport,
    ClockReading,
    ComplianceBucket,
    EscalationSplit,
    FiredRule,
    SlaEvaluation,
    StatusChange,
    TicketSlaRecord,
    TrailEvent,
)

# ========== Type Aliases for Literals ==========
ActionKindStr = Literal[
    "created", "status_changed", "agent_replied", "escalated",
    "assigned", "commented", "notification", "reminder",
]
SupportTierStr = Literal["l1", "l2"]
SLAStateStr = Literal["on_track", "at_risk", "breached", "met", "exempt"]
SLATypeStr = Literal["response", "resolution"]
TriggerTypeStr = Literal["percentage", "overdue_minutes"]


# ========== Request DTOs ==========

class StatusChangeDTO(BaseModel):
    at: datetime = Field(..., description="When the status changed")
    from_status: Optional[str] = Field(None, description="Previous status code")
    to_status: str = Field(..., min_length=1, description="New status code")
    actor_id: Optional[str] = None


class TrailEventDTO(BaseModel):
    at: datetime
    action_kind: ActionKindStr
    actor_id: Optional[str] = None
    actor_role: Optional[str] = Field(None, description="Role tag of the actor, e.g. 'l1', 'l2'")
    target_name: Optional[str] = Field(None, description="Recipient recorded on escalation events")


class TicketCreateDTO(BaseModel):
    """DTO for one ticket's SLA-relevant state."""
    id: str = Field(..., min_length=1, description="External ticket ID")
    priority: str = Field(..., description="Priority label, e.g. 'Critical'")
    ticket_type: Optional[str] = Field(None, description="Ticket type for conditional policies")
    status: str = Field(..., min_length=1, description="Current status code")
    created_at: datetime
    updated_at: datetime
    status_changes: List[StatusChangeDTO] = Field(default_factory=list)
    trail: List[TrailEventDTO] = Field(default_factory=list)
    cumulative_paused_minutes: int = Field(default=0, ge=0)
    escalation_at: Optional[datetime] = None
    terminal_at: Optional[datetime] = None
    assigned_handler_id: Optional[str] = None

    @field_validator("updated_at")
    @classmethod
    def validate_updated_at(cls, v: datetime, info) -> datetime:
        """Ensure updated_at is not before created_at."""
        if "created_at" in info.data and v < info.data["created_at"]:
            raise ValueError("updated_at cannot be before created_at")
        return v

    def to_domain(self) -> TicketSlaRecord:
        return TicketSlaRecord(
            id=str(uuid4()),
            external_id=self.id,
            priority=self.priority,
            ticket_type=self.ticket_type,
            created_at=self.created_at,
            updated_at=self.updated_at,
            current_status_code=self.status,
            status_changes=[
                StatusChange(at=c.at, from_code=c.from_status, to_code=c.to_status, actor_id=c.actor_id)
                for c in self.status_changes
            ],
            trail=[
                TrailEvent(
                    at=e.at,
                    action_kind=ActionKind(e.action_kind),
                    actor_id=e.actor_id,
                    actor_role=e.actor_role,
                    target_name=e.target_name,
                )
                for e in self.trail
            ],
            cumulative_paused_minutes=self.cumulative_paused_minutes,
            escalation_at=self.escalation_at,
            terminal_at=self.terminal_at,
            assigned_handler_id=self.assigned_handler_id,
        )


class TicketIngestRequest(BaseModel):
    """Request model for ticket ingestion."""
    tickets: List[TicketCreateDTO] = Field(..., description="List of tickets to ingest")


class ActorDTO(BaseModel):
    id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    role_tier: Optional[SupportTierStr] = None

    def to_domain(self) -> ActorProfile:
        return ActorProfile(
            id=self.id,
            display_name=self.display_name,
            role_tier=SupportTier(self.role_tier) if self.role_tier else None,
        )

    @classmethod
    def from_domain(cls, profile: ActorProfile) -> "ActorDTO":
        return cls(
            id=profile.id,
            display_name=profile.display_name,
            role_tier=profile.role_tier.value if profile.role_tier else None,
        )


class ActorUpsertRequest(BaseModel):
    actors: List[ActorDTO]


# ========== Response DTOs ==========

class IngestResponse(BaseModel):
    """Response model for ticket ingestion."""
    created: int = Field(..., description="Number of new tickets created")
    updated: int = Field(..., description="Number of existing tickets updated")
    skipped: int = Field(default=0, description="Tickets whose updated_at was not newer")


class ClockResponse(BaseModel):
    """State of one SLA clock."""
    target_minutes: float
    elapsed_minutes: int
    remaining_minutes: float
    is_overdue: bool
    state: SLAStateStr
    stopped_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, reading: ClockReading) -> "ClockResponse":
        return cls(
            target_minutes=reading.target_minutes,
            elapsed_minutes=reading.elapsed_minutes,
            remaining_minutes=reading.remaining_minutes,
            is_overdue=reading.is_overdue,
            state=reading.state.value,
            stopped_at=reading.stopped_at,
        )


class EscalationResponse(BaseModel):
    escalated: bool
    escalation_at: Optional[datetime] = None
    l1_minutes: int
    l2_minutes: int
    l1_handler: Optional[str] = None
    l2_handler: Optional[str] = None
    l2_target_minutes: Optional[float] = None
    is_l2_overdue: bool = False

    @classmethod
    def from_domain(cls, split: EscalationSplit) -> "EscalationResponse":
        return cls(
            escalated=split.escalated,
            escalation_at=split.escalation_at,
            l1_minutes=split.l1_minutes,
            l2_minutes=split.l2_minutes,
            l1_handler=split.l1_handler,
            l2_handler=split.l2_handler,
            l2_target_minutes=split.l2_target_minutes,
            is_l2_overdue=split.is_l2_overdue,
        )


class FiredRuleResponse(BaseModel):
    name: str
    sla_type: SLATypeStr
    trigger_type: TriggerTypeStr
    trigger_value: int
    elapsed_minutes: int
    target_minutes: float
    actions: List[str]

    @classmethod
    def from_domain(cls, rule: FiredRule) -> "FiredRuleResponse":
        return cls(
            name=rule.name,
            sla_type=rule.sla_type.value,
            trigger_type=rule.trigger_type.value,
            trigger_value=rule.trigger_value,
            elapsed_minutes=rule.elapsed_minutes,
            target_minutes=rule.target_minutes,
            actions=list(rule.actions),
        )


class TicketSLAResponse(BaseModel):
    """Response model for a ticket's SLA evaluation."""
    ticket_id: str = Field(..., description="Internal ticket UUID")
    external_id: str = Field(..., description="External ticket ID")
    priority: str
    status: str
    evaluated_at: datetime
    is_exempt: bool = Field(..., description="Current status stops the SLA clock")
    has_responded: bool
    response_at: Optional[datetime] = None
    terminal_at: datetime
    is_response_overdue: bool
    is_resolution_overdue: bool
    response_sla: ClockResponse
    resolution_sla: ClockResponse
    raw_resolution_minutes: int
    paused_minutes: int
    net_resolution_minutes: int
    escalation: EscalationResponse
    assigned_handler: Optional[str] = None
    fired_rules: List[FiredRuleResponse] = Field(
        default_factory=list, description="Escalation rules whose trigger a running clock has reached"
    )

    @classmethod
    def from_domain(cls, evaluation: SlaEvaluation) -> "TicketSLAResponse":
        return cls(
            ticket_id=evaluation.ticket_id,
            external_id=evaluation.external_id,
            priority=evaluation.priority,
            status=evaluation.current_status_code,
            evaluated_at=evaluation.evaluated_at,
            is_exempt=evaluation.is_exempt,
            has_responded=evaluation.has_responded,
            response_at=evaluation.response_at,
            terminal_at=evaluation.terminal_at,
            is_response_overdue=evaluation.is_response_overdue,
            is_resolution_overdue=evaluation.is_resolution_overdue,
            response_sla=ClockResponse.from_domain(evaluation.response),
            resolution_sla=ClockResponse.from_domain(evaluation.resolution),
            raw_resolution_minutes=evaluation.raw_resolution_minutes,
            paused_minutes=evaluation.paused_minutes,
            net_resolution_minutes=evaluation.net_resolution_minutes,
            escalation=EscalationResponse.from_domain(evaluation.escalation),
            assigned_handler=evaluation.assigned_handler,
            fired_rules=[FiredRuleResponse.from_domain(r) for r in evaluation.fired_rules],
        )


class BucketResponse(BaseModel):
    total: int
    overdue: int
    within_sla: int

    @classmethod
    def from_domain(cls, bucket: ComplianceBucket) -> "BucketResponse":
        return cls(total=bucket.total, overdue=bucket.overdue, within_sla=bucket.within_sla)


class BreachedTicketResponse(BaseModel):
    ticket_id: str
    external_id: str
    actual_minutes: int
    target_minutes: float


class BreachReportResponse(BaseModel):
    """Response model for the breach report."""
    as_of: datetime
    total: int = Field(..., description="Tickets evaluated (stop-class statuses excluded)")
    overdue_count: int
    sla_met_percent: float
    excluded_count: int = Field(..., description="Tickets excluded because their clock is stopped")
    per_agent: Dict[str, BucketResponse]
    per_priority: Dict[str, BucketResponse]
    per_day: Dict[str, BucketResponse]
    breached: List[BreachedTicketResponse]
    avg_response_minutes: Optional[float] = None
    avg_resolution_minutes: Optional[float] = None
    escalated_count: int = 0
    l2_overdue_count: int = Field(
        0, description="Escalated tickets whose L2 minutes exceed the resolution target"
    )
    rules_fired: Dict[str, int] = Field(default_factory=dict, description="Fired escalation rules by name")

    @classmethod
    def from_domain(cls, report: BreachReport) -> "BreachReportResponse":
        return cls(
            as_of=report.as_of,
            total=report.total,
            overdue_count=report.overdue_count,
            sla_met_percent=round(report.sla_met_percent, 1),
            excluded_count=report.excluded_count,
            per_agent={k: BucketResponse.from_domain(v) for k, v in report.per_agent.items()},
            per_priority={k: BucketResponse.from_domain(v) for k, v in report.per_priority.items()},
            per_day={k.isoformat(): BucketResponse.from_domain(v) for k, v in report.per_day.items()},
            breached=[
                BreachedTicketResponse(
                    ticket_id=b.ticket_id,
                    external_id=b.external_id,
                    actual_minutes=b.actual_minutes,
                    target_minutes=b.target_minutes,
                )
                for b in report.breached
            ],
            avg_response_minutes=report.avg_response_minutes,
            avg_resolution_minutes=report.avg_resolution_minutes,
            escalated_count=report.escalated_count,
            l2_overdue_count=report.l2_overdue_count,
            rules_fired=dict(report.rules_fired),
        )
