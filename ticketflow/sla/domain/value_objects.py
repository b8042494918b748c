"""
SLA Value Objects
=================

Immutable value objects for the SLA domain: the YAML-backed SLAConfig and
the stateless SLA policy resolver.

Value objects are defined by their attributes rather than an identity.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field, field_validator

from ticketflow.config import Priority, SLAType, SupportTier, TriggerType

DEFAULT_RESOLUTION_TARGETS: Dict[str, int] = {
    Priority.CRITICAL: 60,
    Priority.URGENT: 60,
    Priority.HIGH: 240,
    Priority.MEDIUM: 480,
    Priority.LOW: 960,
    Priority.OTHER: 960,
}

DEFAULT_TIER_ROLES: Dict[str, SupportTier] = {
    "l1": SupportTier.L1,
    "agent": SupportTier.L1,
    "admin": SupportTier.L1,
    "supervisor": SupportTier.L1,
    "l2": SupportTier.L2,
}

DEFAULT_AUTOMATED_MARKERS = [
    "system", "bot", "notify", "notification", "service desk", "triggered", "sla",
]

PERCENTAGE_TRIGGERS = (50, 80, 100)


def normalize_priority(priority: Optional[str]) -> str:
    return (priority or "").strip().lower()


TICKET_TYPE_ALIASES: Dict[str, List[str]] = {
    "incident": ["incident"],
    "service": ["service request", "request"],
    "change": ["change request", "change"],
}


def ticket_type_aliases(ticket_type: str) -> List[str]:
    """
    Stored ticket_type values a report filter value matches, lowercased.

    Example:
        ticket_type_aliases("Service")  # ["service request", "request"]
        ticket_type_aliases("problem")  # ["problem"]
    """
    key = ticket_type.strip().lower()
    return list(TICKET_TYPE_ALIASES.get(key, [key]))


class PolicyCondition(BaseModel):
    """Single predicate over a ticket attribute."""
    field: str = Field(..., min_length=1, description="Ticket attribute, e.g. 'priority'")
    operator: Literal["equals", "not_equals", "in", "not_in"] = "equals"
    value: Any = None

    def matches(self, attributes: Mapping[str, Any]) -> bool:
        actual = _comparable(attributes.get(self.field))
        if self.operator in ("in", "not_in"):
            values = self.value if isinstance(self.value, (list, tuple, set)) else [self.value]
            found = actual in {_comparable(v) for v in values}
            return found if self.operator == "in" else not found
        expected = _comparable(self.value)
        return actual == expected if self.operator == "equals" else actual != expected


def _comparable(value: Any) -> Optional[str]:
    return None if value is None else str(value).strip().lower()


class SLAPolicy(BaseModel):
    """
    Conditional SLA policy.

    The first active policy whose conditions all hold supplies the targets
    for a ticket.
    """
    name: str
    is_active: bool = True
    conditions: List[PolicyCondition] = Field(default_factory=list)
    resolution_targets: Dict[str, int] = Field(default_factory=dict)
    response_targets: Dict[str, int] = Field(default_factory=dict)

    @field_validator("resolution_targets", "response_targets")
    @classmethod
    def validate_targets(cls, v: Dict[str, int]) -> Dict[str, int]:
        for minutes in v.values():
            if minutes <= 0:
                raise ValueError("SLA targets must be positive minutes")
        return {normalize_priority(k): minutes for k, minutes in v.items()}

    def applies_to(self, attributes: Mapping[str, Any]) -> bool:
        return self.is_active and all(c.matches(attributes) for c in self.conditions)


class EscalationRule(BaseModel):
    """
    Fires once a running SLA clock reaches its trigger.

    A percentage trigger fires at that share of the target; an
    overdue_minutes trigger fires that many minutes past the target. Rules
    with a policy only apply to tickets whose targets came from that policy.
    """
    name: str = Field(..., min_length=1)
    is_active: bool = True
    policy: Optional[str] = Field(None, description="SLA policy name; None applies to every ticket")
    sla_type: SLAType = SLAType.RESOLUTION
    trigger_type: TriggerType = TriggerType.PERCENTAGE
    trigger_value: int = Field(..., gt=0)
    actions: List[str] = Field(default_factory=list, description="e.g. notify_assignee, notify_manager")

    @field_validator("trigger_value")
    @classmethod
    def validate_percentage(cls, v: int, info) -> int:
        if info.data.get("trigger_type") == TriggerType.PERCENTAGE and v not in PERCENTAGE_TRIGGERS:
            raise ValueError(f"Percentage triggers must be one of {PERCENTAGE_TRIGGERS}")
        return v

    def applies_to(self, targets: "SlaTargets") -> bool:
        return self.is_active and (self.policy is None or self.policy == targets.policy_name)


class SLAConfig(BaseModel):
    """
    SLA Configuration loaded from YAML.

    Response target = resolution target / response_divisor unless a policy
    sets it explicitly.
    """
    resolution_targets: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_RESOLUTION_TARGETS),
        description="Resolution targets in minutes by priority"
    )
    default_resolution_minutes: int = Field(
        default=480, gt=0,
        description="Target for priorities missing from the table"
    )
    response_divisor: int = Field(default=4, gt=0)
    policies: List[SLAPolicy] = Field(default_factory=list)
    initial_status_codes: List[str] = Field(
        default_factory=lambda: ["new", "open"],
        description="Statuses in which a ticket has not been responded to"
    )
    tier_roles: Dict[str, SupportTier] = Field(default_factory=lambda: dict(DEFAULT_TIER_ROLES))
    automated_actor_markers: List[str] = Field(
        default_factory=lambda: list(DEFAULT_AUTOMATED_MARKERS)
    )
    warning_threshold_percent: int = Field(default=15, ge=0, le=100)
    escalation_rules: List[EscalationRule] = Field(default_factory=list)

    @field_validator("resolution_targets")
    @classmethod
    def validate_resolution_targets(cls, v: Dict[str, int]) -> Dict[str, int]:
        """Normalise keys and fill priorities the file leaves out."""
        merged = dict(DEFAULT_RESOLUTION_TARGETS)
        for priority, minutes in v.items():
            if minutes <= 0:
                raise ValueError(f"Resolution target for '{priority}' must be positive")
            merged[normalize_priority(priority)] = minutes
        return merged

    @field_validator("tier_roles", mode="before")
    @classmethod
    def lower_role_keys(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return {str(k).strip().lower(): val for k, val in (v or {}).items()}

    @field_validator("initial_status_codes", "automated_actor_markers")
    @classmethod
    def lower_entries(cls, v: List[str]) -> List[str]:
        return [item.strip().lower() for item in v]

    def tier_for_role(self, role: Optional[str]) -> Optional[SupportTier]:
        if not role:
            return None
        return self.tier_roles.get(role.strip().lower())

    def is_automated(self, name: Optional[str]) -> bool:
        """Whether an actor name looks like an integration rather than a person."""
        if not name:
            return False
        lowered = name.lower()
        return any(marker in lowered for marker in self.automated_actor_markers)


@dataclass(frozen=True)
class SlaTargets:
    """Response and resolution targets in minutes."""
    resolution_minutes: float
    response_minutes: float
    policy_name: Optional[str] = None


class SlaPolicyResolver:
    """
    Maps a ticket's priority (and optionally its attributes) to SLA targets.

    Pure and stateless apart from the immutable config it was built with.

    Example:
        resolver = SlaPolicyResolver(SLAConfig())
        resolver.targets_for("Critical")  # SlaTargets(60, 15.0)
        resolver.targets_for("whatever")  # SlaTargets(480, 120.0)
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    @property
    def config(self) -> SLAConfig:
        return self._config

    def targets_for(
        self,
        priority: Optional[str],
        attributes: Optional[Mapping[str, Any]] = None
    ) -> SlaTargets:
        key = normalize_priority(priority)

        if attributes is not None:
            scoped = dict(attributes)
            scoped["priority"] = key
            for policy in self._config.policies:
                if not policy.applies_to(scoped):
                    continue
                resolution = policy.resolution_targets.get(key)
                if resolution is None:
                    continue
                response = policy.response_targets.get(key)
                return SlaTargets(
                    resolution_minutes=resolution,
                    response_minutes=response if response is not None
                    else resolution / self._config.response_divisor,
                    policy_name=policy.name,
                )

        resolution = self._config.resolution_targets.get(
            key, self._config.default_resolution_minutes
        )
        return SlaTargets(
            resolution_minutes=resolution,
            response_minutes=resolution / self._config.response_divisor,
        )
