"""
Escalation Splitter
===================

Splits a ticket's resolution time between the first-line (L1) and
second-line (L2) support tiers at the latest escalation, and names a human
handler for each tier.

The split is asymmetric: L1 minutes are raw wall-clock time from creation to
escalation, L2 minutes are the remaining time minus every paused minute.
"""

from datetime import datetime
from typing import Mapping, Optional

from ticketflow.config import ActionKind, SupportTier
from ticketflow.sla.domain.entities import ActorProfile, EscalationSplit, TicketSlaRecord, TrailEvent
from ticketflow.sla.domain.value_objects import SLAConfig

_NEVER_ESCALATION = (ActionKind.NOTIFICATION, ActionKind.REMINDER)


class EscalationSplitter:
    """Pure L1/L2 attribution over a ticket's typed activity trail."""

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def latest_escalation(self, record: TicketSlaRecord) -> Optional[TrailEvent]:
        for event in reversed(record.trail):
            if event.action_kind in _NEVER_ESCALATION:
                continue
            if event.is_escalation:
                return event
        return None

    def escalation_instant(self, record: TicketSlaRecord) -> Optional[datetime]:
        event = self.latest_escalation(record)
        if event is not None:
            return event.at
        return record.escalation_at

    # ----- handler attribution -----

    def _name(self, actors: Mapping[str, ActorProfile], actor_id: Optional[str]) -> Optional[str]:
        profile = actors.get(actor_id) if actor_id else None
        return profile.display_name if profile else None

    def _is_human(self, name: Optional[str]) -> bool:
        return bool(name) and not self._config.is_automated(name)

    def _tier(self, actors: Mapping[str, ActorProfile], event: TrailEvent) -> Optional[SupportTier]:
        tier = self._config.tier_for_role(event.actor_role)
        if tier is not None:
            return tier
        profile = actors.get(event.actor_id) if event.actor_id else None
        return profile.role_tier if profile else None

    def _latest_human(
        self,
        record: TicketSlaRecord,
        actors: Mapping[str, ActorProfile],
        tier: SupportTier,
        skip_created: bool = False
    ) -> Optional[str]:
        for event in reversed(record.trail):
            if skip_created and event.action_kind == ActionKind.CREATED:
                continue
            if self._tier(actors, event) != tier:
                continue
            name = self._name(actors, event.actor_id)
            if self._is_human(name):
                return name
        return None

    def _assigned_if(
        self,
        record: TicketSlaRecord,
        actors: Mapping[str, ActorProfile],
        tier: SupportTier
    ) -> Optional[str]:
        profile = actors.get(record.assigned_handler_id) if record.assigned_handler_id else None
        if profile and profile.role_tier == tier and self._is_human(profile.display_name):
            return profile.display_name
        return None

    def l1_handler(
        self,
        record: TicketSlaRecord,
        actors: Mapping[str, ActorProfile],
        escalation: Optional[TrailEvent]
    ) -> Optional[str]:
        name = self._latest_human(record, actors, SupportTier.L1)
        if name:
            return name
        if escalation is not None:
            escalator = self._name(actors, escalation.actor_id)
            if self._is_human(escalator):
                return escalator
        return self._assigned_if(record, actors, SupportTier.L1)

    def l2_handler(
        self,
        record: TicketSlaRecord,
        actors: Mapping[str, ActorProfile],
        escalation: Optional[TrailEvent]
    ) -> Optional[str]:
        name = self._latest_human(record, actors, SupportTier.L2, skip_created=True)
        if name:
            return name
        if escalation is not None and escalation.target_name:
            target = escalation.target_name.strip()
            if self._is_human(target):
                return target
        return self._assigned_if(record, actors, SupportTier.L2)

    # ----- split -----

    def split(
        self,
        record: TicketSlaRecord,
        terminal_at: datetime,
        paused_minutes: int,
        net_resolution_minutes: int,
        actors: Optional[Mapping[str, ActorProfile]] = None,
        resolution_target: Optional[float] = None
    ) -> EscalationSplit:
        """
        Attribute resolution time to L1 and L2.

        Args:
            record: Ticket with its chronologically ordered trail
            terminal_at: End of the resolution clock
            paused_minutes: Paused minutes up to terminal_at
            net_resolution_minutes: Pause-adjusted resolution minutes
            actors: Directory entries keyed by actor id
            resolution_target: Target the L2 minutes are judged against;
                None leaves the L2 verdict unset
        """
        actors = actors or {}
        escalation = self.latest_escalation(record)
        escalation_at = escalation.at if escalation else record.escalation_at

        l1_handler = self.l1_handler(record, actors, escalation)

        if escalation_at is None or escalation_at <= record.created_at:
            return EscalationSplit(
                escalated=False,
                escalation_at=None,
                l1_minutes=net_resolution_minutes,
                l2_minutes=0,
                l1_handler=l1_handler,
                l2_handler=None,
            )

        l1_minutes = _floor_minutes(record.created_at, escalation_at)
        l2_minutes = max(0, _floor_minutes(escalation_at, terminal_at) - paused_minutes)
        is_l2_overdue = resolution_target is not None and l2_minutes > resolution_target

        return EscalationSplit(
            escalated=True,
            escalation_at=escalation_at,
            l1_minutes=l1_minutes,
            l2_minutes=l2_minutes,
            l1_handler=l1_handler,
            l2_handler=self.l2_handler(record, actors, escalation),
            l2_target_minutes=resolution_target,
            is_l2_overdue=is_l2_overdue,
        )


def _floor_minutes(start: datetime, end: datetime) -> int:
    if end <= start:
        return 0
    return int((end - start).total_seconds() // 60)
