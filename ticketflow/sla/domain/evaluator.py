"""
SLA Evaluator
=============

Single entry point combining the clock engine, the escalation splitter and
the escalation rule matcher. Both the per-ticket endpoint and the breach
aggregator call it, so every report shows the same figures.
"""

from datetime import datetime
from typing import Mapping, Optional

from ticketflow.sla.domain.clock import SlaClockEngine, WorkingTimePredicate
from ticketflow.sla.domain.entities import ActorProfile, SlaEvaluation, TicketSlaRecord, as_utc
from ticketflow.sla.domain.escalation import EscalationSplitter
from ticketflow.sla.domain.triggers import EscalationRuleMatcher
from ticketflow.sla.domain.value_objects import SLAConfig, SlaPolicyResolver
from ticketflow.workflow.domain import Status


class SlaEvaluator:
    """Pure (record, statuses, actors, now) -> SlaEvaluation."""

    def __init__(
        self,
        config: Optional[SLAConfig] = None,
        is_working_time: Optional[WorkingTimePredicate] = None
    ):
        self.config = config or SLAConfig()
        self.resolver = SlaPolicyResolver(self.config)
        self.clock = SlaClockEngine(self.config, self.resolver, is_working_time)
        self.splitter = EscalationSplitter(self.config)
        self.rules = EscalationRuleMatcher(self.config)

    def evaluate(
        self,
        record: TicketSlaRecord,
        statuses: Mapping[str, Status],
        now: datetime,
        actors: Optional[Mapping[str, ActorProfile]] = None
    ) -> SlaEvaluation:
        """
        Evaluate one ticket as of `now`.

        Args:
            record: Ticket SLA record
            statuses: Registry statuses keyed by code
            now: Reference instant
            actors: Directory entries keyed by actor id
        """
        actors = actors or {}
        now = as_utc(now)
        snapshot = self.clock.snapshot(record, statuses, now)
        split = self.splitter.split(
            record,
            terminal_at=snapshot.terminal_at,
            paused_minutes=snapshot.paused_minutes,
            net_resolution_minutes=snapshot.net_resolution_minutes,
            actors=actors,
            resolution_target=None if snapshot.is_exempt else snapshot.targets.resolution_minutes,
        )

        handler = actors.get(record.assigned_handler_id) if record.assigned_handler_id else None

        return SlaEvaluation(
            ticket_id=record.id,
            external_id=record.external_id,
            priority=record.priority,
            current_status_code=record.current_status_code,
            evaluated_at=now,
            is_exempt=snapshot.is_exempt,
            has_responded=snapshot.has_responded,
            response_at=snapshot.response_at,
            terminal_at=snapshot.terminal_at,
            is_terminal=snapshot.is_terminal,
            response=snapshot.response,
            resolution=snapshot.resolution,
            raw_resolution_minutes=snapshot.raw_resolution_minutes,
            paused_minutes=snapshot.paused_minutes,
            net_resolution_minutes=snapshot.net_resolution_minutes,
            escalation=split,
            assigned_handler=handler.display_name if handler else None,
            fired_rules=self.rules.fired(
                snapshot.targets, snapshot.response, snapshot.resolution, snapshot.is_exempt
            ),
        )
