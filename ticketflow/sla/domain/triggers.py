"""
Escalation Rule Triggers
========================

Decides which configured escalation rules a ticket's running SLA clocks
have reached. Dispatching the rule actions is left to the caller.
"""

from typing import List, Optional

from ticketflow.config import SLAType, TriggerType
from ticketflow.sla.domain.entities import ClockReading, FiredRule
from ticketflow.sla.domain.value_objects import EscalationRule, SLAConfig, SlaTargets


class EscalationRuleMatcher:
    """
    Evaluates SLAConfig.escalation_rules against one ticket's clocks.

    Stopped clocks (responded, resolved or exempt) never fire a rule.

    Example:
        matcher = EscalationRuleMatcher(config)
        matcher.fired(targets, response_reading, resolution_reading)
    """

    def __init__(self, config: Optional[SLAConfig] = None):
        self._config = config or SLAConfig()

    def fired(
        self,
        targets: SlaTargets,
        response: ClockReading,
        resolution: ClockReading,
        is_exempt: bool = False
    ) -> List[FiredRule]:
        if is_exempt:
            return []

        fired = []
        for rule in self._config.escalation_rules:
            if not rule.applies_to(targets):
                continue
            reading = response if rule.sla_type == SLAType.RESPONSE else resolution
            if reading.stopped_at is not None:
                continue
            if is_triggered(rule, reading.elapsed_minutes, reading.target_minutes):
                fired.append(FiredRule(
                    name=rule.name,
                    sla_type=rule.sla_type,
                    trigger_type=rule.trigger_type,
                    trigger_value=rule.trigger_value,
                    elapsed_minutes=reading.elapsed_minutes,
                    target_minutes=reading.target_minutes,
                    actions=tuple(rule.actions),
                ))
        return fired


def is_triggered(rule: EscalationRule, elapsed_minutes: int, target_minutes: float) -> bool:
    if rule.trigger_type == TriggerType.PERCENTAGE:
        return elapsed_minutes * 100 >= target_minutes * rule.trigger_value
    return elapsed_minutes - target_minutes >= rule.trigger_value
