import pytest
from pydantic import ValidationError

from ticketflow.config import SLAType, TriggerType
from ticketflow.sla.domain import (
    EscalationRule,
    PolicyCondition,
    SLAConfig,
    SLAPolicy,
    SlaEvaluator,
    ticket_type_aliases,
)

from tests.factories import at, by_code, change, make_record, standard_statuses


@pytest.fixture
def statuses():
    return by_code(standard_statuses())


def _evaluator(*rules, policies=()):
    return SlaEvaluator(SLAConfig(escalation_rules=list(rules), policies=list(policies)))


def _working(priority="High", **kwargs):
    return make_record(priority=priority, changes=[change(5, "new", "in_progress")], **kwargs)


def test_percentage_rule_fires_at_share_of_target(statuses):
    evaluator = _evaluator(EscalationRule(
        name="half-way", trigger_value=50, actions=["notify_assignee"],
    ))
    record = _working()

    assert evaluator.evaluate(record, statuses, at(119)).fired_rules == []

    fired = evaluator.evaluate(record, statuses, at(120)).fired_rules
    assert [r.name for r in fired] == ["half-way"]
    assert fired[0].sla_type == SLAType.RESOLUTION
    assert fired[0].elapsed_minutes == 120
    assert fired[0].target_minutes == 240
    assert fired[0].actions == ("notify_assignee",)


def test_overdue_minutes_rule_fires_past_target(statuses):
    evaluator = _evaluator(EscalationRule(
        name="late-30", trigger_type=TriggerType.OVERDUE_MINUTES, trigger_value=30,
    ))
    record = _working(priority="Critical")

    assert evaluator.evaluate(record, statuses, at(89)).fired_rules == []
    assert [r.name for r in evaluator.evaluate(record, statuses, at(90)).fired_rules] == ["late-30"]


def test_response_rule_stops_once_responded(statuses):
    evaluator = _evaluator(EscalationRule(
        name="no-reply", sla_type=SLAType.RESPONSE, trigger_value=100,
    ))

    unanswered = make_record(priority="Critical", status="new")
    assert [r.name for r in evaluator.evaluate(unanswered, statuses, at(15)).fired_rules] == ["no-reply"]

    answered = _working(priority="Critical")
    assert evaluator.evaluate(answered, statuses, at(100)).fired_rules == []


def test_stopped_clocks_fire_nothing(statuses):
    evaluator = _evaluator(EscalationRule(name="full", trigger_value=100))
    resolved = make_record(
        priority="Critical",
        status="resolved",
        changes=[change(5, "new", "in_progress"), change(90, "in_progress", "resolved")],
    )
    canceled = make_record(priority="Critical", status="canceled")

    assert evaluator.evaluate(resolved, statuses, at(500)).fired_rules == []
    assert evaluator.evaluate(canceled, statuses, at(500)).fired_rules == []


def test_inactive_rule_is_ignored(statuses):
    evaluator = _evaluator(EscalationRule(name="off", trigger_value=50, is_active=False))

    assert evaluator.evaluate(_working(), statuses, at(500)).fired_rules == []


def test_rule_scoped_to_policy(statuses):
    policy = SLAPolicy(
        name="incident-fast-track",
        conditions=[PolicyCondition(field="ticket_type", value="incident")],
        resolution_targets={"critical": 30},
    )
    evaluator = _evaluator(
        EscalationRule(name="fast-track-full", policy="incident-fast-track", trigger_value=100),
        policies=[policy],
    )

    incident = _working(priority="Critical", ticket_type="Incident")
    fired = evaluator.evaluate(incident, statuses, at(30)).fired_rules
    assert [r.name for r in fired] == ["fast-track-full"]
    assert fired[0].target_minutes == 30

    request = _working(priority="Critical", ticket_type="Service Request")
    assert evaluator.evaluate(request, statuses, at(500)).fired_rules == []


def test_rules_fire_in_configured_order(statuses):
    evaluator = _evaluator(
        EscalationRule(name="full", trigger_value=100),
        EscalationRule(name="half", trigger_value=50),
        EscalationRule(name="eighty", trigger_value=80),
    )

    fired = evaluator.evaluate(_working(), statuses, at(200)).fired_rules

    assert [r.name for r in fired] == ["half", "eighty"]


@pytest.mark.parametrize("trigger_type,value", [
    ("percentage", 70),
    ("percentage", 0),
    ("overdue_minutes", 0),
])
def test_invalid_trigger_is_rejected(trigger_type, value):
    with pytest.raises(ValidationError):
        EscalationRule(name="bad", trigger_type=trigger_type, trigger_value=value)


def test_overdue_minutes_accepts_any_positive_value():
    rule = EscalationRule(name="late", trigger_type="overdue_minutes", trigger_value=45)

    assert rule.trigger_type == TriggerType.OVERDUE_MINUTES
    assert rule.trigger_value == 45


@pytest.mark.parametrize("value,aliases", [
    ("incident", ["incident"]),
    ("Service", ["service request", "request"]),
    (" change ", ["change request", "change"]),
    ("Problem", ["problem"]),
])
def test_ticket_type_aliases(value, aliases):
    assert ticket_type_aliases(value) == aliases
