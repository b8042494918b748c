from datetime import date

import pytest

from ticketflow.config import ActionKind, SupportTier
from ticketflow.sla.domain import (
    ActorProfile,
    BreachAggregator,
    EscalationRule,
    SLAConfig,
    SlaEvaluator,
    priority_bucket,
)

from tests.factories import at, by_code, change, event, make_record, standard_statuses


@pytest.fixture
def statuses():
    return by_code(standard_statuses())


@pytest.fixture
def aggregator():
    return BreachAggregator(SlaEvaluator(), max_workers=4)


def _population():
    return [
        make_record(
            external_id="CRIT-ONTIME",
            priority="Critical",
            status="resolved",
            changes=[change(5, "new", "in_progress"), change(30, "in_progress", "resolved")],
        ),
        make_record(
            external_id="CRIT-LATE",
            priority="Critical",
            changes=[change(5, "new", "in_progress")],
        ),
        make_record(
            external_id="HIGH-OK",
            priority="High",
            changes=[change(5, "new", "in_progress")],
        ),
        make_record(external_id="LOW-CANCELED", priority="Low", status="canceled"),
        make_record(
            external_id="URGENT-LATE",
            priority="Urgent",
            created_at=at(-100),
            changes=[change(5, "new", "in_progress")],
        ),
    ]


def test_empty_population_is_fully_compliant(aggregator, statuses):
    report = aggregator.aggregate([], statuses, at(0))

    assert report.total == 0
    assert report.overdue_count == 0
    assert report.sla_met_percent == 100.0
    assert set(report.per_priority) == {"Critical", "High", "Medium", "Low"}
    assert report.breached == []


def test_counts_and_percentage(aggregator, statuses):
    report = aggregator.aggregate(_population(), statuses, at(200))

    assert report.total == 4
    assert report.excluded_count == 1
    assert report.overdue_count == 2
    assert report.sla_met_percent == 50.0


def test_exempt_tickets_are_left_out_of_every_bucket(aggregator, statuses):
    report = aggregator.aggregate(_population(), statuses, at(200))

    assert report.per_priority["Low"].total == 0
    assert sum(b.total for b in report.per_agent.values()) == 4
    assert sum(b.total for b in report.per_day.values()) == 4


def test_priority_and_day_buckets(aggregator, statuses):
    report = aggregator.aggregate(_population(), statuses, at(200))

    critical = report.per_priority["Critical"]
    assert (critical.total, critical.overdue, critical.within_sla) == (2, 1, 1)
    assert report.per_priority["High"].overdue == 0
    assert report.per_priority["Medium"].total == 1
    assert list(report.per_day) == [date(2024, 1, 15)]


def test_breached_list_sorted_by_overrun(aggregator, statuses):
    report = aggregator.aggregate(_population(), statuses, at(200))

    assert [b.external_id for b in report.breached] == ["URGENT-LATE", "CRIT-LATE"]
    assert report.breached[0].overrun_minutes == 240
    assert report.breached[1].actual_minutes == 200


def test_averages(aggregator, statuses):
    report = aggregator.aggregate(_population(), statuses, at(200))

    assert report.avg_resolution_minutes == 30
    assert report.avg_response_minutes == 30


def test_per_agent_uses_handler_names(aggregator, statuses):
    actors = {"a1": ActorProfile(id="a1", display_name="Alice Moreno", role_tier=SupportTier.L1)}
    records = [
        make_record(assigned_handler_id="a1", changes=[change(5, "new", "in_progress")]),
        make_record(priority="Critical", changes=[change(5, "new", "in_progress")]),
    ]

    report = aggregator.aggregate(records, statuses, at(200), actors)

    assert report.per_agent["Alice Moreno"].total == 1
    assert report.per_agent["Unassigned"].overdue == 1


@pytest.mark.parametrize("label,bucket", [
    ("Critical", "Critical"),
    ("P1 - critical", "Critical"),
    ("HIGH", "High"),
    ("low", "Low"),
    ("Urgent", "Medium"),
    (None, "Medium"),
])
def test_priority_bucket(label, bucket):
    assert priority_bucket(label) == bucket


def test_aggregation_matches_single_evaluations(aggregator, statuses):
    records = _population()
    evaluator = SlaEvaluator()

    singles = [evaluator.evaluate(r, statuses, at(200)) for r in records]
    batch = aggregator.evaluate_all(records, statuses, at(200))

    assert [e.net_resolution_minutes for e in batch] == [e.net_resolution_minutes for e in singles]
    assert [e.is_resolution_overdue for e in batch] == [e.is_resolution_overdue for e in singles]


def test_escalation_and_rule_counters(statuses):
    config = SLAConfig(escalation_rules=[
        EscalationRule(name="resolution-80", trigger_type="percentage", trigger_value=80),
        EscalationRule(name="resolution-overdue-30", trigger_type="overdue_minutes", trigger_value=30),
    ])
    escalated = [event(10, ActionKind.ESCALATED, "a1")]
    records = [
        make_record(
            priority="Critical",
            status="resolved",
            changes=[change(5, "new", "in_progress"), change(100, "in_progress", "resolved")],
            trail=escalated,
        ),
        make_record(priority="High", changes=[change(5, "new", "in_progress")], trail=escalated),
        make_record(priority="Critical", changes=[change(5, "new", "in_progress")]),
        make_record(priority="Critical", status="canceled", trail=escalated),
    ]

    report = BreachAggregator(SlaEvaluator(config)).aggregate(records, statuses, at(200))

    assert report.escalated_count == 2
    assert report.l2_overdue_count == 1
    assert report.rules_fired == {"resolution-80": 2, "resolution-overdue-30": 1}
