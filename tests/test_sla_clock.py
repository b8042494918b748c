from datetime import datetime

import pytest

from ticketflow.config import ActionKind, SLAState
from ticketflow.sla.domain import SLAConfig, SlaClockEngine, SlaEvaluator, as_utc

from tests.factories import T0, at, by_code, change, event, make_record, standard_statuses


@pytest.fixture
def statuses():
    return by_code(standard_statuses())


@pytest.fixture
def evaluator():
    return SlaEvaluator()


def _resolved_at(minutes, priority="Critical"):
    return make_record(
        priority=priority,
        status="resolved",
        changes=[change(5, "new", "in_progress"), change(minutes, "in_progress", "resolved")],
    )


def test_critical_resolved_within_target_is_met(evaluator, statuses):
    result = evaluator.evaluate(_resolved_at(50), statuses, at(100))

    assert result.is_terminal is True
    assert result.terminal_at == at(50)
    assert result.net_resolution_minutes == 50
    assert result.is_resolution_overdue is False
    assert result.resolution.state == SLAState.MET
    assert result.response.elapsed_minutes == 5
    assert result.response.state == SLAState.MET


def test_critical_resolved_after_target_is_overdue(evaluator, statuses):
    result = evaluator.evaluate(_resolved_at(61), statuses, at(100))

    assert result.net_resolution_minutes == 61
    assert result.is_resolution_overdue is True
    assert result.resolution.state == SLAState.BREACHED
    assert result.resolution.remaining_minutes == 0


def test_canceled_ticket_is_exempt(evaluator, statuses):
    record = make_record(priority="Critical", status="canceled")

    result = evaluator.evaluate(record, statuses, at(10_000))

    assert result.is_exempt is True
    assert result.is_response_overdue is False
    assert result.is_resolution_overdue is False
    assert result.resolution.state == SLAState.EXEMPT


def test_pause_segments_are_deducted(evaluator, statuses):
    record = make_record(changes=[
        change(10, "new", "in_progress"),
        change(20, "in_progress", "pending_customer"),
        change(80, "pending_customer", "in_progress"),
    ])

    result = evaluator.evaluate(record, statuses, at(100))

    assert result.raw_resolution_minutes == 100
    assert result.paused_minutes == 60
    assert result.net_resolution_minutes == 40
    assert result.is_terminal is False


def test_open_pause_is_clipped_at_now(evaluator, statuses):
    record = make_record(status="pending_customer", changes=[change(10, "new", "pending_customer")])

    result = evaluator.evaluate(record, statuses, at(30))

    assert result.paused_minutes == 20
    assert result.net_resolution_minutes == 10


def test_cached_counter_used_without_history(evaluator, statuses):
    record = make_record(cumulative_paused_minutes=30)

    result = evaluator.evaluate(record, statuses, at(100))

    assert result.paused_minutes == 30
    assert result.net_resolution_minutes == 70


def test_net_resolution_never_negative(evaluator, statuses):
    record = make_record(cumulative_paused_minutes=500)

    result = evaluator.evaluate(record, statuses, at(100))

    assert result.net_resolution_minutes == 0
    assert result.is_resolution_overdue is False


def test_partial_minutes_are_floored(evaluator, statuses):
    record = make_record()

    result = evaluator.evaluate(record, statuses, at(59.9))

    assert result.raw_resolution_minutes == 59


def test_response_is_earliest_of_reply_and_status_move(statuses):
    engine = SlaClockEngine()
    record = make_record(
        changes=[change(10, "new", "open"), change(20, "open", "in_progress")],
        trail=[event(3, ActionKind.AGENT_REPLIED, "a1")],
    )

    assert engine.response_instant(record) == at(3)


def test_moves_between_initial_statuses_are_not_a_response(statuses):
    engine = SlaClockEngine()
    record = make_record(status="open", changes=[change(10, "new", "open")])

    assert engine.response_instant(record) is None


def test_unanswered_ticket_breaches_response(evaluator, statuses):
    record = make_record(priority="Critical", status="new")

    result = evaluator.evaluate(record, statuses, at(30))

    assert result.has_responded is False
    assert result.response.elapsed_minutes == 30
    assert result.is_response_overdue is True
    assert result.response.stopped_at is None


def test_at_risk_inside_warning_threshold(evaluator, statuses):
    record = make_record(priority="High", changes=[change(1, "new", "in_progress")])

    result = evaluator.evaluate(record, statuses, at(210))

    assert result.resolution.state == SLAState.AT_RISK
    assert result.resolution.remaining_minutes == 30


def test_future_terminal_instant_is_clamped_to_now(evaluator, statuses):
    record = make_record(terminal_at=at(500))

    result = evaluator.evaluate(record, statuses, at(100))

    assert result.terminal_at == at(100)
    assert result.raw_resolution_minutes == 100


def test_closed_ticket_without_history_ends_at_last_update(evaluator, statuses):
    record = make_record(priority="Critical", status="closed", updated_at=at(50))

    result = evaluator.evaluate(record, statuses, at(10_000))

    assert result.is_terminal is True
    assert result.terminal_at == at(50)
    assert result.net_resolution_minutes == 50
    assert result.is_resolution_overdue is False
    assert result.resolution.state == SLAState.MET
    assert result.resolution.stopped_at == at(50)


def test_explicit_terminal_instant_beats_last_update(evaluator, statuses):
    record = make_record(status="closed", terminal_at=at(30), updated_at=at(90))

    result = evaluator.evaluate(record, statuses, at(500))

    assert result.terminal_at == at(30)


def test_open_ticket_ignores_last_update(evaluator, statuses):
    record = make_record(changes=[change(5, "new", "in_progress")], updated_at=at(20))

    result = evaluator.evaluate(record, statuses, at(100))

    assert result.is_terminal is False
    assert result.terminal_at == at(100)


def test_working_time_predicate_counts_only_working_minutes():
    engine = SlaClockEngine(SLAConfig(), is_working_time=lambda t: 9 <= t.hour < 17)

    assert engine.minutes_between(T0, at(600)) == 480
    assert engine.minutes_between(at(10), at(5)) == 0


def test_naive_datetimes_are_treated_as_utc(evaluator, statuses):
    naive_now = datetime(2024, 1, 15, 10, 40)
    record = make_record(created_at=datetime(2024, 1, 15, 9, 0))

    result = evaluator.evaluate(record, statuses, naive_now)

    assert record.created_at == T0
    assert result.evaluated_at == as_utc(naive_now)
    assert result.raw_resolution_minutes == 100


def test_unknown_status_code_runs_the_clock(evaluator, statuses):
    record = make_record(status="legacy_triage")

    result = evaluator.evaluate(record, statuses, at(45))

    assert result.is_exempt is False
    assert result.net_resolution_minutes == 45
