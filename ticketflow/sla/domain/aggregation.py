"""
Breach Aggregator
=================

Evaluates a ticket population and reduces it to compliance counts.

Per-ticket evaluation is independent, so it is mapped over a thread pool
bounded by the population size. Evaluation order is irrelevant; the breached
list is sorted after the reduction.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import List, Mapping, Optional, Sequence

from ticketflow.config import REPORT_PRIORITY_BUCKETS
from ticketflow.sla.domain.entities import (
    ActorProfile,
    BreachedTicket,
    BreachReport,
    ComplianceBucket,
    SlaEvaluation,
    TicketSlaRecord,
)
from ticketflow.sla.domain.evaluator import SlaEvaluator
from ticketflow.workflow.domain import Status

UNASSIGNED = "Unassigned"


def priority_bucket(priority: Optional[str]) -> str:
    """Report bucket for a raw priority label; anything unmatched is Medium."""
    lowered = (priority or "").lower()
    for bucket in ("Critical", "High", "Low"):
        if bucket.lower() in lowered:
            return bucket
    return "Medium"


class BreachAggregator:
    """
    Aggregates SLA verdicts over many tickets.

    Tickets whose current status stops the clock (e.g. canceled) are left out
    of both the numerator and the denominator. A ticket counts as overdue when
    its resolution clock is overdue. Escalated tickets are also judged on
    their L2 minutes, and fired escalation rules are counted by rule name.
    """

    def __init__(self, evaluator: SlaEvaluator, max_workers: int = 8):
        self._evaluator = evaluator
        self._max_workers = max(1, max_workers)

    def evaluate_all(
        self,
        records: Sequence[TicketSlaRecord],
        statuses: Mapping[str, Status],
        as_of: datetime,
        actors: Optional[Mapping[str, ActorProfile]] = None
    ) -> List[SlaEvaluation]:
        if not records:
            return []

        def evaluate(record: TicketSlaRecord) -> SlaEvaluation:
            return self._evaluator.evaluate(record, statuses, as_of, actors)

        workers = min(self._max_workers, len(records))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="sla-eval") as pool:
            return list(pool.map(evaluate, records))

    def aggregate(
        self,
        records: Sequence[TicketSlaRecord],
        statuses: Mapping[str, Status],
        as_of: datetime,
        actors: Optional[Mapping[str, ActorProfile]] = None
    ) -> BreachReport:
        evaluations = self.evaluate_all(records, statuses, as_of, actors)
        created_on = {r.id: r.created_at.date() for r in records}
        return self.reduce(evaluations, as_of, created_on)

    @staticmethod
    def reduce(
        evaluations: Sequence[SlaEvaluation],
        as_of: datetime,
        created_on: Optional[Mapping] = None
    ) -> BreachReport:
        report = BreachReport(
            as_of=as_of,
            per_priority={bucket: ComplianceBucket() for bucket in REPORT_PRIORITY_BUCKETS},
        )
        created_on = created_on or {}

        response_total = 0
        response_count = 0
        resolution_total = 0
        resolution_count = 0

        for evaluation in evaluations:
            if evaluation.is_exempt:
                report.excluded_count += 1
                continue

            overdue = evaluation.is_resolution_overdue
            report.total += 1

            buckets = [
                report.per_agent.setdefault(evaluation.assigned_handler or UNASSIGNED, ComplianceBucket()),
                report.per_priority[priority_bucket(evaluation.priority)],
            ]
            day = created_on.get(evaluation.ticket_id)
            if day is not None:
                buckets.append(report.per_day.setdefault(day, ComplianceBucket()))

            for bucket in buckets:
                bucket.total += 1
                if overdue:
                    bucket.overdue += 1

            if overdue:
                report.overdue_count += 1
                report.breached.append(BreachedTicket(
                    ticket_id=evaluation.ticket_id,
                    external_id=evaluation.external_id,
                    actual_minutes=evaluation.net_resolution_minutes,
                    target_minutes=evaluation.resolution.target_minutes,
                ))

            if evaluation.escalation.escalated:
                report.escalated_count += 1
                if evaluation.escalation.is_l2_overdue:
                    report.l2_overdue_count += 1
            for rule in evaluation.fired_rules:
                report.rules_fired[rule.name] = report.rules_fired.get(rule.name, 0) + 1

            if evaluation.has_responded:
                response_total += evaluation.response.elapsed_minutes
                response_count += 1
            if evaluation.is_terminal:
                resolution_total += evaluation.net_resolution_minutes
                resolution_count += 1

        if report.total:
            report.sla_met_percent = (report.total - report.overdue_count) / report.total * 100
        report.breached.sort(key=lambda b: (-b.overrun_minutes, b.external_id))
        report.per_day = dict(sorted(report.per_day.items()))
        if response_count:
            report.avg_response_minutes = response_total / response_count
        if resolution_count:
            report.avg_resolution_minutes = resolution_total / resolution_count
        return report
