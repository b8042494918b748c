"""
SLA Clock Engine
================

Computes elapsed, paused and net time for one ticket and the response and
resolution verdicts derived from them.

All minute figures are floored. Pause time is recomputed from the status
history on every evaluation; the ticket's cached counter only stands in when
there is no history at all.

The engine is a pure function of (record, statuses, now): no I/O, no shared
mutable state, safe to call from many threads at once.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Mapping, Optional, Tuple

from ticketflow.config import ActionKind, SLAState, SlaBehavior
from ticketflow.sla.domain.entities import ClockReading, TicketSlaRecord
from ticketflow.sla.domain.value_objects import SLAConfig, SlaPolicyResolver, SlaTargets
from ticketflow.workflow.domain import Status

WorkingTimePredicate = Callable[[datetime], bool]

_MINUTE = timedelta(minutes=1)


@dataclass(frozen=True)
class ClockSnapshot:
    """Intermediate figures shared by the clock readings and the splitter."""
    targets: SlaTargets
    is_exempt: bool
    is_terminal: bool
    has_responded: bool
    response_at: Optional[datetime]
    terminal_at: datetime
    raw_resolution_minutes: int
    paused_minutes: int
    net_resolution_minutes: int
    response: ClockReading
    resolution: ClockReading


class SlaClockEngine:
    """
    Per-ticket SLA clock.

    Args:
        config: SLA configuration (initial statuses, warning threshold)
        resolver: Policy resolver; built from config when omitted
        is_working_time: Optional predicate; when given only whole minutes
            starting inside working time are counted
    """

    def __init__(
        self,
        config: Optional[SLAConfig] = None,
        resolver: Optional[SlaPolicyResolver] = None,
        is_working_time: Optional[WorkingTimePredicate] = None
    ):
        self._config = config or SLAConfig()
        self._resolver = resolver or SlaPolicyResolver(self._config)
        self._is_working_time = is_working_time

    @property
    def config(self) -> SLAConfig:
        return self._config

    # ----- minute arithmetic -----

    def minutes_between(self, start: datetime, end: datetime) -> int:
        """Whole minutes in [start, end); 0 when end is not after start."""
        if end <= start:
            return 0
        whole = int((end - start).total_seconds() // 60)
        if self._is_working_time is None:
            return whole
        return sum(1 for m in range(whole) if self._is_working_time(start + m * _MINUTE))

    # ----- status helpers -----

    @staticmethod
    def _behavior(statuses: Mapping[str, Status], code: Optional[str]) -> SlaBehavior:
        status = statuses.get(code) if code else None
        return status.sla_behavior if status else SlaBehavior.RUN

    @staticmethod
    def _is_final(statuses: Mapping[str, Status], code: Optional[str]) -> bool:
        status = statuses.get(code) if code else None
        return bool(status and status.is_final)

    def _is_initial(self, code: Optional[str]) -> bool:
        return (code or "").lower() in self._config.initial_status_codes

    # ----- instants -----

    def terminal_instant(
        self,
        record: TicketSlaRecord,
        statuses: Mapping[str, Status],
        now: datetime
    ) -> Tuple[datetime, bool]:
        """
        Instant the resolution clock ends and whether the ticket is terminal.

        A ticket in a final status ends at the latest move into that status,
        else its explicit terminal instant, else its last update. A ticket
        still open ends at its explicit terminal instant or `now`. Never later
        than `now`.
        """
        is_terminal = self._is_final(statuses, record.current_status_code)
        terminal: Optional[datetime] = None

        if is_terminal:
            for change in reversed(record.status_changes):
                if change.to_code == record.current_status_code:
                    terminal = change.at
                    break

        if terminal is None and is_terminal:
            terminal = record.terminal_at or record.updated_at

        if terminal is None:
            terminal = record.terminal_at or now

        if terminal > now:
            return now, False
        return max(terminal, record.created_at), is_terminal

    def response_instant(self, record: TicketSlaRecord) -> Optional[datetime]:
        """Earliest of leaving the initial statuses and the first agent reply."""
        candidates: List[datetime] = []

        for change in record.status_changes:
            if not self._is_initial(change.to_code):
                candidates.append(change.at)
                break

        for event in record.trail:
            if event.action_kind == ActionKind.AGENT_REPLIED:
                candidates.append(event.at)
                break

        return min(candidates) if candidates else None

    def paused_minutes(
        self,
        record: TicketSlaRecord,
        statuses: Mapping[str, Status],
        until: datetime
    ) -> int:
        """
        Sum the time spent in pause-behaviour statuses up to `until`.

        The status before the first recorded change is that change's
        from-status; segments are clipped at `until`.
        """
        if not record.status_changes:
            return record.cumulative_paused_minutes

        segments: List[Tuple[datetime, Optional[str]]] = [
            (record.created_at, record.status_changes[0].from_code)
        ]
        segments.extend((c.at, c.to_code) for c in record.status_changes)

        paused_seconds = 0.0
        paused_working = 0
        for index, (start, code) in enumerate(segments):
            end = segments[index + 1][0] if index + 1 < len(segments) else until
            end = min(end, until)
            if end <= start or self._behavior(statuses, code) != SlaBehavior.PAUSE:
                continue
            if self._is_working_time is None:
                paused_seconds += (end - start).total_seconds()
            else:
                paused_working += self.minutes_between(start, end)

        if self._is_working_time is None:
            return int(paused_seconds // 60)
        return paused_working

    # ----- verdicts -----

    def _state(
        self,
        target: float,
        elapsed: int,
        is_exempt: bool,
        is_overdue: bool,
        is_stopped: bool
    ) -> SLAState:
        if is_exempt:
            return SLAState.EXEMPT
        if is_overdue:
            return SLAState.BREACHED
        if is_stopped:
            return SLAState.MET
        remaining = target - elapsed
        if target > 0 and remaining / target * 100 <= self._config.warning_threshold_percent:
            return SLAState.AT_RISK
        return SLAState.ON_TRACK

    def _reading(
        self,
        target: float,
        elapsed: int,
        is_exempt: bool,
        stopped_at: Optional[datetime]
    ) -> ClockReading:
        is_overdue = not is_exempt and elapsed > target
        return ClockReading(
            target_minutes=target,
            elapsed_minutes=elapsed,
            is_overdue=is_overdue,
            state=self._state(target, elapsed, is_exempt, is_overdue, stopped_at is not None),
            remaining_minutes=max(0, target - elapsed),
            stopped_at=stopped_at,
        )

    def snapshot(
        self,
        record: TicketSlaRecord,
        statuses: Mapping[str, Status],
        now: datetime
    ) -> ClockSnapshot:
        """Evaluate both clocks of a ticket as of `now`."""
        targets = self._resolver.targets_for(record.priority, record.attributes())
        is_exempt = self._behavior(statuses, record.current_status_code) == SlaBehavior.STOP

        terminal_at, is_terminal = self.terminal_instant(record, statuses, now)

        response_at = self.response_instant(record)
        if response_at is not None and response_at > now:
            response_at = None
        has_responded = response_at is not None or not self._is_initial(record.current_status_code)

        if response_at is not None:
            response_end = response_at
        elif has_responded:
            response_end = terminal_at
        else:
            response_end = now
        response_elapsed = self.minutes_between(record.created_at, response_end)

        raw_resolution = self.minutes_between(record.created_at, terminal_at)
        paused = self.paused_minutes(record, statuses, terminal_at)
        net_resolution = max(0, raw_resolution - paused)

        return ClockSnapshot(
            targets=targets,
            is_exempt=is_exempt,
            is_terminal=is_terminal,
            has_responded=has_responded,
            response_at=response_at,
            terminal_at=terminal_at,
            raw_resolution_minutes=raw_resolution,
            paused_minutes=paused,
            net_resolution_minutes=net_resolution,
            response=self._reading(
                targets.response_minutes,
                response_elapsed,
                is_exempt,
                response_end if has_responded else None,
            ),
            resolution=self._reading(
                targets.resolution_minutes,
                net_resolution,
                is_exempt,
                terminal_at if is_terminal else None,
            ),
        )
