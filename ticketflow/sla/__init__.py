"""
SLA Tracking Module
===================

Bounded Context for the SLA clock and escalation engine.

Responsibilities:
- Resolve response/resolution targets from priority and conditional policies
- Compute elapsed, paused and net time per ticket from its status history
- Split resolution time between L1 and L2 at the latest escalation
- Aggregate breach reports over a ticket population
- Config hot-reload via watchdog, scheduled breach snapshots via APScheduler
"""

__version__ = "1.0.0"
