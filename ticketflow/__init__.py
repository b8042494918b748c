"""
Ticketflow
==========

Ticket workflow graphs and the SLA clock/escalation engine.
"""

__version__ = "1.0.0"
