"""
Shared Kernel Module
====================

This module contains shared infrastructure used across all bounded contexts
(Workflow configuration and SLA tracking).

Architecture Pattern: Modular Monolith
- Each module (workflow, sla) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Workflow or SLA to shared kernel.
"""

__version__ = "1.0.0"
