"""
Workflow Configuration Module
=============================

Bounded Context for ticket statuses and the workflow graphs built from them.

Responsibilities:
- Status registry (codes, categories, SLA clock behaviour, ordering)
- Workflow graphs: nodes, transitions and their structural invariants
- Workflow templates: cloning into per-team instances, versioning
"""

__version__ = "1.0.0"
