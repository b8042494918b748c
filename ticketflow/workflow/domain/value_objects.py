"""
Workflow Value Objects
======================

Stateless status-registry rules and small immutable result types.
"""

import re
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Iterable, List

from ticketflow.core import LockedException, ValidationException
from ticketflow.workflow.domain.entities import Status

# Fields a caller may set on update; identity never changes
EDITABLE_STATUS_FIELDS = frozenset(
    f.name for f in fields(Status) if f.name != "id"
)


class StatusRules:
    """Pure functions behind the status registry."""

    @staticmethod
    def generate_code(name: str) -> str:
        """
        Derive a machine code from a display name.

        Example:
            "Pending – Vendor" -> "pending__vendor"
        """
        code = re.sub(r"\s+", "_", (name or "").strip().lower())
        code = re.sub(r"[^a-z0-9_]", "", code)
        if not code:
            raise ValidationException(
                f"Cannot derive a status code from name '{name}'",
                {"field": "code"}
            )
        return code

    @staticmethod
    def apply_update(status: Status, changes: Dict[str, Any]) -> Status:
        """
        Merge changes onto a status and re-validate the whole record.

        The final/run check runs on the merged result, so it does not matter
        which of the two fields the caller changed.

        Raises:
            ValidationException: unknown field or invalid merged record
            LockedException: anything but is_active changed on a system status
        """
        unknown = set(changes) - EDITABLE_STATUS_FIELDS
        if unknown:
            raise ValidationException(
                f"Unknown status fields: {', '.join(sorted(unknown))}",
                {"fields": sorted(unknown)}
            )

        effective = {
            key: value for key, value in changes.items()
            if getattr(status, key) != value
        }

        if status.is_system and set(effective) - {"is_active"}:
            raise LockedException(
                "System statuses can only be activated or deactivated",
                {"status_id": status.id, "fields": sorted(effective)}
            )

        # replace() runs __post_init__ again on the merged record
        return replace(status, **effective)

    @staticmethod
    def reorder(statuses: Iterable[Status], ordered_ids: List[str]) -> List[Status]:
        """
        Reassign sort_order for agent statuses following ordered_ids.

        System statuses keep their sort_order untouched; agent statuses are
        dealt the sort_order values agents already hold, in the requested
        order. Agent statuses missing from ordered_ids keep their relative
        order after the listed ones.
        """
        current = sorted(statuses, key=lambda s: s.sort_order)
        by_id = {s.id: s for s in current}

        if len(set(ordered_ids)) != len(ordered_ids):
            raise ValidationException("Duplicate ids in reorder request")

        for status_id in ordered_ids:
            if status_id not in by_id:
                raise ValidationException(
                    f"Unknown status id '{status_id}' in reorder request",
                    {"status_id": status_id}
                )
            if by_id[status_id].is_system:
                raise LockedException(
                    "System statuses cannot be reordered",
                    {"status_id": status_id}
                )

        listed = [by_id[i] for i in ordered_ids]
        rest = [s for s in current if not s.is_system and s.id not in set(ordered_ids)]
        agent_queue = listed + rest

        agent_slots = [s.sort_order for s in current if not s.is_system]

        changed: List[Status] = []
        for slot, status in zip(agent_slots, agent_queue):
            if status.sort_order != slot:
                status.sort_order = slot
                changed.append(status)
        return changed


@dataclass(frozen=True)
class StatusUpdateResult:
    """Outcome of a registry update."""

    status: Status
    affects_running_slas: bool = False
