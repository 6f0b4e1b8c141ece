from datetime import datetime
from typing import Any, Sequence

from .complaint import (
    INITIAL_STATES,
    Actor,
    Complaint,
    HandoffAction,
    HandoffRecord,
    Role,
)
from .errors import ValidationError


def make_handoff(
    actor: Actor,
    action: HandoffAction,
    now: datetime,
    target_id: str | None = None,
    target_role: Role | None = None,
    note: str | None = None,
) -> HandoffRecord:
    return HandoffRecord(
        role=actor.role,
        actor_id=actor.id,
        action=action,
        timestamp=now,
        target_id=target_id,
        target_role=target_role,
        note=note,
    )


def append_handoff(
    complaint: Complaint, record: HandoffRecord, **changes: Any
) -> Complaint:
    """Return a copy of ``complaint`` with ``record`` appended to its path.

    Any field ``changes`` are applied in the same copy, so the status change
    and the hand-off that explains it always travel together.
    """
    if "assignment_path" in changes:
        raise ValueError("assignment_path can only grow through append_handoff")
    changes.setdefault("last_updated", record.timestamp)
    return complaint.model_copy(
        update={**changes, "assignment_path": complaint.assignment_path + (record,)}
    )


def check_path_invariant(complaint: Complaint) -> None:
    if complaint.assignment_path:
        return
    if complaint.status not in INITIAL_STATES or complaint.assigned_staff:
        raise ValidationError(
            f"Complaint {complaint.id} is {complaint.status.value} "
            "but has no assignment path"
        )


def extends(stored: Sequence[HandoffRecord], proposed: Sequence[HandoffRecord]) -> bool:
    """True when ``proposed`` is ``stored`` plus zero or more new records."""
    if len(proposed) < len(stored):
        return False
    return all(
        _identity(old) == _identity(new) for old, new in zip(stored, proposed)
    )


def _identity(record: HandoffRecord) -> tuple:
    # timestamps are left out; storage engines differ in precision
    return (
        record.role,
        record.actor_id,
        record.action,
        record.target_id,
        record.target_role,
    )
