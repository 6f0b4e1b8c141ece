"""
Complaint state machine.

Role checks live in one table, ``CAPABILITIES``: for every role, the actions
it may take and the statuses it may take them from. ``TRANSITIONS`` lists the
statuses each action is legal from at all, whatever the role. Each operation
checks the complaint against both before building the new copy, and every
status or assignee change is written together with its hand-off record.
"""

import logging
from datetime import datetime

from .complaint import (
    INITIAL_STATES,
    Actor,
    Complaint,
    HandoffAction,
    Role,
    StaffMember,
    Status,
)
from .errors import (
    AlreadyAccepted,
    InvalidTransition,
    Unauthorized,
    ValidationError,
)
from .path import append_handoff, make_handoff

logger = logging.getLogger(__name__)

ASSIGN = "assign"
REASSIGN = "reassign"
ACCEPT = "accept"
REJECT = "reject"
PROGRESS = "progress"
RESOLVE = "resolve"
CLOSE = "close"
ESCALATE = "escalate"

_ACTIVE = frozenset({Status.ASSIGNED, Status.IN_PROGRESS})
_ACCEPTABLE = INITIAL_STATES | {Status.ASSIGNED}

TRANSITIONS: dict[str, frozenset[Status]] = {
    ASSIGN: INITIAL_STATES,
    REASSIGN: _ACTIVE,
    ACCEPT: _ACCEPTABLE,
    REJECT: _ACCEPTABLE,
    PROGRESS: _ACTIVE,
    RESOLVE: frozenset({Status.IN_PROGRESS}),
    CLOSE: frozenset({Status.RESOLVED}),
    ESCALATE: INITIAL_STATES,
}

_MANAGER = {
    ASSIGN: INITIAL_STATES,
    REASSIGN: _ACTIVE,
    REJECT: _ACCEPTABLE,
    PROGRESS: _ACTIVE,
    RESOLVE: frozenset({Status.IN_PROGRESS}),
}

CAPABILITIES: dict[Role, dict[str, frozenset[Status]]] = {
    Role.STUDENT: {},
    Role.STAFF: {
        ACCEPT: _ACCEPTABLE,
        PROGRESS: _ACTIVE,
        RESOLVE: frozenset({Status.IN_PROGRESS}),
    },
    # a HOD accepts only work already assigned to them
    Role.HOD: {**_MANAGER, ACCEPT: frozenset({Status.ASSIGNED})},
    Role.DEAN: {**_MANAGER, ACCEPT: _ACCEPTABLE},
    Role.ADMIN: {
        **_MANAGER,
        ACCEPT: _ACCEPTABLE,
        CLOSE: frozenset({Status.RESOLVED}),
    },
    Role.SYSTEM: {
        ESCALATE: INITIAL_STATES,
        CLOSE: frozenset({Status.RESOLVED}),
    },
}

ASSIGNABLE_ROLES = frozenset({Role.STAFF, Role.HOD, Role.DEAN, Role.ADMIN})
_UNSCOPED = frozenset({Role.DEAN, Role.ADMIN, Role.SYSTEM})


def roles_for(action: str, status: Status | None = None) -> tuple[str, ...]:
    return tuple(
        role.value
        for role, actions in CAPABILITIES.items()
        if action in actions and (status is None or status in actions[action])
    )


def can(actor: Actor, action: str, complaint: Complaint) -> bool:
    return complaint.status in CAPABILITIES.get(actor.role, {}).get(action, ())


def allowed_actions(actor: Actor, complaint: Complaint) -> list[str]:
    return [
        action
        for action, statuses in CAPABILITIES.get(actor.role, {}).items()
        if complaint.status in statuses
    ]


def check_transition(actor: Actor, action: str, complaint: Complaint) -> None:
    if complaint.status not in TRANSITIONS[action]:
        logger.warning(
            f"Rejected {action} on complaint {complaint.id}: "
            f"status is {complaint.status.value}"
        )
        raise InvalidTransition(
            current=complaint.status.value,
            action=action,
            required_roles=roles_for(action),
        )
    if not can(actor, action, complaint):
        logger.warning(
            f"Rejected {action} on complaint {complaint.id}: "
            f"role {actor.role.value} lacks the capability"
        )
        raise Unauthorized(
            f"Role {actor.role.value} may not {action} a complaint that is "
            f"{complaint.status.value}. Required role: "
            f"{', '.join(roles_for(action, complaint.status))}"
        )


def _denied(message: str) -> Unauthorized:
    logger.warning(f"Unauthorized: {message}")
    return Unauthorized(message)


def _require_department(actor: Actor, complaint: Complaint) -> None:
    if actor.role in _UNSCOPED:
        return
    if not actor.in_department(complaint.department):
        raise _denied(
            f"Complaint {complaint.id} belongs to department "
            f"{complaint.department!r}, not {actor.department!r}"
        )


def _require_assignee(actor: Actor, complaint: Complaint) -> None:
    if complaint.assigned_staff != actor.id:
        raise _denied(
            f"Only the assignee of complaint {complaint.id} may do this"
        )


def _check_target(actor: Actor, complaint: Complaint, target: StaffMember) -> None:
    if target.role not in ASSIGNABLE_ROLES:
        raise ValidationError(
            f"{target.id} has role {target.role.value} and cannot be assigned"
        )
    if actor.role in _UNSCOPED:
        return
    if not target.department or (
        target.department.strip().casefold()
        != complaint.department.strip().casefold()
    ):
        raise _denied(
            f"Staff {target.id} is not in department {complaint.department!r}"
        )


def _append_note(existing: str | None, note: str | None) -> str | None:
    if not note:
        return existing
    return f"{existing}\n{note}" if existing else note


def assign(
    complaint: Complaint,
    actor: Actor,
    target: StaffMember,
    now: datetime,
    deadline: datetime | None = None,
) -> Complaint:
    check_transition(actor, ASSIGN, complaint)
    _require_department(actor, complaint)
    _check_target(actor, complaint, target)

    record = make_handoff(
        actor, HandoffAction.ASSIGNED, now, target_id=target.id, target_role=target.role
    )
    return append_handoff(
        complaint,
        record,
        status=Status.ASSIGNED,
        assigned_staff=target.id,
        assigned_staff_role=target.role,
        deadline=deadline,
    )


def reassign(
    complaint: Complaint,
    actor: Actor,
    target: StaffMember,
    now: datetime,
    deadline: datetime | None = None,
) -> Complaint:
    check_transition(actor, REASSIGN, complaint)
    _require_department(actor, complaint)
    _check_target(actor, complaint, target)

    record = make_handoff(
        actor,
        HandoffAction.REASSIGNED,
        now,
        target_id=target.id,
        target_role=target.role,
    )
    # no new deadline clears the old one
    return append_handoff(
        complaint,
        record,
        status=Status.ASSIGNED,
        assigned_staff=target.id,
        assigned_staff_role=target.role,
        deadline=deadline,
    )


def accept(complaint: Complaint, actor: Actor, now: datetime) -> Complaint:
    if complaint.status == Status.IN_PROGRESS and complaint.assigned_staff:
        raise AlreadyAccepted(
            f"Complaint {complaint.id} was already accepted by "
            f"{complaint.assigned_staff}"
        )
    check_transition(actor, ACCEPT, complaint)

    if complaint.status == Status.ASSIGNED:
        # dean and admin may take over; anyone else must be the assignee
        if actor.role not in _UNSCOPED:
            _require_assignee(actor, complaint)
    elif actor.role == Role.STAFF:
        _require_department(actor, complaint)
        if complaint.target_role != Role.STAFF:
            raise _denied(
                f"Complaint {complaint.id} is queued for "
                f"{complaint.target_role.value}, not staff"
            )

    record = make_handoff(
        actor, HandoffAction.ACCEPTED, now, target_id=actor.id, target_role=actor.role
    )
    return append_handoff(
        complaint,
        record,
        status=Status.IN_PROGRESS,
        assigned_staff=actor.id,
        assigned_staff_role=actor.role,
    )


def reject(
    complaint: Complaint, actor: Actor, now: datetime, reason: str | None = None
) -> Complaint:
    check_transition(actor, REJECT, complaint)
    _require_department(actor, complaint)

    record = make_handoff(actor, HandoffAction.REJECTED, now, note=reason)
    return append_handoff(
        complaint,
        record,
        status=Status.CLOSED,
        resolution_note=_append_note(complaint.resolution_note, reason),
    )


def add_progress_update(
    complaint: Complaint, actor: Actor, note: str, now: datetime
) -> Complaint:
    if not note or not note.strip():
        raise ValidationError("A progress update needs a note")
    check_transition(actor, PROGRESS, complaint)
    _require_assignee(actor, complaint)

    note_text = _append_note(complaint.resolution_note, note.strip())
    if complaint.status == Status.ASSIGNED:
        # first update from the assignee starts the work
        record = make_handoff(
            actor,
            HandoffAction.ACCEPTED,
            now,
            target_id=actor.id,
            target_role=actor.role,
        )
        return append_handoff(
            complaint,
            record,
            status=Status.IN_PROGRESS,
            resolution_note=note_text,
        )
    return complaint.model_copy(
        update={"resolution_note": note_text, "last_updated": now}
    )


def resolve(
    complaint: Complaint, actor: Actor, now: datetime, note: str | None = None
) -> Complaint:
    check_transition(actor, RESOLVE, complaint)
    _require_assignee(actor, complaint)

    record = make_handoff(actor, HandoffAction.RESOLVED, now, note=note)
    return append_handoff(
        complaint,
        record,
        status=Status.RESOLVED,
        resolved_at=complaint.resolved_at or now,
        resolution_note=_append_note(complaint.resolution_note, note),
    )


def close(complaint: Complaint, actor: Actor, now: datetime) -> Complaint:
    check_transition(actor, CLOSE, complaint)

    record = make_handoff(actor, HandoffAction.CLOSED, now)
    return append_handoff(complaint, record, status=Status.CLOSED)


def escalate(
    complaint: Complaint, actor: Actor, next_role: Role, now: datetime
) -> Complaint:
    check_transition(actor, ESCALATE, complaint)
    if complaint.has_assignee:
        raise InvalidTransition(
            current=complaint.status.value,
            action=ESCALATE,
            required_roles=roles_for(ESCALATE),
            message=f"Complaint {complaint.id} already has an assignee",
        )

    record = make_handoff(
        actor, HandoffAction.ESCALATED, now, target_role=next_role
    )
    # status stays put; only the queue moves up
    return append_handoff(
        complaint,
        record,
        is_escalated=True,
        escalated_on=now,
        target_role=next_role,
    )
