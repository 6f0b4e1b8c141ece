"""
Routing policy: where a new complaint is queued, who it escalates to when
nobody picks it up, and which complaints each actor is allowed to see.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable

from .complaint import (
    ANONYMOUS,
    INITIAL_STATES,
    Actor,
    Complaint,
    HandoffAction,
    Priority,
    Role,
)
from .errors import InvalidTransition, ValidationError
from .path import make_handoff
from .state_machine import ESCALATE, roles_for

STAFF_CHOICE = "staff"
DEAN_CHOICE = "dean"
TARGET_CHOICES = (STAFF_CHOICE, DEAN_CHOICE)

UNKNOWN_DEPARTMENT = "Unknown Department"
DEAN_QUEUE_LABEL = "Dean (Head of All Departments)"

ESCALATION_LADDER = (Role.STAFF, Role.HOD, Role.DEAN, Role.ADMIN)


def staff_queue_label(department: str) -> str:
    return f"Staff ({department})"


def route(department: str | None, target_choice: str) -> dict:
    """Resolve the submission target for ``target_choice``.

    Returns ``submitted_to``, ``department`` and ``target_role``. Staff
    complaints stay in the submitter's department; dean complaints go to a
    single queue that is not tied to any department.
    """
    choice = (target_choice or "").strip().lower()
    department = (department or "").strip() or UNKNOWN_DEPARTMENT

    if choice == STAFF_CHOICE:
        return {
            "submitted_to": staff_queue_label(department),
            "department": department,
            "target_role": Role.STAFF,
        }
    if choice == DEAN_CHOICE:
        return {
            "submitted_to": DEAN_QUEUE_LABEL,
            "department": department,
            "target_role": Role.DEAN,
        }
    raise ValidationError(
        f"Unknown target {target_choice!r}; expected one of {', '.join(TARGET_CHOICES)}"
    )


def open_complaint(
    actor: Actor,
    title: str,
    description: str,
    category: str,
    target_choice: str,
    now: datetime,
    priority: Priority | str | None = None,
    anonymous: bool = False,
) -> Complaint:
    for name, value in (
        ("title", title),
        ("description", description),
        ("category", category),
    ):
        if not value or not str(value).strip():
            raise ValidationError(f"{name} is required")

    try:
        priority = Priority(priority) if priority else Priority.MEDIUM
    except ValueError:
        raise ValidationError(f"Unknown priority: {priority!r}")

    routing = route(actor.department, target_choice)
    submitted_by = ANONYMOUS if anonymous else actor.id
    record = make_handoff(
        actor.model_copy(update={"id": submitted_by}),
        HandoffAction.SUBMITTED,
        now,
        target_role=routing["target_role"],
    )
    return Complaint(
        title=title.strip(),
        description=description.strip(),
        category=category.strip(),
        priority=priority,
        submitted_by=submitted_by,
        owner_id=actor.id,
        submitted_date=now,
        last_updated=now,
        assignment_path=(record,),
        **routing,
    )


def next_escalation_target(complaint: Complaint) -> Role:
    try:
        rung = ESCALATION_LADDER.index(complaint.target_role)
    except ValueError:
        rung = -1
    if rung + 1 >= len(ESCALATION_LADDER):
        raise InvalidTransition(
            current=complaint.status.value,
            action=ESCALATE,
            required_roles=roles_for(ESCALATE),
            message=f"Complaint {complaint.id} is already with "
            f"{complaint.target_role.value}; there is no higher role",
        )
    return ESCALATION_LADDER[rung + 1]


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def is_escalation_due(complaint: Complaint, now: datetime, sla: timedelta) -> bool:
    if complaint.status not in INITIAL_STATES or complaint.has_assignee:
        return False
    if complaint.target_role == ESCALATION_LADDER[-1]:
        return False
    waiting_since = complaint.escalated_on or complaint.submitted_date
    return _as_utc(now) - _as_utc(waiting_since) > sla


def is_visible_to(actor: Actor, complaint: Complaint) -> bool:
    if actor.role in (Role.ADMIN, Role.DEAN, Role.SYSTEM):
        return True
    if actor.role == Role.STUDENT:
        return complaint.owner_id == actor.id
    if not actor.in_department(complaint.department):
        return False

    if actor.role == Role.HOD:
        # dean/admin queues stay hidden until someone assigns inside the department
        if complaint.target_role in (Role.DEAN, Role.ADMIN):
            return complaint.has_assignee
        return True

    if actor.role == Role.STAFF:
        if complaint.assigned_staff == actor.id:
            return True
        return not complaint.has_assignee and complaint.target_role == Role.STAFF

    return False


def scope_complaints(actor: Actor, complaints: Iterable[Complaint]) -> list[Complaint]:
    return [c for c in complaints if is_visible_to(actor, c)]
