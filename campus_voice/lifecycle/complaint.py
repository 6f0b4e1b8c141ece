"""
The complaint aggregate and the value objects it is built from.

A ``Complaint`` is immutable: every lifecycle operation returns a new copy
(``model_copy``) with its assignment path extended, so a half-applied change
can never be observed or persisted.
"""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .errors import ValidationError

ANONYMOUS = "Anonymous"
SYSTEM_ACTOR_ID = "system"


class Role(str, Enum):
    STUDENT = "student"
    STAFF = "staff"
    HOD = "headOfDepartment"
    DEAN = "dean"
    ADMIN = "admin"
    SYSTEM = "system"


class Status(str, Enum):
    PENDING = "Pending"
    UNASSIGNED = "Unassigned"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class HandoffAction(str, Enum):
    SUBMITTED = "submitted"
    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    ESCALATED = "escalated"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    RESOLVED = "resolved"
    CLOSED = "closed"


# Pending and Unassigned are the same state under two labels
INITIAL_STATES = frozenset({Status.PENDING, Status.UNASSIGNED})
TERMINAL_STATES = frozenset({Status.RESOLVED, Status.CLOSED})

_ROLE_ALIASES = {
    "user": Role.STUDENT,
    "student": Role.STUDENT,
    "staff": Role.STAFF,
    "hod": Role.HOD,
    "head of department": Role.HOD,
    "headofdepartment": Role.HOD,
    "head_of_department": Role.HOD,
    "head-of-department": Role.HOD,
    "headofdept": Role.HOD,
    "dean": Role.DEAN,
    "admin": Role.ADMIN,
    "administrator": Role.ADMIN,
    "system": Role.SYSTEM,
}


def normalize_role(value: "str | Role") -> Role:
    if isinstance(value, Role):
        return value
    role = _ROLE_ALIASES.get(str(value or "").strip().lower())
    if role is None:
        raise ValidationError(f"Unknown role: {value!r}")
    return role


class Actor(BaseModel):
    id: str
    role: Role
    department: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=SYSTEM_ACTOR_ID, role=Role.SYSTEM)

    def in_department(self, department: str | None) -> bool:
        if not self.department or not department:
            return False
        return self.department.strip().casefold() == department.strip().casefold()


class HandoffRecord(BaseModel):
    role: Role
    actor_id: str
    action: HandoffAction
    timestamp: datetime
    target_id: str | None = None
    target_role: Role | None = None
    note: str | None = None

    model_config = {"frozen": True}


class Feedback(BaseModel):
    rating: int
    comment: str | None = None
    submitted_at: datetime

    model_config = {"frozen": True}


class Complaint(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str
    category: str
    priority: Priority = Priority.MEDIUM
    status: Status = Status.PENDING
    submitted_by: str
    # private author reference; survives anonymous submission
    owner_id: str
    submitted_to: str
    department: str
    target_role: Role
    assigned_staff: str | None = None
    assigned_staff_role: Role | None = None
    assignment_path: tuple[HandoffRecord, ...] = ()
    submitted_date: datetime
    last_updated: datetime
    deadline: datetime | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None
    feedback: Feedback | None = None
    is_escalated: bool = False
    escalated_on: datetime | None = None
    version: int = 0

    model_config = {"frozen": True}

    @property
    def is_anonymous(self) -> bool:
        return self.submitted_by == ANONYMOUS

    @property
    def has_assignee(self) -> bool:
        return self.assigned_staff is not None or self.assigned_staff_role is not None

    @property
    def last_handoff(self) -> HandoffRecord | None:
        return self.assignment_path[-1] if self.assignment_path else None


class StaffMember(BaseModel):
    id: str
    name: str
    role: Role = Role.STAFF
    department: str | None = None

    model_config = {"frozen": True}
