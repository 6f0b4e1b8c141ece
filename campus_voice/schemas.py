from datetime import datetime
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from .lifecycle.complaint import (
    Complaint,
    Feedback,
    HandoffRecord,
    Priority,
    Role,
    Status,
)

T = TypeVar("T")


class TokenData(BaseModel):
    email: str | None = None


class Metadata(BaseModel):
    timestamp: datetime = Field(default_factory=datetime.now)
    status_code: int
    success: bool


class ResponseModel(BaseModel, Generic[T]):
    metadata: Metadata
    data: Optional[T] = None


class ComplaintCreate(BaseModel):
    title: str
    description: str
    category: str
    priority: Priority = Priority.MEDIUM
    anonymous: bool = False
    target: str = "staff"  # staff or dean


class AssignComplaint(BaseModel):
    staff_id: str
    deadline: datetime | None = None


class RejectComplaint(BaseModel):
    reason: str | None = None


class ProgressUpdate(BaseModel):
    note: str


class ResolveComplaint(BaseModel):
    note: str | None = None


class FeedbackCreate(BaseModel):
    rating: int
    comment: str | None = None


class ComplaintOut(BaseModel):
    id: str
    title: str
    description: str
    category: str
    priority: Priority
    status: Status
    submitted_by: str
    submitted_to: str
    department: str
    target_role: Role
    assigned_staff: str | None = None
    assigned_staff_role: Role | None = None
    assignment_path: list[HandoffRecord]
    submitted_date: datetime
    last_updated: datetime
    deadline: datetime | None = None
    resolved_at: datetime | None = None
    resolution_note: str | None = None
    feedback: Feedback | None = None
    is_escalated: bool
    escalated_on: datetime | None = None
    is_overdue: bool
    urgency: str | None = None

    @classmethod
    def build(
        cls, complaint: Complaint, is_overdue: bool, urgency: str | None
    ) -> "ComplaintOut":
        # owner_id never leaves the service; it would unmask anonymous complaints
        data = complaint.model_dump(exclude={"owner_id", "version"})
        return cls(**data, is_overdue=is_overdue, urgency=urgency)
