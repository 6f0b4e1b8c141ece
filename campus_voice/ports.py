"""
Contracts the complaint service consumes. Storage, the staff directory, the
clock and notification delivery are all supplied from outside.
"""

from datetime import datetime, timezone
from typing import Protocol

from .lifecycle.complaint import Complaint, StaffMember, Status


class ComplaintRepository(Protocol):
    def load_complaint(self, complaint_id: str) -> Complaint:
        """Return the stored complaint or raise ``NotFound``."""

    def save_complaint(self, complaint: Complaint) -> Complaint:
        """Persist ``complaint`` and its path atomically.

        Raises ``ConflictError`` when the stored version is not the one the
        complaint was loaded at. Returns the complaint with its new version.
        """

    def list_complaints(self, status: Status | None = None) -> list[Complaint]: ...


class StaffDirectory(Protocol):
    def list_staff_in_department(self, department: str) -> list[StaffMember]: ...

    def find_staff(self, staff_id: str) -> StaffMember | None: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class Notifier(Protocol):
    def notify(self, event: str, complaint: Complaint) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class NullNotifier:
    def notify(self, event: str, complaint: Complaint) -> None:
        return None
