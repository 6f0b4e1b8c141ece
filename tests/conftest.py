"""
Test configuration and fixtures.

Provides:
- A fixed, advanceable clock
- An in-memory repository and staff directory wired into a ComplaintService
- Actors for every role, all in the IT department unless stated otherwise
"""
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

# Point the app at a throwaway database before anything imports the settings
_db_dir = tempfile.mkdtemp(prefix="campus-voice-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ.pop("NOVU_SECRET_KEY", None)

from campus_voice.directory import InMemoryStaffDirectory
from campus_voice.lifecycle import routing
from campus_voice.lifecycle.complaint import Actor, Role, StaffMember
from campus_voice.repository import InMemoryComplaintRepository
from campus_voice.service import ComplaintService

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def notify(self, event, complaint):
        self.events.append((event, complaint.id))


STAFF = [
    StaffMember(id="staff-42", name="Ada Obi", role=Role.STAFF, department="IT"),
    StaffMember(id="staff-7", name="Bola Ade", role=Role.STAFF, department="it"),
    StaffMember(id="staff-cs", name="Chidi Eze", role=Role.STAFF, department="CS"),
    StaffMember(id="hod-it", name="Dayo Bello", role=Role.HOD, department="IT"),
    StaffMember(id="dean-1", name="Efe Musa", role=Role.DEAN),
    StaffMember(id="admin-1", name="Funmi Lawal", role=Role.ADMIN),
]


# =============================================================================
# Actors
# =============================================================================

@pytest.fixture
def student() -> Actor:
    return Actor(id="stu-1", role=Role.STUDENT, department="IT")


@pytest.fixture
def other_student() -> Actor:
    return Actor(id="stu-2", role=Role.STUDENT, department="IT")


@pytest.fixture
def staff42() -> Actor:
    return Actor(id="staff-42", role=Role.STAFF, department="IT")


@pytest.fixture
def staff7() -> Actor:
    return Actor(id="staff-7", role=Role.STAFF, department="IT")


@pytest.fixture
def cs_staff() -> Actor:
    return Actor(id="staff-cs", role=Role.STAFF, department="CS")


@pytest.fixture
def hod() -> Actor:
    return Actor(id="hod-it", role=Role.HOD, department="IT")


@pytest.fixture
def cs_hod() -> Actor:
    return Actor(id="hod-cs", role=Role.HOD, department="CS")


@pytest.fixture
def dean() -> Actor:
    return Actor(id="dean-1", role=Role.DEAN)


@pytest.fixture
def admin() -> Actor:
    return Actor(id="admin-1", role=Role.ADMIN)


# =============================================================================
# Service wiring
# =============================================================================

@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def repository() -> InMemoryComplaintRepository:
    return InMemoryComplaintRepository()


@pytest.fixture
def directory() -> InMemoryStaffDirectory:
    return InMemoryStaffDirectory(STAFF)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(repository, directory, clock, notifier) -> ComplaintService:
    return ComplaintService(
        repository=repository,
        directory=directory,
        clock=clock,
        notifier=notifier,
        timezone="UTC",
        escalation_sla=timedelta(hours=48),
        auto_close_on_feedback=False,
    )


@pytest.fixture
def complaint_fields() -> dict:
    return {
        "title": "Projector broken in Lab 3",
        "description": "The projector has not worked since Monday.",
        "category": "Facilities",
    }


@pytest.fixture
def make_complaint(student, complaint_fields):
    """Build an unsaved complaint, optionally overriding fields."""

    def _make(target_choice="staff", actor=None, now=NOW, **overrides):
        complaint = routing.open_complaint(
            actor or student,
            target_choice=target_choice,
            now=now,
            **complaint_fields,
        )
        return complaint.model_copy(update=overrides) if overrides else complaint

    return _make
