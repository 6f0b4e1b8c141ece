import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from campus_voice.lifecycle import state_machine
from campus_voice.lifecycle.complaint import HandoffAction, Role, Status
from campus_voice.lifecycle.errors import (
    AlreadyAccepted,
    AlreadySubmitted,
    ConflictError,
    InvalidTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from campus_voice.service import ComplaintService

from conftest import NOW


@pytest.fixture
def submitted(service, student, complaint_fields):
    return service.submit_complaint(student, complaint_fields, "staff")


@pytest.fixture
def assigned(service, submitted, hod):
    return service.assign(hod, submitted.id, "staff-42", deadline=NOW + timedelta(days=3))


@pytest.fixture
def in_progress(service, assigned, staff42):
    return service.accept(staff42, assigned.id)


@pytest.fixture
def resolved(service, in_progress, staff42):
    return service.resolve(staff42, in_progress.id, "Replaced the bulb")


def test_submit_to_department_staff(service, student, complaint_fields, notifier):
    complaint = service.submit_complaint(student, complaint_fields, "staff")

    assert complaint.submitted_to == "Staff (IT)"
    assert complaint.status == Status.PENDING
    assert [r.action for r in complaint.assignment_path] == [HandoffAction.SUBMITTED]
    assert complaint.version == 1
    assert notifier.events == [("complaint.submitted", complaint.id)]


def test_assign_pending_complaint(service, submitted, hod, notifier):
    deadline = NOW + timedelta(days=5)

    complaint = service.assign(hod, submitted.id, "staff-42", deadline=deadline)

    assert complaint.status == Status.ASSIGNED
    assert complaint.assigned_staff == "staff-42"
    assert complaint.deadline == deadline
    assert len(complaint.assignment_path) == 2
    assert ("complaint.assigned", complaint.id) in notifier.events


def test_assign_then_list_path_ends_with_caller(service, submitted, hod):
    service.assign(hod, submitted.id, "staff-7", deadline=NOW + timedelta(days=1))

    path = service.list_assignment_path(hod, submitted.id)

    assert path[-1].action == HandoffAction.ASSIGNED
    assert path[-1].actor_id == hod.id
    assert path[-1].role == Role.HOD


def test_assign_unknown_staff_is_not_found(service, submitted, hod, dean):
    with pytest.raises(NotFound):
        service.assign(hod, submitted.id, "ghost", deadline=None)
    with pytest.raises(NotFound):
        service.assign(dean, submitted.id, "ghost", deadline=None)


def test_hod_cannot_assign_staff_from_other_department(service, submitted, hod):
    with pytest.raises(Unauthorized):
        service.assign(hod, submitted.id, "staff-cs")


def test_dean_assigns_across_departments(service, submitted, dean):
    complaint = service.assign(dean, submitted.id, "staff-cs")

    assert complaint.assigned_staff == "staff-cs"


def test_assign_on_closed_complaint_reports_transition_first(service, submitted, hod):
    service.reject(hod, submitted.id, "Duplicate")

    with pytest.raises(InvalidTransition):
        service.assign(hod, submitted.id, "ghost")


def test_unknown_complaint(service, hod):
    with pytest.raises(NotFound):
        service.accept(hod, "missing")


def test_concurrent_accepts_have_one_winner(repository, directory, clock, assigned, staff42, dean):
    class BarrierRepository:
        """Holds every thread's first read until both have read."""

        def __init__(self, inner):
            self.inner = inner
            self.barrier = threading.Barrier(2)
            self.seen = threading.local()

        def load_complaint(self, complaint_id):
            complaint = self.inner.load_complaint(complaint_id)
            if not getattr(self.seen, "done", False):
                self.seen.done = True
                self.barrier.wait(timeout=5)
            return complaint

        def save_complaint(self, complaint):
            return self.inner.save_complaint(complaint)

        def list_complaints(self, status=None):
            return self.inner.list_complaints(status)

    racing = ComplaintService(BarrierRepository(repository), directory, clock=clock)

    def attempt(actor):
        try:
            return racing.accept(actor, assigned.id)
        except AlreadyAccepted as err:
            return err

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(attempt, [staff42, dean]))

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, AlreadyAccepted)]
    assert len(winners) == 1
    assert len(losers) == 1

    stored = repository.load_complaint(assigned.id)
    assert stored.status == Status.IN_PROGRESS
    assert stored.assigned_staff == winners[0].assigned_staff
    accepted = [r for r in stored.assignment_path if r.action == HandoffAction.ACCEPTED]
    assert len(accepted) == 1


def test_stale_write_is_a_conflict(service, repository, submitted, hod, staff42):
    stale = repository.load_complaint(submitted.id)
    service.accept(staff42, submitted.id)

    with pytest.raises(ConflictError):
        repository.save_complaint(stale.model_copy(update={"title": "Edited"}))

    assert repository.load_complaint(submitted.id).status == Status.IN_PROGRESS


def test_sequential_second_accept(service, in_progress, dean):
    with pytest.raises(AlreadyAccepted):
        service.accept(dean, in_progress.id)


def test_resolving_past_deadline_clears_overdue(service, submitted, hod, staff42, clock):
    service.assign(hod, submitted.id, "staff-42", deadline=NOW - timedelta(days=3))
    complaint = service.accept(staff42, submitted.id)
    assert service.is_overdue(complaint) is True

    clock.advance(days=2)
    resolved = service.resolve(staff42, submitted.id)

    assert resolved.status == Status.RESOLVED
    assert resolved.resolved_at == clock.now()
    assert service.is_overdue(resolved) is False
    assert service.is_overdue(resolved, clock.now() + timedelta(days=400)) is False


def test_invalid_rating_leaves_complaint_unchanged(service, resolved, student):
    with pytest.raises(ValidationError):
        service.submit_feedback(student, resolved.id, 6, "great")

    stored = service.get_complaint(student, resolved.id)
    assert stored.feedback is None
    assert stored.version == resolved.version


def test_feedback_twice_keeps_first(service, resolved, student):
    service.submit_feedback(student, resolved.id, 5, "Thanks")

    with pytest.raises(AlreadySubmitted):
        service.submit_feedback(student, resolved.id, 2, "Meh")

    stored = service.get_complaint(student, resolved.id)
    assert stored.feedback.rating == 5
    assert stored.feedback.comment == "Thanks"
    assert stored.status == Status.RESOLVED


def test_auto_close_on_feedback(repository, directory, clock, resolved, student):
    auto = ComplaintService(repository, directory, clock=clock, auto_close_on_feedback=True)

    complaint = auto.submit_feedback(student, resolved.id, 4)

    assert complaint.status == Status.CLOSED
    assert complaint.feedback.rating == 4
    assert complaint.resolved_at == resolved.resolved_at
    assert complaint.last_handoff.action == HandoffAction.CLOSED
    assert complaint.last_handoff.role == Role.SYSTEM


def test_close_keeps_resolved_at(service, resolved, admin, clock):
    clock.advance(days=4)

    closed = service.close(admin, resolved.id)

    assert closed.status == Status.CLOSED
    assert closed.resolved_at == resolved.resolved_at


def test_progress_update(service, assigned, staff42):
    complaint = service.add_progress_update(staff42, assigned.id, "Waiting on parts")

    assert complaint.status == Status.IN_PROGRESS
    assert complaint.resolution_note == "Waiting on parts"


def test_reassign_clears_deadline(service, in_progress, hod):
    complaint = service.reassign(hod, in_progress.id, "staff-7")

    assert complaint.status == Status.ASSIGNED
    assert complaint.assigned_staff == "staff-7"
    assert complaint.deadline is None


def test_path_and_status_never_drift(service, resolved, admin):
    closed = service.close(admin, resolved.id)

    actions = [r.action for r in closed.assignment_path]
    assert actions == [
        HandoffAction.SUBMITTED,
        HandoffAction.ASSIGNED,
        HandoffAction.ACCEPTED,
        HandoffAction.RESOLVED,
        HandoffAction.CLOSED,
    ]


def test_visibility_is_enforced_on_reads(service, submitted, cs_hod, other_student):
    with pytest.raises(Unauthorized):
        service.get_complaint(cs_hod, submitted.id)
    with pytest.raises(Unauthorized):
        service.list_assignment_path(other_student, submitted.id)
    assert service.list_complaints(cs_hod) == []


def test_escalation_sweep_climbs_one_rung_per_sla(service, submitted, clock, notifier):
    assert service.escalate_due() == []

    clock.advance(hours=49)
    (first,) = service.escalate_due()
    assert first.target_role == Role.HOD
    assert first.is_escalated is True
    assert first.status == Status.PENDING
    assert first.last_handoff.action == HandoffAction.ESCALATED
    assert service.escalate_due() == []

    clock.advance(hours=49)
    (second,) = service.escalate_due()
    assert second.target_role == Role.DEAN

    clock.advance(hours=49)
    (third,) = service.escalate_due()
    assert third.target_role == Role.ADMIN

    clock.advance(hours=49)
    assert service.escalate_due() == []
    with pytest.raises(InvalidTransition):
        service.escalate(submitted.id)
    assert ("complaint.escalated", submitted.id) in notifier.events


def test_notification_failure_does_not_fail_operation(repository, directory, clock, student, complaint_fields):
    class BrokenNotifier:
        def notify(self, event, complaint):
            raise RuntimeError("mail server down")

    service = ComplaintService(repository, directory, clock=clock, notifier=BrokenNotifier())

    complaint = service.submit_complaint(student, complaint_fields, "dean")

    assert repository.load_complaint(complaint.id).submitted_to == "Dean (Head of All Departments)"


def test_hod_cannot_act_on_unassigned_dean_queue(service, student, complaint_fields, hod):
    complaint = service.submit_complaint(student, complaint_fields, "dean")

    with pytest.raises(Unauthorized):
        service.get_complaint(hod, complaint.id)
    with pytest.raises(Unauthorized):
        service.assign(hod, complaint.id, "staff-42")
    with pytest.raises(Unauthorized):
        service.reject(hod, complaint.id, "Not ours")

    stored = service.get_complaint(student, complaint.id)
    assert stored.status == Status.PENDING
    assert stored.version == complaint.version


def test_hod_acts_on_dean_complaint_once_assigned_in_department(
    service, student, complaint_fields, hod, dean
):
    complaint = service.submit_complaint(student, complaint_fields, "dean")
    service.assign(dean, complaint.id, "staff-42")

    reassigned = service.reassign(hod, complaint.id, "staff-7")

    assert reassigned.assigned_staff == "staff-7"


def test_sweep_skips_complaints_assigned_since_listing(
    repository, directory, clock, student, complaint_fields, hod
):
    class SnapshotRepository:
        """Lists complaints as they were when the snapshot was taken."""

        def __init__(self, inner):
            self.inner = inner
            self.snapshot = None

        def load_complaint(self, complaint_id):
            return self.inner.load_complaint(complaint_id)

        def save_complaint(self, complaint):
            return self.inner.save_complaint(complaint)

        def list_complaints(self, status=None):
            return self.snapshot

    snapshots = SnapshotRepository(repository)
    sweeper = ComplaintService(
        snapshots, directory, clock=clock, escalation_sla=timedelta(hours=48)
    )
    first = sweeper.submit_complaint(student, complaint_fields, "staff")
    second = sweeper.submit_complaint(student, complaint_fields, "staff")
    snapshots.snapshot = repository.list_complaints()
    sweeper.assign(hod, second.id, "staff-42")
    clock.advance(hours=49)

    escalated = sweeper.escalate_due()

    assert [c.id for c in escalated] == [first.id]
    assert repository.load_complaint(first.id).target_role == Role.HOD
    assert repository.load_complaint(second.id).status == Status.ASSIGNED


def test_auto_close_after_feedback_tolerates_an_earlier_close(
    repository, directory, clock, resolved, student, admin
):
    class AdminClosesFirst:
        """Lets an admin close the complaint right after feedback is stored."""

        def __init__(self, inner):
            self.inner = inner

        def load_complaint(self, complaint_id):
            return self.inner.load_complaint(complaint_id)

        def save_complaint(self, complaint):
            saved = self.inner.save_complaint(complaint)
            if saved.feedback is not None and saved.status == Status.RESOLVED:
                self.inner.save_complaint(state_machine.close(saved, admin, clock.now()))
            return saved

        def list_complaints(self, status=None):
            return self.inner.list_complaints(status)

    auto = ComplaintService(
        AdminClosesFirst(repository), directory, clock=clock, auto_close_on_feedback=True
    )

    complaint = auto.submit_feedback(student, resolved.id, 5, "ok")

    assert complaint.feedback.rating == 5
    stored = repository.load_complaint(resolved.id)
    assert stored.status == Status.CLOSED
    assert stored.feedback.rating == 5
    assert stored.last_handoff.actor_id == admin.id
