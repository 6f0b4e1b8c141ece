import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Mapping

from .config import settings
from .lifecycle import deadlines, feedback, routing, state_machine
from .lifecycle.complaint import (
    Actor,
    Complaint,
    HandoffRecord,
    Role,
    StaffMember,
    Status,
)
from .lifecycle.errors import (
    AlreadyAccepted,
    ConflictError,
    InvalidTransition,
    NotFound,
    Unauthorized,
)
from .lifecycle.path import check_path_invariant
from .ports import (
    Clock,
    ComplaintRepository,
    Notifier,
    NullNotifier,
    StaffDirectory,
    SystemClock,
)

logger = logging.getLogger(__name__)

Mutation = Callable[[Complaint, datetime], Complaint]


class ComplaintService:
    """Public complaint operations.

    Every mutating call is one read-modify-write against a single complaint:
    load it, apply a lifecycle function (which extends the assignment path in
    the same copy), then save it under the repository's version check. A lost
    race surfaces as ``ConflictError`` and nothing is written.
    """

    def __init__(
        self,
        repository: ComplaintRepository,
        directory: StaffDirectory,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        timezone: str | None = None,
        escalation_sla: timedelta | None = None,
        auto_close_on_feedback: bool | None = None,
    ):
        self.repository = repository
        self.directory = directory
        self.clock = clock or SystemClock()
        self.notifier = notifier or NullNotifier()
        self.timezone = timezone or settings.timezone
        self.escalation_sla = escalation_sla or timedelta(
            hours=settings.escalation_sla_hours
        )
        self.auto_close_on_feedback = (
            settings.auto_close_on_feedback
            if auto_close_on_feedback is None
            else auto_close_on_feedback
        )

    # * reads

    def get_complaint(self, actor: Actor, complaint_id: str) -> Complaint:
        complaint = self.repository.load_complaint(complaint_id)
        if not routing.is_visible_to(actor, complaint):
            logger.warning(f"Complaint {complaint_id} is not visible to {actor.id}")
            raise Unauthorized(f"You cannot view complaint {complaint_id}")
        return complaint

    def list_complaints(
        self, actor: Actor, status: Status | None = None
    ) -> list[Complaint]:
        return routing.scope_complaints(
            actor, self.repository.list_complaints(status=status)
        )

    def list_assignment_path(
        self, actor: Actor, complaint_id: str
    ) -> list[HandoffRecord]:
        return list(self.get_complaint(actor, complaint_id).assignment_path)

    def is_overdue(self, complaint: Complaint, now: datetime | None = None) -> bool:
        return deadlines.is_overdue(
            complaint, now or self.clock.now(), tz=self.timezone
        )

    def urgency(self, complaint: Complaint, now: datetime | None = None) -> str | None:
        return deadlines.deadline_urgency(
            complaint, now or self.clock.now(), tz=self.timezone
        )

    # * writes

    def submit_complaint(
        self, actor: Actor, fields: Mapping[str, Any], target_choice: str
    ) -> Complaint:
        complaint = routing.open_complaint(
            actor,
            title=fields.get("title"),
            description=fields.get("description"),
            category=fields.get("category"),
            priority=fields.get("priority"),
            anonymous=bool(fields.get("anonymous", False)),
            target_choice=target_choice,
            now=self.clock.now(),
        )
        saved = self.repository.save_complaint(complaint)
        logger.info(
            f"Complaint {saved.id} submitted to {saved.submitted_to} by {actor.id}"
        )
        self._notify("complaint.submitted", saved)
        return saved

    def assign(
        self,
        actor: Actor,
        complaint_id: str,
        staff_id: str,
        deadline: datetime | None = None,
    ) -> Complaint:
        def mutate(complaint: Complaint, now: datetime) -> Complaint:
            state_machine.check_transition(actor, state_machine.ASSIGN, complaint)
            target = self._resolve_target(actor, complaint, staff_id)
            return state_machine.assign(complaint, actor, target, now, deadline)

        return self._apply(complaint_id, actor, "assign", mutate, "complaint.assigned")

    def reassign(
        self,
        actor: Actor,
        complaint_id: str,
        staff_id: str,
        deadline: datetime | None = None,
    ) -> Complaint:
        def mutate(complaint: Complaint, now: datetime) -> Complaint:
            state_machine.check_transition(actor, state_machine.REASSIGN, complaint)
            target = self._resolve_target(actor, complaint, staff_id)
            return state_machine.reassign(complaint, actor, target, now, deadline)

        return self._apply(
            complaint_id, actor, "reassign", mutate, "complaint.reassigned"
        )

    def accept(self, actor: Actor, complaint_id: str) -> Complaint:
        try:
            return self._apply(
                complaint_id,
                actor,
                "accept",
                lambda complaint, now: state_machine.accept(complaint, actor, now),
            )
        except ConflictError as err:
            current = self.repository.load_complaint(complaint_id)
            if current.status == Status.IN_PROGRESS and current.assigned_staff:
                raise AlreadyAccepted(
                    f"Complaint {complaint_id} was already accepted by "
                    f"{current.assigned_staff}"
                ) from err
            raise

    def reject(
        self, actor: Actor, complaint_id: str, reason: str | None = None
    ) -> Complaint:
        return self._apply(
            complaint_id,
            actor,
            "reject",
            lambda complaint, now: state_machine.reject(complaint, actor, now, reason),
            "complaint.rejected",
        )

    def add_progress_update(
        self, actor: Actor, complaint_id: str, note: str
    ) -> Complaint:
        return self._apply(
            complaint_id,
            actor,
            "progress",
            lambda complaint, now: state_machine.add_progress_update(
                complaint, actor, note, now
            ),
        )

    def resolve(
        self, actor: Actor, complaint_id: str, note: str | None = None
    ) -> Complaint:
        return self._apply(
            complaint_id,
            actor,
            "resolve",
            lambda complaint, now: state_machine.resolve(complaint, actor, now, note),
            "complaint.resolved",
        )

    def close(self, actor: Actor, complaint_id: str) -> Complaint:
        return self._apply(
            complaint_id,
            actor,
            "close",
            lambda complaint, now: state_machine.close(complaint, actor, now),
            "complaint.closed",
        )

    def submit_feedback(
        self,
        actor: Actor,
        complaint_id: str,
        rating,
        comment: str | None = None,
    ) -> Complaint:
        complaint = self._apply(
            complaint_id,
            actor,
            "feedback",
            lambda complaint, now: feedback.submit_feedback(
                complaint, actor, rating, now, comment
            ),
        )
        if not self.auto_close_on_feedback:
            return complaint

        # feedback is already stored; a failed auto-close must not undo that
        try:
            return self.close(Actor.system(), complaint_id)
        except (InvalidTransition, ConflictError) as e:
            logger.warning(
                f"Skipped auto-close of complaint {complaint_id} after feedback: {str(e)}"
            )
            return complaint

    def escalate(self, complaint_id: str) -> Complaint:
        system = Actor.system()

        def mutate(complaint: Complaint, now: datetime) -> Complaint:
            next_role = routing.next_escalation_target(complaint)
            return state_machine.escalate(complaint, system, next_role, now)

        return self._apply(
            complaint_id, system, "escalate", mutate, "complaint.escalated"
        )

    def escalate_due(self) -> list[Complaint]:
        """Escalate every complaint that has waited past the SLA, one rung each."""
        now = self.clock.now()
        escalated = []
        for complaint in self.repository.list_complaints():
            if not routing.is_escalation_due(complaint, now, self.escalation_sla):
                continue
            try:
                escalated.append(self.escalate(complaint.id))
            except (ConflictError, InvalidTransition) as e:
                # changed under us; the next sweep sees the fresh state
                logger.warning(
                    f"Skipped escalation of complaint {complaint.id}: {str(e)}"
                )
        logger.info(f"Escalation sweep escalated {len(escalated)} complaint(s)")
        return escalated

    # * helpers

    def _apply(
        self,
        complaint_id: str,
        actor: Actor,
        action: str,
        mutate: Mutation,
        event: str | None = None,
    ) -> Complaint:
        complaint = self.repository.load_complaint(complaint_id)
        # writes are scoped exactly like reads
        if not routing.is_visible_to(actor, complaint):
            logger.warning(
                f"Rejected {action} on complaint {complaint_id}: "
                f"not visible to {actor.id} ({actor.role.value})"
            )
            raise Unauthorized(f"You cannot {action} complaint {complaint_id}")
        updated = mutate(complaint, self.clock.now())
        check_path_invariant(updated)

        try:
            saved = self.repository.save_complaint(updated)
        except ConflictError:
            logger.warning(
                f"Lost race on complaint {complaint_id} during {action} by {actor.id}"
            )
            raise

        logger.info(
            f"Complaint {complaint_id}: {action} by {actor.id} ({actor.role.value}); "
            f"status is now {saved.status.value}"
        )
        if event:
            self._notify(event, saved)
        return saved

    def _resolve_target(
        self, actor: Actor, complaint: Complaint, staff_id: str
    ) -> StaffMember:
        if actor.role in (Role.DEAN, Role.ADMIN):
            target = self.directory.find_staff(staff_id)
            if target is None:
                raise NotFound(f"Staff with id {staff_id} doesn't exist")
            return target

        for member in self.directory.list_staff_in_department(complaint.department):
            if member.id == staff_id:
                return member

        if self.directory.find_staff(staff_id) is None:
            raise NotFound(f"Staff with id {staff_id} doesn't exist")
        logger.warning(
            f"{actor.id} tried to assign {staff_id} outside {complaint.department!r}"
        )
        raise Unauthorized(
            f"Staff {staff_id} is not in department {complaint.department!r}"
        )

    def _notify(self, event: str, complaint: Complaint) -> None:
        try:
            self.notifier.notify(event, complaint)
        except Exception as e:
            logger.error(f"Failed to send {event} notification: {str(e)}")
