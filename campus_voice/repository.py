import logging
import threading
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from . import models
from .lifecycle.complaint import (
    Complaint,
    Feedback,
    HandoffAction,
    HandoffRecord,
    Priority,
    Role,
    Status,
)
from .lifecycle.errors import ConflictError, NotFound
from .lifecycle.path import check_path_invariant, extends

logger = logging.getLogger(__name__)


def _utc(moment: datetime | None) -> datetime | None:
    # SQLite hands back naive values; everything is written as UTC
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _role(value: str | None) -> Role | None:
    return Role(value) if value else None


def _handoff_to_domain(row: models.ComplaintHandoff) -> HandoffRecord:
    return HandoffRecord(
        role=Role(row.role),
        actor_id=row.actor_id,
        action=HandoffAction(row.action),
        timestamp=_utc(row.timestamp),
        target_id=row.target_id,
        target_role=_role(row.target_role),
        note=row.note,
    )


def _to_domain(row: models.Complaint) -> Complaint:
    feedback = None
    if row.feedback_rating is not None:
        feedback = Feedback(
            rating=row.feedback_rating,
            comment=row.feedback_comment,
            submitted_at=_utc(row.feedback_submitted_at),
        )

    return Complaint(
        id=row.id,
        title=row.title,
        description=row.description,
        category=row.category,
        priority=Priority(row.priority),
        status=Status(row.status),
        submitted_by=row.submitted_by,
        owner_id=row.owner_id,
        submitted_to=row.submitted_to,
        department=row.department,
        target_role=Role(row.target_role),
        assigned_staff=row.assigned_staff,
        assigned_staff_role=_role(row.assigned_staff_role),
        assignment_path=tuple(_handoff_to_domain(h) for h in row.handoffs),
        submitted_date=_utc(row.submitted_date),
        last_updated=_utc(row.last_updated),
        deadline=_utc(row.deadline),
        resolved_at=_utc(row.resolved_at),
        resolution_note=row.resolution_note,
        feedback=feedback,
        is_escalated=bool(row.is_escalated),
        escalated_on=_utc(row.escalated_on),
        version=row.version,
    )


def _copy_to_row(complaint: Complaint, row: models.Complaint) -> None:
    row.title = complaint.title
    row.description = complaint.description
    row.category = complaint.category
    row.priority = complaint.priority.value
    row.status = complaint.status.value
    row.submitted_by = complaint.submitted_by
    row.owner_id = complaint.owner_id
    row.submitted_to = complaint.submitted_to
    row.department = complaint.department
    row.target_role = complaint.target_role.value
    row.assigned_staff = complaint.assigned_staff
    row.assigned_staff_role = (
        complaint.assigned_staff_role.value if complaint.assigned_staff_role else None
    )
    row.deadline = _utc(complaint.deadline)
    row.submitted_date = _utc(complaint.submitted_date)
    row.last_updated = _utc(complaint.last_updated)
    row.resolved_at = _utc(complaint.resolved_at)
    row.resolution_note = complaint.resolution_note
    if complaint.feedback is not None:
        row.feedback_rating = complaint.feedback.rating
        row.feedback_comment = complaint.feedback.comment
        row.feedback_submitted_at = _utc(complaint.feedback.submitted_at)
    row.is_escalated = complaint.is_escalated
    row.escalated_on = _utc(complaint.escalated_on)
    row.version = complaint.version + 1


class SqlComplaintRepository:
    """Complaint storage on SQLAlchemy.

    A save writes the complaint row and the new tail of its hand-off log in
    one commit. The row's ``version`` column guards the UPDATE, so of two
    writers that loaded the same version only the first one lands.
    """

    def __init__(self, db: Session):
        self.db = db

    def _query(self):
        return (
            self.db.query(models.Complaint)
            .options(selectinload(models.Complaint.handoffs))
            .populate_existing()
        )

    def load_complaint(self, complaint_id: str) -> Complaint:
        row = self._query().filter(models.Complaint.id == complaint_id).first()
        if not row:
            raise NotFound(f"Complaint with id {complaint_id} doesn't exist")
        return _to_domain(row)

    def list_complaints(self, status: Status | None = None) -> list[Complaint]:
        query = self._query()
        if status is not None:
            query = query.filter(models.Complaint.status == status.value)
        rows = query.order_by(models.Complaint.submitted_date.desc()).all()
        return [_to_domain(row) for row in rows]

    def save_complaint(self, complaint: Complaint) -> Complaint:
        check_path_invariant(complaint)
        try:
            row = self._query().filter(models.Complaint.id == complaint.id).first()

            if row is None:
                if complaint.version != 0:
                    raise NotFound(f"Complaint with id {complaint.id} doesn't exist")
                row = models.Complaint(id=complaint.id)
                self.db.add(row)
                stored = ()
            else:
                stored = tuple(_handoff_to_domain(h) for h in row.handoffs)
                if row.version != complaint.version or not extends(
                    stored, complaint.assignment_path
                ):
                    raise ConflictError(
                        f"Complaint {complaint.id} changed since it was read "
                        f"(version {complaint.version}, stored {row.version})"
                    )

            _copy_to_row(complaint, row)
            for position in range(len(stored), len(complaint.assignment_path)):
                record = complaint.assignment_path[position]
                row.handoffs.append(
                    models.ComplaintHandoff(
                        position=position,
                        role=record.role.value,
                        actor_id=record.actor_id,
                        action=record.action.value,
                        target_id=record.target_id,
                        target_role=(
                            record.target_role.value if record.target_role else None
                        ),
                        note=record.note,
                        timestamp=_utc(record.timestamp),
                    )
                )
            self.db.commit()
        except (ConflictError, NotFound):
            self.db.rollback()
            raise
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            raise ConflictError(
                f"Complaint {complaint.id} was modified concurrently"
            ) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error saving complaint {complaint.id}: {str(e)}")
            raise

        return self.load_complaint(complaint.id)


class InMemoryComplaintRepository:
    """Dictionary-backed repository with the same version check as the SQL one."""

    def __init__(self, complaints: list[Complaint] | None = None):
        self._lock = threading.Lock()
        self._complaints: dict[str, Complaint] = {}
        for complaint in complaints or []:
            self._complaints[complaint.id] = complaint

    def load_complaint(self, complaint_id: str) -> Complaint:
        with self._lock:
            complaint = self._complaints.get(complaint_id)
        if complaint is None:
            raise NotFound(f"Complaint with id {complaint_id} doesn't exist")
        return complaint

    def list_complaints(self, status: Status | None = None) -> list[Complaint]:
        with self._lock:
            complaints = list(self._complaints.values())
        if status is not None:
            complaints = [c for c in complaints if c.status == status]
        return sorted(complaints, key=lambda c: c.submitted_date, reverse=True)

    def save_complaint(self, complaint: Complaint) -> Complaint:
        check_path_invariant(complaint)
        with self._lock:
            current = self._complaints.get(complaint.id)
            if current is None and complaint.version != 0:
                raise NotFound(f"Complaint with id {complaint.id} doesn't exist")
            expected = current.version if current else 0
            if complaint.version != expected or (
                current is not None
                and not extends(current.assignment_path, complaint.assignment_path)
            ):
                raise ConflictError(
                    f"Complaint {complaint.id} changed since it was read "
                    f"(version {complaint.version}, stored {expected})"
                )
            saved = complaint.model_copy(update={"version": expected + 1})
            self._complaints[complaint.id] = saved
        return saved
