from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from .. import database, oauth2, schemas
from ..directory import SqlStaffDirectory
from ..lifecycle.complaint import Actor, Complaint, HandoffRecord, Role, Status
from ..lifecycle.errors import Unauthorized
from ..notifications import notifier_from_settings
from ..repository import SqlComplaintRepository
from ..schemas import ResponseModel
from ..service import ComplaintService

router = APIRouter(prefix="/complaint", tags=["complaints"])

notifier = notifier_from_settings()


def get_service(db: Session = Depends(database.get_db)) -> ComplaintService:
    return ComplaintService(
        repository=SqlComplaintRepository(db),
        directory=SqlStaffDirectory(db),
        notifier=notifier,
    )


def _out(service: ComplaintService, complaint: Complaint) -> schemas.ComplaintOut:
    return schemas.ComplaintOut.build(
        complaint,
        is_overdue=service.is_overdue(complaint),
        urgency=service.urgency(complaint),
    )


def _respond(service: ComplaintService, complaint: Complaint, status_code: int = 200):
    return ResponseModel(
        metadata=schemas.Metadata(status_code=status_code, success=True),
        data=_out(service, complaint),
    )


@router.post(
    "/",
    status_code=status.HTTP_201_CREATED,
    response_model=ResponseModel[schemas.ComplaintOut],
)
def submit_complaint(
    complaint: schemas.ComplaintCreate,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    fields = complaint.model_dump(exclude={"target"})
    created = service.submit_complaint(actor, fields, complaint.target)
    return _respond(service, created, status_code=201)


@router.get("/", response_model=ResponseModel[list[schemas.ComplaintOut]])
def get_all_complaints(
    status_filter: Status | None = Query(None, alias="status"),
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    complaints = service.list_complaints(actor, status=status_filter)
    return ResponseModel(
        metadata=schemas.Metadata(status_code=200, success=True),
        data=[_out(service, c) for c in complaints],
    )


@router.post("/escalations", response_model=ResponseModel[list[schemas.ComplaintOut]])
def run_escalations(
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    if actor.role != Role.ADMIN:
        raise Unauthorized("Only an admin can run the escalation sweep")

    escalated = service.escalate_due()
    return ResponseModel(
        metadata=schemas.Metadata(status_code=200, success=True),
        data=[_out(service, c) for c in escalated],
    )


@router.get("/{complaint_id}", response_model=ResponseModel[schemas.ComplaintOut])
def get_complaint_by_id(
    complaint_id: str,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    return _respond(service, service.get_complaint(actor, complaint_id))


@router.get(
    "/{complaint_id}/assignment-path",
    response_model=ResponseModel[list[HandoffRecord]],
)
def get_assignment_path(
    complaint_id: str,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    return ResponseModel(
        metadata=schemas.Metadata(status_code=200, success=True),
        data=service.list_assignment_path(actor, complaint_id),
    )


@router.patch("/{complaint_id}/assign", response_model=ResponseModel[schemas.ComplaintOut])
def assign_complaint(
    complaint_id: str,
    assignment: schemas.AssignComplaint,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    complaint = service.assign(
        actor, complaint_id, assignment.staff_id, deadline=assignment.deadline
    )
    return _respond(service, complaint)


@router.patch(
    "/{complaint_id}/reassign", response_model=ResponseModel[schemas.ComplaintOut]
)
def reassign_complaint(
    complaint_id: str,
    assignment: schemas.AssignComplaint,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    complaint = service.reassign(
        actor, complaint_id, assignment.staff_id, deadline=assignment.deadline
    )
    return _respond(service, complaint)


@router.patch("/{complaint_id}/accept", response_model=ResponseModel[schemas.ComplaintOut])
def accept_complaint(
    complaint_id: str,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    return _respond(service, service.accept(actor, complaint_id))


@router.patch("/{complaint_id}/reject", response_model=ResponseModel[schemas.ComplaintOut])
def reject_complaint(
    complaint_id: str,
    rejection: schemas.RejectComplaint | None = None,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    reason = rejection.reason if rejection else None
    return _respond(service, service.reject(actor, complaint_id, reason=reason))


@router.patch(
    "/{complaint_id}/progress", response_model=ResponseModel[schemas.ComplaintOut]
)
def add_progress_update(
    complaint_id: str,
    update: schemas.ProgressUpdate,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    return _respond(service, service.add_progress_update(actor, complaint_id, update.note))


@router.patch(
    "/{complaint_id}/resolve", response_model=ResponseModel[schemas.ComplaintOut]
)
def resolve_complaint(
    complaint_id: str,
    resolution: schemas.ResolveComplaint | None = None,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    note = resolution.note if resolution else None
    return _respond(service, service.resolve(actor, complaint_id, note=note))


@router.patch("/{complaint_id}/close", response_model=ResponseModel[schemas.ComplaintOut])
def close_complaint(
    complaint_id: str,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    return _respond(service, service.close(actor, complaint_id))


@router.post(
    "/{complaint_id}/feedback", response_model=ResponseModel[schemas.ComplaintOut]
)
def submit_feedback(
    complaint_id: str,
    feedback: schemas.FeedbackCreate,
    actor: Actor = Depends(oauth2.get_current_actor),
    service: ComplaintService = Depends(get_service),
):
    complaint = service.submit_feedback(
        actor, complaint_id, feedback.rating, comment=feedback.comment
    )
    return _respond(service, complaint)
