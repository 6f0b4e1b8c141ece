from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from .. import database, schemas, oauth2
from ..directory import SqlStaffDirectory
from ..lifecycle.complaint import Actor, Role, StaffMember
from ..lifecycle.errors import Unauthorized, ValidationError
from ..schemas import ResponseModel

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get("/department", response_model=ResponseModel[list[StaffMember]])
def get_department_staff(
    department: str | None = None,
    actor: Actor = Depends(oauth2.get_current_actor),
    db: Session = Depends(database.get_db),
):
    if actor.role not in (Role.STAFF, Role.HOD, Role.DEAN, Role.ADMIN):
        raise Unauthorized("Only staff can browse the staff directory")

    # staff and HOD are pinned to their own department
    if department is None or actor.role in (Role.STAFF, Role.HOD):
        department = actor.department
    if not department:
        raise ValidationError("department is required")

    members = SqlStaffDirectory(db).list_staff_in_department(department)
    return ResponseModel(
        metadata=schemas.Metadata(status_code=200, success=True),
        data=members,
    )
