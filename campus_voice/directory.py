from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .lifecycle.complaint import StaffMember, normalize_role
from .lifecycle.errors import ValidationError
from .lifecycle.state_machine import ASSIGNABLE_ROLES


def _to_member(user: models.User) -> StaffMember | None:
    # stored labels vary ("HOD", "Head of Department", ...)
    try:
        role = normalize_role(user.role)
    except ValidationError:
        return None
    if role not in ASSIGNABLE_ROLES:
        return None
    return StaffMember(
        id=user.id,
        name=user.fullname,
        role=role,
        department=user.department,
    )


class SqlStaffDirectory:
    def __init__(self, db: Session):
        self.db = db

    def list_staff_in_department(self, department: str) -> list[StaffMember]:
        users = (
            self.db.query(models.User)
            .filter(models.User.is_active.is_(True))
            .filter(func.lower(models.User.department) == department.strip().lower())
            .order_by(models.User.fullname)
            .all()
        )
        members = (_to_member(user) for user in users)
        return [member for member in members if member is not None]

    def find_staff(self, staff_id: str) -> StaffMember | None:
        user = (
            self.db.query(models.User)
            .filter(models.User.id == staff_id)
            .filter(models.User.is_active.is_(True))
            .first()
        )
        return _to_member(user) if user else None


class InMemoryStaffDirectory:
    def __init__(self, members: list[StaffMember] | None = None):
        self._members = {member.id: member for member in members or []}

    def list_staff_in_department(self, department: str) -> list[StaffMember]:
        wanted = department.strip().casefold()
        return [
            member
            for member in self._members.values()
            if member.department and member.department.strip().casefold() == wanted
        ]

    def find_staff(self, staff_id: str) -> StaffMember | None:
        return self._members.get(staff_id)
