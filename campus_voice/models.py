import uuid
from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.sql.sqltypes import TIMESTAMP
from .database import Base


class Complaint(Base):
    __tablename__ = "complaints"

    id = Column(
        String,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        nullable=False,
    )
    title = Column(String, nullable=False)
    description = Column(String, nullable=False)
    category = Column(String, nullable=False)
    priority = Column(String, nullable=False, default="Medium")
    status = Column(String, nullable=False)  # Pending, Assigned, In Progress, ...
    submitted_by = Column(String, nullable=False)  # user id or "Anonymous"
    owner_id = Column(String, ForeignKey("users.id"), nullable=False)
    submitted_to = Column(String, nullable=False)
    department = Column(String, nullable=False)
    target_role = Column(String, nullable=False)
    assigned_staff = Column(String, ForeignKey("users.id"))
    assigned_staff_role = Column(String)
    deadline = Column(TIMESTAMP(timezone=True))
    submitted_date = Column(TIMESTAMP(timezone=True), nullable=False)
    last_updated = Column(TIMESTAMP(timezone=True), nullable=False)
    resolved_at = Column(TIMESTAMP(timezone=True))
    resolution_note = Column(String)
    feedback_rating = Column(Integer)
    feedback_comment = Column(String)
    feedback_submitted_at = Column(TIMESTAMP(timezone=True))
    is_escalated = Column(Boolean, nullable=False, default=False)
    escalated_on = Column(TIMESTAMP(timezone=True))
    version = Column(Integer, nullable=False)

    handoffs = relationship(
        "ComplaintHandoff",
        back_populates="complaint",
        order_by="ComplaintHandoff.position",
        cascade="all, delete-orphan",
    )

    # the repository sets the next version itself; UPDATEs are guarded by the old one
    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}


class ComplaintHandoff(Base):
    __tablename__ = "complaint_handoffs"
    __table_args__ = (UniqueConstraint("complaint_id", "position"),)

    id = Column(Integer, primary_key=True, nullable=False)
    complaint_id = Column(
        String,
        ForeignKey("complaints.id", ondelete="CASCADE"),
        nullable=False,
    )
    position = Column(Integer, nullable=False)
    role = Column(String, nullable=False)
    actor_id = Column(String, nullable=False)
    action = Column(String, nullable=False)  # submitted, assigned, escalated, ...
    target_id = Column(String)
    target_role = Column(String)
    note = Column(String)
    timestamp = Column(TIMESTAMP(timezone=True), nullable=False)

    complaint = relationship("Complaint", back_populates="handoffs")


class User(Base):
    __tablename__ = "users"

    id = Column(
        String,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        nullable=False,
    )
    email = Column(String, unique=True, nullable=False)
    fullname = Column(String, nullable=False)
    role = Column(String, nullable=False)  # student, staff, headOfDepartment, dean, admin
    department = Column(String)  # not required for dean or admin
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
