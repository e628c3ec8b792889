import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Enum, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from db.session import Base


class VerificationType(str, enum.Enum):
    AUTOMATIC = "Automatic"
    MANUAL = "Manual"


class AssignmentStatus(str, enum.Enum):
    PENDING = "Pending"
    SUBMITTED = "Submitted"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


def _enum_column(enum_cls, default):
    return Column(
        Enum(enum_cls, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=default,
        nullable=False,
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False, default="")
    points = Column(Integer, default=0, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
    required_media = Column(Boolean, default=False, nullable=False)
    verification_type = _enum_column(VerificationType, VerificationType.MANUAL)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TaskAssignment(Base):
    __tablename__ = "task_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(36), ForeignKey("accounts.id"), index=True, nullable=False)
    task_id = Column(Integer, ForeignKey("tasks.id"), index=True, nullable=False)
    status = _enum_column(AssignmentStatus, AssignmentStatus.PENDING)
    points_earned = Column(Integer, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    # "<user_id>:<task_id>" while non-terminal, NULL once terminal
    open_key = Column(String(100), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    task = relationship("Task", lazy="joined")
    __table_args__ = (
        Index("ix_task_assignments_user_task", "user_id", "task_id"),
    )


class Submission(Base):
    __tablename__ = "task_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_assignment_id = Column(Integer, ForeignKey("task_assignments.id"), unique=True, nullable=False)
    screenshot_ref = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    submitted_at = Column(DateTime(timezone=True), server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_by = Column(String(36), nullable=True)
    decision_notes = Column(Text, nullable=True)

    assignment = relationship("TaskAssignment", lazy="joined")
    __table_args__ = (
        Index("ix_task_submissions_reviewed_submitted", "reviewed_at", "submitted_at"),
    )
