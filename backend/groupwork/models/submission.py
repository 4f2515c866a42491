"""Submission aggregate ORM model: one row per (assignment, group)."""
import uuid
import enum
from sqlalchemy import Column, String, Text, Float, Integer, DateTime, JSON, UniqueConstraint, Enum as SAEnum
from sqlalchemy.sql import func
from groupwork.database import Base


class SubmissionStatus(str, enum.Enum):
    submitted = "submitted"
    reviewed = "reviewed"  # declared, never entered by a transition
    graded = "graded"


# Statuses counted as "handed in" by every read path.
HANDED_IN_STATUSES = (SubmissionStatus.submitted, SubmissionStatus.reviewed, SubmissionStatus.graded)


class Submission(Base):
    __tablename__ = "submissions"

    submission_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    assignment_id = Column(String(36), nullable=False, index=True)
    group_id = Column(String(36), nullable=False, index=True)
    status = Column(SAEnum(SubmissionStatus), nullable=False, default=SubmissionStatus.submitted)
    submission_notes = Column(Text, nullable=True)
    files = Column(JSON, nullable=False, default=list)
    grade = Column(Float, nullable=True)
    feedback = Column(Text, nullable=True)
    submitted_by = Column(String(36), nullable=False)
    reviewed_by = Column(String(36), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    version = Column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("assignment_id", "group_id", name="uq_submissions_assignment_group"),
    )
    __mapper_args__ = {"version_id_col": version}
