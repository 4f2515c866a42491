"""Pydantic schemas for Submissions and group progress."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from groupwork.models.submission import SubmissionStatus
from groupwork.schemas.assignment import AssignmentOut


class FileRefOut(BaseModel):
    filename: str
    original_name: str
    mime_type: Optional[str] = None
    size: int
    uploaded_at: datetime


class SubmissionOut(BaseModel):
    submission_id: str
    assignment_id: str
    group_id: str
    status: SubmissionStatus
    submission_notes: Optional[str] = None
    files: list[FileRefOut] = []
    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted_by: str
    reviewed_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    version: int

    model_config = {"from_attributes": True}


class SubmissionStatusOut(BaseModel):
    assignment_id: str
    group_id: str
    status: str  # "pending" while no submission exists
    submission: Optional[SubmissionOut] = None


class GradeCreate(BaseModel):
    grade: float
    feedback: Optional[str] = None


class ProgressOut(BaseModel):
    total: int
    submitted: int
    graded: int
    pending: int
    completion_percentage: int


class GroupAssignmentOut(AssignmentOut):
    submission_id: Optional[str] = None
    status: str
    grade: Optional[float] = None
    feedback: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None


class AssignmentGroupStatus(BaseModel):
    group_id: str
    group_name: str
    member_count: int
    status: str
    submission_id: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_by_name: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_by_name: Optional[str] = None
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    grade: Optional[float] = None
    feedback: Optional[str] = None
    file_count: int = 0


class AssignmentOverviewOut(BaseModel):
    assignment: AssignmentOut
    groups: list[AssignmentGroupStatus]
