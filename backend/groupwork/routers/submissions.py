"""Submission API routes: hand-in, grading, downloads and group progress."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from groupwork.database import get_db
from groupwork.routers import presenters
from groupwork.schemas.submission import (
    GradeCreate,
    GroupAssignmentOut,
    ProgressOut,
    SubmissionOut,
    SubmissionStatusOut,
)
from groupwork.services import progress_service, submission_service
from groupwork.services.file_storage import IncomingFile, LocalFileStorage, get_storage

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/submit", response_model=SubmissionOut, status_code=status.HTTP_201_CREATED)
def submit(
    response: Response,
    assignment_id: str = Form(...),
    group_id: str = Form(...),
    notes: Optional[str] = Form(None),
    files: list[UploadFile] = File(default=[]),
    actor_id: str = Query(...),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Submit (or resubmit) a group's work. Answers 201 on first submission, 200 on resubmission."""
    uploads = [
        IncomingFile(original_name=f.filename or "upload", content_type=f.content_type, stream=f.file)
        for f in files
    ]
    submission, created = submission_service.submit(
        db, storage, assignment_id, group_id, actor_id, uploads, notes
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return submission


@router.get("/status/{assignment_id}/{group_id}", response_model=SubmissionStatusOut)
def get_status(assignment_id: str, group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    submission_service.require_viewer(db, group_id, actor_id)
    submission = submission_service.get_status(db, assignment_id, group_id)
    return SubmissionStatusOut(
        assignment_id=assignment_id,
        group_id=group_id,
        status=submission.status.value if submission else progress_service.PENDING,
        submission=SubmissionOut.model_validate(submission) if submission else None,
    )


@router.get("/progress/{group_id}", response_model=ProgressOut)
def get_progress(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    return progress_service.get_progress(db, group_id, actor_id)


@router.get("/assignments/{group_id}", response_model=list[GroupAssignmentOut])
def list_group_assignments(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    """Assignments visible to the group, each with its hand-in status."""
    rows = progress_service.list_group_assignments(db, group_id, actor_id)
    users = presenters.user_index(db, [r["assignment"].created_by for r in rows])
    return [
        GroupAssignmentOut(
            **presenters.assignment_fields(r.pop("assignment"), users),
            **r,
        )
        for r in rows
    ]


@router.get("/{submission_id}", response_model=SubmissionOut)
def get_submission(submission_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    submission = submission_service.get_submission(db, submission_id)
    submission_service.require_viewer(db, submission.group_id, actor_id)
    return submission


@router.post("/{submission_id}/grade", response_model=SubmissionOut)
def grade_submission(
    submission_id: str, payload: GradeCreate, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    return submission_service.grade(db, submission_id, actor_id, payload.grade, payload.feedback)


@router.get("/{submission_id}/files/{file_index}")
def download_file(
    submission_id: str,
    file_index: int,
    actor_id: str = Query(...),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Stream one attachment back under its original file name."""
    submission = submission_service.get_submission(db, submission_id)
    submission_service.require_viewer(db, submission.group_id, actor_id)
    path, file_ref = submission_service.download_file(db, storage, submission_id, file_index)
    return FileResponse(
        path,
        media_type=file_ref.get("mime_type") or "application/octet-stream",
        filename=file_ref["original_name"],
    )
