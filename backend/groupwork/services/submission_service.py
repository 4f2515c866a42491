"""Submission workflow engine. One Submission per (assignment, group).

State machine:

    (no row) --submit--> submitted --submit--> submitted
                             |
                             +--grade--> graded   (terminal)

Uploaded files are accepted into storage before the aggregate is touched.
Whatever happens afterwards, files never outlive a rejected or failed
submission: they are released before the error propagates. Files replaced by a
resubmission are released only once the new set is committed.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from groupwork.config import settings
from groupwork.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from groupwork.models.assignment import Assignment
from groupwork.models.submission import Submission, SubmissionStatus
from groupwork.models.user import User, UserRole
from groupwork.services.concurrency import run_optimistic
from groupwork.services.file_storage import IncomingFile, LocalFileStorage
from groupwork.services.integrity import load_reconciled_group

logger = logging.getLogger(__name__)

MIN_GRADE = 0
MAX_GRADE = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def is_platform_admin(db: Session, user_id: str) -> bool:
    user = db.query(User).filter(User.user_id == user_id).first()
    return user is not None and user.role == UserRole.admin


def require_viewer(db: Session, group_id: str, actor_id: str) -> None:
    """Platform admins see every submission; students only their groups'."""
    if is_platform_admin(db, actor_id):
        return
    group = load_reconciled_group(db, group_id)
    if not group.is_member(actor_id):
        raise ForbiddenError("You are not a member of this group")


def submit(
    db: Session,
    storage: LocalFileStorage,
    assignment_id: str,
    group_id: str,
    submitter_id: str,
    uploads: list[IncomingFile],
    notes: Optional[str] = None,
) -> tuple[Submission, bool]:
    """Create or resubmit the group's submission. Returns ``(submission, created)``."""
    if len(uploads) > settings.MAX_UPLOAD_FILES:
        raise ValidationError(f"At most {settings.MAX_UPLOAD_FILES} files may be attached")

    accepted = storage.save_all(uploads)
    outcome: dict[str, Any] = {}

    def _op() -> Submission:
        outcome.clear()
        group = load_reconciled_group(db, group_id)
        if not group.is_member(submitter_id):
            raise ForbiddenError("You are not a member of this group")

        assignment = db.query(Assignment).filter(Assignment.assignment_id == assignment_id).first()
        if not assignment:
            raise NotFoundError("Assignment not found")

        existing = (
            db.query(Submission)
            .filter(Submission.assignment_id == assignment_id, Submission.group_id == group_id)
            .first()
        )
        if existing is None:
            submission = Submission(
                assignment_id=assignment_id,
                group_id=group_id,
                status=SubmissionStatus.submitted,
                submission_notes=notes,
                files=list(accepted),
                submitted_by=submitter_id,
                submitted_at=_now(),
            )
            db.add(submission)
            outcome["created"] = True
            return submission

        if existing.status == SubmissionStatus.graded:
            raise ConflictError("Assignment already graded. Cannot resubmit.")

        if accepted:
            outcome["replaced"] = list(existing.files or [])
            existing.files = list(accepted)
        existing.status = SubmissionStatus.submitted
        existing.submission_notes = notes
        existing.submitted_by = submitter_id
        existing.submitted_at = _now()
        return existing

    try:
        submission = run_optimistic(db, _op, what="submission", retry_on=(StaleDataError, IntegrityError))
    except Exception:
        if accepted:
            logger.warning("Submission of assignment %s by group %s rejected; releasing %d file(s)",
                           assignment_id, group_id, len(accepted))
            storage.release(accepted)
        raise

    storage.release(outcome.get("replaced", []))
    created = outcome.get("created", False)
    logger.info(
        "%s assignment %s for group %s by %s (%d file(s))",
        "Submitted" if created else "Resubmitted", assignment_id, group_id, submitter_id, len(submission.files),
    )
    return submission, created


def grade(
    db: Session,
    submission_id: str,
    reviewer_id: str,
    grade: float,
    feedback: Optional[str] = None,
) -> Submission:
    """Grade a submission once. Graded submissions are terminal."""

    def _op() -> Submission:
        submission = db.query(Submission).filter(Submission.submission_id == submission_id).first()
        if not submission:
            raise NotFoundError("Submission not found")
        if grade is None or not MIN_GRADE <= grade <= MAX_GRADE:
            raise ValidationError(f"Grade must be between {MIN_GRADE} and {MAX_GRADE}")
        if not is_platform_admin(db, reviewer_id):
            raise ForbiddenError("Only admins can grade submissions")
        if submission.status == SubmissionStatus.graded:
            raise ConflictError("Submission is already graded")
        submission.grade = grade
        submission.feedback = feedback
        submission.reviewed_by = reviewer_id
        submission.reviewed_at = _now()
        submission.status = SubmissionStatus.graded
        return submission

    submission = run_optimistic(db, _op, what="submission")
    logger.info("Graded submission %s with %s by %s", submission_id, grade, reviewer_id)
    return submission


def get_status(db: Session, assignment_id: str, group_id: str) -> Optional[Submission]:
    """The pair's submission, or None while it is still pending."""
    return (
        db.query(Submission)
        .filter(Submission.assignment_id == assignment_id, Submission.group_id == group_id)
        .first()
    )


def get_submission(db: Session, submission_id: str) -> Submission:
    submission = db.query(Submission).filter(Submission.submission_id == submission_id).first()
    if not submission:
        raise NotFoundError("Submission not found")
    return submission


def download_file(
    db: Session,
    storage: LocalFileStorage,
    submission_id: str,
    file_index: int,
) -> tuple[Path, dict[str, Any]]:
    """Resolve an attachment to its stored path and FileRef."""
    submission = get_submission(db, submission_id)
    files = submission.files or []
    if file_index < 0 or file_index >= len(files):
        raise NotFoundError("File not found")
    file_ref = files[file_index]
    if not storage.exists(file_ref["storage_ref"]):
        raise NotFoundError("File no longer exists on server")
    return storage.resolve(file_ref["storage_ref"]), file_ref
