"""Assignment catalogue. Platform admins own it; groups only read it."""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from groupwork.errors import ForbiddenError, NotFoundError, ValidationError
from groupwork.models.assignment import Assignment
from groupwork.models.group import Group
from groupwork.models.submission import HANDED_IN_STATUSES, Submission, SubmissionStatus
from groupwork.services.concurrency import run_optimistic
from groupwork.services.file_storage import LocalFileStorage
from groupwork.services.submission_service import is_platform_admin

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "due_date", "onedrive_link")


def _require_platform_admin(db: Session, actor_id: str, detail: str) -> None:
    if not is_platform_admin(db, actor_id):
        raise ForbiddenError(detail)


def get_assignment(db: Session, assignment_id: str) -> Assignment:
    assignment = db.query(Assignment).filter(Assignment.assignment_id == assignment_id).first()
    if not assignment:
        raise NotFoundError("Assignment not found")
    return assignment


def create_assignment(
    db: Session,
    actor_id: str,
    title: str,
    due_date: datetime,
    description: str = "",
    onedrive_link: Optional[str] = None,
    is_for_all: bool = False,
    group_ids: Optional[list[str]] = None,
) -> Assignment:
    _require_platform_admin(db, actor_id, "Only admins can create assignments")
    title = (title or "").strip()
    if not title:
        raise ValidationError("Assignment title is required")

    assignment = Assignment(
        title=title,
        description=(description or "").strip(),
        due_date=due_date,
        onedrive_link=onedrive_link,
        created_by=actor_id,
        is_for_all=is_for_all,
        assigned_groups=[] if is_for_all else list(dict.fromkeys(group_ids or [])),
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("Created assignment '%s' (%s) by %s", assignment.title, assignment.assignment_id, actor_id)
    return assignment


def list_assignments(db: Session) -> list[dict[str, Any]]:
    """Every assignment with hand-in counters, latest due date first."""
    assignments = db.query(Assignment).order_by(Assignment.due_date.desc()).all()
    total_groups = db.query(Group).count()
    rows = []
    for assignment in assignments:
        submissions = db.query(Submission).filter(Submission.assignment_id == assignment.assignment_id)
        rows.append({
            "assignment": assignment,
            "submitted_count": submissions.filter(Submission.status.in_(HANDED_IN_STATUSES)).count(),
            "graded_count": submissions.filter(Submission.status == SubmissionStatus.graded).count(),
            "total_groups": total_groups,
        })
    return rows


def update_assignment(db: Session, assignment_id: str, actor_id: str, changes: dict[str, Any]) -> Assignment:
    """Patch title, description, due date or link. Targeting is fixed at creation."""
    _require_platform_admin(db, actor_id, "Only admins can update assignments")
    assignment = get_assignment(db, assignment_id)

    for field in UPDATABLE_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field == "title":
            value = (value or "").strip()
            if not value:
                raise ValidationError("Assignment title is required")
        if field == "due_date" and value is None:
            raise ValidationError("Due date is required")
        setattr(assignment, field, value)

    db.commit()
    db.refresh(assignment)
    logger.info("Updated assignment %s by %s", assignment_id, actor_id)
    return assignment


def delete_assignment(db: Session, storage: LocalFileStorage, assignment_id: str, actor_id: str) -> None:
    """Delete an assignment with its submissions, then release their files."""
    _require_platform_admin(db, actor_id, "Only admins can delete assignments")

    def _op() -> tuple[int, list[dict[str, Any]]]:
        assignment = get_assignment(db, assignment_id)
        submissions = db.query(Submission).filter(Submission.assignment_id == assignment_id).all()
        files = [ref for s in submissions for ref in (s.files or [])]
        for submission in submissions:
            db.delete(submission)
        db.delete(assignment)
        return len(submissions), files

    removed, orphaned = run_optimistic(db, _op, what="assignment")
    storage.release(orphaned)
    logger.info(
        "Deleted assignment %s with %d submission(s) and %d file(s)", assignment_id, removed, len(orphaned)
    )
