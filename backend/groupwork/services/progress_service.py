"""Progress aggregator: read-only composition of group membership and submissions."""
from typing import Any, Optional

from sqlalchemy.orm import Session

from groupwork.errors import NotFoundError
from groupwork.models.assignment import Assignment
from groupwork.models.group import Group
from groupwork.models.submission import HANDED_IN_STATUSES, Submission, SubmissionStatus
from groupwork.services.integrity import load_reconciled_group
from groupwork.services.submission_service import require_viewer

PENDING = "pending"


def completion_percentage(submitted: int, total: int) -> int:
    """``round(100 * submitted / total)`` with halves rounded up; 0 when there is nothing to do."""
    if total <= 0:
        return 0
    return (200 * submitted + total) // (2 * total)


def visible_assignments(db: Session, group_id: str) -> list[Assignment]:
    """Assignments for everyone plus those targeted at ``group_id``."""
    candidates = db.query(Assignment).order_by(Assignment.due_date.desc()).all()
    return [a for a in candidates if a.is_visible_to(group_id)]


def get_progress(db: Session, group_id: str, actor_id: Optional[str] = None) -> dict[str, int]:
    if actor_id is not None:
        require_viewer(db, group_id, actor_id)
    else:
        load_reconciled_group(db, group_id)

    total = len(visible_assignments(db, group_id))
    # Every hand-in of the group counts, whichever assignment it targets
    submissions = db.query(Submission).filter(Submission.group_id == group_id)
    submitted = submissions.filter(Submission.status.in_(HANDED_IN_STATUSES)).count()
    graded = submissions.filter(Submission.status == SubmissionStatus.graded).count()

    return {
        "total": total,
        "submitted": submitted,
        "graded": graded,
        "pending": total - submitted,
        "completion_percentage": completion_percentage(submitted, total),
    }


def list_group_assignments(db: Session, group_id: str, actor_id: Optional[str] = None) -> list[dict[str, Any]]:
    """Every assignment the group sees, with its submission status."""
    if actor_id is not None:
        require_viewer(db, group_id, actor_id)
    else:
        load_reconciled_group(db, group_id)

    assignments = visible_assignments(db, group_id)
    submissions = {
        s.assignment_id: s
        for s in db.query(Submission).filter(Submission.group_id == group_id).all()
    }
    rows = []
    for assignment in assignments:
        submission = submissions.get(assignment.assignment_id)
        rows.append({
            "assignment": assignment,
            "submission_id": submission.submission_id if submission else None,
            "status": submission.status.value if submission else PENDING,
            "grade": submission.grade if submission else None,
            "feedback": submission.feedback if submission else None,
            "submitted_at": submission.submitted_at if submission else None,
            "reviewed_at": submission.reviewed_at if submission else None,
        })
    return rows


def assignment_overview(db: Session, assignment_id: str) -> dict[str, Any]:
    """Per-group hand-in status of one assignment, for the admin dashboard."""
    assignment = db.query(Assignment).filter(Assignment.assignment_id == assignment_id).first()
    if not assignment:
        raise NotFoundError("Assignment not found")

    submissions = {
        s.group_id: s
        for s in db.query(Submission).filter(Submission.assignment_id == assignment_id).all()
    }
    rows = []
    for group in db.query(Group).order_by(Group.name).all():
        submission = submissions.get(group.group_id)
        rows.append({
            "group_id": group.group_id,
            "group_name": group.name,
            "member_count": group.member_count,
            "status": submission.status.value if submission else PENDING,
            "submission_id": submission.submission_id if submission else None,
            "submitted_by": submission.submitted_by if submission else None,
            "reviewed_by": submission.reviewed_by if submission else None,
            "submitted_at": submission.submitted_at if submission else None,
            "reviewed_at": submission.reviewed_at if submission else None,
            "grade": submission.grade if submission else None,
            "feedback": submission.feedback if submission else None,
            "file_count": len(submission.files or []) if submission else 0,
        })
    return {"assignment": assignment, "groups": rows}
