"""Assignment catalogue API routes (platform admins)."""
import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from groupwork.database import get_db
from groupwork.routers import presenters
from groupwork.schemas.assignment import AssignmentCreate, AssignmentOut, AssignmentStatsOut, AssignmentUpdate
from groupwork.schemas.submission import AssignmentGroupStatus, AssignmentOverviewOut
from groupwork.services import assignment_service, progress_service
from groupwork.services.file_storage import LocalFileStorage, get_storage
from groupwork.services.submission_service import is_platform_admin

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=AssignmentOut, status_code=status.HTTP_201_CREATED)
def create_assignment(payload: AssignmentCreate, actor_id: str = Query(...), db: Session = Depends(get_db)):
    assignment = assignment_service.create_assignment(
        db,
        actor_id,
        title=payload.title,
        due_date=payload.due_date,
        description=payload.description,
        onedrive_link=payload.onedrive_link,
        is_for_all=payload.is_for_all,
        group_ids=payload.group_ids,
    )
    return presenters.assignment_out(db, assignment)


@router.get("/", response_model=list[AssignmentStatsOut])
def list_assignments(db: Session = Depends(get_db)):
    """All assignments with hand-in counters, latest due date first."""
    rows = assignment_service.list_assignments(db)
    users = presenters.user_index(db, [r["assignment"].created_by for r in rows])
    return [
        AssignmentStatsOut(
            **presenters.assignment_fields(r["assignment"], users),
            submitted_count=r["submitted_count"],
            graded_count=r["graded_count"],
            total_groups=r["total_groups"],
        )
        for r in rows
    ]


@router.get("/{assignment_id}", response_model=AssignmentOut)
def get_assignment(assignment_id: str, db: Session = Depends(get_db)):
    return presenters.assignment_out(db, assignment_service.get_assignment(db, assignment_id))


@router.patch("/{assignment_id}", response_model=AssignmentOut)
def update_assignment(
    assignment_id: str, payload: AssignmentUpdate, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    """Partial update of title, description, due date or link."""
    assignment = assignment_service.update_assignment(
        db, assignment_id, actor_id, payload.model_dump(exclude_unset=True)
    )
    return presenters.assignment_out(db, assignment)


@router.delete("/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assignment(
    assignment_id: str,
    actor_id: str = Query(...),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Delete an assignment together with every group's submission and files."""
    assignment_service.delete_assignment(db, storage, assignment_id, actor_id)


@router.get("/{assignment_id}/overview", response_model=AssignmentOverviewOut)
def assignment_overview(assignment_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    """Hand-in status of every group for one assignment."""
    if not is_platform_admin(db, actor_id):
        raise HTTPException(status_code=403, detail="Only admins can view assignment overviews")
    overview = progress_service.assignment_overview(db, assignment_id)
    users = presenters.user_index(
        db,
        [overview["assignment"].created_by]
        + [row["submitted_by"] for row in overview["groups"]]
        + [row["reviewed_by"] for row in overview["groups"]],
    )
    groups = [
        AssignmentGroupStatus(
            **row,
            submitted_by_name=users[row["submitted_by"]].full_name if row["submitted_by"] in users else None,
            reviewed_by_name=users[row["reviewed_by"]].full_name if row["reviewed_by"] in users else None,
        )
        for row in overview["groups"]
    ]
    return AssignmentOverviewOut(
        assignment=AssignmentOut(**presenters.assignment_fields(overview["assignment"], users)),
        groups=groups,
    )
