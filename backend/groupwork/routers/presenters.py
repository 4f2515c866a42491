"""Read-side joins: decorate aggregates with user display data for responses.

Display names are looked up here, after the service call returns, so the
write path never follows user references.
"""
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from groupwork.models.assignment import Assignment
from groupwork.models.group import Group
from groupwork.models.message import GroupMessage
from groupwork.models.user import User
from groupwork.schemas.assignment import AssignmentOut
from groupwork.schemas.group import (
    GroupMemberOut,
    GroupOut,
    GroupSearchOut,
    GroupSummaryOut,
    JoinRequestOut,
    MessageOut,
)


def user_index(db: Session, user_ids: Iterable[Optional[str]]) -> dict[str, User]:
    ids = {uid for uid in user_ids if uid}
    if not ids:
        return {}
    return {u.user_id: u for u in db.query(User).filter(User.user_id.in_(ids)).all()}


def _full_name(users: dict[str, User], user_id: Optional[str]) -> Optional[str]:
    user = users.get(user_id) if user_id else None
    return user.full_name if user else None


def _summary_fields(group: Group, users: dict[str, User]) -> dict[str, Any]:
    return {
        "group_id": group.group_id,
        "name": group.name,
        "description": group.description or "",
        "category": group.category,
        "tags": list(group.tags or []),
        "is_public": group.is_public,
        "max_members": group.max_members,
        "creator_id": group.creator_id,
        "creator_name": _full_name(users, group.creator_id),
        "member_count": group.member_count,
        "is_full": group.is_full,
        "activity_count": group.activity_count,
        "last_activity_at": group.last_activity_at,
        "created_at": group.created_at,
    }


def _pinned_first(announcements: list[dict[str, Any]]) -> list[dict[str, Any]]:
    newest_first = sorted(announcements, key=lambda a: a["created_at"], reverse=True)
    return sorted(newest_first, key=lambda a: not a.get("is_pinned"))


def group_summary(db: Session, group: Group) -> GroupSummaryOut:
    users = user_index(db, [group.creator_id])
    return GroupSummaryOut(**_summary_fields(group, users))


def group_search_result(db: Session, group: Group, viewer_id: Optional[str]) -> GroupSearchOut:
    users = user_index(db, [group.creator_id])
    return GroupSearchOut(
        **_summary_fields(group, users),
        is_member=bool(viewer_id) and group.is_member(viewer_id),
        has_pending_request=bool(viewer_id) and group.has_pending_request(viewer_id),
    )


def group_detail(db: Session, group: Group) -> GroupOut:
    users = user_index(db, [group.creator_id, *(m["user_id"] for m in group.members or [])])
    members = [
        GroupMemberOut(
            **m,
            full_name=_full_name(users, m["user_id"]),
            email=users[m["user_id"]].email if m["user_id"] in users else None,
        )
        for m in group.members or []
    ]
    return GroupOut(
        **_summary_fields(group, users),
        members=members,
        announcements=_pinned_first(group.announcements or []),
        resources=list(group.resources or []),
        version=group.version,
    )


def join_requests(db: Session, requests: list[dict[str, Any]]) -> list[JoinRequestOut]:
    users = user_index(db, [r["user_id"] for r in requests])
    return [
        JoinRequestOut(
            **r,
            full_name=_full_name(users, r["user_id"]),
            email=users[r["user_id"]].email if r["user_id"] in users else None,
        )
        for r in requests
    ]


def message_list(db: Session, page: list[GroupMessage]) -> list[MessageOut]:
    users = user_index(db, [m.sender_id for m in page])
    return [
        MessageOut.model_validate(m).model_copy(update={"sender_name": _full_name(users, m.sender_id)})
        for m in page
    ]


def assignment_fields(assignment: Assignment, users: dict[str, User]) -> dict[str, Any]:
    out = AssignmentOut.model_validate(assignment)
    out.creator_name = _full_name(users, assignment.created_by)
    return out.model_dump()


def assignment_out(db: Session, assignment: Assignment) -> AssignmentOut:
    return AssignmentOut(**assignment_fields(assignment, user_index(db, [assignment.created_by])))
