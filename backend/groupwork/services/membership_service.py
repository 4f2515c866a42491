"""Membership registry. Owns the Group aggregate.

Responsibilities:
- Group lifecycle: create, delete (creator only), ownership transfer
- Join workflow: request, then approve / reject, with capacity re-checked at approval
- Direct add / remove by group admins
- Announcements and resources embedded in the group document
- Activity tracking (``last_activity_at`` / ``activity_count``)

Every operation on an existing group loads it through
``integrity.load_reconciled_group`` first, so dangling user references are
repaired before any authorization check, and writes go through
``run_optimistic`` so concurrent edits of the embedded arrays are detected
instead of overwritten.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from groupwork.config import settings
from groupwork.errors import (
    CapacityExceededError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from groupwork.models.group import Group, GroupCategory, GroupRole, MAX_MEMBERS, MIN_MEMBERS
from groupwork.models.message import GroupMessage
from groupwork.models.user import User, UserRole
from groupwork.services.concurrency import run_optimistic
from groupwork.services.integrity import delete_group_cascade, load_reconciled_group

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_member(group: Group, user_id: str, detail: str = "You are not a member of this group") -> None:
    if not group.is_member(user_id):
        raise ForbiddenError(detail)


def _require_admin(group: Group, user_id: str, detail: str) -> None:
    if not group.is_admin(user_id):
        raise ForbiddenError(detail)


def _check_capacity(group: Group) -> None:
    if group.is_full:
        raise CapacityExceededError("Group is full")


def _parse_category(category: Optional[str]) -> GroupCategory:
    try:
        return GroupCategory(category or GroupCategory.general.value)
    except ValueError:
        raise ValidationError(f"Invalid category: {category}")


def _normalize_tags(tags: Optional[list[str]]) -> list[str]:
    seen: list[str] = []
    for tag in tags or []:
        tag = tag.strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _membership(user_id: str, role: GroupRole) -> dict[str, Any]:
    return {"user_id": user_id, "role": role.value, "joined_at": _now().isoformat()}


def touch_activity(group: Group) -> None:
    """Record an activity-producing action on the group."""
    group.last_activity_at = _now()
    group.activity_count = (group.activity_count or 0) + 1


# ---------------------------------------------------------------------------
# Group lifecycle
# ---------------------------------------------------------------------------

def create_group(
    db: Session,
    name: str,
    creator_id: str,
    description: str = "",
    category: Optional[str] = None,
    tags: Optional[list[str]] = None,
    is_public: bool = True,
    max_members: Optional[int] = None,
) -> Group:
    """Create a group whose only member is its creator, as admin."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Group name is required")

    if max_members is None:
        max_members = settings.DEFAULT_MAX_MEMBERS
    if not MIN_MEMBERS <= max_members <= MAX_MEMBERS:
        raise ValidationError(f"max_members must be between {MIN_MEMBERS} and {MAX_MEMBERS}")

    creator = db.query(User).filter(User.user_id == creator_id).first()
    if not creator:
        raise NotFoundError("Creator user not found")

    group = Group(
        name=name,
        description=(description or "").strip(),
        category=_parse_category(category),
        tags=_normalize_tags(tags),
        is_public=is_public,
        max_members=max_members,
        creator_id=creator_id,
        members=[_membership(creator_id, GroupRole.admin)],
        join_requests=[],
        announcements=[],
        resources=[],
        activity_count=1,
        last_activity_at=_now(),
    )
    db.add(group)
    db.commit()
    db.refresh(group)
    logger.info("Created group '%s' (%s) by user %s", group.name, group.group_id, creator_id)
    return group


def delete_group(db: Session, group_id: str, actor_id: str) -> None:
    """Delete a group and its messages. Only the current creator may do this."""

    def _op() -> None:
        group = load_reconciled_group(db, group_id)
        if group.creator_id != actor_id:
            raise ForbiddenError("Only the group creator can delete the group")
        delete_group_cascade(db, group)

    run_optimistic(db, _op)
    logger.info("Deleted group %s by creator %s", group_id, actor_id)


def transfer_ownership(db: Session, group_id: str, actor_id: str, new_owner_id: str) -> Group:
    """Hand the creator role to another member, promoting them to admin."""

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        if group.creator_id != actor_id:
            raise ForbiddenError("Only the group creator can transfer ownership")
        if not group.is_member(new_owner_id):
            raise NotFoundError("Membership not found")
        group.members = [
            {**m, "role": GroupRole.admin.value} if m["user_id"] == new_owner_id else dict(m)
            for m in group.members
        ]
        group.creator_id = new_owner_id
        return group

    group = run_optimistic(db, _op)
    logger.info("Group %s ownership transferred from %s to %s", group_id, actor_id, new_owner_id)
    return group


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_group_details(db: Session, group_id: str, actor_id: str) -> Group:
    """Reconciled group; members only."""
    group = load_reconciled_group(db, group_id)
    _require_member(group, actor_id)
    return group


def get_join_requests(db: Session, group_id: str, actor_id: str) -> list[dict[str, Any]]:
    group = load_reconciled_group(db, group_id)
    _require_admin(group, actor_id, "Only group admins can view join requests")
    return list(group.join_requests or [])


def _reconciled_or_none(db: Session, group_id: str) -> Optional[Group]:
    try:
        return load_reconciled_group(db, group_id)
    except NotFoundError:
        return None


def list_user_groups(db: Session, user_id: str) -> list[Group]:
    """Every group ``user_id`` belongs to, most recently active first."""
    candidates = [g.group_id for g in db.query(Group).all() if g.is_member(user_id)]
    groups = []
    for group_id in candidates:
        group = _reconciled_or_none(db, group_id)
        if group is not None and group.is_member(user_id):
            groups.append(group)
    groups.sort(key=lambda g: g.last_activity_at or g.created_at, reverse=True)
    return groups


def search_groups(
    db: Session,
    query: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[list[str]] = None,
    limit: int = 50,
) -> list[Group]:
    """Public groups matching a free-text needle, a category and any of ``tags``."""
    q = db.query(Group).filter(Group.is_public.is_(True))
    if category and category != "all":
        q = q.filter(Group.category == _parse_category(category))
    candidates = q.order_by(Group.last_activity_at.desc()).all()

    needle = (query or "").strip().lower()
    wanted_tags = set(_normalize_tags(tags))

    results: list[Group] = []
    for candidate in candidates:
        group_tags = candidate.tags or []
        if wanted_tags and not wanted_tags.intersection(group_tags):
            continue
        if needle and not (
            needle in candidate.name.lower()
            or needle in (candidate.description or "").lower()
            or any(needle in t for t in group_tags)
        ):
            continue
        group = _reconciled_or_none(db, candidate.group_id)
        if group is None:
            continue
        results.append(group)
        if len(results) >= limit:
            break
    return results


def get_group_stats(db: Session, group_id: str, actor_id: str) -> dict[str, Any]:
    group = load_reconciled_group(db, group_id)
    _require_member(group, actor_id)

    now = _now()
    messages = db.query(GroupMessage).filter(GroupMessage.group_id == group_id)
    total_messages = messages.count()
    last_24h = messages.filter(GroupMessage.created_at >= now - timedelta(hours=24)).count()
    active_members = (
        db.query(func.count(func.distinct(GroupMessage.sender_id)))
        .filter(GroupMessage.group_id == group_id, GroupMessage.created_at >= now - timedelta(days=7))
        .scalar()
    )
    return {
        "total_members": group.member_count,
        "total_messages": total_messages,
        "messages_last_24h": last_24h,
        "active_members": active_members or 0,
        "total_resources": len(group.resources or []),
        "total_announcements": len(group.announcements or []),
        "activity_count": group.activity_count,
        "created_at": group.created_at,
        "last_activity_at": group.last_activity_at,
    }


# ---------------------------------------------------------------------------
# Join workflow and direct membership changes
# ---------------------------------------------------------------------------

def request_join(db: Session, group_id: str, user_id: str, message: Optional[str] = None) -> Group:
    """Queue a join request for a public group."""
    if not db.query(User).filter(User.user_id == user_id).first():
        raise NotFoundError("User not found")

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        if group.is_member(user_id):
            raise ConflictError("You are already a member of this group")
        if group.has_pending_request(user_id):
            raise ConflictError("You already have a pending request")
        if not group.is_public:
            raise ForbiddenError("This group is private")
        _check_capacity(group)
        group.join_requests = [
            *group.join_requests,
            {"user_id": user_id, "message": (message or "").strip(), "requested_at": _now().isoformat()},
        ]
        return group

    group = run_optimistic(db, _op)
    logger.info("User %s requested to join group %s", user_id, group_id)
    return group


def approve_join_request(db: Session, group_id: str, approver_id: str, user_id: str) -> Group:
    """Move a pending request into the member list. Capacity is re-checked here."""

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, approver_id, "Only group admins can approve requests")
        if not group.has_pending_request(user_id):
            raise NotFoundError("Join request not found")
        _check_capacity(group)
        group.join_requests = [r for r in group.join_requests if r["user_id"] != user_id]
        group.members = [*group.members, _membership(user_id, GroupRole.member)]
        touch_activity(group)
        return group

    group = run_optimistic(db, _op)
    logger.info("Approved join request of user %s to group %s by %s", user_id, group_id, approver_id)
    return group


def reject_join_request(db: Session, group_id: str, approver_id: str, user_id: str) -> Group:
    """Drop a pending request without touching membership."""

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, approver_id, "Only group admins can reject requests")
        if not group.has_pending_request(user_id):
            raise NotFoundError("Join request not found")
        group.join_requests = [r for r in group.join_requests if r["user_id"] != user_id]
        return group

    group = run_optimistic(db, _op)
    logger.info("Rejected join request of user %s to group %s by %s", user_id, group_id, approver_id)
    return group


def find_student(db: Session, email_or_student_id: str) -> Optional[User]:
    ident = (email_or_student_id or "").strip()
    if not ident:
        return None
    return (
        db.query(User)
        .filter(
            User.role == UserRole.student,
            (func.lower(User.email) == ident.lower()) | (User.student_id == ident),
        )
        .first()
    )


def add_member(db: Session, group_id: str, admin_id: str, email_or_student_id: str) -> Group:
    """Admin-only direct add, bypassing the request queue."""
    user = find_student(db, email_or_student_id)
    if not user:
        raise NotFoundError("Student not found")
    user_id = user.user_id

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, admin_id, "Only group admins can add members")
        if group.is_member(user_id):
            raise ConflictError("User is already a member")
        _check_capacity(group)
        group.members = [*group.members, _membership(user_id, GroupRole.member)]
        if group.has_pending_request(user_id):
            group.join_requests = [r for r in group.join_requests if r["user_id"] != user_id]
        touch_activity(group)
        return group

    group = run_optimistic(db, _op)
    logger.info("Added user %s to group %s by admin %s", user_id, group_id, admin_id)
    return group


def remove_member(db: Session, group_id: str, admin_id: str, user_id: str) -> Group:
    """Admin-only removal. The creator can only leave through ownership transfer."""

    def _op() -> Group:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, admin_id, "Only group admins can remove members")
        if user_id == group.creator_id:
            raise ForbiddenError("Cannot remove the group creator; transfer ownership first")
        if not group.is_member(user_id):
            raise NotFoundError("Membership not found")
        group.members = [m for m in group.members if m["user_id"] != user_id]
        return group

    group = run_optimistic(db, _op)
    logger.info("Removed user %s from group %s by admin %s", user_id, group_id, admin_id)
    return group


# ---------------------------------------------------------------------------
# Announcements and resources
# ---------------------------------------------------------------------------

def create_announcement(
    db: Session,
    group_id: str,
    actor_id: str,
    title: str,
    content: str,
    is_pinned: bool = False,
) -> dict[str, Any]:
    title, content = (title or "").strip(), (content or "").strip()
    if not title or not content:
        raise ValidationError("Announcement title and content are required")

    def _op() -> dict[str, Any]:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, actor_id, "Only group admins can create announcements")
        entry = {
            "announcement_id": str(uuid.uuid4()),
            "title": title,
            "content": content,
            "created_by": actor_id,
            "created_at": _now().isoformat(),
            "is_pinned": is_pinned,
        }
        group.announcements = [*group.announcements, entry]
        touch_activity(group)
        return entry

    entry = run_optimistic(db, _op)
    logger.info("Announcement %s posted to group %s by %s", entry["announcement_id"], group_id, actor_id)
    return entry


def delete_announcement(db: Session, group_id: str, actor_id: str, announcement_id: str) -> None:

    def _op() -> None:
        group = load_reconciled_group(db, group_id)
        _require_admin(group, actor_id, "Only group admins can delete announcements")
        if not any(a["announcement_id"] == announcement_id for a in group.announcements):
            raise NotFoundError("Announcement not found")
        group.announcements = [a for a in group.announcements if a["announcement_id"] != announcement_id]

    run_optimistic(db, _op)
    logger.info("Announcement %s deleted from group %s", announcement_id, group_id)


def add_resource(
    db: Session,
    group_id: str,
    actor_id: str,
    name: str,
    file_url: str,
    description: Optional[str] = None,
    file_type: Optional[str] = None,
) -> dict[str, Any]:
    name, file_url = (name or "").strip(), (file_url or "").strip()
    if not name or not file_url:
        raise ValidationError("Resource name and file URL are required")

    def _op() -> dict[str, Any]:
        group = load_reconciled_group(db, group_id)
        _require_member(group, actor_id)
        entry = {
            "resource_id": str(uuid.uuid4()),
            "name": name,
            "description": description,
            "file_url": file_url,
            "file_type": file_type,
            "uploaded_by": actor_id,
            "uploaded_at": _now().isoformat(),
        }
        group.resources = [*group.resources, entry]
        touch_activity(group)
        return entry

    entry = run_optimistic(db, _op)
    logger.info("Resource %s added to group %s by %s", entry["resource_id"], group_id, actor_id)
    return entry


def delete_resource(db: Session, group_id: str, actor_id: str, resource_id: str) -> None:
    """Uploader or any group admin may delete a resource."""

    def _op() -> None:
        group = load_reconciled_group(db, group_id)
        resource = next((r for r in group.resources if r["resource_id"] == resource_id), None)
        if resource is None:
            raise NotFoundError("Resource not found")
        if resource.get("uploaded_by") != actor_id and not group.is_admin(actor_id):
            raise ForbiddenError("You cannot delete this resource")
        group.resources = [r for r in group.resources if r["resource_id"] != resource_id]

    run_optimistic(db, _op)
    logger.info("Resource %s deleted from group %s by %s", resource_id, group_id, actor_id)
