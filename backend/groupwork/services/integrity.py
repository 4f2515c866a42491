"""Membership integrity repair.

Groups reference users without foreign keys, so a user deleted elsewhere
leaves dangling member and join-request entries behind. ``reconcile_group``
restores the invariants in one pass:

1. drop member / join-request entries whose user no longer exists (and
   duplicates, and requests from users who are already members);
2. keep ownership continuous: ``creator_id`` must name an admin member, so a
   missing creator is replaced by the first admin, or failing that the first
   remaining member is promoted;
3. a group left with no valid member is deleted.

It is idempotent and writes nothing when the group is already clean. Every
membership-facing operation loads groups through ``load_reconciled_group``
so authorization never runs against stale entries; ``reconcile_all_groups``
is the explicit sweep.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from groupwork.config import settings
from groupwork.errors import ConflictError, NotFoundError
from groupwork.models.group import Group, GroupRole
from groupwork.models.message import GroupMessage
from groupwork.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    members_removed: int = 0
    requests_removed: int = 0
    ownership_transferred: bool = False
    new_creator_id: Optional[str] = None
    deleted: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.members_removed or self.requests_removed or self.ownership_transferred or self.deleted
        )


def existing_user_ids(db: Session, user_ids: set[str]) -> set[str]:
    """Subset of ``user_ids`` that still resolve to a user."""
    user_ids = {uid for uid in user_ids if uid}
    if not user_ids:
        return set()
    rows = db.query(User.user_id).filter(User.user_id.in_(user_ids)).all()
    return {row[0] for row in rows}


def _valid_entries(entries: list[dict[str, Any]], existing: set[str], exclude: set[str]) -> list[dict[str, Any]]:
    kept: list[dict[str, Any]] = []
    seen = set(exclude)
    for entry in entries or []:
        uid = entry.get("user_id")
        if uid in existing and uid not in seen:
            kept.append(dict(entry))
            seen.add(uid)
    return kept


def delete_group_cascade(db: Session, group: Group) -> None:
    """Delete a group with its messages. Submissions are kept."""
    db.query(GroupMessage).filter(GroupMessage.group_id == group.group_id).delete(synchronize_session=False)
    db.delete(group)


def reconcile_group(db: Session, group: Group) -> ReconcileResult:
    """Repair ``group`` in the session without committing."""
    result = ReconcileResult()
    referenced = {m.get("user_id") for m in group.members or []}
    referenced |= {r.get("user_id") for r in group.join_requests or []}
    existing = existing_user_ids(db, referenced)

    members = _valid_entries(group.members, existing, exclude=set())
    member_ids = {m["user_id"] for m in members}
    requests = _valid_entries(group.join_requests, existing, exclude=member_ids)
    result.members_removed = len(group.members or []) - len(members)
    result.requests_removed = len(group.join_requests or []) - len(requests)

    if not members:
        delete_group_cascade(db, group)
        result.deleted = True
        logger.info("Deleted group %s: no valid members left", group.group_id)
        return result

    creator = next((m for m in members if m["user_id"] == group.creator_id), None)
    if creator is None:
        heir = next((m for m in members if m.get("role") == GroupRole.admin.value), None)
        if heir is None:
            heir = members[0]
            heir["role"] = GroupRole.admin.value
        group.creator_id = heir["user_id"]
        result.ownership_transferred = True
        result.new_creator_id = heir["user_id"]
        logger.info("Transferred ownership of group %s to %s", group.group_id, heir["user_id"])
    elif creator.get("role") != GroupRole.admin.value:
        creator["role"] = GroupRole.admin.value
        result.ownership_transferred = True
        result.new_creator_id = creator["user_id"]
        logger.info("Restored admin role of creator %s in group %s", creator["user_id"], group.group_id)

    if result.members_removed or result.ownership_transferred:
        group.members = members
    if result.requests_removed:
        group.join_requests = requests
    if result.members_removed or result.requests_removed:
        logger.info(
            "Reconciled group %s: removed %d member(s), %d join request(s)",
            group.group_id, result.members_removed, result.requests_removed,
        )
    return result


def reconcile_and_persist(db: Session, group_id: str) -> tuple[Optional[Group], ReconcileResult]:
    """Reconcile one group and commit the repair.

    Returns ``(None, result)`` when the repair deleted the group. A write that
    loses a race is re-run on the winner's version.
    """
    attempts = max(1, settings.OPTIMISTIC_RETRIES)
    for _ in range(attempts):
        group = db.query(Group).filter(Group.group_id == group_id).first()
        if not group:
            raise NotFoundError("Group not found")
        result = reconcile_group(db, group)
        if not result.changed:
            return group, result
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning("Group %s changed during reconciliation; retrying", group_id)
            continue
        return (None if result.deleted else group), result
    raise ConflictError("The group was modified concurrently. Re-fetch and retry.")


def load_reconciled_group(db: Session, group_id: str) -> Group:
    """Load a group with every repair persisted, ready for authorization checks."""
    group, _ = reconcile_and_persist(db, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def reconcile_all_groups(db: Session) -> dict[str, Any]:
    """Sweep every group, returning a summary of what was repaired."""
    group_ids = [row[0] for row in db.query(Group.group_id).all()]
    summary = {
        "groups_checked": len(group_ids),
        "groups_updated": 0,
        "groups_deleted": 0,
        "members_removed": 0,
        "requests_removed": 0,
        "ownership_transfers": 0,
        "groups_failed": 0,
    }

    for group_id in group_ids:
        try:
            _, result = reconcile_and_persist(db, group_id)
        except NotFoundError:
            # Deleted concurrently by its creator.
            continue
        except ConflictError:
            summary["groups_failed"] += 1
            logger.warning("Sweep gave up on group %s after repeated concurrent writes", group_id)
            continue
        summary["members_removed"] += result.members_removed
        summary["requests_removed"] += result.requests_removed
        summary["ownership_transfers"] += int(result.ownership_transferred)
        if result.deleted:
            summary["groups_deleted"] += 1
        elif result.changed:
            summary["groups_updated"] += 1

    logger.info("Membership sweep summary: %s", summary)
    return summary
