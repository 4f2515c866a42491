"""Group discussion: fire-and-forget messages that count as group activity."""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from groupwork.errors import ForbiddenError, ValidationError
from groupwork.models.message import GroupMessage, MAX_MESSAGE_LENGTH
from groupwork.services.concurrency import run_optimistic
from groupwork.services.integrity import load_reconciled_group
from groupwork.services.membership_service import touch_activity

logger = logging.getLogger(__name__)


def send_message(
    db: Session,
    group_id: str,
    sender_id: str,
    content: str,
    reply_to: Optional[str] = None,
) -> GroupMessage:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message content exceeds {MAX_MESSAGE_LENGTH} characters")

    def _op() -> GroupMessage:
        group = load_reconciled_group(db, group_id)
        if not group.is_member(sender_id):
            raise ForbiddenError("You are not a member of this group")
        message = GroupMessage(group_id=group_id, sender_id=sender_id, content=content, reply_to=reply_to)
        db.add(message)
        touch_activity(group)
        return message

    message = run_optimistic(db, _op)
    db.refresh(message)
    logger.info("Message %s sent to group %s by %s", message.message_id, group_id, sender_id)
    return message


def list_messages(
    db: Session,
    group_id: str,
    actor_id: str,
    limit: int = 50,
    before: Optional[datetime] = None,
) -> dict[str, Any]:
    """Most recent ``limit`` messages (older than ``before``), oldest first."""
    group = load_reconciled_group(db, group_id)
    if not group.is_member(actor_id):
        raise ForbiddenError("You are not a member of this group")

    query = db.query(GroupMessage).filter(GroupMessage.group_id == group_id)
    if before is not None:
        query = query.filter(GroupMessage.created_at < before)
    page = query.order_by(GroupMessage.created_at.desc()).limit(limit).all()
    page.reverse()
    return {"messages": page, "has_more": len(page) == limit}
