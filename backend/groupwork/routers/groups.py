"""Group API routes. Every invariant lives in membership_service."""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from groupwork.database import get_db
from groupwork.routers import presenters
from groupwork.schemas.group import (
    AnnouncementCreate,
    AnnouncementOut,
    GroupCreate,
    GroupOut,
    GroupSearchOut,
    GroupStatsOut,
    GroupSummaryOut,
    JoinRequestCreate,
    JoinRequestOut,
    MemberAdd,
    MessageCreate,
    MessageOut,
    MessagePage,
    OwnershipTransfer,
    ResourceCreate,
    ResourceOut,
)
from groupwork.services import membership_service, message_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def create_group(payload: GroupCreate, actor_id: str = Query(...), db: Session = Depends(get_db)):
    """Create a group. The creator becomes its only member, as admin."""
    group = membership_service.create_group(
        db,
        name=payload.name,
        creator_id=actor_id,
        description=payload.description,
        category=payload.category,
        tags=payload.tags,
        is_public=payload.is_public,
        max_members=payload.max_members,
    )
    return presenters.group_detail(db, group)


@router.get("/", response_model=list[GroupSummaryOut])
def list_my_groups(actor_id: str = Query(...), db: Session = Depends(get_db)):
    """Groups the acting user belongs to, most recently active first."""
    groups = membership_service.list_user_groups(db, actor_id)
    return [presenters.group_summary(db, g) for g in groups]


@router.get("/search", response_model=list[GroupSearchOut])
def search_groups(
    actor_id: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Substring of name, description or a tag"),
    category: Optional[str] = Query(None, description="Category, or 'all'"),
    tags: Optional[list[str]] = Query(None),
    limit: int = Query(100, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Browse public groups. Without filters this lists every public group."""
    groups = membership_service.search_groups(db, query=q, category=category, tags=tags, limit=limit)
    return [presenters.group_search_result(db, g, actor_id) for g in groups]


@router.get("/{group_id}", response_model=GroupOut)
def get_group(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    group = membership_service.get_group_details(db, group_id, actor_id)
    return presenters.group_detail(db, group)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_group(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    membership_service.delete_group(db, group_id, actor_id)


@router.post("/{group_id}/transfer", response_model=GroupOut)
def transfer_ownership(
    group_id: str, payload: OwnershipTransfer, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    group = membership_service.transfer_ownership(db, group_id, actor_id, payload.new_owner_id)
    return presenters.group_detail(db, group)


@router.get("/{group_id}/stats", response_model=GroupStatsOut)
def get_group_stats(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    return membership_service.get_group_stats(db, group_id, actor_id)


# Join workflow

@router.post("/{group_id}/join", response_model=JoinRequestOut, status_code=status.HTTP_201_CREATED)
def request_join(
    group_id: str, payload: JoinRequestCreate, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    group = membership_service.request_join(db, group_id, actor_id, payload.message)
    request = next(r for r in group.join_requests if r["user_id"] == actor_id)
    return presenters.join_requests(db, [request])[0]


@router.get("/{group_id}/requests", response_model=list[JoinRequestOut])
def get_join_requests(group_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    requests = membership_service.get_join_requests(db, group_id, actor_id)
    return presenters.join_requests(db, requests)


@router.post("/{group_id}/requests/{user_id}/approve", response_model=GroupOut)
def approve_join_request(group_id: str, user_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    group = membership_service.approve_join_request(db, group_id, actor_id, user_id)
    return presenters.group_detail(db, group)


@router.post("/{group_id}/requests/{user_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
def reject_join_request(group_id: str, user_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    membership_service.reject_join_request(db, group_id, actor_id, user_id)


@router.post("/{group_id}/members", response_model=GroupOut, status_code=status.HTTP_201_CREATED)
def add_member(group_id: str, payload: MemberAdd, actor_id: str = Query(...), db: Session = Depends(get_db)):
    """Admin-only direct add by email or student ID."""
    group = membership_service.add_member(db, group_id, actor_id, payload.email_or_student_id)
    return presenters.group_detail(db, group)


@router.delete("/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(group_id: str, user_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    membership_service.remove_member(db, group_id, actor_id, user_id)


# Announcements and resources

@router.post("/{group_id}/announcements", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
def create_announcement(
    group_id: str, payload: AnnouncementCreate, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    return membership_service.create_announcement(
        db, group_id, actor_id, payload.title, payload.content, payload.is_pinned
    )


@router.delete("/{group_id}/announcements/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_announcement(
    group_id: str, announcement_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)
):
    membership_service.delete_announcement(db, group_id, actor_id, announcement_id)


@router.post("/{group_id}/resources", response_model=ResourceOut, status_code=status.HTTP_201_CREATED)
def add_resource(group_id: str, payload: ResourceCreate, actor_id: str = Query(...), db: Session = Depends(get_db)):
    return membership_service.add_resource(
        db,
        group_id,
        actor_id,
        name=payload.name,
        file_url=payload.file_url,
        description=payload.description,
        file_type=payload.file_type,
    )


@router.delete("/{group_id}/resources/{resource_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resource(group_id: str, resource_id: str, actor_id: str = Query(...), db: Session = Depends(get_db)):
    membership_service.delete_resource(db, group_id, actor_id, resource_id)


# Discussion

@router.get("/{group_id}/messages", response_model=MessagePage)
def list_messages(
    group_id: str,
    actor_id: str = Query(...),
    limit: int = Query(50, ge=1, le=200),
    before: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    page = message_service.list_messages(db, group_id, actor_id, limit=limit, before=before)
    return MessagePage(messages=presenters.message_list(db, page["messages"]), has_more=page["has_more"])


@router.post("/{group_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def send_message(group_id: str, payload: MessageCreate, actor_id: str = Query(...), db: Session = Depends(get_db)):
    message = message_service.send_message(db, group_id, actor_id, payload.content, payload.reply_to)
    return presenters.message_list(db, [message])[0]
