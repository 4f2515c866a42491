"""Pydantic schemas for Groups and their embedded records."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from groupwork.models.group import GroupCategory


class GroupCreate(BaseModel):
    name: str
    description: str = ""
    category: Optional[str] = None
    tags: list[str] = []
    is_public: bool = True
    max_members: Optional[int] = None


class GroupMemberOut(BaseModel):
    user_id: str
    role: str
    joined_at: datetime
    full_name: Optional[str] = None
    email: Optional[str] = None


class JoinRequestCreate(BaseModel):
    message: Optional[str] = None


class JoinRequestOut(BaseModel):
    user_id: str
    message: Optional[str] = None
    requested_at: datetime
    full_name: Optional[str] = None
    email: Optional[str] = None


class MemberAdd(BaseModel):
    email_or_student_id: str


class OwnershipTransfer(BaseModel):
    new_owner_id: str


class AnnouncementCreate(BaseModel):
    title: str
    content: str
    is_pinned: bool = False


class AnnouncementOut(BaseModel):
    announcement_id: str
    title: str
    content: str
    created_by: str
    created_at: datetime
    is_pinned: bool = False


class ResourceCreate(BaseModel):
    name: str
    file_url: str
    description: Optional[str] = None
    file_type: Optional[str] = None


class ResourceOut(BaseModel):
    resource_id: str
    name: str
    description: Optional[str] = None
    file_url: str
    file_type: Optional[str] = None
    uploaded_by: str
    uploaded_at: datetime


class GroupSummaryOut(BaseModel):
    group_id: str
    name: str
    description: str
    category: GroupCategory
    tags: list[str] = []
    is_public: bool
    max_members: int
    creator_id: str
    creator_name: Optional[str] = None
    member_count: int
    is_full: bool
    activity_count: int
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class GroupSearchOut(GroupSummaryOut):
    is_member: bool = False
    has_pending_request: bool = False


class GroupOut(GroupSummaryOut):
    members: list[GroupMemberOut] = []
    announcements: list[AnnouncementOut] = []
    resources: list[ResourceOut] = []
    version: int


class GroupStatsOut(BaseModel):
    total_members: int
    total_messages: int
    messages_last_24h: int
    active_members: int
    total_resources: int
    total_announcements: int
    activity_count: int
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=2000)
    reply_to: Optional[str] = None


class MessageOut(BaseModel):
    message_id: str
    group_id: str
    sender_id: str
    sender_name: Optional[str] = None
    content: str
    reply_to: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MessagePage(BaseModel):
    messages: list[MessageOut]
    has_more: bool
