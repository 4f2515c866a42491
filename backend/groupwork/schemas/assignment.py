"""Pydantic schemas for Assignments."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class AssignmentCreate(BaseModel):
    title: str
    description: str = ""
    due_date: datetime
    onedrive_link: Optional[str] = None
    is_for_all: bool = False
    group_ids: list[str] = []


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    onedrive_link: Optional[str] = None


class AssignmentOut(BaseModel):
    assignment_id: str
    title: str
    description: str
    due_date: datetime
    onedrive_link: Optional[str] = None
    created_by: str
    creator_name: Optional[str] = None
    is_for_all: bool
    assigned_groups: list[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AssignmentStatsOut(AssignmentOut):
    submitted_count: int
    graded_count: int
    total_groups: int
