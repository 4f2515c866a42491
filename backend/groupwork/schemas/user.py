"""Pydantic schemas for Users."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr

from groupwork.models.user import UserRole


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str
    student_id: Optional[str] = None
    role: UserRole = UserRole.student


class UserOut(BaseModel):
    user_id: str
    email: str
    full_name: str
    student_id: Optional[str] = None
    role: UserRole
    created_at: datetime

    model_config = {"from_attributes": True}
