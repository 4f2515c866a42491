"""Assignment ORM model."""
import uuid
from sqlalchemy import Column, String, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from groupwork.database import Base


class Assignment(Base):
    __tablename__ = "assignments"

    assignment_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    due_date = Column(DateTime(timezone=True), nullable=False)
    onedrive_link = Column(String(500), nullable=True)
    created_by = Column(String(36), nullable=False)
    is_for_all = Column(Boolean, nullable=False, default=False)
    assigned_groups = Column(JSON, nullable=False, default=list)  # group ids when not for all
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def is_visible_to(self, group_id: str) -> bool:
        return bool(self.is_for_all) or group_id in (self.assigned_groups or [])
