"""GroupMessage ORM model: fire-and-forget group discussion."""
import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, String, Text, DateTime, Index
from groupwork.database import Base

MAX_MESSAGE_LENGTH = 2000


class GroupMessage(Base):
    __tablename__ = "group_messages"

    message_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    group_id = Column(String(36), nullable=False)
    sender_id = Column(String(36), nullable=False)
    content = Column(Text, nullable=False)
    reply_to = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        Index("ix_group_messages_group_created", "group_id", "created_at"),
    )
