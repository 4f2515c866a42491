"""Group aggregate ORM model.

A group is one row; members, join requests, announcements and resources are
embedded JSON arrays mutated and written back as a unit. ``version`` is the
optimistic concurrency token: every UPDATE/DELETE is predicated on the value
that was read.
"""
import uuid
import enum
from sqlalchemy import Column, String, Text, Boolean, Integer, DateTime, JSON, Enum as SAEnum
from sqlalchemy.sql import func
from groupwork.database import Base


class GroupRole(str, enum.Enum):
    admin = "admin"
    member = "member"


class GroupCategory(str, enum.Enum):
    study = "study"
    project = "project"
    class_ = "class"
    general = "general"


MIN_MEMBERS = 2
MAX_MEMBERS = 100


class Group(Base):
    __tablename__ = "groups"

    group_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(150), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(
        SAEnum(GroupCategory, values_callable=lambda e: [c.value for c in e]),
        nullable=False,
        default=GroupCategory.general,
    )
    tags = Column(JSON, nullable=False, default=list)
    is_public = Column(Boolean, nullable=False, default=True)
    max_members = Column(Integer, nullable=False, default=50)

    # User reference without a foreign key; may dangle until reconciled.
    creator_id = Column(String(36), nullable=False, index=True)

    members = Column(JSON, nullable=False, default=list)
    join_requests = Column(JSON, nullable=False, default=list)
    announcements = Column(JSON, nullable=False, default=list)
    resources = Column(JSON, nullable=False, default=list)

    activity_count = Column(Integer, nullable=False, default=0)
    last_activity_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def member_entry(self, user_id: str):
        """Return the embedded membership dict for ``user_id`` or None."""
        return next((m for m in self.members or [] if m.get("user_id") == user_id), None)

    def is_member(self, user_id: str) -> bool:
        return self.member_entry(user_id) is not None

    def is_admin(self, user_id: str) -> bool:
        entry = self.member_entry(user_id)
        return entry is not None and entry.get("role") == GroupRole.admin.value

    def has_pending_request(self, user_id: str) -> bool:
        return any(r.get("user_id") == user_id for r in self.join_requests or [])

    @property
    def member_count(self) -> int:
        return len(self.members or [])

    @property
    def is_full(self) -> bool:
        return self.member_count >= self.max_members
