import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Integer, Text, Uuid, Enum as SAEnum
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from app.db.base import Base
from app.models.task import TaskStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamps on every backend.

    SQLite has no timezone support and hands values back naive, so they are
    stored as UTC and re-tagged with UTC when read.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class User(Base):
    __tablename__ = "users"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(320), unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    tasks = relationship("Task", back_populates="owner", cascade="all, delete-orphan")

class Task(Base):
    __tablename__ = "tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Unique constraint is the last line of defence for the code allocator.
    code = Column(String(32), unique=True, index=True, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    # The enum type (a CHECK constraint on SQLite) rejects anything outside
    # the six workflow states, so the service does not re-validate it.
    status = Column(
        SAEnum(
            TaskStatus,
            name="task_status",
            values_callable=lambda enum: [member.value for member in enum],
            create_constraint=True,
            validate_strings=True,
        ),
        nullable=False,
        default=TaskStatus.TODO,
        index=True,
    )
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    owner = relationship("User", back_populates="tasks")

class TaskCodeCounter(Base):
    """
    Highest sequence number ever issued for an initials prefix.
    Never decremented, so codes of deleted tasks are not handed out again.
    """
    __tablename__ = "task_code_counters"

    prefix = Column(String(16), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
