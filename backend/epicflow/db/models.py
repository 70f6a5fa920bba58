from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String, Text
from sqlalchemy.orm import declarative_base, relationship
from ulid import ULID


Base = declarative_base()

ROLES = ("Admin", "Manager", "Developer")
TASK_STATUSES = ("TODO", "IN_PROGRESS", "DONE")


def new_id() -> str:
    return str(ULID())


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=new_id)
    email = Column(String, nullable=False, unique=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False)
    created_at = Column(String, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("role IN ('Admin', 'Manager', 'Developer')", name="ck_users_role"),
    )


class UserSession(Base):
    __tablename__ = "sessions"

    id = Column(String(26), primary_key=True, default=new_id)
    code = Column(String, nullable=False, index=True)
    user_id = Column(String(26), ForeignKey("users.id"), nullable=False)
    created_at = Column(String, nullable=False, default=utc_now)

    user = relationship("User")


class Epic(Base):
    __tablename__ = "epics"

    id = Column(String(26), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=False)
    created_at = Column(String, nullable=False, default=utc_now)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(26), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    time_spent = Column(Integer, nullable=False, default=0)
    status = Column(String, nullable=False, default="TODO")
    epic_id = Column(String(26), ForeignKey("epics.id"), nullable=False)
    assigned_to = Column(String(26), ForeignKey("users.id"))
    created_by = Column(String(26), ForeignKey("users.id"), nullable=False)
    created_at = Column(String, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint("status IN ('TODO', 'IN_PROGRESS', 'DONE')", name="ck_tasks_status"),
        CheckConstraint("time_spent >= 0", name="ck_tasks_time_spent"),
    )


class Comment(Base):
    __tablename__ = "comments"

    id = Column(String(26), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    task_id = Column(String(26), ForeignKey("tasks.id"), nullable=False)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=False)
    created_at = Column(String, nullable=False, default=utc_now)
