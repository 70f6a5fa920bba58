from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints
from pydantic.alias_generators import to_camel


ULID_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

Ulid = Annotated[str, StringConstraints(pattern=ULID_PATTERN)]
Email = Annotated[str, StringConstraints(strip_whitespace=True, pattern=EMAIL_PATTERN)]
Text = Annotated[str, StringConstraints(min_length=1)]
Role = Literal["Admin", "Manager", "Developer"]
TaskStatus = Literal["TODO", "IN_PROGRESS", "DONE"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ----- auth


class LoginRequest(CamelModel):
    email: Email
    password: str


class TokenResponse(CamelModel):
    user_id: str
    user_name: str
    role: Role
    access_token: str
    token_type: str = "bearer"


class SessionCodeRequest(CamelModel):
    email: Email


class LogoutRequest(CamelModel):
    session_code: str


class MessageOut(CamelModel):
    message: str


# ----- users


class UserCreate(CamelModel):
    email: Email
    first_name: str
    last_name: str
    password: Text
    role: Role


class UserOut(CamelModel):
    user_id: str = Field(validation_alias="id")
    email: str
    first_name: str
    last_name: str
    role: Role
    created_at: str


# ----- epics


class EpicCreate(CamelModel):
    title: Text


class EpicUpdate(CamelModel):
    title: Text


class EpicOut(CamelModel):
    epic_id: str = Field(validation_alias="id")
    title: str
    created_at: str
    created_by: str


class EpicDetailOut(EpicOut):
    task_count: int
    unique_assignee_count: int


class EpicStatisticOut(CamelModel):
    epic_id: str
    title: str
    task_count: int
    todo_task_count: int
    in_progress_task_count: int
    completed_task_count: int
    completion_percentage: int | None


# ----- tasks


class TaskCreate(CamelModel):
    epic_id: Ulid
    title: Text
    description: str


class TaskUpdate(CamelModel):
    title: Text
    description: str


class TaskAssign(CamelModel):
    user_id: Ulid


class LogWorkRequest(CamelModel):
    status: TaskStatus
    increment_time_spent_in_minutes: int = Field(ge=0)


class TaskOut(CamelModel):
    task_id: str = Field(validation_alias="id")
    title: str
    description: str
    time_spent: int
    status: TaskStatus
    epic_id: str
    assigned_to: str | None
    created_at: str
    created_by: str


class TaskDetailOut(TaskOut):
    comments_count: int


class TaskUserStatisticOut(CamelModel):
    user_id: str | None
    first_name: str | None
    last_name: str | None
    task_count: int


class TaskCommentStatisticOut(CamelModel):
    task_id: str
    title: str
    epic_id: str
    assignee_user_id: str | None
    comments_count: int


# ----- comments


class CommentCreate(CamelModel):
    task_id: Ulid
    content: Text


class CommentUpdate(CamelModel):
    content: Text


class CommentOut(CamelModel):
    comment_id: str = Field(validation_alias="id")
    content: str
    task_id: str
    created_at: str
    created_by: str
