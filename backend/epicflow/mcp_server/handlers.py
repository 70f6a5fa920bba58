"""MCP tool and resource logic, independent of the transport.

Every call except login/logout carries a session code. The code is resolved
to an identity, the declared ``(resource, action)`` is checked against the
oracle, and only then does the handler touch the database. Results and
errors are JSON text so an agent can read them directly.
"""

import functools
import json
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from pydantic import BaseModel
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.context import AppContext
from epicflow.db.schemas import (
    CommentOut,
    EpicDetailOut,
    EpicOut,
    EpicStatisticOut,
    TaskCommentStatisticOut,
    TaskDetailOut,
    TaskOut,
    TaskUserStatisticOut,
    UserOut,
)
from epicflow.services import auth as auth_service
from epicflow.services import comments as comment_service
from epicflow.services import epics as epic_service
from epicflow.services import tasks as task_service
from epicflow.services import users as user_service
from epicflow.services.access import Action, ResourceName, is_allowed
from epicflow.services.identity import Identity, resolve_session_code

logger = logging.getLogger(__name__)


def to_json(payload: Any) -> str:
    return json.dumps(payload)


def error(message: str) -> str:
    return to_json({"error": message})


def dump(model: type[BaseModel], item: Any) -> dict:
    return model.model_validate(item).model_dump(by_alias=True)


def dump_all(model: type[BaseModel], items: list[Any]) -> list[dict]:
    return [dump(model, item) for item in items]


def authorize_tool(resource: ResourceName, action: Action, instance_arg: str | None = None):
    """Gate a handler on ``session_code`` plus one oracle check.

    The wrapped handler receives the open session and the caller identity.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(self: "McpHandlers", session_code: str, **kwargs) -> str:
            with self.session() as db:
                identity = resolve_session_code(db, session_code)
                if identity is None:
                    logger.info("Rejected %s: unknown session code", fn.__name__)
                    return error(messages.FORBIDDEN)

                instance_key = kwargs.get(instance_arg) if instance_arg else None
                if not is_allowed(self.context.oracle, identity, resource, action, instance_key):
                    return error(messages.FORBIDDEN)
                return fn(self, db, identity, **kwargs)

        return wrapper

    return decorator


class McpHandlers:
    def __init__(self, context: AppContext) -> None:
        self.context = context

    @property
    def facts(self):
        return self.context.facts

    @contextmanager
    def session(self) -> Iterator[Session]:
        db = self.context.session_factory()
        try:
            yield db
        finally:
            db.close()

    # ----- auth

    def login(self, email: str) -> str:
        with self.session() as db:
            if not auth_service.login_with_session_code(db, self.context.notifier, email):
                return error(messages.INVALID_USER)
        return to_json({"message": messages.SESSION_CODE_SENT})

    def logout(self, session_code: str) -> str:
        with self.session() as db:
            if not auth_service.logout_with_session_code(db, session_code):
                return error(messages.INVALID_SESSION)
        return to_json({"message": messages.SESSION_REVOKED})

    # ----- users

    @authorize_tool(ResourceName.USER, Action.READ)
    def list_users(self, db: Session, identity: Identity) -> str:
        return to_json(dump_all(UserOut, user_service.list_users(db)))

    @authorize_tool(ResourceName.USER, Action.READ)
    def my_profile(self, db: Session, identity: Identity) -> str:
        user = user_service.get_user(db, "id", identity.user_id)
        if not user:
            return error(messages.not_found("User"))
        return to_json(dump(UserOut, user))

    @authorize_tool(ResourceName.USER, Action.READ)
    def user_profile(self, db: Session, identity: Identity, user_id: str) -> str:
        user = user_service.get_user(db, "id", user_id)
        if not user:
            return error(messages.not_found("User"))
        return to_json(dump(UserOut, user))

    @authorize_tool(ResourceName.USER, Action.CREATE)
    def create_user(
        self,
        db: Session,
        identity: Identity,
        email: str,
        first_name: str,
        last_name: str,
        password: str,
        role: str,
    ) -> str:
        if user_service.is_email_taken(db, email):
            return error(messages.EMAIL_TAKEN)
        user = user_service.create_user(
            db,
            self.facts,
            email=email,
            first_name=first_name,
            last_name=last_name,
            password=password,
            role=role,
        )
        return to_json(dump(UserOut, user))

    @authorize_tool(ResourceName.USER, Action.DELETE)
    def delete_user(self, db: Session, identity: Identity, user_id: str) -> str:
        success = user_service.remove_user(db, self.facts, user_id)
        return _delete_result(success, "User")

    # ----- epics

    @authorize_tool(ResourceName.EPIC, Action.READ)
    def list_epics(self, db: Session, identity: Identity) -> str:
        return to_json(dump_all(EpicOut, epic_service.list_epics(db, identity.scope_user_id)))

    @authorize_tool(ResourceName.EPIC, Action.READ, "epic_id")
    def epic_detail(self, db: Session, identity: Identity, epic_id: str) -> str:
        epic = epic_service.get_epic(db, epic_id)
        if not epic:
            return error(messages.not_found("Epic"))
        return to_json(dump(EpicDetailOut, epic))

    @authorize_tool(ResourceName.EPIC, Action.READ)
    def epic_statistics(self, db: Session, identity: Identity) -> str:
        return to_json(dump_all(EpicStatisticOut, epic_service.epic_statistics(db)))

    @authorize_tool(ResourceName.EPIC, Action.CREATE)
    def create_epic(self, db: Session, identity: Identity, title: str) -> str:
        epic = epic_service.create_epic(db, self.facts, title, identity)
        return to_json(dump(EpicOut, epic))

    @authorize_tool(ResourceName.EPIC, Action.UPDATE, "epic_id")
    def rename_epic(self, db: Session, identity: Identity, epic_id: str, title: str) -> str:
        epic = epic_service.update_epic(db, epic_id, title)
        if not epic:
            return error(messages.not_found("Epic"))
        return to_json(dump(EpicOut, epic))

    @authorize_tool(ResourceName.EPIC, Action.DELETE, "epic_id")
    def delete_epic(self, db: Session, identity: Identity, epic_id: str) -> str:
        return _delete_result(epic_service.remove_epic(db, self.facts, epic_id), "Epic")

    # ----- tasks

    @authorize_tool(ResourceName.TASK, Action.READ)
    def list_tasks(self, db: Session, identity: Identity, epic_id: str | None = None) -> str:
        return to_json(dump_all(TaskOut, task_service.list_tasks(db, epic_id, identity.scope_user_id)))

    @authorize_tool(ResourceName.TASK, Action.READ)
    def task_statistics_by_user(self, db: Session, identity: Identity) -> str:
        stats = task_service.task_statistics_by_user(db, identity.scope_user_id)
        return to_json(dump_all(TaskUserStatisticOut, stats))

    @authorize_tool(ResourceName.TASK, Action.READ)
    def task_statistics_by_task(self, db: Session, identity: Identity) -> str:
        stats = task_service.task_statistics_by_task(db, identity.scope_user_id)
        return to_json(dump_all(TaskCommentStatisticOut, stats))

    @authorize_tool(ResourceName.TASK, Action.READ, "task_id")
    def task_detail(self, db: Session, identity: Identity, task_id: str) -> str:
        task = task_service.get_task(db, task_id)
        if not task:
            return error(messages.not_found("Task"))
        return to_json(dump(TaskDetailOut, task))

    @authorize_tool(ResourceName.TASK, Action.CREATE)
    def create_task(self, db: Session, identity: Identity, epic_id: str, title: str, description: str) -> str:
        task = task_service.create_task(
            db, self.facts, epic_id=epic_id, title=title, description=description, creator=identity
        )
        if not task:
            return error(messages.not_found("Epic"))
        return to_json(dump(TaskOut, task))

    @authorize_tool(ResourceName.TASK, Action.UPDATE, "task_id")
    def update_task(self, db: Session, identity: Identity, task_id: str, title: str, description: str) -> str:
        task = task_service.update_task(db, task_id, title, description)
        if not task:
            return error(messages.not_found("Task"))
        return to_json(dump(TaskOut, task))

    @authorize_tool(ResourceName.TASK, Action.DELETE, "task_id")
    def delete_task(self, db: Session, identity: Identity, task_id: str) -> str:
        return _delete_result(task_service.remove_task(db, self.facts, task_id), "Task")

    @authorize_tool(ResourceName.TASK, Action.ASSIGN, "task_id")
    def assign_task(self, db: Session, identity: Identity, task_id: str, user_id: str) -> str:
        if not user_service.user_exists(db, user_id):
            return error(messages.not_found("User"))
        task = task_service.assign_task(db, self.facts, task_id, user_id)
        if not task:
            return error(messages.not_found("Task"))
        return to_json(dump(TaskOut, task))

    @authorize_tool(ResourceName.TASK, Action.UNASSIGN, "task_id")
    def unassign_task(self, db: Session, identity: Identity, task_id: str) -> str:
        task = task_service.unassign_task(db, self.facts, task_id)
        if not task:
            return error(messages.not_found("Task"))
        return to_json(dump(TaskOut, task))

    @authorize_tool(ResourceName.TASK, Action.LOG_WORK, "task_id")
    def log_work(
        self, db: Session, identity: Identity, task_id: str, status: str, increment_time_spent_in_minutes: int
    ) -> str:
        if increment_time_spent_in_minutes < 0:
            return error("incrementTimeSpentInMinutes must not be negative")
        task = task_service.log_work(db, self.facts, task_id, status, increment_time_spent_in_minutes)
        if not task:
            return error(messages.not_found("Task"))
        return to_json(dump(TaskOut, task))

    # ----- comments

    @authorize_tool(ResourceName.COMMENT, Action.READ)
    def list_comments(self, db: Session, identity: Identity, task_id: str | None = None) -> str:
        return to_json(dump_all(CommentOut, comment_service.list_comments(db, task_id)))

    @authorize_tool(ResourceName.COMMENT, Action.CREATE)
    def create_comment(self, db: Session, identity: Identity, task_id: str, content: str) -> str:
        comment = comment_service.create_comment(db, self.facts, task_id=task_id, content=content, author=identity)
        if not comment:
            return error(messages.not_found("Task"))
        return to_json(dump(CommentOut, comment))

    @authorize_tool(ResourceName.COMMENT, Action.UPDATE, "comment_id")
    def update_comment(self, db: Session, identity: Identity, comment_id: str, content: str) -> str:
        comment = comment_service.update_comment(db, comment_id, content)
        if not comment:
            return error(messages.not_found("Comment"))
        return to_json(dump(CommentOut, comment))

    @authorize_tool(ResourceName.COMMENT, Action.DELETE, "comment_id")
    def delete_comment(self, db: Session, identity: Identity, comment_id: str) -> str:
        return _delete_result(comment_service.remove_comment(db, self.facts, comment_id), "Comment")


def _delete_result(success: bool, entity: str) -> str:
    text = messages.delete_message(success, entity)
    return to_json({"message": text}) if success else error(text)
