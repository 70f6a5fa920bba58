"""MCP server exposing epicflow to agents over stdio.

Usage:
    epicflow-mcp          # reads the same environment as the REST API
"""

import functools
import logging
from typing import Annotated, Any, Callable

import anyio
from mcp.server.fastmcp import FastMCP
from pydantic import Field

from epicflow.core.context import AppContext, build_context
from epicflow.core.logging import configure_logging
from epicflow.db.schemas import Email, Role, TaskStatus, Text, Ulid
from epicflow.mcp_server.handlers import McpHandlers

logger = logging.getLogger(__name__)

JSON = "application/json"

SessionCode = Annotated[str, Field(description="6 digit session code received after login")]
Minutes = Annotated[int, Field(ge=0, description="Minutes to add to the time spent")]


async def call(fn: Callable[..., str], *args: Any, **kwargs: Any) -> str:
    """Run a blocking handler on a worker thread."""
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))


def build_mcp_server(context: AppContext) -> FastMCP:
    handlers = McpHandlers(context)
    mcp = FastMCP("epicflow")

    # ----- auth

    @mcp.tool(
        name="login",
        description="Authenticate a user by email. A 6 digit session code is sent to the user "
        "and must be passed to every other tool.",
    )
    async def login(email: Email) -> str:
        return await call(handlers.login, email)

    @mcp.tool(
        name="logout",
        description="Invalidate the session code so it can no longer be used.",
    )
    async def logout(session_code: SessionCode) -> str:
        return await call(handlers.logout, session_code)

    # ----- users

    @mcp.tool(name="list-users", description="List all users.")
    async def list_users(session_code: SessionCode) -> str:
        return await call(handlers.list_users, session_code)

    @mcp.tool(name="my-profile", description="Get the profile of the logged in user.")
    async def my_profile(session_code: SessionCode) -> str:
        return await call(handlers.my_profile, session_code)

    @mcp.tool(name="user-profile", description="Get the profile of a specific user.")
    async def user_profile(session_code: SessionCode, user_id: Ulid) -> str:
        return await call(handlers.user_profile, session_code, user_id=user_id)

    @mcp.tool(name="create-user", description="Register a new user with a role.")
    async def create_user(
        session_code: SessionCode,
        email: Email,
        first_name: str,
        last_name: str,
        password: Text,
        role: Role,
    ) -> str:
        return await call(
            handlers.create_user,
            session_code,
            email=email,
            first_name=first_name,
            last_name=last_name,
            password=password,
            role=role,
        )

    @mcp.tool(name="delete-user", description="Delete a user. Their epics, tasks and comments are kept.")
    async def delete_user(session_code: SessionCode, user_id: Ulid) -> str:
        return await call(handlers.delete_user, session_code, user_id=user_id)

    # ----- epics

    @mcp.tool(name="list-epics", description="List available epics, most recent first.")
    async def list_epics(session_code: SessionCode) -> str:
        return await call(handlers.list_epics, session_code)

    @mcp.tool(name="epic-detail", description="Get an epic with its task and assignee counts.")
    async def epic_detail(session_code: SessionCode, epic_id: Ulid) -> str:
        return await call(handlers.epic_detail, session_code, epic_id=epic_id)

    @mcp.tool(name="epic-statistics", description="Count tasks per status for every epic and its completion percentage.")
    async def epic_statistics(session_code: SessionCode) -> str:
        return await call(handlers.epic_statistics, session_code)

    @mcp.tool(name="create-epic", description="Create a new epic.")
    async def create_epic(session_code: SessionCode, title: Text) -> str:
        return await call(handlers.create_epic, session_code, title=title)

    @mcp.tool(name="rename-epic", description="Change the title of an epic.")
    async def rename_epic(session_code: SessionCode, epic_id: Ulid, title: Text) -> str:
        return await call(handlers.rename_epic, session_code, epic_id=epic_id, title=title)

    @mcp.tool(name="delete-epic", description="Delete an epic. Its tasks are kept.")
    async def delete_epic(session_code: SessionCode, epic_id: Ulid) -> str:
        return await call(handlers.delete_epic, session_code, epic_id=epic_id)

    # ----- tasks

    @mcp.tool(name="list-tasks", description="List available tasks, optionally for one epic.")
    async def list_tasks(session_code: SessionCode, epic_id: Ulid | None = None) -> str:
        return await call(handlers.list_tasks, session_code, epic_id=epic_id)

    @mcp.tool(name="task-statistics-by-user", description="Count the number of tasks per assignee.")
    async def task_statistics_by_user(session_code: SessionCode) -> str:
        return await call(handlers.task_statistics_by_user, session_code)

    @mcp.tool(name="task-statistics-by-task", description="Count the number of comments per task.")
    async def task_statistics_by_task(session_code: SessionCode) -> str:
        return await call(handlers.task_statistics_by_task, session_code)

    @mcp.tool(name="task-detail", description="Get a task with its comment count.")
    async def task_detail(session_code: SessionCode, task_id: Ulid) -> str:
        return await call(handlers.task_detail, session_code, task_id=task_id)

    @mcp.tool(name="create-task", description="Create a new task in an epic.")
    async def create_task(session_code: SessionCode, epic_id: Ulid, title: Text, description: str) -> str:
        return await call(handlers.create_task, session_code, epic_id=epic_id, title=title, description=description)

    @mcp.tool(name="update-task", description="Update the title and description of a task.")
    async def update_task(session_code: SessionCode, task_id: Ulid, title: Text, description: str) -> str:
        return await call(handlers.update_task, session_code, task_id=task_id, title=title, description=description)

    @mcp.tool(name="delete-task", description="Delete a task.")
    async def delete_task(session_code: SessionCode, task_id: Ulid) -> str:
        return await call(handlers.delete_task, session_code, task_id=task_id)

    @mcp.tool(name="assign-task", description="Assign a task to a user. Only managers and admins can assign tasks.")
    async def assign_task(session_code: SessionCode, task_id: Ulid, user_id: Ulid) -> str:
        return await call(handlers.assign_task, session_code, task_id=task_id, user_id=user_id)

    @mcp.tool(name="unassign-task", description="Remove the assignee of a task. Only managers and admins can unassign.")
    async def unassign_task(session_code: SessionCode, task_id: Ulid) -> str:
        return await call(handlers.unassign_task, session_code, task_id=task_id)

    @mcp.tool(
        name="log-work-on-task",
        description="Set the task status and add minutes to the time spent on it.",
    )
    async def log_work_on_task(
        session_code: SessionCode,
        task_id: Ulid,
        status: TaskStatus,
        increment_time_spent_in_minutes: Minutes,
    ) -> str:
        return await call(
            handlers.log_work,
            session_code,
            task_id=task_id,
            status=status,
            increment_time_spent_in_minutes=increment_time_spent_in_minutes,
        )

    # ----- comments

    @mcp.tool(name="list-comments", description="List comments, optionally for one task.")
    async def list_comments(session_code: SessionCode, task_id: Ulid | None = None) -> str:
        return await call(handlers.list_comments, session_code, task_id=task_id)

    @mcp.tool(name="create-comment", description="Comment on a task.")
    async def create_comment(session_code: SessionCode, task_id: Ulid, content: Text) -> str:
        return await call(handlers.create_comment, session_code, task_id=task_id, content=content)

    @mcp.tool(name="update-comment", description="Change the content of a comment.")
    async def update_comment(session_code: SessionCode, comment_id: Ulid, content: Text) -> str:
        return await call(handlers.update_comment, session_code, comment_id=comment_id, content=content)

    @mcp.tool(name="delete-comment", description="Delete a comment.")
    async def delete_comment(session_code: SessionCode, comment_id: Ulid) -> str:
        return await call(handlers.delete_comment, session_code, comment_id=comment_id)

    # ----- resources

    @mcp.resource("users://{session_code}/list", name="users", mime_type=JSON)
    async def users_resource(session_code: str) -> str:
        return await call(handlers.list_users, session_code)

    @mcp.resource("users://{session_code}/profile", name="profile", mime_type=JSON)
    async def profile_resource(session_code: str) -> str:
        return await call(handlers.my_profile, session_code)

    @mcp.resource("epics://{session_code}/list", name="epics", mime_type=JSON)
    async def epics_resource(session_code: str) -> str:
        return await call(handlers.list_epics, session_code)

    @mcp.resource("epics://{session_code}/statistics", name="epic-statistics", mime_type=JSON)
    async def epic_statistics_resource(session_code: str) -> str:
        return await call(handlers.epic_statistics, session_code)

    @mcp.resource("epics://{session_code}/detail/{epic_id}", name="epic", mime_type=JSON)
    async def epic_resource(session_code: str, epic_id: str) -> str:
        return await call(handlers.epic_detail, session_code, epic_id=epic_id)

    @mcp.resource("tasks://{session_code}/list", name="tasks", mime_type=JSON)
    async def tasks_resource(session_code: str) -> str:
        return await call(handlers.list_tasks, session_code)

    @mcp.resource("tasks://{session_code}/detail/{task_id}", name="task", mime_type=JSON)
    async def task_resource(session_code: str, task_id: str) -> str:
        return await call(handlers.task_detail, session_code, task_id=task_id)

    @mcp.resource("comments://{session_code}/task/{task_id}", name="task-comments", mime_type=JSON)
    async def comments_resource(session_code: str, task_id: str) -> str:
        return await call(handlers.list_comments, session_code, task_id=task_id)

    return mcp


def main() -> None:
    context = build_context()
    configure_logging(context.settings.log_level)
    logger.info("Starting epicflow MCP server on stdio")
    try:
        build_mcp_server(context).run()
    finally:
        context.close()


if __name__ == "__main__":
    main()
