import asyncio
import json
import time
from dataclasses import replace

import pytest
from mcp.server.fastmcp.exceptions import ToolError
from support import TEST_SETTINGS, make_context, seed_users

from epicflow.core import messages
from epicflow.mcp_server.handlers import McpHandlers
from epicflow.mcp_server.server import build_mcp_server
from epicflow.services.oracle import InMemoryOracle

FORBIDDEN = {"error": messages.FORBIDDEN}


def setup():
    context = make_context()
    seeded = seed_users(context)
    return context, McpHandlers(context), seeded


def login(context, handlers, name):
    assert json.loads(handlers.login(f"{name}@epicflow.test")) == {"message": messages.SESSION_CODE_SENT}
    return context.sent_notifications[-1]["code"]


def test_login_sends_code_and_resolves_profile():
    context, handlers, seeded = setup()
    code = login(context, handlers, "manager")

    assert len(code) == 6
    profile = json.loads(handlers.my_profile(code))
    assert profile["userId"] == seeded["manager"].user_id
    assert profile["email"] == "manager@epicflow.test"
    assert "passwordHash" not in profile


def test_login_with_unknown_email():
    context, handlers, _ = setup()

    assert "error" in json.loads(handlers.login("nobody@epicflow.test"))
    assert context.sent_notifications == []


def test_unknown_or_revoked_code_is_forbidden():
    context, handlers, _ = setup()

    assert json.loads(handlers.list_users("000000")) == FORBIDDEN

    code = login(context, handlers, "dev")
    assert "message" in json.loads(handlers.logout(code))
    assert json.loads(handlers.list_epics(code)) == FORBIDDEN
    assert "error" in json.loads(handlers.logout(code))


def test_epic_task_flow_over_session_codes():
    context, handlers, seeded = setup()
    manager = login(context, handlers, "manager")
    dev = login(context, handlers, "dev")

    assert json.loads(handlers.create_epic(dev, title="Nope")) == FORBIDDEN

    epic = json.loads(handlers.create_epic(manager, title="Agents"))
    task = json.loads(
        handlers.create_task(manager, epic_id=epic["epicId"], title="Wire tools", description="stdio")
    )
    assert task["status"] == "TODO"

    denied = handlers.log_work(dev, task_id=task["taskId"], status="DONE", increment_time_spent_in_minutes=5)
    assert json.loads(denied) == FORBIDDEN

    assigned = json.loads(handlers.assign_task(manager, task_id=task["taskId"], user_id=seeded["dev"].user_id))
    assert assigned["assignedTo"] == seeded["dev"].user_id

    logged = json.loads(
        handlers.log_work(dev, task_id=task["taskId"], status="IN_PROGRESS", increment_time_spent_in_minutes=15)
    )
    assert logged["timeSpent"] == 15
    assert logged["status"] == "IN_PROGRESS"

    [listed] = json.loads(handlers.list_tasks(dev))
    assert listed["taskId"] == task["taskId"]

    stats = json.loads(handlers.epic_statistics(manager))
    assert stats[0]["taskCount"] == 1

    deleted = json.loads(handlers.delete_epic(manager, epic_id=epic["epicId"]))
    assert deleted == {"message": messages.delete_message(True, "Epic")}


def test_missing_entities_are_reported_as_errors():
    context, handlers, _ = setup()
    admin = login(context, handlers, "admin")
    missing = "01J00000000000000000000000"

    assert json.loads(handlers.epic_detail(admin, epic_id=missing)) == {"error": "Epic not found"}
    assert json.loads(handlers.create_task(admin, epic_id=missing, title="t", description="d")) == {
        "error": "Epic not found"
    }
    assert "error" in json.loads(handlers.delete_task(admin, task_id=missing))


def test_tools_are_registered_with_hyphenated_names():
    context = make_context()
    mcp = build_mcp_server(context)

    names = {tool.name for tool in asyncio.run(mcp.list_tools())}
    assert {
        "login",
        "logout",
        "list-users",
        "my-profile",
        "create-epic",
        "epic-statistics",
        "assign-task",
        "log-work-on-task",
        "create-comment",
    } <= names


class SlowOracle(InMemoryOracle):
    def check(self, user_key, action, resource):
        time.sleep(0.5)
        return super().check(user_key, action, resource)


def test_concurrent_tool_calls_run_side_by_side(tmp_path):
    settings = replace(TEST_SETTINGS, database_url=f"sqlite:///{tmp_path / 'mcp.db'}")
    context = make_context(SlowOracle(), settings)
    seed_users(context)
    code = login(context, McpHandlers(context), "manager")
    mcp = build_mcp_server(context)

    async def run_both():
        start = time.perf_counter()
        await asyncio.gather(
            mcp.call_tool("list-epics", {"session_code": code}),
            mcp.call_tool("list-users", {"session_code": code}),
        )
        return time.perf_counter() - start

    try:
        assert asyncio.run(run_both()) < 0.9
    finally:
        context.close()


def test_tool_inputs_reject_empty_text():
    context, handlers, _ = setup()
    code = login(context, handlers, "admin")
    mcp = build_mcp_server(context)

    with pytest.raises(ToolError):
        asyncio.run(mcp.call_tool("create-epic", {"session_code": code, "title": ""}))
    with pytest.raises(ToolError):
        asyncio.run(
            mcp.call_tool(
                "create-user",
                {
                    "session_code": code,
                    "email": "empty@epicflow.test",
                    "first_name": "Empty",
                    "last_name": "Password",
                    "password": "",
                    "role": "Developer",
                },
            )
        )

    assert json.loads(handlers.list_epics(code)) == []
    assert all(user["email"] != "empty@epicflow.test" for user in json.loads(handlers.list_users(code)))
