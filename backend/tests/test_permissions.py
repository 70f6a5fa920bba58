from support import auth_headers, make_client

from epicflow.core import messages
from epicflow.db.models import Epic
from epicflow.services.oracle import InMemoryOracle, OracleError


def create_epic(client, identity, title="Epic"):
    response = client.post("/api/epics", headers=auth_headers(identity), json={"title": title})
    assert response.status_code == 201
    return response.json()["epicId"]


def create_task(client, identity, epic_id, title="Task"):
    response = client.post(
        "/api/tasks",
        headers=auth_headers(identity),
        json={"epicId": epic_id, "title": title, "description": "details"},
    )
    assert response.status_code == 201
    return response.json()["taskId"]


def test_missing_token_is_rejected_without_mutation():
    client, context, _ = make_client()

    response = client.post("/api/epics", json={"title": "Sneaky"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    db = context.session_factory()
    assert db.query(Epic).count() == 0
    db.close()
    assert context.oracle.checks == []


def test_invalid_token_is_rejected():
    client, _, _ = make_client()

    response = client.get("/api/epics", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_only_manager_and_admin_can_create_epics():
    client, _, seeded = make_client()

    assert client.post("/api/epics", headers=auth_headers(seeded["manager"]), json={"title": "M"}).status_code == 201
    assert client.post("/api/epics", headers=auth_headers(seeded["admin"]), json={"title": "A"}).status_code == 201

    dev_response = client.post("/api/epics", headers=auth_headers(seeded["dev"]), json={"title": "D"})
    assert dev_response.status_code == 403
    assert dev_response.json()["detail"] == "Permission denied"


def test_only_admin_can_create_users():
    client, _, seeded = make_client()
    payload = {
        "email": "new@epicflow.test",
        "firstName": "New",
        "lastName": "User",
        "password": "secret",
        "role": "Developer",
    }

    assert client.post("/api/users", headers=auth_headers(seeded["manager"]), json=payload).status_code == 403
    assert client.post("/api/users", headers=auth_headers(seeded["admin"]), json=payload).status_code == 201


def test_dev_can_log_work_only_on_assigned_task():
    client, _, seeded = make_client()
    epic_id = create_epic(client, seeded["manager"])
    own_task = create_task(client, seeded["manager"], epic_id, "Own")
    other_task = create_task(client, seeded["manager"], epic_id, "Other")

    assign = client.patch(
        f"/api/tasks/{own_task}/assign",
        headers=auth_headers(seeded["manager"]),
        json={"userId": seeded["dev"].user_id},
    )
    assert assign.status_code == 200

    body = {"status": "IN_PROGRESS", "incrementTimeSpentInMinutes": 15}
    own = client.patch(f"/api/tasks/{own_task}/log-work", headers=auth_headers(seeded["dev"]), json=body)
    assert own.status_code == 200
    assert own.json()["timeSpent"] == 15

    other = client.patch(f"/api/tasks/{other_task}/log-work", headers=auth_headers(seeded["dev"]), json=body)
    assert other.status_code == 403


def test_dev_cannot_assign_tasks():
    client, _, seeded = make_client()
    epic_id = create_epic(client, seeded["manager"])
    task_id = create_task(client, seeded["dev"], epic_id)

    response = client.patch(
        f"/api/tasks/{task_id}/assign",
        headers=auth_headers(seeded["dev"]),
        json={"userId": seeded["dev"].user_id},
    )
    assert response.status_code == 403


def test_non_admin_checks_are_instance_scoped():
    client, context, seeded = make_client()
    epic_id = create_epic(client, seeded["manager"])

    client.get(f"/api/epics/{epic_id}", headers=auth_headers(seeded["manager"]))
    client.get(f"/api/epics/{epic_id}", headers=auth_headers(seeded["admin"]))

    assert context.oracle.checks[-2] == (seeded["manager"].user_id, "read", f"Epic:{epic_id}")
    assert context.oracle.checks[-1] == (seeded["admin"].user_id, "read", "Epic")


class UnreachableOracle(InMemoryOracle):
    def check(self, user_key, action, resource):
        raise OracleError("connection refused")


def test_oracle_failure_fails_closed():
    client, context, seeded = make_client(oracle=UnreachableOracle())

    response = client.post("/api/epics", headers=auth_headers(seeded["admin"]), json={"title": "Nope"})
    assert response.status_code == 403

    db = context.session_factory()
    assert db.query(Epic).count() == 0
    db.close()


def test_duplicate_email_differing_by_case_is_rejected():
    client, context, seeded = make_client()
    payload = {
        "email": "Dev@EpicFlow.test",
        "firstName": "Dup",
        "lastName": "User",
        "password": "secret",
        "role": "Developer",
    }

    response = client.post("/api/users", headers=auth_headers(seeded["admin"]), json=payload)
    assert response.status_code == 409
    assert response.json()["detail"] == messages.EMAIL_TAKEN


def test_deleting_missing_rows_is_not_found():
    client, _, seeded = make_client()
    headers = auth_headers(seeded["admin"])
    missing = "01J00000000000000000000000"

    for path in ("users", "epics", "tasks", "comments"):
        assert client.delete(f"/api/{path}/{missing}", headers=headers).status_code == 404


def test_route_actions_follow_method_and_path():
    client, context, seeded = make_client()
    manager = seeded["manager"]
    headers = auth_headers(manager)
    epic_id = create_epic(client, manager)
    task_id = create_task(client, manager, epic_id)
    ref = f"Task:{task_id}"

    calls = [
        (client.get, f"/api/tasks/{task_id}", None, "read"),
        (client.put, f"/api/tasks/{task_id}", {"title": "Renamed", "description": ""}, "update"),
        (client.patch, f"/api/tasks/{task_id}/assign", {"userId": seeded["dev"].user_id}, "assign"),
        (
            client.patch,
            f"/api/tasks/{task_id}/log-work",
            {"status": "DONE", "incrementTimeSpentInMinutes": 1},
            "log-work",
        ),
        (client.patch, f"/api/tasks/{task_id}/unassign", None, "unassign"),
        (client.delete, f"/api/tasks/{task_id}", None, "delete"),
    ]
    for send, path, body, action in calls:
        response = send(path, headers=headers, json=body) if body is not None else send(path, headers=headers)
        assert response.status_code in (200, 204)
        assert context.oracle.checks[-1] == (manager.user_id, action, ref)
