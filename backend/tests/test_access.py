from epicflow.services.access import Action, ResourceName, action_for_method, is_allowed, resource_for
from epicflow.services.identity import Identity
from epicflow.services.oracle import InMemoryOracle, OracleError

ADMIN = Identity(user_id="a1", role="Admin")
DEV = Identity(user_id="d1", role="Developer")


def test_action_for_method():
    assert action_for_method("get") == Action.READ
    assert action_for_method("POST") == Action.CREATE
    assert action_for_method("PUT") == Action.UPDATE
    assert action_for_method("PATCH", "/api/tasks/t1") == Action.UPDATE
    assert action_for_method("DELETE") == Action.DELETE
    assert action_for_method("PATCH", "/api/tasks/t1/assign") == Action.ASSIGN
    assert action_for_method("PATCH", "/api/tasks/t1/unassign") == Action.UNASSIGN
    assert action_for_method("PATCH", "/api/tasks/t1/log-work") == Action.LOG_WORK
    assert action_for_method("OPTIONS") is None


def test_resource_for_scopes_non_admins_to_instances():
    assert resource_for(DEV, ResourceName.TASK, "t1") == "Task:t1"
    assert resource_for(ADMIN, ResourceName.TASK, "t1") == "Task"
    assert resource_for(DEV, ResourceName.EPIC) == "Epic"


class RecordingOracle(InMemoryOracle):
    def check(self, user_key, action, resource):
        super().check(user_key, action, resource)
        return True


class DownOracle(InMemoryOracle):
    def check(self, user_key, action, resource):
        raise OracleError("unreachable")


def test_is_allowed_passes_scoped_target():
    oracle = RecordingOracle(record_checks=True)

    assert is_allowed(oracle, DEV, ResourceName.TASK, Action.LOG_WORK, "t1")
    assert oracle.checks == [("d1", "log-work", "Task:t1")]


def test_is_allowed_fails_closed():
    assert is_allowed(DownOracle(), ADMIN, ResourceName.EPIC, Action.READ) is False
