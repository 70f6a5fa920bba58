import logging
from enum import Enum

from epicflow.services.identity import Identity
from epicflow.services.oracle import AuthorizationOracle, OracleError, instance_ref

logger = logging.getLogger(__name__)


class ResourceName(str, Enum):
    USER = "User"
    EPIC = "Epic"
    TASK = "Task"
    COMMENT = "Comment"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    LOG_WORK = "log-work"


METHOD_ACTIONS = {
    "POST": Action.CREATE,
    "GET": Action.READ,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}

# matched before the verb so PATCH /tasks/{id}/assign is not a plain update
PATH_ACTIONS = (Action.UNASSIGN, Action.ASSIGN, Action.LOG_WORK)


def action_for_method(method: str, path: str = "") -> Action | None:
    segments = [item for item in path.split("/") if item]
    for action in PATH_ACTIONS:
        if action.value in segments:
            return action
    return METHOD_ACTIONS.get(method.upper())


def resource_for(identity: Identity, resource: ResourceName, instance_key: str | None = None) -> str:
    """Admins are checked tenant-wide, everyone else on the instance when there is one."""
    if instance_key and not identity.is_admin:
        return instance_ref(resource.value, instance_key)
    return resource.value


def is_allowed(
    oracle: AuthorizationOracle,
    identity: Identity,
    resource: ResourceName,
    action: Action,
    instance_key: str | None = None,
) -> bool:
    target = resource_for(identity, resource, instance_key)
    try:
        allowed = oracle.check(identity.user_id, action.value, target)
    except OracleError:
        logger.warning(
            "Authorization check failed for %s %s %s, denying", identity.user_id, action.value, target, exc_info=True
        )
        return False

    if not allowed:
        logger.info("Denied %s %s on %s", identity.user_id, action.value, target)
    return allowed
