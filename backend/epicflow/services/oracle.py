"""Authorization oracle adapters.

The oracle answers allow/deny for ``(user, action, resource)`` and keeps a fact
store (users, resource instances, role assignments, relationship tuples) that
its policies evaluate against. ``PermitOracle`` talks to Permit.io over HTTP;
``InMemoryOracle`` keeps the same facts in process and evaluates a small
RBAC/ReBAC policy, which is what the tests and local development run against.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable

import httpx

logger = logging.getLogger(__name__)

PARENT_RELATION = "parent"
ALL_ACTIONS = frozenset({"create", "read", "update", "delete", "assign", "unassign", "log-work"})


class OracleError(Exception):
    """Raised when the oracle cannot be reached or rejects a request."""


def instance_ref(resource: str, key: str) -> str:
    return f"{resource}:{key}"


def split_ref(resource: str) -> tuple[str, str | None]:
    if ":" in resource:
        resource_type, key = resource.split(":", 1)
        return resource_type, key
    return resource, None


class AuthorizationOracle(ABC):
    @abstractmethod
    def check(self, user_key: str, action: str, resource: str) -> bool: ...

    @abstractmethod
    def sync_user(self, key: str, email: str, first_name: str, last_name: str, role: str) -> None: ...

    @abstractmethod
    def delete_user(self, key: str) -> None: ...

    @abstractmethod
    def create_instance(self, resource: str, key: str, attributes: dict[str, Any] | None = None) -> None: ...

    @abstractmethod
    def update_instance(self, resource: str, key: str, attributes: dict[str, Any]) -> None: ...

    @abstractmethod
    def delete_instance(self, resource: str, key: str) -> None: ...

    @abstractmethod
    def assign_role(self, user_key: str, role: str, instance: str | None = None) -> None: ...

    @abstractmethod
    def unassign_role(self, user_key: str, role: str, instance: str | None = None) -> None: ...

    @abstractmethod
    def create_relationship(self, subject: str, relation: str, object_: str) -> None: ...

    def close(self) -> None:
        return None


class PermitOracle(AuthorizationOracle):
    """Permit.io client: PDP for decisions, REST API for facts."""

    def __init__(
        self,
        token: str,
        pdp_url: str,
        api_url: str,
        tenant: str,
        client: httpx.Client | None = None,
    ) -> None:
        self.pdp_url = pdp_url.rstrip("/")
        self.api_url = api_url.rstrip("/")
        self.tenant = tenant
        self.client = client or httpx.Client()
        self.client.headers.update({"Authorization": f"Bearer {token}", "Content-Type": "application/json"})
        self._facts_prefix: str | None = None

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise OracleError(f"{method} {url} returned {e.response.status_code}: {e.response.text}") from e
        except httpx.HTTPError as e:
            raise OracleError(f"{method} {url} failed: {e}") from e

    def _json(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        response = self._request(method, url, **kwargs)
        try:
            payload = response.json()
        except ValueError as e:
            raise OracleError(f"{method} {url} returned a non-JSON body") from e
        if not isinstance(payload, dict):
            raise OracleError(f"{method} {url} returned {type(payload).__name__}, expected an object")
        return payload

    def _facts_url(self, path: str) -> str:
        if self._facts_prefix is None:
            scope = self._json("GET", f"{self.api_url}/v2/api-key/scope")
            try:
                self._facts_prefix = f"{self.api_url}/v2/facts/{scope['project_id']}/{scope['environment_id']}"
            except KeyError as e:
                raise OracleError("API key is not scoped to an environment") from e
        return f"{self._facts_prefix}/{path}"

    def check(self, user_key: str, action: str, resource: str) -> bool:
        resource_type, key = split_ref(resource)
        target: dict[str, Any] = {"type": resource_type, "tenant": self.tenant}
        if key:
            target["key"] = key
        payload = {"user": {"key": user_key}, "action": action, "resource": target, "context": {}}
        result = self._json("POST", f"{self.pdp_url}/allowed", json=payload)
        return bool(result.get("allow", False))

    def sync_user(self, key: str, email: str, first_name: str, last_name: str, role: str) -> None:
        self._request(
            "PUT",
            self._facts_url(f"users/{key}"),
            json={"key": key, "email": email, "first_name": first_name, "last_name": last_name, "attributes": {}},
        )
        self.assign_role(key, role)

    def delete_user(self, key: str) -> None:
        self._request("DELETE", self._facts_url(f"users/{key}"))

    def create_instance(self, resource: str, key: str, attributes: dict[str, Any] | None = None) -> None:
        self._request(
            "POST",
            self._facts_url("resource_instances"),
            json={"key": key, "resource": resource, "tenant": self.tenant, "attributes": attributes or {}},
        )

    def update_instance(self, resource: str, key: str, attributes: dict[str, Any]) -> None:
        self._request(
            "PATCH",
            self._facts_url(f"resource_instances/{instance_ref(resource, key)}"),
            json={"attributes": attributes},
        )

    def delete_instance(self, resource: str, key: str) -> None:
        self._request("DELETE", self._facts_url(f"resource_instances/{instance_ref(resource, key)}"))

    def _role_assignment(self, user_key: str, role: str, instance: str | None) -> dict[str, Any]:
        body: dict[str, Any] = {"user": user_key, "role": role, "tenant": self.tenant}
        if instance:
            body["resource_instance"] = instance
        return body

    def assign_role(self, user_key: str, role: str, instance: str | None = None) -> None:
        self._request("POST", self._facts_url("role_assignments"), json=self._role_assignment(user_key, role, instance))

    def unassign_role(self, user_key: str, role: str, instance: str | None = None) -> None:
        self._request("DELETE", self._facts_url("role_assignments"), json=self._role_assignment(user_key, role, instance))

    def create_relationship(self, subject: str, relation: str, object_: str) -> None:
        self._request(
            "POST",
            self._facts_url("relationship_tuples"),
            json={"subject": subject, "relation": relation, "object": object_, "tenant": self.tenant},
        )

    def close(self) -> None:
        self.client.close()


# tenant-level role -> resource type -> actions
DEFAULT_TENANT_POLICY: dict[str, dict[str, frozenset[str]]] = {
    "Admin": {
        "User": ALL_ACTIONS,
        "Epic": ALL_ACTIONS,
        "Task": ALL_ACTIONS,
        "Comment": ALL_ACTIONS,
    },
    "Manager": {
        "User": frozenset({"read"}),
        "Epic": ALL_ACTIONS,
        "Task": ALL_ACTIONS,
        "Comment": ALL_ACTIONS,
    },
    "Developer": {
        "User": frozenset({"read"}),
        "Epic": frozenset({"read"}),
        "Task": frozenset({"read", "create"}),
        "Comment": frozenset({"read", "create"}),
    },
}

# instance-level role -> resource type -> actions
DEFAULT_INSTANCE_POLICY: dict[str, dict[str, frozenset[str]]] = {
    "Admin": DEFAULT_TENANT_POLICY["Admin"],
    "Manager": {
        "Epic": ALL_ACTIONS,
        "Task": ALL_ACTIONS,
        "Comment": ALL_ACTIONS,
    },
    "Developer": {
        "Epic": frozenset({"read"}),
        "Task": frozenset({"read", "update", "log-work"}),
        "Comment": frozenset({"read", "update", "delete"}),
    },
}


class InMemoryOracle(AuthorizationOracle):
    """Fact store and policy evaluator kept in process.

    Tenant roles grant actions on every instance of a resource type. Instance
    roles grant actions on that instance and, through ``parent`` tuples, on
    its descendants (a role on ``Epic:1`` applies to ``Task:2`` when
    ``Epic:1`` is the parent of ``Task:2``).

    With ``record_checks`` every checked triple is kept in ``checks``.
    """

    def __init__(
        self,
        tenant_policy: dict[str, dict[str, frozenset[str]]] | None = None,
        instance_policy: dict[str, dict[str, frozenset[str]]] | None = None,
        record_checks: bool = False,
    ) -> None:
        self.tenant_policy = tenant_policy or DEFAULT_TENANT_POLICY
        self.instance_policy = instance_policy or DEFAULT_INSTANCE_POLICY
        self.users: dict[str, dict[str, str]] = {}
        self.instances: dict[str, dict[str, Any]] = {}
        self.tenant_roles: dict[str, set[str]] = defaultdict(set)
        self.instance_roles: dict[str, set[tuple[str, str]]] = defaultdict(set)
        self.relationships: set[tuple[str, str, str]] = set()
        # requests run in a threadpool, every read and write of the facts holds this lock
        self._lock = threading.RLock()
        self.record_checks = record_checks
        self.checks: list[tuple[str, str, str]] = []

    def _parents(self, instance: str) -> list[str]:
        return [
            subject
            for subject, relation, obj in list(self.relationships)
            if obj == instance and relation == PARENT_RELATION
        ]

    def _instance_grants(self, user_key: str, node: str, resource_type: str, action: str, seen: set[str]) -> bool:
        # walks from the checked instance up through its parents
        if node in seen:
            return False
        seen.add(node)
        for holder, role in list(self.instance_roles.get(node, ())):
            if holder == user_key and action in self.instance_policy.get(role, {}).get(resource_type, frozenset()):
                return True
        return any(self._instance_grants(user_key, parent, resource_type, action, seen) for parent in self._parents(node))

    def check(self, user_key: str, action: str, resource: str) -> bool:
        with self._lock:
            if self.record_checks:
                self.checks.append((user_key, action, resource))
            if user_key not in self.users:
                return False
            resource_type, key = split_ref(resource)
            for role in list(self.tenant_roles.get(user_key, ())):
                if action in self.tenant_policy.get(role, {}).get(resource_type, frozenset()):
                    return True
            if key is None:
                return False
            return self._instance_grants(user_key, resource, resource_type, action, set())

    def sync_user(self, key: str, email: str, first_name: str, last_name: str, role: str) -> None:
        with self._lock:
            self.users[key] = {"email": email, "first_name": first_name, "last_name": last_name}
            self.tenant_roles[key].add(role)

    def delete_user(self, key: str) -> None:
        with self._lock:
            if self.users.pop(key, None) is None:
                raise OracleError(f"user {key} does not exist")
            self.tenant_roles.pop(key, None)
            for holders in list(self.instance_roles.values()):
                holders.difference_update({item for item in holders if item[0] == key})

    def create_instance(self, resource: str, key: str, attributes: dict[str, Any] | None = None) -> None:
        with self._lock:
            self.instances[instance_ref(resource, key)] = dict(attributes or {})

    def update_instance(self, resource: str, key: str, attributes: dict[str, Any]) -> None:
        ref = instance_ref(resource, key)
        with self._lock:
            if ref not in self.instances:
                raise OracleError(f"resource instance {ref} does not exist")
            self.instances[ref].update(attributes)

    def delete_instance(self, resource: str, key: str) -> None:
        ref = instance_ref(resource, key)
        with self._lock:
            if self.instances.pop(ref, None) is None:
                raise OracleError(f"resource instance {ref} does not exist")
            self.instance_roles.pop(ref, None)
            self.relationships = {item for item in self.relationships if ref not in (item[0], item[2])}

    def assign_role(self, user_key: str, role: str, instance: str | None = None) -> None:
        with self._lock:
            if instance is None:
                self.tenant_roles[user_key].add(role)
            else:
                self.instance_roles[instance].add((user_key, role))

    def unassign_role(self, user_key: str, role: str, instance: str | None = None) -> None:
        with self._lock:
            holders = self.tenant_roles.get(user_key, set()) if instance is None else self.instance_roles.get(instance, set())
            item = role if instance is None else (user_key, role)
            if item not in holders:
                raise OracleError(f"{user_key} does not hold {role} on {instance or 'tenant'}")
            holders.discard(item)

    def create_relationship(self, subject: str, relation: str, object_: str) -> None:
        with self._lock:
            self.relationships.add((subject, relation, object_))

    def has_instance_role(self, user_key: str, role: str, instance: str) -> bool:
        with self._lock:
            return (user_key, role) in self.instance_roles.get(instance, set())


class FactSync:
    """Post-commit fact pushes into the oracle.

    The local change is already committed when these run: a failed push is
    logged and reported as ``False``, never raised and never retried.
    """

    def __init__(self, oracle: AuthorizationOracle) -> None:
        self.oracle = oracle

    def push(self, description: str, fn: Callable[..., None], *args, **kwargs) -> bool:
        try:
            fn(*args, **kwargs)
        except OracleError:
            logger.warning("Fact sync failed: %s", description, exc_info=True)
            return False
        logger.debug("Fact sync ok: %s", description)
        return True

    def sync_user(self, key: str, email: str, first_name: str, last_name: str, role: str) -> bool:
        return self.push(f"sync user {key}", self.oracle.sync_user, key, email, first_name, last_name, role)

    def delete_user(self, key: str) -> bool:
        return self.push(f"delete user {key}", self.oracle.delete_user, key)

    def create_instance(self, resource: str, key: str, attributes: dict[str, Any] | None = None) -> bool:
        return self.push(
            f"create {instance_ref(resource, key)}", self.oracle.create_instance, resource, key, attributes
        )

    def update_instance(self, resource: str, key: str, attributes: dict[str, Any]) -> bool:
        return self.push(
            f"update {instance_ref(resource, key)}", self.oracle.update_instance, resource, key, attributes
        )

    def delete_instance(self, resource: str, key: str) -> bool:
        return self.push(f"delete {instance_ref(resource, key)}", self.oracle.delete_instance, resource, key)

    def assign_role(self, user_key: str, role: str, instance: str | None = None) -> bool:
        return self.push(
            f"assign {role} to {user_key} on {instance or 'tenant'}", self.oracle.assign_role, user_key, role, instance
        )

    def unassign_role(self, user_key: str, role: str, instance: str | None = None) -> bool:
        return self.push(
            f"unassign {role} from {user_key} on {instance or 'tenant'}",
            self.oracle.unassign_role,
            user_key,
            role,
            instance,
        )

    def create_relationship(self, subject: str, relation: str, object_: str) -> bool:
        return self.push(
            f"relate {subject} -{relation}-> {object_}", self.oracle.create_relationship, subject, relation, object_
        )
