"""Replay the local database into the oracle's fact store.

Used after pointing the service at a fresh Permit environment, or to repair
divergence left behind by failed post-commit pushes.
"""

import logging

from sqlalchemy.orm import Session

from epicflow.db.models import Comment, Epic, Task, User
from epicflow.services.oracle import PARENT_RELATION, FactSync, instance_ref
from epicflow.services.tasks import ASSIGNEE_ROLE

logger = logging.getLogger(__name__)


def _grant_creator(facts: FactSync, roles: dict[str, str], user_id: str, ref: str) -> None:
    role = roles.get(user_id)
    if role and role != "Admin":
        facts.assign_role(user_id, role, ref)


def resync_oracle(db: Session, facts: FactSync) -> dict[str, int]:
    counts = {"users": 0, "epics": 0, "tasks": 0, "comments": 0}
    roles: dict[str, str] = {}

    for user in db.query(User).all():
        roles[user.id] = user.role
        facts.sync_user(user.id, user.email, user.first_name, user.last_name, user.role)
        counts["users"] += 1

    for epic in db.query(Epic).all():
        facts.create_instance("Epic", epic.id)
        _grant_creator(facts, roles, epic.created_by, instance_ref("Epic", epic.id))
        counts["epics"] += 1

    for task in db.query(Task).all():
        ref = instance_ref("Task", task.id)
        facts.create_instance("Task", task.id, {"time_spent": task.time_spent, "status": task.status})
        facts.create_relationship(instance_ref("Epic", task.epic_id), PARENT_RELATION, ref)
        _grant_creator(facts, roles, task.created_by, ref)
        if task.assigned_to:
            facts.assign_role(task.assigned_to, ASSIGNEE_ROLE, ref)
        counts["tasks"] += 1

    for comment in db.query(Comment).all():
        ref = instance_ref("Comment", comment.id)
        facts.create_instance("Comment", comment.id)
        facts.create_relationship(instance_ref("Task", comment.task_id), PARENT_RELATION, ref)
        _grant_creator(facts, roles, comment.created_by, ref)
        counts["comments"] += 1

    logger.info("Oracle resync pushed %s", counts)
    return counts
