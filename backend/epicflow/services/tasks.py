import logging

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from epicflow.db.models import Comment, Epic, Task, User
from epicflow.services.identity import Identity
from epicflow.services.oracle import PARENT_RELATION, FactSync, instance_ref

logger = logging.getLogger(__name__)

RESOURCE = "Task"
ASSIGNEE_ROLE = "Developer"


def _attributes(task: Task) -> dict:
    return {"time_spent": task.time_spent, "status": task.status}


def task_exists(db: Session, task_id: str) -> bool:
    return db.query(Task.id).filter(Task.id == task_id).first() is not None


def _visible_to(user_id: str):
    return or_(Task.created_by == user_id, Task.assigned_to == user_id)


def list_tasks(db: Session, epic_id: str | None = None, user_id: str | None = None) -> list[Task]:
    query = db.query(Task)
    if epic_id:
        query = query.filter(Task.epic_id == epic_id)
    if user_id:
        query = query.filter(_visible_to(user_id))
    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()


def get_task(db: Session, task_id: str) -> dict | None:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        return None

    comments_count = db.query(func.count(Comment.id)).filter(Comment.task_id == task_id).scalar()
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "time_spent": task.time_spent,
        "status": task.status,
        "epic_id": task.epic_id,
        "assigned_to": task.assigned_to,
        "created_at": task.created_at,
        "created_by": task.created_by,
        "comments_count": comments_count,
    }


def task_statistics_by_user(db: Session, user_id: str | None = None) -> list[dict]:
    query = (
        db.query(User.id, User.first_name, User.last_name, func.count(Task.id))
        .select_from(Task)
        .outerjoin(User, User.id == Task.assigned_to)
    )
    if user_id:
        query = query.filter(_visible_to(user_id))
    rows = query.group_by(User.id, User.first_name, User.last_name).order_by(func.count(Task.id).desc()).all()
    return [
        {"user_id": uid, "first_name": first_name, "last_name": last_name, "task_count": task_count}
        for uid, first_name, last_name, task_count in rows
    ]


def task_statistics_by_task(db: Session, user_id: str | None = None) -> list[dict]:
    query = (
        db.query(Task.id, Task.title, Task.epic_id, Task.assigned_to, func.count(Comment.id))
        .outerjoin(Comment, Comment.task_id == Task.id)
    )
    if user_id:
        query = query.filter(_visible_to(user_id))
    rows = (
        query.group_by(Task.id, Task.title, Task.epic_id, Task.assigned_to, Task.created_at)
        .order_by(Task.created_at.desc(), Task.id.desc())
        .all()
    )
    return [
        {
            "task_id": task_id,
            "title": title,
            "epic_id": epic_id,
            "assignee_user_id": assignee,
            "comments_count": comments_count,
        }
        for task_id, title, epic_id, assignee, comments_count in rows
    ]


def create_task(
    db: Session,
    facts: FactSync,
    *,
    epic_id: str,
    title: str,
    description: str,
    creator: Identity,
) -> Task | None:
    if db.query(Epic.id).filter(Epic.id == epic_id).first() is None:
        return None

    task = Task(
        title=title,
        description=description,
        time_spent=0,
        status="TODO",
        epic_id=epic_id,
        created_by=creator.user_id,
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    logger.info("User %s created task %s in epic %s", creator.user_id, task.id, epic_id)

    ref = instance_ref(RESOURCE, task.id)
    facts.create_instance(RESOURCE, task.id, _attributes(task))
    facts.create_relationship(instance_ref("Epic", epic_id), PARENT_RELATION, ref)
    if not creator.is_admin:
        facts.assign_role(creator.user_id, creator.role, ref)
    return task


def update_task(db: Session, task_id: str, title: str, description: str) -> Task | None:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        return None
    task.title = title
    task.description = description
    db.commit()
    db.refresh(task)
    return task


def remove_task(db: Session, facts: FactSync, task_id: str) -> bool:
    deleted = db.query(Task).filter(Task.id == task_id).delete(synchronize_session=False)
    db.commit()
    if deleted == 0:
        return False

    logger.info("Removed task %s", task_id)
    facts.delete_instance(RESOURCE, task_id)
    return True


def _retract_assignee(facts: FactSync, task: Task) -> None:
    if task.assigned_to:
        # losing the old grant does not block the reassignment
        facts.unassign_role(task.assigned_to, ASSIGNEE_ROLE, instance_ref(RESOURCE, task.id))


def assign_task(db: Session, facts: FactSync, task_id: str, user_id: str) -> Task | None:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        return None

    _retract_assignee(facts, task)
    task.assigned_to = user_id
    db.commit()
    db.refresh(task)
    logger.info("Assigned task %s to user %s", task_id, user_id)

    facts.assign_role(user_id, ASSIGNEE_ROLE, instance_ref(RESOURCE, task.id))
    return task


def unassign_task(db: Session, facts: FactSync, task_id: str) -> Task | None:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        return None

    _retract_assignee(facts, task)
    task.assigned_to = None
    db.commit()
    db.refresh(task)
    logger.info("Unassigned task %s", task_id)
    return task


def log_work(db: Session, facts: FactSync, task_id: str, status: str, increment_minutes: int) -> Task | None:
    if increment_minutes < 0:
        raise ValueError("increment_minutes must not be negative")

    updated = (
        db.query(Task)
        .filter(Task.id == task_id)
        .update({Task.status: status, Task.time_spent: Task.time_spent + increment_minutes}, synchronize_session=False)
    )
    db.commit()
    if updated == 0:
        return None

    task = db.query(Task).filter(Task.id == task_id).one()
    db.refresh(task)
    logger.info("Logged %s minutes on task %s, status %s", increment_minutes, task_id, task.status)

    facts.update_instance(RESOURCE, task.id, _attributes(task))
    return task
