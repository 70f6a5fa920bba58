import logging

from sqlalchemy import case, distinct, exists, func, or_
from sqlalchemy.orm import Session

from epicflow.db.models import Epic, Task
from epicflow.services.identity import Identity
from epicflow.services.oracle import FactSync, instance_ref

logger = logging.getLogger(__name__)

RESOURCE = "Epic"


def completion_percentage(completed: int, total: int) -> int | None:
    """Share of completed tasks in percent, rounded half up. None without tasks."""
    if total == 0:
        return None
    return (200 * completed + total) // (2 * total)


def epic_exists(db: Session, epic_id: str) -> bool:
    return db.query(Epic.id).filter(Epic.id == epic_id).first() is not None


def list_epics(db: Session, user_id: str | None = None) -> list[Epic]:
    query = db.query(Epic)
    if user_id:
        authored_task = exists().where(Task.epic_id == Epic.id, Task.created_by == user_id)
        query = query.filter(or_(Epic.created_by == user_id, authored_task))
    return query.order_by(Epic.created_at.desc(), Epic.id.desc()).all()


def get_epic(db: Session, epic_id: str) -> dict | None:
    epic = db.query(Epic).filter(Epic.id == epic_id).first()
    if not epic:
        return None

    task_count, assignee_count = (
        db.query(func.count(Task.id), func.count(distinct(Task.assigned_to)))
        .filter(Task.epic_id == epic_id)
        .one()
    )
    return {
        "id": epic.id,
        "title": epic.title,
        "created_at": epic.created_at,
        "created_by": epic.created_by,
        "task_count": task_count,
        "unique_assignee_count": assignee_count,
    }


def _count_status(status: str):
    return func.coalesce(func.sum(case((Task.status == status, 1), else_=0)), 0)


def epic_statistics(db: Session) -> list[dict]:
    rows = (
        db.query(
            Epic.id,
            Epic.title,
            func.count(Task.id),
            _count_status("TODO"),
            _count_status("IN_PROGRESS"),
            _count_status("DONE"),
        )
        .outerjoin(Task, Task.epic_id == Epic.id)
        .group_by(Epic.id, Epic.title, Epic.created_at)
        .order_by(Epic.created_at.desc(), Epic.id.desc())
        .all()
    )
    return [
        {
            "epic_id": epic_id,
            "title": title,
            "task_count": task_count,
            "todo_task_count": todo,
            "in_progress_task_count": in_progress,
            "completed_task_count": done,
            "completion_percentage": completion_percentage(done, task_count),
        }
        for epic_id, title, task_count, todo, in_progress, done in rows
    ]


def create_epic(db: Session, facts: FactSync, title: str, creator: Identity) -> Epic:
    epic = Epic(title=title, created_by=creator.user_id)
    db.add(epic)
    db.commit()
    db.refresh(epic)
    logger.info("User %s created epic %s", creator.user_id, epic.id)

    facts.create_instance(RESOURCE, epic.id)
    if not creator.is_admin:
        facts.assign_role(creator.user_id, creator.role, instance_ref(RESOURCE, epic.id))
    return epic


def update_epic(db: Session, epic_id: str, title: str) -> Epic | None:
    epic = db.query(Epic).filter(Epic.id == epic_id).first()
    if not epic:
        return None
    epic.title = title
    db.commit()
    db.refresh(epic)
    return epic


def remove_epic(db: Session, facts: FactSync, epic_id: str) -> bool:
    # tasks of the epic are left in place
    deleted = db.query(Epic).filter(Epic.id == epic_id).delete(synchronize_session=False)
    db.commit()
    if deleted == 0:
        return False

    logger.info("Removed epic %s", epic_id)
    facts.delete_instance(RESOURCE, epic_id)
    return True
