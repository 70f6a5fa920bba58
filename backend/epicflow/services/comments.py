import logging

from sqlalchemy.orm import Session

from epicflow.db.models import Comment, Task
from epicflow.services.identity import Identity
from epicflow.services.oracle import PARENT_RELATION, FactSync, instance_ref

logger = logging.getLogger(__name__)

RESOURCE = "Comment"


def comment_exists(db: Session, comment_id: str) -> bool:
    return db.query(Comment.id).filter(Comment.id == comment_id).first() is not None


def list_comments(db: Session, task_id: str | None = None) -> list[Comment]:
    query = db.query(Comment)
    if task_id:
        query = query.filter(Comment.task_id == task_id)
    return query.order_by(Comment.created_at.asc(), Comment.id.asc()).all()


def create_comment(db: Session, facts: FactSync, *, task_id: str, content: str, author: Identity) -> Comment | None:
    if db.query(Task.id).filter(Task.id == task_id).first() is None:
        return None

    comment = Comment(content=content, task_id=task_id, created_by=author.user_id)
    db.add(comment)
    db.commit()
    db.refresh(comment)
    logger.info("User %s commented %s on task %s", author.user_id, comment.id, task_id)

    ref = instance_ref(RESOURCE, comment.id)
    facts.create_instance(RESOURCE, comment.id)
    facts.create_relationship(instance_ref("Task", task_id), PARENT_RELATION, ref)
    if not author.is_admin:
        facts.assign_role(author.user_id, author.role, ref)
    return comment


def update_comment(db: Session, comment_id: str, content: str) -> Comment | None:
    comment = db.query(Comment).filter(Comment.id == comment_id).first()
    if not comment:
        return None
    comment.content = content
    db.commit()
    db.refresh(comment)
    return comment


def remove_comment(db: Session, facts: FactSync, comment_id: str) -> bool:
    deleted = db.query(Comment).filter(Comment.id == comment_id).delete(synchronize_session=False)
    db.commit()
    if deleted == 0:
        return False

    logger.info("Removed comment %s", comment_id)
    facts.delete_instance(RESOURCE, comment_id)
    return True
