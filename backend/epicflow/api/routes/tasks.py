from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.deps import authorize, get_db, get_facts
from epicflow.db.schemas import (
    ULID_PATTERN,
    LogWorkRequest,
    TaskAssign,
    TaskCommentStatisticOut,
    TaskCreate,
    TaskDetailOut,
    TaskOut,
    TaskUpdate,
    TaskUserStatisticOut,
)
from epicflow.services import tasks as task_service
from epicflow.services import users as user_service
from epicflow.services.access import ResourceName
from epicflow.services.identity import Identity
from epicflow.services.oracle import FactSync


router = APIRouter(prefix="/tasks", tags=["tasks"])


def _task_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Task"))


@router.get("", response_model=list[TaskOut])
def list_tasks(
    epic_id: str | None = Query(default=None, alias="epicId", pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    identity: Identity = Depends(authorize(ResourceName.TASK)),
):
    return task_service.list_tasks(db, epic_id, identity.scope_user_id)


@router.get("/statistics/users", response_model=list[TaskUserStatisticOut])
def task_statistics_by_user(
    db: Session = Depends(get_db),
    identity: Identity = Depends(authorize(ResourceName.TASK)),
):
    return task_service.task_statistics_by_user(db, identity.scope_user_id)


@router.get("/statistics/tasks", response_model=list[TaskCommentStatisticOut])
def task_statistics_by_task(
    db: Session = Depends(get_db),
    identity: Identity = Depends(authorize(ResourceName.TASK)),
):
    return task_service.task_statistics_by_task(db, identity.scope_user_id)


@router.get("/{task_id}", response_model=TaskDetailOut)
def get_task(
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    task = task_service.get_task(db, task_id)
    if not task:
        raise _task_not_found()
    return task


@router.post("", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    identity: Identity = Depends(authorize(ResourceName.TASK)),
):
    task = task_service.create_task(
        db,
        facts,
        epic_id=payload.epic_id,
        title=payload.title,
        description=payload.description,
        creator=identity,
    )
    if not task:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Epic"))
    return task


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    payload: TaskUpdate,
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    task = task_service.update_task(db, task_id, payload.title, payload.description)
    if not task:
        raise _task_not_found()
    return task


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    if not task_service.task_exists(db, task_id):
        raise _task_not_found()
    if not task_service.remove_task(db, facts, task_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.delete_message(False, "Task"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{task_id}/assign", response_model=TaskOut)
def assign_task(
    payload: TaskAssign,
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    if not task_service.task_exists(db, task_id):
        raise _task_not_found()
    if not user_service.user_exists(db, payload.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("User"))
    return task_service.assign_task(db, facts, task_id, payload.user_id)


@router.patch("/{task_id}/unassign", response_model=TaskOut)
def unassign_task(
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    task = task_service.unassign_task(db, facts, task_id)
    if not task:
        raise _task_not_found()
    return task


@router.patch("/{task_id}/log-work", response_model=TaskOut)
def log_work(
    payload: LogWorkRequest,
    task_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.TASK, instance_param="task_id")),
):
    task = task_service.log_work(db, facts, task_id, payload.status, payload.increment_time_spent_in_minutes)
    if not task:
        raise _task_not_found()
    return task
