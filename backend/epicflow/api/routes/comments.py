from fastapi import APIRouter, Depends, HTTPException, Path, Query, Response, status
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.deps import authorize, get_db, get_facts
from epicflow.db.schemas import ULID_PATTERN, CommentCreate, CommentOut, CommentUpdate
from epicflow.services import comments as comment_service
from epicflow.services.access import ResourceName
from epicflow.services.identity import Identity
from epicflow.services.oracle import FactSync


router = APIRouter(prefix="/comments", tags=["comments"])


@router.get("", response_model=list[CommentOut])
def list_comments(
    task_id: str | None = Query(default=None, alias="taskId", pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.COMMENT)),
):
    return comment_service.list_comments(db, task_id)


@router.post("", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
def create_comment(
    payload: CommentCreate,
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    identity: Identity = Depends(authorize(ResourceName.COMMENT)),
):
    comment = comment_service.create_comment(
        db, facts, task_id=payload.task_id, content=payload.content, author=identity
    )
    if not comment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Task"))
    return comment


@router.put("/{comment_id}", response_model=CommentOut)
def update_comment(
    payload: CommentUpdate,
    comment_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.COMMENT, instance_param="comment_id")),
):
    comment = comment_service.update_comment(db, comment_id, payload.content)
    if not comment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Comment"))
    return comment


@router.delete("/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.COMMENT, instance_param="comment_id")),
):
    if not comment_service.comment_exists(db, comment_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Comment"))
    if not comment_service.remove_comment(db, facts, comment_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.delete_message(False, "Comment"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
