from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.deps import authorize, get_db, get_facts
from epicflow.db.schemas import ULID_PATTERN, EpicCreate, EpicDetailOut, EpicOut, EpicStatisticOut, EpicUpdate
from epicflow.services import epics as epic_service
from epicflow.services.access import ResourceName
from epicflow.services.identity import Identity
from epicflow.services.oracle import FactSync


router = APIRouter(prefix="/epics", tags=["epics"])


@router.get("", response_model=list[EpicOut])
def list_epics(
    db: Session = Depends(get_db),
    identity: Identity = Depends(authorize(ResourceName.EPIC)),
):
    return epic_service.list_epics(db, identity.scope_user_id)


@router.get("/statistics", response_model=list[EpicStatisticOut])
def epic_statistics(
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.EPIC)),
):
    return epic_service.epic_statistics(db)


@router.get("/{epic_id}", response_model=EpicDetailOut)
def get_epic(
    epic_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.EPIC, instance_param="epic_id")),
):
    epic = epic_service.get_epic(db, epic_id)
    if not epic:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Epic"))
    return epic


@router.post("", response_model=EpicOut, status_code=status.HTTP_201_CREATED)
def create_epic(
    payload: EpicCreate,
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    identity: Identity = Depends(authorize(ResourceName.EPIC)),
):
    return epic_service.create_epic(db, facts, payload.title, identity)


@router.put("/{epic_id}", response_model=EpicOut)
def update_epic(
    payload: EpicUpdate,
    epic_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.EPIC, instance_param="epic_id")),
):
    epic = epic_service.update_epic(db, epic_id, payload.title)
    if not epic:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Epic"))
    return epic


@router.delete("/{epic_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_epic(
    epic_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.EPIC, instance_param="epic_id")),
):
    if not epic_service.epic_exists(db, epic_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("Epic"))
    if not epic_service.remove_epic(db, facts, epic_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.delete_message(False, "Epic"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
