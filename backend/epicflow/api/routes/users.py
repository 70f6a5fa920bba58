from fastapi import APIRouter, Depends, HTTPException, Path, Response, status
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.deps import authorize, get_db, get_facts
from epicflow.db.schemas import ULID_PATTERN, UserCreate, UserOut
from epicflow.services import users as user_service
from epicflow.services.access import ResourceName
from epicflow.services.identity import Identity
from epicflow.services.oracle import FactSync


router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=list[UserOut])
def list_users(
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.USER)),
):
    return user_service.list_users(db)


@router.get("/profile", response_model=UserOut)
def my_profile(
    db: Session = Depends(get_db),
    identity: Identity = Depends(authorize(ResourceName.USER)),
):
    user = user_service.get_user(db, "id", identity.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("User"))
    return user


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    _: Identity = Depends(authorize(ResourceName.USER)),
):
    user = user_service.get_user(db, "id", user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("User"))
    return user


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.USER)),
):
    if user_service.is_email_taken(db, payload.email):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=messages.EMAIL_TAKEN)

    return user_service.create_user(
        db,
        facts,
        email=payload.email,
        first_name=payload.first_name,
        last_name=payload.last_name,
        password=payload.password,
        role=payload.role,
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: str = Path(pattern=ULID_PATTERN),
    db: Session = Depends(get_db),
    facts: FactSync = Depends(get_facts),
    _: Identity = Depends(authorize(ResourceName.USER)),
):
    if not user_service.user_exists(db, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.not_found("User"))
    if not user_service.remove_user(db, facts, user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.delete_message(False, "User"))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
