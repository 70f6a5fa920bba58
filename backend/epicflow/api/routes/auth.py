from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from epicflow.core import messages
from epicflow.core.deps import get_context, get_db
from epicflow.core.context import AppContext
from epicflow.db.schemas import LoginRequest, LogoutRequest, MessageOut, SessionCodeRequest, TokenResponse
from epicflow.services import auth as auth_service


router = APIRouter(prefix="/public/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db), context: AppContext = Depends(get_context)):
    result = auth_service.login_with_password(db, context.settings, payload.email, payload.password)
    if not result:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=messages.INVALID_CREDENTIALS)
    return result


@router.post("/session-code", response_model=MessageOut, status_code=status.HTTP_202_ACCEPTED)
def request_session_code(
    payload: SessionCodeRequest,
    db: Session = Depends(get_db),
    context: AppContext = Depends(get_context),
):
    if not auth_service.login_with_session_code(db, context.notifier, payload.email):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=messages.INVALID_USER)
    return MessageOut(message=messages.SESSION_CODE_SENT)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(payload: LogoutRequest, db: Session = Depends(get_db)):
    if not auth_service.logout_with_session_code(db, payload.session_code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=messages.INVALID_SESSION)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
