import logging
import secrets

from sqlalchemy.orm import Session

from epicflow.core.config import Settings
from epicflow.core.security import create_access_token, verify_password
from epicflow.db.models import UserSession
from epicflow.services.notification import NotificationError, WebhookNotifier
from epicflow.services.users import get_user

logger = logging.getLogger(__name__)

SESSION_CODE_DIGITS = 6


def login_with_password(db: Session, settings: Settings, email: str, password: str) -> dict | None:
    user = get_user(db, "email", email)
    if not user or not verify_password(password, user.password_hash):
        return None

    return {
        "user_id": user.id,
        "user_name": user.email,
        "role": user.role,
        "access_token": create_access_token(settings, subject=user.id, role=user.role),
    }


def generate_session_code(db: Session) -> str:
    low = 10 ** (SESSION_CODE_DIGITS - 1)
    while True:
        code = str(low + secrets.randbelow(9 * low))
        if db.query(UserSession.id).filter(UserSession.code == code).first() is None:
            return code


def login_with_session_code(db: Session, notifier: WebhookNotifier, email: str) -> bool:
    user = get_user(db, "email", email)
    if not user:
        return False

    session = UserSession(code=generate_session_code(db), user_id=user.id)
    db.add(session)
    db.commit()
    logger.info("Issued session code for user %s", user.id)

    try:
        notifier.send({"userId": user.id, "email": user.email, "code": session.code})
    except NotificationError:
        logger.warning("Session code for user %s was stored but not delivered", user.id, exc_info=True)
    return True


def logout_with_session_code(db: Session, session_code: str) -> bool:
    deleted = db.query(UserSession).filter(UserSession.code == session_code).delete(synchronize_session=False)
    db.commit()
    return deleted > 0
