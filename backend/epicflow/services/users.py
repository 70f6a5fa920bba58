import logging

from sqlalchemy.orm import Session

from epicflow.core.security import hash_password
from epicflow.db.models import User, UserSession
from epicflow.services.oracle import FactSync

logger = logging.getLogger(__name__)

LOOKUP_FIELDS = ("id", "email", "session_code")


def normalize_email(email: str) -> str:
    return email.strip().lower()


def user_exists(db: Session, user_id: str) -> bool:
    return db.query(User.id).filter(User.id == user_id).first() is not None


def is_email_taken(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == normalize_email(email)).first() is not None


def get_user(db: Session, by: str, value: str) -> User | None:
    if by == "id":
        return db.query(User).filter(User.id == value).first()
    if by == "email":
        return db.query(User).filter(User.email == normalize_email(value)).first()
    if by == "session_code":
        return (
            db.query(User)
            .join(UserSession, UserSession.user_id == User.id)
            .filter(UserSession.code == value)
            .first()
        )
    raise ValueError(f"Unknown user lookup {by!r}, expected one of {LOOKUP_FIELDS}")


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(
    db: Session,
    facts: FactSync,
    *,
    email: str,
    first_name: str,
    last_name: str,
    password: str,
    role: str,
) -> User:
    user = User(
        email=normalize_email(email),
        first_name=first_name,
        last_name=last_name,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s with role %s", user.id, user.role)

    facts.sync_user(user.id, user.email, user.first_name, user.last_name, user.role)
    return user


def remove_user(db: Session, facts: FactSync, user_id: str) -> bool:
    # sessions go with the user, authored epics, tasks and comments stay
    db.query(UserSession).filter(UserSession.user_id == user_id).delete(synchronize_session=False)
    deleted = db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
    db.commit()
    if deleted == 0:
        return False

    logger.info("Removed user %s", user_id)
    facts.delete_user(user_id)
    return True
