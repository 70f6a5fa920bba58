from dataclasses import dataclass

from sqlalchemy.orm import Session

from epicflow.core.config import Settings
from epicflow.core.security import decode_token
from epicflow.db.models import ROLES
from epicflow.services.users import get_user


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "Admin"

    @property
    def is_developer(self) -> bool:
        return self.role == "Developer"

    @property
    def scope_user_id(self) -> str | None:
        """User id that listings and statistics are narrowed to, if any."""
        return self.user_id if self.is_developer else None


def resolve_bearer_token(settings: Settings, token: str | None) -> Identity | None:
    if not token:
        return None
    claims = decode_token(settings, token)
    if not claims or claims["role"] not in ROLES:
        return None
    return Identity(user_id=claims["sub"], role=claims["role"])


def resolve_session_code(db: Session, code: str | None) -> Identity | None:
    if not code:
        return None
    user = get_user(db, "session_code", code)
    if not user:
        return None
    return Identity(user_id=user.id, role=user.role)
